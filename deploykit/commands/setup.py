"""deploykit - Setup & deploy command"""

from typing import Mapping, Optional

import rich_click as click

from deploykit import __version__
from deploykit.base import BaseCommand
from deploykit.config import DeploySettings, load_environment
from deploykit.models.deployment import DeploymentContext
from deploykit.orchestrator import Orchestrator
from deploykit.prompts import detect_input_source


class SetupCommand(BaseCommand):
    """Verify prerequisites, authenticate and deploy to an SST stage."""

    def __init__(
        self,
        stage: Optional[str] = None,
        profile: Optional[str] = None,
        check_only: bool = False,
        unlock_only: bool = False,
        skip_install: bool = False,
        non_interactive: bool = False,
        no_telemetry: bool = False,
        verbose: bool = False,
        timeout: Optional[int] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(verbose=verbose)
        self.stage = stage
        self.profile = profile
        self.check_only = check_only
        self.unlock_only = unlock_only
        self.skip_install = skip_install
        self.non_interactive = non_interactive
        self.no_telemetry = no_telemetry
        self.timeout = timeout
        self.environ = environ

    def _mode(self) -> str:
        if self.check_only:
            return "Check credentials only"
        if self.unlock_only:
            return "Release deployment lock"
        return "Deploy"

    def execute(self) -> None:
        env = load_environment(self.project_root, self.environ)
        logger = self.init_logger(env)

        settings = DeploySettings.load(
            self.project_root,
            env,
            stage=self.stage,
            profile=self.profile,
            timeout=self.timeout,
            check_only=self.check_only,
            unlock_only=self.unlock_only,
            skip_install=self.skip_install,
            non_interactive=self.non_interactive,
            no_telemetry=self.no_telemetry,
            verbose=self.verbose,
        )

        self.show_header(
            title="Setup & Deploy",
            subtitle=f"Log file: {logger.log_path}",
            stage=settings.stage,
            details={"Mode": self._mode()},
        )

        inputs = detect_input_source(logger, settings.non_interactive, self.console)
        context = DeploymentContext(project_root=settings.project_root, base_env=dict(env))
        Orchestrator(settings, logger, inputs, context=context).run()


def setup_options(func):
    """Options shared by deploykit-setup and deploykit deploy."""
    options = [
        click.option("--stage", help="Deployment stage (skips the stage menu)"),
        click.option("--profile", help="AWS profile to use"),
        click.option(
            "--check",
            "check_only",
            is_flag=True,
            help="Only verify prerequisites and credentials, don't deploy",
        ),
        click.option(
            "--unlock",
            "unlock_only",
            is_flag=True,
            help="Release a stale deployment lock and exit",
        ),
        click.option("--skip-install", is_flag=True, help="Skip npm install"),
        click.option(
            "--non-interactive",
            is_flag=True,
            help="Never prompt; use defaults (for CI/CD)",
        ),
        click.option(
            "--no-telemetry",
            is_flag=True,
            help="Disable SST telemetry regardless of network",
        ),
        click.option(
            "-v", "--verbose", is_flag=True, help="Mirror every log line to the console"
        ),
        click.option(
            "--timeout",
            type=click.IntRange(min=1),
            default=None,
            help="Default command timeout in seconds (default: 300)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _run_setup(**kwargs) -> None:
    SetupCommand(**kwargs).run()


@click.command(name="deploy")
@setup_options
def deploy(**kwargs):
    """
    Set up prerequisites and deploy to an SST stage

    \b
    Examples:
      deploykit deploy --stage dev
      deploykit deploy --check --profile my-profile
      deploykit deploy --unlock --stage dev
      deploykit deploy --non-interactive --stage int
    """
    _run_setup(**kwargs)


@click.command(name="deploykit-setup")
@click.version_option(version=__version__)
@setup_options
def setup(**kwargs):
    """
    deploykit-setup - Automated setup & deploy for SST applications

    \b
    Steps:
      1. Check prerequisites (node, npm, aws, package.json)
      2. Detect the network and configure proxy/telemetry
      3. Use the deployment cache when present
      4. Verify or establish AWS credentials
      5. Install dependencies and select a stage
      6. Release a stale lock and deploy
    """
    _run_setup(**kwargs)
