"""
Deployment Orchestrator

START → CHECK_PREREQUISITES → CLASSIFY_NETWORK → PREPARE_CACHE → AUTHENTICATE
→ INSTALL_DEPENDENCIES → SELECT_TARGET_STAGE → UNLOCK_LOOP → DEPLOY → REPORT

Any DeployKitError moves the run to ABORT and propagates to the command layer.
"""

import getpass
import json
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional

from rich.panel import Panel

from deploykit.cache import CacheBootstrapper
from deploykit.config import DeploySettings
from deploykit.constants import REQUIRED_TOOLS
from deploykit.credentials import AwsConfigFiles, CredentialResolver
from deploykit.exceptions import DeployKitError, DeploymentError, MissingToolError
from deploykit.lock import LockCoordinator
from deploykit.logger import ResultLog
from deploykit.models.deployment import DeploymentContext, DeployPhase, NetworkMode
from deploykit.models.results import LockOutcome
from deploykit.network import NetworkClassifier, configure_package_manager
from deploykit.prompts import InputSource
from deploykit.runner import CommandRunner

STAGE_DESCRIPTIONS = {
    "dev": "Development environment",
    "int": "Integration/staging environment",
    "prod": "Production environment",
}


class Orchestrator:
    """Runs one setup/deploy pass over an explicit DeploymentContext."""

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        inputs: InputSource,
        runner: Optional[CommandRunner] = None,
        context: Optional[DeploymentContext] = None,
        home: Optional[Path] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.inputs = inputs
        self.runner = runner or CommandRunner(logger)
        self.context = context or DeploymentContext(project_root=settings.project_root)
        self.home = home
        self.which = which
        self.sleep = sleep
        self.bootstrapper = CacheBootstrapper(
            settings, logger, self.context.base_env, home=home
        )

    def _enter(self, phase: DeployPhase) -> None:
        self.context.phase = phase
        self.logger.debug(f"Phase: {phase.value}")

    def run(self) -> DeploymentContext:
        """Drive the state machine to REPORT (or an early successful exit)."""
        ctx = self.context
        try:
            self._log_start()

            self._enter(DeployPhase.CHECK_PREREQUISITES)
            self.check_prerequisites()

            self._enter(DeployPhase.CLASSIFY_NETWORK)
            self.classify_network()

            self._enter(DeployPhase.PREPARE_CACHE)
            self.prepare_cache()

            self._enter(DeployPhase.AUTHENTICATE)
            self.authenticate()

            if self.settings.check_only:
                self.logger.info("Check-only mode: exiting after credential verification")
                self.logger.success("AWS credentials verified successfully")
                return ctx

            if self.settings.unlock_only:
                self._enter(DeployPhase.SELECT_TARGET_STAGE)
                self.select_stage()
                self._enter(DeployPhase.UNLOCK_LOOP)
                self.unlock_only()
                return ctx

            if self.settings.skip_install:
                self.logger.info("Skipping dependency installation (--skip-install)")
            else:
                self._enter(DeployPhase.INSTALL_DEPENDENCIES)
                self.install_dependencies()

            self._enter(DeployPhase.SELECT_TARGET_STAGE)
            self.select_stage()
            self.bump_version()

            self._enter(DeployPhase.UNLOCK_LOOP)
            self.lock_coordinator().ensure_unlocked_then_deploy(
                ctx.stage, self.settings.timeout
            )

            self._enter(DeployPhase.REPORT)
            self.report()
            self.logger.info("Setup script completed successfully")
            return ctx
        except DeployKitError:
            self.logger.error(f"Aborted during phase: {ctx.phase.value}")
            self._enter(DeployPhase.ABORT)
            raise

    def _log_start(self) -> None:
        self.logger.info("=" * 42)
        self.logger.info("Setup started")
        self.logger.info(f"Working directory: {self.settings.project_root}")
        self.logger.info(f"User: {self._user()}")
        self.logger.info("=" * 42)
        self.logger.info("Configuration:")
        for key, value in self.settings.describe().items():
            self.logger.info(f"  {key}: {value}")
        self.logger.info(f"  LOG_FILE: {self.logger.log_path}")

    def _user(self) -> str:
        return self.context.base_env.get("USER") or getpass.getuser()

    # Phases

    def check_prerequisites(self) -> Dict[str, str]:
        """
        Required tools must be on PATH.

        Raises:
            MissingToolError: With install instructions
        """
        self.logger.step("Checking prerequisites")
        versions = {}
        for tool, hint in REQUIRED_TOOLS.items():
            self.logger.info(f"Checking {tool} installation...")
            if not self.which(tool):
                self.logger.error(f"{tool} is not installed")
                raise MissingToolError(tool, hint)
            result = self.runner.run(
                30,
                f"{tool} --version",
                [tool, "--version"],
                env=self.context.env,
                capture=True,
                echo=False,
            )
            lines = result.output.strip().splitlines()
            versions[tool] = lines[0].split()[0] if lines else "unknown"
            self.logger.success(f"{tool} {versions[tool]}")
        self.logger.success("Project structure OK")
        return versions

    def classify_network(self) -> NetworkMode:
        ctx = self.context
        classifier = NetworkClassifier(
            self.settings, self.logger, ctx.env, bootstrapper=self.bootstrapper
        )
        classification = classifier.classify()
        ctx.set_network_mode(classification.mode)
        ctx.overrides.merge(classification.overrides)
        if ctx.network_mode.is_restricted:
            self.logger.info(
                f"  IN_CORPORATE_NETWORK: true ({classification.reason}, telemetry disabled)"
            )
        configure_package_manager(
            classification, self.runner, ctx.env, cwd=self.settings.project_root
        )
        return classification.mode

    def prepare_cache(self) -> None:
        ctx = self.context
        if ctx.network_mode != NetworkMode.CN_AIRGAP:
            self.bootstrapper.restore_if_present()
        if self.bootstrapper.in_use:
            ctx.overrides.merge(self.bootstrapper.overrides)
            ctx.cache_in_use = True
            self.logger.info("Update and version checks suppressed (deployment cache in use)")

    def authenticate(self) -> None:
        ctx = self.context
        resolver = CredentialResolver(
            self.settings,
            self.logger,
            self.runner,
            self.inputs,
            ctx.env,
            files=AwsConfigFiles(ctx.env, home=self.home),
        )
        state = resolver.ensure_authenticated()
        ctx.overrides.merge(resolver.overrides)
        ctx.credentials = state

    def install_dependencies(self) -> None:
        self.logger.step("Installing dependencies")
        root = self.settings.project_root

        if not (root / "node_modules").is_dir():
            self.logger.info("node_modules not found, running npm install...")
            self._npm_install("npm install")
            self.logger.success("Dependencies installed")
            return

        self.logger.notice("Dependencies already installed")
        if not self.inputs.interactive:
            self.logger.info("Skipping reinstall prompt in non-interactive mode")
            return
        if self.inputs.confirm("Run npm install anyway?", default=False):
            self.logger.info("User requested reinstall")
            self._npm_install("npm install (reinstall)")
            self.logger.success("Dependencies reinstalled")

    def _npm_install(self, description: str) -> None:
        result = self.runner.run(
            self.settings.timeout,
            description,
            ["npm", "install"],
            env=self.context.env,
            cwd=self.settings.project_root,
        )
        if not result.is_success:
            raise DeploymentError(
                "Failed to install dependencies",
                context=f"{description} {result.outcome.value} (exit code {result.exit_code})",
            )

    def select_stage(self) -> str:
        ctx = self.context
        if self.settings.stage:
            ctx.stage = self.settings.stage
            self.logger.info(f"Stage already set: {ctx.stage}")
            return ctx.stage

        self.logger.step("Select deployment stage")
        user = self._user()

        if not self.inputs.interactive:
            ctx.stage = user
            self.logger.notice(f"Non-interactive mode: using personal stage: {user}")
            return ctx.stage

        stages = list(self.settings.stages)
        options = [f"Personal stage (your username: {user})"]
        options += [f"{s} - {STAGE_DESCRIPTIONS.get(s, s + ' environment')}" for s in stages]
        options.append("Custom stage name")

        choice = self.inputs.choose("Available stages:", options, default=1)
        self.logger.info(f"User selected stage option: {choice}")

        if 2 <= choice <= len(stages) + 1:
            ctx.stage = stages[choice - 2]
        elif choice == len(options):
            ctx.stage = self.inputs.ask("Enter custom stage name: ", user)
        else:
            ctx.stage = user

        self.logger.notice(f"Selected stage: {ctx.stage}")
        return ctx.stage

    def bump_version(self) -> None:
        """Patch version bump before deploying; failures are not fatal."""
        package_json = self.settings.project_root / "package.json"
        try:
            package = json.loads(package_json.read_text())
        except (OSError, ValueError):
            package = {}

        if "version:patch" in (package.get("scripts") or {}):
            self.logger.info("Bumping version...")
            result = self.runner.run(
                60,
                "npm run version:patch",
                ["npm", "run", "version:patch"],
                env=self.context.env,
                cwd=self.settings.project_root,
                echo=False,
            )
            if not result.is_success:
                self.logger.warning("Version bump failed (continuing anyway)")
            try:
                package = json.loads(package_json.read_text())
            except (OSError, ValueError):
                package = {}
        else:
            self.logger.debug("No version:patch script, skipping version bump")

        self.logger.notice(f"Version: {package.get('version', 'unknown')}")

    def lock_coordinator(self) -> LockCoordinator:
        kwargs = {"sleep": self.sleep} if self.sleep else {}
        return LockCoordinator(
            self.settings,
            self.logger,
            self.runner,
            self.context.env,
            before_deploy=lambda: self._enter(DeployPhase.DEPLOY),
            **kwargs,
        )

    def unlock_only(self) -> None:
        """--unlock: release the lock and stop; fatal only if every attempt failed."""
        self.logger.info("Unlock mode: running sst unlock with telemetry protection")
        outcome = self.lock_coordinator().release_lock(self.context.stage)
        if outcome == LockOutcome.FAILED:
            raise DeploymentError(
                "Unlock failed",
                context=f"Check logs at: {self.logger.log_path}",
            )
        self.logger.notice("You can now run deployments again.")

    def report(self) -> None:
        self.logger.step("Deployment outputs")
        elapsed = self.logger.elapsed_seconds
        self.logger.info(f"Total execution time: {elapsed}s")

        console = self.logger.console
        console.print()
        console.print(
            Panel.fit(
                "[bold]Deployment Complete![/bold]\n\n"
                "Your application has been deployed. The URLs and configuration\n"
                "values are shown above in the SST output.",
                border_style="green",
            )
        )
        console.print("\n[bold]Next steps:[/bold]")
        console.print("  1. Open the CloudFront URL in your browser")
        console.print("  2. Create a user account using the Sign Up form")
        console.print("  3. Verify your email address")
        console.print("  4. Sign in and explore the application")
        console.print(f"\n[cyan]ℹ[/cyan] Stage: {self.context.stage}")
        console.print(f"[cyan]ℹ[/cyan] Log file: {self.logger.log_path}")
        console.print(f"[cyan]ℹ[/cyan] Total time: {elapsed}s\n")
