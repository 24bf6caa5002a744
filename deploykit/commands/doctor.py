"""deploykit - Doctor command"""

import shutil
from typing import Mapping, Optional

import rich_click as click
from rich.table import Table

from deploykit.base import BaseCommand
from deploykit.config import DeploySettings, find_project_root, load_environment
from deploykit.constants import REQUIRED_TOOLS
from deploykit.exceptions import ConfigurationError
from deploykit.models.cache import DeploymentCache
from deploykit.models.deployment import NetworkMode
from deploykit.network import NetworkClassifier


class DoctorCommand(BaseCommand):
    """System health check and diagnostics."""

    def __init__(
        self,
        verbose: bool = False,
        environ: Optional[Mapping[str, str]] = None,
        which=shutil.which,
    ):
        super().__init__(verbose=verbose)
        self.environ = environ
        self.which = which
        self._env = {}
        self.table = Table(
            title="System Health Report", title_justify="left", padding=(0, 1)
        )
        self.table.add_column("Check", style="cyan", no_wrap=True)
        self.table.add_column("Status")
        self.table.add_column("Details", style="dim")

    def check_tools(self) -> int:
        """Check required tools installation. Returns the number missing."""
        self.console.print("\n[cyan]━━━ Checking Tools ━━━[/cyan]")

        missing = 0
        for tool, hint in REQUIRED_TOOLS.items():
            path = self.which(tool)
            if path:
                self.table.add_row(f"✅ {tool}", "[green]Installed[/green]", path)
            else:
                missing += 1
                self.table.add_row(f"❌ {tool}", "[red]Missing[/red]", hint)
        return missing

    def check_project(self) -> Optional[DeploySettings]:
        """Check project root and configuration."""
        self.console.print("[cyan]━━━ Checking Project ━━━[/cyan]")

        try:
            root = find_project_root()
            env = load_environment(root, self.environ)
            settings = DeploySettings.load(root, env, verbose=self.verbose)
        except ConfigurationError as e:
            self.table.add_row("❌ Project", "[red]Invalid[/red]", e.message)
            return None

        self._project_root = root
        self._env = env
        self.table.add_row("✅ Project", "[green]Found[/green]", str(root))
        return settings

    def check_cache(self, settings: DeploySettings) -> None:
        self.console.print("[cyan]━━━ Checking Deployment Cache ━━━[/cyan]")

        cache = DeploymentCache(settings.cache_root)
        prefix = settings.provider_prefix
        if not cache.exists:
            self.table.add_row("⏳ Cache", "[yellow]None[/yellow]", "Only needed on restricted networks")
        elif cache.is_complete(prefix):
            self.table.add_row("✅ Cache", "[green]Complete[/green]", cache.manifest.aws_provider)
        elif cache.is_usable(prefix):
            self.table.add_row("⏳ Cache", "[yellow]No node_modules[/yellow]", cache.manifest.aws_provider)
        else:
            self.table.add_row("❌ Cache", "[red]Unusable[/red]", f"No {prefix}* provider plugin")

    def check_network(self, settings: DeploySettings) -> None:
        self.console.print("[cyan]━━━ Checking Network ━━━[/cyan]")

        logger = self.init_logger(self._env)
        classification = NetworkClassifier(settings, logger, self._env).classify()
        status = {
            NetworkMode.EXTERNAL: "[green]External[/green]",
            NetworkMode.CN_PROXY: "[yellow]Corporate (proxy)[/yellow]",
            NetworkMode.CN_AIRGAP: "[red]Corporate (air-gapped)[/red]",
        }[classification.mode]
        self.table.add_row("🌐 Network", status, classification.reason)

    def execute(self) -> None:
        """Execute doctor command."""
        self.show_header(
            title="System Diagnostics",
            subtitle="Checking tools, project, deployment cache and network",
        )

        missing = self.check_tools()
        settings = self.check_project()
        if settings is not None:
            self.check_cache(settings)
            self.check_network(settings)

        self.console.print("\n")
        self.console.print(self.table)

        self.console.print("\n[bold cyan]━━━ Summary ━━━[/bold cyan]")
        if missing or settings is None:
            self.print_warning("Some checks failed. Review results above.")
        else:
            self.print_success("Diagnostics complete! Review results above.")


@click.command()
def doctor():
    """
    Health check & diagnostics

    Checks:
    - Required tools installation
    - Project root and configuration
    - Deployment cache readiness
    - Network mode
    """
    cmd = DoctorCommand(verbose=False)
    cmd.run()
