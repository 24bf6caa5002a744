"""deploykit - Deployment cache commands"""

from typing import Mapping, Optional

import rich_click as click
from rich.table import Table

from deploykit.base import BaseCommand
from deploykit.cache import CacheExporter
from deploykit.config import DeploySettings, load_environment
from deploykit.models.cache import DeploymentCache
from deploykit.prompts import detect_input_source
from deploykit.runner import CommandRunner


class CacheCreateCommand(BaseCommand):
    """Export the deployment cache for restricted networks."""

    def __init__(
        self,
        include_node_modules: bool = False,
        force: bool = False,
        verbose: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(verbose=verbose)
        self.include_node_modules = include_node_modules
        self.force = force
        self.environ = environ

    def execute(self) -> None:
        env = load_environment(self.project_root, self.environ)
        logger = self.init_logger(env)
        settings = DeploySettings.load(self.project_root, env, verbose=self.verbose)

        self.show_header(
            title="Create Deployment Cache",
            subtitle=f"Target: {settings.cache_root}",
            details={"node_modules": "included" if self.include_node_modules else "not included"},
        )

        exporter = CacheExporter(
            settings,
            logger,
            CommandRunner(logger, self.console),
            detect_input_source(logger, False, self.console),
            env,
        )
        cache_root = exporter.create(
            include_node_modules=self.include_node_modules, force=self.force
        )
        if cache_root is None:
            self.print_dim("Existing cache kept")
            return

        self.console.print()
        self.print_success(f"Cache created at {cache_root}")
        self.console.print("\n[bold]Next steps:[/bold]")
        self.console.print("  1. Commit the cache, or transfer it as a tarball:")
        self.console.print(
            f"     [cyan]tar -czf deployment-cache.tar.gz {settings.cache_dir}[/cyan]"
        )
        self.console.print("  2. On the restricted machine, run [cyan]deploykit-setup[/cyan]\n")


class CacheStatusCommand(BaseCommand):
    """Show the deployment cache manifest and readiness."""

    def __init__(
        self,
        verbose: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(verbose=verbose)
        self.environ = environ

    def execute(self) -> None:
        env = load_environment(self.project_root, self.environ)
        settings = DeploySettings.load(self.project_root, env, verbose=self.verbose)
        cache = DeploymentCache(settings.cache_root)

        self.show_header(title="Deployment Cache", subtitle=str(cache.root))

        if not cache.exists:
            self.print_warning(f"No deployment cache at {cache.root}")
            self.print_dim("Create one with: deploykit cache create --include-node-modules")
            return

        manifest = cache.manifest
        if manifest is None:
            self.print_error("manifest.json is missing or unreadable")
            return

        table = Table(title="Cache Manifest", title_justify="left", padding=(0, 1))
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Value")
        table.add_row("Created", manifest.created or "unknown")
        table.add_row("Created by", f"{manifest.created_by}@{manifest.hostname}")
        table.add_row("Node / npm", f"{manifest.node_version} / {manifest.npm_version}")
        table.add_row("AWS provider", manifest.aws_provider or "[red]none[/red]")
        table.add_row("Pulumi plugins", str(len(manifest.pulumi_plugins)))
        table.add_row("node_modules", "yes" if manifest.includes_node_modules else "no")
        self.console.print(table)
        self.console.print()

        prefix = settings.provider_prefix
        if cache.is_complete(prefix):
            self.print_success("Cache is usable and complete (air-gapped deploys supported)")
        elif cache.is_usable(prefix):
            self.print_warning("Cache is usable but does not include node_modules")
        else:
            self.print_error(f"Cache is not usable: {prefix}* provider plugin missing")


@click.group()
def cache():
    """
    Deployment cache for restricted networks

    \b
    Examples:
      deploykit cache create --include-node-modules
      deploykit cache status
    """
    pass


@cache.command(name="create")
@click.option(
    "--include-node-modules",
    is_flag=True,
    help="Also cache node_modules (required for air-gapped deploys)",
)
@click.option("--force", is_flag=True, help="Overwrite an existing cache without asking")
@click.option("-v", "--verbose", is_flag=True, help="Show all log lines")
def cache_create(include_node_modules, force, verbose):
    """Export Pulumi plugins and SST binaries after a successful deploy"""
    cmd = CacheCreateCommand(
        include_node_modules=include_node_modules, force=force, verbose=verbose
    )
    cmd.run()


@cache.command(name="status")
def cache_status():
    """Show the cache manifest and whether it is usable"""
    cmd = CacheStatusCommand()
    cmd.run()
