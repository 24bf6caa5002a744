"""
Base Command Class

Abstract base for all deploykit CLI commands.
Provides common functionality and structure.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from rich.console import Console

from deploykit.config import find_project_root
from deploykit.exceptions import DeployKitError
from deploykit.logger import ResultLog, resolve_log_path
from deploykit.ui_components import show_header


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Logger initialization
    - Header display
    - Error handling with exit code mapping
    """

    def __init__(
        self,
        verbose: bool = False,
        console: Optional[Console] = None,
        project_root: Optional[Path] = None,
    ):
        self.verbose = verbose
        self.console = console or Console()
        self._project_root = project_root
        self.logger: Optional[ResultLog] = None

    @property
    def project_root(self) -> Path:
        """Resolved lazily so a missing package.json surfaces through run()."""
        if self._project_root is None:
            self._project_root = find_project_root()
        return self._project_root

    def init_logger(self, env: Mapping[str, str]) -> ResultLog:
        """
        Open the run log for this command.

        Args:
            env: Effective environment (SETUP_LOG_FILE is honored)
        """
        log_path = resolve_log_path(self.project_root, env)
        self.logger = ResultLog(log_path, verbose=self.verbose, console=self.console)
        return self.logger

    def show_header(
        self,
        title: str,
        subtitle: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Show command header (skip in verbose mode)."""
        if not self.verbose:
            show_header(
                title=title,
                subtitle=subtitle,
                stage=stage,
                details=details,
                console=self.console,
            )

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]✓ {message}[/green]")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]✗ {message}[/red]")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def print_dim(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def _print_log_location(self) -> None:
        if self.logger:
            self.console.print(f"[dim]Logs saved to:[/dim] {self.logger.log_path}\n")

    @abstractmethod
    def execute(self) -> None:
        """
        Execute command logic.

        Must be implemented by subclasses.
        """
        pass

    def run(self) -> None:
        """
        Run command with error handling.

        DeployKitError and unexpected errors exit 1, interrupts exit 130.
        The run log is closed on every path.
        """
        try:
            self._run()
        finally:
            if self.logger:
                self.logger.close()

    def _run(self) -> None:
        try:
            self.execute()
        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            if self.logger:
                self.logger.error("Interrupted by user")
                self.logger.has_errors = True
            self._print_log_location()
            raise SystemExit(130)
        except SystemExit:
            raise
        except DeployKitError as e:
            if self.logger:
                self.logger.log_error(e.message, context=e.context)
            else:
                self.console.print(f"\n[bold red]✗ {e.message}[/bold red]")
                if e.context:
                    self.print_dim(f"Context: {e.context}")
            self.console.print()
            self._print_log_location()
            raise SystemExit(1)
        except PermissionError as e:
            self.console.print(f"\n[bold red]✗ Permission denied:[/bold red] {e}\n")
            self.console.print("[dim]Try running with appropriate permissions[/dim]\n")
            if self.logger:
                self.logger.log_error(f"Permission error: {e}")
            self._print_log_location()
            raise SystemExit(1)
        except Exception as e:
            error_type = type(e).__name__
            self.console.print(f"\n[bold red]✗ {error_type}:[/bold red] {e}\n")
            if self.logger:
                self.logger.log_error(f"{error_type}: {e}")
            self._print_log_location()
            raise SystemExit(1)
