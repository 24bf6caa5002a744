"""
Logging system for deploykit
Provides real-time, elapsed-stamped logging to files with clean console output
"""

import re
import time
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional, TextIO

from rich.console import Console

from deploykit.constants import LOG_DATETIME_FORMAT, LOG_DIR, LOG_FILE_FORMAT

console = Console()

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def resolve_log_path(project_root: Path, env: Mapping[str, str]) -> Path:
    """Log file path: SETUP_LOG_FILE override, else logs/setup-<timestamp>.log."""
    override = env.get("SETUP_LOG_FILE")
    if override:
        path = Path(override).expanduser()
        return path if path.is_absolute() else project_root / path
    return project_root / LOG_DIR / datetime.now().strftime(LOG_FILE_FORMAT)


class ResultLog:
    """
    Structured run log shared by every component
    - Appends every line to the log file, always
    - Mirrors WARN/ERROR to the console, everything else only when verbose
    - Prints clean step/success/warning markers for the user
    """

    def __init__(
        self,
        log_path: Path,
        verbose: bool = False,
        console: Optional[Console] = None,
    ):
        """
        Initialize logger

        Args:
            log_path: File to append to (parent directory is created)
            verbose: If True, mirror every log line to the console
            console: Rich console for user-facing output
        """
        self.log_path = log_path
        self.verbose = verbose
        self.console = console or globals()["console"]
        self.started = time.monotonic()
        self.current_step = ""
        self.has_errors = False

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line-buffered so the file is readable while a deploy is running
        self.log_file: Optional[TextIO] = open(self.log_path, "a", buffering=1)

        self._write_log_header()

    def _write_log_header(self):
        """Write log file header"""
        header = f"""
{"=" * 80}
deploykit Setup Log
{"=" * 80}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self.log_file.write(header)
        self.log_file.flush()

    @property
    def elapsed_seconds(self) -> int:
        return int(time.monotonic() - self.started)

    def format_line(self, message: str, level: str) -> str:
        timestamp = datetime.now().strftime(LOG_DATETIME_FORMAT)
        return f"[{timestamp}] [+{self.elapsed_seconds}s] [{level}] {message}"

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (DEBUG, INFO, WARN, ERROR)
        """
        log_line = self.format_line(message, level)

        if self.log_file:
            self.log_file.write(log_line + "\n")
            self.log_file.flush()

        if self.verbose or level in ("WARN", "ERROR"):
            style = {"ERROR": "red", "WARN": "yellow", "DEBUG": "dim"}.get(level)
            self.console.print(log_line, style=style, markup=False, highlight=False)

    def debug(self, message: str):
        self.log(message, "DEBUG")

    def info(self, message: str):
        self.log(message, "INFO")

    def warn(self, message: str):
        self.log(message, "WARN")

    def error(self, message: str):
        self.log(message, "ERROR")

    def log_command(self, command: str):
        """Log a command being executed"""
        self.debug(f"Executing: {command}")

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log command output

        Always written to the log file; the runner decides what reaches the
        console.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr)
        """
        if not output or not self.log_file:
            return

        clean_output = ANSI_ESCAPE.sub("", output)
        for line in clean_output.splitlines() or [clean_output]:
            self.log_file.write(f"  [{stream}] {line}\n")
        self.log_file.flush()

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., remediation or command)
        """
        self.has_errors = True
        # Console rendering below is shorter than the raw line
        if self.verbose:
            self.log(error, "ERROR")
        else:
            self._write_only(error, "ERROR")

        # Write to log with clear markers for grepping
        error_block = f"""
{"!" * 80}
ERROR OCCURRED
{"!" * 80}
{error}
"""
        if context:
            error_block += f"\nContext: {context}\n"

        error_block += f"{'!' * 80}\n\n"

        if self.log_file:
            self.log_file.write(error_block)
            self.log_file.flush()

        self.console.print()
        self.console.print(f"[bold red]✗ {error}[/bold red]")
        if context:
            for line in context.splitlines():
                self.console.print(f"  [color(208)]{line}[/color(208)]")

    def _write_only(self, message: str, level: str):
        if self.log_file:
            self.log_file.write(self.format_line(message, level) + "\n")
            self.log_file.flush()

    def step(self, step_name: str):
        """
        Start a new step

        Args:
            step_name: Name of the step
        """
        if self.current_step and not self.verbose:
            self.console.print()

        self.current_step = step_name
        self.info(f"=== STEP: {step_name} ===")

        if not self.verbose:
            self.console.print(f"[color(214)]▶[/color(214)] [white]{step_name}[/white]")

    def success(self, message: str):
        """Log a success message"""
        self.info(message)

        if not self.verbose:
            self.console.print(f"  [dim]✓ {message}[/dim]")

    def notice(self, message: str):
        """Log an informational message that the user should also see"""
        self.info(message)

        if not self.verbose:
            self.console.print(f"  [cyan]ℹ[/cyan] [dim]{message}[/dim]")

    def warning(self, message: str):
        """Log a warning message"""
        # WARN lines already reach the console through log()
        self.warn(message)

    def close(self):
        """Close log file"""
        if self.log_file:
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Elapsed: {self.elapsed_seconds}s
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
            self.log_file.write(footer)
            self.log_file.close()
            self.log_file = None

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        """Context manager exit"""
        if exc_type is not None and exc_type not in (SystemExit, KeyboardInterrupt):
            self.log_error(
                str(exc_val) if exc_val else "Operation failed",
                context=f"{exc_type.__name__}",
            )
        elif exc_type is SystemExit and exc_val is not None and exc_val.code:
            self.has_errors = True
        self.close()
        return False  # Don't suppress exceptions
