"""
Command Runner

Executes external processes under a bounded timeout, streams their output
live to the console and the run log, and classifies the outcome.
"""

import os
import selectors
import shlex
import signal
import subprocess
import time
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from rich.console import Console

from deploykit.constants import (
    COMMAND_NOT_FOUND_EXIT_CODE,
    OUTPUT_DRAIN_GRACE,
    TIMEOUT_EXIT_CODE,
)
from deploykit.logger import ResultLog
from deploykit.models.results import OperationResult, Outcome

MASK = "********"


def format_command(command: Sequence[str], sensitive: Iterable[str] = ()) -> str:
    """Render argv for the log, masking sensitive values."""
    hidden = {value for value in sensitive if value}
    return " ".join(MASK if arg in hidden else shlex.quote(arg) for arg in command)


class CommandRunner:
    """
    Runs external commands with a deadline.

    Every invocation is logged with its start, elapsed time and final
    classification, success included.
    """

    def __init__(self, logger: ResultLog, console: Optional[Console] = None):
        self.logger = logger
        self.console = console or logger.console

    def run(
        self,
        timeout_seconds: int,
        description: str,
        command: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        capture: bool = False,
        echo: bool = True,
        sensitive: Iterable[str] = (),
    ) -> OperationResult:
        """
        Run a command under a timeout.

        Args:
            timeout_seconds: Wall-clock limit; the process is killed after it
            description: Human-readable name used in the log
            command: argv list
            env: Effective environment (defaults to the current process env)
            cwd: Working directory
            capture: Keep output text on the result
            echo: Mirror output lines to the console as they arrive
            sensitive: Values to mask when logging the command line

        Returns:
            OperationResult (exit code 124 on timeout)
        """
        command_str = format_command(command, sensitive)
        self.logger.info(f"Starting: {description} (timeout: {timeout_seconds}s)")
        self.logger.log_command(command_str)

        started = time.monotonic()
        try:
            exit_code, output = self._execute(
                command, timeout_seconds, env, cwd, echo
            )
        except FileNotFoundError:
            exit_code, output = COMMAND_NOT_FOUND_EXIT_CODE, ""
            self.logger.error(f"Command not found: {command[0]}")

        elapsed = int(time.monotonic() - started)
        outcome = Outcome.from_exit_code(exit_code)

        if outcome == Outcome.SUCCESS:
            self.logger.info(f"Completed: {description} (took {elapsed}s)")
        elif outcome == Outcome.TIMEOUT:
            self.logger.error(
                f"TIMEOUT: {description} exceeded {timeout_seconds}s limit"
            )
        else:
            self.logger.error(
                f"FAILED: {description} (exit code: {exit_code}, took {elapsed}s)"
            )

        return OperationResult(
            description=description,
            exit_code=exit_code,
            elapsed_seconds=elapsed,
            outcome=outcome,
            output=output if capture else "",
            command=command_str,
        )

    def _execute(
        self,
        command: Sequence[str],
        timeout_seconds: int,
        env: Optional[Mapping[str, str]],
        cwd: Optional[Path],
        echo: bool,
    ) -> tuple[int, str]:
        """Stream output until the process exits or the deadline passes."""
        process = subprocess.Popen(
            list(command),
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else dict(os.environ),
            stdin=subprocess.DEVNULL if not echo else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )

        deadline = time.monotonic() + timeout_seconds
        fd = process.stdout.fileno()
        lines: list[str] = []
        pending = b""
        exited_at = None
        timed_out = False

        sel = selectors.DefaultSelector()
        sel.register(fd, selectors.EVENT_READ)
        try:
            while True:
                now = time.monotonic()
                if now >= deadline:
                    timed_out = True
                    break

                # Background children may keep the pipe open after the leader exits
                if process.poll() is not None:
                    if exited_at is None:
                        exited_at = now
                    elif now - exited_at >= OUTPUT_DRAIN_GRACE:
                        break

                if not sel.select(timeout=min(deadline - now, 0.1)):
                    continue
                chunk = os.read(fd, 4096)
                if not chunk:
                    break
                *complete, pending = (pending + chunk).split(b"\n")
                for raw in complete:
                    self._handle_line(_decode(raw), lines, echo)
        finally:
            sel.close()

        if pending:
            self._handle_line(_decode(pending), lines, echo)

        if not timed_out:
            try:
                process.wait(timeout=max(deadline - time.monotonic(), 0))
            except subprocess.TimeoutExpired:
                timed_out = True

        # Grandchildren must not outlive the run
        _kill_group(process)
        process.stdout.close()
        exit_code = process.wait()

        if timed_out:
            return TIMEOUT_EXIT_CODE, "\n".join(lines)
        return exit_code, "\n".join(lines)

    def _handle_line(self, line: str, lines: list[str], echo: bool) -> None:
        lines.append(line)
        self.logger.log_output(line, "stdout")
        if echo:
            self.console.print(line, markup=False, highlight=False)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")


def _kill_group(process: subprocess.Popen) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
