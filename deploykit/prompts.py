"""
Input Sources

Time-bounded user prompts. The orchestrator is handed one InputSource and
never checks an interactive flag itself.
"""

import os
import select
import sys
import time
from abc import ABC, abstractmethod
from typing import List, Optional, TextIO

from rich.console import Console

from deploykit.constants import PROMPT_TIMEOUT, SECRET_PROMPT_TIMEOUT
from deploykit.exceptions import CredentialError
from deploykit.logger import ResultLog


class InputSource(ABC):
    """Capability for answering prompts."""

    interactive = False

    def __init__(self, logger: ResultLog, console: Optional[Console] = None):
        self.logger = logger
        self.console = console or logger.console

    @abstractmethod
    def ask(self, prompt: str, default: str = "", timeout: int = PROMPT_TIMEOUT) -> str:
        """Ask for a line of text; blank input or timeout yields the default."""

    @abstractmethod
    def ask_secret(self, prompt: str, timeout: int = SECRET_PROMPT_TIMEOUT) -> str:
        """Ask for a secret without echo."""

    def confirm(self, question: str, default: bool = False, timeout: int = 30) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        answer = self.ask(f"{question} {hint}: ", "y" if default else "n", timeout)
        return answer.strip().lower() in ("y", "yes")

    def choose(
        self,
        title: str,
        options: List[str],
        default: int = 1,
        timeout: int = PROMPT_TIMEOUT,
    ) -> int:
        """
        Present a numbered menu and return the 1-based selection.

        An answer outside the menu returns 0 so callers can treat it as invalid.
        """
        if self.interactive:
            self.console.print()
            self.console.print(title)
            self.console.print()
            for index, option in enumerate(options, start=1):
                self.console.print(f"  [cyan]{index})[/cyan] {option}")
            self.console.print()
        answer = self.ask(f"Select option [1-{len(options)}]: ", str(default), timeout)
        try:
            selection = int(answer.strip())
        except ValueError:
            return 0
        return selection if 1 <= selection <= len(options) else 0


class NonInteractiveInput(InputSource):
    """Substitutes defaults immediately; never blocks."""

    def ask(self, prompt: str, default: str = "", timeout: int = PROMPT_TIMEOUT) -> str:
        self.logger.info(
            f"Non-interactive mode: using default value '{default}' for prompt: {prompt.strip()}"
        )
        return default

    def ask_secret(self, prompt: str, timeout: int = SECRET_PROMPT_TIMEOUT) -> str:
        self.logger.error("Cannot read secret input in non-interactive mode")
        raise CredentialError(
            "Cannot read secret input in non-interactive mode",
            context="Use --profile with pre-configured credentials instead",
        )


class InteractiveInput(InputSource):
    """Reads from the terminal with a bounded wait per prompt."""

    interactive = True

    def __init__(
        self,
        logger: ResultLog,
        console: Optional[Console] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(logger, console)
        self.stream = stream or sys.stdin
        self._pending = b""

    def _readline(self, timeout: int) -> Optional[str]:
        """Read one line from the raw fd; pasted lines wait in our own buffer."""
        fd = self.stream.fileno()
        deadline = time.monotonic() + timeout
        while b"\n" not in self._pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            ready, _, _ = select.select([fd], [], [], remaining)
            if not ready:
                return None
            chunk = os.read(fd, 1024)
            if not chunk:
                if not self._pending:
                    return None
                line, self._pending = self._pending, b""
                return line.decode("utf-8", errors="replace").rstrip("\r")
            self._pending += chunk

        line, self._pending = self._pending.split(b"\n", 1)
        return line.decode("utf-8", errors="replace").rstrip("\r")

    def ask(self, prompt: str, default: str = "", timeout: int = PROMPT_TIMEOUT) -> str:
        self.console.print(prompt, end="", markup=False, highlight=False)
        value = self._readline(timeout)

        if value is None:
            self.console.print()
            self.logger.warn(f"Input timeout after {timeout}s, using default: {default}")
            return default

        value = value.strip()
        if not value:
            value = default
        self.logger.debug(f"User input for '{prompt.strip()}': {value}")
        return value

    def ask_secret(self, prompt: str, timeout: int = SECRET_PROMPT_TIMEOUT) -> str:
        self.console.print(prompt, end="", markup=False, highlight=False)
        with _echo_disabled(self.stream):
            value = self._readline(timeout)
        self.console.print()

        if value is None:
            self.logger.error("Timeout waiting for secret input")
            raise CredentialError(f"Timeout waiting for secret input after {timeout}s")

        self.logger.debug(f"Secret input received for: {prompt.strip()}")
        return value


class _echo_disabled:
    """Turn terminal echo off for the duration of a read (POSIX terminals only)."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self.saved = None

    def __enter__(self):
        if not self.stream.isatty():
            return self
        import termios

        fd = self.stream.fileno()
        self.saved = termios.tcgetattr(fd)
        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~termios.ECHO
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
        return self

    def __exit__(self, *_exc):
        if self.saved is not None:
            import termios

            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self.saved)
        return False


def detect_input_source(
    logger: ResultLog, non_interactive: bool, console: Optional[Console] = None
) -> InputSource:
    """Pick the input strategy from the flag and whether stdin is a terminal."""
    if non_interactive:
        logger.info("Non-interactive mode set via --non-interactive flag")
        return NonInteractiveInput(logger, console)
    if sys.stdin is not None and sys.stdin.isatty():
        logger.info("Running in interactive mode (TTY detected)")
        return InteractiveInput(logger, console)
    logger.info("Running in non-interactive mode (no TTY)")
    return NonInteractiveInput(logger, console)
