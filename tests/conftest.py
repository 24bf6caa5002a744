import io
import json
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from rich.console import Console

from deploykit.config import DeploySettings
from deploykit.logger import ResultLog
from deploykit.models.results import OperationResult, Outcome
from deploykit.prompts import InputSource, NonInteractiveInput

IDENTITY_JSON = json.dumps(
    {
        "UserId": "AIDAEXAMPLE",
        "Account": "123456789012",
        "Arn": "arn:aws:iam::123456789012:user/deployer",
    }
)

GATING_URL = "https://gate.example.internal/start/"
REGISTRY_URL = "https://registry.example.org/"


@dataclass
class Call:
    argv: List[str]
    env: Dict[str, str]
    timeout: int
    description: str


Handler = Callable[[List[str], Dict[str, str]], Tuple[int, str]]


def default_handler(argv: List[str], env: Dict[str, str]) -> Tuple[int, str]:
    if argv[:3] == ["aws", "sts", "get-caller-identity"]:
        return 0, IDENTITY_JSON
    if argv[1:2] == ["--version"]:
        return 0, "v20.11.0"
    return 0, ""


class FakeRunner:
    """Stands in for CommandRunner; records argv and the effective env."""

    def __init__(self, logger: ResultLog, handler: Optional[Handler] = None):
        self.logger = logger
        self.console = logger.console
        self.handler = handler or default_handler
        self.calls: List[Call] = []

    def run(
        self,
        timeout_seconds,
        description,
        command,
        *,
        env=None,
        cwd=None,
        capture=False,
        echo=True,
        sensitive=(),
    ) -> OperationResult:
        argv = list(command)
        env = dict(env or {})
        self.calls.append(Call(argv, env, timeout_seconds, description))
        exit_code, output = self.handler(argv, env)
        return OperationResult(
            description=description,
            exit_code=exit_code,
            elapsed_seconds=0,
            outcome=Outcome.from_exit_code(exit_code),
            output=output,
            command=" ".join(argv),
        )

    def commands(self, *prefix: str) -> List[Call]:
        return [c for c in self.calls if c.argv[: len(prefix)] == list(prefix)]


class ScriptedInput(InputSource):
    """Interactive input answering from a fixed list."""

    interactive = True

    def __init__(self, logger: ResultLog, answers: List[str]):
        super().__init__(logger)
        self.answers = list(answers)
        self.prompts: List[str] = []

    def ask(self, prompt, default="", timeout=60):
        self.prompts.append(prompt)
        if not self.answers:
            return default
        return self.answers.pop(0) or default

    def ask_secret(self, prompt, timeout=60):
        self.prompts.append(prompt)
        return self.answers.pop(0)


class RecordingNonInteractive(NonInteractiveInput):
    def __init__(self, logger: ResultLog):
        super().__init__(logger)
        self.prompts: List[str] = []

    def ask(self, prompt, default="", timeout=60):
        self.prompts.append(prompt)
        return super().ask(prompt, default, timeout)


def fake_response(status_code: int):
    return SimpleNamespace(status_code=status_code)


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text(json.dumps({"name": "app", "version": "1.2.3"}))
    return root


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def logger(tmp_path, console):
    log = ResultLog(tmp_path / "logs" / "test.log", console=console)
    yield log
    log.close()


@pytest.fixture
def settings(project):
    return DeploySettings(
        project_root=project,
        gating_url=GATING_URL,
        registry_url=REGISTRY_URL,
    )


@pytest.fixture
def runner(logger):
    return FakeRunner(logger)


def log_text(logger: ResultLog) -> str:
    return logger.log_path.read_text()


def install_engine(project_root) -> None:
    """Create the node_modules layout the deploy engine check looks for."""
    modules = project_root / "node_modules"
    (modules / "sst").mkdir(parents=True, exist_ok=True)
    (modules / "sst" / "package.json").write_text("{}")
    (modules / ".bin").mkdir(exist_ok=True)
    (modules / ".bin" / "sst").write_text("")
