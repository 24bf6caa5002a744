"""Configuration management for deploykit runs"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from deploykit.constants import (
    AWS_PROVIDER_PREFIX,
    CACHE_DIR_NAME,
    CONFIG_FILE,
    DEFAULT_AWS_REGION,
    DEFAULT_GATING_URL,
    DEFAULT_REGISTRY_URL,
    DEFAULT_STAGES,
    DEFAULT_TIMEOUT,
    FORCE_EXTERNAL_ENV,
    PROJECT_MARKER,
)
from deploykit.exceptions import ConfigurationError

TRUTHY = {"1", "true", "yes", "on"}


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUTHY


def find_project_root(start: Optional[Path] = None) -> Path:
    """
    Find the project root: nearest ancestor containing package.json.

    Raises:
        ConfigurationError: If not run from inside a project
    """
    current = (start or Path.cwd()).resolve()
    for candidate in [current, *current.parents]:
        if (candidate / PROJECT_MARKER).is_file():
            return candidate
    raise ConfigurationError(
        f"{PROJECT_MARKER} not found",
        context="Run this command from the project root",
    )


def load_project_config(project_root: Path) -> Dict[str, Any]:
    """Load deploykit.yml (empty dict when absent)."""
    config_path = project_root / CONFIG_FILE
    if not config_path.is_file():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid {CONFIG_FILE}", context=str(e))
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid {CONFIG_FILE}", context="Top level must be a mapping"
        )
    return data


def load_environment(project_root: Path, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Process environment layered over the project's .env file (never exported)."""
    env_file = project_root / ".env"
    values: Dict[str, str] = {}
    if env_file.is_file():
        values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    values.update(os.environ if environ is None else environ)
    return values


def parse_timeout(value: Any) -> int:
    try:
        timeout = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid timeout: {value!r}", context="Timeout must be a positive integer"
        )
    if timeout <= 0:
        raise ConfigurationError(
            f"Invalid timeout: {value!r}", context="Timeout must be a positive integer"
        )
    return timeout


@dataclass
class DeploySettings:
    """Resolved settings for one orchestrator run"""

    project_root: Path
    stage: Optional[str] = None
    profile: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT
    check_only: bool = False
    unlock_only: bool = False
    skip_install: bool = False
    non_interactive: bool = False
    no_telemetry: bool = False
    verbose: bool = False
    force_external: bool = False
    gating_url: str = DEFAULT_GATING_URL
    registry_url: str = DEFAULT_REGISTRY_URL
    no_proxy_hosts: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=lambda: list(DEFAULT_STAGES))
    default_region: str = DEFAULT_AWS_REGION
    cache_dir: str = CACHE_DIR_NAME
    provider_prefix: str = AWS_PROVIDER_PREFIX

    @property
    def cache_root(self) -> Path:
        path = Path(self.cache_dir).expanduser()
        return path if path.is_absolute() else self.project_root / path

    @classmethod
    def load(
        cls,
        project_root: Path,
        env: Mapping[str, str],
        stage: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[int] = None,
        check_only: bool = False,
        unlock_only: bool = False,
        skip_install: bool = False,
        non_interactive: bool = False,
        no_telemetry: bool = False,
        verbose: bool = False,
    ) -> "DeploySettings":
        """
        Resolve settings: CLI flags, then environment (including .env), then
        deploykit.yml, then built-in defaults.
        """
        config = load_project_config(project_root)

        if timeout is None:
            timeout = env.get("SETUP_TIMEOUT") or config.get("default_timeout") or DEFAULT_TIMEOUT

        telemetry_off = (
            no_telemetry
            or is_truthy(env.get("SST_TELEMETRY_DISABLED"))
            or is_truthy(env.get("DO_NOT_TRACK"))
        )

        return cls(
            project_root=project_root,
            stage=stage or env.get("STAGE") or None,
            profile=profile or env.get("AWS_PROFILE") or None,
            timeout=parse_timeout(timeout),
            check_only=check_only,
            unlock_only=unlock_only,
            skip_install=skip_install,
            non_interactive=non_interactive,
            no_telemetry=telemetry_off,
            verbose=verbose,
            force_external=is_truthy(env.get(FORCE_EXTERNAL_ENV))
            or is_truthy(config.get("force_external")),
            gating_url=config.get("gating_url", DEFAULT_GATING_URL),
            registry_url=config.get("registry_url", DEFAULT_REGISTRY_URL),
            no_proxy_hosts=list(config.get("no_proxy_hosts") or []),
            stages=list(config.get("stages") or DEFAULT_STAGES),
            default_region=config.get("default_region", DEFAULT_AWS_REGION),
            cache_dir=config.get("cache_dir", CACHE_DIR_NAME),
            provider_prefix=config.get("provider_prefix", AWS_PROVIDER_PREFIX),
        )

    def describe(self) -> Dict[str, Any]:
        """Settings summary for the run log."""
        return {
            "STAGE": self.stage or "<not set>",
            "PROFILE": self.profile or "<not set>",
            "CHECK_ONLY": self.check_only,
            "UNLOCK_MODE": self.unlock_only,
            "SKIP_INSTALL": self.skip_install,
            "NON_INTERACTIVE": self.non_interactive,
            "VERBOSE": self.verbose,
            "FORCE_NO_TELEMETRY": self.no_telemetry,
            "FORCE_EXTERNAL": self.force_external,
            "DEFAULT_TIMEOUT": f"{self.timeout}s",
        }
