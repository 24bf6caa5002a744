"""
Deployment State Models

Dataclass models for the orchestrator state threaded through each phase.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .credentials import CredentialState
from .environment import EnvironmentOverrides


class NetworkMode(Enum):
    """Reachability mode of the current execution environment."""

    EXTERNAL = "external"
    CN_PROXY = "cn_proxy"
    CN_AIRGAP = "cn_airgap"

    @property
    def is_restricted(self) -> bool:
        return self != NetworkMode.EXTERNAL


class DeployPhase(Enum):
    """Phases of the orchestrator state machine."""

    START = "start"
    CHECK_PREREQUISITES = "check_prerequisites"
    CLASSIFY_NETWORK = "classify_network"
    PREPARE_CACHE = "prepare_cache"
    AUTHENTICATE = "authenticate"
    INSTALL_DEPENDENCIES = "install_dependencies"
    SELECT_TARGET_STAGE = "select_target_stage"
    UNLOCK_LOOP = "unlock_loop"
    DEPLOY = "deploy"
    REPORT = "report"
    ABORT = "abort"


@dataclass
class NetworkClassification:
    """Result of network classification, applied once at the call boundary."""

    mode: NetworkMode
    overrides: EnvironmentOverrides = field(default_factory=EnvironmentOverrides)
    npm_config_commands: List[List[str]] = field(default_factory=list)
    telemetry_disabled: bool = False
    probe_status: Optional[int] = None
    reason: str = ""


@dataclass
class DeploymentContext:
    """State of one orchestrator run."""

    project_root: Path
    base_env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    overrides: EnvironmentOverrides = field(default_factory=EnvironmentOverrides)
    phase: DeployPhase = DeployPhase.START
    network_mode: Optional[NetworkMode] = None
    credentials: Optional[CredentialState] = None
    stage: Optional[str] = None
    cache_in_use: bool = False

    @property
    def env(self) -> Dict[str, str]:
        """Effective environment for subprocesses."""
        return self.overrides.apply(self.base_env)

    def getenv(self, name: str) -> Optional[str]:
        return self.overrides.get(name, self.base_env)

    def set_network_mode(self, mode: NetworkMode) -> None:
        """Network mode is fixed once classified."""
        if self.network_mode is not None and self.network_mode != mode:
            raise ValueError(
                f"Network mode already set to {self.network_mode.value}"
            )
        self.network_mode = mode
