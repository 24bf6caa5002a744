"""
deploykit Domain Models

Clean dataclass-based models for type-safe data handling.
"""

from .results import (
    Outcome,
    OperationResult,
    LockOutcome,
)
from .environment import EnvironmentOverrides
from .credentials import (
    CredentialSource,
    CallerIdentity,
    CredentialState,
)
from .cache import CacheManifest, DeploymentCache
from .deployment import (
    NetworkMode,
    NetworkClassification,
    DeployPhase,
    DeploymentContext,
)

__all__ = [
    "Outcome",
    "OperationResult",
    "LockOutcome",
    "EnvironmentOverrides",
    "CredentialSource",
    "CallerIdentity",
    "CredentialState",
    "CacheManifest",
    "DeploymentCache",
    "NetworkMode",
    "NetworkClassification",
    "DeployPhase",
    "DeploymentContext",
]
