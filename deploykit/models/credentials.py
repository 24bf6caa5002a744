"""
Credential Models

Dataclass models for the AWS credential state of a single run.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CredentialSource(Enum):
    """Where the active AWS credentials come from."""

    PROFILE = "profile"
    SSO = "sso"
    STATIC = "static"
    ENV_VARS = "env_vars"


@dataclass
class CallerIdentity:
    """Identity returned by sts get-caller-identity."""

    account_id: str
    principal_arn: str

    @classmethod
    def parse(cls, output: str) -> Optional["CallerIdentity"]:
        """
        Parse get-caller-identity JSON output.

        Returns None when the output has no account identifier, which callers
        treat as "not authenticated".
        """
        start = output.find("{")
        end = output.rfind("}")
        if start == -1 or end == -1:
            return None
        try:
            data = json.loads(output[start : end + 1])
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        account_id = str(data.get("Account") or "").strip()
        if not account_id:
            return None
        return cls(account_id=account_id, principal_arn=str(data.get("Arn") or ""))


@dataclass
class CredentialState:
    """Credential state; only ever verified within the current run."""

    source_kind: CredentialSource
    profile_name: Optional[str] = None
    identity: Optional[CallerIdentity] = None
    is_verified: bool = False

    def mark_verified(self, identity: CallerIdentity) -> None:
        self.identity = identity
        self.is_verified = True

    def mark_unverified(self) -> None:
        self.identity = None
        self.is_verified = False

    def __repr__(self) -> str:
        return (
            f"CredentialState(source={self.source_kind.value}, "
            f"profile={self.profile_name}, verified={self.is_verified})"
        )
