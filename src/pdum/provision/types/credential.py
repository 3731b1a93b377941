"""Credential artifacts produced by a provisioning run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .role import RoleBinding


@dataclass(frozen=True)
class APIKey:
    """An API key string, plus the private file it was written to (if any)."""

    value: str
    file_path: Optional[Path] = None

    def masked(self) -> str:
        if len(self.value) <= 10:
            return "*" * len(self.value)
        return f"{self.value[:6]}...{self.value[-4:]}"


@dataclass(frozen=True)
class ServiceAccountKey:
    """A service-account JSON key file on disk."""

    file_path: Path
    service_account_email: str


Credential = Union[APIKey, ServiceAccountKey]


class CredentialKind(str, Enum):
    API_KEY = "api_key"
    SERVICE_ACCOUNT_KEY = "service_account_key"


class CredentialStatus(str, Enum):
    """Outcome of one credential branch.

    ``CALL_FAILED`` means the remote call itself failed. ``UNPARSABLE`` means the call
    succeeded but the response carried no usable secret. ``WRITE_FAILED`` means the
    secret was minted but could not be stored locally.
    """

    SUCCEEDED = "succeeded"
    CALL_FAILED = "call_failed"
    UNPARSABLE = "unparsable"
    WRITE_FAILED = "write_failed"


@dataclass
class CredentialResult:
    kind: CredentialKind
    status: CredentialStatus
    credential: Optional[Credential] = None
    error: Optional[str] = None
    role_bindings: list[RoleBinding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is CredentialStatus.SUCCEEDED

    @property
    def artifact(self) -> Optional[Path]:
        """Path of the file this branch produced, if it produced one."""
        if self.credential is None:
            return None
        return self.credential.file_path

    @property
    def failed_bindings(self) -> list[RoleBinding]:
        return [b for b in self.role_bindings if not b.bound]


__all__ = [
    "APIKey",
    "Credential",
    "CredentialKind",
    "CredentialResult",
    "CredentialStatus",
    "ServiceAccountKey",
]
