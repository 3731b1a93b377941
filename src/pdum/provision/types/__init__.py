"""Public exports for pdum.provision types."""

from __future__ import annotations

from .billing_account import BillingAccount
from .constants import DEFAULT_ROLES, DEFAULT_SERVICES, SERVICE_ACCOUNT_DOMAIN
from .credential import (
    APIKey,
    Credential,
    CredentialKind,
    CredentialResult,
    CredentialStatus,
    ServiceAccountKey,
)
from .exceptions import (
    BillingQuotaExceeded,
    ConfigError,
    ControlPlaneError,
    GCloudError,
    InvalidTransition,
    OperatorAbort,
)
from .project import ProjectRecord, ProjectState, is_valid_project_id, new_project_id
from .role import RoleBinding
from .service import ServiceEnablement

__all__ = [
    "DEFAULT_ROLES",
    "DEFAULT_SERVICES",
    "SERVICE_ACCOUNT_DOMAIN",
    "APIKey",
    "BillingAccount",
    "BillingQuotaExceeded",
    "ConfigError",
    "ControlPlaneError",
    "Credential",
    "CredentialKind",
    "CredentialResult",
    "CredentialStatus",
    "GCloudError",
    "InvalidTransition",
    "OperatorAbort",
    "ProjectRecord",
    "ProjectState",
    "RoleBinding",
    "ServiceAccountKey",
    "ServiceEnablement",
    "is_valid_project_id",
    "new_project_id",
]
