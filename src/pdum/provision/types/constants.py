"""Shared constants for pdum.provision types."""

from __future__ import annotations

DEFAULT_SERVICES: tuple[str, ...] = (
    "generativelanguage.googleapis.com",
    "aiplatform.googleapis.com",
    "iam.googleapis.com",
    "iamcredentials.googleapis.com",
    "cloudresourcemanager.googleapis.com",
    "apikeys.googleapis.com",
)

# aiplatform.admin subsumes aiplatform.user.
DEFAULT_ROLES: tuple[str, ...] = (
    "roles/aiplatform.admin",
    "roles/iam.serviceAccountUser",
    "roles/iam.serviceAccountTokenCreator",
    "roles/aiplatform.user",
)

SERVICE_ACCOUNT_DOMAIN = "iam.gserviceaccount.com"

PROJECT_ID_MAX_LENGTH = 30
PROJECT_ID_SUFFIX_LENGTH = 6

__all__ = [
    "DEFAULT_ROLES",
    "DEFAULT_SERVICES",
    "PROJECT_ID_MAX_LENGTH",
    "PROJECT_ID_SUFFIX_LENGTH",
    "SERVICE_ACCOUNT_DOMAIN",
]
