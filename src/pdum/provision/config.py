"""Provisioning configuration.

A ``ProvisionConfig`` is built once (defaults, optionally a YAML file, then CLI
overrides) and handed to the ``Provisioner``. Components never read environment
variables themselves.

Example YAML::

    project_prefix: fusion-mod
    billing_account: 0X0X0X-0X0X0X-0X0X0X
    max_attempts: 5
    services:
      - generativelanguage.googleapis.com
      - apikeys.googleapis.com
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from pdum.provision.retry import RetryPolicy
from pdum.provision.types.constants import DEFAULT_ROLES, DEFAULT_SERVICES, SERVICE_ACCOUNT_DOMAIN
from pdum.provision.types.exceptions import ConfigError

_PATH_FIELDS = {"key_dir", "archive_root"}
_TUPLE_FIELDS = {"services", "roles"}


@dataclass(frozen=True)
class ProvisionConfig:
    """Everything a provisioning run needs to know up front.

    ``billing_account`` of ``None`` means "use the first open billing account".
    """

    project_prefix: str = "fusion-mod"
    billing_account: Optional[str] = None
    services: tuple[str, ...] = DEFAULT_SERVICES
    roles: tuple[str, ...] = DEFAULT_ROLES

    service_account_name: str = "vertex-admin"
    service_account_display_name: str = "Vertex AI Service Account"
    service_account_domain: str = SERVICE_ACCOUNT_DOMAIN
    api_key_display_name: str = "Gemini API Key"
    api_key_target_service: str = "generativelanguage.googleapis.com"

    key_dir: Path = field(default_factory=lambda: Path("keys"))
    archive_root: Path = field(default_factory=Path)
    archive_label: str = "key json"

    max_attempts: int = 3
    retry_step_seconds: float = 5.0
    retry_jitter_seconds: float = 2.0
    link_settle_seconds: float = 3.0

    parallel_credentials: bool = True
    recover_on_any_link_error: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        if self.retry_step_seconds < 0 or self.retry_jitter_seconds < 0 or self.link_settle_seconds < 0:
            raise ConfigError("retry and settle delays must not be negative")
        if not self.service_account_name:
            raise ConfigError("service_account_name must not be empty")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            step_seconds=self.retry_step_seconds,
            jitter_seconds=self.retry_jitter_seconds,
        )

    def service_account_email(self, project_id: str) -> str:
        return f"{self.service_account_name}@{project_id}.{self.service_account_domain}"

    def with_overrides(self, **values: Any) -> "ProvisionConfig":
        """Return a copy with every non-None value applied."""
        return replace(self, **_coerce({k: v for k, v in values.items() if v is not None}))

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ProvisionConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**_coerce(data))

    @classmethod
    def from_yaml(cls, path: Path) -> "ProvisionConfig":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls.from_mapping(data)


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    coerced = dict(values)
    for key, value in values.items():
        if key in _PATH_FIELDS:
            coerced[key] = Path(value)
        elif key in _TUPLE_FIELDS:
            if isinstance(value, str) or not hasattr(value, "__iter__"):
                raise ConfigError(f"{key} must be a list")
            coerced[key] = tuple(str(v) for v in value)
    return coerced


__all__ = ["ProvisionConfig"]
