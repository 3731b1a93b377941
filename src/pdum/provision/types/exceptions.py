"""Custom exceptions for pdum.provision."""

from __future__ import annotations

from typing import Optional, Sequence


class ControlPlaneError(Exception):
    """Raised when a remote control-plane call fails."""


class GCloudError(ControlPlaneError):
    """Exception raised for gcloud command errors."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr


class BillingQuotaExceeded(ControlPlaneError):
    """Raised when a billing account refuses a link because its project quota is used up."""


class OperatorAbort(Exception):
    """The operator interrupted the run (Ctrl-C or a closed output pipe).

    This is not a failure of the remote call. Callers treat it as a clean early exit
    and never roll anything back because of it.
    """


class InvalidTransition(ValueError):
    """Raised when a project record is asked to move backward through its states."""


class ConfigError(ValueError):
    """Raised when a provisioning configuration is malformed."""


__all__ = [
    "BillingQuotaExceeded",
    "ConfigError",
    "ControlPlaneError",
    "GCloudError",
    "InvalidTransition",
    "OperatorAbort",
]
