"""The control-plane capability surface and its gcloud CLI implementation.

``ControlPlane`` is everything the provisioning components need from the remote
cloud: projects, billing links, service enablement, IAM and keys. Implementations
raise ``ControlPlaneError`` (or a subclass) when a call fails and
``BillingQuotaExceeded`` when a billing link is refused for quota reasons, so that
callers can tell the two apart.
"""

from __future__ import annotations

import json
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from pdum.provision.gcloud import run_gcloud
from pdum.provision.log import ConsoleLogger
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import BillingQuotaExceeded, ControlPlaneError, GCloudError

_QUOTA_PATTERN = re.compile(r"billing[ _-]?quota|quota[ _-]?exceeded", re.IGNORECASE)


def is_billing_quota_error(message: str) -> bool:
    """Whether a link failure message reports the account's project-link quota.

    The control plane answers ``FAILED_PRECONDITION`` with a "Cloud billing quota
    exceeded" violation when the account already has its maximum number of projects.
    """
    return bool(_QUOTA_PATTERN.search(message or ""))


class ControlPlane(ABC):
    """Remote operations used by a provisioning run."""

    # Billing accounts
    @abstractmethod
    def list_open_billing_accounts(self) -> list[BillingAccount]: ...

    @abstractmethod
    def list_linked_projects(self, account_id: str) -> list[str]:
        """Return ids of projects currently linked to ``account_id``."""

    @abstractmethod
    def link_billing(self, project_id: str, account_id: str) -> None:
        """Link a project; raise ``BillingQuotaExceeded`` when the account is full."""

    @abstractmethod
    def unlink_billing(self, project_id: str) -> None: ...

    # Projects
    @abstractmethod
    def create_project(self, project_id: str) -> None:
        """Create a project. Fails if the id is taken or malformed."""

    @abstractmethod
    def delete_project(self, project_id: str) -> None: ...

    @abstractmethod
    def project_exists(self, project_id: str) -> bool: ...

    # Services
    @abstractmethod
    def is_service_enabled(self, project_id: str, service: str) -> bool: ...

    @abstractmethod
    def enable_service(self, project_id: str, service: str) -> None:
        """Enable ``service``; enabling an already-enabled service succeeds."""

    # IAM
    @abstractmethod
    def service_account_exists(self, project_id: str, email: str) -> bool: ...

    @abstractmethod
    def create_service_account(self, project_id: str, name: str, display_name: str) -> None: ...

    @abstractmethod
    def bind_role(self, project_id: str, email: str, role: str) -> None: ...

    # Keys
    @abstractmethod
    def create_service_account_key(self, project_id: str, email: str) -> bytes:
        """Mint a key and return the credential file contents (JSON)."""

    @abstractmethod
    def create_api_key(self, project_id: str, display_name: str, target_service: str) -> str:
        """Create an API key and return the raw structured response."""


Runner = Callable[..., Optional[str]]


class GCloudControlPlane(ControlPlane):
    """Control plane backed by the ``gcloud`` CLI."""

    def __init__(self, *, runner: Runner = run_gcloud, logger: Optional[ConsoleLogger] = None):
        self._runner = runner
        self.logger = logger or ConsoleLogger()

    def _run(self, args: list[str], check: bool = True) -> Optional[str]:
        self.logger.debug("gcloud " + " ".join(args))
        return self._runner(args, check=check)

    def _run_json(self, args: list[str]):
        output = self._run(args + ["--format=json"])
        if not output:
            return []
        try:
            return json.loads(output)
        except ValueError as e:
            raise ControlPlaneError(f"Unparsable gcloud output for: gcloud {' '.join(args)}") from e

    def list_open_billing_accounts(self) -> list[BillingAccount]:
        accounts = self._run_json(["billing", "accounts", "list", "--filter=open=true"])
        return [BillingAccount.from_api(a) for a in accounts if a.get("open", True)]

    def list_linked_projects(self, account_id: str) -> list[str]:
        entries = self._run_json(["billing", "projects", "list", f"--billing-account={account_id}"])
        return [
            e["projectId"]
            for e in entries
            if e.get("projectId") and e.get("billingEnabled", True)
        ]

    def link_billing(self, project_id: str, account_id: str) -> None:
        try:
            self._run([
                "billing",
                "projects",
                "link",
                project_id,
                f"--billing-account={account_id}",
                "--quiet",
            ])
        except GCloudError as e:
            if is_billing_quota_error(e.stderr or str(e)):
                raise BillingQuotaExceeded(str(e)) from e
            raise

    def unlink_billing(self, project_id: str) -> None:
        self._run(["billing", "projects", "unlink", project_id, "--quiet"])

    def create_project(self, project_id: str) -> None:
        self._run(["projects", "create", project_id, "--no-activate", "--quiet"])

    def delete_project(self, project_id: str) -> None:
        self._run(["projects", "delete", project_id, "--quiet"])

    def project_exists(self, project_id: str) -> bool:
        result = self._run(
            ["projects", "describe", project_id, "--format=value(projectId)"],
            check=False,
        )
        return bool(result)

    def is_service_enabled(self, project_id: str, service: str) -> bool:
        services = self._run_json([
            "services",
            "list",
            "--enabled",
            f"--project={project_id}",
            f"--filter=config.name={service}",
        ])
        for entry in services:
            name = entry.get("config", {}).get("name") or entry.get("name", "")
            if name == service or name.endswith(f"/services/{service}"):
                return True
        return False

    def enable_service(self, project_id: str, service: str) -> None:
        self._run(["services", "enable", service, f"--project={project_id}", "--quiet"])

    def service_account_exists(self, project_id: str, email: str) -> bool:
        result = self._run(
            [
                "iam",
                "service-accounts",
                "describe",
                email,
                f"--project={project_id}",
                "--format=value(email)",
            ],
            check=False,
        )
        return bool(result)

    def create_service_account(self, project_id: str, name: str, display_name: str) -> None:
        self._run([
            "iam",
            "service-accounts",
            "create",
            name,
            f"--display-name={display_name}",
            f"--project={project_id}",
            "--quiet",
        ])

    def bind_role(self, project_id: str, email: str, role: str) -> None:
        self._run([
            "projects",
            "add-iam-policy-binding",
            project_id,
            f"--member=serviceAccount:{email}",
            f"--role={role}",
            "--condition=None",
            "--format=none",
            "--quiet",
        ])

    def create_service_account_key(self, project_id: str, email: str) -> bytes:
        # gcloud can only write keys to a path, so stage it in a private temp dir.
        with tempfile.TemporaryDirectory(prefix="pdum_provision_") as tmp:
            key_file = Path(tmp) / "key.json"
            self._run([
                "iam",
                "service-accounts",
                "keys",
                "create",
                str(key_file),
                f"--iam-account={email}",
                f"--project={project_id}",
                "--quiet",
            ])
            if not key_file.exists():
                raise ControlPlaneError(f"gcloud reported success but wrote no key for {email}")
            return key_file.read_bytes()

    def create_api_key(self, project_id: str, display_name: str, target_service: str) -> str:
        output = self._run([
            "services",
            "api-keys",
            "create",
            f"--project={project_id}",
            f"--display-name={display_name}",
            f"--api-target=service={target_service}",
            "--format=json",
            "--quiet",
        ])
        return output or ""


__all__ = ["ControlPlane", "GCloudControlPlane", "is_billing_quota_error"]
