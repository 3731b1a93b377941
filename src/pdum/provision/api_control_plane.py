"""Control plane backed by the Google Cloud REST APIs.

Uses Application Default Credentials unless credentials are passed explicitly. Calls
that return long-running operations are polled until the operation reports ``done``.
"""

from __future__ import annotations

import base64
import json
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import google.auth
import httplib2
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from pdum.provision import _clients
from pdum.provision.control_plane import ControlPlane, is_billing_quota_error
from pdum.provision.log import ConsoleLogger
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import BillingQuotaExceeded, ControlPlaneError

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# Failures below the HTTP layer: DNS, timeouts, refused connections, token refresh.
_TRANSPORT_ERRORS = (GoogleAuthError, httplib2.HttpLib2Error, OSError)


def _http_error_text(error: HttpError) -> str:
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return f"{error} {content or ''}"


def _status(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


@contextmanager
def _remote(action: str) -> Iterator[None]:
    """Translate HTTP and transport errors into ``ControlPlaneError``.

    ``BrokenPipeError`` is left alone; it means the operator closed the output pipe.
    """
    try:
        yield
    except BrokenPipeError:
        raise
    except HttpError as e:
        raise ControlPlaneError(f"{action} failed: {e}") from e
    except _TRANSPORT_ERRORS as e:
        raise ControlPlaneError(f"{action} failed: {type(e).__name__}: {e}") from e


class ApiControlPlane(ControlPlane):
    """Control plane using Cloud Resource Manager, Billing, Service Usage, IAM and API Keys."""

    def __init__(
        self,
        *,
        credentials: Optional[Credentials] = None,
        logger: Optional[ConsoleLogger] = None,
        operation_timeout: float = 300.0,
        polling_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._credentials = credentials
        self._services: dict[str, object] = {}
        self.logger = logger or ConsoleLogger()
        self.operation_timeout = operation_timeout
        self.polling_interval = polling_interval
        self._sleep = sleep

    def _get_credentials(self) -> Credentials:
        """Get credentials for API calls (explicit > ADC)."""
        if self._credentials is None:
            self._credentials, _ = google.auth.default(scopes=_SCOPES)
        return self._credentials

    def _client(self, name: str):
        if name not in self._services:
            with _remote(f"Connecting to the {name} API"):
                self._services[name] = _clients.build(name, self._get_credentials())
        return self._services[name]

    def _wait(self, operations, operation: dict, action: str) -> dict:
        """Poll ``operations.get`` until ``operation`` is done."""
        start = time.monotonic()
        while not operation.get("done", False):
            if time.monotonic() - start > self.operation_timeout:
                raise ControlPlaneError(
                    f"{action} timed out after {self.operation_timeout} seconds. "
                    f"Operation name: {operation.get('name')}"
                )
            self._sleep(self.polling_interval)
            with _remote(f"{action} (polling)"):
                operation = operations.get(name=operation["name"]).execute()

        if "error" in operation:
            error = operation["error"]
            raise ControlPlaneError(
                f"{action} failed with error code {error.get('code', 'Unknown')}: "
                f"{error.get('message', 'Unknown error')}"
            )
        return operation

    # Billing accounts

    def list_open_billing_accounts(self) -> list[BillingAccount]:
        billing = self._client("cloud_billing")
        accounts: list[BillingAccount] = []
        with _remote("Listing billing accounts"):
            request = billing.billingAccounts().list(filter="open=true")
            while request is not None:
                response = request.execute()
                for account in response.get("billingAccounts", []):
                    if account.get("open", False):
                        accounts.append(BillingAccount.from_api(account))
                request = billing.billingAccounts().list_next(previous_request=request, previous_response=response)
        return accounts

    def list_linked_projects(self, account_id: str) -> list[str]:
        billing = self._client("cloud_billing")
        linked: list[str] = []
        with _remote(f"Listing projects on billing account {account_id}"):
            projects = billing.billingAccounts().projects()
            request = projects.list(name=BillingAccount(account_id).resource_name)
            while request is not None:
                response = request.execute()
                for info in response.get("projectBillingInfo", []):
                    if info.get("billingEnabled") and info.get("projectId"):
                        linked.append(info["projectId"])
                request = projects.list_next(previous_request=request, previous_response=response)
        return linked

    def _update_billing(self, project_id: str, account_name: str) -> dict:
        billing = self._client("cloud_billing")
        body = {"billingAccountName": account_name}
        return billing.projects().updateBillingInfo(name=f"projects/{project_id}", body=body).execute()

    def link_billing(self, project_id: str, account_id: str) -> None:
        try:
            self._update_billing(project_id, BillingAccount(account_id).resource_name)
        except HttpError as e:
            text = _http_error_text(e)
            if is_billing_quota_error(text):
                raise BillingQuotaExceeded(f"Linking {project_id} to {account_id} refused: {e}") from e
            raise ControlPlaneError(f"Linking {project_id} to {account_id} failed: {e}") from e
        except BrokenPipeError:
            raise
        except _TRANSPORT_ERRORS as e:
            raise ControlPlaneError(f"Linking {project_id} to {account_id} failed: {type(e).__name__}: {e}") from e

    def unlink_billing(self, project_id: str) -> None:
        with _remote(f"Unlinking billing from {project_id}"):
            self._update_billing(project_id, "")

    # Projects

    def create_project(self, project_id: str) -> None:
        crm = self._client("crm_v3")
        with _remote(f"Creating project {project_id}"):
            operation = crm.projects().create(body={"projectId": project_id, "displayName": project_id}).execute()
        self._wait(crm.operations(), operation, f"Creating project {project_id}")

    def delete_project(self, project_id: str) -> None:
        crm = self._client("crm_v3")
        with _remote(f"Deleting project {project_id}"):
            operation = crm.projects().delete(name=f"projects/{project_id}").execute()
        self._wait(crm.operations(), operation, f"Deleting project {project_id}")

    def project_exists(self, project_id: str) -> bool:
        crm = self._client("crm_v3")
        try:
            project = crm.projects().get(name=f"projects/{project_id}").execute()
        except HttpError as e:
            if _status(e) in (403, 404):
                return False
            raise ControlPlaneError(f"Describing project {project_id} failed: {e}") from e
        except BrokenPipeError:
            raise
        except _TRANSPORT_ERRORS as e:
            raise ControlPlaneError(f"Describing project {project_id} failed: {type(e).__name__}: {e}") from e
        return project.get("state", "ACTIVE") == "ACTIVE"

    # Services

    def is_service_enabled(self, project_id: str, service: str) -> bool:
        usage = self._client("service_usage")
        with _remote(f"Checking {service} on {project_id}"):
            info = usage.services().get(name=f"projects/{project_id}/services/{service}").execute()
        return info.get("state") == "ENABLED"

    def enable_service(self, project_id: str, service: str) -> None:
        usage = self._client("service_usage")
        with _remote(f"Enabling {service} on {project_id}"):
            operation = usage.services().enable(name=f"projects/{project_id}/services/{service}", body={}).execute()
        self._wait(usage.operations(), operation, f"Enabling {service} on {project_id}")

    # IAM

    def service_account_exists(self, project_id: str, email: str) -> bool:
        iam = self._client("iam_v1")
        try:
            iam.projects().serviceAccounts().get(name=f"projects/{project_id}/serviceAccounts/{email}").execute()
        except HttpError as e:
            if _status(e) == 404:
                return False
            raise ControlPlaneError(f"Describing service account {email} failed: {e}") from e
        except BrokenPipeError:
            raise
        except _TRANSPORT_ERRORS as e:
            raise ControlPlaneError(f"Describing service account {email} failed: {type(e).__name__}: {e}") from e
        return True

    def create_service_account(self, project_id: str, name: str, display_name: str) -> None:
        iam = self._client("iam_v1")
        body = {"accountId": name, "serviceAccount": {"displayName": display_name}}
        try:
            iam.projects().serviceAccounts().create(name=f"projects/{project_id}", body=body).execute()
        except HttpError as e:
            if _status(e) == 409:
                return
            raise ControlPlaneError(f"Creating service account {name} failed: {e}") from e
        except BrokenPipeError:
            raise
        except _TRANSPORT_ERRORS as e:
            raise ControlPlaneError(f"Creating service account {name} failed: {type(e).__name__}: {e}") from e

    def bind_role(self, project_id: str, email: str, role: str) -> None:
        member = f"serviceAccount:{email}"
        crm = self._client("crm_v3")
        resource = f"projects/{project_id}"

        with _remote(f"Granting {role} to {email}"):
            policy = (
                crm.projects()
                .getIamPolicy(resource=resource, body={"options": {"requestedPolicyVersion": 3}})
                .execute()
            )

            if policy.get("version", 0) < 3:
                policy["version"] = 3

            bindings = policy.setdefault("bindings", [])
            binding = next((b for b in bindings if b.get("role") == role and "condition" not in b), None)

            if binding is None:
                bindings.append({"role": role, "members": [member]})
            else:
                members = binding.setdefault("members", [])
                if member in members:
                    return
                members.append(member)

            crm.projects().setIamPolicy(resource=resource, body={"policy": policy}).execute()

    # Keys

    def create_service_account_key(self, project_id: str, email: str) -> bytes:
        iam = self._client("iam_v1")
        body = {"privateKeyType": "TYPE_GOOGLE_CREDENTIALS_FILE", "keyAlgorithm": "KEY_ALG_RSA_2048"}
        with _remote(f"Creating key for {email}"):
            key = (
                iam.projects()
                .serviceAccounts()
                .keys()
                .create(name=f"projects/{project_id}/serviceAccounts/{email}", body=body)
                .execute()
            )
        data = key.get("privateKeyData")
        if not data:
            raise ControlPlaneError(f"Key for {email} was created without private key data")
        return base64.b64decode(data)

    def create_api_key(self, project_id: str, display_name: str, target_service: str) -> str:
        keys_api = self._client("api_keys")
        keys = keys_api.projects().locations().keys()
        body = {
            "displayName": display_name,
            "restrictions": {"apiTargets": [{"service": target_service}]},
        }
        with _remote(f"Creating API key on {project_id}"):
            operation = keys.create(parent=f"projects/{project_id}/locations/global", body=body).execute()
        operation = self._wait(keys_api.operations(), operation, f"Creating API key on {project_id}")

        response = operation.setdefault("response", {})
        if not response.get("keyString") and response.get("name"):
            with _remote(f"Reading API key string on {project_id}"):
                response.update(keys.getKeyString(name=response["name"]).execute())
        return json.dumps(operation)


__all__ = ["ApiControlPlane"]
