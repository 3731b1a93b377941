"""Shared fixtures: an in-memory control plane and quiet, zero-delay collaborators."""

import io
import json
from typing import Optional

import pytest
from rich.console import Console

from pdum.provision.config import ProvisionConfig
from pdum.provision.control_plane import ControlPlane
from pdum.provision.log import ConsoleLogger
from pdum.provision.retry import RetryExecutor, RetryPolicy
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import BillingQuotaExceeded, ControlPlaneError

ACCOUNT_ID = "0A0A0A-1B1B1B-2C2C2C"
API_KEY_VALUE = "AIzaSyFAKEFAKEFAKEFAKEFAKE1234"


class FakeControlPlane(ControlPlane):
    """In-memory control plane with per-method failure injection.

    ``fail(method, times=n)`` makes the next ``n`` calls to ``method`` raise; with
    ``times=None`` every call raises. All calls are recorded in ``calls``.
    """

    def __init__(self, *, accounts=None, linked=None, quota: int = 3):
        self.accounts = accounts if accounts is not None else [BillingAccount(ACCOUNT_ID, "Main")]
        self.quota = quota
        self.links: dict[str, str] = dict(linked or {})
        self.projects: set[str] = set(self.links)
        self.enabled: dict[str, set[str]] = {}
        self.service_accounts: set[str] = set()
        self.bindings: list[tuple[str, str, str]] = []
        self.unlink_denied: set[str] = set()
        self.hidden_links: bool = False
        self.api_key_payload: str = json.dumps(
            {"name": "operations/akmf.1", "done": True, "response": {"keyString": API_KEY_VALUE}}
        )
        self.calls: list[tuple] = []
        self._failures: dict[str, list] = {}

    def fail(self, method: str, times: Optional[int] = None, error: Optional[Exception] = None):
        self._failures[method] = [times, error or ControlPlaneError(f"{method} failed")]

    def called(self, method: str) -> list[tuple]:
        return [c[1:] for c in self.calls if c[0] == method]

    def _check(self, method: str, *args):
        self.calls.append((method, *args))
        failure = self._failures.get(method)
        if failure is None:
            return
        remaining, error = failure
        if remaining is None:
            raise error
        if remaining > 0:
            failure[0] = remaining - 1
            raise error

    def list_open_billing_accounts(self):
        self._check("list_open_billing_accounts")
        return [a for a in self.accounts if a.is_open]

    def list_linked_projects(self, account_id):
        self._check("list_linked_projects", account_id)
        if self.hidden_links:
            return []
        return sorted(p for p, a in self.links.items() if a == account_id)

    def link_billing(self, project_id, account_id):
        self._check("link_billing", project_id, account_id)
        if project_id not in self.projects:
            raise ControlPlaneError(f"Project {project_id} not found")
        if self.links.get(project_id) == account_id:
            return
        in_use = sum(1 for a in self.links.values() if a == account_id)
        if in_use >= self.quota:
            raise BillingQuotaExceeded("FAILED_PRECONDITION: Cloud billing quota exceeded")
        self.links[project_id] = account_id

    def unlink_billing(self, project_id):
        self._check("unlink_billing", project_id)
        if project_id in self.unlink_denied:
            raise ControlPlaneError(f"Permission denied on {project_id}")
        self.links.pop(project_id, None)

    def create_project(self, project_id):
        self._check("create_project", project_id)
        if project_id in self.projects:
            raise ControlPlaneError(f"Project {project_id} already exists")
        self.projects.add(project_id)

    def delete_project(self, project_id):
        self._check("delete_project", project_id)
        self.projects.discard(project_id)
        self.links.pop(project_id, None)

    def project_exists(self, project_id):
        self._check("project_exists", project_id)
        return project_id in self.projects

    def is_service_enabled(self, project_id, service):
        self._check("is_service_enabled", project_id, service)
        return service in self.enabled.get(project_id, set())

    def enable_service(self, project_id, service):
        self._check("enable_service", project_id, service)
        self.enabled.setdefault(project_id, set()).add(service)

    def service_account_exists(self, project_id, email):
        self._check("service_account_exists", project_id, email)
        return email in self.service_accounts

    def create_service_account(self, project_id, name, display_name):
        self._check("create_service_account", project_id, name, display_name)
        self.service_accounts.add(f"{name}@{project_id}.iam.gserviceaccount.com")

    def bind_role(self, project_id, email, role):
        self._check("bind_role", project_id, email, role)
        self.bindings.append((project_id, email, role))

    def create_service_account_key(self, project_id, email):
        self._check("create_service_account_key", project_id, email)
        return json.dumps({"type": "service_account", "client_email": email}).encode()

    def create_api_key(self, project_id, display_name, target_service):
        self._check("create_api_key", project_id, display_name, target_service)
        return self.api_key_payload


class NoSleep:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def log_buffer():
    return io.StringIO()


@pytest.fixture
def logger(log_buffer):
    console = Console(file=log_buffer, width=200, force_terminal=False)
    return ConsoleLogger(console, err_console=console, verbose=True)


@pytest.fixture
def retry(logger):
    return RetryExecutor(RetryPolicy(max_attempts=3, step_seconds=0, jitter_seconds=0), logger=logger)


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def no_sleep():
    return NoSleep()


@pytest.fixture
def config(tmp_path):
    return ProvisionConfig(
        project_prefix="test-run",
        billing_account=None,
        services=("svc-a", "svc-b"),
        key_dir=tmp_path / "keys",
        archive_root=tmp_path / "archive",
        retry_step_seconds=0,
        retry_jitter_seconds=0,
        link_settle_seconds=0,
    )
