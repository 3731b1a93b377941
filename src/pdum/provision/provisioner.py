"""Provision one project end to end.

A run creates a project, links it to billing (freeing quota if needed), enables
services, extracts an API key and a service-account key, and archives the key files.
Failures are classified as follows:

* project creation fails: the run is ``Failed`` and nothing needs undoing.
* billing cannot be linked after one recovery cycle: the project is deleted and the
  run is ``RolledBack`` (``Failed`` if the delete itself fails).
* service, role or credential failures: logged, listed in the summary, and the run
  continues.
* operator interrupt: the run stops where it is, without any rollback.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Optional

from pdum.provision.archive import ArchiveAggregator, ArchiveResult
from pdum.provision.billing import BillingLinker, LinkOutcome
from pdum.provision.config import ProvisionConfig
from pdum.provision.control_plane import ControlPlane
from pdum.provision.credentials import CredentialExtractor
from pdum.provision.decoders import ResponseDecoder
from pdum.provision.filesystem import LocalFilesystem
from pdum.provision.log import ConsoleLogger
from pdum.provision.retry import RetryExecutor
from pdum.provision.services import ServiceActivationManager
from pdum.provision.types import (
    BillingAccount,
    CredentialResult,
    ProjectRecord,
    ProjectState,
    ServiceEnablement,
    new_project_id,
)
from pdum.provision.types.exceptions import ControlPlaneError, OperatorAbort


def _credential_status(result: Optional[CredentialResult]) -> str:
    if result is None:
        return "not attempted"
    if result.ok:
        return "ok"
    return f"{result.status.value}: {result.error}" if result.error else result.status.value


@dataclass
class ProvisioningReport:
    """Outcome of one provisioning run."""

    record: ProjectRecord
    billing_account: Optional[BillingAccount] = None
    link: Optional[LinkOutcome] = None
    services: list[ServiceEnablement] = field(default_factory=list)
    api_key: Optional[CredentialResult] = None
    service_account_key: Optional[CredentialResult] = None
    archive: Optional[ArchiveResult] = None
    elapsed_seconds: float = 0.0
    aborted: bool = False
    error: Optional[str] = None

    @property
    def project_id(self) -> str:
        return self.record.id

    @property
    def state(self) -> ProjectState:
        return self.record.state

    @property
    def failed(self) -> bool:
        return self.state in (ProjectState.FAILED, ProjectState.ROLLED_BACK)

    @property
    def service_failures(self) -> list[ServiceEnablement]:
        return [s for s in self.services if not s.enabled]

    def summary(self) -> dict[str, Any]:
        """Per-item status of the run, suitable for display or JSON output."""
        role_bindings = self.service_account_key.role_bindings if self.service_account_key else []
        archive: Optional[str] = None
        if self.archive is not None:
            archive = str(self.archive.directory) if self.archive.directory else self.archive.error

        services = {}
        for s in self.services:
            if s.skipped:
                services[s.service_name] = "already enabled"
            elif s.enabled:
                services[s.service_name] = "enabled"
            else:
                services[s.service_name] = f"failed: {s.error}"

        return {
            "project_id": self.project_id,
            "state": self.state.value,
            "aborted": self.aborted,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "billing_account": self.billing_account.id if self.billing_account else None,
            "unlinked_projects": list(self.link.unlinked) if self.link else [],
            "services": services,
            "api_key": _credential_status(self.api_key),
            "service_account_key": _credential_status(self.service_account_key),
            "role_bindings": {b.role: "bound" if b.bound else f"failed: {b.error}" for b in role_bindings},
            "archive": archive,
            "archive_left_in_place": (
                {str(path): error for path, error in self.archive.left_in_place.items()} if self.archive else {}
            ),
            "error": self.error,
        }


class Provisioner:
    """Run the provisioning steps in order for one project.

    Every collaborator can be injected; by default each one is built from ``config``.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        config: Optional[ProvisionConfig] = None,
        *,
        logger: Optional[ConsoleLogger] = None,
        filesystem: Optional[LocalFilesystem] = None,
        retry: Optional[RetryExecutor] = None,
        decoder: Optional[ResponseDecoder] = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
        clock: Callable[[], float] = time.monotonic,
        project_id_factory: Callable[[str], str] = new_project_id,
    ):
        self.control_plane = control_plane
        self.config = config or ProvisionConfig()
        self.logger = logger or ConsoleLogger()
        self.retry = retry or RetryExecutor(self.config.retry_policy, logger=self.logger)
        self._clock = clock
        self._project_id_factory = project_id_factory

        filesystem = filesystem or LocalFilesystem()
        self.linker = BillingLinker(
            control_plane,
            self.retry,
            logger=self.logger,
            settle_seconds=self.config.link_settle_seconds,
            recover_on_any_error=self.config.recover_on_any_link_error,
            sleep=sleep,
        )
        self.services = ServiceActivationManager(control_plane, self.retry, logger=self.logger)
        self.credentials = CredentialExtractor(
            control_plane,
            self.retry,
            self.config,
            filesystem=filesystem,
            decoder=decoder,
            logger=self.logger,
            now=now,
        )
        self.archiver = ArchiveAggregator(
            self.config.archive_root,
            label=self.config.archive_label,
            filesystem=filesystem,
            logger=self.logger,
            now=now,
        )

    def new_record(self) -> ProjectRecord:
        return ProjectRecord(id=self._project_id_factory(self.config.project_prefix))

    def resolve_billing_account(self) -> BillingAccount:
        if self.config.billing_account:
            return BillingAccount(id=self.config.billing_account)
        return self.linker.first_open_account()

    def run(self, record: Optional[ProjectRecord] = None) -> ProvisioningReport:
        report = ProvisioningReport(record=record or self.new_record())
        start = self._clock()
        try:
            self._run(report)
        except (OperatorAbort, KeyboardInterrupt):
            report.aborted = True
            self.logger.warning(
                f"Interrupted by operator at state {report.state.value}; stopping without rollback."
            )
        finally:
            report.elapsed_seconds = self._clock() - start
        return report

    def _run(self, report: ProvisioningReport) -> None:
        record = report.record

        self.logger.info("Fetching billing account...")
        try:
            report.billing_account = self.resolve_billing_account()
        except ControlPlaneError as e:
            self._fail(report, f"No usable billing account: {e}")
            return
        self.logger.success(f"Using billing account: {report.billing_account.id}")

        self.logger.info(f"Creating project {record.id}...")
        try:
            self._create_project(record.id)
        except ControlPlaneError as e:
            self._fail(report, f"Project creation failed: {e}")
            return
        record.advance(ProjectState.CREATED)

        self.logger.info("Linking billing account...")
        report.link = self.linker.link(record.id, report.billing_account.id)
        if not report.link.linked:
            report.error = report.link.error
            self._roll_back(report)
            return
        record.advance(ProjectState.BILLING_LINKED)
        self.logger.success("Billing account linked.")

        self.logger.info("Enabling required API services...")
        report.services = self.services.activate(record.id, self.config.services)
        if report.service_failures:
            names = ", ".join(s.service_name for s in report.service_failures)
            self.logger.warning(f"Some services could not be enabled ({names}); continuing.")
        record.advance(ProjectState.SERVICES_ENABLED)

        self.logger.info("Extracting credentials...")
        report.api_key, report.service_account_key = self.credentials.extract_all(
            record.id, parallel=self.config.parallel_credentials
        )
        if report.api_key.ok or report.service_account_key.ok:
            record.advance(ProjectState.CREDENTIALED)

        self.logger.info("Archiving files...")
        report.archive = self.archiver.archive([report.api_key.artifact, report.service_account_key.artifact])
        report.api_key = self._relocated(report.api_key, report.archive)
        report.service_account_key = self._relocated(report.service_account_key, report.archive)

    def _create_project(self, project_id: str) -> None:
        attempts = 0

        def create():
            nonlocal attempts
            attempts += 1
            try:
                self.control_plane.create_project(project_id)
            except ControlPlaneError:
                # A retry can fail only because an earlier attempt already created it.
                if attempts > 1 and self.control_plane.project_exists(project_id):
                    self.logger.info(f"Project {project_id} was created by an earlier attempt")
                    return
                raise

        self.retry.execute(create, description=f"create project {project_id}")

    def _fail(self, report: ProvisioningReport, message: str) -> None:
        report.error = message
        self.logger.error(message)
        report.record.advance(ProjectState.FAILED)

    def _roll_back(self, report: ProvisioningReport) -> None:
        project_id = report.record.id
        self.logger.warning(f"Cleaning up project that could not be linked: {project_id}")
        try:
            self.retry.execute(
                lambda: self.control_plane.delete_project(project_id),
                description=f"delete project {project_id}",
            )
        except ControlPlaneError as e:
            self._fail(report, f"{report.error}; project {project_id} could not be deleted: {e}")
            return
        report.record.advance(ProjectState.ROLLED_BACK)

    @staticmethod
    def _relocated(result: CredentialResult, archive: ArchiveResult) -> CredentialResult:
        """Point ``result`` at its archived file, if it was moved."""
        artifact = result.artifact
        if artifact is None or artifact not in archive.moved:
            return result
        credential = replace(result.credential, file_path=archive.moved[artifact])
        return replace(result, credential=credential)


__all__ = ["ProvisioningReport", "Provisioner"]
