"""Enable APIs on a project, skipping the ones that are already on."""

from __future__ import annotations

from typing import Iterable, Optional

from pdum.provision.control_plane import ControlPlane
from pdum.provision.log import ConsoleLogger
from pdum.provision.retry import RetryExecutor
from pdum.provision.types import ServiceEnablement
from pdum.provision.types.exceptions import ControlPlaneError


class ServiceActivationManager:
    """Best-effort sweep over a list of services.

    Every service in the list is attempted even after earlier failures; the caller
    decides what a nonzero failure count means.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        retry: RetryExecutor,
        *,
        logger: Optional[ConsoleLogger] = None,
    ):
        self.control_plane = control_plane
        self.retry = retry
        self.logger = logger or ConsoleLogger()

    def _already_enabled(self, project_id: str, service: str) -> bool:
        try:
            return self.retry.execute(
                lambda: self.control_plane.is_service_enabled(project_id, service),
                description=f"status of {service}",
            )
        except ControlPlaneError as e:
            # An unknown status just means we try to enable it; enabling is idempotent.
            self.logger.debug(f"Could not read status of {service}: {e}")
            return False

    def activate(self, project_id: str, services: Iterable[str]) -> list[ServiceEnablement]:
        """Enable each service and return its per-service outcome, in input order."""
        results: list[ServiceEnablement] = []
        seen: set[str] = set()
        for service in services:
            if service in seen:
                continue
            seen.add(service)

            if self._already_enabled(project_id, service):
                self.logger.debug(f"{service} already enabled on {project_id}")
                results.append(ServiceEnablement(project_id, service, enabled=True, skipped=True))
                continue

            try:
                self.retry.execute(
                    lambda: self.control_plane.enable_service(project_id, service),
                    description=f"enable {service}",
                )
            except ControlPlaneError as e:
                self.logger.error(f"Could not enable service: {service}")
                results.append(ServiceEnablement(project_id, service, enabled=False, error=str(e)))
                continue

            self.logger.success(f"Enabled {service}")
            results.append(ServiceEnablement(project_id, service, enabled=True))
        return results

    def enable_all(self, project_id: str, services: Iterable[str]) -> int:
        """Enable every service; return how many could not be enabled."""
        return sum(1 for result in self.activate(project_id, services) if not result.enabled)


__all__ = ["ServiceActivationManager"]
