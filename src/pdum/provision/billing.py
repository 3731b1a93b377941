"""Link a project to a billing account, freeing quota on the account if needed.

The first link attempt is optimistic: no quota pre-check. If the account refuses
for quota reasons, the projects currently linked to it are unlinked (best effort),
and the link is retried once more through the retry policy. At most one recovery
cycle runs per call to ``BillingLinker.link``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from pdum.provision.control_plane import ControlPlane
from pdum.provision.log import ConsoleLogger
from pdum.provision.retry import RetryExecutor
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import BillingQuotaExceeded, ControlPlaneError


@dataclass
class LinkOutcome:
    """What happened while linking one project."""

    project_id: str
    account_id: str
    linked: bool = False
    recovery_attempted: bool = False
    unlinked: list[str] = field(default_factory=list)
    unlink_failures: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


class BillingLinker:
    def __init__(
        self,
        control_plane: ControlPlane,
        retry: RetryExecutor,
        *,
        logger: Optional[ConsoleLogger] = None,
        settle_seconds: float = 3.0,
        recover_on_any_error: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.control_plane = control_plane
        self.retry = retry
        self.logger = logger or ConsoleLogger()
        self.settle_seconds = settle_seconds
        self.recover_on_any_error = recover_on_any_error
        self._sleep = sleep

    def first_open_account(self) -> BillingAccount:
        """Return the first open billing account visible to the caller.

        Raises:
            ControlPlaneError: If listing fails or no open account exists
        """
        accounts = self.retry.execute(
            self.control_plane.list_open_billing_accounts,
            description="list billing accounts",
        )
        for account in accounts:
            if account.is_open:
                return account
        raise ControlPlaneError("No open billing account found")

    def link(self, project_id: str, account_id: str) -> LinkOutcome:
        outcome = LinkOutcome(project_id=project_id, account_id=account_id)
        try:
            self.retry.execute(
                lambda: self.control_plane.link_billing(project_id, account_id),
                max_attempts=1,
                description=f"link {project_id}",
            )
        except BillingQuotaExceeded as e:
            self.logger.warning(f"Billing account {account_id} is at its project limit: {e}")
            return self._recover(outcome)
        except ControlPlaneError as e:
            if self.recover_on_any_error:
                self.logger.warning(f"Direct link failed, freeing billing quota anyway: {e}")
                return self._recover(outcome)
            self.logger.warning(f"Direct link failed, retrying: {e}")
            return self._retry_link(outcome)

        outcome.linked = True
        return outcome

    def _recover(self, outcome: LinkOutcome) -> LinkOutcome:
        outcome.recovery_attempted = True
        account_id = outcome.account_id

        try:
            linked = self.retry.execute(
                lambda: self.control_plane.list_linked_projects(account_id),
                description=f"list projects on {account_id}",
            )
        except ControlPlaneError as e:
            outcome.error = f"Could not list projects linked to {account_id}: {e}"
            self.logger.error(outcome.error)
            return outcome

        if outcome.project_id in linked:
            self.logger.info(f"{outcome.project_id} already shows as linked to {account_id}")
            outcome.linked = True
            return outcome

        if not linked:
            outcome.error = f"Billing account {account_id} has no linked projects to free"
            self.logger.error(outcome.error)
            return outcome

        self.logger.warning(f"Unlinking {len(linked)} project(s) from billing account {account_id}...")
        for linked_id in linked:
            try:
                self.retry.execute(
                    lambda: self.control_plane.unlink_billing(linked_id),
                    description=f"unlink {linked_id}",
                )
            except ControlPlaneError as e:
                self.logger.warning(f"Failed to unlink project: {linked_id} (may lack permission)")
                outcome.unlink_failures[linked_id] = str(e)
                continue
            self.logger.success(f"Unlinked project: {linked_id}")
            outcome.unlinked.append(linked_id)

        if self.settle_seconds > 0:
            self._sleep(self.settle_seconds)
        return self._retry_link(outcome)

    def _retry_link(self, outcome: LinkOutcome) -> LinkOutcome:
        try:
            self.retry.execute(
                lambda: self.control_plane.link_billing(outcome.project_id, outcome.account_id),
                description=f"link {outcome.project_id}",
            )
        except ControlPlaneError as e:
            outcome.error = f"Linking {outcome.project_id} to {outcome.account_id} failed: {e}"
            self.logger.error(outcome.error)
            return outcome

        outcome.linked = True
        return outcome


__all__ = ["BillingLinker", "LinkOutcome"]
