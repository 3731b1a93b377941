"""Project record and project id generation."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import coolname

from .constants import PROJECT_ID_MAX_LENGTH, PROJECT_ID_SUFFIX_LENGTH
from .exceptions import InvalidTransition

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")
_LEADING_NON_LETTERS = re.compile(r"^[^a-z]+")
_VALID_PROJECT_ID = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]")


class ProjectState(str, Enum):
    REQUESTED = "Requested"
    CREATED = "Created"
    BILLING_LINKED = "BillingLinked"
    SERVICES_ENABLED = "ServicesEnabled"
    CREDENTIALED = "Credentialed"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_FORWARD = [
    ProjectState.REQUESTED,
    ProjectState.CREATED,
    ProjectState.BILLING_LINKED,
    ProjectState.SERVICES_ENABLED,
    ProjectState.CREDENTIALED,
]
_TERMINAL = {ProjectState.CREDENTIALED, ProjectState.FAILED, ProjectState.ROLLED_BACK}


def _sanitize(prefix: str) -> str:
    cleaned = _INVALID_CHARS.sub("-", prefix.strip().lower())
    cleaned = _LEADING_NON_LETTERS.sub("", cleaned)
    return re.sub(r"-{2,}", "-", cleaned).strip("-")


def unique_suffix(length: int = PROJECT_ID_SUFFIX_LENGTH) -> str:
    """Return a short lowercase hex suffix."""
    return uuid.uuid4().hex[:length]


def new_project_id(prefix: Optional[str] = None, *, suffix: Optional[str] = None) -> str:
    """Generate a project id of the form ``<prefix>-<random-suffix>``.

    The result is lower-cased, restricted to ``[a-z0-9-]``, starts with a letter and
    is at most 30 characters. The prefix is truncated rather than the suffix so two
    ids generated from the same long prefix still differ. A prefix that sanitizes to
    nothing is replaced with a coolname slug.

    Examples
    --------
    >>> new_project_id("My_App", suffix="a1b2c3")
    'my-app-a1b2c3'
    """
    suffix = _INVALID_CHARS.sub("", (suffix or unique_suffix()).lower())[:PROJECT_ID_SUFFIX_LENGTH]
    if not suffix:
        suffix = unique_suffix()

    stem = _sanitize(prefix or "")
    if not stem:
        stem = _sanitize(coolname.generate_slug(2))

    room = PROJECT_ID_MAX_LENGTH - len(suffix) - 1
    stem = stem[:room].rstrip("-")
    return f"{stem}-{suffix}"


def is_valid_project_id(project_id: str) -> bool:
    return bool(_VALID_PROJECT_ID.fullmatch(project_id))


@dataclass
class ProjectRecord:
    """The project owned by one provisioning run.

    The record only moves forward through ``Requested -> Created -> BillingLinked ->
    ServicesEnabled -> Credentialed``. ``Failed`` and ``RolledBack`` can be entered
    from any non-terminal state.
    """

    id: str
    state: ProjectState = ProjectState.REQUESTED
    created_at: datetime = field(default_factory=datetime.now)
    history: list[tuple[ProjectState, datetime]] = field(default_factory=list)

    def __post_init__(self):
        if not is_valid_project_id(self.id):
            raise ValueError(f"Invalid project id: {self.id!r}")
        if not self.history:
            self.history.append((self.state, self.created_at))

    def advance(self, state: ProjectState) -> None:
        if self.state.is_terminal:
            raise InvalidTransition(f"Project {self.id} is already {self.state.value}")

        if state in (ProjectState.FAILED, ProjectState.ROLLED_BACK):
            self._enter(state)
            return

        current = _FORWARD.index(self.state)
        if state not in _FORWARD or _FORWARD.index(state) != current + 1:
            raise InvalidTransition(
                f"Project {self.id} cannot move from {self.state.value} to {state.value}"
            )
        self._enter(state)

    def _enter(self, state: ProjectState) -> None:
        self.state = state
        self.history.append((state, datetime.now()))


__all__ = [
    "ProjectRecord",
    "ProjectState",
    "is_valid_project_id",
    "new_project_id",
    "unique_suffix",
]
