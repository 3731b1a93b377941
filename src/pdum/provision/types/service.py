"""Service enablement dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class ServiceEnablement:
    """Enablement status of one API on one project.

    ``skipped`` is set when the service was already enabled and no enable call
    was made.
    """

    project_id: str
    service_name: str
    enabled: bool = False
    skipped: bool = False
    error: Optional[str] = None


__all__ = ["ServiceEnablement"]
