"""IAM role binding dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class RoleBinding:
    """A role granted (or attempted) to a service account on a project.

    Attributes
    ----------
    service_account_email : str
        Email of the service account receiving the role.
    project_id : str
        Project on which the role is granted.
    role : str
        Role name (e.g., ``"roles/aiplatform.admin"``).
    bound : bool
        Whether the binding was applied.
    error : str, optional
        Why the binding failed, if it did.
    """

    service_account_email: str
    project_id: str
    role: str
    bound: bool = False
    error: Optional[str] = None


__all__ = ["RoleBinding"]
