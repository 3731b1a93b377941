"""Billing account helpers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BillingAccount:
    """Information about a GCP billing account.

    Billing accounts are never created or modified by this package; they are
    discovered by listing open accounts.

    Attributes
    ----------
    id : str
        Billing account ID (for example ``"012345-567890-ABCDEF"``).
    display_name : str
        Human-friendly billing account name.
    is_open : bool
        Whether the account can accept new project links.
    """

    id: str
    display_name: str = ""
    is_open: bool = True

    @property
    def resource_name(self) -> str:
        return f"billingAccounts/{self.id}"

    @classmethod
    def from_api(cls, data: dict) -> "BillingAccount":
        """Build from a Cloud Billing ``billingAccounts`` resource (gcloud or REST)."""
        name = data.get("name", "")
        account_id = name.split("/", 1)[1] if "/" in name else name
        return cls(
            id=account_id,
            display_name=data.get("displayName", account_id),
            is_open=bool(data.get("open", True)),
        )


__all__ = ["BillingAccount"]
