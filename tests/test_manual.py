"""Read-only checks against a real GCP account.

These tests only list billing accounts and linked projects; they never create,
link or delete anything.
"""

import os

import pytest

from pdum.provision.api_control_plane import ApiControlPlane
from pdum.provision.control_plane import GCloudControlPlane
from pdum.provision.utils import check_environment

manual_test = pytest.mark.skipif(
    not os.getenv("PDUM_PROVISION_MANUAL_TESTS"),
    reason="Manual test - requires GCP credentials. Set PDUM_PROVISION_MANUAL_TESTS=1 to run.",
)


@manual_test
def test_gcloud_environment():
    account = check_environment()
    print(f"\ngcloud account: {account}")
    assert "@" in account


@manual_test
def test_backends_agree_on_open_billing_accounts(logger):
    """Both control planes should see the same open billing accounts."""
    via_gcloud = {a.id for a in GCloudControlPlane(logger=logger).list_open_billing_accounts()}
    via_api = {a.id for a in ApiControlPlane(logger=logger).list_open_billing_accounts()}

    print(f"\nOpen billing accounts: {sorted(via_gcloud)}")
    assert via_gcloud == via_api


@manual_test
def test_list_linked_projects(logger):
    control_plane = GCloudControlPlane(logger=logger)
    accounts = control_plane.list_open_billing_accounts()
    if not accounts:
        pytest.skip("No open billing accounts")

    for account in accounts:
        linked = control_plane.list_linked_projects(account.id)
        print(f"\n{account.display_name} ({account.id}): {len(linked)} linked project(s)")
        assert all(isinstance(p, str) and p for p in linked)
