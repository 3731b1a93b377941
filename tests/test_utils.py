"""Tests for CLI helper utilities."""

import os

import pytest

from pdum.provision import utils
from pdum.provision.types import BillingAccount
from pdum.provision.types.exceptions import GCloudError


def test_confirm_uses_default_when_not_interactive(monkeypatch):
    monkeypatch.setattr(utils, "is_interactive", lambda: False)
    assert utils.confirm("Proceed?", default=True) is True
    assert utils.confirm("Proceed?", default=False) is False


def test_choose_billing_account_without_terminal(monkeypatch):
    monkeypatch.setattr(utils, "is_interactive", lambda: False)
    accounts = [BillingAccount("AAAAAA-AAAAAA-AAAAAA", "First"), BillingAccount("BBBBBB-BBBBBB-BBBBBB", "Second")]
    assert utils.choose_billing_account(accounts).id == "AAAAAA-AAAAAA-AAAAAA"


def test_choose_billing_account_requires_accounts():
    with pytest.raises(GCloudError):
        utils.choose_billing_account([])


def test_check_environment_missing_gcloud(monkeypatch):
    monkeypatch.setattr(utils.shutil, "which", lambda name: None)
    with pytest.raises(GCloudError, match="Missing dependency"):
        utils.check_environment()


def test_check_environment_requires_account(monkeypatch):
    monkeypatch.setattr(utils.shutil, "which", lambda name: "/usr/bin/gcloud")
    monkeypatch.setattr(utils, "run_gcloud", lambda args, check=True: "(unset)")
    with pytest.raises(GCloudError, match="gcloud init"):
        utils.check_environment()


def test_check_environment_returns_account(monkeypatch):
    monkeypatch.setattr(utils.shutil, "which", lambda name: "/usr/bin/gcloud")
    monkeypatch.setattr(utils, "run_gcloud", lambda args, check=True: "me@example.com")
    assert utils.check_environment() == "me@example.com"


def test_list_key_files(tmp_path):
    private = tmp_path / "a-key.json"
    private.write_text("{}")
    os.chmod(private, 0o600)
    shared = tmp_path / "b-api-key.txt"
    shared.write_text("key")
    os.chmod(shared, 0o644)
    os.utime(private, (1_700_000_000, 1_700_000_000))
    os.utime(shared, (1_700_000_100, 1_700_000_100))
    (tmp_path / "notes.md").write_text("ignored")

    files = utils.list_key_files(tmp_path)

    assert [f.path.name for f in files] == ["b-api-key.txt", "a-key.json"]
    assert files[1].is_private
    assert not files[0].is_private
    assert utils.format_mode(files[0].mode) == "0644"


def test_list_key_files_missing_directory(tmp_path):
    assert utils.list_key_files(tmp_path / "nope") == []
