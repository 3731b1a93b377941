"""Tests for the pdum_provision command line."""

import pytest
from typer.testing import CliRunner

from conftest import API_KEY_VALUE, FakeControlPlane
from pdum.provision import cli
from pdum.provision.types.exceptions import GCloudError

runner = CliRunner()


@pytest.fixture
def fake_control_plane(monkeypatch):
    control_plane = FakeControlPlane()
    monkeypatch.setattr(cli, "_control_plane", lambda backend, logger: control_plane)
    return control_plane


def provision_args(tmp_path, *extra):
    return [
        "provision",
        "--prefix",
        "cli-test",
        "--key-dir",
        str(tmp_path / "keys"),
        "--archive-root",
        str(tmp_path / "archive"),
        "--retry-step",
        "0",
        "--retry-jitter",
        "0",
        "--service",
        "svc-a",
        "--service",
        "svc-b",
        *extra,
    ]


def test_version():
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert "0.1.0-alpha" in result.stdout


def test_dry_run_makes_no_calls(fake_control_plane, tmp_path):
    result = runner.invoke(cli.app, provision_args(tmp_path, "--dry-run"))

    assert result.exit_code == 0
    assert "DRY RUN" in result.stdout
    assert fake_control_plane.calls == []


def test_provision_success(fake_control_plane, tmp_path):
    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes"))

    assert result.exit_code == 0, result.stdout
    assert "Provisioning complete" in result.stdout
    (project_id,) = fake_control_plane.projects
    assert project_id.startswith("cli-test-")
    assert fake_control_plane.enabled[project_id] == {"svc-a", "svc-b"}
    assert list((tmp_path / "archive").iterdir())


def test_provision_failure_exits_nonzero(fake_control_plane, tmp_path):
    fake_control_plane.fail("create_project")

    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes"))

    assert result.exit_code == 1


def test_provision_abort_exits_cleanly(fake_control_plane, tmp_path):
    fake_control_plane.fail("enable_service", error=KeyboardInterrupt())

    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes"))

    assert result.exit_code == 0
    assert "Interrupted" in result.stdout


def test_gcloud_environment_error(monkeypatch, tmp_path):
    def missing(backend, logger):
        raise GCloudError("Missing dependency: gcloud")

    monkeypatch.setattr(cli, "_control_plane", missing)
    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes"))

    assert result.exit_code == 1
    assert "Missing dependency" in result.stdout


def test_invalid_config_file(fake_control_plane, tmp_path):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("not_a_setting: 1\n")

    result = runner.invoke(cli.app, provision_args(tmp_path, "--config", str(config_file), "--yes"))

    assert result.exit_code == 1
    assert fake_control_plane.calls == []


def test_billing_accounts(fake_control_plane):
    fake_control_plane.links["older-aaaaaa"] = fake_control_plane.accounts[0].id

    result = runner.invoke(cli.app, ["billing-accounts"])

    assert result.exit_code == 0
    assert "older-aaaaaa" in result.stdout


def test_keys_empty_directory(tmp_path):
    result = runner.invoke(cli.app, ["keys", "--key-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "No key files" in result.stdout


def test_count_provisions_projects_one_after_another(fake_control_plane, tmp_path):
    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes", "--count", "3"))

    assert result.exit_code == 0, result.stdout
    assert len(fake_control_plane.projects) == 3
    assert all(p.startswith("cli-test-") for p in fake_control_plane.projects)
    creates = [c[0] for c in fake_control_plane.called("create_project")]
    assert len(set(creates)) == 3
    assert "succeeded: 3, failed: 0" in result.stdout

    (lines_file,) = (tmp_path / "archive").glob("api_keys_*.txt")
    (csv_file,) = (tmp_path / "archive").glob("api_keys_*.csv")
    assert lines_file.read_text().splitlines() == [API_KEY_VALUE] * 3
    assert csv_file.read_text().strip() == ",".join([API_KEY_VALUE] * 3)


def test_count_stops_after_abort(fake_control_plane, tmp_path):
    fake_control_plane.fail("enable_service", error=KeyboardInterrupt())

    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes", "--count", "3"))

    assert result.exit_code == 0
    assert len(fake_control_plane.called("create_project")) == 1
    assert "No API keys were created" in result.stdout


def test_count_with_a_failed_project_exits_nonzero(fake_control_plane, tmp_path):
    fake_control_plane.fail("create_project", times=3)

    result = runner.invoke(cli.app, provision_args(tmp_path, "--yes", "--count", "2", "--max-retry", "3"))

    assert result.exit_code == 1
    assert "succeeded: 1, failed: 1" in result.stdout
    (lines_file,) = (tmp_path / "archive").glob("api_keys_*.txt")
    assert lines_file.read_text().splitlines() == [API_KEY_VALUE]
