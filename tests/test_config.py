"""Tests for provisioning configuration."""

from pathlib import Path

import pytest

from pdum.provision.config import ProvisionConfig
from pdum.provision.types import DEFAULT_ROLES, DEFAULT_SERVICES
from pdum.provision.types.exceptions import ConfigError


def test_defaults():
    config = ProvisionConfig()
    assert config.project_prefix == "fusion-mod"
    assert config.billing_account is None
    assert config.services == DEFAULT_SERVICES
    assert config.roles == DEFAULT_ROLES
    assert config.key_dir == Path("keys")
    assert config.retry_policy.max_attempts == 3


def test_service_account_email():
    config = ProvisionConfig()
    assert config.service_account_email("demo-abc123") == "vertex-admin@demo-abc123.iam.gserviceaccount.com"


def test_overrides_ignore_none():
    config = ProvisionConfig().with_overrides(project_prefix="demo", billing_account=None, key_dir="out/keys")
    assert config.project_prefix == "demo"
    assert config.billing_account is None
    assert config.key_dir == Path("out/keys")


def test_from_yaml(tmp_path):
    path = tmp_path / "provision.yaml"
    path.write_text(
        "project_prefix: demo\n"
        "billing_account: 0X0X0X-0X0X0X-0X0X0X\n"
        "max_attempts: 5\n"
        "services:\n"
        "  - apikeys.googleapis.com\n"
    )

    config = ProvisionConfig.from_yaml(path)

    assert config.project_prefix == "demo"
    assert config.billing_account == "0X0X0X-0X0X0X-0X0X0X"
    assert config.max_attempts == 5
    assert config.services == ("apikeys.googleapis.com",)


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert ProvisionConfig.from_yaml(path) == ProvisionConfig()


@pytest.mark.parametrize(
    "content",
    [
        "unknown_key: 1\n",
        "- just\n- a list\n",
        "services: generativelanguage.googleapis.com\n",
        "max_attempts: 0\n",
        "retry_step_seconds: -1\n",
        "project_prefix: [unclosed\n",
    ],
)
def test_invalid_yaml_config(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        ProvisionConfig.from_yaml(path)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        ProvisionConfig.from_yaml(tmp_path / "missing.yaml")
