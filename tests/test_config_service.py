"""Tests for configuration loading."""

from pathlib import Path

import pytest

from intune_packager.api.exceptions import ConfigurationError
from intune_packager.constants import DEFAULT_CHUNK_SIZE, DEFAULT_VERSIONS_TO_KEEP
from intune_packager.models.config import AppConfig
from intune_packager.services.config_service import ConfigService, default_config_path

CONFIG = """
root_dir: /srv/intune
label_script: /srv/intune/process_label.sh
versions_to_keep: 3
strict_dual_arch: true
graph:
  tenant_id: contoso
  client_id: app-id
  client_secret: ${TEST_CLIENT_SECRET}
upload:
  chunk_size: 1048576
  poll_attempts: 5
  unknown_key: ignored
notifications:
  enabled: true
  webhook_url: https://example.webhook.office.com/hook
  style: 1
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_full_config(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TEST_CLIENT_SECRET", "s3cret")

    config = ConfigService(_write(tmp_path, CONFIG)).load()

    assert config.root_dir == "/srv/intune"
    assert config.versions_to_keep == 3
    assert config.strict_dual_arch
    assert config.graph.client_secret == "s3cret"
    assert config.graph.is_configured
    assert config.upload.chunk_size == 1048576
    assert config.upload.poll_attempts == 5
    assert config.notifications.per_batch
    assert not config.notifications.per_label


def test_secrets_are_masked_in_dict(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TEST_CLIENT_SECRET", "s3cret")

    data = ConfigService(_write(tmp_path, CONFIG)).load().to_dict()

    assert data["graph"]["client_secret"] == "***"
    assert data["notifications"]["webhook_url"] == "***"
    assert "s3cret" not in str(data)


def test_missing_file_yields_defaults(tmp_path) -> None:
    config = ConfigService(tmp_path / "absent.yaml").load()

    assert config.versions_to_keep == DEFAULT_VERSIONS_TO_KEEP
    assert config.upload.chunk_size == DEFAULT_CHUNK_SIZE
    assert not config.graph.is_configured


def test_empty_file_yields_defaults(tmp_path) -> None:
    assert ConfigService(_write(tmp_path, "")).load() == AppConfig()


def test_config_property_loads_lazily(tmp_path) -> None:
    service = ConfigService(_write(tmp_path, "versions_to_keep: 4\n"))

    assert service.config.versions_to_keep == 4
    assert service.config is service.config


@pytest.mark.parametrize("content", [
    "root_dir: [unclosed",
    "- just\n- a list\n",
    "versions_to_keep: 0\n",
    "versions_to_keep: many\n",
    "upload:\n  chunk_size: 0\n",
    "notifications:\n  style: 2\n",
    "download:\n  max_retries: 0\n",
    'strict_dual_arch: "false"\n',
    "strict_dual_arch: 1\n",
    'notifications:\n  enabled: "no"\n',
])
def test_invalid_config(tmp_path, content) -> None:
    with pytest.raises(ConfigurationError):
        ConfigService(_write(tmp_path, content)).load()


def test_default_path_honours_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("INTUNE_PACKAGER_CONFIG", str(tmp_path / "custom.yaml"))
    assert default_config_path() == tmp_path / "custom.yaml"

    monkeypatch.delenv("INTUNE_PACKAGER_CONFIG")
    assert default_config_path().name == "config.yaml"


def test_root_path_environment_override(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("INTUNE_PACKAGER_ROOT", str(tmp_path))

    assert AppConfig(root_dir="/elsewhere").root_path == tmp_path
