from pathlib import Path

import pytest
from pydantic import ValidationError

from snapvault.config import VaultConfig, load_config
from snapvault.core.registry import ActiveSnapshotRegistry
from snapvault.core.repository import SnapshotRepository
from snapvault.providers.in_memory import InMemoryActorDirectory


class TestConfig:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for key in ("SNAPVAULT_CONFIG", "SNAPVAULT_WORKING_DIRECTORY", "LOG_LEVEL"):
            monkeypatch.delenv(key, raising=False)

    def test_defaults_when_file_missing(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config == VaultConfig()
        assert config.capture_mode_slot == 201
        assert config.max_chain_depth == 64
        assert config.payload_tolerance is None

    def test_yaml_and_env_overrides(self, tmp_path, monkeypatch):
        config_file = tmp_path / "snapvault.yaml"
        config_file.write_text(
            "working_directory: /data/snapshots\n"
            "disable_automatic_revert: true\n"
            "payload_tolerance: 0.001\n"
            "log_level: DEBUG\n"
        )
        config = load_config(config_file)
        assert config.working_directory == Path("/data/snapshots")
        assert config.disable_automatic_revert
        assert config.payload_tolerance == 0.001

        monkeypatch.setenv("SNAPVAULT_WORKING_DIRECTORY", str(tmp_path))
        monkeypatch.setenv("LOG_LEVEL", "warning")
        config = load_config(config_file)
        assert config.working_directory == tmp_path
        assert config.log_level == "WARNING"
        assert config.is_valid()

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        config_file = tmp_path / "other.yaml"
        config_file.write_text("blob_workers: 2\n")
        monkeypatch.setenv("SNAPVAULT_CONFIG", str(config_file))
        assert load_config().blob_workers == 2

    def test_invalid_config(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("unknown_key: 1\n")
        with pytest.raises(ValidationError):
            load_config(config_file)

        config_file.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(config_file)

    def test_components_from_config(self):
        config = VaultConfig(
            max_chain_depth=8,
            payload_tolerance=0.5,
            include_removals=True,
            disable_automatic_revert=True,
            capture_mode_slot=300,
        )
        repo = SnapshotRepository.from_config(config)
        assert repo.resolver.max_depth == 8
        assert repo.payload_tolerance == 0.5
        assert repo.include_removals

        registry = ActiveSnapshotRegistry.from_config(config, InMemoryActorDirectory())
        assert registry.disable_automatic_revert
        assert registry.capture_mode_slot == 300
