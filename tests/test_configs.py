"""Tests for the configuration models and service."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from pymeasurelog.configs import AppConfig, ConfigError, ConfigNotFoundError, ConfigService
from pymeasurelog.db import RecoveryPolicy, Unit


@pytest.fixture
def service(tmp_path):
    return ConfigService(tmp_path / "configs", tmp_path / "databases")


class TestConfigService:
    """Bootstrapping, loading and updating ``config.json``."""

    def test_load_without_file_raises(self, service):
        with pytest.raises(ConfigNotFoundError):
            service.load_config()

    def test_load_or_create_writes_defaults(self, service, tmp_path):
        config = service.load_or_create()
        assert service.config_path.exists()
        assert config.database_path == (tmp_path / "databases" / "measurements.db").resolve()
        assert config.recovery_policy is RecoveryPolicy.ABORT
        assert config.default_unit is Unit.METERS
        assert config.instrument_model == "TS60"
        assert config.created_at is not None

        stored = json.loads(service.config_path.read_text())
        assert stored["recovery_policy"] == config.recovery_policy.value
        assert service.load_config() == config

    def test_invalid_file_is_config_error(self, service):
        service.config_path.write_text("{not json")
        with pytest.raises(ConfigError):
            service.load_config()

    def test_update_config_normalizes_and_persists(self, service):
        service.load_or_create()
        updated = service.update_config(bluetooth_mac="aa-bb-cc-dd-ee-0f", instrument_model="ms60", log_level="debug")
        assert updated.bluetooth_mac == "AA:BB:CC:DD:EE:0F"
        assert updated.instrument_model == "MS60"
        assert updated.log_level == "DEBUG"
        assert service.load_config().bluetooth_mac == "AA:BB:CC:DD:EE:0F"

    @pytest.mark.parametrize(
        "changes",
        [
            {"instrument_model": "TS99"},
            {"bluetooth_mac": "not-a-mac"},
            {"log_level": "chatty"},
            {"busy_timeout": 0},
            {"subscriber_buffer": 0},
            {"default_unit": "cubits"},
        ],
    )
    def test_update_config_rejects_bad_values(self, service, changes):
        original = service.load_or_create()
        with pytest.raises(ConfigError):
            service.update_config(**changes)
        assert service.load_config() == original


class TestAppConfig:
    """Direct model validation."""

    def test_recovery_policy_accepts_its_value(self, tmp_path):
        config = AppConfig(database_path=tmp_path / "m.db", recovery_policy="reset")
        assert config.recovery_policy is RecoveryPolicy.RESET

    def test_database_path_is_required(self):
        with pytest.raises(ValidationError):
            AppConfig()
