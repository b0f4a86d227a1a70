"""
Tests for layered configuration loading.
"""

import os

import pytest
import yaml

from vestlock.config_manager import DEFAULT_CONFIG_DIR, ConfigManager, Environment
from vestlock.core.vesting_exceptions import ConfigurationError


SCHEDULE = [2_000_000_000 + i * 86_400 for i in range(10)]
BASE = {
    "vesting": {
        "schedule": SCHEDULE,
        "beneficiaries": ["0x" + "a1" * 20, "0x" + "b2" * 20],
        "admin": "0x" + "ad" * 20,
        "long_plan_threshold": 5_000,
        "grace_period_seconds": 60,
    },
    "token": {"custody_address": "0x" + "cc" * 20},
    "storage": {"data_dir": "state"},
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("VESTLOCK_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    def _write(name, data):
        with open(tmp_path / f"{name}.yaml", "w") as f:
            yaml.safe_dump(data, f)

    _write("default", BASE)
    _write("production", {"logging": {"level": "WARNING"}, "storage": {"max_backups": 7}})
    return tmp_path


def test_bundled_defaults_are_valid():
    config = ConfigManager(environment="development", config_dir=str(DEFAULT_CONFIG_DIR))

    assert len(config.vesting.schedule) == 10
    assert config.vesting.long_plan_threshold == 100_000 * 10**18
    assert config.vesting.grace_period_seconds == 30 * 24 * 60 * 60
    assert config.vesting.admin.startswith("0x")
    assert config.logging.level == "DEBUG"


def test_default_file_loaded(config_dir):
    config = ConfigManager(config_dir=str(config_dir))

    assert config.environment is Environment.DEVELOPMENT
    assert config.vesting.schedule == SCHEDULE
    assert config.vesting.long_plan_threshold == 5_000
    assert config.storage.data_dir == "state"
    assert config.token.symbol == "VEST"


def test_environment_file_overrides_default(config_dir):
    config = ConfigManager(environment="prod", config_dir=str(config_dir))

    assert config.environment is Environment.PRODUCTION
    assert config.logging.level == "WARNING"
    assert config.storage.max_backups == 7
    assert config.storage.data_dir == "state"


def test_environment_variables_override_files(config_dir, monkeypatch):
    monkeypatch.setenv("VESTLOCK_VESTING_GRACE_PERIOD_SECONDS", "120")
    monkeypatch.setenv("VESTLOCK_STORAGE_BACKUP_ENABLED", "false")
    monkeypatch.setenv("VESTLOCK_VESTING_BENEFICIARIES", "0x" + "c3" * 20 + ", 0x" + "d4" * 20)

    config = ConfigManager(config_dir=str(config_dir))

    assert config.vesting.grace_period_seconds == 120
    assert config.storage.backup_enabled is False
    assert config.vesting.beneficiaries == ["0x" + "c3" * 20, "0x" + "d4" * 20]


def test_environment_selected_from_variable(config_dir, monkeypatch):
    monkeypatch.setenv("VESTLOCK_ENVIRONMENT", "production")
    config = ConfigManager(config_dir=str(config_dir))
    assert config.environment is Environment.PRODUCTION


def test_cli_overrides_take_precedence(config_dir, monkeypatch):
    monkeypatch.setenv("VESTLOCK_STORAGE_DATA_DIR", "/from/env")
    config = ConfigManager(config_dir=str(config_dir), cli_overrides={"storage.data_dir": "/from/cli"})
    assert config.storage.data_dir == "/from/cli"


def test_get_and_sections(config_dir):
    config = ConfigManager(config_dir=str(config_dir))

    assert config.get("vesting.grace_period_seconds") == 60
    assert config.get("vesting.missing", "fallback") == "fallback"
    assert config.get_section("token") == BASE["token"]
    assert config.to_dict()["environment"] == "development"


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("vesting", "schedule", SCHEDULE[:9]),
        ("vesting", "schedule", list(reversed(SCHEDULE))),
        ("vesting", "beneficiaries", []),
        ("vesting", "admin", ""),
        ("vesting", "long_plan_threshold", 0),
        ("vesting", "grace_period_seconds", -1),
        ("token", "custody_address", ""),
        ("token", "decimals", 19),
        ("storage", "max_backups", 0),
        ("logging", "level", "LOUD"),
        ("metrics", "port", 80),
    ],
)
def test_invalid_values_rejected(config_dir, section, key, value):
    with pytest.raises(ConfigurationError):
        ConfigManager(config_dir=str(config_dir), cli_overrides={f"{section}.{key}": value})


def test_unknown_key_rejected(config_dir):
    with pytest.raises(ConfigurationError, match="Unknown key"):
        ConfigManager(config_dir=str(config_dir), cli_overrides={"storage.compression": True})


def test_invalid_yaml_rejected(tmp_path):
    (tmp_path / "default.yaml").write_text("vesting: [unclosed")
    with pytest.raises(ConfigurationError):
        ConfigManager(config_dir=str(tmp_path))


def _write_raw_default(tmp_path, beneficiary, admin):
    schedule = "\n".join(f"    - {stamp}" for stamp in SCHEDULE)
    (tmp_path / "default.yaml").write_text(
        "vesting:\n"
        f"  schedule:\n{schedule}\n"
        f"  beneficiaries:\n    - {beneficiary}\n"
        f"  admin: {admin}\n"
    )


def test_unquoted_hex_beneficiary_rejected(tmp_path):
    _write_raw_default(tmp_path, "0x" + "11" * 20, "\"0x" + "ad" * 20 + "\"")

    with pytest.raises(ConfigurationError, match="must be a string"):
        ConfigManager(config_dir=str(tmp_path))


def test_unquoted_hex_admin_rejected(tmp_path):
    _write_raw_default(tmp_path, "\"0x" + "11" * 20 + "\"", "0x" + "ad" * 20)

    with pytest.raises(ConfigurationError, match="must be a string"):
        ConfigManager(config_dir=str(tmp_path))


def test_reload_picks_up_changes(config_dir):
    config = ConfigManager(config_dir=str(config_dir))
    with open(config_dir / "development.yaml", "w") as f:
        yaml.safe_dump({"storage": {"data_dir": "elsewhere"}}, f)

    config.reload()
    assert config.storage.data_dir == "elsewhere"


def test_unquoted_hex_custody_address_rejected(config_dir):
    with open(config_dir / "development.yaml", "w") as f:
        f.write("token:\n  custody_address: 0x" + "cc" * 20 + "\n")

    with pytest.raises(ConfigurationError, match="must be a string"):
        ConfigManager(config_dir=str(config_dir))
