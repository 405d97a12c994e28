from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from stakeapi.codec.cbor import ProtocolVersion
from stakeapi.config import ApiConfig, default_api_config, load_api_config, validate_api_config
from stakeapi.env import reset_dotenv_state
from stakeapi.errors import ConfigError

_ENV_KEYS = (
    "STAKEAPI_CONFIG_PATH",
    "STAKEAPI_DOTENV_PATH",
    "STAKEAPI_NETWORK_ID",
    "STAKEAPI_PROTOCOL_MAJOR",
    "STAKEAPI_PROTOCOL_MINOR",
    "STAKEAPI_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for k in _ENV_KEYS:
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("STAKEAPI_DOTENV_PATH", str(tmp_path / "missing.env"))
    reset_dotenv_state()


def test_defaults() -> None:
    cfg = load_api_config()
    assert cfg == default_api_config()
    assert cfg.protocol_version() == ProtocolVersion(2, 0)


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKEAPI_NETWORK_ID", "0")
    monkeypatch.setenv("STAKEAPI_PROTOCOL_MAJOR", "9")
    monkeypatch.setenv("STAKEAPI_LOG_LEVEL", "debug")
    cfg = load_api_config()
    assert cfg.network_id == 0
    assert cfg.protocol_version() == ProtocolVersion(9, 0)
    assert cfg.log_level == "DEBUG"


def test_config_file_wins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "api.json"
    p.write_text(json.dumps({"network_id": 0, "protocol_major": 7, "protocol_minor": 2}), encoding="utf-8")
    monkeypatch.setenv("STAKEAPI_NETWORK_ID", "1")
    cfg = load_api_config(config_path=str(p))
    assert (cfg.network_id, cfg.protocol_major, cfg.protocol_minor) == (0, 7, 2)


def test_dotenv_file_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env = tmp_path / ".env"
    env.write_text("STAKEAPI_PROTOCOL_MAJOR=5\n", encoding="utf-8")
    monkeypatch.setenv("STAKEAPI_DOTENV_PATH", str(env))
    reset_dotenv_state()
    try:
        assert load_api_config().protocol_major == 5
    finally:
        os.environ.pop("STAKEAPI_PROTOCOL_MAJOR", None)


@pytest.mark.parametrize(
    "cfg",
    [
        ApiConfig(network_id=16, protocol_major=2, protocol_minor=0, log_level="INFO"),
        ApiConfig(network_id=1, protocol_major=1, protocol_minor=0, log_level="INFO"),
        ApiConfig(network_id=1, protocol_major=2, protocol_minor=-1, log_level="INFO"),
        ApiConfig(network_id=1, protocol_major=2, protocol_minor=0, log_level="LOUD"),
    ],
)
def test_validate_fails_fast(cfg: ApiConfig) -> None:
    with pytest.raises(ConfigError):
        validate_api_config(cfg)


def test_bad_env_value(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKEAPI_NETWORK_ID", "mainnet")
    with pytest.raises(ConfigError):
        load_api_config()


def test_unreadable_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_api_config(config_path=str(tmp_path / "nope.json"))
