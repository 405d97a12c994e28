# src/stakeapi/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from stakeapi.codec.cbor import MAX_PROTOCOL_MAJOR, MIN_PROTOCOL_MAJOR, ProtocolVersion
from stakeapi.env import load_dotenv_if_present
from stakeapi.errors import ConfigError

Json = Dict[str, Any]

MAINNET_NETWORK_ID = 1
TESTNET_NETWORK_ID = 0

_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _as_int(v: Any, default: int, *, field: str) -> int:
    if v is None or (isinstance(v, str) and not v.strip()):
        return int(default)
    if isinstance(v, bool):
        raise ConfigError("invalid_config", f"{field} must be an integer", {"value": v})
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigError("invalid_config", f"{field} must be an integer", {"value": v}) from e


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class ApiConfig:
    # 0..15; the low nibble of reward-account header bytes.
    network_id: int

    # Default protocol version handed to the CBOR codec by callers.
    protocol_major: int
    protocol_minor: int

    log_level: str

    def protocol_version(self) -> ProtocolVersion:
        return ProtocolVersion(self.protocol_major, self.protocol_minor)


def validate_api_config(cfg: ApiConfig) -> None:
    """Fail-fast validation for operator config."""

    if not 0 <= int(cfg.network_id) <= 15:
        raise ConfigError("invalid_config", f"network_id must be 0..15; got: {cfg.network_id}")

    if not MIN_PROTOCOL_MAJOR <= int(cfg.protocol_major) <= MAX_PROTOCOL_MAJOR:
        raise ConfigError(
            "invalid_config",
            f"protocol_major must be {MIN_PROTOCOL_MAJOR}..{MAX_PROTOCOL_MAJOR}; got: {cfg.protocol_major}",
        )

    if int(cfg.protocol_minor) < 0:
        raise ConfigError("invalid_config", f"protocol_minor must be >= 0; got: {cfg.protocol_minor}")

    if str(cfg.log_level).strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ConfigError("invalid_config", f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")


def default_api_config() -> ApiConfig:
    return ApiConfig(
        network_id=MAINNET_NETWORK_ID,
        protocol_major=2,
        protocol_minor=0,
        log_level="INFO",
    )


def _from_mapping(raw: Json, base: ApiConfig) -> ApiConfig:
    return ApiConfig(
        network_id=_as_int(raw.get("network_id"), base.network_id, field="network_id"),
        protocol_major=_as_int(raw.get("protocol_major"), base.protocol_major, field="protocol_major"),
        protocol_minor=_as_int(raw.get("protocol_minor"), base.protocol_minor, field="protocol_minor"),
        log_level=_as_str(raw.get("log_level"), base.log_level).strip().upper(),
    )


def read_api_config_file(path: str) -> ApiConfig:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError("invalid_config", f"cannot read config file {path!r}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("invalid_config", "api config must be a JSON object")

    cfg = _from_mapping(raw, default_api_config())
    validate_api_config(cfg)
    return cfg


def _env_overrides() -> Json:
    return {
        "network_id": os.environ.get("STAKEAPI_NETWORK_ID"),
        "protocol_major": os.environ.get("STAKEAPI_PROTOCOL_MAJOR"),
        "protocol_minor": os.environ.get("STAKEAPI_PROTOCOL_MINOR"),
        "log_level": os.environ.get("STAKEAPI_LOG_LEVEL"),
    }


def load_api_config(*, config_path: Optional[str] = None) -> ApiConfig:
    """Resolve config: explicit file, then STAKEAPI_CONFIG_PATH, then env vars over defaults."""
    load_dotenv_if_present()

    p = config_path or os.environ.get("STAKEAPI_CONFIG_PATH")
    if p:
        return read_api_config_file(p)

    cfg = _from_mapping(_env_overrides(), default_api_config())
    validate_api_config(cfg)
    return cfg
