"""Configuration loading and validation helpers for REWIND-LISTENER."""
import json
import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF

DEFAULT_SERVER_TIMEOUT_SECONDS = 30
DEFAULT_CALL_HANG_TIME_SECONDS = 3


class ConfigValidationError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    """Validated settings; immutable for the lifetime of the session."""
    server_host: str
    server_port: int
    server_password: str
    app_id: int
    server_timeout_seconds: int
    rec_talkgroup_id: int
    # Loaded and validated, not used by the session logic.
    call_hang_time_seconds: int
    audio_output: str = "-"
    traffic_log: bool = False


def load_config_file(file_path: str) -> Dict[str, Any]:
    """Load the settings file into a dict. `.json` goes through json, anything else through YAML."""
    if not os.path.exists(file_path):
        raise ConfigValidationError(f"Configuration file not found: {file_path}")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            if file_path.lower().endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigValidationError(f"error parsing config file {file_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(f"Cannot read config file {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"error parsing config file {file_path}: expected a mapping of settings, got {type(data).__name__}"
        )
    return data


def _require(config: Dict[str, Any], key: str) -> Any:
    if key not in config or config[key] is None:
        raise ConfigValidationError(
            f"Configuration error: '{key}' is required.\n"
            f"→ Set it in your config file, e.g. {key}: ..."
        )
    return config[key]


def _int_in_range(key: str, value: Any, low: int, high: int) -> int:
    # bool is an int subclass; 'true' is never a valid port or id
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"Configuration error: '{key}' must be an integer, got {value!r}")
    if not (low <= value <= high):
        raise ConfigValidationError(f"Configuration error: '{key}' must be between {low} and {high}, got {value}")
    return value


def validate_settings(config: Dict[str, Any]) -> Settings:
    """Validate a raw config mapping early and loudly, returning Settings.

    - Require the server endpoint, password, AppID and talkgroup.
    - Enforce the wire widths: 16 bit port, 32 bit ids.
    """
    host = _require(config, "ServerHost")
    if not isinstance(host, str) or not host.strip():
        raise ConfigValidationError("Configuration error: 'ServerHost' must be a non-empty string")

    port = _int_in_range("ServerPort", _require(config, "ServerPort"), 1, U16_MAX)

    password = _require(config, "ServerPassword")
    if not isinstance(password, str):
        # A numeric-looking password in YAML arrives as int
        password = str(password)

    app_id = _int_in_range("AppID", _require(config, "AppID"), 0, U32_MAX)
    talkgroup = _int_in_range("RecTalkgroupID", _require(config, "RecTalkgroupID"), 0, U32_MAX)

    timeout = _int_in_range(
        "ServerTimeoutSeconds",
        config.get("ServerTimeoutSeconds", DEFAULT_SERVER_TIMEOUT_SECONDS),
        1, 24 * 3600,
    )
    hang_time = _int_in_range(
        "CallHangTimeSeconds",
        config.get("CallHangTimeSeconds", DEFAULT_CALL_HANG_TIME_SECONDS),
        0, 3600,
    )

    audio_output = config.get("AudioOutput", "-")
    if audio_output is None:
        audio_output = "-"
    if not isinstance(audio_output, str):
        raise ConfigValidationError(f"Configuration error: 'AudioOutput' must be a string, got {audio_output!r}")

    traffic_log = config.get("TrafficLog", False)
    if not isinstance(traffic_log, bool):
        raise ConfigValidationError(f"Configuration error: 'TrafficLog' must be true or false, got {traffic_log!r}")

    return Settings(
        server_host=host.strip(),
        server_port=port,
        server_password=password,
        app_id=app_id,
        server_timeout_seconds=timeout,
        rec_talkgroup_id=talkgroup,
        call_hang_time_seconds=hang_time,
        audio_output=audio_output,
        traffic_log=traffic_log,
    )


def load_settings(file_path: str) -> Settings:
    return validate_settings(load_config_file(file_path))
