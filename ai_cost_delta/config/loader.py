"""
Configuration management and loading.

Handles the account endpoint, credentials and notification settings.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ai_cost_delta.core.numbers import to_number
from ai_cost_delta.storage.repository import DEFAULT_STATE_PATH

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "opencode" / "packycode-cost.json"
DEFAULT_ENDPOINT = "https://codex.packycode.com/api/backend/users/info"
DEFAULT_NOTIFICATION_DURATION_MS = 7000
DEFAULT_REQUEST_TIMEOUT = 10.0


@dataclass(frozen=True)
class CostDeltaConfig:
    """Resolved runtime configuration."""
    endpoint: str = DEFAULT_ENDPOINT
    api_key: Optional[str] = None
    provider_key: Optional[str] = None
    notification_duration_ms: int = DEFAULT_NOTIFICATION_DURATION_MS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    state_path: Path = DEFAULT_STATE_PATH


def load_config(path: Union[str, Path, None] = None) -> CostDeltaConfig:
    """Load configuration, falling back to defaults for anything unusable.

    The file may be JSON or YAML; both camelCase keys (``apiKey``,
    ``providerKey``, ``toastDuration``) and snake_case keys are accepted.
    A missing, unreadable or malformed file yields the defaults.

    Args:
        path: Path to the configuration file (defaults to DEFAULT_CONFIG_PATH)

    Returns:
        Resolved CostDeltaConfig
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    raw_config = _read_config_file(config_path)

    endpoint = _clean_string(_pick(raw_config, "endpoint")) or DEFAULT_ENDPOINT
    api_key = _clean_string(_pick(raw_config, "api_key", "apiKey"))
    provider_key = _clean_string(_pick(raw_config, "provider_key", "providerKey"))

    duration = to_number(_pick(raw_config, "notification_duration_ms", "toastDuration"))
    if duration is None or duration < 0:
        duration = DEFAULT_NOTIFICATION_DURATION_MS

    timeout = to_number(_pick(raw_config, "request_timeout", "requestTimeout"))
    if timeout is None or timeout <= 0:
        timeout = DEFAULT_REQUEST_TIMEOUT

    state_path = _clean_string(_pick(raw_config, "state_path", "statePath"))

    return CostDeltaConfig(
        endpoint=endpoint,
        api_key=api_key,
        provider_key=provider_key,
        notification_duration_ms=int(duration),
        request_timeout=float(timeout),
        state_path=Path(state_path).expanduser() if state_path else DEFAULT_STATE_PATH,
    )


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    """Read a config file into a dict, or {} if that is not possible."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", config_path, e)
        return {}
    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", config_path)
        return {}
    return raw_config


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _clean_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
