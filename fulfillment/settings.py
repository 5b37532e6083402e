"""Service settings: built-in defaults overlaid with config/settings.yaml."""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_DEFAULTS: dict[str, Any] = {
    "event_bus": {
        "source": "event-bus",
    },
    "executor": {
        # None = handlers run without a time limit
        "handler_timeout_sec": None,
        "triggered_by": "system",
        "sync_only_event_types": ["SALE_CREATED"],
    },
    "storage": {
        "db_path": "data/fulfillment.db",
        "busy_timeout": 5000,
    },
    "carrier": {
        "environment": "qa",
        "base_url_qa": "https://apisqa.andreani.com",
        "base_url_prod": "https://apis.andreani.com",
        "client_code": "",
        "contract": "",
        "timeout": 30.0,
    },
    "file_transfer": {
        "host": "",
        "port": 21,
        "user": "",
        "secure": False,
        "timeout": 30.0,
        "spreadsheet_path": "/Tekno/Pedido/Ventas.xlsx",
        "labels_dir": "/Tekno/Andreani",
        "temp_dir": "data/temp",
    },
    "mail": {
        "base_url": "https://api.brevo.com/v3",
        "sender_email": "",
        "sender_name": "Tienda",
        "store_name": "Tienda",
        "timeout": 15.0,
    },
    # Per-handler overrides: {"<handler-name>": {"enabled": bool, "priority": int}}
    "handlers": {},
    "logging": {
        "file": "data/logs/fulfillment.log",
        "level": "INFO",
        "log_to_console": False,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

SETTINGS_FILE = "settings.yaml"
DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

_cached: dict[str, Any] | None = None


def _overlay(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Recursively copy source into target. Null values in YAML keep the default."""
    for key, value in source.items():
        if value is None:
            continue
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _overlay(current, value)
        else:
            target[key] = value


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level is not a mapping", path)
        return {}
    return data


def get_default_settings() -> dict[str, Any]:
    return copy.deepcopy(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'carrier.base_url_qa')."""
    node: Any = settings
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


def reload_settings() -> None:
    """Drop the cached settings; the next load_settings() re-reads the file."""
    global _cached
    _cached = None


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Defaults overlaid with config/settings.yaml, cached for the process."""
    global _cached
    if _cached is None:
        settings = get_default_settings()
        _overlay(settings, _read_yaml((config_dir or DEFAULT_CONFIG_DIR) / SETTINGS_FILE))
        _cached = settings
    return _cached


def carrier_base_url(settings: dict[str, Any]) -> str:
    """Base URL for the configured carrier environment ('prod'/'production' or QA)."""
    env = str(get_setting(settings, "carrier.environment", "qa")).lower()
    if env in ("prod", "production"):
        return get_setting(settings, "carrier.base_url_prod", "")
    return get_setting(settings, "carrier.base_url_qa", "")
