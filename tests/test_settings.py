"""Tests for fulfillment.settings: defaults, YAML overlay and dotted lookups."""

from pathlib import Path

import pytest
import yaml

from fulfillment import settings as settings_mod
from fulfillment.settings import (
    carrier_base_url,
    get_default_settings,
    get_setting,
    load_settings,
    reload_settings,
)


@pytest.fixture(autouse=True)
def _clear_cache():
    reload_settings()
    yield
    reload_settings()


def test_defaults_without_file(tmp_path: Path) -> None:
    """Missing settings.yaml yields the defaults."""
    result = load_settings(config_dir=tmp_path)
    assert result == get_default_settings()
    assert get_setting(result, "executor.sync_only_event_types") == ["SALE_CREATED"]
    assert get_setting(result, "executor.handler_timeout_sec") is None


def test_yaml_overlay_is_deep_merged(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        yaml.safe_dump(
            {
                "carrier": {"environment": "prod", "contract": "400006709"},
                "handlers": {"trace-handler": {"enabled": False}},
            }
        )
    )
    result = load_settings(config_dir=tmp_path)
    assert get_setting(result, "carrier.contract") == "400006709"
    assert get_setting(result, "carrier.timeout") == 30.0
    assert get_setting(result, "handlers.trace-handler.enabled") is False
    assert carrier_base_url(result) == "https://apis.andreani.com"


def test_invalid_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("carrier: [unclosed")
    assert load_settings(config_dir=tmp_path) == get_default_settings()


def test_result_is_cached_until_reload(tmp_path: Path) -> None:
    first = load_settings(config_dir=tmp_path)
    (tmp_path / "settings.yaml").write_text(yaml.safe_dump({"storage": {"db_path": "x.db"}}))
    assert load_settings(config_dir=tmp_path) is first
    reload_settings()
    assert get_setting(load_settings(config_dir=tmp_path), "storage.db_path") == "x.db"


def test_get_setting_default_for_missing_path() -> None:
    assert get_setting({"a": {"b": 1}}, "a.c", "fallback") == "fallback"
    assert get_setting({"a": 1}, "a.b") is None


def test_defaults_are_copied() -> None:
    copy = get_default_settings()
    copy["carrier"]["contract"] = "changed"
    assert settings_mod._DEFAULTS["carrier"]["contract"] == ""


def test_carrier_base_url_defaults_to_qa() -> None:
    assert carrier_base_url(get_default_settings()) == "https://apisqa.andreani.com"
