"""Unit tests for config loader, validation and monitor resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from courier.config import CourierConfig, MonitorDefinition, build_monitors, load_config, monitor_id_for
from courier.exceptions import CourierConfigError
from courier.models import Collection, Environment, Folder, ScheduleInterval


def test_load_config_file_not_found() -> None:
    with pytest.raises(CourierConfigError, match="Config file not found"):
        load_config("/nonexistent/config.yaml")


def test_load_config_valid(tmp_path_config_monitors: Path, tmp_path: Path) -> None:
    config = load_config(tmp_path_config_monitors)
    assert config.workspace == "team"
    assert config.storage_dir == str(tmp_path / "state")
    assert config.history_limit == 20
    assert config.run_history_limit == 500
    assert config.request_timeout_seconds == 5.0
    assert config.http2 is False
    health, nightly = config.monitors
    assert health.schedule is ScheduleInterval.EVERY_5_MINUTES
    assert health.thresholds.max_response_time_ms == 800
    assert health.thresholds.min_status_code == 400
    assert health.thresholds.alert_on_test_failure is True
    assert health.webhook.enabled is True
    assert health.webhook.headers == '{"X-Token": "abc"}'
    assert nightly.enabled is False
    assert nightly.schedule is ScheduleInterval.DAILY
    assert nightly.thresholds.alert_on_test_failure is False
    assert nightly.webhook.enabled is False


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    p = tmp_path / "empty.yaml"
    p.write_text("")
    assert load_config(p) == CourierConfig()


def test_load_config_invalid_yaml(tmp_path: Path) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("not: valid: yaml: [")
    with pytest.raises(CourierConfigError, match="Invalid YAML syntax"):
        load_config(bad)


def test_load_config_not_mapping(tmp_path: Path) -> None:
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n")
    with pytest.raises(CourierConfigError, match="YAML object"):
        load_config(bad)


def test_load_config_validation_history_limit(tmp_path: Path) -> None:
    bad = tmp_path / "limit.yaml"
    bad.write_text("history_limit: 0\n")
    with pytest.raises(CourierConfigError, match="history_limit must be >= 1"):
        load_config(bad)


def test_load_config_validation_timeout(tmp_path: Path) -> None:
    bad = tmp_path / "timeout.yaml"
    bad.write_text("request_timeout_seconds: 0\n")
    with pytest.raises(CourierConfigError, match="request_timeout_seconds must be > 0"):
        load_config(bad)


def test_load_config_unknown_schedule(tmp_path: Path) -> None:
    bad = tmp_path / "schedule.yaml"
    bad.write_text("monitors:\n  - name: m\n    collection: c\n    schedule: 2m\n")
    with pytest.raises(CourierConfigError, match="Unknown schedule '2m'"):
        load_config(bad)


def test_load_config_monitor_requires_collection(tmp_path: Path) -> None:
    bad = tmp_path / "monitor.yaml"
    bad.write_text("monitors:\n  - name: m\n")
    with pytest.raises(CourierConfigError, match="requires name and collection"):
        load_config(bad)


def test_load_config_webhook_enabled_without_url(tmp_path: Path) -> None:
    bad = tmp_path / "hook.yaml"
    bad.write_text("monitors:\n  - name: m\n    collection: c\n    webhook:\n      enabled: true\n")
    with pytest.raises(CourierConfigError, match="webhook enabled without url"):
        load_config(bad)


def test_load_config_bad_value_type(tmp_path: Path) -> None:
    bad = tmp_path / "types.yaml"
    bad.write_text("history_limit: many\n")
    with pytest.raises(CourierConfigError, match="Invalid config value"):
        load_config(bad)


def test_monitor_id_for() -> None:
    assert monitor_id_for("Health check") == "mon-health-check"
    assert monitor_id_for("  API / v2!! ") == "mon-api-v2"
    assert monitor_id_for("???") == "mon-monitor"


def _collections() -> list[Collection]:
    inner = Folder(id="fld-inner", name="Inner")
    return [Collection(id="col-1", name="Shop", folders=[Folder(id="fld-outer", name="Outer", folders=[inner])])]


def test_build_monitors_resolves_names() -> None:
    envs = [Environment(id="env-1", name="Prod")]
    definitions = [
        MonitorDefinition(name="Shop health", collection="Shop", environment="Prod", folder="Inner"),
        MonitorDefinition(name="By id", collection="col-1", folder="fld-outer"),
    ]
    first, second = build_monitors(definitions, _collections(), envs)
    assert first.id == "mon-shop-health"
    assert first.collection_id == "col-1"
    assert first.environment_id == "env-1"
    assert first.folder_id == "fld-inner"
    assert first.created_at > 0
    assert second.environment_id is None
    assert second.folder_id == "fld-outer"


@pytest.mark.parametrize(
    "definition, match",
    [
        (MonitorDefinition(name="m", collection="Nope"), "unknown collection"),
        (MonitorDefinition(name="m", collection="Shop", environment="QA"), "unknown environment"),
        (MonitorDefinition(name="m", collection="Shop", folder="Missing"), "unknown folder"),
    ],
)
def test_build_monitors_unknown_references(definition: MonitorDefinition, match: str) -> None:
    with pytest.raises(CourierConfigError, match=match):
        build_monitors([definition], _collections(), [])
