"""YAML configuration loader for courier (storage, timeouts, monitor definitions)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import CourierConfigError
from .logging_config import get_logger
from .models import (
    Collection,
    EmailConfig,
    Environment,
    Monitor,
    MonitorThresholds,
    ScheduleInterval,
    WebhookConfig,
    now_ms,
)

logger = get_logger("config")


@dataclass(slots=True)
class MonitorDefinition:
    """Monitor as written in the config file: collection/environment by name or id."""

    name: str
    collection: str
    folder: str | None = None
    environment: str | None = None
    schedule: ScheduleInterval = ScheduleInterval.HOURLY
    thresholds: MonitorThresholds = field(default_factory=MonitorThresholds)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    enabled: bool = True


@dataclass(slots=True)
class CourierConfig:
    workspace: str = "default"
    storage_dir: str = ".courier"
    history_limit: int = 50
    run_history_limit: int = 500
    request_timeout_seconds: float = 30.0
    webhook_timeout_seconds: float = 10.0
    http2: bool = True
    monitors: list[MonitorDefinition] = field(default_factory=list)


def _validate_config(c: CourierConfig) -> None:
    """Validate CourierConfig bounds. Raises CourierConfigError if invalid."""
    if not c.workspace:
        raise CourierConfigError("workspace must not be empty")
    if c.history_limit < 1:
        raise CourierConfigError("history_limit must be >= 1")
    if c.run_history_limit < 1:
        raise CourierConfigError("run_history_limit must be >= 1")
    if c.request_timeout_seconds <= 0:
        raise CourierConfigError("request_timeout_seconds must be > 0")
    if c.webhook_timeout_seconds <= 0:
        raise CourierConfigError("webhook_timeout_seconds must be > 0")
    for m in c.monitors:
        if m.thresholds.max_response_time_ms < 0:
            raise CourierConfigError("max_response_time_ms must be >= 0", context={"monitor": m.name})
        if m.thresholds.min_status_code < 0:
            raise CourierConfigError("min_status_code must be >= 0", context={"monitor": m.name})
        if m.webhook.enabled and not m.webhook.url:
            raise CourierConfigError("webhook enabled without url", context={"monitor": m.name})


def _parse_monitor(raw: Any, index: int) -> MonitorDefinition:
    if not isinstance(raw, dict):
        raise CourierConfigError("Monitor entry must be a mapping", context={"index": index})
    name = raw.get("name")
    collection = raw.get("collection")
    if not name or not collection:
        raise CourierConfigError("Monitor requires name and collection", context={"index": index})

    schedule_str = str(raw.get("schedule") or "1h").strip().lower()
    try:
        schedule = ScheduleInterval(schedule_str)
    except ValueError as e:
        raise CourierConfigError(
            f"Unknown schedule '{schedule_str}' (expected one of {', '.join(s.value for s in ScheduleInterval)})",
            context={"monitor": name},
            original_error=e,
        ) from e

    thresholds = raw.get("thresholds") or {}
    webhook = raw.get("webhook") or {}
    email = raw.get("email") or {}
    if not all(isinstance(v, dict) for v in (thresholds, webhook, email)):
        raise CourierConfigError("thresholds, webhook and email must be mappings", context={"monitor": name})
    return MonitorDefinition(
        name=str(name),
        collection=str(collection),
        folder=raw.get("folder"),
        environment=raw.get("environment"),
        schedule=schedule,
        thresholds=MonitorThresholds(
            max_response_time_ms=float(thresholds.get("max_response_time_ms", 0)),
            min_status_code=int(thresholds.get("min_status_code", 0)),
            alert_on_test_failure=bool(thresholds.get("alert_on_test_failure", True)),
        ),
        webhook=WebhookConfig(
            enabled=bool(webhook.get("enabled", bool(webhook.get("url")))),
            url=str(webhook.get("url") or ""),
            headers=webhook.get("headers"),
        ),
        email=EmailConfig(enabled=bool(email.get("enabled", False)), to=email.get("to")),
        enabled=bool(raw.get("enabled", True)),
    )


def load_config(path: str | Path) -> CourierConfig:
    """Load courier configuration from YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated CourierConfig instance

    Raises:
        CourierConfigError: If file not found, invalid YAML, or validation fails
    """
    p = Path(path)
    if not p.exists():
        raise CourierConfigError(f"Config file not found: {path}", context={"path": str(path)})

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.exception("Failed to parse YAML config file")
        raise CourierConfigError(
            f"Invalid YAML syntax in config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e
    except OSError as e:
        logger.exception("Failed to read config file")
        raise CourierConfigError(
            f"Cannot read config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise CourierConfigError(
            "Config must be a YAML object/dictionary",
            context={"path": str(path), "actual_type": type(raw).__name__},
        )

    monitors_raw = raw.get("monitors") or []
    if not isinstance(monitors_raw, list):
        raise CourierConfigError("monitors must be a list", context={"path": str(path)})

    try:
        config = CourierConfig(
            workspace=str(raw.get("workspace") or "default"),
            storage_dir=str(raw.get("storage_dir") or ".courier"),
            history_limit=int(raw.get("history_limit", 50)),
            run_history_limit=int(raw.get("run_history_limit", 500)),
            request_timeout_seconds=float(raw.get("request_timeout_seconds", 30)),
            webhook_timeout_seconds=float(raw.get("webhook_timeout_seconds", 10)),
            http2=bool(raw.get("http2", True)),
            monitors=[_parse_monitor(m, i) for i, m in enumerate(monitors_raw)],
        )
    except (TypeError, ValueError) as e:
        raise CourierConfigError(
            f"Invalid config value: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e

    _validate_config(config)
    logger.debug("Loaded config: workspace=%s, monitors=%d", config.workspace, len(config.monitors))
    return config


_SLUG = re.compile(r"[^a-z0-9]+")


def monitor_id_for(name: str) -> str:
    """Stable id derived from the monitor name so persisted run history survives restarts."""
    return "mon-" + (_SLUG.sub("-", name.lower()).strip("-") or "monitor")


def _find(items: list[Any], name_or_id: str) -> Any | None:
    return next((i for i in items if name_or_id in (i.id, i.name)), None)


def build_monitors(
    definitions: list[MonitorDefinition],
    collections: list[Collection],
    environments: list[Environment],
) -> list[Monitor]:
    """Resolve config monitor definitions against loaded collections and environments."""
    monitors: list[Monitor] = []
    created = now_ms()
    for d in definitions:
        collection = _find(collections, d.collection)
        if collection is None:
            raise CourierConfigError("Monitor references unknown collection", context={"monitor": d.name, "collection": d.collection})
        environment_id = None
        if d.environment is not None:
            env = _find(environments, d.environment)
            if env is None:
                raise CourierConfigError("Monitor references unknown environment", context={"monitor": d.name, "environment": d.environment})
            environment_id = env.id
        folder_id = None
        if d.folder is not None:
            folder = collection.find_folder(d.folder) or _find_folder_by_name(collection, d.folder)
            if folder is None:
                raise CourierConfigError("Monitor references unknown folder", context={"monitor": d.name, "folder": d.folder})
            folder_id = folder.id
        monitors.append(
            Monitor(
                id=monitor_id_for(d.name),
                name=d.name,
                collection_id=collection.id,
                environment_id=environment_id,
                schedule=d.schedule,
                thresholds=d.thresholds,
                webhook=d.webhook,
                email=d.email,
                enabled=d.enabled,
                created_at=created,
                folder_id=folder_id,
            )
        )
    return monitors


def _find_folder_by_name(collection: Collection, name: str) -> Any | None:
    stack = list(collection.folders)
    while stack:
        folder = stack.pop(0)
        if folder.name == name:
            return folder
        stack.extend(folder.folders)
    return None
