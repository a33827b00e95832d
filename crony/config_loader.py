"""Utilities to load :mod:`crony.config` structures from YAML files."""
from __future__ import annotations

import datetime as _dt
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .config import DEFAULT_POLL_INTERVAL, CronyConfig, SchedulerConfig, TaskDefinition

_DURATION_UNITS = {
    "ms": _dt.timedelta(milliseconds=1),
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}

_DURATION_PATTERN = re.compile(r"^(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d)$", re.IGNORECASE)


def load_config(path: Path) -> CronyConfig:
    """Load a configuration file into :class:`CronyConfig`.

    Durations may be written as ``"500ms"``, ``"30s"`` or ``"5m"`` and are
    converted into :class:`datetime.timedelta` objects.  A minimal file looks
    like::

        scheduler:
          poll_interval: 100ms
        tasks:
          - name: heartbeat
            target: myapp.jobs:heartbeat
            every: 30s
            priority: high
    """

    raw = _load_yaml(Path(path))

    scheduler_section = raw.get("scheduler") or {}
    scheduler = SchedulerConfig(
        poll_interval=_parse_duration(scheduler_section.get("poll_interval", DEFAULT_POLL_INTERVAL)),
    )

    tasks = tuple(
        _parse_task(index, item) for index, item in enumerate(raw.get("tasks") or [])
    )

    return CronyConfig(scheduler=scheduler, tasks=tasks)


def _parse_task(index: int, item: Any) -> TaskDefinition:
    if not isinstance(item, Mapping):
        raise ValueError(f"task #{index} must be a mapping")
    for key in ("name", "target"):
        if not item.get(key):
            raise ValueError(f"task #{index} is missing {key!r}")

    args = item.get("args") or []
    if not isinstance(args, (list, tuple)):
        args = [args]
    kwargs = item.get("kwargs") or {}
    if not isinstance(kwargs, Mapping):
        raise ValueError(f"task {item['name']!r}: kwargs must be a mapping")

    every = item.get("every")
    return TaskDefinition(
        name=str(item["name"]),
        target=str(item["target"]),
        args=tuple(args),
        kwargs=dict(kwargs),
        every=_parse_duration(every) if every is not None else None,
        at=_parse_timestamp(item.get("at")),
        asynchronous=bool(item.get("async", False)),
        priority=item.get("priority", "medium"),
    )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("configuration root must be a mapping")
    return data


def _parse_timestamp(value: Any) -> Optional[_dt.datetime]:
    if value is None:
        return None
    if isinstance(value, _dt.datetime):
        return value
    if isinstance(value, _dt.date):
        return _dt.datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ValueError(f"unsupported timestamp value: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _dt.datetime.fromisoformat(text)


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    match = _DURATION_PATTERN.match(value)
    if match is None:
        raise ValueError(f"unknown duration unit: {value}")
    amount = float(match.group("amount"))
    base = _DURATION_UNITS[match.group("unit").lower()]
    return _dt.timedelta(seconds=base.total_seconds() * amount)
