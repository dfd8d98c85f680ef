from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

from ..smoothing import HISTORY_SIZE


@dataclass
class HostRuntime:
    poll_interval_sec: float = 1.0
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0
    stats_log_interval: float = 60.0
    read_chunk_size: int = 256


@dataclass
class BmsConfig:
    history_size: int = HISTORY_SIZE
    clear_screen: bool = True
    host: HostRuntime = field(default_factory=HostRuntime)

    def __post_init__(self) -> None:
        if self.history_size < 1:
            raise ValueError("history_size must be at least 1")


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must contain a JSON object")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> BmsConfig:
    """
    Load the BMS host configuration from JSON and apply CLI-style overrides.

    Without *path* the defaults are used. Overrides are dotted `key=value`
    pairs, e.g. ["history_size=5", "host.poll_interval_sec=0.5"].
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    host_data = merged.get("host") or {}
    defaults = HostRuntime()
    return BmsConfig(
        history_size=int(merged.get("history_size", HISTORY_SIZE)),
        clear_screen=bool(merged.get("clear_screen", True)),
        host=HostRuntime(
            poll_interval_sec=float(host_data.get("poll_interval_sec", defaults.poll_interval_sec)),
            reconnect_initial_sec=float(
                host_data.get("reconnect_initial_sec", defaults.reconnect_initial_sec)
            ),
            reconnect_max_sec=float(host_data.get("reconnect_max_sec", defaults.reconnect_max_sec)),
            stats_log_interval=float(host_data.get("stats_log_interval", defaults.stats_log_interval)),
            read_chunk_size=int(host_data.get("read_chunk_size", defaults.read_chunk_size)),
        ),
    )


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
