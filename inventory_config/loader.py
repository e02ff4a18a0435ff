"""
Settings loader (``inventory_config.loader``).

Responsibility
--------------
Builds ``EngineSettings`` from a YAML file, a plain mapping, or
``INVENTORY_*`` environment variables.  All three paths go through
``settings_from_dict`` so coercion and validation happen in one place.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or uncoercible value  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.settings import EngineSettings
from inventory_kernel.domain.values import ConsumptionOrder, ValuationMethod
from inventory_kernel.logging_config import get_logger

logger = get_logger("config.loader")

ENV_PREFIX = "INVENTORY_"

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{name}: expected a boolean, got {value!r}")


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{name}: expected an integer, got {value!r}") from exc


def _to_decimal(name: str, value: Any) -> Decimal:
    # YAML floats arrive as float; go through str so 0.001 stays 0.001.
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name}: expected a decimal, got {value!r}") from exc


def _to_enum(enum_cls, name: str, value: Any):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{name}: expected one of {allowed}, got {value!r}") from exc


_COERCERS = {
    "database_url": lambda n, v: str(v),
    "echo_sql": _to_bool,
    "log_level": lambda n, v: str(v).upper(),
    "variance_epsilon": _to_decimal,
    "default_valuation_method": lambda n, v: _to_enum(ValuationMethod, n, v),
    "default_pick_order": lambda n, v: _to_enum(ConsumptionOrder, n, v),
    "stale_inventory_days": _to_int,
    "status_adjustment_window_days": _to_int,
    "cache_ttl_seconds": _to_int,
    "conflict_retry_attempts": _to_int,
    "money_places": _to_int,
    "unit_cost_places": _to_int,
}


def settings_from_dict(
    data: Mapping[str, Any], base: EngineSettings | None = None
) -> EngineSettings:
    """Overlay ``data`` on ``base`` (defaults when omitted)."""
    unknown = set(data) - EngineSettings.field_names()
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {}
    if base is not None:
        values = {name: getattr(base, name) for name in EngineSettings.field_names()}
    for name, raw in data.items():
        if raw is None:
            continue
        values[name] = _COERCERS[name](name, raw)
    return EngineSettings(**values)


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_settings(path: str | Path | None = None) -> EngineSettings:
    """
    Load settings from a YAML file.

    The file may hold the settings at top level or under an ``inventory``
    key.  Without ``path`` the packaged defaults are read.
    """
    path = Path(path) if path is not None else DEFAULTS_PATH
    data = load_yaml_file(path)
    if "inventory" in data and isinstance(data["inventory"], Mapping):
        data = data["inventory"]
    settings = settings_from_dict(data)
    logger.info(
        "settings_loaded",
        extra={
            "path": str(path),
            "database_dialect": settings.database_url.split(":", 1)[0],
            "default_valuation_method": settings.default_valuation_method.value,
        },
    )
    return settings


def settings_from_env(
    environ: Mapping[str, str] | None = None, base: EngineSettings | None = None
) -> EngineSettings:
    """Override ``base`` with ``INVENTORY_<FIELD>`` variables, e.g. INVENTORY_LOG_LEVEL."""
    environ = os.environ if environ is None else environ
    names = EngineSettings.field_names()
    overrides = {}
    for var, value in environ.items():
        if not var.startswith(ENV_PREFIX):
            continue
        name = var[len(ENV_PREFIX):].lower()
        if name in names:
            overrides[name] = value
    return settings_from_dict(overrides, base=base)
