"""Attribute modifiers: how tagged fields are encoded for and decoded from the database."""

from __future__ import annotations

import dataclasses
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class OpInfo:
    """Information a modifier may use to decide how to behave."""

    # Name of the operation being run, e.g. "Insert" or "Query".
    method: str = ""
    # Name of the underlying database driver, e.g. "postgres" or "sqlserver".
    driver_name: str = ""


# A scanner receives the operation info, the current attribute value and the
# raw value read from the database, and returns the new attribute value.
AttrScanner = Callable[[OpInfo, Any, Any], Any]

# A valuer receives the operation info and the attribute value, and returns
# the value that should be sent to the database.
AttrValuer = Callable[[OpInfo, Any], Any]


@dataclass(frozen=True)
class AttrModifier:
    """Describes how an attribute is handled on inserts, updates and queries."""

    skip_on_insert: bool = False
    skip_on_update: bool = False
    # Keep the attribute on inserts and patches even when it is None.
    nullable: bool = False
    scan: Optional[AttrScanner] = None
    value: Optional[AttrValuer] = None


@dataclass
class AttrScanWrapper:
    """Runs a modifier's scanner instead of the driver's default decoding."""

    attr: Any
    scan_fn: AttrScanner
    op_info: OpInfo = field(default_factory=OpInfo)

    def scan(self, db_value: Any) -> Any:
        """Decode ``db_value`` and return the new attribute value."""
        return self.scan_fn(self.op_info, self.attr, db_value)


@dataclass
class AttrValueWrapper:
    """Runs a modifier's valuer instead of the driver's default encoding."""

    attr: Any
    value_fn: AttrValuer
    op_info: OpInfo = field(default_factory=OpInfo)

    def value(self) -> Any:
        """Return the value to be sent to the database."""
        return self.value_fn(self.op_info, self.attr)


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _json_scan(op_info: OpInfo, attr: Any, db_value: Any) -> Any:
    if db_value is None:
        return attr

    # Some drivers return text instead of bytes.
    if isinstance(db_value, str):
        db_value = db_value.encode("utf-8")

    if not isinstance(db_value, (bytes, bytearray, memoryview)):
        raise TypeError(f"unexpected type received to Scan: {type(db_value).__name__}")

    decoded = json.loads(bytes(db_value))
    if (
        dataclasses.is_dataclass(attr)
        and not isinstance(attr, type)
        and isinstance(decoded, dict)
    ):
        names = {f.name for f in dataclasses.fields(attr) if f.init}
        return dataclasses.replace(
            attr, **{key: val for key, val in decoded.items() if key in names}
        )
    return decoded


def _json_value(op_info: OpInfo, input_value: Any) -> Any:
    encoded = json.dumps(
        input_value, separators=(",", ":"), ensure_ascii=False, default=_json_default
    )
    # SQL Server stores JSON as NVARCHAR and expects text, not bytes.
    if op_info.driver_name == "sqlserver":
        return encoded
    return encoded.encode("utf-8")


def _time_now_utc(op_info: OpInfo, input_value: Any) -> datetime:
    return datetime.now(timezone.utc)


_json_modifier = AttrModifier(scan=_json_scan, value=_json_value)

_registry: Dict[str, AttrModifier] = {
    "json": _json_modifier,
    "json/nullable": AttrModifier(nullable=True, scan=_json_scan, value=_json_value),
    "timeNowUTC": AttrModifier(value=_time_now_utc),
    "timeNowUTC/skipUpdates": AttrModifier(skip_on_update=True, value=_time_now_utc),
    "skipUpdates": AttrModifier(skip_on_update=True),
    "skipInserts": AttrModifier(skip_on_insert=True),
    "nullable": AttrModifier(nullable=True),
}
_registry_lock = threading.Lock()


def register_attr_modifier(key: str, modifier: AttrModifier) -> None:
    """Register a custom modifier under ``key``; names cannot be reused."""
    with _registry_lock:
        if key in _registry:
            raise ValueError(
                f"KSQL: cannot register modifier '{key}' name is already in use"
            )
        _registry[key] = modifier


def load_global_modifier(key: str) -> AttrModifier:
    """Return the modifier registered under ``key``."""
    with _registry_lock:
        modifier = _registry.get(key)
    if modifier is None:
        raise LookupError(f"no modifier found with name '{key}'")
    return modifier