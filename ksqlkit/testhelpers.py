"""Helpers for tests that fake database results."""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, List, Mapping, Sequence

from .structs import (
    _type_hints,
    convert_value,
    get_tag_info,
    parse_input_func,
    struct_to_map,
)

__all__ = [
    "struct_to_map",
    "fill_struct_with",
    "fill_list_with",
    "call_function_with_rows",
]


def fill_struct_with(record: Any, db_row: Mapping[str, Any]) -> None:
    """Set the fields of ``record`` from a row given as a column-to-value map.

    Columns without a matching ``ksql`` field are ignored.
    """
    if isinstance(record, type) or not dataclasses.is_dataclass(record):
        raise TypeError(
            "fill_struct_with: expected input to be a dataclass instance "
            f"but got {type(record).__name__}"
        )

    info = get_tag_info(type(record))
    for column, raw_value in db_row.items():
        field_info = info.by_name(column)
        if not field_info.valid:
            continue
        try:
            value = convert_value(raw_value, field_info.annotation)
        except TypeError as exc:
            raise TypeError(
                f"fill_struct_with: error on field `{column}`: {exc}"
            ) from exc
        setattr(record, field_info.attr_name, value)


def _new_record(record_type: type) -> Any:
    hints = _type_hints(record_type)
    kwargs = {}
    for fld in dataclasses.fields(record_type):
        if not fld.init:
            continue
        if fld.default is not dataclasses.MISSING:
            continue
        if fld.default_factory is not dataclasses.MISSING:
            continue
        kwargs[fld.name] = convert_value(None, hints.get(fld.name, fld.type))
    return record_type(**kwargs)


def fill_list_with(
    records: List[Any], record_type: type, db_rows: Sequence[Mapping[str, Any]]
) -> None:
    """Fill ``records`` in place with one record per row.

    Records already in the list are updated; new ones are appended.
    """
    if not isinstance(records, list):
        raise TypeError(
            "fill_list_with: expected input to be a list of dataclasses "
            f"but got {type(records).__name__}"
        )
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise TypeError(
            f"fill_list_with: expected a dataclass record type but got {record_type!r}"
        )

    for idx, row in enumerate(db_rows):
        if idx >= len(records):
            try:
                records.append(_new_record(record_type))
            except TypeError as exc:
                raise TypeError(f"fill_list_with: {exc}") from exc
        try:
            fill_struct_with(records[idx], row)
        except TypeError as exc:
            raise TypeError(f"fill_list_with: {exc}") from exc


def call_function_with_rows(
    fn: Callable[[List[Any]], None], rows: Sequence[Mapping[str, Any]]
) -> None:
    """Call a chunk callback with records built from ``rows``."""
    record_type = parse_input_func(fn)
    chunk: List[Any] = []
    fill_list_with(chunk, record_type, rows)
    fn(chunk)