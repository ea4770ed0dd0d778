"""SQL dialects, table descriptions and the statements built from records."""

from __future__ import annotations

import dataclasses
import enum
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .modifiers import AttrValueWrapper, OpInfo
from .structs import StructInfo, get_tag_info, struct_to_map


class KsqlError(Exception):
    """Base class for errors reported by this package."""


class RecordNotFoundError(KsqlError):
    """The query matched no record."""

    def __init__(self, message: str = "ksql: the query returned no results") -> None:
        super().__init__(message)


class NoValuesToUpdateError(KsqlError):
    """A patch was requested with nothing but the id columns."""

    def __init__(
        self, message: str = "ksql: the input struct contains no values to update"
    ) -> None:
        super().__init__(message)


class InsertMethod(enum.Enum):
    """How a dialect reports the ids of newly inserted rows."""

    RETURNING = "returning"
    OUTPUT = "output"
    LAST_INSERT_ID = "last_insert_id"
    NO_ID_RETRIEVAL = "no_id_retrieval"


@dataclass(frozen=True)
class Dialect:
    """Quoting, placeholder and insert conventions of one database."""

    driver_name: str
    insert_method: InsertMethod
    quotes: Tuple[str, str] = ('"', '"')
    # Formatted with ``n``, the one-based position of the parameter.
    placeholder_format: str = "?"

    def escape(self, name: str) -> str:
        """Quote ``name`` so it is read as an identifier."""
        opening, closing = self.quotes
        return f"{opening}{name}{closing}"

    def placeholder(self, idx: int) -> str:
        """Placeholder for the parameter at zero-based position ``idx``."""
        return self.placeholder_format.format(n=idx + 1)


POSTGRES = Dialect("postgres", InsertMethod.RETURNING, ('"', '"'), "${n}")
SQLITE3 = Dialect("sqlite3", InsertMethod.LAST_INSERT_ID, ("`", "`"), "?")
MYSQL = Dialect("mysql", InsertMethod.LAST_INSERT_ID, ("`", "`"), "?")
SQLSERVER = Dialect("sqlserver", InsertMethod.OUTPUT, ("[", "]"), "@p{n}")

SUPPORTED_DIALECTS: Dict[str, Dialect] = {
    dialect.driver_name: dialect for dialect in (POSTGRES, SQLITE3, MYSQL, SQLSERVER)
}


@dataclass(frozen=True, init=False)
class Table:
    """A table name and its primary key columns (``"id"`` when none are given)."""

    name: str
    id_columns: Tuple[str, ...]

    def __init__(self, name: str, *id_columns: str) -> None:
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "id_columns", tuple(id_columns) or ("id",))

    def validate(self) -> None:
        """Raise KsqlError if the table description cannot be used."""
        if not self.name:
            raise KsqlError("table name cannot be an empty string")
        if not self.id_columns:
            raise KsqlError("ksql.Table must have at least one ID column")
        if any(not column for column in self.id_columns):
            raise KsqlError("ksql.Table ID columns cannot be empty strings")

    def insert_method_for(self, dialect: Dialect) -> InsertMethod:
        """How ids can be read back after an insert into this table."""
        if len(self.id_columns) == 1:
            return dialect.insert_method
        # A last-insert id cannot describe a composite key.
        if dialect.insert_method is InsertMethod.LAST_INSERT_ID:
            return InsertMethod.NO_ID_RETRIEVAL
        return dialect.insert_method


def first_token(text: str) -> str:
    """The first whitespace-separated word of ``text``, or an empty string."""
    parts = text.split(maxsplit=1)
    return parts[0] if parts else ""


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (bool, int, float, complex, str, bytes, bytearray)):
        return not value
    return False


def validate_ids_present(id_names: Sequence[str], id_map: Mapping[str, Any]) -> None:
    """Raise KsqlError unless every id column has a non-zero value."""
    for id_name in id_names:
        if id_name not in id_map:
            raise KsqlError(f"missing required id field `{id_name}` on input record")
        value = id_map[id_name]
        if _is_zero(value):
            raise KsqlError(
                f"invalid value '{value}' received for id column: '{id_name}'"
            )


def normalize_ids_as_map(id_names: Sequence[str], id_or_record: Any) -> Dict[str, Any]:
    """Turn a record, a mapping or a bare id into a column-to-id map."""
    if not id_names:
        raise KsqlError("internal ksql error: missing idNames")

    if isinstance(id_or_record, type):
        raise TypeError(
            f"expected a record, a mapping or an id but got the type {id_or_record.__name__}"
        )

    if dataclasses.is_dataclass(id_or_record):
        try:
            id_map = struct_to_map(id_or_record)
        except (TypeError, ValueError) as exc:
            raise KsqlError(f"could not get ID(s) from input record: {exc}") from exc
    elif isinstance(id_or_record, Mapping):
        if not all(isinstance(key, str) for key in id_or_record):
            raise TypeError(
                f"expected a mapping with string keys but got {id_or_record!r}"
            )
        id_map = dict(id_or_record)
    else:
        id_map = {id_names[0]: id_or_record}

    validate_ids_present(id_names, id_map)
    return id_map


def _apply_valuer(info: StructInfo, column: str, value: Any, dialect: Dialect, method: str) -> Any:
    value_fn = info.by_name(column).modifier.value
    if value_fn is None:
        return value
    wrapper = AttrValueWrapper(
        attr=value,
        value_fn=value_fn,
        op_info=OpInfo(method=method, driver_name=dialect.driver_name),
    )
    return wrapper.value()


def build_insert_query(
    dialect: Dialect, table: Table, record: Any, info: StructInfo
) -> Tuple[str, List[Any], List[str]]:
    """Build an INSERT for ``record``.

    Returns the query, its parameters (with value modifiers already applied)
    and the attribute names that receive the ids the database returns.
    """
    record_map = struct_to_map(record)

    # Ids that were not set are left for the database to generate.
    for id_name in table.id_columns:
        if id_name in record_map and _is_zero(record_map[id_name]):
            del record_map[id_name]

    columns = [
        column
        for column in record_map
        if not info.by_name(column).modifier.skip_on_insert
    ]

    params = [
        _apply_valuer(info, column, record_map[column], dialect, "Insert")
        for column in columns
    ]
    placeholders = [dialect.placeholder(idx) for idx in range(len(columns))]
    escaped_columns = [dialect.escape(column) for column in columns]

    returning_query = ""
    output_query = ""
    id_attrs: List[str] = []
    if dialect.insert_method in (InsertMethod.RETURNING, InsertMethod.OUTPUT):
        for id_name in table.id_columns:
            field_info = info.by_name(id_name)
            if not field_info.valid:
                raise KsqlError(
                    f"missing id field `{id_name}` on record type {type(record).__name__}"
                )
            id_attrs.append(field_info.attr_name)

        if dialect.insert_method is InsertMethod.RETURNING:
            returning_query = " RETURNING " + ", ".join(
                dialect.escape(id_name) for id_name in table.id_columns
            )
        else:
            output_query = " OUTPUT " + ", ".join(
                "INSERTED." + dialect.escape(id_name) for id_name in table.id_columns
            )

    table_name = dialect.escape(table.name)
    if not columns and dialect.driver_name != "mysql":
        query = f"INSERT INTO {table_name}{output_query} DEFAULT VALUES{returning_query}"
        return query, params, id_attrs

    query = (
        f"INSERT INTO {table_name} ({', '.join(escaped_columns)}){output_query}"
        f" VALUES ({', '.join(placeholders)}){returning_query}"
    )
    return query, params, id_attrs


def build_update_query(
    dialect: Dialect,
    table_name: str,
    info: StructInfo,
    record_map: Mapping[str, Any],
    *args: str,
) -> Tuple[str, List[Any]]:
    """Build an UPDATE setting every non-id column of ``record_map``.

    ``args`` are the id column names used in the WHERE clause.
    """
    id_names = args
    values = {
        key: value
        for key, value in record_map.items()
        if not info.by_name(key).modifier.skip_on_update
    }

    num_non_id = len(values) - len(id_names)
    if num_non_id == 0:
        raise NoValuesToUpdateError()

    validate_ids_present(id_names, values)

    where_parts = []
    where_params = []
    for offset, id_name in enumerate(id_names):
        where_parts.append(
            f"{dialect.escape(id_name)} = {dialect.placeholder(num_non_id + offset)}"
        )
        where_params.append(values.pop(id_name))

    set_parts = []
    set_params = []
    for idx, (key, value) in enumerate(values.items()):
        set_params.append(_apply_valuer(info, key, value, dialect, "Update"))
        set_parts.append(f"{dialect.escape(key)} = {dialect.placeholder(idx)}")

    query = (
        f"UPDATE {dialect.escape(table_name)} SET {', '.join(set_parts)}"
        f" WHERE {' AND '.join(where_parts)}"
    )
    return query, set_params + where_params


def build_delete_query(
    dialect: Dialect, table: Table, id_map: Mapping[str, Any]
) -> Tuple[str, List[Any]]:
    """Build a DELETE matching every id column of ``table``."""
    where_parts = [
        f"{dialect.escape(id_name)} = {dialect.placeholder(idx)}"
        for idx, id_name in enumerate(table.id_columns)
    ]
    params = [id_map.get(id_name) for id_name in table.id_columns]
    query = f"DELETE FROM {dialect.escape(table.name)} WHERE {' AND '.join(where_parts)}"
    return query, params


_select_cache: Dict[Tuple[Dialect, type], str] = {}
_select_cache_lock = threading.Lock()


def _select_for_plain(dialect: Dialect, info: StructInfo) -> str:
    return "SELECT " + ", ".join(dialect.escape(item.column_name) for item in info) + " "


def _select_for_nested(dialect: Dialect, info: StructInfo) -> str:
    columns: List[str] = []
    for nested in info:
        nested_type = nested.annotation
        if not (isinstance(nested_type, type) and dataclasses.is_dataclass(nested_type)):
            raise KsqlError(
                f'expected nested struct with `tablename:"{nested.column_name}"` '
                f"to be a dataclass, but got {nested_type!r}"
            )
        prefix = dialect.escape(nested.column_name)
        columns.extend(
            f"{prefix}.{dialect.escape(item.column_name)}"
            for item in get_tag_info(nested_type)
        )
    return "SELECT " + ", ".join(columns) + " "


def build_select_query(dialect: Dialect, record_type: type, info: StructInfo) -> str:
    """The ``SELECT ... `` prefix listing the columns of ``record_type``."""
    key = (dialect, record_type)
    with _select_cache_lock:
        cached = _select_cache.get(key)
    if cached is not None:
        return cached

    if info.is_nested_struct:
        query = _select_for_nested(dialect, info)
    else:
        query = _select_for_plain(dialect, info)

    with _select_cache_lock:
        return _select_cache.setdefault(key, query)