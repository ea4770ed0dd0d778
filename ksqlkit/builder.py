"""Building SELECT and INSERT statements from dataclass records."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Protocol, Tuple

from .structs import get_tag_info


class SqlDialect(Protocol):
    """What the builders need from a database dialect."""

    def escape(self, name: str) -> str:
        """Quote ``name`` so it is read as an identifier."""

    def placeholder(self, idx: int) -> str:
        """Return the parameter placeholder for the zero-based position ``idx``."""


class QueryBuilder(Protocol):
    """Anything that can render itself as SQL for a dialect."""

    def build_query(self, dialect: SqlDialect) -> Tuple[str, List[Any]]:
        """Return the SQL text and its parameters."""


def _is_record(obj: Any) -> bool:
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


@dataclass(frozen=True)
class Insert:
    """Template for an INSERT of one record or a list of records."""

    into: str = ""
    # A dataclass instance or a list of instances of the same dataclass.
    data: Any = None

    def build_query(self, dialect: SqlDialect) -> Tuple[str, List[Any]]:
        """Return the INSERT statement and its parameters."""
        if not self.into:
            raise ValueError(
                "expected the into attribute to contain the table name, "
                "but got an empty string instead"
            )
        if self.data is None:
            raise ValueError(
                "expected the data attribute to contain a record or a list of records, "
                "but got None"
            )

        records = list(self.data) if isinstance(self.data, (list, tuple)) else [self.data]
        if not records:
            raise ValueError("can't create an insertion query from an empty list of values")

        first = records[0]
        if not _is_record(first):
            raise TypeError(
                "expected data to be a dataclass instance or a list of them "
                f"but got: {type(first).__name__}"
            )
        record_type = type(first)
        for record in records:
            if type(record) is not record_type:
                raise TypeError(
                    f"expected every record to be of type {record_type.__name__} "
                    f"but got: {type(record).__name__}"
                )

        fields = list(get_tag_info(record_type))
        columns = ", ".join(dialect.escape(info.column_name) for info in fields)

        params: List[Any] = []
        values: List[str] = []
        for record in records:
            placeholders = []
            for info in fields:
                placeholders.append(dialect.placeholder(len(params)))
                params.append(getattr(record, info.attr_name))
            values.append("(" + ", ".join(placeholders) + ")")

        query = (
            f"INSERT INTO {dialect.escape(self.into)} ({columns}) VALUES "
            + ", ".join(values)
        )
        return query, params


@dataclass(frozen=True)
class WhereQuery:
    """One condition of a WHERE clause.

    Each ``%s`` in ``cond`` is replaced by the dialect's placeholder for
    the matching entry of ``params``.
    """

    cond: str
    params: Tuple[Any, ...] = ()


class WhereQueries(Tuple[WhereQuery, ...]):
    """An immutable list of conditions joined with AND."""

    def __new__(cls, items: Iterable[WhereQuery] = ()) -> "WhereQueries":
        return super().__new__(cls, tuple(items))

    def where(self, cond: str, *args: Any) -> "WhereQueries":
        """Return a copy with the condition ``cond`` added."""
        return WhereQueries((*self, WhereQuery(cond, tuple(args))))

    def where_if(self, cond: str, param: Any) -> "WhereQueries":
        """Return a copy with ``cond`` added, unless ``param`` is None."""
        if param is None:
            return self
        return WhereQueries((*self, WhereQuery(cond, (param,))))

    def build(self, dialect: SqlDialect) -> Tuple[str, List[Any]]:
        """Return the WHERE expression and its parameters."""
        conditions: List[str] = []
        params: List[Any] = []
        for item in self:
            placeholders = tuple(
                dialect.placeholder(len(params) + offset)
                for offset in range(len(item.params))
            )
            try:
                conditions.append(item.cond % placeholders)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"condition {item.cond!r} does not match its "
                    f"{len(item.params)} parameter(s): {exc}"
                ) from exc
            params.extend(item.params)
        return " AND ".join(conditions), params

    def __repr__(self) -> str:
        return f"WhereQueries({list(self)!r})"


def where(cond: str, *args: Any) -> WhereQueries:
    """Start a list of conditions with ``cond``."""
    return WhereQueries().where(cond, *args)


def where_if(cond: str, param: Any) -> WhereQueries:
    """Start a list of conditions with ``cond`` unless ``param`` is None."""
    return WhereQueries().where_if(cond, param)


@dataclass(frozen=True)
class OrderByQuery:
    """The ORDER BY part of a query."""

    fields: str = ""
    descending: bool = False

    def desc(self) -> "OrderByQuery":
        """Return a copy ordered in descending order."""
        return dataclasses.replace(self, descending=True)


def order_by(fields: str) -> OrderByQuery:
    """Order the results by ``fields``, ascending."""
    return OrderByQuery(fields=fields)


def _select_columns(obj: Any, dialect: SqlDialect) -> str:
    cls = obj if isinstance(obj, type) else type(obj)
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"expected to receive a dataclass, but got: {cls.__name__}")
    info = get_tag_info(cls)
    return ", ".join(dialect.escape(item.column_name) for item in info)


@dataclass(frozen=True)
class Query:
    """Template for a SELECT query."""

    # Either a dataclass (type or instance) or a column list in SQL syntax.
    select: Any = None
    # The FROM clause, e.g. "users JOIN posts USING(post_id)".
    from_: str = ""
    where: WhereQueries = field(default_factory=WhereQueries)
    limit: int = 0
    offset: int = 0
    order_by: OrderByQuery = field(default_factory=OrderByQuery)

    def build_query(self, dialect: SqlDialect) -> Tuple[str, List[Any]]:
        """Return the SELECT statement and its parameters."""
        if isinstance(self.select, str):
            parts = ["SELECT " + self.select]
        else:
            try:
                columns = _select_columns(self.select, dialect)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"error reading the select field: {exc}") from exc
            parts = ["SELECT " + columns]

        parts.append(" FROM " + self.from_)

        params: List[Any] = []
        if self.where:
            where_query, params = self.where.build(dialect)
            parts.append(" WHERE " + where_query)

        if not self.from_.strip():
            raise ValueError("the from_ field is mandatory for every query")

        if self.order_by.fields:
            parts.append(" ORDER BY " + self.order_by.fields)
            if self.order_by.descending:
                parts.append(" DESC")

        if self.limit > 0:
            parts.append(f" LIMIT {self.limit}")
        if self.offset > 0:
            parts.append(f" OFFSET {self.offset}")

        return "".join(parts), params


@dataclass(frozen=True)
class Builder:
    """Renders query templates for a fixed dialect."""

    dialect: SqlDialect

    def build(self, query: QueryBuilder) -> Tuple[str, List[Any]]:
        """Return the SQL text and parameters of ``query``."""
        return query.build_query(self.dialect)