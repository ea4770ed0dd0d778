from dataclasses import dataclass

import pytest

from ksqlkit.builder import (
    Builder,
    Insert,
    OrderByQuery,
    Query,
    WhereQueries,
    order_by,
    where,
    where_if,
)
from ksqlkit.structs import ksql_field


class _PostgresLike:
    def escape(self, name):
        return f'"{name}"'

    def placeholder(self, idx):
        return f"${idx + 1}"


@dataclass
class User:
    name: str = ksql_field("name", default="")
    age: int = ksql_field("age", default=0)


@dataclass
class NoTags:
    name: str = ""


NULL_FIELD = None


@pytest.fixture
def builder():
    return Builder(dialect=_PostgresLike())


def _full_where():
    return (
        where("foo < %s", 42)
        .where("bar LIKE %s", "%ending")
        .where_if("foobar = %s", NULL_FIELD)
    )


def test_insert_single_record(builder):
    query, params = builder.build(Insert(into="users", data=User(name="foo", age=42)))
    assert query == 'INSERT INTO "users" ("name", "age") VALUES ($1, $2)'
    assert params == ["foo", 42]


def test_insert_multiple_records(builder):
    query, params = builder.build(
        Insert(into="users", data=[User(name="foo", age=42), User(name="bar", age=43)])
    )
    assert query == 'INSERT INTO "users" ("name", "age") VALUES ($1, $2), ($3, $4)'
    assert params == ["foo", 42, "bar", 43]


@pytest.mark.parametrize(
    "insert",
    [
        Insert(into="users"),
        Insert(data=User(name="foo", age=42)),
        Insert(into="users", data=[]),
    ],
)
def test_insert_errors(builder, insert):
    with pytest.raises(ValueError):
        builder.build(insert)


def test_insert_rejects_non_dataclass_data(builder):
    with pytest.raises(TypeError, match="dataclass"):
        builder.build(Insert(into="users", data=[1, 2]))


@pytest.mark.parametrize(
    "query,expected",
    [
        (
            Query(select=User, from_="users", where=_full_where(),
                  order_by=order_by("id").desc(), offset=100, limit=10),
            'SELECT "name", "age" FROM users WHERE foo < $1 AND bar LIKE $2 '
            "ORDER BY id DESC LIMIT 10 OFFSET 100",
        ),
        (
            Query(select=User(), from_="users", where=_full_where(),
                  order_by=order_by("id").desc(), limit=10),
            'SELECT "name", "age" FROM users WHERE foo < $1 AND bar LIKE $2 '
            "ORDER BY id DESC LIMIT 10",
        ),
        (
            Query(select=User, from_="users", where=_full_where(),
                  order_by=order_by("id").desc(), offset=100),
            'SELECT "name", "age" FROM users WHERE foo < $1 AND bar LIKE $2 '
            "ORDER BY id DESC OFFSET 100",
        ),
        (
            Query(select=User, from_="users", where=_full_where(), offset=100, limit=10),
            'SELECT "name", "age" FROM users WHERE foo < $1 AND bar LIKE $2 '
            "LIMIT 10 OFFSET 100",
        ),
    ],
)
def test_select_queries(builder, query, expected):
    sql, params = builder.build(query)
    assert sql == expected
    assert params == [42, "%ending"]


def test_select_without_where(builder):
    sql, params = builder.build(
        Query(select=User, from_="users", order_by=order_by("id").desc(),
              offset=100, limit=10)
    )
    assert sql == 'SELECT "name", "age" FROM users ORDER BY id DESC LIMIT 10 OFFSET 100'
    assert params == []


def test_select_requires_from(builder):
    with pytest.raises(ValueError, match="from_"):
        builder.build(
            Query(select=User, where=_full_where(), order_by=order_by("id").desc(),
                  offset=100, limit=10)
        )


def test_select_with_string_columns(builder):
    sql, params = builder.build(Query(select="id, name", from_="users", where=where("id = %s", 7)))
    assert sql == "SELECT id, name FROM users WHERE id = $1"
    assert params == [7]


def test_select_with_invalid_select(builder):
    with pytest.raises(ValueError, match="select field"):
        builder.build(Query(select=42, from_="users"))


def test_select_with_untagged_dataclass(builder):
    with pytest.raises(ValueError, match="select field"):
        builder.build(Query(select=NoTags, from_="users"))


def test_where_if_adds_condition_when_value_present():
    conditions = where_if("foo = %s", 0)
    assert len(conditions) == 1
    assert conditions.build(_PostgresLike()) == ("foo = $1", [0])


def test_where_if_skips_none():
    assert where_if("foo = %s", None) == WhereQueries()


def test_where_is_immutable():
    base = where("a = %s", 1)
    extended = base.where("b = %s", 2)
    assert len(base) == 1
    assert extended.build(_PostgresLike()) == ("a = $1 AND b = $2", [1, 2])


def test_where_with_mismatched_params():
    with pytest.raises(ValueError):
        where("a = %s AND b = %s", 1).build(_PostgresLike())


def test_order_by_desc():
    assert order_by("id").desc() == OrderByQuery(fields="id", descending=True)
    assert order_by("id").descending is False