# ksqlkit

ksqlkit describes database records as dataclasses and builds SQL from them.
It can:

- read which fields map to which columns;
- build `SELECT`, `INSERT`, `UPDATE` and `DELETE` statements for
  PostgreSQL, SQLite, MySQL and SQL Server;
- encode and decode field values through named modifiers;
- fill records from plain dicts in tests.

It has no runtime dependencies.

## Installing

```
pip install ksqlkit
```

## Describing records

A record is a dataclass. Each field that maps to a column is declared with
`ksqlkit.structs.ksql_field`. Fields declared without it are ignored.

```python
from dataclasses import dataclass

from ksqlkit.structs import ksql_field


@dataclass
class User:
    id: int = ksql_field("id", default=0)
    name: str = ksql_field("name", default="")
    age: int = ksql_field("age", default=0)
```

Some records are rejected with a `ValueError`:

- a field name that starts with an underscore;
- two fields tagged with the same column name;
- a record with no tagged field at all.

`get_tag_info(User)` returns a cached `StructInfo`. It looks fields up
with `by_index` and `by_name`. A column name can also be looked up in lower
case.

`struct_to_map(record)` returns a dict of column name to value. Fields
holding `None` are left out unless their modifier is nullable.

A record can also describe a join. Its fields are other records, each
tagged with `nested_field("table_name")`. For such a record,
`StructInfo.is_nested_struct` is true.

## Modifiers

A tag may name a modifier after a comma, e.g. `ksql_field("address,json")`.
The built-in modifiers are:

| Name | Effect |
| --- | --- |
| `json` | Encodes the value as JSON: bytes, or a string for the `sqlserver` driver. Decodes JSON from bytes or text. |
| `json/nullable` | Same as `json`, and keeps `None` values. |
| `timeNowUTC` | Sends the current UTC time. |
| `timeNowUTC/skipUpdates` | Same as `timeNowUTC`, and leaves the column out of updates. |
| `skipUpdates` | Leaves the column out of updates. |
| `skipInserts` | Leaves the column out of inserts. |
| `nullable` | Keeps `None` values. |

To add your own modifier, register an `AttrModifier` with
`ksqlkit.modifiers.register_attr_modifier`:

```python
from ksqlkit.modifiers import AttrModifier, register_attr_modifier

register_attr_modifier(
    "upper",
    AttrModifier(value=lambda op_info, value: value.upper()),
)
```

A valuer is called with an `OpInfo` (method and driver name) and the
attribute value. A scanner is called with the `OpInfo`, the current
attribute value and the database value, and returns the new attribute
value. Registering a name that is already taken raises `ValueError`.
`load_global_modifier` raises `LookupError` for unknown names.

## Dialects and tables

`ksqlkit.queries` defines the dialects `POSTGRES`, `SQLITE3`, `MYSQL` and
`SQLSERVER`. They are also available by driver name in
`SUPPORTED_DIALECTS`. Each `Dialect` quotes identifiers (`escape`), writes
parameter placeholders (`placeholder`) and says how inserted ids are read
back (`InsertMethod`).

`Table("users")` names a table. Its id column defaults to `"id"`. For a
composite key, pass several columns: `Table("user_posts", "user_id", "post_id")`.

## Building statements from records

```python
from ksqlkit.queries import (
    POSTGRES, Table, build_delete_query, build_insert_query,
    build_select_query, build_update_query, normalize_ids_as_map,
)
from ksqlkit.structs import get_tag_info, struct_to_map

users = Table("users")
info = get_tag_info(User)

sql, params, id_attrs = build_insert_query(POSTGRES, users, User(name="Alison", age=22), info)
# INSERT INTO "users" ("name", "age") VALUES ($1, $2) RETURNING "id"
# params == ["Alison", 22], id_attrs == ["id"]

sql, params = build_update_query(
    POSTGRES, "users", info, struct_to_map(User(id=7, name="Alison", age=22)), "id"
)
# UPDATE "users" SET "name" = $1, "age" = $2 WHERE "id" = $3
# params == ["Alison", 22, 7]

sql, params = build_delete_query(POSTGRES, users, normalize_ids_as_map(users.id_columns, 7))
# DELETE FROM "users" WHERE "id" = $1

prefix = build_select_query(POSTGRES, User, info)
# 'SELECT "id", "name", "age" '
```

Notes on these functions:

- **Inserts.** Id columns holding a zero value are left out of the insert.
  Value modifiers are applied to the parameters.
- **Updates.** An update with nothing but id columns raises
  `NoValuesToUpdateError`.
- **Ids.** `normalize_ids_as_map` accepts a record, a mapping or a bare id.
  It raises `KsqlError` when an id is missing or zero.
- **Select prefix.** `first_token` returns the first word of a query. A
  caller can use it to decide whether to prepend the `SELECT` prefix.

## Query builder

`ksqlkit.builder` renders query templates for a dialect:

```python
from ksqlkit.builder import Builder, Insert, Query, order_by, where
from ksqlkit.queries import POSTGRES

builder = Builder(POSTGRES)

sql, params = builder.build(Query(
    select=User,
    from_="users",
    where=where("age > %s", 18).where("name LIKE %s", "A%"),
    order_by=order_by("id").desc(),
    limit=10,
))
# SELECT "id", "name", "age" FROM users WHERE age > $1 AND name LIKE $2 ORDER BY id DESC LIMIT 10
# params == [18, "A%"]

sql, params = builder.build(Insert(
    into="users",
    data=[User(name="Alison", age=22), User(name="Cris", age=27)],
))
# INSERT INTO "users" ("id", "name", "age") VALUES ($1, $2, $3), ($4, $5, $6)
```

How templates are built:

- **Conditions.** Each `%s` in a condition becomes the dialect's
  placeholder.
- **Optional conditions.** `where_if` adds its condition only when the
  parameter is not `None`.
- **Column lists.** `select` may also be a column list written in SQL.
- **Required parts.** A `Query` without `from_` raises `ValueError`. So
  does an `Insert` without `into`, without `data`, or with an empty list.

## Helpers for tests

`ksqlkit.testhelpers` builds records from dicts, so tests can fake rows:

- `fill_struct_with(record, row)` sets fields from a column-to-value dict.
  - Unknown columns are ignored.
  - `None` becomes the field's zero value unless the field is optional.
  - Incompatible values raise `TypeError`.
- `fill_list_with(records, User, rows)` updates records already in the
  list and appends new ones for the remaining rows.
- `call_function_with_rows(fn, rows)` calls a chunk callback with records
  built from `rows`. The callback must take one parameter annotated as
  `list[SomeDataclass]` and return `None`.
- `struct_to_map` is re-exported here.

## What this package does not do

ksqlkit does not connect to a database. It has no client object and no
adapter interface. It does not run statements, scan result rows,
stream results in chunks or manage transactions. It produces SQL text and
parameters. Running them is left to whatever database library you use.