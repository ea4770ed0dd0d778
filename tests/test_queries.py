import json
from dataclasses import dataclass

import pytest

from ksqlkit.queries import (
    MYSQL,
    POSTGRES,
    SQLITE3,
    SQLSERVER,
    InsertMethod,
    KsqlError,
    NoValuesToUpdateError,
    Table,
    build_delete_query,
    build_insert_query,
    build_select_query,
    build_update_query,
    first_token,
    normalize_ids_as_map,
    validate_ids_present,
)
from ksqlkit.structs import get_tag_info, ksql_field, nested_field


@dataclass
class User:
    id: int = ksql_field("id", default=0)
    name: str = ksql_field("name", default="")
    age: int = ksql_field("age", default=0)


@dataclass
class Address:
    state: str = ""


@dataclass
class Profile:
    id: int = ksql_field("id", default=0)
    address: Address = ksql_field("address,json", default_factory=Address)
    created: str = ksql_field("created,skipInserts", default="")
    locked: str = ksql_field("locked,skipUpdates", default="")


@dataclass
class UserPost:
    user_id: int = ksql_field("user_id", default=0)
    post_id: int = ksql_field("post_id", default=0)
    title: str = ksql_field("title", default="")


@dataclass
class Post:
    id: int = ksql_field("id", default=0)
    title: str = ksql_field("title", default="")


@dataclass
class UserWithPost:
    user: User = nested_field("users", default_factory=User)
    post: Post = nested_field("posts", default_factory=Post)


@dataclass
class BadNested:
    user: int = nested_field("users", default=0)


@dataclass
class OnlyID:
    id: int = ksql_field("id", default=0)


USERS = Table("users")


def test_first_token():
    assert first_token("  SELECT * FROM users") == "SELECT"
    assert first_token("\nFROM\tusers") == "FROM"
    assert first_token("   ") == ""


def test_dialect_conventions():
    assert POSTGRES.placeholder(0) == "$1"
    assert POSTGRES.escape("users") == '"users"'
    assert SQLITE3.placeholder(5) == SQLITE3.placeholder(0)
    assert SQLSERVER.escape("users").startswith("[")


def test_table_defaults_and_validation():
    assert Table("users").id_columns == ("id",)
    assert Table("user_posts", "user_id", "post_id").id_columns == ("user_id", "post_id")
    with pytest.raises(KsqlError):
        Table("").validate()
    with pytest.raises(KsqlError):
        Table("users", "").validate()


def test_table_insert_method_for():
    composite = Table("user_posts", "user_id", "post_id")
    assert USERS.insert_method_for(SQLITE3) is InsertMethod.LAST_INSERT_ID
    assert composite.insert_method_for(SQLITE3) is InsertMethod.NO_ID_RETRIEVAL
    assert composite.insert_method_for(MYSQL) is InsertMethod.NO_ID_RETRIEVAL
    assert composite.insert_method_for(POSTGRES) is InsertMethod.RETURNING
    assert composite.insert_method_for(SQLSERVER) is InsertMethod.OUTPUT


def test_build_insert_query_postgres():
    record = User(name="foo", age=42)
    query, params, id_attrs = build_insert_query(POSTGRES, USERS, record, get_tag_info(User))
    assert query == 'INSERT INTO "users" ("name", "age") VALUES ($1, $2) RETURNING "id"'
    assert params == ["foo", 42]
    assert id_attrs == ["id"]


def test_build_insert_query_keeps_set_ids():
    record = User(id=7, name="foo", age=42)
    query, params, _ = build_insert_query(POSTGRES, USERS, record, get_tag_info(User))
    assert params == [7, "foo", 42]
    assert query.count("$") == len(params)


def test_build_insert_query_default_values():
    table = Table("things")
    query, params, id_attrs = build_insert_query(SQLITE3, table, OnlyID(), get_tag_info(OnlyID))
    assert query == "INSERT INTO `things` DEFAULT VALUES"
    assert params == []
    assert id_attrs == []

    mysql_query, _, _ = build_insert_query(MYSQL, table, OnlyID(), get_tag_info(OnlyID))
    assert "DEFAULT VALUES" not in mysql_query
    assert mysql_query.startswith("INSERT INTO `things` (")


def test_build_insert_query_sqlserver_output():
    query, params, id_attrs = build_insert_query(
        SQLSERVER, USERS, User(name="foo", age=1), get_tag_info(User)
    )
    assert "OUTPUT INSERTED.[id] VALUES (@p1, @p2)" in query
    assert params == ["foo", 1]
    assert id_attrs == ["id"]


def test_build_insert_query_applies_modifiers():
    record = Profile(address=Address(state="MG"), created="c", locked="l")
    info = get_tag_info(Profile)
    query, params, _ = build_insert_query(POSTGRES, Table("profiles"), record, info)
    assert '"created"' not in query
    assert '"locked"' in query
    assert json.loads(params[0]) == {"state": "MG"}
    assert isinstance(params[0], bytes)

    _, sqlserver_params, _ = build_insert_query(SQLSERVER, Table("profiles"), record, info)
    assert json.loads(sqlserver_params[0]) == {"state": "MG"}
    assert isinstance(sqlserver_params[0], str)


def test_build_update_query():
    record_map = {"id": 1, "name": "a", "age": 2}
    query, params = build_update_query(POSTGRES, "users", get_tag_info(User), record_map, "id")
    assert query == 'UPDATE "users" SET "name" = $1, "age" = $2 WHERE "id" = $3'
    assert params == ["a", 2, 1]
    assert record_map == {"id": 1, "name": "a", "age": 2}


def test_build_update_query_without_values():
    with pytest.raises(NoValuesToUpdateError) as exc_info:
        build_update_query(POSTGRES, "users", get_tag_info(User), {"id": 1}, "id")
    assert isinstance(exc_info.value, KsqlError)


def test_build_update_query_id_errors():
    info = get_tag_info(User)
    with pytest.raises(KsqlError, match="missing required id field"):
        build_update_query(POSTGRES, "users", info, {"name": "a", "age": 2}, "id")
    with pytest.raises(KsqlError, match="invalid value"):
        build_update_query(POSTGRES, "users", info, {"id": 0, "name": "a"}, "id")


def test_build_update_query_skips_and_modifiers():
    record_map = {"id": 1, "locked": "x", "address": Address(state="SP")}
    query, params = build_update_query(
        POSTGRES, "profiles", get_tag_info(Profile), record_map, "id"
    )
    assert '"locked"' not in query
    assert json.loads(params[0]) == {"state": "SP"}
    assert params[-1] == 1


def test_build_delete_query_composite_key():
    table = Table("user_posts", "user_id", "post_id")
    query, params = build_delete_query(POSTGRES, table, {"post_id": 2, "user_id": 1})
    assert query == 'DELETE FROM "user_posts" WHERE "user_id" = $1 AND "post_id" = $2'
    assert params == [1, 2]


def test_normalize_ids_as_map():
    assert normalize_ids_as_map(["id"], 42) == {"id": 42}
    assert normalize_ids_as_map(["user_id", "post_id"], {"user_id": 1, "post_id": 2}) == {
        "user_id": 1,
        "post_id": 2,
    }
    from_record = normalize_ids_as_map(
        ["user_id", "post_id"], UserPost(user_id=1, post_id=2, title="t")
    )
    assert from_record["user_id"] == 1
    assert from_record["post_id"] == 2


def test_normalize_ids_as_map_errors():
    with pytest.raises(KsqlError, match="missing idNames"):
        normalize_ids_as_map([], 42)
    with pytest.raises(KsqlError, match="post_id"):
        normalize_ids_as_map(["user_id", "post_id"], UserPost(user_id=1))
    with pytest.raises(KsqlError, match="invalid value"):
        normalize_ids_as_map(["id"], None)
    with pytest.raises(TypeError):
        normalize_ids_as_map(["id"], {1: 2})


def test_validate_ids_present():
    validate_ids_present(["id"], {"id": 3})
    with pytest.raises(KsqlError, match="`id`"):
        validate_ids_present(["id"], {"name": "x"})
    with pytest.raises(KsqlError, match="'id'"):
        validate_ids_present(["id"], {"id": ""})


def test_build_select_query_plain():
    info = get_tag_info(User)
    query = build_select_query(POSTGRES, User, info)
    assert query == 'SELECT "id", "name", "age" '
    assert build_select_query(POSTGRES, User, info) == query
    assert build_select_query(SQLITE3, User, info) == "SELECT `id`, `name`, `age` "


def test_build_select_query_nested():
    info = get_tag_info(UserWithPost)
    query = build_select_query(POSTGRES, UserWithPost, info)
    assert query == (
        'SELECT "users"."id", "users"."name", "users"."age", '
        '"posts"."id", "posts"."title" '
    )


def test_build_select_query_nested_requires_dataclass():
    with pytest.raises(KsqlError, match="tablename"):
        build_select_query(POSTGRES, BadNested, get_tag_info(BadNested))