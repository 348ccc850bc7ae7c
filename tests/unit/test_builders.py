"""Unit tests for the SQL statement builders."""

import pytest
from pydantic import ValidationError

from pghandle.exceptions import ColumnValueCountMismatchError
from pghandle.queries import (
    DeleteOptions,
    InsertOptions,
    MergeOptions,
    SelectOptions,
    UpdateOptions,
    build_delete,
    build_insert,
    build_merge_pair,
    build_select,
    build_update,
    order_by_helper,
    where_helper,
)


class TestBuildSelect:
    """Test SELECT building."""

    def test_defaults_to_star(self):
        sql, params = build_select(SelectOptions(table="users"))
        assert sql == "SELECT * FROM users;"
        assert params == []

    def test_full_statement(self):
        statement = build_select(SelectOptions(
            table="users",
            columns=["username", "email"],
            where=where_helper({"username -like": "h%"}),
            order_by=order_by_helper(["email"]),
            limit=10,
            start=20,
        ))
        assert statement.sql == (
            "SELECT username,email FROM users WHERE username LIKE ? "
            "ORDER BY email ASC LIMIT 10 OFFSET 20;"
        )
        assert statement.params == ["h%"]

    def test_limit_without_start(self):
        sql, _ = build_select(SelectOptions(table="users", limit=5))
        assert sql == "SELECT * FROM users LIMIT 5 OFFSET 0;"

    def test_raw_where_fragment_with_params(self):
        sql, params = build_select(SelectOptions(
            table="users", columns="id, name", where="WHERE id=? OR name=?", where_params=[1, "bob"]
        ))
        assert sql == "SELECT id, name FROM users WHERE id=? OR name=?;"
        assert params == [1, "bob"]

    def test_order_by_keyword_stripped(self):
        sql, _ = build_select(SelectOptions(table="users", order_by="ORDER BY name DESC"))
        assert sql == "SELECT * FROM users ORDER BY name DESC;"

    def test_where_clause_as_dict(self):
        sql, params = build_select(SelectOptions(table="t", where={"sql": "a=?", "params": [1]}))
        assert sql == "SELECT * FROM t WHERE a=?;"
        assert params == [1]

    def test_table_required(self):
        with pytest.raises(ValidationError):
            SelectOptions()
        with pytest.raises(ValidationError):
            SelectOptions(table="   ")

    def test_negative_limit_rejected(self):
        with pytest.raises(ValidationError):
            SelectOptions(table="users", limit=-1)

    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError):
            SelectOptions(table="users", wher="id=1")


class TestBuildInsert:
    """Test INSERT building."""

    def test_mapping_columns(self):
        sql, params = build_insert(InsertOptions(
            table="users", columns={"username": "tester", "email": "test@test.com"}
        ))
        assert sql == "INSERT INTO users (username,email) VALUES (?,?);"
        assert params == ["tester", "test@test.com"]

    def test_parallel_lists(self):
        sql, params = build_insert(InsertOptions(table="users", columns=["a", "b"], values=[1, 2]))
        assert sql == "INSERT INTO users (a,b) VALUES (?,?);"
        assert params == [1, 2]

    def test_comma_string_columns(self):
        sql, _ = build_insert(InsertOptions(table="users", columns="a, b", values=[1, 2]))
        assert sql == "INSERT INTO users (a,b) VALUES (?,?);"

    def test_values_only(self):
        sql, params = build_insert(InsertOptions(table="users", values=[1, "x", None]))
        assert sql == "INSERT INTO users VALUES (?,?,?);"
        assert params == [1, "x", None]

    @pytest.mark.parametrize("columns,values", [
        (["a", "b"], [1]),
        (["a"], [1, 2]),
        (["a", "b"], None),
        (None, None),
    ])
    def test_mismatch_raises(self, columns, values):
        with pytest.raises(ColumnValueCountMismatchError):
            build_insert(InsertOptions(table="users", columns=columns, values=values))


class TestBuildUpdate:
    """Test UPDATE building."""

    def test_set_params_precede_where_params(self):
        sql, params = build_update(UpdateOptions(
            table="users",
            columns={"email": "new@test.com", "banned": True},
            where=where_helper({"username": "tester", "id -not": 4}),
        ))
        assert sql == "UPDATE users SET email=?,banned=? WHERE username=? AND id != ?;"
        assert params == ["new@test.com", True, "tester", 4]

    def test_without_where(self):
        sql, params = build_update(UpdateOptions(table="users", columns=["active"], values=[False]))
        assert sql == "UPDATE users SET active=?;"
        assert params == [False]

    def test_raw_where(self):
        sql, params = build_update(UpdateOptions(
            table="users", columns={"a": 1}, where="id=?", where_params=[7]
        ))
        assert sql == "UPDATE users SET a=? WHERE id=?;"
        assert params == [1, 7]

    def test_mismatch_raises(self):
        with pytest.raises(ColumnValueCountMismatchError):
            build_update(UpdateOptions(table="users", columns=["a", "b"], values=[1]))

    def test_columns_required(self):
        with pytest.raises(ValidationError):
            UpdateOptions(table="users")


class TestBuildDelete:
    """Test DELETE building."""

    def test_where_and_limit(self):
        sql, params = build_delete(DeleteOptions(
            table="users", where=where_helper({"username": "tester"}), limit=1
        ))
        assert sql == "DELETE FROM users WHERE username=? LIMIT 1;"
        assert params == ["tester"]

    def test_bare_delete(self):
        sql, params = build_delete(DeleteOptions(table="sessions"))
        assert sql == "DELETE FROM sessions;"
        assert params == []


class TestBuildMergePair:
    """Test INSERT/UPDATE pair building."""

    def test_pair(self):
        statements = build_merge_pair(MergeOptions(
            table="users",
            columns={"username": "tester", "email": "test@test.com"},
            where=where_helper({"username": "tester"}),
        ))
        assert statements.insert_sql == "INSERT INTO users (username,email) VALUES (?,?);"
        assert statements.insert_params == ["tester", "test@test.com"]
        assert statements.update_sql == "UPDATE users SET username=?,email=? WHERE username=?;"
        assert statements.update_params == ["tester", "test@test.com", "tester"]

    def test_raw_where_params(self):
        statements = build_merge_pair(MergeOptions(
            table="t", columns=["a"], values=[1], where="id=?", where_params=[9]
        ))
        assert statements.update_params == [1, 9]
        assert statements.insert_params == [1]

    def test_mismatch_raises(self):
        with pytest.raises(ColumnValueCountMismatchError):
            build_merge_pair(MergeOptions(table="t", columns=["a", "b"], values=[1, 2, 3]))
