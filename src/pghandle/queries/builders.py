"""
SQL statement builders

Each builder takes a validated options model and returns the SQL text with
``?`` placeholders together with the parameter list, in placeholder order.
"""

from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import ColumnValueCountMismatchError
from .clauses import WhereClause, strip_keyword

Columns = Union[Dict[str, Any], List[str], str, None]
Where = Union[WhereClause, str, None]


class Statement(NamedTuple):
    """SQL text and its parameters"""
    sql: str
    params: List[Any]


class MergeStatements(NamedTuple):
    """The INSERT/UPDATE pair consumed by merge"""
    insert_sql: str
    insert_params: List[Any]
    update_sql: str
    update_params: List[Any]


class _TableOptions(BaseModel):
    model_config = ConfigDict(extra='forbid')

    table: str = Field(..., min_length=1, description="Table name")

    @field_validator('table')
    @classmethod
    def validate_table(cls, v):
        if not v.strip():
            raise ValueError("table must not be blank")
        return v.strip()


class SelectOptions(_TableOptions):
    """Options for build_select"""
    columns: Union[List[str], str, None] = Field(None, description="Columns to select, defaults to *")
    where: Where = Field(None, description="WhereClause or raw WHERE fragment")
    where_params: Optional[List[Any]] = Field(None, description="Parameters for a raw WHERE fragment")
    order_by: Optional[str] = Field(None, description="ORDER BY fragment, see order_by_helper")
    limit: Optional[int] = Field(None, ge=0, description="Maximum rows, None for no limit")
    start: int = Field(0, ge=0, description="Row offset used together with limit")


class InsertOptions(_TableOptions):
    """Options for build_insert"""
    columns: Columns = Field(None, description="Mapping of column to value, or column names")
    values: Optional[List[Any]] = Field(None, description="Values matching a column list")


class UpdateOptions(_TableOptions):
    """Options for build_update"""
    columns: Union[Dict[str, Any], List[str], str] = Field(..., description="Mapping of column to value, or column names")
    values: Optional[List[Any]] = None
    where: Where = None
    where_params: Optional[List[Any]] = None


class DeleteOptions(_TableOptions):
    """Options for build_delete"""
    where: Where = None
    where_params: Optional[List[Any]] = None
    limit: Optional[int] = Field(None, ge=0)


class MergeOptions(UpdateOptions):
    """Options for build_merge_pair"""


def split_columns(columns: Columns, values: Optional[List[Any]],
                  helper: str) -> Tuple[Optional[List[str]], List[Any]]:
    """
    Normalize the column/value forms accepted by the write builders.

    Returns:
        (column names or None, values)

    Raises:
        ColumnValueCountMismatchError: when both are given and differ in length,
            or when there is nothing to write
    """
    if columns is None:
        if not values:
            raise ColumnValueCountMismatchError(f"{helper}: No values to write.")
        return None, list(values)

    if isinstance(columns, dict):
        names = list(columns.keys())
        column_values = list(columns.values())
    else:
        if isinstance(columns, str):
            names = [name.strip() for name in columns.split(",") if name.strip()]
        else:
            names = list(columns)
        column_values = list(values) if values is not None else None

    if column_values is None or not names or len(names) != len(column_values):
        raise ColumnValueCountMismatchError(f"{helper}: Number of Columns and Values do not match.")

    return names, column_values


def where_fragment(where: Where, where_params: Optional[List[Any]]) -> Tuple[Optional[str], List[Any]]:
    """Resolve a WhereClause or raw fragment into (sql, params)"""
    if where is None:
        return None, []
    if isinstance(where, WhereClause):
        return (where.sql or None), list(where.params)

    fragment = strip_keyword(where, "where")
    if not fragment:
        return None, []
    return fragment, list(where_params or [])


def _placeholders(count: int) -> str:
    return ",".join("?" for _ in range(count))


def build_select(options: SelectOptions) -> Statement:
    """
    Build a SELECT statement.

    Example:
        build_select(SelectOptions(table="users", columns=["username", "email"],
                                   where=where_helper({"username -like": "h%"})))
        -> Statement("SELECT username,email FROM users WHERE username LIKE ?;", ["h%"])
    """
    if isinstance(options.columns, list):
        columns = ",".join(options.columns) if options.columns else "*"
    else:
        columns = options.columns or "*"

    sql = f"SELECT {columns} FROM {options.table}"

    where_sql, params = where_fragment(options.where, options.where_params)
    if where_sql:
        sql += f" WHERE {where_sql}"

    if options.order_by:
        order_by = strip_keyword(options.order_by, "order by")
        if order_by:
            sql += f" ORDER BY {order_by}"

    if options.limit is not None:
        sql += f" LIMIT {options.limit} OFFSET {options.start}"

    return Statement(sql + ";", params)


def build_insert(options: InsertOptions) -> Statement:
    """Build an INSERT statement; columns are optional when values follow table order"""
    names, values = split_columns(options.columns, options.values, "InsertHelper")

    sql = f"INSERT INTO {options.table}"
    if names:
        sql += f" ({','.join(names)})"
    sql += f" VALUES ({_placeholders(len(values))});"

    return Statement(sql, values)


def build_update(options: UpdateOptions) -> Statement:
    """Build an UPDATE statement; SET parameters come before WHERE parameters"""
    names, values = split_columns(options.columns, options.values, "UpdateHelper")

    assignments = ",".join(f"{name}=?" for name in names)
    sql = f"UPDATE {options.table} SET {assignments}"
    params = list(values)

    where_sql, where_params = where_fragment(options.where, options.where_params)
    if where_sql:
        sql += f" WHERE {where_sql}"
        params.extend(where_params)

    return Statement(sql + ";", params)


def build_delete(options: DeleteOptions) -> Statement:
    """Build a DELETE statement"""
    sql = f"DELETE FROM {options.table}"

    where_sql, params = where_fragment(options.where, options.where_params)
    if where_sql:
        sql += f" WHERE {where_sql}"

    if options.limit is not None:
        sql += f" LIMIT {options.limit}"

    return Statement(sql + ";", params)


def build_merge_pair(options: MergeOptions) -> MergeStatements:
    """
    Build the INSERT and UPDATE statements used by merge.

    The insert receives every value; the update receives the SET values
    followed by the WHERE values.
    """
    names, values = split_columns(options.columns, options.values, "MergeHelper")
    insert = build_insert(InsertOptions(table=options.table, columns=names, values=values))
    update = build_update(options)
    return MergeStatements(insert.sql, insert.params, update.sql, update.params)
