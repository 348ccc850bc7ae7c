"""
WHERE and ORDER BY clause builders
"""

import re
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

# Split on whitespace outside double quotes
_KEY_PARTS = re.compile(r'(?:[^\s"]+|"[^"]*")+')

_OPERATORS = {
    'like': (' LIKE ', ' OR '),
    'notlike': (' NOT LIKE ', ' AND '),
    'not': (' != ', ' AND '),
}


class WhereClause(BaseModel):
    """Parameterized WHERE fragment for use with the statement builders"""

    sql: Optional[str] = None
    params: List[Any] = Field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.sql)


def _parse_key(key: str):
    """Return (column name, comparison operator, sequence joiner) for a where key"""
    parts = _KEY_PARTS.findall(key.strip())
    if not parts:
        raise ValueError(f"Invalid where key: {key!r}")

    name = parts[0]
    operator, joiner = '=', ' OR '
    for part in parts[1:]:
        flag = part.strip().lower()
        if flag.startswith('--'):
            flag = flag[2:]
        elif flag.startswith('-'):
            flag = flag[1:]
        if flag in _OPERATORS:
            operator, joiner = _OPERATORS[flag]
    return name, operator, joiner


def where_helper(variables: Optional[Mapping[str, Any]], logic: str = "AND") -> Optional[WhereClause]:
    """
    Build a WHERE clause from a column/value mapping.

    Keys are column names optionally followed by flags:
        -like     uses LIKE
        -notlike  uses NOT LIKE
        -not      uses !=
    Without a flag the comparison is ``=``. A list, tuple or set value expands
    into one comparison per element, OR-ed together (AND-ed for the negated
    flags). ``None`` values and empty sequences are skipped.

    Example:
        where_helper({"name -like": "h%", "banned": False})
        -> WhereClause(sql="name LIKE ? AND banned=?", params=["h%", False])

    Args:
        variables: Mapping of keys to values
        logic: Word joining the individual conditions

    Returns:
        WhereClause, or None when no condition was produced
    """
    if not variables or not isinstance(variables, Mapping):
        return None

    separator = f" {logic.strip()} "
    fragments = []
    params = []

    for key, value in variables.items():
        if value is None:
            continue

        name, operator, joiner = _parse_key(key)
        comparison = f"{name}{operator}?"

        if isinstance(value, (list, tuple, set, frozenset)):
            if not value:
                continue
            fragments.append("(" + joiner.join(comparison for _ in value) + ")")
            params.extend(value)
        else:
            fragments.append(comparison)
            params.append(value)

    if not fragments:
        return None

    return WhereClause(sql=separator.join(fragments), params=params)


ColumnSpec = Union[str, Sequence[Any], Mapping[str, Any]]


def _sort_keyword(sort: Any, default_sort: str) -> str:
    if sort is None:
        return default_sort
    if sort is True:
        return "ASC"
    if sort is False:
        return "DESC"
    return str(sort)


def order_by_helper(columns: Union[str, Mapping[str, Any], Sequence[ColumnSpec], None],
                    default_sort: str = "ASC") -> Optional[str]:
    """
    Build an ORDER BY fragment.

    Args:
        columns: Either
            - a list of column names,
            - a list of (name, sort) pairs,
            - a list of {"name": ..., "sort": ...} mappings,
            - a mapping of {name: sort},
            - or an already built string, returned unchanged.
            Sort may be "ASC"/"DESC" or True (ASC) / False (DESC).
        default_sort: Used when a column has no sort

    Returns:
        Fragment such as "name ASC,email DESC", or None when empty
    """
    if columns is None or isinstance(columns, str):
        return columns

    if isinstance(columns, Mapping):
        columns = list(columns.items())

    fragments = []
    for column in columns:
        name, sort = None, None

        if isinstance(column, Mapping):
            name = column.get('name')
            sort = column.get('sort', column.get('sort_by'))
        elif isinstance(column, (list, tuple)):
            if len(column) >= 1:
                name = column[0]
            if len(column) >= 2:
                sort = column[1]
        else:
            name = column

        if name:
            fragments.append(f"{name} {_sort_keyword(sort, default_sort)}")

    return ",".join(fragments) if fragments else None


def strip_keyword(fragment: str, keyword: str) -> str:
    """Remove a leading SQL keyword (case-insensitive) from a clause fragment"""
    pattern = r"^\s*" + r"\s+".join(re.escape(word) for word in keyword.split()) + r"\b"
    return re.sub(pattern, "", fragment, count=1, flags=re.IGNORECASE).strip()
