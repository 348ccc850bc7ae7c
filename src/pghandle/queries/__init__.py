"""
SQL text builders: placeholder rewriting, clause helpers and statement builders
"""

from .placeholders import replace_placeholders, count_placeholders
from .clauses import WhereClause, where_helper, order_by_helper
from .builders import (
    Statement,
    MergeStatements,
    SelectOptions,
    InsertOptions,
    UpdateOptions,
    DeleteOptions,
    MergeOptions,
    build_select,
    build_insert,
    build_update,
    build_delete,
    build_merge_pair,
)

__all__ = [
    'replace_placeholders',
    'count_placeholders',
    'WhereClause',
    'where_helper',
    'order_by_helper',
    'Statement',
    'MergeStatements',
    'SelectOptions',
    'InsertOptions',
    'UpdateOptions',
    'DeleteOptions',
    'MergeOptions',
    'build_select',
    'build_insert',
    'build_update',
    'build_delete',
    'build_merge_pair',
]
