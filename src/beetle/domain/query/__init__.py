"""Backend-independent query handling."""

from __future__ import annotations

from .expressions import (
    Call,
    Compare,
    CompareOp,
    Literal,
    Logical,
    LogicalOp,
    Member,
    Method,
    Node,
    Not,
    SortKey,
    evaluate,
    parse_filter,
    parse_member_paths,
    parse_order_by,
)
from .options import QueryOptions, parse_query_options
from .processor import QueryProcessor, apply_query_options
from .queryable import EnumerableQueryable, Queryable, as_queryable

__all__ = [
    "Call",
    "Compare",
    "CompareOp",
    "EnumerableQueryable",
    "Literal",
    "Logical",
    "LogicalOp",
    "Member",
    "Method",
    "Node",
    "Not",
    "QueryOptions",
    "QueryProcessor",
    "Queryable",
    "SortKey",
    "apply_query_options",
    "as_queryable",
    "evaluate",
    "parse_filter",
    "parse_member_paths",
    "parse_order_by",
    "parse_query_options",
]
