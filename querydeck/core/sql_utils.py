"""
Centralized SQL text utilities for the workspace engine.

Provides dialect definitions, table reference rendering, the auto-limit
rewriter for ad-hoc queries, and the windowed/count statements used when
browsing a table. None of this parses SQL: every rewrite is a conservative
text heuristic that leaves a statement untouched when in doubt.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from querydeck.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# DATABASE TYPE DEFINITIONS
# =============================================================================


class Dialect(str, Enum):
    MSSQL = "mssql"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"
    REDIS = "redis"

    @classmethod
    def parse(cls, value: "str | Dialect | None") -> "Dialect":
        """Resolve a dialect name, falling back to postgres for unknown values."""
        if isinstance(value, Dialect):
            return value
        normalized = (value or "").strip().lower()
        aliases = {
            "postgresql": cls.POSTGRES,
            "sqlserver": cls.MSSQL,
            "mongo": cls.MONGODB,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            logger.debug(f"Unknown dialect {value!r}, using postgres")
            return cls.POSTGRES


# =============================================================================
# TABLE REFERENCES & LITERALS
# =============================================================================

# Schema selector meaning "all schemas"
ALL_SCHEMAS = "*"


@dataclass(frozen=True)
class TableRef:
    """A table name with an optional schema qualifier."""

    name: str
    schema: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Table name must not be empty")
        # Normalize the "all schemas" selector away
        if self.schema is not None and self.schema.strip() in ("", ALL_SCHEMAS):
            object.__setattr__(self, "schema", None)

    @classmethod
    def parse(cls, value: str) -> "TableRef":
        """Split ``schema.table`` on the first dot."""
        if "." in value:
            schema, name = value.split(".", 1)
            return cls(name=name, schema=schema)
        return cls(name=value)

    def render(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def __str__(self) -> str:
        return self.render()


def quote_literal(value: str) -> str:
    """Single-quote a string literal, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def strip_statement(sql: str) -> str:
    """Trim whitespace and trailing semicolons."""
    sql_stripped = sql.strip()
    while sql_stripped.endswith(";"):
        sql_stripped = sql_stripped[:-1].strip()
    return sql_stripped


# =============================================================================
# AUTO LIMIT
# =============================================================================


def is_auto_limit_candidate(sql: str) -> bool:
    """
    Check whether a statement can safely receive an injected row limit.

    Only plain single SELECT statements without any existing LIMIT/TOP
    (case-insensitive substring match) qualify. Statements containing line
    comments or more than one statement are skipped, since appending or
    wrapping them could change their meaning.
    """
    stripped = strip_statement(sql)
    upper = stripped.upper()
    if not upper.startswith("SELECT"):
        return False
    if "LIMIT" in upper or "TOP" in upper:
        return False
    if "--" in stripped or ";" in stripped:
        return False
    return True


def apply_auto_limit(sql: str, limit: int, dialect: Dialect) -> str:
    """
    Inject a row-limiting clause into an ad-hoc SELECT statement.

    Args:
        sql: User-authored statement text.
        limit: Row cap. Values <= 0 disable rewriting.
        dialect: Target dialect.

    Returns:
        The rewritten statement, or the original text unchanged when the
        statement is not a confident candidate.
    """
    if limit <= 0 or not is_auto_limit_candidate(sql):
        return sql

    stripped = strip_statement(sql)
    if dialect is Dialect.MSSQL:
        rewritten = f"SELECT TOP {limit} * FROM ({stripped}) AS subqb"
    else:
        rewritten = f"{stripped} LIMIT {limit}"

    logger.debug(f"Applied auto limit {limit} for {dialect.value}")
    return rewritten


# =============================================================================
# TABLE BROWSING
# =============================================================================


def build_select_all(table_ref: TableRef) -> str:
    return f"SELECT * FROM {table_ref.render()}"


def build_window_query(
    table_ref: TableRef,
    dialect: Dialect,
    limit: int,
    offset: int = 0,
) -> str:
    """
    Build a windowed SELECT * for one page of a table.

    MSSQL has no LIMIT, so OFFSET/FETCH is used with a no-op ORDER BY (the
    clause is mandatory there). Every other dialect uses LIMIT/OFFSET.
    """
    if limit <= 0:
        raise ValueError("Page size must be positive")
    if offset < 0:
        raise ValueError("Offset must not be negative")

    select_all = build_select_all(table_ref)
    if dialect is Dialect.MSSQL:
        return (
            f"{select_all} ORDER BY (SELECT NULL) "
            f"OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"
        )
    return f"{select_all} LIMIT {limit} OFFSET {offset}"


def build_count_query(table_ref: TableRef) -> str:
    return f"SELECT COUNT(*) AS count FROM {table_ref.render()}"
