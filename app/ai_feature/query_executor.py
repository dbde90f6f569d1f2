import logging
import re
import time
from typing import Tuple

from app.core.errors import QueryExecutionError
from app.core.schemas import AIQueryResult, QueryExecutionResult


# -----------------------------------------------------------------------------
# QUERY EXECUTOR
# Purpose: run validated AI SQL on the read-only connection.
# Why: the store owner gets a short, actionable message while logs keep the
#      driver error and how long the query ran.
#
# The database enforces the statement timeout and read-only transactions,
# see app.core.database.create_readonly_engine.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

MAX_ROWS = 1000

TIMEOUT_MESSAGE = "The query took too long to execute. Try asking a simpler question."
PERMISSION_MESSAGE = "Query execution failed due to a permissions error."
SYNTAX_MESSAGE = (
    "The generated query contained a syntax error. Please try rephrasing your question."
)
UNKNOWN_MESSAGE = "Query execution failed unexpectedly."

_ERROR_CLASSES = (
    (
        re.compile(
            r"canceling statement due to statement timeout|statement timeout",
            re.IGNORECASE,
        ),
        "timeout",
        TIMEOUT_MESSAGE,
    ),
    (re.compile(r"permission denied", re.IGNORECASE), "permission", PERMISSION_MESSAGE),
    (re.compile(r"syntax error", re.IGNORECASE), "syntax", SYNTAX_MESSAGE),
)


def classify_execution_error(error: BaseException) -> Tuple[str, str]:
    """
    Map a driver error to (kind, user message) by its text.

    Example:
        classify_execution_error(Exception("permission denied for table orders"))
        # ("permission", "Query execution failed due to a permissions error.")
    """
    text = str(error)
    for pattern, kind, message in _ERROR_CLASSES:
        if pattern.search(text):
            return kind, message
    return "unknown", UNKNOWN_MESSAGE


class QueryExecutor:
    def __init__(self, readonly_db, max_rows: int = MAX_ROWS):
        self.readonly_db = readonly_db
        self.max_rows = max_rows

    async def execute(self, query: AIQueryResult) -> QueryExecutionResult:
        logger.info(
            f"Query executor: starting execution "
            f"({len(query.sql)} chars, {len(query.params)} params)"
        )
        start = time.perf_counter()

        try:
            rows = await self.readonly_db.raw(query.sql, query.params)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000.0
            kind, message = classify_execution_error(e)
            logger.error(
                f"Query executor: execution failed after {duration_ms:.1f}ms "
                f"[{kind}]: {e}"
            )
            raise QueryExecutionError(message, kind=kind) from e

        duration_ms = (time.perf_counter() - start) * 1000.0
        rows = list(rows or [])
        truncated = len(rows) > self.max_rows
        if truncated:
            rows = rows[: self.max_rows]

        logger.info(
            f"Query executor: execution completed in {duration_ms:.1f}ms "
            f"({len(rows)} rows{', truncated' if truncated else ''})"
        )
        return QueryExecutionResult(
            rows=rows,
            row_count=len(rows),
            duration_ms=duration_ms,
            truncated=truncated,
        )
