import re
from typing import List

from app.core.schemas import SqlValidationResult


# -----------------------------------------------------------------------------
# SQL VALIDATOR
# Purpose: decide whether AI generated SQL is safe to run against a store.
# Why: the text generator is untrusted; this module is the security boundary.
#
# Rules (every failing rule adds its own message):
#   1. non-empty, trailing semicolon stripped
#   2. printable ASCII only (blocks homoglyph keyword bypasses)
#   3. a single statement, no comments
#   4. SELECT only: no write/DDL/session keywords, no UNION, no SELECT INTO,
#      no CTEs, no dangerous PostgreSQL functions
#   5. tenant isolation through the parameterized `store_id = $1` filter
#   6. bounded result size: LIMIT appended when missing, capped at MAX_LIMIT
#
# This is a pattern blocklist, not a SQL parser.
# -----------------------------------------------------------------------------

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

FORBIDDEN_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "EXEC",
    "EXECUTE",
    "COPY",
    "CALL",
    "SET",
    "RESET",
    "RETURNING",
)

DANGEROUS_FUNCTIONS = (
    # file system access
    "pg_read_file",
    "pg_read_binary_file",
    "pg_write_file",
    "pg_ls_dir",
    "pg_stat_file",
    # denial of service / backend control
    "pg_sleep",
    "pg_terminate_backend",
    "pg_cancel_backend",
    "pg_reload_conf",
    "pg_rotate_logfile",
    # privilege escalation
    "set_config",
    # remote connections
    "dblink",
    "dblink_connect",
    "dblink_exec",
    # large object exfiltration
    "lo_import",
    "lo_export",
    "lo_get",
    "lo_put",
    # dumping arbitrary queries
    "query_to_xml",
    "query_to_json",
)

EMPTY_SQL_ERROR = "SQL query is empty"
NON_ASCII_ERROR = "SQL must contain only ASCII characters"
MULTI_STATEMENT_ERROR = "Multi-statement SQL is not allowed"
COMMENT_ERROR = "SQL comments are not allowed"
SELECT_ONLY_ERROR = "Only SELECT queries are allowed"
UNION_ERROR = "UNION queries are not allowed"
SELECT_INTO_ERROR = "SELECT INTO is not allowed"
CTE_ERROR = "CTE (WITH) queries are not allowed"
TENANT_FILTER_ERROR = "Query must filter by store_id = $1 for tenant isolation"

_FORBIDDEN_KEYWORD_PATTERNS = [
    (keyword, re.compile(rf"\b{keyword}\b", re.IGNORECASE))
    for keyword in FORBIDDEN_KEYWORDS
]
_DANGEROUS_FUNCTION_PATTERNS = [
    (name, re.compile(rf"\b{name}\b", re.IGNORECASE)) for name in DANGEROUS_FUNCTIONS
]

_TRAILING_SEMICOLON_RE = re.compile(r"\s*;\s*$")
_NON_ASCII_RE = re.compile(r"[^\x20-\x7E\t\n\r]")
_COMMENT_RE = re.compile(r"--|/\*")
_SELECT_START_RE = re.compile(r"SELECT\b", re.IGNORECASE)
_UNION_RE = re.compile(r"\bUNION\b", re.IGNORECASE)
_SELECT_INTO_RE = re.compile(r"\bSELECT\b.+?\bINTO\s+[\w\"]", re.IGNORECASE | re.DOTALL)
_LEADING_WITH_RE = re.compile(r"WITH\b", re.IGNORECASE)
_CTE_RE = re.compile(
    r"\bWITH\s+(?:RECURSIVE\s+)?(?:\"[^\"]+\"|\w+)\s*(?:\([^)]*\)\s*)?"
    r"AS\s*(?:(?:NOT\s+)?MATERIALIZED\s*)?\(",
    re.IGNORECASE,
)
# PostgreSQL quoting forms, tried left to right:
# dollar-quoted bodies ($$...$$, $tag$...$tag$), escape strings (E'..\'..'),
# standard literals ('..''..') and quoted identifiers ("..""..")
_QUOTED_RE = re.compile(
    r"(?P<dollar>\$(?P<tag>(?:[A-Za-z_]\w*)?)\$.*?\$(?P=tag)\$)"
    r"|(?P<escape>(?<!\w)[Ee]'(?:[^'\\]|\\.|'')*')"
    r"|(?P<literal>'(?:[^']|'')*')"
    r"|(?P<ident>\"(?:[^\"]|\"\")*\")",
    re.DOTALL,
)
# a quote left over after masking was never closed
_UNTERMINATED_QUOTE_RE = re.compile(r"['\"]|\$(?:[A-Za-z_]\w*)?\$")
_SIMPLE_IDENTIFIER_RE = re.compile(r"[A-Za-z_]\w*")
# optional alias prefix is allowed because "." is a word boundary
_TENANT_FILTER_RE = re.compile(r"\bstore_id\s*=\s*\$1(?!\d)", re.IGNORECASE)
_LIMIT_KEYWORD_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)
_NUMERIC_LIMIT_RE = re.compile(r"\bLIMIT\s+(\d+)", re.IGNORECASE)


def validate_sql(raw: str) -> SqlValidationResult:
    """
    Validate and normalise a candidate SQL statement.

    All checks run, so a statement that breaks several rules reports each of
    them. The returned sql is always the normalised form (semicolon stripped,
    LIMIT bounded), valid or not, so callers can log it.

    Example:
        validate_sql("SELECT 1 FROM orders WHERE store_id = $1")
        # valid=True, sql="SELECT 1 FROM orders WHERE store_id = $1 LIMIT 100"
    """
    normalised = _TRAILING_SEMICOLON_RE.sub("", (raw or "").strip(), count=1)
    if not normalised:
        return SqlValidationResult(valid=False, sql="", errors=[EMPTY_SQL_ERROR])

    errors: List[str] = []

    if _NON_ASCII_RE.search(normalised):
        errors.append(NON_ASCII_ERROR)

    if ";" in normalised:
        errors.append(MULTI_STATEMENT_ERROR)

    if _COMMENT_RE.search(normalised):
        errors.append(COMMENT_ERROR)

    if not _SELECT_START_RE.match(normalised):
        errors.append(SELECT_ONLY_ERROR)
        errors.append(f"Statement must not begin with {_leading_token(normalised)}")

    for keyword, pattern in _FORBIDDEN_KEYWORD_PATTERNS:
        if pattern.search(normalised):
            errors.append(f"Forbidden keyword detected: {keyword}")

    if _UNION_RE.search(normalised):
        errors.append(UNION_ERROR)

    if _SELECT_INTO_RE.search(normalised):
        errors.append(SELECT_INTO_ERROR)

    if _LEADING_WITH_RE.match(normalised) or _CTE_RE.search(normalised):
        errors.append(CTE_ERROR)

    for name, pattern in _DANGEROUS_FUNCTION_PATTERNS:
        if pattern.search(normalised):
            errors.append(f"Dangerous function detected: {name}")

    if not has_tenant_filter(normalised):
        errors.append(TENANT_FILTER_ERROR)

    return SqlValidationResult(
        valid=not errors, sql=enforce_limit(normalised), errors=errors
    )


def has_tenant_filter(sql: str) -> bool:
    """
    True when the statement compares store_id with the $1 parameter.

    Quoted text is masked first, so a copy of the filter inside a string,
    a dollar-quoted body or a quoted alias does not count. An unterminated
    quote fails the check.
    """
    masked = mask_quoted(sql)
    if _UNTERMINATED_QUOTE_RE.search(masked):
        return False
    return bool(_TENANT_FILTER_RE.search(masked))


def mask_quoted(sql: str) -> str:
    """
    Replace every quoted span with '#' characters of the same length.

    A quoted identifier that is a plain name ("store_id") keeps its name,
    padded with spaces, since it still refers to the same column.

    Example:
        mask_quoted("WHERE note = 'a' AND \"store_id\" = $1")
        # "WHERE note = ### AND  store_id  = $1"
    """

    def _mask(match):
        text = match.group(0)
        if match.group("ident") is not None:
            name = text[1:-1]
            if _SIMPLE_IDENTIFIER_RE.fullmatch(name):
                return f" {name} "
        return "#" * len(text)

    return _QUOTED_RE.sub(_mask, sql)


def enforce_limit(sql: str) -> str:
    """
    Append LIMIT DEFAULT_LIMIT when there is no LIMIT, cap a numeric LIMIT above MAX_LIMIT.
    A LIMIT inside quoted text is ignored.

    Example:
        enforce_limit("SELECT ... LIMIT 5000")  # "SELECT ... LIMIT 1000"
    """
    # same length as sql, so match offsets apply to both
    masked = mask_quoted(sql)
    if not _LIMIT_KEYWORD_RE.search(masked):
        return f"{sql} LIMIT {DEFAULT_LIMIT}"

    match = _NUMERIC_LIMIT_RE.search(masked)
    if match and int(match.group(1)) > MAX_LIMIT:
        return f"{sql[:match.start()]}LIMIT {MAX_LIMIT}{sql[match.end():]}"

    return sql


def _leading_token(sql: str) -> str:
    return sql.split(None, 1)[0][:32].upper()
