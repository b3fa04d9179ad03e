"""Leading-keyword gate for user-supplied SQL.

This is a DENYLIST, not a parser. It only inspects the first keyword of the
statement after stripping leading whitespace and SQL comments. It does not
detect writes hidden later in the text, such as a second statement in a
multi-statement batch, a writable CTE, or a function with side effects.
Connections used for raw queries should therefore also run under a
read-only database role.
"""

from __future__ import annotations

import re

from reportstudio.core.errors import UnsafeQueryError, ValidationError

WRITE_DENYLIST = frozenset({"DROP", "DELETE", "TRUNCATE", "ALTER", "CREATE", "GRANT", "REVOKE"})

_LEADING_NOISE = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)*", re.DOTALL)
_KEYWORD = re.compile(r"[A-Za-z_]+")


def leading_keyword(query: str) -> str | None:
    """First keyword of a query, upper-cased, ignoring whitespace and comments."""
    rest = query
    while True:
        noise = _LEADING_NOISE.match(rest)
        if noise:
            rest = rest[noise.end() :]
        if not rest.startswith("("):
            break
        rest = rest[1:]
    match = _KEYWORD.match(rest)
    return match.group(0).upper() if match else None


def check_query_safety(query: str) -> str:
    """Reject queries whose leading keyword is a write/DDL statement.

    Args:
        query: Raw query text

    Returns:
        The leading keyword

    Raises:
        ValidationError: If the query is empty
        UnsafeQueryError: If the leading keyword is on the denylist
    """
    keyword = leading_keyword(query or "")
    if keyword is None:
        raise ValidationError("Query text is empty", expected="a read-only SQL statement")
    if keyword in WRITE_DENYLIST:
        raise UnsafeQueryError(keyword)
    return keyword
