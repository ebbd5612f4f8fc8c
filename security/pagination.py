"""
Pagination for ad hoc SQL

Adds LIMIT / OFFSET to a statement that lacks them so every query is
bounded. Explicit pagination written by the caller always wins.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from .query_validator import QUERY_LIMITS, QueryLimits, QueryValidationError

_HAS_LIMIT = re.compile(r'\bLIMIT\s+\d+', re.IGNORECASE)
_HAS_OFFSET = re.compile(r'\bOFFSET\s+\d+', re.IGNORECASE)
_TRAILING_TERMINATOR = re.compile(r';$')


@dataclass(frozen=True)
class PaginationWindow:
    limit: int
    offset: int = 0


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def validate_pagination(limit: Optional[Any] = None, offset: Optional[Any] = None,
                        limits: QueryLimits = QUERY_LIMITS) -> PaginationWindow:
    """
    Validate caller supplied pagination parameters

    Args:
        limit: Rows to return; defaults to and is capped at max_rows
        offset: Rows to skip; defaults to 0

    Returns:
        PaginationWindow with the effective limit and offset

    Raises:
        QueryValidationError: naming the invalid field
    """
    raw_limit = limits.max_rows if limit is None else limit
    raw_offset = 0 if offset is None else offset

    if not _is_integer(raw_limit) or raw_limit <= 0:
        raise QueryValidationError('Invalid limit: must be a positive integer')

    if not _is_integer(raw_offset) or raw_offset < 0:
        raise QueryValidationError('Invalid offset: must be an integer greater than or equal to 0')

    return PaginationWindow(limit=min(int(raw_limit), limits.max_rows), offset=int(raw_offset))


def apply_pagination(sql: str, limit: int, offset: int = 0) -> str:
    """
    Add LIMIT and OFFSET clauses to a statement if not already present

    Args:
        sql: A statement that already passed validation
        limit: LIMIT to append when the statement has none
        offset: OFFSET to append when the statement has none and offset > 0

    Returns:
        The rewritten statement
    """
    trimmed = _TRAILING_TERMINATOR.sub('', sql.strip())

    has_limit = bool(_HAS_LIMIT.search(trimmed))
    has_offset = bool(_HAS_OFFSET.search(trimmed))

    if has_limit and has_offset:
        return trimmed

    # A trailing line comment would swallow anything appended on the same line
    last_line = trimmed.rsplit('\n', 1)[-1]
    separator = '\n' if '--' in last_line else ' '

    paginated = trimmed
    if not has_limit:
        paginated += f'{separator}LIMIT {limit}'
        separator = ' '

    if not has_offset and offset > 0:
        paginated += f'{separator}OFFSET {offset}'

    return paginated
