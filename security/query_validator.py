"""
Query validation for the PostgreSQL MCP server

Normalizes submitted SQL and decides whether it is allowed to reach the
database. In the default read-only mode only SELECT / WITH statements pass;
write keywords and stacked-statement patterns are blocked. This is a
keyword/pattern filter, not a SQL parser: a blocked keyword inside a string
literal (``WHERE name = 'INSERT'``) is blocked as well.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .audit import log_security_incident

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryLimits:
    """Limits applied to every statement"""

    max_query_length: int = 10000
    max_rows: int = 1000
    timeout_ms: int = 30000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


QUERY_LIMITS = QueryLimits()

BLOCKED_KEYWORDS = (
    'INSERT', 'UPDATE', 'DELETE', 'DROP', 'ALTER', 'CREATE',
    'TRUNCATE', 'REPLACE', 'MERGE', 'GRANT', 'REVOKE',
    'EXEC', 'EXECUTE', 'CALL', 'COPY', 'IMPORT',
)

_KEYWORD_PATTERNS = [
    (keyword, re.compile(rf'\b{keyword}\b', re.IGNORECASE))
    for keyword in BLOCKED_KEYWORDS
]

BLOCKED_PATTERNS = (
    ('stacked write statement',
     re.compile(r';\s*(?:' + '|'.join(BLOCKED_KEYWORDS) + r')\b', re.IGNORECASE)),
    ('INTO OUTFILE', re.compile(r'\bINTO\s+OUTFILE\b', re.IGNORECASE)),
    ('LOAD DATA', re.compile(r'\bLOAD\s+DATA\b', re.IGNORECASE)),
)

_LINE_COMMENT = re.compile(r'--[^\n\r]*')
_WHITESPACE = re.compile(r'\s+')
_READ_ONLY_PREFIXES = ('SELECT', 'WITH')

READ_ONLY_MESSAGE = 'Only read-only statements allowed'


class QueryValidationError(ValueError):
    """Raised when a statement or its parameters fail validation"""
    pass


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one statement: allowed, or blocked with a reason"""

    is_valid: bool
    error: Optional[str] = None
    keyword: Optional[str] = None

    @classmethod
    def allowed(cls) -> 'ValidationResult':
        return cls(is_valid=True)

    @classmethod
    def blocked(cls, reason: str, keyword: Optional[str] = None) -> 'ValidationResult':
        return cls(is_valid=False, error=reason, keyword=keyword)


def _remove_block_comments(sql: str) -> str:
    # Comments do not nest: a comment opened by the first '/*' closes at the
    # first '*/' after it. An unterminated '/*' is kept.
    parts = []
    position = 0
    while True:
        start = sql.find('/*', position)
        if start == -1:
            break
        end = sql.find('*/', start + 2)
        if end == -1:
            break
        parts.append(sql[position:start])
        parts.append(' ')
        position = end + 2
    parts.append(sql[position:])
    return ''.join(parts)


def normalize_query(sql: str) -> str:
    """
    Normalize a SQL statement by removing comments and extra whitespace

    Comment text is dropped before any keyword check so it can neither hide
    nor smuggle keywords.
    """
    normalized = _LINE_COMMENT.sub(' ', sql)
    normalized = _remove_block_comments(normalized)
    normalized = _WHITESPACE.sub(' ', normalized)
    return normalized.strip()


def starts_with_read_verb(sql: str) -> bool:
    """True when the normalized statement begins with SELECT or WITH"""
    return normalize_query(sql).upper().startswith(_READ_ONLY_PREFIXES)


def find_blocked_keyword(normalized_sql: str) -> Optional[str]:
    """Return the first blocked keyword present as a whole word, if any"""
    for keyword, pattern in _KEYWORD_PATTERNS:
        if pattern.search(normalized_sql):
            return keyword
    return None


def find_blocked_pattern(normalized_sql: str) -> Optional[str]:
    """Return the name of the first blocked pattern present, if any"""
    for name, pattern in BLOCKED_PATTERNS:
        if pattern.search(normalized_sql):
            return name
    return None


def validate_query_length(sql: str, limits: QueryLimits = QUERY_LIMITS) -> ValidationResult:
    """Check the raw statement length against the configured maximum"""
    if len(sql) > limits.max_query_length:
        log_security_incident(
            'QUERY_TOO_LONG',
            'Query blocked: exceeds maximum length',
            query=sql,
            metadata={'max_length': limits.max_query_length}
        )
        return ValidationResult.blocked(
            f'Query exceeds maximum length of {limits.max_query_length} characters'
        )
    return ValidationResult.allowed()


def validate_read_only_query(sql: Any) -> ValidationResult:
    """
    Validate that a statement is read-only

    Args:
        sql: The SQL statement to validate

    Returns:
        ValidationResult, blocked with a reason when the statement is not
        a plain SELECT / WITH query
    """
    if not isinstance(sql, str) or not sql:
        log_security_incident(
            'INVALID_INPUT',
            'Query validation failed: invalid input type',
            severity='LOW',
            metadata={'input_type': type(sql).__name__}
        )
        return ValidationResult.blocked('SQL query must be a non-empty string')

    normalized = normalize_query(sql)

    if not normalized:
        log_security_incident(
            'INVALID_INPUT',
            'Query validation failed: empty query after normalization',
            severity='LOW'
        )
        return ValidationResult.blocked('SQL query must be a non-empty string')

    upper_sql = normalized.upper()
    if not upper_sql.startswith(_READ_ONLY_PREFIXES):
        keyword = find_blocked_keyword(normalized)
        if keyword:
            detail = f'blocked keyword detected: {keyword}'
        else:
            detail = f"query starts with '{normalized.split(' ', 1)[0]}'"
        log_security_incident(
            'QUERY_BLOCKED',
            'Query blocked: does not start with SELECT or WITH',
            query=normalized,
            metadata={'keyword': keyword}
        )
        return ValidationResult.blocked(
            f'{READ_ONLY_MESSAGE}: query must start with SELECT or WITH ({detail})',
            keyword=keyword
        )

    keyword = find_blocked_keyword(normalized)
    if keyword:
        log_security_incident(
            'QUERY_BLOCKED',
            'Query blocked: contains blocked keyword',
            query=normalized,
            metadata={'keyword': keyword}
        )
        return ValidationResult.blocked(
            f'Blocked keyword detected: {keyword}. {READ_ONLY_MESSAGE}',
            keyword=keyword
        )

    pattern = find_blocked_pattern(normalized)
    if pattern:
        log_security_incident(
            'QUERY_BLOCKED',
            'Query blocked: matches blocked pattern',
            query=normalized,
            metadata={'pattern': pattern}
        )
        return ValidationResult.blocked(
            f'Query contains blocked pattern ({pattern}). {READ_ONLY_MESSAGE}',
            keyword=pattern
        )

    logger.debug('Query validation passed')
    return ValidationResult.allowed()


def validate_query(sql: Any, insecure: bool = False,
                   limits: QueryLimits = QUERY_LIMITS) -> ValidationResult:
    """
    Perform all security validations on a SQL statement

    The length check runs first, on the raw text. In insecure mode only the
    input and length checks apply.
    """
    if not isinstance(sql, str):
        return validate_read_only_query(sql)

    length_result = validate_query_length(sql, limits)
    if not length_result.is_valid:
        return length_result

    if insecure:
        if not normalize_query(sql):
            return ValidationResult.blocked('SQL query must be a non-empty string')
        logger.debug('Insecure mode: skipping read-only validation')
        return ValidationResult.allowed()

    return validate_read_only_query(sql)
