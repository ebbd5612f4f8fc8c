"""
Output formatting for tool results

Supports TEXT (human readable, tables for lists of records), YAML, JSON and
TOON (Token-Oriented Object Notation, compact for LLM consumption).
"""

import json
from typing import Any, Optional

import yaml

VALID_FORMATS = ('TEXT', 'YAML', 'JSON', 'TOON')
DEFAULT_FORMAT = 'TOON'

FORMAT_SCHEMA = {
    "type": "string",
    "enum": list(VALID_FORMATS),
    "description": "Output format: TEXT (human-readable), YAML, JSON, or TOON "
                   "(Token-Oriented Object Notation - optimized for LLMs) (default)"
}


class FormatError(ValueError):
    """Unknown output format"""
    pass


def is_valid_format(output_format: str) -> bool:
    return isinstance(output_format, str) and output_format.upper() in VALID_FORMATS


def resolve_format(output_format: Optional[str]) -> str:
    """Normalize a caller supplied format name, defaulting to TOON"""
    if output_format is None:
        return DEFAULT_FORMAT
    if not is_valid_format(output_format):
        raise FormatError(
            f"Invalid format: {output_format}. Must be one of {', '.join(VALID_FORMATS)}"
        )
    return output_format.upper()


def to_serializable(data: Any) -> Any:
    """Convert driver values (Decimal, datetime, UUID, ...) to plain JSON types"""
    return json.loads(json.dumps(data, default=str))


def _cell(value: Any) -> str:
    return 'null' if value is None else str(value)


def to_text(data: Any, indent: int = 0) -> str:
    """Render data as indented key/value text, with tables for lists of records"""
    prefix = '  ' * indent

    if data is None:
        return 'null'

    if isinstance(data, bool):
        return 'true' if data else 'false'

    if isinstance(data, (str, int, float)):
        return str(data)

    if isinstance(data, list):
        if not data:
            return '(empty list)'

        if isinstance(data[0], dict):
            keys = list(data[0].keys())
            widths = {
                key: max([len(key)] + [len(_cell(row.get(key))) for row in data])
                for key in keys
            }

            header = ' | '.join(key.ljust(widths[key]) for key in keys)
            separator = '-+-'.join('-' * widths[key] for key in keys)
            rows = [
                ' | '.join(_cell(row.get(key)).ljust(widths[key]) for key in keys)
                for row in data
            ]
            return '\n'.join([header, separator] + rows)

        return '\n'.join(f"{prefix}{i + 1}. {to_text(item, indent)}" for i, item in enumerate(data))

    if isinstance(data, dict):
        lines = []
        for key, value in data.items():
            if isinstance(value, (dict, list)) and value and (
                    isinstance(value, dict) or isinstance(value[0], dict)):
                lines.append(f"{prefix}{key}:\n{to_text(value, indent + 1)}")
            else:
                lines.append(f"{prefix}{key}: {to_text(value, indent)}")
        return '\n'.join(lines)

    return str(data)


def to_toon(data: Any) -> str:
    from toon import encode

    return encode(data)


def format_output(data: Any, output_format: Optional[str] = DEFAULT_FORMAT) -> str:
    """
    Format data according to the requested output format

    Args:
        data: The data to format
        output_format: TEXT, YAML, JSON or TOON (case-insensitive)

    Returns:
        Formatted string
    """
    fmt = resolve_format(output_format)
    data = to_serializable(data)

    if fmt == 'TEXT':
        return to_text(data)
    if fmt == 'YAML':
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    if fmt == 'TOON':
        return to_toon(data)
    return json.dumps(data, indent=2)
