"""
Input sanitation and type coercion for request fields.

Every function here is pure: it either returns a typed, bounded value or
raises ``warehouse.exceptions.ValidationError``. Nothing reaches the query
executor without passing through one of them first.
"""
import html
import math
import re
from typing import Any, Iterable, List, Optional

import bleach

from .exceptions import ValidationError

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9\-_.]+$')

# C0 controls except tab/newline/carriage return, plus DEL and C1 controls.
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off', '')


def _as_text(raw: Any) -> str:
    if raw is None:
        return ''
    if isinstance(raw, bytes):
        return raw.decode('utf-8', errors='replace')
    return str(raw)


def sanitize_string(raw: Any, max_len: int, *, field: str, required: bool = False) -> str:
    """Strip control characters and markup, trim, then truncate to ``max_len``."""
    value = CONTROL_CHARS.sub('', _as_text(raw))
    value = bleach.clean(value, tags=[], strip=True)
    # Stored as plain text; templates escape on output.
    value = html.unescape(value)
    value = value.strip()[:max_len].strip()

    if required and not value:
        raise ValidationError(f"{field} is required", field=field)
    return value


def _parse_number(raw: Any, parser, type_name: str, field: str):
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a valid {type_name}", field=field)
    text = _as_text(raw).strip()
    if not text:
        raise ValidationError(f"{field} must be a valid {type_name}", field=field)
    try:
        return parser(text)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a valid {type_name}", field=field)


def _check_range(value, min_value, max_value, field: str):
    if min_value is not None and value < min_value:
        raise ValidationError(f"{field} must be at least {min_value}", field=field)
    if max_value is not None and value > max_value:
        raise ValidationError(f"{field} must be at most {max_value}", field=field)
    return value


def validate_integer(raw: Any, min_value: Optional[int] = None, max_value: Optional[int] = None, *, field: str) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        value = _parse_number(raw, int, 'integer', field)
    return _check_range(value, min_value, max_value, field)


def validate_float(raw: Any, min_value: Optional[float] = None, max_value: Optional[float] = None, *, field: str) -> float:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
    else:
        value = _parse_number(raw, float, 'number', field)
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{field} must be a valid number", field=field)
    return _check_range(value, min_value, max_value, field)


def validate_identifier(raw: Any, *, field: str, max_len: int = 50) -> str:
    """Lookup keys (SKU codes, tag ids) are limited to ``[A-Za-z0-9-_.]``."""
    value = _as_text(raw).strip()
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", field=field)
    if not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(
            f"{field} contains invalid characters. Only letters, digits, hyphens, underscores and periods are allowed",
            field=field
        )
    return value


def validate_boolean(raw: Any, *, field: str, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    value = _as_text(raw).strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return default if value == '' else False
    raise ValidationError(f"{field} must be 'true', 'false', '1', '0', 'yes' or 'no'", field=field)


def dedupe_identifiers(raws: Iterable[Any], *, field: str, max_len: int = 50) -> List[str]:
    """Validate identifiers, silently dropping invalid ones and duplicates.

    First-seen order is preserved.
    """
    seen = set()
    result = []
    for raw in raws:
        try:
            value = validate_identifier(raw, field=field, max_len=max_len)
        except ValidationError:
            continue
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
