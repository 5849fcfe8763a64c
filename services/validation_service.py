# services/validation_service.py
"""
Form coercion helpers.
Browser forms and JSON bodies send loosely-typed values; these turn them into
the trimmed strings and integers the tables expect.
"""
import uuid
from typing import Any
from flask import request

from services.errors import ValidationError


def clean_text(value: Any, max_length: int = 500) -> str:
    """
    Trim a value to a plain string.
    - None becomes ''
    - Null bytes are removed
    - Length is capped at max_length
    """
    if value is None:
        return ''
    value = str(value).replace('\x00', '').strip()
    return value[:max_length]


def clean_int(value: Any, default: int = 0, min_val: int = None) -> int:
    """
    Convert value to int, falling back to default on garbage or zero-ish input
    the way the stock forms treat blanks.
    """
    try:
        result = int(float(value))
    except (ValueError, TypeError, OverflowError):
        return default
    if min_val is not None and result < min_val:
        return min_val
    return result


def clean_qty(value: Any) -> int:
    """Equipment quantities default to 1 when blank, zero or invalid"""
    return clean_int(value, default=1) or 1


_FALSE_STRINGS = {"false", "0", "off", "no", ""}


def clean_bool(value: Any) -> bool:
    """Form checkboxes arrive as strings; "false", "0", "off", "no" and blanks are False"""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def require_text(value: Any, message: str, field: str = None) -> str:
    text = clean_text(value)
    if not text:
        raise ValidationError(message, field)
    return text


def is_email_like(value: Any) -> bool:
    return bool(value) and '@' in str(value)


def new_row_id() -> str:
    return str(uuid.uuid4())


def request_data():
    """JSON body if there is one, else the submitted form"""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
