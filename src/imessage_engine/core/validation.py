"""
Validation utilities for caller-supplied arguments.

Validators return (value, error) tuples; callers turn a non-None error
into a ValidationError before any external call is made.
"""

import re
from typing import Optional

MIN_LIMIT = 1
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def is_email(identifier: Optional[str]) -> bool:
    """Check whether an identifier is shaped like local-part@domain."""
    if not identifier:
        return False
    return EMAIL_PATTERN.match(identifier.strip()) is not None


def validate_positive_int(
    value,
    name: str,
    min_val: int = MIN_LIMIT,
    max_val: int = 500
) -> tuple[int | None, str | None]:
    """
    Validate that a value is a positive integer within bounds.

    Args:
        value: Value to validate
        name: Parameter name for error messages
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        Tuple of (validated_value, error_message). If valid, error_message is None.
    """
    if value is None:
        return None, None

    if isinstance(value, bool):
        return None, f"Invalid {name}: must be an integer, got bool"

    try:
        int_value = int(value)
    except (TypeError, ValueError):
        return None, f"Invalid {name}: must be an integer, got {type(value).__name__}"

    if int_value < min_val:
        return None, f"Invalid {name}: must be at least {min_val}, got {int_value}"

    if int_value > max_val:
        return None, f"Invalid {name}: must be at most {max_val}, got {int_value}"

    return int_value, None


def validate_limit(
    value,
    default: int = 20,
    max_val: int = 500
) -> tuple[int, str | None]:
    """
    Validate a result limit, falling back to the default when absent.

    Returns:
        Tuple of (limit_value, error_message).
    """
    limit, error = validate_positive_int(value, "limit", max_val=max_val)
    if error:
        return default, error
    return limit if limit is not None else default, None


def validate_non_empty_string(value, name: str) -> tuple[str | None, str | None]:
    """
    Validate that a value is a non-empty string.

    Returns:
        Tuple of (stripped_value, error_message). If valid, error_message is None.
    """
    if value is None:
        return None, f"Missing required parameter: {name}"

    if not isinstance(value, str):
        return None, f"Invalid {name}: must be a string, got {type(value).__name__}"

    stripped = value.strip()
    if not stripped:
        return None, f"Invalid {name}: cannot be empty"

    return stripped, None


def validate_message_body(value, name: str = "body") -> tuple[str | None, str | None]:
    """
    Validate outgoing message text.

    Unlike validate_non_empty_string, the value comes back exactly as
    given: surrounding whitespace is part of the message. NUL characters
    are rejected.

    Returns:
        Tuple of (value, error_message). If valid, error_message is None.
    """
    _, error = validate_non_empty_string(value, name)
    if error:
        return None, error

    if "\x00" in value:
        return None, f"Invalid {name}: contains a NUL character"

    return value, None
