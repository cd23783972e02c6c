"""
Identifier conversion at the service boundary.

Callers hand us IDs as ints, digit strings (path params, JSON bodies),
mappings with an "id" key or loaded ORM objects. Everything past this
module works with plain positive ints.
"""
from typing import Any, Mapping, Optional

from podium.errors import ValidationError, ErrorCode


def to_id(value: Any, label: str = "id") -> int:
    """
    Convert an identifier-like value into a positive int.

    Raises:
        ValidationError: If the value cannot be read as an identifier
    """
    if isinstance(value, Mapping):
        value = value.get("id")
    elif value is not None and not isinstance(value, (int, str)) and hasattr(value, "id"):
        value = value.id

    # bool is an int subclass; True must not become user 1
    if isinstance(value, bool):
        value = None

    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        # str.isdigit also accepts superscripts and other non-decimal digits
        result = int(value.strip())
    else:
        raise ValidationError(
            f"Invalid {label}",
            code=ErrorCode.INVALID_ID,
            details={"field": label, "value": repr(value)}
        )

    if result <= 0:
        raise ValidationError(
            f"Invalid {label}",
            code=ErrorCode.INVALID_ID,
            details={"field": label, "value": result}
        )
    return result


def to_optional_id(value: Any, label: str = "id") -> Optional[int]:
    """Like to_id, but None and empty strings pass through as None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_id(value, label)
