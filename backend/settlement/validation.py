from __future__ import annotations

from typing import Any

from .services.errors import ValidationError


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

# Largest unit count accepted on a single line or stock movement
MAX_QUANTITY = 1_000_000

# Free-text notes on a sale or return
NOTES_MAX_LENGTH = 1000


def parse_int(
    value: Any,
    field: str,
    *,
    required: bool = True,
    minimum: int | None = None,
    maximum: int | None = None,
    default: int | None = None,
) -> int | None:
    """
    Strict integer coercion for request payloads.

    Accepts ints and plain-digit strings. Rejects bools, floats, decimals
    and scientific notation, so "12.5" or 1e3 never silently become 12 or 1000.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return default

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return result


def parse_cents(value: Any, field: str, *, required: bool = False, default: int | None = 0) -> int | None:
    return parse_int(
        value,
        field,
        required=required,
        minimum=0,
        maximum=MAX_AMOUNT_CENTS,
        default=default,
    )


def parse_choice(value: Any, field: str, choices, *, required: bool = True, default: str | None = None) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return default
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            details={"allowed": list(choices)},
        )
    return value


def parse_text(value: Any, field: str, *, required: bool = False, max_length: int = 255) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if required and not stripped:
        raise ValidationError(f"{field} is required")
    if len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return stripped or None


def parse_list(value: Any, field: str, *, required: bool = True, min_items: int = 0) -> list:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    if len(value) < min_items:
        raise ValidationError(f"{field} must have at least {min_items} item(s)")
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValidationError(f"{field}[{index}] must be an object")
    return value
