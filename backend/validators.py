from __future__ import annotations

import math
from typing import Any

from backend.errors import MalformedInput


def require_non_empty(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedInput(f"Missing required field: {field_name}.")
    return value.strip()


def require_template(value: Any, field_name: str, *, min_length: int = 1) -> tuple[float, ...]:
    """Validate a biometric template and return it as a tuple of floats.

    A template is a non-empty list of finite numbers. Booleans are rejected even
    though Python treats them as ints.
    """
    if not isinstance(value, (list, tuple)) or len(value) == 0:
        raise MalformedInput(f"Missing required field: {field_name}.")

    features: list[float] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise MalformedInput(f"{field_name} must contain only numbers.")
        try:
            number = float(item)
        except OverflowError as exc:
            raise MalformedInput(f"{field_name} must contain only finite numbers.") from exc
        if not math.isfinite(number):
            raise MalformedInput(f"{field_name} must contain only finite numbers.")
        features.append(number)

    if len(features) < min_length:
        raise MalformedInput(
            f"{field_name} is malformed or too short (minimum {min_length} features)."
        )
    return tuple(features)
