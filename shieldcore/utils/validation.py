"""
Input validation for values entering notes, witnesses and the Merkle tree.

Validators return (is_valid, error_message); require() turns a negative
result into ValueError at the call site.
"""

from typing import Any, Tuple

from shieldcore.crypto import FIELD_PRIME

# =============================================================================
# Bounds
# =============================================================================

MAX_AMOUNT = 2**128 - 1  # amounts are u128 in the 16-byte plaintext slot
MAX_LEAF_INDEX = 2**32 - 1


def validate_integer(value: Any, name: str, min_val: int, max_val: int) -> Tuple[bool, str]:
    """Check that value is a non-bool int in [min_val, max_val]."""
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"
    if not min_val <= value <= max_val:
        return False, f"{name} must be in [{min_val}, {max_val}], got {value}"
    return True, ""


def validate_field_element(value: Any, name: str = "field_element") -> Tuple[bool, str]:
    return validate_integer(value, name, 0, FIELD_PRIME - 1)


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    return validate_integer(amount, name, 0, MAX_AMOUNT)


def validate_leaf_index(index: Any) -> Tuple[bool, str]:
    return validate_integer(index, "leaf_index", 0, MAX_LEAF_INDEX)


def require(result: Tuple[bool, str]) -> None:
    """Raise ValueError when a validator result is negative."""
    valid, err = result
    if not valid:
        raise ValueError(err)


__all__ = [
    "validate_integer",
    "validate_field_element",
    "validate_amount",
    "validate_leaf_index",
    "require",
    "MAX_AMOUNT",
    "MAX_LEAF_INDEX",
]
