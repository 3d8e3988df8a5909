from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping
from uuid import UUID

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

#: Fields a caller may set. `id` and `version` belong to the store.
WRITABLE_FIELDS = frozenset({"name", "quantity"})


@dataclass(frozen=True)
class Record:
    """
    Snapshot of one inventory item as stored.

    Records are immutable copies; mutating the store goes through
    `compare_and_update` / `delete` with the `version` read here.
    """
    id: UUID
    quantity: int
    name: str | None
    version: int

    def with_changes(self, changes: Mapping[str, Any], version: int) -> Record:
        return replace(self, version=version, **changes)


def is_version(value: Any) -> bool:
    """
    True for values a store could have handed out as a version.

    Only plain ints qualify; ``True`` or ``1.0`` never match version 1.
    """
    return isinstance(value, int) and not isinstance(value, bool)


def coerce_id(value: Any) -> UUID | None:
    """
    Return ``value`` as a UUID, or None if it cannot name any record.
    """
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None


def check_quantity(value: Any) -> int:
    # bool is an int subclass but never a meaningful count.
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(
            f"versioned_store: quantity must be int, got {type(value).__name__}"
        )
    if not INT32_MIN <= value <= INT32_MAX:
        raise ValueError(
            f"versioned_store: quantity {value} is outside the signed 32-bit range"
        )
    return value


def check_name(value: Any) -> str | None:
    if value is not None and not isinstance(value, str):
        raise TypeError(
            f"versioned_store: name must be str or None, got {type(value).__name__}"
        )
    return value


def validate_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Check a change set against the writable fields and their types.

    Returns a plain dict copy so callers cannot alter it after validation.
    """
    unknown = set(changes) - WRITABLE_FIELDS
    if unknown:
        raise KeyError(
            f"versioned_store: cannot write field(s) {sorted(unknown)}. "
            f"Writable: {sorted(WRITABLE_FIELDS)}"
        )

    cleaned = dict(changes)
    if "quantity" in cleaned:
        check_quantity(cleaned["quantity"])
    if "name" in cleaned:
        check_name(cleaned["name"])
    return cleaned
