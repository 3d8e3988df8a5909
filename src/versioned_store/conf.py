"""
Library settings, read from Django settings.

Configure through an optional ``VERSIONED_STORE`` dict::

    VERSIONED_STORE = {
        "DATABASE": "default",   # connection alias
        "TABLE": "Inventory",    # table holding the records
    }

Values are looked up on every call so the package can be imported before
Django settings are configured.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "DATABASE": "default",
    "TABLE": "Inventory",
}


def get_setting(name: str) -> Any:
    if name not in DEFAULTS:
        raise KeyError(
            f"versioned_store: unknown setting '{name}'. Known: {sorted(DEFAULTS)}"
        )
    overrides = getattr(settings, "VERSIONED_STORE", None) or {}
    return overrides.get(name, DEFAULTS[name])
