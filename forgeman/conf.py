"""
Forgeman configuration.

Usage in settings.py:
    FORGEMAN = {
        "ORDER_WORKFLOW": "planned",
        "CONSUMPTION_MODE": "on_complete",
        "UNIT_PRECISION": {"un": 0, "kg": 3},
        "RESERVATION_TTL_MINUTES": 60,
    }
"""

from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


# Ledger and reservation columns store 3 decimal places
MAX_PRECISION = 3


@dataclass
class ForgemanSettings:
    """Forgeman configuration settings."""

    # Minimum stage an order must reach before it can start:
    # simple (confirmed), planned, released
    ORDER_WORKFLOW: str = "simple"

    # When reserved materials are issued: on_start | on_complete
    CONSUMPTION_MODE: str = "on_start"

    # Decimal places used by BOM explosion rounding
    DEFAULT_PRECISION: int = MAX_PRECISION
    UNIT_PRECISION: dict[str, int] = field(default_factory=lambda: {"un": 0, "pc": 0})

    # Default reservation TTL in minutes (0 = no expiration)
    RESERVATION_TTL_MINUTES: int = 0

    # Batch size for release_expired processing
    EXPIRED_BATCH_SIZE: int = 200

    # Prefix for generated manufacturing order references
    REFERENCE_PREFIX: str = "MO"


def get_forgeman_settings() -> ForgemanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "FORGEMAN", {})
    return ForgemanSettings(**{
        k: v for k, v in user_settings.items()
        if k in ForgemanSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_forgeman_settings(), name)


forgeman_settings = _LazySettings()
