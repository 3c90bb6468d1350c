"""
Trip-related enumerations and the trip status transition table.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PLANNED = "PLANNED"  # Created, not yet started
    ACTIVE = "ACTIVE"  # Being tracked
    COMPLETED = "COMPLETED"  # Arrived or ended by the traveller
    CANCELLED = "CANCELLED"  # Abandoned


TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})

TRIP_TRANSITIONS = {
    TripStatus.PLANNED: frozenset({TripStatus.ACTIVE, TripStatus.CANCELLED}),
    TripStatus.ACTIVE: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

# External spellings seen from clients; keys are lower-cased with
# separators stripped.
_STATUS_ALIASES = {
    "planned": TripStatus.PLANNED,
    "pending": TripStatus.PLANNED,
    "active": TripStatus.ACTIVE,
    "inprogress": TripStatus.ACTIVE,
    "started": TripStatus.ACTIVE,
    "ongoing": TripStatus.ACTIVE,
    "completed": TripStatus.COMPLETED,
    "complete": TripStatus.COMPLETED,
    "finished": TripStatus.COMPLETED,
    "cancelled": TripStatus.CANCELLED,
    "canceled": TripStatus.CANCELLED,
}


def normalize_status(label) -> TripStatus:
    """
    Map any accepted status spelling onto the canonical TripStatus.

    Raises:
        ValueError: if the label is not a known spelling
    """
    if isinstance(label, TripStatus):
        return label
    if not isinstance(label, str):
        raise ValueError(f"Unknown trip status: {label!r}")
    key = label.strip().lower().replace("_", "").replace("-", "").replace(" ", "")
    try:
        return _STATUS_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown trip status: {label!r}") from None
