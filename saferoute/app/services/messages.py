"""
Outbound message construction.

Every message the dispatcher sends is one of the variants below, each
rendering its own text. ``message_for_alert`` maps a stored alert onto
its variant; the mapping is checked at import time so a new AlertType
without a message fails loudly instead of at dispatch time.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional

from saferoute.app.core.config import settings
from saferoute.app.models.alert import AlertType


class MessageKind(str, enum.Enum):
    SOS = "SOS"
    DEVIATION = "DEVIATION"
    STOP = "STOP"
    TRIP_COMPLETE = "TRIP_COMPLETE"
    TRIP_STARTED = "TRIP_STARTED"
    LOW_BATTERY = "LOW_BATTERY"
    CHECK_IN = "CHECK_IN"
    ALL_CLEAR = "ALL_CLEAR"
    STATUS_UPDATE = "STATUS_UPDATE"
    DAILY_SUMMARY = "DAILY_SUMMARY"


# Sent on the priority path: no concurrency cap, longer timeout, no circuit breaker
PRIORITY_KINDS = frozenset({MessageKind.SOS, MessageKind.ALL_CLEAR})


def maps_link(latitude: float, longitude: float) -> str:
    return f"{settings.maps_link_base}{latitude},{longitude}"


def _clock(ts: Optional[datetime]) -> str:
    if ts is None:
        return "N/A"
    return ts.strftime("%H:%M")


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


@dataclass(frozen=True)
class Message(ABC):
    kind: ClassVar[MessageKind]
    user_name: str

    @property
    def is_priority(self) -> bool:
        return self.kind in PRIORITY_KINDS

    @abstractmethod
    def render(self) -> str:
        ...


@dataclass(frozen=True)
class LocationMessage(Message):
    """Base for messages raised from an alert at a location."""
    user_phone: Optional[str]
    latitude: float
    longitude: float
    timestamp: Optional[datetime]
    description: Optional[str] = None

    @property
    def link(self) -> str:
        return maps_link(self.latitude, self.longitude)


@dataclass(frozen=True)
class SosMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.SOS

    def render(self) -> str:
        lines = [
            "🆘 EMERGENCY SOS ALERT 🆘",
            "",
            f"{self.user_name} needs immediate help!",
            "",
            f"📍 Live Location: {self.link}",
            f"📞 Contact: {self.user_phone or 'their registered number'}",
        ]
        if self.description:
            lines.append(f"💬 Message: {self.description}")
        lines.append(f"🕐 Time: {_clock(self.timestamp)}")
        lines.append("")
        lines.append("⚠️ Please check on them immediately!")
        return "\n".join(lines)


@dataclass(frozen=True)
class DeviationMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.DEVIATION

    def render(self) -> str:
        return f"🚨 SafeRoute Alert: {self.user_name} deviated from route at {self.link} at {_clock(self.timestamp)}"


@dataclass(frozen=True)
class StopMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.STOP

    def render(self) -> str:
        return f"⚠️ SafeRoute Alert: {self.user_name} has stopped unexpectedly at {self.link}"


@dataclass(frozen=True)
class TripCompleteMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.TRIP_COMPLETE

    def render(self) -> str:
        return f"✅ SafeRoute: {self.user_name} completed trip safely at {_clock(self.timestamp)}"


@dataclass(frozen=True)
class LowBatteryMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.LOW_BATTERY

    def render(self) -> str:
        detail = f" ({self.description})" if self.description else ""
        return f"🔋 SafeRoute: {self.user_name}'s phone battery is low{detail}. Last location: {self.link}"


@dataclass(frozen=True)
class CheckInMessage(LocationMessage):
    kind: ClassVar[MessageKind] = MessageKind.CHECK_IN

    def render(self) -> str:
        note = f" {self.description}" if self.description else ""
        return f"👋 SafeRoute: {self.user_name} checked in at {self.link}.{note}"


@dataclass(frozen=True)
class TripStartedMessage(Message):
    kind: ClassVar[MessageKind] = MessageKind.TRIP_STARTED
    source_address: str
    destination_address: str

    def render(self) -> str:
        return (
            f"🚶 SafeRoute: {self.user_name} has started a trip from "
            f"{self.source_address} to {self.destination_address}."
        )


@dataclass(frozen=True)
class AllClearMessage(Message):
    kind: ClassVar[MessageKind] = MessageKind.ALL_CLEAR

    def render(self) -> str:
        return f"✅ SafeRoute: {self.user_name} is safe. Previous alert was a false alarm and has been cancelled."


@dataclass(frozen=True)
class StatusUpdateMessage(Message):
    kind: ClassVar[MessageKind] = MessageKind.STATUS_UPDATE
    latitude: float
    longitude: float
    timestamp: Optional[datetime]
    destination_address: Optional[str] = None
    speed: float = 0.0  # m/s
    battery_level: Optional[float] = None

    def render(self) -> str:
        battery = f"{self.battery_level:.0f}%" if self.battery_level is not None else "Unknown"
        return (
            "🛣️ Trip Progress Update\n\n"
            f"{self.user_name} is on the way to {self.destination_address or 'destination'}\n\n"
            f"📍 Current Location: {maps_link(self.latitude, self.longitude)}\n"
            f"🚗 Speed: {self.speed * 3.6:.1f} km/h\n"
            f"🔋 Battery: {battery}\n"
            f"🕐 Last Update: {_clock(self.timestamp)}\n\n"
            "Everything looks good! 👍"
        )


@dataclass(frozen=True)
class DailySummaryMessage(Message):
    kind: ClassVar[MessageKind] = MessageKind.DAILY_SUMMARY
    trip_count: int
    deviation_count: int
    sos_count: int
    last_trip_time: Optional[datetime] = None

    def render(self) -> str:
        return (
            f"📊 SafeRoute Daily Report for {self.user_name}:\n"
            f"• {_plural(self.trip_count, 'trip')} completed\n"
            f"• {_plural(self.deviation_count, 'route deviation')}\n"
            f"• {_plural(self.sos_count, 'SOS alert')}\n"
            f"• Last trip completed at {_clock(self.last_trip_time)}"
        )


ALERT_MESSAGES = {
    AlertType.SOS: SosMessage,
    AlertType.DEVIATION: DeviationMessage,
    AlertType.STOP: StopMessage,
    AlertType.TRIP_COMPLETE: TripCompleteMessage,
    AlertType.LOW_BATTERY: LowBatteryMessage,
    AlertType.CHECK_IN: CheckInMessage,
}

_unmapped = set(AlertType) - set(ALERT_MESSAGES)
if _unmapped:
    raise RuntimeError(f"Alert types without a message: {sorted(t.value for t in _unmapped)}")

_kinds = {cls.kind for cls in (
    *ALERT_MESSAGES.values(), TripStartedMessage, AllClearMessage, StatusUpdateMessage, DailySummaryMessage,
)}
if _kinds != set(MessageKind):
    raise RuntimeError(f"Message kinds without a variant: {sorted(k.value for k in set(MessageKind) - _kinds)}")


def message_for_alert(alert, user) -> LocationMessage:
    """Build the message variant for a stored alert raised by ``user``."""
    cls = ALERT_MESSAGES[alert.type]
    return cls(
        user_name=user.name if user is not None else "User",
        user_phone=user.phone if user is not None else None,
        latitude=alert.latitude,
        longitude=alert.longitude,
        timestamp=alert.timestamp,
        description=alert.description,
    )
