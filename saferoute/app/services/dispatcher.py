"""
Alert Dispatcher.

Fans a message out to every member of the trigger's Safe Circle:

- WhatsApp first, SMS fallback per recipient
- one task per recipient, bounded by a semaphore; SOS and all-clear
  bypass the bound and get a longer timeout
- a circuit breaker per channel sends recipients straight to the
  fallback while a channel keeps failing
- a realtime event to the circle channel, concurrently and best-effort

Individual recipient failures are recorded as AlertDelivery rows and
logged; they never fail the dispatch. The dispatcher adds rows to the
caller's session and leaves the commit to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.config import settings
from saferoute.app.core.exceptions import DeliveryError
from saferoute.app.core.reliability import CircuitBreaker
from saferoute.app.models.alert import Alert
from saferoute.app.models.alert_delivery import AlertDelivery
from saferoute.app.models.user import User
from saferoute.app.services.circle_service import resolve_circle, get_recipients
from saferoute.app.services.messages import Message
from saferoute.app.services.messaging import CHANNEL_ORDER, Channel, MessagingProvider
from saferoute.app.services.realtime import RealtimeBroadcaster

logger = logging.getLogger("saferoute.dispatch")

PROVIDER_UNAVAILABLE = "provider_unavailable"
NO_PHONE = "no_phone"


@dataclass
class RecipientResult:
    user_id: str
    success: bool
    channel: Optional[Channel] = None
    fell_back: bool = False
    error: Optional[str] = None


@dataclass
class DispatchResult:
    is_sent: bool
    recipient_count: int = 0
    delivered_count: int = 0
    group_code: Optional[str] = None
    skipped_reason: Optional[str] = None
    results: List[RecipientResult] = field(default_factory=list)

    def apply_to(self, alert: Alert) -> None:
        alert.is_sent = self.is_sent
        alert.recipient_count = self.recipient_count
        alert.delivered_count = self.delivered_count


class AlertDispatcher:
    def __init__(
        self,
        provider: MessagingProvider,
        broadcaster: RealtimeBroadcaster = None,
        concurrency: int = None,
        message_timeout: float = None,
        emergency_timeout: float = None,
        failure_threshold: int = None,
        reset_timeout: int = None,
    ):
        self.provider = provider
        self.broadcaster = broadcaster or RealtimeBroadcaster()
        self.message_timeout = message_timeout if message_timeout is not None else settings.message_timeout_seconds
        self.emergency_timeout = (
            emergency_timeout if emergency_timeout is not None else settings.emergency_timeout_seconds
        )
        self._semaphore = asyncio.Semaphore(concurrency or settings.dispatch_concurrency)
        self.breakers = {
            channel: CircuitBreaker(
                name=f"channel:{channel.value}",
                failure_threshold=failure_threshold or settings.channel_failure_threshold,
                reset_timeout=reset_timeout or settings.channel_reset_timeout_seconds,
            )
            for channel in CHANNEL_ORDER
        }

    async def dispatch(
        self,
        db: AsyncSession,
        message: Message,
        trigger_user: User,
        alert_id: Optional[str] = None,
        trip_id: Optional[str] = None,
        event: Optional[str] = None,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> DispatchResult:
        """
        Deliver a message to the trigger user's circle.

        Args:
            db: Session delivery rows are added to (caller commits)
            message: Message variant to render and send
            trigger_user: User the message is about; never a recipient
            alert_id: Alert row the deliveries belong to, if any
            trip_id: Trip the message concerns, if any
            event: Realtime event name to publish alongside, if any
            event_data: Realtime event payload

        Returns:
            DispatchResult summarising the fan-out
        """
        circle = await resolve_circle(db, trigger_user)
        if circle is None:
            logger.info("No circle for user %s; %s not dispatched", trigger_user.id, message.kind.value)
            return DispatchResult(is_sent=False, skipped_reason="no_circle")

        group_code = circle.group_code
        broadcast = None
        if event:
            broadcast = asyncio.create_task(self.broadcaster.publish(group_code, event, event_data or {}))

        recipients = await get_recipients(db, group_code, exclude_user_id=trigger_user.id)
        body = message.render()

        if not recipients:
            results = []
            is_sent = True
            skipped_reason = None
        elif not self.provider.available:
            logger.warning(
                "Messaging provider unavailable; recording %s for %d recipients without sending",
                message.kind.value, len(recipients),
            )
            results = [RecipientResult(user_id=u.id, success=False, error=PROVIDER_UNAVAILABLE) for u in recipients]
            is_sent = False
            skipped_reason = PROVIDER_UNAVAILABLE
        else:
            priority = message.is_priority
            outcomes = await asyncio.gather(
                *(self._deliver(user, body, priority) for user in recipients),
                return_exceptions=True,
            )
            results = []
            for user, outcome in zip(recipients, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Delivery to %s crashed", user.id,
                        exc_info=(type(outcome), outcome, outcome.__traceback__),
                    )
                    outcome = RecipientResult(user_id=user.id, success=False, error=repr(outcome))
                results.append(outcome)
            is_sent = any(r.success for r in results)
            skipped_reason = None

        if broadcast is not None:
            await broadcast

        for r in results:
            db.add(AlertDelivery(
                alert_id=alert_id,
                trip_id=trip_id,
                message_kind=message.kind.value,
                recipient_user_id=r.user_id,
                channel=r.channel.value if r.channel else None,
                success=r.success,
                fell_back=r.fell_back,
                error=r.error,
            ))

        delivered = sum(1 for r in results if r.success)
        logger.info(
            "%s for user %s: delivered %d/%d (circle %s)",
            message.kind.value, trigger_user.id, delivered, len(recipients), group_code,
        )
        return DispatchResult(
            is_sent=is_sent,
            recipient_count=len(recipients),
            delivered_count=delivered,
            group_code=group_code,
            skipped_reason=skipped_reason,
            results=results,
        )

    async def _deliver(self, user: User, body: str, priority: bool) -> RecipientResult:
        if not user.phone:
            return RecipientResult(user_id=user.id, success=False, error=NO_PHONE)
        if priority:
            return await self._send_with_fallback(user, body, priority=True)
        async with self._semaphore:
            return await self._send_with_fallback(user, body, priority=False)

    async def _send_with_fallback(self, user: User, body: str, priority: bool) -> RecipientResult:
        timeout = self.emergency_timeout if priority else self.message_timeout
        errors = []
        last_channel = None

        for position, channel in enumerate(CHANNEL_ORDER):
            breaker = self.breakers[channel]
            if not priority and not breaker.allow():
                errors.append(f"{channel.value}: circuit open")
                continue

            last_channel = channel
            try:
                await asyncio.wait_for(self.provider.send(user.phone, body, channel), timeout)
            except asyncio.TimeoutError:
                breaker.record_failure()
                errors.append(f"{channel.value}: timed out after {timeout}s")
            except DeliveryError as exc:
                if exc.retryable:
                    breaker.record_failure()
                errors.append(f"{channel.value}: {exc}")
            else:
                breaker.record_success()
                return RecipientResult(
                    user_id=user.id,
                    success=True,
                    channel=channel,
                    fell_back=position > 0,
                    error="; ".join(errors) or None,
                )

        logger.warning("All channels failed for %s: %s", user.id, "; ".join(errors))
        return RecipientResult(
            user_id=user.id,
            success=False,
            channel=last_channel,
            fell_back=last_channel is not None and last_channel != CHANNEL_ORDER[0],
            error="; ".join(errors),
        )
