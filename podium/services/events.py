"""Downstream domain events.

Settlement and the period lifecycle announce what they did through an
EventPublisher. Notification delivery, achievements and similar consumers
live outside this service and subscribe to the Redis channel.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PickDetail:
    """Settlement detail for one pick."""

    competitor_id: int
    position: str
    is_correct: bool
    points: float
    odd_used: float
    used_bog_odd: bool
    boosted: bool


@dataclass(frozen=True)
class WagerSettledEvent:
    """A wager was settled as won or lost."""

    wager_id: int
    user_id: str
    period_id: int
    won: bool
    points: float
    perfect: bool
    picks: list[PickDetail] = field(default_factory=list)

    name = "wager.settled"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PeriodTransitionEvent:
    """A betting period changed status."""

    period_id: int
    from_status: str | None
    to_status: str
    podium: tuple[int, int, int] | None = None
    cancelled: bool = False

    name = "period.transition"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EventPublisher:
    """Interface for event sinks."""

    async def publish(self, event: WagerSettledEvent | PeriodTransitionEvent) -> None:
        raise NotImplementedError


class LoggingEventPublisher(EventPublisher):
    """Writes events to the structured log."""

    async def publish(self, event: WagerSettledEvent | PeriodTransitionEvent) -> None:
        logger.info("domain_event", event_name=event.name, **event.to_dict())


class RedisEventPublisher(EventPublisher):
    """
    Publishes events as JSON on a Redis pub/sub channel.

    Publishing is best effort: a Redis failure is logged and does not undo
    the settlement or transition that produced the event.
    """

    def __init__(self, client: redis.Redis, channel: str):
        self.client = client
        self.channel = channel

    async def publish(self, event: WagerSettledEvent | PeriodTransitionEvent) -> None:
        message = json.dumps({"event": event.name, "payload": event.to_dict()})
        try:
            await self.client.publish(self.channel, message)
        except redis.RedisError as e:
            logger.warning(
                "event_publish_failed",
                event_name=event.name,
                channel=self.channel,
                error=str(e),
            )
