"""Outbound event delivery to notification, feed and socket collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic_core import to_jsonable_python
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ladder_engine.core.clock import utc_now

if TYPE_CHECKING:
    from ladder_engine.core.config import EventsConfig
    from ladder_engine.services.storage import ActivityRepository

logger = structlog.get_logger()


class EventType(str, Enum):
    CHALLENGE_CREATED = "challengeCreated"
    CHALLENGE_PROPOSED = "challengeProposed"
    CHALLENGE_COUNTER_PROPOSED = "challengeCounterProposed"
    CHALLENGE_CONFIRMED = "challengeConfirmed"
    CHALLENGE_DECLINED = "challengeDeclined"
    CHALLENGE_FORFEITED = "challengeForfeited"
    MATCH_STARTED = "matchStarted"
    SCORE_UPDATED = "scoreUpdated"
    MATCH_COMPLETED = "matchCompleted"
    MATCH_WON = "matchWon"
    MATCH_REMINDER = "matchReminder"
    MEMBER_JOINED = "memberJoined"


@dataclass(frozen=True)
class LadderEvent:
    """An emitted event as seen by a sink."""

    event_type: EventType
    payload: dict[str, Any]
    emitted_at: datetime = field(default_factory=utc_now)


class EventSink(ABC):
    """Abstract base class for outbound event sinks.

    Delivery is best-effort and at-least-once; consumers must tolerate
    duplicates.
    """

    @abstractmethod
    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        """Deliver one event.

        Args:
            event_type: Kind of state change.
            payload: JSON-compatible event body.
        """

    async def close(self) -> None:  # noqa: B027
        """Close any resources. Override if needed."""


class RecordingEventSink(EventSink):
    """Keep events in memory for tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[LadderEvent] = []

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        self.events.append(LadderEvent(event_type, dict(payload)))

    def of_type(self, event_type: EventType) -> list[LadderEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class LoggingEventSink(EventSink):
    """Write every event to the structured log."""

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        logger.info("ladder_event", event_type=event_type.value, payload=payload)


# Payload keys that identify the member an activity row belongs to, by priority.
_ACTOR_KEYS = ("winner_id", "member_id", "challenger_id", "actor_id", "player1_id")


class ActivityEventSink(EventSink):
    """Persist events as Activity rows, the ladder's audit trail."""

    def __init__(self, activities: ActivityRepository) -> None:
        self.activities = activities

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        member_id = next((payload[k] for k in _ACTOR_KEYS if payload.get(k)), None)
        await self.activities.record(
            event_type.value, to_jsonable_python(payload), member_id=member_id
        )


class WebhookEventSink(EventSink):
    """POST events as JSON to a collaborator endpoint with retries."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
        min_wait: float = 2.0,
        max_wait: float = 30.0,
    ) -> None:
        """Initialize webhook sink.

        Args:
            url: Endpoint receiving ``{"type": ..., "payload": ...}`` bodies.
            timeout: Per-request timeout in seconds.
            client: Optional pre-built client (tests inject a mock transport).
            max_attempts: Delivery attempts before giving up.
            min_wait: Minimum backoff between attempts.
            max_wait: Maximum backoff between attempts.
        """
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        body = {
            "type": event_type.value,
            "payload": to_jsonable_python(payload),
            "emitted_at": utc_now().isoformat(),
        }
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._post(body)

    async def _post(self, body: dict[str, Any]) -> None:
        logger.debug("webhook_post", url=self.url, event_type=body["type"])
        response = await self.client.post(self.url, json=body)
        response.raise_for_status()

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()


class CompositeEventSink(EventSink):
    """Fan an event out to several sinks; one failing sink does not block the rest."""

    def __init__(self, sinks: Sequence[EventSink]) -> None:
        self.sinks = list(sinks)

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(event_type, payload)
            except Exception:
                logger.exception(
                    "event_sink_failed", sink=type(sink).__name__, event_type=event_type.value
                )

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()


def create_event_sink(
    config: EventsConfig,
    activities: ActivityRepository | None = None,
    extra: Sequence[EventSink] = (),
) -> EventSink:
    """Create the configured sink chain.

    Args:
        config: Event delivery settings.
        activities: Repository for the audit trail; required when
            ``persist_activities`` is on.
        extra: Additional sinks appended after the configured ones.

    Returns:
        A CompositeEventSink over every enabled sink.
    """
    sinks: list[EventSink] = []
    if config.log_events:
        sinks.append(LoggingEventSink())
    if config.persist_activities and activities is not None:
        sinks.append(ActivityEventSink(activities))
    if config.webhook_url:
        sinks.append(WebhookEventSink(config.webhook_url, timeout=config.webhook_timeout_seconds))
    sinks.extend(extra)
    return CompositeEventSink(sinks)
