"""Tests for event sinks."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from ladder_engine.core.config import EventsConfig
from ladder_engine.services.events import (
    ActivityEventSink,
    CompositeEventSink,
    EventSink,
    EventType,
    LoggingEventSink,
    RecordingEventSink,
    WebhookEventSink,
    create_event_sink,
)

WEBHOOK_URL = "https://hooks.example.test/ladder"


class _BrokenSink(EventSink):
    async def emit(self, event_type, payload):
        msg = "sink down"
        raise RuntimeError(msg)


def _webhook(handler, max_attempts=3):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookEventSink(
        WEBHOOK_URL, client=client, max_attempts=max_attempts, min_wait=0, max_wait=0
    )


class TestRecordingEventSink:
    """Tests for RecordingEventSink."""

    @pytest.mark.asyncio
    async def test_records_and_filters(self):
        """Events are kept in order and filterable by type."""
        sink = RecordingEventSink()
        await sink.emit(EventType.CHALLENGE_CREATED, {"challenge_id": "c1"})
        await sink.emit(EventType.MATCH_WON, {"winner_id": "m1"})

        assert [e.event_type for e in sink.events] == [
            EventType.CHALLENGE_CREATED,
            EventType.MATCH_WON,
        ]
        assert sink.of_type(EventType.MATCH_WON)[0].payload == {"winner_id": "m1"}
        sink.clear()
        assert sink.events == []

    def test_event_type_values_are_camel_case(self):
        """Wire names match what collaborators subscribe to."""
        assert EventType.CHALLENGE_FORFEITED.value == "challengeForfeited"
        assert EventType.MATCH_WON.value == "matchWon"


class TestCompositeEventSink:
    """Tests for CompositeEventSink."""

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_block_others(self):
        """A broken sink is logged and skipped."""
        recorder = RecordingEventSink()
        composite = CompositeEventSink([_BrokenSink(), recorder])

        await composite.emit(EventType.MATCH_COMPLETED, {"match_id": "x"})

        assert len(recorder.events) == 1


class TestWebhookEventSink:
    """Tests for WebhookEventSink."""

    @pytest.mark.asyncio
    async def test_posts_json_body(self):
        """Datetimes in payloads are serialised to ISO strings."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        sink = _webhook(handler)
        try:
            await sink.emit(
                EventType.CHALLENGE_CREATED,
                {"challenge_id": "c1", "deadline": datetime(2026, 3, 15, tzinfo=UTC)},
            )
        finally:
            await sink.close()

        assert seen[0]["type"] == "challengeCreated"
        assert seen[0]["payload"]["deadline"].startswith("2026-03-15T00:00:00")

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """Server errors are retried until delivery succeeds."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503 if len(calls) < 3 else 200)

        sink = _webhook(handler)
        try:
            await sink.emit(EventType.MATCH_WON, {"winner_id": "m1"})
        finally:
            await sink.close()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Persistent failures re-raise the last HTTP error."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        sink = _webhook(handler, max_attempts=2)
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await sink.emit(EventType.MATCH_WON, {"winner_id": "m1"})
        finally:
            await sink.close()

        assert len(calls) == 2


class TestActivityEventSink:
    """Tests for the persisted audit trail."""

    @pytest.mark.asyncio
    async def test_ladder_actions_are_persisted(self, league, abcd):
        """Challenge and result events land in the activities table."""
        challenge = await league.create_challenge(abcd["D"].id, abcd["B"].id)
        await league.decline(abcd["B"].id, challenge.id)

        recent = await league.activities.recent()
        action_types = [a.action_type for a in recent]
        assert "challengeCreated" in action_types
        assert "challengeDeclined" in action_types
        assert "matchWon" in action_types

        won = await league.activities.recent(action_type="matchWon")
        assert won[0].member_id == abcd["D"].id
        assert won[0].payload["loser_old_rank"] == 2

    @pytest.mark.asyncio
    async def test_filters_by_member(self, league, abcd):
        """Activities can be filtered by member."""
        await league.create_challenge(abcd["D"].id, abcd["B"].id)

        mine = await league.activities.recent(member_id=abcd["D"].id)
        assert {a.member_id for a in mine} == {abcd["D"].id}
        assert sorted(a.action_type for a in mine) == ["challengeCreated", "memberJoined"]


class TestCreateEventSink:
    """Tests for create_event_sink."""

    def test_builds_configured_chain(self, league):
        """Enabled sinks are included in order, extras last."""
        extra = RecordingEventSink()
        sink = create_event_sink(
            EventsConfig(log_events=True, persist_activities=True, webhook_url=WEBHOOK_URL),
            league.activities,
            [extra],
        )

        kinds = [type(s) for s in sink.sinks]
        assert kinds == [LoggingEventSink, ActivityEventSink, WebhookEventSink, RecordingEventSink]

    def test_everything_disabled(self):
        """A fully disabled config yields an empty fan-out."""
        sink = create_event_sink(EventsConfig(log_events=False, persist_activities=False))
        assert sink.sinks == []
