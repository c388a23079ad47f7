"""Periodic forfeiture of expired challenges and match reminders."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from ladder_engine.core.clock import Clock, as_utc, utc_now
from ladder_engine.core.errors import InvalidTransitionError

if TYPE_CHECKING:
    from ladder_engine.services.challenge import ChallengeLifecycle

logger = structlog.get_logger()


class HousekeepingSweeper:
    """Forfeit expired challenges, one transaction per challenge, and send match reminders.

    Safe to run alongside user actions and other sweepers: a challenge that
    was resolved concurrently fails its compare-and-swap and is skipped.
    """

    def __init__(self, lifecycle: ChallengeLifecycle, clock: Clock = utc_now) -> None:
        self.lifecycle = lifecycle
        self._clock = clock

    async def run_sweep(self, now: datetime | None = None) -> int:
        """Resolve every expired pending, negotiating or scheduled challenge.

        After the forfeits, scheduled matches starting within a day or an hour
        get their ``matchReminder``.

        Args:
            now: Sweep time; defaults to the clock.

        Returns:
            Number of challenges this pass forfeited.
        """
        now = as_utc(now) or self._clock()
        candidates = await self.lifecycle.expired_challenge_ids(now)
        resolved = 0
        failed = 0
        for challenge_id in candidates:
            try:
                await self.lifecycle.forfeit_expired(challenge_id, now)
            except InvalidTransitionError as e:
                logger.debug("sweep_skip", challenge_id=challenge_id, reason=str(e))
                continue
            except Exception:
                # Includes sink failures after a committed forfeit; the next
                # pass skips those since they are no longer open.
                failed += 1
                logger.exception("sweep_failed", challenge_id=challenge_id)
                continue
            resolved += 1

        try:
            reminders = await self.lifecycle.send_reminders(now)
        except Exception:
            reminders = 0
            logger.exception("reminder_pass_failed")

        logger.info(
            "sweep_complete",
            candidates=len(candidates),
            resolved=resolved,
            failed=failed,
            reminders=reminders,
        )
        return resolved

    async def run_forever(
        self, interval_seconds: float, stop_event: asyncio.Event | None = None
    ) -> None:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info("sweeper_started", interval_seconds=interval_seconds)
        while not stop_event.is_set():
            try:
                await self.run_sweep()
            except Exception:
                logger.exception("sweep_pass_failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                continue
        logger.info("sweeper_stopped")
