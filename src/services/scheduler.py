"""Background delivery of due reminders and scheduled messages."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from src.services.delivery import DeliveryChannel
from src.services.reminders import ReminderService
from src.services.scheduled_messages import ScheduledMessageService
from src.utils.format import to_jid


logger = logging.getLogger("jarvis.scheduler")

DEFAULT_INTERVAL_SECONDS = 60.0


def get_interval_seconds() -> float:
    interval = float(os.environ.get("SCHEDULER_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS))
    return max(interval, 1.0)


class Scheduler:
    def __init__(
        self,
        channel: DeliveryChannel,
        reminders: ReminderService,
        scheduled: ScheduledMessageService,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self.channel = channel
        self.reminders = reminders
        self.scheduled = scheduled
        self.interval_seconds = interval_seconds or get_interval_seconds()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Deliver everything due at ``now``; one failure never blocks the rest."""

        current = now or datetime.now(timezone.utc)
        results = {"reminders": 0, "messages_sent": 0, "messages_failed": 0}

        for reminder in await self.reminders.due_reminders(current):
            try:
                await self.channel.send_single(
                    to_jid(reminder["phone_number"]), f"🔔 *Rappel*\n\n{reminder['message']}"
                )
                await self.reminders.mark_completed(reminder["id"])
                results["reminders"] += 1
            except Exception as exc:  # noqa: BLE001
                logger.error("Reminder %s delivery failed: %r", reminder["id"], exc)

        for row in await self.scheduled.due_messages(current):
            try:
                await self.channel.send_single(to_jid(row["target_phone"]), row["message"])
                await self.scheduled.mark_sent(row["id"])
                results["messages_sent"] += 1
            except Exception as exc:  # noqa: BLE001
                logger.error("Scheduled message %s failed: %r", row["id"], exc)
                await self.scheduled.mark_failed(row["id"], str(exc))
                results["messages_failed"] += 1

        return results

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                results = await self.run_once()
                if any(results.values()):
                    logger.info("Scheduler tick delivered %s", results)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # noqa: BLE001
                logger.error("Scheduler tick failed: %r", exc)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Scheduler started (every %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
