"""Personal reminders (``/remind``) delivered by the scheduler loop."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from src.services.store import DocumentStore
from src.services.time_service import format_date_fr, format_time, parse_iso, to_local
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.reminders")

REMINDERS = "reminders"

ReminderStatus = Literal["active", "completed", "cancelled"]


class ReminderService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def create_reminder(self, phone: str, message: str, when: datetime) -> Dict[str, Any]:
        reminder = await self.store.create_document(
            REMINDERS,
            {
                "phone_number": jid_number(phone),
                "message": message,
                "scheduled_for": when.astimezone(timezone.utc).isoformat(),
                "status": "active",
            },
        )
        logger.info("Reminder %s set for %s at %s", reminder["id"], phone, reminder["scheduled_for"])
        return reminder

    async def get_user_reminders(self, phone: str) -> List[Dict[str, Any]]:
        return await self.store.list_documents(
            REMINDERS,
            filters={"phone_number": jid_number(phone), "status": "active"},
            order_by="scheduled_for",
        )

    async def cancel_reminder(self, reminder_id: str, phone: str) -> bool:
        """Cancel one of ``phone``'s active reminders by id or id prefix."""

        for reminder in await self.get_user_reminders(phone):
            if reminder["id"].startswith(reminder_id):
                await self.store.update_document(REMINDERS, reminder["id"], {"status": "cancelled"})
                return True
        return False

    async def due_reminders(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        rows = await self.store.list_documents(REMINDERS, filters={"status": "active"}, order_by="scheduled_for")
        return [row for row in rows if parse_iso(row["scheduled_for"]) <= current]

    async def mark_completed(self, reminder_id: str) -> None:
        await self.store.update_document(REMINDERS, reminder_id, {"status": "completed"})


def format_reminder(reminder: Dict[str, Any]) -> str:
    when = to_local(parse_iso(reminder["scheduled_for"]))
    return (
        f"📅 *{format_date_fr(when)}*\n"
        f"⏰ *{format_time(when)}*\n\n"
        f"📝 {reminder.get('message', '')}\n\n"
        f"🆔 ID: {reminder['id'][:8]}"
    )
