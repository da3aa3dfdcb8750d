"""Messages programmed for later delivery (``/schedule`` and ``/admin schedule``)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from src.services.store import DocumentStore, utc_now_iso
from src.services.time_service import parse_iso
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.scheduled_messages")

SCHEDULED_MESSAGES = "scheduled_messages"

ScheduledStatus = Literal["pending", "sent", "failed", "cancelled"]


class SchedulingError(ValueError):
    """Raised when a message cannot be scheduled (e.g. a date in the past)."""


class ScheduledMessageService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def schedule_message(
        self,
        target_phone: str,
        message: str,
        when: datetime,
        created_by: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        current = now or datetime.now(timezone.utc)
        if when <= current:
            raise SchedulingError("La date programmée doit être dans le futur")

        row = await self.store.create_document(
            SCHEDULED_MESSAGES,
            {
                "target_phone": target_phone,
                "message": message,
                "scheduled_for": when.astimezone(timezone.utc).isoformat(),
                "created_by": jid_number(created_by),
                "status": "pending",
            },
        )
        logger.info("Message %s scheduled for %s at %s", row["id"], target_phone, row["scheduled_for"])
        return row

    async def list_pending(self, created_by: Optional[str] = None) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {"status": "pending"}
        if created_by is not None:
            filters["created_by"] = jid_number(created_by)
        return await self.store.list_documents(SCHEDULED_MESSAGES, filters=filters, order_by="scheduled_for")

    async def cancel(self, message_id: str, created_by: Optional[str] = None) -> bool:
        """Cancel a pending message. ``created_by`` restricts it to the author's own messages."""

        row = await self.store.get_document(SCHEDULED_MESSAGES, message_id)
        if not row or row.get("status") != "pending":
            return False
        if created_by is not None and row.get("created_by") != jid_number(created_by):
            return False
        await self.store.update_document(SCHEDULED_MESSAGES, message_id, {"status": "cancelled"})
        return True

    async def due_messages(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        return [row for row in await self.list_pending() if parse_iso(row["scheduled_for"]) <= current]

    async def mark_sent(self, message_id: str) -> None:
        await self.store.update_document(
            SCHEDULED_MESSAGES, message_id, {"status": "sent", "sent_at": utc_now_iso()}
        )

    async def mark_failed(self, message_id: str, error: str) -> None:
        await self.store.update_document(
            SCHEDULED_MESSAGES, message_id, {"status": "failed", "error": error[:500]}
        )
