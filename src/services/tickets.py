"""Support tickets opened from WhatsApp (``/ticket``, ``/human``)."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from src.services.store import DocumentStore
from src.services.time_service import format_date_short, parse_iso
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.tickets")

TICKETS = "tickets"

TicketStatus = Literal["open", "in_progress", "resolved", "closed"]
TicketPriority = Literal["low", "medium", "high", "urgent"]
TicketCategory = Literal["technical", "billing", "general", "other"]

STATUS_EMOJI = {"open": "🔵", "in_progress": "🟡", "resolved": "🟢", "closed": "⚫"}
PRIORITY_EMOJI = {"low": "⬇️", "medium": "➡️", "high": "⬆️", "urgent": "🚨"}
STATUS_LABELS = {"open": "Ouvert", "in_progress": "En cours", "resolved": "Résolu", "closed": "Fermé"}
PRIORITY_LABELS = {"low": "Basse", "medium": "Moyenne", "high": "Haute", "urgent": "Urgente"}


def generate_ticket_number(now: Optional[datetime] = None, rand: Any = random) -> str:
    """``YYMM`` followed by four random digits, e.g. ``25034821``."""

    current = now or datetime.now(timezone.utc)
    return f"{current:%y%m}{rand.randint(0, 9999):04d}"


class TicketService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def create_ticket(
        self,
        phone: str,
        subject: str,
        description: str,
        priority: TicketPriority = "medium",
        escalated: bool = False,
        category: TicketCategory = "general",
    ) -> Dict[str, Any]:
        number = generate_ticket_number()
        ticket = await self.store.create_document(
            TICKETS,
            {
                "ticket_number": number,
                "phone_number": jid_number(phone),
                "subject": f"#{number} - {subject}",
                "description": description,
                "status": "open",
                "priority": priority,
                "category": category,
                "escalated_to_human": escalated,
            },
        )
        logger.info("Ticket %s created for %s (priority=%s)", number, phone, priority)
        return ticket

    async def escalate_to_human(self, phone: str, reason: str) -> Dict[str, Any]:
        return await self.create_ticket(
            phone, "Demande d'assistance humaine", reason, priority="urgent", escalated=True
        )

    async def get_user_tickets(self, phone: str, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.store.list_documents(
            TICKETS,
            filters={"phone_number": jid_number(phone)},
            order_by="created_at",
            descending=True,
            limit=limit,
        )

    async def get_ticket(self, ticket_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_document(TICKETS, ticket_id)

    async def update_status(self, ticket_id: str, status: TicketStatus) -> Dict[str, Any]:
        return await self.store.update_document(TICKETS, ticket_id, {"status": status})


def format_ticket(ticket: Dict[str, Any]) -> str:
    status = ticket.get("status", "open")
    priority = ticket.get("priority", "medium")
    created = ticket.get("created_at")
    created_str = format_date_short(parse_iso(created)) if created else "-"
    lines = [
        f"*Ticket {ticket.get('subject', '')}*",
        "━━━━━━━━━━━━━━",
        f"{STATUS_EMOJI.get(status, '')} Statut: {STATUS_LABELS.get(status, status)}",
        f"{PRIORITY_EMOJI.get(priority, '')} Priorité: {PRIORITY_LABELS.get(priority, priority)}",
        f"📅 Créé le: {created_str}",
    ]
    if ticket.get("escalated_to_human"):
        lines.append("⚠️ *Escaladé à un humain*")
    lines.append("")
    lines.append(f"📝 Description:\n{ticket.get('description', '')}")
    return "\n".join(lines)
