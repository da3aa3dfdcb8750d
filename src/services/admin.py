"""Administration data for the Jarvis WhatsApp assistant.

Admins, blacklist, per-user daily limits, the bot mode, debug flags, the
audit trail, statistics and backups. Phone numbers are stored as bare digits
(see :func:`src.utils.format.jid_number`) so that a JID and a number typed by
an admin refer to the same user.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from src.config.jarvis import JarvisConfig
from src.core.state import DispatcherState
from src.models.message import BotMode
from src.services.store import CONVERSATIONS, MESSAGES, DocumentStore, utc_now_iso
from src.services.time_service import parse_iso
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.admin")

ADMINS = "admins"
BLACKLIST = "blacklist"
USER_LIMITS = "user_limits"
BOT_CONFIG = "bot_config"
AUDIT = "admin_audit"
BACKUPS = "backups"
TICKETS = "tickets"

BOT_MODE_KEY = "bot_mode"
LIMIT_WINDOW = timedelta(hours=24)


class AdminService:
    """Persistence-backed admin operations plus the live bot mode."""

    def __init__(
        self,
        store: DocumentStore,
        state: DispatcherState,
        config: Optional[JarvisConfig] = None,
    ) -> None:
        self.store = store
        self.state = state
        self.config = config or JarvisConfig()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def is_admin(self, user_id: str) -> bool:
        number = jid_number(user_id)
        if not number:
            return False
        if number in {jid_number(p) for p in self.config.admin_phones}:
            return True
        return await self.store.find_one(ADMINS, {"phone_number": number}) is not None

    async def is_blacklisted(self, user_id: str) -> bool:
        return await self.store.find_one(BLACKLIST, {"phone_number": jid_number(user_id)}) is not None

    async def block_user(self, phone: str, reason: str, admin: str) -> bool:
        number = jid_number(phone)
        if await self.is_blacklisted(number):
            return False
        await self.store.create_document(
            BLACKLIST, {"phone_number": number, "reason": reason, "blocked_by": jid_number(admin)}
        )
        await self.log_audit(admin, "block_user", f"{number}: {reason}")
        return True

    async def unblock_user(self, phone: str, admin: str) -> bool:
        entry = await self.store.find_one(BLACKLIST, {"phone_number": jid_number(phone)})
        if not entry:
            return False
        await self.store.delete_document(BLACKLIST, entry["id"])
        await self.log_audit(admin, "unblock_user", jid_number(phone))
        return True

    async def get_blacklist(self) -> List[Dict[str, Any]]:
        return await self.store.list_documents(BLACKLIST, order_by="created_at", descending=True)

    # ------------------------------------------------------------------
    # Daily limits
    # ------------------------------------------------------------------

    async def check_user_limit(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """True while the user may still send messages today.

        Users without a limit row are unlimited. Lookup errors allow the
        message through.
        """

        current = now or datetime.now(timezone.utc)
        try:
            row = await self.store.find_one(USER_LIMITS, {"phone_number": jid_number(user_id)})
            if row is None:
                return True

            reset_at = row.get("reset_at")
            if not reset_at or parse_iso(reset_at) <= current:
                await self.store.update_document(
                    USER_LIMITS,
                    row["id"],
                    {"messages_used": 0, "reset_at": (current + LIMIT_WINDOW).isoformat()},
                )
                return True

            return int(row.get("messages_used") or 0) < int(row.get("daily_limit") or 0)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Limit check failed for %s, allowing: %r", user_id, exc)
            return True

    async def increment_user_usage(self, user_id: str) -> None:
        """Count one answered message. Runs after the reply, so errors are only logged."""

        try:
            row = await self.store.find_one(USER_LIMITS, {"phone_number": jid_number(user_id)})
            if row is None:
                return
            await self.store.update_document(
                USER_LIMITS, row["id"], {"messages_used": int(row.get("messages_used") or 0) + 1}
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to increment usage for %s: %r", user_id, exc)

    async def set_user_limit(self, phone: str, daily_limit: int, admin: str) -> None:
        number = jid_number(phone)
        row = await self.store.find_one(USER_LIMITS, {"phone_number": number})
        if row:
            await self.store.update_document(USER_LIMITS, row["id"], {"daily_limit": daily_limit})
        else:
            await self.store.create_document(
                USER_LIMITS,
                {
                    "phone_number": number,
                    "daily_limit": daily_limit,
                    "messages_used": 0,
                    "reset_at": (datetime.now(timezone.utc) + LIMIT_WINDOW).isoformat(),
                },
            )
        await self.log_audit(admin, "set_limit", f"{number}: {daily_limit}/jour")

    async def get_user_limits(self) -> List[Dict[str, Any]]:
        return await self.store.list_documents(USER_LIMITS, order_by="phone_number")

    # ------------------------------------------------------------------
    # Bot mode and debug
    # ------------------------------------------------------------------

    async def load_bot_mode(self) -> BotMode:
        """Restore the persisted mode into the live state."""

        row = await self.store.find_one(BOT_CONFIG, {"key": BOT_MODE_KEY})
        if row:
            try:
                self.state.mode = BotMode(row.get("value"))
            except ValueError:
                logger.warning("Ignoring unknown persisted bot mode %r", row.get("value"))
        return self.state.mode

    async def set_bot_mode(self, mode: BotMode, admin: str) -> None:
        self.state.mode = mode
        row = await self.store.find_one(BOT_CONFIG, {"key": BOT_MODE_KEY})
        payload = {"value": mode.value, "updated_by": jid_number(admin), "updated_at": utc_now_iso()}
        if row:
            await self.store.update_document(BOT_CONFIG, row["id"], payload)
        else:
            await self.store.create_document(BOT_CONFIG, {"key": BOT_MODE_KEY, **payload})
        await self.log_audit(admin, "set_mode", mode.value)
        logger.info("Bot mode set to %s by %s", mode.value, admin)

    async def toggle_debug(self, phone: str, admin: str) -> bool:
        """Flip verbose logging for ``phone``; returns the new state."""

        number = jid_number(phone)
        if number in self.state.debug_users:
            self.state.debug_users.discard(number)
            enabled = False
        else:
            self.state.debug_users.add(number)
            enabled = True
        await self.log_audit(admin, "debug", f"{number}: {'on' if enabled else 'off'}")
        return enabled

    def is_debug_user(self, user_id: str) -> bool:
        return jid_number(user_id) in self.state.debug_users

    # ------------------------------------------------------------------
    # Audit, stats, users
    # ------------------------------------------------------------------

    async def log_audit(self, admin: str, action: str, details: str = "") -> None:
        try:
            await self.store.create_document(
                AUDIT, {"admin_phone": jid_number(admin), "action": action, "details": details}
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to write audit entry %s: %r", action, exc)

    async def get_audit_log(self, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.store.list_documents(AUDIT, order_by="created_at", descending=True, limit=limit)

    async def get_active_users(self, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.store.list_documents(
            CONVERSATIONS, order_by="last_message_at", descending=True, limit=limit
        )

    async def get_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        current = now or datetime.now(timezone.utc)
        since = (current - timedelta(hours=24)).isoformat()
        return {
            "conversations": await self.store.count_documents(CONVERSATIONS),
            "active_users_24h": await self.store.count_documents(CONVERSATIONS, gte={"last_message_at": since}),
            "messages_24h": await self.store.count_documents(MESSAGES, gte={"created_at": since}),
            "open_tickets": await self.store.count_documents(TICKETS, filters={"status": "open"}),
            "blocked_users": await self.store.count_documents(BLACKLIST),
        }

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def create_backup(self, admin: str) -> Dict[str, Any]:
        conversations = await self.store.list_documents(CONVERSATIONS)
        messages = await self.store.list_documents(MESSAGES)
        backup = await self.store.create_document(
            BACKUPS,
            {
                "created_by": jid_number(admin),
                "conversations": len(conversations),
                "messages": len(messages),
                "payload": {"conversations": conversations, "messages": messages},
            },
        )
        await self.log_audit(admin, "backup", backup["id"])
        return backup

    async def list_backups(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.store.list_documents(BACKUPS, order_by="created_at", descending=True, limit=limit)

    async def all_user_ids(self) -> List[str]:
        """Every person Jarvis has talked to, group chats excluded."""

        rows = await self.store.list_documents(CONVERSATIONS)
        return [row["phone_number"] for row in rows if "@g.us" not in (row.get("phone_number") or "")]
