"""``/admin`` sub-commands for the Jarvis WhatsApp assistant.

Every sub-command is gated on :meth:`AdminService.is_admin`. Handlers take the
admin's id and the words after the sub-command and return the reply text.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Awaitable, Callable, Dict, List

from src.core.memory import ConversationMemory
from src.models.message import BotMode
from src.services.admin import AdminService
from src.services.delivery import DeliveryChannel
from src.services.scheduled_messages import ScheduledMessageService, SchedulingError
from src.services.time_service import format_datetime_fr, parse_iso, parse_time_prefix, relative_time_fr, to_local
from src.utils.format import jid_number, to_jid


logger = logging.getLogger("jarvis.admin_commands")

ACCESS_DENIED = "❌ Accès refusé. Cette commande est réservée aux administrateurs."
UNKNOWN_SUBCOMMAND = "❌ Commande admin inconnue. Tapez /admin help pour l'aide."
ADMIN_BADGE = "👑 *[Message Admin]*\n━━━━━━━━━━━━━━\n\n"

SubCommand = Callable[[str, List[str]], Awaitable[str]]

HELP_TEXT = """🔧 *Commandes Admin*
━━━━━━━━━━━━━━

*🔨 Maintenance:*
/admin status - État du système
/admin mode [normal|maintenance|readonly]
/admin debug [phone] - Mode debug

*👥 Utilisateurs:*
/admin users - Liste des utilisateurs
/admin block [phone] [raison] - Bloquer
/admin unblock [phone] - Débloquer
/admin limit [phone] [n] - Limiter messages/jour
/admin blacklist - Voir liste noire
/admin limits - Voir limites

*💾 Données:*
/admin backup - Créer backup
/admin backups - Liste des backups
/admin clear [phone|all] - Effacer données
/admin export [phone] - Exporter conversation

*📊 Monitoring:*
/admin stats - Statistiques
/admin audit [n] - Journal d'audit

*💬 Messagerie:*
/admin send [phone] [message]
/admin broadcast all [message]
/admin schedule [temps] [phone] [message]
/admin scheduled list
/admin scheduled cancel [id]

📱 Format numéro: 2250XXXXXXXXX"""


class AdminCommands:
    def __init__(
        self,
        admin: AdminService,
        memory: ConversationMemory,
        channel: DeliveryChannel,
        scheduled: ScheduledMessageService,
    ) -> None:
        self.admin = admin
        self.memory = memory
        self.channel = channel
        self.scheduled = scheduled
        self.started_at = time.monotonic()
        self.handlers: Dict[str, SubCommand] = {
            "help": self.help,
            "status": self.status,
            "users": self.users,
            "block": self.block,
            "unblock": self.unblock,
            "limit": self.limit,
            "blacklist": self.blacklist,
            "limits": self.limits,
            "backup": self.backup,
            "backups": self.backups,
            "clear": self.clear,
            "export": self.export,
            "mode": self.mode,
            "stats": self.stats,
            "audit": self.audit,
            "debug": self.debug,
            "send": self.send,
            "broadcast": self.broadcast,
            "schedule": self.schedule,
            "scheduled": self.scheduled_messages,
        }

    async def handle(self, user_id: str, args: List[str]) -> str:
        if not await self.admin.is_admin(user_id):
            logger.warning("Non-admin %s tried /admin %s", user_id, " ".join(args[:1]))
            return ACCESS_DENIED

        name = args[0].lower() if args else "help"
        handler = self.handlers.get(name)
        if handler is None:
            return UNKNOWN_SUBCOMMAND

        logger.info("Admin %s runs /admin %s", user_id, name)
        return await handler(user_id, args[1:])

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def help(self, admin: str, args: List[str]) -> str:
        return HELP_TEXT

    async def status(self, admin: str, args: List[str]) -> str:
        uptime = int(time.monotonic() - self.started_at)
        days, rem = divmod(uptime, 86400)
        hours, rem = divmod(rem, 3600)
        stats = await self.admin.get_stats()
        state = self.admin.state
        return (
            "📊 *Status du Bot*\n"
            "━━━━━━━━━━━━━━\n"
            f"⏱️ Uptime: {days}j {hours}h {rem // 60}m\n"
            f"👥 Users actifs (24h): {stats['active_users_24h']}\n"
            f"📨 Messages/24h: {stats['messages_24h']}\n"
            f"🔧 Mode: {state.mode.value.upper()}\n"
            f"⚙️ En cours: {len(state.in_flight)} texte, {len(state.voice_in_flight)} vocal"
        )

    async def mode(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin mode [normal|maintenance|readonly]"
        try:
            mode = BotMode(args[0].lower())
        except ValueError:
            return "❌ Usage: /admin mode [normal|maintenance|readonly]"
        await self.admin.set_bot_mode(mode, admin)
        return f"✅ Mode du bot: *{mode.value.upper()}*"

    async def debug(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin debug [phone]"
        enabled = await self.admin.toggle_debug(args[0], admin)
        return f"🐛 Debug {'activé' if enabled else 'désactivé'} pour {jid_number(args[0])}"

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def users(self, admin: str, args: List[str]) -> str:
        rows = await self.admin.get_active_users()
        if not rows:
            return "📭 Aucun utilisateur"
        lines = ["👥 *Utilisateurs récents:*", "━━━━━━━━━━━━━━"]
        for row in rows:
            last = row.get("last_message_at")
            when = relative_time_fr(to_local(parse_iso(last))) if last else "-"
            lines.append(f"• {jid_number(row['phone_number']) or row['phone_number']} ({when})")
        return "\n".join(lines)

    async def block(self, admin: str, args: List[str]) -> str:
        if len(args) < 2:
            return "❌ Usage: /admin block [phone] [raison]"
        if await self.admin.block_user(args[0], " ".join(args[1:]), admin):
            return f"🚫 Utilisateur {jid_number(args[0])} bloqué"
        return f"ℹ️ {jid_number(args[0])} est déjà bloqué"

    async def unblock(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin unblock [phone]"
        if await self.admin.unblock_user(args[0], admin):
            return f"✅ Utilisateur {jid_number(args[0])} débloqué"
        return f"ℹ️ {jid_number(args[0])} n'est pas bloqué"

    async def limit(self, admin: str, args: List[str]) -> str:
        if len(args) < 2:
            return "❌ Usage: /admin limit [phone] [messages/jour]"
        try:
            daily = int(args[1])
        except ValueError:
            return "❌ La limite doit être un nombre"
        await self.admin.set_user_limit(args[0], daily, admin)
        return f"✅ Limite de {daily} messages/jour pour {jid_number(args[0])}"

    async def blacklist(self, admin: str, args: List[str]) -> str:
        rows = await self.admin.get_blacklist()
        if not rows:
            return "✅ Liste noire vide"
        lines = ["🚫 *Liste noire:*"]
        lines.extend(f"• {row['phone_number']} - {row.get('reason') or '-'}" for row in rows)
        return "\n".join(lines)

    async def limits(self, admin: str, args: List[str]) -> str:
        rows = await self.admin.get_user_limits()
        if not rows:
            return "ℹ️ Aucune limite définie"
        lines = ["📏 *Limites:*"]
        lines.extend(
            f"• {row['phone_number']}: {row.get('messages_used', 0)}/{row.get('daily_limit', 0)}"
            for row in rows
        )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def backup(self, admin: str, args: List[str]) -> str:
        backup = await self.admin.create_backup(admin)
        return (
            "💾 *Backup créé*\n"
            f"🆔 {backup['id']}\n"
            f"💬 Conversations: {backup['conversations']}\n"
            f"📨 Messages: {backup['messages']}"
        )

    async def backups(self, admin: str, args: List[str]) -> str:
        rows = await self.admin.list_backups()
        if not rows:
            return "📭 Aucun backup"
        lines = ["💾 *Backups:*"]
        for row in rows:
            created = format_datetime_fr(to_local(parse_iso(row["created_at"])))
            lines.append(f"• {row['id'][:8]} - {created} ({row.get('messages', 0)} messages)")
        return "\n".join(lines)

    async def clear(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin clear [phone|all]"
        if args[0].lower() == "all":
            total = 0
            for user in await self.admin.all_user_ids():
                total += await self.memory.clear_conversation(user)
            await self.admin.log_audit(admin, "clear", "all")
            return f"🧹 Historique effacé pour tous les utilisateurs ({total} messages)"

        target = to_jid(args[0])
        deleted = await self.memory.clear_conversation(target)
        await self.admin.log_audit(admin, "clear", jid_number(target))
        return f"🧹 {deleted} messages effacés pour {jid_number(target)}"

    async def export(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin export [phone]"
        rows = await self.memory.export_conversation(to_jid(args[0]))
        if not rows:
            return f"📭 Aucune conversation pour {jid_number(args[0])}"
        await self.admin.log_audit(admin, "export", jid_number(args[0]))
        return f"📤 *Export {jid_number(args[0])}* ({len(rows)} messages)\n\n" + json.dumps(
            rows, ensure_ascii=False, indent=1
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def stats(self, admin: str, args: List[str]) -> str:
        stats = await self.admin.get_stats()
        return (
            "📊 *Statistiques*\n"
            "━━━━━━━━━━━━━━\n"
            f"💬 Conversations: {stats['conversations']}\n"
            f"👥 Actifs (24h): {stats['active_users_24h']}\n"
            f"📨 Messages (24h): {stats['messages_24h']}\n"
            f"🎫 Tickets ouverts: {stats['open_tickets']}\n"
            f"🚫 Bloqués: {stats['blocked_users']}"
        )

    async def audit(self, admin: str, args: List[str]) -> str:
        limit = int(args[0]) if args and args[0].isdigit() else 20
        rows = await self.admin.get_audit_log(limit)
        if not rows:
            return "📭 Journal d'audit vide"
        lines = ["📜 *Journal d'audit:*"]
        for row in rows:
            created = format_datetime_fr(to_local(parse_iso(row["created_at"])))
            lines.append(f"• {created} {row['admin_phone']}: {row['action']} {row.get('details') or ''}".rstrip())
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send(self, admin: str, args: List[str]) -> str:
        if len(args) < 2:
            return "❌ Usage: /admin send [phone] [message]\n📱 Format: 2250XXXXXXXXX"
        target = to_jid(args[0])
        await self.channel.send_single(target, ADMIN_BADGE + " ".join(args[1:]))
        await self.admin.log_audit(admin, "send", jid_number(target))
        return f"✅ Message envoyé à {jid_number(target)}"

    async def broadcast(self, admin: str, args: List[str]) -> str:
        if len(args) < 2:
            return "❌ Usage: /admin broadcast all [message]"
        if args[0].lower() != "all":
            return "❌ Target doit être: all"

        text = ADMIN_BADGE + " ".join(args[1:])
        sent = failed = 0
        for user in await self.admin.all_user_ids():
            try:
                await self.channel.send_single(to_jid(user), text)
                sent += 1
            except Exception as exc:  # noqa: BLE001
                logger.error("Broadcast to %s failed: %r", user, exc)
                failed += 1
        await self.admin.log_audit(admin, "broadcast", f"sent={sent} failed={failed}")
        return f"📡 *Broadcast terminé*\n✅ Envoyés: {sent}\n❌ Échoués: {failed}"

    async def schedule(self, admin: str, args: List[str]) -> str:
        usage = (
            "❌ Usage: /admin schedule [temps] [phone] [message]\n"
            "Ex: /admin schedule dans 30 minutes 2250700000000 Bonjour\n"
            "Ex: /admin schedule 25/12/2025 09:00 2250700000000 Joyeux Noël!"
        )
        parsed = parse_time_prefix(" ".join(args))
        if parsed is None:
            return usage
        when, rest = parsed
        parts = rest.split(maxsplit=1)
        if len(parts) < 2 or not jid_number(parts[0]):
            return usage

        target, message = parts
        try:
            row = await self.scheduled.schedule_message(
                jid_number(target), ADMIN_BADGE + message, when, admin
            )
        except SchedulingError as exc:
            return f"❌ {exc}"
        await self.admin.log_audit(admin, "schedule", f"{jid_number(target)} @ {row['scheduled_for']}")
        return (
            f"✅ Message programmé pour {format_datetime_fr(to_local(when))}\n"
            f"📨 Destinataire: {jid_number(target)}\n"
            f"🆔 ID: {row['id'][:8]}"
        )

    async def scheduled_messages(self, admin: str, args: List[str]) -> str:
        if not args:
            return "❌ Usage: /admin scheduled [list|cancel id]"

        action = args[0].lower()
        if action == "list":
            rows = await self.scheduled.list_pending()
            if not rows:
                return "📥 Aucun message programmé"
            lines = ["🕰️ *Messages programmés:*"]
            for row in rows:
                when = format_datetime_fr(to_local(parse_iso(row["scheduled_for"])))
                preview = row["message"].replace(ADMIN_BADGE, "")[:50]
                lines.append(f"\n🆔 {row['id']}\n👤 {row['target_phone']}\n🗓️ {when}\n📝 {preview}")
            return "\n".join(lines)

        if action == "cancel" and len(args) >= 2:
            if await self._cancel(args[1]):
                await self.admin.log_audit(admin, "scheduled_cancel", args[1])
                return "✅ Message programmé annulé"
            return "❌ Erreur lors de l'annulation"

        return "❌ Action invalide"

    async def _cancel(self, message_id: str) -> bool:
        if await self.scheduled.cancel(message_id):
            return True
        # Accept the short ids shown in listings.
        matches = [row for row in await self.scheduled.list_pending() if row["id"].startswith(message_id)]
        if len(matches) != 1:
            return False
        return await self.scheduled.cancel(matches[0]["id"])
