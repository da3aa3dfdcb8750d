"""Slash-command router for the Jarvis WhatsApp assistant.

Commands are looked up in a string-keyed table built once at construction.
``route`` returns ``None`` for anything that is not a command so the
dispatcher can fall through to shortcuts and the LLM.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from src.config.jarvis import JarvisConfig
from src.controllers.admin_commands import AdminCommands
from src.core.memory import ConversationMemory
from src.models.message import ChatContext
from src.services.documents import DocumentService
from src.services.projects import ProjectService, format_project
from src.services.reminders import ReminderService, format_reminder
from src.services.scheduled_messages import ScheduledMessageService, SchedulingError
from src.services.tickets import TicketService, format_ticket
from src.services.time_service import (
    format_date_short,
    format_datetime_fr,
    format_time,
    is_within_business_hours,
    now_local,
    parse_iso,
    parse_time_prefix,
    to_local,
)


logger = logging.getLogger("jarvis.commands")

COMMAND_PREFIX = "/"
SEPARATOR = "━━━━━━━━━━━━━━"
NO_DOCUMENTS = "📭 Vous n'avez aucun document.\n\nEnvoyez-moi un PDF, Word ou Excel pour commencer!"

CommandHandler = Callable[[List[str], ChatContext], Awaitable[str]]

SCHEDULE_HELP = """📅 *Commandes de messages programmés*

*Programmer un message:*
• /schedule add [date/heure] [message]
• /schedule dans 2 heures Rappel de la réunion
• /schedule demain 10h30 Bonjour, n'oubliez pas notre RDV
• /schedule 25/12/2025 08:00 Joyeux Noël ! 🎄

*Formats de date acceptés:*
• dans X minutes/heures/jours
• demain [heure]
• DD/MM/YYYY HH:mm
• HH:mm (pour aujourd'hui ou demain)

*Autres commandes:*
• /schedule list - Voir vos messages programmés
• /schedule cancel [ID] - Annuler un message programmé"""

DOC_HELP = """📄 *Commandes Documents:*
━━━━━━━━━━━━━━

• /doc list - Voir vos documents
• /doc delete [id] - Supprimer un document
• /doc query [question] - Poser une question
• /doc search [terme] - Rechercher dans les documents
• /doc summary - Résumé de tous vos documents
• /doc info [id] - Détails d'un document

📎 Envoyez-moi directement un fichier PDF, Word ou Excel pour l'analyser!"""


def parse_command(body: str) -> Optional[List[str]]:
    """Split ``/name arg ...`` into ``[name, arg, ...]``; ``None`` if not a command.

    >>> parse_command("/Ticket Mon chatbot")
    ['ticket', 'Mon', 'chatbot']
    >>> parse_command("bonjour") is None
    True
    """

    text = (body or "").strip()
    if not text.startswith(COMMAND_PREFIX):
        return None
    parts = text[len(COMMAND_PREFIX):].split()
    if not parts:
        return None
    return [parts[0].lower()] + parts[1:]


class CommandRouter:
    def __init__(
        self,
        memory: ConversationMemory,
        tickets: TicketService,
        projects: ProjectService,
        reminders: ReminderService,
        scheduled: ScheduledMessageService,
        documents: DocumentService,
        admin_commands: AdminCommands,
        config: Optional[JarvisConfig] = None,
    ) -> None:
        self.memory = memory
        self.tickets = tickets
        self.projects = projects
        self.reminders = reminders
        self.scheduled = scheduled
        self.documents = documents
        self.admin_commands = admin_commands
        self.config = config or JarvisConfig()
        self.commands: Dict[str, CommandHandler] = {
            "help": self.help,
            "clear": self.clear,
            "info": self.info,
            "ticket": self.ticket,
            "tickets": self.list_tickets,
            "project": self.project,
            "projects": self.list_projects,
            "remind": self.remind,
            "reminders": self.list_reminders,
            "schedule": self.schedule,
            "doc": self.doc,
            "human": self.human,
            "admin": self.admin,
        }

    async def route(self, body: str, context: ChatContext) -> Optional[str]:
        """Run the command in ``body`` and return its reply, or ``None``."""

        parts = parse_command(body)
        if parts is None:
            return None

        name, args = parts[0], parts[1:]
        handler = self.commands.get(name)
        if handler is None:
            return f"Unknown command: {name}. Type /help for available commands."

        try:
            return await handler(args, context)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error executing command %s for %s: %r", name, context.phone_number, exc)
            return "❌ Erreur lors de l'exécution de la commande. Veuillez réessayer."

    # ------------------------------------------------------------------
    # General
    # ------------------------------------------------------------------

    async def help(self, args: List[str], context: ChatContext) -> str:
        hours = self.config.business_hours
        now = now_local(hours.timezone)
        open_now = is_within_business_hours(now, hours)
        status = "🟢 Heures ouvrables" if open_now else "🔴 Hors heures ouvrables"
        return (
            f"🤖 *Jarvis - Assistant {self.config.company.name}*\n"
            f"{SEPARATOR}\n"
            f"🕐 Heure Abidjan: {format_time(now)}\n"
            f"{status}\n\n"
            "📋 *Commandes disponibles:*\n\n"
            "/help - Afficher cette aide\n"
            "/ticket [description] - Créer un ticket support\n"
            "/tickets - Voir vos tickets\n"
            "/project [nom] - Créer un projet\n"
            "/projects - Voir vos projets\n"
            "/remind [temps] [message] - Créer un rappel\n"
            "/reminders - Voir vos rappels\n"
            "/schedule - Programmer un message\n"
            "/doc - Gérer vos documents\n"
            "/human - Demander assistance humaine\n"
            "/clear - Effacer l'historique\n"
            "/info - Informations conversation\n\n"
            "💡 *Exemple:* /ticket J'ai besoin d'aide avec mon chatbot"
        )

    async def clear(self, args: List[str], context: ChatContext) -> str:
        await self.memory.clear_conversation(context.phone_number)
        return (
            "🧹 *Historique effacé*\n\n"
            "Notre conversation a été réinitialisée.\n"
            "Je suis prêt pour un nouveau départ!"
        )

    async def info(self, args: List[str], context: ChatContext) -> str:
        return (
            "ℹ️ *Informations de conversation*\n"
            f"{SEPARATOR}\n"
            f"📱 Téléphone: {context.phone_number}\n"
            f"💬 Messages en mémoire: {len(context.message_history)}/{self.memory.max_history}\n"
            f"🆔 ID conversation: {context.conversation_id}\n\n"
            f"_Je suis Jarvis, votre assistant {self.config.company.name}_"
        )

    # ------------------------------------------------------------------
    # Tickets and projects
    # ------------------------------------------------------------------

    async def ticket(self, args: List[str], context: ChatContext) -> str:
        description = " ".join(args)
        if not description:
            return "❌ Veuillez décrire votre problème.\n\n💡 Exemple: /ticket Mon chatbot ne répond plus"

        ticket = await self.tickets.create_ticket(context.phone_number, "Support Request", description)
        return (
            format_ticket(ticket)
            + "\n\n✅ Votre demande a été enregistrée.\n"
            "📱 Un membre de l'équipe vous contactera bientôt."
        )

    async def list_tickets(self, args: List[str], context: ChatContext) -> str:
        tickets = await self.tickets.get_user_tickets(context.phone_number)
        if args:
            wanted = args[0].lstrip("#")
            for ticket in tickets:
                if wanted in (ticket.get("ticket_number"), ticket.get("id")):
                    return format_ticket(ticket)
            return f"❌ Ticket {args[0]} introuvable."

        if not tickets:
            return "📭 Vous n'avez aucun ticket."
        body = "\n\n".join(format_ticket(t) for t in tickets[:5])
        return f"📋 *Vos tickets récents:*\n{SEPARATOR}\n\n{body}"

    async def human(self, args: List[str], context: ChatContext) -> str:
        ticket = await self.tickets.escalate_to_human(
            context.phone_number, " ".join(args) or "Le client a demandé à parler à un humain"
        )
        return (
            f"🤝 *Escalade vers un humain*\n{SEPARATOR}\n\n"
            + format_ticket(ticket)
            + f"\n\n🕑 Un membre de l'équipe {self.config.company.name} vous contactera très bientôt.\n"
            "📍 Heures d'ouverture: Lun-Ven 8h-18h, Sam 9h-13h (GMT)"
        )

    async def project(self, args: List[str], context: ChatContext) -> str:
        name = " ".join(args)
        if not name:
            return "❌ Veuillez fournir un nom de projet.\n\n💡 Exemple: /project Refonte site web Nourx"

        project = await self.projects.create_project(
            context.phone_number, name, "Projet créé via WhatsApp - En attente de description détaillée"
        )
        return (
            "✅ *Projet créé avec succès!*\n"
            f"{SEPARATOR}\n"
            f"📁 Nom: {project['name']}\n"
            f"🆔 ID: {project['id']}\n"
            "🚦 Statut: Planification\n\n"
            "Utilisez /projects pour voir tous vos projets."
        )

    async def list_projects(self, args: List[str], context: ChatContext) -> str:
        projects = await self.projects.get_user_projects(context.phone_number)
        if not projects:
            return "📭 Vous n'avez aucun projet actif."
        body = f"\n\n{SEPARATOR}\n\n".join(format_project(p) for p in projects[:5])
        return f"📊 *Vos projets actifs:*\n{SEPARATOR}\n\n{body}"

    # ------------------------------------------------------------------
    # Reminders and scheduled messages
    # ------------------------------------------------------------------

    async def remind(self, args: List[str], context: ChatContext) -> str:
        if args and args[0].lower() in ("cancel", "annuler"):
            if len(args) < 2:
                return "❌ Usage: /remind cancel [id]"
            if await self.reminders.cancel_reminder(args[1], context.phone_number):
                return "✅ Rappel annulé"
            return "❌ Rappel introuvable"

        usage = (
            "❌ Usage: /remind [temps] [message]\n\n"
            "💡 Exemples:\n"
            "• /remind 2h Vérifier les emails\n"
            "• /remind 30m Appeler client\n"
            "• /remind 1d Livraison projet"
        )
        if len(args) < 2:
            return usage

        parsed = parse_time_prefix(" ".join(args))
        if parsed is None:
            return "❌ Format de temps non reconnu.\nUtilisez: 15m, 2h, 1d, etc."
        when, text = parsed
        if not text:
            return usage

        reminder = await self.reminders.create_reminder(context.phone_number, text, when)
        return format_reminder(reminder) + "\n\n✅ Je vous enverrai un rappel sur WhatsApp!"

    async def list_reminders(self, args: List[str], context: ChatContext) -> str:
        reminders = await self.reminders.get_user_reminders(context.phone_number)
        if not reminders:
            return "📭 Vous n'avez aucun rappel actif."
        body = "\n\n".join(format_reminder(r) for r in reminders[:5])
        return f"🔔 *Vos rappels actifs:*\n{SEPARATOR}\n\n{body}"

    async def schedule(self, args: List[str], context: ChatContext) -> str:
        sub = args[0].lower() if args else "help"
        if sub == "help":
            return SCHEDULE_HELP
        if sub in ("list", "liste"):
            return await self._list_scheduled(context)
        if sub in ("cancel", "annuler"):
            return await self._cancel_scheduled(args[1] if len(args) > 1 else "", context)
        if sub in ("add", "new"):
            args = args[1:]
        return await self._schedule_message(args, context)

    async def _schedule_message(self, args: List[str], context: ChatContext) -> str:
        if len(args) < 2:
            return (
                "❌ Format incorrect. Utilisez: /schedule [date/heure] [message]\n\n"
                "Exemple: /schedule dans 1 heure Rappel important"
            )

        parsed = parse_time_prefix(" ".join(args))
        if parsed is None:
            return (
                "❌ Format de date invalide.\n\nUtilisez un format comme:\n"
                "• dans 30 minutes\n• demain 10h\n• 25/12/2025 15:30"
            )
        when, message = parsed
        if not message:
            return "❌ Veuillez spécifier un message à envoyer"

        try:
            row = await self.scheduled.schedule_message(
                context.phone_number, message, when, context.phone_number
            )
        except SchedulingError as exc:
            return f"❌ Erreur: {exc}"

        return (
            "✅ Message programmé avec succès!\n\n"
            f"📅 *Date d'envoi:* {format_datetime_fr(to_local(when))}\n"
            f"💬 *Message:* {message}\n"
            f"🆔 *ID:* {row['id']}\n\n"
            f"_Pour annuler: /schedule cancel {row['id']}_"
        )

    async def _list_scheduled(self, context: ChatContext) -> str:
        rows = await self.scheduled.list_pending(created_by=context.phone_number)
        if not rows:
            return "📭 Vous n'avez aucun message programmé"

        lines = [f"📅 *Vos messages programmés ({len(rows)}):*"]
        for index, row in enumerate(rows, 1):
            message = row["message"]
            preview = message[:50] + "..." if len(message) > 50 else message
            when = format_datetime_fr(to_local(parse_iso(row["scheduled_for"])))
            lines.append(f"\n{index}. 📝 {preview}\n   📅 {when}\n   🆔 ID: {row['id']}")
        lines.append("\n_Pour annuler un message, utilisez: /schedule cancel [ID]_")
        return "\n".join(lines)

    async def _cancel_scheduled(self, message_id: str, context: ChatContext) -> str:
        if not message_id:
            return "❌ Veuillez spécifier l'ID du message à annuler\n\nExemple: /schedule cancel MSG123"
        if await self.scheduled.cancel(message_id, created_by=context.phone_number):
            return f"✅ Message programmé annulé avec succès!\n\n🆔 ID: {message_id}"
        return "❌ Impossible d'annuler ce message. Vérifiez l'ID ou le message a peut-être déjà été envoyé."

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def doc(self, args: List[str], context: ChatContext) -> str:
        sub = args[0].lower() if args else ""
        rest = args[1:]
        phone = context.phone_number

        if sub == "list":
            rows = await self.documents.get_user_documents(phone)
            if not rows:
                return NO_DOCUMENTS
            lines = [f"📄 *Vos documents:*\n{SEPARATOR}\n"]
            for row in rows:
                lines.append(
                    f"📎 *{row['file_name']}*\n"
                    f"   ID: {row['id']}\n"
                    f"   Taille: {row.get('size', 0) / 1024:.2f} KB\n"
                    f"   Date: {format_date_short(to_local(parse_iso(row['created_at'])))}\n"
                )
            return "\n".join(lines)

        if sub == "delete":
            if not rest:
                return "❌ Usage: /doc delete [id]"
            if await self.documents.delete_document(rest[0], phone):
                return "✅ Document supprimé avec succès!"
            return "❌ Document non trouvé ou erreur lors de la suppression."

        if sub == "query":
            if not rest:
                return "❌ Usage: /doc query [votre question]"
            return await self.documents.answer_question(phone, " ".join(rest))

        if sub == "search":
            if not rest:
                return "❌ Usage: /doc search [terme de recherche]"
            query = " ".join(rest)
            results = await self.documents.search(phone, query)
            if not results:
                return f"🔍 Aucun résultat pour \"{query}\"."
            lines = [f"🔍 *Résultats pour \"{query}\":*\n"]
            lines.extend(f"📎 *{r['file_name']}* ({r['id']})\n   {r['snippet']}\n" for r in results)
            return "\n".join(lines)

        if sub == "summary":
            return await self.documents.summarize(phone)

        if sub == "info":
            if not rest:
                return "❌ Usage: /doc info [id]"
            row = await self.documents.get_document(rest[0], phone)
            if not row:
                return "❌ Document non trouvé."
            text = row.get("extracted_text") or ""
            reply = (
                f"📄 *Informations du document:*\n{SEPARATOR}\n\n"
                f"📎 Nom: {row['file_name']}\n"
                f"🆔 ID: {row['id']}\n"
                f"📊 Taille: {row.get('size', 0) / 1024:.2f} KB\n"
                f"🏷️ Type: {row.get('mime_type', '')}\n"
                f"📅 Uploadé: {format_datetime_fr(to_local(parse_iso(row['created_at'])))}\n"
            )
            if text:
                reply += (
                    f"\n📝 *Extrait du contenu:*\n{text[:300]}...\n\n"
                    "💡 Utilisez /doc query [question] pour interroger ce document."
                )
            else:
                reply += "\n⚠️ Aucun texte n'a pu être extrait de ce document."
            return reply

        return DOC_HELP

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def admin(self, args: List[str], context: ChatContext) -> str:
        return await self.admin_commands.handle(context.phone_number, args)
