import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from src.config.jarvis import JarvisConfig
from src.controllers.admin_commands import ACCESS_DENIED
from src.controllers.admin_commands import ADMIN_BADGE
from src.controllers.admin_commands import AdminCommands
from src.controllers.command_router import DOC_HELP
from src.controllers.command_router import NO_DOCUMENTS
from src.controllers.command_router import CommandRouter
from src.controllers.command_router import parse_command
from src.core.memory import ConversationMemory
from src.core.state import DispatcherState
from src.models.message import BotMode
from src.models.message import ChatContext
from src.services.admin import AdminService
from src.services.documents import DocumentService
from src.services.projects import PROJECTS
from src.services.projects import ProjectService
from src.services.reminders import REMINDERS
from src.services.reminders import ReminderService
from src.services.scheduled_messages import SCHEDULED_MESSAGES
from src.services.scheduled_messages import ScheduledMessageService
from src.services.store import CONVERSATIONS
from src.services.store import InMemoryStore
from src.services.tickets import TICKETS
from src.services.tickets import TicketService


USER = "2250700000000@s.whatsapp.net"
ADMIN = "2250100000000@s.whatsapp.net"


class RouterTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.state = DispatcherState()
        config = JarvisConfig(admin_phones=["2250100000000"])
        self.memory = ConversationMemory(self.store, config, reply_generator=AsyncMock(return_value="ok"))
        self.admin = AdminService(self.store, self.state, config)
        self.channel = MagicMock()
        self.channel.send_single = AsyncMock()
        self.tickets = TicketService(self.store)
        self.scheduled = ScheduledMessageService(self.store)
        self.router = CommandRouter(
            memory=self.memory,
            tickets=self.tickets,
            projects=ProjectService(self.store),
            reminders=ReminderService(self.store),
            scheduled=self.scheduled,
            documents=DocumentService(self.store, config.documents, reply_generator=AsyncMock()),
            admin_commands=AdminCommands(self.admin, self.memory, self.channel, self.scheduled),
            config=config,
        )

    def route(self, body, user=USER):
        context = ChatContext(conversation_id="conv-1", phone_number=user)
        return asyncio.run(self.router.route(body, context))

    def rows(self, collection):
        return asyncio.run(self.store.list_documents(collection))


class TestParseCommand(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(parse_command("  /HELP  "), ["help"])
        self.assertEqual(parse_command("/remind 2h appeler"), ["remind", "2h", "appeler"])
        self.assertIsNone(parse_command("/"))
        self.assertIsNone(parse_command("bonjour /help"))
        self.assertIsNone(parse_command(None))


class TestGeneralCommands(RouterTestCase):
    def test_not_a_command(self):
        self.assertIsNone(self.route("Bonjour Jarvis"))

    def test_unknown_command(self):
        self.assertEqual(self.route("/foo bar"), "Unknown command: foo. Type /help for available commands.")

    def test_help(self):
        reply = self.route("/help")
        self.assertIn("Jarvis - Assistant Nourx", reply)
        self.assertIn("/ticket [description]", reply)
        self.assertTrue("🟢 Heures ouvrables" in reply or "🔴 Hors heures ouvrables" in reply)

    def test_info(self):
        reply = self.route("/info")
        self.assertIn(f"📱 Téléphone: {USER}", reply)
        self.assertIn("💬 Messages en mémoire: 0/20", reply)

    def test_clear(self):
        async def seed():
            await self.memory.process_message_with_memory(USER, "Bonjour")

        asyncio.run(seed())
        self.assertIn("Historique effacé", self.route("/clear"))
        self.assertEqual(self.rows("messages"), [])

    def test_handler_errors_become_a_reply(self):
        self.tickets.create_ticket = AsyncMock(side_effect=RuntimeError("db down"))
        reply = self.route("/ticket panne")
        self.assertEqual(reply, "❌ Erreur lors de l'exécution de la commande. Veuillez réessayer.")


class TestTicketsAndProjects(RouterTestCase):
    def test_ticket_requires_description(self):
        self.assertTrue(self.route("/ticket").startswith("❌ Veuillez décrire votre problème."))
        self.assertEqual(self.rows(TICKETS), [])

    def test_create_and_list_ticket(self):
        reply = self.route("/ticket Mon chatbot ne répond plus")

        self.assertIn("Support Request", reply)
        self.assertIn("🔵 Statut: Ouvert", reply)
        self.assertIn("Mon chatbot ne répond plus", reply)
        (ticket,) = self.rows(TICKETS)
        self.assertEqual(ticket["phone_number"], "2250700000000")
        self.assertEqual(ticket["priority"], "medium")

        listing = self.route("/tickets")
        self.assertIn("Vos tickets récents", listing)
        self.assertIn(ticket["ticket_number"], listing)
        self.assertIn("Mon chatbot", self.route(f"/tickets #{ticket['ticket_number']}"))

    def test_human_escalation(self):
        reply = self.route("/human facture incorrecte")
        self.assertIn("Escalade vers un humain", reply)
        self.assertIn("⚠️ *Escaladé à un humain*", reply)
        (ticket,) = self.rows(TICKETS)
        self.assertEqual(ticket["priority"], "urgent")
        self.assertTrue(ticket["escalated_to_human"])

    def test_projects(self):
        self.assertIn("📭", self.route("/projects"))
        reply = self.route("/project Refonte site web")
        self.assertIn("Projet créé avec succès", reply)
        self.assertIn("Refonte site web", reply)
        (project,) = self.rows(PROJECTS)
        self.assertEqual(project["status"], "planning")
        self.assertIn("Refonte site web", self.route("/projects"))


class TestRemindersAndSchedule(RouterTestCase):
    def test_remind_creates_reminder(self):
        reply = self.route("/remind 2h Vérifier les emails")

        self.assertIn("📝 Vérifier les emails", reply)
        self.assertIn("✅ Je vous enverrai un rappel sur WhatsApp!", reply)
        (reminder,) = self.rows(REMINDERS)
        self.assertEqual(reminder["status"], "active")

        self.assertIn("Vérifier les emails", self.route("/reminders"))
        self.assertEqual(self.route(f"/remind cancel {reminder['id'][:8]}"), "✅ Rappel annulé")
        self.assertEqual(self.route("/reminders"), "📭 Vous n'avez aucun rappel actif.")

    def test_remind_bad_input(self):
        self.assertTrue(self.route("/remind 2h").startswith("❌ Usage: /remind"))
        self.assertTrue(self.route("/remind bientôt appeler").startswith("❌ Format de temps non reconnu"))
        self.assertEqual(self.rows(REMINDERS), [])

    def test_schedule_list_and_cancel(self):
        reply = self.route("/schedule dans 2 heures Rappel de la réunion")
        self.assertTrue(reply.startswith("✅ Message programmé avec succès!"))

        (row,) = self.rows(SCHEDULED_MESSAGES)
        self.assertEqual(row["target_phone"], USER)
        self.assertEqual(row["created_by"], "2250700000000")
        self.assertIn("Rappel de la réunion", self.route("/schedule list"))

        self.assertIn("annulé avec succès", self.route(f"/schedule cancel {row['id']}"))
        self.assertEqual(self.route("/schedule list"), "📭 Vous n'avez aucun message programmé")

    def test_schedule_in_the_past(self):
        reply = self.route("/schedule add 01/01/2020 10:00 trop tard")
        self.assertEqual(reply, "❌ Erreur: La date programmée doit être dans le futur")

    def test_schedule_help(self):
        self.assertIn("Commandes de messages programmés", self.route("/schedule"))


class TestDocumentsAndAdmin(RouterTestCase):
    def test_doc_help_and_empty_list(self):
        self.assertEqual(self.route("/doc"), DOC_HELP)
        self.assertEqual(self.route("/doc list"), NO_DOCUMENTS)
        self.assertEqual(self.route("/doc delete"), "❌ Usage: /doc delete [id]")

    def test_admin_requires_admin(self):
        self.assertEqual(self.route("/admin mode maintenance"), ACCESS_DENIED)
        self.assertEqual(self.state.mode, BotMode.NORMAL)

    def test_admin_mode(self):
        self.assertEqual(self.route("/admin mode maintenance", user=ADMIN), "✅ Mode du bot: *MAINTENANCE*")
        self.assertEqual(self.state.mode, BotMode.MAINTENANCE)
        self.assertTrue(self.route("/admin mode sleepy", user=ADMIN).startswith("❌ Usage"))

    def test_admin_help_and_unknown(self):
        self.assertIn("Commandes Admin", self.route("/admin", user=ADMIN))
        self.assertEqual(
            self.route("/admin reboot", user=ADMIN),
            "❌ Commande admin inconnue. Tapez /admin help pour l'aide.",
        )

    def test_admin_limit(self):
        self.assertEqual(self.route("/admin limit 2250700000000 beaucoup", user=ADMIN), "❌ La limite doit être un nombre")
        self.assertIn("Limite de 5 messages/jour", self.route("/admin limit 2250700000000 5", user=ADMIN))

    def test_admin_send(self):
        reply = self.route("/admin send 2250700000000 Bonjour de l'équipe", user=ADMIN)

        self.assertEqual(reply, "✅ Message envoyé à 2250700000000")
        self.channel.send_single.assert_awaited_once_with(USER, ADMIN_BADGE + "Bonjour de l'équipe")

    def test_admin_schedule_and_cancel_by_prefix(self):
        reply = self.route("/admin schedule dans 30 minutes 2250700000000 Bonjour", user=ADMIN)
        self.assertIn("Destinataire: 2250700000000", reply)

        (row,) = self.rows(SCHEDULED_MESSAGES)
        self.assertTrue(row["message"].startswith(ADMIN_BADGE))
        self.assertEqual(self.route(f"/admin scheduled cancel {row['id'][:8]}", user=ADMIN), "✅ Message programmé annulé")

    def test_admin_users_shows_last_activity(self):
        recent = (datetime.now(timezone.utc) - timedelta(minutes=5, seconds=10)).isoformat()
        asyncio.run(self.store.create_document(CONVERSATIONS, {"phone_number": USER, "last_message_at": recent}))

        reply = self.route("/admin users", user=ADMIN)

        self.assertIn("• 2250700000000 (il y a 5 minutes)", reply)


if __name__ == "__main__":
    unittest.main()
