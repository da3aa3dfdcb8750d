import asyncio
import unittest
from datetime import date, datetime
from zoneinfo import ZoneInfo

from src.agents.natural_language_router import NaturalLanguageRouter
from src.services.natural_language import detect_calculation
from src.services.natural_language import detect_coin_flip
from src.services.natural_language import detect_conversion
from src.services.natural_language import detect_datetime_query
from src.services.natural_language import detect_password_request
from src.services.natural_language import detect_random_choice
from src.services.natural_language import detect_random_number
from src.services.natural_language import format_number
from src.services.notes import UserNotesService
from src.services.store import InMemoryStore


NOW = datetime(2025, 3, 3, 14, 5, tzinfo=ZoneInfo("Africa/Abidjan"))


class TestDetectors(unittest.TestCase):
    def test_arithmetic(self):
        intent = detect_calculation("12 + 8")
        self.assertEqual(intent.value, "20")
        self.assertEqual(intent.reply, "🧮 20")
        self.assertEqual(detect_calculation("combien fait 7 x 6 ?").value, "42")

    def test_division_by_zero_is_not_answered(self):
        self.assertIsNone(detect_calculation("12 / 0"))

    def test_arithmetic_needs_whole_message(self):
        self.assertIsNone(detect_calculation("rendez-vous le 12/03 à 10h"))

    def test_percentage_and_vat(self):
        self.assertEqual(detect_calculation("15% de 2000").value, "300")
        vat = detect_calculation("calcule la tva sur 10000")
        self.assertIn("TVA (18%): 1 800 CFA", vat.reply)
        self.assertIn("TTC: 11 800 CFA", vat.reply)

    def test_bill_split(self):
        intent = detect_calculation("partage 30000 entre 4 personnes")
        self.assertEqual(intent.value, "7 500 CFA par personne")

    def test_currency_conversion(self):
        intent = detect_conversion("10 euros en cfa")
        self.assertEqual(intent.reply, f"💱 10 € = {format_number(10 * 655.957)} CFA")
        self.assertEqual(format_number(6559.57), "6 559,57")

    def test_temperature_and_distance(self):
        self.assertEqual(detect_conversion("100°C en F").value, "100°C = 212,0°F")
        self.assertEqual(detect_conversion("10 km en miles").value, "10 km = 6,21 miles")

    def test_games(self):
        self.assertIn(detect_coin_flip("pile ou face ?").value, ("Pile", "Face"))

        number = detect_random_number("choisis un nombre entre 10 et 1")
        self.assertTrue(1 <= int(number.value) <= 10)

        choice = detect_random_choice("choisis entre pizza, sushi ou burger")
        self.assertIn(choice.value, ("pizza", "sushi", "burger"))
        self.assertIsNone(detect_random_choice("choisis entre rien"))

    def test_password_length_is_clamped(self):
        self.assertEqual(len(detect_password_request("génère un mot de passe").value), 12)
        self.assertEqual(len(detect_password_request("génère un mot de passe de 2 caractères").value), 4)
        self.assertEqual(len(detect_password_request("génère un mot de passe de 500 caractères").value), 128)

    def test_current_time_and_date(self):
        self.assertEqual(detect_datetime_query("quelle heure est-il ?", NOW).reply, "🕐 Il est 14:05 à Abidjan")
        self.assertEqual(
            detect_datetime_query("quel jour sommes-nous ?", NOW).reply,
            "📅 Nous sommes le lundi 3 mars 2025",
        )

    def test_days_until_and_age(self):
        intent = detect_datetime_query("dans combien de jours on sera le 25/12", NOW)
        expected = (date(2025, 12, 25) - NOW.date()).days
        self.assertEqual(intent.reply, f"📅 Dans {expected} jours")

        age = detect_datetime_query("quel âge si je suis né le 15/06/1990", NOW)
        self.assertEqual(age.reply, "🎂 Vous avez 34 ans")

    def test_unrelated_text(self):
        self.assertIsNone(detect_datetime_query("Bonjour", NOW))
        self.assertIsNone(detect_conversion("Bonjour"))


class TestNaturalLanguageRouter(unittest.TestCase):
    def setUp(self):
        self.router = NaturalLanguageRouter(UserNotesService(InMemoryStore()))

    def test_greeting_goes_to_llm(self):
        async def run():
            self.assertIsNone(await self.router.detect("Bonjour", "225070"))
            self.assertIsNone(await self.router.detect("   ", "225070"))

        asyncio.run(run())

    def test_calculation_wins_before_storage(self):
        async def run():
            intent = await self.router.detect("12 + 8", "225070")
            self.assertEqual(intent.kind, "calculation")
            self.assertEqual(intent.reply, "🧮 20")

        asyncio.run(run())

    def test_note_save_and_recall(self):
        async def run():
            saved = await self.router.detect("Note que le code wifi est abc123", "225070")
            self.assertEqual(saved.reply, "📝 J'ai noté que code wifi est abc123")

            recalled = await self.router.detect("c'est quoi le code wifi ?", "225070")
            self.assertEqual(recalled.reply, "📝 code wifi : abc123")

            # notes are scoped per user
            self.assertIsNone(await self.router.detect("c'est quoi le code wifi ?", "225099"))

        asyncio.run(run())

    def test_unknown_note_falls_through(self):
        async def run():
            self.assertIsNone(await self.router.detect("c'est quoi la capitale du Ghana ?", "225070"))

        asyncio.run(run())

    def test_shopping_list(self):
        async def run():
            added = await self.router.detect("ajoute du lait à ma liste de courses", "225070")
            self.assertEqual(added.reply, '✅ "du lait" ajouté à votre liste de courses')

            await self.router.detect("ajoute du pain à ma liste de courses", "225070")
            shown = await self.router.detect("montre ma liste de courses", "225070")
            self.assertEqual(shown.reply, "📋 **Liste de courses :**\n• du lait\n• du pain")

            removed = await self.router.detect("retire du lait de ma liste de courses", "225070")
            self.assertEqual(removed.reply, '✅ "du lait" retiré de votre liste de courses')

        asyncio.run(run())

    def test_remove_from_list_is_not_a_note(self):
        async def run():
            await self.router.detect("ajoute le beurre à ma liste de courses", "225070")

            removed = await self.router.detect("supprime le beurre de ma liste de courses", "225070")

            self.assertEqual(removed.reply, '✅ "le beurre" retiré de votre liste de courses')
            shown = await self.router.detect("montre ma liste de courses", "225070")
            self.assertNotIn("beurre", shown.reply)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
