import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from src.config.jarvis import JarvisConfig
from src.core.state import DispatcherState
from src.models.message import BotMode
from src.services.admin import USER_LIMITS
from src.services.admin import AdminService
from src.services.store import InMemoryStore


USER = "2250700000000@s.whatsapp.net"
ADMIN = "2250100000000@s.whatsapp.net"


class TestInMemoryStore(unittest.TestCase):
    def test_filters_ordering_and_limit(self):
        async def run():
            store = InMemoryStore()
            await store.create_document("items", {"owner": "a", "rank": 3})
            await store.create_document("items", {"owner": "b", "rank": 1})
            await store.create_document("items", {"owner": "a", "rank": 2})

            rows = await store.list_documents("items", filters={"owner": "a"}, order_by="rank")
            self.assertEqual([r["rank"] for r in rows], [2, 3])

            rows = await store.list_documents("items", order_by="rank", descending=True, limit=2)
            self.assertEqual([r["rank"] for r in rows], [3, 2])

            rows = await store.list_documents("items", gte={"rank": 2})
            self.assertEqual(len(rows), 2)
            self.assertNotIn("_seq", rows[0])

        asyncio.run(run())

    def test_returned_rows_are_copies(self):
        async def run():
            store = InMemoryStore()
            row = await store.create_document("items", {"tags": ["x"]})
            row["tags"].append("y")

            stored = await store.get_document("items", row["id"])
            self.assertEqual(stored["tags"], ["x"])

        asyncio.run(run())

    def test_history_is_oldest_first(self):
        async def run():
            store = InMemoryStore()
            conversation = await store.get_or_create_conversation(USER)
            for i in range(5):
                await store.append_message(conversation["id"], "user", f"m{i}")

            rows = await store.get_history(conversation["id"], limit=3)
            self.assertEqual([r["content"] for r in rows], ["m2", "m3", "m4"])

            self.assertEqual(await store.delete_messages(conversation["id"]), 5)
            self.assertEqual(await store.get_history(conversation["id"]), [])

        asyncio.run(run())

    def test_update_missing_document(self):
        async def run():
            with self.assertRaises(KeyError):
                await InMemoryStore().update_document("items", "nope", {"a": 1})

        asyncio.run(run())


class TestAdminService(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.state = DispatcherState()
        self.admin = AdminService(self.store, self.state, JarvisConfig(admin_phones=["+225 01 00 00 00 00"]))

    def test_admin_from_config_and_store(self):
        async def run():
            self.assertTrue(await self.admin.is_admin(ADMIN))
            self.assertFalse(await self.admin.is_admin(USER))

            await self.store.create_document("admins", {"phone_number": "2250700000000", "role": "admin"})
            self.assertTrue(await self.admin.is_admin(USER))

        asyncio.run(run())

    def test_blacklist(self):
        async def run():
            self.assertTrue(await self.admin.block_user("+225 07 00 00 00 00", "spam", ADMIN))
            self.assertTrue(await self.admin.is_blacklisted(USER))
            # already blocked
            self.assertFalse(await self.admin.block_user(USER, "spam", ADMIN))

            self.assertTrue(await self.admin.unblock_user(USER, ADMIN))
            self.assertFalse(await self.admin.is_blacklisted(USER))
            self.assertFalse(await self.admin.unblock_user(USER, ADMIN))

            actions = [row["action"] for row in await self.admin.get_audit_log()]
            self.assertEqual(sorted(actions), ["block_user", "unblock_user"])

        asyncio.run(run())

    def test_user_without_limit_row_is_unlimited(self):
        async def run():
            self.assertTrue(await self.admin.check_user_limit(USER))
            await self.admin.increment_user_usage(USER)
            self.assertEqual(await self.store.list_documents(USER_LIMITS), [])

        asyncio.run(run())

    def test_daily_limit(self):
        async def run():
            await self.admin.set_user_limit(USER, 2, ADMIN)

            self.assertTrue(await self.admin.check_user_limit(USER))
            await self.admin.increment_user_usage(USER)
            self.assertTrue(await self.admin.check_user_limit(USER))
            await self.admin.increment_user_usage(USER)
            self.assertFalse(await self.admin.check_user_limit(USER))

            # once the window has passed the counter starts over
            later = datetime.now(timezone.utc) + timedelta(hours=25)
            self.assertTrue(await self.admin.check_user_limit(USER, now=later))
            row = await self.store.find_one(USER_LIMITS, {"phone_number": "2250700000000"})
            self.assertEqual(row["messages_used"], 0)

        asyncio.run(run())

    def test_limit_lookup_errors_allow_message(self):
        async def run():
            self.store.find_one = AsyncMock(side_effect=RuntimeError("db down"))
            self.assertTrue(await self.admin.check_user_limit(USER))

        asyncio.run(run())

    def test_bot_mode_is_persisted(self):
        async def run():
            await self.admin.set_bot_mode(BotMode.MAINTENANCE, ADMIN)
            self.assertEqual(self.state.mode, BotMode.MAINTENANCE)

            restarted = AdminService(self.store, DispatcherState())
            self.assertEqual(await restarted.load_bot_mode(), BotMode.MAINTENANCE)
            self.assertEqual(restarted.state.mode, BotMode.MAINTENANCE)

        asyncio.run(run())

    def test_debug_toggle(self):
        async def run():
            self.assertTrue(await self.admin.toggle_debug("+2250700000000", ADMIN))
            self.assertTrue(self.admin.is_debug_user(USER))
            self.assertFalse(await self.admin.toggle_debug(USER, ADMIN))
            self.assertFalse(self.admin.is_debug_user(USER))

        asyncio.run(run())

    def test_stats_and_users(self):
        async def run():
            conversation = await self.store.get_or_create_conversation(USER)
            await self.store.get_or_create_conversation("120363000000000000@g.us")
            await self.store.append_message(conversation["id"], "user", "Bonjour")

            stats = await self.admin.get_stats()
            self.assertEqual(stats["conversations"], 2)
            self.assertEqual(stats["messages_24h"], 1)
            self.assertEqual(await self.admin.all_user_ids(), [USER])

            backup = await self.admin.create_backup(ADMIN)
            self.assertEqual(backup["messages"], 1)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
