"""Test conversation memory."""

import asyncio
import unittest
from unittest.mock import AsyncMock

from src.config.jarvis import JarvisConfig
from src.core.llm import LLMError
from src.core.memory import ConversationMemory
from src.services.store import InMemoryStore


USER = "2250700000000@s.whatsapp.net"


class TestConversationMemory(unittest.TestCase):
    def test_new_user_gets_empty_history(self):
        async def run():
            memory = ConversationMemory(InMemoryStore(), reply_generator=AsyncMock())
            context = await memory.load_conversation_context(USER)

            self.assertEqual(context.phone_number, USER)
            self.assertEqual(context.message_history, [])
            # same conversation on the next load
            again = await memory.load_conversation_context(USER)
            self.assertEqual(again.conversation_id, context.conversation_id)

        asyncio.run(run())

    def test_exchange_is_persisted(self):
        async def run():
            generate = AsyncMock(return_value="  Bonjour !   Comment allez-vous ?  ")
            memory = ConversationMemory(InMemoryStore(), reply_generator=generate)

            reply = await memory.process_message_with_memory(USER, "Bonjour")
            self.assertEqual(reply, "Bonjour ! Comment allez-vous ?")

            system_prompt, turns = generate.await_args.args
            self.assertIn("Jarvis", system_prompt)
            self.assertEqual(turns, [{"role": "user", "content": "Bonjour"}])

            context = await memory.load_conversation_context(USER)
            self.assertEqual(
                [(t.role, t.content) for t in context.message_history],
                [("user", "Bonjour"), ("assistant", "Bonjour ! Comment allez-vous ?")],
            )

        asyncio.run(run())

    def test_history_is_bounded(self):
        async def run():
            config = JarvisConfig(max_history_length=4)
            generate = AsyncMock(return_value="ok")
            memory = ConversationMemory(InMemoryStore(), config, reply_generator=generate)

            for i in range(5):
                await memory.process_message_with_memory(USER, f"message {i}")

            context = await memory.load_conversation_context(USER)
            self.assertEqual(len(context.message_history), 4)
            self.assertEqual(context.message_history[-1].content, "ok")
            self.assertEqual(context.message_history[-2].content, "message 4")

            _, turns = generate.await_args.args
            self.assertLessEqual(len(turns), 5)
            self.assertEqual(turns[-1]["content"], "message 4")

        asyncio.run(run())

    def test_llm_failure_writes_nothing(self):
        async def run():
            memory = ConversationMemory(InMemoryStore(), reply_generator=AsyncMock(side_effect=LLMError("down")))

            with self.assertRaises(LLMError):
                await memory.process_message_with_memory(USER, "Bonjour")

            context = await memory.load_conversation_context(USER)
            self.assertEqual(context.message_history, [])

        asyncio.run(run())

    def test_clear_and_export(self):
        async def run():
            memory = ConversationMemory(InMemoryStore(), reply_generator=AsyncMock(return_value="salut"))
            await memory.process_message_with_memory(USER, "Bonjour")

            exported = await memory.export_conversation(USER)
            self.assertEqual([row["role"] for row in exported], ["user", "assistant"])

            self.assertEqual(await memory.clear_conversation(USER), 2)
            self.assertEqual(await memory.export_conversation(USER), [])

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
