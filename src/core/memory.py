"""Conversation memory for the Jarvis WhatsApp assistant.

Each WhatsApp user has one conversation in the store. This module loads the
recent history for a user, bridges to the LLM and persists both sides of an
exchange. History is bounded to the most recent ``max_history`` turns.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from src.config.jarvis import JarvisConfig
from src.core.context import build_system_prompt, context_to_turns
from src.core.llm import generate_reply
from src.models.message import ChatContext, ChatTurn
from src.services.store import DocumentStore
from src.utils.formatter import normalize_whitespace


logger = logging.getLogger("jarvis.memory")

ReplyGenerator = Callable[[str, Sequence[Dict[str, str]]], Awaitable[str]]


class ConversationMemory:
    """Per-user history on top of a :class:`DocumentStore`."""

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[JarvisConfig] = None,
        reply_generator: ReplyGenerator = generate_reply,
    ) -> None:
        self.store = store
        self.config = config or JarvisConfig()
        self.max_history = self.config.max_history_length
        self._generate = reply_generator

    async def load_conversation_context(self, phone_number: str) -> ChatContext:
        conversation = await self.store.get_or_create_conversation(phone_number)
        rows = await self.store.get_history(conversation["id"], self.max_history)
        turns: List[ChatTurn] = [
            ChatTurn(role=row["role"], content=row.get("content") or "")
            for row in rows
            if row.get("role") in ("user", "assistant")
        ]
        logger.info("Loaded %d turns for %s", len(turns), phone_number)
        return ChatContext(
            conversation_id=conversation["id"],
            phone_number=phone_number,
            message_history=turns,
        )

    async def save_user_message(self, phone_number: str, content: str) -> None:
        conversation = await self.store.get_or_create_conversation(phone_number)
        await self.store.append_message(conversation["id"], "user", content)

    async def save_assistant_message(self, phone_number: str, content: str) -> None:
        conversation = await self.store.get_or_create_conversation(phone_number)
        await self.store.append_message(conversation["id"], "assistant", content)

    async def save_exchange(self, context: ChatContext, user_text: str, reply: str) -> None:
        """Persist a user message and the reply it received."""

        await self.store.append_message(context.conversation_id, "user", user_text)
        await self.store.append_message(context.conversation_id, "assistant", reply)

    async def process_message_with_memory(self, phone_number: str, message: str) -> str:
        """Answer ``message`` with the LLM and persist both turns.

        Nothing is written if the LLM call fails; the error propagates.
        """

        context = await self.load_conversation_context(phone_number)
        turns = context_to_turns(context)
        turns.append({"role": "user", "content": message})
        # Keep the latest turns only, the new message included.
        turns = turns[-(self.max_history + 1):]

        reply = await self._generate(build_system_prompt(self.config), turns)
        reply = normalize_whitespace(reply)

        await self.save_exchange(context, message, reply)
        return reply

    async def clear_conversation(self, phone_number: str) -> int:
        conversation = await self.store.get_or_create_conversation(phone_number)
        deleted = await self.store.delete_messages(conversation["id"])
        logger.info("Cleared %d messages for %s", deleted, phone_number)
        return deleted

    async def export_conversation(self, phone_number: str, limit: int = 100) -> List[Dict[str, str]]:
        conversation = await self.store.get_or_create_conversation(phone_number)
        rows = await self.store.get_history(conversation["id"], limit)
        return [
            {"role": row.get("role", ""), "content": row.get("content", ""), "created_at": row.get("created_at", "")}
            for row in rows
        ]
