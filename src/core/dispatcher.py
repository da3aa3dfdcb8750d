"""Message dispatcher for the Jarvis WhatsApp assistant.

``MessageDispatcher.handle`` is the single entry point for inbound messages.
It runs a message through a fixed sequence of gates (group filter, in-flight
lock, blacklist, voice and document branches, maintenance, daily limit) and
then answers it with, in order of preference: a slash command, a
natural-language shortcut, or the LLM.

Each message gets at most one reply. Silent drops (blacklisted sender,
duplicate in-flight message, unaddressed group chatter) never reach the user.
Anything unexpected after the lock is taken is logged and answered with one
generic apology; the lock is always released.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable, Optional

from src.agents.natural_language_router import NaturalLanguageRouter
from src.config.interaction import InteractionConfig
from src.controllers.command_router import CommandRouter, parse_command
from src.core.memory import ConversationMemory
from src.core.state import DispatcherState
from src.models.message import BotMode, ChunkedSendOptions, InboundMessage, MessageKind
from src.services.admin import AdminService
from src.services.delivery import DeliveryChannel
from src.services.documents import DocumentLimitError, DocumentService
from src.utils.format import same_user
from src.utils.logger import generate_request_id, log_error, log_info, log_warn


logger = logging.getLogger("jarvis.dispatcher")

Transcriber = Callable[[bytes, str], Awaitable[str]]

DOCUMENT_RECEIVED = "📄 Document reçu! Je vais l'analyser..."
DOCUMENT_ERROR = "❌ Erreur lors du traitement du document. Formats supportés: PDF, Word, Excel, TXT"
MAINTENANCE_NOTICE = "🔧 Le bot est actuellement en maintenance. Veuillez réessayer plus tard."
LIMIT_NOTICE = "⚠️ Vous avez atteint votre limite de messages quotidienne. Revenez demain!"
READONLY_NOTICE = "👁️ Le bot est en mode lecture seule. Les conversations ne sont pas sauvegardées."
APOLOGY = "❌ Une erreur est survenue. Veuillez réessayer plus tard."

REPLY_OPTIONS = ChunkedSendOptions(typing_between_chunks=True, variable_delay=True)
APOLOGY_OPTIONS = ChunkedSendOptions(typing_between_chunks=False, variable_delay=False)


def document_limit_notice(limit: int) -> str:
    return f"⚠️ Vous avez atteint la limite de {limit} documents. Supprimez-en avec /doc delete [id]"


def document_success(file_name: str, size: int, mimetype: str) -> str:
    return (
        f"✅ Document \"{file_name}\" téléchargé avec succès!\n\n"
        "📊 Détails:\n"
        f"• Taille: {size / 1024:.2f} KB\n"
        f"• Type: {mimetype}\n\n"
        "Utilisez /doc query [votre question] pour poser des questions sur ce document."
    )


class MessageDispatcher:
    def __init__(
        self,
        state: DispatcherState,
        channel: DeliveryChannel,
        memory: ConversationMemory,
        commands: CommandRouter,
        nl_router: NaturalLanguageRouter,
        admin: AdminService,
        documents: DocumentService,
        transcriber: Transcriber,
        transport,
        config: Optional[InteractionConfig] = None,
        bot_id: Optional[str] = None,
    ) -> None:
        self.state = state
        self.channel = channel
        self.memory = memory
        self.commands = commands
        self.nl_router = nl_router
        self.admin = admin
        self.documents = documents
        self.transcriber = transcriber
        self.transport = transport
        self.config = config or InteractionConfig()
        self.bot_id = bot_id

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, message: InboundMessage) -> None:
        """Decide whether and how to answer ``message``; never raises."""

        request_id = generate_request_id()

        if message.is_group and not self.is_addressed(message):
            await self._store_group_context(message)
            return

        user_id = message.user_id
        if user_id in self.state.in_flight:
            log_warn("Already processing a message from this user", user_id=user_id, request_id=request_id)
            return

        self.state.in_flight.add(user_id)
        try:
            await self._dispatch(message, user_id, request_id)
        except Exception as exc:  # noqa: BLE001
            log_error(
                "Error handling message",
                user_id=user_id,
                request_id=request_id,
                message_id=message.message_id,
                error=repr(exc),
            )
            await self._send_apology(message.sender, user_id, request_id)
        finally:
            self.state.in_flight.discard(user_id)

    def is_addressed(self, message: InboundMessage) -> bool:
        """A group message is for Jarvis when it @-mentions the bot or replies to it."""

        mentioned = bool(message.mentioned_ids) and (
            self.bot_id is None or same_user(message.recipient, self.bot_id)
        )
        return mentioned or message.quoted_from_bot

    async def _store_group_context(self, message: InboundMessage) -> None:
        if not message.author or not message.body:
            return
        try:
            await self.memory.save_user_message(message.author, message.body)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not store group message from %s: %r", message.author, exc)

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    async def _dispatch(self, message: InboundMessage, user_id: str, request_id: str) -> None:
        features = self.config.features
        to = message.sender

        if features.debug_mode or self.admin.is_debug_user(user_id):
            log_info(
                "Inbound message",
                user_id=user_id,
                request_id=request_id,
                chat=to,
                kind=message.kind.value,
                body=message.body,
                is_group=message.is_group,
            )

        if await self.admin.is_blacklisted(user_id):
            log_warn("Blacklisted user attempted to message", user_id=user_id, request_id=request_id)
            return

        if message.kind == MessageKind.VOICE and features.voice_messages:
            self._start_voice(message, user_id, request_id)
            return

        is_admin = await self.admin.is_admin(user_id)

        if message.kind == MessageKind.DOCUMENT:
            await self._handle_document(message, user_id, is_admin, request_id)
            return

        if self.state.mode == BotMode.MAINTENANCE and not is_admin:
            await self.channel.reply(to, MAINTENANCE_NOTICE, single=False, options=REPLY_OPTIONS)
            return

        if not is_admin and not await self.admin.check_user_limit(user_id):
            await self.channel.reply(to, LIMIT_NOTICE, single=False, options=REPLY_OPTIONS)
            return

        await self.channel.simulate_typing(to, self.config.typing_indicator.typing_delay)

        context = await self.memory.load_conversation_context(user_id)

        if parse_command(message.body) is not None:
            response = await self.commands.route(message.body, context)
            if response:
                await self.channel.reply(to, response, single=is_admin, options=REPLY_OPTIONS)
                if not is_admin:
                    await self.admin.increment_user_usage(user_id)
                log_info("Command handled", user_id=user_id, request_id=request_id)
                return

        if self.state.mode == BotMode.READONLY:
            await self.channel.reply(to, READONLY_NOTICE, single=False, options=REPLY_OPTIONS)
            return

        intent = await self.nl_router.detect(message.body, user_id)
        if intent is not None:
            await self.memory.save_exchange(context, message.body, intent.reply)
            await self.channel.reply(to, intent.reply, single=is_admin, options=REPLY_OPTIONS)
            if not is_admin:
                await self.admin.increment_user_usage(user_id)
            log_info("Shortcut answered", user_id=user_id, request_id=request_id, intent=intent.kind)
            return

        reply = await self.memory.process_message_with_memory(user_id, message.body)
        await self.channel.reply(to, reply, single=is_admin, options=REPLY_OPTIONS)
        if not is_admin:
            await self.admin.increment_user_usage(user_id)
        log_info("LLM reply delivered", user_id=user_id, request_id=request_id, length=len(reply))

    async def _send_apology(self, to: str, user_id: str, request_id: str) -> None:
        try:
            await self.channel.reply(to, APOLOGY, single=False, options=APOLOGY_OPTIONS)
        except Exception as exc:  # noqa: BLE001
            log_error("Failed to send error message", user_id=user_id, request_id=request_id, error=repr(exc))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def _handle_document(
        self, message: InboundMessage, user_id: str, is_admin: bool, request_id: str
    ) -> None:
        to = message.sender
        try:
            await self.channel.send_single(to, DOCUMENT_RECEIVED)

            media = await self.transport.download_media(message)
            if media is None:
                raise RuntimeError("Failed to download document")

            file_name = media.file_name or message.file_name or message.body or "document.pdf"
            media = dataclasses.replace(media, file_name=file_name)

            await self.documents.upload_document(user_id, media)
            await self.channel.reply(
                to,
                document_success(file_name, media.size, media.mimetype),
                single=is_admin,
                options=REPLY_OPTIONS,
            )
        except DocumentLimitError as exc:
            log_warn("Document limit reached", user_id=user_id, request_id=request_id)
            await self.channel.send_single(to, document_limit_notice(exc.limit))
        except Exception as exc:  # noqa: BLE001
            log_error("Failed to process document", user_id=user_id, request_id=request_id, error=repr(exc))
            await self.channel.send_single(to, DOCUMENT_ERROR)

    # ------------------------------------------------------------------
    # Voice
    # ------------------------------------------------------------------

    def _start_voice(self, message: InboundMessage, user_id: str, request_id: str) -> None:
        if user_id in self.state.voice_in_flight:
            log_warn("Already processing a voice message from this user", user_id=user_id, request_id=request_id)
            return

        # Registered before the task starts so a second voice note is dropped.
        self.state.voice_in_flight.add(user_id)
        task = asyncio.create_task(self._process_voice(message, user_id, request_id))
        self.state.background_tasks.add(task)
        task.add_done_callback(self.state.background_tasks.discard)

    async def _process_voice(self, message: InboundMessage, user_id: str, request_id: str) -> None:
        voice_cfg = self.config.voice_processing
        errors_cfg = self.config.error_handling
        try:
            try:
                media = await self.transport.download_media(message)
                if media is None:
                    raise RuntimeError("Failed to download voice note")
                if media.size > voice_cfg.max_file_size:
                    raise ValueError(f"Voice note too large ({media.size} bytes)")
                transcript = await asyncio.wait_for(
                    self.transcriber(media.data, media.mimetype),
                    timeout=voice_cfg.transcription_timeout / 1000,
                )
            except Exception as exc:  # noqa: BLE001
                log_error("Voice transcription failed", user_id=user_id, request_id=request_id, error=repr(exc))
                if not errors_cfg.silent_voice_errors:
                    await self.channel.send_single(message.sender, errors_cfg.voice_error_fallback)
                return

            log_info("Voice note transcribed", user_id=user_id, request_id=request_id, length=len(transcript))
            text_message = message.model_copy(update={"kind": MessageKind.TEXT, "body": transcript})
            await self.handle(text_message)
        except Exception as exc:  # noqa: BLE001
            log_error("Voice processing failed", user_id=user_id, request_id=request_id, error=repr(exc))
        finally:
            self.state.voice_in_flight.discard(user_id)
