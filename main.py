"""Main entrypoint for the Jarvis WhatsApp assistant FastAPI application.

This module wires the dispatcher and its collaborators together, exposes the
Evolution API webhook and a health endpoint, and runs the scheduler that
delivers reminders and scheduled messages.
"""

import functools
import os
import secrets
from dataclasses import dataclass

from dotenv import load_dotenv
from fastapi import BackgroundTasks
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse

from src.adapters.evolution import InvalidPayloadError
from src.adapters.evolution import normalize
from src.agents.natural_language_router import NaturalLanguageRouter
from src.config import load_interaction_config
from src.config import load_jarvis_config
from src.controllers.admin_commands import AdminCommands
from src.controllers.command_router import CommandRouter
from src.core.dispatcher import MessageDispatcher
from src.core.memory import ConversationMemory
from src.core.state import DispatcherState
from src.services.admin import AdminService
from src.services.delivery import DeliveryChannel
from src.services.documents import DocumentService
from src.services.notes import UserNotesService
from src.services.projects import ProjectService
from src.services.reminders import ReminderService
from src.services.scheduled_messages import ScheduledMessageService
from src.services.scheduler import Scheduler
from src.services.store import create_store_from_env
from src.services.tickets import TicketService
from src.services.whatsapp import EvolutionClient
from src.services.whisper import transcribe_audio_bytes
from src.utils.logger import generate_request_id
from src.utils.logger import get_logger
from src.utils.logger import log_error
from src.utils.logger import log_info


load_dotenv()
get_logger()

app = FastAPI(title="Jarvis WhatsApp Assistant", version="1.0.0")


@dataclass
class Jarvis:
    dispatcher: MessageDispatcher
    admin: AdminService
    scheduler: Scheduler
    bot_id: str


def build_jarvis() -> Jarvis:
    """Create every component from environment configuration."""

    interaction = load_interaction_config()
    config = load_jarvis_config()
    store = create_store_from_env()
    state = DispatcherState()

    transport = EvolutionClient.from_env()
    channel = DeliveryChannel(transport, interaction)
    memory = ConversationMemory(store, config)
    admin = AdminService(store, state, config)
    documents = DocumentService(store, config.documents)
    reminders = ReminderService(store)
    scheduled = ScheduledMessageService(store)

    commands = CommandRouter(
        memory=memory,
        tickets=TicketService(store),
        projects=ProjectService(store),
        reminders=reminders,
        scheduled=scheduled,
        documents=documents,
        admin_commands=AdminCommands(admin, memory, channel, scheduled),
        config=config,
    )
    transcriber = functools.partial(transcribe_audio_bytes, config=interaction.voice_processing)

    dispatcher = MessageDispatcher(
        state=state,
        channel=channel,
        memory=memory,
        commands=commands,
        nl_router=NaturalLanguageRouter(UserNotesService(store)),
        admin=admin,
        documents=documents,
        transcriber=transcriber,
        transport=transport,
        config=interaction,
        bot_id=config.bot_number,
    )
    return Jarvis(
        dispatcher=dispatcher,
        admin=admin,
        scheduler=Scheduler(channel, reminders, scheduled),
        bot_id=config.bot_number or "",
    )


def _require_webhook_token(request: Request) -> bool:
    required = os.getenv("EVOLUTION_WEBHOOK_TOKEN")
    if not required:
        return True
    provided = request.headers.get("apikey") or request.query_params.get("token")
    return bool(provided) and secrets.compare_digest(provided, required)


@app.on_event("startup")
async def start_jarvis() -> None:
    jarvis = build_jarvis()
    app.state.jarvis = jarvis

    mode = await jarvis.admin.load_bot_mode()
    jarvis.scheduler.start()
    log_info("Jarvis started", mode=mode.value)


@app.on_event("shutdown")
async def stop_jarvis() -> None:
    jarvis = getattr(app.state, "jarvis", None)
    if jarvis is not None:
        await jarvis.scheduler.stop()


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> dict:
    """Health check endpoint to verify that the service is running."""

    jarvis = getattr(request.app.state, "jarvis", None)
    mode = jarvis.dispatcher.state.mode.value if jarvis else "starting"
    return {"status": "ok", "mode": mode}


@app.post("/webhook/whatsapp", status_code=status.HTTP_200_OK)
async def whatsapp_webhook(request: Request, background_tasks: BackgroundTasks) -> dict:
    """Evolution API webhook endpoint.

    The message is dispatched after the response is sent. Always answers 200
    so Evolution does not retry deliveries Jarvis has already seen.
    """

    if not _require_webhook_token(request):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})

    request_id = generate_request_id()
    request.state.request_id = request_id

    try:
        payload = await request.json()
    except ValueError as exc:
        log_error("Webhook body is not JSON", request_id=request_id, error=repr(exc))
        return {"status": "ignored"}

    jarvis: Jarvis = request.app.state.jarvis

    try:
        message = normalize(payload, bot_id=jarvis.bot_id or None)
    except InvalidPayloadError as exc:
        log_error("Invalid Evolution payload", request_id=request_id, error=str(exc))
        return {"status": "ignored"}

    if message is None:
        return {"status": "ignored"}

    log_info(
        "Received WhatsApp message",
        user_id=message.user_id,
        request_id=request_id,
        kind=message.kind.value,
        is_group=message.is_group,
    )
    background_tasks.add_task(jarvis.dispatcher.handle, message)
    return {"status": "ok"}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Answer 500 for anything a route did not handle, logging the request id."""

    request_id = getattr(request.state, "request_id", None)
    log_error("Unhandled exception in webhook server", request_id=request_id, path=request.url.path, error=repr(exc))

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
