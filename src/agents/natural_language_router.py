"""Natural-language shortcut router for the Jarvis WhatsApp assistant.

This module tries a fixed, ordered list of deterministic detectors against a
message before the dispatcher falls back to the LLM. The first detector that
returns an :class:`Intent` wins.

Order:
    conversions, calculations, coin flip, random number, random choice,
    password, notes, lists, date/time.

Only the note and list detectors touch storage, always scoped to the user the
message is attributed to.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from src.models.intent import Intent
from src.services.natural_language import detect_calculation
from src.services.natural_language import detect_coin_flip
from src.services.natural_language import detect_conversion
from src.services.natural_language import detect_datetime_query
from src.services.natural_language import detect_password_request
from src.services.natural_language import detect_random_choice
from src.services.natural_language import detect_random_number
from src.services.notes import ListRequest
from src.services.notes import NoteRequest
from src.services.notes import UserNotesService
from src.services.notes import parse_list_request
from src.services.notes import parse_note_request


logger = logging.getLogger("jarvis.natural_language")

Detector = Callable[[str, str], Awaitable[Optional[Intent]]]


def _pure(fn: Callable[[str], Optional[Intent]]) -> Detector:
    async def detector(text: str, user_id: str) -> Optional[Intent]:
        return fn(text)

    detector.__name__ = fn.__name__
    return detector


class NaturalLanguageRouter:
    """Ordered shortcut detection with early exit."""

    def __init__(self, notes: UserNotesService) -> None:
        self.notes = notes
        self.detectors: List[Detector] = [
            _pure(detect_conversion),
            _pure(detect_calculation),
            _pure(detect_coin_flip),
            _pure(detect_random_number),
            _pure(detect_random_choice),
            _pure(detect_password_request),
            self.detect_note,
            self.detect_list,
            _pure(detect_datetime_query),
        ]

    async def detect(self, text: str, user_id: str) -> Optional[Intent]:
        """Return the first matching shortcut for ``text``, or ``None``.

        Examples:
            >>> import asyncio
            >>> router = NaturalLanguageRouter(notes=None)
            >>> asyncio.run(router.detect("12 + 8", "225070")).reply
            '🧮 20'
        """

        body = (text or "").strip()
        if not body:
            return None

        for detector in self.detectors:
            intent = await detector(body, user_id)
            if intent is not None:
                logger.info("Shortcut %s matched via %s", intent.kind, detector.__name__)
                return intent
        return None

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def detect_note(self, text: str, user_id: str) -> Optional[Intent]:
        request = parse_note_request(text)
        if request is None:
            return None
        reply = await self._handle_note(request, user_id)
        if reply is None:
            return None
        return Intent(kind="note", reply=reply, value=request.action)

    async def _handle_note(self, request: NoteRequest, user_id: str) -> Optional[str]:
        if request.action == "save":
            await self.notes.save_note(user_id, request.key, request.value)
            return f"📝 J'ai noté que {request.key} est {request.value}"

        if request.action == "get":
            value = await self.notes.get_note(user_id, request.key)
            # Unknown keys are ordinary questions; let the LLM answer them.
            if value is None:
                return None
            return f"📝 {request.key} : {value}"

        if request.action == "list":
            notes = await self.notes.get_all_notes(user_id)
            if not notes:
                return "📝 Vous n'avez aucune note enregistrée"
            lines = [f"• {n['key']} : {n['value']}" for n in notes]
            return "📝 **Vos notes :**\n" + "\n".join(lines)

        if request.action == "delete":
            if await self.notes.delete_note(user_id, request.key):
                return f"🗑️ Note sur \"{request.key}\" supprimée"
            return f"❓ Aucune note trouvée sur \"{request.key}\""

        return None

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def detect_list(self, text: str, user_id: str) -> Optional[Intent]:
        request = parse_list_request(text)
        if request is None:
            return None
        reply = await self._handle_list(request, user_id)
        return Intent(kind="list", reply=reply, value=request.action)

    async def _handle_list(self, request: ListRequest, user_id: str) -> str:
        name = request.list_name

        if request.action == "add":
            await self.notes.add_to_list(user_id, name, request.item)
            return f"✅ \"{request.item}\" ajouté à votre liste de {name}"

        if request.action == "get":
            items = await self.notes.get_list(user_id, name)
            if not items:
                return f"📋 Votre liste de {name} est vide"
            return f"📋 **Liste de {name} :**\n" + "\n".join(f"• {item}" for item in items)

        if request.action == "remove":
            if await self.notes.remove_from_list(user_id, name, request.item):
                return f"✅ \"{request.item}\" retiré de votre liste de {name}"
            return f"❓ \"{request.item}\" n'est pas dans votre liste de {name}"

        if request.action == "clear":
            if await self.notes.clear_list(user_id, name):
                return f"🗑️ Liste de {name} vidée"
            return f"❓ Aucune liste de {name} trouvée"

        lists = await self.notes.get_all_lists(user_id)
        if not lists:
            return "📋 Vous n'avez aucune liste"
        lines = [f"• {entry['name']} ({entry['count']} élément{'s' if entry['count'] > 1 else ''})" for entry in lists]
        return "📋 **Vos listes :**\n" + "\n".join(lines)
