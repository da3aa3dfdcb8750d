"""Personal notes and lists kept for each WhatsApp user.

Notes are key/value facts ("le code du portail est 1234"); lists are named
collections of items ("ajoute du lait à ma liste de courses"). Keys and list
names are stored lowercased so lookups are case-insensitive.

The ``parse_*`` helpers only recognise French phrasings and have no side
effects; :class:`UserNotesService` does the storage.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.services.store import DocumentStore, utc_now_iso


logger = logging.getLogger("jarvis.notes")

NOTES_COLLECTION = "user_notes"
LISTS_COLLECTION = "user_lists"


@dataclass(frozen=True)
class NoteRequest:
    action: str  # save | get | list | delete
    key: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class ListRequest:
    action: str  # add | remove | get | clear | list
    list_name: Optional[str] = None
    item: Optional[str] = None


_NOTE_SAVE_RE = re.compile(r"note\s+que\s+(?:le\s+|la\s+|les\s+|l')?(.+?)\s+(?:est|sont|c'est)\s+(.+)", re.I)
_NOTE_GET_RE = re.compile(r"(?:qu'est[- ]ce que|c'est quoi|quel(?:le)? est)\s+(?:le\s+|la\s+|l')?(.+?)\s*\?", re.I)
_NOTE_LIST_RE = re.compile(r"(?:montre|affiche|liste)[- ]?(?:moi)?\s+mes\s+notes", re.I)
_NOTE_DELETE_RE = re.compile(r"(?:supprime|efface|oublie)\s+(?:la note sur|le|la)\s+(?!liste\b)(?!.*\bde\s+(?:ma\s+)?liste\b)(.+)", re.I)

_LIST_ADD_RE = re.compile(r"ajoute\s+(.+?)\s+(?:à|a|dans)\s+(?:ma\s+)?liste\s+(?:de\s+|des\s+)?(.+)", re.I)
_LIST_GET_RE = re.compile(r"(?:montre|affiche|qu'est[- ]ce qu'il y a dans)\s+(?:ma\s+)?liste\s+(?:de\s+|des\s+)?(.+)", re.I)
_LIST_CLEAR_RE = re.compile(r"(?:efface|vide|supprime)\s+(?:ma\s+|la\s+)?liste\s+(?:de\s+|des\s+)?(.+)", re.I)
_LIST_REMOVE_RE = re.compile(r"(?:retire|enlève|enleve|supprime)\s+(.+?)\s+de\s+(?:ma\s+)?liste\s+(?:de\s+|des\s+)?(.+)", re.I)
_LIST_ALL_RE = re.compile(r"(?:toutes\s+)?mes\s+listes", re.I)


def _clean(value: str) -> str:
    return value.strip().rstrip("?.!").strip()


def parse_note_request(text: str) -> Optional[NoteRequest]:
    """Recognise a note command.

    Examples:
        >>> parse_note_request("Note que le code wifi est abc123")
        NoteRequest(action='save', key='code wifi', value='abc123')
        >>> parse_note_request("c'est quoi le code wifi ?")
        NoteRequest(action='get', key='code wifi', value=None)
    """

    match = _NOTE_SAVE_RE.search(text)
    if match:
        return NoteRequest("save", key=_clean(match.group(1)), value=match.group(2).strip())

    match = _NOTE_GET_RE.search(text)
    if match:
        return NoteRequest("get", key=_clean(match.group(1)))

    if _NOTE_LIST_RE.search(text):
        return NoteRequest("list")

    match = _NOTE_DELETE_RE.search(text)
    if match:
        return NoteRequest("delete", key=_clean(match.group(1)))

    return None


def parse_list_request(text: str) -> Optional[ListRequest]:
    match = _LIST_ADD_RE.search(text)
    if match:
        return ListRequest("add", list_name=_clean(match.group(2)), item=_clean(match.group(1)))

    match = _LIST_GET_RE.search(text)
    if match:
        return ListRequest("get", list_name=_clean(match.group(1)))

    # "supprime X de ma liste" must win over "supprime ma liste".
    match = _LIST_REMOVE_RE.search(text)
    if match:
        return ListRequest("remove", list_name=_clean(match.group(2)), item=_clean(match.group(1)))

    match = _LIST_CLEAR_RE.search(text)
    if match:
        return ListRequest("clear", list_name=_clean(match.group(1)))

    if _LIST_ALL_RE.search(text):
        return ListRequest("list")

    return None


class UserNotesService:
    """Storage for notes and lists, scoped by phone number."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def _find_note(self, phone: str, key: str) -> Optional[Dict[str, Any]]:
        return await self.store.find_one(NOTES_COLLECTION, {"phone_number": phone, "key": key.lower()})

    async def save_note(self, phone: str, key: str, value: str) -> None:
        existing = await self._find_note(phone, key)
        if existing:
            await self.store.update_document(
                NOTES_COLLECTION, existing["id"], {"value": value, "updated_at": utc_now_iso()}
            )
            return
        await self.store.create_document(
            NOTES_COLLECTION,
            {"phone_number": phone, "key": key.lower(), "value": value, "updated_at": utc_now_iso()},
        )

    async def get_note(self, phone: str, key: str) -> Optional[str]:
        note = await self._find_note(phone, key)
        return note.get("value") if note else None

    async def get_all_notes(self, phone: str) -> List[Dict[str, str]]:
        rows = await self.store.list_documents(NOTES_COLLECTION, filters={"phone_number": phone}, order_by="key")
        return [{"key": row["key"], "value": row.get("value", "")} for row in rows]

    async def delete_note(self, phone: str, key: str) -> bool:
        note = await self._find_note(phone, key)
        if not note:
            return False
        await self.store.delete_document(NOTES_COLLECTION, note["id"])
        return True

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def _find_list(self, phone: str, name: str) -> Optional[Dict[str, Any]]:
        return await self.store.find_one(LISTS_COLLECTION, {"phone_number": phone, "list_name": name.lower()})

    @staticmethod
    def _items(row: Optional[Dict[str, Any]]) -> List[str]:
        if not row:
            return []
        raw = row.get("items") or "[]"
        items = json.loads(raw) if isinstance(raw, str) else raw
        return [str(i) for i in items]

    async def add_to_list(self, phone: str, name: str, item: str) -> None:
        row = await self._find_list(phone, name)
        items = self._items(row)
        items.append(item)
        payload = {"items": json.dumps(items, ensure_ascii=False), "updated_at": utc_now_iso()}
        if row:
            await self.store.update_document(LISTS_COLLECTION, row["id"], payload)
        else:
            await self.store.create_document(
                LISTS_COLLECTION, {"phone_number": phone, "list_name": name.lower(), **payload}
            )

    async def get_list(self, phone: str, name: str) -> List[str]:
        return self._items(await self._find_list(phone, name))

    async def remove_from_list(self, phone: str, name: str, item: str) -> bool:
        row = await self._find_list(phone, name)
        items = self._items(row)
        remaining = [i for i in items if i.lower() != item.lower()]
        if not row or len(remaining) == len(items):
            return False
        await self.store.update_document(
            LISTS_COLLECTION,
            row["id"],
            {"items": json.dumps(remaining, ensure_ascii=False), "updated_at": utc_now_iso()},
        )
        return True

    async def clear_list(self, phone: str, name: str) -> bool:
        row = await self._find_list(phone, name)
        if not row:
            return False
        await self.store.delete_document(LISTS_COLLECTION, row["id"])
        return True

    async def get_all_lists(self, phone: str) -> List[Dict[str, Any]]:
        rows = await self.store.list_documents(LISTS_COLLECTION, filters={"phone_number": phone}, order_by="list_name")
        return [{"name": row["list_name"], "count": len(self._items(row))} for row in rows]
