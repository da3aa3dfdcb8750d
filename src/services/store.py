"""Persistence layer for the Jarvis WhatsApp assistant.

Everything durable (conversations, messages, notes, tickets, admin settings,
uploaded documents) goes through a :class:`DocumentStore`: a small
document-collection contract with equality filters, a ``>=`` range filter,
ordering and limits, plus file storage for uploads.

:class:`SupabaseStore` is the production backend. :class:`InMemoryStore`
implements the same contract in process memory and is used when Supabase is
not configured.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from supabase import Client, create_client


logger = logging.getLogger("jarvis.store")

# ---------------------------------------------------------------------------
# Supabase schema (for reference only; must exist in your Supabase project)
#
# Every table has:  id uuid primary key default gen_random_uuid(),
#                   created_at timestamptz default now()
#
# conversations       phone_number text unique, status text, last_message_at timestamptz
# messages            conversation_id uuid, role text, content text
# user_notes          phone_number text, key text, value text, updated_at timestamptz
# user_lists          phone_number text, list_name text, items jsonb, updated_at timestamptz
# admins              phone_number text unique, name text, role text
# blacklist           phone_number text unique, reason text, blocked_by text
# user_limits         phone_number text unique, daily_limit int, messages_used int, reset_at timestamptz
# bot_config          key text unique, value text, updated_by text
# admin_audit         admin_phone text, action text, details text
# tickets             ticket_number text, phone_number text, subject text, description text,
#                     status text, priority text, category text
# projects            name text, description text, client_phone text, status text
# reminders           phone_number text, message text, scheduled_for timestamptz, status text
# scheduled_messages  target_phone text, message text, scheduled_for timestamptz,
#                     created_by text, status text, sent_at timestamptz, error text
# documents           phone_number text, file_name text, mime_type text, size int,
#                     storage_path text, extracted_text text
# backups             created_by text, conversations int, messages int, payload jsonb
#
# Storage bucket: user-documents
# ---------------------------------------------------------------------------

CONVERSATIONS = "conversations"
MESSAGES = "messages"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentStore(ABC):
    """Document-collection contract used by every service."""

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        gte: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching every equality filter and ``gte`` bound."""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def create_document(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    async def upload_file(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` and return the storage path."""

    @abstractmethod
    async def delete_file(self, bucket: str, path: str) -> None:
        ...

    # ------------------------------------------------------------------
    # Conversation helpers built on the generic primitives.
    # ------------------------------------------------------------------

    async def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.list_documents(collection, filters=filters, limit=1)
        return rows[0] if rows else None

    async def count_documents(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None,
    ) -> int:
        return len(await self.list_documents(collection, filters=filters, gte=gte))

    async def get_or_create_conversation(self, phone_number: str) -> Dict[str, Any]:
        existing = await self.find_one(CONVERSATIONS, {"phone_number": phone_number})
        if existing:
            return existing
        logger.info("Creating conversation for %s", phone_number)
        return await self.create_document(
            CONVERSATIONS,
            {"phone_number": phone_number, "status": "active", "last_message_at": utc_now_iso()},
        )

    async def append_message(self, conversation_id: str, role: str, content: str) -> Dict[str, Any]:
        row = await self.create_document(
            MESSAGES,
            {"conversation_id": conversation_id, "role": role, "content": content},
        )
        await self.update_document(CONVERSATIONS, conversation_id, {"last_message_at": utc_now_iso()})
        return row

    async def get_history(self, conversation_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent ``limit`` messages, oldest first."""

        rows = await self.list_documents(
            MESSAGES,
            filters={"conversation_id": conversation_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        # Requested newest first; reverse so the caller sees ascending.
        rows.reverse()
        return rows

    async def delete_messages(self, conversation_id: str) -> int:
        rows = await self.list_documents(MESSAGES, filters={"conversation_id": conversation_id})
        for row in rows:
            await self.delete_document(MESSAGES, row["id"])
        return len(rows)


class SupabaseStore(DocumentStore):
    """Supabase-backed store.

    The Supabase Python client is synchronous, so every call runs in the
    default thread pool to keep the event loop free.
    """

    def __init__(self, client: Client, attempts: int = 3) -> None:
        self.client = client
        self.attempts = attempts

    async def _run(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        # Retry with exponential backoff: 0.1s, 0.2s
        for attempt in range(self.attempts):
            try:
                return await loop.run_in_executor(None, fn)
            except Exception as exc:  # noqa: BLE001
                if attempt < self.attempts - 1:
                    await asyncio.sleep(0.1 * (2 ** attempt))
                    continue
                logger.error("Supabase call failed after %d attempts: %r", self.attempts, exc)
                raise

    async def list_documents(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        gte: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            query = self.client.table(collection).select("*")
            for field, value in (filters or {}).items():
                query = query.eq(field, value)
            for field, value in (gte or {}).items():
                query = query.gte(field, value)
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit:
                query = query.limit(limit)
            resp = query.execute()
            return list(getattr(resp, "data", None) or [])

        return await self._run(_select)

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.list_documents(collection, filters={"id": doc_id}, limit=1)
        return rows[0] if rows else None

    async def create_document(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        def _insert() -> Dict[str, Any]:
            resp = self.client.table(collection).insert(data).execute()
            rows = getattr(resp, "data", None) or []
            return rows[0] if rows else dict(data)

        return await self._run(_insert)

    async def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        def _update() -> Dict[str, Any]:
            resp = self.client.table(collection).update(data).eq("id", doc_id).execute()
            rows = getattr(resp, "data", None) or []
            return rows[0] if rows else {"id": doc_id, **data}

        return await self._run(_update)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        def _delete() -> None:
            self.client.table(collection).delete().eq("id", doc_id).execute()

        await self._run(_delete)

    async def upload_file(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        def _upload() -> None:
            self.client.storage.from_(bucket).upload(path, data, {"content-type": content_type})

        await self._run(_upload)
        return path

    async def delete_file(self, bucket: str, path: str) -> None:
        def _remove() -> None:
            self.client.storage.from_(bucket).remove([path])

        await self._run(_remove)


class InMemoryStore(DocumentStore):
    """Process-local store with the same semantics as :class:`SupabaseStore`."""

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.files: Dict[str, bytes] = {}
        self._sequence = 0

    def _table(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    async def list_documents(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        gte: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        rows = [
            row
            for row in self._table(collection).values()
            if all(row.get(k) == v for k, v in (filters or {}).items())
            and all(row.get(k) is not None and row.get(k) >= v for k, v in (gte or {}).items())
        ]
        # Insertion order breaks ties between equal timestamps.
        if order_by:
            rows.sort(
                key=lambda r: (r.get(order_by) is None, r.get(order_by), r["_seq"]),
                reverse=descending,
            )
        else:
            rows.sort(key=lambda r: r["_seq"])
        if limit:
            rows = rows[:limit]
        return [self._public(r) for r in rows]

    @staticmethod
    def _public(row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in row.items() if k != "_seq"}

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        row = self._table(collection).get(doc_id)
        return self._public(row) if row else None

    async def create_document(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._sequence += 1
        doc_id = data.get("id") or uuid.uuid4().hex
        row = {"created_at": utc_now_iso(), **copy.deepcopy(data), "id": doc_id, "_seq": self._sequence}
        self._table(collection)[doc_id] = row
        return self._public(row)

    async def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        row = self._table(collection).get(doc_id)
        if row is None:
            raise KeyError(f"{collection}/{doc_id} not found")
        row.update(copy.deepcopy(data))
        return self._public(row)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        self._table(collection).pop(doc_id, None)

    async def upload_file(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        self.files[f"{bucket}/{path}"] = data
        return path

    async def delete_file(self, bucket: str, path: str) -> None:
        self.files.pop(f"{bucket}/{path}", None)


def create_store_from_env() -> DocumentStore:
    """Return a Supabase store, or an in-memory one when Supabase is not configured.

    Reads SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY / SUPABASE_ANON_KEY from
    the environment.
    """

    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        logger.warning(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY/ANON_KEY are not fully "
            "configured; using the in-memory store (data is lost on restart).",
        )
        return InMemoryStore()

    return SupabaseStore(create_client(url, key))
