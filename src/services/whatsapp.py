"""WhatsApp transport for the Jarvis assistant, backed by the Evolution API.

This module provides the outbound primitives the rest of the application
relies on: sending text, toggling the "typing..." presence and downloading
media attached to an inbound message.
"""

from __future__ import annotations

import base64
import os
from typing import Any, Dict, Optional

import httpx

from src.models.message import InboundMessage, MediaPayload
from src.utils.logger import log_error
from src.utils.logger import log_info
from src.utils.logger import log_warn


class TransportError(Exception):
    """Raised when a message cannot be delivered through Evolution."""


class EvolutionClient:
    """Thin async client over the Evolution HTTP API."""

    def __init__(
        self,
        base_url: str,
        instance: str,
        api_key: str,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.instance = instance
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "EvolutionClient":
        """Build a client from ``EVOLUTION_API_URL``/``EVOLUTION_INSTANCE``/``EVOLUTION_API_KEY``."""

        base_url = os.getenv("EVOLUTION_API_URL", "")
        instance = os.getenv("EVOLUTION_INSTANCE", "")
        api_key = os.getenv("EVOLUTION_API_KEY", "")
        if not base_url or not instance or not api_key:
            log_warn("Evolution API is not fully configured; outbound messages will fail")
        return cls(base_url=base_url, instance=instance, api_key=api_key)

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.instance and self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "apikey": self.api_key}

    async def _post(self, path: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> httpx.Response:
        url = f"{self.base_url}{path}/{self.instance}"
        async with httpx.AsyncClient(timeout=timeout or self.timeout) as client:
            resp = await client.post(url, json=payload, headers=self._headers())
        resp.raise_for_status()
        return resp

    async def send_message(self, to: str, text: str) -> None:
        """Send a text message. Raises :class:`TransportError` on failure."""

        if not self.is_configured:
            raise TransportError("Evolution API is not configured")

        try:
            await self._post("/message/sendText", {"number": to, "text": text})
        except httpx.HTTPError as exc:
            log_error("Failed to send WhatsApp message", user_id=to, error=repr(exc))
            raise TransportError(f"sendText failed: {exc!r}") from exc

        log_info("WhatsApp message sent", user_id=to, length=len(text))

    async def set_typing_presence(self, to: str) -> None:
        # Evolution holds the request open for "delay" ms; the caller does the waiting.
        await self._post("/chat/sendPresence", {"number": to, "presence": "composing", "delay": 0})

    async def clear_presence(self, to: str) -> None:
        await self._post("/chat/sendPresence", {"number": to, "presence": "paused", "delay": 0})

    async def download_media(self, message: InboundMessage) -> Optional[MediaPayload]:
        """Fetch the media attached to ``message``.

        Returns ``None`` when Evolution has no media for it or the request
        fails; errors are logged.
        """

        payload = {"message": {"key": {"id": message.message_id}}, "convertToMp4": False}

        try:
            resp = await self._post("/chat/getBase64FromMediaMessage", payload, timeout=60.0)
            data = resp.json() or {}
        except httpx.HTTPError as exc:
            log_error(
                "HTTP error while downloading WhatsApp media",
                user_id=message.user_id,
                message_id=message.message_id,
                error=repr(exc),
            )
            return None

        encoded = data.get("base64")
        if not encoded:
            log_warn("Media download returned no data", user_id=message.user_id, message_id=message.message_id)
            return None

        try:
            raw = base64.b64decode(encoded)
        except (ValueError, TypeError) as exc:
            log_error("Media download returned invalid base64", user_id=message.user_id, error=repr(exc))
            return None

        return MediaPayload(
            mimetype=data.get("mimetype") or message.mimetype or "application/octet-stream",
            data=raw,
            file_name=data.get("fileName") or message.file_name,
        )
