"""Logging helpers for the Jarvis WhatsApp assistant.

Modules log through ``logging.getLogger("jarvis.<area>")``. Events that
concern a WhatsApp user (a message received, a reply delivered, a failure
while handling it) go through ``log_info`` / ``log_warn`` / ``log_error``,
which write a single JSON object so a conversation can be followed by
``user_id`` and ``request_id``.
"""

import json
import logging
import uuid
from typing import Any, Dict, Optional


WHATSAPP_LOGGER = "jarvis.whatsapp"
TAG = "[JARVIS-WHATSAPP]"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the ``jarvis`` logger (or a child), configuring the root once."""

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    return logging.getLogger(name or "jarvis")


def generate_request_id() -> str:
    """A fresh id tying together the log lines of one inbound message."""

    return str(uuid.uuid4())


def structured_message(
    message: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """Render a user event as JSON.

    >>> structured_message("Reply sent", user_id="225070")
    '{"message": "[JARVIS-WHATSAPP] Reply sent", "user_id": "225070"}'
    """

    payload: Dict[str, Any] = {"message": f"{TAG} {message}"}
    if user_id is not None:
        payload["user_id"] = user_id
    if request_id is not None:
        payload["request_id"] = request_id
    if extra:
        payload["extra"] = extra
    return json.dumps(payload, default=str, ensure_ascii=False)


def _log(level: int, msg: str, user_id: Optional[str], request_id: Optional[str], extra: Dict[str, Any]) -> None:
    get_logger(WHATSAPP_LOGGER).log(level, structured_message(msg, user_id, request_id, extra or None))


def log_info(msg: str, user_id: Optional[str] = None, request_id: Optional[str] = None, **extra: Any) -> None:
    _log(logging.INFO, msg, user_id, request_id, extra)


def log_warn(msg: str, user_id: Optional[str] = None, request_id: Optional[str] = None, **extra: Any) -> None:
    _log(logging.WARNING, msg, user_id, request_id, extra)


def log_error(msg: str, user_id: Optional[str] = None, request_id: Optional[str] = None, **extra: Any) -> None:
    _log(logging.ERROR, msg, user_id, request_id, extra)
