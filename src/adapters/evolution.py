"""Evolution API adapter - validate and normalize webhook payloads.

Evolution posts one JSON document per event. Only ``messages.upsert``
events written by someone other than the bot become an
:class:`InboundMessage`; everything else is ignored by returning ``None``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.models.message import InboundMessage, MessageKind
from src.utils.format import detect_kind, is_group_jid, safe_get, same_user


MESSAGE_EVENTS = {"messages.upsert", "MESSAGES_UPSERT"}

# Message containers that can carry a contextInfo block.
_CONTEXT_CONTAINERS = (
    "extendedTextMessage",
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
)


class InvalidPayloadError(Exception):
    """Raised when an Evolution payload has an invalid shape."""


def _unwrap_document(message: Dict[str, Any]) -> Dict[str, Any]:
    wrapped = safe_get(message, ["documentWithCaptionMessage", "message", "documentMessage"])
    if isinstance(wrapped, dict):
        return wrapped
    return message.get("documentMessage") or {}


def _extract_body(message_type: str, message: Dict[str, Any]) -> str:
    if message_type == "conversation":
        return message.get("conversation") or ""
    if message_type == "extendedTextMessage":
        return safe_get(message, ["extendedTextMessage", "text"], "") or ""
    if message_type in ("imageMessage", "videoMessage"):
        return safe_get(message, [message_type, "caption"], "") or ""
    if message_type in ("documentMessage", "documentWithCaptionMessage"):
        document = _unwrap_document(message)
        return document.get("caption") or document.get("fileName") or ""
    return ""


def _extract_context_info(message: Dict[str, Any]) -> Dict[str, Any]:
    for container in _CONTEXT_CONTAINERS:
        info = safe_get(message, [container, "contextInfo"])
        if isinstance(info, dict):
            return info
    document = _unwrap_document(message)
    info = document.get("contextInfo")
    return info if isinstance(info, dict) else {}


def _parse_timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def normalize(payload: Dict[str, Any], bot_id: Optional[str] = None) -> Optional[InboundMessage]:
    """Normalize an Evolution webhook payload.

    Args:
        payload: Raw webhook payload from Evolution API.
        bot_id: The bot's own number or JID. Defaults to the ``sender``
            field Evolution adds to every event.

    Returns:
        The normalized message, or ``None`` for events Jarvis does not
        answer (other event types, messages sent by the bot itself).

    Raises:
        InvalidPayloadError: If a message event lacks its id or chat.
    """

    event = payload.get("event")
    if event is not None and event not in MESSAGE_EVENTS:
        return None

    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidPayloadError("missing data")

    key = data.get("key") or {}
    if key.get("fromMe"):
        return None

    message_id = key.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidPayloadError("missing or invalid message_id")

    remote_jid = key.get("remoteJid") or ""
    if not remote_jid:
        raise InvalidPayloadError("missing remoteJid")

    own_id = bot_id or payload.get("sender") or ""
    message_type = str(data.get("messageType") or "unknown")
    message = data.get("message") or {}
    kind = MessageKind(detect_kind(message_type))

    is_group = is_group_jid(remote_jid)
    author = (key.get("participant") or data.get("participant")) if is_group else None

    context_info = _extract_context_info(message)
    mentioned: List[str] = [m for m in context_info.get("mentionedJid") or [] if isinstance(m, str)]
    quoted_author = context_info.get("participant")
    quoted_from_bot = bool(context_info.get("quotedMessage")) and same_user(quoted_author, own_id)

    file_name = None
    mimetype = None
    if kind == MessageKind.DOCUMENT:
        document = _unwrap_document(message)
        file_name = document.get("fileName")
        mimetype = document.get("mimetype")
    elif kind == MessageKind.VOICE:
        mimetype = safe_get(message, ["audioMessage", "mimetype"])

    return InboundMessage(
        message_id=message_id,
        sender=remote_jid,
        recipient=own_id,
        body=_extract_body(message_type, message),
        kind=kind,
        is_group=is_group,
        author=author,
        has_media=kind in (MessageKind.VOICE, MessageKind.IMAGE, MessageKind.VIDEO, MessageKind.DOCUMENT),
        mentioned_ids=tuple(mentioned),
        quoted_from_bot=quoted_from_bot,
        file_name=file_name,
        mimetype=mimetype,
        timestamp=_parse_timestamp(data.get("messageTimestamp")),
        raw=payload,
    )
