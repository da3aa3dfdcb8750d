"""Helpers for reading WhatsApp payloads and identifiers.

WhatsApp identifiers (JIDs) look like ``2250700000000@s.whatsapp.net`` for
people and ``120363000000000000@g.us`` for groups. Several places compare a
JID with a bare phone number, so comparisons go through :func:`jid_number`.
"""

from typing import Any, Dict, List, Optional


GROUP_SUFFIX = "@g.us"


def safe_get(d: Dict[str, Any], path: List[Any], default: Optional[Any] = None) -> Any:
    """Safely traverse a nested dict using a list path.

    Similar to lodash's ``get`` helper. Returns ``default`` if any step in the
    path is missing or not a mapping.
    """

    current: Any = d
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def is_group_jid(jid: Optional[str]) -> bool:
    return bool(jid) and GROUP_SUFFIX in jid


def jid_number(jid: Optional[str]) -> str:
    """Return the bare number of a JID (``"225070@s.whatsapp.net"`` -> ``"225070"``).

    Device suffixes (``225070:12@s.whatsapp.net``) and anything that is not a
    digit are dropped.
    """

    if not jid:
        return ""
    local = jid.split("@", 1)[0]
    local = local.split(":", 1)[0]
    return "".join(ch for ch in local if ch.isdigit())


def to_jid(phone: str) -> str:
    """Turn a number typed by an admin (``+225 07 00``) into a user JID."""

    if "@" in phone:
        return phone
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"{digits}@s.whatsapp.net"


def same_user(a: Optional[str], b: Optional[str]) -> bool:
    number_a = jid_number(a)
    return bool(number_a) and number_a == jid_number(b)


def detect_kind(message_type: str) -> str:
    """Map an Evolution ``messageType`` to a message kind.

    Returns one of: "text", "voice", "image", "video", "document", or
    "unknown".
    """

    if message_type in ("conversation", "extendedTextMessage"):
        return "text"
    if message_type in ("audioMessage", "pttMessage"):
        return "voice"
    if message_type == "imageMessage":
        return "image"
    if message_type == "videoMessage":
        return "video"
    if message_type in ("documentMessage", "documentWithCaptionMessage"):
        return "document"
    return "unknown"
