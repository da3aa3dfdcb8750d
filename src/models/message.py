"""Message models for the Jarvis WhatsApp assistant.

This module defines the normalized message representations shared by the
transport adapter, the dispatcher and the delivery layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    """Types of inbound messages Jarvis distinguishes."""

    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    UNKNOWN = "unknown"


class BotMode(str, Enum):
    """Process-wide operating mode, switched by admins."""

    NORMAL = "normal"
    MAINTENANCE = "maintenance"
    READONLY = "readonly"


class InboundMessage(BaseModel):
    """Universal incoming message format used by the dispatcher.

    ``sender`` is the chat the message came from (a group JID for group
    messages) and ``author`` is the participant who wrote it inside a group.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    sender: str
    recipient: str = ""
    body: str = ""
    kind: MessageKind = MessageKind.TEXT
    is_group: bool = False
    author: Optional[str] = None
    has_media: bool = False
    mentioned_ids: Tuple[str, ...] = ()
    quoted_from_bot: bool = False
    file_name: Optional[str] = None
    mimetype: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def user_id(self) -> str:
        """Identifier used for locks, limits, history and notes."""

        if self.is_group and self.author:
            return self.author
        return self.sender


Role = Literal["user", "assistant"]


class ChatTurn(BaseModel):
    role: Role
    content: str


class ChatContext(BaseModel):
    """History loaded for one dispatch; never cached between messages."""

    conversation_id: str
    phone_number: str
    message_history: List[ChatTurn] = Field(default_factory=list)


@dataclass(frozen=True)
class MessageChunk:
    """One piece of a reply produced by the chunk formatter."""

    text: str
    index: int
    is_last: bool = False


@dataclass(frozen=True)
class MediaPayload:
    """Media downloaded from the transport."""

    mimetype: str
    data: bytes
    file_name: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ChunkedSendOptions:
    """Per-call overrides for chunked delivery."""

    typing_between_chunks: bool = True
    variable_delay: bool = True
    base_delay: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)
