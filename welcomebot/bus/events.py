"""Event types for the message bus."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Attachment:
    """File attached to an inbound message."""
    name: str
    url: str
    content_type: str | None = None


@dataclass
class InboundMessage:
    """Message received from a chat channel."""
    channel: str
    sender_id: str
    chat_id: str
    content: str
    sender_name: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    attachments: list[Attachment] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def session_key(self) -> str:
        return f"{self.channel}:{self.chat_id}"

    @property
    def is_dm(self) -> bool:
        return bool(self.metadata.get("is_dm", False))


@dataclass
class ReactionEvent:
    """Reaction added to a message."""
    channel: str
    chat_id: str
    message_id: str
    user_id: str
    emoji: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class OutboundMessage:
    """Message to send to a chat channel."""
    channel: str
    chat_id: str
    content: str
