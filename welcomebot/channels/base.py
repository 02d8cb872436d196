"""Base channel interface for chat platforms."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from loguru import logger

from welcomebot.bus.events import InboundMessage, OutboundMessage, ReactionEvent
from welcomebot.bus.queue import MessageBus

CommandHandler = Callable[[InboundMessage], Awaitable[str | None]]


class BaseChannel(ABC):
    """Abstract base class for chat channel implementations.

    Besides plain sending, the onboarding flow needs reactions and guild role
    management; role mutations raise on failure so callers can report them.
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False
        self._command_handler: CommandHandler | None = None

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        pass

    async def send_with_id(self, msg: OutboundMessage) -> str | None:
        """Send a message and return the platform message ID. Default: send normally, return None."""
        await self.send(msg)
        return None

    @abstractmethod
    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        pass

    @abstractmethod
    async def open_dm(self, user_id: str) -> str | None:
        """Return the chat id for a direct conversation with user_id, or None if unreachable."""

    @abstractmethod
    async def role_exists(self, guild_id: str, role_id: str) -> bool:
        pass

    @abstractmethod
    async def add_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        pass

    @abstractmethod
    async def remove_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        pass

    def set_command_handler(self, handler: CommandHandler) -> None:
        self._command_handler = handler

    def is_allowed(self, sender_id: str) -> bool:
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return str(sender_id) in allow_list

    async def _handle_message(self, msg: InboundMessage) -> str | None:
        """Offer a message to pending waiters first; otherwise treat it as a command.

        Returns the reply text the command handler produced, if any.
        """
        if not self.is_allowed(msg.sender_id):
            logger.warning(f"Access denied for {msg.sender_id} on {self.name}")
            return None

        if await self.bus.publish_inbound(msg):
            logger.debug(f"{self.name}: message from {msg.sender_id} consumed by a waiter (session={msg.session_key})")
            return None

        if self._command_handler is None:
            return None
        return await self._command_handler(msg)

    async def _handle_reaction(self, event: ReactionEvent) -> None:
        if not await self.bus.publish_reaction(event):
            logger.debug(f"{self.name}: unclaimed reaction {event.emoji} on {event.message_id}")

    @property
    def is_running(self) -> bool:
        return self._running
