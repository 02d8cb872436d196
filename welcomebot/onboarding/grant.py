"""Reaction-gated access grant: starter role -> onboarded role."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from welcomebot.bus.events import OutboundMessage, ReactionEvent
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.config import GuildConfig
from welcomebot.onboarding.errors import PrivilegeResolutionError, TimeoutExpired
from welcomebot.onboarding.session import Session


@dataclass(frozen=True)
class GrantRequest:
    confirmation_message_id: str
    chat_id: str
    user_id: str
    expires_at: datetime

    def matches(self, event: ReactionEvent, emoji: str) -> bool:
        return (
            event.message_id == self.confirmation_message_id
            and event.user_id == self.user_id
            and event.emoji == emoji
        )


class AccessGrantGate:
    """Posts the public acknowledgment prompt and swaps roles once the user reacts."""

    def __init__(
        self,
        channel: BaseChannel,
        bus: MessageBus,
        guild: GuildConfig,
        emoji: str = "✅",
        timeout: float = 60.0,
        restore_on_failure: bool = False,
    ) -> None:
        self.channel = channel
        self.bus = bus
        self.guild = guild
        self.emoji = emoji
        self.timeout = timeout
        self.restore_on_failure = restore_on_failure

    async def post_confirmation(self, session: Session) -> GrantRequest | None:
        """Post the acknowledgment message; None when the welcome channel can't be used."""
        chat_id = self.guild.welcome_channel_id
        if not chat_id:
            logger.error("Onboarding channel not configured")
            return None
        message_id = await self.channel.send_with_id(OutboundMessage(
            channel=session.channel,
            chat_id=chat_id,
            content=f"<@{session.user_id}> Your info has been submitted! 🎉 Click {self.emoji} below to get access.",
        ))
        if not message_id:
            logger.error(f"Onboarding channel {chat_id} not found")
            return None
        logger.info(f"Confirmation posted in channel {chat_id} for {session.user_id}")
        return GrantRequest(
            confirmation_message_id=message_id,
            chat_id=chat_id,
            user_id=session.user_id,
            expires_at=datetime.now() + timedelta(seconds=self.timeout),
        )

    async def await_acknowledgment(self, request: GrantRequest) -> bool:
        """Seed the bot's own reaction, then wait for the requesting user's. False on timeout."""
        logger.debug(f"Waiting for {self.emoji} from {request.user_id} until {request.expires_at:%H:%M:%S}")
        try:
            await self.bus.wait_for_reaction(
                lambda event: request.matches(event, self.emoji),
                timeout=self.timeout,
                before_wait=lambda: self.channel.add_reaction(request.chat_id, request.confirmation_message_id, self.emoji),
            )
        except TimeoutExpired:
            logger.info(f"No acknowledgment reaction from {request.user_id} within {self.timeout:g}s")
            return False
        return True

    async def transition(self, user_id: str) -> None:
        """Remove the starter role, then add the onboarded role.

        Both roles are resolved before anything is mutated. Raises
        PrivilegeResolutionError when either is missing; platform errors from
        the mutations propagate.
        """
        guild_id = self.guild.guild_id
        starter = self.guild.starter_role_id
        onboarded = self.guild.onboarded_role_id
        if not starter or not await self.channel.role_exists(guild_id, starter):
            raise PrivilegeResolutionError("Starter", starter)
        if not onboarded or not await self.channel.role_exists(guild_id, onboarded):
            raise PrivilegeResolutionError("Onboarding", onboarded)

        await self.channel.remove_role(guild_id, user_id, starter)
        try:
            await self.channel.add_role(guild_id, user_id, onboarded)
        except Exception:
            if self.restore_on_failure:
                logger.warning(f"Adding onboarded role failed for {user_id}; restoring starter role")
                try:
                    await self.channel.add_role(guild_id, user_id, starter)
                except Exception as e:
                    logger.error(f"Restoring starter role failed for {user_id}: {e}")
            raise
        logger.info(f"Roles updated for {user_id}: -{starter} +{onboarded}")
