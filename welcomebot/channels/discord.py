"""Discord channel using discord.py."""

from __future__ import annotations

from typing import Awaitable, Callable

import discord
from discord import Intents, Message
from loguru import logger

from welcomebot.bus.events import Attachment, InboundMessage, OutboundMessage, ReactionEvent
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.config import DiscordConfig

JoinHandler = Callable[[str, str, str], Awaitable[object]]


class DiscordChannel(BaseChannel):
    """Discord channel using discord.py library."""

    name = "discord"

    def __init__(self, config: DiscordConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: DiscordConfig = config
        self._client: discord.Client | None = None
        self._join_handler: JoinHandler | None = None

    def set_join_handler(self, handler: JoinHandler) -> None:
        self._join_handler = handler

    async def start(self) -> None:
        if not self.config.token:
            logger.error("Discord bot token not configured")
            return

        self._running = True

        intents = Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True
        intents.dm_messages = True
        intents.reactions = True

        self._client = discord.Client(intents=intents)

        @self._client.event
        async def on_ready():
            logger.info(f"Logged in as {self._client.user}")

        @self._client.event
        async def on_message(message: Message):
            await self._on_message(message)

        @self._client.event
        async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
            await self._on_reaction(payload)

        @self._client.event
        async def on_member_join(member: discord.Member):
            await self._on_member_join(member)

        logger.info("Starting Discord bot...")
        await self._client.start(self.config.token)

    async def stop(self) -> None:
        self._running = False
        if self._client:
            logger.info("Stopping Discord bot...")
            await self._client.close()
            self._client = None

    async def send(self, msg: OutboundMessage) -> None:
        if not self._client:
            logger.debug("Discord: send() called but client is None")
            return
        logger.debug(f"Discord: sending {len(msg.content)} chars to chat_id={msg.chat_id}")
        try:
            channel = await self._resolve_channel(msg.chat_id)
            if channel and hasattr(channel, "send"):
                # Split long messages (Discord limit: 2000 chars)
                content = msg.content
                while content:
                    chunk = content[:2000]
                    content = content[2000:]
                    await channel.send(chunk)
            else:
                logger.warning(f"Discord: no channel for chat_id={msg.chat_id}")
        except Exception as e:
            logger.error(f"Error sending Discord message: {e}")

    async def send_with_id(self, msg: OutboundMessage) -> str | None:
        if not self._client:
            return None
        try:
            channel = await self._resolve_channel(msg.chat_id)
            if channel and hasattr(channel, "send"):
                sent = await channel.send(msg.content[:2000])
                return str(sent.id)
        except Exception as e:
            logger.warning(f"Discord send_with_id failed: {e}")
        return None

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        if not self._client:
            return
        try:
            channel = await self._resolve_channel(chat_id)
            if channel:
                await channel.get_partial_message(int(message_id)).add_reaction(emoji)
                logger.debug(f"Discord: reacted {emoji} on {message_id}")
        except Exception as e:
            logger.warning(f"Discord add_reaction failed: {e}")

    async def open_dm(self, user_id: str) -> str | None:
        # DM chats are keyed by the user's id (see _on_message)
        if not self._client:
            return None
        try:
            user = await self._client.fetch_user(int(user_id))
            await user.create_dm()
        except Exception as e:
            logger.warning(f"Discord: could not open DM with {user_id}: {e}")
            return None
        return str(user.id)

    async def role_exists(self, guild_id: str, role_id: str) -> bool:
        try:
            guild = await self._resolve_guild(guild_id)
            if guild.get_role(int(role_id)) is not None:
                return True
            return any(role.id == int(role_id) for role in await guild.fetch_roles())
        except (ValueError, discord.HTTPException) as e:
            logger.warning(f"Discord: role {role_id} lookup failed: {e}")
            return False

    async def add_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        guild = await self._resolve_guild(guild_id)
        member = await self._resolve_member(guild, user_id)
        await member.add_roles(discord.Object(id=int(role_id)), reason="welcomebot onboarding")

    async def remove_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        guild = await self._resolve_guild(guild_id)
        member = await self._resolve_member(guild, user_id)
        await member.remove_roles(discord.Object(id=int(role_id)), reason="welcomebot onboarding")

    async def _resolve_channel(self, chat_id: str):
        """Resolve a Discord channel/DM from a chat_id string."""
        channel = self._client.get_channel(int(chat_id))
        if channel is None:
            user = await self._client.fetch_user(int(chat_id))
            if user:
                channel = await user.create_dm()
        return channel

    async def _resolve_guild(self, guild_id: str) -> discord.Guild:
        if not self._client:
            raise RuntimeError("Discord client is not running")
        guild = self._client.get_guild(int(guild_id))
        if guild is None:
            guild = await self._client.fetch_guild(int(guild_id))
        return guild

    @staticmethod
    async def _resolve_member(guild: discord.Guild, user_id: str) -> discord.Member:
        member = guild.get_member(int(user_id))
        if member is None:
            member = await guild.fetch_member(int(user_id))
        return member

    async def _on_message(self, message: Message) -> None:
        if not self._client or message.author == self._client.user:
            return
        if message.author.bot:
            logger.debug(f"Discord: ignoring bot message from {message.author}")
            return

        is_dm = isinstance(message.channel, discord.DMChannel)
        # Use channel ID for groups, author ID for DMs
        chat_id = str(message.author.id) if is_dm else str(message.channel.id)

        msg = InboundMessage(
            channel=self.name,
            sender_id=str(message.author.id),
            sender_name=message.author.name,
            chat_id=chat_id,
            content=message.content or "",
            attachments=[
                Attachment(name=a.filename, url=a.url, content_type=a.content_type)
                for a in message.attachments
            ],
            metadata={
                "message_id": str(message.id),
                "guild_id": str(message.guild.id) if message.guild else None,
                "channel_name": getattr(message.channel, "name", "DM"),
                "is_dm": is_dm,
                "mentions": [(str(u.id), u.name) for u in message.mentions if not u.bot],
            },
        )
        logger.debug(
            f"Discord: received message from {msg.sender_id} in {chat_id} "
            f"(guild={message.guild}, channel_type={type(message.channel).__name__})"
        )

        reply = await self._handle_message(msg)
        if reply:
            try:
                await message.channel.send(reply)
            except Exception as e:
                logger.warning(f"Discord: command reply failed: {e}")

    async def _on_reaction(self, payload: discord.RawReactionActionEvent) -> None:
        if self._client and self._client.user and payload.user_id == self._client.user.id:
            return
        await self._handle_reaction(ReactionEvent(
            channel=self.name,
            chat_id=str(payload.channel_id),
            message_id=str(payload.message_id),
            user_id=str(payload.user_id),
            emoji=str(payload.emoji.name),
        ))

    async def _on_member_join(self, member: discord.Member) -> None:
        if member.bot or self._join_handler is None:
            return
        logger.info(f"Discord: member joined {member.guild.id}: {member.name} ({member.id})")
        try:
            await self._join_handler(str(member.guild.id), str(member.id), member.name)
        except Exception as e:
            logger.error(f"Error during member join for {member.name}: {e}")
