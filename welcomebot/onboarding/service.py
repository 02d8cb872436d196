"""Onboarding entry points: chat commands, member joins, session lifecycle."""

from __future__ import annotations

import asyncio

from loguru import logger

from welcomebot.bus.events import InboundMessage
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.channels.commands import (
    get_commands_text,
    is_edit_request,
    is_exit_request,
    is_help_request,
    is_ping_request,
    is_resume_request,
    is_start_request,
    is_welcome_request,
)
from welcomebot.config import Config
from welcomebot.onboarding.orchestrator import CANCELLED_TEXT, DialogueOrchestrator
from welcomebot.onboarding.resume import UPLOAD_PROMPT, ResumeIntake
from welcomebot.onboarding.session import Session, SessionState, SessionStore
from welcomebot.onboarding.sink import SubmissionSink

PONG_TEXT = "🏓 Pong!"
NOT_ACTIVE_EXIT_TEXT = "Onboarding cancelled. You can resume anytime by typing `!start`."
NOT_ACTIVE_EDIT_TEXT = "You need to start onboarding first with `!start` before editing your answers."
GRANT_PENDING_TEXT = (
    "Your answers are already submitted. React with {emoji} on the confirmation message in the "
    "welcome channel to get access, or type `!exit` to cancel."
)
BUSY_TEXT = "⏳ Hang on, we're still saving your answers."
WELCOME_USAGE_TEXT = "Please mention a user to welcome, e.g. `!welcome @user`."
CHECK_DMS_TEXT = "📬 Check your DMs for instructions!"
NO_DM_TEXT = "❌ I couldn't DM you. Please make sure your DMs are open."


class OnboardingService:
    """Starts and supersedes onboarding sessions and answers out-of-dialogue commands."""

    def __init__(
        self,
        config: Config,
        channel: BaseChannel,
        bus: MessageBus,
        sink: SubmissionSink | None = None,
        resume: ResumeIntake | None = None,
    ) -> None:
        self.config = config
        self.channel = channel
        self.bus = bus
        self.sessions = SessionStore()
        self.orchestrator = DialogueOrchestrator(
            channel,
            bus,
            sink or SubmissionSink(config.submission),
            config,
            store=self.sessions,
        )
        self.resume = resume
        if self.resume is None and config.resume.enabled:
            self.resume = ResumeIntake(
                channel, bus, config.resume, timeout=config.onboarding.timeouts.resume_upload
            )

    def start(self, user_id: str, username: str, chat_id: str) -> asyncio.Task:
        """Open a session (superseding any active one) and run it as a task."""
        session = self.sessions.open(user_id, username, chat_id, channel=self.channel.name)
        task = asyncio.create_task(self.orchestrator.run(session))
        task.add_done_callback(lambda t, s=session: self._on_session_done(s, t))
        self.sessions.attach(session, task)
        return task

    async def start_for_user(self, user_id: str, username: str) -> asyncio.Task | None:
        """Open a DM with user_id and start onboarding there. None when the DM can't be opened."""
        chat_id = await self.channel.open_dm(user_id)
        if chat_id is None:
            logger.error(f"Could not DM {username} ({user_id})")
            return None
        return self.start(user_id, username, chat_id)

    async def handle_member_join(self, guild_id: str, user_id: str, username: str) -> asyncio.Task | None:
        """Give a new member the starter role, then begin their onboarding."""
        starter = self.config.guild.starter_role_id
        if self.config.onboarding.assign_starter_on_join:
            if starter and await self.channel.role_exists(guild_id, starter):
                try:
                    await self.channel.add_role(guild_id, user_id, starter)
                    logger.info(f"Assigned starter role to {username}")
                except Exception as e:
                    logger.error(f"Error assigning starter role to {username}: {e}")
            else:
                logger.warning("Starter role ID invalid or not found.")
        return await self.start_for_user(user_id, username)

    async def handle_command(self, msg: InboundMessage) -> str | None:
        """Return a reply for a command that no running dialogue consumed, or None to ignore."""
        content = msg.content.strip()
        if not content.startswith("!"):
            return None

        if is_help_request(content):
            return get_commands_text(msg.is_dm)
        if is_ping_request(content):
            return PONG_TEXT
        if is_resume_request(content):
            return await self._handle_resume(msg)

        if msg.is_dm:
            if is_start_request(content):
                self.start(msg.sender_id, msg.sender_name, msg.chat_id)
                return None
            if is_exit_request(content) or is_edit_request(content):
                session = self.sessions.get(msg.sender_id)
                if session is not None and not session.is_closed:
                    return self._interrupt_outside_dialogue(session, content)
                return NOT_ACTIVE_EXIT_TEXT if is_exit_request(content) else NOT_ACTIVE_EDIT_TEXT
            return None

        if is_welcome_request(content):
            mentions = msg.metadata.get("mentions") or []
            if not mentions:
                return WELCOME_USAGE_TEXT
            user_id, username = mentions[0]
            task = await self.start_for_user(str(user_id), username)
            if task is None:
                return f"❌ Could not DM {username}."
            return None
        return None

    async def stop(self) -> None:
        self.sessions.cancel_all()
        if self.resume is not None:
            self.resume.cancel_all()

    def _interrupt_outside_dialogue(self, session: Session, content: str) -> str:
        """`!exit` / `!edit` from a user whose session is past its questions."""
        if session.state != SessionState.AWAITING_GRANT_REACTION:
            return BUSY_TEXT
        if is_exit_request(content):
            self.sessions.cancel(session.user_id)
            return CANCELLED_TEXT
        return GRANT_PENDING_TEXT.format(emoji=self.config.onboarding.grant_emoji)

    async def _handle_resume(self, msg: InboundMessage) -> str | None:
        if self.resume is None:
            return None
        if msg.is_dm:
            self.resume.request(msg.sender_id, msg.sender_name, msg.chat_id)
            return UPLOAD_PROMPT

        chat_id = await self.channel.open_dm(msg.sender_id)
        if chat_id is None:
            return NO_DM_TEXT
        self.resume.request(msg.sender_id, msg.sender_name, chat_id)
        await self.resume.send_instructions(chat_id)
        return CHECK_DMS_TEXT

    def _on_session_done(self, session: Session, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.debug(f"Onboarding task for session {session.session_id} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self.sessions.close(session)
            logger.opt(exception=exc).error(f"Onboarding failed for {session.username} ({session.user_id})")
