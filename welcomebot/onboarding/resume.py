"""Resume upload intake: wait for a document in DM and forward its link."""

from __future__ import annotations

import asyncio

from loguru import logger

from welcomebot.bus.events import Attachment, InboundMessage, OutboundMessage
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.config import ResumeConfig
from welcomebot.onboarding.errors import SinkError, TimeoutExpired
from welcomebot.onboarding.sink import SubmissionSink

UPLOAD_PROMPT = "📄 Please upload your resume as a file (PDF, DOC, or DOCX)."
WRONG_TYPE_TEXT = "❌ Please upload a valid resume file (PDF, DOC, DOCX)."
RECEIVED_TEXT = "✅ Resume received! We'll review it soon."
FAILED_TEXT = "⚠️ We couldn't forward your resume right now. Please try `!resume` again later."
EXPIRED_TEXT = "⌛ No file received. Type `!resume` whenever you're ready."
INSTRUCTIONS_TEXT = "📄 Thanks for using `!resume`! Please upload your resume as a file (PDF, DOC, or DOCX)."


class ResumeIntake:
    """One pending upload per user; a new request replaces the previous one."""

    def __init__(
        self,
        channel: BaseChannel,
        bus: MessageBus,
        config: ResumeConfig,
        timeout: float = 600.0,
        sink: SubmissionSink | None = None,
    ) -> None:
        self.channel = channel
        self.bus = bus
        self.config = config
        self.timeout = timeout
        self.sink = sink or SubmissionSink(config.sink)
        self._pending: dict[str, asyncio.Task] = {}

    def is_pending(self, user_id: str) -> bool:
        task = self._pending.get(str(user_id))
        return task is not None and not task.done()

    def request(self, user_id: str, username: str, chat_id: str) -> asyncio.Task:
        """Start waiting for an upload from user_id in chat_id."""
        user_id = str(user_id)
        previous = self._pending.pop(user_id, None)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.create_task(self._await_upload(user_id, username, str(chat_id)))
        self._pending[user_id] = task
        task.add_done_callback(lambda t, uid=user_id: self._forget(uid, t))
        return task

    async def send_instructions(self, chat_id: str) -> None:
        await self._say(chat_id, INSTRUCTIONS_TEXT)

    def cancel_all(self) -> None:
        for task in self._pending.values():
            if not task.done():
                task.cancel()
        self._pending.clear()

    def _forget(self, user_id: str, task: asyncio.Task) -> None:
        if self._pending.get(user_id) is task:
            del self._pending[user_id]
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error(f"Resume intake for {user_id} crashed")

    async def _await_upload(self, user_id: str, username: str, chat_id: str) -> bool:
        def _check(msg: InboundMessage) -> bool:
            return msg.sender_id == user_id and msg.chat_id == chat_id and bool(msg.attachments)

        notice: str | None = None
        while True:
            try:
                msg = await self.bus.wait_for_message(
                    _check,
                    timeout=self.timeout,
                    before_wait=(lambda text=notice: self._say(chat_id, text)) if notice else None,
                )
            except TimeoutExpired:
                logger.info(f"Resume upload from {user_id} expired")
                await self._say(chat_id, EXPIRED_TEXT)
                return False

            attachment = msg.attachments[0]
            if attachment.content_type not in self.config.allowed_content_types:
                logger.debug(f"Resume from {user_id} rejected: {attachment.content_type}")
                notice = WRONG_TYPE_TEXT
                continue
            return await self._forward(user_id, username, chat_id, attachment)

    async def _forward(self, user_id: str, username: str, chat_id: str, attachment: Attachment) -> bool:
        try:
            await self.sink.post({
                "username": username,
                "userId": user_id,
                "fileName": attachment.name,
                "fileUrl": attachment.url,
            })
        except SinkError as e:
            logger.error(f"Resume forward failed for {username} ({user_id}): {e}")
            await self._say(chat_id, FAILED_TEXT)
            return False
        logger.info(f"Resume {attachment.name} forwarded for {username} ({user_id})")
        await self._say(chat_id, RECEIVED_TEXT)
        return True

    async def _say(self, chat_id: str, text: str) -> None:
        await self.channel.send(OutboundMessage(channel=self.channel.name, chat_id=chat_id, content=text))
