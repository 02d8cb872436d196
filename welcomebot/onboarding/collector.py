"""Single-field question/answer collection."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from welcomebot.bus.events import InboundMessage, OutboundMessage
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.channels.commands import InterruptKind, parse_interrupt
from welcomebot.onboarding.errors import TimeoutExpired, ValidationError
from welcomebot.onboarding.session import Session
from welcomebot.onboarding_spec import AnswerValue, FieldSpec


@dataclass(frozen=True)
class Answered:
    value: AnswerValue
    timed_out: bool = False


@dataclass(frozen=True)
class Interrupted:
    kind: InterruptKind


CollectResult = Answered | Interrupted


def reply_filter(session: Session):
    """Predicate matching replies from the session's user in the session's chat."""
    def _check(msg: InboundMessage) -> bool:
        return msg.sender_id == session.user_id and msg.chat_id == session.chat_id
    return _check


class FieldCollector:
    """Asks one question until it gets a valid answer or an interrupt."""

    def __init__(self, channel: BaseChannel, bus: MessageBus, timeout: float = 60.0) -> None:
        self.channel = channel
        self.bus = bus
        self.timeout = timeout

    async def collect(self, session: Session, spec: FieldSpec, notice: str | None = None) -> CollectResult:
        """Prompt for the field until resolved.

        notice is sent just ahead of the first prompt. Required fields loop on
        timeout; optional fields resolve to the empty value with timed_out set
        and the caller announces the skip. Interrupt tokens are returned,
        never stored as answers.
        """
        while True:
            try:
                reply = await self.bus.wait_for_message(
                    reply_filter(session),
                    timeout=self.timeout,
                    before_wait=lambda text=notice: self._prompt(session, spec, text),
                )
            except TimeoutExpired:
                if not spec.required:
                    logger.debug(f"Collector: {spec.key} timed out for {session.user_id}, skipping")
                    return Answered(spec.empty_value(), timed_out=True)
                logger.debug(f"Collector: {spec.key} timed out for {session.user_id}, re-prompting")
                notice = f"⌛ Time’s up! Please answer the {spec.label}."
                continue

            kind = parse_interrupt(reply.content)
            if kind is not None:
                logger.info(f"Collector: {kind.value} interrupt from {session.user_id} at {spec.key}")
                return Interrupted(kind)

            try:
                value = spec.parse(reply.content)
            except ValidationError as e:
                logger.debug(f"Collector: rejected {spec.key} from {session.user_id}: {e.message}")
                notice = e.message
                continue
            return Answered(value)

    async def _prompt(self, session: Session, spec: FieldSpec, notice: str | None) -> None:
        if notice:
            await self._say(session, notice)
        await self._say(session, spec.prompt_text())

    async def _say(self, session: Session, text: str) -> None:
        await self.channel.send(OutboundMessage(channel=session.channel, chat_id=session.chat_id, content=text))
