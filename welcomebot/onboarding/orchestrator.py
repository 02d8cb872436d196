"""Onboarding dialogue state machine."""

from __future__ import annotations

from loguru import logger

from welcomebot.bus.events import OutboundMessage
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.channels.commands import InterruptKind, get_dialogue_commands_text, parse_interrupt
from welcomebot.config import Config
from welcomebot.onboarding.collector import FieldCollector, Interrupted, reply_filter
from welcomebot.onboarding.errors import PrivilegeResolutionError, SinkError, TimeoutExpired
from welcomebot.onboarding.grant import AccessGrantGate
from welcomebot.onboarding.session import Session, SessionState, SessionStore, SubmissionRecord
from welcomebot.onboarding.sink import SubmissionSink
from welcomebot.onboarding_spec import ONBOARDING_FIELDS, FieldSpec

WELCOME_TEXT = (
    "Hey there! Welcome to NDNP - where connections go beyond college! 🎉\n\n"
    "Before we start, do you consent to answer a few onboarding questions? (yes/no)\n"
    "You can type `!exit` anytime to cancel."
)
CONSENT_RETRY_TEXT = "Please reply with `yes` to proceed or `no` to cancel."
CONSENT_QUESTION = "Do you consent to answer a few onboarding questions? (yes/no)"
DECLINED_TEXT = "No worries! You can join and share info anytime. Have a great day! 👋"
INTRO_TEXT = "Awesome! We'll ask you some quick questions to get to know you better."
CANCELLED_TEXT = "Onboarding cancelled. You can resume anytime by typing `!start`."
RESTARTED_TEXT = "🔄 Starting over from the first question."
EDIT_TEXT = "✏️ Editing a specific answer isn't available yet. Let's continue with this question."
TIMEOUT_TEXT = "⌛ Timeout reached. Onboarding cancelled. You can start anytime by typing `!start`."
SUBMIT_BLOCKED_TEXT = "⚠️ We couldn't save your answers right now. Please try again later by typing `!start`."
NO_CHANNEL_TEXT = "⚠️ Couldn't find the welcome channel. Contact an admin."
GRANT_TIMEOUT_TEXT = "⌛ No reaction received, so access wasn't granted. Type `!start` to try again."
GRANTED_TEXT = "✅ You’ve been given access to the server!"
ROLE_ERROR_TEXT = "⚠️ There was an error updating your roles."


class DialogueOrchestrator:
    """Runs one session through consent, collection, submission and the access grant."""

    def __init__(
        self,
        channel: BaseChannel,
        bus: MessageBus,
        sink: SubmissionSink,
        config: Config,
        store: SessionStore | None = None,
        fields: tuple[FieldSpec, ...] = ONBOARDING_FIELDS,
    ) -> None:
        self.channel = channel
        self.bus = bus
        self.sink = sink
        self.config = config
        self.store = store
        self.fields = fields
        timeouts = config.onboarding.timeouts
        self.consent_timeout = timeouts.consent
        self.collector = FieldCollector(channel, bus, timeout=timeouts.field)
        self.gate = AccessGrantGate(
            channel,
            bus,
            config.guild,
            emoji=config.onboarding.grant_emoji,
            timeout=timeouts.grant_reaction,
            restore_on_failure=config.onboarding.restore_starter_on_failure,
        )

    async def run(self, session: Session) -> SessionState:
        """Drive session to completion. Always leaves it Closed."""
        try:
            if not await self._await_consent(session):
                return session.state
            record = await self._collect(
                session, notice=f"{INTRO_TEXT}\n{get_dialogue_commands_text()}\nLet's begin!"
            )
            if record is None:
                return session.state
            submitted = await self._submit(session, record)
            if not submitted and self.config.onboarding.block_grant_on_submit_failure:
                await self._say(session, SUBMIT_BLOCKED_TEXT)
                return session.state
            await self._grant(session)
        except TimeoutExpired as e:
            logger.warning(f"Onboarding for {session.username} ({session.user_id}) timed out: {e}")
            await self._say(session, TIMEOUT_TEXT)
        finally:
            if self.store is not None:
                self.store.close(session)
            else:
                session.transition(SessionState.CLOSED)
        return session.state

    async def _await_consent(self, session: Session) -> bool:
        session.transition(SessionState.AWAITING_CONSENT)
        question = WELCOME_TEXT
        while True:
            reply = await self.bus.wait_for_message(
                reply_filter(session),
                timeout=self.consent_timeout,
                before_wait=lambda text=question: self._say(session, text),
            )
            answer = reply.content.strip().lower()
            logger.info(f"Consent response from {session.username}: {answer}")
            if answer == "no" or parse_interrupt(answer) == InterruptKind.EXIT:
                await self._say(session, DECLINED_TEXT)
                return False
            if answer == "yes":
                return True
            question = f"{CONSENT_RETRY_TEXT}\n{CONSENT_QUESTION}"

    async def _collect(self, session: Session, notice: str | None = None) -> SubmissionRecord | None:
        """Ask every unanswered field in order. None when the user exits.

        Status texts (intro, restart, skip) ride along with the next prompt so
        the reply listener is already registered while they are sent.
        """
        session.transition(SessionState.COLLECTING)
        index = 0
        while index < len(self.fields):
            spec = self.fields[index]
            if session.has_answer(spec.key):
                index += 1
                continue

            result = await self.collector.collect(session, spec, notice=notice)
            notice = None
            if isinstance(result, Interrupted):
                if result.kind == InterruptKind.EXIT:
                    await self._say(session, CANCELLED_TEXT)
                    return None
                if result.kind == InterruptKind.RESTART:
                    session.reset_answers()
                    notice = RESTARTED_TEXT
                    index = 0
                    continue
                notice = EDIT_TEXT
                continue

            if result.timed_out:
                notice = f"⌛ Skipping {spec.label}."
            session.answers[spec.key] = result.value
            index += 1

        if notice:
            await self._say(session, notice)
        return SubmissionRecord.from_session(session, self.fields)


    async def _submit(self, session: Session, record: SubmissionRecord) -> bool:
        session.transition(SessionState.SUBMITTING)
        try:
            await self.sink.submit(record)
        except SinkError as e:
            await self._notify_operator(
                f"❌ Onboarding submission failed for {session.username} ({session.user_id}): {e}"
            )
            return False
        return True

    async def _grant(self, session: Session) -> None:
        session.transition(SessionState.AWAITING_GRANT_REACTION)
        request = await self.gate.post_confirmation(session)
        if request is None:
            await self._notify_operator("❌ Onboarding channel not found.")
            await self._say(session, NO_CHANNEL_TEXT)
            return

        if not await self.gate.await_acknowledgment(request):
            await self._say(session, GRANT_TIMEOUT_TEXT)
            return

        try:
            await self.gate.transition(session.user_id)
        except PrivilegeResolutionError as e:
            await self._notify_operator(f"❌ {e}")
            await self._say(session, f"⚠️ {e.role} role not found. Contact an admin.")
            return
        except Exception as e:
            await self._notify_operator(f"❌ Error updating roles for {session.username} ({session.user_id}): {e}")
            await self._say(session, ROLE_ERROR_TEXT)
            return
        await self._say(session, GRANTED_TEXT)

    async def _notify_operator(self, text: str) -> None:
        logger.error(text)
        operator_chat = self.config.guild.operator_channel_id
        if operator_chat:
            await self.channel.send(OutboundMessage(channel=self.channel.name, chat_id=operator_chat, content=text))

    async def _say(self, session: Session, text: str) -> None:
        await self.channel.send(OutboundMessage(channel=session.channel, chat_id=session.chat_id, content=text))
