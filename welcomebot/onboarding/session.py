"""Per-user onboarding sessions and their store."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from loguru import logger

from welcomebot.onboarding_spec import ONBOARDING_FIELDS, AnswerValue, FieldSpec


class SessionState(str, Enum):
    AWAITING_CONSENT = "awaiting_consent"
    COLLECTING = "collecting"
    SUBMITTING = "submitting"
    AWAITING_GRANT_REACTION = "awaiting_grant_reaction"
    CLOSED = "closed"


@dataclass
class Session:
    """Live state of one user's onboarding dialogue."""
    user_id: str
    username: str
    chat_id: str
    channel: str = "discord"
    answers: dict[str, AnswerValue] = field(default_factory=dict)
    state: SessionState = SessionState.AWAITING_CONSENT
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def has_answer(self, key: str) -> bool:
        return bool(self.answers.get(key))

    def reset_answers(self) -> None:
        self.answers.clear()

    def transition(self, state: SessionState) -> None:
        if self.state == state:
            return
        logger.debug(f"Session {self.session_id} ({self.user_id}): {self.state.value} -> {state.value}")
        self.state = state


@dataclass(frozen=True)
class SubmissionRecord:
    """Immutable snapshot of a completed dialogue plus the user's identity fields."""
    answers: Mapping[str, AnswerValue]
    discord_username: str
    discord_id: str

    @classmethod
    def from_session(
        cls, session: Session, fields: tuple[FieldSpec, ...] = ONBOARDING_FIELDS
    ) -> SubmissionRecord:
        snapshot: dict[str, AnswerValue] = {}
        for spec in fields:
            value = session.answers.get(spec.key, spec.empty_value())
            snapshot[spec.key] = list(value) if isinstance(value, list) else value
        return cls(
            answers=MappingProxyType(snapshot),
            discord_username=session.username,
            discord_id=session.user_id,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            key: list(value) if isinstance(value, list) else value
            for key, value in self.answers.items()
        }
        payload["discord_username"] = self.discord_username
        payload["discord_id"] = self.discord_id
        return payload


class SessionStore:
    """At most one active session per user; a new start supersedes the old one."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def get(self, user_id: str) -> Session | None:
        return self._sessions.get(str(user_id))

    def is_active(self, user_id: str) -> bool:
        session = self.get(user_id)
        return session is not None and not session.is_closed

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, user_id: str, username: str, chat_id: str, channel: str = "discord") -> Session:
        """Create a session for user_id, cancelling any session already running for them."""
        user_id = str(user_id)
        self._supersede(user_id)
        session = Session(user_id=user_id, username=username, chat_id=str(chat_id), channel=channel)
        self._sessions[user_id] = session
        logger.info(f"Onboarding session {session.session_id} opened for {username} ({user_id})")
        return session

    def attach(self, session: Session, task: asyncio.Task) -> None:
        if self._sessions.get(session.user_id) is session:
            self._tasks[session.user_id] = task

    def close(self, session: Session) -> None:
        """Mark session closed and drop it, unless a newer session already replaced it."""
        session.transition(SessionState.CLOSED)
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
            self._tasks.pop(session.user_id, None)
            logger.info(f"Onboarding session {session.session_id} closed for {session.user_id}")

    def cancel(self, user_id: str) -> bool:
        """Close user_id's session and cancel its task. False when none was open."""
        return self._supersede(str(user_id), reason="cancelled") is not None

    def cancel_all(self) -> None:
        for user_id in list(self._sessions):
            self._supersede(user_id)

    def _supersede(self, user_id: str, reason: str = "superseded") -> Session | None:
        previous = self._sessions.pop(user_id, None)
        task = self._tasks.pop(user_id, None)
        if previous is None:
            return None
        previous.transition(SessionState.CLOSED)
        if task is not None and not task.done():
            task.cancel()
        logger.info(f"Onboarding session {previous.session_id} {reason} for {user_id}")
        return previous
