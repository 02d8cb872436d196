from __future__ import annotations

import asyncio
import time

import pytest

from welcomebot.bus.events import Attachment, InboundMessage, OutboundMessage, ReactionEvent
from welcomebot.bus.queue import MessageBus
from welcomebot.channels.base import BaseChannel
from welcomebot.config import (
    Config,
    GuildConfig,
    OnboardingConfig,
    SinkConfig,
    TimeoutsConfig,
)
from welcomebot.onboarding.errors import SinkError
from welcomebot.onboarding.session import SubmissionRecord
from welcomebot.onboarding.sink import SubmissionSink

USER_ID = "1001"
USERNAME = "ada"


class FakeChannel(BaseChannel):
    """In-memory platform: records sends, reactions and role mutations."""

    name = "discord"

    def __init__(self, bus: MessageBus) -> None:
        super().__init__(config=None, bus=bus)
        self.sent: list[OutboundMessage] = []
        self.reactions: list[tuple[str, str, str]] = []
        self.role_calls: list[tuple[str, str, str]] = []
        self.existing_roles: set[str] = {"starter", "member"}
        self.missing_channels: set[str] = set()
        self.unreachable_users: set[str] = set()
        self.fail_add_role: set[str] = set()
        self._next_id = 5000

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, msg: OutboundMessage) -> None:
        self.sent.append(msg)

    async def send_with_id(self, msg: OutboundMessage) -> str | None:
        if msg.chat_id in self.missing_channels:
            return None
        self.sent.append(msg)
        self._next_id += 1
        return str(self._next_id)

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        self.reactions.append((chat_id, message_id, emoji))

    async def open_dm(self, user_id: str) -> str | None:
        if user_id in self.unreachable_users:
            return None
        return user_id

    async def role_exists(self, guild_id: str, role_id: str) -> bool:
        return role_id in self.existing_roles

    async def add_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        if role_id in self.fail_add_role:
            raise RuntimeError("Missing Permissions")
        self.role_calls.append(("add", user_id, role_id))

    async def remove_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        self.role_calls.append(("remove", user_id, role_id))

    def texts(self, chat_id: str | None = None) -> list[str]:
        return [m.content for m in self.sent if chat_id is None or m.chat_id == chat_id]


class SlowChannel(FakeChannel):
    """FakeChannel whose sends take a while to reach the platform."""

    def __init__(self, bus: MessageBus, delay: float = 0.05) -> None:
        super().__init__(bus)
        self.delay = delay

    async def send(self, msg: OutboundMessage) -> None:
        await asyncio.sleep(self.delay)
        self.sent.append(msg)


class RecordingSink(SubmissionSink):
    def __init__(self, fail: bool = False) -> None:
        super().__init__(SinkConfig(url="https://sink.test/onboarding"))
        self.fail = fail
        self.records: list[SubmissionRecord] = []

    async def submit(self, record: SubmissionRecord) -> None:
        self.records.append(record)
        if self.fail:
            raise SinkError("Webhook responded with status 500", status_code=500)


def make_config(**onboarding) -> Config:
    return Config(
        guild=GuildConfig(
            guild_id="g1",
            welcome_channel_id="welcome",
            operator_channel_id="ops",
            starter_role_id="starter",
            onboarded_role_id="member",
        ),
        submission=SinkConfig(url="https://sink.test/onboarding"),
        onboarding=OnboardingConfig(
            timeouts=TimeoutsConfig(consent=5, field=5, grant_reaction=5, resume_upload=5),
            **onboarding,
        ),
    )


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def channel(bus: MessageBus) -> FakeChannel:
    return FakeChannel(bus)


@pytest.fixture
def slow_channel(bus: MessageBus) -> SlowChannel:
    return SlowChannel(bus)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)


async def _wait_for_waiter(bus: MessageBus, kind: str, deadline: float = 3.0) -> None:
    end = time.monotonic() + deadline
    while not bus.pending(kind):
        if time.monotonic() > end:
            raise AssertionError(f"nobody is waiting for a {kind}")
        await asyncio.sleep(0.001)


@pytest.fixture
def reply(bus: MessageBus):
    """Send a DM reply once the dialogue is waiting for one."""
    async def _reply(
        text: str,
        user_id: str = USER_ID,
        chat_id: str = USER_ID,
        attachments: list[Attachment] | None = None,
    ) -> bool:
        await _wait_for_waiter(bus, "message")
        return await bus.publish_inbound(InboundMessage(
            channel="discord",
            sender_id=user_id,
            sender_name=USERNAME,
            chat_id=chat_id,
            content=text,
            attachments=attachments or [],
            metadata={"is_dm": True},
        ))
    return _reply


@pytest.fixture
def react(bus: MessageBus):
    """Add a reaction once someone is waiting for one."""
    async def _react(message_id: str, emoji: str = "✅", user_id: str = USER_ID) -> bool:
        await _wait_for_waiter(bus, "reaction")
        return await bus.publish_reaction(ReactionEvent(
            channel="discord",
            chat_id="welcome",
            message_id=message_id,
            user_id=user_id,
            emoji=emoji,
        ))
    return _react


@pytest.fixture
def wait_for_waiter(bus: MessageBus):
    async def _wait(kind: str = "message") -> None:
        await _wait_for_waiter(bus, kind)
    return _wait
