from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from welcomebot.bus.events import InboundMessage
from welcomebot.onboarding import orchestrator as texts
from welcomebot.onboarding import service as service_texts
from welcomebot.onboarding.service import OnboardingService
from welcomebot.onboarding.session import SessionState


def _message(content: str, is_dm: bool = True, user_id: str = "1001", chat_id: str | None = None, **metadata) -> InboundMessage:
    return InboundMessage(
        channel="discord",
        sender_id=user_id,
        sender_name="ada",
        chat_id=chat_id or (user_id if is_dm else "general"),
        content=content,
        metadata={"is_dm": is_dm, **metadata},
    )


@pytest_asyncio.fixture
async def service(config, channel, bus, sink):
    svc = OnboardingService(config, channel, bus, sink=sink)
    yield svc
    await svc.stop()
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_help_lists_guild_only_welcome_command(service) -> None:
    dm_help = await service.handle_command(_message("!help"))
    guild_help = await service.handle_command(_message("!commands", is_dm=False))
    assert "!start" in dm_help
    assert "!welcome" not in dm_help
    assert "!welcome" in guild_help


@pytest.mark.asyncio
async def test_ping_and_plain_text(service) -> None:
    assert await service.handle_command(_message("!ping")) == service_texts.PONG_TEXT
    assert await service.handle_command(_message("hello there")) is None
    assert await service.handle_command(_message("!unknown")) is None


@pytest.mark.asyncio
async def test_exit_and_edit_without_a_dialogue(service) -> None:
    assert await service.handle_command(_message("!exit")) == service_texts.NOT_ACTIVE_EXIT_TEXT
    assert await service.handle_command(_message("!edit")) == service_texts.NOT_ACTIVE_EDIT_TEXT


@pytest.mark.asyncio
async def test_start_in_dm_opens_session_and_greets(service, channel, wait_for_waiter) -> None:
    assert await service.handle_command(_message("!start")) is None
    await wait_for_waiter()

    session = service.sessions.get("1001")
    assert session is not None
    assert session.chat_id == "1001"
    assert channel.texts("1001") == [texts.WELCOME_TEXT]


@pytest.mark.asyncio
async def test_second_start_supersedes_first(service, bus, wait_for_waiter) -> None:
    first_task = service.start("1001", "ada", "1001")
    await wait_for_waiter()
    first = service.sessions.get("1001")

    second_task = service.start("1001", "ada", "1001")
    await asyncio.sleep(0.01)

    assert first_task.cancelled()
    assert first.is_closed
    second = service.sessions.get("1001")
    assert second is not first
    assert not second_task.done()
    assert bus.pending("message") == 1


@pytest.mark.asyncio
async def test_welcome_without_mention_shows_usage(service) -> None:
    reply = await service.handle_command(_message("!welcome", is_dm=False))
    assert reply == service_texts.WELCOME_USAGE_TEXT


@pytest.mark.asyncio
async def test_welcome_mention_starts_dm_onboarding(service, channel, wait_for_waiter) -> None:
    msg = _message("!welcome <@2002>", is_dm=False, mentions=[("2002", "grace")])
    assert await service.handle_command(msg) is None
    await wait_for_waiter()

    session = service.sessions.get("2002")
    assert session is not None
    assert session.username == "grace"
    assert channel.texts("2002") == [texts.WELCOME_TEXT]


@pytest.mark.asyncio
async def test_welcome_unreachable_user(service, channel) -> None:
    channel.unreachable_users = {"2002"}
    msg = _message("!welcome <@2002>", is_dm=False, mentions=[("2002", "grace")])
    assert await service.handle_command(msg) == "❌ Could not DM grace."
    assert service.sessions.get("2002") is None


@pytest.mark.asyncio
async def test_member_join_assigns_starter_role_then_onboards(service, channel, wait_for_waiter) -> None:
    task = await service.handle_member_join("g1", "3003", "linus")
    assert task is not None
    await wait_for_waiter()

    assert channel.role_calls == [("add", "3003", "starter")]
    assert channel.texts("3003") == [texts.WELCOME_TEXT]


@pytest.mark.asyncio
async def test_member_join_without_starter_role_still_onboards(service, channel, wait_for_waiter) -> None:
    channel.existing_roles = {"member"}
    await service.handle_member_join("g1", "3003", "linus")
    await wait_for_waiter()

    assert channel.role_calls == []
    assert service.sessions.is_active("3003")


@pytest.mark.asyncio
async def test_dialogue_reply_never_reaches_command_handler(service, channel, wait_for_waiter) -> None:
    handled: list[str] = []

    async def handler(msg: InboundMessage) -> str | None:
        handled.append(msg.content)
        return await service.handle_command(msg)

    channel.set_command_handler(handler)
    service.start("1001", "ada", "1001")
    await wait_for_waiter()

    assert await channel._handle_message(_message("!help")) is None
    assert handled == []

    assert await channel._handle_message(_message("!ping", user_id="2002")) == service_texts.PONG_TEXT
    assert handled == ["!ping"]


@pytest.mark.asyncio
async def test_exit_and_edit_while_waiting_for_the_grant_reaction(
    service, channel, bus, reply, wait_for_waiter
) -> None:
    channel.set_command_handler(service.handle_command)
    task = service.start("1001", "ada", "1001")
    await reply("yes")
    for answer in ("Ada", "Lovelace", "ada@example.com", "5551234567", "80202", "skip"):
        await reply(answer)
    await wait_for_waiter("reaction")
    session = service.sessions.get("1001")
    assert session.state == SessionState.AWAITING_GRANT_REACTION

    edit_reply = await channel._handle_message(_message("!edit"))
    assert edit_reply == service_texts.GRANT_PENDING_TEXT.format(emoji="✅")
    assert service.sessions.is_active("1001")

    exit_reply = await channel._handle_message(_message("!exit"))
    assert exit_reply == texts.CANCELLED_TEXT
    await asyncio.sleep(0.01)

    assert task.cancelled()
    assert session.is_closed
    assert service.sessions.get("1001") is None
    assert bus.pending("reaction") == 0
    assert channel.role_calls == []


@pytest.mark.asyncio
async def test_exit_while_submitting_keeps_the_session(service, channel) -> None:
    session = service.sessions.open("1001", "ada", "1001")
    session.transition(SessionState.SUBMITTING)

    assert await service.handle_command(_message("!exit")) == service_texts.BUSY_TEXT
    assert await service.handle_command(_message("!edit")) == service_texts.BUSY_TEXT
    assert service.sessions.get("1001") is session
