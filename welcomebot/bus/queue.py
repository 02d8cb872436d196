"""Async event bus: filtered listeners with deadlines for replies and reactions."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from welcomebot.bus.events import InboundMessage, ReactionEvent
from welcomebot.onboarding.errors import TimeoutExpired


@dataclass
class _Waiter:
    kind: str
    check: Callable[[Any], bool]
    future: asyncio.Future


class MessageBus:
    """Routes inbound platform events to whichever coroutine is waiting for them.

    A waiter is registered with a predicate and resolves on the first event
    matching it, or raises TimeoutExpired at its deadline. Events that no
    waiter claims are reported back to the publisher as unconsumed.
    """

    def __init__(self) -> None:
        self._waiters: list[_Waiter] = []

    def pending(self, kind: str | None = None) -> int:
        """Number of live waiters (optionally of one kind)."""
        return sum(
            1 for w in self._waiters
            if (kind is None or w.kind == kind) and not w.future.done()
        )

    async def wait_for_message(
        self,
        check: Callable[[InboundMessage], bool],
        timeout: float,
        before_wait: Callable[[], Awaitable[Any]] | None = None,
    ) -> InboundMessage:
        """Wait for the first message matching check.

        before_wait (typically sending the prompt) runs after the waiter is
        registered, so a reply arriving while it runs is not lost. The
        deadline starts once it returns.
        """
        return await self._wait("message", check, timeout, before_wait)

    async def wait_for_reaction(
        self,
        check: Callable[[ReactionEvent], bool],
        timeout: float,
        before_wait: Callable[[], Awaitable[Any]] | None = None,
    ) -> ReactionEvent:
        return await self._wait("reaction", check, timeout, before_wait)

    async def publish_inbound(self, msg: InboundMessage) -> bool:
        """Deliver a message to the first matching waiter. Returns True if consumed."""
        logger.debug(f"Bus <- inbound [{msg.channel}:{msg.chat_id}] from {msg.sender_id} ({len(msg.content)} chars)")
        return self._dispatch("message", msg)

    async def publish_reaction(self, event: ReactionEvent) -> bool:
        """Deliver a reaction to the first matching waiter. Returns True if consumed."""
        logger.debug(f"Bus <- reaction {event.emoji} on {event.message_id} from {event.user_id}")
        return self._dispatch("reaction", event)

    def cancel_all(self) -> None:
        for waiter in list(self._waiters):
            if not waiter.future.done():
                waiter.future.cancel()
        self._waiters.clear()

    async def _wait(
        self,
        kind: str,
        check: Callable[[Any], bool],
        timeout: float,
        before_wait: Callable[[], Awaitable[Any]] | None,
    ) -> Any:
        future = asyncio.get_running_loop().create_future()
        waiter = _Waiter(kind=kind, check=check, future=future)
        self._waiters.append(waiter)
        try:
            # Listening already; an event published while this runs resolves the future
            if before_wait is not None:
                await before_wait()
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutExpired(kind, timeout) from None
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _dispatch(self, kind: str, event: Any) -> bool:
        for waiter in list(self._waiters):
            if waiter.kind != kind or waiter.future.done():
                continue
            try:
                matched = waiter.check(event)
            except Exception as e:
                logger.warning(f"Bus: {kind} waiter check raised: {e}")
                continue
            if matched:
                self._waiters.remove(waiter)
                waiter.future.set_result(event)
                logger.debug(f"Bus -> {kind} delivered to waiter ({self.pending(kind)} still waiting)")
                return True
        return False
