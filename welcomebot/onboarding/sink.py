"""HTTP submission sink."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from welcomebot.config import SinkConfig
from welcomebot.onboarding.errors import SinkError
from welcomebot.onboarding.session import SubmissionRecord

USER_AGENT = "welcomebot/0.1"


class SubmissionSink:
    """POSTs JSON payloads to a configured webhook, once, without retry."""

    def __init__(self, config: SinkConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.config.url)

    async def submit(self, record: SubmissionRecord) -> None:
        await self.post(record.to_payload())
        logger.info(f"Submission sent for {record.discord_username} ({record.discord_id})")

    async def post(self, payload: dict[str, Any]) -> None:
        """Send payload; raise SinkError on transport failure or a non-2xx response."""
        if not self.config.url:
            logger.error("Submission sink URL is not configured")
            raise SinkError("Sink URL is not configured")

        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT, **self.config.headers}
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.config.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Error sending to webhook: {e}")
            raise SinkError(f"Webhook request failed: {e}") from e

        if not response.is_success:
            logger.error(f"Error sending to webhook: status {response.status_code}")
            raise SinkError(
                f"Webhook responded with status {response.status_code}",
                status_code=response.status_code,
            )
