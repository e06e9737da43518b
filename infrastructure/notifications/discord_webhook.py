from __future__ import annotations

import asyncio

import aiohttp
import discord

from domain.errors import DispatchError
from domain.models import NotificationRequest
from domain.repositories import NotificationDispatcher

DEFAULT_WEBHOOK_USERNAME = "Gorgonzola"
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=10)


class DiscordWebhookDispatcher(NotificationDispatcher):
    """
    Sends relayed notifications to a single Discord channel webhook.

    Every dispatch is exactly one `execute webhook` POST carrying `content`
    and `username`, whatever the response status. Mentions in the content
    may ping users only.
    """

    def __init__(
        self,
        webhook_url: str,
        session: aiohttp.ClientSession,
        username: str = DEFAULT_WEBHOOK_USERNAME,
        timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT,
    ) -> None:
        self._webhook_url = webhook_url
        self._session = session
        self._username = username
        self._timeout = timeout

    @classmethod
    def from_url(
        cls,
        webhook_url: str,
        session: aiohttp.ClientSession,
        username: str = DEFAULT_WEBHOOK_USERNAME,
    ) -> "DiscordWebhookDispatcher":
        # Raises ValueError for anything that is not a Discord webhook URL.
        webhook = discord.Webhook.from_url(webhook_url, session=session)
        return cls(webhook.url, session, username=username)

    def _build_body(self, request: NotificationRequest) -> dict:
        return {
            "content": request.content,
            "username": self._username,
            "allowed_mentions": {"parse": ["users"]},
        }

    async def dispatch(self, request: NotificationRequest) -> None:
        try:
            async with self._session.post(
                self._webhook_url,
                json=self._build_body(request),
                timeout=self._timeout,
            ) as response:
                if response.status >= 300:
                    detail = await response.text()
                    raise DispatchError(
                        f"Webhook responded {response.status}: {detail[:200]}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DispatchError("Could not execute webhook") from exc
