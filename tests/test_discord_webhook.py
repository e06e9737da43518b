import unittest

import aiohttp
from aiohttp import test_utils, web

from domain.errors import DispatchError
from domain.models import NotificationRequest
from infrastructure.notifications.discord_webhook import (
    DEFAULT_WEBHOOK_USERNAME,
    DiscordWebhookDispatcher,
)

WEBHOOK_URL = (
    "https://discord.com/api/webhooks/123456789012345678/"
    + "a1B2c3D4e5F6g7H8i9J0" * 4
)


class DiscordWebhookDispatcherTests(unittest.IsolatedAsyncioTestCase):
    """Runs the dispatcher against a local server standing in for Discord."""

    async def asyncSetUp(self) -> None:
        self.received = []
        self.status = 204

        async def execute_webhook(request: web.Request) -> web.Response:
            self.received.append(await request.json())
            return web.Response(status=self.status)

        app = web.Application()
        app.router.add_post("/api/webhooks/1/token", execute_webhook)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.session = aiohttp.ClientSession()
        self.url = str(self.server.make_url("/api/webhooks/1/token"))

        self.request = NotificationRequest(
            content="Hey <@111>, it's time to take your turn in Game1! Game is currently on turn 5",
            resolved_identity="<@111>",
        )

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.server.close()

    async def test_dispatch_sends_content_and_username(self):
        dispatcher = DiscordWebhookDispatcher(self.url, self.session)
        await dispatcher.dispatch(self.request)

        self.assertEqual(len(self.received), 1)
        body = self.received[0]
        self.assertEqual(body["content"], self.request.content)
        self.assertEqual(body["username"], DEFAULT_WEBHOOK_USERNAME)
        self.assertEqual(body["allowed_mentions"], {"parse": ["users"]})

    async def test_custom_username(self):
        dispatcher = DiscordWebhookDispatcher(self.url, self.session, username="Turn Bot")
        await dispatcher.dispatch(self.request)
        self.assertEqual(self.received[0]["username"], "Turn Bot")

    async def test_server_error_is_sent_only_once(self):
        self.status = 502
        dispatcher = DiscordWebhookDispatcher(self.url, self.session)

        with self.assertRaises(DispatchError):
            await dispatcher.dispatch(self.request)
        self.assertEqual(len(self.received), 1)

    async def test_rate_limit_is_not_retried(self):
        self.status = 429
        dispatcher = DiscordWebhookDispatcher(self.url, self.session)

        with self.assertRaises(DispatchError):
            await dispatcher.dispatch(self.request)
        self.assertEqual(len(self.received), 1)

    async def test_connection_error_becomes_dispatch_error(self):
        url = self.url
        await self.server.close()
        dispatcher = DiscordWebhookDispatcher(url, self.session)

        with self.assertRaises(DispatchError):
            await dispatcher.dispatch(self.request)

    async def test_from_url(self):
        dispatcher = DiscordWebhookDispatcher.from_url(WEBHOOK_URL, self.session)
        self.assertIn("/webhooks/123456789012345678/", dispatcher._webhook_url)

    async def test_from_url_rejects_invalid_url(self):
        with self.assertRaises(ValueError):
            DiscordWebhookDispatcher.from_url("https://example.com/hook", self.session)


if __name__ == "__main__":
    unittest.main()
