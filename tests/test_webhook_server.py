import os
import tempfile

from aiohttp.test_utils import AioHTTPTestCase

from domain.errors import DispatchError
from domain.models import NotificationRequest
from domain.repositories import NotificationDispatcher
from infrastructure.db.identity_repository_sqlite import SqliteIdentityRepository
from interfaces.http.webhook_server import create_webhook_app


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent = []
        self.fail = False

    async def dispatch(self, request: NotificationRequest) -> None:
        if self.fail:
            raise DispatchError("webhook rejected the message")
        self.sent.append(request.content)


class WebhookServerTests(AioHTTPTestCase):
    async def get_application(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.identity_repo = SqliteIdentityRepository(
            os.path.join(self._tmpdir.name, "relay.db")
        )
        self.dispatcher = RecordingDispatcher()
        return create_webhook_app(self.identity_repo, self.dispatcher)

    async def asyncTearDown(self) -> None:
        await super().asyncTearDown()
        self._tmpdir.cleanup()

    async def test_registered_player_is_mentioned(self):
        self.identity_repo.register_alias("111", "playerOne")

        resp = await self.client.post(
            "/webhooks", json={"value1": "Game1", "value2": "playerone", "value3": "5"}
        )

        self.assertEqual(resp.status, 200)
        self.assertEqual(
            self.dispatcher.sent,
            ["Hey <@111>, it's time to take your turn in Game1! Game is currently on turn 5"],
        )

    async def test_unregistered_player_gets_raw_alias(self):
        resp = await self.client.post(
            "/webhooks", json={"value1": "Game2", "value2": "ghost", "value3": "1"}
        )

        self.assertEqual(resp.status, 200)
        self.assertEqual(
            self.dispatcher.sent,
            ["Hey ghost, it's time to take your turn in Game2! Game is currently on turn 1"],
        )

    async def test_dispatch_failure_still_returns_ok(self):
        self.dispatcher.fail = True

        with self.assertLogs("application.services", level="ERROR"):
            resp = await self.client.post(
                "/webhooks", json={"value1": "Game2", "value2": "ghost", "value3": "1"}
            )

        self.assertEqual(resp.status, 200)
        self.assertEqual(self.dispatcher.sent, [])

    async def test_extra_fields_are_ignored(self):
        resp = await self.client.post(
            "/webhooks",
            json={"value1": "G", "value2": "p", "value3": "2", "value4": "extra"},
        )
        self.assertEqual(resp.status, 200)
        self.assertEqual(len(self.dispatcher.sent), 1)

    async def test_invalid_json_is_rejected(self):
        resp = await self.client.post(
            "/webhooks", data="not json", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(resp.status, 400)
        self.assertEqual(self.dispatcher.sent, [])

    async def test_undecodable_body_is_rejected(self):
        resp = await self.client.post(
            "/webhooks",
            data=b'{"value1":"\xff"}',
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status, 400)
        self.assertEqual(self.dispatcher.sent, [])

    async def test_unknown_charset_is_rejected(self):
        resp = await self.client.post(
            "/webhooks",
            data=b'{"value1": "G", "value2": "p", "value3": "1"}',
            headers={"Content-Type": "application/json; charset=no-such-charset"},
        )
        # Some aiohttp releases answer 415 here themselves; either way a client error.
        self.assertGreaterEqual(resp.status, 400)
        self.assertLess(resp.status, 500)
        self.assertEqual(self.dispatcher.sent, [])

    async def test_missing_field_is_rejected(self):
        resp = await self.client.post("/webhooks", json={"value1": "G", "value2": "p"})
        self.assertEqual(resp.status, 422)
        self.assertEqual(self.dispatcher.sent, [])

    async def test_status(self):
        resp = await self.client.get("/status")
        self.assertEqual(resp.status, 200)
        self.assertEqual(await resp.json(), {"status": "ok"})
