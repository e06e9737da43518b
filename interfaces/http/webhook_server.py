from __future__ import annotations

import logging

from aiohttp import web

from application.services import relay_turn_notification
from domain.repositories import IdentityRepository, NotificationDispatcher
from interfaces.http.payloads import parse_turn_payload

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_ROUTE = "/webhooks"


def create_webhook_app(
    identity_repo: IdentityRepository,
    dispatcher: NotificationDispatcher,
    route: str = DEFAULT_WEBHOOK_ROUTE,
) -> web.Application:
    """
    Configure and return the aiohttp application receiving turn webhooks.

    This module contains only HTTP concerns: decoding request bodies and
    mapping them to the relay service. Once a body parses, the response is
    always 200 regardless of how resolution or dispatch went.
    """

    app = web.Application()

    async def handle_turn_webhook(request: web.Request) -> web.Response:
        try:
            data = await request.json()
        except (ValueError, LookupError):
            # Covers bad encodings as well as malformed JSON.
            logger.warning("Rejected turn webhook with a non-JSON body")
            raise web.HTTPBadRequest(text="Request body is not valid JSON")

        try:
            notification = parse_turn_payload(data)
        except ValueError as exc:
            logger.warning("Rejected turn webhook: %s", exc)
            raise web.HTTPUnprocessableEntity(text=str(exc))

        logger.info(
            "Turn webhook received for %s (turn %s)",
            notification.game_name, notification.turn_number,
        )
        await relay_turn_notification(notification, identity_repo, dispatcher)
        return web.Response(status=200)

    async def handle_status(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    app.router.add_post(route, handle_turn_webhook)
    app.router.add_get("/status", handle_status)
    return app
