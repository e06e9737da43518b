from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from domain.errors import DispatchError, IdentityStoreError
from domain.models import NotificationRequest, TurnNotification
from domain.repositories import IdentityRepository, NotificationDispatcher

logger = logging.getLogger(__name__)

REGISTER_SUCCESS_MESSAGE = "Successfully registered your Civ username."
REGISTER_FAILURE_MESSAGE = "Failed to register your Civ username. Please try again later."

TURN_MESSAGE_TEMPLATE = (
    "Hey {identity}, it's time to take your turn in {game_name}! "
    "Game is currently on turn {turn_number}"
)


@dataclass
class ExternalContext:
    """
    Information about the caller from the chat platform.

    The application layer never depends on concrete SDK types; it only sees
    this small context object.
    """

    provider_user_id: str
    display_name: str = ""


@dataclass
class OperationResult:
    """Generic result type for simple operations."""

    success: bool
    message: str
    error_message: Optional[str] = None


def normalize_alias(alias: str) -> str:
    return alias.lower()


def mention(account_id: str) -> str:
    return f"<@{account_id}>"


def register_game_alias(
    external_ctx: ExternalContext,
    alias: str,
    identity_repo: IdentityRepository,
) -> OperationResult:
    """
    Bind a game username to the caller's account.

    The alias is stored as given. Registering the same alias twice succeeds
    both times. Store failures are logged and reported with a single
    user-facing failure message; nothing is retried.
    """

    account_id = external_ctx.provider_user_id
    if not account_id or not alias or not alias.strip():
        return OperationResult(
            success=False,
            message="Please provide your Civ username.",
            error_message="empty account id or alias",
        )

    try:
        identity_repo.register_alias(account_id, alias)
    except IdentityStoreError as exc:
        logger.error(
            "Failed to register alias %r for account %s", alias, account_id,
            exc_info=True,
        )
        return OperationResult(
            success=False,
            message=REGISTER_FAILURE_MESSAGE,
            error_message=str(exc),
        )

    logger.info(
        "Registered alias %r for %s (account %s)",
        alias, external_ctx.display_name, account_id,
    )
    return OperationResult(success=True, message=REGISTER_SUCCESS_MESSAGE)


def list_game_aliases(
    external_ctx: ExternalContext,
    identity_repo: IdentityRepository,
) -> OperationResult:
    try:
        bindings = identity_repo.get_bindings_for_account(
            external_ctx.provider_user_id
        )
    except IdentityStoreError as exc:
        logger.error("Failed to list aliases for %s", external_ctx.provider_user_id)
        return OperationResult(
            success=False,
            message="Could not look up your Civ usernames right now.",
            error_message=str(exc),
        )

    aliases: List[str] = [binding.alias for binding in bindings]
    if not aliases:
        return OperationResult(
            success=True,
            message="You have not registered a Civ username yet. Use /register.",
        )
    return OperationResult(
        success=True,
        message="Your Civ usernames: " + ", ".join(aliases),
    )


def resolve_identity(alias: str, identity_repo: IdentityRepository) -> str:
    """
    Turn a game username into a Discord mention.

    Falls back to the lowercased alias when nobody registered it or when the
    lookup fails for any reason; lookup errors are logged, never raised.
    """

    normalized = normalize_alias(alias)
    try:
        account_id = identity_repo.find_account_id_by_alias(normalized)
    except Exception:
        logger.warning(
            "Alias lookup for %r failed; falling back to raw alias", normalized,
            exc_info=True,
        )
        return normalized

    if account_id is None:
        return normalized
    return mention(account_id)


def translate_turn_notification(
    notification: TurnNotification,
    identity_repo: IdentityRepository,
) -> NotificationRequest:
    identity = resolve_identity(notification.player_alias, identity_repo)
    content = TURN_MESSAGE_TEMPLATE.format(
        identity=identity,
        game_name=notification.game_name,
        turn_number=notification.turn_number,
    )
    return NotificationRequest(content=content, resolved_identity=identity)


async def relay_turn_notification(
    notification: TurnNotification,
    identity_repo: IdentityRepository,
    dispatcher: NotificationDispatcher,
) -> NotificationRequest:
    """
    Translate a turn notification and send it once.

    Dispatch failures are logged and dropped: the notification is
    best-effort and nobody is waiting on its outcome.
    """

    request = await asyncio.to_thread(
        translate_turn_notification, notification, identity_repo
    )

    try:
        await dispatcher.dispatch(request)
    except DispatchError:
        logger.error(
            "Dropping turn notification for %s in %s",
            request.resolved_identity, notification.game_name,
            exc_info=True,
        )
    else:
        logger.info(
            "Relayed turn %s of %s to %s",
            notification.turn_number, notification.game_name,
            request.resolved_identity,
        )

    return request
