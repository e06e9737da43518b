from __future__ import annotations

from typing import List, Optional, Protocol

from .models import Account, AliasBinding, NotificationRequest


class IdentityRepository(Protocol):
    """
    Maps Discord accounts to the game usernames they registered.

    Implementations are responsible for:
    - Owning the `account` and `alias_binding` tables.
    - Hiding any SQL / driver details from the application layer.
    - Translating driver failures into `IdentityStoreError` subclasses.
    """

    def register_alias(self, account_id: str, alias: str) -> None:
        """
        Create the account (if absent) and bind `alias` to it (if absent)
        in a single transaction.

        Re-registering an existing pair is a no-op. Either both writes are
        durable or neither is.

        Raises `StoreUnavailableError` if no transaction could be started and
        `RegistrationWriteError` if a write failed and was rolled back.
        """

        ...

    def find_account_id_by_alias(self, alias: str) -> Optional[str]:
        """
        Return the account bound to `alias`, matched case-insensitively.

        When several accounts bind the same alias the lowest `account_id`
        wins.
        """

        ...

    def get_account(self, account_id: str) -> Optional[Account]:
        """Return the account with the given ID, or None if not found."""

        ...

    def get_bindings_for_account(self, account_id: str) -> List[AliasBinding]:
        """Return every alias binding of the given account, sorted by alias."""

        ...


class NotificationDispatcher(Protocol):
    """Outbound channel for relayed turn notifications."""

    async def dispatch(self, request: NotificationRequest) -> None:
        """
        Deliver a single message. No retries.

        Raises `DispatchError` if delivery failed.
        """

        ...
