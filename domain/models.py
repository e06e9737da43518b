from dataclasses import dataclass


@dataclass
class Account:
    """
    Domain representation of a Discord user known to the relay.

    The `account_id` is the platform-assigned user ID. Accounts are created
    on first registration and never mutated afterwards.
    """

    account_id: str


@dataclass
class AliasBinding:
    """
    Association between an account and a game username.

    The pair (`account_id`, `alias`) is unique; the alias on its own is not,
    so two accounts may claim the same game username.
    """

    account_id: str
    alias: str


@dataclass
class TurnNotification:
    """A parsed turn-notification payload from the game's webhook."""

    game_name: str
    player_alias: str
    turn_number: str


@dataclass
class NotificationRequest:
    """A composed message ready to be dispatched."""

    content: str
    resolved_identity: str
