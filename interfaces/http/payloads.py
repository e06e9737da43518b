from __future__ import annotations

from typing import Any

from domain.models import TurnNotification

# The game's webhook names its fields generically.
GAME_NAME_FIELD = "value1"
PLAYER_ALIAS_FIELD = "value2"
TURN_NUMBER_FIELD = "value3"


def parse_turn_payload(data: Any) -> TurnNotification:
    """
    Build a `TurnNotification` from a decoded webhook body.

    Format: {"value1": game name, "value2": player name, "value3": turn}
    All three must be strings; unknown keys are ignored.
    """

    if not isinstance(data, dict):
        raise ValueError(f"Invalid turn payload: expected an object, got {type(data).__name__}")

    values = []
    for field_name in (GAME_NAME_FIELD, PLAYER_ALIAS_FIELD, TURN_NUMBER_FIELD):
        if field_name not in data:
            raise ValueError(f"Invalid turn payload: missing field `{field_name}`")
        value = data[field_name]
        if not isinstance(value, str):
            raise ValueError(f"Invalid turn payload: field `{field_name}` must be a string")
        values.append(value)

    game_name, player_alias, turn_number = values
    return TurnNotification(
        game_name=game_name,
        player_alias=player_alias,
        turn_number=turn_number,
    )
