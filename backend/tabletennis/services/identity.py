"""
Dual-entry identity confirmation for result submission.

Both participants confirm with their birth year before a result is accepted.
The lifecycle never checks this itself; the API layer calls
confirm_participants first.
"""

from typing import Mapping, Sequence

from tabletennis.errors import ValidationError
from tabletennis.models.player import Player


def confirm_participants(players: Sequence[Player], birth_years: Mapping[int, int]) -> None:
    for player in players:
        claimed = birth_years.get(player.id)
        if claimed is None:
            raise ValidationError(f"Missing confirmation from player {player.id}", field="confirmations")
        if int(claimed) != player.birth_year:
            raise ValidationError(f"Identity confirmation failed for player {player.id}", field="confirmations")
