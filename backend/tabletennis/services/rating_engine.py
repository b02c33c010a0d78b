"""
Rating Engine: applies the band table to one decided match.

The output RatingChange is a snapshot: it is stored with the match result and
re-read verbatim by the finalizer, never recomputed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from tabletennis.errors import ValidationError
from tabletennis.services.rating_table import RatingBand, is_equal_strength, select_band


@dataclass(frozen=True)
class PlayerRatingChange:
    player_id: int
    old_rating: int
    change: int
    new_rating: int
    is_favorite: bool
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "old_rating": self.old_rating,
            "change": self.change,
            "new_rating": self.new_rating,
            "is_favorite": self.is_favorite,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerRatingChange":
        return cls(
            player_id=int(data["player_id"]),
            old_rating=int(data["old_rating"]),
            change=int(data["change"]),
            new_rating=int(data["new_rating"]),
            is_favorite=bool(data["is_favorite"]),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class RatingChange:
    player1: PlayerRatingChange
    player2: PlayerRatingChange
    rating_difference: int
    applied_band: RatingBand

    def for_player(self, player_id: int) -> PlayerRatingChange:
        if self.player1.player_id == player_id:
            return self.player1
        if self.player2.player_id == player_id:
            return self.player2
        raise KeyError(player_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player1": self.player1.to_dict(),
            "player2": self.player2.to_dict(),
            "rating_difference": self.rating_difference,
            "applied_band": self.applied_band.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingChange":
        return cls(
            player1=PlayerRatingChange.from_dict(data["player1"]),
            player2=PlayerRatingChange.from_dict(data["player2"]),
            rating_difference=int(data["rating_difference"]),
            applied_band=RatingBand.from_dict(data["applied_band"]),
        )


def compute_rating_change(player1: Any, player2: Any, winner_id: int) -> RatingChange:
    """
    Compute symmetric rating deltas for a decided match.

    Args:
        player1, player2: objects exposing `id` and `rating` (optionally `name`)
        winner_id: id of the player who won the match

    Rules:
        - gap <= 12: winner +8, loser -8; nobody is the favorite
        - otherwise the strictly higher rating is the favorite;
          favorite wins -> +/- favorite_wins, upset -> +/- underdog_wins

    Ratings are accepted as-is (negative included); only a winner that is
    not one of the two players is rejected.
    """
    if winner_id not in (player1.id, player2.id):
        raise ValidationError(
            f"winner {winner_id} is not a participant of this match", field="winner_id"
        )

    rating1 = int(player1.rating)
    rating2 = int(player2.rating)
    gap = abs(rating1 - rating2)
    band = select_band(gap)
    player1_won = winner_id == player1.id

    if is_equal_strength(gap):
        points = band.favorite_wins
        change1 = points if player1_won else -points
        favorite1 = favorite2 = False
    else:
        favorite1 = rating1 > rating2
        favorite2 = not favorite1
        favorite_won = player1_won == favorite1
        points = band.favorite_wins if favorite_won else band.underdog_wins
        change1 = points if player1_won else -points

    change2 = -change1

    return RatingChange(
        player1=PlayerRatingChange(
            player_id=player1.id,
            name=getattr(player1, "name", None),
            old_rating=rating1,
            change=change1,
            new_rating=rating1 + change1,
            is_favorite=favorite1,
        ),
        player2=PlayerRatingChange(
            player_id=player2.id,
            name=getattr(player2, "name", None),
            old_rating=rating2,
            change=change2,
            new_rating=rating2 + change2,
            is_favorite=favorite2,
        ),
        rating_difference=gap,
        applied_band=band,
    )
