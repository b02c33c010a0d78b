from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

from tabletennis.clock import utcnow

if TYPE_CHECKING:
    from tabletennis.models.player import Player


class RatingHistory(SQLModel, table=True):
    """One row per player each time a verified match changes a live rating."""

    __tablename__ = "rating_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    previous_rating: int
    new_rating: int
    rating_change: int
    created_at: datetime = Field(default_factory=utcnow)

    player: "Player" = Relationship(back_populates="rating_history")
