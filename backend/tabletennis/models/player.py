from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

from tabletennis.clock import utcnow

if TYPE_CHECKING:
    from tabletennis.models.rating_history import RatingHistory

DEFAULT_RATING = 1000


class Gender(str, Enum):
    male = "male"
    female = "female"


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    member_number: Optional[str] = Field(default=None)
    birth_year: int
    club: Optional[str] = Field(default=None, index=True)
    gender: Optional[Gender] = Field(default=None, sa_column=Column(String, nullable=True))

    # Mutated only by applied RatingChange records (lifecycle or finalize)
    rating: int = Field(default=DEFAULT_RATING)
    wins: int = Field(default=0)
    losses: int = Field(default=0)
    tournaments_played: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    rating_history: List["RatingHistory"] = Relationship(back_populates="player")
