from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel

from tabletennis.clock import utcnow


class RegistrationStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"


class Registration(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "player_id", name="uq_tournament_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    player_id: int = Field(foreign_key="player.id")
    partner_id: Optional[int] = Field(default=None, foreign_key="player.id")  # doubles only
    status: RegistrationStatus = Field(
        default=RegistrationStatus.pending.value, sa_column=Column(String, nullable=False)
    )
    payment_code: Optional[str] = Field(default=None)
    registered_at: datetime = Field(default_factory=utcnow)
    confirmed_at: Optional[datetime] = Field(default=None)
