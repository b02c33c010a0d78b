from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlmodel import Column, Field, SQLModel

from tabletennis.clock import utcnow


class MatchStatus(str, Enum):
    scheduled = "scheduled"
    pending_result = "pending_result"
    pending_verification = "pending_verification"
    verified = "verified"  # terminal
    rejected = "rejected"


class MatchStage(str, Enum):
    groups = "groups"
    elimination = "elimination"


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage: MatchStage = Field(sa_column=Column(String, nullable=False))
    round_label: str  # "Group A" | "Quarterfinals" | ...
    group_id: Optional[str] = Field(default=None)  # "A", "B", ... for group matches
    match_number: int  # 1-based, draw-wide
    table_number: int  # cycles 1..TABLE_COUNT
    scheduled_at: datetime

    status: MatchStatus = Field(
        default=MatchStatus.scheduled.value, sa_column=Column(String, nullable=False, index=True)
    )

    player1_id: int = Field(foreign_key="player.id")
    player2_id: int = Field(foreign_key="player.id")
    player1_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    player2_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    referee_id: Optional[int] = Field(default=None)  # staff user id, not necessarily a player

    # MatchResult document incl. the frozen RatingChange snapshot; null unless a result stands
    result_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    waiting_admin_approval: bool = Field(default=False)

    verified_by: Optional[int] = Field(default=None)
    verified_at: Optional[datetime] = Field(default=None)
    rejected_by: Optional[int] = Field(default=None)
    rejected_at: Optional[datetime] = Field(default=None)
    rejection_reason: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def player_ids(self) -> tuple:
        return (self.player1_id, self.player2_id)
