from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlmodel import Column, Field, SQLModel

from tabletennis.clock import utcnow


class TournamentStatus(str, Enum):
    draft = "draft"
    registration_open = "registration_open"
    registration_closed = "registration_closed"
    in_progress = "in_progress"
    finalizing = "finalizing"  # exclusive claim held by a running finalize pass
    completed = "completed"


class TournamentCategory(str, Enum):
    singles_male = "singles_male"
    singles_female = "singles_female"
    doubles_male = "doubles_male"
    doubles_female = "doubles_female"
    doubles_mixed = "doubles_mixed"

    @property
    def is_doubles(self) -> bool:
        return self.value.startswith("doubles_")


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    venue: str
    start_date: date
    start_time: time = Field(default=time(9, 0))
    category: TournamentCategory = Field(sa_column=Column(String, nullable=False))
    status: TournamentStatus = Field(
        default=TournamentStatus.draft.value, sa_column=Column(String, nullable=False, index=True)
    )

    # TournamentConfig (groupStage / eliminationStage / restrictions / max_participants)
    config_json: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # {"groups": [...], "bracket": {...} | null}; null until the draw is generated
    draw_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    director_id: Optional[int] = Field(default=None, foreign_key="player.id")
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.start_date, self.start_time)
