"""Notification log model for result verification / rejection messages."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from tabletennis.clock import utcnow


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    type: str  # result_rejected|result_verified
    title: str
    message: str
    priority: str = Field(default="normal")  # high|normal|low
    requires_action: bool = Field(default=False)
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
