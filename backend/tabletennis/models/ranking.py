from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from tabletennis.clock import utcnow


class RankingSnapshot(SQLModel, table=True):
    """Latest published top-N ranking for one category."""

    __tablename__ = "ranking_snapshot"

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = Field(index=True, unique=True)
    last_updated: datetime = Field(default_factory=utcnow)
    entries_json: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
