from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session, select

from tabletennis.database import get_session
from tabletennis.errors import NotFound
from tabletennis.models.player import DEFAULT_RATING, Gender, Player
from tabletennis.models.rating_history import RatingHistory

router = APIRouter()


class PlayerCreate(BaseModel):
    name: str
    birth_year: int = Field(ge=1900, le=2100)
    email: Optional[str] = None
    member_number: Optional[str] = None
    club: Optional[str] = None
    gender: Optional[Gender] = None
    rating: int = DEFAULT_RATING

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class PlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    member_number: Optional[str] = None
    birth_year: int
    club: Optional[str] = None
    gender: Optional[str] = None
    rating: int
    wins: int
    losses: int
    tournaments_played: int


class RatingHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    match_id: int
    previous_rating: int
    new_rating: int
    rating_change: int
    created_at: datetime


@router.post("/players", response_model=PlayerResponse, status_code=201)
def create_player(payload: PlayerCreate, session: Session = Depends(get_session)):
    """Create a player (rating defaults to 1000)"""
    data = payload.model_dump()
    if data["gender"] is not None:
        data["gender"] = data["gender"].value
    player = Player(**data)
    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.get("/players/{player_id}", response_model=PlayerResponse)
def get_player(player_id: int, session: Session = Depends(get_session)):
    player = session.get(Player, player_id)
    if not player:
        raise NotFound("Player not found")
    return player


@router.get("/players/{player_id}/rating-history", response_model=List[RatingHistoryResponse])
def get_rating_history(player_id: int, session: Session = Depends(get_session)):
    """Applied rating changes for a player, newest first"""
    if not session.get(Player, player_id):
        raise NotFound("Player not found")
    return session.exec(
        select(RatingHistory)
        .where(RatingHistory.player_id == player_id)
        .order_by(RatingHistory.created_at.desc(), RatingHistory.id.desc())
    ).all()
