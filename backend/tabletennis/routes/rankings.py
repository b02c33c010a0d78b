from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from tabletennis.clock import Clock, get_clock
from tabletennis.database import get_session
from tabletennis.models.tournament import TournamentCategory
from tabletennis.services.rankings import get_rankings, recalculate_rankings

router = APIRouter()


class RankingEntry(BaseModel):
    position: int
    player_id: int
    member_number: str = ""
    name: str
    club: str = ""
    rating: int
    tournaments_played: int = 0
    wins: int = 0
    losses: int = 0
    last_change: int = 0
    trend: str


@router.get("/rankings/{category}", response_model=List[RankingEntry])
def read_rankings(category: TournamentCategory, session: Session = Depends(get_session)):
    """Published top 10 for a category (empty until first recompute)"""
    return get_rankings(session, category.value)


@router.post("/rankings/{category}/recalculate", response_model=List[RankingEntry])
def recalculate(
    category: TournamentCategory,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    return recalculate_rankings(session, category.value, clock=clock)
