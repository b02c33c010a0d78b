from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session, select

from tabletennis.clock import Clock, get_clock
from tabletennis.database import get_session
from tabletennis.errors import NotFound
from tabletennis.models.match import MatchStatus
from tabletennis.models.tournament import Tournament, TournamentCategory
from tabletennis.routes.matches import MatchResponse
from tabletennis.services.draw_generator import generate_tournament_draw
from tabletennis.services.finalizer import finalize_tournament
from tabletennis.services.match_lifecycle import list_tournament_matches
from tabletennis.services.registration import (
    close_registration,
    confirm_registration,
    list_registrations,
    open_registration,
    register_player,
)
from tabletennis.services.tournament_config import TournamentConfig

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    venue: str
    start_date: date
    start_time: time = time(9, 0)
    category: TournamentCategory
    config: TournamentConfig = Field(default_factory=TournamentConfig)
    director_id: Optional[int] = None

    @field_validator("name", "venue")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    venue: str
    start_date: date
    start_time: time
    category: str
    status: str
    config_json: Dict[str, Any]
    draw_json: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class RegistrationCreate(BaseModel):
    player_id: int
    partner_id: Optional[int] = None
    payment_code: Optional[str] = Field(default=None, max_length=5)


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    player_id: int
    partner_id: Optional[int] = None
    status: str
    payment_code: Optional[str] = None
    registered_at: datetime
    confirmed_at: Optional[datetime] = None


class DrawResponse(BaseModel):
    draw: Dict[str, Any]
    matches: List[MatchResponse]


class PlayerTotalsResponse(BaseModel):
    player_id: int
    old_rating: int
    total_change: int
    new_rating: int
    matches: int
    wins: int
    losses: int


class FinalizeResponse(BaseModel):
    tournament_id: int
    players_updated: int
    matches_counted: int
    rating_changes: List[PlayerTotalsResponse]
    rankings_recalculated: bool
    ranking_error: Optional[str] = None


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.start_date, Tournament.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament in 'draft' status"""
    tournament = Tournament(
        name=payload.name,
        venue=payload.venue,
        start_date=payload.start_date,
        start_time=payload.start_time,
        category=payload.category.value,
        config_json=payload.config.model_dump(mode="json"),
        director_id=payload.director_id,
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound("Tournament not found")
    return tournament


@router.post("/tournaments/{tournament_id}/registration/open", response_model=TournamentResponse)
def open_tournament_registration(tournament_id: int, session: Session = Depends(get_session)):
    return open_registration(session, tournament_id)


@router.post("/tournaments/{tournament_id}/registration/close", response_model=TournamentResponse)
def close_tournament_registration(tournament_id: int, session: Session = Depends(get_session)):
    return close_registration(session, tournament_id)


@router.get("/tournaments/{tournament_id}/registrations", response_model=List[RegistrationResponse])
def get_registrations(tournament_id: int, session: Session = Depends(get_session)):
    return list_registrations(session, tournament_id)


@router.post(
    "/tournaments/{tournament_id}/registrations",
    response_model=RegistrationResponse,
    status_code=201,
)
def create_registration(
    tournament_id: int,
    payload: RegistrationCreate,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """Register a player (and partner for doubles); starts 'pending'"""
    return register_player(
        session,
        tournament_id,
        payload.player_id,
        partner_id=payload.partner_id,
        payment_code=payload.payment_code,
        clock=clock,
    )


@router.post("/registrations/{registration_id}/confirm", response_model=RegistrationResponse)
def confirm(registration_id: int, session: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    return confirm_registration(session, registration_id, clock=clock)


@router.post("/tournaments/{tournament_id}/draw", response_model=DrawResponse, status_code=201)
def generate_draw(tournament_id: int, session: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Generate groups or the first elimination round from confirmed registrations"""
    draw, matches = generate_tournament_draw(session, tournament_id, clock=clock)
    return DrawResponse(draw=draw, matches=[MatchResponse.from_match(m) for m in matches])


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def get_tournament_matches(
    tournament_id: int,
    status: Optional[MatchStatus] = None,
    session: Session = Depends(get_session),
):
    if not session.get(Tournament, tournament_id):
        raise NotFound("Tournament not found")
    return [MatchResponse.from_match(m) for m in list_tournament_matches(session, tournament_id, status)]


@router.post("/tournaments/{tournament_id}/finalize", response_model=FinalizeResponse)
def finalize(tournament_id: int, session: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Apply aggregated rating changes once and recompute the category ranking.

    A ranking failure is reported in `ranking_error`; ratings stay applied.
    """
    return finalize_tournament(session, tournament_id, clock=clock).to_dict()
