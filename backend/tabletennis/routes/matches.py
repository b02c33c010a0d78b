"""
Match result endpoints. Each POST is one lifecycle transition.

Result submissions carry both participants' birth-year confirmations; they
are checked here before the lifecycle is invoked.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from tabletennis.clock import Clock, get_clock
from tabletennis.database import get_session
from tabletennis.errors import NotFound
from tabletennis.models.match import Match, MatchStatus
from tabletennis.models.player import Player
from tabletennis.services.identity import confirm_participants
from tabletennis.services.match_lifecycle import (
    approve_result,
    get_match,
    list_player_matches,
    list_referee_matches,
    open_match_for_result,
    reject_result,
    submit_player_result,
    submit_referee_result,
)
from tabletennis.services.notifications import DatabaseNotificationSink, NotificationSink

router = APIRouter()


def get_notification_sink(session: Session = Depends(get_session)) -> NotificationSink:
    return DatabaseNotificationSink(session)


class SetScoreIn(BaseModel):
    player1: int
    player2: int


class ParticipantConfirmation(BaseModel):
    player_id: int
    birth_year: int


class ResultSubmission(BaseModel):
    sets: List[SetScoreIn] = Field(min_length=1, max_length=5)
    entered_by: int
    winner_id: Optional[int] = None
    observations: Optional[str] = None
    confirmations: List[ParticipantConfirmation] = Field(min_length=2, max_length=2)


class ApproveRequest(BaseModel):
    admin_id: int


class RejectRequest(BaseModel):
    admin_id: int
    reason: str


class MatchResponse(BaseModel):
    id: int
    tournament_id: int
    stage: str
    round_label: str
    group_id: Optional[str] = None
    match_number: int
    table_number: int
    scheduled_at: datetime
    status: str
    player1_id: int
    player2_id: int
    player1_partner_id: Optional[int] = None
    player2_partner_id: Optional[int] = None
    referee_id: Optional[int] = None
    result: Optional[Dict[str, Any]] = None
    waiting_admin_approval: bool
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_match(cls, m: Match) -> "MatchResponse":
        return cls(
            id=m.id,
            tournament_id=m.tournament_id,
            stage=m.stage,
            round_label=m.round_label,
            group_id=m.group_id,
            match_number=m.match_number,
            table_number=m.table_number,
            scheduled_at=m.scheduled_at,
            status=m.status,
            player1_id=m.player1_id,
            player2_id=m.player2_id,
            player1_partner_id=m.player1_partner_id,
            player2_partner_id=m.player2_partner_id,
            referee_id=m.referee_id,
            result=m.result_json,
            waiting_admin_approval=m.waiting_admin_approval,
            verified_by=m.verified_by,
            verified_at=m.verified_at,
            rejected_by=m.rejected_by,
            rejected_at=m.rejected_at,
            rejection_reason=m.rejection_reason,
        )


def _confirm_identities(session: Session, match: Match, payload: ResultSubmission) -> None:
    players = [session.get(Player, pid) for pid in match.player_ids]
    birth_years = {c.player_id: c.birth_year for c in payload.confirmations}
    confirm_participants([p for p in players if p is not None], birth_years)


@router.get("/players/{player_id}/matches", response_model=List[MatchResponse])
def get_player_matches(
    player_id: int,
    status: Optional[MatchStatus] = None,
    session: Session = Depends(get_session),
):
    """Matches a player is drawn into (doubles partner slots included)"""
    if not session.get(Player, player_id):
        raise NotFound("Player not found")
    return [MatchResponse.from_match(m) for m in list_player_matches(session, player_id, status)]


@router.get("/referees/{referee_id}/matches", response_model=List[MatchResponse])
def get_referee_matches(referee_id: int, session: Session = Depends(get_session)):
    """Matches whose result this referee entered"""
    return [MatchResponse.from_match(m) for m in list_referee_matches(session, referee_id)]


@router.get("/matches/{match_id}", response_model=MatchResponse)
def read_match(match_id: int, session: Session = Depends(get_session)):
    return MatchResponse.from_match(get_match(session, match_id))


@router.post("/matches/{match_id}/open", response_model=MatchResponse)
def open_match(match_id: int, session: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """scheduled -> pending_result"""
    return MatchResponse.from_match(open_match_for_result(session, match_id, clock=clock))


@router.post("/matches/{match_id}/referee-result", response_model=MatchResponse)
def referee_result(
    match_id: int,
    payload: ResultSubmission,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    """Referee entry: verified immediately, ratings applied"""
    _confirm_identities(session, get_match(session, match_id), payload)
    match = submit_referee_result(
        session,
        match_id,
        [s.model_dump() for s in payload.sets],
        entered_by=payload.entered_by,
        winner_id=payload.winner_id,
        observations=payload.observations,
        clock=clock,
        notifier=notifier,
    )
    return MatchResponse.from_match(match)


@router.post("/matches/{match_id}/player-result", response_model=MatchResponse)
def player_result(
    match_id: int,
    payload: ResultSubmission,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """Player self-report: pending_verification with a projected rating change"""
    _confirm_identities(session, get_match(session, match_id), payload)
    match = submit_player_result(
        session,
        match_id,
        [s.model_dump() for s in payload.sets],
        entered_by=payload.entered_by,
        winner_id=payload.winner_id,
        observations=payload.observations,
        clock=clock,
    )
    return MatchResponse.from_match(match)


@router.post("/matches/{match_id}/approve", response_model=MatchResponse)
def approve(
    match_id: int,
    payload: ApproveRequest,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    return MatchResponse.from_match(
        approve_result(session, match_id, payload.admin_id, clock=clock, notifier=notifier)
    )


@router.post("/matches/{match_id}/reject", response_model=MatchResponse)
def reject(
    match_id: int,
    payload: RejectRequest,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    return MatchResponse.from_match(
        reject_result(session, match_id, payload.admin_id, payload.reason, clock=clock, notifier=notifier)
    )
