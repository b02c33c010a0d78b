"""
Match Lifecycle: result state machine for a single match.

    scheduled -> pending_result -> pending_verification -> verified
                              \\-> verified (referee)     \\-> rejected -> (resubmit)

Every transition is compare-and-swap on the status column: the UPDATE only
matches the status that was read, so two racing calls (e.g. double approve)
cannot both apply a rating delta. A failed transition rolls back and leaves
nothing behind.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlalchemy import null, or_, update
from sqlmodel import Session, select

from tabletennis.clock import Clock, utcnow
from tabletennis.errors import InvalidStateTransition, NotFound, ValidationError
from tabletennis.models.match import Match, MatchStatus
from tabletennis.models.player import Player
from tabletennis.models.rating_history import RatingHistory
from tabletennis.services.notifications import NotificationSink
from tabletennis.services.rating_engine import RatingChange, compute_rating_change
from tabletennis.services.score_validation import decide_match

logger = logging.getLogger(__name__)

# Pre-states from which a result may be (re)submitted
SUBMITTABLE = (MatchStatus.pending_result, MatchStatus.rejected)


class SetScore(BaseModel):
    player1: int
    player2: int


class ValidationRecord(BaseModel):
    validated: bool = True
    timestamp: datetime


class MatchResult(BaseModel):
    """Result document stored in Match.result_json."""

    sets: List[SetScore]
    winner_id: int
    sets_count: Dict[str, int]
    validated_by: Dict[str, ValidationRecord]
    entered_by: int
    entered_at: datetime
    observations: Optional[str] = None
    rating_change: Optional[Dict[str, Any]] = None  # frozen RatingChange snapshot

    def rating_change_snapshot(self) -> Optional[RatingChange]:
        if self.rating_change is None:
            return None
        return RatingChange.from_dict(self.rating_change)


def read_result(match: Match) -> Optional[MatchResult]:
    if not match.result_json:
        return None
    return MatchResult.model_validate(match.result_json)


# =============================================================================
# Lookups
# =============================================================================

def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return match


def list_tournament_matches(
    session: Session, tournament_id: int, status: Optional[MatchStatus] = None
) -> List[Match]:
    query = select(Match).where(Match.tournament_id == tournament_id)
    if status is not None:
        query = query.where(Match.status == MatchStatus(status).value)
    return list(session.exec(query.order_by(Match.match_number, Match.id)).all())


def list_player_matches(
    session: Session, player_id: int, status: Optional[MatchStatus] = None
) -> List[Match]:
    """Matches where the player sits in any slot, partner slots included."""
    query = select(Match).where(
        or_(
            Match.player1_id == player_id,
            Match.player2_id == player_id,
            Match.player1_partner_id == player_id,
            Match.player2_partner_id == player_id,
        )
    )
    if status is not None:
        query = query.where(Match.status == MatchStatus(status).value)
    return list(session.exec(query.order_by(Match.scheduled_at, Match.id)).all())


def list_referee_matches(session: Session, referee_id: int) -> List[Match]:
    query = select(Match).where(Match.referee_id == referee_id)
    return list(session.exec(query.order_by(Match.scheduled_at, Match.id)).all())


def _players(session: Session, match: Match) -> Tuple[Player, Player]:
    player1 = session.get(Player, match.player1_id)
    player2 = session.get(Player, match.player2_id)
    if player1 is None or player2 is None:
        missing = match.player1_id if player1 is None else match.player2_id
        raise NotFound(f"Player {missing} not found")
    return player1, player2


# =============================================================================
# Transition plumbing
# =============================================================================

def _require_status(match: Match, allowed: Sequence[MatchStatus], action: str) -> None:
    if match.status not in allowed:
        expected = ", ".join(s.value for s in allowed)
        raise InvalidStateTransition(
            f"Cannot {action} match {match.id} in status '{MatchStatus(match.status).value}' (expected {expected})"
        )


def _compare_and_set(session: Session, match: Match, values: Dict[str, Any], action: str) -> None:
    """UPDATE ... WHERE id = :id AND status = :observed; exactly one row or fail."""
    observed = MatchStatus(match.status).value
    stmt = (
        update(Match)
        .where(Match.id == match.id, Match.status == observed)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount != 1:
        session.rollback()
        raise InvalidStateTransition(
            f"Cannot {action} match {match.id}: status changed concurrently (was '{observed}')"
        )


def _apply_rating_change(session: Session, match_id: int, rating_change: RatingChange, now: datetime) -> None:
    """Add each frozen delta to the live rating and record history, in the caller's transaction."""
    for entry in (rating_change.player1, rating_change.player2):
        session.execute(
            update(Player)
            .where(Player.id == entry.player_id)
            .values(rating=Player.rating + entry.change, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        current = session.exec(select(Player.rating).where(Player.id == entry.player_id)).one()
        session.add(
            RatingHistory(
                player_id=entry.player_id,
                match_id=match_id,
                previous_rating=current - entry.change,
                new_rating=current,
                rating_change=entry.change,
                created_at=now,
            )
        )


def _commit(session: Session, match: Match) -> Match:
    session.commit()
    session.refresh(match)
    return match


def _notify(action: str, call: Callable[[], None], session: Session) -> None:
    """Soft failure: a broken sink is logged, never raised."""
    try:
        call()
    except Exception:
        session.rollback()
        logger.exception("Notification for %s failed; transition already committed", action)


def _build_result(
    session: Session,
    match: Match,
    sets: Sequence[Any],
    entered_by: int,
    winner_id: Optional[int],
    observations: Optional[str],
    validators: Sequence[int],
    now: datetime,
) -> Tuple[MatchResult, RatingChange, Tuple[Player, Player]]:
    if entered_by is None:
        raise ValidationError("entered_by is required", field="entered_by")

    decided = decide_match(sets)
    implied_winner = match.player1_id if decided.winner_side == 1 else match.player2_id
    if winner_id is not None and winner_id != implied_winner:
        raise ValidationError(
            f"winner_id {winner_id} contradicts the set scores (winner is {implied_winner})",
            field="winner_id",
        )

    players = _players(session, match)
    rating_change = compute_rating_change(players[0], players[1], implied_winner)

    result = MatchResult(
        sets=[SetScore(player1=a, player2=b) for a, b in decided.sets],
        winner_id=implied_winner,
        sets_count=decided.sets_count,
        validated_by={str(pid): ValidationRecord(validated=True, timestamp=now) for pid in validators},
        entered_by=entered_by,
        entered_at=now,
        observations=(observations or None),
        rating_change=rating_change.to_dict(),
    )
    return result, rating_change, players


# =============================================================================
# Transitions
# =============================================================================

def open_match_for_result(session: Session, match_id: int, clock: Clock = utcnow) -> Match:
    """scheduled -> pending_result (match called to its table)."""
    match = get_match(session, match_id)
    _require_status(match, (MatchStatus.scheduled,), "open")
    _compare_and_set(
        session,
        match,
        {"status": MatchStatus.pending_result.value, "updated_at": clock()},
        "open",
    )
    logger.info("Match %s open for result", match_id)
    return _commit(session, match)


def submit_referee_result(
    session: Session,
    match_id: int,
    sets: Sequence[Any],
    entered_by: int,
    winner_id: Optional[int] = None,
    observations: Optional[str] = None,
    clock: Clock = utcnow,
    notifier: Optional[NotificationSink] = None,
) -> Match:
    """
    Referee-entered result: pending_result|rejected -> verified.

    The rating change is computed, frozen into the result and applied to both
    players in the same transaction as the status swap.
    """
    match = get_match(session, match_id)
    _require_status(match, SUBMITTABLE, "submit a referee result for")

    now = clock()
    result, rating_change, players = _build_result(
        session, match, sets, entered_by, winner_id, observations, match.player_ids, now
    )

    _compare_and_set(
        session,
        match,
        {
            "status": MatchStatus.verified.value,
            "result_json": result.model_dump(mode="json"),
            "waiting_admin_approval": False,
            "referee_id": entered_by,
            "verified_by": entered_by,
            "verified_at": now,
            "rejected_by": None,
            "rejected_at": None,
            "rejection_reason": None,
            "updated_at": now,
        },
        "submit a referee result for",
    )
    _apply_rating_change(session, match.id, rating_change, now)
    _commit(session, match)

    logger.info(
        "Match %s verified by referee %s: winner %s, changes %+d/%+d",
        match_id,
        entered_by,
        result.winner_id,
        rating_change.player1.change,
        rating_change.player2.change,
    )
    if notifier is not None:
        _notify("verify", lambda: notifier.notify_result_verified(players, rating_change), session)
    return match


def submit_player_result(
    session: Session,
    match_id: int,
    sets: Sequence[Any],
    entered_by: int,
    winner_id: Optional[int] = None,
    observations: Optional[str] = None,
    clock: Clock = utcnow,
) -> Match:
    """
    Player self-reported result: pending_result|rejected -> pending_verification.

    Stores a projected rating change; live ratings are untouched until approval.
    """
    match = get_match(session, match_id)
    _require_status(match, SUBMITTABLE, "submit a player result for")
    participants = match.player_ids + (match.player1_partner_id, match.player2_partner_id)
    if entered_by not in [pid for pid in participants if pid is not None]:
        raise ValidationError(
            f"Player {entered_by} is not a participant of match {match_id}", field="entered_by"
        )

    now = clock()
    result, rating_change, _ = _build_result(
        session, match, sets, entered_by, winner_id, observations, (entered_by,), now
    )

    _compare_and_set(
        session,
        match,
        {
            "status": MatchStatus.pending_verification.value,
            "result_json": result.model_dump(mode="json"),
            "waiting_admin_approval": True,
            "verified_by": None,
            "verified_at": None,
            "rejected_by": None,
            "rejected_at": None,
            "rejection_reason": None,
            "updated_at": now,
        },
        "submit a player result for",
    )
    logger.info(
        "Match %s result reported by %s, awaiting approval (projected %+d/%+d)",
        match_id,
        entered_by,
        rating_change.player1.change,
        rating_change.player2.change,
    )
    return _commit(session, match)


def approve_result(
    session: Session,
    match_id: int,
    admin_id: int,
    clock: Clock = utcnow,
    notifier: Optional[NotificationSink] = None,
) -> Match:
    """
    pending_verification -> verified; applies the stored projected change.

    A second approve finds status 'verified' and raises InvalidStateTransition,
    so the delta is applied at most once.
    """
    match = get_match(session, match_id)
    _require_status(match, (MatchStatus.pending_verification,), "approve")

    result = read_result(match)
    rating_change = result.rating_change_snapshot() if result else None
    if rating_change is None:
        raise ValidationError(f"Match {match_id} has no projected rating change to apply", field="result")

    now = clock()
    _compare_and_set(
        session,
        match,
        {
            "status": MatchStatus.verified.value,
            "waiting_admin_approval": False,
            "verified_by": admin_id,
            "verified_at": now,
            "updated_at": now,
        },
        "approve",
    )
    _apply_rating_change(session, match.id, rating_change, now)
    _commit(session, match)

    logger.info("Match %s approved by %s", match_id, admin_id)
    if notifier is not None:
        players = _players(session, match)
        _notify("approve", lambda: notifier.notify_result_verified(players, rating_change), session)
    return match


def reject_result(
    session: Session,
    match_id: int,
    admin_id: int,
    reason: str,
    clock: Clock = utcnow,
    notifier: Optional[NotificationSink] = None,
) -> Match:
    """
    pending_verification -> rejected; clears the stored result.

    No rating was applied yet, so none is touched. The match accepts a new
    player or referee submission afterwards.
    """
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required", field="reason")

    match = get_match(session, match_id)
    _require_status(match, (MatchStatus.pending_verification,), "reject")

    now = clock()
    _compare_and_set(
        session,
        match,
        {
            "status": MatchStatus.rejected.value,
            "result_json": null(),
            "waiting_admin_approval": False,
            "verified_by": None,
            "verified_at": None,
            "rejected_by": admin_id,
            "rejected_at": now,
            "rejection_reason": reason.strip(),
            "updated_at": now,
        },
        "reject",
    )
    _commit(session, match)

    logger.info("Match %s rejected by %s: %s", match_id, admin_id, reason.strip())
    if notifier is not None:
        players = _players(session, match)
        _notify("reject", lambda: notifier.notify_result_rejected(players, match.id, match.rejection_reason), session)
    return match
