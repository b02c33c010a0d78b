"""
Tournament Finalizer: applies the aggregated rating changes of all verified
matches to players, exactly once per tournament.

Frozen RatingChange snapshots are summed, never recomputed. The pass holds an
exclusive claim on the tournament (status 'finalizing', taken by
compare-and-swap) so two finalize calls cannot interleave their
read/aggregate/write sequences.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from tabletennis.clock import Clock, utcnow
from tabletennis.errors import (
    AlreadyFinalized,
    InvalidStateTransition,
    NotFound,
    NoVerifiedMatches,
)
from tabletennis.models.match import Match, MatchStatus
from tabletennis.models.player import Player
from tabletennis.models.tournament import Tournament, TournamentStatus
from tabletennis.services.match_lifecycle import read_result
from tabletennis.services.rankings import recalculate_rankings

logger = logging.getLogger(__name__)

RankingRecalculator = Callable[[Session, str], Any]


@dataclass
class PlayerTotals:
    player_id: int
    old_rating: int  # first observed in verification order
    total_change: int = 0
    new_rating: int = 0
    matches: int = 0
    wins: int = 0
    losses: int = 0


@dataclass
class FinalizeResult:
    tournament_id: int
    players_updated: int
    matches_counted: int
    rating_changes: List[PlayerTotals] = field(default_factory=list)
    rankings_recalculated: bool = False
    ranking_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def aggregate_rating_changes(matches: List[Match]) -> Dict[int, PlayerTotals]:
    """
    Sum the frozen deltas per player over `matches` (already in verification order).

    Each player's running rating starts from the old_rating recorded in the
    first match they appear in; later old_ratings are not consulted.
    """
    totals: Dict[int, PlayerTotals] = {}
    for match in matches:
        result = read_result(match)
        rating_change = result.rating_change_snapshot() if result else None
        if rating_change is None:
            logger.warning("Verified match %s has no rating change snapshot; skipped", match.id)
            continue
        for entry in (rating_change.player1, rating_change.player2):
            player_totals = totals.get(entry.player_id)
            if player_totals is None:
                player_totals = PlayerTotals(
                    player_id=entry.player_id,
                    old_rating=entry.old_rating,
                    new_rating=entry.old_rating,
                )
                totals[entry.player_id] = player_totals
            player_totals.total_change += entry.change
            player_totals.new_rating += entry.change
            player_totals.matches += 1
            if result.winner_id == entry.player_id:
                player_totals.wins += 1
            else:
                player_totals.losses += 1
    return totals


def _claim(session: Session, tournament: Tournament) -> str:
    """Take the exclusive finalize claim; returns the status to restore on failure."""
    observed = TournamentStatus(tournament.status).value
    if observed == TournamentStatus.completed.value:
        raise AlreadyFinalized(f"Tournament {tournament.id} is already completed")
    if observed == TournamentStatus.finalizing.value:
        raise InvalidStateTransition(f"Tournament {tournament.id} is already being finalized")

    result = session.execute(
        update(Tournament)
        .where(Tournament.id == tournament.id, Tournament.status == observed)
        .values(status=TournamentStatus.finalizing.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidStateTransition(f"Tournament {tournament.id} changed concurrently; finalize aborted")
    session.commit()
    return observed


def _release(session: Session, tournament_id: int, restore_status: str) -> None:
    session.rollback()
    session.execute(
        update(Tournament)
        .where(Tournament.id == tournament_id, Tournament.status == TournamentStatus.finalizing.value)
        .values(status=restore_status)
        .execution_options(synchronize_session=False)
    )
    session.commit()


def _apply_totals(session: Session, totals: Dict[int, PlayerTotals], now: datetime) -> None:
    """One write per player: final rating plus tournament counters."""
    for player_id, player_totals in totals.items():
        player = session.get(Player, player_id)
        if player is None:
            raise NotFound(f"Player {player_id} not found")
        player.rating = player_totals.new_rating
        player.wins = (player.wins or 0) + player_totals.wins
        player.losses = (player.losses or 0) + player_totals.losses
        player.tournaments_played = (player.tournaments_played or 0) + 1
        player.updated_at = now
        session.add(player)


def finalize_tournament(
    session: Session,
    tournament_id: int,
    clock: Clock = utcnow,
    recalculate: RankingRecalculator = recalculate_rankings,
) -> FinalizeResult:
    """
    Aggregate verified matches, write final ratings, mark the tournament
    completed, then recompute the tournament's category ranking.

    Raises:
        NotFound, AlreadyFinalized, NoVerifiedMatches,
        InvalidStateTransition (another finalize holds the claim)

    A ranking failure does not undo the rating writes; it is logged and
    reported in FinalizeResult.ranking_error.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound("Tournament not found")

    restore_status = _claim(session, tournament)
    try:
        matches = list(
            session.exec(
                select(Match)
                .where(
                    Match.tournament_id == tournament_id,
                    Match.status == MatchStatus.verified.value,
                )
                .order_by(Match.verified_at, Match.id)
            ).all()
        )
        if not matches:
            raise NoVerifiedMatches(f"Tournament {tournament_id} has no verified matches")

        now = clock()
        totals = aggregate_rating_changes(matches)
        _apply_totals(session, totals, now)

        tournament = session.get(Tournament, tournament_id)
        tournament.status = TournamentStatus.completed.value
        tournament.completed_at = now
        session.add(tournament)
        session.commit()
    except Exception:
        _release(session, tournament_id, restore_status)
        raise

    result = FinalizeResult(
        tournament_id=tournament_id,
        players_updated=len(totals),
        matches_counted=len(matches),
        rating_changes=sorted(totals.values(), key=lambda t: t.player_id),
    )
    logger.info(
        "Tournament %s finalized: %d matches, %d players updated",
        tournament_id,
        result.matches_counted,
        result.players_updated,
    )

    try:
        recalculate(session, tournament.category)
        result.rankings_recalculated = True
    except Exception as exc:
        session.rollback()
        result.ranking_error = str(exc) or type(exc).__name__
        logger.exception(
            "Ranking recompute failed for tournament %s; ratings remain applied", tournament_id
        )

    return result
