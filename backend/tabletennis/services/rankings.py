"""
Category rankings: top-N players by rating with movement against the
previously published snapshot.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from tabletennis.clock import Clock, utcnow
from tabletennis.models.player import DEFAULT_RATING, Player
from tabletennis.models.ranking import RankingSnapshot
from tabletennis.models.tournament import TournamentCategory

logger = logging.getLogger(__name__)

RANKING_SIZE = 10

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"
TREND_NEW = "new"


def category_gender(category: str) -> Optional[str]:
    """singles_male -> male, doubles_female -> female, doubles_mixed -> None."""
    suffix = TournamentCategory(category).value.split("_", 1)[1]
    return suffix if suffix in ("male", "female") else None


def get_rankings(session: Session, category: str) -> List[Dict[str, Any]]:
    snapshot = session.exec(
        select(RankingSnapshot).where(RankingSnapshot.category == TournamentCategory(category).value)
    ).first()
    return list(snapshot.entries_json) if snapshot else []


def recalculate_rankings(session: Session, category: str, clock: Clock = utcnow) -> List[Dict[str, Any]]:
    """
    Rebuild and store the top RANKING_SIZE for `category`.

    trend: 'new' when absent from the previous snapshot, otherwise up/down/stable
    by position movement (last_change = previous_position - position).
    """
    category = TournamentCategory(category).value
    gender = category_gender(category)

    query = select(Player)
    if gender is not None:
        query = query.where(Player.gender == gender)
    players = sorted(
        session.exec(query).all(),
        key=lambda p: (-(p.rating if p.rating is not None else DEFAULT_RATING), p.id),
    )

    previous = {entry["player_id"]: entry for entry in get_rankings(session, category)}

    entries: List[Dict[str, Any]] = []
    for index, player in enumerate(players[:RANKING_SIZE]):
        position = index + 1
        before = previous.get(player.id)
        if before is None:
            trend, last_change = TREND_NEW, 0
        else:
            last_change = before["position"] - position
            if last_change > 0:
                trend = TREND_UP
            elif last_change < 0:
                trend = TREND_DOWN
            else:
                trend = TREND_STABLE
        entries.append(
            {
                "position": position,
                "player_id": player.id,
                "member_number": player.member_number or "",
                "name": player.name,
                "club": player.club or "",
                "rating": player.rating,
                "tournaments_played": player.tournaments_played,
                "wins": player.wins,
                "losses": player.losses,
                "last_change": last_change,
                "trend": trend,
            }
        )

    snapshot = session.exec(select(RankingSnapshot).where(RankingSnapshot.category == category)).first()
    if snapshot is None:
        snapshot = RankingSnapshot(category=category)
    snapshot.entries_json = entries
    snapshot.last_updated = clock()
    session.add(snapshot)
    session.commit()

    logger.info("Rankings recalculated for %s: %d entries", category, len(entries))
    return entries
