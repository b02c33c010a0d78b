"""
Result notifications.

Delivery is fire-and-forget from the core's point of view: match_lifecycle
calls the sink after its own commit and only logs sink failures.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from sqlalchemy import update
from sqlmodel import Session, select

from tabletennis.errors import NotFound
from tabletennis.models.notification import Notification
from tabletennis.models.player import Player
from tabletennis.services.rating_engine import RatingChange

logger = logging.getLogger(__name__)

TYPE_RESULT_REJECTED = "result_rejected"
TYPE_RESULT_VERIFIED = "result_verified"


class NotificationSink(Protocol):
    def notify_result_rejected(self, players: Sequence[Player], match_id: int, reason: str) -> None:
        ...

    def notify_result_verified(self, players: Sequence[Player], rating_change: Optional[RatingChange]) -> None:
        ...


def format_change(change: int) -> str:
    return f"+{change}" if change > 0 else str(change)


def _opponent_name(players: Sequence[Player], player: Player) -> str:
    for other in players:
        if other.id != player.id:
            return other.name
    return "your opponent"


class DatabaseNotificationSink:
    """Writes one Notification row per player and commits it on its own."""

    def __init__(self, session: Session):
        self.session = session

    def _write(self, rows: List[Notification]) -> None:
        for row in rows:
            self.session.add(row)
        self.session.commit()

    def notify_result_rejected(self, players: Sequence[Player], match_id: int, reason: str) -> None:
        message = (
            "Your result was rejected by the tournament administrator.\n\n"
            f"Reason: {reason}\n\n"
            "ACTION REQUIRED: please report to the control desk to enter the correct result."
        )
        self._write(
            [
                Notification(
                    player_id=player.id,
                    match_id=match_id,
                    type=TYPE_RESULT_REJECTED,
                    title="Result rejected - report to the control desk",
                    message=message,
                    priority="high",
                    requires_action=True,
                )
                for player in players
            ]
        )
        logger.info("Rejection of match %s notified to %d players", match_id, len(players))

    def notify_result_verified(self, players: Sequence[Player], rating_change: Optional[RatingChange]) -> None:
        rows: List[Notification] = []
        for player in players:
            message = f"Your result against {_opponent_name(players, player)} was verified."
            if rating_change is not None:
                try:
                    entry = rating_change.for_player(player.id)
                except KeyError:
                    entry = None
                if entry is not None:
                    message += (
                        f"\n\nRating: {format_change(entry.change)} pts "
                        f"({entry.old_rating} -> {entry.new_rating})"
                    )
            rows.append(
                Notification(
                    player_id=player.id,
                    type=TYPE_RESULT_VERIFIED,
                    title="Result verified",
                    message=message,
                )
            )
        self._write(rows)


# =============================================================================
# Inbox
# =============================================================================

def list_notifications(session: Session, player_id: int, unread_only: bool = False) -> List[Notification]:
    """A player's notifications, newest first."""
    query = select(Notification).where(Notification.player_id == player_id)
    if unread_only:
        query = query.where(Notification.read == False)  # noqa: E712
    return list(session.exec(query.order_by(Notification.created_at.desc(), Notification.id.desc())).all())


def mark_as_read(session: Session, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification:
        raise NotFound(f"Notification {notification_id} not found")
    if not notification.read:
        notification.read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_as_read(session: Session, player_id: int) -> int:
    """Mark every unread notification of a player as read; returns how many changed."""
    result = session.execute(
        update(Notification)
        .where(Notification.player_id == player_id, Notification.read == False)  # noqa: E712
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    logger.info("Marked %d notifications read for player %s", result.rowcount, player_id)
    return result.rowcount
