from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from tabletennis.database import get_session
from tabletennis.errors import NotFound
from tabletennis.models.player import Player
from tabletennis.services.notifications import list_notifications, mark_all_as_read, mark_as_read

router = APIRouter()


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: int
    match_id: Optional[int] = None
    type: str
    title: str
    message: str
    priority: str
    requires_action: bool
    read: bool
    created_at: datetime


class MarkAllReadResponse(BaseModel):
    updated: int


def _require_player(session: Session, player_id: int) -> None:
    if not session.get(Player, player_id):
        raise NotFound("Player not found")


@router.get("/players/{player_id}/notifications", response_model=List[NotificationResponse])
def get_notifications(player_id: int, unread_only: bool = False, session: Session = Depends(get_session)):
    """Newest first; `unread_only=true` hides read ones"""
    _require_player(session, player_id)
    return list_notifications(session, player_id, unread_only=unread_only)


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def read_notification(notification_id: int, session: Session = Depends(get_session)):
    return mark_as_read(session, notification_id)


@router.post("/players/{player_id}/notifications/read-all", response_model=MarkAllReadResponse)
def read_all_notifications(player_id: int, session: Session = Depends(get_session)):
    _require_player(session, player_id)
    return MarkAllReadResponse(updated=mark_all_as_read(session, player_id))
