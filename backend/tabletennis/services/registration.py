"""
Tournament registration lifecycle.

Restrictions (age, gender, rating) and capacity are enforced here, when a
player registers. The draw only filters on confirmation status.
"""

import logging
from typing import List, Optional

from sqlmodel import Session, func, select

from tabletennis.clock import Clock, utcnow
from tabletennis.errors import InvalidStateTransition, NotFound, ValidationError
from tabletennis.models.player import Player
from tabletennis.models.registration import Registration, RegistrationStatus
from tabletennis.models.tournament import Tournament, TournamentCategory, TournamentStatus
from tabletennis.services.tournament_config import Restrictions, load_config

logger = logging.getLogger(__name__)


def _get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound("Tournament not found")
    return tournament


def _get_player(session: Session, player_id: int, field: str) -> Player:
    player = session.get(Player, player_id)
    if not player:
        raise NotFound(f"Player {player_id} not found", field=field)
    return player


def _set_status(session: Session, tournament: Tournament, expected: TournamentStatus, new: TournamentStatus) -> Tournament:
    if tournament.status != expected:
        raise InvalidStateTransition(
            f"Tournament {tournament.id} is '{TournamentStatus(tournament.status).value}', expected '{expected.value}'"
        )
    tournament.status = new.value
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    logger.info("Tournament %s: %s -> %s", tournament.id, expected.value, new.value)
    return tournament


def open_registration(session: Session, tournament_id: int) -> Tournament:
    return _set_status(
        session, _get_tournament(session, tournament_id), TournamentStatus.draft, TournamentStatus.registration_open
    )


def close_registration(session: Session, tournament_id: int) -> Tournament:
    return _set_status(
        session,
        _get_tournament(session, tournament_id),
        TournamentStatus.registration_open,
        TournamentStatus.registration_closed,
    )


def check_restrictions(player: Player, restrictions: Restrictions, tournament_year: int, field: str = "player_id") -> None:
    """Raise ValidationError naming the first restriction `player` fails."""
    age = tournament_year - player.birth_year
    if restrictions.min_age is not None and age < restrictions.min_age:
        raise ValidationError(f"{player.name} is {age}; minimum age is {restrictions.min_age}", field=field)
    if restrictions.max_age is not None and age > restrictions.max_age:
        raise ValidationError(f"{player.name} is {age}; maximum age is {restrictions.max_age}", field=field)
    if restrictions.gender not in (None, "any") and player.gender != restrictions.gender:
        raise ValidationError(f"{player.name} does not meet the gender restriction", field=field)
    if restrictions.min_rating is not None and player.rating < restrictions.min_rating:
        raise ValidationError(
            f"{player.name} is rated {player.rating}; minimum is {restrictions.min_rating}", field=field
        )
    if restrictions.max_rating is not None and player.rating > restrictions.max_rating:
        raise ValidationError(
            f"{player.name} is rated {player.rating}; maximum is {restrictions.max_rating}", field=field
        )


def register_player(
    session: Session,
    tournament_id: int,
    player_id: int,
    partner_id: Optional[int] = None,
    payment_code: Optional[str] = None,
    clock: Clock = utcnow,
) -> Registration:
    """Create a pending registration after restriction and capacity checks."""
    tournament = _get_tournament(session, tournament_id)
    if tournament.status != TournamentStatus.registration_open:
        raise InvalidStateTransition(f"Registration is not open for tournament {tournament_id}")

    doubles = TournamentCategory(tournament.category).is_doubles
    if doubles and partner_id is None:
        raise ValidationError("Doubles registration requires a partner", field="partner_id")
    if not doubles and partner_id is not None:
        raise ValidationError("Singles registration takes no partner", field="partner_id")
    if partner_id is not None and partner_id == player_id:
        raise ValidationError("A player cannot partner themselves", field="partner_id")

    config = load_config(tournament)
    year = tournament.start_date.year

    player = _get_player(session, player_id, "player_id")
    check_restrictions(player, config.restrictions, year, "player_id")
    if partner_id is not None:
        partner = _get_player(session, partner_id, "partner_id")
        check_restrictions(partner, config.restrictions, year, "partner_id")

    for candidate, field in ((player_id, "player_id"), (partner_id, "partner_id")):
        if candidate is None:
            continue
        existing = session.exec(
            select(Registration).where(
                Registration.tournament_id == tournament_id,
                (Registration.player_id == candidate) | (Registration.partner_id == candidate),
            )
        ).first()
        if existing:
            raise ValidationError(f"Player {candidate} is already registered", field=field)

    if config.max_participants is not None:
        count = session.exec(
            select(func.count(Registration.id)).where(Registration.tournament_id == tournament_id)
        ).one()
        if count >= config.max_participants:
            raise ValidationError(
                f"Tournament is full ({config.max_participants} participants)", field="tournament_id"
            )

    registration = Registration(
        tournament_id=tournament_id,
        player_id=player_id,
        partner_id=partner_id,
        payment_code=payment_code,
        status=RegistrationStatus.pending.value,
        registered_at=clock(),
    )
    session.add(registration)
    session.commit()
    session.refresh(registration)
    logger.info("Player %s registered for tournament %s (pending)", player_id, tournament_id)
    return registration


def confirm_registration(session: Session, registration_id: int, clock: Clock = utcnow) -> Registration:
    registration = session.get(Registration, registration_id)
    if not registration:
        raise NotFound("Registration not found")
    if registration.status == RegistrationStatus.confirmed:
        raise InvalidStateTransition(f"Registration {registration_id} is already confirmed")
    registration.status = RegistrationStatus.confirmed.value
    registration.confirmed_at = clock()
    session.add(registration)
    session.commit()
    session.refresh(registration)
    logger.info("Registration %s confirmed", registration_id)
    return registration


def list_registrations(session: Session, tournament_id: int) -> List[Registration]:
    _get_tournament(session, tournament_id)
    return list(
        session.exec(
            select(Registration).where(Registration.tournament_id == tournament_id).order_by(Registration.id)
        ).all()
    )
