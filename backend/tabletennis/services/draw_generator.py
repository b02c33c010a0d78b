"""
Draw Generator: groups (snake seeding with club spreading) or a first-round
elimination bracket for the confirmed participants of a tournament.

The planning half is pure (generate_draw and its helpers); the persistence
half (generate_tournament_draw) turns a plan into `scheduled` Match rows and
stores the draw on the tournament.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlmodel import Session, select

from tabletennis.clock import Clock, utcnow
from tabletennis.errors import InvalidStateTransition, NoEligibleParticipants, NotFound
from tabletennis.models.match import Match, MatchStage, MatchStatus
from tabletennis.models.player import Player
from tabletennis.models.registration import Registration, RegistrationStatus
from tabletennis.models.tournament import Tournament, TournamentStatus
from tabletennis.services.tournament_config import load_config

logger = logging.getLogger(__name__)

TABLE_COUNT = 4
GROUP_MATCH_INTERVAL_MINUTES = 15
BRACKET_MATCH_INTERVAL_MINUTES = 20


@dataclass
class Participant:
    """One draw entrant: a player, or a doubles pair keyed by its first player."""

    entrant_id: int
    rating: int
    club: Optional[str] = None
    partner_id: Optional[int] = None
    name: Optional[str] = None


@dataclass
class PlannedMatch:
    stage: MatchStage
    round_label: str
    match_number: int
    table_number: int
    scheduled_at: datetime
    player1: Participant
    player2: Participant
    group_id: Optional[str] = None


@dataclass
class GroupPlan:
    group_id: str
    participants: List[Participant]
    matches: List[PlannedMatch] = field(default_factory=list)

    @property
    def participant_ids(self) -> List[int]:
        return [p.entrant_id for p in self.participants]


@dataclass
class BracketPlan:
    round_label: str
    matches: List[PlannedMatch] = field(default_factory=list)
    byes: List[Participant] = field(default_factory=list)


@dataclass
class DrawPlan:
    groups: List[GroupPlan] = field(default_factory=list)
    bracket: Optional[BracketPlan] = None

    @property
    def matches(self) -> List[PlannedMatch]:
        planned = [m for g in self.groups for m in g.matches]
        if self.bracket:
            planned.extend(self.bracket.matches)
        return planned


# =============================================================================
# Seeding
# =============================================================================

def seed_order(participants: Iterable[Participant]) -> List[Participant]:
    """Rating descending; ties keep input order (sorted() is stable)."""
    return sorted(participants, key=lambda p: -p.rating)


def redistribute_by_club(seeded: Sequence[Participant]) -> List[Participant]:
    """
    Spread same-club players apart while keeping each club's internal order.

    Clubs are visited largest bucket first (ties: first appearance in seed
    order), one player per club per pass, skipping exhausted clubs.
    Players without a club share one bucket.
    """
    buckets: "OrderedDict[Optional[str], List[Participant]]" = OrderedDict()
    for participant in seeded:
        buckets.setdefault(participant.club, []).append(participant)

    if len(buckets) <= 1:
        return list(seeded)

    clubs = sorted(buckets.keys(), key=lambda club: -len(buckets[club]))
    queues = [list(buckets[club]) for club in clubs]

    result: List[Participant] = []
    while any(queues):
        for queue in queues:
            if queue:
                result.append(queue.pop(0))
    return result


# =============================================================================
# Groups
# =============================================================================

def group_count(participant_count: int, players_per_group: int) -> int:
    return math.ceil(participant_count / players_per_group)


def group_label(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, ..."""
    label = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


def snake_assign(sequence: Sequence[Participant], num_groups: int) -> List[List[Participant]]:
    """
    Boustrophedon distribution: runs of `num_groups` entrants, even runs
    left-to-right across groups, odd runs right-to-left.
    """
    groups: List[List[Participant]] = [[] for _ in range(num_groups)]
    for position, participant in enumerate(sequence):
        run, offset = divmod(position, num_groups)
        index = offset if run % 2 == 0 else num_groups - 1 - offset
        groups[index].append(participant)
    return groups


def round_robin_pairings(n: int) -> List[Tuple[int, int, int]]:
    """
    Every unordered pair of positions 0..n-1 exactly once, as
    (round_number, idx_a, idx_b) with idx_a < idx_b.

    Circle method: fix position 0, rotate the rest; odd n adds a BYE that
    is skipped. Rounds keep a player out of back-to-back matches where possible.
    """
    if n < 2:
        return []
    n2 = n + 1 if n % 2 == 1 else n
    bye_idx = n if n % 2 == 1 else -1
    half = n2 // 2

    result: List[Tuple[int, int, int]] = []
    positions = list(range(n2))
    for round_num in range(1, n2):
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            result.append((round_num, min(a, b), max(a, b)))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return result


class _Slots:
    """Hands out table numbers (1..TABLE_COUNT) and start times in sequence."""

    def __init__(self, starts_at: datetime, interval_minutes: int):
        self.starts_at = starts_at
        self.interval = timedelta(minutes=interval_minutes)
        self.index = 0

    def next(self) -> Tuple[int, int, datetime]:
        index = self.index
        self.index += 1
        return index + 1, index % TABLE_COUNT + 1, self.starts_at + index * self.interval


def build_groups(sequence: Sequence[Participant], players_per_group: int, starts_at: datetime) -> List[GroupPlan]:
    num_groups = group_count(len(sequence), players_per_group)
    slots = _Slots(starts_at, GROUP_MATCH_INTERVAL_MINUTES)

    plans: List[GroupPlan] = []
    for index, members in enumerate(snake_assign(sequence, num_groups)):
        group = GroupPlan(group_id=group_label(index), participants=members)
        for _, idx_a, idx_b in round_robin_pairings(len(members)):
            match_number, table, at = slots.next()
            group.matches.append(
                PlannedMatch(
                    stage=MatchStage.groups,
                    round_label=f"Group {group.group_id}",
                    match_number=match_number,
                    table_number=table,
                    scheduled_at=at,
                    player1=members[idx_a],
                    player2=members[idx_b],
                    group_id=group.group_id,
                )
            )
        plans.append(group)
    return plans


# =============================================================================
# Elimination bracket (first round only)
# =============================================================================

def first_round_label(participant_count: int) -> str:
    if participant_count <= 4:
        return "Semifinals"
    if participant_count <= 8:
        return "Quarterfinals"
    if participant_count <= 16:
        return "Round of 16"
    return "Round of 32"


def fold_pairs(seeded: Sequence[Participant]) -> Tuple[List[Tuple[Participant, Participant]], List[Participant]]:
    """Rank 1 vs N, 2 vs N-1, ...; an odd field leaves the middle seed with a bye."""
    n = len(seeded)
    pairs = [(seeded[i], seeded[n - 1 - i]) for i in range(n // 2)]
    byes = [seeded[n // 2]] if n % 2 == 1 else []
    return pairs, byes


def build_bracket(seeded: Sequence[Participant], starts_at: datetime) -> BracketPlan:
    label = first_round_label(len(seeded))
    pairs, byes = fold_pairs(seeded)
    slots = _Slots(starts_at, BRACKET_MATCH_INTERVAL_MINUTES)

    bracket = BracketPlan(round_label=label, byes=byes)
    for top, bottom in pairs:
        match_number, table, at = slots.next()
        bracket.matches.append(
            PlannedMatch(
                stage=MatchStage.elimination,
                round_label=label,
                match_number=match_number,
                table_number=table,
                scheduled_at=at,
                player1=top,
                player2=bottom,
            )
        )
    return bracket


# =============================================================================
# Draw
# =============================================================================

def participants_from_registrations(
    registrations: Iterable[Registration], players: Mapping[int, Any]
) -> List[Participant]:
    """Confirmed registrations only; pending ones are skipped silently."""
    participants: List[Participant] = []
    for registration in registrations:
        if registration.status != RegistrationStatus.confirmed:
            continue
        player = players.get(registration.player_id)
        if player is None:
            raise NotFound(f"Player {registration.player_id} not found")
        participants.append(
            Participant(
                entrant_id=player.id,
                rating=int(player.rating),
                club=player.club or None,
                partner_id=registration.partner_id,
                name=player.name,
            )
        )
    return participants


def generate_draw(
    tournament: Tournament,
    registrations: Iterable[Registration],
    players: Mapping[int, Any],
) -> DrawPlan:
    """
    Plan groups and/or the first bracket round for the confirmed registrations.

    Group stage wins when both stages are enabled; the post-group bracket is
    built elsewhere.

    Raises:
        NoEligibleParticipants: no confirmed registration
    """
    participants = participants_from_registrations(registrations, players)
    if not participants:
        raise NoEligibleParticipants(f"Tournament {tournament.id} has no confirmed registrations")

    config = load_config(tournament)
    seeded = seed_order(participants)
    starts_at = tournament.starts_at

    plan = DrawPlan()
    if config.group_stage.enabled:
        sequence = redistribute_by_club(seeded)
        plan.groups = build_groups(sequence, config.group_stage.players_per_group, starts_at)
    elif config.elimination_stage.enabled:
        plan.bracket = build_bracket(seeded, starts_at)
    else:
        logger.warning("Tournament %s has no stage enabled; empty draw", tournament.id)

    return plan


def _draw_document(plan: DrawPlan, match_ids: Dict[int, int], generated_at: datetime) -> Dict[str, Any]:
    bracket = None
    if plan.bracket is not None:
        bracket = {
            "round": plan.bracket.round_label,
            "match_ids": [match_ids[id(m)] for m in plan.bracket.matches],
            "byes": [p.entrant_id for p in plan.bracket.byes],
        }
    return {
        "groups": [
            {
                "group_id": g.group_id,
                "participants": g.participant_ids,
                "match_ids": [match_ids[id(m)] for m in g.matches],
            }
            for g in plan.groups
        ],
        "bracket": bracket,
        "generated_at": generated_at.isoformat(),
    }


def generate_tournament_draw(session: Session, tournament_id: int, clock: Clock = utcnow) -> Tuple[Dict[str, Any], List[Match]]:
    """
    Generate and persist the draw: creates `scheduled` matches, stores the
    draw document on the tournament and moves it to `in_progress`.

    Returns:
        (draw document, created matches)
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound("Tournament not found")
    if tournament.draw_json is not None:
        raise InvalidStateTransition(f"Tournament {tournament_id} already has a draw")
    if tournament.status in (TournamentStatus.finalizing, TournamentStatus.completed):
        raise InvalidStateTransition(f"Cannot draw a tournament with status '{tournament.status}'")

    registrations = session.exec(
        select(Registration).where(Registration.tournament_id == tournament_id).order_by(Registration.id)
    ).all()
    player_ids = {r.player_id for r in registrations}
    players = {p.id: p for p in session.exec(select(Player).where(Player.id.in_(player_ids))).all()}

    plan = generate_draw(tournament, registrations, players)

    now = clock()
    created: List[Match] = []
    match_ids: Dict[int, int] = {}
    for planned in plan.matches:
        match = Match(
            tournament_id=tournament_id,
            stage=planned.stage.value,
            round_label=planned.round_label,
            group_id=planned.group_id,
            match_number=planned.match_number,
            table_number=planned.table_number,
            scheduled_at=planned.scheduled_at,
            status=MatchStatus.scheduled.value,
            player1_id=planned.player1.entrant_id,
            player2_id=planned.player2.entrant_id,
            player1_partner_id=planned.player1.partner_id,
            player2_partner_id=planned.player2.partner_id,
            created_at=now,
            updated_at=now,
        )
        session.add(match)
        session.flush()
        match_ids[id(planned)] = match.id
        created.append(match)

    draw = _draw_document(plan, match_ids, now)
    tournament.draw_json = draw
    tournament.status = TournamentStatus.in_progress.value
    session.add(tournament)
    session.commit()
    for match in created:
        session.refresh(match)

    logger.info(
        "Draw generated for tournament %s: %d groups, bracket=%s, %d matches",
        tournament_id,
        len(plan.groups),
        plan.bracket.round_label if plan.bracket else None,
        len(created),
    )
    return draw, created
