"""
Tests for tournament finalization: aggregation of frozen rating changes,
one write per player, and the ranking recompute that follows.
"""

from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from tabletennis.clock import fixed_clock
from tabletennis.errors import AlreadyFinalized, InvalidStateTransition, NotFound, NoVerifiedMatches
from tabletennis.models.match import Match, MatchStage, MatchStatus
from tabletennis.models.player import Player
from tabletennis.models.tournament import Tournament, TournamentStatus
from tabletennis.services.finalizer import aggregate_rating_changes, finalize_tournament
from tabletennis.services.match_lifecycle import submit_referee_result
from tabletennis.services.rankings import TREND_NEW, get_rankings

T0 = datetime(2026, 3, 14, 9, 0)


@pytest.fixture(name="tournament")
def tournament_fixture(make_tournament):
    return make_tournament(status=TournamentStatus.in_progress)


@pytest.fixture(name="play")
def play_fixture(session: Session, tournament):
    """Create a match between two players and verify it via the referee path."""
    counter = {"n": 0}

    def _play(player1, player2, sets):
        counter["n"] += 1
        match = Match(
            tournament_id=tournament.id,
            stage=MatchStage.groups.value,
            round_label="Group A",
            group_id="A",
            match_number=counter["n"],
            table_number=1,
            scheduled_at=T0,
            status=MatchStatus.pending_result.value,
            player1_id=player1.id,
            player2_id=player2.id,
        )
        session.add(match)
        session.commit()
        clock = fixed_clock(T0 + timedelta(minutes=counter["n"]))
        return submit_referee_result(session, match.id, sets, entered_by=901, clock=clock)

    return _play


P1_WINS = [[11, 5], [11, 6], [11, 7]]
P2_WINS = [[5, 11], [6, 11], [7, 11]]


def test_aggregates_in_verification_order(session, make_player, play):
    a = make_player(rating=1850)
    b = make_player(rating=1720)
    c = make_player(rating=1500)
    m1 = play(a, b, P2_WINS)  # upset: a -15, b +15
    m2 = play(b, c, P1_WINS)  # b 1735 vs c 1500, gap 235: b +2

    totals = aggregate_rating_changes([m1, m2])

    assert totals[a.id].old_rating == 1850
    assert totals[a.id].new_rating == 1835
    assert totals[b.id].old_rating == 1720
    assert totals[b.id].total_change == 17
    assert (totals[b.id].wins, totals[b.id].losses, totals[b.id].matches) == (2, 0, 2)
    assert totals[c.id].new_rating == 1498


def test_finalize_writes_totals_and_recomputes_rankings(session, make_player, play, tournament, clock):
    a = make_player(rating=1850)
    b = make_player(rating=1720)
    c = make_player(rating=1500)
    play(a, b, P2_WINS)
    play(b, c, P1_WINS)

    result = finalize_tournament(session, tournament.id, clock=clock)

    assert result.players_updated == 3
    assert result.matches_counted == 2
    assert result.rankings_recalculated is True
    assert result.ranking_error is None

    session.expire_all()
    ratings = {p.id: p for p in (session.get(Player, a.id), session.get(Player, b.id), session.get(Player, c.id))}
    assert ratings[a.id].rating == 1835
    assert ratings[b.id].rating == 1737
    assert ratings[c.id].rating == 1498
    assert ratings[b.id].tournaments_played == 1
    assert (ratings[a.id].wins, ratings[a.id].losses) == (0, 1)

    finished = session.get(Tournament, tournament.id)
    assert finished.status == TournamentStatus.completed
    assert finished.completed_at == clock()

    ranking = get_rankings(session, "singles_male")
    assert [e["player_id"] for e in ranking] == [a.id, b.id, c.id]
    assert all(e["trend"] == TREND_NEW for e in ranking)


def test_second_finalize_is_refused(session, make_player, play, tournament, clock):
    a = make_player(rating=1500)
    b = make_player(rating=1500)
    play(a, b, P1_WINS)
    finalize_tournament(session, tournament.id, clock=clock)

    with pytest.raises(AlreadyFinalized):
        finalize_tournament(session, tournament.id, clock=clock)

    session.expire_all()
    assert session.get(Player, a.id).rating == 1508
    assert session.get(Player, a.id).tournaments_played == 1


def test_no_verified_matches_releases_claim(session, tournament, clock):
    with pytest.raises(NoVerifiedMatches):
        finalize_tournament(session, tournament.id, clock=clock)
    session.expire_all()
    assert session.get(Tournament, tournament.id).status == TournamentStatus.in_progress


def test_unknown_tournament(session, clock):
    with pytest.raises(NotFound):
        finalize_tournament(session, 4242, clock=clock)


def test_ranking_failure_keeps_ratings(session, make_player, play, tournament, clock):
    a = make_player(rating=1500)
    b = make_player(rating=1500)
    play(a, b, P1_WINS)

    def broken(session, category):
        raise RuntimeError("ranking store unavailable")

    result = finalize_tournament(session, tournament.id, clock=clock, recalculate=broken)

    assert result.rankings_recalculated is False
    assert result.ranking_error == "ranking store unavailable"
    session.expire_all()
    assert session.get(Tournament, tournament.id).status == TournamentStatus.completed
    assert session.get(Player, a.id).rating == 1508


def test_finalize_refused_while_another_pass_holds_the_claim(session, make_player, play, tournament, clock):
    a = make_player(rating=1500)
    b = make_player(rating=1500)
    play(a, b, P1_WINS)

    claimed = session.get(Tournament, tournament.id)
    claimed.status = TournamentStatus.finalizing.value
    session.add(claimed)
    session.commit()

    with pytest.raises(InvalidStateTransition):
        finalize_tournament(session, tournament.id, clock=clock)

    session.expire_all()
    assert session.get(Tournament, tournament.id).status == TournamentStatus.finalizing
    player = session.get(Player, a.id)
    assert (player.rating, player.tournaments_played, player.wins) == (1508, 0, 0)


def test_stale_tournament_loses_the_claim(engine, session, make_player, play, tournament, clock):
    a = make_player(rating=1500)
    b = make_player(rating=1500)
    play(a, b, P1_WINS)

    stale = session.get(Tournament, tournament.id)
    assert stale.status == TournamentStatus.in_progress

    with Session(engine) as other:
        competing = other.get(Tournament, tournament.id)
        competing.status = TournamentStatus.finalizing.value
        other.add(competing)
        other.commit()

    with pytest.raises(InvalidStateTransition):
        finalize_tournament(session, tournament.id, clock=clock)

    session.expire_all()
    assert session.get(Tournament, tournament.id).status == TournamentStatus.finalizing
    assert session.get(Player, a.id).tournaments_played == 0
