"""
Tests for the match result state machine.
"""

from datetime import datetime

import pytest
from sqlmodel import Session, select

from tabletennis.errors import InvalidStateTransition, ResultIncomplete, ValidationError
from tabletennis.models.match import Match, MatchStage, MatchStatus
from tabletennis.models.notification import Notification
from tabletennis.models.player import Player
from tabletennis.models.rating_history import RatingHistory
from tabletennis.services.match_lifecycle import (
    approve_result,
    list_player_matches,
    list_referee_matches,
    open_match_for_result,
    read_result,
    reject_result,
    submit_player_result,
    submit_referee_result,
)
from tabletennis.services.notifications import TYPE_RESULT_REJECTED, DatabaseNotificationSink

ADMIN_ID = 900
REFEREE_ID = 901

# player2 wins 3-1
UPSET_SETS = [[9, 11], [11, 7], [8, 11], [10, 12]]


@pytest.fixture(name="make_match")
def make_match_fixture(session: Session, make_tournament, make_player):
    tournament = make_tournament()

    def _make(rating1=1850, rating2=1720, status=MatchStatus.pending_result):
        player1 = make_player(rating=rating1)
        player2 = make_player(rating=rating2)
        match = Match(
            tournament_id=tournament.id,
            stage=MatchStage.groups.value,
            round_label="Group A",
            group_id="A",
            match_number=1,
            table_number=1,
            scheduled_at=datetime(2026, 3, 14, 9, 0),
            status=status.value,
            player1_id=player1.id,
            player2_id=player2.id,
        )
        session.add(match)
        session.commit()
        session.refresh(match)
        return match, player1, player2

    return _make


def _rating(session: Session, player_id: int) -> int:
    return session.exec(select(Player.rating).where(Player.id == player_id)).one()


class FailingSink:
    def notify_result_rejected(self, players, match_id, reason):
        raise RuntimeError("sms gateway down")

    def notify_result_verified(self, players, rating_change):
        raise RuntimeError("sms gateway down")


def test_open_match(session, make_match, clock):
    match, _, _ = make_match(status=MatchStatus.scheduled)
    opened = open_match_for_result(session, match.id, clock=clock)
    assert opened.status == MatchStatus.pending_result

    with pytest.raises(InvalidStateTransition):
        open_match_for_result(session, match.id, clock=clock)


def test_cannot_submit_before_open(session, make_match, clock):
    match, _, _ = make_match(status=MatchStatus.scheduled)
    with pytest.raises(InvalidStateTransition):
        submit_referee_result(session, match.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock)


class TestRefereePath:
    def test_verifies_and_applies_rating(self, session, make_match, clock):
        match, p1, p2 = make_match()

        verified = submit_referee_result(session, match.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock)

        assert verified.status == MatchStatus.verified
        assert verified.verified_by == REFEREE_ID
        assert verified.waiting_admin_approval is False
        result = read_result(verified)
        assert result.winner_id == p2.id
        assert result.sets_count == {"player1": 1, "player2": 3}
        assert set(result.validated_by) == {str(p1.id), str(p2.id)}
        assert _rating(session, p1.id) == 1835
        assert _rating(session, p2.id) == 1735

        history = session.exec(select(RatingHistory).where(RatingHistory.match_id == match.id)).all()
        assert sorted((h.player_id, h.previous_rating, h.new_rating) for h in history) == [
            (p1.id, 1850, 1835),
            (p2.id, 1720, 1735),
        ]

    def test_contradicting_winner_is_rejected(self, session, make_match, clock):
        match, p1, _ = make_match()
        with pytest.raises(ValidationError) as exc_info:
            submit_referee_result(
                session, match.id, UPSET_SETS, entered_by=REFEREE_ID, winner_id=p1.id, clock=clock
            )
        assert exc_info.value.field == "winner_id"

    def test_incomplete_result_changes_nothing(self, session, make_match, clock):
        match, p1, _ = make_match()
        with pytest.raises(ResultIncomplete):
            submit_referee_result(session, match.id, [[11, 5], [11, 10]], entered_by=REFEREE_ID, clock=clock)
        session.refresh(match)
        assert match.status == MatchStatus.pending_result
        assert match.result_json is None
        assert _rating(session, p1.id) == 1850

    def test_notification_failure_is_soft(self, session, make_match, clock):
        match, p1, _ = make_match()
        verified = submit_referee_result(
            session, match.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock, notifier=FailingSink()
        )
        assert verified.status == MatchStatus.verified
        assert _rating(session, p1.id) == 1835


class TestPlayerPath:
    def test_pending_until_approved(self, session, make_match, clock):
        match, p1, p2 = make_match()

        pending = submit_player_result(session, match.id, UPSET_SETS, entered_by=p2.id, clock=clock)
        assert pending.status == MatchStatus.pending_verification
        assert pending.waiting_admin_approval is True
        assert read_result(pending).rating_change["player2"]["change"] == 15
        assert set(read_result(pending).validated_by) == {str(p2.id)}
        assert _rating(session, p2.id) == 1720

        approved = approve_result(session, match.id, ADMIN_ID, clock=clock)
        assert approved.status == MatchStatus.verified
        assert approved.verified_by == ADMIN_ID
        assert _rating(session, p1.id) == 1835
        assert _rating(session, p2.id) == 1735

    def test_same_outcome_as_referee_path(self, session, make_match, clock):
        referee_match, r1, r2 = make_match(1600, 1555)
        player_match, q1, q2 = make_match(1600, 1555)
        sets = [[11, 4], [11, 6], [13, 11]]

        submit_referee_result(session, referee_match.id, sets, entered_by=REFEREE_ID, clock=clock)
        submit_player_result(session, player_match.id, sets, entered_by=q1.id, clock=clock)
        approve_result(session, player_match.id, ADMIN_ID, clock=clock)

        assert (_rating(session, r1.id), _rating(session, r2.id)) == (1605, 1550)
        assert (_rating(session, q1.id), _rating(session, q2.id)) == (1605, 1550)

    def test_double_approve_applies_once(self, session, make_match, clock):
        match, p1, _ = make_match()
        submit_player_result(session, match.id, UPSET_SETS, entered_by=p1.id, clock=clock)
        approve_result(session, match.id, ADMIN_ID, clock=clock)

        with pytest.raises(InvalidStateTransition):
            approve_result(session, match.id, ADMIN_ID, clock=clock)
        assert _rating(session, p1.id) == 1835

    def test_concurrent_approve_loses_compare_and_set(self, engine, session, make_match, clock):
        match, p1, _ = make_match()
        submit_player_result(session, match.id, UPSET_SETS, entered_by=p1.id, clock=clock)
        stale = session.get(Match, match.id)
        assert stale.status == MatchStatus.pending_verification

        with Session(engine) as other:
            approve_result(other, match.id, ADMIN_ID, clock=clock)

        with pytest.raises(InvalidStateTransition):
            approve_result(session, match.id, ADMIN_ID + 1, clock=clock)

        session.expire_all()
        assert _rating(session, p1.id) == 1835
        assert session.get(Match, match.id).verified_by == ADMIN_ID


class TestReject:
    def test_reject_then_resubmit(self, session, make_match, clock):
        match, p1, p2 = make_match()
        submit_player_result(session, match.id, UPSET_SETS, entered_by=p2.id, clock=clock)

        rejected = reject_result(
            session,
            match.id,
            ADMIN_ID,
            "wrong scoresheet",
            clock=clock,
            notifier=DatabaseNotificationSink(session),
        )
        assert rejected.status == MatchStatus.rejected
        assert rejected.result_json is None
        assert rejected.rejection_reason == "wrong scoresheet"
        assert _rating(session, p2.id) == 1720

        notes = session.exec(select(Notification).where(Notification.match_id == match.id)).all()
        assert {n.player_id for n in notes} == {p1.id, p2.id}
        assert all(n.type == TYPE_RESULT_REJECTED and n.requires_action for n in notes)

        resubmitted = submit_player_result(
            session, match.id, [[11, 9], [11, 9], [11, 9]], entered_by=p1.id, clock=clock
        )
        assert resubmitted.status == MatchStatus.pending_verification
        assert resubmitted.rejection_reason is None
        assert read_result(resubmitted).winner_id == p1.id

    def test_reason_is_required(self, session, make_match, clock):
        match, p1, _ = make_match()
        submit_player_result(session, match.id, UPSET_SETS, entered_by=p1.id, clock=clock)
        with pytest.raises(ValidationError):
            reject_result(session, match.id, ADMIN_ID, "   ", clock=clock)

    def test_cannot_reject_verified(self, session, make_match, clock):
        match, _, _ = make_match()
        submit_referee_result(session, match.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock)
        with pytest.raises(InvalidStateTransition):
            reject_result(session, match.id, ADMIN_ID, "late complaint", clock=clock)


def test_player_result_from_non_participant(session, make_match, make_player, clock):
    match, _, _ = make_match()
    outsider = make_player()
    with pytest.raises(ValidationError) as exc_info:
        submit_player_result(session, match.id, UPSET_SETS, entered_by=outsider.id, clock=clock)
    assert exc_info.value.field == "entered_by"
    session.refresh(match)
    assert match.status == MatchStatus.pending_result


class TestMatchQueries:
    def test_player_matches_include_partner_slots(self, session, make_match, make_player, clock):
        first, p1, _ = make_match()
        second, _, _ = make_match()
        second.player2_partner_id = p1.id
        session.add(second)
        session.commit()
        make_match()

        assert [m.id for m in list_player_matches(session, p1.id)] == [first.id, second.id]

        submit_referee_result(session, first.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock)
        verified = list_player_matches(session, p1.id, MatchStatus.verified)
        assert [m.id for m in verified] == [first.id]

    def test_referee_matches(self, session, make_match, clock):
        refereed, _, _ = make_match()
        other, p1, _ = make_match()
        submit_referee_result(session, refereed.id, UPSET_SETS, entered_by=REFEREE_ID, clock=clock)
        submit_player_result(session, other.id, UPSET_SETS, entered_by=p1.id, clock=clock)

        assert [m.id for m in list_referee_matches(session, REFEREE_ID)] == [refereed.id]
        assert list_referee_matches(session, p1.id) == []
