"""
Unit tests for ProgressionCoordinator.
Tests: record_set, update_match, the completion cascade, stat deltas,
       delete_match, recalculate_stats, rank
"""
import pytest

from scoreboard.models import db, Match, Team, Tournament
from scoreboard.progression import ProgressionCoordinator
from shared.events import EventType
from shared.results import FailureKind
from shared.state_machine import MatchStatus, MatchType, TournamentStatus

TID = 'test-tournament-001'


def team(team_id):
    return Team.query.filter_by(team_id=team_id).one()


def tournament():
    return Tournament.query.filter_by(tournament_id=TID).one()


def match(match_id):
    return Match.query.filter_by(match_id=match_id).one()


def stats(team_id):
    t = team(team_id)
    return t.matches_played, t.matches_won, t.matches_lost, t.points


def play_group_stage(coordinator, play_match):
    """Lower-numbered team wins every group match: points 6, 4, 2, 0."""
    coordinator.generate_group_matches(TID)
    group = Match.query.filter_by(match_type=MatchType.GROUP.value).order_by(Match.sequence).all()
    for m in group:
        play_match(coordinator, m.match_id, min(m.team1_id, m.team2_id))


class TestRecordSet:

    def test_unknown_match(self, coordinator, db_session):
        result = coordinator.record_set('missing', 1, 11, 5)
        assert result.kind == FailureKind.NOT_FOUND

    def test_partial_match_leaves_stats(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.record_set(m.match_id, 1, 11, 5)

        assert result.ok
        assert result.details['completed'] is False
        assert match(m.match_id).status == MatchStatus.IN_PROGRESS.value
        assert stats('team-1') == (0, 0, 0, 0)

    def test_completion_applies_stats(self, coordinator, sample_teams, make_match, play_match):
        m = make_match('team-1', 'team-2')
        result = play_match(coordinator, m.match_id, 'team-2')

        assert result.details['completed'] is True
        assert stats('team-2') == (1, 1, 0, 2)
        assert stats('team-1') == (1, 0, 1, 0)
        assert match(m.match_id).stats_applied is True

    def test_correction_does_not_reapply(self, coordinator, sample_teams, make_match, play_match):
        m = make_match('team-1', 'team-2')
        play_match(coordinator, m.match_id, 'team-1')

        for _ in range(3):
            assert coordinator.record_set(m.match_id, 4, 11, 9).ok

        assert stats('team-1') == (1, 1, 0, 2)
        assert stats('team-2') == (1, 0, 1, 0)

    def test_invalid_input_not_published(self, sample_teams, make_match, mock_publisher):
        coordinator = ProgressionCoordinator(publisher=mock_publisher)
        m = make_match('team-3', None, MatchType.SEMIFINAL)

        result = coordinator.record_set(m.match_id, 1, 11, 5)

        assert result.kind == FailureKind.INVALID_INPUT
        mock_publisher.publish_all.assert_not_called()

    def test_events_published_after_commit(self, sample_teams, make_match, mock_publisher):
        coordinator = ProgressionCoordinator(publisher=mock_publisher)
        m = make_match('team-1', 'team-2')

        coordinator.record_set(m.match_id, 1, 11, 5)
        coordinator.record_set(m.match_id, 2, 11, 5)
        coordinator.record_set(m.match_id, 3, 11, 5)

        last_batch = mock_publisher.publish_all.call_args[0][0]
        assert [e.type for e in last_batch] == [
            EventType.SET_RECORDED,
            EventType.MATCH_COMPLETED,
            EventType.STATS_APPLIED,
            EventType.TOURNAMENT_STARTED,
            # the only group match is done, so the group stage is over
            EventType.SEMIFINALS_GENERATED,
        ]

    def test_strict_scores(self, sample_teams, make_match):
        coordinator = ProgressionCoordinator(strict_scores=True)
        m = make_match('team-1', 'team-2')

        result = coordinator.record_set(m.match_id, 1, 'abc', 5)

        assert result.details['code'] == 'invalid_score'
        assert match(m.match_id).scores == []


class TestUpdateMatch:

    def test_complete_with_winner(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, status='completed', winner_id='team-1')

        assert result.ok
        assert match(m.match_id).winner_id == 'team-1'
        assert stats('team-1') == (1, 1, 0, 2)

    def test_complete_twice_is_noop(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        coordinator.update_match(m.match_id, status='completed', winner_id='team-1')

        result = coordinator.update_match(m.match_id, status='completed', winner_id='team-1')

        assert result.ok
        assert result.details['changed'] is False
        assert stats('team-1') == (1, 1, 0, 2)

    def test_different_winner_refused(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        coordinator.update_match(m.match_id, status='completed', winner_id='team-1')

        result = coordinator.update_match(m.match_id, status='completed', winner_id='team-2')
        assert result.kind == FailureKind.PRECONDITION_FAILED

    def test_winner_required(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, status='completed')
        assert result.kind == FailureKind.INVALID_INPUT

    def test_winner_must_play(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, status='completed', winner_id='team-3')

        assert result.kind == FailureKind.INVALID_INPUT
        assert match(m.match_id).status == MatchStatus.SCHEDULED.value

    def test_cannot_complete_without_opponent(self, coordinator, sample_teams, make_match):
        m = make_match('team-3', None, MatchType.SEMIFINAL)
        result = coordinator.update_match(m.match_id, status='completed', winner_id='team-3')
        assert result.details['code'] == 'missing_opponent'

    def test_cannot_leave_completed(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        coordinator.update_match(m.match_id, status='completed', winner_id='team-1')

        result = coordinator.update_match(m.match_id, status='scheduled')

        assert result.kind == FailureKind.PRECONDITION_FAILED
        assert match(m.match_id).status == MatchStatus.COMPLETED.value

    def test_start(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, status='in-progress')

        assert result.ok
        assert match(m.match_id).status == MatchStatus.IN_PROGRESS.value

    def test_unknown_status(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, status='paused')
        assert result.kind == FailureKind.INVALID_INPUT

    def test_match_date(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, match_date='2024-05-01T10:30:00')

        assert result.ok
        assert match(m.match_id).match_date.hour == 10

    def test_bad_match_date(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.update_match(m.match_id, match_date='tomorrow')
        assert result.kind == FailureKind.INVALID_INPUT


class TestCascade:

    def test_semifinals_after_group_stage(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)

        t = tournament()
        assert [stats(f'team-{i}')[3] for i in range(1, 5)] == [6, 4, 2, 0]
        semi1, semi2 = match(t.semifinal1_id), match(t.semifinal2_id)
        assert (semi1.team1_id, semi1.team2_id) == ('team-1', 'team-2')
        assert (semi2.team1_id, semi2.team2_id) == ('team-3', None)

    def test_semifinals_not_before_group_stage_done(self, coordinator, sample_teams, play_match):
        coordinator.generate_group_matches(TID)
        first = Match.query.filter_by(match_type='group').order_by(Match.sequence).first()
        play_match(coordinator, first.match_id, first.team1_id)

        assert tournament().semifinal1_id is None
        assert Match.query.filter_by(match_type='semifinal').count() == 0

    def test_existing_semifinals_not_regenerated(self, coordinator, sample_teams, play_match):
        coordinator.generate_group_matches(TID)
        coordinator.generate_semifinals(TID)
        before = (tournament().semifinal1_id, tournament().semifinal2_id)

        for m in Match.query.filter_by(match_type='group').all():
            play_match(coordinator, m.match_id, m.team1_id)

        assert (tournament().semifinal1_id, tournament().semifinal2_id) == before
        assert Match.query.filter_by(match_type='semifinal').count() == 2

    def test_two_teams_skip_semifinals(self, coordinator, sample_tournament, add_teams, play_match):
        add_teams(sample_tournament, 2)
        coordinator.generate_group_matches(TID)
        only = Match.query.filter_by(match_type='group').one()

        result = play_match(coordinator, only.match_id, 'team-1')

        assert result.ok
        assert Match.query.filter_by(match_type='semifinal').count() == 0

    def test_knockout_to_winner(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)
        group_stats = {f'team-{i}': stats(f'team-{i}') for i in range(1, 5)}

        play_match(coordinator, tournament().semifinal1_id, 'team-1')
        semi2 = match(tournament().semifinal2_id)
        assert semi2.team2_id == 'team-2'
        assert tournament().final_match_id is None

        play_match(coordinator, semi2.match_id, 'team-3')
        final = match(tournament().final_match_id)
        assert (final.team1_id, final.team2_id) == ('team-1', 'team-3')

        play_match(coordinator, final.match_id, 'team-1')
        t = tournament()
        assert t.winner_team_id == 'team-1'
        assert t.status == TournamentStatus.COMPLETED.value

        # knockout results never touch the group accumulators
        assert {tid: stats(tid) for tid in group_stats} == group_stats

    def test_retried_bracket_calls(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)
        play_match(coordinator, tournament().semifinal1_id, 'team-2')

        assert coordinator.backfill_semifinal2(TID).details['changed'] is False
        assert coordinator.generate_final(TID).kind == FailureKind.PRECONDITION_FAILED
        assert match(tournament().semifinal2_id).team2_id == 'team-1'

    def test_final_keeps_existing_winner(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)
        play_match(coordinator, tournament().semifinal1_id, 'team-1')
        play_match(coordinator, tournament().semifinal2_id, 'team-3')
        t = tournament()
        t.winner_team_id = 'team-4'
        db.session.commit()

        play_match(coordinator, t.final_match_id, 'team-3')

        assert tournament().winner_team_id == 'team-4'


class TestDeleteMatch:

    def test_reverses_stats(self, coordinator, sample_teams, make_match, play_match):
        m = make_match('team-1', 'team-2')
        play_match(coordinator, m.match_id, 'team-1')

        result = coordinator.delete_match(m.match_id)

        assert result.details['reversed_stats'] is True
        assert stats('team-1') == (0, 0, 0, 0)
        assert stats('team-2') == (0, 0, 0, 0)
        assert Match.query.filter_by(match_id=m.match_id).first() is None

    def test_counters_floor_at_zero(self, coordinator, sample_teams, make_match, play_match):
        m = make_match('team-1', 'team-2')
        play_match(coordinator, m.match_id, 'team-1')
        for t in Team.query.all():
            t.matches_played = t.matches_won = t.matches_lost = t.points = 0
        db.session.commit()

        coordinator.delete_match(m.match_id)

        assert stats('team-1') == (0, 0, 0, 0)
        assert stats('team-2') == (0, 0, 0, 0)

    def test_unplayed_match(self, coordinator, sample_teams, make_match):
        m = make_match('team-1', 'team-2')
        result = coordinator.delete_match(m.match_id)
        assert result.details['reversed_stats'] is False

    def test_unknown_match(self, coordinator, db_session):
        assert coordinator.delete_match('missing').kind == FailureKind.NOT_FOUND

    def test_completed_tournament_refused(self, coordinator, sample_teams, make_match, sample_tournament):
        m = make_match('team-1', 'team-2')
        sample_tournament.status = TournamentStatus.COMPLETED.value
        db.session.commit()

        result = coordinator.delete_match(m.match_id)
        assert result.kind == FailureKind.PRECONDITION_FAILED

    def test_clears_slot(self, coordinator, sample_teams):
        coordinator.generate_semifinals(TID)
        semi2_id = tournament().semifinal2_id

        coordinator.delete_match(semi2_id)

        assert tournament().semifinal2_id is None
        assert tournament().semifinal1_id is not None

    def test_clears_winner_from_deleted_final(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)
        play_match(coordinator, tournament().semifinal1_id, 'team-1')
        play_match(coordinator, tournament().semifinal2_id, 'team-3')
        final_id = tournament().final_match_id
        play_match(coordinator, final_id, 'team-1')
        t = tournament()
        t.status = TournamentStatus.ONGOING.value
        db.session.commit()

        result = coordinator.delete_match(final_id)

        assert result.details['cleared_winner'] is True
        t = tournament()
        assert t.winner_team_id is None
        assert t.final_match_id is None


class TestGroupMatchesAndRecalculate:

    def test_replace_reverses_stats(self, coordinator, sample_teams, play_match):
        coordinator.generate_group_matches(TID)
        first = Match.query.filter_by(match_type='group').order_by(Match.sequence).first()
        play_match(coordinator, first.match_id, first.team1_id)

        result = coordinator.generate_group_matches(TID, replace=True)

        assert result.ok
        assert all(stats(f'team-{i}') == (0, 0, 0, 0) for i in range(1, 5))

    def test_replace_needed(self, coordinator, sample_teams):
        coordinator.generate_group_matches(TID)
        result = coordinator.generate_group_matches(TID)
        assert result.kind == FailureKind.ALREADY_EXISTS

    def test_recalculate(self, coordinator, sample_teams, make_match, play_match):
        a = make_match('team-1', 'team-2')
        b = make_match('team-1', 'team-3')
        play_match(coordinator, a.match_id, 'team-1')
        play_match(coordinator, b.match_id, 'team-3')
        t1 = team('team-1')
        t1.points = 99
        t1.matches_played = 7
        db.session.commit()

        result = coordinator.recalculate_stats(TID)

        assert result.ok
        assert result.details['matches_counted'] == 2
        assert stats('team-1') == (2, 1, 1, 2)
        assert stats('team-3') == (1, 1, 0, 2)
        assert stats('team-4') == (0, 0, 0, 0)

    def test_recalculate_unknown(self, coordinator, db_session):
        assert coordinator.recalculate_stats('nope').kind == FailureKind.NOT_FOUND


class TestRank:

    def test_rank(self, coordinator, sample_teams, play_match):
        play_group_stage(coordinator, play_match)

        result = coordinator.rank(TID)

        assert [s.team.team_id for s in result.value] == ['team-1', 'team-2', 'team-3', 'team-4']
        assert result.value[0].net_rate == pytest.approx(4.0)

    def test_rank_unknown(self, coordinator, db_session):
        assert coordinator.rank('nope').kind == FailureKind.NOT_FOUND


class TestIsolation:

    def test_events_not_shared_between_operations(self, sample_teams, make_match, mock_publisher):
        coordinator = ProgressionCoordinator(publisher=mock_publisher)
        a = make_match('team-1', 'team-2', status=MatchStatus.COMPLETED.value, winner_id='team-1')
        b = make_match('team-3', 'team-4')
        buffered = []
        coordinator.apply_stat_delta(a, buffered)

        coordinator.record_set(b.match_id, 1, 11, 5)

        published = mock_publisher.publish_all.call_args[0][0]
        assert [(e.type, e.data['match_id']) for e in published] == [(EventType.SET_RECORDED, b.match_id)]
        assert [e.type for e in buffered] == [EventType.STATS_APPLIED]

    def test_failed_operation_keeps_nothing(self, sample_teams, make_match, mock_publisher):
        coordinator = ProgressionCoordinator(publisher=mock_publisher)
        a = make_match('team-1', 'team-2')
        b = make_match('team-3', 'team-4')

        assert coordinator.record_set(a.match_id, 0, 11, 5).kind == FailureKind.INVALID_INPUT
        coordinator.record_set(b.match_id, 1, 11, 5)

        mock_publisher.publish_all.assert_called_once()
        published = mock_publisher.publish_all.call_args[0][0]
        assert [e.data['match_id'] for e in published] == [b.match_id]

    def test_tournament_locked_before_match(self, coordinator, sample_teams, make_match, mocker):
        m = make_match('team-1', 'team-2')
        order = []
        lock_tournament = coordinator._lock_tournament
        load_match = coordinator._load_match
        mocker.patch.object(coordinator, '_lock_tournament',
                            side_effect=lambda pk: order.append('tournament') or lock_tournament(pk))
        mocker.patch.object(coordinator, '_load_match',
                            side_effect=lambda mid: order.append('match') or load_match(mid))

        coordinator.record_set(m.match_id, 1, 11, 5)
        coordinator.update_match(m.match_id, status='completed', winner_id='team-1')
        coordinator.delete_match(m.match_id)

        assert order == ['tournament', 'match'] * 3

    def test_unknown_match_takes_no_lock(self, coordinator, db_session, mocker):
        lock = mocker.patch.object(coordinator, '_lock_tournament')
        assert coordinator.delete_match('missing').kind == FailureKind.NOT_FOUND
        lock.assert_not_called()
