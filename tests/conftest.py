"""
Pytest configuration and fixtures for scoreboard tests.
"""
import os
import random
import sys
from datetime import datetime

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from scoreboard.app import create_app
from scoreboard.models import db, Tournament, Team, Match
from scoreboard.progression import ProgressionCoordinator
from shared.state_machine import MatchType, TournamentStatus


@pytest.fixture(scope='session')
def app():
    """Create application for testing.

    One app context for the whole session, so fixtures, engine calls and
    test-client requests all share the same scoped session.
    """
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    db.session.remove()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def admin_headers():
    return {'X-Admin-Pin': '1234'}


@pytest.fixture
def sample_tournament(db_session):
    """Create a sample tournament for testing."""
    tournament = Tournament(
        tournament_id='test-tournament-001',
        name='Test Tournament',
        start_date=datetime(2024, 5, 1),
        end_date=datetime(2024, 5, 2),
        status=TournamentStatus.UPCOMING.value
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


def _add_teams(tournament, count):
    teams = []
    for i in range(count):
        team = Team(
            team_id=f'team-{i + 1}',
            tournament_id=tournament.id,
            name=f'Team {i + 1}',
            players=[f'player-{i + 1}a', f'player-{i + 1}b']
        )
        db.session.add(team)
        teams.append(team)
    db.session.commit()
    return teams


@pytest.fixture
def add_teams(db_session):
    """Register `count` teams named Team 1..n in a tournament."""
    return _add_teams


@pytest.fixture
def sample_teams(sample_tournament):
    """Four teams registered in the sample tournament."""
    return _add_teams(sample_tournament, 4)


@pytest.fixture
def make_match(sample_tournament):
    """Factory for matches of the sample tournament."""
    counter = {'n': 0}

    def _make(team1_id, team2_id, match_type=MatchType.GROUP, **fields):
        counter['n'] += 1
        match = Match(
            match_id=f'test-match-{counter["n"]:03d}',
            tournament_id=sample_tournament.id,
            team1_id=team1_id,
            team2_id=team2_id,
            match_type=match_type.value,
            **fields
        )
        db.session.add(match)
        db.session.commit()
        return match

    return _make


@pytest.fixture
def coordinator():
    return ProgressionCoordinator(rng=random.Random(7))


@pytest.fixture
def play_match():
    """Record three straight sets so that `winner_id` takes the match."""

    def _play(coordinator, match_id, winner_id):
        match = Match.query.filter_by(match_id=match_id).one()
        team1_wins = winner_id == match.team1_id
        result = None
        for set_number in (1, 2, 3):
            if team1_wins:
                result = coordinator.record_set(match_id, set_number, 11, 7)
            else:
                result = coordinator.record_set(match_id, set_number, 7, 11)
            assert result.ok, result.message
        return result

    return _play


@pytest.fixture
def mock_publisher(mocker):
    """Mock event publisher."""
    from shared.pubsub import EventPublisher
    return mocker.MagicMock(spec=EventPublisher)
