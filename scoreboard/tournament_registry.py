import logging
from datetime import datetime
from typing import List, Optional

from shared.events import EventType, tournament_status_event
from shared.pubsub import EventPublisher
from shared.results import Result
from shared.state_machine import TournamentStateMachine, TournamentStatus, TransitionError
from .models import db, Match, Team, Tournament
from .name_generator import generate_team_id, generate_tournament_id

logger = logging.getLogger(__name__)

STATUS_EVENTS = {
    TournamentStatus.ONGOING: EventType.TOURNAMENT_STARTED,
    TournamentStatus.COMPLETED: EventType.TOURNAMENT_COMPLETED,
}


def parse_date(value) -> Optional[datetime]:
    """ISO 8601 date or datetime; None when missing or unparseable."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


class TournamentRegistry:
    """
    Manages tournament and team records:
    - Create/update/delete tournaments
    - Register and remove teams
    - Tournament listings and history
    """

    def __init__(self, publisher: EventPublisher = None):
        self.publisher = publisher

    def _publish(self, event):
        if self.publisher:
            self.publisher.publish(event)

    # ==================== Tournaments ====================

    def create_tournament(self, name: str, start_date, end_date, description: str = None) -> Result:
        """Create a new tournament in upcoming state."""
        if not name or not str(name).strip():
            return Result.invalid_input("Tournament name is required")

        start = parse_date(start_date)
        end = parse_date(end_date)
        if start is None or end is None:
            return Result.invalid_input("startDate and endDate must be valid ISO dates")
        if end < start:
            return Result.invalid_input("endDate must not be before startDate")

        tournament = Tournament(
            tournament_id=generate_tournament_id(),
            name=str(name).strip(),
            description=description,
            start_date=start,
            end_date=end,
            status=TournamentStatus.UPCOMING.value
        )

        db.session.add(tournament)
        db.session.commit()

        logger.info(f"Created tournament {tournament.tournament_id} ({tournament.name})")
        return Result.success(tournament, "Tournament created")

    def get_tournament(self, tournament_id: str) -> Optional[Tournament]:
        """Get tournament by its public ID."""
        return Tournament.query.filter_by(tournament_id=tournament_id).first()

    def list_tournaments(self, status: str = None, limit: int = 50, offset: int = 0) -> List[Tournament]:
        query = Tournament.query

        if status:
            query = query.filter_by(status=status)

        query = query.order_by(Tournament.start_date.desc(), Tournament.id.desc())
        return query.offset(offset).limit(limit).all()

    def tournament_history(self, limit: int = 50) -> List[Tournament]:
        """Completed tournaments, most recently finished first."""
        return (Tournament.query
                .filter_by(status=TournamentStatus.COMPLETED.value)
                .order_by(Tournament.end_date.desc(), Tournament.id.desc())
                .limit(limit)
                .all())

    def update_tournament(self, tournament_id: str, name: str = None, description: str = None,
                          start_date=None, end_date=None, status: str = None) -> Result:
        tournament = (Tournament.query
                      .filter_by(tournament_id=tournament_id)
                      .with_for_update()
                      .first())
        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")

        if name is not None:
            if not str(name).strip():
                db.session.rollback()
                return Result.invalid_input("Tournament name cannot be empty")
            tournament.name = str(name).strip()

        if description is not None:
            tournament.description = description

        for field, value in (('start_date', start_date), ('end_date', end_date)):
            if value is None:
                continue
            parsed = parse_date(value)
            if parsed is None:
                db.session.rollback()
                return Result.invalid_input(f"{field} must be a valid ISO date")
            setattr(tournament, field, parsed)

        if tournament.end_date < tournament.start_date:
            db.session.rollback()
            return Result.invalid_input("endDate must not be before startDate")

        event = None
        if status is not None and status != tournament.status:
            try:
                target = TournamentStatus(status)
            except ValueError:
                db.session.rollback()
                return Result.invalid_input(f"Unknown tournament status {status!r}")

            sm = TournamentStateMachine.from_state_string(tournament.status)
            try:
                old_status = sm.state
                tournament.status = sm.transition_to(target).value
            except TransitionError as e:
                db.session.rollback()
                return Result.precondition_failed(e.reason)

            event_type = STATUS_EVENTS.get(target)
            if old_status == TournamentStatus.COMPLETED:
                event_type = EventType.TOURNAMENT_REOPENED
            event = tournament_status_event(event_type, tournament_id, tournament.status,
                                            tournament.winner_team_id)

        db.session.commit()
        if event:
            self._publish(event)

        return Result.success(tournament, "Tournament updated")

    def delete_tournament(self, tournament_id: str) -> Result:
        """Delete a tournament together with its teams and matches."""
        tournament = self.get_tournament(tournament_id)

        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")

        teams_deleted = len(tournament.teams)
        matches_deleted = len(tournament.matches)

        db.session.delete(tournament)
        db.session.commit()

        logger.info(f"Deleted tournament {tournament_id} with {teams_deleted} teams "
                    f"and {matches_deleted} matches")
        return Result.success(
            None,
            "Tournament deleted",
            teams_deleted=teams_deleted,
            matches_deleted=matches_deleted
        )

    # ==================== Teams ====================

    def list_teams(self, tournament_id: str) -> Result:
        tournament = self.get_tournament(tournament_id)
        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")
        return Result.success(list(tournament.teams))

    def register_team(self, tournament_id: str, name: str, players: list) -> Result:
        tournament = self.get_tournament(tournament_id)
        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")

        if tournament.status == TournamentStatus.COMPLETED.value:
            return Result.precondition_failed("Cannot register teams in a completed tournament")

        if not name or not str(name).strip():
            return Result.invalid_input("Team name is required")

        if not isinstance(players, list) or not players:
            return Result.invalid_input("At least one player is required")

        team = Team(
            team_id=generate_team_id(),
            tournament_id=tournament.id,
            name=str(name).strip(),
            players=[str(p) for p in players]
        )
        db.session.add(team)
        db.session.commit()

        logger.info(f"Registered team {team.team_id} ({team.name}) in {tournament_id}")
        return Result.success(team, "Team registered")

    def update_team(self, team_id: str, name: str = None, players: list = None) -> Result:
        """Rename a team or replace its players; group statistics are not editable here."""
        team = Team.query.filter_by(team_id=team_id).with_for_update().first()
        if not team:
            return Result.not_found(f"Team {team_id} not found")

        if team.tournament.status == TournamentStatus.COMPLETED.value:
            db.session.rollback()
            return Result.precondition_failed("Cannot edit teams of a completed tournament")

        if name is not None:
            if not str(name).strip():
                db.session.rollback()
                return Result.invalid_input("Team name is required")
            team.name = str(name).strip()

        if players is not None:
            if not isinstance(players, list) or not players:
                db.session.rollback()
                return Result.invalid_input("At least one player is required")
            team.players = [str(p) for p in players]

        changed = name is not None or players is not None
        db.session.commit()

        if changed:
            logger.info(f"Updated team {team_id} ({team.name})")
        return Result.success(team, "Team updated", changed=changed)

    def remove_team(self, team_id: str) -> Result:
        team = Team.query.filter_by(team_id=team_id).first()
        if not team:
            return Result.not_found(f"Team {team_id} not found")

        tournament = team.tournament
        if tournament.status == TournamentStatus.COMPLETED.value:
            return Result.precondition_failed("Cannot remove teams from a completed tournament")

        referenced = (Match.query
                      .filter(Match.tournament_id == tournament.id)
                      .filter((Match.team1_id == team_id) | (Match.team2_id == team_id))
                      .count())
        if referenced:
            return Result.precondition_failed(
                f"Team {team_id} is scheduled in {referenced} match(es)",
                matches=referenced
            )

        db.session.delete(team)
        db.session.commit()

        logger.info(f"Removed team {team_id} from {tournament.tournament_id}")
        return Result.success(None, "Team removed")
