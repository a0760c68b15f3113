"""
Progression coordinator.

Drives the tournament forward whenever a match reaches "completed":

    group      -> apply the stat delta once; when every group match is decided,
                  seed the semifinals (only if none exist yet)
    semifinal  -> semifinal 1 backfills semifinal 2 with its loser; once both
                  semifinals are decided the final is created
    final      -> the winner becomes the tournament winner

Each public operation runs as one transaction: the tournament row and then
the match row are locked, the whole cascade is applied, then everything is
committed together and the events collected by that operation are published.
"""
import logging
import random
from functools import partial
from typing import List, Optional

from shared.events import (
    Event, EventType, match_completed_event, set_recorded_event, stats_event,
    tournament_status_event
)
from shared.pubsub import EventPublisher
from shared.results import Result
from shared.state_machine import (
    MatchStateMachine, MatchStatus, MatchType, TournamentStateMachine, TournamentStatus,
    TransitionError, all_matches_complete_guard
)
from . import scoring
from .bracket import BracketGenerator, DEFAULT_SHUFFLE_ATTEMPTS
from .models import db, Match, Team, Tournament
from .standings import rank_teams
from .tournament_registry import parse_date

logger = logging.getLogger(__name__)

POINTS_PER_WIN = 2

# Action that moves a match into each status; nothing leads back to scheduled
MATCH_STATUS_ACTIONS = {
    MatchStatus.IN_PROGRESS: 'start',
    MatchStatus.COMPLETED: 'complete',
}


class ProgressionCoordinator:

    def __init__(self, publisher: Optional[EventPublisher] = None, strict_scores: bool = False,
                 rng: random.Random = None, shuffle_attempts: int = DEFAULT_SHUFFLE_ATTEMPTS):
        self.publisher = publisher
        self.strict_scores = strict_scores
        self.rng = rng
        self.shuffle_attempts = shuffle_attempts

    # ==================== Transaction helpers ====================

    def bracket(self, tournament_id: str) -> BracketGenerator:
        return BracketGenerator(tournament_id, rng=self.rng, shuffle_attempts=self.shuffle_attempts)

    def _commit(self, events: List[Event]):
        db.session.commit()
        if self.publisher:
            self.publisher.publish_all(events)

    @staticmethod
    def _abort(result: Result) -> Result:
        db.session.rollback()
        return result

    @staticmethod
    def _run_bracket(bracket: BracketGenerator, result: Result, events: List[Event]) -> Result:
        if result.ok:
            events.extend(bracket.drain_events())
        else:
            logger.info(f"Bracket step skipped for {bracket.tournament_id}: {result.message}")
        return result

    @staticmethod
    def _load_match(match_id: str) -> Optional[Match]:
        return Match.query.filter_by(match_id=match_id).with_for_update().populate_existing().first()

    @staticmethod
    def _load_tournament(tournament_id: str) -> Optional[Tournament]:
        return Tournament.query.filter_by(tournament_id=tournament_id).with_for_update().first()

    @staticmethod
    def _lock_tournament(pk: int) -> Optional[Tournament]:
        return Tournament.query.filter_by(id=pk).with_for_update().first()

    def _lock_match(self, match_id: str) -> Optional[Match]:
        """Lock the owning tournament row, then the match row.

        Every cascade of one tournament runs under the same lock, so the
        group-stage check sees the other matches as committed.
        """
        owner = db.session.query(Match.tournament_id).filter_by(match_id=match_id).scalar()
        if owner is None:
            return None
        self._lock_tournament(owner)
        return self._load_match(match_id)

    @staticmethod
    def _team(team_id: Optional[str]) -> Optional[Team]:
        if not team_id:
            return None
        return Team.query.filter_by(team_id=team_id).first()

    # ==================== Stat deltas ====================

    def apply_stat_delta(self, match: Match, events: List[Event]) -> bool:
        """Credit a decided group match to both teams, at most once per match."""
        if match.stats_applied:
            return False
        if match.match_type != MatchType.GROUP.value:
            return False
        if not match.is_completed or not match.winner_id or not match.team2_id:
            return False

        winner = self._team(match.winner_id)
        loser = self._team(match.loser_id)

        if winner:
            winner.matches_played = (winner.matches_played or 0) + 1
            winner.matches_won = (winner.matches_won or 0) + 1
            winner.points = (winner.points or 0) + POINTS_PER_WIN
        else:
            logger.error(f"Winner team {match.winner_id} of match {match.match_id} not found")

        if loser:
            loser.matches_played = (loser.matches_played or 0) + 1
            loser.matches_lost = (loser.matches_lost or 0) + 1
        else:
            logger.error(f"Loser team {match.loser_id} of match {match.match_id} not found")

        match.stats_applied = True
        logger.info(f"Applied group result of {match.match_id}: {match.winner_id} beat {match.loser_id}")
        events.append(stats_event(EventType.STATS_APPLIED, match.tournament.tournament_id,
                                         match.match_id, match.winner_id, match.loser_id))
        return True

    def reverse_stat_delta(self, match: Match, events: List[Event]) -> bool:
        """Undo an applied group delta; counters never drop below zero."""
        if not match.stats_applied:
            return False

        winner = self._team(match.winner_id)
        loser = self._team(match.loser_id)

        if winner:
            winner.matches_played = max(0, (winner.matches_played or 0) - 1)
            winner.matches_won = max(0, (winner.matches_won or 0) - 1)
            winner.points = max(0, (winner.points or 0) - POINTS_PER_WIN)
        if loser:
            loser.matches_played = max(0, (loser.matches_played or 0) - 1)
            loser.matches_lost = max(0, (loser.matches_lost or 0) - 1)

        match.stats_applied = False
        logger.info(f"Reversed group result of {match.match_id}")
        events.append(stats_event(EventType.STATS_REVERSED, match.tournament.tournament_id,
                                         match.match_id, match.winner_id, match.loser_id))
        return True

    # ==================== Cascade ====================

    def _start_tournament(self, tournament: Tournament, events: List[Event]):
        if tournament.status != TournamentStatus.UPCOMING.value:
            return
        sm = TournamentStateMachine.from_state_string(tournament.status)
        tournament.status = sm.transition('start').value
        events.append(tournament_status_event(
            EventType.TOURNAMENT_STARTED, tournament.tournament_id, tournament.status))

    def group_stage_complete(self, tournament: Tournament) -> bool:
        group_matches = Match.query.filter_by(tournament_id=tournament.id,
                                              match_type=MatchType.GROUP.value).all()
        return all_matches_complete_guard({
            'matches': [{'status': m.status, 'winner': m.winner_id} for m in group_matches]
        })

    def _crown(self, tournament: Tournament, final: Match, events: List[Event]):
        if tournament.winner_team_id:
            return
        tournament.winner_team_id = final.winner_id
        sm = TournamentStateMachine.from_state_string(tournament.status)
        tournament.status = sm.transition_to(TournamentStatus.COMPLETED).value
        logger.info(f"Tournament {tournament.tournament_id} completed, winner {final.winner_id}")
        events.append(tournament_status_event(
            EventType.TOURNAMENT_COMPLETED, tournament.tournament_id, tournament.status, final.winner_id))

    def _on_match_completed(self, match: Match, events: List[Event]):
        tournament = match.tournament
        tid = tournament.tournament_id
        events.append(match_completed_event(tid, match.match_id, match.winner_id, match.match_type))

        if match.match_type == MatchType.GROUP.value:
            self.apply_stat_delta(match, events)
            self._start_tournament(tournament, events)
            if (self.group_stage_complete(tournament)
                    and not tournament.semifinal1_id and not tournament.semifinal2_id):
                bracket = self.bracket(tid)
                self._run_bracket(bracket, bracket.generate_semifinals(commit=False), events)

        elif match.match_type == MatchType.SEMIFINAL.value:
            bracket = self.bracket(tid)
            if match.match_id == tournament.semifinal1_id:
                self._run_bracket(bracket, bracket.backfill_semifinal2(commit=False), events)
                semifinal2 = Match.query.filter_by(match_id=tournament.semifinal2_id).first()
                if semifinal2 and semifinal2.is_completed:
                    self._run_bracket(bracket, bracket.generate_final(commit=False), events)
            elif match.match_id == tournament.semifinal2_id:
                semifinal1 = Match.query.filter_by(match_id=tournament.semifinal1_id).first()
                if semifinal1 and semifinal1.is_completed:
                    self._run_bracket(bracket, bracket.generate_final(commit=False), events)
            else:
                logger.warning(f"Semi-final {match.match_id} is not in a bracket slot of {tid}")

        elif match.match_type == MatchType.FINAL.value:
            self._crown(tournament, match, events)

    # ==================== Match operations ====================

    def record_set(self, match_id: str, set_number, team1_score, team2_score) -> Result:
        match = self._lock_match(match_id)
        if not match:
            return Result.not_found(f"Match {match_id} not found")
        events: List[Event] = []

        result = scoring.record_set(match, set_number, team1_score, team2_score,
                                    strict=self.strict_scores)
        if not result:
            return self._abort(result)

        outcome = result.value
        events.append(set_recorded_event(
            match.tournament.tournament_id, match.match_id,
            outcome.set_number, outcome.team1_score, outcome.team2_score))
        if outcome.completed_now:
            self._on_match_completed(match, events)
        self._commit(events)

        return Result.success(match, result.message, completed=outcome.completed_now)

    def update_match(self, match_id: str, status: str = None, winner_id: str = None,
                     match_date=None) -> Result:
        """Direct update of status/winner/date, as used by manual result entry."""
        match = self._lock_match(match_id)
        if not match:
            return Result.not_found(f"Match {match_id} not found")
        events: List[Event] = []

        if match_date is not None:
            parsed = parse_date(match_date)
            if parsed is None:
                return self._abort(Result.invalid_input(f"Invalid match date {match_date!r}"))
            match.match_date = parsed

        if status is None:
            self._commit(events)
            return Result.success(match, "Match updated", changed=match_date is not None)

        try:
            target = MatchStatus(status)
        except ValueError:
            return self._abort(Result.invalid_input(f"Unknown match status {status!r}"))

        if target.value == match.status:
            if match.is_completed and winner_id and winner_id != match.winner_id:
                return self._abort(Result.precondition_failed(
                    f"Match {match_id} is already completed with winner {match.winner_id}"))
            self._commit(events)
            return Result.success(match, f"Match {match_id} is already {match.status}", changed=False)

        if target == MatchStatus.COMPLETED:
            if match.team2_id is None:
                return self._abort(Result.invalid_input(
                    "Match must have both teams to complete", code='missing_opponent'))
            if not winner_id:
                return self._abort(Result.invalid_input("Winner is required to complete a match"))
            if winner_id not in (match.team1_id, match.team2_id):
                return self._abort(Result.invalid_input(f"Winner {winner_id} is not in this match"))

        if target not in MATCH_STATUS_ACTIONS:
            return self._abort(Result.precondition_failed(
                f"Match {match_id} cannot go back to {target.value}"))

        sm = MatchStateMachine.from_state_string(match.status)
        try:
            match.status = sm.transition(MATCH_STATUS_ACTIONS[target]).value
        except TransitionError as e:
            return self._abort(Result.precondition_failed(e.reason))

        if target == MatchStatus.COMPLETED:
            match.winner_id = winner_id
            self._on_match_completed(match, events)
        self._commit(events)

        return Result.success(match, f"Match {match_id} is now {match.status}", changed=True)

    def delete_match(self, match_id: str) -> Result:
        match = self._lock_match(match_id)
        if not match:
            return Result.not_found(f"Match {match_id} not found")
        events: List[Event] = []

        tournament = match.tournament
        if tournament.status == TournamentStatus.COMPLETED.value:
            return self._abort(Result.precondition_failed(
                "Cannot delete matches of a completed tournament"))

        reversed_stats = self.reverse_stat_delta(match, events)

        cleared_winner = False
        if (match.match_type == MatchType.FINAL.value and match.is_completed
                and tournament.winner_team_id and tournament.winner_team_id == match.winner_id):
            tournament.winner_team_id = None
            cleared_winner = True
            logger.info(f"Cleared winner of {tournament.tournament_id} set by final {match_id}")

        if tournament.semifinal1_id == match_id:
            tournament.semifinal1_id = None
        if tournament.semifinal2_id == match_id:
            tournament.semifinal2_id = None
        if tournament.final_match_id == match_id:
            tournament.final_match_id = None

        events.append(Event(type=EventType.MATCH_DELETED, tournament_id=tournament.tournament_id,
                            data={'match_id': match_id, 'match_type': match.match_type}))
        db.session.delete(match)
        self._commit(events)

        return Result.success(None, "Match deleted successfully",
                              reversed_stats=reversed_stats, cleared_winner=cleared_winner)

    # ==================== Bracket operations ====================

    def _bracket_operation(self, tournament_id: str, operation: str, events: List[Event] = None,
                           **kwargs) -> Result:
        events = [] if events is None else events
        bracket = self.bracket(tournament_id)
        result = getattr(bracket, operation)(commit=False, **kwargs)
        if not result:
            return self._abort(result)
        events.extend(bracket.drain_events())
        self._commit(events)
        return result

    def generate_group_matches(self, tournament_id: str, replace: bool = False) -> Result:
        events: List[Event] = []
        return self._bracket_operation(tournament_id, 'generate_group_matches', events, replace=replace,
                                       before_delete=partial(self.reverse_stat_delta, events=events))

    def add_group_match(self, tournament_id: str, team1_id: str, team2_id: str) -> Result:
        return self._bracket_operation(tournament_id, 'add_group_match',
                                       team1_id=team1_id, team2_id=team2_id)

    def generate_semifinals(self, tournament_id: str, regenerate: bool = False) -> Result:
        return self._bracket_operation(tournament_id, 'generate_semifinals', regenerate=regenerate)

    def backfill_semifinal2(self, tournament_id: str) -> Result:
        return self._bracket_operation(tournament_id, 'backfill_semifinal2')

    def generate_final(self, tournament_id: str) -> Result:
        return self._bracket_operation(tournament_id, 'generate_final')

    # ==================== Standings ====================

    def rank(self, tournament_id: str) -> Result:
        tournament = Tournament.query.filter_by(tournament_id=tournament_id).first()
        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")

        teams = Team.query.filter_by(tournament_id=tournament.id).order_by(Team.id).all()
        group_matches = Match.query.filter_by(tournament_id=tournament.id,
                                              match_type=MatchType.GROUP.value).all()
        return Result.success(rank_teams(teams, group_matches))

    def recalculate_stats(self, tournament_id: str) -> Result:
        """Rebuild every team's accumulators from the completed group matches."""
        tournament = self._load_tournament(tournament_id)
        if not tournament:
            return Result.not_found(f"Tournament {tournament_id} not found")

        teams = Team.query.filter_by(tournament_id=tournament.id).all()
        for team in teams:
            team.matches_played = 0
            team.matches_won = 0
            team.matches_lost = 0
            team.points = 0

        group_matches = Match.query.filter_by(tournament_id=tournament.id,
                                              match_type=MatchType.GROUP.value).all()
        applied = 0
        for match in group_matches:
            match.stats_applied = False
            # per-match events are dropped; one summary event replaces them
            if self.apply_stat_delta(match, []):
                applied += 1

        self._commit([Event(type=EventType.STATS_RECALCULATED, tournament_id=tournament_id,
                            data={'matches_counted': applied})])

        logger.info(f"Recalculated statistics of {tournament_id} from {applied} group match(es)")
        return Result.success(teams, "Team statistics recalculated", matches_counted=applied)
