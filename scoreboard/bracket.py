import logging
import random
from itertools import combinations
from typing import Callable, List, Optional, Sequence, Tuple

from shared.events import Event, EventType, bracket_event, tournament_status_event
from shared.pubsub import EventPublisher
from shared.results import Result
from shared.state_machine import MatchStatus, MatchType, TournamentStatus, TournamentStateMachine
from .models import db, Match, Team, Tournament
from .name_generator import generate_match_id
from .standings import rank_teams, scored_group_matches

logger = logging.getLogger(__name__)

DEFAULT_SHUFFLE_ATTEMPTS = 20


def count_back_to_back(fixtures: Sequence[Tuple[str, str]]) -> int:
    """Number of adjacent fixture pairs that share a team."""
    count = 0
    for previous, current in zip(fixtures, fixtures[1:]):
        if set(previous) & set(current):
            count += 1
    return count


def order_fixtures(fixtures: Sequence[Tuple[str, str]], rng: random.Random,
                   attempts: int = DEFAULT_SHUFFLE_ATTEMPTS) -> List[Tuple[str, str]]:
    """Pick the shuffle with the fewest back-to-back fixtures out of a bounded number of tries."""
    best = list(fixtures)
    rng.shuffle(best)
    best_count = count_back_to_back(best)

    for _ in range(attempts):
        if best_count == 0:
            break
        candidate = list(fixtures)
        rng.shuffle(candidate)
        candidate_count = count_back_to_back(candidate)
        if candidate_count < best_count:
            best, best_count = candidate, candidate_count

    logger.debug(f"Fixture order has {best_count} back-to-back pair(s) out of {len(best)} fixtures")
    return best


class BracketGenerator:
    """
    Creates the fixtures of one tournament:
    - round-robin group matches
    - semifinals seeded from the group standings
    - semifinal 2 backfill with the semifinal 1 loser
    - the final between both semifinal winners

    Every operation re-reads the tournament before acting. With commit=False
    the caller owns the transaction and collects events via drain_events().
    """

    def __init__(self, tournament_id: str, rng: random.Random = None,
                 shuffle_attempts: int = DEFAULT_SHUFFLE_ATTEMPTS,
                 publisher: Optional[EventPublisher] = None):
        self.tournament_id = tournament_id
        self.rng = rng or random.Random()
        self.shuffle_attempts = shuffle_attempts
        self.publisher = publisher
        self.events: List[Event] = []

    def _tournament(self) -> Optional[Tournament]:
        return (Tournament.query
                .filter_by(tournament_id=self.tournament_id)
                .with_for_update()
                .first())

    @staticmethod
    def _match(match_id: Optional[str]) -> Optional[Match]:
        if not match_id:
            return None
        return Match.query.filter_by(match_id=match_id).first()

    def _not_found(self) -> Result:
        return Result.not_found(f"Tournament {self.tournament_id} not found")

    def _finish(self, commit: bool):
        if not commit:
            return
        db.session.commit()
        if self.publisher:
            self.publisher.publish_all(self.drain_events())

    def drain_events(self) -> List[Event]:
        events, self.events = self.events, []
        return events

    def get_teams(self, tournament: Tournament) -> List[Team]:
        return Team.query.filter_by(tournament_id=tournament.id).order_by(Team.id).all()

    def get_matches(self, tournament: Tournament, match_type: MatchType) -> List[Match]:
        return (Match.query
                .filter_by(tournament_id=tournament.id, match_type=match_type.value)
                .order_by(Match.sequence, Match.id)
                .all())

    def semifinals(self, tournament: Tournament) -> Tuple[Optional[Match], Optional[Match]]:
        return self._match(tournament.semifinal1_id), self._match(tournament.semifinal2_id)

    def _new_match(self, tournament: Tournament, match_type: MatchType, team1_id: str,
                   team2_id: Optional[str], sequence: int = None) -> Match:
        match = Match(
            match_id=generate_match_id(match_type.value),
            tournament_id=tournament.id,
            team1_id=team1_id,
            team2_id=team2_id,
            match_type=match_type.value,
            status=MatchStatus.SCHEDULED.value,
            sequence=sequence
        )
        db.session.add(match)
        return match

    # ==================== Group stage ====================

    def generate_group_matches(self, replace: bool = False, commit: bool = True,
                               before_delete: Callable[[Match], None] = None) -> Result:
        tournament = self._tournament()
        if not tournament:
            return self._not_found()

        if tournament.status == TournamentStatus.COMPLETED.value:
            return Result.precondition_failed("Cannot generate matches for a completed tournament")

        teams = self.get_teams(tournament)
        if len(teams) < 2:
            return Result.precondition_failed(
                "Tournament must have at least 2 teams to generate matches",
                teams_count=len(teams)
            )

        existing = self.get_matches(tournament, MatchType.GROUP)
        if existing:
            if not replace:
                return Result.already_exists(
                    f"Tournament already has {len(existing)} group match(es). Use replace=true to regenerate.",
                    existing_matches=len(existing)
                )
            if tournament.semifinal1_id or tournament.semifinal2_id:
                return Result.precondition_failed(
                    "Cannot replace group matches once the semifinals are seeded",
                    semifinal_ids=tournament.semifinal_ids
                )
            for match in existing:
                if before_delete:
                    before_delete(match)
                db.session.delete(match)
            logger.info(f"Deleted {len(existing)} existing group matches of {self.tournament_id}")

        pairs = [(a.team_id, b.team_id) for a, b in combinations(teams, 2)]
        ordered = order_fixtures(pairs, self.rng, self.shuffle_attempts)

        created = [
            self._new_match(tournament, MatchType.GROUP, team1_id, team2_id, sequence=i + 1)
            for i, (team1_id, team2_id) in enumerate(ordered)
        ]

        if tournament.status == TournamentStatus.UPCOMING.value:
            sm = TournamentStateMachine.from_state_string(tournament.status)
            tournament.status = sm.transition('start').value
            self.events.append(tournament_status_event(
                EventType.TOURNAMENT_STARTED, self.tournament_id, tournament.status))

        self.events.append(bracket_event(
            EventType.GROUP_MATCHES_GENERATED, self.tournament_id, [m.match_id for m in created]))
        logger.info(f"Generated {len(created)} group matches for tournament {self.tournament_id}")
        self._finish(commit)

        return Result.success(
            created,
            f"Successfully generated {len(created)} group match(es)",
            total_matches=len(created),
            teams_count=len(teams),
            back_to_back=count_back_to_back(ordered)
        )

    def add_group_match(self, team1_id: str, team2_id: str, commit: bool = True) -> Result:
        """Schedule one extra group fixture after the generated ones."""
        tournament = self._tournament()
        if not tournament:
            return self._not_found()

        if tournament.status == TournamentStatus.COMPLETED.value:
            return Result.precondition_failed("Cannot add matches to a completed tournament")
        if not team1_id or not team2_id:
            return Result.invalid_input("Both team1Id and team2Id are required")
        if team1_id == team2_id:
            return Result.invalid_input("A team cannot play itself")

        team_ids = {t.team_id for t in self.get_teams(tournament)}
        for team_id in (team1_id, team2_id):
            if team_id not in team_ids:
                return Result.not_found(f"Team {team_id} is not registered in {self.tournament_id}")

        last = self.get_matches(tournament, MatchType.GROUP)
        sequence = max((m.sequence or 0 for m in last), default=0) + 1
        match = self._new_match(tournament, MatchType.GROUP, team1_id, team2_id, sequence=sequence)

        self.events.append(bracket_event(
            EventType.GROUP_MATCHES_GENERATED, self.tournament_id, [match.match_id]))
        logger.info(f"Added group match {match.match_id} to {self.tournament_id}")
        self._finish(commit)

        return Result.success(match, "Match created successfully")

    # ==================== Knockout stage ====================

    def generate_semifinals(self, regenerate: bool = False, commit: bool = True) -> Result:
        tournament = self._tournament()
        if not tournament:
            return self._not_found()

        teams = self.get_teams(tournament)
        if len(teams) < 3:
            return Result.precondition_failed("Need at least 3 teams for semi-finals",
                                              teams_count=len(teams))

        existing = self.get_matches(tournament, MatchType.SEMIFINAL)
        if existing or tournament.semifinal1_id or tournament.semifinal2_id:
            if not regenerate:
                return Result.already_exists(
                    "Semi-finals already exist. Use regenerate=true to rebuild them.",
                    existing_matches=len(existing)
                )
            if tournament.final_match_id:
                return Result.precondition_failed("Cannot regenerate semi-finals once the final exists")
            for match in existing:
                db.session.delete(match)
            tournament.semifinal1_id = None
            tournament.semifinal2_id = None
            logger.info(f"Deleted {len(existing)} existing semi-final matches of {self.tournament_id}")

        eligible = scored_group_matches(self.get_matches(tournament, MatchType.GROUP))
        standings = rank_teams(teams, eligible)
        first, second, third = (s.team for s in standings[:3])

        semifinal1 = self._new_match(tournament, MatchType.SEMIFINAL, first.team_id, second.team_id)
        semifinal2 = self._new_match(tournament, MatchType.SEMIFINAL, third.team_id, None)
        tournament.semifinal1_id = semifinal1.match_id
        tournament.semifinal2_id = semifinal2.match_id

        message = (f"Semi-final 1: {first.name} vs {second.name}. "
                   f"Semi-final 2: {third.name} vs (Semi 1 loser)")
        logger.info(f"{self.tournament_id}: {message}")
        self.events.append(bracket_event(
            EventType.SEMIFINALS_GENERATED, self.tournament_id,
            [semifinal1.match_id, semifinal2.match_id]))
        self._finish(commit)

        return Result.success((semifinal1, semifinal2), message)

    def backfill_semifinal2(self, commit: bool = True) -> Result:
        """Put the semifinal 1 loser into semifinal 2.

        Unmet preconditions are a no-op, reported with changed=False.
        """
        tournament = self._tournament()
        if not tournament:
            return self._not_found()

        semifinal1, semifinal2 = self.semifinals(tournament)
        if not semifinal1 or not semifinal2:
            return Result.success(None, "Both semi-finals must exist", changed=False)
        if not semifinal1.is_completed or not semifinal1.winner_id:
            return Result.success(semifinal2, "Semi-final 1 must be completed with a winner first",
                                  changed=False)
        if semifinal2.team2_id is not None:
            return Result.success(semifinal2, "Semi-final 2 opponent is already set", changed=False)

        semifinal2.team2_id = semifinal1.loser_id
        logger.info(f"{self.tournament_id}: semi-final 2 is now {semifinal2.team1_id} vs {semifinal2.team2_id}")
        self.events.append(bracket_event(
            EventType.SEMIFINAL2_BACKFILLED, self.tournament_id, [semifinal2.match_id]))
        self._finish(commit)

        return Result.success(
            semifinal2,
            f"Semi-final 2 updated: {semifinal2.team1_id} vs {semifinal2.team2_id}",
            changed=True
        )

    def generate_final(self, commit: bool = True) -> Result:
        tournament = self._tournament()
        if not tournament:
            return self._not_found()

        existing_final = (self._match(tournament.final_match_id)
                          or Match.query.filter_by(tournament_id=tournament.id,
                                                   match_type=MatchType.FINAL.value).first())
        if existing_final:
            return Result.already_exists("Final already exists", match_id=existing_final.match_id)

        semifinal1, semifinal2 = self.semifinals(tournament)
        if not semifinal1 or not semifinal2:
            return Result.precondition_failed("Both semi-finals must exist")
        if not (semifinal1.is_completed and semifinal2.is_completed):
            return Result.precondition_failed("Both semi-finals must be completed")
        if not (semifinal1.winner_id and semifinal2.winner_id):
            return Result.precondition_failed("Both semi-finals must have winners")

        final = self._new_match(tournament, MatchType.FINAL, semifinal1.winner_id, semifinal2.winner_id)
        tournament.final_match_id = final.match_id

        logger.info(f"{self.tournament_id}: final {final.team1_id} vs {final.team2_id}")
        self.events.append(bracket_event(EventType.FINAL_GENERATED, self.tournament_id, [final.match_id]))
        self._finish(commit)

        return Result.success(
            final,
            f"Final: {semifinal1.winner_id} (Semi 1 winner) vs {semifinal2.winner_id} (Semi 2 winner)"
        )
