"""
Group-stage standings.

Teams are ranked by points and then by a fixed tie-break cascade:

1. points (higher first)
2. net rate, average point differential per set (higher first, 0.001 tolerance)
3. matches won (higher first)
4. win rate (higher first)
5. matches lost (lower first)
6. head-to-head wins between the two teams (higher first)
7. team name, alphabetically

Only group matches feed net rate and head-to-head; knockout matches never
count toward standings.
"""
import logging
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

from shared.state_machine import MatchStatus, MatchType

logger = logging.getLogger(__name__)

NET_RATE_TOLERANCE = 0.001


@dataclass
class Standing:
    position: int
    team: object
    net_rate: float
    win_rate: float
    tied_with_next: bool = False

    def to_dict(self) -> dict:
        data = self.team.to_dict()
        data.update({
            'position': self.position,
            'net_rate': round(self.net_rate, 3),
            'win_rate': round(self.win_rate, 3),
            'tied_with_next': self.tied_with_next,
        })
        return data


def _is_completed_group(match) -> bool:
    return (match.status == MatchStatus.COMPLETED.value
            and match.match_type == MatchType.GROUP.value)


def scored_group_matches(matches: Iterable) -> list:
    """Completed group matches with at least one recorded set."""
    return [m for m in matches if _is_completed_group(m) and m.scores]


def net_rate(team_id: str, matches: Iterable) -> float:
    scored = 0
    conceded = 0
    sets_played = 0

    for match in scored_group_matches(matches):
        if match.team1_id == team_id:
            for score in match.scores:
                scored += score.team1_score
                conceded += score.team2_score
                sets_played += 1
        elif match.team2_id == team_id:
            for score in match.scores:
                scored += score.team2_score
                conceded += score.team1_score
                sets_played += 1

    if sets_played == 0:
        return 0.0
    return (scored - conceded) / sets_played


def win_rate(team) -> float:
    return (team.matches_won or 0) / max(team.matches_played or 0, 1)


def head_to_head(team_a, team_b, matches: Iterable):
    """Wins of each team in completed group matches between the two."""
    a_wins = 0
    b_wins = 0
    for match in matches:
        if not _is_completed_group(match) or not match.winner_id:
            continue
        if not (match.involves(team_a.team_id) and match.involves(team_b.team_id)):
            continue
        if match.winner_id == team_a.team_id:
            a_wins += 1
        elif match.winner_id == team_b.team_id:
            b_wins += 1
    return a_wins, b_wins


def _sign(value) -> int:
    return (value > 0) - (value < 0)


def _name_key(team) -> tuple:
    return team.name.casefold(), team.name, team.team_id


class StandingsCalculator:
    """Ranks the teams of one tournament over a fixed set of group matches."""

    def __init__(self, teams: Iterable, matches: Iterable):
        self.teams = list(teams)
        self.matches = [m for m in matches if m.match_type == MatchType.GROUP.value]
        self._net_rates: Dict[str, float] = {
            t.team_id: net_rate(t.team_id, self.matches) for t in self.teams
        }

    def net_rate(self, team) -> float:
        if team.team_id not in self._net_rates:
            self._net_rates[team.team_id] = net_rate(team.team_id, self.matches)
        return self._net_rates[team.team_id]

    def compare_stats(self, a, b) -> int:
        """Steps 1-6 of the cascade. Negative means `a` ranks higher, 0 means a true tie."""
        if (a.points or 0) != (b.points or 0):
            return _sign((b.points or 0) - (a.points or 0))

        a_nr = self.net_rate(a)
        b_nr = self.net_rate(b)
        if abs(b_nr - a_nr) > NET_RATE_TOLERANCE:
            return _sign(b_nr - a_nr)

        if (a.matches_won or 0) != (b.matches_won or 0):
            return _sign((b.matches_won or 0) - (a.matches_won or 0))

        a_wr = win_rate(a)
        b_wr = win_rate(b)
        if a_wr != b_wr:
            return _sign(b_wr - a_wr)

        if (a.matches_lost or 0) != (b.matches_lost or 0):
            return _sign((a.matches_lost or 0) - (b.matches_lost or 0))

        a_h2h, b_h2h = head_to_head(a, b, self.matches)
        if a_h2h != b_h2h:
            return _sign(b_h2h - a_h2h)

        return 0

    def compare(self, a, b) -> int:
        result = self.compare_stats(a, b)
        if result:
            return result
        a_key = _name_key(a)
        b_key = _name_key(b)
        return (a_key > b_key) - (a_key < b_key)

    def is_true_tie(self, a, b) -> bool:
        return self.compare_stats(a, b) == 0

    def rank(self) -> List[Standing]:
        # The net-rate tolerance makes compare() non-transitive for some trios;
        # a fixed starting order keeps the result independent of input order.
        ordered = sorted(sorted(self.teams, key=_name_key), key=cmp_to_key(self.compare))
        standings = [
            Standing(position=i + 1, team=team, net_rate=self.net_rate(team), win_rate=win_rate(team))
            for i, team in enumerate(ordered)
        ]

        for current, nxt in zip(standings, standings[1:]):
            if self.is_true_tie(current.team, nxt.team):
                current.tied_with_next = True
                logger.warning(
                    f"Teams {current.team.name} and {nxt.team.name} are tied at positions "
                    f"{current.position}/{nxt.position} after all tie-breakers; ordered alphabetically"
                )
        return standings


def compare_teams(a, b, matches: Iterable) -> int:
    return StandingsCalculator([a, b], matches).compare(a, b)


def is_true_tie(a, b, matches: Iterable) -> bool:
    """True when nothing but the name separates the two teams."""
    return StandingsCalculator([a, b], matches).is_true_tie(a, b)


def rank_teams(teams: Iterable, matches: Iterable) -> List[Standing]:
    return StandingsCalculator(teams, matches).rank()


def ranked_teams(teams: Iterable, matches: Iterable, limit: Optional[int] = None) -> list:
    standings = rank_teams(teams, matches)
    if limit is not None:
        standings = standings[:limit]
    return [s.team for s in standings]
