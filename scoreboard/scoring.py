"""
Score ledger: the per-match record of set scores.

Turns a sequence of set scores into a completed match with a winner. The
ledger only mutates the match it is given; team accumulators and bracket
advancement belong to the progression coordinator.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, Tuple

from shared.results import Result
from shared.state_machine import MatchStateMachine, TransitionError
from .models import Match, Score

logger = logging.getLogger(__name__)

# Matches are best of five: the first side to three set wins takes the match.
SETS_TO_WIN = 3
MIN_SETS_FOR_RESULT = 3

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')
_STRICT_INT = re.compile(r'^\s*\d+\s*$')


@dataclass
class SetOutcome:
    set_number: int
    team1_score: int
    team2_score: int
    completed_now: bool = False


def _leading_int(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    found = _LEADING_INT.match(str(value))
    return int(found.group(1)) if found else None


def coerce_score(value, strict: bool = False) -> int:
    """Parse a set score.

    Lenient mode: anything that does not start with an integer becomes 0,
    negatives are clamped to 0. Strict mode raises ValueError instead.
    """
    if strict:
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        if isinstance(value, str) and _STRICT_INT.match(value):
            return int(value)
        raise ValueError(f"Score {value!r} is not a non-negative integer")

    parsed = _leading_int(value)
    if parsed is None:
        return 0
    return max(parsed, 0)


def count_set_wins(scores: Iterable) -> Tuple[int, int]:
    """Count sets won by each side; drawn sets count for neither."""
    team1_wins = 0
    team2_wins = 0
    for score in scores:
        if score.team1_score > score.team2_score:
            team1_wins += 1
        elif score.team2_score > score.team1_score:
            team2_wins += 1
    return team1_wins, team2_wins


def is_decided(total_sets: int, team1_wins: int, team2_wins: int) -> bool:
    return (
        total_sets >= MIN_SETS_FOR_RESULT
        and max(team1_wins, team2_wins) >= SETS_TO_WIN
        and team1_wins != team2_wins
    )


def evaluate_completion(match: Match) -> bool:
    """Complete the match if the set-win threshold is reached.

    Returns True only when this call moved the match to completed, so a
    match that was already completed never reports completion twice.
    """
    if match.is_completed:
        return False

    team1_wins, team2_wins = count_set_wins(match.scores)
    if not is_decided(len(match.scores), team1_wins, team2_wins):
        return False

    sm = MatchStateMachine.from_state_string(match.status)
    match.status = sm.transition('complete').value
    match.winner_id = match.team1_id if team1_wins > team2_wins else match.team2_id
    logger.info(f"Match {match.match_id} completed {team1_wins}-{team2_wins}, winner {match.winner_id}")
    return True


def record_set(match: Match, set_number, team1_score, team2_score, strict: bool = False) -> Result:
    """Record or overwrite one set, then re-evaluate completion.

    On success the result value is a SetOutcome.
    """
    parsed_set = _leading_int(set_number)
    if parsed_set is None or parsed_set < 1:
        return Result.invalid_input(f"Set number must be a positive integer, got {set_number!r}",
                                    code='invalid_set_number')

    if match.team2_id is None:
        return Result.invalid_input(f"Match {match.match_id} has no opponent yet",
                                    code='missing_opponent')

    try:
        s1 = coerce_score(team1_score, strict=strict)
        s2 = coerce_score(team2_score, strict=strict)
    except ValueError as e:
        return Result.invalid_input(str(e), code='invalid_score')

    sm = MatchStateMachine.from_state_string(match.status)
    try:
        match.status = sm.transition('score').value
    except TransitionError as e:
        return Result.precondition_failed(str(e))

    existing = next((s for s in match.scores if s.set_number == parsed_set), None)
    if existing is not None:
        existing.team1_score = s1
        existing.team2_score = s2
    else:
        match.scores.append(Score(set_number=parsed_set, team1_score=s1, team2_score=s2))
    match.scores.sort(key=lambda s: s.set_number)

    completed_now = evaluate_completion(match)
    return Result.success(
        SetOutcome(parsed_set, s1, s2, completed_now),
        message=f"Set {parsed_set} recorded for {match.match_id}"
    )
