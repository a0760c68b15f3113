from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class TournamentStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class MatchType(str, Enum):
    GROUP = "group"
    QUARTERFINAL = "quarterfinal"  # reserved, never generated
    SEMIFINAL = "semifinal"
    FINAL = "final"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: Enum
    to_state: Enum
    action: str
    guard: Optional[Callable] = None


class StateMachine:
    """Table-driven state machine shared by tournaments and matches."""

    STATE_TYPE = None
    INITIAL_STATE = None
    TRANSITIONS: List[Transition] = []

    def __init__(self, initial_state=None):
        self._state = initial_state if initial_state is not None else self.INITIAL_STATE
        self._history: List[tuple] = []

    @property
    def state(self):
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return [t.action for t in self.TRANSITIONS if t.from_state == self._state]

    def can_transition(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None):
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                if t.guard and guard_context is not None:
                    if not t.guard(guard_context):
                        raise TransitionError(
                            self._state.value,
                            t.to_state.value,
                            f"Guard condition failed for action '{action}'"
                        )

                old_state = self._state
                self._state = t.to_state
                self._history.append((old_state, action, self._state))
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    def get_history(self) -> List[tuple]:
        return self._history.copy()

    @classmethod
    def from_state_string(cls, state_str: str) -> "StateMachine":
        try:
            state = cls.STATE_TYPE(state_str)
        except ValueError:
            state = cls.INITIAL_STATE
        return cls(initial_state=state)


class TournamentStateMachine(StateMachine):
    STATE_TYPE = TournamentStatus
    INITIAL_STATE = TournamentStatus.UPCOMING
    TRANSITIONS = [
        Transition(TournamentStatus.UPCOMING, TournamentStatus.ONGOING, "start"),
        Transition(TournamentStatus.UPCOMING, TournamentStatus.COMPLETED, "complete"),
        Transition(TournamentStatus.ONGOING, TournamentStatus.COMPLETED, "complete"),
        Transition(TournamentStatus.COMPLETED, TournamentStatus.ONGOING, "reopen"),
    ]

    # Maps a requested status to the action that reaches it.
    ACTION_FOR_STATUS = {
        TournamentStatus.ONGOING: ("start", "reopen"),
        TournamentStatus.COMPLETED: ("complete",),
    }

    def transition_to(self, status: TournamentStatus) -> TournamentStatus:
        """Move to `status` through whichever action leads there."""
        if status == self._state:
            return self._state
        for action in self.ACTION_FOR_STATUS.get(status, ()):
            if self.can_transition(action):
                return self.transition(action)
        raise TransitionError(self._state.value, status.value)


class MatchStateMachine(StateMachine):
    STATE_TYPE = MatchStatus
    INITIAL_STATE = MatchStatus.SCHEDULED
    TRANSITIONS = [
        Transition(MatchStatus.SCHEDULED, MatchStatus.IN_PROGRESS, "score"),
        Transition(MatchStatus.IN_PROGRESS, MatchStatus.IN_PROGRESS, "score"),
        # Score corrections are accepted after completion without reopening.
        Transition(MatchStatus.COMPLETED, MatchStatus.COMPLETED, "score"),
        Transition(MatchStatus.SCHEDULED, MatchStatus.COMPLETED, "complete"),
        Transition(MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED, "complete"),
        Transition(MatchStatus.SCHEDULED, MatchStatus.IN_PROGRESS, "start"),
    ]


def all_matches_complete_guard(context: dict) -> bool:
    matches = context.get("matches", [])
    return bool(matches) and all(
        m.get("status") == MatchStatus.COMPLETED.value and m.get("winner")
        for m in matches
    )
