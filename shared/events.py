from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import json


class EventType(str, Enum):
    # Tournament lifecycle
    TOURNAMENT_STARTED = "tournament.started"
    TOURNAMENT_COMPLETED = "tournament.completed"
    TOURNAMENT_REOPENED = "tournament.reopened"

    # Match events
    SET_RECORDED = "match.set_recorded"
    MATCH_COMPLETED = "match.completed"
    MATCH_DELETED = "match.deleted"

    # Standings
    STATS_APPLIED = "standings.stats_applied"
    STATS_REVERSED = "standings.stats_reversed"
    STATS_RECALCULATED = "standings.recalculated"

    # Bracket
    GROUP_MATCHES_GENERATED = "bracket.group_matches_generated"
    SEMIFINALS_GENERATED = "bracket.semifinals_generated"
    SEMIFINAL2_BACKFILLED = "bracket.semifinal2_backfilled"
    FINAL_GENERATED = "bracket.final_generated"


@dataclass
class Event:
    type: EventType
    tournament_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            tournament_id=data["tournament_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def set_recorded_event(tournament_id: str, match_id: str, set_number: int,
                       team1_score: int, team2_score: int) -> Event:
    return Event(
        type=EventType.SET_RECORDED,
        tournament_id=tournament_id,
        data={
            "match_id": match_id,
            "set_number": set_number,
            "team1_score": team1_score,
            "team2_score": team2_score
        }
    )


def match_completed_event(tournament_id: str, match_id: str, winner: str, match_type: str) -> Event:
    return Event(
        type=EventType.MATCH_COMPLETED,
        tournament_id=tournament_id,
        data={
            "match_id": match_id,
            "winner": winner,
            "match_type": match_type
        }
    )


def bracket_event(event_type: EventType, tournament_id: str, match_ids: list) -> Event:
    return Event(
        type=event_type,
        tournament_id=tournament_id,
        data={"match_ids": list(match_ids)}
    )


def stats_event(event_type: EventType, tournament_id: str, match_id: Optional[str],
                winner: Optional[str], loser: Optional[str]) -> Event:
    return Event(
        type=event_type,
        tournament_id=tournament_id,
        data={
            "match_id": match_id,
            "winner": winner,
            "loser": loser
        }
    )


def tournament_status_event(event_type: EventType, tournament_id: str,
                            status: str, winner: Optional[str] = None) -> Event:
    return Event(
        type=event_type,
        tournament_id=tournament_id,
        data={
            "status": status,
            "winner": winner
        }
    )
