import logging
from typing import Iterable, List, Optional

import redis

from .events import Event

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global:announcements"
EVENT_LOG_LIMIT = 1000


class EventPublisher:
    """
    Pushes engine events to the display layer over Redis pub/sub.
    Without a Redis client events are only logged.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client

    @classmethod
    def from_url(cls, redis_url: Optional[str]) -> "EventPublisher":
        if not redis_url:
            logger.info("EventPublisher running without Redis (events are logged only)")
            return cls()
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        return cls(client)

    @staticmethod
    def tournament_channel(tournament_id: str) -> str:
        return f"tournament:{tournament_id}:events"

    @staticmethod
    def event_log_key(tournament_id: str) -> str:
        return f"tournament:{tournament_id}:event_log"

    def publish(self, event: Event):
        logger.info("event %s for tournament %s: %s",
                    event.to_dict()["type"], event.tournament_id, event.data)
        if self.redis is None:
            return

        payload = event.to_json()
        try:
            self.redis.publish(self.tournament_channel(event.tournament_id), payload)
            self.redis.publish(GLOBAL_CHANNEL, payload)
            key = self.event_log_key(event.tournament_id)
            self.redis.lpush(key, payload)
            self.redis.ltrim(key, 0, EVENT_LOG_LIMIT - 1)
        except redis.RedisError as e:
            # State is already committed; the display layer re-reads it on reconnect.
            logger.error(f"Failed to publish {event.type} for {event.tournament_id}: {e}")

    def publish_all(self, events: Iterable[Event]):
        for event in events:
            self.publish(event)

    def get_recent_events(self, tournament_id: str, count: int = 50) -> List[Event]:
        if self.redis is None:
            return []
        events_json = self.redis.lrange(self.event_log_key(tournament_id), 0, count - 1)
        return [Event.from_json(e) for e in events_json]

    def ping(self) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False
