"""
Notification sink interface.
Receives cascade events for downstream email/SMS dispatch.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


class CarpoolEventType:
    TRIP_WITHDRAWN = "trip_withdrawn"
    OUTING_CANCELLED = "outing_cancelled"
    PASSENGER_REMOVED = "passenger_removed"


@dataclass(frozen=True)
class CarpoolEvent:
    event_type: str
    passenger_id: int
    trip_offer_id: int
    outing_id: int
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "passenger_id": self.passenger_id,
            "trip_offer_id": self.trip_offer_id,
            "outing_id": self.outing_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


class NotificationSink(ABC):
    """
    Interface for notification sinks.

    Implementations:
    - LoggingNotificationSink: logs the event, nothing else
    - RedisNotificationSink: pushes JSON onto a Redis list for a worker
    """

    @abstractmethod
    async def publish(self, event: CarpoolEvent) -> None:
        """
        Hand one event to the downstream channel.

        Args:
            event: The cascade event affecting one passenger

        Raises:
            Any exception on delivery failure; the dispatcher logs and drops it.
        """
        pass
