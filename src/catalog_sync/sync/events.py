"""Connector events: progress and error notifications of change handlers.

Every handled change starts a ``ConnectorEvent`` that is updated with a
message and a percentage as the operation advances. Events are logged and
kept in a bounded history for the status tool.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 200


@dataclass
class ConnectorEvent:
    """Progress record of one handled change.

    Attributes:
        event_type: Change event name (e.g. ``channel_link_added``).
        channel_id: Channel the change belongs to.
        message: Latest progress message.
        percentage: Latest progress percentage, 0-100.
        is_error: Whether the operation failed.
        started_at: ISO 8601 timestamp of the first update.
        updated_at: ISO 8601 timestamp of the latest update.
    """

    event_type: str
    channel_id: int
    message: str
    percentage: int = 0
    is_error: bool = False
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "channel_id": self.channel_id,
            "message": self.message,
            "percentage": self.percentage,
            "is_error": self.is_error,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }


class EventReporter:
    """Fire-and-forget sink for connector events.

    Args:
        history_size: Number of recent events kept for ``recent()``.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._history: deque[ConnectorEvent] = deque(maxlen=history_size)

    def initiate(
        self,
        event_type: str,
        channel_id: int,
        message: str,
        percentage: int = 0,
    ) -> ConnectorEvent:
        event = ConnectorEvent(
            event_type=event_type,
            channel_id=channel_id,
            message=message,
            percentage=percentage,
        )
        self._history.append(event)
        logger.info("[%s] %s (%d%%)", event_type, message, percentage)
        return event

    def update(
        self,
        event: ConnectorEvent,
        message: str,
        percentage: int | None = None,
        is_error: bool = False,
    ) -> None:
        """Advance an event. Once in error, an event stays in error."""
        event.message = message
        if percentage is not None:
            event.percentage = percentage
        event.is_error = event.is_error or is_error
        event.updated_at = datetime.now(timezone.utc).isoformat()
        if is_error:
            logger.error("[%s] %s", event.event_type, message)
        else:
            logger.info(
                "[%s] %s (%d%%)", event.event_type, message, event.percentage
            )

    def recent(self, limit: int = 20) -> list[ConnectorEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._history))[:limit]
