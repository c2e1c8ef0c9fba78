"""Notification triggers handed to the external delivery collaborator."""

import enum
import logging
from typing import NamedTuple, Protocol

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    BOOKED = "booked"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    REMINDER = "reminder"


class NotificationTrigger(NamedTuple):
    appointment_id: int
    recipient_id: int
    event_kind: EventKind


class NotificationSink(Protocol):
    """Fire-and-forget delivery; implementations log their own failures."""

    def emit(self, appointment_id: int, recipient_id: int, event_kind: EventKind) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: records the trigger in the application log only."""

    def emit(self, appointment_id: int, recipient_id: int, event_kind: EventKind) -> None:
        logger.info(
            'Notification trigger: appointment=%s recipient=%s event=%s',
            appointment_id,
            recipient_id,
            event_kind.value,
        )
