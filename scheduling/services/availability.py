"""Resolve a doctor's open windows for one calendar date.

Precedence is: a date exception first (full block or replacement hours),
otherwise the active weekly templates for that weekday minus their breaks.
Clock times are read in the doctor's timezone and returned as naive UTC.
"""

import logging
from datetime import date, datetime, time
from typing import Iterable, NamedTuple

from scheduling.core import config
from scheduling.core.errors import ValidationError
from scheduling.core.timeutils import get_zone, local_to_utc
from scheduling.models.availability import DayOfWeek
from scheduling.store import SchedulingStore

logger = logging.getLogger(__name__)


class AvailabilityWindow(NamedTuple):
    start: datetime
    end: datetime
    slot_duration_minutes: int
    template_id: int | None = None

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def subtract_breaks(
    window_start: time,
    window_end: time,
    breaks: Iterable[tuple[time, time]],
) -> list[tuple[time, time]]:
    """Cut breaks out of a window; breaks are clipped to the window first."""
    pieces: list[tuple[time, time]] = []
    cursor = window_start

    for break_start, break_end in sorted(breaks):
        clipped_start = max(break_start, window_start)
        clipped_end = min(break_end, window_end)
        if clipped_start >= clipped_end:
            continue
        if clipped_start > cursor:
            pieces.append((cursor, clipped_start))
        cursor = max(cursor, clipped_end)

    if cursor < window_end:
        pieces.append((cursor, window_end))

    return pieces


def merge_windows(windows: Iterable[AvailabilityWindow]) -> list[AvailabilityWindow]:
    """Sort windows and make them non-overlapping.

    Overlapping windows with the same slot duration are merged. When the
    durations differ the later window is trimmed to begin where the earlier
    one ends, so each instant keeps the grid of the window that opened first.
    """
    merged: list[AvailabilityWindow] = []

    for window in sorted(windows, key=lambda item: (item.start, item.end)):
        if window.end <= window.start:
            continue
        if merged and window.start < merged[-1].end:
            previous = merged[-1]
            if window.slot_duration_minutes == previous.slot_duration_minutes:
                merged[-1] = previous._replace(end=max(previous.end, window.end))
                continue
            if window.end <= previous.end:
                continue
            window = window._replace(start=previous.end)
        merged.append(window)

    return merged


def resolve_availability(store: SchedulingStore, doctor_id: int, on_date: date) -> list[AvailabilityWindow]:
    if isinstance(on_date, datetime) or not isinstance(on_date, date):
        raise ValidationError('A calendar date is required to resolve availability.')

    doctor = store.get_doctor(doctor_id)
    zone = get_zone(doctor.timezone)
    day_of_week = DayOfWeek.from_date(on_date)

    exception = store.get_exception(doctor_id, on_date)
    if exception is not None:
        if exception.blocks_day:
            return []
        if exception.start_time is None or exception.end_time is None or exception.start_time >= exception.end_time:
            logger.warning('Ignoring malformed override hours for doctor %s on %s', doctor_id, on_date)
            return []
        duration = exception.slot_duration_minutes
        if not duration:
            templates = store.list_templates(doctor_id, day_of_week, on_date)
            duration = templates[0].slot_duration_minutes if templates else config.DEFAULT_SLOT_DURATION_MINUTES
        return merge_windows(
            [
                AvailabilityWindow(
                    start=local_to_utc(on_date, exception.start_time, zone),
                    end=local_to_utc(on_date, exception.end_time, zone),
                    slot_duration_minutes=duration,
                )
            ]
        )

    windows: list[AvailabilityWindow] = []
    for template in store.list_templates(doctor_id, day_of_week, on_date):
        if template.start_time >= template.end_time:
            logger.warning('Skipping template %s with an empty window', template.id)
            continue
        breaks = [(item.start_time, item.end_time) for item in store.list_breaks(template.id)]
        for piece_start, piece_end in subtract_breaks(template.start_time, template.end_time, breaks):
            windows.append(
                AvailabilityWindow(
                    start=local_to_utc(on_date, piece_start, zone),
                    end=local_to_utc(on_date, piece_end, zone),
                    slot_duration_minutes=template.slot_duration_minutes,
                    template_id=template.id,
                )
            )

    return merge_windows(windows)
