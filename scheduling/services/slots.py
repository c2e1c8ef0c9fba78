from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, NamedTuple

from scheduling.models.appointment import INACTIVE_STATUSES, Appointment
from scheduling.services.availability import AvailabilityWindow, resolve_availability
from scheduling.store import SchedulingStore


class Slot(NamedTuple):
    start: datetime
    end: datetime
    duration_minutes: int


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return other_start < end and start < other_end


class SlotSequence:
    """Bookable slots for a set of windows, computed lazily on each iteration.

    Iterating twice starts over, so the sequence can be re-read without
    touching the store again.
    """

    def __init__(self, windows: Iterable[AvailabilityWindow], appointments: Iterable[Appointment] = ()):
        self._windows = tuple(sorted(windows, key=lambda window: window.start))
        self._busy = tuple(
            sorted(
                (appointment.scheduled_at, appointment.ends_at)
                for appointment in appointments
                if appointment.status not in INACTIVE_STATUSES
            )
        )

    def __iter__(self) -> Iterator[Slot]:
        return self._generate()

    def _is_busy(self, start: datetime, end: datetime) -> bool:
        for busy_start, busy_end in self._busy:
            if busy_start >= end:
                break
            if intervals_overlap(start, end, busy_start, busy_end):
                return True
        return False

    def _generate(self) -> Iterator[Slot]:
        last_end: datetime | None = None

        for window in self._windows:
            if window.slot_duration_minutes <= 0:
                continue
            step = timedelta(minutes=window.slot_duration_minutes)
            current = window.start
            # A trailing partial slot is dropped.
            while current + step <= window.end:
                slot_end = current + step
                if (last_end is None or current >= last_end) and not self._is_busy(current, slot_end):
                    last_end = slot_end
                    yield Slot(start=current, end=slot_end, duration_minutes=window.slot_duration_minutes)
                current = slot_end


def build_slots(windows: Iterable[AvailabilityWindow], appointments: Iterable[Appointment] = ()) -> SlotSequence:
    return SlotSequence(windows, appointments)


def generate_slots(store: SchedulingStore, doctor_id: int, on_date: date) -> SlotSequence:
    windows = resolve_availability(store, doctor_id, on_date)
    if not windows:
        return SlotSequence(())

    appointments = store.list_appointments(
        doctor_id,
        range_start=windows[0].start,
        range_end=max(window.end for window in windows),
        exclude_statuses=INACTIVE_STATUSES,
    )
    return SlotSequence(windows, appointments)
