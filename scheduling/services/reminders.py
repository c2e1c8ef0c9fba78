"""Reminder sweep over appointments entering their reminder window.

The sweep keeps no state between runs; whoever schedules it owns the cadence.
Each appointment is handled in its own transaction: the claim on
``reminder_sent_at`` is a compare-and-set, so concurrent or repeated sweeps
send at most one reminder per appointment, and a row whose claim never
committed is picked up again on the next run.
"""

import logging
from datetime import timedelta

from scheduling.core import config
from scheduling.core.errors import StoreUnavailable, ValidationError
from scheduling.services.lifecycle import AppointmentLifecycle
from scheduling.services.notifications import EventKind

logger = logging.getLogger(__name__)


def reminder_window(now, lookahead_hours: int, min_lead_minutes: int):
    if lookahead_hours <= 0:
        raise ValidationError('Reminder lookahead must be at least one hour.')
    if min_lead_minutes < 0:
        raise ValidationError('Reminder minimum lead cannot be negative.')
    window_start = now + timedelta(minutes=min_lead_minutes)
    window_end = now + timedelta(hours=lookahead_hours)
    if window_end <= window_start:
        raise ValidationError('Reminder lookahead must extend past the minimum lead time.')
    return window_start, window_end


def run_reminder_sweep(
    lifecycle: AppointmentLifecycle,
    lookahead_hours: int | None = None,
    min_lead_minutes: int | None = None,
) -> int:
    """Send due reminders and return how many were sent by this run."""
    store = lifecycle.store
    now = lifecycle.clock.now()
    window_start, window_end = reminder_window(
        now,
        config.REMINDER_LOOKAHEAD_HOURS if lookahead_hours is None else lookahead_hours,
        config.REMINDER_MIN_LEAD_MINUTES if min_lead_minutes is None else min_lead_minutes,
    )

    candidates = [
        (appointment.id, appointment.patient_id)
        for appointment in store.list_reminder_candidates(window_start, window_end)
    ]
    sent = 0

    for appointment_id, patient_id in candidates:
        try:
            with store.transaction():
                if not store.claim_reminder(appointment_id, now):
                    logger.debug('Reminder for appointment %s already claimed', appointment_id)
                    continue
                lifecycle.notify(appointment_id, patient_id, EventKind.REMINDER)
                store.append_audit_log(appointment_id, None, 'reminder_sent')
        except StoreUnavailable:
            logger.exception('Could not mark reminder for appointment %s; leaving it for the next run', appointment_id)
            continue
        sent += 1

    logger.info(
        'Reminder sweep sent %s of %s candidate(s) between %s and %s',
        sent,
        len(candidates),
        window_start.isoformat(),
        window_end.isoformat(),
    )
    return sent
