"""Run one reminder sweep and exit.

Meant to be driven by cron or another external scheduler, e.g.:

    python -m scheduling.run_reminder_sweep --lookahead-hours 24
"""

import argparse
import logging
import sys

from scheduling.core import config
from scheduling.core.errors import SchedulingError
from scheduling.database import SessionLocal, init_db
from scheduling.services.engine import SchedulingEngine

logger = logging.getLogger("scheduling.run_reminder_sweep")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send reminders for appointments entering their reminder window.")
    parser.add_argument(
        "--lookahead-hours",
        type=int,
        default=config.REMINDER_LOOKAHEAD_HOURS,
        help="Remind about appointments starting within this many hours (default: %(default)s).",
    )
    parser.add_argument(
        "--min-lead-minutes",
        type=int,
        default=config.REMINDER_MIN_LEAD_MINUTES,
        help="Skip appointments starting sooner than this (default: %(default)s).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db()
    db = SessionLocal()
    try:
        sent = SchedulingEngine(db).run_reminder_sweep(
            lookahead_hours=args.lookahead_hours,
            min_lead_minutes=args.min_lead_minutes,
        )
    except SchedulingError as exc:
        logger.error("Reminder sweep failed: %s", exc.message)
        return 1
    finally:
        db.close()

    logger.info("Sent %s reminder(s)", sent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
