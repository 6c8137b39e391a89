import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

import structlog

from stay_reservations.db.readers.reservations import find_due
from stay_reservations.dependencies import get_reservation_service
from stay_reservations.logging_config import setup_logging
from stay_reservations.models.reservations import SCHEDULABLE_STATES

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> int:
    """
    Complete every reservation whose stay window has ended, then exit.

    Meant for cron or manual recovery while the API process is down. Running
    it next to a live process is safe: each completion is a conditional update.
    """
    parser = argparse.ArgumentParser(description="Run the reservation expiration sweep once")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many reservations are past their checkout instant",
    )
    args = parser.parse_args()

    service = get_reservation_service()

    try:
        if args.dry_run:
            now = service.clock()
            with service.engine.connect() as conn:
                candidates = find_due(conn, SCHEDULABLE_STATES, on_or_before=now.date())
            due = [r for r in candidates if service.scheduler.due_at(r) <= now]
            logger.info("expiration_sweep_dry_run", due=len(due))
            print(len(due))
            return 0

        transitioned = service.sweep_expired()
        print(transitioned)
        return 0
    except Exception:
        logger.exception("expiration_sweep_failed")
        raise
    finally:
        service.scheduler.shutdown()
        # Let completion notifications go out before the process exits
        service.notifier.shutdown(wait=True)


if __name__ == "__main__":
    sys.exit(main())
