#!/usr/bin/env python3
"""
Send reminder digests to every user whose notification time is due now.

Run from the project root, typically hourly from cron:
    0 * * * * cd /path/to/app && python -m scripts.send_reminders >> logs/reminders.log 2>&1

Exits non-zero only when the run is aborted (missing SMTP settings, SMTP
verification failure, database failure or an unexpected error); individual
failed sends are reported in the summary.
"""
import argparse
import logging
import os

from app import app
from backend.mailer import MailConfigError
from backend.reminder_job import ReminderJobError, send_reminders
from services.validation_service import parse_bool

logger = logging.getLogger("send_reminders")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Email open todo items to users whose reminder is due.")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        default=parse_bool(os.environ.get("REMINDER_TEST_MODE"), False),
        help="Ignore each user's time/day preference and send to every configured user.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with app.app_context():
        try:
            summary = send_reminders(
                test_mode=args.test_mode,
                app_name=app.config["APP_NAME"],
                app_url=app.config["APP_URL"],
            )
        except (MailConfigError, ReminderJobError) as exc:
            logger.error("Reminder run aborted: %s", exc)
            return 1
        except Exception:
            logger.exception("Reminder run failed")
            return 1

    print(f"Summary: {summary}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
