"""
Reminder dispatch job.

Each run loads every user with their open items, works out who is due a
reminder right now, and emails them a digest over one shared SMTP session.

There is no persisted "last notified" marker: a user is due whenever a run
lands inside the eligibility window, so the trigger cadence must be at least
as coarse as the window (hourly by default) to avoid duplicate emails.
"""
import logging
import os
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

import pytz
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from backend.digest import DEFAULT_APP_NAME, DIGEST_SUBJECT, DigestItem, DigestList, render_digest
from backend.eligibility import is_due, local_now
from backend.mailer import MailSettings, MailTransportError, SMTPTransport
from backend.preferences import resolve_preferences
from services.validation_service import parse_bool

logger = logging.getLogger(__name__)


class ReminderJobError(RuntimeError):
    """A run-aborting failure: nothing was (or could be) sent."""


@dataclass
class ReminderCandidate:
    user_id: int
    email: str
    name: Optional[str]
    notification_time: Optional[str]
    notification_days: Optional[str]
    timezone: Optional[str]
    lists: List[DigestList] = field(default_factory=list)


@dataclass
class ReminderSummary:
    sent: int = 0
    failed: int = 0
    skipped_unconfigured: int = 0
    skipped_wrong_time: int = 0
    skipped_no_open_items: int = 0

    @property
    def total(self):
        return (self.sent + self.failed + self.skipped_unconfigured
                + self.skipped_wrong_time + self.skipped_no_open_items)

    def to_dict(self):
        return asdict(self)

    def __str__(self):
        return (
            f"{self.sent} email(s) sent, {self.failed} failed, "
            f"{self.skipped_unconfigured} skipped (not configured), "
            f"{self.skipped_wrong_time} skipped (wrong time/day), "
            f"{self.skipped_no_open_items} skipped (no open items)"
        )


def utcnow():
    return datetime.now(pytz.UTC)


def load_reminder_candidates(user_id=None):
    """
    Read every user (or just `user_id`) with their lists, newest first, and
    open items.

    Items are ordered by deadline with undated items last, then by creation
    time. Must run inside an application context.
    """
    from models import ListItem, TodoList, User, db

    user_query = User.query.options(selectinload(User.lists))
    item_query = (
        db.session.query(ListItem)
        .join(TodoList, ListItem.list_id == TodoList.id)
        .filter(ListItem.done.is_(False))
    )
    if user_id is not None:
        user_query = user_query.filter(User.id == user_id)
        item_query = item_query.filter(TodoList.user_id == user_id)

    users = user_query.order_by(User.id.asc()).all()
    open_items = (
        item_query
        .order_by(
            ListItem.deadline.is_(None),
            ListItem.deadline.asc(),
            ListItem.created_at.asc(),
            ListItem.id.asc(),
        )
        .all()
    )
    items_by_list = defaultdict(list)
    for item in open_items:
        items_by_list[item.list_id].append(DigestItem(
            title=item.title,
            description=item.description,
            deadline=item.deadline,
            created_at=item.created_at,
        ))

    candidates = []
    for user in users:
        lists = [
            DigestList(
                id=todo_list.id,
                name=todo_list.name,
                description=todo_list.description,
                icon=todo_list.icon,
                items=items_by_list.get(todo_list.id, []),
            )
            for todo_list in user.lists
        ]
        candidates.append(ReminderCandidate(
            user_id=user.id,
            email=user.email,
            name=user.name,
            notification_time=user.notification_time,
            notification_days=user.notification_days,
            timezone=user.timezone,
            lists=lists,
        ))
    return candidates


class ReminderDispatcher:
    """Runs one pass over the candidates; a single user's failure never stops the batch."""

    def __init__(self, transport, subject=DIGEST_SUBJECT, app_name=DEFAULT_APP_NAME,
                 app_url=None, test_mode=False, clock=utcnow):
        self.transport = transport
        self.subject = subject
        self.app_name = app_name
        self.app_url = app_url
        self.test_mode = test_mode
        self.clock = clock

    def run(self, candidates):
        # One instant for the whole run; the eligibility window is an hour wide.
        now = self.clock()
        summary = ReminderSummary()
        if self.test_mode:
            logger.info("Reminder test mode: time/day checks are bypassed")
        for candidate in candidates:
            try:
                self._process(candidate, now, summary)
            except Exception:
                summary.failed += 1
                logger.exception("Unexpected error processing reminders for user %s", candidate.user_id)
        logger.info("Reminder summary: %s", summary)
        return summary

    def _process(self, candidate, now, summary):
        prefs = resolve_preferences(
            candidate.notification_time, candidate.notification_days, candidate.timezone
        )
        if not prefs.configured:
            summary.skipped_unconfigured += 1
            logger.info("Skipping %s - %s", candidate.email, prefs.reason())
            return

        if not self.test_mode and not is_due(prefs, now):
            summary.skipped_wrong_time += 1
            logger.info(
                "Skipping %s - not the right time/day (now %s in %s, configured %s on days %s)",
                candidate.email,
                self._describe_local_time(prefs.timezone, now),
                prefs.timezone,
                prefs.time_of_day.strftime('%H:%M'),
                sorted(prefs.weekdays),
            )
            return

        lists = [todo_list for todo_list in candidate.lists if todo_list.items]
        if not lists:
            summary.skipped_no_open_items += 1
            logger.info("Skipping %s - no open todos", candidate.email)
            return

        item_count = sum(len(todo_list.items) for todo_list in lists)
        logger.info(
            "Sending reminder to %s (%s open item(s) across %s list(s))",
            candidate.email, item_count, len(lists),
        )
        digest = render_digest(
            candidate.name,
            lists,
            now=now,
            timezone=prefs.timezone,
            app_name=self.app_name,
            app_url=self.app_url,
        )
        if self._deliver(candidate.email, digest):
            summary.sent += 1
        else:
            summary.failed += 1

    def _deliver(self, recipient, digest):
        try:
            result = self.transport.send(recipient, self.subject, digest.html, digest.text)
        except Exception as exc:
            logger.error("Failed to send reminder to %s: %s", recipient, exc)
            return False
        if recipient in result.pending:
            logger.warning("Reminder to %s is pending at the mail server; counting as sent", recipient)
        if not result.delivered_to(recipient):
            logger.error("Mail server rejected reminder to %s", recipient)
            return False
        logger.info("Email sent successfully to %s", recipient)
        return True

    @staticmethod
    def _describe_local_time(timezone, now):
        try:
            return local_now(timezone, now).strftime('%Y-%m-%d %H:%M (%a)')
        except Exception:
            return 'unknown'


def send_reminders(settings=None, test_mode=None, transport_factory=SMTPTransport,
                   loader=load_reminder_candidates, clock=utcnow, app_name=None, app_url=None):
    """
    Run the reminder job once and return its ReminderSummary.

    Raises MailConfigError when SMTP credentials are missing and
    ReminderJobError when the mail server cannot be verified or the user data
    cannot be loaded. Must run inside an application context when the default
    loader is used.
    """
    settings = settings or MailSettings.from_env()
    if test_mode is None:
        test_mode = parse_bool(os.environ.get('REMINDER_TEST_MODE'), False)
    app_name = app_name or os.environ.get('APP_NAME') or DEFAULT_APP_NAME
    app_url = app_url or os.environ.get('APP_URL') or None

    try:
        transport = transport_factory(settings)
        transport.open()
    except MailTransportError as exc:
        raise ReminderJobError(str(exc)) from exc

    try:
        try:
            transport.verify()
        except MailTransportError as exc:
            raise ReminderJobError(str(exc)) from exc

        try:
            candidates = loader()
        except SQLAlchemyError as exc:
            raise ReminderJobError(f"Could not load users and open items: {exc}") from exc
        logger.info("Loaded %s user(s) for reminder run", len(candidates))

        dispatcher = ReminderDispatcher(
            transport,
            app_name=app_name,
            app_url=app_url,
            test_mode=test_mode,
            clock=clock,
        )
        return dispatcher.run(candidates)
    finally:
        transport.close()
