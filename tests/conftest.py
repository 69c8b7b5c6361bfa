import os
from datetime import datetime

import pytest

# In-memory database and no background scheduler for the whole test run
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['ENABLE_REMINDER_SCHEDULER'] = '0'
os.environ['API_SHARED_KEY'] = 'test-key'

from app import app as flask_app  # noqa: E402
from backend.mailer import MailSettings, MailTransportError, SendResult  # noqa: E402
from models import db, User, TodoList, ListItem  # noqa: E402


class FakeTransport:
    """Stands in for SMTPTransport; records every send."""

    def __init__(self, settings=None, fail_for=(), reject=(), pending=(), verify_error=None, open_error=None):
        self.settings = settings
        self.fail_for = set(fail_for)
        self.reject = set(reject)
        self.pending = set(pending)
        self.verify_error = verify_error
        self.open_error = open_error
        self.sent = []
        self.opened = False
        self.closed = False

    def open(self):
        if self.open_error:
            raise MailTransportError(self.open_error)
        self.opened = True
        return self

    def verify(self):
        if self.verify_error:
            raise MailTransportError(self.verify_error)
        return True

    def send(self, to_addr, subject, html_body, text_body):
        if to_addr in self.fail_for:
            raise ConnectionResetError("connection reset by peer")
        if to_addr in self.reject:
            return SendResult(rejected=(to_addr,))
        self.sent.append({'to': to_addr, 'subject': subject, 'html': html_body, 'text': text_body})
        if to_addr in self.pending:
            return SendResult(pending=(to_addr,))
        return SendResult(accepted=(to_addr,))

    def close(self):
        self.closed = True


@pytest.fixture
def mail_settings():
    return MailSettings(
        host='smtp.example.com',
        port=587,
        username='mailer@example.com',
        password='secret',
        from_addr='mailer@example.com',
    )


@pytest.fixture
def app_ctx():
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app_ctx):
    return flask_app.test_client()


def auth_headers(user):
    return {'X-API-Key': 'test-key', 'X-User-Id': str(user.id)}


def make_user(email, name=None, notification_time=None, notification_days=None, timezone=None):
    user = User(
        email=email,
        name=name,
        notification_time=notification_time,
        notification_days=notification_days,
        timezone=timezone,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_list(user, name, description=None, icon=None, created_at=None):
    todo_list = TodoList(
        user_id=user.id,
        name=name,
        description=description,
        icon=icon,
        created_at=created_at or datetime.utcnow(),
    )
    db.session.add(todo_list)
    db.session.commit()
    return todo_list


def make_item(todo_list, title, done=False, deadline=None, description=None, order=0, created_at=None):
    item = ListItem(
        list_id=todo_list.id,
        title=title,
        description=description,
        done=done,
        deadline=deadline,
        order=order,
        created_at=created_at or datetime.utcnow(),
    )
    db.session.add(item)
    db.session.commit()
    return item
