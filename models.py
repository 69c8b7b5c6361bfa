from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

from services.validation_service import parse_days_of_week

db = SQLAlchemy()


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)
    # Reminder preferences; all three must be set for reminders to go out.
    notification_time = db.Column(db.String(5), nullable=True)  # "HH:MM" local time
    notification_days = db.Column(db.String(20), nullable=True)  # "1,2,3,4,5", 0 = Sunday
    timezone = db.Column(db.String(64), nullable=True)  # IANA name
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    lists = db.relationship(
        'TodoList',
        backref='owner',
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TodoList.created_at.desc()"
    )

    def settings_dict(self):
        days = parse_days_of_week(self.notification_days) if self.notification_days else []
        return {
            'notification_time': self.notification_time,
            'notification_days': days or None,
            'timezone': self.timezone,
        }

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        data.update(self.settings_dict())
        return data


class TodoList(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(16), nullable=True)  # emoji glyph
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    items = db.relationship(
        'ListItem',
        backref='list',
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ListItem.order"
    )

    def open_items(self):
        """Not-done items in manual order; ties fall back to creation time."""
        pending = [i for i in self.items if not i.done]
        return sorted(pending, key=lambda i: (i.order or 0, i.created_at or datetime.min))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'items': [item.to_dict() for item in self.open_items()],
        }


class ListItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    list_id = db.Column(db.Integer, db.ForeignKey('todo_list.id'), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deadline = db.Column(db.DateTime, nullable=True)  # naive UTC
    done = db.Column(db.Boolean, default=False, nullable=False)
    order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'list_id': self.list_id,
            'title': self.title,
            'description': self.description,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'done': self.done,
            'order': self.order,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
