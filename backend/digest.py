"""Render the open-items reminder digest as HTML and plain text."""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pytz
from markupsafe import escape

from backend.eligibility import to_utc

DEFAULT_APP_NAME = 'Lysje'
DIGEST_SUBJECT = 'Your Open Todo Items'
NO_OPEN_ITEMS_MESSAGE = 'You have no open todo items. Great job!'

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class DigestItem:
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None  # naive values are UTC
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DigestList:
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    items: List[DigestItem] = field(default_factory=list)


@dataclass(frozen=True)
class RenderedDigest:
    html: str
    text: str


@dataclass(frozen=True)
class _Entry:
    title: str
    description: Optional[str]
    deadline_label: Optional[str]
    days: Optional[int]

    @property
    def overdue(self):
        return self.days is not None and self.days < 0

    @property
    def status_label(self):
        if self.days is None:
            return None
        if self.overdue:
            return f"OVERDUE by {_pluralize(abs(self.days), 'day')}"
        return f"{_pluralize(self.days, 'day')} remaining"


@dataclass(frozen=True)
class _Section:
    list: DigestList
    entries: List[_Entry]


def days_until(deadline, now):
    """Whole days until `deadline`, rounded up; negative once a full day late."""
    delta = to_utc(deadline) - to_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def format_deadline(deadline, timezone=None):
    tz = pytz.UTC
    if timezone:
        try:
            tz = pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            tz = pytz.UTC
    local = to_utc(deadline).astimezone(tz)
    return f"{local:%b} {local.day}, {local.year}"


def _pluralize(count, word):
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _build_sections(lists, now, timezone):
    sections = []
    for todo_list in lists:
        entries = []
        for item in todo_list.items:
            days = deadline_label = None
            if item.deadline is not None:
                days = days_until(item.deadline, now)
                deadline_label = format_deadline(item.deadline, timezone)
            entries.append(_Entry(
                title=item.title,
                description=item.description or None,
                deadline_label=deadline_label,
                days=days,
            ))
        sections.append(_Section(list=todo_list, entries=entries))
    return sections


def _summary_line(sections):
    item_count = sum(len(s.entries) for s in sections)
    return f"You have {_pluralize(item_count, 'open item')} across {_pluralize(len(sections), 'list')}."


def _list_url(app_url, list_id):
    return f"{app_url.rstrip('/')}/lists/{list_id}"


def _render_text(user_name, sections, app_name):
    lines = [DIGEST_SUBJECT, '', f"Hi {user_name or 'there'},", '']
    if not sections:
        lines.append(NO_OPEN_ITEMS_MESSAGE)
        lines.append('')
    else:
        lines.append("Here's a summary of your open todo items:")
        lines.append(_summary_line(sections))
        lines.append('')
        for section in sections:
            heading = section.list.name
            if section.list.icon:
                heading = f"{section.list.icon} {heading}"
            lines.append(heading)
            if section.list.description:
                lines.append(section.list.description)
            lines.append('=' * len(heading))
            for entry in section.entries:
                lines.append(f"  - {entry.title}")
                if entry.description:
                    lines.append(f"    {entry.description}")
                if entry.deadline_label:
                    lines.append(f"    Deadline: {entry.deadline_label} ({entry.status_label})")
                lines.append('')
            lines.append('')
    lines.append(f"This is an automated email from {app_name}.")
    return '\n'.join(lines) + '\n'


def _entry_html(entry):
    description = ''
    if entry.description:
        description = (
            f'<div style="color:#666;margin-top:5px;font-size:14px;">{escape(entry.description)}</div>'
        )
    deadline = ''
    if entry.deadline_label:
        color = '#c0392b;font-weight:bold' if entry.overdue else '#e74c3c'
        deadline = (
            f'<div style="color:{color};font-size:12px;margin-top:5px;">'
            f'Deadline: {escape(entry.deadline_label)} ({escape(entry.status_label)})</div>'
        )
    return f"""
          <div style="margin:10px 0;padding:10px;background:#ffffff;border-radius:4px;">
            <div style="font-weight:bold;color:#2c3e50;">{escape(entry.title)}</div>{description}{deadline}
          </div>"""


def _section_html(section, app_url):
    name = escape(section.list.name)
    if app_url:
        name = f'<a href="{escape(_list_url(app_url, section.list.id))}">{name}</a>'
    if section.list.icon:
        name = f"{escape(section.list.icon)} {name}"
    description = ''
    if section.list.description:
        description = f'<div style="color:#666;font-size:14px;">{escape(section.list.description)}</div>'
    entries_html = ''.join(_entry_html(entry) for entry in section.entries)
    return f"""
        <div style="margin:20px 0;padding:15px;background:#f8f9fa;">
          <div style="font-size:18px;font-weight:bold;color:#2c3e50;margin-bottom:10px;">{name}</div>{description}{entries_html}
        </div>"""


def _render_html(user_name, sections, app_name, app_url):
    title = escape(app_name)
    if app_url:
        title = f'<a href="{escape(app_url)}">{title}</a>'
    if sections:
        body = (
            "<p>Your open todo items:</p>\n"
            f"        <p>{escape(_summary_line(sections))}</p>"
            + ''.join(_section_html(section, app_url) for section in sections)
        )
    else:
        body = f'<p style="color:#7f8c8d;font-style:italic;">{escape(NO_OPEN_ITEMS_MESSAGE)}</p>'
    return f"""<!doctype html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="margin:0;padding:0;font-family:Arial, Helvetica, sans-serif;line-height:1.6;color:#333;">
    <div style="max-width:600px;margin:0 auto;padding:20px;">
      <h1 style="color:#2c3e50;">{title}</h1>
      <p>Hi {escape(user_name or 'there')},</p>
      {body}
      <p style="margin-top:30px;color:#7f8c8d;font-size:12px;">This is an automated email from {escape(app_name)}.</p>
    </div>
  </body>
</html>
"""


def render_digest(user_name, lists, now=None, timezone=None, app_name=DEFAULT_APP_NAME, app_url=None):
    """
    Build the HTML and plain-text digest for one user.

    `lists` is a sequence of DigestList already filtered to lists with open
    items, in display order. Both outputs come from the same section/entry
    pass so their content cannot drift apart.
    """
    now = now or datetime.now(pytz.UTC)
    sections = _build_sections(lists, now, timezone)
    return RenderedDigest(
        html=_render_html(user_name, sections, app_name, app_url),
        text=_render_text(user_name, sections, app_name),
    )
