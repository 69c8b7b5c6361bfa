from datetime import datetime, timedelta

import pytz

from backend.digest import (
    NO_OPEN_ITEMS_MESSAGE,
    DigestItem,
    DigestList,
    days_until,
    format_deadline,
    render_digest,
)

NOW = datetime(2026, 1, 6, 14, 0, tzinfo=pytz.UTC)


def groceries(*items):
    return DigestList(id=7, name='Groceries', items=list(items))


def test_empty_digest_affirms_in_both_representations():
    digest = render_digest('Ana', [], now=NOW)
    assert NO_OPEN_ITEMS_MESSAGE in digest.html
    assert NO_OPEN_ITEMS_MESSAGE in digest.text
    assert 'Deadline:' not in digest.text
    assert '/lists/' not in digest.html
    assert 'open item' not in digest.text


def test_rendering_is_deterministic():
    lists = [groceries(DigestItem('Milk', deadline=datetime(2026, 1, 8, 12, 0)))]
    first = render_digest('Ana', lists, now=NOW, app_url='https://todo.example.com')
    second = render_digest('Ana', lists, now=NOW, app_url='https://todo.example.com')
    assert first == second


def test_overdue_item_reports_days_late():
    item = DigestItem('Pay rent', deadline=(NOW - timedelta(days=3)).replace(tzinfo=None))
    digest = render_digest('Ana', [groceries(item)], now=NOW)
    assert 'OVERDUE by 3 days' in digest.text
    assert 'OVERDUE by 3 days' in digest.html


def test_deadline_exactly_now_is_zero_days_remaining():
    item = DigestItem('Call bank', deadline=NOW)
    digest = render_digest('Ana', [groceries(item)], now=NOW)
    assert '0 days remaining' in digest.text
    assert 'OVERDUE' not in digest.text


def test_days_until_rounds_up_partial_days():
    assert days_until(NOW + timedelta(days=2, hours=12), NOW) == 3
    assert days_until(NOW - timedelta(days=1), NOW) == -1
    assert days_until(NOW, NOW) == 0


def test_item_without_deadline_has_no_deadline_line():
    digest = render_digest('Ana', [groceries(DigestItem('Milk'))], now=NOW)
    assert '  - Milk' in digest.text
    assert 'Deadline' not in digest.text


def test_user_text_is_escaped_in_html_only():
    todo_list = DigestList(
        id=1,
        name='<b>Work</b>',
        description='Q&A',
        items=[DigestItem('<script>alert(1)</script>', description='"quoted"')],
    )
    digest = render_digest('<Eve>', [todo_list], now=NOW)
    assert '<script>' not in digest.html
    assert '&lt;script&gt;alert(1)&lt;/script&gt;' in digest.html
    assert '&lt;b&gt;Work&lt;/b&gt;' in digest.html
    assert 'Q&amp;A' in digest.html
    assert 'Hi &lt;Eve&gt;' in digest.html
    assert '<script>alert(1)</script>' in digest.text
    assert '<b>Work</b>' in digest.text
    assert 'Hi <Eve>,' in digest.text


def test_summary_counts_and_links():
    lists = [
        DigestList(id=3, name='Home', icon='🏠', items=[DigestItem('Sweep'), DigestItem('Dust')]),
        groceries(DigestItem('Milk')),
    ]
    digest = render_digest(None, lists, now=NOW, app_url='https://todo.example.com/')
    assert 'You have 3 open items across 2 lists.' in digest.text
    assert 'Hi there,' in digest.text
    assert 'https://todo.example.com/lists/3' in digest.html
    assert 'https://todo.example.com/lists/7' in digest.html
    assert '🏠 Home' in digest.text
    assert digest.text.index('Home') < digest.text.index('Groceries')


def test_deadline_is_shown_in_user_timezone():
    deadline = datetime(2026, 1, 7, 2, 0)  # 21:00 on Jan 6 in New York
    assert format_deadline(deadline, 'America/New_York') == 'Jan 6, 2026'
    assert format_deadline(deadline) == 'Jan 7, 2026'
    assert format_deadline(deadline, 'Bad/Zone') == 'Jan 7, 2026'


def test_single_day_labels_are_singular():
    late = DigestItem('Late', deadline=NOW - timedelta(days=1))
    soon = DigestItem('Soon', deadline=NOW + timedelta(hours=5))
    digest = render_digest('Ana', [groceries(late, soon)], now=NOW)
    assert '(OVERDUE by 1 day)' in digest.text
    assert '1 day remaining' in digest.text
    assert '1 days' not in digest.text
    assert '1 days' not in digest.html
