"""Reminder digest routes for the current user."""


def preview_reminder():
    """Render the current user's digest exactly as the reminder job would, without sending it."""
    import app as a

    app = a.app
    get_current_user = a.get_current_user
    jsonify = a.jsonify

    from backend.digest import render_digest
    from backend.eligibility import is_due
    from backend.preferences import preferences_for_user
    from backend.reminder_job import load_reminder_candidates, utcnow

    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    candidates = load_reminder_candidates(user_id=user.id)
    if not candidates:
        return jsonify({'error': 'User not found'}), 404
    candidate = candidates[0]

    now = utcnow()
    prefs = preferences_for_user(user)
    lists = [todo_list for todo_list in candidate.lists if todo_list.items]
    digest = render_digest(
        candidate.name,
        lists,
        now=now,
        timezone=prefs.timezone if prefs.configured else None,
        app_name=app.config.get('APP_NAME', 'Lysje'),
        app_url=app.config.get('APP_URL'),
    )
    return jsonify({
        'html': digest.html,
        'text': digest.text,
        'lists': len(lists),
        'items': sum(len(todo_list.items) for todo_list in lists),
        'configured': prefs.configured,
        'eligible_now': is_due(prefs, now),
    })
