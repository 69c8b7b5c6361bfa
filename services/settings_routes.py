"""Reminder preference routes for the current user."""


def handle_settings():
    import app as a

    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request

    from services.validation_service import (
        days_to_string,
        format_notification_time,
        is_valid_timezone,
        parse_days_of_week,
        parse_notification_time,
    )

    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'GET':
        return jsonify(user.settings_dict())

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON object body required'}), 400

    updates = {}
    if 'notification_time' in data:
        raw_time = data.get('notification_time')
        if raw_time is None:
            updates['notification_time'] = None
        else:
            parsed = parse_notification_time(raw_time) if isinstance(raw_time, str) else None
            if parsed is None:
                return jsonify({'error': 'notification_time must be HH:MM (24h)'}), 400
            updates['notification_time'] = format_notification_time(parsed)

    if 'notification_days' in data:
        raw_days = data.get('notification_days')
        if raw_days is None:
            updates['notification_days'] = None
        else:
            if not isinstance(raw_days, list):
                return jsonify({'error': 'notification_days must be a list of weekday numbers'}), 400
            valid = all(isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in raw_days)
            if not valid:
                return jsonify({'error': 'notification_days must contain integers 0-6 (0 = Sunday)'}), 400
            updates['notification_days'] = days_to_string(parse_days_of_week(raw_days))

    if 'timezone' in data:
        raw_tz = data.get('timezone')
        if raw_tz is None or (isinstance(raw_tz, str) and not raw_tz.strip()):
            updates['timezone'] = None
        elif not is_valid_timezone(raw_tz.strip() if isinstance(raw_tz, str) else raw_tz):
            return jsonify({'error': 'Unknown timezone'}), 400
        else:
            updates['timezone'] = raw_tz.strip()

    for key, value in updates.items():
        setattr(user, key, value)
    db.session.commit()
    return jsonify(user.settings_dict())
