import os
import logging

from dotenv import load_dotenv
from flask import Flask, request, jsonify, session

load_dotenv()

from models import db, User
from apscheduler.schedulers.background import BackgroundScheduler
from backend.reminder_job import ReminderJobError, send_reminders
from backend.mailer import MailConfigError
from services import reminder_routes, settings_routes

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///todo.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = 365 * 24 * 60 * 60  # 1 year in seconds
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # Optional shared key for API callers
app.config['APP_NAME'] = os.environ.get('APP_NAME', 'Lysje')
app.config['APP_URL'] = os.environ.get('APP_URL')

app.logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

db.init_app(app)
scheduler = None


def get_current_user():
    """Resolve the current user from a shared API key + user id header, else fall back to session."""
    # Header-based auth for service callers
    api_key = request.headers.get('X-API-Key')
    api_user_id = request.headers.get('X-User-Id')
    shared_key = app.config.get('API_SHARED_KEY')
    if shared_key and api_key and api_user_id:
        try:
            api_uid_int = int(api_user_id)
        except (TypeError, ValueError):
            api_uid_int = None
        if api_uid_int and api_key == shared_key:
            user = db.session.get(User, api_uid_int)
            if user:
                return user

    # Session-based auth; the session itself is issued by the login service
    user_id = session.get('user_id')
    if user_id:
        return db.session.get(User, user_id)
    return None


with app.app_context():
    db.create_all()


def _run_scheduled_reminders():
    """Scheduler entry point: one reminder run inside an app context, never raising."""
    with app.app_context():
        try:
            summary = send_reminders(
                app_name=app.config['APP_NAME'],
                app_url=app.config['APP_URL'],
            )
            app.logger.info(f"Scheduled reminder run finished: {summary}")
        except (MailConfigError, ReminderJobError) as e:
            app.logger.error(f"Reminder run aborted: {e}")
        except Exception:
            app.logger.exception("Unhandled error in scheduled reminder run")


def _start_scheduler():
    """Start the in-process hourly reminder trigger (off unless ENABLE_REMINDER_SCHEDULER=1)."""
    global scheduler
    if os.environ.get('ENABLE_REMINDER_SCHEDULER', '0') != '1':
        return
    if scheduler and scheduler.running:
        return
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler = BackgroundScheduler(timezone='UTC')
    # Hourly run; each user's own time/day/timezone gates delivery.
    scheduler.add_job(
        _run_scheduled_reminders,
        'cron',
        hour='*',
        minute=int(os.environ.get('REMINDER_CRON_MINUTE', 0)),
        id='send_reminders',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    scheduler.start()
    app.logger.info("Reminder scheduler started")


_jobs_bootstrapped = False


@app.before_request
def _bootstrap_background_jobs():
    global _jobs_bootstrapped
    if _jobs_bootstrapped:
        return
    _start_scheduler()
    _jobs_bootstrapped = True


@app.route('/')
def health_check():
    return jsonify({'status': 'ok'})


app.add_url_rule('/api/settings', view_func=settings_routes.handle_settings, methods=['GET', 'PUT'])
app.add_url_rule('/api/reminders/preview', view_func=reminder_routes.preview_reminder, methods=['GET'])


if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
