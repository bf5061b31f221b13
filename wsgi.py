"""
WSGI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed-progression-rules
    flask --app wsgi run-job notification_check

Run a single worker process when SCHEDULER_ENABLED is true; every process
that creates the app starts its own scheduler threads.
"""

from app import create_app

app = create_app()
