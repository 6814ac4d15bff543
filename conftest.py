"""
Root pytest configuration for the Django project.

Sets the environment the settings module reads before Django is loaded, so
the suite runs without the Docker services:
    - SQLite instead of PostgreSQL
    - Celery tasks executed eagerly (no broker)
    - Short typing timeout so expiry can be observed in tests

Cache and channel layer backends are swapped in app/conftest.py.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production-use-000000")
os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("DATABASE_URL", "sqlite:///test-db.sqlite3")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("CHAT_TYPING_TIMEOUT_SECONDS", "0.3")
os.environ.setdefault("LOG_LEVEL", "WARNING")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()
