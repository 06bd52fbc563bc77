"""
Test environment.

Settings, the engine and the Celery app are built at import time, so the
environment is fixed here before any ``caseflow`` module is imported.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CHANGE_FEED_ENABLED"] = "false"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_FORMAT"] = "text"
