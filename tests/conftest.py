"""
Shared fixtures: a temporary SQLite database per test and clean process-wide state.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the scrubbed package importable when running tests from a checkout
ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from scrubbed.core import config as core_config
from scrubbed.core.rate_limiter import reset_limits
from scrubbed.db import create_tables, models
from scrubbed.db import session as db_session


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER", "SMTP_HOST", "APP_ENV"):
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()
    reset_limits()
    yield
    core_config.get_settings.cache_clear()
    reset_limits()


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    """Temporary SQLite database with the full schema; torn down after the test."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    create_tables.create_all(reset=True)
    engine = db_session.get_engine()

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
