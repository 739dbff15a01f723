"""
Pytest configuration and shared fixtures.

Settings are pointed at a throwaway SQLite file before any package import,
unless the environment already provides them.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_gracechat.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from gracechat.config import get_settings  # noqa: E402
get_settings.cache_clear()

from gracechat import models  # noqa: E402,F401  (registers tables on Base)
from gracechat.storage import Base, SessionLocal, engine  # noqa: E402


@pytest.fixture(scope="function")
def db():
    """Database session on freshly created tables."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
