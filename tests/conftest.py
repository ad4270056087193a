"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures: a manual clock, temp local storage, a mock
backend and a ready SessionStore.
"""

import os
import tempfile

# Patch env vars BEFORE any src imports
os.environ.setdefault("BACKEND_PROVIDER", "supabase")
os.environ.setdefault("SUPABASE_URL", "https://fake-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "fake-anon-key-for-tests")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("MEDIA_DIR", tempfile.mkdtemp(prefix="tymer-media-"))

import pytest

from tests.factories import NOW, make_backend


@pytest.fixture
def clock():
    """A ManualClock frozen at NOW (10:00 UTC, feed closed)."""
    from src.core.clock import ManualClock
    return ManualClock(NOW)


@pytest.fixture
def local_store(tmp_path):
    """Return a LocalStore backed by a temp file."""
    from src.data.db import LocalStore
    return LocalStore(db_path=str(tmp_path / "tymer.db"))


@pytest.fixture
def media_store(tmp_path):
    """Return a MediaStore writing into a temp directory."""
    from src.data.db import MediaStore
    return MediaStore(media_dir=str(tmp_path / "media"))


@pytest.fixture
def backend():
    return make_backend()


@pytest.fixture
def store(backend, local_store, media_store, clock):
    """A fresh SessionStore per test."""
    from src.core.session_store import SessionStore
    return SessionStore(
        backend=backend,
        local_store=local_store,
        media_store=media_store,
        clock=clock,
    )
