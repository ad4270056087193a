"""
Tymer — Local persistence.

A small SQLite key-value store for device-local flags (onboarding done,
last post date, debug mode) and a media directory for images that could
not be uploaded. No transactional semantics beyond single writes.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class StorageKey:
    HAS_COMPLETED_ONBOARDING = "has_completed_onboarding"
    LAST_POST_DATE = "tymer_last_post_date"
    HAS_POSTED = "tymer_has_posted"
    DEBUG_MODE_ENABLED = "debug_mode_enabled"

    # Keys tied to the signed-in account, wiped on account switch.
    ACCOUNT_SCOPED = (LAST_POST_DATE, HAS_POSTED)


class LocalStore:
    """SQLite-backed key-value storage for device-local settings."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn: sqlite3.Connection | None = None
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._db_path == ":memory:":
            # A fresh :memory: connection would be a fresh database.
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:")
                self._memory_conn.row_factory = sqlite3.Row
            return self._memory_conn
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
        logger.debug("Local store initialized at %s", self._db_path)

    def get(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get(key)
        if raw is None:
            return default
        return raw == "1"

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, "1" if value else "0")

    def get_datetime(self, key: str) -> datetime | None:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed timestamp for %s: %r", key, raw)
            return None

    def set_datetime(self, key: str, value: datetime) -> None:
        self.set(key, value.isoformat())

    def clear_account_data(self) -> None:
        """Forget everything tied to the signed-in account."""
        for key in StorageKey.ACCOUNT_SCOPED:
            self.delete(key)
        logger.info("Local account data cleared")


class MediaStore:
    """Directory of images persisted on device when an upload fails."""

    def __init__(self, media_dir: str | None = None) -> None:
        if media_dir is None:
            from src.config import settings
            media_dir = settings.MEDIA_DIR

        self._dir = Path(media_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def save_image(self, image_bytes: bytes) -> str:
        """Write the image and return its local identifier (file name)."""
        image_id = f"{uuid.uuid4()}.jpg"
        (self._dir / image_id).write_bytes(image_bytes)
        logger.info("Image saved locally: %s (%d bytes)", image_id, len(image_bytes))
        return image_id

    def load_image(self, image_id: str) -> bytes | None:
        path = self._dir / image_id
        if not path.is_file():
            return None
        return path.read_bytes()

    def path_for(self, image_id: str) -> Path:
        return self._dir / image_id
