"""Offline backend adapter — implements BackendPort without a server.

Never authenticated: the session falls back to default windows and keeps
every post on device. Useful for demos and for running without credentials.
"""

from __future__ import annotations

import logging
import uuid

from src.data.models import Moment, TimeWindow, User
from src.ports.backend_port import AuthenticationError

logger = logging.getLogger(__name__)


class OfflineBackend:
    """Offline implementation of BackendPort."""

    @property
    def is_authenticated(self) -> bool:
        return False

    async def current_profile(self) -> User | None:
        return None

    async def sign_in(self, email: str, password: str) -> User:
        raise AuthenticationError("Sign-in is unavailable in offline mode")

    async def sign_up(
        self, email: str, password: str, first_name: str, avatar_color: str
    ) -> User:
        raise AuthenticationError("Sign-up is unavailable in offline mode")

    async def sign_out(self) -> None:
        return None

    async def fetch_windows(self) -> list[TimeWindow]:
        # Empty list: the schedule engine uses its defaults.
        return []

    async def fetch_friends(self) -> list[User]:
        return []

    async def fetch_friends_moments(self) -> list[Moment]:
        return []

    async def fetch_my_moments(self, limit: int = 7) -> list[Moment]:
        return []

    async def has_posted_today(self) -> bool:
        return False

    async def upload_moment_image(self, image_bytes: bytes) -> str:
        raise AuthenticationError("Offline")

    async def create_moment(self, image_path: str | None, description: str | None) -> Moment | None:
        raise AuthenticationError("Offline")

    async def delete_moment(self, moment_id: uuid.UUID, image_path: str | None) -> None:
        raise AuthenticationError("Offline")

    async def add_text_reaction(self, moment_id: uuid.UUID, text: str) -> None:
        raise AuthenticationError("Offline")

    async def upload_voice_reaction(self, audio_bytes: bytes) -> str:
        raise AuthenticationError("Offline")

    async def add_voice_reaction(
        self, moment_id: uuid.UUID, duration_seconds: float, voice_path: str
    ) -> None:
        raise AuthenticationError("Offline")

    async def remove_friend(self, friend_id: uuid.UUID) -> None:
        raise AuthenticationError("Offline")

    async def get_or_create_invitation(self) -> str:
        raise AuthenticationError("Invitations need an account")

    async def accept_invitation(self, code: str) -> User | None:
        raise AuthenticationError("Invitations need an account")
