"""Backend port — abstract interface for the remote backend-as-a-service.

Core modules depend on this protocol, never on a specific provider.
Every failure surfaces as a BackendError subclass whose `kind` tells the
session how to react (swallow, keep stale data, or degrade).
"""

from __future__ import annotations

import asyncio
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import Moment, TimeWindow, User


class ErrorKind(Enum):
    CANCELLED = "cancelled"                      # superseded request, always swallowed
    TRANSIENT = "transient"                      # network/server error, state preserved
    FATAL_FOR_OPERATION = "fatal_for_operation"  # operation degrades to a fallback path


class BackendError(Exception):
    """Raised when any backend operation fails."""

    kind: ErrorKind = ErrorKind.TRANSIENT


class RequestCancelledError(BackendError):
    """The request was superseded by a newer request of the same kind."""

    kind = ErrorKind.CANCELLED


class TransientBackendError(BackendError):
    """Network failure or 5xx response."""


class AuthenticationError(BackendError):
    """Not signed in, or the session was rejected by the backend."""

    kind = ErrorKind.FATAL_FOR_OPERATION


class RequestRejectedError(BackendError):
    """The backend refused the request (4xx other than auth)."""

    kind = ErrorKind.FATAL_FOR_OPERATION

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImageEncodingError(BackendError):
    """The captured image could not be encoded for upload."""

    kind = ErrorKind.FATAL_FOR_OPERATION


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to the session's error taxonomy."""
    if isinstance(exc, asyncio.CancelledError):
        return ErrorKind.CANCELLED
    if isinstance(exc, BackendError):
        return exc.kind
    return ErrorKind.TRANSIENT


class BackendPort(Protocol):
    """Abstract backend interface used by the session store."""

    @property
    def is_authenticated(self) -> bool: ...

    async def current_profile(self) -> User | None: ...

    async def sign_in(self, email: str, password: str) -> User: ...

    async def sign_up(
        self, email: str, password: str, first_name: str, avatar_color: str
    ) -> User: ...

    async def sign_out(self) -> None: ...

    async def fetch_windows(self) -> list[TimeWindow]: ...

    async def fetch_friends(self) -> list[User]: ...

    async def fetch_friends_moments(self) -> list[Moment]: ...

    async def fetch_my_moments(self, limit: int = 7) -> list[Moment]: ...

    async def has_posted_today(self) -> bool: ...

    async def upload_moment_image(self, image_bytes: bytes) -> str: ...

    async def create_moment(
        self, image_path: str | None, description: str | None
    ) -> Moment | None: ...

    async def delete_moment(self, moment_id: uuid.UUID, image_path: str | None) -> None: ...

    async def add_text_reaction(self, moment_id: uuid.UUID, text: str) -> None: ...

    async def upload_voice_reaction(self, audio_bytes: bytes) -> str: ...

    async def add_voice_reaction(
        self, moment_id: uuid.UUID, duration_seconds: float, voice_path: str
    ) -> None: ...

    async def remove_friend(self, friend_id: uuid.UUID) -> None: ...

    async def get_or_create_invitation(self) -> str: ...

    async def accept_invitation(self, code: str) -> User | None: ...
