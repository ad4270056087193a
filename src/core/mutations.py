"""
Tymer — Optimistic mutation records.

An intent is what the user asked for, captured once and applied locally
right away. The remote outcome is wrapped in a RemoteResult and merged back
by SessionStore.reconcile_remote(), independently of any networking.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.data.models import Moment, Reaction
from src.ports.backend_port import ErrorKind, classify_error


@dataclass(frozen=True, eq=False)
class PostIntent:
    placeholder: Moment
    image_bytes: bytes | None
    retake: bool = False
    replaces: Moment | None = None   # prior moment when retaking
    epoch: int = 0


@dataclass(frozen=True, eq=False)
class ReactionIntent:
    moment_id: uuid.UUID
    reaction: Reaction
    audio_bytes: bytes | None = None
    epoch: int = 0


@dataclass(frozen=True)
class PostConfirmation:
    """What the backend returned for a post."""

    image_path: str | None
    moment: Moment | None    # None when the backend echoed no row


@dataclass(frozen=True)
class RemoteResult:
    value: Any = None
    error: BaseException | None = None
    skipped: bool = False    # never sent (signed out / offline)

    @classmethod
    def success(cls, value: Any = None) -> RemoteResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> RemoteResult:
        return cls(error=error)

    @classmethod
    def local_only(cls) -> RemoteResult:
        return cls(skipped=True)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped

    @property
    def kind(self) -> ErrorKind | None:
        return None if self.error is None else classify_error(self.error)


@dataclass(frozen=True)
class SessionErrorRecord:
    """Last failure the UI may want to render."""

    operation: str            # "post_moment" | "add_reaction" | ...
    kind: ErrorKind
    message: str
    occurred_at: datetime = field(default_factory=datetime.now)
