"""
Tymer — Data Models.

Domain objects shared by the gating engine and the session store.
Backend DTOs are mapped into these types by the adapters; nothing here
knows about the wire format.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

MAX_VOICE_SECONDS = 3.0


@dataclass(frozen=True)
class User:
    """A profile as seen by the session (self or friend)."""

    id: uuid.UUID
    first_name: str
    avatar_color: str = "gray"

    @property
    def initials(self) -> str:
        return self.first_name[:1].upper()


# Placeholder identity used before a profile is loaded and after sign-out.
ANONYMOUS_USER = User(id=uuid.UUID(int=0), first_name="Moi", avatar_color="white")


@dataclass(frozen=True)
class TimeWindow:
    """A daily time range (whole hours) during which the feed is visible."""

    start: int                 # hour, 0-23
    end: int                   # hour, 1-24 (24 = midnight)
    label: str
    display_text: str = ""     # e.g. "08H-09H"

    def __post_init__(self) -> None:
        if not (0 <= self.start < self.end <= 24):
            raise ValueError(
                f"Invalid window {self.label!r}: expected 0 <= start < end <= 24, "
                f"got start={self.start} end={self.end}"
            )
        if not self.display_text:
            object.__setattr__(self, "display_text", f"{self.start:02d}H-{self.end:02d}H")

    def contains_hour(self, hour: int) -> bool:
        return self.start <= hour < self.end


MORNING_WINDOW = TimeWindow(start=8, end=9, label="Morning", display_text="08H-09H")
EVENING_WINDOW = TimeWindow(start=19, end=20, label="Evening", display_text="19H-20H")
DEFAULT_WINDOWS: tuple[TimeWindow, ...] = (MORNING_WINDOW, EVENING_WINDOW)


class ReactionKind(Enum):
    TEXT = "text"
    VOICE = "voice"


def clamp_voice_duration(seconds: float) -> float:
    """Clamp a voice reaction duration to [0, MAX_VOICE_SECONDS]."""
    return max(0.0, min(float(seconds), MAX_VOICE_SECONDS))


@dataclass(frozen=True)
class Reaction:
    """A text or voice reaction on a moment.

    Text reactions carry `text`; voice reactions carry `duration_seconds`
    (always clamped to 0-3s) and optionally the uploaded `voice_path` and a
    waveform for display.
    """

    author: User
    kind: ReactionKind
    text: str | None = None
    duration_seconds: float | None = None
    voice_path: str | None = None
    waveform: tuple[float, ...] | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if self.kind is ReactionKind.VOICE:
            object.__setattr__(
                self, "duration_seconds", clamp_voice_duration(self.duration_seconds or 0.0),
            )

    @classmethod
    def text_reaction(cls, author: User, text: str, created_at: datetime | None = None) -> Reaction:
        return cls(
            author=author,
            kind=ReactionKind.TEXT,
            text=text,
            created_at=created_at or datetime.now(),
        )

    @classmethod
    def voice_reaction(
        cls,
        author: User,
        duration_seconds: float,
        voice_path: str | None = None,
        created_at: datetime | None = None,
    ) -> Reaction:
        return cls(
            author=author,
            kind=ReactionKind.VOICE,
            duration_seconds=duration_seconds,
            voice_path=voice_path,
            created_at=created_at or datetime.now(),
        )

    @property
    def display_text(self) -> str:
        if self.kind is ReactionKind.VOICE:
            return f"🎤 {int(self.duration_seconds or 0)}s"
        return self.text or ""


@dataclass
class Moment:
    """A daily photo post.

    Only `reactions` is ever mutated, and only by appending.
    """

    author: User
    captured_at: datetime
    image_path: str | None = None
    description: str | None = None
    reactions: list[Reaction] = field(default_factory=list)
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    is_local_only: bool = False   # persisted on device, never confirmed by the backend
