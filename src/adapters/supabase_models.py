"""Supabase row contracts and their mapping to domain models.

Rows come back from PostgREST as JSON with snake_case columns and nested
relations (`profiles`, `reactions`). Pydantic validates them; the `to_*`
helpers turn them into the domain types the session works with.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from src.data.models import Moment, Reaction, ReactionKind, TimeWindow, User

UNKNOWN_AUTHOR_NAME = "Inconnu"


class ProfileDTO(BaseModel):
    id: uuid.UUID
    first_name: str
    avatar_color: str = "blue"
    avatar_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_user(self) -> User:
        return User(id=self.id, first_name=self.first_name, avatar_color=self.avatar_color.lower())


def _unknown_author(author_id: uuid.UUID) -> User:
    return User(id=author_id, first_name=UNKNOWN_AUTHOR_NAME)


class ReactionDTO(BaseModel):
    id: uuid.UUID
    moment_id: uuid.UUID
    author_id: uuid.UUID
    reaction_type: str
    content: str | None = None
    duration: float | None = None
    voice_path: str | None = None
    created_at: datetime
    profiles: ProfileDTO | None = None

    def to_reaction(self) -> Reaction:
        author = self.profiles.to_user() if self.profiles else _unknown_author(self.author_id)
        if self.reaction_type == ReactionKind.VOICE.value and self.duration is not None:
            return Reaction(
                id=self.id,
                author=author,
                kind=ReactionKind.VOICE,
                duration_seconds=self.duration,
                voice_path=self.voice_path,
                created_at=self.created_at,
            )
        return Reaction(
            id=self.id,
            author=author,
            kind=ReactionKind.TEXT,
            text=self.content or "",
            created_at=self.created_at,
        )


class MomentDTO(BaseModel):
    id: uuid.UUID
    author_id: uuid.UUID
    image_path: str | None = None
    description: str | None = None
    captured_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None
    profiles: ProfileDTO | None = None
    reactions: list[ReactionDTO] | None = None

    def to_moment(self) -> Moment:
        author = self.profiles.to_user() if self.profiles else _unknown_author(self.author_id)
        reactions = sorted(self.reactions or [], key=lambda r: r.created_at)
        return Moment(
            id=self.id,
            author=author,
            image_path=self.image_path,
            captured_at=self.captured_at,
            description=self.description,
            reactions=[r.to_reaction() for r in reactions],
        )


class WindowDTO(BaseModel):
    id: uuid.UUID | None = None
    start_hour: int
    end_hour: int
    label: str
    display_time: str | None = None

    def to_time_window(self) -> TimeWindow:
        return TimeWindow(
            start=self.start_hour,
            end=self.end_hour,
            label=self.label,
            display_text=self.display_time or "",
        )


class FriendshipDTO(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    friend_id: uuid.UUID
    status: str
    created_at: datetime | None = None
    user: ProfileDTO | None = None
    friend: ProfileDTO | None = None

    def other_profile(self, me: uuid.UUID) -> ProfileDTO | None:
        """The profile on the other side of the friendship from `me`."""
        return self.friend if self.user_id == me else self.user


class InvitationDTO(BaseModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    code: str
    is_used: bool = False
    expires_at: datetime | None = None
    created_at: datetime | None = None
    creator: ProfileDTO | None = None
