"""Tests for src.data.models — domain types and their invariants."""

import dataclasses
import uuid
from datetime import datetime

import pytest

from src.data.models import (
    ANONYMOUS_USER,
    DEFAULT_WINDOWS,
    MAX_VOICE_SECONDS,
    Moment,
    Reaction,
    ReactionKind,
    TimeWindow,
    User,
    clamp_voice_duration,
)

from tests.factories import make_user


class TestUser:
    def test_initials(self):
        assert make_user("emma").initials == "E"

    def test_anonymous_user_is_stable(self):
        assert ANONYMOUS_USER.id == uuid.UUID(int=0)
        assert ANONYMOUS_USER.first_name == "Moi"

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            make_user().first_name = "Autre"


class TestTimeWindow:
    def test_default_display_text(self):
        assert TimeWindow(start=8, end=9, label="Morning").display_text == "08H-09H"

    def test_explicit_display_text_kept(self):
        window = TimeWindow(start=19, end=20, label="Evening", display_text="19h - 20h")
        assert window.display_text == "19h - 20h"

    def test_contains_hour_half_open(self):
        window = TimeWindow(start=8, end=10, label="Matin")
        assert window.contains_hour(8)
        assert window.contains_hour(9)
        assert not window.contains_hour(10)
        assert not window.contains_hour(7)

    def test_end_24_allowed(self):
        assert TimeWindow(start=23, end=24, label="Late").contains_hour(23)

    @pytest.mark.parametrize("start,end", [(9, 9), (10, 8), (-1, 3), (20, 25)])
    def test_invalid_ranges_rejected(self, start, end):
        with pytest.raises(ValueError):
            TimeWindow(start=start, end=end, label="Bad")

    def test_default_windows(self):
        assert [w.label for w in DEFAULT_WINDOWS] == ["Morning", "Evening"]
        assert [(w.start, w.end) for w in DEFAULT_WINDOWS] == [(8, 9), (19, 20)]


class TestReaction:
    def test_text_reaction(self):
        reaction = Reaction.text_reaction(make_user(), "Trop drôle")
        assert reaction.kind is ReactionKind.TEXT
        assert reaction.display_text == "Trop drôle"
        assert reaction.duration_seconds is None

    def test_voice_reaction_clamped(self):
        reaction = Reaction.voice_reaction(make_user(), 12)
        assert reaction.duration_seconds == MAX_VOICE_SECONDS

    def test_voice_clamp_on_direct_construction(self):
        reaction = Reaction(author=make_user(), kind=ReactionKind.VOICE, duration_seconds=4.2)
        assert reaction.duration_seconds == 3.0

    def test_voice_without_duration_is_zero(self):
        reaction = Reaction(author=make_user(), kind=ReactionKind.VOICE)
        assert reaction.duration_seconds == 0.0
        assert reaction.display_text == "🎤 0s"

    def test_unique_ids(self):
        author = make_user()
        assert Reaction.text_reaction(author, "a").id != Reaction.text_reaction(author, "a").id

    @pytest.mark.parametrize("raw,expected", [(-2, 0.0), (0, 0.0), (1.25, 1.25), (3, 3.0), (99, 3.0)])
    def test_clamp_voice_duration(self, raw, expected):
        assert clamp_voice_duration(raw) == expected


class TestMoment:
    def test_defaults(self):
        moment = Moment(author=make_user(), captured_at=datetime(2026, 3, 10, 8, 30))
        assert moment.reactions == []
        assert moment.image_path is None
        assert moment.is_local_only is False

    def test_reactions_not_shared_between_instances(self):
        a = Moment(author=make_user(), captured_at=datetime(2026, 3, 10))
        b = Moment(author=make_user(), captured_at=datetime(2026, 3, 10))
        a.reactions.append(Reaction.text_reaction(make_user(), "x"))
        assert b.reactions == []

    def test_user_equality_by_value(self):
        uid = uuid.uuid4()
        assert User(id=uid, first_name="Emma") == User(id=uid, first_name="Emma")
