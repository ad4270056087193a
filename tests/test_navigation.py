"""Tests for src.core.navigation — screen transitions and back stack."""

import uuid

import pytest

from src.core.navigation import (
    TRANSITIONS,
    InvalidTransitionError,
    Navigator,
    Route,
    Screen,
)


def _at_gate() -> Navigator:
    nav = Navigator()
    nav.after_splash(has_completed_onboarding=True)
    return nav


class TestTransitionTable:
    def test_every_screen_has_an_entry(self):
        assert set(TRANSITIONS) == set(Screen)

    def test_every_main_screen_can_return_to_gate(self):
        for screen in (Screen.FEED, Screen.CAPTURE, Screen.CIRCLE, Screen.PROFILE,
                       Screen.MESSAGES, Screen.SETTINGS, Screen.MOMENT_DETAIL):
            assert Screen.GATE in TRANSITIONS[screen]

    def test_nothing_returns_to_splash(self):
        assert all(Screen.SPLASH not in targets for targets in TRANSITIONS.values())


class TestRoute:
    def test_moment_detail_requires_id(self):
        with pytest.raises(ValueError):
            Route(Screen.MOMENT_DETAIL)

    def test_other_screens_reject_id(self):
        with pytest.raises(ValueError):
            Route(Screen.FEED, moment_id=uuid.uuid4())


class TestAfterSplash:
    def test_first_launch_goes_to_onboarding(self):
        nav = Navigator()
        assert nav.after_splash(has_completed_onboarding=False).screen is Screen.ONBOARDING

    def test_signed_out_goes_to_auth(self):
        nav = Navigator()
        route = nav.after_splash(has_completed_onboarding=True, is_authenticated=False)
        assert route.screen is Screen.AUTH

    def test_returning_user_goes_to_gate(self):
        assert _at_gate().current.screen is Screen.GATE

    def test_complete_onboarding(self):
        nav = Navigator()
        nav.after_splash(has_completed_onboarding=False)
        assert nav.complete_onboarding().screen is Screen.GATE

    def test_complete_onboarding_signed_out(self):
        nav = Navigator()
        nav.after_splash(has_completed_onboarding=False)
        assert nav.complete_onboarding(is_authenticated=False).screen is Screen.AUTH


class TestNavigator:
    def test_navigate_and_back(self):
        nav = _at_gate()
        nav.navigate(Screen.FEED)
        nav.navigate(Screen.CAPTURE)
        assert nav.go_back().screen is Screen.FEED
        assert nav.go_back().screen is Screen.GATE

    def test_back_with_empty_stack_lands_on_gate(self):
        nav = _at_gate()
        assert nav.history == []
        assert nav.go_back().screen is Screen.GATE

    def test_moment_detail_carries_id(self):
        nav = _at_gate()
        moment_id = uuid.uuid4()
        nav.navigate(Screen.FEED)
        route = nav.navigate(Screen.MOMENT_DETAIL, moment_id=moment_id)
        assert route.moment_id == moment_id

    def test_gate_clears_history(self):
        nav = _at_gate()
        nav.navigate(Screen.PROFILE)
        nav.navigate(Screen.SETTINGS)
        nav.navigate(Screen.GATE)
        assert nav.history == []

    def test_invalid_transition(self):
        nav = _at_gate()
        nav.navigate(Screen.CAPTURE)
        with pytest.raises(InvalidTransitionError):
            nav.navigate(Screen.SETTINGS)
        assert nav.current.screen is Screen.CAPTURE

    def test_can_navigate(self):
        nav = Navigator()
        assert nav.can_navigate(Screen.AUTH)
        assert not nav.can_navigate(Screen.FEED)

    def test_sign_out_from_settings(self):
        nav = _at_gate()
        nav.navigate(Screen.PROFILE)
        nav.navigate(Screen.SETTINGS)
        assert nav.navigate(Screen.AUTH).screen is Screen.AUTH
        assert nav.history == []

    def test_reset_to_auth_from_anywhere(self):
        nav = _at_gate()
        nav.navigate(Screen.FEED)
        nav.navigate(Screen.CAPTURE)
        assert nav.reset_to_auth().screen is Screen.AUTH
        assert nav.history == []
