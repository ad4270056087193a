"""
Tymer — Navigation state machine.

Screens are plain enum values; which screen may follow which is an explicit
table. The renderer is not involved: it only reads `Navigator.current`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Screen(Enum):
    SPLASH = "splash"
    AUTH = "auth"
    ONBOARDING = "onboarding"
    GATE = "gate"
    FEED = "feed"
    CAPTURE = "capture"
    CIRCLE = "circle"
    PROFILE = "profile"
    MESSAGES = "messages"
    SETTINGS = "settings"
    MOMENT_DETAIL = "moment_detail"


@dataclass(frozen=True)
class Route:
    screen: Screen
    moment_id: uuid.UUID | None = None   # only for MOMENT_DETAIL

    def __post_init__(self) -> None:
        if (self.screen is Screen.MOMENT_DETAIL) != (self.moment_id is not None):
            raise ValueError("moment_id is required for MOMENT_DETAIL and only for it")


_MAIN_SCREENS = {
    Screen.GATE, Screen.FEED, Screen.CAPTURE, Screen.CIRCLE,
    Screen.PROFILE, Screen.MESSAGES, Screen.SETTINGS, Screen.MOMENT_DETAIL,
}

TRANSITIONS: dict[Screen, frozenset[Screen]] = {
    Screen.SPLASH: frozenset({Screen.AUTH, Screen.ONBOARDING, Screen.GATE}),
    Screen.AUTH: frozenset({Screen.ONBOARDING, Screen.GATE}),
    Screen.ONBOARDING: frozenset({Screen.AUTH, Screen.GATE}),
    Screen.GATE: frozenset(_MAIN_SCREENS - {Screen.GATE}),
    Screen.FEED: frozenset({Screen.GATE, Screen.CAPTURE, Screen.MOMENT_DETAIL, Screen.MESSAGES}),
    Screen.CAPTURE: frozenset({Screen.GATE, Screen.FEED}),
    Screen.CIRCLE: frozenset({Screen.GATE, Screen.PROFILE}),
    Screen.PROFILE: frozenset({Screen.GATE, Screen.SETTINGS, Screen.CIRCLE, Screen.MOMENT_DETAIL}),
    Screen.MESSAGES: frozenset({Screen.GATE, Screen.FEED}),
    # Signing out or deleting the account goes back to AUTH.
    Screen.SETTINGS: frozenset({Screen.GATE, Screen.PROFILE, Screen.AUTH}),
    Screen.MOMENT_DETAIL: frozenset({Screen.GATE, Screen.FEED, Screen.PROFILE}),
}


class InvalidTransitionError(Exception):
    """Raised when navigating to a screen not reachable from the current one."""


class Navigator:
    """Current route plus a back stack."""

    def __init__(self, start: Screen = Screen.SPLASH) -> None:
        self.current = Route(start)
        self.history: list[Route] = []

    def can_navigate(self, screen: Screen) -> bool:
        return screen in TRANSITIONS[self.current.screen]

    def navigate(self, screen: Screen, moment_id: uuid.UUID | None = None) -> Route:
        """Move to `screen`, pushing the current route on the back stack."""
        if not self.can_navigate(screen):
            raise InvalidTransitionError(
                f"Cannot navigate from {self.current.screen.value} to {screen.value}"
            )
        target = Route(screen, moment_id)
        if screen in (Screen.GATE, Screen.AUTH):
            # Hub screens reset the stack.
            self.history.clear()
        else:
            self.history.append(self.current)
        logger.debug("Navigate %s -> %s", self.current.screen.value, screen.value)
        self.current = target
        return target

    def go_back(self) -> Route:
        """Pop the back stack; with nothing to pop, land on the gate."""
        self.current = self.history.pop() if self.history else Route(Screen.GATE)
        return self.current

    def after_splash(self, has_completed_onboarding: bool, is_authenticated: bool = True) -> Route:
        if not has_completed_onboarding:
            return self.navigate(Screen.ONBOARDING)
        if not is_authenticated:
            return self.navigate(Screen.AUTH)
        return self.navigate(Screen.GATE)

    def complete_onboarding(self, is_authenticated: bool = True) -> Route:
        return self.navigate(Screen.GATE if is_authenticated else Screen.AUTH)

    def reset_to_auth(self) -> Route:
        """Leave the session: used after sign-out regardless of the current screen."""
        self.history.clear()
        self.current = Route(Screen.AUTH)
        return self.current
