"""Window schedule engine — pure gating logic.

Decides whether the feed is open at a given instant, which window is
active, how long it stays open, and how far away the next window is.
Also derives the teaser blur applied to content while the feed is closed.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Sequence

from src.data.models import DEFAULT_WINDOWS, TimeWindow

logger = logging.getLogger(__name__)

DEMO_MODE_LABEL = "Mode démo"
DEFAULT_MAX_BLUR_DURATION_SECONDS = 6 * 3600
DEFAULT_MAX_BLUR = 30.0
DEFAULT_MIN_BLUR = 8.0


@dataclass(frozen=True)
class WindowStatus:
    """Snapshot of the gate at one instant. Recomputed, never stored."""

    is_open: bool
    active_window: TimeWindow | None
    seconds_remaining_in_window: float | None
    seconds_until_next_window: float
    next_window: TimeWindow | None
    next_window_start: datetime | None
    countdown: str


def _at_hour(day: datetime, hour: int, days_ahead: int = 0) -> datetime:
    """Return `day`'s calendar date (plus `days_ahead`) at HH:00, same tzinfo.

    Hour 24 is treated as midnight of the following day.
    """
    if hour == 24:
        hour, days_ahead = 0, days_ahead + 1
    target_date = day.date() + timedelta(days=days_ahead)
    return datetime.combine(target_date, time(hour), tzinfo=day.tzinfo)


def _seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds from `start` to `end`, DST-safe for aware datetimes."""
    if start.tzinfo is None:
        return (end - start).total_seconds()
    return end.timestamp() - start.timestamp()


def effective_windows(windows: Sequence[TimeWindow] | None) -> list[TimeWindow]:
    """Return the configured windows, or the default pair when none are set."""
    if not windows:
        return list(DEFAULT_WINDOWS)
    return list(windows)


def find_active_window(windows: Sequence[TimeWindow], now: datetime) -> TimeWindow | None:
    """Return the first window, in input order, that contains now's hour."""
    for window in windows:
        if window.contains_hour(now.hour):
            return window
    return None


def find_next_window(
    windows: Sequence[TimeWindow], now: datetime
) -> tuple[TimeWindow, datetime] | None:
    """Return the next window to open and its start instant.

    Windows are scanned sorted by start hour: the first one starting after
    the current hour today, otherwise the earliest one tomorrow.
    """
    ordered = sorted(windows, key=lambda w: w.start)
    if not ordered:
        return None

    for window in ordered:
        if now.hour < window.start:
            return window, _at_hour(now, window.start)

    first = ordered[0]
    return first, _at_hour(now, first.start, days_ahead=1)


def format_countdown(window: TimeWindow, seconds: float) -> str:
    """Format the time left until `window` opens, e.g. "Evening dans 9h0"."""
    seconds = max(0.0, seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{window.label} dans {hours}h{minutes}"
    return f"Dans {minutes}min"


def compute_status(
    windows: Sequence[TimeWindow] | None,
    now: datetime,
    debug_override: bool = False,
) -> WindowStatus:
    """Compute the gate status for `now`.

    Args:
        windows: Configured windows. Empty or None falls back to the
                 default Morning/Evening pair.
        now: Current instant. Its hour is read in its own timezone.
        debug_override: Demo mode, always open on the first window.

    Returns:
        A WindowStatus. Never raises for an empty configuration.
    """
    windows = effective_windows(windows)
    upcoming = find_next_window(windows, now)
    next_window, next_start = upcoming if upcoming else (None, None)
    seconds_until_next = _seconds_between(now, next_start) if next_start else 0.0

    if debug_override:
        return WindowStatus(
            is_open=True,
            active_window=windows[0],
            seconds_remaining_in_window=None,
            seconds_until_next_window=0.0,
            next_window=next_window,
            next_window_start=next_start,
            countdown=DEMO_MODE_LABEL,
        )

    active = find_active_window(windows, now)
    if active is not None:
        remaining = _seconds_between(now, _at_hour(now, active.end))
        return WindowStatus(
            is_open=True,
            active_window=active,
            seconds_remaining_in_window=remaining,
            seconds_until_next_window=seconds_until_next,
            next_window=next_window,
            next_window_start=next_start,
            countdown=f"Ferme dans {int(remaining // 60)}min",
        )

    return WindowStatus(
        is_open=False,
        active_window=None,
        seconds_remaining_in_window=None,
        seconds_until_next_window=seconds_until_next,
        next_window=next_window,
        next_window_start=next_start,
        countdown=format_countdown(next_window, seconds_until_next),
    )


def blur_radius(
    status: WindowStatus,
    max_blur_duration_seconds: float = DEFAULT_MAX_BLUR_DURATION_SECONDS,
    max_blur: float = DEFAULT_MAX_BLUR,
    min_blur: float = DEFAULT_MIN_BLUR,
) -> float:
    """Teaser blur for closed-feed content.

    Decreases linearly from `max_blur` to `min_blur` over the last
    `max_blur_duration_seconds` before the next window, and only drops to
    0 once a window is actually open.
    """
    if status.is_open:
        return 0.0
    seconds = max(0.0, status.seconds_until_next_window)
    if seconds >= max_blur_duration_seconds:
        return float(max_blur)
    return min_blur + (max_blur - min_blur) * (seconds / max_blur_duration_seconds)
