"""
Tymer — Terminal gate runner.

Headless front-end for the session core: builds the store from settings,
signs in when credentials are configured, loads data, then logs the gate
status on every window tick.
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.core.clock import Clock, SystemClock, WindowTicker
from src.core.navigation import Navigator
from src.core.session_store import SessionStore
from src.core.window_schedule import WindowStatus
from src.data.db import LocalStore, MediaStore
from src.ports.backend_port import BackendError, BackendPort

logger = logging.getLogger(__name__)


def build_session(
    backend: BackendPort | None = None,
    clock: Clock | None = None,
    local_store: LocalStore | None = None,
    media_store: MediaStore | None = None,
) -> SessionStore:
    """Wire a SessionStore with default adapters for anything not provided."""
    clock = clock or SystemClock(settings.TIMEZONE)
    if backend is None:
        from src.adapters.backend_factory import create_backend
        backend = create_backend(clock)

    store = SessionStore(
        backend=backend,
        local_store=local_store or LocalStore(),
        media_store=media_store or MediaStore(),
        clock=clock,
        friend_limit=settings.FRIEND_CIRCLE_LIMIT,
        my_moments_limit=settings.MY_MOMENTS_LIMIT,
        debug_override_allowed=settings.debug_override_allowed,
    )
    if settings.DEBUG_WINDOW_OVERRIDE:
        store.set_debug_mode(True)
    return store


def format_gate_line(store: SessionStore) -> str:
    """One-line summary of the gate for the log."""
    status: WindowStatus = store.window_status
    if status.is_open:
        window = status.active_window
        state = f"OPEN [{window.label} {window.display_text}]" if window else "OPEN"
    else:
        state = f"CLOSED (blur {store.content_blur_radius():.1f})"
    return (
        f"{state} | {status.countdown} | "
        f"{len(store.friends_moments)} moment(s) from {store.circle_count} friend(s), "
        f"posted today: {'yes' if store.has_posted_today else 'no'}"
    )


async def run(store: SessionStore, max_ticks: int | None = None) -> None:
    """Sign in if configured, load the session, then tick until cancelled."""
    navigator = Navigator()

    if settings.TYMER_EMAIL and settings.TYMER_PASSWORD:
        try:
            await store.sign_in(settings.TYMER_EMAIL, settings.TYMER_PASSWORD)
        except BackendError as exc:
            logger.error("Sign-in failed: %s", exc)

    await store.load_data()
    route = navigator.after_splash(
        store.has_completed_onboarding, is_authenticated=store.is_authenticated,
    )
    logger.info("Landing screen: %s", route.screen.value)

    def on_tick() -> str:
        store.refresh_window_status()
        line = format_gate_line(store)
        logger.info(line)
        return line

    ticker = WindowTicker(on_tick, period_seconds=settings.WINDOW_TICK_SECONDS)
    await ticker.run(max_ticks=max_ticks)


def main() -> None:
    """Entry point: build the session and run the ticker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Tymer gate runner (%s backend)...", settings.BACKEND_PROVIDER)
    store = build_session()
    try:
        asyncio.run(run(store))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
