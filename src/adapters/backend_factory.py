"""Backend adapter factory — creates the right adapter based on config."""

from __future__ import annotations

from src.config import settings
from src.core.clock import Clock, SystemClock
from src.ports.backend_port import BackendPort


def create_backend(clock: Clock | None = None) -> BackendPort:
    """Return the backend adapter matching the BACKEND_PROVIDER setting."""
    provider = settings.BACKEND_PROVIDER.lower()

    if provider == "supabase":
        from src.adapters.supabase_backend import SupabaseBackend

        return SupabaseBackend(
            url=settings.SUPABASE_URL,
            anon_key=settings.SUPABASE_ANON_KEY,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            clock=clock or SystemClock(settings.TIMEZONE),
        )

    if provider == "offline":
        from src.adapters.offline_backend import OfflineBackend

        return OfflineBackend()

    raise ValueError(f"Unknown BACKEND_PROVIDER: {provider!r}")
