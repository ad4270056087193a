"""Tests for src.adapters.backend_factory — adapter selection."""

import pytest
from unittest.mock import patch


class TestCreateBackend:
    @patch("src.adapters.backend_factory.settings")
    def test_supabase_provider(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "supabase"
        mock_settings.SUPABASE_URL = "https://fake-project.supabase.co"
        mock_settings.SUPABASE_ANON_KEY = "anon"
        mock_settings.HTTP_TIMEOUT_SECONDS = 5.0
        mock_settings.TIMEZONE = "Europe/Paris"

        from src.adapters.backend_factory import create_backend
        from src.adapters.supabase_backend import SupabaseBackend

        backend = create_backend()
        assert isinstance(backend, SupabaseBackend)
        assert backend.is_authenticated is False

    @patch("src.adapters.backend_factory.settings")
    def test_offline_provider(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "offline"

        from src.adapters.backend_factory import create_backend
        from src.adapters.offline_backend import OfflineBackend

        assert isinstance(create_backend(), OfflineBackend)

    @patch("src.adapters.backend_factory.settings")
    def test_provider_case_insensitive(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "Offline"

        from src.adapters.backend_factory import create_backend
        from src.adapters.offline_backend import OfflineBackend

        assert isinstance(create_backend(), OfflineBackend)

    @patch("src.adapters.backend_factory.settings")
    def test_unknown_provider_raises(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "firebase"

        from src.adapters.backend_factory import create_backend

        with pytest.raises(ValueError, match="Unknown BACKEND_PROVIDER"):
            create_backend()


class TestOfflineBackend:
    @pytest.mark.asyncio
    async def test_reads_are_empty(self):
        from src.adapters.offline_backend import OfflineBackend

        backend = OfflineBackend()
        assert backend.is_authenticated is False
        assert await backend.fetch_windows() == []
        assert await backend.fetch_friends_moments() == []
        assert await backend.has_posted_today() is False

    @pytest.mark.asyncio
    async def test_writes_need_an_account(self):
        from src.adapters.offline_backend import OfflineBackend
        from src.ports.backend_port import AuthenticationError

        with pytest.raises(AuthenticationError):
            await OfflineBackend().create_moment(None, None)

    @pytest.mark.asyncio
    async def test_offline_session_uses_defaults_and_keeps_posts_local(
        self, local_store, media_store, clock,
    ):
        from src.adapters.offline_backend import OfflineBackend
        from src.core.session_store import SessionStore
        from src.data.models import DEFAULT_WINDOWS

        store = SessionStore(OfflineBackend(), local_store, media_store, clock)
        await store.load_data()
        posted = await store.post_moment(b"jpeg")

        assert store.time_windows == []
        assert store.window_status.next_window == DEFAULT_WINDOWS[1]
        assert posted.is_local_only is True
        assert store.last_error is None
