"""Tests for SessionStore friend circle, invitations and account lifecycle."""

import pytest
from unittest.mock import AsyncMock

from src.core.invitations import InviteStatus
from src.core.session_store import PostState
from src.data.db import StorageKey
from src.data.models import ANONYMOUS_USER
from src.ports.backend_port import (
    AuthenticationError,
    RequestRejectedError,
    TransientBackendError,
)

from tests.factories import WINDOWS, make_moment, make_user


class TestFriendCircle:
    def test_add_friend(self, store):
        emma = make_user("Emma")
        assert store.add_friend(emma) is True
        assert store.friends == [emma]
        assert store.circle_count == 1

    def test_limit_of_25(self, store):
        for i in range(25):
            assert store.add_friend(make_user(f"Ami{i}")) is True
        assert store.can_add_friend is False
        assert store.add_friend(make_user("Trop")) is False
        assert store.circle_count == 25

    def test_duplicate_ignored(self, store):
        emma = make_user("Emma")
        store.add_friend(emma)
        assert store.add_friend(emma) is False
        assert store.circle_count == 1

    def test_custom_limit(self, backend, local_store, media_store, clock):
        from src.core.session_store import SessionStore

        small = SessionStore(backend, local_store, media_store, clock, friend_limit=1)
        assert small.add_friend(make_user()) is True
        assert small.add_friend(make_user()) is False

    @pytest.mark.asyncio
    async def test_remove_friend_drops_their_moments(self, store, backend):
        emma, lucas = make_user("Emma"), make_user("Lucas")
        emma_moment, lucas_moment = make_moment(emma), make_moment(lucas)
        backend.fetch_friends = AsyncMock(return_value=[emma, lucas])
        backend.fetch_friends_moments = AsyncMock(return_value=[emma_moment, lucas_moment])
        await store.load_data()

        store.remove_friend(emma)
        await store.wait_for_background()

        assert store.friends == [lucas]
        assert store.friends_moments == [lucas_moment]
        assert store.find_moment(emma_moment.id) is None
        assert store.find_moment(lucas_moment.id) is lucas_moment
        backend.remove_friend.assert_awaited_once_with(emma.id)

    @pytest.mark.asyncio
    async def test_remote_removal_failure_keeps_local_removal(self, store, backend):
        emma = make_user("Emma")
        store.add_friend(emma)
        backend.remove_friend = AsyncMock(side_effect=TransientBackendError("down"))

        store.remove_friend(emma)
        await store.wait_for_background()

        assert store.friends == []


class TestClearAllData:
    @pytest.mark.asyncio
    async def test_resets_every_session_field(self, store, backend, local_store):
        me = make_user("Moi")
        backend.current_profile = AsyncMock(return_value=me)
        backend.fetch_friends = AsyncMock(return_value=[make_user()])
        backend.fetch_friends_moments = AsyncMock(return_value=[make_moment()])
        await store.load_data()
        await store.post_moment(b"jpeg")
        backend.get_or_create_invitation = AsyncMock(side_effect=AuthenticationError("x"))
        await store.get_invite_code()

        store.clear_all_data()

        assert store.current_user == ANONYMOUS_USER
        assert store.friends == []
        assert store.friends_moments == []
        assert store.my_today_moment is None
        assert store.weekly_history == []
        assert store.has_posted_today is False
        assert store.post_state is PostState.NOT_POSTED
        assert store.last_error is None
        assert store.invite_state.status is InviteStatus.NONE
        assert local_store.get(StorageKey.LAST_POST_DATE) is None
        assert local_store.get(StorageKey.HAS_POSTED) is None

    def test_keeps_device_settings(self, store):
        store.has_completed_onboarding = True
        store.set_debug_mode(True)
        store.time_windows = list(WINDOWS)

        store.clear_all_data()

        assert store.has_completed_onboarding is True
        assert store.debug_mode_enabled is True
        assert store.time_windows == WINDOWS

    @pytest.mark.asyncio
    async def test_pending_reaction_sync_cancelled(self, store, backend):
        moment = make_moment()
        backend.fetch_friends_moments = AsyncMock(return_value=[moment])
        await store.load_data()

        store.add_text_reaction(moment.id, "Salut")
        store.clear_all_data()
        await store.wait_for_background()

        backend.add_text_reaction.assert_not_awaited()
        assert store.last_error is None


class TestAccountSwitch:
    @pytest.mark.asyncio
    async def test_sign_in_replaces_previous_account(self, store, backend):
        first_friend = make_user("Ancien")
        backend.fetch_friends = AsyncMock(return_value=[first_friend])
        await store.load_data()
        assert store.friends == [first_friend]

        second_me, second_friend = make_user("Lea"), make_user("Nouveau")
        backend.sign_in = AsyncMock(return_value=second_me)
        backend.fetch_friends = AsyncMock(return_value=[second_friend])

        await store.sign_in("lea@example.com", "secret")

        assert store.current_user == second_me
        assert store.friends == [second_friend]
        backend.sign_in.assert_awaited_once_with("lea@example.com", "secret")

    @pytest.mark.asyncio
    async def test_failed_sign_in_leaves_store_empty(self, store, backend):
        store.add_friend(make_user())
        backend.sign_in = AsyncMock(side_effect=AuthenticationError("Invalid login"))

        with pytest.raises(AuthenticationError):
            await store.sign_in("x@example.com", "bad")

        assert store.friends == []
        assert store.current_user == ANONYMOUS_USER

    @pytest.mark.asyncio
    async def test_sign_out_clears(self, store, backend):
        store.add_friend(make_user())
        await store.sign_out()
        backend.sign_out.assert_awaited_once()
        assert store.friends == []

    @pytest.mark.asyncio
    async def test_sign_out_clears_even_when_backend_fails(self, store, backend):
        store.add_friend(make_user())
        backend.sign_out = AsyncMock(side_effect=TransientBackendError("offline"))
        with pytest.raises(TransientBackendError):
            await store.sign_out()
        assert store.friends == []


class TestInvitations:
    @pytest.mark.asyncio
    async def test_get_invite_code(self, store):
        assert await store.get_invite_code() == "ABCD2345"

    @pytest.mark.asyncio
    async def test_get_invite_code_failure(self, store, backend):
        backend.get_or_create_invitation = AsyncMock(side_effect=TransientBackendError("down"))
        assert await store.get_invite_code() is None
        assert store.last_error.operation == "get_invitation"

    @pytest.mark.asyncio
    async def test_accept_invitation_success(self, store, backend):
        emma = make_user("Emma")
        backend.accept_invitation = AsyncMock(return_value=emma)
        backend.fetch_friends = AsyncMock(return_value=[emma])

        state = await store.accept_invitation("abcd2345")

        assert state.status is InviteStatus.SUCCESS
        assert state.friend_name == "Emma"
        assert store.friends == [emma]
        backend.accept_invitation.assert_awaited_once_with("ABCD2345")

    @pytest.mark.asyncio
    async def test_accept_without_creator_profile(self, store, backend):
        state = await store.accept_invitation("ABCD2345")
        assert state.friend_name == "Ton ami"

    @pytest.mark.asyncio
    async def test_invalid_code_rejected_locally(self, store, backend):
        state = await store.accept_invitation("nope")
        assert state.status is InviteStatus.ERROR
        backend.accept_invitation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signed_out_cannot_accept(self, store, backend):
        backend.is_authenticated = False
        state = await store.accept_invitation("ABCD2345")
        assert state.status is InviteStatus.ERROR
        backend.accept_invitation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_rejection_shown(self, store, backend):
        backend.accept_invitation = AsyncMock(
            side_effect=RequestRejectedError("Vous êtes déjà amis", status_code=409)
        )
        state = await store.accept_invitation("ABCD2345")
        assert state.status is InviteStatus.ERROR
        assert state.message == "Vous êtes déjà amis"
        assert store.last_error.operation == "accept_invitation"

    @pytest.mark.asyncio
    async def test_deep_link(self, store, backend):
        handled = await store.handle_deep_link("tymer://invite/wxyz6789")
        assert handled is True
        backend.accept_invitation.assert_awaited_once_with("WXYZ6789")
        assert store.invite_state.status is InviteStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_unrelated_deep_link_ignored(self, store, backend):
        assert await store.handle_deep_link("tymer://settings") is False
        backend.accept_invitation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dismiss(self, store):
        await store.accept_invitation("nope")
        store.dismiss_invite_state()
        assert store.invite_state.status is InviteStatus.NONE
