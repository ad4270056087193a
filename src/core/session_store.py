"""
Tymer — Session State Store.

The single observable state of a signed-in session: friends, today's own
moment, friends' moments, reactions, weekly history and flags.

Every user action is applied locally first (optimistic) and reconciled
with the backend afterwards. Remote failures never throw away what the user
did: reactions stay appended, posts fall back to local storage, and a failed
refresh keeps the last good data on screen.

All mutations happen on the event loop that owns the store. Fetches run as
tasks on that same loop and apply their results there, so there is never
more than one writer.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from src.core.invitations import (
    InviteAcceptanceState,
    normalize_invite_code,
    parse_invite_link,
)
from src.core.mutations import (
    PostConfirmation,
    PostIntent,
    ReactionIntent,
    RemoteResult,
    SessionErrorRecord,
)
from src.core.window_schedule import WindowStatus, blur_radius, compute_status
from src.data.db import StorageKey
from src.data.models import (
    ANONYMOUS_USER,
    DEFAULT_WINDOWS,
    Moment,
    Reaction,
    ReactionKind,
    TimeWindow,
    User,
)
from src.ports.backend_port import (
    BackendError,
    ErrorKind,
    ImageEncodingError,
    classify_error,
)

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.data.db import LocalStore, MediaStore
    from src.ports.backend_port import BackendPort

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when a session operation is not allowed in the current state."""


class AlreadyPostedError(SessionError):
    """A moment already exists (or is being posted) for today."""


# ---------------------------------------------------------------------------
# Today's post state machine
# ---------------------------------------------------------------------------


class PostState(Enum):
    NOT_POSTED = "not_posted"
    POSTING = "posting"
    POSTED = "posted"


# (from, to) -> transition name. POSTED -> POSTING is only legal as a retake.
_POST_TRANSITIONS: dict[tuple[PostState, PostState], str] = {
    (PostState.NOT_POSTED, PostState.POSTING): "post",
    (PostState.POSTING, PostState.POSTED): "confirm",
    (PostState.POSTED, PostState.POSTING): "retake",
}


# ---------------------------------------------------------------------------
# Refresh reporting
# ---------------------------------------------------------------------------


class SliceOutcome(Enum):
    UPDATED = "updated"
    CANCELLED = "cancelled"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RefreshReport:
    """Per-slice outcome of one load_data() call."""

    windows: SliceOutcome = SliceOutcome.SKIPPED
    slices: dict[str, SliceOutcome] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        outcomes = set(self.slices.values())
        return SliceOutcome.UPDATED in outcomes and len(outcomes) > 1

    @property
    def failed(self) -> list[str]:
        return [name for name, o in self.slices.items() if o is SliceOutcome.FAILED]


_SLICE_FRIENDS = "friends"
_SLICE_FRIENDS_MOMENTS = "friends_moments"
_SLICE_MY_MOMENTS = "my_moments"
_SLICE_POSTED_TODAY = "posted_today"


def _is_unexpected(exc: BaseException) -> bool:
    """True for failures an adapter did not classify; logged with a traceback."""
    return not isinstance(exc, BackendError)


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------


class SessionStore:
    """Explicit, injectable application state for one running session."""

    def __init__(
        self,
        backend: BackendPort,
        local_store: LocalStore,
        media_store: MediaStore,
        clock: Clock,
        friend_limit: int = 25,
        my_moments_limit: int = 7,
        debug_override_allowed: bool = True,
    ) -> None:
        self._backend = backend
        self._local = local_store
        self._media = media_store
        self._clock = clock
        self.friend_limit = friend_limit
        self.my_moments_limit = my_moments_limit
        self._debug_override_allowed = debug_override_allowed

        self.time_windows: list[TimeWindow] = []
        self.debug_mode_enabled = (
            debug_override_allowed and local_store.get_bool(StorageKey.DEBUG_MODE_ENABLED)
        )

        self._epoch = 0
        self._refresh_tasks: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._reset_session_fields()
        self.window_status: WindowStatus = self.refresh_window_status()

    def _reset_session_fields(self) -> None:
        self.current_user: User = ANONYMOUS_USER
        self.friends: list[User] = []
        self.friends_moments: list[Moment] = []
        self._moment_index: dict[uuid.UUID, int] = {}
        self.my_today_moment: Moment | None = None
        self.weekly_history: list[Moment] = []
        self.has_posted_today = False
        self.post_state = PostState.NOT_POSTED
        self.last_error: SessionErrorRecord | None = None
        self.invite_state = InviteAcceptanceState.none()
        self._reconciled_posts: set[uuid.UUID] = set()
        self._pending_reactions: dict[uuid.UUID, list[ReactionIntent]] = {}

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_loading_friends(self) -> bool:
        return self._is_refreshing(_SLICE_FRIENDS)

    @property
    def is_loading_moments(self) -> bool:
        return self._is_refreshing(_SLICE_FRIENDS_MOMENTS)

    def _is_refreshing(self, name: str) -> bool:
        task = self._refresh_tasks.get(name)
        return task is not None and not task.done()

    @property
    def is_authenticated(self) -> bool:
        return self._backend.is_authenticated

    @property
    def is_window_open(self) -> bool:
        return self.window_status.is_open

    @property
    def current_window(self) -> TimeWindow | None:
        return self.window_status.active_window

    @property
    def next_window_countdown(self) -> str:
        return self.window_status.countdown

    @property
    def circle_count(self) -> int:
        return len(self.friends)

    @property
    def can_add_friend(self) -> bool:
        return self.circle_count < self.friend_limit

    @property
    def has_completed_onboarding(self) -> bool:
        return self._local.get_bool(StorageKey.HAS_COMPLETED_ONBOARDING)

    @has_completed_onboarding.setter
    def has_completed_onboarding(self, value: bool) -> None:
        self._local.set_bool(StorageKey.HAS_COMPLETED_ONBOARDING, value)

    def complete_onboarding(self) -> None:
        self.has_completed_onboarding = True

    def content_blur_radius(self) -> float:
        return blur_radius(self.window_status)

    def find_moment(self, moment_id: uuid.UUID) -> Moment | None:
        """Locate a moment by id: today's own first, then the friends feed."""
        if self.my_today_moment is not None and self.my_today_moment.id == moment_id:
            return self.my_today_moment
        index = self._moment_index.get(moment_id)
        if index is None:
            return None
        return self.friends_moments[index]

    # ------------------------------------------------------------------
    # Window gating
    # ------------------------------------------------------------------

    def refresh_window_status(self) -> WindowStatus:
        """Recompute the gate from the loaded windows and the clock."""
        self.window_status = compute_status(
            self.time_windows, self._clock.now(), debug_override=self.debug_mode_enabled,
        )
        return self.window_status

    def set_debug_mode(self, enabled: bool) -> bool:
        """Toggle demo mode. Refused (returns False) outside development."""
        if enabled and not self._debug_override_allowed:
            logger.warning("Debug window override refused in this configuration")
            return False
        self.debug_mode_enabled = enabled
        self._local.set_bool(StorageKey.DEBUG_MODE_ENABLED, enabled)
        self.refresh_window_status()
        logger.info("Debug window override %s", "enabled" if enabled else "disabled")
        return True

    # ------------------------------------------------------------------
    # Refresh / reconciliation
    # ------------------------------------------------------------------

    async def load_data(self) -> RefreshReport:
        """Reload windows, then the four session slices in parallel.

        A newer call cancels the slices still in flight from an older one.
        Each slice succeeds or fails on its own; a partial refresh is normal.
        """
        report = RefreshReport()
        report.windows = await self._load_time_windows()

        if not self._backend.is_authenticated:
            logger.debug("Not authenticated, skipping session refresh")
            return report

        epoch = self._epoch
        await self._load_current_user(epoch)

        slices: dict[str, tuple[Callable[[], Awaitable], Callable, Callable | None]] = {
            _SLICE_FRIENDS: (self._backend.fetch_friends, self._apply_friends, None),
            _SLICE_FRIENDS_MOMENTS: (
                self._backend.fetch_friends_moments, self._apply_friends_moments, None,
            ),
            _SLICE_MY_MOMENTS: (
                lambda: self._backend.fetch_my_moments(limit=self.my_moments_limit),
                self._apply_my_moments,
                None,
            ),
            _SLICE_POSTED_TODAY: (
                self._backend.has_posted_today,
                self._apply_posted_today,
                self._check_today_post_local,
            ),
        }

        names = list(slices)
        tasks = []
        for name in names:
            previous = self._refresh_tasks.get(name)
            if previous is not None and not previous.done():
                logger.debug("Superseding in-flight %s refresh", name)
                previous.cancel()
            fetch, apply, fallback = slices[name]
            task = asyncio.create_task(self._refresh_slice(name, epoch, fetch, apply, fallback))
            self._refresh_tasks[name] = task
            tasks.append(task)

        results = await asyncio.gather(*tasks, return_exceptions=True)

        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                report.slices[name] = SliceOutcome.CANCELLED
            elif isinstance(result, BaseException):
                raise result
            else:
                report.slices[name] = result

        self.refresh_window_status()
        logger.info("Refresh finished: %s", {k: v.value for k, v in report.slices.items()})
        return report

    async def _load_time_windows(self) -> SliceOutcome:
        try:
            windows = await self._backend.fetch_windows()
        except Exception as exc:
            if classify_error(exc) is ErrorKind.CANCELLED:
                return SliceOutcome.CANCELLED
            logger.warning("Error loading time windows: %s", exc, exc_info=_is_unexpected(exc))
            if not self.time_windows:
                self.time_windows = list(DEFAULT_WINDOWS)
            self.refresh_window_status()
            return SliceOutcome.FAILED

        self.time_windows = list(windows)
        self.refresh_window_status()
        return SliceOutcome.UPDATED

    async def _load_current_user(self, epoch: int) -> None:
        try:
            profile = await self._backend.current_profile()
        except Exception as exc:
            if classify_error(exc) is not ErrorKind.CANCELLED:
                logger.warning(
                    "Error loading current profile: %s", exc, exc_info=_is_unexpected(exc),
                )
            return
        if profile is not None and epoch == self._epoch:
            self.current_user = profile

    async def _refresh_slice(
        self,
        name: str,
        epoch: int,
        fetch: Callable[[], Awaitable],
        apply: Callable[[object], None],
        fallback: Callable[[], None] | None = None,
    ) -> SliceOutcome:
        try:
            result = await fetch()
        except Exception as exc:
            if classify_error(exc) is ErrorKind.CANCELLED:
                logger.debug("%s refresh cancelled, keeping current state", name)
                return SliceOutcome.CANCELLED
            logger.warning("Error loading %s: %s", name, exc, exc_info=_is_unexpected(exc))
            if fallback is not None and epoch == self._epoch:
                fallback()
            return SliceOutcome.FAILED

        if epoch != self._epoch:
            logger.debug("Dropping %s result from a previous session", name)
            return SliceOutcome.CANCELLED

        apply(result)
        return SliceOutcome.UPDATED

    def _apply_friends(self, friends: list[User]) -> None:
        self.friends = list(friends)

    def _apply_friends_moments(self, moments: list[Moment]) -> None:
        self.friends_moments = list(moments)
        self._reindex_moments()

    def _apply_my_moments(self, moments: list[Moment]) -> None:
        history = list(moments)
        pending = self.my_today_moment if self.post_state is PostState.POSTING else None
        if pending is not None and all(m.id != pending.id for m in history):
            history.insert(0, pending)
        self.weekly_history = history

        if pending is None:
            today = next((m for m in history if self._is_today(m.captured_at)), None)
            if today is not None:
                self.my_today_moment = today

    def _apply_posted_today(self, posted: bool) -> None:
        self.has_posted_today = bool(posted)
        self._sync_post_state()

    def _check_today_post_local(self) -> None:
        """Fallback when the server check fails: trust the last local post date."""
        last_post = self._local.get_datetime(StorageKey.LAST_POST_DATE)
        if last_post is None:
            return
        self.has_posted_today = self._is_today(last_post)
        if not self.has_posted_today and self.post_state is not PostState.POSTING:
            self.my_today_moment = None
        self._sync_post_state()

    def _sync_post_state(self) -> None:
        if self.post_state is PostState.POSTING:
            return
        self.post_state = PostState.POSTED if self.has_posted_today else PostState.NOT_POSTED

    def _reindex_moments(self) -> None:
        self._moment_index = {m.id: i for i, m in enumerate(self.friends_moments)}

    def _is_today(self, value: datetime) -> bool:
        now = self._clock.now()
        if value.tzinfo is not None and now.tzinfo is not None:
            value = value.astimezone(now.tzinfo)
        return value.date() == now.date()

    # ------------------------------------------------------------------
    # Two-phase commit
    # ------------------------------------------------------------------

    def apply_local(self, intent: PostIntent | ReactionIntent) -> None:
        """Apply an intent to local state. Synchronous, never fails remotely."""
        if isinstance(intent, PostIntent):
            self._apply_local_post(intent)
        elif isinstance(intent, ReactionIntent):
            self._apply_local_reaction(intent)
        else:
            raise TypeError(f"Unknown intent: {intent!r}")

    def reconcile_remote(self, intent: PostIntent | ReactionIntent, result: RemoteResult) -> None:
        """Merge a remote outcome into state. Safe to call more than once."""
        if intent.epoch != self._epoch:
            logger.debug("Ignoring remote result from a previous session")
            return
        if isinstance(intent, PostIntent):
            self._reconcile_post(intent, result)
        elif isinstance(intent, ReactionIntent):
            self._reconcile_reaction(intent, result)
        else:
            raise TypeError(f"Unknown intent: {intent!r}")

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def begin_post(
        self,
        image_bytes: bytes | None,
        description: str | None = None,
        retake: bool = False,
    ) -> PostIntent:
        """Validate and optimistically apply a new post. Returns its intent."""
        if self.post_state is PostState.POSTING:
            raise AlreadyPostedError("A moment is already being posted")
        if self.post_state is PostState.POSTED and not retake:
            raise AlreadyPostedError("Today's moment is already posted")

        cleaned = (description or "").strip() or None
        placeholder = Moment(
            author=self.current_user,
            captured_at=self._clock.now(),
            description=cleaned,
        )
        intent = PostIntent(
            placeholder=placeholder,
            image_bytes=image_bytes,
            retake=retake,
            replaces=self.my_today_moment if retake else None,
            epoch=self._epoch,
        )
        self.apply_local(intent)
        return intent

    async def post_moment(
        self,
        image_bytes: bytes | None,
        description: str | None = None,
        retake: bool = False,
    ) -> Moment:
        """Post today's moment: optimistic apply, upload, reconcile.

        Always ends in POSTED with either the server-confirmed moment or a
        locally stored one.
        """
        intent = self.begin_post(image_bytes, description, retake=retake)
        try:
            result = await self._push_post(intent)
        except asyncio.CancelledError as exc:
            self.reconcile_remote(intent, RemoteResult.failure(exc))
            raise
        self.reconcile_remote(intent, result)
        return self.my_today_moment or intent.placeholder

    def _transition_post(self, target: PostState) -> None:
        name = _POST_TRANSITIONS.get((self.post_state, target))
        if name is None:
            raise SessionError(f"Illegal post transition {self.post_state.value} -> {target.value}")
        logger.debug("Post state %s -> %s (%s)", self.post_state.value, target.value, name)
        self.post_state = target

    def _apply_local_post(self, intent: PostIntent) -> None:
        if self.post_state is PostState.POSTED and not intent.retake:
            raise AlreadyPostedError("Today's moment is already posted")
        self._transition_post(PostState.POSTING)
        moment = intent.placeholder
        self.my_today_moment = moment

        replaced_at = None
        if intent.replaces is not None:
            replaced_at = next(
                (i for i, m in enumerate(self.weekly_history) if m.id == intent.replaces.id), None,
            )
        if replaced_at is not None:
            self.weekly_history[replaced_at] = moment
        else:
            self.weekly_history.insert(0, moment)

        self.has_posted_today = True
        self._local.set_datetime(StorageKey.LAST_POST_DATE, moment.captured_at)
        self._local.set_bool(StorageKey.HAS_POSTED, True)
        self.refresh_window_status()

    async def _push_post(self, intent: PostIntent) -> RemoteResult:
        if not self._backend.is_authenticated:
            return RemoteResult.local_only()

        description = intent.placeholder.description
        try:
            image_path = None
            if intent.image_bytes:
                image_path = await self._backend.upload_moment_image(intent.image_bytes)
            else:
                # Nothing to upload: degrade to a post without an image.
                self._record_error(
                    "post_moment", ImageEncodingError("Captured image could not be encoded"),
                )
            confirmed = await self._backend.create_moment(image_path, description)
        except BackendError as exc:
            logger.warning("Error posting moment: %s", exc)
            return RemoteResult.failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error posting moment")
            return RemoteResult.failure(exc)

        return RemoteResult.success(PostConfirmation(image_path=image_path, moment=confirmed))

    def _reconcile_post(self, intent: PostIntent, result: RemoteResult) -> None:
        placeholder = intent.placeholder
        if placeholder.id in self._reconciled_posts:
            return
        self._reconciled_posts.add(placeholder.id)

        if result.ok:
            confirmation: PostConfirmation = result.value
            if confirmation.moment is not None:
                confirmed = confirmation.moment
                known = {r.id for r in confirmed.reactions}
                confirmed.reactions.extend(r for r in placeholder.reactions if r.id not in known)
            else:
                # reactions list is shared with the placeholder
                confirmed = dataclasses.replace(placeholder, image_path=confirmation.image_path)
            self._substitute_own_moment(placeholder.id, confirmed)
            logger.info("Moment posted: %s", confirmed.id)
            self._flush_pending_reactions(placeholder.id, confirmation.moment)
            if intent.replaces is not None and not intent.replaces.is_local_only:
                self._spawn(self._delete_replaced(intent.replaces))
        else:
            if result.error is not None and result.kind is not ErrorKind.CANCELLED:
                self._record_error("post_moment", result.error)
            image_id = self._keep_image_locally(intent.image_bytes)
            local = dataclasses.replace(placeholder, image_path=image_id, is_local_only=True)
            self._substitute_own_moment(placeholder.id, local)
            self._flush_pending_reactions(placeholder.id, None)
            logger.info("Moment kept locally: %s (image %s)", local.id, image_id)

        if self.post_state is PostState.POSTING:
            self._transition_post(PostState.POSTED)
        self.refresh_window_status()

    def _keep_image_locally(self, image_bytes: bytes | None) -> str | None:
        """Save the image for a local-only moment. On disk errors, post without it."""
        if not image_bytes:
            return None
        try:
            return self._media.save_image(image_bytes)
        except OSError as exc:
            logger.warning("Could not keep image locally: %s", exc)
            self._record_error("post_moment", exc, kind=ErrorKind.FATAL_FOR_OPERATION)
            return None

    def _flush_pending_reactions(self, placeholder_id: uuid.UUID, confirmed: Moment | None) -> None:
        """Sync reactions held back while the placeholder was being posted.

        Only a server-confirmed moment has an id the backend knows; otherwise
        the reactions stay local.
        """
        pending = self._pending_reactions.pop(placeholder_id, [])
        if not pending:
            return
        if confirmed is None:
            logger.info("Keeping %d reaction(s) on %s locally", len(pending), placeholder_id)
            return
        for intent in pending:
            self._spawn(self._sync_reaction(dataclasses.replace(intent, moment_id=confirmed.id)))

    def _substitute_own_moment(self, old_id: uuid.UUID, moment: Moment) -> None:
        if self.my_today_moment is not None and self.my_today_moment.id == old_id:
            self.my_today_moment = moment
        for i, existing in enumerate(self.weekly_history):
            if existing.id == old_id:
                self.weekly_history[i] = moment
                break

    async def _delete_replaced(self, moment: Moment) -> None:
        try:
            await self._backend.delete_moment(moment.id, moment.image_path)
            logger.info("Replaced moment %s deleted", moment.id)
        except BackendError as exc:
            logger.warning("Error deleting replaced moment %s: %s", moment.id, exc)

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    def add_text_reaction(self, moment_id: uuid.UUID, text: str) -> Reaction | None:
        """Append a text reaction locally and sync it in the background."""
        if not text or not text.strip():
            return None
        reaction = Reaction.text_reaction(self.current_user, text, created_at=self._clock.now())
        return self._react(ReactionIntent(moment_id=moment_id, reaction=reaction, epoch=self._epoch))

    def add_voice_reaction(
        self,
        moment_id: uuid.UUID,
        duration_seconds: float,
        audio_bytes: bytes | None = None,
    ) -> Reaction:
        """Append a voice reaction (clamped to 3s); upload only if audio is given."""
        reaction = Reaction.voice_reaction(
            self.current_user, duration_seconds, created_at=self._clock.now(),
        )
        intent = ReactionIntent(
            moment_id=moment_id, reaction=reaction, audio_bytes=audio_bytes, epoch=self._epoch,
        )
        return self._react(intent)

    def _react(self, intent: ReactionIntent) -> Reaction:
        self.apply_local(intent)
        if not self._backend.is_authenticated:
            return intent.reaction
        if intent.reaction.kind is not ReactionKind.TEXT and not intent.audio_bytes:
            return intent.reaction
        if (
            self.post_state is PostState.POSTING
            and self.my_today_moment is not None
            and self.my_today_moment.id == intent.moment_id
        ):
            # The server id is only known once the post is reconciled.
            self._pending_reactions.setdefault(intent.moment_id, []).append(intent)
        else:
            self._spawn(self._sync_reaction(intent))
        return intent.reaction

    def _apply_local_reaction(self, intent: ReactionIntent) -> None:
        moment = self.find_moment(intent.moment_id)
        if moment is None:
            logger.info("Reaction target %s not loaded, syncing remotely only", intent.moment_id)
            return
        moment.reactions.append(intent.reaction)

    async def _sync_reaction(self, intent: ReactionIntent) -> RemoteResult:
        reaction = intent.reaction
        try:
            if reaction.kind is ReactionKind.TEXT:
                await self._backend.add_text_reaction(intent.moment_id, reaction.text or "")
                result = RemoteResult.success()
            else:
                voice_path = await self._backend.upload_voice_reaction(intent.audio_bytes or b"")
                await self._backend.add_voice_reaction(
                    intent.moment_id, reaction.duration_seconds or 0.0, voice_path,
                )
                result = RemoteResult.success(voice_path)
        except Exception as exc:
            result = RemoteResult.failure(exc)
        self.reconcile_remote(intent, result)
        return result

    def _reconcile_reaction(self, intent: ReactionIntent, result: RemoteResult) -> None:
        if not result.ok:
            if result.error is not None and result.kind is not ErrorKind.CANCELLED:
                logger.warning("Error syncing %s reaction: %s", intent.reaction.kind.value, result.error)
                self._record_error("add_reaction", result.error)
            return

        voice_path = result.value
        if intent.reaction.kind is not ReactionKind.VOICE or not voice_path:
            return
        moment = self.find_moment(intent.moment_id)
        if moment is None:
            return
        for i, existing in enumerate(moment.reactions):
            if existing.id == intent.reaction.id:
                if existing.voice_path != voice_path:
                    moment.reactions[i] = dataclasses.replace(existing, voice_path=voice_path)
                break

    # ------------------------------------------------------------------
    # Friend circle
    # ------------------------------------------------------------------

    def add_friend(self, user: User) -> bool:
        """Add a friend locally. No-op at the circle limit or for a known friend."""
        if not self.can_add_friend:
            logger.info("Circle full (%d), not adding %s", self.friend_limit, user.first_name)
            return False
        if any(f.id == user.id for f in self.friends):
            return False
        self.friends.append(user)
        return True

    def remove_friend(self, user: User) -> None:
        """Remove a friend and their moments from the feed, then sync."""
        self.friends = [f for f in self.friends if f.id != user.id]
        self.friends_moments = [m for m in self.friends_moments if m.author.id != user.id]
        self._reindex_moments()
        if self._backend.is_authenticated:
            self._spawn(self._sync_friend_removal(user))

    async def _sync_friend_removal(self, user: User) -> None:
        try:
            await self._backend.remove_friend(user.id)
        except BackendError as exc:
            logger.warning("Error removing friend %s remotely: %s", user.id, exc)

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def get_invite_code(self) -> str | None:
        try:
            return await self._backend.get_or_create_invitation()
        except BackendError as exc:
            logger.warning("Error fetching invitation code: %s", exc)
            self._record_error("get_invitation", exc)
            return None

    async def handle_deep_link(self, url: str) -> bool:
        """Accept the invitation carried by a deep link. False if not an invite link."""
        code = parse_invite_link(url)
        if code is None:
            logger.info("Ignoring unrecognized deep link: %s", url)
            return False
        await self.accept_invitation(code)
        return True

    async def accept_invitation(self, code: str) -> InviteAcceptanceState:
        normalized = normalize_invite_code(code)
        if normalized is None:
            self.invite_state = InviteAcceptanceState.error("Code d'invitation invalide")
            return self.invite_state
        if not self._backend.is_authenticated:
            self.invite_state = InviteAcceptanceState.error(
                "Connecte-toi pour accepter l'invitation"
            )
            return self.invite_state

        self.invite_state = InviteAcceptanceState.processing()
        epoch = self._epoch
        try:
            friend = await self._backend.accept_invitation(normalized)
        except BackendError as exc:
            logger.warning("Error accepting invitation %s: %s", normalized, exc)
            if epoch == self._epoch:
                self._record_error("accept_invitation", exc)
                self.invite_state = InviteAcceptanceState.error(
                    str(exc) or "Invitation invalide ou expirée"
                )
            return self.invite_state

        if epoch != self._epoch:
            return self.invite_state

        self.invite_state = InviteAcceptanceState.success(
            friend.first_name if friend is not None else "Ton ami"
        )
        await self._refresh_slice(_SLICE_FRIENDS, epoch, self._backend.fetch_friends, self._apply_friends)
        return self.invite_state

    def dismiss_invite_state(self) -> None:
        self.invite_state = InviteAcceptanceState.none()

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def clear_all_data(self) -> None:
        """Wipe every piece of session state before another account loads.

        In-flight refreshes and syncs of the previous account are cancelled,
        and any result that still arrives is dropped by the epoch check.
        """
        self._epoch += 1
        for task in [*self._refresh_tasks.values(), *self._background]:
            task.cancel()
        self._refresh_tasks.clear()
        self._background.clear()

        self._reset_session_fields()
        self._local.clear_account_data()
        self.refresh_window_status()
        logger.info("Session data cleared")

    async def sign_in(self, email: str, password: str) -> RefreshReport:
        self.clear_all_data()
        self.current_user = await self._backend.sign_in(email, password)
        logger.info("Signed in as %s", self.current_user.first_name)
        return await self.load_data()

    async def sign_out(self) -> None:
        try:
            await self._backend.sign_out()
        finally:
            self.clear_all_data()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Wait for pending reaction/friend/delete syncs to finish."""
        while True:
            pending = [t for t in self._background if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _record_error(
        self, operation: str, exc: BaseException, kind: ErrorKind | None = None,
    ) -> None:
        self.last_error = SessionErrorRecord(
            operation=operation,
            kind=kind or classify_error(exc),
            message=str(exc),
            occurred_at=self._clock.now(),
        )
