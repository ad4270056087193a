"""Supabase backend adapter — implements BackendPort over REST.

Talks to the three Supabase services with plain httpx calls:
- GoTrue (`/auth/v1`) for sign-in / sign-up / sign-out,
- PostgREST (`/rest/v1`) for profiles, moments, reactions, friendships,
  invitations and windows,
- Storage (`/storage/v1`) for moment images and voice reactions.

Every failure, including a body that is not JSON or a row that does not
validate, is translated into a BackendError subclass so the session can
classify it; asyncio cancellation is left to propagate untouched.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx
from pydantic import BaseModel

from src.adapters.supabase_models import (
    FriendshipDTO,
    InvitationDTO,
    MomentDTO,
    ProfileDTO,
    WindowDTO,
)
from src.core.clock import Clock, SystemClock
from src.core.invitations import generate_invite_code
from src.data.models import Moment, TimeWindow, User, clamp_voice_duration
from src.ports.backend_port import (
    AuthenticationError,
    BackendError,
    RequestRejectedError,
    TransientBackendError,
)

logger = logging.getLogger(__name__)

_MOMENT_SELECT = "*,profiles!author_id(*),reactions(*,profiles!author_id(*))"
_MOMENTS_BUCKET = "moments"
_VOICE_BUCKET = "voice-reactions"


class SupabaseBackend:
    """Supabase implementation of BackendPort."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._timeout = timeout
        self._clock = clock or SystemClock()
        self._transport = transport
        self._access_token: str | None = None
        self._user_id: uuid.UUID | None = None
        self._profile: User | None = None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None and self._user_id is not None

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {self._access_token or self._anon_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._url, timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.request(
                    method, path,
                    params=params, json=json, content=content,
                    headers=self._headers(headers),
                )
        except httpx.HTTPError as exc:
            raise TransientBackendError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 500:
            raise TransientBackendError(f"{method} {path} returned {resp.status_code}")
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"{method} {path} rejected: {_error_message(resp)}")
        if resp.status_code >= 400:
            raise RequestRejectedError(_error_message(resp), status_code=resp.status_code)
        return resp

    async def _rest(self, method: str, table: str, **kwargs: Any) -> list[dict]:
        resp = await self._request(method, f"/rest/v1/{table}", **kwargs)
        if not resp.content:
            return []
        data = _json_body(resp)
        return data if isinstance(data, list) else [data]

    def _require_user(self) -> uuid.UUID:
        if self._user_id is None or self._access_token is None:
            raise AuthenticationError("Non authentifié")
        return self._user_id

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> User:
        resp = await self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._start_session(_json_body(resp), fallback_name=email.split("@")[0])
        profile = await self.current_profile()
        logger.info("Signed in to Supabase as %s", self._user_id)
        return profile or self._profile

    async def sign_up(
        self, email: str, password: str, first_name: str, avatar_color: str
    ) -> User:
        resp = await self._request(
            "POST", "/auth/v1/signup",
            json={
                "email": email,
                "password": password,
                "data": {"first_name": first_name, "avatar_color": avatar_color},
            },
        )
        data = _json_body(resp)
        if not isinstance(data, dict) or "access_token" not in data:
            raise AuthenticationError("Vérifie ton email pour confirmer ton compte")
        self._start_session(data, fallback_name=first_name)
        await self._rest(
            "POST", "profiles",
            json={"id": str(self._user_id), "first_name": first_name, "avatar_color": avatar_color},
            headers={"Prefer": "resolution=merge-duplicates"},
        )
        self._profile = User(id=self._user_id, first_name=first_name, avatar_color=avatar_color)
        return self._profile

    def _start_session(self, data: dict, fallback_name: str) -> None:
        try:
            self._access_token = data["access_token"]
            self._user_id = uuid.UUID(data["user"]["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthenticationError(f"Malformed auth response: {exc}") from exc
        self._profile = User(id=self._user_id, first_name=fallback_name)

    async def sign_out(self) -> None:
        try:
            if self._access_token is not None:
                await self._request("POST", "/auth/v1/logout")
        finally:
            self._access_token = None
            self._user_id = None
            self._profile = None
            logger.info("Signed out of Supabase")

    async def current_profile(self) -> User | None:
        if not self.is_authenticated:
            return None
        rows = await self._rest(
            "GET", "profiles", params={"select": "*", "id": f"eq.{self._user_id}"},
        )
        if rows:
            self._profile = _parse_row(rows[0], ProfileDTO, "profile").to_user()
        return self._profile

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    async def fetch_windows(self) -> list[TimeWindow]:
        rows = await self._rest(
            "GET", "windows", params={"select": "*", "order": "start_hour.asc"},
        )
        windows: list[TimeWindow] = []
        for row in rows:
            try:
                windows.append(WindowDTO.model_validate(row).to_time_window())
            except ValueError as exc:
                logger.warning("Skipping invalid window row %r: %s", row, exc)
        return windows

    # ------------------------------------------------------------------
    # Moments
    # ------------------------------------------------------------------

    async def fetch_friends_moments(self) -> list[Moment]:
        if not self.is_authenticated:
            return []
        start_of_today = self._clock.now().replace(hour=0, minute=0, second=0, microsecond=0)
        rows = await self._rest(
            "GET", "moments",
            params={
                "select": _MOMENT_SELECT,
                "author_id": f"neq.{self._user_id}",
                "captured_at": f"gte.{start_of_today.isoformat()}",
                "order": "captured_at.desc",
            },
        )
        return _parse_moments(rows)

    async def fetch_my_moments(self, limit: int = 7) -> list[Moment]:
        if not self.is_authenticated:
            return []
        rows = await self._rest(
            "GET", "moments",
            params={
                "select": _MOMENT_SELECT,
                "author_id": f"eq.{self._user_id}",
                "order": "captured_at.desc",
                "limit": str(limit),
            },
        )
        return _parse_moments(rows)

    async def has_posted_today(self) -> bool:
        if not self.is_authenticated:
            return False
        moments = await self.fetch_my_moments(limit=1)
        if not moments:
            return False
        now = self._clock.now()
        captured = moments[0].captured_at
        if captured.tzinfo is not None and now.tzinfo is not None:
            captured = captured.astimezone(now.tzinfo)
        return captured.date() == now.date()

    async def create_moment(self, image_path: str | None, description: str | None) -> Moment | None:
        user_id = self._require_user()
        rows = await self._rest(
            "POST", "moments",
            params={"select": "*,profiles!author_id(*)"},
            json={"author_id": str(user_id), "image_path": image_path, "description": description},
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            return None
        try:
            return MomentDTO.model_validate(rows[0]).to_moment()
        except ValueError as exc:
            raise TransientBackendError(f"Malformed moment row: {exc}") from exc

    async def delete_moment(self, moment_id: uuid.UUID, image_path: str | None) -> None:
        self._require_user()
        if image_path:
            try:
                await self._request(
                    "DELETE", f"/storage/v1/object/{_MOMENTS_BUCKET}",
                    json={"prefixes": [image_path]},
                )
            except BackendError as exc:
                logger.warning("Could not remove image %s: %s", image_path, exc)
        await self._rest("DELETE", "moments", params={"id": f"eq.{moment_id}"})

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _upload(self, bucket: str, extension: str, content_type: str, data: bytes) -> str:
        user_id = self._require_user()
        # Lowercase UUIDs to match auth.uid() in storage policies.
        path = f"{str(user_id).lower()}/{str(uuid.uuid4()).lower()}.{extension}"
        await self._request(
            "POST", f"/storage/v1/object/{bucket}/{path}",
            content=data,
            headers={"Content-Type": content_type},
        )
        return path

    async def upload_moment_image(self, image_bytes: bytes) -> str:
        return await self._upload(_MOMENTS_BUCKET, "jpg", "image/jpeg", image_bytes)

    async def upload_voice_reaction(self, audio_bytes: bytes) -> str:
        return await self._upload(_VOICE_BUCKET, "m4a", "audio/m4a", audio_bytes)

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    async def add_text_reaction(self, moment_id: uuid.UUID, text: str) -> None:
        user_id = self._require_user()
        await self._rest(
            "POST", "reactions",
            json={
                "moment_id": str(moment_id),
                "author_id": str(user_id),
                "reaction_type": "text",
                "content": text,
                "duration": None,
            },
        )

    async def add_voice_reaction(
        self, moment_id: uuid.UUID, duration_seconds: float, voice_path: str
    ) -> None:
        user_id = self._require_user()
        await self._rest(
            "POST", "reactions",
            json={
                "moment_id": str(moment_id),
                "author_id": str(user_id),
                "reaction_type": "voice",
                "content": None,
                "duration": clamp_voice_duration(duration_seconds),
                "voice_path": voice_path,
            },
        )

    # ------------------------------------------------------------------
    # Friendships
    # ------------------------------------------------------------------

    @staticmethod
    def _pair_filter(a: uuid.UUID, b: uuid.UUID) -> str:
        return (
            f"(and(user_id.eq.{a},friend_id.eq.{b}),"
            f"and(user_id.eq.{b},friend_id.eq.{a}))"
        )

    async def fetch_friends(self) -> list[User]:
        if not self.is_authenticated:
            return []
        me = self._user_id
        rows = await self._rest(
            "GET", "friendships",
            params={
                "select": "*,user:profiles!user_id(*),friend:profiles!friend_id(*)",
                "status": "eq.accepted",
                "or": f"(user_id.eq.{me},friend_id.eq.{me})",
            },
        )
        friends: dict[uuid.UUID, User] = {}
        for row in rows:
            try:
                other = FriendshipDTO.model_validate(row).other_profile(me)
            except ValueError as exc:
                logger.warning("Skipping invalid friendship row %r: %s", row, exc)
                continue
            if other is not None and other.id != me:
                friends.setdefault(other.id, other.to_user())
        return list(friends.values())

    async def remove_friend(self, friend_id: uuid.UUID) -> None:
        me = self._require_user()
        await self._rest("DELETE", "friendships", params={"or": self._pair_filter(me, friend_id)})

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def get_or_create_invitation(self) -> str:
        me = self._require_user()
        rows = await self._rest(
            "GET", "invitations",
            params={
                "select": "*",
                "creator_id": f"eq.{me}",
                "is_used": "eq.false",
                "expires_at": f"gte.{self._clock.now().isoformat()}",
                "order": "created_at.desc",
                "limit": "1",
            },
        )
        if rows:
            return _parse_row(rows[0], InvitationDTO, "invitation").code

        code = generate_invite_code()
        await self._rest("POST", "invitations", json={"creator_id": str(me), "code": code})
        logger.info("Invitation created: %s", code)
        return code

    async def accept_invitation(self, code: str) -> User | None:
        me = self._require_user()
        rows = await self._rest(
            "GET", "invitations",
            params={
                "select": "*,creator:profiles!creator_id(*)",
                "code": f"eq.{code}",
                "is_used": "eq.false",
                "limit": "1",
            },
        )
        invitation = _parse_row(rows[0], InvitationDTO, "invitation") if rows else None
        if invitation is None or (
            invitation.expires_at is not None and invitation.expires_at < self._clock.now()
        ):
            raise RequestRejectedError("Invitation invalide ou expirée", status_code=404)
        if invitation.creator_id == me:
            raise RequestRejectedError(
                "Tu ne peux pas accepter ta propre invitation", status_code=400,
            )

        existing = await self._rest(
            "GET", "friendships",
            params={"select": "id", "or": self._pair_filter(me, invitation.creator_id)},
        )
        if existing:
            raise RequestRejectedError("Vous êtes déjà amis", status_code=409)

        await self._rest(
            "PATCH", "invitations",
            params={"id": f"eq.{invitation.id}"},
            json={"is_used": True, "used_by": str(me), "used_at": self._clock.now().isoformat()},
        )
        await self._rest(
            "POST", "friendships",
            json={
                "user_id": str(invitation.creator_id),
                "friend_id": str(me),
                "status": "accepted",
            },
        )
        logger.info("Invitation %s accepted", code)
        return invitation.creator.to_user() if invitation.creator else None


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        for key in ("message", "msg", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {resp.status_code}"


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise TransientBackendError(
            f"{resp.request.method} {resp.request.url.path} returned a non-JSON body"
        ) from exc


def _parse_row(row: Any, model: type[BaseModel], what: str) -> Any:
    try:
        return model.model_validate(row)
    except ValueError as exc:
        raise TransientBackendError(f"Malformed {what} row: {exc}") from exc


def _parse_moments(rows: list[dict]) -> list[Moment]:
    """Convert moment rows, skipping the ones that do not validate."""
    moments: list[Moment] = []
    for row in rows:
        try:
            moments.append(MomentDTO.model_validate(row).to_moment())
        except ValueError as exc:
            logger.warning("Skipping invalid moment row %r: %s", row, exc)
    return moments
