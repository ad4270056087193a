"""Invitation codes and deep links.

A friend joins a circle by opening `tymer://invite/<CODE>` (or the web
equivalent). This module parses those links and models the acceptance
progress shown to the user; the backend call itself lives in the store.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlparse

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8
DEEP_LINK_SCHEME = "tymer"


def generate_invite_code() -> str:
    """Random 8-char code without look-alike characters (no I, O, 0, 1)."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_invite_code(raw: str | None) -> str | None:
    """Uppercase and validate a code. Returns None if it cannot be a code."""
    if not raw:
        return None
    code = raw.strip().upper()
    if len(code) != INVITE_CODE_LENGTH:
        return None
    if any(ch not in INVITE_CODE_ALPHABET for ch in code):
        return None
    return code


def parse_invite_link(url: str) -> str | None:
    """Extract the invite code from a deep link.

    Accepted forms:
        tymer://invite/ABCD2345
        https://tymer.app/invite/ABCD2345
        https://tymer.app/invite?code=ABCD2345
    """
    parsed = urlparse(url.strip())
    if parsed.scheme == DEEP_LINK_SCHEME:
        # tymer://invite/CODE -> netloc "invite", path "/CODE"
        if parsed.netloc != "invite":
            return None
        segments = [s for s in parsed.path.split("/") if s]
    elif parsed.scheme in ("http", "https"):
        segments = [s for s in parsed.path.split("/") if s]
        if not segments or segments[0] != "invite":
            return None
        segments = segments[1:]
    else:
        return None

    if segments:
        return normalize_invite_code(segments[0])
    codes = parse_qs(parsed.query).get("code")
    return normalize_invite_code(codes[0]) if codes else None


class InviteStatus(Enum):
    NONE = "none"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class InviteAcceptanceState:
    status: InviteStatus = InviteStatus.NONE
    friend_name: str | None = None
    message: str | None = None

    @classmethod
    def none(cls) -> InviteAcceptanceState:
        return cls()

    @classmethod
    def processing(cls) -> InviteAcceptanceState:
        return cls(status=InviteStatus.PROCESSING)

    @classmethod
    def success(cls, friend_name: str) -> InviteAcceptanceState:
        return cls(status=InviteStatus.SUCCESS, friend_name=friend_name)

    @classmethod
    def error(cls, message: str) -> InviteAcceptanceState:
        return cls(status=InviteStatus.ERROR, message=message)
