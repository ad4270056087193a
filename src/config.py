"""
Tymer — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Backend provider: "supabase" | "offline"
    BACKEND_PROVIDER: str = "supabase"

    # Supabase (only needed when BACKEND_PROVIDER=supabase)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""

    # Optional auto sign-in for the terminal runner
    TYMER_EMAIL: str = ""
    TYMER_PASSWORD: str = ""

    # "development" | "production"
    APP_ENV: str = "development"

    # Bypass window gating (demo mode). Refused in production.
    DEBUG_WINDOW_OVERRIDE: bool = False

    # Local persistence
    DATABASE_PATH: str = "data/tymer.db"
    MEDIA_DIR: str = "data/media"

    # Gating
    TIMEZONE: str = "Europe/Paris"
    WINDOW_TICK_SECONDS: int = 60

    # Session
    FRIEND_CIRCLE_LIMIT: int = 25
    MY_MOMENTS_LIMIT: int = 7

    HTTP_TIMEOUT_SECONDS: float = 10.0

    @field_validator("DEBUG_WINDOW_OVERRIDE", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @field_validator("WINDOW_TICK_SECONDS", "FRIEND_CIRCLE_LIMIT", "MY_MOMENTS_LIMIT", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("APP_ENV", "BACKEND_PROVIDER", mode="before")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return str(v).strip().lower()

    @model_validator(mode="after")
    def check_debug_override(self) -> Settings:
        if self.DEBUG_WINDOW_OVERRIDE and self.APP_ENV == "production":
            raise ValueError("DEBUG_WINDOW_OVERRIDE cannot be enabled when APP_ENV=production")
        return self

    @property
    def debug_override_allowed(self) -> bool:
        return self.APP_ENV != "production"


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    provider = os.getenv("BACKEND_PROVIDER", "supabase").strip().lower()
    supabase_url = os.getenv("SUPABASE_URL", "")
    supabase_key = os.getenv("SUPABASE_ANON_KEY", "")

    if provider == "supabase":
        if not supabase_url or supabase_url.startswith("your-"):
            print("ERROR: SUPABASE_URL is missing or not set in .env", file=sys.stderr)
            sys.exit(1)
        if not supabase_key or supabase_key.startswith("your-"):
            print("ERROR: SUPABASE_ANON_KEY is missing or not set in .env", file=sys.stderr)
            sys.exit(1)

    try:
        return Settings(
            BACKEND_PROVIDER=provider,
            SUPABASE_URL=supabase_url.rstrip("/"),
            SUPABASE_ANON_KEY=supabase_key,
            TYMER_EMAIL=os.getenv("TYMER_EMAIL", ""),
            TYMER_PASSWORD=os.getenv("TYMER_PASSWORD", ""),
            APP_ENV=os.getenv("APP_ENV", "development"),
            DEBUG_WINDOW_OVERRIDE=os.getenv("DEBUG_WINDOW_OVERRIDE", "false"),
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/tymer.db"),
            MEDIA_DIR=os.getenv("MEDIA_DIR", "data/media"),
            TIMEZONE=os.getenv("TIMEZONE", "Europe/Paris"),
            WINDOW_TICK_SECONDS=os.getenv("WINDOW_TICK_SECONDS", "60"),
            FRIEND_CIRCLE_LIMIT=os.getenv("FRIEND_CIRCLE_LIMIT", "25"),
            MY_MOMENTS_LIMIT=os.getenv("MY_MOMENTS_LIMIT", "7"),
            HTTP_TIMEOUT_SECONDS=os.getenv("HTTP_TIMEOUT_SECONDS", "10"),
        )
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
