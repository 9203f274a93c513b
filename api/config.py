"""Configuration helpers for the FastAPI service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class AppConfig:
    """Runtime configuration for the API service."""

    host: str = "127.0.0.1"
    port: int = 8000
    allow_origins: Tuple[str, ...] = DEFAULT_ORIGINS
    max_policy_kb: int = 256

    @classmethod
    def load(cls) -> "AppConfig":
        """Load configuration from environment variables."""

        extra = os.getenv("ALLOW_ORIGINS", "").strip()
        origins = DEFAULT_ORIGINS
        if extra:
            origins += tuple(o.strip() for o in extra.split(",") if o.strip())

        return cls(
            host=os.getenv("API_HOST", "127.0.0.1"),
            port=int(os.getenv("API_PORT", "8000")),
            allow_origins=origins,
            max_policy_kb=int(os.getenv("MAX_POLICY_KB", "256")),
        )
