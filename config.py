# config.py
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

_TRUE = {"1", "true", "True", "yes"}


def _env(name, default):
    return os.getenv(f"REMOTERUN_{name}", default)


class Settings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 7000
    kill_grace_seconds: float = 5.0
    fetch_wait_seconds: float = 0.25
    max_wait_seconds: float = 300.0
    max_chunk_bytes: int = 1 << 20
    read_size: int = 1 << 16
    kill_on_shutdown: bool = True


def load_settings(dotenv_path=None, **overrides) -> Settings:
    """Build Settings from REMOTERUN_* variables (and a .env file); keyword overrides win."""
    load_dotenv(dotenv_path=dotenv_path or Path.cwd() / ".env", override=False)
    values = dict(
        host=_env("HOST", "127.0.0.1"),
        port=int(_env("PORT", "7000")),
        kill_grace_seconds=float(_env("KILL_GRACE_SECONDS", "5.0")),
        fetch_wait_seconds=float(_env("FETCH_WAIT_SECONDS", "0.25")),
        max_wait_seconds=float(_env("MAX_WAIT_SECONDS", "300")),
        max_chunk_bytes=int(_env("MAX_CHUNK_BYTES", str(1 << 20))),
        read_size=int(_env("READ_SIZE", str(1 << 16))),
        kill_on_shutdown=_env("KILL_ON_SHUTDOWN", "1") in _TRUE,
    )
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
