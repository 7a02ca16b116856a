from __future__ import annotations

import socket
import sys
import threading
import time
from pathlib import Path
from types import SimpleNamespace

import pytest
import uvicorn

# Ensure tests import the modules from this checkout, not an installed copy.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from api import create_app  # noqa: E402
from config import Settings  # noqa: E402
from engine import ExecutionEngine  # noqa: E402


@pytest.fixture
def settings():
    return Settings(kill_grace_seconds=1.0, fetch_wait_seconds=0.0, max_wait_seconds=20.0)


@pytest.fixture
def engine(settings):
    eng = ExecutionEngine(settings)
    yield eng
    eng.shutdown(timeout=5)


def _free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def live_server(settings):
    """A real uvicorn server on a background thread, for tests that need true concurrency."""
    eng = ExecutionEngine(settings)
    port = _free_port()
    server = uvicorn.Server(uvicorn.Config(create_app(eng), host="127.0.0.1", port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    deadline = time.monotonic() + 10
    while not server.started and time.monotonic() < deadline:
        time.sleep(0.02)
    assert server.started, "server did not start"

    yield SimpleNamespace(url=f"http://127.0.0.1:{port}", engine=eng)

    server.should_exit = True
    thread.join(10)
    eng.shutdown(timeout=5)
