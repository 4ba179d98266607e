"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs against the working tree,
and resets process-wide state (probed capabilities, DNS pins, memoised
settings, the in-flight count) around every test.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from CurlFetch.client import ADMISSION  # noqa: E402
from CurlFetch.network.capabilities import reset_capabilities  # noqa: E402
from CurlFetch.network.dns import DNS_CACHE  # noqa: E402
from CurlFetch.settings import ClientSettings, get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_process_state(monkeypatch: pytest.MonkeyPatch):
    """Isolate tests from each other and from CURLFETCH_* variables."""
    for name in list(os.environ):
        if name.upper().startswith("CURLFETCH_"):
            monkeypatch.delenv(name, raising=False)
    reset_capabilities()
    DNS_CACHE.clear()
    get_settings.cache_clear()
    ADMISSION.reset()
    yield
    reset_capabilities()
    DNS_CACHE.clear()
    get_settings.cache_clear()
    ADMISSION.reset()


@pytest.fixture
def client_settings() -> ClientSettings:
    """Deterministic settings for command and orchestrator tests."""
    return ClientSettings(
        binary="curl",
        max_concurrent_requests=5,
        default_user_agent="curlfetch-tests/1.0",
        tcp_fast_open=False,
        tcp_no_delay=False,
    )
