from __future__ import annotations

import os
import sys
from typing import Any
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "browser: live smoke tests that launch a real Playwright browser against github.com",
    )


def pytest_collection_modifyitems(config: Any, items: list) -> None:
    if os.getenv("RUN_BROWSER_TESTS") == "1":
        return
    skip = pytest.mark.skip(reason="set RUN_BROWSER_TESTS=1 to run live browser tests")
    for item in items:
        if "browser" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # A developer's .env values must not leak into config tests.
    for name in (
        "GITHUB_BASE_URL",
        "SCREENSHOT_DIR",
        "HEADLESS",
        "GITHUB_LOGIN_EMAIL",
        "GITHUB_LOGIN_PASSWORD",
        "MOBILE_APPROVAL_TIMEOUT_SECONDS",
        "MOBILE_POLLING_INTERVAL_SECONDS",
        "DEBUG_DIR",
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USERNAME",
        "SMTP_PASSWORD",
        "SMTP_FROM",
        "SMTP_USE_TLS",
        "SMTP_USE_SSL",
        "STATE_DB_PATH",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
