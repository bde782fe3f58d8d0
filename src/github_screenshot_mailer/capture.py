from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

from .browser.session import Session, SessionError, SessionFactory, WaitTimeoutError
from .errors import AuthConfigError, CaptureDriverError, CaptureIOError, ScreenshotMailerError
from .portal.detect import page_loaded


logger = logging.getLogger(__name__)


class Login(Protocol):
    def login(self, session: Session) -> None: ...


class ScreenshotCapturer:
    """
    Owns one browser session per capture: acquire, optionally log in, shoot the full page, release.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        base_url: str = "https://github.com",
        login: Optional[Login] = None,
        page_load_timeout_seconds: float = 30.0,
    ) -> None:
        self.session_factory = session_factory
        self.base_url = base_url.rstrip("/")
        self.login = login
        self.page_load_timeout_seconds = page_load_timeout_seconds

    def profile_url(self, target: str) -> str:
        return f"{self.base_url}/{quote(target.strip(), safe='')}"

    def capture(self, target: str, destination: Path, with_login: bool = False) -> Path:
        destination = Path(destination)
        try:
            session = self.session_factory()
        except SessionError as e:
            raise CaptureDriverError(f"could not start browser session: {e}") from e

        try:
            if with_login:
                if self.login is None:
                    raise AuthConfigError("login requested but no GitHub login is configured")
                self.login.login(session)

            url = self.profile_url(target)
            logger.info("Capturing %s", url)
            session.navigate(url)
            try:
                session.wait_for(page_loaded, self.page_load_timeout_seconds)
            except WaitTimeoutError as e:
                raise CaptureDriverError(f"page did not finish loading: {url}") from e

            image = session.full_page_screenshot()
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(image)
            logger.info("Saved screenshot (%d bytes) to %s", len(image), destination)
            return destination
        except ScreenshotMailerError:
            raise
        except SessionError as e:
            raise CaptureDriverError(f"browser error: {e}") from e
        except OSError as e:
            raise CaptureIOError(f"cannot write screenshot to {destination}: {e}") from e
        finally:
            self._release(session)

    @staticmethod
    def _release(session: Session) -> None:
        try:
            session.close()
        except Exception:
            logger.warning("Failed to close browser session.", exc_info=True)
