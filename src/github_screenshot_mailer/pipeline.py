from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .browser.session import BrowserOptions, SessionFactory, open_browser_session
from .capture import ScreenshotCapturer
from .config import AppConfig
from .errors import CaptureIOError, ScreenshotMailerError, UnexpectedCaptureError
from .mailer import Mailer, SmtpMailer
from .models import (
    Credentials,
    PersistedAttempt,
    RecordFilter,
    RecordPage,
    ScreenshotRecord,
    ScreenshotRequest,
    ScreenshotStatus,
)
from .portal.approval import ApprovalPolicy, DeviceApprovalResolver, EmailApprovalRelay
from .portal.login import LoginAutomaton
from .state import AttemptStore, RecordStore
from .util.files import ensure_daily_dir, suggest_png_name


logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def success_subject(target: str) -> str:
    return f"[GitHub] Profile screenshot: {target}"


def success_body(target: str) -> str:
    return f"Attached is the requested GitHub profile screenshot for user: {target}"


class ScreenshotPipeline:
    """
    request -> capture -> email -> record. Every call ends in exactly one SUCCESS record or one raised
    classified error with one FAILED record (except when the output directory cannot be created).
    """

    def __init__(
        self,
        *,
        capturer: ScreenshotCapturer,
        mailer: Mailer,
        store: AttemptStore,
        screenshot_dir: Path,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.capturer = capturer
        self.mailer = mailer
        self.store = store
        self.screenshot_dir = Path(screenshot_dir)
        self._now = now

    def process(self, request: ScreenshotRequest) -> ScreenshotRecord:
        today: date = self._now().date()
        try:
            out_dir = ensure_daily_dir(self.screenshot_dir, today)
        except OSError as e:
            raise CaptureIOError(f"cannot create output directory under {self.screenshot_dir}: {e}") from e

        file_name: Optional[str] = None
        try:
            file_name = suggest_png_name(request.target)
            destination = self.capturer.capture(request.target, out_dir / file_name, request.with_login)

            size = destination.stat().st_size
            self.mailer.send(
                str(request.recipient),
                success_subject(request.target),
                success_body(request.target),
                attachment=destination,
            )

            saved = self.store.save(
                PersistedAttempt(
                    target=request.target,
                    recipient=str(request.recipient),
                    file_name=file_name,
                    file_path=str(destination),
                    file_size_bytes=size,
                    completed_at=self._now(),
                    status=ScreenshotStatus.SUCCESS,
                )
            )
        except ScreenshotMailerError as e:
            self._persist_failure(request, file_name, e)
            raise
        except Exception as e:
            self._persist_failure(request, file_name, e)
            raise UnexpectedCaptureError(str(e) or type(e).__name__) from e

        logger.info("Screenshot of %s sent to %s (%d bytes)", request.target, request.recipient, saved.file_size_bytes)
        return saved.to_record()

    def _persist_failure(self, request: ScreenshotRequest, file_name: Optional[str], error: BaseException) -> None:
        logger.error("Screenshot request for %s failed: %s", request.target, error)
        try:
            self.store.save(
                PersistedAttempt(
                    target=request.target,
                    recipient=str(request.recipient),
                    file_name=file_name or NOT_AVAILABLE,
                    file_path=NOT_AVAILABLE,
                    file_size_bytes=0,
                    completed_at=self._now(),
                    status=ScreenshotStatus.FAILED,
                    error_message=str(error),
                )
            )
        except Exception:
            logger.error("Failed to record failed attempt for %s", request.target, exc_info=True)

    def search(
        self,
        flt: Optional[RecordFilter] = None,
        *,
        limit: int = 50,
        offset: int = 0,
        ascending: bool = False,
    ) -> RecordPage:
        search = getattr(self.store, "search", None)
        if search is None:
            raise TypeError(f"{type(self.store).__name__} does not support searching records")
        return search(flt, limit=limit, offset=offset, ascending=ascending)


def create_pipeline(
    cfg: AppConfig,
    *,
    session_factory: Optional[SessionFactory] = None,
    mailer: Optional[Mailer] = None,
    store: Optional[AttemptStore] = None,
) -> ScreenshotPipeline:
    """
    Wire a pipeline from config: Playwright sessions, SMTP delivery, sqlite records.
    """
    auto = cfg.automation
    mailer = mailer or SmtpMailer(cfg.smtp)
    store = store or RecordStore(cfg.state.db_path)
    if session_factory is None:
        options = BrowserOptions.from_config(auto)
        session_factory = lambda: open_browser_session(options)  # noqa: E731

    credentials = Credentials(email=auto.login_email, password=auto.login_password)
    relay = EmailApprovalRelay(
        mailer=mailer,
        recipient=auto.login_email,
        holding_dir=Path(auto.screenshot_dir) / "_auth",
    )
    resolver = DeviceApprovalResolver(
        relay=relay,
        policy=ApprovalPolicy(
            timeout_seconds=auto.mobile_approval_timeout_seconds,
            poll_interval_seconds=auto.mobile_polling_interval_seconds,
        ),
        base_url=auto.base_url,
    )
    login = LoginAutomaton(
        credentials=credentials,
        resolver=resolver,
        base_url=auto.base_url,
        wait_seconds=auto.login_wait_seconds,
        debug_dir=auto.debug_dir,
    )
    capturer = ScreenshotCapturer(
        session_factory=session_factory,
        base_url=auto.base_url,
        login=login,
        page_load_timeout_seconds=auto.page_load_timeout_seconds,
    )
    return ScreenshotPipeline(
        capturer=capturer,
        mailer=mailer,
        store=store,
        screenshot_dir=Path(auto.screenshot_dir),
    )
