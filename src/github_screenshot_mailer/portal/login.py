from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from ..browser.session import ElementNotFoundError, Session, WaitTimeoutError
from ..errors import (
    AuthConfigError,
    InvalidCredentialsError,
    LoginError,
    LoginFormChangedError,
    LoginIncompleteError,
    LoginTimeoutError,
    UnsupportedChallengeError,
)
from ..models import Credentials
from ..util.debug_bundle import save_debug_artifacts
from .approval import DeviceApprovalResolver
from .detect import has_login_error, is_device_verification_page, is_logged_in, is_otp_page
from .selectors import DEFAULT_SELECTORS, GitHubSelectors


logger = logging.getLogger(__name__)


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    NEEDS_DEVICE_APPROVAL = "needs_device_approval"
    NEEDS_OTP_SWITCH = "needs_otp_switch"
    CREDENTIAL_ERROR = "credential_error"
    INCOMPLETE = "incomplete"


_OUTCOME_ERRORS: dict[LoginOutcome, Callable[[], LoginError]] = {
    LoginOutcome.CREDENTIAL_ERROR: lambda: InvalidCredentialsError("invalid credentials"),
    LoginOutcome.NEEDS_OTP_SWITCH: lambda: UnsupportedChallengeError(
        "2FA code requested but this workflow only supports GitHub Mobile approval, not one-time codes. "
        "Choose 'Use GitHub Mobile' as the default 2FA method."
    ),
    LoginOutcome.NEEDS_DEVICE_APPROVAL: lambda: LoginIncompleteError("still waiting on device verification"),
    LoginOutcome.INCOMPLETE: lambda: LoginIncompleteError("login did not complete"),
}


def classify_login_page(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> Optional[LoginOutcome]:
    """
    Map the current page to the first matching post-submit signal, or None if none is showing yet.
    """
    if is_logged_in(session, selectors):
        return LoginOutcome.SUCCESS
    if is_device_verification_page(session, selectors):
        return LoginOutcome.NEEDS_DEVICE_APPROVAL
    if is_otp_page(session, selectors):
        return LoginOutcome.NEEDS_OTP_SWITCH
    if has_login_error(session, selectors):
        return LoginOutcome.CREDENTIAL_ERROR
    return None


class LoginAutomaton:
    """
    github.com email + password login, with GitHub Mobile as the only supported second factor.
    """

    def __init__(
        self,
        *,
        credentials: Credentials,
        resolver: DeviceApprovalResolver,
        base_url: str,
        selectors: Optional[GitHubSelectors] = None,
        wait_seconds: float = 30.0,
        debug_dir: str = "",
    ) -> None:
        self.credentials = credentials
        self.resolver = resolver
        self.base_url = base_url.rstrip("/")
        self.selectors = selectors or DEFAULT_SELECTORS
        self.wait_seconds = wait_seconds
        self.debug_dir = debug_dir

    def login(self, session: Session) -> None:
        if not self.credentials.is_complete:
            raise AuthConfigError("login requested but GitHub login email/password are not configured")

        try:
            outcome = self._run(session)
        except ElementNotFoundError as e:
            self._save_debug(session, "login_form_changed")
            raise LoginFormChangedError(f"login form not found (GitHub DOM changed?): {e}") from e
        except WaitTimeoutError as e:
            self._save_debug(session, "login_timeout")
            raise LoginTimeoutError(f"timeout during login: {e}") from e
        except LoginError:
            self._save_debug(session, "login_failure")
            raise

        if outcome is LoginOutcome.SUCCESS:
            logger.info("GitHub login complete (url=%s)", session.current_url())
            return

        self._save_debug(session, f"login_{outcome.value}")
        raise _OUTCOME_ERRORS[outcome]()

    def _run(self, session: Session) -> LoginOutcome:
        sel = self.selectors
        session.navigate(f"{self.base_url}{sel.login_path}")
        self._wait_quietly(session, self._form_present)

        login_field = session.find(sel.login_field)
        password_field = session.find(sel.password_field)
        login_field.fill(self.credentials.email)
        password_field.fill(self.credentials.password)
        session.find(sel.login_submit).click()

        session.wait_for(lambda s: classify_login_page(s, sel) is not None, self.wait_seconds)
        outcome = classify_login_page(session, sel) or LoginOutcome.INCOMPLETE
        logger.info("Login signal after submitting credentials: %s", outcome.value)

        if outcome is LoginOutcome.NEEDS_DEVICE_APPROVAL:
            if self.resolver.resolve(session, self.credentials):
                return LoginOutcome.SUCCESS
            # The resolver hands back control when a one-time-code page replaces the approval page.
            outcome = classify_login_page(session, sel) or LoginOutcome.INCOMPLETE

        if outcome is LoginOutcome.NEEDS_OTP_SWITCH:
            if self.resolver.try_switch_to_device_approval(session) and self.resolver.resolve(
                session, self.credentials
            ):
                return LoginOutcome.SUCCESS
            return LoginOutcome.NEEDS_OTP_SWITCH

        return outcome

    def _form_present(self, session: Session) -> bool:
        return bool(session.find_all(self.selectors.login_field)) and bool(
            session.find_all(self.selectors.password_field)
        )

    def _wait_quietly(self, session: Session, condition: Callable[[Session], bool]) -> bool:
        # A missing form is reported by the `find` that follows, as a changed form rather than a timeout.
        try:
            session.wait_for(condition, self.wait_seconds)
            return True
        except WaitTimeoutError:
            return False

    def _save_debug(self, session: Session, name: str) -> None:
        if self.debug_dir.strip():
            save_debug_artifacts(session, debug_dir=self.debug_dir, name_prefix=name)
