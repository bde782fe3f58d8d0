from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from ..browser.session import Session, SessionError, TextNode
from ..errors import DeviceApprovalTimeoutError
from ..mailer import Mailer
from ..models import Credentials
from .detect import is_device_verification_page, is_logged_in, is_otp_page
from .selectors import DEFAULT_SELECTORS, GitHubSelectors, text_selector


logger = logging.getLogger(__name__)

MIN_APPROVAL_TIMEOUT_SECONDS = 30
MIN_POLL_INTERVAL_SECONDS = 1

_DIGIT_RE = re.compile(r"^\s*(\d{2,3})\s*$")

# Settle pauses (seconds) after UI nudges.
_AFTER_CLICK_PAUSE = 0.8
_AFTER_REFRESH_PAUSE = 0.6
_AFTER_ROOT_NAV_PAUSE = 0.9
_REPROMPT_WAIT_SECONDS = 6
_FINAL_WAIT_SECONDS = 8


# --- Digit extraction ---


def parse_font_px(value: Optional[str]) -> float:
    """
    "56px" -> 56.0. Anything unparsable counts as 0 so such nodes lose against real sizes.
    """
    if value is None:
        return 0.0
    s = value.strip().lower()
    if s.endswith("px"):
        s = s[:-2].strip()
    try:
        return float(s)
    except ValueError:
        return 0.0


def pick_approval_digit(nodes: Iterable[TextNode]) -> Optional[str]:
    """
    Among visible nodes whose whole text is a 2-3 digit number, return the one rendered largest.
    """
    best_digits: Optional[str] = None
    best_px = -1.0
    for node in nodes:
        if not node.visible:
            continue
        m = _DIGIT_RE.match(node.text or "")
        if not m:
            continue
        px = parse_font_px(node.font_size)
        if px > best_px:
            best_px = px
            best_digits = m.group(1)
    return best_digits


def extract_approval_digit(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> Optional[str]:
    try:
        nodes = session.text_nodes(selectors.approval_digit_candidates)
    except SessionError:
        logger.debug("Could not collect text nodes for approval digit.", exc_info=True)
        return None
    return pick_approval_digit(nodes)


# --- Out-of-band relay ---


@dataclass(frozen=True)
class ApprovalChallenge:
    digit: Optional[str]
    screenshot: bytes


class ApprovalRelay(Protocol):
    def relay(self, challenge: ApprovalChallenge) -> None: ...


class EmailApprovalRelay:
    """
    Email the challenge screen (and digit, when known) to the GitHub account owner.

    Images are kept under `holding_dir` (not rotated per day) so the owner can find the latest one.
    """

    def __init__(
        self,
        *,
        mailer: Mailer,
        recipient: str,
        holding_dir: Path,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.mailer = mailer
        self.recipient = recipient
        self.holding_dir = Path(holding_dir)
        self._now = now

    def relay(self, challenge: ApprovalChallenge) -> None:
        stamp = self._now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        path = self.holding_dir / f"github_mobile_challenge_{stamp}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(challenge.screenshot)

        digit = challenge.digit
        subject = "[GitHub] Mobile sign-in challenge"
        if digit:
            subject += f" - confirm digit: {digit}"
            body = f"Approve the sign-in on your phone by selecting digit: {digit}"
        else:
            body = "Approve the sign-in on your phone (no digit was shown; the attached screenshot shows the page)."

        self.mailer.send(self.recipient, subject, body, attachment=path)
        logger.info("Emailed GitHub Mobile challenge to %s (digit: %s) at %s", self.recipient, digit, path)


# --- Resolver ---


@dataclass(frozen=True)
class ApprovalPolicy:
    timeout_seconds: float = 120
    poll_interval_seconds: float = 3

    @property
    def effective_timeout(self) -> float:
        return max(MIN_APPROVAL_TIMEOUT_SECONDS, float(self.timeout_seconds))

    @property
    def effective_interval(self) -> float:
        return max(MIN_POLL_INTERVAL_SECONDS, float(self.poll_interval_seconds))


class DeviceApprovalResolver:
    """
    Turns a "approve on GitHub Mobile" page into an authenticated session, or a bounded timeout.

    `clock` and `sleep` are injectable so tests can run the polling loop on an accelerated clock.
    """

    def __init__(
        self,
        *,
        relay: ApprovalRelay,
        policy: ApprovalPolicy,
        base_url: str,
        selectors: Optional[GitHubSelectors] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.relay = relay
        self.policy = policy
        self.base_url = base_url.rstrip("/")
        self.selectors = selectors or DEFAULT_SELECTORS
        self._clock = clock
        self._sleep = sleep

    def resolve(self, session: Session, credentials: Credentials) -> bool:
        """
        Relay the challenge, then poll for approval.

        Returns True once authenticated, False if GitHub switched to a one-time-code page mid-poll.
        Raises DeviceApprovalTimeoutError if neither happens in time.
        """
        digit = extract_approval_digit(session, self.selectors)
        self._notify(session, digit)
        return self._wait_for_approval(session, credentials, initial_digit=digit)

    def try_switch_to_device_approval(self, session: Session) -> bool:
        """
        From the OTP page, click the first visible "use GitHub Mobile"-style link and check where we land.
        """
        for phrase in self.selectors.challenge_switch_phrases:
            try:
                candidates = [el for el in session.find_all(text_selector(phrase)) if el.is_visible()]
            except SessionError:
                continue
            if not candidates:
                continue

            logger.info("Trying to switch 2FA challenge via %r", phrase)
            try:
                candidates[0].click()
            except SessionError:
                logger.debug("Click on %r failed.", phrase, exc_info=True)
            self._sleep(_AFTER_CLICK_PAUSE)
            if is_device_verification_page(session, self.selectors):
                return True
        return False

    def _notify(self, session: Session, digit: Optional[str]) -> None:
        # The owner may still approve blind, so a relay failure never aborts the resolution.
        try:
            challenge = ApprovalChallenge(digit=digit, screenshot=session.screenshot())
            self.relay.relay(challenge)
        except Exception as e:
            logger.warning("Failed to relay GitHub Mobile challenge: %s", e)

    def _authenticated(self, session: Session) -> bool:
        return is_logged_in(session, self.selectors)

    def _settled(self, session: Session) -> bool:
        return (
            is_logged_in(session, self.selectors)
            or is_otp_page(session, self.selectors)
            or is_device_verification_page(session, self.selectors)
        )

    def _wait_for_approval(self, session: Session, credentials: Credentials, *, initial_digit: Optional[str]) -> bool:
        timeout = self.policy.effective_timeout
        interval = self.policy.effective_interval
        start = self._clock()
        polls = 0
        logger.info("Waiting up to %.0fs for GitHub Mobile approval (poll every %.0fs)", timeout, interval)

        while self._clock() - start < timeout:
            if self._authenticated(session):
                return True

            if self._click_continue(session):
                self._sleep(_AFTER_CLICK_PAUSE)
                if self._authenticated(session):
                    return True

            if self._answer_password_reprompt(session, credentials):
                return True

            # Passive nudges only; a full re-login would trigger a fresh challenge.
            polls += 1
            if polls % 3 == 0:
                try:
                    session.refresh()
                except SessionError:
                    logger.debug("Refresh during approval wait failed.", exc_info=True)
                self._sleep(_AFTER_REFRESH_PAUSE)
            if polls % 5 == 0:
                try:
                    session.navigate(f"{self.base_url}/")
                except SessionError:
                    logger.debug("Root navigation during approval wait failed.", exc_info=True)
                self._sleep(_AFTER_ROOT_NAV_PAUSE)

            current = extract_approval_digit(session, self.selectors)
            if current is not None and initial_digit is not None and current != initial_digit:
                logger.info(
                    "Detected new mobile challenge digit %s (was %s); keeping the original challenge.",
                    current,
                    initial_digit,
                )

            if is_otp_page(session, self.selectors):
                logger.info("GitHub switched to a one-time-code page while waiting for approval.")
                return False

            self._sleep(interval)

        try:
            session.navigate(f"{self.base_url}/")
            session.wait_for(self._settled, _FINAL_WAIT_SECONDS)
            if self._authenticated(session):
                return True
        except SessionError:
            logger.debug("Final approval check failed.", exc_info=True)

        raise DeviceApprovalTimeoutError(f"waiting for GitHub Mobile approval timed out after {timeout:.0f}s")

    def _click_continue(self, session: Session) -> bool:
        for selector in self.selectors.continue_controls:
            try:
                elements = session.find_all(selector)
            except SessionError:
                continue
            for el in elements:
                try:
                    if el.is_visible() and el.is_enabled():
                        el.click()
                        return True
                except SessionError:
                    continue
        return False

    def _answer_password_reprompt(self, session: Session, credentials: Credentials) -> bool:
        """
        GitHub occasionally asks for the password again ("sudo" prompt). Fill it once and wait briefly.
        """
        try:
            fields = session.find_all(self.selectors.reprompt_password)
            if not fields:
                return False
            pw = fields[0]
            pw.fill(credentials.password)
            submits = session.find_all(self.selectors.reprompt_submit)
            if submits:
                submits[0].click()
            else:
                pw.press("Enter")
            session.wait_for(self._settled, _REPROMPT_WAIT_SECONDS)
        except SessionError:
            logger.debug("Password re-prompt handling failed.", exc_info=True)
            return False
        return self._authenticated(session)
