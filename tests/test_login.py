from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import pytest

from github_screenshot_mailer.browser.session import TextNode
from github_screenshot_mailer.errors import (
    AuthConfigError,
    DeviceApprovalTimeoutError,
    InvalidCredentialsError,
    LoginError,
    LoginFormChangedError,
    LoginTimeoutError,
    UnsupportedChallengeError,
)
from github_screenshot_mailer.models import Credentials
from github_screenshot_mailer.portal.approval import ApprovalPolicy, DeviceApprovalResolver
from github_screenshot_mailer.portal.login import LoginAutomaton, LoginOutcome, classify_login_page
from github_screenshot_mailer.portal.selectors import DEFAULT_SELECTORS as SEL
from github_screenshot_mailer.portal.selectors import text_selector

from fakes import FakeClock, FakeElement, FakeRelay, FakeSession

BASE = "https://github.com"
DEVICE_URL = f"{BASE}/sessions/verified-device"
CREDS = Credentials(email="me@example.com", password="hunter22")


def _login_page(session: FakeSession, on_submit: Callable[[], None]) -> dict[str, FakeElement]:
    fields = {
        "login": FakeElement(),
        "password": FakeElement(),
        "submit": FakeElement(on_click=on_submit),
    }
    session.set_elements(SEL.login_field, fields["login"])
    session.set_elements(SEL.password_field, fields["password"])
    session.set_elements(SEL.login_submit, fields["submit"])
    return fields


def _leave_login_page(session: FakeSession) -> None:
    session.remove_elements(SEL.login_field, SEL.password_field, SEL.login_submit)


def _approve_after(clock: FakeClock, session: FakeSession, sleeps: int) -> None:
    remaining = [sleeps]

    def tick() -> None:
        remaining[0] -= 1
        if remaining[0] == 0:
            session.sign_in()

    clock.on_sleep = tick


def _automaton(
    *,
    clock: Optional[FakeClock] = None,
    relay: Optional[FakeRelay] = None,
    credentials: Credentials = CREDS,
    debug_dir: str = "",
) -> LoginAutomaton:
    clock = clock or FakeClock()
    resolver = DeviceApprovalResolver(
        relay=relay or FakeRelay(),
        policy=ApprovalPolicy(timeout_seconds=30, poll_interval_seconds=1),
        base_url=BASE,
        clock=clock,
        sleep=clock.sleep,
    )
    return LoginAutomaton(
        credentials=credentials,
        resolver=resolver,
        base_url=BASE,
        wait_seconds=5,
        debug_dir=debug_dir,
    )


def test_immediate_success_fills_form() -> None:
    s = FakeSession()

    def submit() -> None:
        _leave_login_page(s)
        s.sign_in()

    fields = _login_page(s, submit)
    _automaton().login(s)

    assert s.visited[0] == f"{BASE}/login"
    assert fields["login"].value == "me@example.com"
    assert fields["password"].value == "hunter22"
    assert fields["submit"].clicks == 1


def test_error_banner_is_invalid_credentials() -> None:
    s = FakeSession()
    _login_page(s, lambda: s.set_elements(SEL.flash_error, FakeElement("Incorrect username or password.")))

    with pytest.raises(InvalidCredentialsError) as exc:
        _automaton().login(s)
    assert str(exc.value).startswith("GitHub login failed: ")


def test_otp_without_switch_option_is_unsupported() -> None:
    s = FakeSession()
    _login_page(s, lambda: s.set_elements(SEL.otp_input, FakeElement()))

    with pytest.raises(UnsupportedChallengeError):
        _automaton().login(s)


def test_otp_switch_then_mobile_approval_succeeds() -> None:
    clock = FakeClock()
    relay = FakeRelay()
    s = FakeSession()

    def to_device_page() -> None:
        s.remove_elements(SEL.otp_input)
        s.url = DEVICE_URL
        s.nodes = [TextNode(text="42", font_size="48px", visible=True)]
        # One settle pause after the click, then one poll interval before approval lands.
        _approve_after(clock, s, sleeps=2)

    def submit() -> None:
        _leave_login_page(s)
        s.url = f"{BASE}/sessions/two-factor/app"
        s.set_elements(SEL.otp_input, FakeElement())
        s.set_elements(text_selector("use github mobile"), FakeElement("Use GitHub Mobile", on_click=to_device_page))

    _login_page(s, submit)
    _automaton(clock=clock, relay=relay).login(s)

    assert len(relay.challenges) == 1
    assert relay.challenges[0].digit == "42"


def test_device_approval_directly_after_submit() -> None:
    clock = FakeClock()
    s = FakeSession()

    def submit() -> None:
        _leave_login_page(s)
        s.url = DEVICE_URL
        _approve_after(clock, s, sleeps=3)

    _login_page(s, submit)
    _automaton(clock=clock).login(s)
    assert s.cookie("user_session") is not None


def test_otp_appearing_mid_poll_falls_back_to_switch_branch() -> None:
    clock = FakeClock()
    s = FakeSession()

    def submit() -> None:
        _leave_login_page(s)
        s.url = DEVICE_URL
        clock.on_sleep = lambda: s.set_elements(SEL.otp_input, FakeElement())

    _login_page(s, submit)
    with pytest.raises(UnsupportedChallengeError):
        _automaton(clock=clock).login(s)


def test_unapproved_device_challenge_times_out() -> None:
    s = FakeSession()

    def submit() -> None:
        _leave_login_page(s)
        s.url = DEVICE_URL

    _login_page(s, submit)
    with pytest.raises(DeviceApprovalTimeoutError) as exc:
        _automaton().login(s)
    assert isinstance(exc.value, LoginError)


def test_missing_credentials_fail_before_touching_session() -> None:
    s = FakeSession()
    with pytest.raises(AuthConfigError):
        _automaton(credentials=Credentials(email="me@example.com", password=" ")).login(s)
    assert s.visited == []


def test_missing_form_is_reported_as_changed_form(tmp_path: Path) -> None:
    s = FakeSession(page_source="<html>new login design</html>")

    with pytest.raises(LoginFormChangedError):
        _automaton(debug_dir=str(tmp_path)).login(s)

    saved = sorted(p.suffix for p in tmp_path.iterdir())
    assert saved == [".html", ".png"]


def test_no_signal_after_submit_is_timeout() -> None:
    s = FakeSession()
    _login_page(s, lambda: None)

    with pytest.raises(LoginTimeoutError):
        _automaton().login(s)


def test_classify_prefers_success_over_other_signals() -> None:
    s = FakeSession()
    assert classify_login_page(s) is None

    s.set_elements(SEL.flash_error, FakeElement())
    assert classify_login_page(s) is LoginOutcome.CREDENTIAL_ERROR

    s.set_elements(SEL.otp_input, FakeElement())
    assert classify_login_page(s) is LoginOutcome.NEEDS_OTP_SWITCH

    s.sign_in()
    assert classify_login_page(s) is LoginOutcome.SUCCESS
