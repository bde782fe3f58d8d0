from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import pytest

from github_screenshot_mailer.browser.session import TextNode
from github_screenshot_mailer.errors import DeviceApprovalTimeoutError
from github_screenshot_mailer.models import Credentials
from github_screenshot_mailer.portal.approval import (
    ApprovalChallenge,
    ApprovalPolicy,
    DeviceApprovalResolver,
    EmailApprovalRelay,
)
from github_screenshot_mailer.portal.selectors import DEFAULT_SELECTORS as SEL

from fakes import FakeClock, FakeElement, FakeMailer, FakeRelay, FakeSession

BASE = "https://github.com"
CREDS = Credentials(email="me@example.com", password="hunter22")


def _device_page() -> FakeSession:
    s = FakeSession(url=f"{BASE}/sessions/verified-device")
    s.nodes = [TextNode(text="27", font_size="56px", visible=True)]
    return s


def _resolver(clock: FakeClock, relay=None, timeout: float = 30, interval: float = 1) -> DeviceApprovalResolver:
    return DeviceApprovalResolver(
        relay=relay or FakeRelay(),
        policy=ApprovalPolicy(timeout_seconds=timeout, poll_interval_seconds=interval),
        base_url=BASE,
        clock=clock,
        sleep=clock.sleep,
    )


def test_policy_floors() -> None:
    p = ApprovalPolicy(timeout_seconds=5, poll_interval_seconds=0)
    assert p.effective_timeout == 30
    assert p.effective_interval == 1

    p = ApprovalPolicy(timeout_seconds=120, poll_interval_seconds=3)
    assert p.effective_timeout == 120
    assert p.effective_interval == 3


def test_never_approved_times_out_within_bound() -> None:
    clock = FakeClock()
    s = _device_page()
    start = clock()

    with pytest.raises(DeviceApprovalTimeoutError):
        # A 5s request is floored to 30s.
        _resolver(clock, timeout=5).resolve(s, CREDS)

    elapsed = clock() - start
    assert 30 <= elapsed < 35
    # Passive nudges happened: refresh every 3rd poll, root navigation every 5th, plus the final check.
    assert s.refreshes >= 1
    assert s.visited.count(f"{BASE}/") >= 2


def test_relays_digit_and_returns_once_approved() -> None:
    clock = FakeClock()
    relay = FakeRelay()
    s = _device_page()
    clock.on_sleep = s.sign_in

    assert _resolver(clock, relay).resolve(s, CREDS) is True
    assert [c.digit for c in relay.challenges] == ["27"]
    assert relay.challenges[0].screenshot == s.image


def test_relay_failure_does_not_abort_resolution(caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    s = _device_page()
    clock.on_sleep = s.sign_in

    with caplog.at_level(logging.WARNING):
        assert _resolver(clock, FakeRelay(error=RuntimeError("smtp down"))).resolve(s, CREDS) is True
    assert "smtp down" in caplog.text


def test_digit_change_mid_poll_is_logged_only(caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    relay = FakeRelay()
    s = _device_page()
    sleeps = [0]

    def tick() -> None:
        sleeps[0] += 1
        if sleeps[0] == 1:
            s.nodes = [TextNode(text="64", font_size="56px", visible=True)]
        elif sleeps[0] == 3:
            s.sign_in()

    clock.on_sleep = tick

    with caplog.at_level(logging.INFO):
        assert _resolver(clock, relay).resolve(s, CREDS) is True
    assert "new mobile challenge digit 64" in caplog.text
    # No second relay for the new digit.
    assert len(relay.challenges) == 1


def test_otp_page_mid_poll_returns_control() -> None:
    clock = FakeClock()
    s = _device_page()
    clock.on_sleep = lambda: s.set_elements(SEL.otp_input, FakeElement())

    assert _resolver(clock).resolve(s, CREDS) is False


def test_continue_interstitial_is_clicked() -> None:
    clock = FakeClock()
    s = _device_page()
    button = FakeElement("Continue", on_click=s.sign_in)
    s.set_elements(SEL.continue_controls[0], button)

    assert _resolver(clock).resolve(s, CREDS) is True
    assert button.clicks == 1


def test_disabled_continue_is_skipped() -> None:
    clock = FakeClock()
    s = _device_page()
    disabled = FakeElement("Continue", enabled=False, on_click=s.sign_in)
    s.set_elements(SEL.continue_controls[0], disabled)
    clock.on_sleep = s.sign_in

    assert _resolver(clock).resolve(s, CREDS) is True
    assert disabled.clicks == 0


def test_password_reprompt_is_answered() -> None:
    clock = FakeClock()
    s = _device_page()
    field = FakeElement()
    s.set_elements(SEL.reprompt_password, field)
    s.set_elements(SEL.reprompt_submit, FakeElement(on_click=s.sign_in))

    assert _resolver(clock).resolve(s, CREDS) is True
    assert field.value == "hunter22"


def test_password_reprompt_without_button_presses_enter() -> None:
    clock = FakeClock()
    s = _device_page()
    field = FakeElement(on_press=lambda key: s.sign_in())
    s.set_elements(SEL.reprompt_password, field)

    assert _resolver(clock).resolve(s, CREDS) is True
    assert field.pressed == ["Enter"]


def test_switch_from_otp_page() -> None:
    clock = FakeClock()
    s = FakeSession(url=f"{BASE}/sessions/two-factor/app")
    s.set_elements(SEL.otp_input, FakeElement())

    def to_device() -> None:
        s.remove_elements(SEL.otp_input)
        s.url = f"{BASE}/sessions/two-factor/mobile"

    hidden = FakeElement("More options", visible=False)
    link = FakeElement("Use GitHub Mobile", on_click=to_device)
    s.set_elements("text=more options", hidden)
    s.set_elements("text=use github mobile", link)

    assert _resolver(clock).try_switch_to_device_approval(s) is True
    assert link.clicks == 1
    assert hidden.clicks == 0


def test_switch_not_offered() -> None:
    clock = FakeClock()
    s = FakeSession(url=f"{BASE}/sessions/two-factor/app")
    s.set_elements(SEL.otp_input, FakeElement())
    assert _resolver(clock).try_switch_to_device_approval(s) is False


def test_email_relay_writes_holding_file_and_mails_digit(tmp_path: Path) -> None:
    mailer = FakeMailer()
    relay = EmailApprovalRelay(
        mailer=mailer,
        recipient="me@example.com",
        holding_dir=tmp_path / "_auth",
        now=lambda: datetime(2025, 3, 4, 5, 6, 7, 890000),
    )
    relay.relay(ApprovalChallenge(digit="27", screenshot=b"png-bytes"))

    assert len(mailer.sent) == 1
    mail = mailer.sent[0]
    assert mail.to == "me@example.com"
    assert mail.subject == "[GitHub] Mobile sign-in challenge - confirm digit: 27"
    assert "27" in mail.body
    assert mail.attachment is not None
    assert mail.attachment.parent == tmp_path / "_auth"
    assert mail.attachment.name.startswith("github_mobile_challenge_2025-03-04")
    assert mail.attachment.read_bytes() == b"png-bytes"


def test_email_relay_without_digit(tmp_path: Path) -> None:
    mailer = FakeMailer()
    relay = EmailApprovalRelay(mailer=mailer, recipient="me@example.com", holding_dir=tmp_path)
    relay.relay(ApprovalChallenge(digit=None, screenshot=b"png"))
    assert mailer.sent[0].subject == "[GitHub] Mobile sign-in challenge"
