from __future__ import annotations

from dataclasses import dataclass


def text_selector(phrase: str) -> str:
    """
    Playwright text selector: case-insensitive substring match on the smallest element containing `phrase`.
    """
    return f"text={phrase}"


@dataclass(frozen=True)
class GitHubSelectors:
    """
    github.com is a third-party page; its markup may change at any time.
    Keep all selectors/text hooks here for easy maintenance.
    """

    # Login form
    login_path: str = "/login"
    login_field: str = "#login_field"
    password_field: str = "#password"
    login_submit: str = "input[name='commit']"

    # Signals after submitting credentials
    session_cookie: str = "user_session"
    logged_in_cookie: str = "logged_in"
    user_cookie: str = "dotcom_user"
    profile_menu: str = (
        "summary[aria-label*='View profile'], details[aria-label='View profile and more'], "
        "button[aria-label='Open user navigation menu']"
    )
    user_login_meta: str = "meta[name='user-login']"
    otp_input: str = "input#otp, input[name='otp'], input[name='verification_code']"
    flash_error: str = ".flash-error"

    # GitHub Mobile device approval
    device_verification_url_fragments: tuple[str, ...] = (
        "/sessions/verified-device",
        "/sessions/two-factor/mobile",
    )
    device_verification_markers: tuple[str, ...] = (
        "check your phone",
        "approve sign in",
        "confirm digit",
        "github mobile",
        "verify your identity",
        "device verification",
    )
    approval_digit_candidates: str = "h1, h2, h3, .h0, .h1, .h2, .f0, .f1, .f2, .f3, strong, b, p, span, div"
    challenge_switch_phrases: tuple[str, ...] = (
        "use github mobile",
        "approve a sign in on your phone",
        "use a different method",
        "try another way",
        "more options",
        "check your phone",
    )
    # Post-approval interstitials; tried in order, first visible+enabled match is clicked.
    continue_controls: tuple[str, ...] = (
        "button:text-is('Continue')",
        "button:text-is('Verify')",
        "a:text-is('Continue')",
        "a:text-is('Verify')",
        "button:has-text('continue'), a:has-text('continue')",
        "button:has-text('verify'), a:has-text('verify')",
        "button[type='submit'], input[type='submit']",
    )
    reprompt_password: str = "input[type='password']#password, input[name='password']"
    reprompt_submit: str = "input[name='commit'], button[type='submit']"


DEFAULT_SELECTORS = GitHubSelectors()
