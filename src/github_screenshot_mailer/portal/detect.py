"""
Stateless page-state predicates over a live session.

Every predicate is best-effort: a browser fault while probing counts as "signal absent".
"""

from __future__ import annotations

import logging

from ..browser.session import Session, SessionError
from .selectors import DEFAULT_SELECTORS, GitHubSelectors


logger = logging.getLogger(__name__)


def page_loaded(session: Session) -> bool:
    try:
        return session.ready_state() == "complete"
    except SessionError:
        return False


def _has_element(session: Session, selector: str) -> bool:
    try:
        return len(session.find_all(selector)) > 0
    except SessionError:
        return False


def has_session_cookie(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> bool:
    try:
        if session.cookie(selectors.session_cookie) is not None:
            return True
        logged_in = session.cookie(selectors.logged_in_cookie)
        if logged_in is not None and logged_in.value.strip().lower() == "yes":
            return True
        user = session.cookie(selectors.user_cookie)
        if user is not None and user.value.strip():
            return True
    except SessionError:
        logger.debug("Cookie lookup failed.", exc_info=True)
    return False


def is_logged_in(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> bool:
    """
    Consider the session established if any session cookie, the profile menu or the user-login meta tag is present.
    """
    if has_session_cookie(session, selectors):
        return True

    if _has_element(session, selectors.profile_menu):
        return True

    try:
        for meta in session.find_all(selectors.user_login_meta):
            if (meta.attribute("content") or "").strip():
                return True
    except SessionError:
        logger.debug("user-login meta lookup failed.", exc_info=True)

    return False


def has_login_error(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> bool:
    return _has_element(session, selectors.flash_error)


def is_otp_page(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> bool:
    return _has_element(session, selectors.otp_input)


def is_device_verification_page(session: Session, selectors: GitHubSelectors = DEFAULT_SELECTORS) -> bool:
    # The OTP page links to "Use GitHub Mobile", so its source matches the text markers too.
    if is_logged_in(session, selectors) or is_otp_page(session, selectors):
        return False

    try:
        url = session.current_url() or ""
        if any(fragment in url for fragment in selectors.device_verification_url_fragments):
            return True
        source = (session.page_source() or "").lower()
    except SessionError:
        return False
    return any(marker in source for marker in selectors.device_verification_markers)
