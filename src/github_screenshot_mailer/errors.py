from __future__ import annotations

from http import HTTPStatus


class ScreenshotMailerError(Exception):
    """
    Base class for classified failures.

    `http_status` is a hint for whatever outer surface maps errors to responses; the core never uses it.
    """

    http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    prefix: str = ""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"{self.prefix}{reason}")


# --- Login ---


class LoginError(ScreenshotMailerError):
    http_status = HTTPStatus.UNAUTHORIZED
    prefix = "GitHub login failed: "


class AuthConfigError(LoginError):
    """Login was requested but credentials are missing from configuration."""


class InvalidCredentialsError(LoginError):
    pass


class LoginIncompleteError(LoginError):
    pass


class LoginFormChangedError(LoginError):
    """A login form element could not be located (GitHub markup changed?)."""


class LoginTimeoutError(LoginError):
    pass


class UnsupportedChallengeError(LoginError):
    """GitHub asked for a one-time code; only GitHub Mobile approval is automated."""


class DeviceApprovalTimeoutError(LoginError):
    pass


# --- Capture ---


class CaptureError(ScreenshotMailerError):
    http_status = HTTPStatus.INTERNAL_SERVER_ERROR
    prefix = "Screenshot capture failed: "


class CaptureDriverError(CaptureError):
    pass


class CaptureIOError(CaptureError):
    pass


class UnexpectedCaptureError(CaptureError):
    pass


# --- Delivery ---


class EmailDeliveryError(ScreenshotMailerError):
    http_status = HTTPStatus.SERVICE_UNAVAILABLE
    prefix = "Email sending failed: "
