from .session import (
    BrowserOptions,
    Cookie,
    Element,
    ElementNotFoundError,
    Session,
    SessionError,
    SessionFactory,
    TextNode,
    WaitTimeoutError,
    open_browser_session,
)

__all__ = [
    "BrowserOptions",
    "Cookie",
    "Element",
    "ElementNotFoundError",
    "Session",
    "SessionError",
    "SessionFactory",
    "TextNode",
    "WaitTimeoutError",
    "open_browser_session",
]
