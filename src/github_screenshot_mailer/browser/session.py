from __future__ import annotations

import base64
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Protocol

from playwright.sync_api import Browser, BrowserContext, Locator, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from ..config import AutomationConfig, DEFAULT_USER_AGENT


logger = logging.getLogger(__name__)

# Upper bound on elements returned by `find_all`; GitHub pages never need more for our selectors.
MAX_ELEMENTS = 50


class SessionError(RuntimeError):
    """Any fault raised by the browser while driving a session."""


class ElementNotFoundError(SessionError):
    pass


class WaitTimeoutError(SessionError):
    pass


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    domain: str = ""


@dataclass(frozen=True)
class TextNode:
    text: str
    font_size: str
    visible: bool


class Element(Protocol):
    def text(self) -> str: ...

    def is_visible(self) -> bool: ...

    def is_enabled(self) -> bool: ...

    def click(self) -> None: ...

    def fill(self, value: str) -> None: ...

    def press(self, key: str) -> None: ...

    def attribute(self, name: str) -> Optional[str]: ...


class Session(Protocol):
    """
    The browser capabilities the login automaton and capture pipeline rely on.

    Implementations raise `SessionError` (or a subclass) for every browser-side fault.
    """

    def navigate(self, url: str) -> None: ...

    def refresh(self) -> None: ...

    def wait_for(self, condition: Callable[["Session"], bool], timeout_seconds: float) -> None: ...

    def find_all(self, selector: str) -> list[Element]: ...

    def find(self, selector: str) -> Element: ...

    def text_nodes(self, selector: str) -> list[TextNode]: ...

    def cookie(self, name: str) -> Optional[Cookie]: ...

    def current_url(self) -> str: ...

    def page_source(self) -> str: ...

    def ready_state(self) -> str: ...

    def screenshot(self) -> bytes: ...

    def full_page_screenshot(self) -> bytes: ...

    def close(self) -> None: ...


SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class BrowserOptions:
    headless: bool = True
    viewport_width: int = 1366
    viewport_height: int = 768
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "en-US"
    slow_mo_ms: int = 0

    @classmethod
    def from_config(cls, cfg: AutomationConfig) -> "BrowserOptions":
        return cls(
            headless=cfg.headless,
            viewport_width=cfg.viewport_width,
            viewport_height=cfg.viewport_height,
            user_agent=cfg.user_agent,
            slow_mo_ms=cfg.slow_mo_ms,
        )


_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--lang=en-US",
)

_HIDE_WEBDRIVER_JS = """
(() => {
  try {
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
  } catch (_) {}
})();
"""

# Long texts cannot be an approval digit; dropping them keeps the evaluate payload small.
_TEXT_NODES_JS = """
(els) => els.map((el) => {
  const style = window.getComputedStyle(el);
  const rect = el.getBoundingClientRect();
  const visible = style.visibility !== 'hidden' && style.display !== 'none'
    && rect.width > 0 && rect.height > 0;
  const raw = (el.innerText || '').trim();
  return { text: raw.length <= 16 ? raw : '', fontSize: style.fontSize || '', visible };
})
"""

_PAGE_EXTENTS_JS = """
() => ({
  width: Math.max(document.body.scrollWidth, document.documentElement.scrollWidth,
                  document.documentElement.clientWidth),
  height: Math.max(document.body.scrollHeight, document.documentElement.scrollHeight,
                   document.documentElement.clientHeight),
  dpr: window.devicePixelRatio || 1,
})
"""


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PlaywrightError as e:
        raise SessionError(f"{action} failed: {e}") from e


class PlaywrightElement:
    def __init__(self, locator: Locator) -> None:
        self._locator = locator

    def text(self) -> str:
        with _translate_errors("read element text"):
            return self._locator.inner_text()

    def is_visible(self) -> bool:
        with _translate_errors("check element visibility"):
            return self._locator.is_visible()

    def is_enabled(self) -> bool:
        with _translate_errors("check element enabled"):
            return self._locator.is_enabled()

    def click(self) -> None:
        with _translate_errors("click element"):
            self._locator.click(timeout=5_000)

    def fill(self, value: str) -> None:
        with _translate_errors("fill element"):
            self._locator.fill(value, timeout=5_000)

    def press(self, key: str) -> None:
        with _translate_errors("press key"):
            self._locator.press(key, timeout=5_000)

    def attribute(self, name: str) -> Optional[str]:
        with _translate_errors("read element attribute"):
            return self._locator.get_attribute(name)


class PlaywrightSession:
    """
    One exclusive Chromium page (own Playwright driver, browser and context).
    """

    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext, page: Page) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page

    def navigate(self, url: str) -> None:
        with _translate_errors(f"navigate to {url}"):
            self._page.goto(url, wait_until="domcontentloaded")

    def refresh(self) -> None:
        with _translate_errors("reload page"):
            self._page.reload(wait_until="domcontentloaded")

    def wait_for(self, condition: Callable[[Session], bool], timeout_seconds: float) -> None:
        """
        Poll `condition` until it returns True; raise WaitTimeoutError once `timeout_seconds` elapse.

        Faults raised while the page is mid-navigation count as "not yet".
        """
        deadline = time.monotonic() + max(0.0, float(timeout_seconds))
        while True:
            try:
                if condition(self):
                    return
            except SessionError:
                logger.debug("Wait condition raised; treating as not met.", exc_info=True)
            if time.monotonic() >= deadline:
                raise WaitTimeoutError(f"condition not met within {timeout_seconds:.0f}s (url={self._page.url})")
            with _translate_errors("wait"):
                self._page.wait_for_timeout(250)

    def find_all(self, selector: str) -> list[Element]:
        with _translate_errors(f"query {selector!r}"):
            loc = self._page.locator(selector)
            n = min(int(loc.count()), MAX_ELEMENTS)
        return [PlaywrightElement(loc.nth(i)) for i in range(n)]

    def find(self, selector: str) -> Element:
        with _translate_errors(f"query {selector!r}"):
            loc = self._page.locator(selector)
            if loc.count() == 0:
                raise ElementNotFoundError(f"no element matches {selector!r} (url={self._page.url})")
        return PlaywrightElement(loc.first)

    def text_nodes(self, selector: str) -> list[TextNode]:
        with _translate_errors("collect text nodes"):
            raw = self._page.locator(selector).evaluate_all(_TEXT_NODES_JS)
        return [
            TextNode(text=str(r.get("text") or ""), font_size=str(r.get("fontSize") or ""), visible=bool(r.get("visible")))
            for r in raw or []
        ]

    def cookie(self, name: str) -> Optional[Cookie]:
        with _translate_errors("read cookies"):
            cookies = self._context.cookies()
        for c in cookies:
            if c.get("name") == name:
                return Cookie(name=name, value=c.get("value", ""), domain=c.get("domain", ""))
        return None

    def current_url(self) -> str:
        return self._page.url or ""

    def page_source(self) -> str:
        with _translate_errors("read page source"):
            return self._page.content()

    def ready_state(self) -> str:
        with _translate_errors("read document.readyState"):
            return str(self._page.evaluate("() => document.readyState"))

    def screenshot(self) -> bytes:
        with _translate_errors("take screenshot"):
            return self._page.screenshot(type="png")

    def full_page_screenshot(self) -> bytes:
        """
        Capture the whole document through CDP: size the emulated device to the scroll extents,
        capture beyond the viewport, then clear the override again.
        """
        with _translate_errors("take full-page screenshot"):
            cdp = self._context.new_cdp_session(self._page)
            try:
                extents = self._page.evaluate(_PAGE_EXTENTS_JS)
                width = max(1, int(extents.get("width") or 1))
                height = max(1, int(extents.get("height") or 1))
                scale = float(extents.get("dpr") or 1)

                cdp.send(
                    "Emulation.setDeviceMetricsOverride",
                    {"mobile": False, "width": width, "height": height, "deviceScaleFactor": scale},
                )
                try:
                    result = cdp.send(
                        "Page.captureScreenshot",
                        {"format": "png", "fromSurface": True, "captureBeyondViewport": True},
                    )
                finally:
                    try:
                        cdp.send("Emulation.clearDeviceMetricsOverride")
                    except PlaywrightError:
                        logger.debug("Failed to clear device metrics override.", exc_info=True)
            finally:
                try:
                    cdp.detach()
                except PlaywrightError:
                    logger.debug("Failed to detach CDP session.", exc_info=True)
        return base64.b64decode(result["data"])

    def close(self) -> None:
        for label, closer in (
            ("context", self._context.close),
            ("browser", self._browser.close),
            ("playwright", self._playwright.stop),
        ):
            try:
                closer()
            except Exception:
                logger.debug("Failed to close %s.", label, exc_info=True)


def _launch_chromium(p: Playwright, options: BrowserOptions) -> Browser:
    kwargs = {"headless": options.headless, "slow_mo": int(options.slow_mo_ms or 0), "args": list(_LAUNCH_ARGS)}
    try:
        return p.chromium.launch(**kwargs)
    except PlaywrightError as e:
        msg = str(e)
        if "Executable doesn't exist" not in msg:
            raise

        logger.warning("Playwright Chromium executable missing; falling back to system browser channel. (%s)", msg)
        try:
            return p.chromium.launch(channel="chrome", **kwargs)
        except PlaywrightError:
            return p.chromium.launch(channel="msedge", **kwargs)


def open_browser_session(options: BrowserOptions) -> PlaywrightSession:
    """
    Start a dedicated Playwright driver + Chromium for one session. The caller owns `close()`.
    """
    try:
        p = sync_playwright().start()
    except PlaywrightError as e:
        raise SessionError(f"could not start Playwright: {e}") from e

    browser: Optional[Browser] = None
    try:
        browser = _launch_chromium(p, options)
        context = browser.new_context(
            viewport={"width": options.viewport_width, "height": options.viewport_height},
            user_agent=options.user_agent,
            locale=options.locale,
            color_scheme="light",
        )
        context.add_init_script(_HIDE_WEBDRIVER_JS)
        page = context.new_page()
    except PlaywrightError as e:
        if browser is not None:
            try:
                browser.close()
            except PlaywrightError:
                logger.debug("Failed to close browser after startup failure.", exc_info=True)
        p.stop()
        raise SessionError(f"could not start browser: {e}") from e

    return PlaywrightSession(p, browser, context, page)
