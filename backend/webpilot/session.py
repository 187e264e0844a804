"""
Browser Handle Manager.
Owns one browser/context/page triple per logical session. The triple is
created lazily, reused while the browser stays connected and relaunched
after a crash, a disconnect or a closed page.

Concurrent acquire() calls share a single in-flight launch: the first caller
creates a future before its first await, everyone else awaits that future.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from playwright.async_api import async_playwright
from pydantic import BaseModel

from webpilot.config_schema import BrowserConfig
from webpilot.errors import BrowserInitTimeout, BrowserLaunchError

logger = logging.getLogger("webpilot.session")
page_logger = logging.getLogger("webpilot.page")

DEFAULT_SESSION_ID = "default"


async def start_playwright():
    """Default driver factory: start the Playwright driver process."""
    return await async_playwright().start()


DriverFactory = Callable[[], Awaitable[Any]]


class BrowserHandles(NamedTuple):
    browser: Any
    context: Any
    page: Any


class TeardownStep(BaseModel):
    step: str
    ok: bool
    error: Optional[str] = None


class BrowserSession:
    def __init__(
        self,
        config: BrowserConfig,
        driver_factory: DriverFactory = start_playwright,
        session_id: str = DEFAULT_SESSION_ID,
    ):
        self.session_id = session_id
        self._config = config
        self._driver_factory = driver_factory
        self._driver = None
        self.browser = None
        self.context = None
        self.page = None
        self._init_future: Optional[asyncio.Future] = None
        self._closing: Optional[asyncio.Future] = None
        self.launch_count = 0

    # ── State ────────────────────────────────────────────────────────────
    @property
    def initializing(self) -> bool:
        return self._init_future is not None and not self._init_future.done()

    @property
    def handles(self) -> BrowserHandles:
        return BrowserHandles(self.browser, self.context, self.page)

    def is_ready(self) -> bool:
        """Fully populated, connected and with an open page. Never launches."""
        if self.browser is None or self.context is None or self.page is None:
            return False
        return self.browser.is_connected() and not self.page.is_closed()

    def describe(self) -> dict:
        return {
            "session_id": self.session_id,
            "ready": self.is_ready(),
            "initializing": self.initializing,
            "closing": self._closing is not None,
            "launches": self.launch_count,
        }

    # ── Acquire ──────────────────────────────────────────────────────────
    async def acquire(self) -> BrowserHandles:
        """Return live handles, launching a browser if needed.

        Raises BrowserLaunchError when the launch fails (for the launching
        caller and for every caller waiting on it) and BrowserInitTimeout
        when a waiter gives up on someone else's launch.
        """
        while self._closing is not None:
            logger.info(f"[{self.session_id}] Browser is closing, waiting before relaunch...")
            await asyncio.shield(self._closing)

        if self.initializing:
            logger.info(f"[{self.session_id}] Browser is already initializing, waiting...")
            return await self._wait_for_launch(self._init_future)

        if self.is_ready():
            logger.debug(f"[{self.session_id}] Using existing browser instance")
            return self.handles

        # No await between the check above and this assignment
        future = asyncio.get_running_loop().create_future()
        self._init_future = future
        try:
            handles = await self._launch()
        except BaseException as e:
            self._clear_handles()
            if isinstance(e, Exception):
                err = BrowserLaunchError(f"Browser launch failed: {e}")
            else:
                err = BrowserLaunchError("Browser launch was cancelled")
            future.set_exception(err)
            future.exception()  # waiters raise it themselves
            if not isinstance(e, Exception):
                raise
            logger.error(f"[{self.session_id}] Failed to launch browser: {e}")
            raise err from e
        else:
            future.set_result(handles)
            return handles
        finally:
            self._init_future = None

    async def _wait_for_launch(self, future: asyncio.Future) -> BrowserHandles:
        timeout = self._config.init_wait_timeout
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            raise BrowserInitTimeout(
                f"Browser did not finish initializing within {timeout:g}s"
            ) from None

    async def _launch(self) -> BrowserHandles:
        logger.info(f"[{self.session_id}] Launching new browser instance...")

        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception as e:
                logger.warning(f"[{self.session_id}] Error closing stale browser: {e}")
            self._clear_handles()

        if self._driver is None:
            self._driver = await self._driver_factory()

        try:
            browser = await self._driver.chromium.launch(
                headless=self._config.headless,
                args=list(self._config.launch_args),
            )
        except Exception:
            await self._stop_driver()
            raise

        try:
            context = await browser.new_context(
                viewport={
                    "width": self._config.viewport.width,
                    "height": self._config.viewport.height,
                },
                user_agent=self._config.user_agent,
            )
            page = await context.new_page()
        except Exception:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"[{self.session_id}] Error closing half-launched browser: {e}")
            raise

        self._wire_listeners(browser, page)
        self.browser, self.context, self.page = browser, context, page
        self.launch_count += 1
        logger.info(f"[{self.session_id}] Browser launched successfully")
        return self.handles

    def _wire_listeners(self, browser, page):
        sid = self.session_id
        page.on("console", lambda msg: page_logger.info(f"[{sid}] PAGE LOG: {msg.text}"))
        page.on("pageerror", lambda err: page_logger.warning(f"[{sid}] PAGE ERROR: {err}"))
        page.on("close", lambda _page: page_logger.info(f"[{sid}] Page closed"))
        browser.on("disconnected", lambda _browser: logger.warning(f"[{sid}] Browser disconnected"))

    # ── Release ──────────────────────────────────────────────────────────
    async def release(self) -> list[TeardownStep]:
        """Close page, context, browser and driver; each step runs regardless
        of earlier failures.

        The handles are detached from the session before the first close;
        acquire() waits for the teardown to finish before launching again.
        """
        if self._closing is not None:
            await asyncio.shield(self._closing)
            return []

        if self.initializing:
            try:
                await self._wait_for_launch(self._init_future)
            except Exception as e:
                logger.debug(f"[{self.session_id}] In-flight launch did not complete: {e}")

        steps: list[TeardownStep] = []
        page, context, browser, driver = self.page, self.context, self.browser, self._driver
        if browser is None and driver is None:
            return steps

        closing = asyncio.get_running_loop().create_future()
        self._closing = closing
        self._clear_handles()
        self._driver = None

        logger.info(f"[{self.session_id}] Closing browser...")
        try:
            for name, target in (("page", page), ("context", context), ("browser", browser)):
                if target is not None:
                    steps.append(await self._teardown_step(name, target.close))
            if driver is not None:
                steps.append(await self._teardown_step("driver", driver.stop))
        finally:
            self._closing = None
            closing.set_result(None)

        failed = [s.step for s in steps if not s.ok]
        if failed:
            logger.warning(f"[{self.session_id}] Browser closed with errors in: {', '.join(failed)}")
        else:
            logger.info(f"[{self.session_id}] Browser closed successfully")
        return steps

    async def _teardown_step(self, name: str, close) -> TeardownStep:
        try:
            await close()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Error closing {name}: {e}")
            return TeardownStep(step=name, ok=False, error=str(e))
        return TeardownStep(step=name, ok=True)

    async def _stop_driver(self):
        if self._driver is None:
            return
        try:
            await self._driver.stop()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Error stopping driver: {e}")
        self._driver = None

    def _clear_handles(self):
        self.browser = None
        self.context = None
        self.page = None


# ── Registry ─────────────────────────────────────────────────────────────
class SessionRegistry:
    """Browser sessions keyed by session id."""

    def __init__(self, config: BrowserConfig, driver_factory: DriverFactory = start_playwright):
        self._config = config
        self._driver_factory = driver_factory
        self._sessions: dict[str, BrowserSession] = {}

    def get(self, session_id: str = DEFAULT_SESSION_ID) -> BrowserSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = BrowserSession(self._config, self._driver_factory, session_id=session_id)
            self._sessions[session_id] = session
        return session

    def list_sessions(self) -> list[dict]:
        return [s.describe() for s in self._sessions.values()]

    async def release_all(self) -> dict[str, list[TeardownStep]]:
        results = {}
        for session_id, session in list(self._sessions.items()):
            results[session_id] = await session.release()
        return results
