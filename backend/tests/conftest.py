"""
Shared fixtures: Playwright stand-ins built from unittest.mock so the
session manager and tools can be exercised without a real browser.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from webpilot.config_schema import ArtifactsConfig, AssistantConfig, BrowserConfig, TimeoutsConfig
from webpilot.session import BrowserSession
from webpilot.tools import ToolContext, get_tool, init_tools


def make_page(url: str = "about:blank", title: str = "Example Domain") -> MagicMock:
    page = MagicMock(name="page")
    page.url = url
    page.is_closed.return_value = False
    for name in ("goto", "title", "wait_for_selector", "click", "fill",
                 "wait_for_timeout", "screenshot", "eval_on_selector_all", "close"):
        setattr(page, name, AsyncMock(name=name))
    page.title.return_value = title
    page.screenshot.return_value = b"\x89PNG\r\n\x1a\nfake"
    page.eval_on_selector_all.return_value = []
    page.keyboard.press = AsyncMock(name="press")
    return page


def make_browser() -> MagicMock:
    browser = MagicMock(name="browser")
    browser.is_connected.return_value = True

    async def close():
        browser.is_connected.return_value = False

    browser.close = AsyncMock(side_effect=close)

    context = MagicMock(name="context")
    context.new_page = AsyncMock(return_value=make_page())
    context.close = AsyncMock()
    browser.new_context = AsyncMock(return_value=context)
    return browser


class FakeDriver:
    """Stands in for the object returned by async_playwright().start()."""

    def __init__(self, launch_delay: float = 0, fail: Exception | None = None):
        self.launch_delay = launch_delay
        self.fail = fail
        self.browsers: list[MagicMock] = []
        self.starts = 0
        self.chromium = MagicMock(name="chromium")
        self.chromium.launch = AsyncMock(side_effect=self._launch)
        self.stop = AsyncMock()

    async def _launch(self, **kwargs):
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.fail is not None:
            raise self.fail
        browser = make_browser()
        self.browsers.append(browser)
        return browser

    async def factory(self):
        self.starts += 1
        return self


@pytest.fixture
def config(tmp_path):
    return AssistantConfig(
        browser=BrowserConfig(headless=True, init_wait_timeout=2.0),
        timeouts=TimeoutsConfig(
            navigation_settle_ms=0, click_settle_ms=0,
            type_settle_ms=0, submit_settle_ms=0,
        ),
        artifacts=ArtifactsConfig(screenshots_dir=tmp_path / "screenshots"),
    )


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def session(config, driver):
    return BrowserSession(config.browser, driver.factory)


@pytest.fixture
def ctx(session, config):
    return ToolContext(session, config)


@pytest.fixture
def tool():
    """Look up a registered tool by name."""
    init_tools()
    return get_tool
