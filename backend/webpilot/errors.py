"""
Exception taxonomy.
Tools convert these (and raw Playwright errors) into failure results;
only launch failures leave BrowserSession.acquire().
"""


class WebpilotError(Exception):
    """Base class for all webpilot errors."""
    kind = "error"


class BrowserLaunchError(WebpilotError):
    """The browser, context or page could not be created."""
    kind = "launch"


class BrowserInitTimeout(WebpilotError):
    """Waited too long for another caller's launch to finish."""
    kind = "launch"


class ElementNotFound(WebpilotError):
    """No element matched after every resolution strategy was tried."""
    kind = "resolution"

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class AgentError(WebpilotError):
    """The planning loop could not produce an answer."""
    kind = "agent"


class MaxTurnsExceeded(AgentError):
    def __init__(self, max_turns: int):
        super().__init__(f"Max turns ({max_turns}) exceeded")
        self.max_turns = max_turns
