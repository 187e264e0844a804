"""
Tool Framework
Defines the Tool interface, the tagged ToolResult, the registry and the
allowlist policy. Every tool is a failure boundary: Tool.run() validates the
arguments before touching the browser and turns any error raised by the
tool body into a failure result.
"""
import logging
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from webpilot.config_schema import AssistantConfig
from webpilot.session import BrowserSession

logger = logging.getLogger("webpilot.tools")


# ── Results ──────────────────────────────────────────────────────────────
class ToolResult(BaseModel):
    ok: bool
    message: str
    detail: Optional[dict] = None

    SUCCESS_MARK: ClassVar[str] = "✅"
    FAILURE_MARK: ClassVar[str] = "❌"

    @classmethod
    def success(cls, message: str, **detail) -> "ToolResult":
        return cls(ok=True, message=message, detail=detail or None)

    @classmethod
    def failure(cls, message: str, **detail) -> "ToolResult":
        return cls(ok=False, message=message, detail=detail or None)

    @property
    def kind(self) -> Optional[str]:
        return (self.detail or {}).get("kind")

    def render(self) -> str:
        """The string handed back to the planner."""
        mark = self.SUCCESS_MARK if self.ok else self.FAILURE_MARK
        return f"{mark} {self.message}"

    def __str__(self) -> str:
        return self.render()


# ── Context ──────────────────────────────────────────────────────────────
class ToolContext:
    """What every tool call gets: the browser session it acts on and the config."""

    def __init__(self, session: BrowserSession, config: AssistantConfig):
        self.session = session
        self.config = config

    @property
    def timeouts(self):
        return self.config.timeouts

    async def page(self):
        """The current page, launching the browser if needed."""
        handles = await self.session.acquire()
        return handles.page

    async def settle(self, page, delay_ms: int):
        """Give the page time to react to an action with async side effects."""
        if delay_ms > 0:
            await page.wait_for_timeout(delay_ms)


# ── Tool base ────────────────────────────────────────────────────────────
class ToolArgs(BaseModel):
    """Base for argument models: strict types, unknown keys ignored."""
    model_config = ConfigDict(strict=True, extra="ignore")


class NoArgs(ToolArgs):
    pass


class Tool:
    """Base class for all agent tools."""
    name: str = ""
    description: str = ""
    args_model: type[ToolArgs] = NoArgs

    @property
    def parameters(self) -> dict:
        """JSON Schema of the argument record."""
        return _clean_schema(self.args_model.model_json_schema())

    async def run(self, ctx: ToolContext, params: Any) -> ToolResult:
        try:
            args = self.args_model.model_validate(params if params is not None else {})
        except ValidationError as e:
            logger.info(f"Rejected {self.name} call: {format_validation_error(e)}")
            return ToolResult.failure(
                f"Invalid arguments for {self.name}: {format_validation_error(e)}",
                kind="validation",
            )

        try:
            return await self.execute(ctx, args)
        except Exception as e:
            logger.error(f"{self.name} failed: {e}")
            return ToolResult.failure(
                f"{self.describe_failure(args)}: {error_message(e)}",
                kind=getattr(e, "kind", "driver"),
            )

    async def execute(self, ctx: ToolContext, args) -> ToolResult:
        raise NotImplementedError

    def describe_failure(self, args) -> str:
        return f"{self.name} failed"


def format_validation_error(err: ValidationError) -> str:
    parts = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


def error_message(err: Exception) -> str:
    """The underlying message without Playwright's call log."""
    text = str(err).split("Call log:")[0].strip()
    return text or err.__class__.__name__


def _clean_schema(schema: dict) -> dict:
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("properties", {})
    return schema


# ── Registry ─────────────────────────────────────────────────────────────
_tools: dict[str, Tool] = {}


def register_tool(tool: Tool):
    _tools[tool.name] = tool
    logger.debug(f"Tool registered: {tool.name}")


def get_tool(name: str) -> Tool | None:
    return _tools.get(name)


def list_tools() -> list[dict]:
    return [
        {"name": t.name, "description": t.description, "parameters": t.parameters}
        for t in _tools.values()
    ]


def get_tools_for_openai() -> list[dict]:
    """Format tools for OpenAI function calling."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            }
        }
        for t in _tools.values()
    ]


def get_tools_for_anthropic() -> list[dict]:
    """Format tools for Anthropic tool use."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameters,
        }
        for t in _tools.values()
    ]


# ── Policy ───────────────────────────────────────────────────────────────
class ToolPolicy:
    """Simple allowlist-based tool policy."""

    def __init__(self, allowed: list[str] | None = None):
        self._allowed = set(allowed) if allowed else None

    def is_allowed(self, tool_name: str) -> bool:
        if self._allowed is None:
            return True  # No restriction
        return tool_name in self._allowed

    def filter_tools(self, tools: list[dict]) -> list[dict]:
        if self._allowed is None:
            return tools
        return [t for t in tools if t.get("name", t.get("function", {}).get("name", "")) in self._allowed]


def init_tools():
    """Import tool modules to trigger registration."""
    from webpilot.tools import browser, interact  # noqa: F401
    logger.info(f"Tools initialized: {len(_tools)} tools available")
