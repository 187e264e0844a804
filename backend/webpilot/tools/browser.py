"""
Browser lifecycle and page-level tools.
"""
import json
import logging

from pydantic import Field

from webpilot.artifacts import save_screenshot
from webpilot.resolution import summarize_page
from webpilot.tools import Tool, ToolArgs, ToolContext, ToolResult, register_tool

logger = logging.getLogger("webpilot.tools.browser")


class OpenBrowserTool(Tool):
    name = "open_browser"
    description = (
        "Launch a Chrome browser instance. "
        "Reuses the existing browser if one is already open."
    )

    async def execute(self, ctx: ToolContext, args) -> ToolResult:
        if ctx.session.is_ready():
            logger.info("Browser is already open")
            return ToolResult.success("Browser is already open and ready")
        await ctx.session.acquire()
        return ToolResult.success("Browser opened successfully")

    def describe_failure(self, args) -> str:
        return "Failed to open browser"


class VisitUrlArgs(ToolArgs):
    url: str = Field(min_length=1, description="The URL to navigate to")


class VisitUrlTool(Tool):
    name = "visit_url"
    description = "Navigate to a URL in the browser and wait for the page to load."
    args_model = VisitUrlArgs

    async def execute(self, ctx: ToolContext, args: VisitUrlArgs) -> ToolResult:
        page = await ctx.page()
        logger.info(f"Navigating to {args.url}...")
        await page.goto(args.url, wait_until="networkidle", timeout=ctx.timeouts.navigation_ms)
        await ctx.settle(page, ctx.timeouts.navigation_settle_ms)

        title = await page.title()
        logger.info(f"Visited {args.url} - Title: {title}")
        return ToolResult.success(
            f"Successfully visited {args.url} - Page Title: {title}",
            url=page.url, title=title,
        )

    def describe_failure(self, args: VisitUrlArgs) -> str:
        return f"Failed to visit {args.url}"


class GetPageInfoTool(Tool):
    name = "get_page_info"
    description = (
        "Get information about the current page including title, URL "
        "and the first visible buttons, links and input fields."
    )

    async def execute(self, ctx: ToolContext, args) -> ToolResult:
        page = await ctx.page()
        info = await summarize_page(page)
        message = (
            "Page Info:\n"
            f"Title: {info['title']}\n"
            f"URL: {info['url']}\n"
            f"Buttons: {json.dumps(info['buttons'], indent=2)}\n"
            f"Links: {json.dumps(info['links'], indent=2)}\n"
            f"Inputs: {json.dumps(info['inputs'], indent=2)}"
        )
        return ToolResult.success(message, page=info)

    def describe_failure(self, args) -> str:
        return "Failed to get page info"


class TakeScreenshotArgs(ToolArgs):
    filename: str = Field(
        min_length=1,
        description="Base name for the file; a timestamp and .png are appended",
    )


class TakeScreenshotTool(Tool):
    name = "take_screenshot"
    description = "Take a full-page screenshot of the current page."
    args_model = TakeScreenshotArgs

    async def execute(self, ctx: ToolContext, args: TakeScreenshotArgs) -> ToolResult:
        page = await ctx.page()
        data = await page.screenshot(full_page=True)
        path = save_screenshot(ctx.config.artifacts.screenshots_dir, args.filename, data)
        return ToolResult.success(f"Screenshot saved: {path.name}", path=str(path))

    def describe_failure(self, args) -> str:
        return "Failed to take screenshot"


class CheckBrowserStatusTool(Tool):
    name = "check_browser_status"
    description = "Check if the browser is currently open and ready. Never opens a browser."

    async def execute(self, ctx: ToolContext, args) -> ToolResult:
        if not ctx.session.is_ready():
            return ToolResult.failure("Browser is not open", **ctx.session.describe())
        page = ctx.session.page
        title = await page.title()
        return ToolResult.success(
            f"Browser is open and ready\nCurrent URL: {page.url}\nPage Title: {title}",
            url=page.url, title=title,
        )

    def describe_failure(self, args) -> str:
        return "Error checking browser status"


class CloseBrowserTool(Tool):
    name = "close_browser"
    description = "Close the browser."

    async def execute(self, ctx: ToolContext, args) -> ToolResult:
        steps = await ctx.session.release()
        detail = {"steps": [s.model_dump() for s in steps]}
        failed = [s for s in steps if not s.ok]
        if failed:
            summary = "; ".join(f"{s.step}: {s.error}" for s in failed)
            return ToolResult.failure(f"Browser closed with errors ({summary})", kind="driver", **detail)
        if not steps:
            return ToolResult.success("Browser was not open", **detail)
        return ToolResult.success("Browser closed successfully", **detail)

    def describe_failure(self, args) -> str:
        return "Failed to close browser"


register_tool(OpenBrowserTool())
register_tool(CheckBrowserStatusTool())
register_tool(VisitUrlTool())
register_tool(GetPageInfoTool())
register_tool(TakeScreenshotTool())
register_tool(CloseBrowserTool())
