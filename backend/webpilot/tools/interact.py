"""
Interaction tools that act on elements found by selector, visible text or label.
"""
import logging
import re
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from pydantic import AliasChoices, Field

from webpilot import resolution
from webpilot.tools import Tool, ToolArgs, ToolContext, ToolResult, register_tool

logger = logging.getLogger("webpilot.tools.interact")

SUBMIT_CONTROLS = 'button[type="submit"], input[type="submit"]'


def _shown_value(value: str, input_type: str = "text") -> str:
    return "*" * len(value) if input_type == "password" else value


class SelectorArgs(ToolArgs):
    selector: str = Field(min_length=1, description="CSS selector of the element")


class ClickElementTool(Tool):
    name = "click_element"
    description = "Click an element by CSS selector."
    args_model = SelectorArgs

    async def execute(self, ctx: ToolContext, args: SelectorArgs) -> ToolResult:
        page = await ctx.page()
        logger.info(f"Clicking element: {args.selector}")
        await resolution.wait_for_selector(page, args.selector, ctx.timeouts.selector_wait_ms)
        await page.click(args.selector, timeout=ctx.timeouts.action_ms)
        await ctx.settle(page, ctx.timeouts.click_settle_ms)
        return ToolResult.success(f"Successfully clicked {args.selector}")

    def describe_failure(self, args: SelectorArgs) -> str:
        return f"Failed to click {args.selector}"


class ClickByTextArgs(ToolArgs):
    text: str = Field(min_length=1, description="Visible text of the button, link or element")


class ClickByTextTool(Tool):
    name = "click_by_text"
    description = (
        "Click an element by its visible text (buttons, links, etc.). "
        "Tries exact text, partial text, then button and link accessible names."
    )
    args_model = ClickByTextArgs

    async def execute(self, ctx: ToolContext, args: ClickByTextArgs) -> ToolResult:
        page = await ctx.page()
        logger.info(f'Clicking element with text: "{args.text}"')
        strategy = await resolution.click_by_text(page, args.text, ctx.timeouts.text_strategy_ms)
        await ctx.settle(page, ctx.timeouts.click_settle_ms)
        return ToolResult.success(
            f'Successfully clicked element with text: "{args.text}"',
            strategy=strategy,
        )

    def describe_failure(self, args: ClickByTextArgs) -> str:
        return f'Failed to click text "{args.text}"'


class TypeIntoArgs(ToolArgs):
    selector: str = Field(min_length=1, description="CSS selector of the input")
    value: str = Field(description="Text to type")


class TypeIntoTool(Tool):
    name = "type_into"
    description = "Type into a text input identified by CSS selector."
    args_model = TypeIntoArgs

    async def execute(self, ctx: ToolContext, args: TypeIntoArgs) -> ToolResult:
        page = await ctx.page()
        logger.info(f"Typing {len(args.value)} chars into {args.selector}")
        await resolution.wait_for_selector(page, args.selector, ctx.timeouts.selector_wait_ms)
        await page.fill(args.selector, args.value)
        await ctx.settle(page, ctx.timeouts.type_settle_ms)
        return ToolResult.success(f'Successfully typed "{args.value}" into {args.selector}')

    def describe_failure(self, args: TypeIntoArgs) -> str:
        return f"Failed to type into {args.selector}"


class TypeByLabelArgs(ToolArgs):
    label: str = Field(min_length=1, description="Label, placeholder, name, id or aria-label of the field")
    value: str = Field(description="Text to type")


class TypeByLabelTool(Tool):
    name = "type_by_label"
    description = (
        "Type into an input field found by its label, placeholder, name, id or aria-label. "
        "Password labels prefer password inputs; user/login labels prefer text or email inputs."
    )
    args_model = TypeByLabelArgs

    async def execute(self, ctx: ToolContext, args: TypeByLabelArgs) -> ToolResult:
        page = await ctx.page()
        field = await resolution.find_input_by_label(page, args.label)
        logger.info(f'Typing {len(args.value)} chars into field "{args.label}" ({field.target()})')
        await page.fill(field.target(), args.value)
        return ToolResult.success(
            f'Typed "{_shown_value(args.value, field.type)}" into field: "{args.label}"',
            selector=field.target(), input_type=field.type,
        )

    def describe_failure(self, args: TypeByLabelArgs) -> str:
        return f'Failed to type by label "{args.label}"'


class SubmitFormArgs(ToolArgs):
    button_text: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("button_text", "buttonText"),
        description="Text of the submit button; omit to use any submit control or Enter",
    )


class SubmitFormTool(Tool):
    name = "submit_form"
    description = "Submit a form by clicking a submit button or pressing Enter."
    args_model = SubmitFormArgs

    async def execute(self, ctx: ToolContext, args: SubmitFormArgs) -> ToolResult:
        page = await ctx.page()
        logger.info("Submitting form...")

        if args.button_text:
            name = re.compile(re.escape(args.button_text), re.IGNORECASE)
            await page.get_by_role("button", name=name).click(timeout=ctx.timeouts.action_ms)
            method = f'button "{args.button_text}"'
        else:
            method = await self._submit_generic(page, ctx.timeouts.action_ms)

        await ctx.settle(page, ctx.timeouts.submit_settle_ms)
        logger.info(f"Form submitted via {method}")
        return ToolResult.success("Form submitted successfully", method=method)

    async def _submit_generic(self, page, timeout_ms: int) -> str:
        try:
            await page.click(SUBMIT_CONTROLS, timeout=timeout_ms)
            return "submit control"
        except PlaywrightError as e:
            logger.info(f"No submit control clicked ({resolution.first_line(e)}), pressing Enter")
        await page.keyboard.press("Enter")
        return "Enter key"

    def describe_failure(self, args) -> str:
        return "Failed to submit form"


register_tool(ClickByTextTool())
register_tool(ClickElementTool())
register_tool(TypeIntoTool())
register_tool(TypeByLabelTool())
register_tool(SubmitFormTool())
