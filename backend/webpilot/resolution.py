"""
Element Resolution Strategies.
Turn a selector, a visible text or a human label into something the page
can act on. Every strategy is individually time-bounded and nothing is
cached between calls: the page may have changed since the last tool ran.
"""
import json
import logging
from typing import Callable, Optional

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel

from webpilot.errors import ElementNotFound

logger = logging.getLogger("webpilot.resolution")


# ── By selector ──────────────────────────────────────────────────────────
async def wait_for_selector(page, selector: str, timeout_ms: int):
    """Wait until the selector is attached. Playwright's TimeoutError propagates."""
    await page.wait_for_selector(selector, timeout=timeout_ms)


# ── By text ──────────────────────────────────────────────────────────────
TextStrategy = tuple[str, Callable]

TEXT_STRATEGIES: list[TextStrategy] = [
    ("exact text", lambda page, text: page.get_by_text(text, exact=True)),
    ("partial text", lambda page, text: page.get_by_text(text, exact=False)),
    ("button role", lambda page, text: page.get_by_role("button", name=text)),
    ("link role", lambda page, text: page.get_by_role("link", name=text)),
]


async def click_by_text(page, text: str, timeout_ms: int = 5000,
                        strategies: list[TextStrategy] = TEXT_STRATEGIES) -> str:
    """Click the first element any strategy finds. Returns the strategy name."""
    attempts = []
    for name, locate in strategies:
        try:
            await locate(page, text).click(timeout=timeout_ms)
        except PlaywrightError as e:
            attempts.append(f"{name}: {first_line(e)}")
            logger.debug(f'click_by_text "{text}": {name} failed')
            continue
        logger.info(f'Clicked "{text}" via {name}')
        return name

    tried = ", ".join(name for name, _ in strategies)
    raise ElementNotFound(
        f'No clickable element matches text "{text}" (tried: {tried})',
        attempts=attempts,
    )


def first_line(err: Exception) -> str:
    text = str(err).strip()
    return text.splitlines()[0] if text else err.__class__.__name__


# ── By label ─────────────────────────────────────────────────────────────
INPUT_SELECTOR = (
    "input:not([type=hidden]):not([type=submit]):not([type=button]):not([type=reset])"
    ":not([type=image]):not([type=checkbox]):not([type=radio]):not([type=file]), textarea"
)

_SCRAPE_INPUTS_JS = """(elements) => elements.map((el, index) => {
    const tag = el.tagName.toLowerCase();
    const id = el.id || '';
    const name = el.getAttribute('name') || '';
    const placeholder = el.getAttribute('placeholder') || '';
    let selector = null;
    if (id) selector = tag + '#' + CSS.escape(id);
    else if (name) selector = tag + '[name=' + JSON.stringify(name) + ']';
    else if (placeholder) selector = tag + '[placeholder=' + JSON.stringify(placeholder) + ']';
    // page.fill() acts on the first match, so only keep selectors that address this element alone
    if (selector) {
        const matches = document.querySelectorAll(selector);
        if (matches.length !== 1 || matches[0] !== el) selector = null;
    }
    return {
        tag: tag,
        type: tag === 'textarea' ? 'textarea' : (el.type || 'text'),
        id: id,
        name: name,
        placeholder: placeholder,
        aria_label: el.getAttribute('aria-label') || '',
        label_text: el.labels && el.labels.length > 0 ? el.labels[0].innerText.trim() : '',
        index: index,
        selector: selector,
    };
})"""


class ElementDescriptor(BaseModel):
    """Attributes of one input-like element, scraped from the live page."""
    tag: str = "input"
    type: str = "text"
    id: str = ""
    name: str = ""
    placeholder: str = ""
    aria_label: str = ""
    label_text: str = ""
    index: int = 0
    selector: Optional[str] = None

    def mentions(self, label: str) -> bool:
        needle = label.lower()
        return any(
            needle in value.lower()
            for value in (self.placeholder, self.name, self.id, self.aria_label, self.label_text)
            if value
        )

    def target(self) -> str:
        """A selector that addresses this element for page.fill().

        `selector` is only set when it is unique on the page; otherwise the
        element is addressed by its position among the scraped inputs.
        """
        return self.selector or f"{INPUT_SELECTOR} >> nth={self.index}"


class LabelMatcher:
    """Prefers inputs of given types when the requested label mentions a keyword."""

    def __init__(self, keywords: tuple[str, ...], input_types: tuple[str, ...]):
        self.keywords = keywords
        self.input_types = input_types

    def applies(self, label: str) -> bool:
        label = label.lower()
        return any(k in label for k in self.keywords)

    def prefers(self, descriptor: ElementDescriptor) -> bool:
        return descriptor.type in self.input_types

    def __repr__(self):
        return f"LabelMatcher({self.keywords} -> {self.input_types})"


DEFAULT_LABEL_MATCHERS = [
    LabelMatcher(("password",), ("password",)),
    LabelMatcher(("user", "login", "id"), ("text", "email")),
]


def pick_input(label: str, descriptors: list[ElementDescriptor],
               matchers: Optional[list[LabelMatcher]] = None) -> Optional[ElementDescriptor]:
    """
    Choose the input a label most likely refers to.
    Candidates are inputs whose placeholder/name/id/aria-label/label text
    contains the label (case-insensitive). In document order, the first
    candidate preferred by an applicable matcher wins; otherwise the first
    candidate does.
    """
    if matchers is None:
        matchers = DEFAULT_LABEL_MATCHERS
    active = [m for m in matchers if m.applies(label)]
    candidates = [d for d in descriptors if d.mentions(label)]

    for candidate in candidates:
        if any(m.prefers(candidate) for m in active):
            return candidate
    return candidates[0] if candidates else None


async def scrape_inputs(page) -> list[ElementDescriptor]:
    raw = await page.eval_on_selector_all(INPUT_SELECTOR, _SCRAPE_INPUTS_JS)
    return [ElementDescriptor(**item) for item in raw]


async def find_input_by_label(page, label: str,
                              matchers: Optional[list[LabelMatcher]] = None) -> ElementDescriptor:
    descriptors = await scrape_inputs(page)
    logger.debug(f"Detected input fields: {json.dumps([d.model_dump() for d in descriptors])[:1000]}")

    match = pick_input(label, descriptors, matchers)
    if match is None:
        raise ElementNotFound(
            f'No input field found for label "{label}"',
            attempts=[f"{len(descriptors)} input fields scanned"],
        )
    logger.info(f'Label "{label}" resolved to {match.target()} (type={match.type})')
    return match


# ── Page summary ─────────────────────────────────────────────────────────
_BUTTONS_JS = """elements => elements.slice(0, 10).map(el => ({
    text: (el.textContent || '').trim() || el.value || 'No text',
    type: el.tagName.toLowerCase()
}))"""

_LINKS_JS = """elements => elements.slice(0, 10).map(el => ({
    text: (el.textContent || '').trim(),
    href: el.href
})).filter(link => link.text)"""

_INPUTS_JS = """elements => elements.slice(0, 10).map(el => ({
    type: el.type || 'text',
    placeholder: el.placeholder || '',
    name: el.name || '',
    id: el.id || ''
}))"""


async def summarize_page(page) -> dict:
    """Title, URL and the first few buttons, links and inputs of the page."""
    return {
        "title": await page.title(),
        "url": page.url,
        "buttons": await page.eval_on_selector_all(
            'button, input[type="submit"], input[type="button"]', _BUTTONS_JS
        ),
        "links": await page.eval_on_selector_all("a", _LINKS_JS),
        "inputs": await page.eval_on_selector_all("input, textarea", _INPUTS_JS),
    }
