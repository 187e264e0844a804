"""
Configuration schema and loader.
Defaults live on the models; load_config() overlays environment variables.
"""
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from webpilot.agents_config import AGENT_INSTRUCTIONS

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

ALL_TOOLS = [
    "open_browser", "check_browser_status", "visit_url", "get_page_info",
    "click_by_text", "click_element", "type_into", "type_by_label",
    "take_screenshot", "submit_form", "close_browser",
]


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class BrowserConfig(BaseModel):
    headless: bool = False
    launch_args: list[str] = Field(default_factory=lambda: [
        "--no-sandbox", "--disable-setuid-sandbox", "--disable-web-security",
    ])
    viewport: ViewportConfig = ViewportConfig()
    user_agent: str = DESKTOP_USER_AGENT
    init_wait_timeout: float = 60.0  # seconds a caller waits on an in-flight launch


class TimeoutsConfig(BaseModel):
    """All values in milliseconds."""
    navigation_ms: int = 30000
    selector_wait_ms: int = 10000
    action_ms: int = 5000
    text_strategy_ms: int = 5000
    navigation_settle_ms: int = 3000
    click_settle_ms: int = 2000
    type_settle_ms: int = 1000
    submit_settle_ms: int = 3000


class AgentConfig(BaseModel):
    model: str = "openai/gpt-4o"
    instructions: str = AGENT_INSTRUCTIONS
    max_turns: int = 25
    rewrite_prompt: bool = True
    rewrite_temperature: float = 0.3
    tools_allowed: list[str] = Field(default_factory=lambda: list(ALL_TOOLS))


class ServerConfig(BaseModel):
    port: int = 5000
    bind: str = "0.0.0.0"


class ArtifactsConfig(BaseModel):
    screenshots_dir: Path = Path("screenshots")


class AssistantConfig(BaseModel):
    """Root configuration schema."""
    browser: BrowserConfig = BrowserConfig()
    timeouts: TimeoutsConfig = TimeoutsConfig()
    agent: AgentConfig = AgentConfig()
    server: ServerConfig = ServerConfig()
    artifacts: ArtifactsConfig = ArtifactsConfig()


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(env_file: str | None = None) -> AssistantConfig:
    """Build the config from defaults plus environment overrides."""
    load_dotenv(env_file)
    config = AssistantConfig()

    if os.environ.get("HEADLESS"):
        config.browser.headless = _env_bool(os.environ["HEADLESS"])
    if os.environ.get("BROWSER_INIT_WAIT_TIMEOUT"):
        config.browser.init_wait_timeout = float(os.environ["BROWSER_INIT_WAIT_TIMEOUT"])
    if os.environ.get("MODEL"):
        config.agent.model = os.environ["MODEL"]
    if os.environ.get("MAX_TURNS"):
        config.agent.max_turns = int(os.environ["MAX_TURNS"])
    if os.environ.get("REWRITE_PROMPT"):
        config.agent.rewrite_prompt = _env_bool(os.environ["REWRITE_PROMPT"])
    if os.environ.get("SCREENSHOTS_DIR"):
        config.artifacts.screenshots_dir = Path(os.environ["SCREENSHOTS_DIR"])
    if os.environ.get("PORT"):
        config.server.port = int(os.environ["PORT"])
    if os.environ.get("BIND"):
        config.server.bind = os.environ["BIND"]
    return config


def validate_config(raw: dict) -> AssistantConfig:
    return AssistantConfig(**raw)


def config_to_display(config: AssistantConfig) -> dict:
    d = config.model_dump(mode="json")
    # Instructions are long and not useful in a status view
    instructions = d.get("agent", {}).get("instructions", "")
    if instructions:
        d["agent"]["instructions"] = instructions[:120] + ("..." if len(instructions) > 120 else "")
    d["keys"] = {
        "openai": _mask(os.environ.get("OPENAI_API_KEY", "")),
        "anthropic": _mask(os.environ.get("ANTHROPIC_API_KEY", "")),
    }
    return d


def _mask(secret: str) -> str:
    if not secret:
        return ""
    return "****" + secret[-4:]
