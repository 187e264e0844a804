"""
webpilot: Main Application
FastAPI service that runs natural-language browser tasks through the
tool-calling agent and a shared Playwright browser session.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.cors import CORSMiddleware

from webpilot.agent import AgentRunner
from webpilot.artifacts import ensure_dir
from webpilot.auth import require_token
from webpilot.config_schema import config_to_display, load_config
from webpilot.debug_log import get_buffered_logs, init_debug_logger
from webpilot.errors import AgentError
from webpilot.health import get_health_snapshot, get_liveness, get_service_info
from webpilot.protocol import AskRequest, error_body, success_body
from webpilot.session import SessionRegistry
from webpilot.tools import init_tools, list_tools

# ── Setup ────────────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("webpilot")

config = load_config()
sessions = SessionRegistry(config.browser)
agent_runner = AgentRunner(config, sessions)


# ── App ──────────────────────────────────────────────────────────────────
app = FastAPI(title="webpilot", version=get_service_info()["version"])
api_router = APIRouter(prefix="/api")


# ── Startup / Shutdown ───────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("webpilot starting...")
    init_debug_logger()
    init_tools()
    ensure_dir(config.artifacts.screenshots_dir)
    logger.info(f"webpilot v{get_service_info()['version']} ready")


@app.on_event("shutdown")
async def shutdown():
    # uvicorn runs this on SIGINT/SIGTERM
    logger.info("Shutting down gracefully...")
    results = await sessions.release_all()
    for session_id, steps in results.items():
        failed = [s.step for s in steps if not s.ok]
        if failed:
            logger.warning(f"Session {session_id} closed with errors in: {', '.join(failed)}")


# ── HTTP Endpoints ───────────────────────────────────────────────────────
@app.get("/health")
async def liveness():
    return get_liveness()


@api_router.post("/ask", dependencies=[Depends(require_token)])
async def ask(request: Request):
    try:
        data = await request.json()
    except ValueError:
        data = None
    if not isinstance(data, dict) or not data.get("prompt"):
        return JSONResponse(status_code=400, content=error_body("Prompt is required"))

    try:
        body = AskRequest.model_validate(data)
    except ValidationError as e:
        return JSONResponse(status_code=400, content=error_body(f"Invalid request: {e.errors()[0]['msg']}"))

    logger.info(f"Original prompt: {body.prompt[:200]}")
    try:
        message, tool_calls = await agent_runner.run(body.prompt, session_id=body.session_id)
    except AgentError as e:
        logger.error(f"Agent run error: {e}")
        return JSONResponse(status_code=500, content=error_body(str(e)))
    except Exception as e:
        logger.exception("Agent run error")
        return JSONResponse(status_code=500, content=error_body(str(e) or "Agent execution failed"))

    return success_body(message, tool_calls)


@api_router.get("/health")
async def http_health():
    return get_health_snapshot(sessions.list_sessions())


@api_router.get("/")
async def root():
    info = get_service_info()
    return {
        "service": info["name"],
        "version": info["version"],
        "status": "running",
        "tools": [t["name"] for t in list_tools()],
    }


@api_router.get("/tools")
async def http_tools():
    return {"tools": list_tools()}


@api_router.get("/config", dependencies=[Depends(require_token)])
async def http_config_get():
    return config_to_display(config)


@api_router.get("/logs", dependencies=[Depends(require_token)])
async def http_logs(limit: int = 100, level: str | None = None, component: str | None = None):
    return {"logs": get_buffered_logs(limit=limit, level=level, component=component)}


app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)


def main():
    import uvicorn
    uvicorn.run(app, host=config.server.bind, port=config.server.port)


if __name__ == "__main__":
    main()
