"""
Service health: a fixed liveness payload for load balancers and a richer
snapshot with uptime, browser sessions and the resources the browser
processes spawned by this service are using.
"""
import platform
import time
from datetime import datetime, timezone

import psutil

SERVICE_NAME = "webpilot"
VERSION = "0.1.0"

_started_at: float = time.time()
# cpu_percent() measures against the previous call on the same Process object
_proc = psutil.Process()

_BROWSER_PROCESS_NAMES = ("chrome", "chromium", "headless_shell")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def get_liveness() -> dict:
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


def _browser_processes() -> dict:
    """Chromium processes below this one (the Playwright driver launches them)."""
    count, rss = 0, 0
    for child in _proc.children(recursive=True):
        try:
            name = child.name().lower()
            if any(n in name for n in _BROWSER_PROCESS_NAMES):
                count += 1
                rss += child.memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return {"count": count, "rss_mb": round(rss / 1024 / 1024)}


def get_health_snapshot(sessions: list[dict] | None = None) -> dict:
    sessions = sessions or []
    uptime_seconds = int(time.time() - _started_at)
    hours, rest = divmod(uptime_seconds, 3600)
    minutes, seconds = divmod(rest, 60)

    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "uptime": f"{hours}h {minutes}m {seconds}s",
        "uptime_seconds": uptime_seconds,
        "started_at": _iso(_started_at),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "browser_sessions": sessions,
        "browsers_ready": sum(1 for s in sessions if s.get("ready")),
        "process": {
            "python": platform.python_version(),
            "rss_mb": round(_proc.memory_info().rss / 1024 / 1024),
            "cpu_percent": _proc.cpu_percent(interval=None),
            "browser_processes": _browser_processes(),
        },
        "host_memory_percent": psutil.virtual_memory().percent,
    }


def get_service_info() -> dict:
    return {"name": SERVICE_NAME, "version": VERSION, "started_at": _iso(_started_at)}
