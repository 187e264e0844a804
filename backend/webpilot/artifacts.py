"""
Screenshot artifacts.
Files are named {filename}_{timestamp}.png and created exclusively, so an
existing artifact is never overwritten. Retention is someone else's job.
"""
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger("webpilot.artifacts")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_SUFFIX = 1000


def sanitize_basename(filename: str) -> str:
    """Strip directories, a trailing .png and characters unsafe in file names."""
    base = Path(filename.replace("\\", "/")).name
    if base.lower().endswith(".png"):
        base = base[:-4]
    base = _UNSAFE_CHARS.sub("_", base).strip("._")
    return base or "screenshot"


def timestamp_suffix(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' and '.' replaced, e.g. 2026-10-18T09-15-02-481Z."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def ensure_dir(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def save_screenshot(directory: Path, filename: str, data: bytes,
                    now: Optional[datetime] = None) -> Path:
    """Write PNG bytes to a fresh file and return its path."""
    ensure_dir(directory)
    stem = f"{sanitize_basename(filename)}_{timestamp_suffix(now)}"

    for attempt in range(MAX_SUFFIX):
        name = f"{stem}.png" if attempt == 0 else f"{stem}-{attempt}.png"
        path = directory / name
        try:
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError:
            continue
        logger.info(f"Screenshot saved: {path}")
        return path

    raise FileExistsError(f"Could not find a free file name for {stem}.png in {directory}")
