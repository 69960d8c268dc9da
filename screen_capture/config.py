"""Global configuration for the screen capture service.

This module exposes configuration constants via the `Config` class. All values
are read once from environment variables at import time; changing them
requires a restart.
"""

import os  # Standard library for environment and filesystem helpers
import re  # Robust parsing of numeric envs with comments


def _env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable robustly.

    Accepts values like "3333" or "3333 # comment" and returns the first
    integer found. Falls back to default if parsing fails.
    """
    val = os.getenv(name)
    if val is None:
        return default
    s = str(val).strip().strip('"').strip("'")
    m = re.search(r"-?\d+", s)
    if not m:
        return default
    return int(m.group(0))


def _env_path(name: str, default: str) -> str:
    """Read a directory path: strip quotes, expand ~ and $VARS, make absolute."""
    raw = str(os.getenv(name, default)).strip().strip('"').strip("'")
    raw = os.path.expanduser(os.path.expandvars(raw))
    return raw if os.path.isabs(raw) else os.path.abspath(raw)


class Config:
    """Service configuration sourced from environment variables.

    Other modules import settings as constants
    (`from screen_capture.config import Config`). Components also accept the
    values as constructor arguments, so these act as defaults.
    """
    # HTTP
    HOST = os.getenv("SC_HOST", "0.0.0.0")  # Bind host
    PORT = _env_int("SC_PORT", 3333)  # Bind port; never silently changed
    PAGE_TITLE = os.getenv("SC_PAGE_TITLE", "Screen Captures")  # Listing page heading

    # Content directory shared by the capture loop and the server
    CONTENT_DIR = _env_path("SC_CONTENT_DIR", os.path.join("data", "captures"))

    # Capture
    CAPTURE_INTERVAL_SEC = float(os.getenv("SC_CAPTURE_INTERVAL_SEC", 180.0))  # 3 minutes
    IMAGE_QUALITY = _env_int("SC_IMAGE_QUALITY", 30)  # 1..100, lower = smaller files
    FRAME_SOURCE = os.getenv("SC_FRAME_SOURCE", "auto").strip().lower()  # auto|mss|v4l2
    MONITOR = _env_int("SC_MONITOR", 1)  # mss monitor index (0 = all monitors)
    DEVICE_INDEX = _env_int("SC_DEVICE_INDEX", 0)  # VideoCapture index for grabber cards

    # Capture session
    FRAME_WIDTH = _env_int("SC_FRAME_WIDTH", 0)  # 0 = use the monitor's width
    FRAME_HEIGHT = _env_int("SC_FRAME_HEIGHT", 0)  # 0 = use the monitor's height
    DENSITY = _env_int("SC_DENSITY", 160)  # Reported dpi of the captured display
    SESSION_TOKEN = os.getenv("SC_SESSION_TOKEN", "local").strip()
    SESSION_TTL_SEC = float(os.getenv("SC_SESSION_TTL_SEC", 0))  # 0 = no expiry

    # Daily capture windows, e.g. "08:00-18:00,22:00-02:00". Empty means always.
    ACTIVE_WINDOWS = os.getenv("SC_ACTIVE_WINDOWS", "").strip()

    # Teardown
    PURGE_ON_EXIT = os.getenv("SC_PURGE_ON_EXIT", "1") == "1"

    # Logging
    LOG_LEVEL = os.getenv("SC_LOG_LEVEL", "INFO").strip().upper()
    LOG_DIR = os.getenv("SC_LOG_DIR", "").strip()  # Empty = console only
