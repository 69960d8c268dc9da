"""Application entrypoint: serves the content directory and captures the screen."""

import signal  # Graceful shutdown on SIGINT/SIGTERM
import sys
import threading

from screen_capture.config import Config  # App configuration
from screen_capture.errors import AuthorizationError, BindError, ScreenCaptureError
from screen_capture.frames import display_geometry
from screen_capture.log import get_logger
from screen_capture.service import ScreenShareService  # Capture + server lifecycle
from screen_capture.session import grant_session

log = get_logger("screen_capture.main")


def main() -> int:
    """Run the service until interrupted, then tear it down."""
    width, height = Config.FRAME_WIDTH, Config.FRAME_HEIGHT
    if width <= 0 or height <= 0:
        # Fall back to the full size of whatever the backend captures
        try:
            width, height = display_geometry()
        except ScreenCaptureError as e:
            log.error("Startup failed: %s", e)
            return 1
    session = grant_session(width, height)

    service = ScreenShareService()
    try:
        service.start(session)
    except (BindError, AuthorizationError) as e:
        log.error("Startup failed: %s", e)
        return 1

    done = threading.Event()

    def _on_signal(signum, _frame):
        log.info("Received signal %d, shutting down", signum)
        done.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)
    while not done.wait(1.0):
        pass
    service.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
