"""Periodic background capture loop."""

import threading
from datetime import datetime
from typing import Callable, Optional

from .config import Config
from .errors import CaptureTickError
from .frames import BaseFrameSource, encode_png, frame_to_bgr, make_frame_source
from .log import get_logger
from .schedule import CaptureSchedule
from .session import CaptureSession
from .store import ArtifactStore, artifact_name

log = get_logger(__name__)

FrameSourceFactory = Callable[[CaptureSession], BaseFrameSource]


class CaptureLoop:
    """Owns the frame source and publishes one artifact per interval.

    The loop runs on a single daemon thread: tick, then wait on a stop event
    for the interval. Ticks never overlap, a failed tick is logged and
    dropped, and `stop()` interrupts the wait immediately.
    """

    def __init__(
        self,
        store: ArtifactStore,
        source_factory: FrameSourceFactory = make_frame_source,
        quality: int = Config.IMAGE_QUALITY,
        schedule: Optional[CaptureSchedule] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.source_factory = source_factory
        self.quality = quality
        self.schedule = schedule or CaptureSchedule(Config.ACTIVE_WINDOWS)
        self.clock = clock  # Source of artifact timestamps
        self.session: Optional[CaptureSession] = None
        self.source: Optional[BaseFrameSource] = None
        self.interval: float = Config.CAPTURE_INTERVAL_SEC
        self.ticks = 0  # Ticks attempted
        self.failures = 0  # Ticks that raised
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()  # Guards start/stop transitions

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, session: CaptureSession, interval: Optional[float] = None) -> None:
        """Validate the session, allocate a frame source and start ticking.

        Args:
          session: Active capture session; its geometry sizes the frame source.
          interval: Seconds between ticks; defaults to `Config.CAPTURE_INTERVAL_SEC`.

        Raises:
          AuthorizationError: If the session is invalid or expired.
          ValueError: If the interval is not positive.
          RuntimeError: If the loop is already running.
        """
        interval = Config.CAPTURE_INTERVAL_SEC if interval is None else float(interval)
        if interval <= 0:
            raise ValueError(f"capture interval must be positive, got {interval}")
        session.validate()
        with self._lock:
            if self.running:
                raise RuntimeError("capture loop is already running")
            source = self.source_factory(session)
            source.start()
            self.session = session
            self.source = source
            self.interval = interval
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(source, self._stop), name="capture-loop", daemon=True
            )
            self._thread.start()
        log.info(
            "Capture started: %dx%d @%ddpi every %.1fs into %s",
            session.width, session.height, session.density, interval, self.store.root,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel the loop and release the frame source and session. Idempotent.

        A tick already in progress is not interrupted, but it will not publish
        once the stop event is set. If the worker outlives `timeout` the loop
        still reports `running`, and the worker releases its own frame source
        when it exits; call `stop(timeout=None)` to wait for it.
        """
        with self._lock:
            thread = self._thread
            self._stop.set()
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=timeout)
            finished = thread is None or not thread.is_alive()
            if finished:
                self._thread = None
            else:
                log.warning("Capture thread still finishing a tick after %ss", timeout)
            was_active = self.session is not None
            self._release(stop_source=finished)
        if was_active:
            log.info("Capture stopped after %d tick(s), %d failure(s)", self.ticks, self.failures)

    def capture_once(
        self,
        source: Optional[BaseFrameSource] = None,
        stop: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """Grab the latest frame and publish it as an artifact.

        Args:
          source: Frame source to read; defaults to the loop's current source.
          stop: When set before the write, the frame is dropped unpublished.

        Returns:
          The artifact name, or None if no frame was ready or the loop was
          stopped mid-tick.

        Raises:
          CaptureTickError: If acquiring, converting, encoding or writing fails.
        """
        source = source or self.source
        if source is None:
            raise CaptureTickError("no frame source; capture loop not started")
        try:
            frame = source.acquire_latest()
        except CaptureTickError:
            raise
        except Exception as e:
            raise CaptureTickError(f"frame acquisition failed: {e}") from e
        if frame is None:
            log.debug("No frame ready; skipping tick")
            return None
        image = frame_to_bgr(frame)  # FrameError is a CaptureTickError
        data = encode_png(image, self.quality)
        if stop is not None and stop.is_set():
            log.info("Capture stopped mid-tick; dropping frame")
            return None
        name = artifact_name(self.clock())
        try:
            self.store.publish(name, data)
        except OSError as e:
            raise CaptureTickError(f"writing {name} failed: {e}") from e
        log.info("Captured %s (%d bytes)", name, len(data))
        return name

    # Internal
    def _run(self, source: BaseFrameSource, stop: threading.Event) -> None:
        """Worker loop: tick, then wait for the interval or a stop request."""
        try:
            while not stop.is_set():
                session = self.session
                if session is None or not session.is_valid():
                    log.warning("Capture session is no longer valid; stopping capture")
                    break
                if self.schedule.is_active():
                    self._tick(source, stop)
                if stop.wait(self.interval):
                    break
        finally:
            # The worker owns its source; it is released here, in this thread
            try:
                source.stop()
            except Exception:
                log.exception("Error releasing frame source")

    def _tick(self, source: BaseFrameSource, stop: threading.Event) -> None:
        """Run one capture; never lets an error escape into the loop."""
        self.ticks += 1
        try:
            self.capture_once(source, stop)
        except CaptureTickError as e:
            self.failures += 1
            log.error("Capture tick failed: %s", e)
        except Exception:
            self.failures += 1
            log.exception("Unexpected error during capture tick")

    def _release(self, stop_source: bool = True) -> None:
        """Drop the session and frame source; stop the source only if no worker holds it."""
        source, self.source = self.source, None
        self.session = None
        if source is not None and stop_source:
            try:
                source.stop()
            except Exception:
                log.exception("Error releasing frame source")
