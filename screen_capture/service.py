"""Lifecycle owner tying the capture loop, artifact server and store together."""

from typing import Optional

from .capture import CaptureLoop
from .config import Config
from .log import get_logger
from .session import CaptureSession
from .store import ArtifactStore, PurgeReport
from .web import ArtifactServer

log = get_logger(__name__)


class ScreenShareService:
    """Starts and tears down the capture-and-serve pipeline.

    Order matters: the server starts before capturing begins, and on
    teardown capturing stops first, then the server, then the content
    directory is purged.
    """

    def __init__(
        self,
        store: Optional[ArtifactStore] = None,
        server: Optional[ArtifactServer] = None,
        loop: Optional[CaptureLoop] = None,
        interval: float = Config.CAPTURE_INTERVAL_SEC,
    ) -> None:
        self.store = store or ArtifactStore(Config.CONTENT_DIR)
        self.server = server or ArtifactServer(self.store)
        self.loop = loop or CaptureLoop(self.store)
        self.interval = interval
        self.session: Optional[CaptureSession] = None

    def start(self, session: CaptureSession) -> None:
        """Start serving, then start capturing with `session`.

        Raises:
          BindError: If the server cannot bind its port.
          AuthorizationError: If the session is invalid; the server is
            stopped again before the error propagates.
        """
        self.server.start()
        try:
            self.loop.start(session, self.interval)
        except Exception:
            self.server.stop()
            raise
        self.session = session

    def on_authorization_revoked(self) -> None:
        """Stop capturing because the session's authorization was withdrawn."""
        if self.session is not None:
            self.session.revoke()
        log.warning("Capture authorization revoked")
        self.loop.stop()

    def stop(self, purge: bool = Config.PURGE_ON_EXIT) -> Optional[PurgeReport]:
        """Stop capturing, stop serving and optionally purge all artifacts.

        The purge only runs once the capture thread has exited, so a slow
        tick cannot publish into the directory after it was emptied.

        Returns:
          The purge report, or None when purging is disabled.
        """
        self.loop.stop()
        self.server.stop()
        self.session = None
        if not purge:
            return None
        if self.loop.running:
            log.info("Waiting for the capture tick in progress before purging")
            self.loop.stop(timeout=None)
        report = self.store.purge_all()
        if not report.ok:
            log.warning("Could not delete: %s", ", ".join(sorted(report.failed)))
        return report
