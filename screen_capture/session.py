"""Capture session: the authorization handle plus target frame geometry."""

from __future__ import annotations

import time  # Session timestamps
from dataclasses import dataclass, field  # Lightweight session representation
from typing import Optional  # Type hints

from .config import Config
from .errors import AuthorizationError


@dataclass
class CaptureSession:
    """Authorization and display geometry for one period of capturing.

    A session is valid while its token is non-empty, its geometry positive,
    it has not expired and it has not been revoked.
    """

    token: str
    width: int
    height: int
    density: int = 160
    granted_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None  # None = never expires
    revoked: bool = False

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Return True once `expires_at` has passed."""
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def is_valid(self, now: Optional[float] = None) -> bool:
        """Return True if the session can still authorize capturing."""
        return (
            bool(self.token)
            and self.width > 0
            and self.height > 0
            and not self.revoked
            and not self.is_expired(now)
        )

    def validate(self, now: Optional[float] = None) -> None:
        """Raise `AuthorizationError` describing why the session is unusable."""
        if not self.token:
            raise AuthorizationError("capture session has no authorization token")
        if self.width <= 0 or self.height <= 0:
            raise AuthorizationError(
                f"capture session has invalid geometry {self.width}x{self.height}"
            )
        if self.revoked:
            raise AuthorizationError("capture session was revoked")
        if self.is_expired(now):
            raise AuthorizationError("capture session has expired")

    def revoke(self) -> None:
        self.revoked = True


def grant_session(
    width: int,
    height: int,
    density: Optional[int] = None,
    token: Optional[str] = None,
    ttl_sec: Optional[float] = None,
) -> CaptureSession:
    """Build a session from explicit geometry and configured credentials.

    Args:
      width: Target frame width in pixels.
      height: Target frame height in pixels.
      density: Display density in dpi; defaults to `Config.DENSITY`.
      token: Authorization token; defaults to `Config.SESSION_TOKEN`.
      ttl_sec: Lifetime in seconds; 0 or None (with a 0 config) means no expiry.

    Returns:
      A new `CaptureSession`. It is not validated here; `CaptureLoop.start`
      does that.
    """
    now = time.time()
    ttl = Config.SESSION_TTL_SEC if ttl_sec is None else ttl_sec
    return CaptureSession(
        token=Config.SESSION_TOKEN if token is None else token,
        width=int(width),
        height=int(height),
        density=int(Config.DENSITY if density is None else density),
        granted_at=now,
        expires_at=now + ttl if ttl and ttl > 0 else None,
    )
