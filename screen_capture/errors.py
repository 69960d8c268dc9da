"""Exception types shared by the capture loop, store and server."""


class ScreenCaptureError(Exception):
    """Base class for all service errors."""


class AuthorizationError(ScreenCaptureError):
    """The capture session is missing, invalid, expired or revoked."""


class CaptureTickError(ScreenCaptureError):
    """A single capture tick failed (frame, encode or write)."""


class FrameError(CaptureTickError):
    """A raw frame's geometry does not match its buffer."""


class NotFoundError(ScreenCaptureError):
    """The requested artifact does not exist or is not addressable."""


class BindError(ScreenCaptureError):
    """The HTTP server could not bind its configured address."""
