"""Frame sources, stride-aware frame reconstruction and PNG encoding.

Provides a minimal interface to either mss (desktop screen grabbing) or
OpenCV's VideoCapture (HDMI/USB grabber cards presenting a screen). Sources
return `RawFrame`s that carry their own row stride, because display buffers
are often padded at the end of each row. `frame_to_bgr` crops that padding
away and returns a BGR NumPy array compatible with OpenCV.
"""

from dataclasses import dataclass  # Raw frame representation
from typing import Optional, Tuple  # Type hints for clarity

import cv2  # Colour conversion and PNG encoding
import numpy as np  # Frame arrays

from .config import Config  # Global configuration
from .errors import CaptureTickError, FrameError, ScreenCaptureError
from .log import get_logger
from .session import CaptureSession

log = get_logger(__name__)

# Channel layouts we know how to turn into BGR
_TO_BGR = {
    "BGRA": cv2.COLOR_BGRA2BGR,
    "RGBA": cv2.COLOR_RGBA2BGR,
    "RGB": cv2.COLOR_RGB2BGR,
    "BGR": None,
}


@dataclass
class RawFrame:
    """A single frame as delivered by a source, before any conversion."""

    data: bytes  # Pixel buffer, row-major
    width: int  # Nominal width in pixels
    height: int  # Height in rows
    pixel_stride: int = 4  # Bytes per pixel
    row_stride: int = 0  # Bytes per row including padding; 0 = tightly packed
    pixel_format: str = "BGRA"  # Channel order of the first bytes of each pixel

    @property
    def row_padding(self) -> int:
        """Padding bytes at the end of every row."""
        stride = self.row_stride or self.width * self.pixel_stride
        return stride - self.width * self.pixel_stride


def frame_to_bgr(frame: RawFrame) -> np.ndarray:
    """Rebuild a BGR image from a raw frame, honouring row padding.

    Rows are laid out `row_stride` bytes apart; only the first
    `width * pixel_stride` bytes of each row are pixels. The last row may
    omit its padding.

    Args:
      frame: The raw frame to convert.

    Returns:
      A contiguous `(height, width, 3)` uint8 array in BGR order.

    Raises:
      FrameError: If the geometry is inconsistent with the buffer.
    """
    fmt = frame.pixel_format.upper()
    if fmt not in _TO_BGR:
        raise FrameError(f"unsupported pixel format {frame.pixel_format!r}")
    channels = len(fmt)
    if frame.width <= 0 or frame.height <= 0:
        raise FrameError(f"invalid frame size {frame.width}x{frame.height}")
    if frame.pixel_stride < channels:
        raise FrameError(
            f"pixel stride {frame.pixel_stride} too small for {fmt} ({channels} bytes)"
        )
    row_bytes = frame.width * frame.pixel_stride
    if frame.row_padding < 0:
        raise FrameError(f"row stride {frame.row_stride} is smaller than a {row_bytes}-byte row")
    stride = row_bytes + frame.row_padding

    buf = np.frombuffer(frame.data, dtype=np.uint8)
    needed = stride * (frame.height - 1) + row_bytes
    if buf.size < needed:
        raise FrameError(f"buffer holds {buf.size} bytes, frame needs {needed}")
    full = stride * frame.height
    if buf.size < full:
        # Pad the final row so the buffer reshapes cleanly; the pad is cropped below
        buf = np.concatenate([buf, np.zeros(full - buf.size, dtype=np.uint8)])

    rows = buf[:full].reshape(frame.height, stride)
    pixels = rows[:, :row_bytes].reshape(frame.height, frame.width, frame.pixel_stride)
    pixels = np.ascontiguousarray(pixels[:, :, :channels])
    code = _TO_BGR[fmt]
    if code is None:
        return pixels
    return cv2.cvtColor(pixels, code)


def colour_depth(quality: int) -> int:
    """Bits kept per channel for a quality factor in 1..100 (100 = lossless)."""
    q = min(100, max(1, int(quality)))
    return 4 + q * 4 // 100


def encode_png(image: np.ndarray, quality: int = Config.IMAGE_QUALITY) -> bytes:
    """Encode a BGR image as PNG, reducing colour depth for low quality.

    PNG itself is lossless, so the quality factor posterizes each channel
    (see `colour_depth`) before encoding at maximum zlib compression. The
    reduced palette compresses far better.

    Raises:
      CaptureTickError: If OpenCV fails to encode the image.
    """
    bits = colour_depth(quality)
    if bits < 8:
        mask = np.uint8((0xFF << (8 - bits)) & 0xFF)
        image = np.bitwise_and(image, mask)
    ok, buf = cv2.imencode(".png", image, [int(cv2.IMWRITE_PNG_COMPRESSION), 9])
    if not ok:
        raise CaptureTickError("PNG encode failed")
    return buf.tobytes()


class BaseFrameSource:
    """Abstract frame source.

    Subclasses must implement `start()`, `acquire_latest()`, and `stop()`.
    """

    def start(self) -> None:
        """Allocate the underlying capture resources."""
        raise NotImplementedError

    def acquire_latest(self) -> Optional[RawFrame]:
        """Return the most recent frame without waiting, or None if none is ready."""
        raise NotImplementedError

    def stop(self) -> None:
        """Release capture resources. Safe to call more than once."""
        pass


class MssScreenSource(BaseFrameSource):
    """Desktop screen grabber backed by mss."""

    def __init__(self, size: Tuple[int, int], monitor: int = 1) -> None:
        """Create a source for one monitor.

        Args:
          size: `(width, height)` region to grab from the monitor's top-left;
            clamped to the monitor size.
          monitor: mss monitor index (0 is the union of all monitors).
        """
        self.size = size
        self.monitor = monitor
        self._sct = None  # mss handle, opened in the grabbing thread
        self._started = False

    def start(self) -> None:
        # mss handles are bound to the thread that opened them on X11, so the
        # handle itself is opened by the first acquire_latest() call.
        self._started = True

    def acquire_latest(self) -> Optional[RawFrame]:
        if not self._started:
            return None
        if self._sct is None:
            import mss  # Imported lazily so the grabber backend works without it

            self._sct = mss.mss()
        mon = self._sct.monitors[self.monitor]
        region = {
            "left": mon["left"],
            "top": mon["top"],
            "width": min(self.size[0], mon["width"]),
            "height": min(self.size[1], mon["height"]),
        }
        shot = self._sct.grab(region)
        return RawFrame(
            data=bytes(shot.raw),
            width=shot.width,
            height=shot.height,
            pixel_stride=4,
            row_stride=shot.width * 4,
            pixel_format="BGRA",
        )

    def stop(self) -> None:
        try:
            if self._sct is not None:
                self._sct.close()
        finally:
            self._sct = None
            self._started = False


class Cv2GrabberSource(BaseFrameSource):
    """OpenCV VideoCapture backend for capture cards mirroring a screen."""

    def __init__(self, index: int, size: Tuple[int, int]) -> None:
        """Create a grabber source.

        Args:
          index: V4L2 device index (e.g., 0 for /dev/video0).
          size: `(width, height)` requested capture resolution.
        """
        self.index = index
        self.size = size
        self.cap = None  # Will hold cv2.VideoCapture instance

    def start(self) -> None:
        """Open the device and request the session's resolution."""
        self.cap = cv2.VideoCapture(self.index)
        w, h = self.size
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        # Keep only the newest frame queued so a read returns the latest screen
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

    def acquire_latest(self) -> Optional[RawFrame]:
        if self.cap is None:
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None:
            return None
        h, w = frame.shape[:2]
        return RawFrame(
            data=frame.tobytes(),
            width=w,
            height=h,
            pixel_stride=3,
            row_stride=w * 3,
            pixel_format="BGR",
        )

    def stop(self) -> None:
        """Release the device."""
        try:
            if self.cap is not None:
                self.cap.release()
        finally:
            self.cap = None


def make_frame_source(session: CaptureSession, backend: Optional[str] = None) -> BaseFrameSource:
    """Factory to create a frame source bound to a session's geometry.

    Args:
      session: Active capture session supplying width and height.
      backend: `mss`, `v4l2` or `auto`; defaults to `Config.FRAME_SOURCE`.

    Returns:
      An unstarted `BaseFrameSource`.
    """
    size = (session.width, session.height)
    backend = (backend or Config.FRAME_SOURCE).strip().lower()
    if backend == "mss":
        return MssScreenSource(size=size, monitor=Config.MONITOR)
    if backend == "v4l2":
        return Cv2GrabberSource(index=Config.DEVICE_INDEX, size=size)
    if backend != "auto":
        raise ValueError(f"unknown frame source backend {backend!r}")

    # Auto: prefer the desktop grabber, fall back to a capture card
    try:
        import importlib

        importlib.import_module("mss")
        return MssScreenSource(size=size, monitor=Config.MONITOR)
    except ImportError:
        log.info("mss not available, using VideoCapture device %d", Config.DEVICE_INDEX)
        return Cv2GrabberSource(index=Config.DEVICE_INDEX, size=size)


def display_geometry(backend: Optional[str] = None) -> Tuple[int, int]:
    """Return `(width, height)` of the display the configured backend captures.

    Used to size a session when no geometry is configured: the mss monitor
    for `mss`, the capture device's frame size for `v4l2`, and whichever
    `make_frame_source` would pick for `auto`.

    Raises:
      ScreenCaptureError: If the size cannot be determined.
    """
    backend = (backend or Config.FRAME_SOURCE).strip().lower()
    if backend == "auto":
        try:
            import importlib

            importlib.import_module("mss")
            backend = "mss"
        except ImportError:
            backend = "v4l2"

    if backend == "v4l2":
        cap = cv2.VideoCapture(Config.DEVICE_INDEX)
        try:
            if not cap.isOpened():
                raise ScreenCaptureError(f"cannot open capture device {Config.DEVICE_INDEX}")
            w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        finally:
            cap.release()
        if w <= 0 or h <= 0:
            raise ScreenCaptureError(f"capture device {Config.DEVICE_INDEX} reports no frame size")
        return w, h
    if backend != "mss":
        raise ScreenCaptureError(f"unknown frame source backend {backend!r}")

    try:
        import mss

        with mss.mss() as sct:
            mon = sct.monitors[Config.MONITOR]
            return int(mon["width"]), int(mon["height"])
    except Exception as e:  # ImportError, ScreenShotError (no display), bad monitor index
        raise ScreenCaptureError(f"cannot read monitor {Config.MONITOR} size: {e}") from e
