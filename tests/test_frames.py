import cv2
import numpy as np
import pytest

from conftest import make_frame
from screen_capture.errors import FrameError, ScreenCaptureError
from screen_capture.frames import (
    Cv2GrabberSource,
    MssScreenSource,
    RawFrame,
    colour_depth,
    display_geometry,
    encode_png,
    frame_to_bgr,
    make_frame_source,
)
from screen_capture.session import CaptureSession


def test_frame_to_bgr_crops_row_padding():
    frame = make_frame(width=5, height=3, padding=12, value=200)
    assert frame.row_padding == 12
    img = frame_to_bgr(frame)
    assert img.shape == (3, 5, 3)
    assert img.dtype == np.uint8
    # No padding byte (7) may leak into the picture
    assert (img == 200).all()


def test_frame_to_bgr_padding_not_multiple_of_pixel_stride():
    # 6 bytes of padding do not divide evenly into 4-byte pixels
    frame = make_frame(width=3, height=4, padding=6, value=90)
    img = frame_to_bgr(frame)
    assert img.shape == (4, 3, 3)
    assert (img == 90).all()


def test_frame_to_bgr_accepts_missing_padding_on_last_row():
    full = make_frame(width=4, height=2, padding=8)
    short = RawFrame(
        data=full.data[:-8],
        width=4,
        height=2,
        pixel_stride=4,
        row_stride=full.row_stride,
        pixel_format="BGRA",
    )
    assert frame_to_bgr(short).shape == (2, 4, 3)


def test_frame_to_bgr_converts_rgba_channel_order():
    rgba = np.zeros((1, 1, 4), dtype=np.uint8)
    rgba[0, 0] = (10, 20, 30, 255)
    frame = RawFrame(data=rgba.tobytes(), width=1, height=1, pixel_format="RGBA")
    assert frame_to_bgr(frame)[0, 0].tolist() == [30, 20, 10]


def test_frame_to_bgr_rejects_stride_shorter_than_row():
    frame = RawFrame(data=bytes(64), width=4, height=2, pixel_stride=4, row_stride=12)
    with pytest.raises(FrameError):
        frame_to_bgr(frame)


def test_frame_to_bgr_rejects_truncated_buffer():
    frame = RawFrame(data=bytes(20), width=4, height=2, pixel_stride=4, row_stride=16)
    with pytest.raises(FrameError):
        frame_to_bgr(frame)


def test_frame_to_bgr_rejects_unknown_format():
    frame = RawFrame(data=bytes(8), width=2, height=1, pixel_format="YUYV")
    with pytest.raises(FrameError):
        frame_to_bgr(frame)


def test_colour_depth_bounds():
    assert colour_depth(30) == 5
    assert colour_depth(100) == 8
    assert colour_depth(0) == 4
    assert colour_depth(500) == 8


def test_encode_png_produces_decodable_png():
    img = np.random.default_rng(0).integers(0, 256, size=(12, 16, 3), dtype=np.uint8)
    data = encode_png(img, quality=30)
    assert data[:8] == b"\x89PNG\r\n\x1a\n"
    decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert decoded.shape == img.shape
    # Quality 30 keeps 5 bits per channel
    assert (decoded & 0b111).max() == 0


def test_encode_png_full_quality_is_lossless():
    img = np.random.default_rng(1).integers(0, 256, size=(8, 8, 3), dtype=np.uint8)
    decoded = cv2.imdecode(np.frombuffer(encode_png(img, quality=100), dtype=np.uint8), cv2.IMREAD_COLOR)
    assert np.array_equal(decoded, img)


def test_make_frame_source_backends():
    session = CaptureSession(token="t", width=640, height=480)
    src = make_frame_source(session, backend="mss")
    assert isinstance(src, MssScreenSource)
    assert src.size == (640, 480)
    grabber = make_frame_source(session, backend="v4l2")
    assert isinstance(grabber, Cv2GrabberSource)
    assert grabber.size == (640, 480)
    with pytest.raises(ValueError):
        make_frame_source(session, backend="betamax")


def test_unstarted_sources_yield_no_frame():
    assert MssScreenSource(size=(10, 10)).acquire_latest() is None
    assert Cv2GrabberSource(index=0, size=(10, 10)).acquire_latest() is None


class FakeCapture:
    """Stands in for cv2.VideoCapture; records whether it was released."""

    instances = []

    def __init__(self, index, opened=True, width=1920, height=1080):
        self.index = index
        self.opened = opened
        self.props = {cv2.CAP_PROP_FRAME_WIDTH: width, cv2.CAP_PROP_FRAME_HEIGHT: height}
        self.released = False
        FakeCapture.instances.append(self)

    def isOpened(self):
        return self.opened

    def get(self, prop):
        return float(self.props.get(prop, 0))

    def release(self):
        self.released = True


@pytest.fixture
def fake_capture(monkeypatch):
    FakeCapture.instances = []
    monkeypatch.setattr(cv2, "VideoCapture", FakeCapture)
    return FakeCapture


def test_display_geometry_reads_grabber_device_size(fake_capture):
    assert display_geometry(backend="v4l2") == (1920, 1080)
    assert fake_capture.instances[0].released


def test_display_geometry_missing_device_is_a_capture_error(monkeypatch, fake_capture):
    monkeypatch.setattr(cv2, "VideoCapture", lambda index: FakeCapture(index, opened=False))
    with pytest.raises(ScreenCaptureError):
        display_geometry(backend="v4l2")
    assert fake_capture.instances[0].released


def test_display_geometry_device_without_size_is_a_capture_error(monkeypatch, fake_capture):
    monkeypatch.setattr(cv2, "VideoCapture", lambda index: FakeCapture(index, width=0, height=0))
    with pytest.raises(ScreenCaptureError):
        display_geometry(backend="v4l2")


def test_display_geometry_rejects_unknown_backend():
    with pytest.raises(ScreenCaptureError):
        display_geometry(backend="betamax")
