"""
Shared pytest fixtures for the screen capture test suite.

Provides a temporary content directory, an artifact store, a valid capture
session and scripted frame sources, so tests run without a display.
"""

import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from screen_capture.frames import BaseFrameSource, RawFrame
from screen_capture.session import CaptureSession
from screen_capture.store import ArtifactStore


def make_frame(width: int = 8, height: int = 6, padding: int = 0, value: int = 200) -> RawFrame:
    """Build a BGRA frame filled with `value`, with `padding` bytes per row."""
    row_stride = width * 4 + padding
    rows = np.zeros((height, row_stride), dtype=np.uint8)
    rows[:, : width * 4] = value
    rows[:, width * 4:] = 7  # padding garbage that must never appear in the image
    return RawFrame(
        data=rows.tobytes(),
        width=width,
        height=height,
        pixel_stride=4,
        row_stride=row_stride,
        pixel_format="BGRA",
    )


class ScriptedSource(BaseFrameSource):
    """Frame source returning queued results; exceptions in the script are raised."""

    def __init__(self, script: Optional[List] = None, default=None) -> None:
        self.script = list(script or [])
        self.default = default if default is not None else make_frame()
        self.started = False
        self.stopped = 0
        self.calls = 0
        self.called = threading.Event()

    def start(self) -> None:
        self.started = True

    def acquire_latest(self):
        self.calls += 1
        self.called.set()
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return item

    def stop(self) -> None:
        self.stopped += 1


class SlowSource(ScriptedSource):
    """Scripted source whose every acquire takes `delay` seconds."""

    def __init__(self, delay: float = 0.5, **kwargs) -> None:
        super().__init__(**kwargs)
        self.delay = delay

    def acquire_latest(self):
        frame = super().acquire_latest()
        time.sleep(self.delay)
        return frame


@pytest.fixture
def content_dir(tmp_path):
    d = tmp_path / "captures"
    d.mkdir()
    return d


@pytest.fixture
def store(content_dir):
    return ArtifactStore(str(content_dir))


@pytest.fixture
def session():
    return CaptureSession(token="test-token", width=8, height=6, density=160)


@pytest.fixture
def source():
    return ScriptedSource()
