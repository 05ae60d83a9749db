import io
from pathlib import Path

import pytest
from PIL import Image

from fov_overlay import corner_markers, image_io
from fov_overlay.models import DevelopCrop
from fov_overlay.photo_source import PhotoSource


@pytest.fixture(autouse=True)
def isolated_dirs(monkeypatch, tmp_path):
    """Keep render artifacts, preview cache and corner assets inside tmp_path."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    config = tmp_path / "config"
    config.mkdir()
    monkeypatch.setattr(image_io, "temp_dir", lambda: scratch)
    monkeypatch.setattr(image_io, "config_dir", lambda: config)
    monkeypatch.setattr(corner_markers, "config_dir", lambda: config)
    return scratch


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    created: list = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class InlineExecutor:
    """Runs submitted work immediately, or queues it when ``deferred``."""

    def __init__(self, deferred: bool = False):
        self.deferred = deferred
        self.queue: list = []

    def submit(self, fn, *args):
        if self.deferred:
            self.queue.append((fn, args))
        else:
            fn(*args)

    def run_pending(self):
        queue, self.queue = self.queue, []
        for fn, args in queue:
            fn(*args)

    def shutdown(self, wait=True, cancel_futures=False):
        self.queue = []


@pytest.fixture
def timers():
    FakeTimer.created = []
    return FakeTimer.created


def jpeg_bytes(width: int, height: int, color=(128, 128, 128)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, "JPEG", quality=90)
    return buf.getvalue()


class FakePhotoSource(PhotoSource):
    """Scriptable host photo."""

    def __init__(
        self, focal_length="300.0 mm", dimensions="6000 x 4000", fl35=None,
        crop: DevelopCrop | None = None, original: Path | None = None,
        thumbnail: str = "ok",
    ):
        self.focal_length = focal_length
        self.dimensions = dimensions
        self.fl35 = fl35
        self.crop = crop or DevelopCrop()
        self.original = original
        self.thumbnail = thumbnail
        self.thumbnail_requests: list[tuple[int, int]] = []

    def formatted_focal_length(self):
        return self.focal_length

    def formatted_dimensions(self):
        return self.dimensions

    def focal_length_35mm(self):
        return self.fl35

    def develop_crop(self):
        return self.crop

    def original_path(self):
        return self.original

    def request_jpeg_thumbnail(self, width, height, callback):
        self.thumbnail_requests.append((width, height))
        if self.thumbnail == "ok":
            callback(jpeg_bytes(width, height), None)
        elif self.thumbnail == "error":
            callback(None, "export failed")
        # "never": the host drops the request
