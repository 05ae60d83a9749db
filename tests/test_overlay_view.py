import os

import pytest

pytest.importorskip("PyQt6.QtWidgets", reason="Qt widgets not available", exc_type=ImportError)

from PIL import Image
from PyQt6.QtWidgets import QApplication

from fov_overlay.overlay_view import OverlayView, load_pixmap


@pytest.fixture(scope="module")
def qapp():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


def test_rotated_jpeg_is_loaded_upright(qapp, tmp_path):
    path = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6
    Image.new("RGB", (60, 40), (200, 30, 30)).save(path, "JPEG", exif=exif.tobytes())

    pixmap = load_pixmap(path)

    assert pixmap is not None
    assert (pixmap.width(), pixmap.height()) == (40, 60)


def test_unreadable_overlay_shows_message(qapp, tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"nope")
    view = OverlayView()

    view.set_overlay(path, 600, 400)

    assert load_pixmap(path) is None
    assert view._pixmap is None
    assert view._message == "Could not load overlay image"
