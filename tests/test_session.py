import pytest
from conftest import FakePhotoSource, FakeTimer, InlineExecutor
from PIL import Image

from fov_overlay import image_io
from fov_overlay import session as session_module
from fov_overlay.backends import PillowCanvasBackend, RenderBackend
from fov_overlay.errors import MetadataMissingError
from fov_overlay.models import VIEW_CROPPED, VIEW_FULL, DevelopCrop
from fov_overlay.session import OverlaySession, analyze_photo, build_header_text


class FailingBackend(RenderBackend):
    name = "canvas"

    def is_available(self):
        return True

    def render(self, base_path, commands, canvas_w, canvas_h):
        return None


class FlakyBackend(PillowCanvasBackend):
    """Succeeds on the first render, fails afterwards."""

    def __init__(self):
        self.calls = 0

    def render(self, base_path, commands, canvas_w, canvas_h):
        self.calls += 1
        if self.calls > 1:
            return None
        return super().render(base_path, commands, canvas_w, canvas_h)


def _open(photo, backends, **kwargs):
    return OverlaySession.open(
        photo, (600, 400), backends=backends,
        executor=InlineExecutor(), timer_factory=FakeTimer, **kwargs,
    )


# =============================================================================
# Metadata
# =============================================================================
def test_missing_focal_length_is_fatal():
    with pytest.raises(MetadataMissingError, match="focal length"):
        analyze_photo(FakePhotoSource(focal_length=None), (600, 400))


def test_missing_dimensions_is_fatal():
    with pytest.raises(MetadataMissingError, match="dimensions"):
        analyze_photo(FakePhotoSource(dimensions=""), (600, 400))


def test_host_35mm_hint_marks_crop_sensor():
    geometry = analyze_photo(FakePhotoSource(fl35=450), (600, 400))

    assert geometry.original_fl == 450
    assert geometry.is_crop_sensor


def test_35mm_hint_recovered_with_exiftool(monkeypatch, tmp_path):
    photo_path = tmp_path / "photo.jpg"
    photo_path.write_bytes(b"")
    monkeypatch.setattr(session_module.metadata, "has_exiftool", lambda: True)
    monkeypatch.setattr(session_module.metadata, "read_focal_length_35mm", lambda path: 450.0)

    geometry = analyze_photo(FakePhotoSource(original=photo_path), (600, 400))

    assert geometry.original_fl == 450
    assert geometry.is_crop_sensor


def test_header_text_variants():
    assert build_header_text(300, 450, True, VIEW_FULL, 450, 6000, 4000, False) == (
        "Lens: 300mm (≈450mm FF)  |  6000 × 4000  |  24.0 MP"
    )
    assert build_header_text(200, 200, False, VIEW_FULL, 400, 6000, 4000, True) == (
        "Original: 200mm  |  Cropped to 400mm equiv  |  6000 × 4000  |  24.0 MP"
    )
    assert build_header_text(200, 200, False, VIEW_CROPPED, 400, 3000, 2000, True) == (
        "Shot at 200mm  |  Cropped to 400mm equiv  |  3000 × 2000  |  6.0 MP"
    )


# =============================================================================
# Rendering
# =============================================================================
def test_primary_backend_failure_falls_back_to_corner_markers(timers):
    session = _open(FakePhotoSource(), [FailingBackend()])

    session.start()

    assert session.pipeline.corner_mode
    assert len(session.overlay_layers) == 16
    assert session.overlay_image_path.is_file()
    assert "corner markers" in session.warning_text


def test_bootstrap_publishes_rendered_image(timers):
    session = _open(FakePhotoSource(), [PillowCanvasBackend()])
    published = []
    session.subscribe_published(published.append)

    session.start()

    assert published == [session]
    assert session.overlay_layers == ()
    assert session.overlay_view_mode == VIEW_FULL
    with Image.open(session.overlay_image_path) as img:
        assert img.size == (600, 400)
    assert session.warning_text == ""


def test_selection_change_renders_after_debounce(timers):
    session = _open(FakePhotoSource(), [PillowCanvasBackend()])
    session.start()
    first = session.overlay_image_path

    session.view_state.toggle(1200)
    session.view_state.toggle(840)
    assert session.overlay_image_path == first

    timers[-1].fire()

    assert session.overlay_image_path != first
    assert session.scheduler.generation == 3


def test_persistent_failures_surface_warning(timers):
    session = _open(FakePhotoSource(), [FlakyBackend()])
    session.start()
    good = session.overlay_image_path

    for fl in (1200, 840):
        session.view_state.toggle(fl)
        timers[-1].fire()
    assert session.warning_text == ""
    assert session.overlay_image_path == good

    session.view_state.toggle(1000)
    timers[-1].fire()
    assert "Overlay render failed" in session.warning_text


def test_dismissed_corner_warning_stays_dismissed(timers):
    session = _open(FakePhotoSource(), [FailingBackend()])
    session.start()

    session.dismiss_warnings()
    session.view_state.toggle(1200)
    timers[-1].fire()

    assert session.warning_text == ""
    assert session.pipeline.corner_mode


def test_missing_full_frame_source_degrades_to_cropped(timers, tmp_path):
    original = tmp_path / "photo.xyz"
    original.write_bytes(b"")
    photo = FakePhotoSource(crop=DevelopCrop(0.25, 0.25, 0.75, 0.75), original=original)
    session = _open(photo, [PillowCanvasBackend()])

    session.start()

    assert session.view_state.view_mode == VIEW_CROPPED
    assert session.view_state.view_mode_choices == [VIEW_CROPPED]
    assert "Full-frame preview unavailable" in session.warning_text
    assert session.overlay_view_mode == VIEW_CROPPED


def test_unreadable_raw_preview_degrades_instead_of_raising(timers, tmp_path, monkeypatch):
    original = tmp_path / "photo.nef"
    original.write_bytes(b"raw")
    monkeypatch.setattr(image_io.metadata, "extract_preview", lambda path: b"\xff\xd8garbage")
    monkeypatch.setattr(image_io.metadata, "read_tags", lambda path, tags: {})
    photo = FakePhotoSource(crop=DevelopCrop(0.25, 0.25, 0.75, 0.75), original=original)
    session = _open(photo, [PillowCanvasBackend()])

    session.start()

    assert session.view_state.view_mode == VIEW_CROPPED
    assert "Full-frame preview unavailable" in session.warning_text
    assert session.overlay_image_path is not None


def test_jpeg_original_keeps_full_frame_view(timers, tmp_path):
    original = tmp_path / "photo.jpg"
    Image.new("RGB", (600, 400), (50, 50, 50)).save(original, "JPEG")
    photo = FakePhotoSource(
        dimensions="600 x 400", crop=DevelopCrop(0.25, 0.25, 0.75, 0.75), original=original,
    )
    session = _open(photo, [PillowCanvasBackend()])

    session.start()

    assert session.view_state.view_mode == VIEW_FULL
    assert session.view_state.view_mode_choices == [VIEW_FULL, VIEW_CROPPED]
    assert session.warning_text == ""
    assert "Cropped to 600mm equiv" in session.header_text()


def test_thumbnail_timeout_is_reported_not_raised(timers):
    session = _open(FakePhotoSource(thumbnail="never"), [PillowCanvasBackend()], thumbnail_timeout=0.01)

    session.start()

    assert session.overlay_image_path is None
    assert "Could not load preview" in session.warning_text


def test_close_stops_rendering_and_cleans_up(timers, isolated_dirs):
    session = _open(FakePhotoSource(), [PillowCanvasBackend()])
    session.start()
    assert any(isolated_dirs.iterdir())

    session.close()

    assert not any(isolated_dirs.glob("fov_*"))
    assert session.scheduler.request_render(session.view_state.snapshot()) is None
