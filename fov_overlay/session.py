"""
One overlay session per opened photo.

``OverlaySession.open`` reads the host's metadata, computes the photo
geometry and wires view state, base-image provider, render pipeline and
scheduler together.  ``start()`` performs the degraded-capability checks
and the first (bootstrap) render; afterwards every view-state change
schedules a debounced render.

The UI reads three published values: ``overlay_image_path`` (the current
composited image, or the undrawn base in corner-marker mode),
``overlay_layers`` (corner placements, empty unless in corner-marker mode)
and ``warning_text``.  Publication happens on a worker thread; listeners
registered with ``subscribe_published`` must marshal to their own thread.
"""

import logging
import threading
from pathlib import Path

from fov_overlay import metadata
from fov_overlay.backends import select_backends
from fov_overlay.base_image import BaseImageProvider
from fov_overlay.config import (
    DEBOUNCE_SECONDS, PERSISTENT_FAILURE_THRESHOLD, STANDARD_FOCAL_LENGTHS,
    THUMBNAIL_TIMEOUT_SECONDS,
)
from fov_overlay.errors import ExternalToolError, FovOverlayError, MetadataMissingError
from fov_overlay.image_io import cleanup_temp_files
from fov_overlay.models import (
    VIEW_CROPPED, PhotoGeometry, build_photo_geometry, parse_dimensions, parse_focal_length,
)
from fov_overlay.pipeline import OverlayPipeline
from fov_overlay.scheduler import RenderScheduler
from fov_overlay.view_state import (
    CHANGE_HIGHLIGHT, CHANGE_SELECTION, CHANGE_VIEW_MODE, ViewState,
)

logger = logging.getLogger(__name__)

# Warning slots; each holds at most one message
WARN_FULL_FRAME = "full_frame"
WARN_BACKEND = "backend"
WARN_RENDER = "render"

_RENDER_TRIGGERS = (CHANGE_VIEW_MODE, CHANGE_SELECTION, CHANGE_HIGHLIGHT)


def analyze_photo(
    photo, max_display: tuple[int, int], focal_lengths=STANDARD_FOCAL_LENGTHS,
) -> PhotoGeometry:
    """Read host metadata and compute the session geometry.

    Raises ``MetadataMissingError`` when the focal length or the pixel
    dimensions cannot be read.
    """
    fl_text = photo.formatted_focal_length()
    lens_fl = parse_focal_length(fl_text)
    if not lens_fl:
        raise MetadataMissingError(
            f"Could not read focal length from photo metadata.\n\nFocal Length: {fl_text}"
        )
    dims = parse_dimensions(photo.formatted_dimensions())
    if dims is None:
        raise MetadataMissingError("Could not read image dimensions from photo metadata.")

    fl35 = photo.focal_length_35mm()
    if not fl35:
        fl35 = _read_fl35_with_exiftool(photo.original_path())

    geometry = build_photo_geometry(
        lens_fl, fl35, dims[0], dims[1], photo.develop_crop(), max_display, focal_lengths,
    )
    logger.info(
        "Photo %s: lens %smm, base %smm%s, %dx%d, effective %smm",
        photo, lens_fl, geometry.original_fl, " (crop sensor)" if geometry.is_crop_sensor else "",
        geometry.image_w, geometry.image_h, geometry.effective_fl,
    )
    return geometry


def _read_fl35_with_exiftool(path: Path | None) -> float | None:
    if path is None or not metadata.has_exiftool():
        return None
    try:
        return metadata.read_focal_length_35mm(path)
    except ExternalToolError as exc:
        logger.warning("Could not read 35mm focal length from %s: %s", path, exc)
        return None


def build_header_text(
    lens_fl: float, original_fl: float, is_crop_sensor: bool, view_mode: str,
    effective_fl: float, width: int, height: int, is_cropped: bool,
) -> str:
    """Summary line above the overlay; *width*/*height* are the active frame's."""
    if is_crop_sensor:
        fl_label = "Lens: %dmm (≈%dmm FF)" % (round(lens_fl), round(original_fl))
    elif view_mode == VIEW_CROPPED:
        fl_label = "Shot at %dmm" % round(original_fl)
    else:
        fl_label = "Original: %dmm" % round(original_fl)
    mp = width * height / 1_000_000
    if is_cropped:
        return "%s  |  Cropped to %dmm equiv  |  %d × %d  |  %.1f MP" % (
            fl_label, round(effective_fl), width, height, mp,
        )
    return "%s  |  %d × %d  |  %.1f MP" % (fl_label, width, height, mp)


class OverlaySession:
    """Everything one open overlay dialog needs, minus the widgets."""

    def __init__(
        self, photo, geometry: PhotoGeometry, backends,
        focal_lengths=STANDARD_FOCAL_LENGTHS,
        executor=None, timer_factory=threading.Timer,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        thumbnail_timeout: float = THUMBNAIL_TIMEOUT_SECONDS,
    ):
        self.photo = photo
        self.geometry = geometry
        self.view_state = ViewState(
            geometry.original_fl, geometry.effective_fl, geometry.is_cropped, focal_lengths,
        )
        self.base_images = BaseImageProvider(photo, geometry, thumbnail_timeout)
        self.pipeline = OverlayPipeline(geometry, self.base_images, backends)
        self.scheduler = RenderScheduler(
            self.pipeline.render, self._publish, debounce_seconds,
            executor=executor, timer_factory=timer_factory,
        )

        self._lock = threading.Lock()
        self._overlay_path: Path | None = None
        self._overlay_layers: tuple = ()
        self._overlay_view_mode: str | None = None
        self._warnings: dict[str, str] = {}
        self._dismissed: set[str] = set()
        self._consecutive_failures = 0
        self._listeners: list = []
        self._unsubscribe_state = None
        self._closed = False

    @classmethod
    def open(
        cls, photo, max_display: tuple[int, int], backends=None,
        focal_lengths=STANDARD_FOCAL_LENGTHS, **kwargs,
    ) -> "OverlaySession":
        """Analyze *photo* and build a session.  Raises ``MetadataMissingError``."""
        geometry = analyze_photo(photo, max_display, focal_lengths)
        if backends is None:
            backends = select_backends()
        return cls(photo, geometry, backends, focal_lengths, **kwargs)

    # --- Lifecycle ---

    def start(self):
        """Degrade unavailable capabilities, then run the bootstrap render."""
        if self.geometry.is_cropped:
            try:
                available = self.base_images.full_frame_available()
            except (FovOverlayError, OSError) as exc:
                logger.warning("Full-frame check failed: %s", exc)
                available = False
            if not available:
                reason = self.base_images.full_frame_error or "no preview"
                self.view_state.disable_full_frame()
                self._set_warning(
                    WARN_FULL_FRAME,
                    f"Full-frame preview unavailable ({reason}); showing the cropped view only.",
                )

        self._unsubscribe_state = self.view_state.subscribe(self._on_state_change)
        return self.scheduler.render_now(self.view_state.snapshot(), self.pipeline.bootstrap)

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe_state is not None:
            self._unsubscribe_state()
        self.scheduler.shutdown()
        removed = cleanup_temp_files()
        logger.info("Session closed, removed %d temp files", removed)

    # --- Published values ---

    @property
    def overlay_image_path(self) -> Path | None:
        return self._overlay_path

    @property
    def overlay_layers(self) -> tuple:
        return self._overlay_layers

    @property
    def overlay_view_mode(self) -> str | None:
        return self._overlay_view_mode

    @property
    def warning_text(self) -> str:
        with self._lock:
            return "\n".join(self._warnings.values())

    def dismiss_warnings(self):
        with self._lock:
            self._dismissed.update(self._warnings)
            self._warnings.clear()
        self._notify()

    def header_text(self) -> str:
        g = self.geometry
        mode = self.view_state.view_mode
        frame = g.frame(mode)
        return build_header_text(
            g.lens_fl, g.original_fl, g.is_crop_sensor, mode,
            g.effective_fl, frame.width, frame.height, g.is_cropped,
        )

    def subscribe_published(self, callback):
        """Register *callback(session)*; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    # --- Internals ---

    def _on_state_change(self, change, state):
        if change in _RENDER_TRIGGERS:
            self.scheduler.request_render(state.snapshot())

    def _set_warning(self, key: str, text: str):
        with self._lock:
            if key in self._dismissed and key != WARN_RENDER:
                return
            self._warnings[key] = text

    def _clear_warning(self, key: str):
        with self._lock:
            self._warnings.pop(key, None)

    def _publish(self, job, result):
        if result is not None and result.ok:
            self._consecutive_failures = 0
            self._overlay_path = result.path
            self._overlay_layers = tuple(result.layers)
            self._overlay_view_mode = result.view_mode
            self._clear_warning(WARN_RENDER)
            if result.warning:
                self._set_warning(WARN_BACKEND, result.warning)
        else:
            self._consecutive_failures += 1
            message = result.warning if result is not None else "Overlay render failed"
            logger.warning(
                "Render generation %d failed (%d in a row): %s",
                job.generation, self._consecutive_failures, message,
            )
            # First render failing leaves nothing on screen; surface it at once
            if self._overlay_path is None or \
                    self._consecutive_failures >= PERSISTENT_FAILURE_THRESHOLD:
                self._set_warning(WARN_RENDER, message)
        self._notify()

    def _notify(self):
        for callback in list(self._listeners):
            callback(self)
