"""
Base image resolution per view mode.

* Cropped view: the host's thumbnail of the cropped photo, sized to the
  cropped-frame display dimensions.  Always available.
* Full view of a cropped photo: an uncropped pixel source is required.  JPEG
  originals are used directly; other decodable formats (PNG, TIFF, PSD …)
  are decoded and re-encoded; camera raw uses the embedded preview
  extracted with exiftool.  If none of that works the cropped thumbnail is
  returned with ``is_uncropped = False`` and the caller must degrade to the
  cropped view.
* Full view of an uncropped photo: the host thumbnail already shows the
  whole frame.

Resolved images are cached per view mode for the lifetime of the provider.
"""

import logging
import threading
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from fov_overlay.config import (
    DECODABLE_EXTENSIONS, JPEG_EXTENSIONS, RAW_EXTENSIONS, THUMBNAIL_TIMEOUT_SECONDS,
)
from fov_overlay.errors import FovOverlayError, FullFrameUnavailableError, ThumbnailTimeoutError
from fov_overlay.image_io import load_raw_preview, next_output_path, open_image, save_jpeg
from fov_overlay.models import VIEW_CROPPED, VIEW_FULL, PhotoGeometry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaseImage:
    path: Path
    is_uncropped: bool


class BaseImageProvider:
    """Resolves and caches the pixel source for each view mode."""

    def __init__(
        self, photo, geometry: PhotoGeometry,
        thumbnail_timeout: float = THUMBNAIL_TIMEOUT_SECONDS,
    ):
        self._photo = photo
        self._geometry = geometry
        self._thumbnail_timeout = thumbnail_timeout
        self._cache: dict[str, BaseImage] = {}
        self._lock = threading.Lock()
        self.full_frame_error: str | None = None

    def resolve(self, view_mode: str) -> BaseImage:
        """Return the base image for *view_mode*.

        Raises ``ThumbnailTimeoutError`` / ``FovOverlayError`` when the host
        thumbnail cannot be obtained.
        """
        with self._lock:
            cached = self._cache.get(view_mode)
            if cached is not None:
                return cached
            if view_mode == VIEW_FULL and self._geometry.is_cropped:
                base = self._resolve_full_frame()
            else:
                base = self._resolve_thumbnail(view_mode)
            self._cache[view_mode] = base
            return base

    def full_frame_available(self) -> bool:
        """Resolve the full-frame source once and report whether it is uncropped."""
        return self.resolve(VIEW_FULL).is_uncropped

    # --- Sources ---

    def _resolve_thumbnail(self, view_mode: str) -> BaseImage:
        if view_mode == VIEW_CROPPED:
            w, h = self._geometry.cropped_display
        else:
            w, h = self._geometry.full_display
        data = self._request_thumbnail(w, h)
        out_path = next_output_path(f"fov_base_{view_mode}")
        out_path.write_bytes(data)
        # An uncropped photo's thumbnail is its full frame
        return BaseImage(out_path, is_uncropped=not self._geometry.is_cropped)

    def _resolve_full_frame(self) -> BaseImage:
        try:
            return BaseImage(self._extract_full_frame(), is_uncropped=True)
        # psd-tools raises ValueError on files it cannot parse
        except (FullFrameUnavailableError, OSError, ValueError) as exc:
            self.full_frame_error = str(exc)
            logger.warning("Full-frame source unavailable: %s", exc)
        fallback = self._cache.get(VIEW_CROPPED) or self._resolve_thumbnail(VIEW_CROPPED)
        self._cache.setdefault(VIEW_CROPPED, fallback)
        return BaseImage(fallback.path, is_uncropped=False)

    def _extract_full_frame(self) -> Path:
        path = self._photo.original_path()
        if path is None or not Path(path).is_file():
            raise FullFrameUnavailableError("original file is not accessible")
        path = Path(path)
        ext = path.suffix.lower()

        if ext in JPEG_EXTENSIONS:
            return path
        if ext in RAW_EXTENSIONS:
            img = load_raw_preview(path)
        elif ext in DECODABLE_EXTENSIONS:
            try:
                img = open_image(path)
            except OSError as exc:
                raise FullFrameUnavailableError(f"cannot decode {path.name}: {exc}") from exc
        else:
            raise FullFrameUnavailableError(f"unsupported original format: {ext or path.name}")

        # Keep enough resolution for the display, not the whole sensor
        w, h = self._geometry.full_display
        img = img.convert("RGB")
        img.thumbnail((w * 2, h * 2), Image.Resampling.LANCZOS)
        return save_jpeg(img, next_output_path("fov_base_full"))

    def _request_thumbnail(self, width: int, height: int) -> bytes:
        """Ask the host for a thumbnail and wait for its completion callback."""
        future: Future = Future()

        def on_done(data, error):
            if future.cancelled():
                return
            try:
                if data:
                    future.set_result(data)
                else:
                    future.set_exception(FovOverlayError(error or "host returned no thumbnail"))
            except InvalidStateError:
                # Late callback after the wait timed out
                logger.debug("Discarding late thumbnail callback")

        self._photo.request_jpeg_thumbnail(width, height, on_done)
        try:
            return future.result(timeout=self._thumbnail_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise ThumbnailTimeoutError(
                f"thumbnail not delivered within {self._thumbnail_timeout:g}s"
            ) from None
