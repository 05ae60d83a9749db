"""
Host photo interface and a file-backed implementation.

``PhotoSource`` is the read-only surface the overlay consumes from the host
application: formatted focal length and dimensions, the reported
35mm-equivalent focal length, develop-crop settings, the original file
path and an asynchronous thumbnail request that answers through a
completion callback.

``FilePhotoSource`` implements it for a file on disk so the tool runs
without a catalog:

* focal lengths and dimensions come from EXIF via Pillow, or from exiftool
  for camera raw files;
* the develop crop comes from Lightroom-style XMP (``crs:CropLeft`` …
  ``crs:CropAngle``), read from an ``.xmp`` sidecar or embedded XMP;
* thumbnails are rendered on a background thread with the (possibly
  rotated) crop applied through a QUAD transform, matching what a catalog
  renders for the cropped photo.

This module is Qt-free and safe for worker import.
"""

import io
import logging
import re
import threading
from pathlib import Path

from PIL import ExifTags, Image

from fov_overlay import metadata
from fov_overlay.errors import ExternalToolError
from fov_overlay.image_io import is_raw, load_source_image
from fov_overlay.models import DevelopCrop, compute_crop_polygon

logger = logging.getLogger(__name__)

# EXIF tag ids
_TAG_ORIENTATION = 0x0112
_TAG_FOCAL_LENGTH = 0x920A
_TAG_FOCAL_LENGTH_35MM = 0xA405

_XMP_CROP_TAGS = {
    "left": "CropLeft",
    "top": "CropTop",
    "right": "CropRight",
    "bottom": "CropBottom",
    "angle": "CropAngle",
}


# =============================================================================
# Host interface
# =============================================================================
class PhotoSource:
    """Read-only queries against the host's selected photo."""

    def formatted_focal_length(self) -> str | None:
        raise NotImplementedError

    def formatted_dimensions(self) -> str | None:
        raise NotImplementedError

    def focal_length_35mm(self) -> float | None:
        """Host-reported 35mm-equivalent focal length; None or 0 when absent."""
        raise NotImplementedError

    def develop_crop(self) -> DevelopCrop:
        raise NotImplementedError

    def original_path(self) -> Path | None:
        raise NotImplementedError

    def request_jpeg_thumbnail(self, width: int, height: int, callback) -> None:
        """Render the cropped photo to fit *width* × *height*.

        *callback* is invoked exactly once, possibly from another thread, as
        ``callback(jpeg_bytes, None)`` on success or ``callback(None, message)``.
        """
        raise NotImplementedError


# =============================================================================
# XMP parsing
# =============================================================================
def _xmp_value(xmp: str, tag: str) -> str | None:
    """Read ``crs:<tag>`` in either attribute or element form."""
    match = re.search(rf'crs:{tag}\s*=\s*"([^"]*)"', xmp)
    if match is None:
        match = re.search(rf"<crs:{tag}>\s*([^<]*?)\s*</crs:{tag}>", xmp)
    return match.group(1) if match else None


def parse_xmp_crop(xmp: str | bytes | None) -> DevelopCrop:
    """Extract develop-crop settings from an XMP packet; full frame if absent."""
    if not xmp:
        return DevelopCrop()
    if isinstance(xmp, bytes):
        xmp = xmp.decode("utf-8", errors="replace")

    has_crop = _xmp_value(xmp, "HasCrop")
    if has_crop is not None and has_crop.strip().lower() == "false":
        return DevelopCrop()

    values = {}
    for key, tag in _XMP_CROP_TAGS.items():
        raw = _xmp_value(xmp, tag)
        if raw is None:
            continue
        try:
            values[key] = float(raw)
        except ValueError:
            logger.warning("Ignoring malformed crs:%s value %r", tag, raw)
    return DevelopCrop(**values)


# =============================================================================
# EXIF helpers
# =============================================================================
def _rational(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if number > 0 else None


def read_exif_focal_lengths(img: Image.Image) -> tuple[float | None, float | None]:
    """Return ``(focal_length, focal_length_35mm)`` from an opened image's EXIF."""
    exif = img.getexif()
    sub = exif.get_ifd(ExifTags.IFD.Exif)
    fl = _rational(sub.get(_TAG_FOCAL_LENGTH, exif.get(_TAG_FOCAL_LENGTH)))
    fl35 = _rational(sub.get(_TAG_FOCAL_LENGTH_35MM, exif.get(_TAG_FOCAL_LENGTH_35MM)))
    return fl, fl35


# =============================================================================
# File-backed host
# =============================================================================
class FilePhotoSource(PhotoSource):
    """PhotoSource for an image file on disk."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._info: dict | None = None

    def __repr__(self):
        return f"FilePhotoSource({str(self._path)!r})"

    # --- Metadata ---

    def _load_info(self) -> dict:
        """Read focal lengths, upright dimensions and crop once."""
        if self._info is not None:
            return self._info
        info = {"fl": None, "fl35": None, "size": None, "xmp": None}

        if is_raw(self._path):
            try:
                tags = metadata.read_tags(
                    self._path,
                    ["FocalLength", "FocalLengthIn35mmFormat", "ImageWidth", "ImageHeight", "Orientation"],
                )
            except ExternalToolError as exc:
                logger.warning("Cannot read raw metadata for %s: %s", self._path.name, exc)
                tags = {}
            info["fl"] = _rational(tags.get("FocalLength"))
            info["fl35"] = _rational(tags.get("FocalLengthIn35mmFormat"))
            w, h = tags.get("ImageWidth"), tags.get("ImageHeight")
            if w and h:
                if tags.get("Orientation") in (5, 6, 7, 8):
                    w, h = h, w
                info["size"] = (int(w), int(h))
        else:
            try:
                with Image.open(self._path) as img:
                    info["fl"], info["fl35"] = read_exif_focal_lengths(img)
                    w, h = img.size
                    if img.getexif().get(_TAG_ORIENTATION) in (5, 6, 7, 8):
                        w, h = h, w
                    info["size"] = (w, h)
                    info["xmp"] = img.info.get("xmp")
            except OSError as exc:
                logger.warning("Cannot open %s: %s", self._path, exc)

        sidecar = self._path.with_suffix(".xmp")
        if sidecar.is_file():
            try:
                info["xmp"] = sidecar.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Cannot read XMP sidecar %s: %s", sidecar, exc)

        self._info = info
        return info

    def formatted_focal_length(self) -> str | None:
        fl = self._load_info()["fl"]
        return f"{fl:.1f} mm" if fl else None

    def formatted_dimensions(self) -> str | None:
        size = self._load_info()["size"]
        return f"{size[0]} x {size[1]}" if size else None

    def focal_length_35mm(self) -> float | None:
        return self._load_info()["fl35"]

    def develop_crop(self) -> DevelopCrop:
        return parse_xmp_crop(self._load_info()["xmp"])

    def original_path(self) -> Path | None:
        return self._path

    # --- Thumbnails ---

    def request_jpeg_thumbnail(self, width: int, height: int, callback) -> None:
        thread = threading.Thread(
            target=self._render_thumbnail, args=(width, height, callback),
            name="fov-thumbnail", daemon=True,
        )
        thread.start()

    def _render_thumbnail(self, width: int, height: int, callback) -> None:
        try:
            img = render_cropped(load_source_image(self._path), self.develop_crop())
            img.thumbnail((width, height), Image.Resampling.LANCZOS)
            buf = io.BytesIO()
            img.convert("RGB").save(buf, "JPEG", quality=90)
        except Exception as exc:
            logger.warning("Thumbnail render failed for %s: %s", self._path.name, exc)
            callback(None, str(exc))
            return
        callback(buf.getvalue(), None)


def render_cropped(img: Image.Image, crop: DevelopCrop) -> Image.Image:
    """Apply a (possibly rotated) develop crop to *img*."""
    if not crop.is_cropped:
        return img
    sw, sh = img.size
    polygon = compute_crop_polygon(crop.left, crop.top, crop.right, crop.bottom, crop.angle)
    tl, tr, br, bl = polygon.scaled(sw, sh)
    out_w = max(1, round(sw * (crop.right - crop.left)))
    out_h = max(1, round(sh * (crop.bottom - crop.top)))
    # QUAD source corners: upper-left, lower-left, lower-right, upper-right
    quad = (*tl, *bl, *br, *tr)
    return img.convert("RGB").transform(
        (out_w, out_h), Image.Transform.QUAD, quad, Image.Resampling.BICUBIC,
    )
