"""
Qt-free image I/O utilities.

Provides helpers to open originals (including PSD via psd-tools and camera
raw via the embedded preview), compute content fingerprints, save base and
rendered JPEGs, and hand out unique output paths for render jobs.
Safe to import in worker processes.
"""

import hashlib
import io
import itertools
import logging
from pathlib import Path

from PIL import Image, ImageOps
from psd_tools import PSDImage

from fov_overlay.config import JPEG_QUALITY, RAW_EXTENSIONS, config_dir, temp_dir
from fov_overlay.errors import ExternalToolError, FullFrameUnavailableError
from fov_overlay import metadata

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

# Number of bytes read for fingerprinting (64 KB)
_FINGERPRINT_READ_SIZE = 65_536

# Monotonic counter shared by every render in the process
_render_counter = itertools.count(1)

_PREVIEW_CACHE_DIR_NAME = "preview_cache"


def compute_fingerprint(path: Path) -> str:
    """
    Compute a fast content fingerprint for an image file.

    Reads the first 64 KB of the file and combines it with the file size
    to produce a truncated SHA-256 hex string.  Format: ``"{size_hex}_{hash16}"``.
    """
    size = path.stat().st_size
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        sha.update(f.read(_FINGERPRINT_READ_SIZE))
    return f"{size:x}_{sha.hexdigest()[:16]}"


def is_raw(path: Path) -> bool:
    return path.suffix.lower() in RAW_EXTENSIONS


def open_image(path: Path) -> Image.Image:
    """Open an image file, using psd-tools for PSD and Pillow for the rest.

    EXIF orientation is applied so the result matches the displayed frame.
    """
    if path.suffix.lower() == ".psd":
        psd = PSDImage.open(str(path))
        return psd.composite()
    img = Image.open(path)
    return ImageOps.exif_transpose(img)


def _preview_cache_path(fingerprint: str) -> Path:
    """Return the cache file for a raw preview, creating the cache directory."""
    d = config_dir() / _PREVIEW_CACHE_DIR_NAME
    d.mkdir(parents=True, exist_ok=True)
    return d / f"{fingerprint}.jpg"


def _read_cached_preview(cached: Path) -> Image.Image | None:
    try:
        with Image.open(cached) as img:
            img.load()
            return img.copy()
    except OSError as exc:
        logger.warning("Ignoring unreadable preview cache %s: %s", cached, exc)
        return None


def _store_preview(cached: Path, img: Image.Image) -> None:
    try:
        img.convert("RGB").save(str(cached), "JPEG", quality=95)
        logger.debug("Stored preview cache: %s", cached)
    except OSError as exc:
        logger.warning("Failed to write preview cache %s: %s", cached, exc)


def load_raw_preview(path: Path) -> Image.Image:
    """Decode the embedded full-size preview of a raw file, upright.

    Extracted previews are cached on disk by content fingerprint so that
    reopening the same photo skips exiftool.  Raises
    ``FullFrameUnavailableError`` when exiftool is missing or the file has
    no usable preview.
    """
    try:
        fingerprint = compute_fingerprint(path)
    except OSError as exc:
        raise FullFrameUnavailableError(f"cannot read {path.name}: {exc}") from exc
    cached = _preview_cache_path(fingerprint)
    if cached.is_file():
        img = _read_cached_preview(cached)
        if img is not None:
            logger.debug("Preview cache hit for %s", path.name)
            return img

    try:
        data = metadata.extract_preview(path)
        tags = metadata.read_tags(path, ["Orientation"])
    except ExternalToolError as exc:
        raise FullFrameUnavailableError(str(exc)) from exc
    if not data:
        raise FullFrameUnavailableError(f"{path.name} has no embedded preview")

    # UnidentifiedImageError is an OSError
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except OSError as exc:
        raise FullFrameUnavailableError(f"embedded preview of {path.name} is unreadable: {exc}") from exc
    img = apply_orientation(img, tags.get("Orientation"))
    _store_preview(cached, img)
    return img


def apply_orientation(img: Image.Image, orientation) -> Image.Image:
    """Rotate/flip *img* according to an EXIF orientation value (1-8)."""
    transpose = {
        2: Image.Transpose.FLIP_LEFT_RIGHT,
        3: Image.Transpose.ROTATE_180,
        4: Image.Transpose.FLIP_TOP_BOTTOM,
        5: Image.Transpose.TRANSPOSE,
        6: Image.Transpose.ROTATE_270,
        7: Image.Transpose.TRANSVERSE,
        8: Image.Transpose.ROTATE_90,
    }.get(int(orientation) if orientation else 1)
    return img.transpose(transpose) if transpose is not None else img


def load_source_image(path: Path) -> Image.Image:
    """Open the original's pixels: embedded preview for raw, decoded file otherwise."""
    if is_raw(path):
        return load_raw_preview(path)
    return open_image(path)


def save_jpeg(img: Image.Image, out_path: Path) -> Path:
    img.convert("RGB").save(str(out_path), "JPEG", quality=JPEG_QUALITY)
    return out_path


def next_output_path(prefix: str, suffix: str = ".jpg") -> Path:
    """Return a fresh ``<temp>/<prefix>_<n><suffix>`` path; *n* never repeats."""
    return temp_dir() / f"{prefix}_{next(_render_counter)}{suffix}"


def cleanup_temp_files(patterns=("fov_render_*", "fov_draw_*", "fov_base_*")) -> int:
    """Delete per-session artifacts from the temp directory. Returns the count removed."""
    removed = 0
    directory = temp_dir()
    for pattern in patterns:
        for p in directory.glob(pattern):
            try:
                p.unlink()
                removed += 1
            except OSError as exc:
                logger.debug("Could not remove %s: %s", p, exc)
    return removed
