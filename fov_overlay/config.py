"""
Application constants and configuration.

STANDARD_FOCAL_LENGTHS is the fixed catalog of simulated focal lengths and
COLOR_NAMES / COLOR_RGB the overlay palette.  All other constants control
overlay styling, debounce and timeout behaviour, and display sizing.

The ``config_dir()`` helper returns the platform-appropriate config directory
(used by the preview cache and corner assets); ``temp_dir()`` holds the
per-session render artifacts that are removed when a session closes.
"""

import os
import subprocess
import sys
import tempfile
from pathlib import Path

# =============================================================================
# APP IDENTITY & DIRECTORIES
# =============================================================================
APP_NAME = "fov-overlay"
APP_TITLE = "FOV Overlay Guide"
APP_VERSION = "1.2.2"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def temp_dir() -> Path:
    """Return the scratch directory for base images, renders and draw scripts."""
    directory = Path(tempfile.gettempdir()) / "fov_overlay"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


# =============================================================================
# FOCAL LENGTH CATALOG
# =============================================================================
STANDARD_FOCAL_LENGTHS = (
    24, 28, 35, 50, 70, 85, 100, 135, 200, 300,
    400, 420, 450, 500, 560, 600, 800, 840, 1000, 1200,
)

# Number of focal lengths checked automatically on open and on view-mode change
AUTO_SELECT_COUNT = 4

# A crop edge further than this from the [0, 1] extent counts as a real crop
CROP_EPSILON = 0.001

# Crop widths below this are host data errors and are treated as "no crop"
DEGENERATE_CROP_EPSILON = 1e-6

# 35mm-equivalent hint must exceed the lens focal length by more than this
CROP_SENSOR_TOLERANCE_MM = 0.5

# Sensor dimensions in mm, used for angle-of-view tooltips
SENSOR_SIZES = {
    "fullFrame": {"width": 36.0, "height": 24.0, "diagonal": 43.27},
    "apscSony": {"width": 23.5, "height": 15.6, "diagonal": 28.21},
    "apscCanon": {"width": 22.3, "height": 14.9, "diagonal": 26.82},
    "microFourThirds": {"width": 17.3, "height": 13.0, "diagonal": 21.64},
}

# =============================================================================
# PALETTE
# =============================================================================
COLOR_NAMES = (
    "green", "yellow", "orange", "red", "cyan",
    "magenta", "blue", "lime", "pink", "white",
)

COLOR_RGB = {
    "green": (0, 200, 0),
    "yellow": (255, 200, 0),
    "orange": (255, 128, 0),
    "red": (255, 50, 50),
    "cyan": (0, 200, 220),
    "magenta": (220, 0, 220),
    "blue": (80, 120, 255),
    "lime": (160, 255, 0),
    "pink": (255, 120, 180),
    "white": (240, 240, 240),
}

# =============================================================================
# OVERLAY STYLE
# =============================================================================
RECT_STROKE_ALPHA = 128          # focal-length outlines at 50% alpha
CROP_DIM_ALPHA = 140             # area outside the applied crop polygon
HIGHLIGHT_DIM_ALPHA = 110        # area outside the highlighted focal length
CROP_BORDER_RGBA = (255, 255, 255, 200)

# Line widths are scaled by canvas_width / REFERENCE_DISPLAY_WIDTH
REFERENCE_DISPLAY_WIDTH = 1000
BASE_LINE_WIDTH = 3

# Corner-marker assets (pixels)
CORNER_SIZE = 40
CORNER_PEN_WIDTH = 4

# Display area as a fraction of the available screen
DISPLAY_FRACTION_W = 0.7
DISPLAY_FRACTION_H = 0.6

JPEG_QUALITY = 92

# =============================================================================
# SCHEDULING & TIMEOUTS (seconds)
# =============================================================================
DEBOUNCE_SECONDS = 0.15
THUMBNAIL_TIMEOUT_SECONDS = 10.0
RENDER_TIMEOUT_SECONDS = 30.0
EXIFTOOL_TIMEOUT_SECONDS = 30.0

# Consecutive failed renders before the failure is surfaced to the user
PERSISTENT_FAILURE_THRESHOLD = 3

# ---------------------------------------------------------------------------
# Backend preference ("canvas" = Pillow, "magick" = ImageMagick draw script)
# ---------------------------------------------------------------------------
PREFERRED_BACKEND = os.environ.get("FOV_OVERLAY_BACKEND", "canvas").strip().lower()
LOG_LEVEL = os.environ.get("FOV_OVERLAY_LOG_LEVEL", "WARNING").strip().upper()

# ---------------------------------------------------------------------------
# ImageMagick availability detection
# ---------------------------------------------------------------------------
# v7 uses a single ``magick`` binary; v6 uses ``convert``/``identify`` etc.
HAS_MAGICK = False
MAGICK_VERSION = 0  # Major version (6 or 7)

for _cmd, _ver in [("magick", 7), ("convert", 6)]:
    try:
        _magick_check = subprocess.run(
            [_cmd, "--version"], capture_output=True, timeout=5,
        )
        if _magick_check.returncode == 0 and b"ImageMagick" in _magick_check.stdout:
            HAS_MAGICK = True
            MAGICK_VERSION = _ver
            break
    except Exception:
        pass


def magick_cmd(*args: str) -> list[str]:
    """Build an ImageMagick command line that works on both v6 and v7.

    Usage examples::

        magick_cmd("identify", "-format", "%w", "file.png")
        # v7 → ["magick", "identify", "-format", "%w", "file.png"]
        # v6 → ["identify", "-format", "%w", "file.png"]

        magick_cmd("base.jpg", "-draw", "@fov_draw_3.mvg", "out.jpg")
        # v7 → ["magick", "base.jpg", "-draw", "@fov_draw_3.mvg", "out.jpg"]
        # v6 → ["convert", "base.jpg", "-draw", "@fov_draw_3.mvg", "out.jpg"]
    """
    _V6_SUBCOMMANDS = {"identify", "composite", "mogrify", "montage", "display", "animate"}
    args_list = list(args)
    if MAGICK_VERSION >= 7:
        return ["magick"] + args_list
    if args_list and args_list[0] in _V6_SUBCOMMANDS:
        return args_list
    return ["convert"] + args_list


# =============================================================================
# FILE TYPES
# =============================================================================
# Opened directly as the full-frame source
JPEG_EXTENSIONS = {".jpg", ".jpeg"}
# Decoded with Pillow / psd-tools and re-encoded as a base JPEG
DECODABLE_EXTENSIONS = {".png", ".tif", ".tiff", ".webp", ".bmp", ".psd"}
# Camera raw formats: full frame comes from the embedded preview (exiftool)
RAW_EXTENSIONS = {
    ".arw", ".cr2", ".cr3", ".crw", ".dng", ".erf", ".kdc", ".mos", ".mrw",
    ".nef", ".nrw", ".orf", ".pef", ".raf", ".raw", ".rw2", ".rwl", ".sr2",
    ".srf", ".srw", ".x3f", ".3fr", ".iiq",
}
