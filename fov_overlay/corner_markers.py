"""
Corner-marker fallback (Qt-free).

When no draw-command backend works, overlays degrade to four corner
brackets per selected focal length, each a small transparent PNG layered
over the undrawn base photo by the view.  Nothing is rasterized into the
photo, so crop-polygon and highlight dimming are not available in this
mode.

Assets are generated with Pillow on first use into
``config_dir()/corner_assets`` as ``corner_<tl|tr|bl|br>_<color>.png``,
``CORNER_SIZE`` pixels square.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw

from fov_overlay.colors import color_name
from fov_overlay.config import COLOR_NAMES, COLOR_RGB, CORNER_PEN_WIDTH, CORNER_SIZE, config_dir

logger = logging.getLogger(__name__)

CORNERS = ("tl", "tr", "bl", "br")

CORNER_FALLBACK_WARNING = (
    "Overlay rendering is unavailable; showing corner markers only. "
    "Crop and highlight dimming are not supported in this mode."
)

_ASSET_DIR_NAME = "corner_assets"


@dataclass(frozen=True)
class CornerLayer:
    """One corner image placed at (*x*, *y*) on the display canvas."""
    asset: Path
    x: int
    y: int
    focal_length: int = 0


def asset_dir() -> Path:
    d = config_dir() / _ASSET_DIR_NAME
    d.mkdir(parents=True, exist_ok=True)
    return d


def corner_asset_path(corner: str, color: str) -> Path:
    return asset_dir() / f"corner_{corner}_{color}.png"


def _draw_corner(corner: str, rgb: tuple[int, int, int]) -> Image.Image:
    size, pen = CORNER_SIZE, CORNER_PEN_WIDTH
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    fill = (*rgb, 255)
    x0 = 0 if corner[1] == "l" else size - pen
    y0 = 0 if corner[0] == "t" else size - pen
    # Horizontal then vertical arm of the bracket
    draw.rectangle((0, y0, size - 1, y0 + pen - 1), fill=fill)
    draw.rectangle((x0, 0, x0 + pen - 1, size - 1), fill=fill)
    return img


def ensure_corner_assets() -> int:
    """Create any missing corner PNGs.  Returns how many were written."""
    written = 0
    for color in COLOR_NAMES:
        for corner in CORNERS:
            path = corner_asset_path(corner, color)
            if path.is_file():
                continue
            _draw_corner(corner, COLOR_RGB[color]).save(str(path), "PNG")
            written += 1
    if written:
        logger.debug("Generated %d corner assets in %s", written, asset_dir())
    return written


def build_corner_layers(
    rects, selected, frame_w: int, frame_h: int, canvas_w: int, canvas_h: int,
) -> list[CornerLayer]:
    """Four corner placements per selected rect, scaled into canvas pixels."""
    sx = canvas_w / frame_w
    sy = canvas_h / frame_h
    cs = CORNER_SIZE
    layers = []
    for rect in rects:
        if rect.focal_length not in selected:
            continue
        color = color_name(rect.color_index or 1)
        left = round(rect.left * sx)
        top = round(rect.top * sy)
        right = round(rect.right * sx)
        bottom = round(rect.bottom * sy)
        for corner, x, y in (
            ("tl", left, top),
            ("tr", right - cs, top),
            ("bl", left, bottom - cs),
            ("br", right - cs, bottom - cs),
        ):
            layers.append(CornerLayer(corner_asset_path(corner, color), x, y, rect.focal_length))
    return layers
