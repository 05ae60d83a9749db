"""
Backend-agnostic overlay draw commands.

``build_draw_commands`` turns the active crop rectangles and view state into
an ordered list of primitives in canvas pixel coordinates.  Backends draw
them in list order, which is also the z-order (bottom to top):

1. ``PolygonDim``  - dim everything outside the applied crop polygon and
   stroke its border (full-frame view only);
2. ``RectOutline`` - one outline per selected focal length, outermost first;
3. ``DimRect`` × 4 - strips dimming everything outside the highlighted
   focal length's rectangle.

Frame coordinates are scaled independently on X and Y
(``canvas_dim / frame_dim``); the canvas always shares the frame's aspect
ratio, so both factors agree up to display rounding.

This module is Qt-free and safe for worker import.
"""

from dataclasses import dataclass

from fov_overlay.colors import color_rgb
from fov_overlay.config import (
    BASE_LINE_WIDTH, CROP_BORDER_RGBA, CROP_DIM_ALPHA, HIGHLIGHT_DIM_ALPHA,
    RECT_STROKE_ALPHA, REFERENCE_DISPLAY_WIDTH,
)
from fov_overlay.models import CropPolygon


# =============================================================================
# Primitives
# =============================================================================
@dataclass(frozen=True)
class RectOutline:
    left: float
    top: float
    right: float
    bottom: float
    rgb: tuple[int, int, int]
    alpha: int
    line_width: int
    focal_length: int = 0


@dataclass(frozen=True)
class PolygonDim:
    """Even-odd fill of (canvas, polygon) plus the polygon's border stroke."""
    points: tuple[tuple[float, float], ...]
    dim_alpha: int
    stroke_rgba: tuple[int, int, int, int]
    line_width: int


@dataclass(frozen=True)
class DimRect:
    left: float
    top: float
    right: float
    bottom: float
    alpha: int


# =============================================================================
# Builder
# =============================================================================
def scaled_line_width(canvas_w: int) -> int:
    """Stroke width proportional to the canvas width, never below 1px."""
    return max(1, round(BASE_LINE_WIDTH * canvas_w / REFERENCE_DISPLAY_WIDTH))


def highlight_strips(
    left: float, top: float, right: float, bottom: float,
    canvas_w: float, canvas_h: float, alpha: int = HIGHLIGHT_DIM_ALPHA,
) -> list[DimRect]:
    """Four strips (top, bottom, left, right) covering the canvas outside a rect."""
    return [
        DimRect(0, 0, canvas_w, top, alpha),
        DimRect(0, bottom, canvas_w, canvas_h, alpha),
        DimRect(0, top, left, bottom, alpha),
        DimRect(right, top, canvas_w, bottom, alpha),
    ]


def build_draw_commands(
    rects,
    selected,
    highlight_fl: int | None,
    polygon: CropPolygon | None,
    frame_w: int,
    frame_h: int,
    canvas_w: int,
    canvas_h: int,
) -> list:
    """
    Build the ordered draw list for one render.

    Parameters
    ----------
    rects : sequence of CropRect
        Active rectangles for the current view mode (carrying ``color_index``).
    selected : collection of int
        Checked focal lengths.
    highlight_fl : int or None
        Focal length whose outside area is dimmed.  Ignored when no rect in
        *rects* matches (e.g. it belongs to the other view mode).
    polygon : CropPolygon or None
        Applied crop, only passed for the full-frame view.
    frame_w, frame_h : int
        Source frame size in sensor pixels.
    canvas_w, canvas_h : int
        Output canvas size in pixels.
    """
    sx = canvas_w / frame_w
    sy = canvas_h / frame_h
    line_width = scaled_line_width(canvas_w)
    commands: list = []

    if polygon is not None:
        commands.append(PolygonDim(
            points=tuple(polygon.scaled(canvas_w, canvas_h)),
            dim_alpha=CROP_DIM_ALPHA,
            stroke_rgba=CROP_BORDER_RGBA,
            line_width=line_width,
        ))

    highlight_rect = None
    for rect in rects:
        if rect.focal_length == highlight_fl:
            highlight_rect = rect
        if rect.focal_length not in selected:
            continue
        commands.append(RectOutline(
            left=rect.left * sx,
            top=rect.top * sy,
            right=rect.right * sx,
            bottom=rect.bottom * sy,
            rgb=color_rgb(rect.color_index or 1),
            alpha=RECT_STROKE_ALPHA,
            line_width=line_width,
            focal_length=rect.focal_length,
        ))

    if highlight_fl is not None and highlight_rect is not None:
        commands.extend(highlight_strips(
            highlight_rect.left * sx, highlight_rect.top * sy,
            highlight_rect.right * sx, highlight_rect.bottom * sy,
            canvas_w, canvas_h,
        ))

    return commands
