"""
Overlay color assignment.

Each selectable focal length gets one palette color for the whole session.
Indices are derived once from the full-frame ordering (the ascending list of
focal lengths longer than the original one) and copied onto the cropped-frame
rectangles, so switching view modes never recolors an overlay.

Indices are 1-based to match the palette numbering used for the corner
assets (``corner_tl_green.png`` is color 1).

This module is Qt-free and safe for worker import.
"""

from fov_overlay.config import COLOR_NAMES, COLOR_RGB

PALETTE_SIZE = len(COLOR_NAMES)


def color_index_for(position: int) -> int:
    """Palette index for a 1-based *position* in the full-frame ordering."""
    if position < 1:
        raise ValueError(f"position must be 1-based, got {position}")
    return ((position - 1) % PALETTE_SIZE) + 1


def color_name(index: int) -> str:
    return COLOR_NAMES[index - 1]


def color_rgb(index: int) -> tuple[int, int, int]:
    return COLOR_RGB[color_name(index)]


def assign_color_indices(full_rects, cropped_rects=()) -> dict[int, int]:
    """
    Stamp ``color_index`` onto full-frame rects by position, then carry the
    same index onto matching cropped-frame rects.

    Returns the ``{focal_length: color_index}`` mapping.  A cropped rect whose
    focal length is missing from the full-frame set falls back to color 1.
    """
    mapping: dict[int, int] = {}
    for position, rect in enumerate(full_rects, start=1):
        mapping[rect.focal_length] = color_index_for(position)
        rect.color_index = mapping[rect.focal_length]
    for rect in cropped_rects:
        rect.color_index = mapping.get(rect.focal_length, 1)
    return mapping
