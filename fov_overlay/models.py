"""
Data models and field-of-view geometry.

CropRect, CropPolygon, DevelopCrop and PhotoGeometry are the core data
structures shared by the view state, the draw-command builder and the
render backends.  The geometry helpers are pure: they take scalar inputs,
perform no I/O and never guess, returning ``None`` where a result does not
exist (e.g. a target focal length no longer than the base one).

All crop-edge values are normalized to ``[0, 1]`` of the original frame,
the convention used by Lightroom-style develop settings.  ``CropAngle`` is
in degrees and the crop edges are expressed in the *rotated* space, so
corners are rotated by ``-angle`` about the frame centre to land in the
unrotated original frame.

This module is Qt-free and safe for worker import.
"""

import math
import re
from dataclasses import dataclass, field

from fov_overlay.colors import assign_color_indices
from fov_overlay.config import (
    CROP_EPSILON, CROP_SENSOR_TOLERANCE_MM, DEGENERATE_CROP_EPSILON,
    STANDARD_FOCAL_LENGTHS,
)

VIEW_FULL = "full"
VIEW_CROPPED = "cropped"


# =============================================================================
# Data classes
# =============================================================================
@dataclass
class CropRect:
    """Centered crop rectangle simulating *focal_length*, in frame pixels."""
    focal_length: int
    crop_ratio: float
    width: int
    height: int
    left: int
    top: int
    right: int
    bottom: int
    megapixels: float
    percentage: int
    color_index: int = 0  # 1-based palette index, 0 = not yet assigned


@dataclass(frozen=True)
class CropPolygon:
    """Applied-crop corners (TL, TR, BR, BL) in normalized original-frame coordinates."""
    corners: tuple[tuple[float, float], ...]

    def scaled(self, width: float, height: float) -> list[tuple[float, float]]:
        """Return the corners in pixel coordinates of a *width* × *height* canvas."""
        return [(x * width, y * height) for x, y in self.corners]


@dataclass(frozen=True)
class DevelopCrop:
    """Develop-settings crop as reported by the host."""
    left: float = 0.0
    top: float = 0.0
    right: float = 1.0
    bottom: float = 1.0
    angle: float = 0.0

    @property
    def is_cropped(self) -> bool:
        return is_cropped(self.left, self.top, self.right, self.bottom)


@dataclass(frozen=True)
class FrameSpec:
    """Everything needed to draw overlays for one view mode."""
    view_mode: str
    base_fl: float
    width: int
    height: int
    display_width: int
    display_height: int
    rects: tuple = ()
    polygon: CropPolygon | None = None


@dataclass
class PhotoGeometry:
    """Derived geometry for one photo, computed once when a session opens."""
    lens_fl: float
    original_fl: float
    is_crop_sensor: bool
    image_w: int
    image_h: int
    crop: DevelopCrop = field(default_factory=DevelopCrop)
    polygon: CropPolygon | None = None
    effective_fl: float = 0
    cropped_w: int = 0
    cropped_h: int = 0
    full_rects: list = field(default_factory=list)
    cropped_rects: list = field(default_factory=list)
    full_display: tuple[int, int] = (0, 0)
    cropped_display: tuple[int, int] = (0, 0)

    @property
    def is_cropped(self) -> bool:
        return self.polygon is not None

    def color_for(self, focal_length: int) -> int:
        """Palette index assigned to *focal_length*, or 0 if it is not available."""
        for rect in self.full_rects:
            if rect.focal_length == focal_length:
                return rect.color_index
        return 0

    def frame(self, view_mode: str) -> FrameSpec:
        if view_mode == VIEW_CROPPED:
            return FrameSpec(
                view_mode=VIEW_CROPPED,
                base_fl=self.effective_fl,
                width=self.cropped_w,
                height=self.cropped_h,
                display_width=self.cropped_display[0],
                display_height=self.cropped_display[1],
                rects=tuple(self.cropped_rects),
                polygon=None,
            )
        if view_mode != VIEW_FULL:
            raise ValueError(f"unknown view mode: {view_mode!r}")
        return FrameSpec(
            view_mode=VIEW_FULL,
            base_fl=self.original_fl,
            width=self.image_w,
            height=self.image_h,
            display_width=self.full_display[0],
            display_height=self.full_display[1],
            rects=tuple(self.full_rects),
            polygon=self.polygon,
        )


# =============================================================================
# Metadata parsing
# =============================================================================
_FL_PATTERN = re.compile(r"(\d+\.?\d*)")
_DIM_PATTERN = re.compile(r"(\d+)\s*[x×]\s*(\d+)")


def parse_focal_length(text: str | None) -> float | None:
    """Parse a formatted focal length. ``"300 mm"`` → ``300.0``"""
    if not text:
        return None
    match = _FL_PATTERN.search(text)
    if not match:
        return None
    value = float(match.group(1))
    return value if value > 0 else None


def parse_dimensions(text: str | None) -> tuple[int, int] | None:
    """Parse a formatted dimension string. ``"6000 x 4000"`` → ``(6000, 4000)``"""
    if not text:
        return None
    match = _DIM_PATTERN.search(text)
    if not match:
        return None
    w, h = int(match.group(1)), int(match.group(2))
    if w <= 0 or h <= 0:
        return None
    return w, h


# =============================================================================
# Crop math
# =============================================================================
def compute_crop_rect(base_fl: float, target_fl: float, width: int, height: int) -> CropRect | None:
    """
    Compute the centered crop that turns *base_fl* into *target_fl*.

    Only longer focal lengths can be simulated by cropping, so ``None`` is
    returned when ``target_fl <= base_fl``.  Pixel values are floored.
    """
    if base_fl <= 0 or width <= 0 or height <= 0:
        raise ValueError("focal length and frame dimensions must be positive")
    if target_fl <= base_fl:
        return None

    crop_ratio = target_fl / base_fl
    crop_w = width / crop_ratio
    crop_h = height / crop_ratio
    left = math.floor((width - crop_w) / 2)
    top = math.floor((height - crop_h) / 2)
    w = math.floor(crop_w)
    h = math.floor(crop_h)

    return CropRect(
        focal_length=target_fl,
        crop_ratio=crop_ratio,
        width=w,
        height=h,
        left=left,
        top=top,
        right=left + w,
        bottom=top + h,
        megapixels=math.floor(crop_w * crop_h / 1_000_000 * 10) / 10,
        percentage=math.floor(100 / crop_ratio),
    )


def compute_all_crop_rects(
    base_fl: float, candidates, width: int, height: int,
) -> list[CropRect]:
    """Crop rectangles for every candidate longer than *base_fl*, outermost first."""
    rects = []
    for target_fl in candidates:
        rect = compute_crop_rect(base_fl, target_fl, width, height)
        if rect is not None:
            rects.append(rect)
    rects.sort(key=lambda r: r.focal_length)
    return rects


def compute_effective_fl(original_fl: float, crop_left: float, crop_right: float) -> float:
    """35mm-equivalent focal length implied by an applied width crop, rounded.

    A ~zero crop width is a host data error; it is treated as "no crop" and
    *original_fl* is returned unchanged.
    """
    crop_width = crop_right - crop_left
    if crop_width < DEGENERATE_CROP_EPSILON:
        return original_fl
    return int(math.floor(original_fl / crop_width + 0.5))


def is_cropped(left: float, top: float, right: float, bottom: float) -> bool:
    """True when any crop edge differs from the full frame by more than CROP_EPSILON."""
    return (
        left > CROP_EPSILON
        or top > CROP_EPSILON
        or right < 1 - CROP_EPSILON
        or bottom < 1 - CROP_EPSILON
    )


def rotate_point(
    x: float, y: float, angle_deg: float, cx: float = 0.5, cy: float = 0.5,
) -> tuple[float, float]:
    """Rotate ``(x, y)`` by *angle_deg* about ``(cx, cy)``."""
    rad = math.radians(angle_deg)
    cos_a = math.cos(rad)
    sin_a = math.sin(rad)
    dx, dy = x - cx, y - cy
    return cos_a * dx - sin_a * dy + cx, sin_a * dx + cos_a * dy + cy


def compute_crop_polygon(
    crop_left: float, crop_top: float, crop_right: float, crop_bottom: float,
    crop_angle: float = 0.0,
) -> CropPolygon:
    """Map the applied crop's corners back into the unrotated original frame.

    Corners are returned top-left, top-right, bottom-right, bottom-left.
    """
    raw = (
        (crop_left, crop_top),
        (crop_right, crop_top),
        (crop_right, crop_bottom),
        (crop_left, crop_bottom),
    )
    return CropPolygon(tuple(rotate_point(x, y, -crop_angle) for x, y in raw))


def compute_crop_sensor_equivalent(lens_fl: float, fl35mm_hint: float | None) -> tuple[float, bool]:
    """
    Normalize the base focal length to full-frame terms.

    Returns ``(base_fl, is_crop_sensor)``.  The 35mm-equivalent hint wins when
    it exceeds the lens focal length by more than rounding noise; it is then
    rounded to whole millimetres.
    """
    if fl35mm_hint and fl35mm_hint > lens_fl + CROP_SENSOR_TOLERANCE_MM:
        return int(math.floor(fl35mm_hint + 0.5)), True
    return lens_fl, False


def calculate_fov_angle(focal_length: float, sensor_dimension: float) -> float:
    """Angle of view in degrees: ``2 * atan(d / 2f)``, truncated to 2 decimals."""
    radians = 2 * math.atan(sensor_dimension / (2 * focal_length))
    return math.floor(math.degrees(radians) * 100) / 100


def suggest_target_focal_lengths(original_fl: float) -> list[int]:
    """Suggest longer focal lengths (1.4×–4×) rounded down to "nice" numbers."""
    suggestions = []
    for mult in (1.4, 1.5, 2.0, 3.0, 4.0):
        target = math.floor(original_fl * mult)
        if target >= 100:
            target = (target // 50) * 50
        elif target >= 50:
            target = (target // 10) * 10
        suggestions.append(target)
    return suggestions


def fit_display_size(img_w: int, img_h: int, max_w: int, max_h: int) -> tuple[int, int]:
    """Largest size with the image's aspect ratio that fits in *max_w* × *max_h*."""
    aspect = img_w / img_h
    if aspect > max_w / max_h:
        return max_w, max(1, math.floor(max_w / aspect))
    return max(1, math.floor(max_h * aspect)), max_h


# =============================================================================
# Aggregate
# =============================================================================
def build_photo_geometry(
    lens_fl: float,
    fl35mm_hint: float | None,
    image_w: int,
    image_h: int,
    crop: DevelopCrop,
    max_display: tuple[int, int],
    focal_lengths=STANDARD_FOCAL_LENGTHS,
) -> PhotoGeometry:
    """Compute everything a session needs from the host's scalar metadata."""
    original_fl, is_crop_sensor = compute_crop_sensor_equivalent(lens_fl, fl35mm_hint)

    polygon = None
    cropped_w, cropped_h = image_w, image_h
    effective_fl = original_fl
    if crop.is_cropped and crop.right - crop.left >= DEGENERATE_CROP_EPSILON \
            and crop.bottom - crop.top >= DEGENERATE_CROP_EPSILON:
        polygon = compute_crop_polygon(crop.left, crop.top, crop.right, crop.bottom, crop.angle)
        cropped_w = max(1, math.floor(image_w * (crop.right - crop.left)))
        cropped_h = max(1, math.floor(image_h * (crop.bottom - crop.top)))
        effective_fl = compute_effective_fl(original_fl, crop.left, crop.right)

    full_rects = compute_all_crop_rects(original_fl, focal_lengths, image_w, image_h)
    if polygon is not None:
        cropped_rects = compute_all_crop_rects(effective_fl, focal_lengths, cropped_w, cropped_h)
    else:
        cropped_rects = full_rects
    assign_color_indices(full_rects, cropped_rects)

    max_w, max_h = max_display
    return PhotoGeometry(
        lens_fl=lens_fl,
        original_fl=original_fl,
        is_crop_sensor=is_crop_sensor,
        image_w=image_w,
        image_h=image_h,
        crop=crop,
        polygon=polygon,
        effective_fl=effective_fl,
        cropped_w=cropped_w,
        cropped_h=cropped_h,
        full_rects=full_rects,
        cropped_rects=cropped_rects,
        full_display=fit_display_size(image_w, image_h, max_w, max_h),
        cropped_display=fit_display_size(cropped_w, cropped_h, max_w, max_h),
    )
