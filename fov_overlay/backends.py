"""
Pluggable overlay rendering backends.

A backend composites a list of draw commands (see ``draw_commands``) onto
a base image scaled to the canvas size and writes a JPEG under a fresh,
never-reused name.  ``render`` never raises: any failure (missing tool,
process error, unreadable or malformed output) is logged and reported as
``None`` so the pipeline can fall back.

Two implementations:

* ``PillowCanvasBackend`` - draws in-process on an RGBA layer with
  ``ImageDraw`` and alpha-composites each primitive in z-order.
* ``MagickScriptBackend`` - generates an ImageMagick MVG draw script and
  runs ``magick``/``convert`` on it with a timeout.

``select_backends()`` orders the available implementations by capability
detection and the ``FOV_OVERLAY_BACKEND`` preference.

This module is Qt-free and safe for worker import.
"""

import logging
import subprocess
from pathlib import Path

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from fov_overlay.config import (
    HAS_MAGICK, JPEG_QUALITY, PREFERRED_BACKEND, RENDER_TIMEOUT_SECONDS, magick_cmd,
)
from fov_overlay.draw_commands import DimRect, PolygonDim, RectOutline
from fov_overlay.image_io import next_output_path

logger = logging.getLogger(__name__)


class RenderBackend:
    """Interface: composite draw commands onto a base image."""

    name = "base"

    def is_available(self) -> bool:
        raise NotImplementedError

    def render(self, base_path: Path, commands, canvas_w: int, canvas_h: int) -> Path | None:
        raise NotImplementedError


# =============================================================================
# Pillow canvas backend
# =============================================================================
class PillowCanvasBackend(RenderBackend):
    name = "canvas"

    def is_available(self) -> bool:
        return True

    def render(self, base_path: Path, commands, canvas_w: int, canvas_h: int) -> Path | None:
        out_path = next_output_path("fov_render")
        try:
            with Image.open(base_path) as src:
                base = ImageOps.exif_transpose(src).convert("RGBA")
            if base.size != (canvas_w, canvas_h):
                base = base.resize((canvas_w, canvas_h), Image.Resampling.LANCZOS)
            for command in commands:
                base = Image.alpha_composite(base, self._layer_for(command, base.size))
            base.convert("RGB").save(str(out_path), "JPEG", quality=JPEG_QUALITY)
        except (OSError, ValueError, UnidentifiedImageError) as exc:
            logger.warning("Canvas render of %s failed: %s", base_path, exc)
            return None
        return out_path

    @staticmethod
    def _layer_for(command, size: tuple[int, int]) -> Image.Image:
        """Draw one primitive on a transparent layer of *size*."""
        if isinstance(command, PolygonDim):
            # Even-odd of (canvas, polygon): fill everything, then punch the polygon out
            layer = Image.new("RGBA", size, (0, 0, 0, command.dim_alpha))
            draw = ImageDraw.Draw(layer)
            draw.polygon(command.points, fill=(0, 0, 0, 0))
            points = list(command.points) + [command.points[0]]
            draw.line(points, fill=command.stroke_rgba, width=command.line_width, joint="curve")
            return layer

        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        if isinstance(command, RectOutline):
            draw.rectangle(
                (command.left, command.top, command.right, command.bottom),
                outline=(*command.rgb, command.alpha), width=command.line_width,
            )
        elif isinstance(command, DimRect):
            if command.right > command.left and command.bottom > command.top:
                draw.rectangle(
                    (command.left, command.top, command.right, command.bottom),
                    fill=(0, 0, 0, command.alpha),
                )
        else:
            raise ValueError(f"unsupported draw command: {command!r}")
        return layer


# =============================================================================
# ImageMagick script backend
# =============================================================================
def _rgba(r: int, g: int, b: int, a: int) -> str:
    return f"rgba({r},{g},{b},{a / 255:.3f})"


def _pt(x: float, y: float) -> str:
    return f"{x:.2f},{y:.2f}"


def build_mvg_script(commands, canvas_w: int, canvas_h: int) -> str:
    """Translate draw commands into an ImageMagick MVG script."""
    lines = [
        "push graphic-context",
        f"viewbox 0 0 {canvas_w} {canvas_h}",
        "stroke-linejoin round",
    ]
    for command in commands:
        if isinstance(command, PolygonDim):
            outer = f"M 0,0 L {canvas_w},0 L {canvas_w},{canvas_h} L 0,{canvas_h} Z"
            inner = "M " + " L ".join(_pt(x, y) for x, y in command.points) + " Z"
            lines += [
                "fill-rule evenodd",
                "stroke none",
                f"fill {_rgba(0, 0, 0, command.dim_alpha)}",
                f"path '{outer} {inner}'",
                "fill none",
                f"stroke {_rgba(*command.stroke_rgba)}",
                f"stroke-width {command.line_width}",
                "polygon " + " ".join(_pt(x, y) for x, y in command.points),
            ]
        elif isinstance(command, RectOutline):
            lines += [
                "fill none",
                f"stroke {_rgba(*command.rgb, command.alpha)}",
                f"stroke-width {command.line_width}",
                f"rectangle {_pt(command.left, command.top)} {_pt(command.right, command.bottom)}",
            ]
        elif isinstance(command, DimRect):
            if command.right <= command.left or command.bottom <= command.top:
                continue
            lines += [
                "stroke none",
                f"fill {_rgba(0, 0, 0, command.alpha)}",
                f"rectangle {_pt(command.left, command.top)} {_pt(command.right, command.bottom)}",
            ]
        else:
            raise ValueError(f"unsupported draw command: {command!r}")
    lines.append("pop graphic-context")
    return "\n".join(lines) + "\n"


class MagickScriptBackend(RenderBackend):
    name = "magick"

    def __init__(self, timeout: float = RENDER_TIMEOUT_SECONDS):
        self._timeout = timeout

    def is_available(self) -> bool:
        return HAS_MAGICK

    def render(self, base_path: Path, commands, canvas_w: int, canvas_h: int) -> Path | None:
        out_path = next_output_path("fov_render")
        script_path = next_output_path("fov_draw", ".mvg")
        try:
            script_path.write_text(build_mvg_script(commands, canvas_w, canvas_h), encoding="utf-8")
        except (OSError, ValueError) as exc:
            logger.warning("Could not write draw script %s: %s", script_path, exc)
            return None

        cmd = magick_cmd(
            str(base_path), "-auto-orient", "-resize", f"{canvas_w}x{canvas_h}!",
            "-draw", f"@{script_path}", "-quality", str(JPEG_QUALITY), str(out_path),
        )
        logger.debug("Running %s", cmd)
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self._timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("ImageMagick render failed: %s", exc)
            return None
        if result.returncode != 0:
            logger.warning(
                "ImageMagick render failed: %s", result.stderr.decode(errors="replace").strip(),
            )
            return None

        try:
            with Image.open(out_path) as img:
                img.verify()
        except (OSError, UnidentifiedImageError) as exc:
            logger.warning("ImageMagick produced an unreadable image %s: %s", out_path, exc)
            return None
        return out_path


# =============================================================================
# Selection
# =============================================================================
def select_backends(preferred: str = PREFERRED_BACKEND, candidates=None) -> list[RenderBackend]:
    """Available backends, preferred one first."""
    if candidates is None:
        candidates = [PillowCanvasBackend(), MagickScriptBackend()]
    available = [b for b in candidates if b.is_available()]
    available.sort(key=lambda b: b.name != preferred)
    logger.info("Render backends: %s", ", ".join(b.name for b in available) or "none")
    return available
