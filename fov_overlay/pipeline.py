"""
Render pipeline: view snapshot → base image → draw commands → backend.

``OverlayPipeline.render(job)`` produces one ``RenderResult`` for the
scheduler.  It never raises for I/O trouble: thumbnail timeouts, missing
originals and backend failures come back as ``ok=False`` results carrying a
message.

``bootstrap(job)`` is the first render of a session, repeated by ``render``
until a base image has loaded.  It tries every available backend in
preference order and keeps the first that succeeds.
If none does, the pipeline switches permanently to corner-marker mode: the
result is the undrawn base image plus corner layers for the view to stack
on top, and a warning that dimming is unavailable.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from fov_overlay.corner_markers import (
    CORNER_FALLBACK_WARNING, build_corner_layers, ensure_corner_assets,
)
from fov_overlay.draw_commands import build_draw_commands
from fov_overlay.errors import FovOverlayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    ok: bool
    path: Path | None = None
    layers: tuple = ()
    warning: str | None = None
    view_mode: str | None = None


class OverlayPipeline:
    def __init__(self, geometry, base_images, backends):
        self._geometry = geometry
        self._base_images = base_images
        self._backends = list(backends)
        self._corner_mode = False
        # Set once bootstrap has reached the backends with a base image
        self._validated = False

    @property
    def corner_mode(self) -> bool:
        return self._corner_mode

    @property
    def active_backend(self):
        return self._backends[0] if self._backends and not self._corner_mode else None

    def render(self, job) -> RenderResult:
        if not self._validated:
            return self.bootstrap(job)
        frame = self._geometry.frame(job.view_mode)
        try:
            base = self._base_images.resolve(job.view_mode)
        except (FovOverlayError, OSError) as exc:
            logger.warning("No base image for %s view: %s", job.view_mode, exc)
            return RenderResult(False, warning=f"Could not load preview: {exc}", view_mode=job.view_mode)

        if self._corner_mode:
            return self._corner_result(job, frame, base.path)

        backend = self.active_backend
        if backend is None:
            return RenderResult(False, warning="No overlay renderer is available", view_mode=job.view_mode)
        return self._render_with(backend, job, frame, base.path)

    def bootstrap(self, job) -> RenderResult:
        """First render: pick a working backend or fall back to corner markers."""
        frame = self._geometry.frame(job.view_mode)
        try:
            base = self._base_images.resolve(job.view_mode)
        except (FovOverlayError, OSError) as exc:
            logger.warning("No base image for %s view: %s", job.view_mode, exc)
            return RenderResult(False, warning=f"Could not load preview: {exc}", view_mode=job.view_mode)

        self._validated = True
        for index, backend in enumerate(self._backends):
            result = self._render_with(backend, job, frame, base.path)
            if result.ok:
                # Keep the working backend first for every later render
                self._backends = [backend] + self._backends[:index] + self._backends[index + 1:]
                logger.info("Using %s overlay backend", backend.name)
                return result
            logger.warning("Backend %s failed its first render", backend.name)

        logger.warning("No render backend works; switching to corner markers")
        self._corner_mode = True
        try:
            ensure_corner_assets()
        except OSError as exc:
            logger.warning("Could not create corner assets: %s", exc)
        return self._corner_result(job, frame, base.path)

    # --- Internals ---

    def _render_with(self, backend, job, frame, base_path: Path) -> RenderResult:
        commands = build_draw_commands(
            frame.rects, job.selected, job.highlight_fl, frame.polygon,
            frame.width, frame.height, frame.display_width, frame.display_height,
        )
        path = backend.render(base_path, commands, frame.display_width, frame.display_height)
        if path is None:
            return RenderResult(
                False, warning=f"Overlay render failed ({backend.name})", view_mode=job.view_mode,
            )
        return RenderResult(True, path=path, view_mode=job.view_mode)

    def _corner_result(self, job, frame, base_path: Path) -> RenderResult:
        layers = build_corner_layers(
            frame.rects, job.selected, frame.width, frame.height,
            frame.display_width, frame.display_height,
        )
        return RenderResult(
            True, path=base_path, layers=tuple(layers),
            warning=CORNER_FALLBACK_WARNING, view_mode=job.view_mode,
        )
