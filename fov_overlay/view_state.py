"""
Per-session view state: view mode, checked focal lengths and highlight.

ViewState owns the selection rules:

* a focal length is *enabled* only when it is longer than the active base
  focal length (the original one in full-frame view, the effective one in
  cropped view);
* disabled focal lengths can never be selected;
* every view-mode change re-selects the AUTO_SELECT_COUNT shortest enabled
  focal lengths, replacing any manual selection;
* the highlight is ``None`` or one of the selected, enabled focal lengths and
  falls back to ``None`` as soon as it stops being legal.

Observers subscribe with ``subscribe(callback)`` and receive
``callback(change, state)`` where *change* is one of the ``CHANGE_*`` names.
Listeners run synchronously on the thread that mutated the state (the UI
thread) and only when something actually changed.

This module is Qt-free and safe for worker import.
"""

import logging
from dataclasses import dataclass

from fov_overlay.config import AUTO_SELECT_COUNT, STANDARD_FOCAL_LENGTHS
from fov_overlay.models import VIEW_CROPPED, VIEW_FULL

logger = logging.getLogger(__name__)

CHANGE_VIEW_MODE = "view_mode"
CHANGE_SELECTION = "selection"
CHANGE_HIGHLIGHT = "highlight"
CHANGE_VIEW_CHOICES = "view_choices"


@dataclass(frozen=True)
class ViewSnapshot:
    """Immutable copy of the state captured for one render job."""
    view_mode: str
    selected: frozenset
    highlight_fl: int | None


class ViewState:
    """Mutable view state for one open dialog."""

    def __init__(
        self,
        original_fl: float,
        effective_fl: float,
        has_crop: bool,
        focal_lengths=STANDARD_FOCAL_LENGTHS,
        auto_select_count: int = AUTO_SELECT_COUNT,
    ):
        self._focal_lengths = tuple(focal_lengths)
        self._original_fl = original_fl
        self._effective_fl = effective_fl
        self._has_crop = has_crop
        self._auto_select_count = auto_select_count
        self._full_frame_available = True

        self._view_mode = VIEW_FULL
        self._selected: set[int] = set()
        self._highlight_fl: int | None = None
        self._listeners: list = []

        self._auto_select()

    # --- Subscription ---

    def subscribe(self, callback):
        """Register *callback(change, state)*; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self, change: str):
        for callback in list(self._listeners):
            callback(change, self)

    # --- Read-only properties ---

    @property
    def focal_lengths(self) -> tuple:
        return self._focal_lengths

    @property
    def view_mode(self) -> str:
        return self._view_mode

    @property
    def selected(self) -> frozenset:
        return frozenset(self._selected)

    @property
    def highlight_fl(self) -> int | None:
        return self._highlight_fl

    @property
    def full_frame_available(self) -> bool:
        return self._full_frame_available

    @property
    def active_base_fl(self) -> float:
        return self._effective_fl if self._view_mode == VIEW_CROPPED else self._original_fl

    @property
    def enabled(self) -> frozenset:
        base = self.active_base_fl
        return frozenset(fl for fl in self._focal_lengths if fl > base)

    def is_enabled(self, fl: int) -> bool:
        return fl > self.active_base_fl

    def is_selected(self, fl: int) -> bool:
        return fl in self._selected

    @property
    def view_mode_choices(self) -> list[str]:
        """View modes the selector should offer, in display order."""
        choices = []
        if self._full_frame_available:
            choices.append(VIEW_FULL)
        if self._has_crop:
            choices.append(VIEW_CROPPED)
        return choices

    @property
    def highlight_choices(self) -> list[int | None]:
        """Legal highlight values: ``None`` then every selected, enabled focal length."""
        base = self.active_base_fl
        return [None] + [fl for fl in self._focal_lengths if fl > base and fl in self._selected]

    def snapshot(self) -> ViewSnapshot:
        return ViewSnapshot(self._view_mode, frozenset(self._selected), self._highlight_fl)

    # --- Mutations ---

    def set_view_mode(self, mode: str):
        if mode not in self.view_mode_choices:
            raise ValueError(f"view mode {mode!r} is not available")
        if mode == self._view_mode:
            return
        self._view_mode = mode
        self._auto_select()
        self._notify(CHANGE_VIEW_MODE)

    def set_selected(self, fl: int, checked: bool) -> bool:
        """Check or uncheck *fl*.  Returns False if the request was refused or a no-op."""
        if fl not in self._focal_lengths:
            raise ValueError(f"{fl}mm is not a catalog focal length")
        if checked and not self.is_enabled(fl):
            logger.debug("Ignoring selection of disabled focal length %smm", fl)
            return False
        if checked == (fl in self._selected):
            return False
        if checked:
            self._selected.add(fl)
        else:
            self._selected.discard(fl)
        highlight_reset = self._validate_highlight()
        self._notify(CHANGE_SELECTION)
        if highlight_reset:
            self._notify(CHANGE_HIGHLIGHT)
        return True

    def toggle(self, fl: int) -> bool:
        return self.set_selected(fl, fl not in self._selected)

    def set_highlight(self, fl: int | None):
        if fl not in self.highlight_choices:
            raise ValueError(f"{fl}mm cannot be highlighted in the current view")
        if fl == self._highlight_fl:
            return
        self._highlight_fl = fl
        self._notify(CHANGE_HIGHLIGHT)

    def disable_full_frame(self):
        """Drop the full-frame option (no uncropped source) and force cropped view."""
        if not self._has_crop:
            raise ValueError("cropped view is not available without an applied crop")
        if not self._full_frame_available:
            return
        self._full_frame_available = False
        self._notify(CHANGE_VIEW_CHOICES)
        if self._view_mode != VIEW_CROPPED:
            self._view_mode = VIEW_CROPPED
            self._auto_select()
            self._notify(CHANGE_VIEW_MODE)

    # --- Internals ---

    def _auto_select(self):
        """Select the N shortest enabled focal lengths; everything else is cleared."""
        base = self.active_base_fl
        enabled = [fl for fl in self._focal_lengths if fl > base]
        self._selected = set(sorted(enabled)[:self._auto_select_count])
        self._validate_highlight()

    def _validate_highlight(self) -> bool:
        if self._highlight_fl is not None and self._highlight_fl not in self.highlight_choices:
            self._highlight_fl = None
            return True
        return False
