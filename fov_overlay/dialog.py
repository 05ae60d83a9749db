"""
FOV overlay dialog.

Layout, top to bottom: bold header line, a group of focal-length checkboxes
(three columns, each with a color swatch), the View and Highlight crop
selectors with the warning label, the overlay image and a Close button.

Widgets only mirror ``ViewState``: user input is forwarded to the state,
and the state's change notifications refresh the widgets.  Render results
arrive on a worker thread and are marshalled to the UI thread through the
``published`` signal.
"""

import logging
import math

from PyQt6.QtCore import Qt, QTimer, pyqtSignal
from PyQt6.QtGui import QCloseEvent
from PyQt6.QtWidgets import (
    QApplication, QCheckBox, QComboBox, QDialog, QDialogButtonBox, QGridLayout,
    QGroupBox, QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget,
)

from fov_overlay.colors import color_rgb
from fov_overlay.config import APP_TITLE, DISPLAY_FRACTION_H, DISPLAY_FRACTION_W, SENSOR_SIZES
from fov_overlay.models import VIEW_CROPPED, VIEW_FULL, calculate_fov_angle, suggest_target_focal_lengths
from fov_overlay.overlay_view import OverlayView
from fov_overlay.view_state import CHANGE_VIEW_CHOICES, CHANGE_VIEW_MODE

logger = logging.getLogger(__name__)

VIEW_TITLES = {VIEW_FULL: "Full Frame", VIEW_CROPPED: "Cropped"}
CHECKBOX_COLUMNS = 3


def screen_display_limits() -> tuple[int, int]:
    """Largest overlay canvas: a fixed fraction of the available screen."""
    w, h = 1280, 800
    screen = QApplication.primaryScreen()
    if screen is not None:
        avail = screen.availableGeometry()
        w, h = avail.width(), avail.height()
    return int(w * DISPLAY_FRACTION_W), int(h * DISPLAY_FRACTION_H)


class OverlayDialog(QDialog):
    published = pyqtSignal()

    def __init__(self, session, parent=None):
        super().__init__(parent)
        self.setWindowTitle(APP_TITLE)
        self._session = session
        self._state = session.view_state
        self._updating = False
        self._checkboxes: dict[int, QCheckBox] = {}
        self._swatches: dict[int, QLabel] = {}

        self._build_ui()
        self._refresh_all()

        self.published.connect(self._on_published)
        self._unsubscribe = [
            self._state.subscribe(self._on_state_change),
            session.subscribe_published(lambda _session: self.published.emit()),
        ]
        # Bootstrap render once the dialog is on screen
        QTimer.singleShot(0, self._start)

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        layout = QVBoxLayout(self)

        self._header = QLabel()
        font = self._header.font()
        font.setBold(True)
        self._header.setFont(font)
        layout.addWidget(self._header)

        layout.addWidget(self._build_focal_length_group())
        layout.addLayout(self._build_selector_row())

        self._view = OverlayView()
        w, h = self._session.geometry.full_display
        self._view.setMinimumSize(min(w, 640), min(h, 480))
        self._view.resize(w, h)
        layout.addWidget(self._view, stretch=1)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _build_focal_length_group(self) -> QGroupBox:
        group = QGroupBox("Target Focal Lengths (select to show overlay)")
        suggestions = suggest_target_focal_lengths(self._session.geometry.original_fl)
        group.setToolTip("Suggested crops: " + ", ".join(f"{fl}mm" for fl in suggestions))
        grid = QGridLayout(group)

        focal_lengths = self._state.focal_lengths
        per_column = math.ceil(len(focal_lengths) / CHECKBOX_COLUMNS)
        for i, fl in enumerate(focal_lengths):
            # Fill top-to-bottom, then left-to-right
            row, col = i % per_column, i // per_column
            cb = QCheckBox(f"{fl}mm")
            cb.toggled.connect(lambda checked, fl=fl: self._on_checkbox_toggled(fl, checked))
            swatch = QLabel("■")
            index = self._session.geometry.color_for(fl)
            if index:
                r, g, b = color_rgb(index)
                swatch.setStyleSheet(f"color: rgb({r},{g},{b}); font-weight: bold;")
            swatch.setFixedWidth(14)
            cell = QWidget()
            cell_layout = QHBoxLayout(cell)
            cell_layout.setContentsMargins(0, 0, 12, 0)
            cell_layout.addWidget(cb)
            cell_layout.addWidget(swatch)
            cell_layout.addStretch()
            grid.addWidget(cell, row, col)
            self._checkboxes[fl] = cb
            self._swatches[fl] = swatch
        return group

    def _build_selector_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        row.addWidget(QLabel("View:"))
        self._view_combo = QComboBox()
        self._view_combo.setMinimumWidth(110)
        self._view_combo.currentIndexChanged.connect(self._on_view_combo_changed)
        row.addWidget(self._view_combo)
        row.addSpacing(15)

        row.addWidget(QLabel("Highlight crop:"))
        self._highlight_combo = QComboBox()
        self._highlight_combo.setMinimumWidth(120)
        self._highlight_combo.currentIndexChanged.connect(self._on_highlight_combo_changed)
        row.addWidget(self._highlight_combo)
        row.addSpacing(15)

        self._warning = QLabel()
        self._warning.setStyleSheet("color: rgb(204, 128, 0);")
        self._warning.setWordWrap(True)
        row.addWidget(self._warning, stretch=1)
        self._dismiss = QPushButton("Dismiss")
        self._dismiss.clicked.connect(self._session.dismiss_warnings)
        row.addWidget(self._dismiss)
        return row

    # =========================================================================
    # State → widgets
    # =========================================================================

    def _refresh_all(self):
        self._updating = True
        try:
            self._header.setText(self._session.header_text())
            self._refresh_view_combo()
            self._refresh_checkboxes()
            self._refresh_highlight_combo()
            self._refresh_warning()
        finally:
            self._updating = False

    def _refresh_view_combo(self):
        self._view_combo.clear()
        for mode in self._state.view_mode_choices:
            self._view_combo.addItem(VIEW_TITLES[mode], mode)
        self._view_combo.setCurrentIndex(max(0, self._view_combo.findData(self._state.view_mode)))
        self._view_combo.setEnabled(len(self._state.view_mode_choices) > 1)

    def _refresh_checkboxes(self):
        frame = self._session.geometry.frame(self._state.view_mode)
        rects = {r.focal_length: r for r in frame.rects}
        diagonal = SENSOR_SIZES["fullFrame"]["diagonal"]
        for fl, cb in self._checkboxes.items():
            enabled = self._state.is_enabled(fl)
            cb.setEnabled(enabled)
            cb.setChecked(self._state.is_selected(fl))
            self._swatches[fl].setVisible(enabled and self._state.is_selected(fl))
            rect = rects.get(fl)
            if rect is None:
                cb.setToolTip(f"{fl}mm is not longer than the current {frame.base_fl:g}mm")
                continue
            cb.setToolTip(
                f"{fl}mm: {calculate_fov_angle(fl, diagonal):.2f}° diagonal field of view\n"
                f"{rect.width} × {rect.height} ({rect.percentage}% width, {rect.megapixels:.1f} MP)"
            )

    def _refresh_highlight_combo(self):
        self._highlight_combo.clear()
        for fl in self._state.highlight_choices:
            self._highlight_combo.addItem("None" if fl is None else f"{fl}mm", fl or 0)
        current = self._state.highlight_fl or 0
        self._highlight_combo.setCurrentIndex(max(0, self._highlight_combo.findData(current)))

    def _refresh_warning(self):
        text = self._session.warning_text
        self._warning.setText(text)
        self._warning.setVisible(bool(text))
        self._dismiss.setVisible(bool(text))

    def _on_state_change(self, change, state):
        if change == CHANGE_VIEW_CHOICES:
            self._refresh_warning()
        if change in (CHANGE_VIEW_MODE, CHANGE_VIEW_CHOICES):
            self._view.set_message("Rendering overlay…")
        self._refresh_all()

    def _on_published(self):
        session = self._session
        mode = session.overlay_view_mode
        if mode is not None:
            frame = session.geometry.frame(mode)
            self._view.set_overlay(
                session.overlay_image_path, frame.display_width, frame.display_height,
                session.overlay_layers,
            )
        elif session.warning_text:
            self._view.set_message("Overlay unavailable")
        self._refresh_warning()

    # =========================================================================
    # Widgets → state
    # =========================================================================

    def _on_checkbox_toggled(self, fl: int, checked: bool):
        if self._updating:
            return
        if not self._state.set_selected(fl, checked):
            # Refused (disabled focal length); snap the checkbox back
            self._refresh_all()

    def _on_view_combo_changed(self, index: int):
        if self._updating or index < 0:
            return
        mode = self._view_combo.itemData(index)
        if mode != self._state.view_mode:
            self._state.set_view_mode(mode)

    def _on_highlight_combo_changed(self, index: int):
        if self._updating or index < 0:
            return
        fl = self._highlight_combo.itemData(index) or None
        self._state.set_highlight(fl)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _start(self):
        QApplication.setOverrideCursor(Qt.CursorShape.WaitCursor)
        try:
            self._session.start()
        finally:
            QApplication.restoreOverrideCursor()
        self._refresh_all()
        self._on_published()

    def done(self, result: int):
        self._shutdown()
        super().done(result)

    def closeEvent(self, event: QCloseEvent):
        self._shutdown()
        super().closeEvent(event)

    def _shutdown(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self._session.close()
