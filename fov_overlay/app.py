"""
Application entry point and dark-theme stylesheet.

Usage:
    python -m fov_overlay.app [PHOTO]
    fov-overlay [PHOTO]          (after pip install)

Without PHOTO a file dialog asks for one.  The develop crop is read from an
``.xmp`` sidecar next to the photo or from the photo's embedded XMP.
"""

import logging
import sys
from pathlib import Path

from PyQt6.QtWidgets import QApplication, QFileDialog, QMessageBox

from fov_overlay.config import (
    APP_NAME, APP_TITLE, APP_VERSION, DECODABLE_EXTENSIONS, JPEG_EXTENSIONS, LOG_LEVEL, RAW_EXTENSIONS,
)
from fov_overlay.dialog import OverlayDialog, screen_display_limits
from fov_overlay.errors import MetadataMissingError
from fov_overlay.photo_source import FilePhotoSource
from fov_overlay.session import OverlaySession

logger = logging.getLogger(__name__)

DARK_STYLESHEET = """
    QDialog { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QGroupBox { border: 1px solid #555; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QCheckBox:disabled { color: #666; }
    QComboBox { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 3px 8px; }
    QComboBox:disabled { color: #666; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QToolTip { background: #1e1e1e; color: #ddd; border: 1px solid #555; }
"""


def _ask_for_photo() -> Path | None:
    patterns = " ".join(f"*{ext}" for ext in sorted(JPEG_EXTENSIONS | DECODABLE_EXTENSIONS | RAW_EXTENSIONS))
    path, _ = QFileDialog.getOpenFileName(None, "Select Photo", "", f"Photos ({patterns});;All files (*)")
    return Path(path) if path else None


def main():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    app.setStyleSheet(DARK_STYLESHEET)

    photo_path = Path(sys.argv[1]) if len(sys.argv) > 1 else _ask_for_photo()
    if photo_path is None:
        QMessageBox.information(None, APP_TITLE, "Please select a photo first.")
        return
    if not photo_path.is_file():
        QMessageBox.warning(None, APP_TITLE, f"File not found:\n{photo_path}")
        sys.exit(1)

    logger.info("Opening %s", photo_path)
    try:
        session = OverlaySession.open(FilePhotoSource(photo_path), screen_display_limits())
    except MetadataMissingError as e:
        QMessageBox.information(None, APP_TITLE, str(e))
        sys.exit(1)

    dialog = OverlayDialog(session)
    dialog.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
