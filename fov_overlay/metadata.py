"""
Helpers for invoking the :command:`exiftool` CLI.

exiftool is optional.  It is used to recover the 35mm-equivalent focal
length when the host does not report one, to read basic tags from formats
Pillow cannot parse (camera raw), and to extract the embedded full-size
JPEG preview from raw files for the full-frame view.

Every public helper either returns a value or raises ``ExternalToolError``;
callers at the I/O boundary turn that into a degraded capability.

This module is Qt-free and safe for worker import.
"""

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path

from fov_overlay.config import EXIFTOOL_TIMEOUT_SECONDS
from fov_overlay.errors import ExternalToolError

logger = logging.getLogger(__name__)

# Embedded preview tags, largest first
PREVIEW_TAGS = ("JpgFromRaw", "PreviewImage", "OtherImage")


def find_exiftool() -> str | None:
    """Return the exiftool executable path, or None if it is not on PATH."""
    return shutil.which("exiftool")


def has_exiftool() -> bool:
    return find_exiftool() is not None


def _run_exiftool(args: list[str], text: bool = True) -> subprocess.CompletedProcess:
    executable = find_exiftool()
    if executable is None:
        raise ExternalToolError(
            "exiftool executable not found. Install it from https://exiftool.org/ "
            "and ensure it is available on PATH."
        )

    # Hide the console window on Windows
    startupinfo = None
    creationflags = 0
    if os.name == "nt":
        startupinfo = subprocess.STARTUPINFO()
        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        startupinfo.wShowWindow = subprocess.SW_HIDE
        creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)

    cmd = [executable] + args
    logger.debug("Running %s", cmd)
    kwargs = {"encoding": "utf-8", "errors": "replace"} if text else {}
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            timeout=EXIFTOOL_TIMEOUT_SECONDS,
            startupinfo=startupinfo,
            creationflags=creationflags,
            **kwargs,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ExternalToolError(f"Failed to execute exiftool: {exc}") from exc

    if result.returncode != 0:
        stderr = result.stderr if text else result.stderr.decode(errors="replace")
        raise ExternalToolError(f"ExifTool failed with an error: {stderr.strip() or 'unknown error'}")
    return result


def read_tags(path: Path, tags) -> dict:
    """Read numeric values for *tags* from *path*; missing tags are omitted."""
    args = ["-n", "-json"] + [f"-{tag}" for tag in tags] + [str(path)]
    result = _run_exiftool(args)
    try:
        payload = json.loads(result.stdout or "[]")
    except json.JSONDecodeError as exc:
        raise ExternalToolError(f"Failed to parse JSON output from ExifTool: {exc}") from exc
    if not payload or not isinstance(payload[0], dict):
        return {}
    entry = payload[0]
    return {tag: entry[tag] for tag in tags if tag in entry}


def read_focal_length_35mm(path: Path) -> float | None:
    """``-FocalLengthIn35mmFormat`` as a positive number, or None."""
    result = _run_exiftool(["-s3", "-n", "-FocalLengthIn35mmFormat", str(path)])
    text = (result.stdout or "").strip()
    try:
        value = float(text.split()[0]) if text else 0.0
    except ValueError:
        return None
    return value if value > 0 else None


def extract_preview(path: Path) -> bytes | None:
    """Return the largest embedded JPEG preview of *path*, or None if it has none."""
    for tag in PREVIEW_TAGS:
        result = _run_exiftool(["-b", f"-{tag}", str(path)], text=False)
        data = result.stdout or b""
        # JPEG SOI marker
        if data[:2] == b"\xff\xd8":
            logger.debug("Extracted %s (%d bytes) from %s", tag, len(data), path)
            return data
    return None
