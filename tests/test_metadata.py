import subprocess

import pytest

from fov_overlay import metadata
from fov_overlay.errors import ExternalToolError


@pytest.fixture
def fake_exiftool(monkeypatch):
    """Route exiftool calls to a scripted list of CompletedProcess results."""
    calls = []
    results = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        stdout, returncode = results.pop(0) if results else ("", 0)
        return subprocess.CompletedProcess(cmd, returncode, stdout, "error text" if returncode else "")

    monkeypatch.setattr(metadata.shutil, "which", lambda name: "/usr/bin/exiftool")
    monkeypatch.setattr(metadata.subprocess, "run", fake_run)
    return calls, results


def test_missing_exiftool_raises(monkeypatch, tmp_path):
    monkeypatch.setattr(metadata.shutil, "which", lambda name: None)

    assert not metadata.has_exiftool()
    with pytest.raises(ExternalToolError, match="not found"):
        metadata.read_tags(tmp_path / "a.nef", ["FocalLength"])


def test_read_tags_returns_requested_numeric_values(fake_exiftool, tmp_path):
    calls, results = fake_exiftool
    results.append(('[{"SourceFile": "a.nef", "FocalLength": 300, "Orientation": 6}]', 0))

    tags = metadata.read_tags(tmp_path / "a.nef", ["FocalLength", "Orientation", "ImageWidth"])

    assert tags == {"FocalLength": 300, "Orientation": 6}
    assert calls[0][:3] == ["/usr/bin/exiftool", "-n", "-json"]


def test_read_tags_bad_json_raises(fake_exiftool, tmp_path):
    _, results = fake_exiftool
    results.append(("not json", 0))

    with pytest.raises(ExternalToolError, match="JSON"):
        metadata.read_tags(tmp_path / "a.nef", ["FocalLength"])


def test_nonzero_exit_raises(fake_exiftool, tmp_path):
    _, results = fake_exiftool
    results.append(("", 1))

    with pytest.raises(ExternalToolError, match="error text"):
        metadata.read_focal_length_35mm(tmp_path / "a.nef")


@pytest.mark.parametrize("stdout, expected", [("450\n", 450.0), ("", None), ("0", None), ("n/a", None)])
def test_read_focal_length_35mm(fake_exiftool, tmp_path, stdout, expected):
    _, results = fake_exiftool
    results.append((stdout, 0))

    assert metadata.read_focal_length_35mm(tmp_path / "a.nef") == expected


def test_extract_preview_takes_first_jpeg(fake_exiftool, tmp_path):
    calls, results = fake_exiftool
    results.extend([(b"", 0), (b"\xff\xd8\xff\xe0jpeg", 0)])

    data = metadata.extract_preview(tmp_path / "a.nef")

    assert data == b"\xff\xd8\xff\xe0jpeg"
    assert [cmd[2] for cmd in calls] == ["-JpgFromRaw", "-PreviewImage"]


def test_extract_preview_none_when_absent(fake_exiftool, tmp_path):
    _, results = fake_exiftool
    results.extend([(b"", 0)] * 3)

    assert metadata.extract_preview(tmp_path / "a.nef") is None
