import subprocess

import pytest
from PIL import Image

from fov_overlay import backends
from fov_overlay.backends import (
    MagickScriptBackend, PillowCanvasBackend, RenderBackend, build_mvg_script, select_backends,
)
from fov_overlay.draw_commands import DimRect, PolygonDim, RectOutline


def _base(tmp_path, size=(300, 200), color=(128, 128, 128)):
    path = tmp_path / "base.jpg"
    Image.new("RGB", size, color).save(path, "JPEG", quality=95)
    return path


def test_canvas_backend_draws_outline(tmp_path):
    base = _base(tmp_path)
    commands = [RectOutline(10, 10, 100, 80, (255, 0, 0), 255, 6)]

    out = PillowCanvasBackend().render(base, commands, 300, 200)

    with Image.open(out) as img:
        assert img.size == (300, 200)
        r, g, b = img.convert("RGB").getpixel((12, 45))
    assert r > 180 and g < 100 and b < 100


def test_canvas_backend_dims_outside_polygon(tmp_path):
    base = _base(tmp_path, (200, 200), (255, 255, 255))
    square = ((50, 50), (150, 50), (150, 150), (50, 150))
    commands = [PolygonDim(square, 140, (255, 255, 255, 200), 1)]

    out = PillowCanvasBackend().render(base, commands, 200, 200)

    with Image.open(out) as img:
        rgb = img.convert("RGB")
        assert rgb.getpixel((10, 10))[0] < 150
        assert rgb.getpixel((100, 100))[0] > 230


def test_canvas_backend_resizes_base_to_canvas(tmp_path):
    base = _base(tmp_path, (600, 400))
    out = PillowCanvasBackend().render(base, [DimRect(0, 0, 300, 20, 110)], 300, 200)

    with Image.open(out) as img:
        assert img.size == (300, 200)


def test_canvas_backend_writes_unique_outputs(tmp_path):
    base = _base(tmp_path)
    backend = PillowCanvasBackend()

    first = backend.render(base, [], 300, 200)
    second = backend.render(base, [], 300, 200)

    assert first != second
    assert first.is_file() and second.is_file()


def test_canvas_backend_returns_none_for_unreadable_base(tmp_path):
    base = tmp_path / "broken.jpg"
    base.write_bytes(b"not an image")

    assert PillowCanvasBackend().render(base, [], 300, 200) is None


def test_mvg_script_contents():
    commands = [
        PolygonDim(((10, 10), (90, 10), (90, 90), (10, 90)), 140, (255, 255, 255, 200), 2),
        RectOutline(10, 10, 100, 80, (255, 0, 0), 128, 3),
        DimRect(0, 0, 100, 10, 110),
        DimRect(0, 50, 0, 50, 110),
    ]

    script = build_mvg_script(commands, 100, 100)

    assert script.startswith("push graphic-context")
    assert "fill-rule evenodd" in script
    assert "path 'M 0,0 L 100,0 L 100,100 L 0,100 Z M 10.00,10.00" in script
    assert "stroke rgba(255,0,0,0.502)" in script
    assert "rectangle 10.00,10.00 100.00,80.00" in script
    assert "rectangle 0.00,0.00 100.00,10.00" in script
    # Zero-area strip is skipped
    assert script.count("rectangle") == 2
    assert script.rstrip().endswith("pop graphic-context")


def test_mvg_script_rejects_unknown_command():
    with pytest.raises(ValueError):
        build_mvg_script([object()], 10, 10)


def test_magick_backend_failure_returns_none(monkeypatch, tmp_path):
    base = _base(tmp_path)

    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, b"", b"convert: no decode delegate")

    monkeypatch.setattr(backends.subprocess, "run", fake_run)

    assert MagickScriptBackend().render(base, [], 300, 200) is None


@pytest.mark.parametrize("error", [FileNotFoundError("magick"), subprocess.TimeoutExpired("magick", 30)])
def test_magick_backend_process_errors_return_none(monkeypatch, tmp_path, error):
    base = _base(tmp_path)

    def fake_run(cmd, **kwargs):
        raise error

    monkeypatch.setattr(backends.subprocess, "run", fake_run)

    assert MagickScriptBackend().render(base, [], 300, 200) is None


def test_magick_backend_rejects_malformed_output(monkeypatch, tmp_path):
    base = _base(tmp_path)

    def fake_run(cmd, **kwargs):
        with open(cmd[-1], "wb") as f:
            f.write(b"garbage")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(backends.subprocess, "run", fake_run)

    assert MagickScriptBackend().render(base, [], 300, 200) is None


def test_magick_backend_success(monkeypatch, tmp_path):
    base = _base(tmp_path)
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        Image.new("RGB", (300, 200)).save(cmd[-1], "JPEG")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(backends.subprocess, "run", fake_run)

    out = MagickScriptBackend().render(base, [RectOutline(1, 1, 9, 9, (0, 200, 0), 128, 1)], 300, 200)

    assert out is not None and out.is_file()
    cmd = calls[0]
    assert "300x200!" in cmd
    draw_arg = cmd[cmd.index("-draw") + 1]
    assert draw_arg.startswith("@") and draw_arg.endswith(".mvg")


class _Named(RenderBackend):
    def __init__(self, name, available=True):
        self.name = name
        self._available = available

    def is_available(self):
        return self._available


def test_select_backends_orders_preferred_first():
    canvas, magick = _Named("canvas"), _Named("magick")

    assert select_backends("magick", [canvas, magick]) == [magick, canvas]
    assert select_backends("canvas", [canvas, magick]) == [canvas, magick]


def test_select_backends_drops_unavailable():
    canvas, magick = _Named("canvas"), _Named("magick", available=False)

    assert select_backends("magick", [canvas, magick]) == [canvas]
