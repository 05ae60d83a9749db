import pytest

from fov_overlay.colors import (
    PALETTE_SIZE, assign_color_indices, color_index_for, color_name, color_rgb,
)
from fov_overlay.models import compute_all_crop_rects


def test_color_index_wraps_around_palette():
    assert color_index_for(1) == 1
    assert color_index_for(PALETTE_SIZE) == PALETTE_SIZE
    assert color_index_for(PALETTE_SIZE + 1) == 1
    with pytest.raises(ValueError):
        color_index_for(0)


def test_palette_lookup():
    assert color_name(1) == "green"
    assert color_rgb(1) == (0, 200, 0)
    assert color_name(10) == "white"


def test_cropped_rects_inherit_full_frame_colors():
    full = compute_all_crop_rects(200, (100, 300, 400, 420, 450), 6000, 4000)
    cropped = compute_all_crop_rects(400, (100, 300, 400, 420, 450), 3000, 2000)

    mapping = assign_color_indices(full, cropped)

    assert mapping == {300: 1, 400: 2, 420: 3, 450: 4}
    assert [r.color_index for r in cropped] == [3, 4]


def test_unknown_cropped_focal_length_falls_back_to_first_color():
    full = compute_all_crop_rects(300, (400,), 6000, 4000)
    cropped = compute_all_crop_rects(300, (500,), 6000, 4000)

    assign_color_indices(full, cropped)

    assert cropped[0].color_index == 1
