from __future__ import annotations

import pytest

from batch_image_editor.errors import InvalidDimensions, UnsupportedFormat
from batch_image_editor.geometry import (
    derive_output_name,
    fit_dimensions,
    locked_height,
    locked_width,
    scale_dimensions,
)


def test_locked_height_keeps_ratio() -> None:
    assert locked_height(800, 1600, 1200) == 600
    assert locked_height(100, 300, 200) == 67
    assert locked_height(1, 1000, 10) == 1


def test_locked_width_keeps_ratio() -> None:
    assert locked_width(600, 1600, 1200) == 800
    assert locked_width(1, 10, 1000) == 1


def test_scale_dimensions() -> None:
    assert scale_dimensions(200, 100, 50) == (100, 50)
    assert scale_dimensions(3, 3, 10) == (1, 1)
    with pytest.raises(InvalidDimensions):
        scale_dimensions(200, 100, 0)


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"width": 100}, (100, 50)),
        ({"height": 25}, (50, 25)),
        ({"width": 100, "keep_aspect": False}, (100, 100)),
        ({"width": 30, "height": 70}, (30, 70)),
        ({}, (200, 100)),
    ],
)
def test_fit_dimensions(kwargs, expected) -> None:
    assert fit_dimensions(200, 100, **kwargs) == expected


def test_fit_dimensions_rejects_bad_source() -> None:
    with pytest.raises(InvalidDimensions):
        fit_dimensions(0, 10, width=5)


@pytest.mark.parametrize(
    "name, fmt, expected",
    [
        ("photo.png", "jpg", "photo_edited.jpg"),
        ("photo.final.png", "jpg", "photo.final_edited.jpg"),
        ("noext", "png", "noext_edited.png"),
        (".hidden", "webp", ".hidden_edited.webp"),
        ("dir/sub/pic.BMP", "gif", "pic_edited.gif"),
    ],
)
def test_derive_output_name(name: str, fmt: str, expected: str) -> None:
    assert derive_output_name(name, fmt) == expected


def test_derive_output_name_custom_suffix() -> None:
    assert derive_output_name("a.png", "png", suffix="_small") == "a_small.png"


def test_derive_output_name_unknown_format() -> None:
    with pytest.raises(UnsupportedFormat):
        derive_output_name("a.png", "tiff")
