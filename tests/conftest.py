#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
pytest設定ファイル
共通のフィクスチャやテスト設定を定義
"""

import io

import pytest
from PIL import Image, features

from batch_image_editor.processor import ImageProcessor


def make_gradient(size=(40, 30), mode="RGBA"):
    """位置によって色が変わるテスト画像（単色だとリサンプリングの差が出ない）"""
    width, height = size
    img = Image.new("RGBA", size)
    img.putdata(
        [
            (x * 255 // max(1, width - 1), y * 255 // max(1, height - 1), (x + y) % 256, 255 - (x % 2) * 55)
            for y in range(height)
            for x in range(width)
        ]
    )
    return img if mode == "RGBA" else img.convert(mode)


def encode(img, fmt, **options):
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **options)
    return buffer.getvalue()


def decode_rgba(data):
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGBA")


@pytest.fixture
def png_bytes():
    return encode(make_gradient((40, 30)), "PNG")


@pytest.fixture
def jpeg_bytes():
    return encode(make_gradient((64, 48), mode="RGB"), "JPEG", quality=95)


@pytest.fixture
def sample_images():
    """様々なフォーマットのサンプル画像（バイト列）を作成するフィクスチャ"""
    images = {
        "png": encode(make_gradient((40, 30)), "PNG"),
        "jpeg": encode(make_gradient((64, 48), mode="RGB"), "JPEG", quality=95),
        "bmp": encode(make_gradient((20, 10), mode="RGB"), "BMP"),
        "gif": encode(make_gradient((16, 16), mode="RGB").convert("P"), "GIF"),
        "portrait": encode(make_gradient((30, 60)), "PNG"),
    }
    if features.check("webp"):
        images["webp"] = encode(make_gradient((32, 32), mode="RGB"), "WEBP", quality=90)
    return images


@pytest.fixture
def processor():
    return ImageProcessor()


def make_palette_gif(size=(16, 16), transparency=None):
    """16色パレットのGIF。transparency を渡すとそのインデックスが透明になる"""
    width, height = size
    img = Image.new("P", size)
    img.putpalette([channel for i in range(16) for channel in (i * 16, 255 - i * 16, (i * 40) % 256)])
    img.putdata([(x + y) % 16 for y in range(height) for x in range(width)])
    options = {} if transparency is None else {"transparency": transparency}
    return encode(img, "GIF", **options)
