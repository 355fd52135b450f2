"""出力形式タグの閉じた列挙。"""

from __future__ import annotations

from enum import Enum
from typing import Union

from batch_image_editor.errors import UnsupportedFormat


class ImageFormat(Enum):
    PNG = "png"
    JPEG = "jpg"
    WEBP = "webp"
    BMP = "bmp"
    GIF = "gif"

    @property
    def tag(self) -> str:
        return self.value

    @property
    def pillow_name(self) -> str:
        return _PILLOW_NAMES[self]

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def supports_alpha(self) -> bool:
        return self in (ImageFormat.PNG, ImageFormat.WEBP, ImageFormat.GIF)


FormatLike = Union[ImageFormat, str]

_PILLOW_NAMES = {
    ImageFormat.PNG: "PNG",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.BMP: "BMP",
    ImageFormat.GIF: "GIF",
}

_ALIASES = {
    "jpeg": ImageFormat.JPEG,
    "jpe": ImageFormat.JPEG,
    "jfif": ImageFormat.JPEG,
}


def parse_format(value: FormatLike) -> ImageFormat:
    """形式タグを ImageFormat に正規化する。

    大文字小文字と先頭のドットは無視し、"jpeg" などの別名も受け付ける。
    未知のタグは UnsupportedFormat（既定値への置き換えはしない）。
    """
    if isinstance(value, ImageFormat):
        return value
    if not isinstance(value, str):
        raise UnsupportedFormat(f"形式タグは文字列で指定してください: {value!r}")

    normalized = value.strip().lower().lstrip(".")
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return ImageFormat(normalized)
    except ValueError:
        raise UnsupportedFormat(f"サポートされていない出力形式: {value}") from None
