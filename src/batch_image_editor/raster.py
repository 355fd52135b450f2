"""メモリ上の正規化ラスタ（RGBA8、行優先）。"""

from __future__ import annotations

from dataclasses import dataclass

from PIL import Image

from batch_image_editor.errors import InvalidDimensions

CHANNELS = 4
CANONICAL_MODE = "RGBA"
# Pillow が一辺に扱える最大値
MAX_DIMENSION = 2**31 - 1


@dataclass(frozen=True)
class Raster:
    pixels: bytes
    width: int
    height: int

    def __post_init__(self) -> None:
        if not _is_positive_int(self.width) or not _is_positive_int(self.height):
            raise InvalidDimensions(f"無効な寸法です: {self.width}x{self.height}")
        if not isinstance(self.pixels, bytes):
            # bytearray/memoryview は不変な bytes にコピーして所有する
            object.__setattr__(self, "pixels", bytes(self.pixels))
        expected = self.width * self.height * CHANNELS
        if len(self.pixels) != expected:
            raise InvalidDimensions(
                f"ピクセル長が寸法と一致しません: {len(self.pixels)} != {expected}"
            )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def from_pil(cls, image: Image.Image) -> "Raster":
        """任意モードの Pillow 画像を RGBA8 ラスタに変換する。"""
        if image.mode != CANONICAL_MODE:
            image = image.convert(CANONICAL_MODE)
        width, height = image.size
        return cls(pixels=image.tobytes(), width=width, height=height)

    def to_pil(self) -> Image.Image:
        """ラスタから新しい Pillow 画像を作る（バッファは共有しない）。"""
        return Image.frombytes(CANONICAL_MODE, self.size, self.pixels)


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0
