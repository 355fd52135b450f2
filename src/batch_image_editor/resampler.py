"""コーデックに依存しないリサンプリング。"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from PIL import Image

from batch_image_editor.errors import InvalidDimensions
from batch_image_editor.raster import MAX_DIMENSION, Raster


class ResampleFilter(Enum):
    NEAREST = "nearest"
    BOX = "box"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"
    LANCZOS = "lanczos"

    @property
    def pillow_filter(self) -> Image.Resampling:
        return _PILLOW_FILTERS[self]


_PILLOW_FILTERS = {
    ResampleFilter.NEAREST: Image.Resampling.NEAREST,
    ResampleFilter.BOX: Image.Resampling.BOX,
    ResampleFilter.BILINEAR: Image.Resampling.BILINEAR,
    ResampleFilter.BICUBIC: Image.Resampling.BICUBIC,
    ResampleFilter.LANCZOS: Image.Resampling.LANCZOS,
}

DEFAULT_FILTER = ResampleFilter.LANCZOS


def parse_filter(value: Union[ResampleFilter, str]) -> ResampleFilter:
    if isinstance(value, ResampleFilter):
        return value
    try:
        return ResampleFilter(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"未知のリサンプリングフィルタ: {value}") from None


def validate_dimensions(
    width: object,
    height: object,
    max_pixels: Optional[int] = None,
) -> tuple[int, int]:
    """目標寸法が表現可能な正の整数であることを確認する。1への丸めは行わない。

    `max_pixels` を渡した場合は総画素数もその上限以下でなければならない。
    """
    for value in (width, height):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidDimensions(f"寸法は整数で指定してください: {width}x{height}")
        if value <= 0:
            raise InvalidDimensions(f"無効な寸法です: {width}x{height}. 1以上の正の整数が必要です")
        if value > MAX_DIMENSION:
            raise InvalidDimensions(f"寸法が大きすぎます: {width}x{height} (一辺の上限 {MAX_DIMENSION}px)")
    if max_pixels is not None and width * height > max_pixels:  # type: ignore[operator]
        raise InvalidDimensions(f"画素数が上限を超えています: {width}x{height} (上限 {max_pixels}画素)")
    return width, height  # type: ignore[return-value]


def resample(
    raster: Raster,
    dst_width: int,
    dst_height: int,
    resample_filter: Union[ResampleFilter, str] = DEFAULT_FILTER,
) -> Raster:
    """ラスタを指定された寸法ちょうどにリサンプリングする。

    縦横比の維持は呼び出し側の責務で、ここでは与えられた寸法をそのまま使う。
    拡大・縮小のどちらにも対応し、同じ入力には常に同じ結果を返す。
    """
    dst_width, dst_height = validate_dimensions(dst_width, dst_height)
    flt = parse_filter(resample_filter)

    if (dst_width, dst_height) == raster.size:
        return raster

    # RGBAの場合、Pillowは乗算済みアルファで補間するので縁の色にじみが出ない
    try:
        resized = raster.to_pil().resize((dst_width, dst_height), flt.pillow_filter)
        return Raster.from_pil(resized)
    except (OverflowError, ValueError, MemoryError) as e:
        raise InvalidDimensions(f"この寸法にはリサイズできません: {dst_width}x{dst_height} ({e})") from e
