"""呼び出し側で使う寸法計算と出力ファイル名の決定。

縦横比の固定や倍率指定はエンジンではなく呼び出し側のポリシーなので、
ここで目標寸法を計算してから ImageProcessor.resize_image に渡す。
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Optional

from batch_image_editor.errors import InvalidDimensions
from batch_image_editor.formats import FormatLike, parse_format


def _check_source(src_width: int, src_height: int) -> None:
    if src_width <= 0 or src_height <= 0:
        raise InvalidDimensions(f"元画像の寸法が不正です: {src_width}x{src_height}")


def locked_height(width: int, src_width: int, src_height: int) -> int:
    """幅に合わせて縦横比を保った高さ（最小1）"""
    _check_source(src_width, src_height)
    ratio = src_width / src_height
    return max(1, round(width / ratio))


def locked_width(height: int, src_width: int, src_height: int) -> int:
    """高さに合わせて縦横比を保った幅（最小1）"""
    _check_source(src_width, src_height)
    ratio = src_width / src_height
    return max(1, round(height * ratio))


def scale_dimensions(src_width: int, src_height: int, percent: float) -> tuple[int, int]:
    """倍率(%)で寸法を計算する。"""
    _check_source(src_width, src_height)
    if percent <= 0:
        raise InvalidDimensions(f"倍率は正の値で指定してください: {percent}")
    scale = percent / 100.0
    return max(1, round(src_width * scale)), max(1, round(src_height * scale))


def fit_dimensions(
    src_width: int,
    src_height: int,
    width: Optional[int] = None,
    height: Optional[int] = None,
    keep_aspect: bool = True,
) -> tuple[int, int]:
    """指定された幅/高さから目標寸法を決める。

    片方だけ指定された場合、keep_aspect なら縦横比から他方を求め、
    そうでなければ元の寸法を使う。両方指定された場合はそのまま返す。
    """
    _check_source(src_width, src_height)
    if width is not None and height is not None:
        return width, height
    if width is not None:
        return width, locked_height(width, src_width, src_height) if keep_aspect else src_height
    if height is not None:
        return locked_width(height, src_width, src_height) if keep_aspect else src_width, height
    return src_width, src_height


def derive_output_name(name: str, fmt: FormatLike, suffix: str = "_edited") -> str:
    """最後の拡張子を取り除き、サフィックスと出力形式の拡張子を付ける。

    例: "photo.final.png" + jpg → "photo.final_edited.jpg"
    """
    output_format = parse_format(fmt)
    base = PurePath(name).name or "image"
    stem = base.rsplit(".", 1)[0] if "." in base.lstrip(".") else base
    return f"{stem}{suffix}{output_format.extension}"
