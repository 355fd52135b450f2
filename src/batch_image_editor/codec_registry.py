"""形式ごとのデコーダ/エンコーダを形式タグで引くレジストリ。

形式の判定はファイル名ではなく先頭のマジックバイトで行う。
実際の符号化・復号は Pillow に委ねる。
"""

from __future__ import annotations

from dataclasses import dataclass
import io
import struct
from typing import Any, Callable, Dict, Optional

from loguru import logger
from PIL import Image, UnidentifiedImageError, features

from batch_image_editor.errors import CorruptData, EncodeFailure, UnsupportedFormat
from batch_image_editor.formats import FormatLike, ImageFormat, parse_format
from batch_image_editor.raster import MAX_DIMENSION, Raster

DEFAULT_QUALITY = 90

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_JPEG_SIGNATURE = b"\xff\xd8\xff"
_GIF_SIGNATURES = (b"GIF87a", b"GIF89a")
_BMP_SIGNATURE = b"BM"

# Pillow/各ライブラリが扱える一辺の最大値
_JPEG_MAX_DIMENSION = 65500
_WEBP_MAX_DIMENSION = 16383
_GIF_MAX_DIMENSION = 65535

# 破損ストリームに対して Pillow が送出しうる例外
_DECODE_ERRORS = (
    UnidentifiedImageError,
    OSError,
    SyntaxError,
    ValueError,
    EOFError,
    IndexError,
    struct.error,
)


def normalize_quality(value: int) -> int:
    """品質値を1-100に丸める。"""
    return max(1, min(100, int(value)))


@dataclass(frozen=True)
class Codec:
    format: ImageFormat
    sniff: Callable[[bytes], bool]
    build_save_kwargs: Callable[[int], Dict[str, Any]]
    max_dimension: int = MAX_DIMENSION
    # 保存直前に Pillow 画像を形式固有の表現へ変換する（任意）
    prepare: Optional[Callable[[Image.Image], Image.Image]] = None

    def matches(self, data: bytes) -> bool:
        return self.sniff(data)

    def decode(self, data: bytes, *, max_pixels: Optional[int] = None) -> Raster:
        """バイト列を RGBA8 ラスタに復号する。複数フレームの場合は先頭フレーム。"""
        try:
            with Image.open(io.BytesIO(data), formats=[self.format.pillow_name]) as image:
                width, height = image.size
                if max_pixels is not None and width * height > max_pixels:
                    raise CorruptData(
                        f"画像が大きすぎます（圧縮爆弾の可能性）: {width}x{height}"
                    )
                image.load()
                return Raster.from_pil(image)
        except Image.DecompressionBombError as e:
            raise CorruptData(f"画像が大きすぎます（圧縮爆弾の可能性）: {e}") from e
        except _DECODE_ERRORS as e:
            raise CorruptData(f"{self.format.pillow_name}として読み込めません: {e}") from e

    def encode(self, raster: Raster, quality: int = DEFAULT_QUALITY) -> bytes:
        """ラスタをこの形式のバイト列に符号化する。"""
        if raster.width > self.max_dimension or raster.height > self.max_dimension:
            raise EncodeFailure(
                f"{self.format.pillow_name}の最大寸法({self.max_dimension}px)を超えています: "
                f"{raster.width}x{raster.height}"
            )

        save_img = raster.to_pil()
        if not self.format.supports_alpha:
            # 透過を持てない形式は白背景へ合成して保存する
            background = Image.new("RGBA", save_img.size, (255, 255, 255, 255))
            background.alpha_composite(save_img)
            save_img = background.convert("RGB")
        if self.prepare is not None:
            save_img = self.prepare(save_img)

        save_kwargs = self.build_save_kwargs(normalize_quality(quality))
        if "transparency" in save_img.info:
            save_kwargs["transparency"] = save_img.info["transparency"]

        buffer = io.BytesIO()
        try:
            save_img.save(buffer, **save_kwargs)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailure(f"{self.format.pillow_name}の書き出しに失敗しました: {e}") from e
        return buffer.getvalue()


class CodecRegistry:
    """形式タグをキーにしたコーデックの登録簿。"""

    def __init__(self) -> None:
        self._codecs: Dict[ImageFormat, Codec] = {}

    def register(self, codec: Codec, *, replace: bool = False) -> None:
        if codec.format in self._codecs and not replace:
            raise ValueError(f"既に登録されている形式です: {codec.format.tag}")
        self._codecs[codec.format] = codec
        logger.debug(f"コーデックを登録: {codec.format.tag}")

    def formats(self) -> list[ImageFormat]:
        """登録順の形式一覧。"""
        return list(self._codecs)

    def codec_for(self, fmt: FormatLike) -> Codec:
        resolved = parse_format(fmt)
        codec = self._codecs.get(resolved)
        if codec is None:
            raise UnsupportedFormat(f"この環境では利用できない形式です: {resolved.tag}")
        return codec

    def detect(self, data: bytes) -> ImageFormat:
        """マジックバイトから形式を判定する。"""
        for codec in self._codecs.values():
            if codec.matches(data):
                return codec.format
        head = bytes(data[:12]).hex(" ") if data else "(空)"
        raise UnsupportedFormat(f"画像ファイルとして認識できません: 先頭バイト {head}")

    def decode(self, data: bytes, *, max_pixels: Optional[int] = None) -> tuple[Raster, ImageFormat]:
        fmt = self.detect(data)
        raster = self._codecs[fmt].decode(data, max_pixels=max_pixels)
        return raster, fmt

    def encode(self, raster: Raster, fmt: FormatLike, quality: int = DEFAULT_QUALITY) -> bytes:
        return self.codec_for(fmt).encode(raster, quality)


def _sniff_png(data: bytes) -> bool:
    return data[:8] == _PNG_SIGNATURE


def _sniff_jpeg(data: bytes) -> bool:
    return data[:3] == _JPEG_SIGNATURE


def _sniff_webp(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def _sniff_bmp(data: bytes) -> bool:
    return data[:2] == _BMP_SIGNATURE


def _sniff_gif(data: bytes) -> bool:
    return data[:6] in _GIF_SIGNATURES


def _png_kwargs(quality: int) -> Dict[str, Any]:
    # PNGはロスレス。quality指定は使わず圧縮レベルを固定する。
    return {"format": "PNG", "optimize": True, "compress_level": 6}


def _jpeg_kwargs(quality: int) -> Dict[str, Any]:
    return {
        "format": "JPEG",
        "quality": min(quality, 95),
        "optimize": True,
        "progressive": True,
    }


def _webp_kwargs(quality: int) -> Dict[str, Any]:
    return {"format": "WEBP", "quality": quality, "method": 6, "lossless": False}


def _bmp_kwargs(quality: int) -> Dict[str, Any]:
    return {"format": "BMP"}


def _gif_kwargs(quality: int) -> Dict[str, Any]:
    return {"format": "GIF", "save_all": False, "optimize": False}


def _gif_exact_palette(image: Image.Image) -> Image.Image:
    """256色以内で透過が完全透明のみなら、その色をそのままパレットにしたPモード画像を返す。

    条件を満たさない画像は Pillow の減色に任せる（この場合は色が変わりうる）。
    """
    colors = image.getcolors(256)
    if colors is None:
        return image
    if any(0 < rgba[3] < 255 for _, rgba in colors):
        return image

    opaque = sorted({rgba[:3] for _, rgba in colors if rgba[3] == 255})
    clear = sorted(rgba for _, rgba in colors if rgba[3] == 0)
    if len(opaque) + (1 if clear else 0) > 256:
        return image

    lookup = {rgb + (255,): index for index, rgb in enumerate(opaque)}
    palette = list(opaque)
    transparency = None
    if clear:
        transparency = len(palette)
        palette.append(clear[0][:3])
        lookup.update((rgba, transparency) for rgba in clear)

    indexed = Image.new("P", image.size)
    indexed.putpalette([channel for rgb in palette for channel in rgb])
    indexed.putdata([lookup[pixel] for pixel in image.getdata()])
    if transparency is not None:
        indexed.info["transparency"] = transparency
    return indexed


def webp_available() -> bool:
    try:
        return bool(features.check("webp"))
    except Exception:
        return False


def default_registry() -> CodecRegistry:
    """組み込みコーデックをすべて登録した新しいレジストリを返す。"""
    registry = CodecRegistry()
    registry.register(Codec(ImageFormat.PNG, _sniff_png, _png_kwargs))
    registry.register(
        Codec(ImageFormat.JPEG, _sniff_jpeg, _jpeg_kwargs, max_dimension=_JPEG_MAX_DIMENSION)
    )
    if webp_available():
        registry.register(
            Codec(ImageFormat.WEBP, _sniff_webp, _webp_kwargs, max_dimension=_WEBP_MAX_DIMENSION)
        )
    else:
        logger.warning("PillowのWebPサポートが無効です。WebPは利用できません")
    registry.register(Codec(ImageFormat.BMP, _sniff_bmp, _bmp_kwargs))
    registry.register(
        Codec(
            ImageFormat.GIF,
            _sniff_gif,
            _gif_kwargs,
            max_dimension=_GIF_MAX_DIMENSION,
            prepare=_gif_exact_palette,
        )
    )
    return registry
