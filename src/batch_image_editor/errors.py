"""画像エンジンの例外階層。

呼び出し側はカテゴリ文字列でエラー種別を判定できる。
"""

from __future__ import annotations

from typing import Optional


class ImageEngineError(Exception):
    """画像エンジンが送出する例外の基底クラス。"""

    category = "unknown"

    def __init__(self, message: str, *, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.name = name


class UnsupportedFormat(ImageEngineError):
    """未知のシグネチャ、または未登録の出力形式。"""

    category = "unsupported_format"


class CorruptData(ImageEngineError):
    """シグネチャは一致したが本体を解釈できない。"""

    category = "corrupt_data"


class InvalidDimensions(ImageEngineError, ValueError):
    """0以下、または表現できない寸法。"""

    category = "invalid_dimensions"


class IndexOutOfRange(ImageEngineError, IndexError):
    """無効になったインデックス、または範囲外のインデックス。"""

    category = "index_out_of_range"


class EncodeFailure(ImageEngineError):
    """エンコーダ内部のエラー。"""

    category = "encode_failure"


_JAPANESE_MESSAGES = {
    UnsupportedFormat: "対応していない画像形式です",
    CorruptData: "画像データが破損しています",
    InvalidDimensions: "無効なサイズです",
    IndexOutOfRange: "指定された画像が見つかりません",
    EncodeFailure: "画像の書き出しに失敗しました",
}


def describe_error(error: BaseException) -> str:
    """
    例外からUI表示用の日本語メッセージを生成します

    Args:
        error: 例外オブジェクト

    Returns:
        str: 日本語エラーメッセージ
    """
    for error_type, prefix in _JAPANESE_MESSAGES.items():
        if isinstance(error, error_type):
            label = f"{prefix} ({error.name})" if error.name else prefix
            return f"{label}: {error.message}"

    if isinstance(error, MemoryError):
        return "メモリ不足エラー: 画像が大きすぎるか、使用可能なメモリが不足しています"
    if isinstance(error, OSError):
        return f"システムエラー: {error}"
    return f"{type(error).__name__}: {error}"


def error_category(error: BaseException) -> str:
    """例外のカテゴリ文字列を返す。エンジン外の例外は "unknown"。"""
    if isinstance(error, ImageEngineError):
        return error.category
    return "unknown"
