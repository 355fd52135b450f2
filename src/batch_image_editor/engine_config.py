"""
画像エンジン設定管理モジュール

デフォルト値の定義と設定ファイル（JSON）の読み書きを扱います。
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from loguru import logger

from batch_image_editor.codec_registry import DEFAULT_QUALITY
from batch_image_editor.errors import UnsupportedFormat
from batch_image_editor.formats import ImageFormat, parse_format
from batch_image_editor.resampler import DEFAULT_FILTER, ResampleFilter, parse_filter

SCHEMA_VERSION = 1
_APP_DIR_NAME = "BatchImageEditor"
_CONFIG_FILENAME = "engine.json"

DEFAULT_MAX_WORKERS = 4
# Pillow の Image.MAX_IMAGE_PIXELS と同じ値
DEFAULT_MAX_IMAGE_PIXELS = int(1024 * 1024 * 1024 // 4 // 3)


@dataclass
class EngineConfig:
    """画像エンジンの設定"""

    quality: int = DEFAULT_QUALITY
    resample_filter: ResampleFilter = DEFAULT_FILTER
    max_workers: int = DEFAULT_MAX_WORKERS
    max_image_pixels: int = DEFAULT_MAX_IMAGE_PIXELS
    default_output_format: Optional[ImageFormat] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """不正な値はデフォルト値に戻す"""
        if not _is_int(self.quality) or not 1 <= self.quality <= 100:
            logger.warning(f"無効な品質値です: {self.quality}. {DEFAULT_QUALITY}を使用します")
            self.quality = DEFAULT_QUALITY

        try:
            self.resample_filter = parse_filter(self.resample_filter)
        except ValueError:
            logger.warning(f"未知のリサンプリングフィルタです: {self.resample_filter}")
            self.resample_filter = DEFAULT_FILTER

        if not _is_int(self.max_workers) or self.max_workers < 1:
            self.max_workers = DEFAULT_MAX_WORKERS

        if not _is_int(self.max_image_pixels) or self.max_image_pixels < 1:
            self.max_image_pixels = DEFAULT_MAX_IMAGE_PIXELS

        if self.default_output_format is not None:
            try:
                self.default_output_format = parse_format(self.default_output_format)
            except UnsupportedFormat:
                logger.warning(f"未知の出力形式です: {self.default_output_format}")
                self.default_output_format = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "quality": self.quality,
            "resample_filter": self.resample_filter.value,
            "max_workers": self.max_workers,
            "max_image_pixels": self.max_image_pixels,
            "default_output_format": (
                self.default_output_format.tag if self.default_output_format else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        return cls(
            quality=data.get("quality", DEFAULT_QUALITY),
            resample_filter=data.get("resample_filter", DEFAULT_FILTER.value),
            max_workers=data.get("max_workers", DEFAULT_MAX_WORKERS),
            max_image_pixels=data.get("max_image_pixels", DEFAULT_MAX_IMAGE_PIXELS),
            default_output_format=data.get("default_output_format"),
        )


class EngineConfigStore:
    """エンジン設定のロード/保存を行う。"""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self.config_path = config_path or self._build_default_config_path()

    def load(self) -> EngineConfig:
        """設定を読み込む。存在しない・壊れている場合はデフォルト。"""
        if not self.config_path.exists():
            return EngineConfig()
        try:
            with self.config_path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"設定ファイルを読み込めません: {self.config_path} ({e})")
            return EngineConfig()
        if not isinstance(data, dict):
            return EngineConfig()
        return EngineConfig.from_dict(data)

    def save(self, config: EngineConfig) -> None:
        """設定をアトミックに保存する。"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.config_path.with_suffix(f"{self.config_path.suffix}.tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(config.to_dict(), fh, ensure_ascii=False, indent=2)
        tmp_path.replace(self.config_path)

    @staticmethod
    def _build_default_config_path() -> Path:
        if os.name == "nt":
            app_data = os.environ.get("APPDATA")
            if app_data:
                return Path(app_data) / _APP_DIR_NAME / _CONFIG_FILENAME
            return Path.home() / ".batchimageeditor" / _CONFIG_FILENAME

        config_home = os.environ.get("XDG_CONFIG_HOME")
        if config_home:
            return Path(config_home) / "batchimageeditor" / _CONFIG_FILENAME
        return Path.home() / ".config" / "batchimageeditor" / _CONFIG_FILENAME


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
