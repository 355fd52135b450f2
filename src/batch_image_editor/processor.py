"""
画像エンジンの公開窓口

UIから呼ばれるインデックス単位の操作を提供します。
デコード → リサンプリング → エンコードの各処理はコーデックレジストリと
リサンプラーに委ね、状態は ImageRecordStore が保持します。
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import threading
from typing import Iterable, Optional, Tuple, Union
from weakref import WeakKeyDictionary

from loguru import logger

from batch_image_editor.codec_registry import CodecRegistry, default_registry
from batch_image_editor.engine_config import EngineConfig
from batch_image_editor.errors import ImageEngineError, UnsupportedFormat, describe_error, error_category
from batch_image_editor.formats import FormatLike, ImageFormat, parse_format
from batch_image_editor.image_store import ImageRecord, ImageRecordStore
from batch_image_editor.resampler import resample, validate_dimensions

ImageBytes = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class AddResult:
    """一括追加の1件分の結果"""

    name: str
    success: bool
    index: Optional[int] = None
    format: Optional[ImageFormat] = None
    error: Optional[Exception] = None

    @property
    def error_category(self) -> Optional[str]:
        return error_category(self.error) if self.error else None

    @property
    def error_message(self) -> str:
        return describe_error(self.error) if self.error else ""


class ImageProcessor:
    """一括画像編集用の画像エンジン"""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[CodecRegistry] = None,
    ) -> None:
        """
        Args:
            config: エンジン設定（省略時はデフォルト）
            registry: コーデックレジストリ（省略時は組み込みコーデック一式）
        """
        self.config = config or EngineConfig()
        self.registry = registry or default_registry()
        self._store = ImageRecordStore()
        self._encoded: "WeakKeyDictionary[ImageRecord, bytes]" = WeakKeyDictionary()
        self._encoded_lock = threading.Lock()

        self._default_format = self.config.default_output_format
        if self._default_format is not None and self._default_format not in self.registry.formats():
            logger.warning(
                f"既定の出力形式 {self._default_format.tag} はこの環境で使用できません。検出形式を使用します"
            )
            self._default_format = None

    # ------------------------------------------------------------------
    # 追加
    # ------------------------------------------------------------------
    def add_image(self, name: str, data: ImageBytes) -> int:
        """画像をデコードして末尾に追加し、インデックスを返す。

        失敗した場合は何も追加されない。
        """
        try:
            record = self._decode(name, data)
        except ImageEngineError as e:
            logger.warning(f"画像を追加できません: {describe_error(e)}")
            raise
        index = self._store.append(record)
        logger.debug(f"画像を追加: [{index}] {name} {record.width}x{record.height} ({record.source_format.tag})")
        return index

    def add_images(
        self,
        items: Iterable[Tuple[str, ImageBytes]],
        max_workers: Optional[int] = None,
    ) -> list[AddResult]:
        """複数の画像を並列にデコードし、投入順に追加する。

        1件の失敗でバッチ全体は中断しない。インデックスは完了順ではなく
        投入順に割り当てられる。
        """
        batch = list(items)
        if not batch:
            return []

        workers = max_workers or self.config.max_workers
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._decode, name, data) for name, data in batch]

        decoded: list[tuple[str, Optional[ImageRecord], Optional[Exception]]] = []
        for (name, _data), future in zip(batch, futures):
            try:
                decoded.append((name, future.result(), None))
            except ImageEngineError as e:
                logger.warning(f"画像を追加できません: {describe_error(e)}")
                decoded.append((name, None, e))
            except Exception as e:
                # 1件のメモリ不足などでバッチ全体を落とさない
                logger.opt(exception=e).error(f"画像のデコード中に予期しないエラー: {name}")
                decoded.append((name, None, e))

        indices = iter(self._store.append_many(record for _, record, _ in decoded if record is not None))

        results = []
        for name, record, error in decoded:
            if record is None:
                results.append(AddResult(name=name, success=False, error=error))
            else:
                results.append(
                    AddResult(name=name, success=True, index=next(indices), format=record.format)
                )

        added = sum(1 for result in results if result.success)
        logger.info(f"{len(batch)}件中{added}件の画像を追加しました")
        return results

    # ------------------------------------------------------------------
    # 変更
    # ------------------------------------------------------------------
    def resize_image(
        self,
        index: int,
        width: int,
        height: int,
        target_format: Optional[FormatLike] = None,
    ) -> None:
        """画像を指定サイズにリサイズし、必要なら出力形式を変更する。

        常に読み込み時のラスタからリサンプリングするため、繰り返しリサイズしても
        劣化が蓄積しない。形式を省略した場合は現在の形式を維持する。
        どの段階で失敗してもレコードは変更されない。
        """
        width, height = validate_dimensions(width, height, self.config.max_image_pixels)
        requested = parse_format(target_format) if target_format is not None else None
        if requested is not None:
            self.registry.codec_for(requested)

        with self._store.editing(index) as record:
            fmt = requested or record.format
            codec = self.registry.codec_for(fmt)

            resized = resample(record.source_raster, width, height, self.config.resample_filter)
            encoded = codec.encode(resized, self.config.quality)
            # 保存後に得られるピクセルを正とする（JPEGの劣化やアルファの合成を反映）
            canonical = codec.decode(encoded)

            updated = self._store.replace_pixels(index, canonical, fmt, expected=record)
            with self._encoded_lock:
                self._encoded[updated] = encoded

        logger.debug(
            f"リサイズ完了: [{index}] {record.name} {record.width}x{record.height} → {width}x{height} ({fmt.tag})"
        )

    def clear(self) -> None:
        """すべての画像を破棄する。以前のインデックスはすべて無効になる。"""
        self._store.clear()
        with self._encoded_lock:
            self._encoded.clear()
        logger.debug("画像リストをクリアしました")

    # ------------------------------------------------------------------
    # 参照
    # ------------------------------------------------------------------
    def get_image_count(self) -> int:
        return self._store.count()

    def get_image_name(self, index: int) -> str:
        return self._store.get(index).name

    def get_image_dimensions(self, index: int) -> Tuple[int, int]:
        record = self._store.get(index)
        return record.width, record.height

    def get_image_format(self, index: int) -> str:
        return self._store.get(index).format.tag

    def get_source_format(self, index: int) -> str:
        """アップロード時に検出された形式"""
        return self._store.get(index).source_format.tag

    def get_image_data(self, index: int) -> bytes:
        """現在の形式でエンコードしたバイト列を返す。

        変更がない限り何度呼んでも同じバイト列を返し、レコードは変更しない。
        """
        record = self._store.get(index)
        with self._encoded_lock:
            cached = self._encoded.get(record)
        if cached is not None:
            return cached

        encoded = self.registry.encode(record.raster, record.format, self.config.quality)
        with self._encoded_lock:
            return self._encoded.setdefault(record, encoded)

    def supported_formats(self) -> list[str]:
        """UIの選択肢に使える出力形式タグ"""
        return [fmt.tag for fmt in self.registry.formats()]

    # ------------------------------------------------------------------
    def _decode(self, name: str, data: ImageBytes) -> ImageRecord:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise UnsupportedFormat(f"バイト列ではありません: {type(data).__name__}", name=name)
        try:
            raster, detected = self.registry.decode(bytes(data), max_pixels=self.config.max_image_pixels)
        except ImageEngineError as e:
            e.name = name
            raise

        return ImageRecord(
            name=name,
            raster=raster,
            format=self._default_format or detected,
            source_format=detected,
        )
