"""画像レコードの順序付きストア。

レコードは不変値で、リサイズは新しいレコードへの参照差し替えで行う。
読み手が書き換え途中のレコードを見ることはない。
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
import threading
from typing import Iterable, Iterator, Optional

from batch_image_editor.errors import IndexOutOfRange
from batch_image_editor.formats import ImageFormat
from batch_image_editor.raster import Raster


@dataclass(frozen=True, eq=False)
class ImageRecord:
    name: str
    raster: Raster
    format: ImageFormat
    source_raster: Raster = field(default=None)  # type: ignore[assignment]
    source_format: ImageFormat = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        # 新規作成時は現在のラスタ/形式がそのまま元データになる
        if self.source_raster is None:
            object.__setattr__(self, "source_raster", self.raster)
        if self.source_format is None:
            object.__setattr__(self, "source_format", self.format)

    @property
    def width(self) -> int:
        return self.raster.width

    @property
    def height(self) -> int:
        return self.raster.height

    @property
    def pixels(self) -> bytes:
        return self.raster.pixels

    def with_raster(self, raster: Raster, fmt: ImageFormat) -> "ImageRecord":
        return replace(self, raster=raster, format=fmt)


class _Slot:
    __slots__ = ("record", "lock")

    def __init__(self, record: ImageRecord) -> None:
        self.record = record
        # 同一インデックスへの書き込みは1件ずつ（後続はブロックして待つ）
        self.lock = threading.RLock()


class ImageRecordStore:
    """挿入順を保持する画像レコードの集合。"""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._slots: list[_Slot] = []

    def count(self) -> int:
        with self._lock:
            return len(self._slots)

    def append(self, record: ImageRecord) -> int:
        """末尾に追加し、割り当てたインデックスを返す。"""
        with self._lock:
            self._slots.append(_Slot(record))
            return len(self._slots) - 1

    def append_many(self, records: Iterable[ImageRecord]) -> list[int]:
        """与えられた順序のまま連続したインデックスで追加する。"""
        with self._lock:
            start = len(self._slots)
            self._slots.extend(_Slot(record) for record in records)
            return list(range(start, len(self._slots)))

    def get(self, index: int) -> ImageRecord:
        with self._lock:
            return self._slot(index).record

    def replace_pixels(
        self,
        index: int,
        raster: Raster,
        fmt: ImageFormat,
        *,
        expected: Optional[ImageRecord] = None,
    ) -> ImageRecord:
        """ラスタと形式だけを差し替えた新しいレコードに置き換える。

        `expected` を渡した場合、その間にレコードが入れ替わっていれば
        （clear後に別の画像が追加された等）書き込まずに IndexOutOfRange。
        """
        with self._lock:
            slot = self._slot(index)
        with slot.lock:
            with self._lock:
                if not self._is_live(index, slot):
                    raise IndexOutOfRange(f"画像リストがクリアされました: index={index}")
                if expected is not None and slot.record is not expected:
                    raise IndexOutOfRange(f"画像が入れ替わっています: index={index}")
                slot.record = slot.record.with_raster(raster, fmt)
                return slot.record

    @contextmanager
    def editing(self, index: int) -> Iterator[ImageRecord]:
        """インデックス単位の編集ロックを取り、その時点のレコードを渡す。"""
        with self._lock:
            slot = self._slot(index)
        with slot.lock:
            with self._lock:
                if not self._is_live(index, slot):
                    raise IndexOutOfRange(f"画像リストがクリアされました: index={index}")
                record = slot.record
            yield record

    def clear(self) -> None:
        with self._lock:
            self._slots = []

    def _slot(self, index: int) -> _Slot:
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexOutOfRange(f"インデックスは整数で指定してください: {index!r}")
        if index < 0 or index >= len(self._slots):
            raise IndexOutOfRange(
                f"インデックスが範囲外です: {index} (画像数: {len(self._slots)})"
            )
        return self._slots[index]

    def _is_live(self, index: int, slot: _Slot) -> bool:
        return index < len(self._slots) and self._slots[index] is slot
