"""
コマンドラインから一括リサイズ・形式変換を行うエントリポイント

ImageProcessor を明示的に生成し、寸法の決定（縦横比の固定・倍率）は
geometry モジュールで行ってからエンジンに渡します。
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
import time
from typing import Any, Optional, Sequence

from loguru import logger

from batch_image_editor.codec_registry import default_registry
from batch_image_editor.engine_config import EngineConfigStore
from batch_image_editor.errors import ImageEngineError, describe_error, error_category
from batch_image_editor.geometry import derive_output_name, fit_dimensions, scale_dimensions
from batch_image_editor.processor import ImageProcessor
from batch_image_editor.runtime_logging import new_run_log_name, setup_logging


def _build_arg_parser(available_formats: Optional[Sequence[str]] = None) -> argparse.ArgumentParser:
    """Create argument parser for CLI use."""
    p = argparse.ArgumentParser(
        prog="batch-image-editor",
        description="画像を一括リサイズ / 形式変換するコマンドラインツール",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("inputs", nargs="+", type=Path, help="入力画像ファイル")
    p.add_argument("-d", "--dest", required=True, type=Path, help="出力フォルダー")
    p.add_argument("-w", "--width", type=int, help="リサイズ後の幅(px)")
    p.add_argument("-H", "--height", type=int, help="リサイズ後の高さ(px)")
    p.add_argument("-s", "--scale", type=float, help="倍率(%%)。幅/高さより優先")
    p.add_argument(
        "--keep-aspect",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="片方だけ指定した場合に縦横比を維持する",
    )
    p.add_argument(
        "-f",
        "--format",
        choices=list(available_formats) if available_formats else None,
        default=None,
        help="出力形式（省略時は元の形式）",
    )
    p.add_argument("-q", "--quality", type=int, default=None, help="JPEG/WebP 品質 (1-100)")
    p.add_argument("--suffix", default="_edited", help="出力ファイル名に付けるサフィックス")
    p.add_argument("--config", type=Path, default=None, help="エンジン設定ファイル(JSON)。省略時は既定の場所")
    p.add_argument("--save-config", action="store_true", help="今回の設定（品質の上書きを含む）を設定ファイルに保存する")
    p.add_argument("--log-file", action="store_true", help="ログディレクトリに実行ログを保存する")
    p.add_argument("--json", action="store_true", help="結果サマリーをJSONで出力する")
    p.add_argument("--verbose", "-v", action="count", default=0, help="詳細ログを増やす (重ね掛け可)")
    return p


def _build_cli_summary(
    *,
    status: str,
    dest: Path,
    total_files: int,
    processed_count: int,
    failed_files: list[dict[str, str]],
    output_format: Optional[str],
    width: Optional[int],
    height: Optional[int],
    scale: Optional[float],
    elapsed_seconds: float,
    outputs: list[str],
) -> dict[str, Any]:
    return {
        "status": status,
        "dest": str(dest),
        "total_files": total_files,
        "processed_count": processed_count,
        "failed_count": len(failed_files),
        "options": {
            "format": output_format,
            "width": width,
            "height": height,
            "scale": scale,
        },
        "elapsed_seconds": round(elapsed_seconds, 3),
        "outputs": outputs,
        "failed_files": failed_files,
    }


def _failure_entry(name: str, error: BaseException) -> dict[str, str]:
    return {"name": name, "category": error_category(error), "error": describe_error(error)}


def _claim_output_name(output_name: str, used_names: set[str]) -> str:
    """同じ実行内で出力名が重なった場合は連番を付けて区別する。"""
    candidate = output_name
    stem, dot, ext = output_name.rpartition(".")
    counter = 2
    while candidate.lower() in used_names:
        candidate = f"{stem}_{counter}{dot}{ext}"
        counter += 1
    if candidate != output_name:
        logger.warning(f"出力名が重複したため変更しました: {output_name} → {candidate}")
    used_names.add(candidate.lower())
    return candidate


def _target_size(processor: ImageProcessor, index: int, args: argparse.Namespace) -> tuple[int, int]:
    src_width, src_height = processor.get_image_dimensions(index)
    if args.scale is not None:
        return scale_dimensions(src_width, src_height, args.scale)
    return fit_dimensions(
        src_width,
        src_height,
        width=args.width,
        height=args.height,
        keep_aspect=args.keep_aspect,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI を実行し、終了コードを返す"""
    registry = default_registry()
    parser = _build_arg_parser([fmt.tag for fmt in registry.formats()])
    args = parser.parse_args(argv)

    console_level = "INFO"
    if args.verbose == 1:
        console_level = "DEBUG"
    elif args.verbose >= 2:
        console_level = "TRACE"
    setup_logging(console_level=console_level, log_file=new_run_log_name() if args.log_file else None)

    config_store = EngineConfigStore(args.config)
    config = config_store.load()
    if args.quality is not None:
        config.quality = args.quality
        config.validate()
    if args.save_config:
        try:
            config_store.save(config)
            logger.info(f"設定を保存しました: {config_store.config_path}")
        except OSError as e:
            logger.error(f"設定を保存できません: {describe_error(e)}")

    processor = ImageProcessor(config=config, registry=registry)
    start = time.monotonic()
    failed: list[dict[str, str]] = []

    payloads = []
    for path in args.inputs:
        try:
            payloads.append((path.name, path.read_bytes()))
        except OSError as e:
            logger.error(f"❌ {path}: {describe_error(e)}")
            failed.append(_failure_entry(path.name, e))

    results = processor.add_images(payloads)
    for result in results:
        if not result.success:
            logger.error(f"❌ {result.name}: {result.error_message}")
            failed.append(_failure_entry(result.name, result.error))

    args.dest.mkdir(parents=True, exist_ok=True)
    outputs: list[str] = []
    used_names: set[str] = set()
    for index in range(processor.get_image_count()):
        name = processor.get_image_name(index)
        try:
            width, height = _target_size(processor, index, args)
            processor.resize_image(index, width, height, args.format)
            output_name = _claim_output_name(
                derive_output_name(name, processor.get_image_format(index), args.suffix), used_names
            )
            output_path = args.dest / output_name
            output_path.write_bytes(processor.get_image_data(index))
        except (ImageEngineError, OSError) as e:
            logger.error(f"❌ {name}: {describe_error(e)}")
            failed.append(_failure_entry(name, e))
            continue
        outputs.append(str(output_path))
        logger.info(f"✔ {name} → {output_name} ({width}x{height})")

    total = len(args.inputs)
    if failed:
        logger.warning(f"{len(failed)} 件の画像が失敗しました")
    else:
        logger.success("すべての画像を処理しました！")

    if args.json:
        summary = _build_cli_summary(
            status="success" if not failed else ("partial" if outputs else "failed"),
            dest=args.dest,
            total_files=total,
            processed_count=len(outputs),
            failed_files=failed,
            output_format=args.format,
            width=args.width,
            height=args.height,
            scale=args.scale,
            elapsed_seconds=time.monotonic() - start,
            outputs=outputs,
        )
        print(json.dumps(summary, ensure_ascii=False, indent=2))

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
