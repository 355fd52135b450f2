"""ログ出力先・保持ポリシーと loguru の設定。"""

from __future__ import annotations

from datetime import datetime, timedelta
import os
from pathlib import Path
import sys
from typing import Mapping, Optional, Union

from loguru import logger

APP_NAME = "BatchImageEditor"
LOG_DIR_ENV = "BATCH_IMAGE_EDITOR_LOG_DIR"
DEFAULT_RETENTION_DAYS = 30
DEFAULT_MAX_FILES = 100
_RUN_LOG_PREFIX = "run_"
_RUN_LOG_SUFFIX = ".log"
_RUN_ID_FORMAT = "%Y%m%d_%H%M%S"


def get_default_log_dir(
    app_name: str = APP_NAME,
    *,
    os_name: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """OSごとの標準ログディレクトリを返す。

    Windows: %LOCALAPPDATA%\\<App>\\logs
    それ以外: $XDG_STATE_HOME/<app>/logs (未設定なら ~/.local/state)
    """
    env = os.environ if env is None else env
    home = home or Path.home()
    folder = app_name.replace(" ", "")

    if (os_name or os.name) == "nt":
        base = env.get("LOCALAPPDATA") or env.get("APPDATA")
        if not base:
            return home / f".{folder.lower()}" / "logs"
        return Path(base) / folder / "logs"

    state_home = env.get("XDG_STATE_HOME")
    base_dir = Path(state_home) if state_home else home / ".local" / "state"
    return base_dir / folder.lower() / "logs"


def resolve_log_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """環境変数の指定を優先してログディレクトリを決める。"""
    resolved_env = env if env is not None else os.environ
    override = resolved_env.get(LOG_DIR_ENV)
    if override:
        return Path(override)
    return get_default_log_dir(env=resolved_env)


def resolve_log_path(log_file: Union[str, Path], env: Optional[Mapping[str, str]] = None) -> Path:
    """相対パスはログディレクトリ配下、絶対パスはそのまま使う。"""
    path = Path(log_file)
    if path.is_absolute():
        return path
    return resolve_log_dir(env) / path


def new_run_log_name(now: Optional[datetime] = None) -> str:
    run_id = (now or datetime.now()).strftime(_RUN_ID_FORMAT)
    return f"{_RUN_LOG_PREFIX}{run_id}{_RUN_LOG_SUFFIX}"


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Union[str, Path, None] = None,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    max_files: int = DEFAULT_MAX_FILES,
) -> Optional[Path]:
    """ロギングの設定を行います

    `log_file` が None の場合はコンソールのみに出力する。
    ファイルに出力する場合は、同じディレクトリの古い実行ログを先に整理する。
    """
    logger.remove()  # デフォルト設定を削除
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{function}</cyan>: <white>{message}</white>",
        colorize=True,
        level=console_level,
    )
    if log_file is None:
        return None

    log_path = resolve_log_path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    # 新しいログを数に含めないよう、追加する前に整理する
    removed = prune_log_files(log_path.parent, retention_days=retention_days, max_files=max(0, max_files - 1))
    logger.add(
        log_path,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {function}: {message}",
        rotation="1 day",
        level=file_level,
        encoding="utf-8",
    )
    if removed:
        logger.debug(f"古い実行ログを{len(removed)}件削除しました: {log_path.parent}")
    return log_path


def prune_log_files(
    log_dir: Path,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    max_files: int = DEFAULT_MAX_FILES,
    now: Optional[datetime] = None,
) -> list[Path]:
    """保持日数を過ぎた実行ログと、上限件数を超えた古い実行ログを削除する。

    `max_files` が0以下なら件数による削除は行わない。
    """
    cutoff = (now or datetime.now()) - timedelta(days=max(0, retention_days))
    logs = _run_logs_oldest_first(log_dir)
    overflow = len(logs) - max_files if max_files > 0 else 0

    removed: list[Path] = []
    for position, (modified_at, path) in enumerate(logs):
        if (position < overflow or modified_at < cutoff) and _remove_quietly(path):
            removed.append(path)
    return removed


def _run_logs_oldest_first(log_dir: Path) -> list[tuple[datetime, Path]]:
    entries = []
    try:
        candidates = list(log_dir.glob(f"{_RUN_LOG_PREFIX}*{_RUN_LOG_SUFFIX}"))
    except OSError:
        return []
    for path in candidates:
        run_id = path.name[len(_RUN_LOG_PREFIX) : -len(_RUN_LOG_SUFFIX)]
        try:
            datetime.strptime(run_id, _RUN_ID_FORMAT)
            stat = path.stat()
        except (ValueError, OSError):
            continue
        if path.is_file():
            entries.append((datetime.fromtimestamp(stat.st_mtime), path))
    return sorted(entries)


def _remove_quietly(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.debug(f"ログを削除できません: {path} ({e})")
        return False
    return True
