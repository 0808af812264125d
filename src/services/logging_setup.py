"""logging設定と診断用ログバッファを初期化するヘルパー。"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Deque

import yaml

_PROJECT_LOGGER = "sequence_analyzer"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_buffer: "LogBufferHandler | None" = None


@dataclass(slots=True)
class LoggingConfig:
    level: int = logging.INFO
    path: Path = Path("logs/app.log")
    rotate_keep: int = 7
    buffer_lines: int = 200


class LogBufferHandler(logging.Handler):
    """直近のログを保持するリングバッファ。`--stats` の出力に含める。"""

    def __init__(self, capacity: int = 200) -> None:
        super().__init__()
        self._lines_lock = Lock()
        self._lines: Deque[str] = deque(maxlen=max(1, capacity))

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        with self._lines_lock:
            self._lines.append(message)

    def lines(self, limit: int | None = None) -> tuple[str, ...]:
        with self._lines_lock:
            snapshot = tuple(self._lines)
        if limit is None or limit >= len(snapshot):
            return snapshot
        return snapshot[len(snapshot) - max(0, limit):]


def load_logging_config(config_path: Path) -> LoggingConfig:
    defaults = LoggingConfig()
    try:
        raw: Any = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return defaults
    section = raw.get("logging") if isinstance(raw, dict) else None
    if not isinstance(section, dict):
        return defaults

    level = getattr(logging, str(section.get("level", "INFO")).upper(), None)
    return LoggingConfig(
        level=level if isinstance(level, int) else defaults.level,
        path=Path(section.get("path") or defaults.path),
        rotate_keep=_as_int(section.get("rotate_keep"), defaults.rotate_keep),
        buffer_lines=_as_int(section.get("buffer_lines"), defaults.buffer_lines),
    )


def configure_logging(config_path: Path = Path("config.yaml"), *, force: bool = False) -> LogBufferHandler:
    """ルートロガーへファイル出力とリングバッファを設定する。2回目以降は既存のバッファを返す。"""

    global _buffer
    if _buffer is not None and not force:
        return _buffer

    # エラーのサポートリンクも同じ設定ファイルから読み直す
    from domain.errors import _load_error_support_map, _load_support_links

    _load_support_links.cache_clear()
    _load_error_support_map.cache_clear()

    cfg = load_logging_config(config_path)
    log_path = cfg.path
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_path = Path.cwd() / log_path.name

    formatter = logging.Formatter(_FORMAT)
    file_handler = TimedRotatingFileHandler(
        filename=str(log_path),
        when="midnight",
        backupCount=max(cfg.rotate_keep, 0),
        encoding="utf-8",
    )
    buffer_handler = LogBufferHandler(cfg.buffer_lines)
    for handler in (file_handler, buffer_handler):
        handler.setLevel(cfg.level)
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(cfg.level)
    root.addHandler(file_handler)
    root.addHandler(buffer_handler)
    logging.getLogger(_PROJECT_LOGGER).setLevel(cfg.level)

    _buffer = buffer_handler
    return buffer_handler


def get_recent_log_lines(limit: int | None = None) -> tuple[str, ...]:
    """バッファに残っている直近のログ行。未設定なら空。"""

    if _buffer is None:
        return ()
    return _buffer.lines(limit)


def _as_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback
