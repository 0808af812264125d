"""アプリ全体で共通利用するエラー定義。"""
from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml


_SUPPORT_DOC = "docs/sequence_analyzer_requirements.md"


DEFAULT_ERROR_CATALOG: Mapping[str, dict[str, str]] = {
    "E-SEQ-INSUFFICIENT": {
        "message": "数列の要素が不足しています。",
        "guidance": "パターンの判定には少なくとも2つの数値が必要です。",
        "support_url": _SUPPORT_DOC,
    },
    "E-SEQ-INVALID": {
        "message": "数列の入力が不正です。",
        "guidance": "すべての要素が有限の実数であるか確認してください（例: 3,6,9,12）。",
        "support_url": _SUPPORT_DOC,
    },
    "E-SEQ-TOO-LARGE": {
        "message": "数列が大きすぎます。",
        "guidance": "config.yaml の guard.max_length を確認し、必要に応じて数列を分割してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-PATTERN-UNANALYZED": {
        "message": "解析されていないパターンで予測しようとしました。",
        "guidance": "数列を与えて適合したパターンからのみ予測を行ってください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-NOTFOUND": {
        "message": "CSVファイルが見つかりません。",
        "guidance": "ファイルパスとアクセス権を確認し、必要に応じてフルパスを指定してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-ENCODING": {
        "message": "CSVを読み込めませんでした。",
        "guidance": "UTF-8 (BOM 可) 形式で保存されているか確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-EMPTY": {
        "message": "CSVに有効な数列がありません。",
        "guidance": "1行に1つの数列をカンマ区切りで記述してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-HISTORY-PERSIST": {
        "message": "解析履歴の保存に失敗しました。",
        "guidance": "history.path の保存先に書き込めるか確認してください。予測結果自体は有効です。",
        "support_url": _SUPPORT_DOC,
    },
    "E-ANL-UNEXPECTED": {
        "message": "解析中にエラーが発生しました。",
        "guidance": "ログの詳細を確認し、問題のある数列を修正または除外してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-UNEXPECTED": {
        "message": "予期しないエラーが発生しました。",
        "guidance": "ログを確認し、再実行しても改善しない場合は開発者に問い合わせてください。",
        "support_url": _SUPPORT_DOC,
    },
}


@lru_cache()
def _load_support_links(config_path: Path = Path("config.yaml")) -> dict[str, str]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except Exception:
        return {}
    links = data.get("support_links") if isinstance(data, dict) else None
    return {str(k): str(v) for k, v in links.items()} if isinstance(links, dict) else {}


@lru_cache()
def _load_error_support_map(config_path: Path = Path("config.yaml")) -> dict[str, str]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except Exception:
        return {}
    app_cfg = data.get("app") if isinstance(data, dict) else None
    mapping = app_cfg.get("error_support") if isinstance(app_cfg, dict) else None
    return {str(k): str(v) for k, v in mapping.items()} if isinstance(mapping, dict) else {}


@dataclass(slots=True)
class AppError(Exception):
    """コード付きのアプリケーションエラー。"""

    code: str
    user_message: str | None = None
    detail: str | None = None
    payload: dict[str, Any] | None = None
    guidance: str | None = None
    support_url: str | None = None

    def __post_init__(self) -> None:
        meta = DEFAULT_ERROR_CATALOG.get(self.code, {})
        if not self.user_message:
            self.user_message = meta.get("message", "エラーが発生しました。")
        if self.guidance is None:
            self.guidance = meta.get("guidance")
        if self.support_url is None:
            self.support_url = _resolve_support_url(self.code, meta.get("support_url"))

    def __str__(self) -> str:
        message = self.user_message or "エラーが発生しました。"
        base = f"[{self.code}] {message}"
        if self.detail:
            return f"{base} ({self.detail})"
        return base

    def for_log(self) -> str:
        base = str(self)
        if self.payload:
            return f"{base} | payload={self.payload}"
        return base

    def with_detail(self, detail: str) -> "AppError":
        return replace(self, detail=detail)

    def as_dict(self) -> dict[str, Any]:
        """CLIやAPI層へ返すための辞書表現。"""
        return {
            "success": False,
            "code": self.code,
            "error": self.user_message,
            "detail": self.detail,
            "guidance": self.guidance,
            "payload": self.payload,
        }


def app_error(code: str, **kwargs: Any) -> AppError:
    """カタログに基づき AppError を生成する。"""

    return AppError(code=code, **kwargs)


def ensure_app_error(
    exc: Exception,
    *,
    code: str = "E-UNEXPECTED",
    message: str | None = None,
) -> AppError:
    """任意の例外を AppError へ正規化する。"""

    if isinstance(exc, AppError):
        return exc
    info = DEFAULT_ERROR_CATALOG.get(code, {})
    user_message = message or info.get("message", "予期しないエラーが発生しました。")
    return AppError(
        code=code,
        user_message=user_message,
        detail=str(exc) or None,
        guidance=info.get("guidance"),
        support_url=_resolve_support_url(code, info.get("support_url")),
    )


def _resolve_support_url(code: str, default_url: str | None) -> str | None:
    mapping = _load_error_support_map()
    links = _load_support_links()
    ref = mapping.get(code)
    if ref:
        return links.get(ref, default_url)
    return default_url
