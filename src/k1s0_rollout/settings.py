"""ライブラリ設定（pydantic BaseModel）と YAML ローダー"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import pydantic
import yaml
from pydantic import BaseModel, Field

from .exceptions import RolloutError
from .registry import DEFAULT_MAX_ENTRIES


class SettingsError(RolloutError):
    """設定ファイルの読み込み・検証エラー。"""


class SettingsErrorCodes:
    """SettingsError のエラーコード定数。"""

    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"


class LogSection(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class AssignmentSection(BaseModel):
    """バケット割り当て設定。

    salt を変えると全サブジェクトの位置が入れ替わる。
    max_entries は version ごとの割り当てキャッシュの上限件数。
    """

    salt: str = ""
    memoize: bool = True
    max_entries: int = Field(default=DEFAULT_MAX_ENTRIES, ge=1)


class SourceSection(BaseModel):
    """同梱の設定ドキュメント。"""

    path: str | None = None


class RolloutSettings(BaseModel):
    """rollout ライブラリ設定全体。"""

    log: LogSection = Field(default_factory=LogSection)
    assignment: AssignmentSection = Field(default_factory=AssignmentSection)
    source: SourceSection = Field(default_factory=SourceSection)


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """環境別設定 overlay をベース設定に重ねる。辞書以外の値は overlay が勝つ。"""
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = deep_merge(current, value)
        merged[key] = value
    return merged


def _read_settings_file(path: Path) -> dict[str, Any]:
    """YAML の設定ファイルを辞書として読む。空ファイルは空の辞書。"""
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SettingsError(
            code=SettingsErrorCodes.READ_FILE,
            message=f"Failed to read settings file: {path}",
            cause=e,
        ) from e
    except yaml.YAMLError as e:
        raise SettingsError(
            code=SettingsErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise SettingsError(
            code=SettingsErrorCodes.VALIDATION,
            message=f"Settings file must contain a mapping: {path}",
        )
    return loaded


def load_settings(base_path: Path, env_path: Path | None = None) -> RolloutSettings:
    """設定ファイルを読み込んで RolloutSettings を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    """
    data = _read_settings_file(base_path)
    if env_path is not None and env_path.exists():
        data = deep_merge(data, _read_settings_file(env_path))
    try:
        return RolloutSettings.model_validate(data)
    except pydantic.ValidationError as e:
        raise SettingsError(
            code=SettingsErrorCodes.VALIDATION,
            message=f"Settings validation failed: {e}",
            cause=e,
        ) from e
