"""外部コラボレーター（設定プロバイダー・サブジェクト ID プロバイダー）"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Protocol

from .exceptions import RolloutErrorCodes, ValidationError
from .store import KeyValueStore

SUBJECT_ID_KEY = "k1s0_rollout.subject_id"


class ConfigurationProvider(Protocol):
    """最新の設定ドキュメントを生バイト列で返すプロバイダー。"""

    async def fetch_latest(self) -> bytes: ...


class SubjectIdProvider(Protocol):
    """プロセス再起動をまたいで安定したサブジェクト ID を返すプロバイダー。"""

    def current_subject_id(self) -> str: ...


class FileConfigurationProvider:
    """アプリに同梱された設定ファイルを読むプロバイダー。"""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def fetch_latest(self) -> bytes:
        try:
            return self._path.read_bytes()
        except OSError as e:
            raise ValidationError(
                code=RolloutErrorCodes.READ_FILE,
                message=f"Failed to read configuration file: {self._path}",
                cause=e,
            ) from e


class StaticConfigurationProvider:
    """固定のペイロードを返すプロバイダー。"""

    def __init__(self, payload: bytes | str) -> None:
        self._payload = payload.encode("utf-8") if isinstance(payload, str) else payload

    async def fetch_latest(self) -> bytes:
        return self._payload


class StaticSubjectIdProvider:
    """固定のサブジェクト ID を返すプロバイダー。"""

    def __init__(self, subject_id: str) -> None:
        if not subject_id:
            raise ValueError("subject_id cannot be empty")
        self._subject_id = subject_id

    def current_subject_id(self) -> str:
        return self._subject_id


class StoredSubjectIdProvider:
    """初回に UUID v4 のインストール ID を生成し、ストアに保存して使い回す。"""

    def __init__(self, store: KeyValueStore, key: str = SUBJECT_ID_KEY) -> None:
        self._store = store
        self._key = key

    def current_subject_id(self) -> str:
        subject_id = self._store.get(self._key)
        if not subject_id:
            subject_id = str(uuid.uuid4())
            self._store.set(self._key, subject_id)
        return subject_id

    def reset(self) -> None:
        """保存済みの ID を破棄する。次回呼び出しで新しい ID が生成される。"""
        self._store.delete(self._key)
