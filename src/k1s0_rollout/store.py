"""KeyValueStore 抽象基底クラスとインメモリ実装"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """ホストが提供する不透明なキーバリューストア。"""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """キーに対応する値を取得する。存在しなければ None。"""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """キーと値を保存する。"""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """キーを削除する。削除できたら True。"""
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """テスト用インメモリキーバリューストア。"""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._store: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> bool:
        if key in self._store:
            del self._store[key]
            return True
        return False
