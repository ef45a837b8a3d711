"""FeatureRegistry 実装"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

import structlog

from .engine import AssignmentEngine
from .exceptions import NotConfiguredError, UnknownFeatureError
from .models import (
    ENABLED_VARIATION,
    Assignment,
    ConfigurationDocument,
    Feature,
    FeatureKind,
    Variation,
)

logger = structlog.get_logger(__name__)

_MISSING = object()

DEFAULT_MAX_ENTRIES = 10_000


class _AssignmentCache:
    """(subject_id, feature_name) -> variation index の LRU キャッシュ。

    max_entries を超えると最も古く参照されたエントリから捨てる。
    """

    def __init__(self, max_entries: int) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[tuple[str, str], int | None] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: tuple[str, str]) -> object:
        with self._lock:
            value = self._entries.get(key, _MISSING)
            if value is not _MISSING:
                self._entries.move_to_end(key)
            return value

    def put(self, key: tuple[str, str], value: int | None) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)


@dataclass(frozen=True)
class _Snapshot:
    """ある version の設定と、その version に限定した割り当てキャッシュ。"""

    document: ConfigurationDocument
    version: int
    index: dict[str, Feature]
    cache: _AssignmentCache


class FeatureRegistry:
    """ロード済み設定をフィーチャー名で引くレジストリ。

    書き込みは load のみで、新しいスナップショットを作って参照を差し替える。
    参照系メソッドはスナップショットを 1 度だけ読むため、複数スレッドから
    呼び出しても 2 つの version が混ざることはない。割り当てキャッシュは
    スナップショットごとの LRU で、max_entries 件を上限とする。
    """

    def __init__(
        self,
        engine: AssignmentEngine | None = None,
        memoize: bool = True,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._engine = engine or AssignmentEngine()
        self._memoize = memoize
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._snapshot: _Snapshot | None = None

    @property
    def engine(self) -> AssignmentEngine:
        return self._engine

    @property
    def is_configured(self) -> bool:
        return self._snapshot is not None

    @property
    def version(self) -> int:
        """現在の設定 version。未ロードなら 0。"""
        snapshot = self._snapshot
        return snapshot.version if snapshot is not None else 0

    @property
    def document(self) -> ConfigurationDocument:
        return self._current().document

    @property
    def cache_size(self) -> int:
        """現在の version でキャッシュされている割り当て数。"""
        snapshot = self._snapshot
        return len(snapshot.cache) if snapshot is not None else 0

    def load(self, document: ConfigurationDocument) -> int:
        """ドキュメントを有効化し、新しい version を返す。キャッシュは破棄される。"""
        index = {feature.name: feature for feature in document.features}
        with self._lock:
            version = self.version + 1
            self._snapshot = _Snapshot(
                document=document,
                version=version,
                index=index,
                cache=_AssignmentCache(self._max_entries),
            )
        logger.info(
            "configuration_loaded", version=version, features=len(document.features)
        )
        return version

    def _current(self) -> _Snapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise NotConfiguredError()
        return snapshot

    def features(self) -> tuple[Feature, ...]:
        return self._current().document.features

    def named(self, name: str) -> Feature | None:
        return self._current().index.get(name)

    def get(self, name: str) -> Feature:
        """フィーチャーを取得する。存在しなければ UnknownFeatureError。"""
        feature = self.named(name)
        if feature is None:
            raise UnknownFeatureError(name)
        return feature

    def _variation_index(
        self, snapshot: _Snapshot, feature: Feature, subject_id: str
    ) -> int | None:
        if not self._memoize:
            return self._engine.assign(subject_id, feature)
        key = (subject_id, feature.name)
        cached = snapshot.cache.get(key)
        if cached is not _MISSING:
            return cached  # type: ignore[return-value]
        index = self._engine.assign(subject_id, feature)
        snapshot.cache.put(key, index)
        return index

    def assignment(self, name: str, subject_id: str) -> Assignment | None:
        """割り当て結果を version 付きで返す。フィーチャーが無ければ None。"""
        snapshot = self._current()
        feature = snapshot.index.get(name)
        if feature is None:
            return None
        return Assignment(
            subject_id=subject_id,
            feature_name=name,
            variation_index=self._variation_index(snapshot, feature, subject_id),
            version=snapshot.version,
        )

    def variation(self, name: str, subject_id: str) -> Variation | None:
        snapshot = self._current()
        feature = snapshot.index.get(name)
        if feature is None:
            return None
        index = self._variation_index(snapshot, feature, subject_id)
        if index is None:
            return None
        return feature.variations[index]

    def is_test_variation(self, name: str, variation_name: str, subject_id: str) -> bool:
        """サブジェクトが指定バリエーションに属するか（大文字小文字は区別しない）。"""
        variation = self.variation(name, subject_id)
        return variation is not None and variation.name.lower() == variation_name.lower()

    def is_enabled(self, name: str, subject_id: str | None = None) -> bool:
        """フィーチャーが有効か判定する。

        存在しない・無効なフィーチャーは False。enabled/disabled の
        フィーチャーテストはサブジェクトが enabled 側に入った場合のみ True。
        """
        snapshot = self._current()
        feature = snapshot.index.get(name)
        if feature is None or not feature.enabled:
            return False
        if feature.kind is not FeatureKind.FEATURE_TEST:
            return True
        if subject_id is None:
            return False
        index = self._variation_index(snapshot, feature, subject_id)
        if index is None:
            return False
        return feature.variations[index].name.lower() == ENABLED_VARIATION

    def label(self, name: str, variation_index: int) -> str | None:
        feature = self.named(name)
        if feature is None or not 0 <= variation_index < len(feature.variations):
            return None
        return feature.variations[variation_index].label
