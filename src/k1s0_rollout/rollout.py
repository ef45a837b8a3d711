"""RolloutController 実装"""

from __future__ import annotations

import threading
from typing import Callable, Protocol, Union, runtime_checkable

import structlog

from .models import (
    ChangeKind,
    ConfigurationDocument,
    Feature,
    FeatureChange,
    UpdateResult,
)
from .parser import RawDocument, parse
from .registry import FeatureRegistry

logger = structlog.get_logger(__name__)


@runtime_checkable
class UpdateObserver(Protocol):
    """設定更新の通知を受け取るオブザーバー。"""

    def on_update(self, result: UpdateResult) -> None: ...


Observer = Union[UpdateObserver, Callable[[UpdateResult], None]]


def _compare(old: Feature, new: Feature) -> ChangeKind:
    kind = ChangeKind.NONE
    if old.enabled != new.enabled:
        kind |= ChangeKind.ENABLED_CHANGED
    if old.variation_names != new.variation_names:
        kind |= ChangeKind.VARIATIONS_CHANGED
    if old.biases != new.biases:
        kind |= ChangeKind.BIASES_CHANGED
    if old.labels != new.labels:
        kind |= ChangeKind.LABELS_CHANGED
    return kind


def diff_documents(
    old: ConfigurationDocument | None, new: ConfigurationDocument
) -> tuple[FeatureChange, ...]:
    """2 つのドキュメントのフィーチャー単位の差分を返す。変更なしは含めない。"""
    old_index = {f.name: f for f in old.features} if old is not None else {}
    new_names: set[str] = set()
    changes: list[FeatureChange] = []
    for feature in new.features:
        new_names.add(feature.name)
        previous = old_index.get(feature.name)
        if previous is None:
            changes.append(FeatureChange(feature.name, ChangeKind.ADDED))
            continue
        kind = _compare(previous, feature)
        if kind:
            changes.append(FeatureChange(feature.name, kind))
    for name in old_index:
        if name not in new_names:
            changes.append(FeatureChange(name, ChangeKind.REMOVED))
    return tuple(changes)


class RolloutController:
    """設定の差し替えを一括で適用し、オブザーバーへ通知する。

    パースに失敗した更新は何も適用しない（直前の設定が有効なまま）。
    差し替えは FeatureRegistry のスナップショット交換で行うため、
    参照側は更新前後どちらか一方の version だけを見る。
    """

    def __init__(self, registry: FeatureRegistry) -> None:
        self._registry = registry
        self._observers: list[Observer] = []
        self._write_lock = threading.Lock()

    @property
    def registry(self) -> FeatureRegistry:
        return self._registry

    def subscribe(self, observer: Observer) -> None:
        """オブザーバーを登録する。on_update を持つオブジェクトか呼び出し可能オブジェクト。

        あるオブザーバーが例外を送出しても残りのオブザーバーには通知され、
        最初の例外が apply_update の呼び出し元に伝播する。
        """
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> bool:
        """オブザーバーを解除する。解除できたら True。"""
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    def load(self, document: ConfigurationDocument | RawDocument) -> UpdateResult:
        """初回ロード。未設定状態から version 1 へ遷移する。"""
        return self.apply_update(document)

    def apply_update(
        self, document: ConfigurationDocument | RawDocument
    ) -> UpdateResult:
        """新しい設定を適用する。

        Raises:
            ValidationError: 生データのパースに失敗した場合（設定は変更されない）
        """
        if not isinstance(document, ConfigurationDocument):
            document = parse(document)
        with self._write_lock:
            previous = self._registry.document if self._registry.is_configured else None
            previous_version = self._registry.version
            changes = diff_documents(previous, document)
            version = self._registry.load(document)
        result = UpdateResult(
            previous_version=previous_version, version=version, changes=changes
        )
        logger.info(
            "configuration_updated",
            previous_version=previous_version,
            version=version,
            added=result.names_with(ChangeKind.ADDED),
            removed=result.names_with(ChangeKind.REMOVED),
            biases_changed=result.names_with(ChangeKind.BIASES_CHANGED),
        )
        self._notify(result)
        return result

    def _notify(self, result: UpdateResult) -> None:
        """全オブザーバーに通知し、失敗があれば最初の例外を最後に送出する。"""
        first_error: Exception | None = None
        for observer in list(self._observers):
            try:
                if isinstance(observer, UpdateObserver):
                    observer.on_update(result)
                else:
                    observer(result)
            except Exception as e:
                logger.warning(
                    "observer_failed", version=result.version, error=str(e)
                )
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
