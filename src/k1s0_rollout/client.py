"""ホスト向け FeatureFlagClient"""

from __future__ import annotations

from pathlib import Path

import structlog

from .engine import AssignmentEngine
from .exceptions import NotConfiguredError
from .models import ConfigurationDocument, UpdateResult, Variation
from .parser import RawDocument, parse_file
from .providers import ConfigurationProvider, SubjectIdProvider
from .registry import DEFAULT_MAX_ENTRIES, FeatureRegistry
from .rollout import Observer, RolloutController
from .settings import RolloutSettings

logger = structlog.get_logger(__name__)


class FeatureFlagClient:
    """フィーチャーフラグ / A/B テストのホスト向けファサード。

    参照系メソッドは例外を送出しない。未ロード時やフィーチャーが存在しない
    場合は無効・None を返す。load / apply_update の ValidationError は
    呼び出し元にそのまま伝播する。
    """

    def __init__(
        self,
        subject_provider: SubjectIdProvider | None = None,
        engine: AssignmentEngine | None = None,
        memoize: bool = True,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._subject_provider = subject_provider
        self._registry = FeatureRegistry(
            engine=engine, memoize=memoize, max_entries=max_entries
        )
        self._controller = RolloutController(self._registry)

    @classmethod
    def from_settings(
        cls,
        settings: RolloutSettings,
        subject_provider: SubjectIdProvider | None = None,
    ) -> FeatureFlagClient:
        """設定から生成する。source.path があれば同梱ドキュメントをロードする。"""
        client = cls(
            subject_provider=subject_provider,
            engine=AssignmentEngine(salt=settings.assignment.salt),
            memoize=settings.assignment.memoize,
            max_entries=settings.assignment.max_entries,
        )
        if settings.source.path:
            client.load(parse_file(Path(settings.source.path)))
        return client

    @property
    def registry(self) -> FeatureRegistry:
        return self._registry

    @property
    def controller(self) -> RolloutController:
        return self._controller

    @property
    def version(self) -> int:
        return self._registry.version

    def load(self, document: ConfigurationDocument | RawDocument) -> UpdateResult:
        return self._controller.load(document)

    def apply_update(
        self, document: ConfigurationDocument | RawDocument
    ) -> UpdateResult:
        return self._controller.apply_update(document)

    async def refresh(self, provider: ConfigurationProvider) -> UpdateResult:
        """プロバイダーから最新の設定を取得して適用する。"""
        payload = await provider.fetch_latest()
        return self._controller.apply_update(payload)

    def subscribe(self, observer: Observer) -> None:
        self._controller.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> bool:
        return self._controller.unsubscribe(observer)

    def _subject(self, subject_id: str | None) -> str | None:
        """サブジェクト ID を決める。プロバイダーが失敗した場合は None。"""
        if subject_id is not None:
            return subject_id
        if self._subject_provider is None:
            return None
        try:
            return self._subject_provider.current_subject_id()
        except Exception as e:
            logger.warning("subject_unavailable", error=str(e))
            return None

    def is_enabled(self, feature_name: str, subject_id: str | None = None) -> bool:
        subject = self._subject(subject_id)
        try:
            return self._registry.is_enabled(feature_name, subject)
        except NotConfiguredError:
            logger.warning("lookup_before_load", feature=feature_name)
            return False

    def _variation(self, feature_name: str, subject_id: str | None) -> Variation | None:
        subject = self._subject(subject_id)
        if subject is None:
            return None
        try:
            return self._registry.variation(feature_name, subject)
        except NotConfiguredError:
            logger.warning("lookup_before_load", feature=feature_name)
            return None

    def variation_name(
        self, feature_name: str, subject_id: str | None = None
    ) -> str | None:
        variation = self._variation(feature_name, subject_id)
        return variation.name if variation is not None else None

    def is_test_variation(
        self, feature_name: str, variation_name: str, subject_id: str | None = None
    ) -> bool:
        assigned = self.variation_name(feature_name, subject_id)
        return assigned is not None and assigned.lower() == variation_name.lower()

    def label(self, feature_name: str, subject_id: str | None = None) -> str | None:
        """サブジェクトに割り当てられたバリエーションのラベルを返す。"""
        variation = self._variation(feature_name, subject_id)
        return variation.label if variation is not None else None
