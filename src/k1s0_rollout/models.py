"""rollout データモデル"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag, auto

ENABLED_VARIATION = "enabled"
DISABLED_VARIATION = "disabled"


class FeatureKind(Enum):
    """バリエーション数から決まるフィーチャーの種別。"""

    FLAG = "flag"
    FEATURE_TEST = "feature_test"
    AB_TEST = "ab_test"
    MVT = "mvt"


@dataclass(frozen=True)
class Variation:
    """テストバリエーション。index は設定上の並び順。"""

    name: str
    index: int
    bias: int
    label: str | None = None


@dataclass(frozen=True)
class Feature:
    """フィーチャー定義。

    variations の並び順は bias / label の対応関係の一部であり、
    割り当て境界もこの順で決まる。bias は検証済みの実効値を保持する
    （不正な test-biases は均等配分に置き換え済み）。
    """

    name: str
    enabled: bool = False
    variations: tuple[Variation, ...] = ()
    description: str = ""
    bias_fallback: bool = False

    @property
    def kind(self) -> FeatureKind:
        if not self.variations:
            return FeatureKind.FLAG
        if len(self.variations) == 2:
            names = {v.name.lower() for v in self.variations}
            if names == {ENABLED_VARIATION, DISABLED_VARIATION}:
                return FeatureKind.FEATURE_TEST
            return FeatureKind.AB_TEST
        return FeatureKind.MVT

    @property
    def biases(self) -> tuple[int, ...]:
        return tuple(v.bias for v in self.variations)

    @property
    def labels(self) -> tuple[str, ...] | None:
        if not self.variations or any(v.label is None for v in self.variations):
            return None
        return tuple(v.label for v in self.variations)  # type: ignore[misc]

    @property
    def variation_names(self) -> tuple[str, ...]:
        return tuple(v.name for v in self.variations)

    def variation_named(self, name: str) -> Variation | None:
        """大文字小文字を区別せずにバリエーションを探す。"""
        for variation in self.variations:
            if variation.name.lower() == name.lower():
                return variation
        return None


@dataclass(frozen=True)
class BiasFallback:
    """均等配分へのフォールバック記録。"""

    feature: str
    reason: str


@dataclass(frozen=True)
class ConfigurationDocument:
    """ロード単位となる設定ドキュメント。生成後は変更しない。"""

    features: tuple[Feature, ...] = ()
    fallbacks: tuple[BiasFallback, ...] = ()

    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.features)


@dataclass(frozen=True)
class Assignment:
    """サブジェクトへのバリエーション割り当て結果。"""

    subject_id: str
    feature_name: str
    variation_index: int | None
    version: int


class ChangeKind(Flag):
    """設定更新時のフィーチャー単位の変更種別。"""

    NONE = 0
    ADDED = auto()
    REMOVED = auto()
    ENABLED_CHANGED = auto()
    BIASES_CHANGED = auto()
    VARIATIONS_CHANGED = auto()
    LABELS_CHANGED = auto()


@dataclass(frozen=True)
class FeatureChange:
    """1 フィーチャー分の変更内容。"""

    name: str
    kind: ChangeKind

    def __contains__(self, kind: ChangeKind) -> bool:
        return bool(self.kind & kind)


@dataclass(frozen=True)
class UpdateResult:
    """apply_update の結果。判定用ではなく情報提供用。"""

    previous_version: int
    version: int
    changes: tuple[FeatureChange, ...] = field(default_factory=tuple)

    def changed(self, name: str) -> FeatureChange | None:
        for change in self.changes:
            if change.name == name:
                return change
        return None

    def names_with(self, kind: ChangeKind) -> tuple[str, ...]:
        return tuple(c.name for c in self.changes if kind in c)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)
