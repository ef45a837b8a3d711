"""設定ドキュメントのパースと検証"""

from __future__ import annotations

import warnings
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Union

import pydantic
import structlog
import yaml

from .engine import uniform_biases
from .exceptions import BiasFallbackWarning, RolloutErrorCodes, ValidationError
from .models import BiasFallback, ConfigurationDocument, Feature, Variation
from .schema import DocumentRecord, FeatureRecord

logger = structlog.get_logger(__name__)

RawDocument = Union[Mapping[str, Any], str, bytes]


def _decode(raw: RawDocument) -> Any:
    """JSON / YAML テキストを辞書に変換する。JSON は YAML のサブセットとして扱う。"""
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(
                code=RolloutErrorCodes.PARSE,
                message="Configuration is not valid UTF-8",
                cause=e,
            ) from e
    try:
        return yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ValidationError(
            code=RolloutErrorCodes.PARSE,
            message=f"Failed to parse configuration: {e}",
            cause=e,
        ) from e


def _bias_problem(biases: Any, count: int) -> str | None:
    """test-biases の問題点を返す。問題がなければ None。"""
    if not isinstance(biases, (list, tuple)):
        return "test-biases must be a list of integers"
    if any(isinstance(b, bool) or not isinstance(b, int) for b in biases):
        return "test-biases must contain only integers"
    if any(b < 0 for b in biases):
        return "test-biases must not be negative"
    if len(biases) != count:
        return f"expected {count} test-biases, got {len(biases)}"
    total = sum(biases)
    if total != 100:
        return f"test-biases must sum to 100, got {total}"
    return None


def _build_feature(record: FeatureRecord) -> tuple[Feature, BiasFallback | None]:
    names = record.test_variations
    count = len(names)

    seen: set[str] = set()
    for name in names:
        if name.lower() in seen:
            raise ValidationError(
                code=RolloutErrorCodes.DUPLICATE_VARIATION,
                message=f"Duplicate variation {name!r} in feature {record.name!r}",
                feature=record.name,
            )
        seen.add(name.lower())

    if record.labels is not None and len(record.labels) != count:
        raise ValidationError(
            code=RolloutErrorCodes.LABELS_MISMATCH,
            message=(
                f"Feature {record.name!r} has {len(record.labels)} labels "
                f"for {count} variations"
            ),
            feature=record.name,
        )

    fallback: BiasFallback | None = None
    biases: list[int] = uniform_biases(count)
    if record.test_biases is not None:
        if count == 0:
            logger.debug("biases_ignored", feature=record.name)
        else:
            problem = _bias_problem(record.test_biases, count)
            if problem is None:
                biases = list(record.test_biases)
            else:
                fallback = BiasFallback(feature=record.name, reason=problem)

    labels = record.labels or [None] * count
    variations = tuple(
        Variation(name=name, index=i, bias=biases[i], label=labels[i])
        for i, name in enumerate(names)
    )
    feature = Feature(
        name=record.name,
        enabled=record.enabled,
        variations=variations,
        description=record.description,
        bias_fallback=fallback is not None,
    )
    return feature, fallback


def parse(raw: RawDocument) -> ConfigurationDocument:
    """設定ドキュメントをパースして ConfigurationDocument を返す。

    raw: features キーを持つ辞書、または JSON / YAML テキスト。

    ドキュメントに構造上の誤り（フィーチャー名の重複、labels の長さ不一致など）
    があれば ValidationError を送出し、何も返さない。test-biases だけが不正な
    フィーチャーは均等配分にフォールバックし、BiasFallbackWarning を発行する。
    """
    data = _decode(raw)
    if not isinstance(data, Mapping):
        raise ValidationError(
            code=RolloutErrorCodes.SCHEMA,
            message=f"Configuration must be a mapping, got {type(data).__name__}",
        )
    try:
        record = DocumentRecord.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            code=RolloutErrorCodes.SCHEMA,
            message=f"Configuration validation failed: {e}",
            cause=e,
        ) from e

    features: list[Feature] = []
    fallbacks: list[BiasFallback] = []
    seen: set[str] = set()
    for feature_record in record.features:
        if feature_record.name in seen:
            raise ValidationError(
                code=RolloutErrorCodes.DUPLICATE_FEATURE,
                message=f"Duplicate feature name: {feature_record.name}",
                feature=feature_record.name,
            )
        seen.add(feature_record.name)
        feature, fallback = _build_feature(feature_record)
        features.append(feature)
        if fallback is not None:
            fallbacks.append(fallback)

    for fallback in fallbacks:
        logger.warning(
            "bias_fallback", feature=fallback.feature, reason=fallback.reason
        )
        warnings.warn(
            f"Feature {fallback.feature!r} falls back to uniform weighting: "
            f"{fallback.reason}",
            BiasFallbackWarning,
            stacklevel=2,
        )

    return ConfigurationDocument(features=tuple(features), fallbacks=tuple(fallbacks))


def parse_file(path: Path) -> ConfigurationDocument:
    """同梱の設定ファイルを読み込んでパースする。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(
            code=RolloutErrorCodes.READ_FILE,
            message=f"Failed to read configuration file: {path}",
            cause=e,
        ) from e
    return parse(text)
