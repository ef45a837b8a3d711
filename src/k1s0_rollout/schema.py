"""設定ドキュメントの入力スキーマ（pydantic BaseModel）"""

from __future__ import annotations

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    field_validator,
)


def _none_as_empty(value: Any) -> Any:
    # YAML の "features:" のように値が空のキーは None になる
    return [] if value is None else value


class FeatureRecord(BaseModel):
    """features 配列の 1 要素。

    test-biases は検証失敗時に均等配分へフォールバックさせるため、
    ここでは型を絞らずパーサー側で検証する。
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: StrictStr = Field(min_length=1)
    enabled: StrictBool = False
    description: StrictStr = ""
    test_variations: list[StrictStr] = Field(
        default_factory=list, alias="test-variations"
    )
    test_biases: Any = Field(default=None, alias="test-biases")
    labels: list[StrictStr] | None = None

    @field_validator("name")
    @classmethod
    def _reject_control_characters(cls, value: str) -> str:
        # 制御文字はバケット位置のハッシュ入力の区切りに使う
        if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
            raise ValueError("feature name must not contain control characters")
        return value

    @field_validator("test_variations", mode="before")
    @classmethod
    def _variations_none_as_empty(cls, value: Any) -> Any:
        return _none_as_empty(value)


class DocumentRecord(BaseModel):
    """設定ドキュメント全体。"""

    model_config = ConfigDict(extra="ignore")

    features: list[FeatureRecord] = Field(default_factory=list)

    @field_validator("features", mode="before")
    @classmethod
    def _features_none_as_empty(cls, value: Any) -> Any:
        return _none_as_empty(value)
