"""rollout ライブラリの例外型定義"""

from __future__ import annotations


class RolloutError(Exception):
    """rollout ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class RolloutErrorCodes:
    """RolloutError のエラーコード定数。"""

    READ_FILE: str = "READ_FILE_ERROR"
    PARSE: str = "PARSE_ERROR"
    SCHEMA: str = "SCHEMA_ERROR"
    DUPLICATE_FEATURE: str = "DUPLICATE_FEATURE"
    DUPLICATE_VARIATION: str = "DUPLICATE_VARIATION"
    LABELS_MISMATCH: str = "LABELS_MISMATCH"
    NOT_CONFIGURED: str = "NOT_CONFIGURED"
    FEATURE_NOT_FOUND: str = "FEATURE_NOT_FOUND"


class ValidationError(RolloutError):
    """設定ドキュメントが不正な場合のエラー。ドキュメント全体が拒否される。"""

    def __init__(
        self,
        code: str,
        message: str,
        feature: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(code, message, cause)
        self.feature = feature


class NotConfiguredError(RolloutError):
    """設定が一度もロードされていない状態での参照。"""

    def __init__(self) -> None:
        super().__init__(
            RolloutErrorCodes.NOT_CONFIGURED,
            "No configuration has been loaded",
        )


class UnknownFeatureError(RolloutError):
    """現在の設定に存在しないフィーチャーの参照。"""

    def __init__(self, name: str) -> None:
        super().__init__(
            RolloutErrorCodes.FEATURE_NOT_FOUND,
            f"Feature not found: {name}",
        )
        self.name = name


class BiasFallbackWarning(UserWarning):
    """test-biases が不正なため均等配分にフォールバックしたことを示す警告。"""
