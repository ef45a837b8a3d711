"""決定的なバケット割り当て

サブジェクトの位置は sha256(salt + feature_name + "\\x1f" + subject_id) の
先頭 8 バイト（ビッグエンディアン符号なし 64bit 整数）を 100 で割った余り。
フィーチャー名を入力に含めるため、無関係なテスト間で割り当てが相関しない。
パース時にフィーチャー名の制御文字は拒否されるため、区切り文字は衝突しない。

位置 p は累積 bias の半開区間 [lower, upper) に従ってバリエーションに対応する。
境界ちょうどの位置は上側（次）のバケットに属する。bias の合計が 100 で
あることが、区間が [0, 100) を隙間なく重複なく覆う前提になる。
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

from .models import Feature

BUCKET_COUNT = 100
_SEPARATOR = "\x1f"


def uniform_biases(count: int) -> list[int]:
    """count 個への均等配分。端数は先頭から 1 ずつ配る（3 個なら [34, 33, 33]）。"""
    if count <= 0:
        return []
    base, remainder = divmod(BUCKET_COUNT, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def cumulative_boundaries(biases: Sequence[int]) -> tuple[tuple[int, int], ...]:
    """bias 列を半開区間 [lower, upper) の列に変換する。"""
    bounds: list[tuple[int, int]] = []
    lower = 0
    for bias in biases:
        upper = lower + bias
        bounds.append((lower, upper))
        lower = upper
    return tuple(bounds)


class AssignmentEngine:
    """サブジェクト ID とフィーチャーからバリエーション index を決定する。"""

    def __init__(self, salt: str = "") -> None:
        self._salt = salt

    @property
    def salt(self) -> str:
        return self._salt

    def position(self, subject_id: str, feature_name: str) -> int:
        """[0, 100) の決定的な位置を返す。"""
        key = f"{self._salt}{feature_name}{_SEPARATOR}{subject_id}".encode("utf-8")
        digest = hashlib.sha256(key).digest()
        return int.from_bytes(digest[:8], "big") % BUCKET_COUNT

    def weights(self, feature: Feature) -> list[int]:
        """実効 bias を返す。合計が 100 でなければ均等配分を使う。"""
        biases = list(feature.biases)
        if (
            len(biases) != len(feature.variations)
            or any(b < 0 for b in biases)
            or sum(biases) != BUCKET_COUNT
        ):
            return uniform_biases(len(feature.variations))
        return biases

    def boundaries(self, feature: Feature) -> tuple[tuple[int, int], ...]:
        return cumulative_boundaries(self.weights(feature))

    def assign(self, subject_id: str, feature: Feature) -> int | None:
        """バリエーション index を返す。無効なフィーチャーやフラグは None。"""
        if not feature.enabled or not feature.variations:
            return None
        position = self.position(subject_id, feature.name)
        for index, (_, upper) in enumerate(self.boundaries(feature)):
            if position < upper:
                return index
        # bias 合計が 100 なら到達しない
        return len(feature.variations) - 1
