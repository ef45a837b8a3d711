"""RolloutController のユニットテスト"""

import threading

import pytest
from k1s0_rollout import (
    ChangeKind,
    FeatureRegistry,
    RolloutController,
    RolloutErrorCodes,
    UpdateResult,
    ValidationError,
    parse,
)


def make_raw(biases: list[int] | None = None, enabled: bool = True, **extra: dict) -> dict:
    feature: dict = {"name": "X", "enabled": enabled, "test-variations": ["A", "B"]}
    if biases is not None:
        feature["test-biases"] = biases
    features = [feature, *extra.values()]
    return {"features": features}


def make_controller() -> RolloutController:
    return RolloutController(FeatureRegistry())


class RecordingObserver:
    """on_update の呼び出しを記録するオブザーバー。"""

    def __init__(self) -> None:
        self.results: list[UpdateResult] = []

    def on_update(self, result: UpdateResult) -> None:
        self.results.append(result)


def test_initial_load_reports_all_features_added() -> None:
    """初回ロードは version 0 → 1 で全フィーチャーが ADDED。"""
    controller = make_controller()
    result = controller.load(make_raw([50, 50], other={"name": "Y", "enabled": False}))
    assert result.previous_version == 0
    assert result.version == 1
    assert result.names_with(ChangeKind.ADDED) == ("X", "Y")


def test_apply_update_before_load_acts_as_load() -> None:
    """未ロード状態の apply_update は初回ロードと同じ。"""
    controller = make_controller()
    result = controller.apply_update(parse(make_raw([50, 50])))
    assert result.version == 1
    assert controller.registry.is_configured is True


def test_noop_bias_update_keeps_assignments() -> None:
    """[50, 50] → [50, 50] の更新では誰の割り当ても変わらない。"""
    controller = make_controller()
    registry = controller.registry
    controller.load(make_raw([50, 50]))
    before = {f"user-{i}": registry.variation("X", f"user-{i}") for i in range(1000)}
    result = controller.apply_update(make_raw([50, 50]))
    assert result.version == 2
    assert result.has_changes is False
    for subject, variation in before.items():
        assert registry.variation("X", subject) == variation


def test_bias_change_rebuckets_towards_new_ratio() -> None:
    """[50, 50] → [10, 90] は BIASES_CHANGED として報告され、境界は新しい比率になる。"""
    controller = make_controller()
    registry = controller.registry
    controller.load(make_raw([50, 50]))
    result = controller.apply_update(make_raw([10, 90]))
    change = result.changed("X")
    assert change is not None
    assert ChangeKind.BIASES_CHANGED in change
    assert ChangeKind.ENABLED_CHANGED not in change
    feature = registry.get("X")
    assert registry.engine.boundaries(feature) == ((0, 10), (10, 100))
    for i in range(500):
        subject = f"user-{i}"
        position = registry.engine.position(subject, "X")
        expected = "A" if position < 10 else "B"
        assert registry.variation("X", subject).name == expected  # type: ignore[union-attr]


def test_enabled_change_is_reported() -> None:
    """enabled の変更は ENABLED_CHANGED。"""
    controller = make_controller()
    controller.load(make_raw([50, 50]))
    result = controller.apply_update(make_raw([50, 50], enabled=False))
    assert result.names_with(ChangeKind.ENABLED_CHANGED) == ("X",)
    assert controller.registry.variation("X", "user-1") is None


def test_variation_and_label_changes_are_reported() -> None:
    """バリエーション・ラベルの変更も報告される。"""
    controller = make_controller()
    controller.load({"features": [{"name": "Z", "enabled": True, "test-variations": ["A", "B"]}]})
    result = controller.apply_update(
        {
            "features": [
                {
                    "name": "Z",
                    "enabled": True,
                    "test-variations": ["A", "C"],
                    "labels": ["a", "c"],
                }
            ]
        }
    )
    change = result.changed("Z")
    assert change is not None
    assert ChangeKind.VARIATIONS_CHANGED in change
    assert ChangeKind.LABELS_CHANGED in change
    assert ChangeKind.BIASES_CHANGED not in change


def test_removed_feature_is_disabled_without_error() -> None:
    """削除されたフィーチャーはエラーなしで無効扱いになる。"""
    controller = make_controller()
    registry = controller.registry
    controller.load(make_raw([80, 20]))
    assert registry.is_enabled("X", "user-1") is True
    result = controller.apply_update({"features": [{"name": "Y", "enabled": True}]})
    assert result.names_with(ChangeKind.REMOVED) == ("X",)
    assert result.names_with(ChangeKind.ADDED) == ("Y",)
    for i in range(50):
        assert registry.is_enabled("X", f"user-{i}") is False
        assert registry.variation("X", f"user-{i}") is None


def test_invalid_update_keeps_previous_configuration() -> None:
    """パースに失敗した更新は適用されず、直前の設定が有効なまま。"""
    controller = make_controller()
    registry = controller.registry
    controller.load(make_raw([80, 20]))
    observer = RecordingObserver()
    controller.subscribe(observer)
    bad = {"features": [{"name": "X", "enabled": False}, {"name": "X", "enabled": True}]}
    with pytest.raises(ValidationError) as exc_info:
        controller.apply_update(bad)
    assert exc_info.value.code == RolloutErrorCodes.DUPLICATE_FEATURE
    assert registry.version == 1
    assert registry.get("X").biases == (80, 20)
    assert observer.results == []


def test_observers_are_notified_in_order() -> None:
    """オブジェクトと関数の両方のオブザーバーが登録順に通知される。"""
    controller = make_controller()
    calls: list[str] = []
    observer = RecordingObserver()

    def callback(result: UpdateResult) -> None:
        calls.append(f"callback:{result.version}")

    controller.subscribe(observer)
    controller.subscribe(callback)
    controller.load(make_raw([50, 50]))
    controller.apply_update(make_raw([20, 80]))
    assert [r.version for r in observer.results] == [1, 2]
    assert calls == ["callback:1", "callback:2"]
    assert observer.results[1].names_with(ChangeKind.BIASES_CHANGED) == ("X",)


def test_unsubscribe() -> None:
    """解除したオブザーバーには通知されない。"""
    controller = make_controller()
    observer = RecordingObserver()
    controller.subscribe(observer)
    assert controller.unsubscribe(observer) is True
    assert controller.unsubscribe(observer) is False
    controller.load(make_raw([50, 50]))
    assert observer.results == []


def test_observer_sees_new_configuration() -> None:
    """通知時点で差し替えは完了している。"""
    controller = make_controller()
    seen: list[int] = []
    controller.subscribe(lambda result: seen.append(controller.registry.version))
    controller.load(make_raw([50, 50]))
    assert seen == [1]


def test_readers_never_observe_mixed_versions() -> None:
    """更新中の読み取りは常にいずれか 1 つの version のドキュメントを見る。"""
    controller = make_controller()
    registry = controller.registry

    def document(enabled: bool) -> dict:
        return {
            "features": [{"name": f"f{i}", "enabled": enabled} for i in range(20)]
        }

    controller.load(document(True))
    errors: list[str] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            states = {f.enabled for f in registry.features()}
            if len(states) != 1:
                errors.append(f"mixed states: {states}")

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for n in range(200):
        controller.apply_update(document(n % 2 == 0))
    stop.set()
    for t in threads:
        t.join()
    assert errors == []
    assert registry.version == 201


def test_unrelated_feature_changes_keep_assignments() -> None:
    """他のフィーチャーの変更・追加はこのフィーチャーの割り当てに影響しない。"""
    controller = make_controller()
    registry = controller.registry
    y_before = {
        "name": "Y",
        "enabled": True,
        "test-variations": ["P", "Q"],
        "test-biases": [50, 50],
    }
    controller.load(make_raw([80, 20], y=y_before))
    before = {f"user-{i}": registry.variation("X", f"user-{i}") for i in range(1000)}

    y_after = {
        "name": "Y",
        "enabled": False,
        "test-variations": ["P", "Q", "R"],
        "test-biases": [10, 10, 80],
    }
    z = {
        "name": "Z",
        "enabled": True,
        "test-variations": ["A", "B"],
        "test-biases": [5, 95],
    }
    result = controller.apply_update(make_raw([80, 20], y=y_after, z=z))
    assert result.changed("X") is None
    assert result.names_with(ChangeKind.ADDED) == ("Z",)
    y_change = result.changed("Y")
    assert y_change is not None
    assert ChangeKind.ENABLED_CHANGED in y_change
    assert ChangeKind.VARIATIONS_CHANGED in y_change
    assert ChangeKind.BIASES_CHANGED in y_change
    for subject, variation in before.items():
        assert registry.variation("X", subject) == variation


def test_failing_observer_does_not_block_others() -> None:
    """あるオブザーバーが失敗しても後続は通知され、最初の例外が伝播する。"""
    controller = make_controller()
    later = RecordingObserver()

    def failing(result: UpdateResult) -> None:
        raise RuntimeError("observer broke")

    controller.subscribe(failing)
    controller.subscribe(later)
    with pytest.raises(RuntimeError, match="observer broke"):
        controller.load(make_raw([50, 50]))
    assert [r.version for r in later.results] == [1]
    assert controller.registry.version == 1
