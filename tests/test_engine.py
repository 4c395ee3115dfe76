import pytest

from map_correlator.components import (
    DataItem,
    LoneFeature,
    MapFeature,
    MatchedClose,
    MatchedFar,
    MatchStrength,
    UnmatchedFeature,
    UnmatchedItem,
)
from map_correlator.engine import CorrelationConfig, Correlator, correlate
from map_correlator.exceptions import ConfigurationError, CorrelationCancelled
from map_correlator.geo import Coordinate, distance_m, offset
from map_correlator.store import MemoryFeatureStore
from map_correlator.strategies import tag_allowance

ORIGIN = Coordinate(0.0, 0.0)


def build_feature(feature_id: str, north_m: float = 0.0, east_m: float = 0.0, **tags):
    return MapFeature(
        feature_id=feature_id,
        coord=offset(ORIGIN, north_m=north_m, east_m=east_m),
        tags=tags,
        reference=f"node/{feature_id}",
    )


def build_item(label: str, north_m: float = 0.0, east_m: float = 0.0):
    return DataItem(coord=offset(ORIGIN, north_m=north_m, east_m=east_m), label=label)


class NearbyOnlyLocator:
    """Locator exposing only the spatial query, without enumeration."""

    def __init__(self, features):
        self._store = MemoryFeatureStore(features)

    def find_within(self, center, radius_m):
        return self._store.find_within(center, radius_m)


def test_feature_on_top_of_item_is_matched_close():
    feature = build_feature("1")
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert len(result) == 1
    assert isinstance(result[0], MatchedClose)
    assert result[0].feature == feature
    assert result[0].distance_m == pytest.approx(0.0)
    assert result[0].strength is MatchStrength.WEAK


def test_feature_fifty_meters_away_is_matched_far():
    feature = build_feature("1", north_m=50)
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert isinstance(result[0], MatchedFar)
    assert result[0].distance_m == pytest.approx(50.0, abs=0.01)


def test_feature_beyond_far_distance_leaves_both_unmatched():
    feature = build_feature("1", north_m=100)
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert result == [UnmatchedItem(item), UnmatchedFeature(feature)]


def test_feature_beyond_range_is_lone_when_allowed():
    feature = build_feature("1", north_m=100, seasonal="yes")
    item = build_item("tap")
    config = CorrelationConfig(lone_feature_allowance=tag_allowance("seasonal", "yes"))

    result = correlate([item], config, MemoryFeatureStore([feature]))

    assert result == [UnmatchedItem(item), LoneFeature(feature)]


def test_first_item_claims_shared_feature():
    feature = build_feature("1", north_m=5)
    first = build_item("first")
    second = build_item("second", north_m=10)

    result = correlate([first, second], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert isinstance(result[0], MatchedClose)
    assert result[0].item == first
    assert result[1] == UnmatchedItem(second)
    assert len(result) == 2


def test_claim_order_follows_input_order():
    feature = build_feature("1", north_m=5)
    first = build_item("first")
    second = build_item("second", north_m=10)

    result = correlate([second, first], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert result[0].item == second
    assert result[1] == UnmatchedItem(first)


def test_strong_extra_distance_accepts_far_strong_match():
    feature = build_feature("1", north_m=400)
    item = build_item("office")
    config = CorrelationConfig(
        extra_distance_by_strength={MatchStrength.STRONG: 500},
        strength_evaluator=lambda item, feature: MatchStrength.STRONG,
    )

    result = correlate([item], config, MemoryFeatureStore([feature]))

    assert isinstance(result[0], MatchedFar)
    assert result[0].strength is MatchStrength.STRONG
    assert len(result) == 1


def test_weak_match_does_not_use_strong_extra_distance():
    feature = build_feature("1", north_m=400)
    item = build_item("office")
    config = CorrelationConfig(
        extra_distance_by_strength={MatchStrength.STRONG: 500},
        strength_evaluator=lambda item, feature: MatchStrength.WEAK,
    )

    result = correlate([item], config, MemoryFeatureStore([feature]))

    assert result == [UnmatchedItem(item), UnmatchedFeature(feature)]


def test_raising_strong_ceiling_changes_only_strong_outcomes():
    strong_feature = build_feature("strong", north_m=200)
    weak_feature = build_feature("weak", north_m=5100)
    strong_item = build_item("strong-item")
    weak_item = build_item("weak-item", north_m=5000)
    store = MemoryFeatureStore([strong_feature, weak_feature])

    def evaluator(item, feature):
        if item.label.startswith("strong") and feature.feature_id == "strong":
            return MatchStrength.STRONG
        if item.label.startswith("weak") and feature.feature_id == "weak":
            return MatchStrength.WEAK
        return MatchStrength.UNMATCHED

    base = CorrelationConfig(far_distance=150, strength_evaluator=evaluator)
    raised = CorrelationConfig(
        far_distance=150,
        extra_distance_by_strength={MatchStrength.STRONG: 250},
        strength_evaluator=evaluator,
    )

    before = correlate([strong_item, weak_item], base, store)
    after = correlate([strong_item, weak_item], raised, store)

    assert before[0] == UnmatchedItem(strong_item)
    assert isinstance(after[0], MatchedFar)
    assert after[0].strength is MatchStrength.STRONG
    assert isinstance(before[1], MatchedFar)
    assert before[1] == after[1]


def test_stronger_candidate_wins_over_nearer_one():
    near = build_feature("near", north_m=2, name="Somewhere")
    far = build_feature("far", north_m=30, name="Swedbank")
    item = build_item("atm")

    def evaluator(item, feature):
        return MatchStrength.STRONG if feature.get("name") == "Swedbank" else MatchStrength.WEAK

    result = correlate([item], CorrelationConfig(strength_evaluator=evaluator), MemoryFeatureStore([near, far]))

    assert result[0].feature == far
    assert result[0].strength is MatchStrength.STRONG
    assert result[1] == UnmatchedFeature(near)


def test_equal_strength_prefers_nearest():
    features = [build_feature("a", north_m=40), build_feature("b", north_m=-10), build_feature("c", east_m=25)]
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore(features))

    assert result[0].feature.feature_id == "b"


def test_unmatched_grade_candidates_are_discarded():
    feature = build_feature("1")
    item = build_item("tap")
    config = CorrelationConfig(strength_evaluator=lambda item, feature: MatchStrength.UNMATCHED)

    result = correlate([item], config, MemoryFeatureStore([feature]))

    assert result == [UnmatchedItem(item), UnmatchedFeature(feature)]


def test_rejected_top_candidate_does_not_fall_back():
    strong_far = build_feature("strong", north_m=70)
    weak_near = build_feature("weak", north_m=10)
    item = build_item("office")

    def evaluator(item, feature):
        return MatchStrength.STRONG if feature.feature_id == "strong" else MatchStrength.WEAK

    config = CorrelationConfig(
        far_distance=75,
        extra_distance_by_strength={MatchStrength.STRONG: 60, MatchStrength.MEDIOCRE: 100},
        strength_evaluator=evaluator,
    )

    result = correlate([item], config, MemoryFeatureStore([strong_far, weak_near]))

    assert result[0] == UnmatchedItem(item)
    assert {outcome.feature.feature_id for outcome in result[1:]} == {"strong", "weak"}


def test_boolean_evaluator_results_are_graded():
    feature = build_feature("1")
    item = build_item("tap")
    config = CorrelationConfig(strength_evaluator=lambda item, feature: feature.get("name") == "Tap")

    result = correlate([item], config, MemoryFeatureStore([feature]))

    assert result[0] == UnmatchedItem(item)


def test_unclaimed_features_follow_items_in_first_seen_order():
    features = [
        build_feature("never-near", north_m=10000),
        build_feature("second-seen", north_m=1000),
        build_feature("first-seen", north_m=-30),
        build_feature("claimed", north_m=-1),
    ]
    items = [build_item("a"), build_item("b", north_m=1020)]
    config = CorrelationConfig(strength_evaluator=lambda item, feature: feature.feature_id == "claimed")

    result = correlate(items, config, MemoryFeatureStore(features))

    assert [type(outcome) for outcome in result[:2]] == [MatchedClose, UnmatchedItem]
    assert [outcome.feature.feature_id for outcome in result[2:]] == ["first-seen", "second-seen", "never-near"]


def test_locator_without_enumeration_only_sweeps_observed_features():
    near = build_feature("near", north_m=30)
    remote = build_feature("remote", north_m=5000)
    item = build_item("tap")
    config = CorrelationConfig(strength_evaluator=lambda item, feature: MatchStrength.UNMATCHED)

    result = correlate([item], config, NearbyOnlyLocator([near, remote]))

    assert result == [UnmatchedItem(item), UnmatchedFeature(near)]


def test_every_item_gets_exactly_one_outcome_and_features_are_exclusive():
    features = [build_feature(str(i), north_m=i * 20) for i in range(10)]
    items = [build_item(f"item-{i}", north_m=i * 13) for i in range(15)]
    store = MemoryFeatureStore(features)
    config = CorrelationConfig()

    result = correlate(items, config, store)

    assert [getattr(outcome, "item", None) for outcome in result[: len(items)]] == items
    claimed = [match.feature.feature_id for match in result.matches]
    assert len(claimed) == len(set(claimed))
    swept = [outcome.feature.feature_id for outcome in result[len(items):]]
    assert len(swept) == len(set(swept))
    assert set(swept).isdisjoint(claimed)
    assert set(swept) | set(claimed) == {feature.feature_id for feature in features}
    for match in result.matches:
        close = distance_m(match.item.coord, match.feature.coord) <= config.match_distance
        assert close == isinstance(match, MatchedClose)


def test_degenerate_evaluator_picks_nearest_within_far_distance():
    features = [build_feature("a", north_m=60), build_feature("b", east_m=20), build_feature("c", north_m=-80)]
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore(features))

    assert result[0].feature.feature_id == "b"
    assert result[0].strength is MatchStrength.WEAK


def test_running_twice_gives_identical_outcomes():
    features = [build_feature(str(i), north_m=i * 17, east_m=i * 3) for i in range(8)]
    items = [build_item(f"item-{i}", north_m=i * 21) for i in range(8)]
    store = MemoryFeatureStore(features)
    config = CorrelationConfig(lone_feature_allowance=lambda feature: int(feature.feature_id) % 2 == 0)

    assert correlate(items, config, store) == correlate(items, config, store)


def test_matched_features_maps_feature_to_item():
    feature = build_feature("1", north_m=3)
    item = build_item("tap")

    result = correlate([item], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert result.matched_features == {"1": item}


def test_distance_boundaries_are_inclusive():
    feature = build_feature("1", north_m=40)
    item = build_item("tap")
    store = MemoryFeatureStore([feature])
    d = distance_m(item.coord, feature.coord)

    close = correlate([item], CorrelationConfig(match_distance=d, far_distance=d), store)
    far = correlate([item], CorrelationConfig(match_distance=5, far_distance=d), store)
    by_strength = correlate(
        [item],
        CorrelationConfig(match_distance=5, far_distance=10, extra_distance_by_strength={MatchStrength.WEAK: d}),
        store,
    )

    assert isinstance(close[0], MatchedClose)
    assert isinstance(far[0], MatchedFar)
    assert isinstance(by_strength[0], MatchedFar)
    assert by_strength[0].distance_m == pytest.approx(d)
    assert len(by_strength) == 1


def test_missing_inputs_are_configuration_errors():
    store = MemoryFeatureStore([])
    with pytest.raises(ConfigurationError):
        correlate(None, CorrelationConfig(), store)
    with pytest.raises(ConfigurationError):
        correlate([], None, store)
    with pytest.raises(ConfigurationError):
        correlate([], CorrelationConfig(), None)
    with pytest.raises(ConfigurationError):
        Correlator(store, None)


def test_evaluator_errors_propagate():
    feature = build_feature("1")
    item = build_item("tap")

    def broken(item, feature):
        raise RuntimeError("lookup failed")

    with pytest.raises(RuntimeError, match="lookup failed"):
        correlate([item], CorrelationConfig(strength_evaluator=broken), MemoryFeatureStore([feature]))


def test_cancellation_is_checked_between_items():
    items = [build_item(str(i)) for i in range(3)]
    calls = []

    def should_cancel():
        calls.append(1)
        return len(calls) > 2

    correlator = Correlator(MemoryFeatureStore([]), CorrelationConfig())
    with pytest.raises(CorrelationCancelled) as excinfo:
        correlator.correlate(items, should_cancel=should_cancel)

    assert excinfo.value.processed == 2


def test_empty_item_list_sweeps_store():
    feature = build_feature("1")

    result = correlate([], CorrelationConfig(), MemoryFeatureStore([feature]))

    assert result == [UnmatchedFeature(feature)]
