from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence

from .components import MapFeature, MatchStrength
from .parser import components_from_tags, parse_address
from .scorer import score_components

StrengthEvaluator = Callable[[Any, MapFeature], MatchStrength]
FeatureAllowance = Callable[[MapFeature], bool]

DEFAULT_NAME_KEYS = ("operator", "brand", "name")


def constant_strength(strength: MatchStrength) -> StrengthEvaluator:
    def evaluate(item: Any, feature: MapFeature) -> MatchStrength:
        return strength

    return evaluate


weak_evaluator = constant_strength(MatchStrength.WEAK)


def name_fragment_evaluator(
    fragments: Iterable[str],
    keys: Sequence[str] = DEFAULT_NAME_KEYS,
    strength: MatchStrength = MatchStrength.STRONG,
    otherwise: MatchStrength = MatchStrength.UNMATCHED,
) -> StrengthEvaluator:
    """Grade by whether the first present tag among ``keys`` contains a fragment.

    Matching is a case-insensitive substring test, so ``"swedbank"`` accepts
    ``operator=Swedbank AS``.
    """
    lowered = [fragment.lower() for fragment in fragments if fragment]

    def evaluate(item: Any, feature: MapFeature) -> MatchStrength:
        value = next((feature.get(key) for key in keys if feature.get(key)), None)
        if value is None:
            return otherwise
        value = value.lower()
        if any(fragment in value for fragment in lowered):
            return strength
        return otherwise

    return evaluate


def address_evaluator(
    address_of: Callable[[Any], Optional[str]],
    threshold: float = 0.85,
    strength: MatchStrength = MatchStrength.STRONG,
    otherwise: MatchStrength = MatchStrength.WEAK,
) -> StrengthEvaluator:
    """Grade by fuzzy comparison of an item's address against ``addr:*`` tags."""

    def evaluate(item: Any, feature: MapFeature) -> MatchStrength:
        text = address_of(item)
        if not text:
            return otherwise
        item_components = parse_address(text)
        feature_components = components_from_tags(feature)
        if item_components.is_empty() or feature_components.is_empty():
            return otherwise
        breakdown = score_components(item_components, feature_components)
        return strength if breakdown.score >= threshold else otherwise

    return evaluate


def combine_evaluators(*evaluators: StrengthEvaluator) -> StrengthEvaluator:
    """Strongest grade any of ``evaluators`` gives."""
    if not evaluators:
        raise ValueError("combine_evaluators needs at least one evaluator")

    def evaluate(item: Any, feature: MapFeature) -> MatchStrength:
        return max(evaluator(item, feature) for evaluator in evaluators)

    return evaluate


def tag_allowance(key: str, *values: str) -> FeatureAllowance:
    """Allow a lone feature whose ``key`` tag is one of ``values`` (e.g. seasonal=yes)."""
    accepted = frozenset(values)

    def allowed(feature: MapFeature) -> bool:
        return feature.get(key) in accepted

    return allowed


def allow_all(feature: MapFeature) -> bool:
    return True
