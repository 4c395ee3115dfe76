from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from rapidfuzz import fuzz

from .components import AddressComponents


@dataclass(frozen=True)
class MatchBreakdown:
    score: float
    weights: Dict[str, float]
    comparisons: Dict[str, str]


_WEIGHTS = {
    "housenumber": 0.40,
    "street": 0.35,
    "city": 0.10,
    "postcode": 0.15,
}


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return fuzz.token_sort_ratio(a, b) / 100.0


def _exact(a: str, b: str) -> float:
    return 1.0 if a and a == b else 0.0


def score_components(left: AddressComponents, right: AddressComponents) -> MatchBreakdown:
    """Compare two component sets and produce a weighted score in [0, 1].

    Components missing on either side are left out of the weight total, so a
    listing without a city is not penalised against a fully tagged feature.
    The house number is the exception: when ``left`` has one, ``right`` must
    carry the same one.
    Without a street on both sides there is nothing to anchor on and the
    score is zero.
    """

    comparisons: Dict[str, str] = {}
    used: Dict[str, float] = {}

    similarities = {
        "housenumber": _exact(left.housenumber, right.housenumber),
        "street": _similarity(left.street, right.street),
        "city": _similarity(left.city, right.city),
        "postcode": _exact(left.postcode, right.postcode),
    }

    for name, weight in _WEIGHTS.items():
        left_value = getattr(left, name)
        right_value = getattr(right, name)
        comparisons[name] = f"{left_value}|{right_value}"
        if left_value and right_value:
            used[name] = weight
        elif name == "housenumber" and left_value:
            # a numbered address never fully matches an unnumbered feature
            used[name] = weight

    if "street" not in used:
        return MatchBreakdown(score=0.0, weights=used, comparisons=comparisons)

    total = sum(used.values())
    score = sum(weight * similarities[name] for name, weight in used.items()) / total
    return MatchBreakdown(score=score, weights=used, comparisons=comparisons)
