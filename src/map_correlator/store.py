from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
from scipy.spatial import KDTree

from .components import MapFeature
from .exceptions import DuplicateFeatureError
from .geo import EARTH_RADIUS_M, Coordinate, distance_m

LOGGER = logging.getLogger(__name__)

FeaturePredicate = Callable[[MapFeature], bool]


@runtime_checkable
class CandidateLocator(Protocol):
    """Spatial query the correlation engine needs from a feature store."""

    def find_within(self, center: Coordinate, radius_m: float) -> Sequence[MapFeature]:  # pragma: no cover - protocol
        ...


@runtime_checkable
class FeatureSource(CandidateLocator, Protocol):
    """A locator that can also enumerate every feature it holds."""

    def features(self) -> Sequence[MapFeature]:  # pragma: no cover - protocol
        ...


def has_key(key: str) -> FeaturePredicate:
    return lambda feature: feature.has_key(key)


def has_value(key: str, value: str) -> FeaturePredicate:
    return lambda feature: feature.get(key) == value


def has_any_value(key: str, *values: str) -> FeaturePredicate:
    accepted = frozenset(values)
    return lambda feature: feature.get(key) in accepted


def custom_match(fn: FeaturePredicate) -> FeaturePredicate:
    return fn


class MemoryFeatureStore:
    """Feature list with a KD-tree over unit-sphere positions for radius queries."""

    def __init__(self, features: Iterable[MapFeature] = ()) -> None:
        self._features: List[MapFeature] = []
        self._order: Dict[str, int] = {}

        for feature in features:
            if feature.feature_id in self._order:
                raise DuplicateFeatureError(f"Duplicate feature identity: {feature.feature_id}")
            self._order[feature.feature_id] = len(self._features)
            self._features.append(feature)

        self._tree: Optional[KDTree] = None
        if self._features:
            self._tree = KDTree(np.array([_unit_vector(f.coord) for f in self._features]))

        LOGGER.debug("Built spatial index over %d features", len(self._features))

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self) -> Iterator[MapFeature]:
        return iter(self._features)

    def features(self) -> List[MapFeature]:
        return list(self._features)

    def filter(self, *predicates: FeaturePredicate) -> "MemoryFeatureStore":
        selected = [f for f in self._features if all(predicate(f) for predicate in predicates)]
        return MemoryFeatureStore(selected)

    def find_within(self, center: Coordinate, radius_m: float) -> List[MapFeature]:
        """Features within ``radius_m`` of ``center`` (inclusive), nearest first."""
        if radius_m < 0 or self._tree is None:
            return []

        hits: List[Tuple[float, int, MapFeature]] = []
        for index in self._tree.query_ball_point(_unit_vector(center), r=_search_chord(radius_m)):
            feature = self._features[index]
            dist = distance_m(center, feature.coord)
            if dist <= radius_m:
                hits.append((dist, index, feature))

        hits.sort(key=lambda hit: (hit[0], hit[1]))
        return [feature for _, _, feature in hits]


def _unit_vector(coord: Coordinate) -> Tuple[float, float, float]:
    lat = math.radians(coord.lat)
    lon = math.radians(coord.lon)
    return (math.cos(lat) * math.cos(lon), math.cos(lat) * math.sin(lon), math.sin(lat))


def _search_chord(radius_m: float) -> float:
    # straight-line distance through the sphere for an arc of radius_m, padded
    # so rounding never drops a feature the exact distance check would keep
    angle = min(radius_m / EARTH_RADIUS_M, math.pi)
    return 2.0 * math.sin(angle / 2.0) * (1 + 1e-9) + 1e-12
