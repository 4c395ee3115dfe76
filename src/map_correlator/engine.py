from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .components import (
    CorrelationOutcome,
    CorrelationResult,
    ExternalItem,
    LoneFeature,
    MapFeature,
    MatchedClose,
    MatchedFar,
    MatchStrength,
    UnmatchedFeature,
    UnmatchedItem,
)
from .exceptions import ConfigurationError, CorrelationCancelled
from .geo import distance_m
from .store import CandidateLocator, FeatureSource
from .strategies import FeatureAllowance, StrengthEvaluator, weak_evaluator

LOGGER = logging.getLogger(__name__)

DEFAULT_MATCH_DISTANCE = 15.0
DEFAULT_FAR_DISTANCE = 75.0

_OPTION_ALIASES = {
    "matchDistance": "match_distance",
    "farDistance": "far_distance",
    "extraDistanceByStrength": "extra_distance_by_strength",
    "strengthEvaluator": "strength_evaluator",
    "loneFeatureAllowance": "lone_feature_allowance",
}


def _check_distance(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number of meters, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"{name} must be a finite non-negative distance, got {value!r}")
    return float(value)


def _coerce_strength(key: Any) -> MatchStrength:
    if isinstance(key, MatchStrength):
        strength = key
    elif isinstance(key, str) and key.upper() in MatchStrength.__members__:
        strength = MatchStrength[key.upper()]
    else:
        raise ConfigurationError(f"Unknown match strength in distance table: {key!r}")
    if strength is MatchStrength.UNMATCHED:
        raise ConfigurationError("UNMATCHED candidates are never accepted and cannot have a distance")
    return strength


@dataclass(frozen=True)
class CorrelationConfig:
    """Distance policy and callbacks for one correlation run.

    ``match_distance`` separates close matches from far ones. ``far_distance``
    is both the base search radius and the default acceptance ceiling;
    ``extra_distance_by_strength`` overrides that ceiling for candidates graded
    exactly that strength.
    """

    match_distance: float = DEFAULT_MATCH_DISTANCE
    far_distance: float = DEFAULT_FAR_DISTANCE
    extra_distance_by_strength: Mapping[MatchStrength, float] = field(default_factory=dict)
    strength_evaluator: Optional[StrengthEvaluator] = None
    lone_feature_allowance: Optional[FeatureAllowance] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "match_distance", _check_distance("match_distance", self.match_distance))
        object.__setattr__(self, "far_distance", _check_distance("far_distance", self.far_distance))
        if self.match_distance > self.far_distance:
            raise ConfigurationError(
                f"match_distance ({self.match_distance}) exceeds far_distance ({self.far_distance})"
            )

        table = self.extra_distance_by_strength
        if table is None:
            table = {}
        if not isinstance(table, Mapping):
            raise ConfigurationError("extra_distance_by_strength must be a mapping of strength to meters")
        coerced: Dict[MatchStrength, float] = {}
        for key, value in table.items():
            strength = _coerce_strength(key)
            coerced[strength] = _check_distance(f"extra distance for {strength.name}", value)
        object.__setattr__(self, "extra_distance_by_strength", MappingProxyType(coerced))

        if self.strength_evaluator is not None and not callable(self.strength_evaluator):
            raise ConfigurationError("strength_evaluator must be callable")
        if self.lone_feature_allowance is not None and not callable(self.lone_feature_allowance):
            raise ConfigurationError("lone_feature_allowance must be callable")

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "CorrelationConfig":
        """Build a config from named options, accepting camelCase or snake_case names."""
        resolved: Dict[str, Any] = {}
        for name, value in {**(options or {}), **overrides}.items():
            key = _OPTION_ALIASES.get(name, name)
            if key not in cls.__dataclass_fields__:
                raise ConfigurationError(f"Unknown correlation option: {name}")
            if key in resolved:
                raise ConfigurationError(f"Correlation option given twice: {name}")
            resolved[key] = value
        return cls(**resolved)

    @property
    def search_radius(self) -> float:
        return max([self.far_distance, *self.extra_distance_by_strength.values()])

    def ceiling_for(self, strength: MatchStrength) -> float:
        return self.extra_distance_by_strength.get(strength, self.far_distance)


class Correlator:
    """Greedy, input-ordered matcher of external items to map features.

    Each item takes its best unclaimed candidate (strongest grade, then
    nearest) if that candidate lies within the ceiling for its grade. A
    claimed feature is unavailable to every later item of the same run.
    """

    def __init__(self, locator: CandidateLocator, config: CorrelationConfig) -> None:
        if locator is None or not callable(getattr(locator, "find_within", None)):
            raise ConfigurationError("A candidate locator with find_within() is required")
        if config is None:
            raise ConfigurationError("config must be provided")
        self.locator = locator
        self.config = config

    def correlate(
        self,
        items: Iterable[ExternalItem],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> CorrelationResult:
        if items is None:
            raise ConfigurationError("items must be provided")

        config = self.config
        evaluator = config.strength_evaluator or weak_evaluator
        radius = config.search_radius

        claimed: Set[str] = set()
        seen: Dict[str, MapFeature] = {}
        outcomes: List[CorrelationOutcome] = []

        for index, item in enumerate(items):
            if should_cancel is not None and should_cancel():
                raise CorrelationCancelled(index)
            outcomes.append(self._correlate_item(item, evaluator, radius, claimed, seen))

        item_count = len(outcomes)
        outcomes.extend(self._sweep_unclaimed(claimed, seen))

        result = CorrelationResult(outcomes)
        counts = result.counts()
        LOGGER.info(
            "Correlated %d items: %s",
            item_count,
            ", ".join(f"{kind.value}={count}" for kind, count in counts.items()),
        )
        return result

    def _correlate_item(
        self,
        item: ExternalItem,
        evaluator: StrengthEvaluator,
        radius: float,
        claimed: Set[str],
        seen: Dict[str, MapFeature],
    ) -> CorrelationOutcome:
        candidates: List[MapFeature] = []
        for feature in self.locator.find_within(item.coord, radius):
            seen.setdefault(feature.feature_id, feature)
            if feature.feature_id not in claimed:
                candidates.append(feature)

        if not candidates:
            LOGGER.debug("No unclaimed feature within %.0f m of %s", radius, item.coord)
            return UnmatchedItem(item)

        best: Optional[MapFeature] = None
        best_strength = MatchStrength.UNMATCHED
        best_distance = math.inf
        for candidate in candidates:
            strength = MatchStrength(evaluator(item, candidate))
            if strength is MatchStrength.UNMATCHED:
                continue
            dist = distance_m(item.coord, candidate.coord)
            if best is None or (strength, -dist) > (best_strength, -best_distance):
                best, best_strength, best_distance = candidate, strength, dist

        if best is None:
            LOGGER.debug("None of %d candidates accepted %s", len(candidates), item.coord)
            return UnmatchedItem(item)

        ceiling = self.config.ceiling_for(best_strength)
        if best_distance > ceiling:
            # no fallback to the runner-up
            LOGGER.debug(
                "Best candidate %s for %s is %.1f m away, beyond %.0f m for %s",
                best.feature_id,
                item.coord,
                best_distance,
                ceiling,
                best_strength.name,
            )
            return UnmatchedItem(item)

        claimed.add(best.feature_id)
        LOGGER.debug("%s claimed %s at %.1f m (%s)", item.coord, best.feature_id, best_distance, best_strength.name)
        if best_distance <= self.config.match_distance:
            return MatchedClose(item, best, best_distance, best_strength)
        return MatchedFar(item, best, best_distance, best_strength)

    def _sweep_unclaimed(self, claimed: Set[str], seen: Dict[str, MapFeature]) -> List[CorrelationOutcome]:
        pending: Dict[str, MapFeature] = dict(seen)
        if isinstance(self.locator, FeatureSource):
            for feature in self.locator.features():
                pending.setdefault(feature.feature_id, feature)

        allowance = self.config.lone_feature_allowance
        swept: List[CorrelationOutcome] = []
        for feature_id, feature in pending.items():
            if feature_id in claimed:
                continue
            if allowance is not None and allowance(feature):
                swept.append(LoneFeature(feature))
            else:
                swept.append(UnmatchedFeature(feature))
        return swept


def correlate(
    items: Iterable[ExternalItem],
    config: CorrelationConfig,
    locator: CandidateLocator,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> CorrelationResult:
    """Classify every item and every unclaimed feature seen during the run."""
    return Correlator(locator, config).correlate(items, should_cancel=should_cancel)
