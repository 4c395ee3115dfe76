from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Union, overload, runtime_checkable

from .geo import Coordinate


class MatchStrength(IntEnum):
    """Confidence grade for pairing an item with a map feature."""

    UNMATCHED = 0
    WEAK = 1
    MEDIOCRE = 2
    STRONG = 3


@dataclass(frozen=True, eq=False)
class MapFeature:
    """A point-like map feature reduced to one representative coordinate.

    Equality and hashing use ``feature_id`` only, so features coming back from
    separate candidate searches compare equal when they are the same element.
    """

    feature_id: str
    coord: Coordinate
    tags: Mapping[str, str] = field(default_factory=dict)
    reference: str = ""

    def get(self, key: str) -> Optional[str]:
        return self.tags.get(key)

    def has_key(self, key: str) -> bool:
        return key in self.tags

    @property
    def display_reference(self) -> str:
        return self.reference or self.feature_id

    def describe(self) -> str:
        """Name (when tagged) followed by the reference, for report text."""
        name = self.get("name")
        if name:
            return f"`{name}` {self.display_reference}"
        return self.display_reference

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MapFeature):
            return NotImplemented
        return self.feature_id == other.feature_id

    def __hash__(self) -> int:
        return hash(self.feature_id)


@runtime_checkable
class ExternalItem(Protocol):
    """Anything with a coordinate that can describe itself for a report."""

    @property
    def coord(self) -> Coordinate:  # pragma: no cover - protocol
        ...

    def report_label(self) -> str:  # pragma: no cover - protocol
        ...


@dataclass(frozen=True)
class DataItem:
    """Generic external dataset row."""

    coord: Coordinate
    label: str
    attributes: Dict[str, str] = field(default_factory=dict, compare=False)

    def report_label(self) -> str:
        return self.label


class OutcomeKind(str, Enum):
    MATCHED_CLOSE = "matched_close"
    MATCHED_FAR = "matched_far"
    UNMATCHED_ITEM = "unmatched_item"
    UNMATCHED_FEATURE = "unmatched_feature"
    LONE_FEATURE = "lone_feature"


@dataclass(frozen=True)
class Match:
    """An item that claimed a feature."""

    item: Any
    feature: MapFeature
    distance_m: float
    strength: MatchStrength

    kind = OutcomeKind.MATCHED_CLOSE


@dataclass(frozen=True)
class MatchedClose(Match):
    kind = OutcomeKind.MATCHED_CLOSE


@dataclass(frozen=True)
class MatchedFar(Match):
    kind = OutcomeKind.MATCHED_FAR


@dataclass(frozen=True)
class UnmatchedItem:
    item: Any

    kind = OutcomeKind.UNMATCHED_ITEM


@dataclass(frozen=True)
class UnmatchedFeature:
    feature: MapFeature

    kind = OutcomeKind.UNMATCHED_FEATURE


@dataclass(frozen=True)
class LoneFeature:
    feature: MapFeature

    kind = OutcomeKind.LONE_FEATURE


CorrelationOutcome = Union[MatchedClose, MatchedFar, UnmatchedItem, UnmatchedFeature, LoneFeature]


class CorrelationResult(Sequence[CorrelationOutcome]):
    """Ordered outcomes of one run: items first, then unclaimed features."""

    def __init__(self, outcomes: Sequence[CorrelationOutcome]) -> None:
        self._outcomes: List[CorrelationOutcome] = list(outcomes)

    @overload
    def __getitem__(self, index: int) -> CorrelationOutcome: ...

    @overload
    def __getitem__(self, index: slice) -> List[CorrelationOutcome]: ...

    def __getitem__(self, index):
        return self._outcomes[index]

    def __len__(self) -> int:
        return len(self._outcomes)

    def __iter__(self) -> Iterator[CorrelationOutcome]:
        return iter(self._outcomes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CorrelationResult):
            return self._outcomes == other._outcomes
        if isinstance(other, list):
            return self._outcomes == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"CorrelationResult({self._outcomes!r})"

    @property
    def matches(self) -> List[Match]:
        return [outcome for outcome in self._outcomes if isinstance(outcome, Match)]

    @property
    def unmatched_items(self) -> List[UnmatchedItem]:
        return [outcome for outcome in self._outcomes if isinstance(outcome, UnmatchedItem)]

    @property
    def unmatched_features(self) -> List[UnmatchedFeature]:
        return [outcome for outcome in self._outcomes if isinstance(outcome, UnmatchedFeature)]

    @property
    def lone_features(self) -> List[LoneFeature]:
        return [outcome for outcome in self._outcomes if isinstance(outcome, LoneFeature)]

    @property
    def matched_features(self) -> Dict[str, Any]:
        """Feature identity -> the item that claimed it."""
        return {match.feature.feature_id: match.item for match in self.matches}

    def counts(self) -> Dict[OutcomeKind, int]:
        totals = {kind: 0 for kind in OutcomeKind}
        for outcome in self._outcomes:
            totals[outcome.kind] += 1
        return totals


@dataclass(frozen=True)
class AddressComponents:
    """Normalized components of a street address."""

    street: str = ""
    housenumber: str = ""
    city: str = ""
    postcode: str = ""

    def canonical_key(self) -> Optional[str]:
        """Return a canonical key suitable for exact lookups."""
        if not self.street or not self.housenumber:
            return None
        return "|".join([self.street, self.housenumber, self.city, self.postcode])

    def is_empty(self) -> bool:
        return not (self.street or self.housenumber or self.city or self.postcode)

    def as_dict(self) -> Dict[str, str]:
        return {
            "street": self.street,
            "housenumber": self.housenumber,
            "city": self.city,
            "postcode": self.postcode,
        }
