from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .components import (
    CorrelationOutcome,
    LoneFeature,
    MapFeature,
    MatchedClose,
    MatchedFar,
    OutcomeKind,
    UnmatchedFeature,
    UnmatchedItem,
)
from .engine import CorrelationConfig
from .geo import Coordinate

LOGGER = logging.getLogger(__name__)

UNMATCHED_GROUP = "unmatched"
MATCHED_GROUP = "matched"

# groups sort by these, so unmatched issues come before the matched overview
_GROUP_ORDER = {UNMATCHED_GROUP: -10, MATCHED_GROUP: 100}


class SortOrder(IntEnum):
    NO_ITEM = 0
    NO_FEATURE = 0
    FAR = 1
    MATCHED = 0


@dataclass(frozen=True)
class ReportLabels:
    singular: str = "item"
    plural: str = "items"
    feature: str = "map feature"


@dataclass(frozen=True)
class FeaturePreview:
    """Tag value appended to feature references, optionally relabelled."""

    key: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def render(self, feature: MapFeature) -> Optional[str]:
        value = feature.get(self.key)
        if value is None:
            return None
        return self.labels.get(value, f"{self.key}={value}")


@dataclass(frozen=True)
class ReportEntry:
    text: str
    coord: Optional[Coordinate] = None
    sort_order: int = 0


@dataclass
class ReportGroup:
    name: str
    title: str
    description: str = ""
    empty_text: Optional[str] = None
    entries: List[ReportEntry] = field(default_factory=list)

    def add_entry(self, entry: ReportEntry) -> None:
        self.entries.append(entry)


class Report:
    """Collects report groups and their entries for a single analysis."""

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self._groups: Dict[str, ReportGroup] = {}

    def add_group(self, name: str, title: str, description: str = "", empty_text: Optional[str] = None) -> ReportGroup:
        if name not in self._groups:
            self._groups[name] = ReportGroup(name, title, description, empty_text)
        return self._groups[name]

    def has_group(self, name: str) -> bool:
        return name in self._groups

    def add_entry(self, group_name: str, entry: ReportEntry) -> None:
        if group_name not in self._groups:
            raise KeyError(f'Group "{group_name}" has not been created')
        self._groups[group_name].add_entry(entry)

    @property
    def groups(self) -> List[ReportGroup]:
        return list(self._groups.values())

    def collect_entries(self) -> List[ReportGroup]:
        """Groups in display order, each with entries stably sorted by sort order."""
        ordered = sorted(self._groups.values(), key=lambda group: _GROUP_ORDER.get(group.name, 0))
        return [
            ReportGroup(
                group.name,
                group.title,
                group.description,
                group.empty_text,
                sorted(group.entries, key=lambda entry: entry.sort_order),
            )
            for group in ordered
        ]


def _item_label(item: Any) -> str:
    label = getattr(item, "report_label", None)
    if callable(label):
        return label()
    return str(item)


def _feature_text(feature: MapFeature, preview: Optional[FeaturePreview]) -> str:
    text = feature.describe()
    if preview is not None:
        extra = preview.render(feature)
        if extra:
            text += f" ({extra})"
    return text


def describe_outcome(
    outcome: CorrelationOutcome,
    config: CorrelationConfig,
    labels: ReportLabels = ReportLabels(),
    preview: Optional[FeaturePreview] = None,
) -> ReportEntry:
    radius = f"{config.search_radius:g}"

    if isinstance(outcome, UnmatchedItem):
        return ReportEntry(
            f"No {labels.feature} found in {radius} m range of "
            f"{labels.singular} {_item_label(outcome.item)} at {outcome.item.coord}",
            outcome.item.coord,
            SortOrder.NO_ITEM,
        )
    if isinstance(outcome, MatchedFar):
        return ReportEntry(
            f"Matching {labels.feature} {_feature_text(outcome.feature, preview)} found close to "
            f"{labels.singular} {_item_label(outcome.item)}, but it's far away "
            f"({outcome.distance_m:.0f} m), expected at {outcome.item.coord}",
            outcome.item.coord,
            SortOrder.FAR,
        )
    if isinstance(outcome, MatchedClose):
        return ReportEntry(
            f"{_item_label(outcome.item)} matched {_feature_text(outcome.feature, preview)} "
            f"at {outcome.distance_m:.0f} m",
            outcome.feature.coord,
            SortOrder.MATCHED,
        )
    if isinstance(outcome, UnmatchedFeature):
        return ReportEntry(
            f"No {labels.singular} found in {radius} m range of {_feature_text(outcome.feature, preview)}",
            outcome.feature.coord,
            SortOrder.NO_FEATURE,
        )
    if isinstance(outcome, LoneFeature):
        return ReportEntry(
            f"Matched {_feature_text(outcome.feature, preview)} by itself",
            outcome.feature.coord,
            SortOrder.MATCHED,
        )
    raise TypeError(f"Unsupported outcome: {outcome!r}")


_GROUP_FOR_KIND = {
    OutcomeKind.UNMATCHED_ITEM: UNMATCHED_GROUP,
    OutcomeKind.MATCHED_FAR: UNMATCHED_GROUP,
    OutcomeKind.UNMATCHED_FEATURE: UNMATCHED_GROUP,
    OutcomeKind.MATCHED_CLOSE: MATCHED_GROUP,
    OutcomeKind.LONE_FEATURE: MATCHED_GROUP,
}


def report_outcomes(
    report: Report,
    outcomes: Iterable[CorrelationOutcome],
    config: CorrelationConfig,
    labels: ReportLabels = ReportLabels(),
    preview: Optional[FeaturePreview] = None,
    batches: Optional[Iterable[OutcomeKind]] = None,
) -> int:
    """Write one entry per outcome whose kind is in ``batches``; returns the entry count."""
    selected = frozenset(batches) if batches is not None else frozenset(OutcomeKind)
    groups = {_GROUP_FOR_KIND[kind] for kind in selected}

    if UNMATCHED_GROUP in groups:
        report.add_group(
            UNMATCHED_GROUP,
            f"Unmatched {labels.plural}",
            f"This lists the {labels.plural} and map features that could not be matched to each other.",
            "All elements appear to be mapped.",
        )
    if MATCHED_GROUP in groups:
        report.add_group(
            MATCHED_GROUP,
            f"Matched {labels.plural}",
            f"This displays a map of all the {labels.plural} that were matched to each other.",
        )

    written = 0
    for outcome in outcomes:
        if outcome.kind not in selected:
            continue
        report.add_entry(_GROUP_FOR_KIND[outcome.kind], describe_outcome(outcome, config, labels, preview))
        written += 1

    LOGGER.debug("Wrote %d report entries to %s", written, report.name)
    return written
