"""Correlation of map features with external point datasets."""

from .components import (
    AddressComponents,
    CorrelationOutcome,
    CorrelationResult,
    DataItem,
    ExternalItem,
    LoneFeature,
    MapFeature,
    Match,
    MatchedClose,
    MatchedFar,
    MatchStrength,
    OutcomeKind,
    UnmatchedFeature,
    UnmatchedItem,
)
from .engine import CorrelationConfig, Correlator, correlate
from .exceptions import ConfigurationError, CorrelationCancelled, CorrelationError, DuplicateFeatureError
from .geo import Coordinate, distance_m
from .store import CandidateLocator, FeatureSource, MemoryFeatureStore

__all__ = [
    "AddressComponents",
    "CandidateLocator",
    "ConfigurationError",
    "Coordinate",
    "CorrelationCancelled",
    "CorrelationConfig",
    "CorrelationError",
    "CorrelationOutcome",
    "CorrelationResult",
    "Correlator",
    "DataItem",
    "DuplicateFeatureError",
    "ExternalItem",
    "FeatureSource",
    "LoneFeature",
    "MapFeature",
    "Match",
    "MatchedClose",
    "MatchedFar",
    "MatchStrength",
    "MemoryFeatureStore",
    "OutcomeKind",
    "UnmatchedFeature",
    "UnmatchedItem",
    "correlate",
    "distance_m",
]
