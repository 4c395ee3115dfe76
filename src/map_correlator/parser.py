from __future__ import annotations

from typing import List, Optional, Protocol

from .components import AddressComponents
from .normalize import (
    HOUSE_NUMBER_PATTERN,
    HOUSE_NUMBER_SUFFIX_PATTERN,
    POSTCODE_PATTERN,
    STREET_TYPES,
    canonicalize_housenumber,
    canonicalize_postcode,
    expand_token,
    normalize_city,
    normalize_street,
    split_tokens,
)


class TagLookup(Protocol):
    def get(self, key: str) -> Optional[str]:  # pragma: no cover - protocol
        ...


def _take_postcode(segments: List[List[str]]) -> str:
    for segment in reversed(segments[1:]):
        for idx in range(len(segment) - 1, -1, -1):
            if POSTCODE_PATTERN.fullmatch(segment[idx]):
                return canonicalize_postcode(segment.pop(idx))

    # Without commas the postcode can only be the trailing token, and only
    # when a house number precedes it
    first = segments[0]
    if len(first) > 2 and POSTCODE_PATTERN.fullmatch(first[-1]):
        if any(HOUSE_NUMBER_PATTERN.fullmatch(token) for token in first[:-1]):
            return canonicalize_postcode(first.pop())
    return ""


def _split_street_segment(tokens: List[str]) -> tuple[List[str], str, List[str]]:
    """Split tokens into (street, housenumber, trailing) around the house number."""
    if not tokens:
        return [], "", []

    # "12 Main Street" ordering
    if HOUSE_NUMBER_PATTERN.fullmatch(tokens[0]) and len(tokens) > 1:
        rest = tokens[1:]
        for idx, token in enumerate(rest):
            if expand_token(token) in STREET_TYPES:
                return rest[: idx + 1], tokens[0], rest[idx + 1 :]
        return rest, tokens[0], []

    # "Brivibas iela 12 k-2" ordering; the last number token wins
    for idx in range(len(tokens) - 1, 0, -1):
        if HOUSE_NUMBER_PATTERN.fullmatch(tokens[idx]):
            end = idx + 1
            while end < len(tokens) and HOUSE_NUMBER_SUFFIX_PATTERN.fullmatch(tokens[end]):
                end += 1
            return tokens[:idx], "".join(tokens[idx:end]), tokens[end:]

    return tokens, "", []


def parse_address(address_text: Optional[str]) -> AddressComponents:
    if not address_text:
        return AddressComponents()

    segments = [split_tokens(part) for part in str(address_text).split(",")]
    segments = [segment for segment in segments if segment]
    if not segments:
        return AddressComponents()

    postcode = _take_postcode(segments)
    segments = [segment for segment in segments if segment]
    if not segments:
        return AddressComponents(postcode=postcode)

    street_tokens, housenumber, trailing = _split_street_segment(segments[0])
    city_tokens = trailing or (segments[1] if len(segments) > 1 else [])

    return AddressComponents(
        street=" ".join(expand_token(token) for token in street_tokens),
        housenumber=canonicalize_housenumber(housenumber),
        city=" ".join(city_tokens),
        postcode=postcode,
    )


def components_from_tags(tags: TagLookup) -> AddressComponents:
    """Address components from OSM-style ``addr:*`` tags."""
    street = tags.get("addr:street") or tags.get("addr:place")
    housenumber = tags.get("addr:housenumber")
    if not street and not housenumber:
        full = tags.get("addr:full")
        if full:
            return parse_address(full)
        return AddressComponents()

    return AddressComponents(
        street=normalize_street(street),
        housenumber=canonicalize_housenumber(housenumber),
        city=normalize_city(tags.get("addr:city")),
        postcode=canonicalize_postcode(tags.get("addr:postcode")),
    )
