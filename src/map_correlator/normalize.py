from __future__ import annotations

import re
import unicodedata
from typing import Dict, List, Optional

STREET_TYPE_ABBREVIATIONS: Dict[str, str] = {
    "ST": "STREET",
    "STR": "STREET",
    "AVE": "AVENUE",
    "AV": "AVENUE",
    "RD": "ROAD",
    "BLVD": "BOULEVARD",
    "DR": "DRIVE",
    "LN": "LANE",
    "CT": "COURT",
    "PL": "PLACE",
    "SQ": "SQUARE",
    "HWY": "HIGHWAY",
    "PKWY": "PARKWAY",
    "IEL": "IELA",
    "PROSP": "PROSPEKTS",
    "BULV": "BULVARIS",
    "LAUK": "LAUKUMS",
    "GATV": "GATVE",
    "SOS": "SOSEJA",
    "KRAST": "KRASTMALA",
    "LIN": "LINIJA",
}

STREET_TYPES = frozenset(STREET_TYPE_ABBREVIATIONS.values())

HOUSE_NUMBER_PATTERN = re.compile(r"^\d+[A-Z]?(?:[/]\d+[A-Z]?)?$")
HOUSE_NUMBER_SUFFIX_PATTERN = re.compile(r"^(?:K-?\d+|[A-Z])$")
POSTCODE_PATTERN = re.compile(r"^(?:[A-Z]{2}-?)?\d{4,5}(?:-\d{4})?$")
TOKEN_SPLIT_PATTERN = re.compile(r"[\s]+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Optional[str]) -> str:
    """Upper-case, diacritic-free text with single spaces and no stray punctuation."""
    if not text:
        return ""
    cleaned = strip_diacritics(str(text)).upper()
    cleaned = re.sub(r"[\"'`()]", " ", cleaned)
    return " ".join(cleaned.split())


def expand_token(token: str) -> str:
    bare = token.rstrip(".")
    return STREET_TYPE_ABBREVIATIONS.get(bare, bare)


def split_tokens(text: Optional[str]) -> List[str]:
    """Normalized tokens with trailing dots removed and abbreviations left as written."""
    normalized = normalize_text(text)
    return [token.rstrip(".") for token in TOKEN_SPLIT_PATTERN.split(normalized) if token.strip(".")]


def tokenize(text: Optional[str]) -> List[str]:
    return [expand_token(token) for token in split_tokens(text)]


def normalize_street(text: Optional[str]) -> str:
    return " ".join(tokenize(text))


def normalize_city(text: Optional[str]) -> str:
    # abbreviations stay as written: "St. Louis" keeps its ST
    return " ".join(split_tokens(text))


def canonicalize_postcode(value: Optional[str]) -> str:
    if not value:
        return ""
    match = re.search(r"\d{4,5}", str(value))
    if match:
        return match.group(0)
    return normalize_text(value)


def canonicalize_housenumber(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"[\s\-.]", "", normalize_text(value))
