"""Text helpers shared by the metadata and catalog matching code."""

from __future__ import annotations

import re
import unicodedata
from typing import Any


PUNCTUATION_RE = re.compile(r"[^\w\s]")
WHITESPACE_RE = re.compile(r"\s+")
YEAR_RE = re.compile(r"^(\d{4})")


def normalize_title(value: str) -> str:
    """Return a comparison key: lowercase, no accents, no punctuation."""

    value = unicodedata.normalize("NFD", value.lower())
    value = "".join(char for char in value if not unicodedata.combining(char))
    value = PUNCTUATION_RE.sub("", value)
    value = WHITESPACE_RE.sub(" ", value)
    return value.strip()


def levenshtein_distance(first: str, second: str) -> int:
    """Classic edit distance using a rolling row."""

    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, left in enumerate(first, start=1):
        current = [i]
        for j, right in enumerate(second, start=1):
            cost = 0 if left == right else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def fuzzy_similarity(first: str, second: str) -> float:
    """Return a similarity in [0, 1] between two titles."""

    norm_first = normalize_title(first)
    norm_second = normalize_title(second)

    if norm_first == norm_second:
        return 1.0
    if norm_first in norm_second or norm_second in norm_first:
        return 0.85

    longest = max(len(norm_first), len(norm_second))
    distance = levenshtein_distance(norm_first, norm_second)
    return (longest - distance) / longest


def parse_year(value: Any) -> int | None:
    """Extract the leading four-digit year from an ISO-ish date string."""

    if not isinstance(value, str):
        return None
    match = YEAR_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(1))
