"""Weighted scoring of catalog candidates against title metadata."""

from __future__ import annotations

import logging
from typing import Iterable

from .models import CatalogCandidate, CatalogMatch, Metadata
from .utils import fuzzy_similarity, normalize_title

logger = logging.getLogger(__name__)

MIN_SCORE_THRESHOLD = 0.6

CANONICAL_TITLE_WEIGHT = 0.5
ALTERNATE_TITLE_WEIGHT = 0.4
STRONG_FUZZY_WEIGHT = 0.3
WEAK_FUZZY_WEIGHT = 0.15
MISSING_PREVIEW_PENALTY = -1.0

MOVIE_YEAR_WEIGHTS = {0: 0.35, 1: 0.2, 2: 0.0}
MOVIE_YEAR_PENALTY = -0.5
# (max difference, weight); series run for years so they are never penalised.
SERIES_YEAR_WEIGHTS = ((0, 0.35), (2, 0.25), (5, 0.15), (10, 0.05))


def title_component(metadata: Metadata, name: str) -> float:
    normalized = normalize_title(name)
    if normalized == normalize_title(metadata.canonical_title):
        return CANONICAL_TITLE_WEIGHT
    if normalized == normalize_title(metadata.original_title):
        return ALTERNATE_TITLE_WEIGHT
    if normalized in {normalize_title(title) for title in metadata.alternate_titles}:
        return ALTERNATE_TITLE_WEIGHT

    similarity = max(
        fuzzy_similarity(name, metadata.canonical_title),
        fuzzy_similarity(name, metadata.original_title),
    )
    if similarity > 0.8:
        return STRONG_FUZZY_WEIGHT
    if similarity > 0.6:
        return WEAK_FUZZY_WEIGHT
    return 0.0


def year_component(metadata: Metadata, candidate_year: int | None) -> float:
    if metadata.release_year is None or candidate_year is None:
        return 0.0
    diff = abs(candidate_year - metadata.release_year)
    if metadata.media_kind == "series":
        for limit, weight in SERIES_YEAR_WEIGHTS:
            if diff <= limit:
                return weight
        return 0.0
    return MOVIE_YEAR_WEIGHTS.get(diff, MOVIE_YEAR_PENALTY)


def runtime_component(metadata: Metadata, candidate_minutes: int | None) -> float:
    if metadata.media_kind != "movie":
        return 0.0
    if metadata.runtime_minutes is None or candidate_minutes is None:
        return 0.0
    diff = abs(candidate_minutes - metadata.runtime_minutes)
    if diff <= 5:
        return 0.15
    if diff > 15:
        return -0.2
    return 0.0


def score_item(metadata: Metadata, candidate: CatalogCandidate) -> float:
    """Return the weighted match score of ``candidate`` for ``metadata``."""

    score = title_component(metadata, candidate.display_name)
    score += year_component(metadata, candidate.release_year)
    score += runtime_component(metadata, candidate.runtime_minutes)
    if not candidate.preview_url:
        score += MISSING_PREVIEW_PENALTY
    return score


def find_best_match(
    candidates: Iterable[tuple[str, CatalogCandidate]],
    metadata: Metadata,
    *,
    threshold: float = MIN_SCORE_THRESHOLD,
) -> CatalogMatch | None:
    """Pick the highest scoring (region, candidate) pair above ``threshold``.

    Ties keep the first pair encountered so the outcome only depends on the
    order the storefront results were gathered in.
    """

    best: CatalogMatch | None = None
    for region, candidate in candidates:
        score = score_item(metadata, candidate)
        logger.debug(
            "  Score %.2f: %r (%s) [%s]",
            score,
            candidate.display_name,
            candidate.release_year or "N/A",
            region,
        )
        if best is None or score > best.score:
            best = CatalogMatch(score=score, candidate=candidate, region=region)

    if best is None or best.score < threshold:
        return None
    return best
