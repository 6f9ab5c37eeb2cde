"""Rank repository methodologies against a domain/tag/complexity profile."""

from __future__ import annotations

from typing import Optional, Sequence

from .constants import (
    COMPLEXITY_MATCH_WEIGHT,
    DEFAULT_SUGGESTION_LIMIT,
    DOMAIN_MATCH_WEIGHT,
    TAG_MATCH_WEIGHT,
)
from .models import MethodologySuggestion
from .repository import MethodologyRepository
from .schema import MethodologyMetadata


def score_methodology(
    meta: MethodologyMetadata,
    domains: Sequence[str],
    tags: Sequence[str],
    complexity: Optional[str] = None,
) -> MethodologySuggestion:
    matched_domains = tuple(d for d in domains if d in meta.domains)
    matched_tags = tuple(t for t in tags if t in meta.tags)
    score = DOMAIN_MATCH_WEIGHT * len(matched_domains) + TAG_MATCH_WEIGHT * len(matched_tags)
    if complexity and meta.complexity == complexity:
        score += COMPLEXITY_MATCH_WEIGHT
    return MethodologySuggestion(
        methodology_id=meta.id,
        name=meta.display_name,
        score=score,
        matched_domains=matched_domains,
        matched_tags=matched_tags,
    )


class MethodologySuggester:
    def __init__(self, repository: MethodologyRepository) -> None:
        self.repository = repository

    def suggest(
        self,
        domains: Sequence[str],
        tags: Sequence[str],
        complexity: Optional[str] = None,
        limit: int = DEFAULT_SUGGESTION_LIMIT,
    ) -> list[MethodologySuggestion]:
        """Return the best-matching methodologies, highest score first.

        Score is ``10 x domain matches + 5 x tag matches + 3`` when the
        complexity matches. Entries scoring zero are left out. Ties keep
        manifest order, so the ranking is deterministic.
        """
        if limit <= 0:
            return []
        scored = [
            score_methodology(meta, domains, tags, complexity)
            for meta in self.repository.load_manifest()
        ]
        ranked = sorted((s for s in scored if s.score > 0), key=lambda s: s.score, reverse=True)
        return ranked[:limit]
