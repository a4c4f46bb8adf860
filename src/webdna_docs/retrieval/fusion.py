"""Merging of name-substring and full-text search routes."""

from __future__ import annotations

from webdna_docs.types import EntrySummary, SearchHit

EXACT_SCORE = 1.0
CONTENT_BASE_SCORE = 0.5
NAME_BOOST = 0.3
DESCRIPTION_BOOST = 0.1


class MatchFusion:
    """Fuses the two search routes into a single ranked list.

    Fusion rules:
    1. Every substring (name) match scores `EXACT_SCORE`.
    2. Every full-text match scores `CONTENT_BASE_SCORE`, boosted when the
       query also appears in the name or the description.
    3. Entries are de-duplicated by id; the first occurrence wins, so a name
       match always shadows a full-text match of the same entry.
    4. The merged list is stable-sorted by score, keeping each route's own
       order among equal scores.
    """

    def merge(
        self,
        query: str,
        name_matches: list[EntrySummary],
        content_matches: list[EntrySummary],
    ) -> list[SearchHit]:
        needle = query.strip().lower()
        seen: set[int] = set()
        merged: list[SearchHit] = []

        for match in name_matches:
            if match.id in seen:
                continue
            seen.add(match.id)
            merged.append(_hit(match, "exact", EXACT_SCORE))

        for match in content_matches:
            if match.id in seen:
                continue
            seen.add(match.id)
            merged.append(_hit(match, "content", self.content_score(needle, match)))

        return sorted(merged, key=lambda hit: hit.relevance_score, reverse=True)

    @staticmethod
    def content_score(needle: str, match: EntrySummary) -> float:
        score = CONTENT_BASE_SCORE
        if needle and needle in match.instruction.lower():
            score += NAME_BOOST
        if needle and needle in (match.description or "").lower():
            score += DESCRIPTION_BOOST
        return round(score, 4)


def _hit(match: EntrySummary, match_type: str, score: float) -> SearchHit:
    return SearchHit(
        id=match.id,
        instruction=match.instruction,
        category=match.category,
        description=match.description,
        url=match.url,
        webdna_id=match.webdna_id,
        match_type=match_type,
        relevance_score=score,
    )
