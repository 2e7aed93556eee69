"""
Edit-distance word comparison for speech recognition errors.

Only consulted when an exact index lookup finds nothing, and only against
words that occur inside the current search window.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

# Absolute cap on edits accepted for a fuzzy match
MAX_FUZZY_DISTANCE: int = 2


def distance(a: str, b: str) -> int:
    """Unit-cost Levenshtein distance between two normalized words."""
    return Levenshtein.distance(a, b)


@dataclass(frozen=True)
class FuzzyCandidate:
    """An indexed word accepted as a fuzzy match for a spoken word."""
    word: str
    distance: int


class FuzzyMatcher:
    """
    Accepts near-miss words within a length-scaled edit budget.

    A spoken word of length n tolerates min(cap, n // 2) edits, so two- and
    three-letter words only ever match exactly or with one edit.
    """

    max_distance: int

    def __init__(self, max_distance: int = MAX_FUZZY_DISTANCE) -> None:
        self.max_distance = max(0, max_distance)

    def threshold(self, spoken: str) -> int:
        """Maximum edits allowed for this spoken word."""
        return min(self.max_distance, len(spoken) // 2)

    def match(self, spoken: str, candidate: str) -> int | None:
        """Return the edit distance if candidate is acceptable, else None."""
        limit: int = self.threshold(spoken)
        dist: int = Levenshtein.distance(spoken, candidate, score_cutoff=limit)
        return dist if dist <= limit else None

    def candidates(self, spoken: str, vocabulary: Iterable[str]) -> list[FuzzyCandidate]:
        """All acceptable vocabulary words for spoken, in vocabulary order."""
        if not spoken:
            return []
        limit: int = self.threshold(spoken)
        found: list[FuzzyCandidate] = []
        for word in vocabulary:
            # Length difference alone is a lower bound on the distance
            if abs(len(word) - len(spoken)) > limit:
                continue
            dist: int = Levenshtein.distance(spoken, word, score_cutoff=limit)
            if dist <= limit:
                found.append(FuzzyCandidate(word, dist))
        return found
