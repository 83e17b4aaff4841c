"""
Approximate string matching for fuzzy filters.

Similarity is the normalized Levenshtein score
    1 - distance / max(len(a), len(b))
computed on case-folded strings. A target is compared to the whole field
value and to each of its whitespace-separated tokens, so searching for
"chair" finds "Ergonomic Office Chair". A comparison is accepted when its
similarity reaches the threshold and its distance does not exceed the
maximum edit distance.

Invariants:
    - Matching is deterministic for a fixed (value, target, options)
    - Matching is reflexive: a value always matches itself
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import InvalidQueryError

DEFAULT_THRESHOLD = 0.7
DEFAULT_MAX_DISTANCE = 3


@dataclass(frozen=True)
class FuzzyOptions:
    """Acceptance parameters of a fuzzy filter.

    Attributes:
        threshold: Minimum similarity in [0, 1]
        max_distance: Maximum Levenshtein distance
    """

    threshold: float = DEFAULT_THRESHOLD
    max_distance: int = DEFAULT_MAX_DISTANCE

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise InvalidQueryError(f"Fuzzy threshold must be within [0, 1], got {self.threshold}")
        if self.max_distance < 0:
            raise InvalidQueryError(f"Fuzzy max_distance must be >= 0, got {self.max_distance}")

    def to_dict(self) -> dict[str, Any]:
        return {"threshold": self.threshold, "max_distance": self.max_distance}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FuzzyOptions:
        return cls(
            threshold=float(data.get("threshold", DEFAULT_THRESHOLD)),
            max_distance=int(data.get("max_distance", DEFAULT_MAX_DISTANCE)),
        )


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost insertions, deletions and substitutions."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1]; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


def _candidates(value: str) -> list[str]:
    folded = value.casefold()
    seen = [folded]
    for token in folded.split():
        if token not in seen:
            seen.append(token)
    return seen


def best_similarity(value: str, target: str) -> float:
    """Highest similarity of target against value or any of its tokens."""
    folded = target.casefold()
    return max(similarity(candidate, folded) for candidate in _candidates(value))


def fuzzy_match(value: str, target: str, options: FuzzyOptions | None = None) -> bool:
    """Whether value approximately equals target under the given options."""
    options = options or FuzzyOptions()
    folded = target.casefold()
    for candidate in _candidates(value):
        distance = levenshtein(candidate, folded)
        if distance > options.max_distance:
            continue
        longest = max(len(candidate), len(folded))
        score = 1.0 if longest == 0 else 1.0 - distance / longest
        if score >= options.threshold:
            return True
    return False
