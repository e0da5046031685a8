"""Links free-text material names to catalog entries."""
from __future__ import annotations
import re
import unicodedata
from difflib import SequenceMatcher
from typing import List, Optional, Sequence

from supplylist.domain.materials.models import (
    AMBIGUOUS,
    MATCHED,
    UNMATCHED,
    CatalogEntry,
    MatchResult,
)

DEFAULT_HIGH_THRESHOLD = 0.85
DEFAULT_LOW_THRESHOLD = 0.55
DEFAULT_AMBIGUITY_BAND = 0.05

# Articles and prepositions that carry no product meaning
STOP_WORDS = frozenset(
    {"de", "la", "el", "los", "las", "del", "al", "en", "con", "por", "para",
     "un", "una", "unos", "unas", "y", "o"}
)

_NON_WORD = re.compile(r"[^\w]+")
_NON_DIGIT = re.compile(r"[^0-9xX]")


def normalize_name(text: Optional[str]) -> str:
    """Case fold, strip accents, turn punctuation into spaces, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text).casefold())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(_NON_WORD.sub(" ", stripped).replace("_", " ").split())


def significant_tokens(normalized: str) -> set[str]:
    return {tok for tok in normalized.split() if tok not in STOP_WORDS}


def _normalize_isbn(value: Optional[str]) -> str:
    return _NON_DIGIT.sub("", value or "").upper()


def similarity(a: str, b: str) -> float:
    """Score two already-normalized names in [0, 1].

    Takes the better of a character-level sequence ratio and a Dice overlap
    of significant tokens, so word order does not matter but a single shared
    word against a long name stays low.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    char_ratio = SequenceMatcher(None, a, b).ratio()
    ta, tb = significant_tokens(a), significant_tokens(b)
    if ta and tb:
        token_ratio = 2.0 * len(ta & tb) / (len(ta) + len(tb))
    else:
        token_ratio = 0.0
    return max(char_ratio, token_ratio)


class SimilarityMatcher:
    """Pure matcher over a catalog snapshot supplied by the caller."""

    def __init__(
        self,
        high_threshold: float = DEFAULT_HIGH_THRESHOLD,
        low_threshold: float = DEFAULT_LOW_THRESHOLD,
        ambiguity_band: float = DEFAULT_AMBIGUITY_BAND,
    ):
        if low_threshold > high_threshold:
            raise ValueError("low_threshold must not exceed high_threshold")
        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.ambiguity_band = ambiguity_band

    def match(
        self,
        candidate_name: str,
        catalog: Sequence[CatalogEntry],
        isbn: Optional[str] = None,
    ) -> MatchResult:
        if not catalog:
            return MatchResult(state=UNMATCHED)

        wanted_isbn = _normalize_isbn(isbn)
        if len(wanted_isbn) >= 10:
            for entry in catalog:
                if entry.sku and _normalize_isbn(entry.sku) == wanted_isbn:
                    return MatchResult(state=MATCHED, score=1.0, catalog_ref=str(entry.id))

        needle = normalize_name(candidate_name)
        if not needle:
            return MatchResult(state=UNMATCHED)

        scored: List[tuple[float, CatalogEntry]] = []
        for entry in catalog:
            name = normalize_name(getattr(entry, "name", None))
            if not name:
                continue
            scored.append((similarity(needle, name), entry))
        if not scored:
            return MatchResult(state=UNMATCHED)

        best_score, best_entry = scored[0]
        for score, entry in scored[1:]:
            if score > best_score:
                best_score, best_entry = score, entry
        rounded = round(best_score, 4)

        if best_score >= self.high_threshold:
            return MatchResult(state=MATCHED, score=rounded, catalog_ref=str(best_entry.id))
        if best_score < self.low_threshold:
            return MatchResult(state=UNMATCHED, score=rounded)

        close = [
            str(entry.id)
            for score, entry in scored
            if best_score - score <= self.ambiguity_band
        ]
        if len(close) >= 2:
            return MatchResult(state=AMBIGUOUS, score=rounded, candidates=close)
        return MatchResult(state=MATCHED, score=rounded, catalog_ref=str(best_entry.id))
