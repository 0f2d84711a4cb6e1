"""Name normalization and fuzzy matching for entity resolution."""
import re
import unicodedata
from typing import Callable, Iterable, Optional, Tuple, TypeVar

from rapidfuzz import fuzz, process

T = TypeVar('T')

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_name(value: Optional[str]) -> str:
    """
    Normalize an entity name for cache keys and comparisons.

    Strips accents, casefolds, turns '&' into 'and', drops punctuation
    and collapses whitespace. Returns '' for empty input.
    """
    if not value:
        return ''
    text = unicodedata.normalize('NFKD', value)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = text.casefold().replace('&', ' and ')
    text = _PUNCT_RE.sub(' ', text)
    return _WS_RE.sub(' ', text).strip()


def best_match(
    name: str,
    candidates: Iterable[T],
    key: Callable[[T], Optional[str]],
    threshold: float,
) -> Optional[Tuple[T, float]]:
    """
    Pick the candidate whose name best matches ``name``.

    An exact normalized match wins outright with score 100. Otherwise the
    highest token-sort ratio at or above ``threshold`` is returned.

    Args:
        name: Name to look for
        candidates: Catalog records to choose from
        key: Extracts the comparable name from a candidate
        threshold: Minimum score (0-100) accepted as a match

    Returns:
        Tuple of (candidate, score) or None when nothing qualifies
    """
    target = normalize_name(name)
    if not target:
        return None

    pool = [(candidate, normalize_name(key(candidate))) for candidate in candidates]
    pool = [(candidate, normalized) for candidate, normalized in pool if normalized]

    for candidate, normalized in pool:
        if normalized == target:
            return candidate, 100.0

    if not pool:
        return None

    result = process.extractOne(
        target,
        [normalized for _, normalized in pool],
        scorer=fuzz.token_sort_ratio,
        score_cutoff=threshold,
    )
    if result is None:
        return None

    _, score, index = result
    return pool[index][0], float(score)
