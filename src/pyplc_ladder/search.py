"""CommentSearch: script-normalized, misspelling-tolerant search over device comments."""

import logging
from difflib import SequenceMatcher

from .address import find_device_tokens, normalize_device
from .normalize import fold_width, is_ascii, normalize_text, split_hiragana, split_terms
from .store import ProgramStore
from .types import CommentHit

logger = logging.getLogger(__name__)

MAX_RESULTS = 20
EXPLICIT_DEVICE_SCORE = 100.0
FUZZY_THRESHOLD = 0.75


def _similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, a, b).ratio()


def extract_terms(normalized: str) -> list[str]:
    """
    Search terms of normalized text, deduplicated in order.

    ASCII terms shorter than 2 characters are dropped; Japanese terms are also
    offered split on hiragana runs so "モータが止まった" also yields "モータ".
    """
    terms: dict[str, None] = {}
    for part in split_terms(normalized):
        if is_ascii(part):
            if len(part) >= 2:
                terms.setdefault(part, None)
            continue
        terms.setdefault(part, None)
        for segment in split_hiragana(part):
            if len(segment) >= 2:
                terms.setdefault(segment, None)
    return list(terms)


class CommentSearch:
    """Ranks device comments against a question."""

    def __init__(self, store: ProgramStore, fuzzy_threshold: float = FUZZY_THRESHOLD) -> None:
        self._store = store
        self._threshold = fuzzy_threshold

    def search(self, query: str, top_n: int = 5) -> list[CommentHit]:
        """
        Explicit device mention with a comment wins outright and is returned alone.
        Otherwise every comment is scored by substring, term overlap and fuzzy term
        similarity; results are sorted by descending score, ties in table order.
        """
        if not query or not query.strip():
            return []
        snapshot = self._store.snapshot()
        if not snapshot.comments:
            return []
        top_n = max(1, min(top_n, MAX_RESULTS))
        nq = normalize_text(query)

        for token in find_device_tokens(fold_width(query)):
            comment = snapshot.try_get_comment(token)
            if comment:
                logger.debug("Comment search: explicit device %s", token)
                return [CommentHit(token, comment, EXPLICIT_DEVICE_SCORE, (token,))]

        terms = extract_terms(nq) or [nq]
        hits: list[CommentHit] = []
        for device, comment in snapshot.comments.items():
            nc = normalize_text(comment)
            if not nc:
                continue
            words = extract_terms(nc)
            score = 0.0
            matched: dict[str, None] = {}

            if nq in nc:
                score += max(2, len(terms))
                matched.setdefault(nq, None)

            for i, term in enumerate(terms):
                if term in nc:
                    weight = 1.0 if is_ascii(term) else 1.5
                    score += weight + 0.5 * max(1, len(terms) - i)
                    matched.setdefault(term, None)
                    continue
                if len(term) < 3 or normalize_device(term) is not None or not words:
                    continue
                best = max(_similarity(term, w) for w in words)
                if best >= self._threshold:
                    score += 2.0 * best
                    matched.setdefault(term, None)

            whole = _similarity(nq, nc)
            if whole >= self._threshold:
                score += 2.5 * whole

            if score > 0:
                hits.append(CommentHit(device, comment, score, tuple(matched)))

        # sort is stable: equal scores keep comment table order
        hits.sort(key=lambda h: -h.score)
        logger.debug("Comment search: %d hits for %r", len(hits), query)
        return hits[:top_n]
