"""DeviceReasoner: pick candidate devices out of a free-form question and referenced programs."""

import logging
from pathlib import PurePath
from typing import Iterable

from .address import find_device_tokens
from .normalize import fold_width, normalize_text
from .store import ProgramStore
from .types import DeviceCandidate, InferenceResult, ProgramContext

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 8

NO_DEVICE_MESSAGE = "Could not infer a device. Mention it explicitly, e.g. D100 or M10."
NO_CANDIDATES_MESSAGE = "no candidates"

REASON_QUERY = "explicit mention in the question"


def _dedupe(tokens: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(tokens))


def _mentions(query: str, name: str) -> bool:
    """True when the query names the program by file name or by stem (MAIN.csv or MAIN)."""
    if not name or not name.strip():
        return False
    q = normalize_text(query)
    stem = PurePath(name).stem
    return normalize_text(name) in q or (bool(stem.strip()) and normalize_text(stem) in q)


def build_program_contexts(store: ProgramStore, query: str) -> list[ProgramContext]:
    """Programs in the store that the query refers to by name."""
    if not query or not query.strip():
        return []
    return [
        ProgramContext(name=program.name, lines=tuple(line.raw for line in program.lines))
        for program in store.snapshot().programs
        if _mentions(query, program.name)
    ]


class DeviceReasoner:
    """Infers which devices a question is about. Explicit mentions always outrank program text."""

    def __init__(self, max_candidates: int = MAX_CANDIDATES) -> None:
        self._max = max_candidates

    def infer_single(self, query: str) -> InferenceResult:
        tokens = find_device_tokens(fold_width(query))
        if not tokens:
            return InferenceResult(devices=(), message=NO_DEVICE_MESSAGE)
        return InferenceResult(devices=(DeviceCandidate(tokens[0], 1, REASON_QUERY),))

    def infer_multiple(self, query: str, programs: Iterable[ProgramContext] | None = None) -> InferenceResult:
        """
        Devices written in the question first, in order of appearance; then devices
        from programs whose name the question mentions. Deduplicated, capped.
        """
        candidates: list[DeviceCandidate] = []
        seen: set[str] = set()

        def append(tokens: Iterable[str], reason: str) -> None:
            for token in tokens:
                if len(candidates) >= self._max:
                    return
                if token in seen:
                    continue
                seen.add(token)
                candidates.append(DeviceCandidate(token, len(candidates) + 1, reason))

        append(_dedupe(find_device_tokens(fold_width(query))), REASON_QUERY)

        for program in programs or ():
            if len(candidates) >= self._max:
                break
            if not _mentions(query, program.name):
                continue
            tokens: list[str] = []
            for line in program.lines:
                tokens.extend(find_device_tokens(line))
            append(_dedupe(tokens), f"found in program {program.name}")

        if not candidates:
            return InferenceResult(devices=(), message=NO_CANDIDATES_MESSAGE)
        logger.debug("Inferred %d devices for query", len(candidates))
        return InferenceResult(devices=tuple(candidates))
