"""Normalize free text across Japanese script variants and split it into search terms."""

import re
import unicodedata

# Whitespace and ASCII / full-width punctuation used as term separators
_SPLIT_PATTERN = re.compile(r"[ \t\r\n,、，。．.\-_=+!?！？:：;；()（）\"'「」『』［］\\/\[\]{}<>・]+")


def fold_width(text: str | None) -> str:
    """Full-width to half-width and half-width katakana to full-width, keeping case."""
    if not text:
        return ""
    return unicodedata.normalize("NFKC", text).strip()


def normalize_text(text: str | None) -> str:
    """
    Fold script variants so equivalent text compares equal.

    - Full-width Latin letters and digits become half-width.
    - Half-width katakana becomes full-width katakana.
    - Case is folded to upper case.
    """
    return fold_width(text).upper()


def is_ascii(text: str) -> bool:
    return all(ord(ch) < 128 for ch in text)


def is_hiragana(ch: str) -> bool:
    return "぀" <= ch <= "ゟ"


def split_hiragana(text: str) -> list[str]:
    """Split Japanese text on hiragana runs (particles), keeping kanji/katakana segments."""
    segments: list[str] = []
    buf: list[str] = []
    for ch in text:
        if is_hiragana(ch):
            if buf:
                segments.append("".join(buf))
                buf = []
            continue
        buf.append(ch)
    if buf:
        segments.append("".join(buf))
    return segments


def split_terms(text: str) -> list[str]:
    """Split normalized text into non-empty terms on whitespace and punctuation."""
    return [p for p in _SPLIT_PATTERN.split(text or "") if p]
