"""Tests for text normalization across Japanese script variants and term splitting."""

import pytest

from pyplc_ladder.normalize import is_ascii, normalize_text, split_hiragana, split_terms


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("ﾓｰﾀ", "モータ"),
        ("ＰＵＭＰ１", "PUMP1"),
        ("pump", "PUMP"),
        ("  ｴﾗｰ  ", "エラー"),
        ("過負荷異常", "過負荷異常"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_text(raw: str | None, expected: str) -> None:
    assert normalize_text(raw) == expected


def test_is_ascii() -> None:
    assert is_ascii("PUMP1")
    assert not is_ascii("モータ")


def test_split_hiragana() -> None:
    assert split_hiragana("モータが止まった") == ["モータ", "止"]
    assert split_hiragana("メインモータ") == ["メインモータ"]
    assert split_hiragana("のが") == []


def test_split_terms() -> None:
    assert split_terms("PRESURE SENSER") == ["PRESURE", "SENSER"]
    assert split_terms("D100、モータ。温度!") == ["D100", "モータ", "温度"]
    assert split_terms("  ") == []
