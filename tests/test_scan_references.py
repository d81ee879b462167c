#!/usr/bin/env python3
"""Tests for inline reference scanning (tools/scan_references.py)."""

import sys
from pathlib import Path

import pytest

# Add tools/ to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "tools"))

from scan_references import (
    TextSegment,
    find_references,
    split_references,
    strip_non_token_chars,
)


class TestFindReferences:

    def test_no_references(self):
        assert find_references("Plain prose, no markers at all.") == []

    def test_empty_and_none(self):
        assert find_references("") == []
        assert find_references(None) == []

    def test_order_preserved(self):
        assert find_references("=A= and =B=") == ["A", "B"]

    def test_duplicates_kept(self):
        assert find_references("=GOLD= oh =GOLD=") == ["GOLD", "GOLD"]

    def test_german_letters_and_underscore(self):
        text = "=BRÜNNHILDE= sieht =WALHALL_BURG= und =GROSSE= =STRAßE="
        assert find_references(text) == ["BRÜNNHILDE", "WALHALL_BURG", "GROSSE", "STRAßE"]

    @pytest.mark.parametrize("text", [
        "=gold=",          # lowercase
        "=GOLD RING=",     # space inside
        "=GOLD-RING=",     # hyphen inside
        "==",              # empty interior
        "a = b = c",
    ])
    def test_invalid_interior_is_literal(self, text):
        assert find_references(text) == []

    def test_invalid_pair_does_not_swallow_next(self):
        assert find_references("x =a= =RING= y") == ["RING"]

    def test_adjacent_tokens(self):
        assert find_references("=A==B=") == ["A", "B"]

    def test_repeatable(self):
        text = "=ALBERICH= raubt das =GOLD="
        assert find_references(text) == find_references(text)


class TestSplitReferences:

    def test_mixed_text(self):
        segs = split_references("Give me the =GOLD=!")
        assert segs == [
            TextSegment(text="Give me the "),
            TextSegment(text="GOLD", reference="GOLD"),
            TextSegment(text="!"),
        ]

    def test_plain_only(self):
        assert split_references("nothing here") == [TextSegment(text="nothing here")]

    def test_empty(self):
        assert split_references("") == []

    def test_reassembles_input(self):
        text = "=WOTAN= speaks of =WALHALL= at dawn"
        rebuilt = "".join(
            f"={s.reference}=" if s.reference else s.text
            for s in split_references(text)
        )
        assert rebuilt == text


class TestStripNonTokenChars:

    def test_strips_markup(self):
        assert strip_non_token_chars(" =MIME= (Zwerg)") == "MIMEZ"

    def test_keeps_umlauts(self):
        assert strip_non_token_chars("FAFNER & FÄSOLT!") == "FAFNERFÄSOLT"
