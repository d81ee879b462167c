#!/usr/bin/env python3
"""Find inline cross-reference tokens (=TOKEN=) in episode text.

A reference is an uppercase token between two single '=' delimiters:
  "Give me the =GOLD=!"  ->  ["GOLD"]

Token characters: A-Z, Ä, Ö, Ü, ß and underscore. Anything else between
the delimiters means the pair is not a reference and stays literal text.

Used by the episode parser (cast lines) and by the glossary builder
(appearance counting).

Usage:
  python tools/scan_references.py --text "=ALBERICH= steals the =GOLD="
  python tools/scan_references.py --file episode1.org
"""

from __future__ import annotations

import argparse
import json
import re
from dataclasses import dataclass
from typing import Optional


# ─── Patterns ────────────────────────────────────────────────────────────────

TOKEN_CHARS = "A-ZÄÖÜß_"
REFERENCE_RE = re.compile(rf"=([{TOKEN_CHARS}]+)=")
NON_TOKEN_RE = re.compile(rf"[^{TOKEN_CHARS}]")


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass
class TextSegment:
    """One run of text: plain (reference=None) or a reference token."""
    text: str
    reference: Optional[str] = None


# ─── Scanning ────────────────────────────────────────────────────────────────

def find_references(text: str) -> list[str]:
    """Return reference tokens in order of appearance (duplicates kept)."""
    if not text:
        return []
    return [m.group(1) for m in REFERENCE_RE.finditer(text)]


def split_references(text: str) -> list[TextSegment]:
    """Split text into alternating plain and reference segments.

    Empty plain runs are not emitted, so "=A==B=" gives two reference
    segments and nothing in between.
    """
    segments: list[TextSegment] = []
    last = 0
    for m in REFERENCE_RE.finditer(text or ""):
        if m.start() > last:
            segments.append(TextSegment(text=text[last:m.start()]))
        segments.append(TextSegment(text=m.group(1), reference=m.group(1)))
        last = m.end()
    if text and last < len(text):
        segments.append(TextSegment(text=text[last:]))
    return segments


def strip_non_token_chars(s: str) -> str:
    """Drop every character that cannot appear in a reference token."""
    return NON_TOKEN_RE.sub("", s)


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main():
    ap = argparse.ArgumentParser(description="List =TOKEN= references found in text.")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--text", help="Text to scan")
    src.add_argument("--file", help="UTF-8 file to scan")
    ap.add_argument("--unique", action="store_true",
                    help="Print each token once, in first-seen order")
    args = ap.parse_args()

    if args.file:
        with open(args.file, encoding="utf-8") as f:
            text = f.read()
    else:
        text = args.text

    refs = find_references(text)
    if args.unique:
        refs = list(dict.fromkeys(refs))
    print(json.dumps(refs, ensure_ascii=False))


if __name__ == "__main__":
    main()
