#!/usr/bin/env python3
"""Build the glossary index from parsed episodes plus seed data.

The glossary merges three sources into one term list:
  - seed entries (term, kind, short description) maintained by hand
  - cast and motif declarations of every episode
  - =TOKEN= references found in dialogue and narrative text

Each term carries per-scene appearance counts. A speaker heading counts
once per dialogue block; each inline reference counts once. Unknown
reference tokens become "concept" terms with a placeholder description.

Merge rule for short descriptions: the first non-empty one wins, later
re-declarations never erase it.

The result is a pure function of the inputs: terms are sorted with a
German dictionary collation, appearances by (episode, scene id).

Usage:
  python tools/build_glossary.py --episodes-dir episodes \\
    --seed glossary/seed.yaml --details glossary/details \\
    --out-json glossary.json
"""

from __future__ import annotations

import argparse
import json
import os
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Optional

from scan_references import find_references


# ─── Constants ───────────────────────────────────────────────────────────────

TERM_KINDS = ("character", "motif", "place", "object", "concept")
PLACEHOLDER_SHORT_DESCRIPTION = "Noch ohne Kurzbeschreibung."

UMLAUT_TRANSLITERATION = {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"}
SLUG_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")

INITIAL_RE = re.compile(r"[A-ZÄÖÜ]")
OTHER_INITIAL = "#"


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass
class SeedEntry:
    term: str
    kind: str
    short_description: str = ""


@dataclass
class GlossaryAppearance:
    scene_id: str
    episode: int
    act: str
    scene_title: str
    count: int = 1


@dataclass
class GlossaryTerm:
    term: str
    slug: str
    kind: str
    short_description: str
    long_description: Optional[str] = None
    appearances: list[GlossaryAppearance] = field(default_factory=list)


# ─── Slugs and collation ─────────────────────────────────────────────────────

def to_slug(term: str) -> str:
    """ASCII slug: lowercase, umlauts transliterated, hyphen-joined runs."""
    s = term.lower()
    for src, dst in UMLAUT_TRANSLITERATION.items():
        s = s.replace(src, dst)
    return SLUG_SEPARATOR_RE.sub("-", s).strip("-")


def german_sort_key(text: str) -> tuple:
    """Collation key for German dictionary order.

    Three levels, compared in order:
      1. base letters, case- and accent-blind (Ä sorts as A, ß as ss);
         punctuation before digits before letters
      2. accents (plain letter before its umlaut)
      3. case (lowercase before uppercase)
    """
    primary = []
    secondary = []
    tertiary = []
    for ch in text:
        if ch == "ß":
            base, accents = "ss", "ß"
        else:
            decomposed = unicodedata.normalize("NFD", ch)
            base = "".join(c for c in decomposed if not unicodedata.combining(c))
            accents = "".join(c for c in decomposed if unicodedata.combining(c))
        for b in base.casefold():
            if b.isalpha():
                primary.append((2, b))
            elif b.isdigit():
                primary.append((1, b))
            else:
                primary.append((0, b))
        secondary.append(accents)
        tertiary.append(1 if ch.isupper() else 0)
    return tuple(primary), tuple(secondary), tuple(tertiary)


# ─── Input normalization ─────────────────────────────────────────────────────

def normalize_seed(raw) -> list[SeedEntry]:
    """Turn loaded seed data into SeedEntry records.

    Non-list input gives an empty list. Entries that are not mappings, have
    no term, or use an unknown kind are skipped.
    """
    if not isinstance(raw, list):
        return []
    entries = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        term = item.get("term")
        kind = item.get("kind")
        if not isinstance(term, str) or not term.strip() or kind not in TERM_KINDS:
            continue
        short = item.get("shortDescription", item.get("short_description")) or ""
        entries.append(SeedEntry(term=term.strip(), kind=kind, short_description=str(short)))
    return entries


def normalize_details(raw) -> dict[str, str]:
    """Keep the string values of a slug -> detail text mapping."""
    if not isinstance(raw, dict):
        return {}
    return {str(k): v for k, v in raw.items() if isinstance(v, str)}


# ─── Index building ──────────────────────────────────────────────────────────

class _TermIndex:
    """Terms keyed by term text, appearances keyed by scene id."""

    def __init__(self, details: dict[str, str]):
        self.details = details
        self.terms: dict[str, GlossaryTerm] = {}
        self.appearances: dict[str, dict[str, GlossaryAppearance]] = {}

    def upsert(self, term: str, kind: str, short_description: str):
        existing = self.terms.get(term)
        if existing is not None:
            if not existing.short_description and short_description:
                existing.short_description = short_description
            return

        slug = to_slug(term)
        detail = (self.details.get(slug) or "").strip()
        self.terms[term] = GlossaryTerm(
            term=term,
            slug=slug,
            kind=kind,
            short_description=short_description,
            long_description=detail or None,
        )
        self.appearances[term] = {}

    def add_appearance(self, term: str, scene, episode_number: int):
        by_scene = self.appearances.get(term)
        if by_scene is None:
            return
        existing = by_scene.get(scene.id)
        if existing is not None:
            existing.count += 1
            return
        by_scene[scene.id] = GlossaryAppearance(
            scene_id=scene.id,
            episode=episode_number,
            act=scene.act,
            scene_title=scene.title,
            count=1,
        )

    def add_references(self, text: str, scene, episode_number: int):
        for ref in find_references(text):
            if ref not in self.terms:
                self.upsert(ref, "concept", PLACEHOLDER_SHORT_DESCRIPTION)
            self.add_appearance(ref, scene, episode_number)

    def sorted_terms(self) -> list[GlossaryTerm]:
        out = []
        for term in sorted(self.terms.values(), key=lambda t: german_sort_key(t.term)):
            term.appearances = sorted(
                self.appearances[term.term].values(),
                key=lambda a: (a.episode, a.scene_id),
            )
            out.append(term)
        return out


def build_glossary(episodes, seed=None, details=None) -> list[GlossaryTerm]:
    """Build the sorted glossary for `episodes`.

    `seed` is a list of SeedEntry (or raw seed data, normalized here);
    `details` maps slug -> long description.
    """
    if not (isinstance(seed, list) and all(isinstance(s, SeedEntry) for s in seed)):
        seed = normalize_seed(seed)
    index = _TermIndex(normalize_details(details))

    for entry in seed or []:
        index.upsert(entry.term, entry.kind, entry.short_description)

    for ep in episodes:
        for character in ep.characters.values():
            index.upsert(character.name, "character", character.description)
        for motif in ep.leitmotifs.values():
            index.upsert(motif.name, "motif", motif.description)

        for scene in ep.scenes:
            for block in scene.blocks:
                if block.kind == "dialogue":
                    index.add_appearance(block.character, scene, ep.number)
                    for line in block.lines:
                        index.add_references(line, scene, ep.number)
                elif block.kind == "narrative":
                    index.add_references(block.text, scene, ep.number)

    return index.sorted_terms()


# ─── Browsing ────────────────────────────────────────────────────────────────

def search_glossary(terms: list[GlossaryTerm], query: str) -> list[GlossaryTerm]:
    """Case-insensitive substring filter over term, short description and kind."""
    q = (query or "").strip().lower()
    if not q:
        return list(terms)
    return [
        t for t in terms
        if q in t.term.lower() or q in t.short_description.lower() or q in t.kind.lower()
    ]


def term_initial(term: str) -> str:
    first = term[:1].upper()
    return first if INITIAL_RE.match(first) else OTHER_INITIAL


def group_by_initial(terms: list[GlossaryTerm]) -> list[tuple[str, list[GlossaryTerm]]]:
    """Group terms under their initial letter; non-letters go under '#'."""
    groups: dict[str, list[GlossaryTerm]] = {}
    for t in terms:
        groups.setdefault(term_initial(t.term), []).append(t)
    return sorted(groups.items(), key=lambda item: german_sort_key(item[0]))


# ─── Serialization ───────────────────────────────────────────────────────────

def glossary_to_dict(terms: list[GlossaryTerm]) -> list[dict]:
    out = []
    for t in terms:
        rec = {
            "term": t.term,
            "slug": t.slug,
            "kind": t.kind,
            "shortDescription": t.short_description,
            "appearances": [
                {
                    "sceneId": a.scene_id,
                    "episode": a.episode,
                    "akt": a.act,
                    "sceneTitle": a.scene_title,
                    "count": a.count,
                }
                for a in t.appearances
            ],
        }
        if t.long_description is not None:
            rec["longDescription"] = t.long_description
        out.append(rec)
    return out


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main():
    from load_corpus import load_details, load_seed_file, parse_episodes, read_episode_files

    ap = argparse.ArgumentParser(description="Build the glossary index from episode sources.")
    ap.add_argument("--episodes-dir", required=True, help="Directory with episode .org files")
    ap.add_argument("--seed", default=None, help="Seed glossary (YAML or JSON list)")
    ap.add_argument("--details", default=None,
                    help="Detail texts: YAML/JSON mapping or directory of <slug>.md files")
    ap.add_argument("--out-json", required=True, help="Output glossary JSON path")
    ap.add_argument("--query", default=None, help="Only write terms matching this search")
    args = ap.parse_args()

    episodes, report = parse_episodes(read_episode_files(args.episodes_dir))
    seed = load_seed_file(args.seed) if args.seed else []
    details = load_details(args.details) if args.details else {}

    terms = build_glossary(episodes, seed, details)
    if args.query:
        terms = search_glossary(terms, args.query)

    os.makedirs(os.path.dirname(os.path.abspath(args.out_json)) or ".", exist_ok=True)
    with open(args.out_json, "w", encoding="utf-8") as f:
        json.dump(glossary_to_dict(terms), f, ensure_ascii=False, indent=2)

    by_kind: dict[str, int] = {}
    for t in terms:
        by_kind[t.kind] = by_kind.get(t.kind, 0) + 1

    print(f"Episodes parsed: {len(episodes)}")
    if report.failed_episodes:
        print(f"  ⚠ Failed episodes: {report.failed_episodes}")
    print(f"Glossary terms: {len(terms)}")
    for kind in TERM_KINDS:
        if by_kind.get(kind):
            print(f"  {kind}: {by_kind[kind]}")
    print(f"\nWrote: {args.out_json}")


if __name__ == "__main__":
    main()
