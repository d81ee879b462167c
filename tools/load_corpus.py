#!/usr/bin/env python3
"""Load episode sources and glossary data, and aggregate across episodes.

Each episode is parsed on its own: a missing or unparseable episode is
reported and skipped, the rest of the corpus still loads.

Glossary seed and detail files are YAML (JSON is accepted as YAML).
Details may also be a directory of <slug>.md files. Missing or malformed
data files degrade to empty collections with a warning.

Usage:
  python tools/load_corpus.py --episodes-dir episodes --out-json corpus.json
"""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

import yaml

from parse_episode import Character, Episode, Leitmotif, episode_to_dict, parse_episode


# ─── Constants ───────────────────────────────────────────────────────────────

EPISODE_FILE_GLOB = "*.org"
EPISODE_NUMBER_RE = re.compile(r"(\d+)")
DETAIL_FILE_SUFFIX = ".md"


# ─── Output helpers ──────────────────────────────────────────────────────────

def abort(msg):
    """Print error and exit."""
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def warn(msg):
    """Print warning to stderr."""
    print(f"WARNING: {msg}", file=sys.stderr)


def info(msg):
    """Print info to stdout."""
    print(msg)


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass
class CorpusReport:
    """What happened while loading a set of episodes."""
    episodes_requested: int = 0
    episodes_parsed: int = 0
    failed_episodes: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ─── Episode loading ─────────────────────────────────────────────────────────

def episode_number_from_filename(path) -> Optional[int]:
    """First number in the file stem, e.g. 'episode3.org' -> 3."""
    m = EPISODE_NUMBER_RE.search(Path(path).stem)
    if not m:
        return None
    n = int(m.group(1))
    return n if n >= 1 else None


def read_episode_files(directory, pattern: str = EPISODE_FILE_GLOB) -> dict[int, Optional[str]]:
    """Read episode sources from `directory`.

    Returns episode number -> text. Unreadable files map to None so the
    caller can report them as failed episodes.
    """
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Episode directory not found: {base}")

    sources: dict[int, Optional[str]] = {}
    for path in sorted(base.glob(pattern)):
        number = episode_number_from_filename(path)
        if number is None:
            warn(f"Skipping {path.name}: no episode number in file name")
            continue
        if number in sources:
            warn(f"Skipping {path.name}: episode {number} already loaded")
            continue
        try:
            sources[number] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            warn(f"Cannot read {path}: {e}")
            sources[number] = None
    return sources


def parse_episodes(sources: dict[int, Optional[str]]) -> tuple[list[Episode], CorpusReport]:
    """Parse every episode independently, ordered by episode number."""
    report = CorpusReport(episodes_requested=len(sources))
    episodes = []
    for number in sorted(sources):
        text = sources[number]
        if text is None:
            msg = f"Episode {number}: source text missing"
            warn(msg)
            report.warnings.append(msg)
            report.failed_episodes.append(number)
            continue
        try:
            episodes.append(parse_episode(text, number))
        except (TypeError, ValueError) as e:
            msg = f"Failed to parse episode {number}: {e}"
            warn(msg)
            report.warnings.append(msg)
            report.failed_episodes.append(number)
    report.episodes_parsed = len(episodes)
    return episodes, report


# ─── Glossary data files ─────────────────────────────────────────────────────

def load_yaml_file(path) -> object:
    """Load a YAML (or JSON) file. Returns None if missing or malformed."""
    p = Path(path)
    if not p.is_file():
        warn(f"Data file not found: {p}")
        return None
    try:
        with p.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        warn(f"Failed to parse {p}: {e}")
        return None


def load_seed_file(path) -> list:
    """Raw seed entries; anything but a list degrades to []."""
    data = load_yaml_file(path)
    if data is None:
        return []
    if not isinstance(data, list):
        warn(f"Seed file {path} must contain a list, got: {type(data).__name__}")
        return []
    return data


def load_details(path) -> dict[str, str]:
    """Slug -> long description, from a mapping file or a directory of <slug>.md files."""
    p = Path(path)
    if p.is_dir():
        details = {}
        for md in sorted(p.glob(f"*{DETAIL_FILE_SUFFIX}")):
            try:
                details[md.stem] = md.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                warn(f"Cannot read detail text {md}: {e}")
        return details

    data = load_yaml_file(p)
    if data is None:
        return {}
    if not isinstance(data, dict):
        warn(f"Details file {path} must contain a mapping, got: {type(data).__name__}")
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, str)}


# ─── Cross-episode aggregation ───────────────────────────────────────────────

def merge_characters(episodes: list[Episode]) -> dict[str, Character]:
    """Characters of all episodes by name, with episode lists unioned.

    The first declaration supplies the description.
    """
    merged: dict[str, Character] = {}
    for ep in episodes:
        for name, char in ep.characters.items():
            existing = merged.get(name)
            if existing is None:
                merged[name] = Character(name=char.name, description=char.description,
                                         episodes=list(char.episodes))
                continue
            for n in char.episodes:
                if n not in existing.episodes:
                    existing.episodes.append(n)
    return merged


def merge_leitmotifs(episodes: list[Episode]) -> dict[str, Leitmotif]:
    """Motifs of all episodes by name; the first declaration wins."""
    merged: dict[str, Leitmotif] = {}
    for ep in episodes:
        for name, motif in ep.leitmotifs.items():
            if name not in merged:
                merged[name] = Leitmotif(name=motif.name, description=motif.description,
                                         color=motif.color)
    return merged


def reading_progress(episodes: list[Episode], episode_number: int, scene_index: int) -> float:
    """Share of all scenes read when positioned at `scene_index` (0-based) of an episode.

    Scenes of earlier episodes count as read, plus the current one.
    """
    total = sum(len(ep.scenes) for ep in episodes)
    if total == 0:
        return 0.0
    done = 0
    for ep in episodes:
        if ep.number < episode_number:
            done += len(ep.scenes)
        elif ep.number == episode_number:
            done += min(max(scene_index, 0) + 1, len(ep.scenes))
    return min(done / total, 1.0)


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main():
    ap = argparse.ArgumentParser(description="Parse all episodes of a directory into one JSON corpus.")
    ap.add_argument("--episodes-dir", required=True, help="Directory with episode .org files")
    ap.add_argument("--pattern", default=EPISODE_FILE_GLOB, help="Episode file glob")
    ap.add_argument("--out-json", required=True, help="Output corpus JSON path")
    args = ap.parse_args()

    try:
        sources = read_episode_files(args.episodes_dir, args.pattern)
    except FileNotFoundError as e:
        abort(str(e))
    if not sources:
        abort(f"No episode files matching {args.pattern} in {args.episodes_dir}")

    episodes, report = parse_episodes(sources)
    characters = merge_characters(episodes)
    motifs = merge_leitmotifs(episodes)

    out = {
        "episodes": [episode_to_dict(ep) for ep in episodes],
        "characters": {n: asdict(c) for n, c in sorted(characters.items())},
        "leitmotifs": {n: asdict(m) for n, m in sorted(motifs.items())},
        "report": asdict(report),
    }
    os.makedirs(os.path.dirname(os.path.abspath(args.out_json)) or ".", exist_ok=True)
    with open(args.out_json, "w", encoding="utf-8") as f:
        json.dump(out, f, ensure_ascii=False, indent=2)

    info(f"Parsed {report.episodes_parsed}/{report.episodes_requested} episodes")
    info(f"  Characters: {len(characters)}")
    info(f"  Leitmotifs: {len(motifs)}")
    info(f"  Scenes: {sum(len(ep.scenes) for ep in episodes)}")
    if report.failed_episodes:
        info(f"  ⚠ Failed episodes: {report.failed_episodes}")
    info(f"\nWrote: {args.out_json}")


if __name__ == "__main__":
    main()
