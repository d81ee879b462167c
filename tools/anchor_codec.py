#!/usr/bin/env python3
"""Scene ids, reading-position anchors and compact marker codes.

Formats (all numbers 1-based):
  scene id      ep<E>-s<S>                 e.g. ep2-s3
  anchor        <sceneId>-b<B>-p<P>        narrative paragraph P of block B
                <sceneId>-b<B>-l<L>        dialogue line L of block B
  marker code   #EEAASSPP                  episode, act index, scene, paragraph
                                           (two digits each, zero-padded)

Block numbering counts the scene header as block 1, matching the order of
Scene.blocks produced by tools/parse_episode.py.

Decoding never raises: anything that does not match the strict format
decodes to None.

Usage:
  python tools/anchor_codec.py decode ep2-s3-b4-p5
  python tools/anchor_codec.py marker ep1-s2-b3-l1 --org episode1.org --episode 1
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from dataclasses import dataclass, asdict
from typing import Optional


# ─── Patterns ────────────────────────────────────────────────────────────────

_NUM = r"([1-9][0-9]*)"
SCENE_ID_RE = re.compile(rf"ep{_NUM}-s{_NUM}")
ANCHOR_RE = re.compile(rf"ep{_NUM}-s{_NUM}-b{_NUM}-([pl]){_NUM}")
MARKER_RE = re.compile(r"#([0-9]{2})([0-9]{2})([0-9]{2})([0-9]{2})")

PART_PARAGRAPH = "p"
PART_LINE = "l"
PART_KINDS = (PART_PARAGRAPH, PART_LINE)

MARKER_FIELD_MAX = 99


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AnchorPosition:
    """Decoded anchor."""
    episode: int
    scene: int          # scene index within the episode
    block: int
    part: int           # paragraph or line index
    kind: str = PART_PARAGRAPH

    @property
    def scene_id(self) -> str:
        return make_scene_id(self.episode, self.scene)


@dataclass(frozen=True)
class MarkerPosition:
    """Decoded #EEAASSPP marker code."""
    episode: int
    act: int
    scene: int
    paragraph: int


# ─── Scene ids ───────────────────────────────────────────────────────────────

def make_scene_id(episode: int, scene_index: int) -> str:
    return f"ep{episode}-s{scene_index}"


def parse_scene_id(scene_id) -> Optional[tuple[int, int]]:
    """Return (episode, scene_index) or None."""
    if not isinstance(scene_id, str):
        return None
    m = SCENE_ID_RE.fullmatch(scene_id)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


# ─── Anchors ─────────────────────────────────────────────────────────────────

def make_anchor(scene_id: str, block_index: int, part_index: int,
                kind: str = PART_PARAGRAPH) -> str:
    if kind not in PART_KINDS:
        raise ValueError(f"Unknown anchor part kind: {kind!r}")
    if block_index < 1 or part_index < 1:
        raise ValueError(f"Anchor indices are 1-based: b{block_index} {kind}{part_index}")
    return f"{scene_id}-b{block_index}-{kind}{part_index}"


def make_paragraph_anchor(scene_id: str, block_index: int, paragraph_index: int) -> str:
    return make_anchor(scene_id, block_index, paragraph_index, PART_PARAGRAPH)


def make_line_anchor(scene_id: str, block_index: int, line_index: int) -> str:
    return make_anchor(scene_id, block_index, line_index, PART_LINE)


def decode_anchor(anchor) -> Optional[AnchorPosition]:
    """Strictly decode an anchor string. Malformed input gives None."""
    if not isinstance(anchor, str):
        return None
    m = ANCHOR_RE.fullmatch(anchor)
    if not m:
        return None
    return AnchorPosition(
        episode=int(m.group(1)),
        scene=int(m.group(2)),
        block=int(m.group(3)),
        kind=m.group(4),
        part=int(m.group(5)),
    )


def scene_anchors(scene) -> list[str]:
    """All paragraph/line anchors of a scene, in reading order.

    A narrative block is a single paragraph (the parser opens a new block at
    every blank line), so it anchors as -p1. Empty spacers get no anchor.
    """
    anchors = []
    for b, block in enumerate(scene.blocks, start=1):
        if block.kind == "narrative":
            if block.text.strip():
                anchors.append(make_paragraph_anchor(scene.id, b, 1))
        elif block.kind == "dialogue":
            for n, _ in enumerate(block.lines, start=1):
                anchors.append(make_line_anchor(scene.id, b, n))
    return anchors


# ─── Marker codes ────────────────────────────────────────────────────────────

def act_titles(episode) -> list[str]:
    """Act titles of an episode in first-seen scene order, de-duplicated."""
    return list(dict.fromkeys(scene.act for scene in episode.scenes))


def encode_marker(anchor: str, episode) -> Optional[str]:
    """Derive the #EEAASSPP code for an anchor inside `episode`.

    Returns None if the anchor is malformed, belongs to another episode,
    points at a scene the episode does not have, or a field needs more
    than two digits.
    """
    pos = decode_anchor(anchor)
    if pos is None or pos.episode != episode.number:
        return None

    scene = next((s for s in episode.scenes if s.id == pos.scene_id), None)
    if scene is None:
        return None

    titles = act_titles(episode)
    act_index = titles.index(scene.act) + 1

    fields = (pos.episode, act_index, pos.scene, pos.part)
    if any(v > MARKER_FIELD_MAX for v in fields):
        return None
    return "#" + "".join(f"{v:02d}" for v in fields)


def decode_marker(code) -> Optional[MarkerPosition]:
    if not isinstance(code, str):
        return None
    m = MARKER_RE.fullmatch(code)
    if not m:
        return None
    episode, act, scene, paragraph = (int(g) for g in m.groups())
    if 0 in (episode, act, scene, paragraph):
        return None
    return MarkerPosition(episode=episode, act=act, scene=scene, paragraph=paragraph)


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main():
    ap = argparse.ArgumentParser(description="Decode anchors and derive marker codes.")
    sub = ap.add_subparsers(dest="command", required=True)

    dec = sub.add_parser("decode", help="Decode an anchor or marker code")
    dec.add_argument("value")

    mk = sub.add_parser("marker", help="Derive the #EEAASSPP code of an anchor")
    mk.add_argument("anchor")
    mk.add_argument("--org", required=True, help="Episode source file")
    mk.add_argument("--episode", type=int, required=True, help="Episode number")
    args = ap.parse_args()

    if args.command == "decode":
        pos = decode_marker(args.value) if args.value.startswith("#") else decode_anchor(args.value)
        if pos is None:
            print(f"ERROR: Not a valid anchor or marker: {args.value}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(asdict(pos)))
        return

    from parse_episode import parse_episode

    with open(args.org, encoding="utf-8") as f:
        episode = parse_episode(f.read(), args.episode)
    code = encode_marker(args.anchor, episode)
    if code is None:
        print(f"ERROR: Anchor {args.anchor} does not resolve in episode {args.episode}",
              file=sys.stderr)
        sys.exit(1)
    print(code)


if __name__ == "__main__":
    main()
