#!/usr/bin/env python3
"""Parse one episode outline (org-style markup) into an episode tree.

Input is the raw text of a single episode:

  * EPISODE 1 — Das Rheingold
  *Tagline: Gold is power
  ** Besetzung
  - =ALBERICH= — a dwarf
  ** Leitmotive
  - =GOLD= : desire
  ---
  * AKT 1 — Opening
  ** SZENE 1.1 — The Rhine
  ALBERICH
  (grabbing)
  Give me the =GOLD=!

Output is an Episode with its cast, its motif legend and an ordered list of
scenes. Every scene starts with a SceneHeader block, followed by dialogue and
narrative blocks in source order.

Parsing is lenient: a line that matches no structural rule becomes narrative
text. The only errors raised are for input that is not text at all, or for
an episode number below 1.

Usage:
  python tools/parse_episode.py --org episodes/episode1.org --episode 1 \\
    [--out-json episode1.json]
"""

from __future__ import annotations

import argparse
import json
import os
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from anchor_codec import make_scene_id
from scan_references import find_references, strip_non_token_chars


# ─── Line patterns ───────────────────────────────────────────────────────────

EPISODE_HEADER_RE = re.compile(r"^\* EPISODE (\d+) — (.+)$")
ACT_HEADER_RE = re.compile(r"^\* AKT \d+ — (.+)$")
SCENE_HEADER_RE = re.compile(r"^\*\* SZENE [\d.]+ — (.+)$")
TAGLINE_PREFIX = "*Tagline:"

CAST_KEYWORD = "Besetzung"
MOTIF_KEYWORD = "Leitmotive"
SECTION_SEPARATOR = "---"

CHARACTER_LINE_RE = re.compile(r"^- (.+?) — (.+)$")
MOTIF_LINE_RE = re.compile(r"^- =([A-ZÄÖÜß_]+)= : (.+)$")

SPEAKER_RE = re.compile(r"^([A-ZÄÖÜ][A-ZÄÖÜ\s\-]+)$")
STAGE_DIRECTION_RE = re.compile(r"^\(([^)]+)\)$")
COMMENT_PREFIX = "#"

# Section states (mutually exclusive)
SECTION_NONE = "none"
SECTION_CAST = "cast"
SECTION_MOTIFS = "motifs"


# ─── Motif colors ────────────────────────────────────────────────────────────

MOTIF_COLORS = ("fire", "gold", "rhein", "neon", "radioactive", "blood")
DEFAULT_MOTIF_COLOR = "gold"

# (match type, name, color) — first match wins
MOTIF_COLOR_RULES = [
    ("exact", "FLUCH", "radioactive"),
    ("exact", "ALBERICH", "radioactive"),
    ("exact", "RHEIN", "rhein"),
    ("contains", "WASSER", "rhein"),
    ("exact", "GOLD", "gold"),
    ("exact", "FEUER", "fire"),
    ("exact", "NOTHUNG", "fire"),
    ("exact", "BLUT", "blood"),
    ("exact", "TOD", "blood"),
]


def motif_color(name: str) -> str:
    """Color tag for a motif name, per MOTIF_COLOR_RULES."""
    for match_type, pattern, color in MOTIF_COLOR_RULES:
        if match_type == "exact" and name == pattern:
            return color
        if match_type == "contains" and pattern in name:
            return color
    return DEFAULT_MOTIF_COLOR


# ─── Data classes ────────────────────────────────────────────────────────────

@dataclass
class Character:
    """A cast entry. `episodes` starts as the declaring episode only."""
    name: str
    description: str
    episodes: list[int] = field(default_factory=list)


@dataclass
class Leitmotif:
    name: str
    description: str
    color: str = DEFAULT_MOTIF_COLOR


@dataclass
class SceneHeader:
    act: str
    scene: str
    location: Optional[str] = None
    kind: str = field(default="scene", init=False)


@dataclass
class DialogueLine:
    """One speech: speaker, optional stage direction, spoken lines in order."""
    character: str
    stage_direction: Optional[str] = None
    lines: list[str] = field(default_factory=list)
    kind: str = field(default="dialogue", init=False)


@dataclass
class NarrativeBlock:
    """One prose paragraph. Empty text marks a spacer after dialogue."""
    text: str = ""
    kind: str = field(default="narrative", init=False)


ContentBlock = Union[SceneHeader, DialogueLine, NarrativeBlock]


@dataclass
class Scene:
    id: str
    episode: int
    act: str
    title: str
    location: Optional[str] = None
    blocks: list[ContentBlock] = field(default_factory=list)


@dataclass
class Episode:
    number: int
    title: str = ""
    tagline: str = ""
    characters: dict[str, Character] = field(default_factory=dict)
    leitmotifs: dict[str, Leitmotif] = field(default_factory=dict)
    scenes: list[Scene] = field(default_factory=list)


@dataclass
class ParserState:
    """Mutable state of one parse run."""
    episode: Episode
    lines: list[str]
    index: int = 0
    section: str = SECTION_NONE
    act_title: str = ""
    scene: Optional[Scene] = None
    blocks: list[ContentBlock] = field(default_factory=list)
    # False once a blank line has closed the trailing narrative paragraph
    paragraph_open: bool = False

    @property
    def last_block(self) -> Optional[ContentBlock]:
        return self.blocks[-1] if self.blocks else None

    def next_raw_line(self) -> Optional[str]:
        if self.index + 1 < len(self.lines):
            return self.lines[self.index + 1]
        return None

    def commit_scene(self):
        if self.scene is not None and self.blocks:
            self.scene.blocks = self.blocks
            self.episode.scenes.append(self.scene)


# ─── Structural rules ────────────────────────────────────────────────────────
#
# Each rule is (name, predicate, action). Predicates look at the stripped
# line and return a truthy match; the first matching rule consumes the line.

def _apply_episode_header(state: ParserState, line: str, m):
    state.episode.title = m.group(2)


def _apply_tagline(state: ParserState, line: str, m):
    state.episode.tagline = line[len(TAGLINE_PREFIX):].strip()


def _enter_cast(state: ParserState, line: str, m):
    state.section = SECTION_CAST


def _enter_motifs(state: ParserState, line: str, m):
    state.section = SECTION_MOTIFS


def _leave_sections(state: ParserState, line: str, m):
    state.section = SECTION_NONE


def parse_character_names(names_part: str) -> list[str]:
    """Names of one cast line: inline =TOKEN= names, else '/'-separated names."""
    inline = find_references(names_part)
    if inline:
        return inline
    names = [strip_non_token_chars(part.strip()) for part in names_part.split("/")]
    return [n for n in names if n]


def _apply_cast_line(state: ParserState, line: str, m):
    char_match = CHARACTER_LINE_RE.match(line)
    if not char_match:
        return
    description = char_match.group(2).strip()
    for name in parse_character_names(char_match.group(1).strip()):
        state.episode.characters[name] = Character(
            name=name,
            description=description,
            episodes=[state.episode.number],
        )


def _apply_motif_line(state: ParserState, line: str, m):
    motif_match = MOTIF_LINE_RE.match(line)
    if not motif_match:
        return
    name, description = motif_match.group(1), motif_match.group(2).strip()
    state.episode.leitmotifs[name] = Leitmotif(
        name=name,
        description=description,
        color=motif_color(name),
    )


def _apply_act_header(state: ParserState, line: str, m):
    state.act_title = m.group(1)


def _apply_scene_header(state: ParserState, line: str, m):
    state.commit_scene()
    title = m.group(1)
    state.scene = Scene(
        id=make_scene_id(state.episode.number, len(state.episode.scenes) + 1),
        episode=state.episode.number,
        act=state.act_title,
        title=title,
        location=title,
    )
    state.blocks = [SceneHeader(act=state.act_title, scene=title, location=title)]
    state.paragraph_open = False


LineRule = tuple[str, Callable[[ParserState, str], object], Callable[[ParserState, str, object], None]]

STRUCTURE_RULES: list[LineRule] = [
    ("episode_header", lambda st, line: EPISODE_HEADER_RE.match(line), _apply_episode_header),
    ("tagline", lambda st, line: line.startswith(TAGLINE_PREFIX), _apply_tagline),
    ("cast_section", lambda st, line: CAST_KEYWORD in line, _enter_cast),
    ("motif_section", lambda st, line: MOTIF_KEYWORD in line, _enter_motifs),
    ("separator", lambda st, line: line == SECTION_SEPARATOR, _leave_sections),
    ("cast_line", lambda st, line: st.section == SECTION_CAST, _apply_cast_line),
    ("motif_line", lambda st, line: st.section == SECTION_MOTIFS, _apply_motif_line),
    ("act_header", lambda st, line: ACT_HEADER_RE.match(line), _apply_act_header),
    ("scene_header", lambda st, line: SCENE_HEADER_RE.match(line), _apply_scene_header),
]


# ─── Content rules (inside an open scene) ────────────────────────────────────
#
# Same shape, but the line is the raw line with trailing whitespace removed.

def _is_spacer(block) -> bool:
    return isinstance(block, NarrativeBlock) and block.text == ""


def _apply_blank(state: ParserState, line: str, m):
    last = state.last_block
    if isinstance(last, DialogueLine):
        state.blocks.append(NarrativeBlock(text=""))
    elif isinstance(last, NarrativeBlock) and last.text:
        state.paragraph_open = False


def _drop_comment(state: ParserState, line: str, m):
    pass


def _apply_speaker(state: ParserState, line: str, m):
    block = DialogueLine(character=m.group(1).strip())
    next_line = state.next_raw_line()
    if next_line is not None:
        dir_match = STAGE_DIRECTION_RE.match(next_line.strip())
        if dir_match:
            block.stage_direction = dir_match.group(1)
            state.index += 1
    state.blocks.append(block)
    state.paragraph_open = False


def _follows_dialogue(state: ParserState, line: str):
    if isinstance(state.last_block, DialogueLine):
        return STAGE_DIRECTION_RE.match(line)
    return None


def _apply_stage_direction(state: ParserState, line: str, m):
    state.last_block.stage_direction = m.group(1)


def _append_dialogue(state: ParserState, line: str, m):
    state.last_block.lines.append(line)


def _append_narrative(state: ParserState, line: str, m):
    last = state.last_block
    if _is_spacer(last):
        last.text = line
    elif isinstance(last, NarrativeBlock) and state.paragraph_open:
        last.text += " " + line
    else:
        state.blocks.append(NarrativeBlock(text=line))
    state.paragraph_open = True


CONTENT_RULES: list[LineRule] = [
    ("blank", lambda st, line: not line, _apply_blank),
    ("comment", lambda st, line: line.startswith(COMMENT_PREFIX), _drop_comment),
    ("speaker", lambda st, line: SPEAKER_RE.match(line), _apply_speaker),
    ("stage_direction", _follows_dialogue, _apply_stage_direction),
    ("dialogue_line", lambda st, line: isinstance(st.last_block, DialogueLine), _append_dialogue),
    ("narrative", lambda st, line: True, _append_narrative),
]


def apply_first_rule(rules: list[LineRule], state: ParserState, line: str) -> Optional[str]:
    """Run the first rule whose predicate matches. Returns its name."""
    for name, predicate, action in rules:
        m = predicate(state, line)
        if m:
            action(state, line, m)
            return name
    return None


# ─── Parser ──────────────────────────────────────────────────────────────────

def parse_episode(text: str, episode_number: int) -> Episode:
    """Parse the markup of one episode."""
    if not isinstance(text, str):
        raise TypeError(f"Episode {episode_number}: source text must be str, "
                        f"got {type(text).__name__}")
    if episode_number < 1:
        raise ValueError(f"Episode number must be >= 1, got {episode_number}")

    state = ParserState(episode=Episode(number=episode_number), lines=text.split("\n"))

    while state.index < len(state.lines):
        raw = state.lines[state.index]
        if apply_first_rule(STRUCTURE_RULES, state, raw.strip()) is None and state.scene is not None:
            apply_first_rule(CONTENT_RULES, state, raw.rstrip())
        state.index += 1

    state.commit_scene()
    return state.episode


# ─── Serialization ───────────────────────────────────────────────────────────

def block_to_dict(block: ContentBlock) -> dict:
    if isinstance(block, SceneHeader):
        return {"type": "scene", "akt": block.act, "scene": block.scene,
                "location": block.location}
    if isinstance(block, DialogueLine):
        rec = {"type": "dialogue", "character": block.character, "lines": list(block.lines)}
        if block.stage_direction is not None:
            rec["stageDirection"] = block.stage_direction
        return rec
    return {"type": "narrative", "text": block.text}


def episode_to_dict(episode: Episode) -> dict:
    """JSON-serializable form of an episode (camelCase keys, like the reader app)."""
    return {
        "number": episode.number,
        "title": episode.title,
        "tagline": episode.tagline,
        "characters": {
            name: {"name": c.name, "description": c.description, "episodes": list(c.episodes)}
            for name, c in sorted(episode.characters.items())
        },
        "leitmotifs": {
            name: {"name": m.name, "description": m.description, "color": m.color}
            for name, m in sorted(episode.leitmotifs.items())
        },
        "scenes": [
            {
                "id": s.id,
                "episode": s.episode,
                "akt": s.act,
                "title": s.title,
                "location": s.location,
                "blocks": [block_to_dict(b) for b in s.blocks],
            }
            for s in episode.scenes
        ],
    }


# ─── CLI ─────────────────────────────────────────────────────────────────────

def main():
    ap = argparse.ArgumentParser(description="Parse an episode outline into a JSON episode tree.")
    ap.add_argument("--org", required=True, help="Episode source file (UTF-8)")
    ap.add_argument("--episode", type=int, required=True, help="Episode number (1-based)")
    ap.add_argument("--out-json", default=None, help="Output JSON path (stdout if omitted)")
    args = ap.parse_args()

    with open(args.org, encoding="utf-8") as f:
        text = f.read()

    episode = parse_episode(text, args.episode)
    rec = episode_to_dict(episode)

    if args.out_json is None:
        print(json.dumps(rec, ensure_ascii=False, indent=2))
        return

    os.makedirs(os.path.dirname(os.path.abspath(args.out_json)) or ".", exist_ok=True)
    with open(args.out_json, "w", encoding="utf-8") as f:
        json.dump(rec, f, ensure_ascii=False, indent=2)

    blocks = sum(len(s.blocks) for s in episode.scenes)
    print(f"Episode {episode.number}: {episode.title or '(untitled)'}")
    print(f"  Characters: {len(episode.characters)}")
    print(f"  Leitmotifs: {len(episode.leitmotifs)}")
    print(f"  Scenes: {len(episode.scenes)} ({blocks} blocks)")
    print(f"\nWrote: {args.out_json}")


if __name__ == "__main__":
    main()
