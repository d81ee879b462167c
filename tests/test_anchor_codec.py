#!/usr/bin/env python3
"""Tests for scene ids, anchors and marker codes (tools/anchor_codec.py)."""

import sys
from pathlib import Path

import pytest

# Add tools/ to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "tools"))

from anchor_codec import (
    AnchorPosition,
    MarkerPosition,
    act_titles,
    decode_anchor,
    decode_marker,
    encode_marker,
    make_anchor,
    make_line_anchor,
    make_paragraph_anchor,
    make_scene_id,
    parse_scene_id,
    scene_anchors,
)
from parse_episode import parse_episode


EPISODE_TWO = "\n".join([
    "* EPISODE 2 — Die Walküre",
    "* AKT 1 — Hundings Hütte",
    "** SZENE 1.1 — Sturm",
    "Ein Sturm tobt.",
    "** SZENE 1.2 — Herd",
    "SIEGMUND",
    "Wes Herd dies auch sei,",
    "hier muss ich rasten.",
    "",
    "Er sinkt nieder.",
    "* AKT 2 — Wildes Felsengebirg",
    "** SZENE 2.1 — Gipfel",
    "BRÜNNHILDE",
    "Hojotoho!",
    "* AKT 1 — Hundings Hütte",
    "** SZENE 2.2 — Rückblende",
    "Wieder in der Hütte.",
])


@pytest.fixture
def episode_two():
    return parse_episode(EPISODE_TWO, 2)


class TestSceneIds:

    def test_format(self):
        assert make_scene_id(1, 1) == "ep1-s1"
        assert make_scene_id(12, 30) == "ep12-s30"

    def test_parse(self):
        assert parse_scene_id("ep3-s7") == (3, 7)

    @pytest.mark.parametrize("bad", ["ep0-s1", "ep1-s", "e1-s1", "ep1-s1-b1-p1", "", None, 5])
    def test_parse_malformed(self, bad):
        assert parse_scene_id(bad) is None


class TestAnchors:

    def test_paragraph_and_line(self):
        assert make_paragraph_anchor("ep1-s2", 3, 1) == "ep1-s2-b3-p1"
        assert make_line_anchor("ep1-s2", 3, 4) == "ep1-s2-b3-l4"

    def test_round_trip(self):
        anchor = make_anchor(make_scene_id(2, 3), 4, 5)
        assert decode_anchor(anchor) == AnchorPosition(episode=2, scene=3, block=4, part=5, kind="p")

    def test_decode_line_anchor(self):
        pos = decode_anchor("ep10-s11-b12-l13")
        assert (pos.episode, pos.scene, pos.block, pos.part, pos.kind) == (10, 11, 12, 13, "l")
        assert pos.scene_id == "ep10-s11"

    @pytest.mark.parametrize("bad", [
        "",
        "ep2-s3",
        "ep2-s3-b4",
        "ep2-s3-b4-x5",
        "ep2-s3-b4-p",
        "ep2-s3-b0-p1",
        "ep2-s3-b4-p5 ",
        " ep2-s3-b4-p5",
        "EP2-S3-B4-P5",
        "ep2-s3-b4-p5-extra",
        "ep-2-s3-b4-p5",
        None,
        42,
    ])
    def test_malformed_decodes_to_none(self, bad):
        assert decode_anchor(bad) is None

    def test_invalid_construction_raises(self):
        with pytest.raises(ValueError):
            make_anchor("ep1-s1", 0, 1)
        with pytest.raises(ValueError):
            make_anchor("ep1-s1", 1, 1, kind="x")


class TestSceneAnchors:

    def test_block_numbering_counts_header(self, episode_two):
        scene = episode_two.scenes[1]
        assert scene_anchors(scene) == [
            "ep2-s2-b2-l1",
            "ep2-s2-b2-l2",
            "ep2-s2-b3-p1",
        ]

    def test_narrative_block_is_one_paragraph(self):
        ep = parse_episode("\n".join([
            "** SZENE 1 — Wald",
            "Erste Zeile,",
            "zweite Zeile.",
            "",
            "Neuer Absatz.",
        ]), 1)
        assert scene_anchors(ep.scenes[0]) == ["ep1-s1-b2-p1", "ep1-s1-b3-p1"]

    def test_spacer_has_no_anchor(self):
        ep = parse_episode("** SZENE 1 — Wald\nMIME\nHe!\n", 1)
        assert scene_anchors(ep.scenes[0]) == ["ep1-s1-b2-l1"]

    def test_every_anchor_decodes(self, episode_two):
        for scene in episode_two.scenes:
            for anchor in scene_anchors(scene):
                pos = decode_anchor(anchor)
                assert pos is not None
                assert pos.scene_id == scene.id


class TestMarkerCodes:

    def test_act_titles_deduplicated_in_order(self, episode_two):
        assert act_titles(episode_two) == ["Hundings Hütte", "Wildes Felsengebirg"]

    def test_encode(self, episode_two):
        assert encode_marker("ep2-s1-b2-p1", episode_two) == "#02010101"
        assert encode_marker("ep2-s3-b2-l1", episode_two) == "#02020301"

    def test_act_index_of_repeated_act(self, episode_two):
        # scene 4 returns to the first act title
        assert encode_marker("ep2-s4-b2-p1", episode_two) == "#02010401"

    def test_encode_rejects_foreign_or_missing(self, episode_two):
        assert encode_marker("ep1-s1-b2-p1", episode_two) is None
        assert encode_marker("ep2-s9-b2-p1", episode_two) is None
        assert encode_marker("garbage", episode_two) is None

    def test_encode_rejects_wide_fields(self, episode_two):
        assert encode_marker("ep2-s1-b2-p100", episode_two) is None

    def test_decode_marker(self):
        assert decode_marker("#02010401") == MarkerPosition(episode=2, act=1, scene=4, paragraph=1)

    @pytest.mark.parametrize("bad", ["02010401", "#0201040", "#00010101", "#0201040a", None])
    def test_decode_marker_malformed(self, bad):
        assert decode_marker(bad) is None
