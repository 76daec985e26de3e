"""Tests for PatchEngine."""

from __future__ import annotations

import pytest

from delta_agent.core.patch import PatchEngine, PatchFailure, unified_diff
from delta_agent.core.requests import DeltaBlock


@pytest.fixture
def engine():
    return PatchEngine()


class TestApply:
    def test_single_replacement(self, engine):
        out = engine.apply("a = 1\nb = 2\n", [DeltaBlock("b = 2", "b = 3")])
        assert out == "a = 1\nb = 3\n"

    def test_blocks_apply_sequentially(self, engine):
        # The second block only exists after the first one ran
        deltas = [DeltaBlock("alpha", "beta"), DeltaBlock("beta gamma", "delta")]
        assert engine.apply("alpha gamma", deltas) == "delta"

    def test_empty_block_list_is_identity(self, engine):
        assert engine.apply("unchanged", []) == "unchanged"

    def test_empty_replacement_deletes(self, engine):
        assert engine.apply("keep\ndrop\nkeep2", [DeltaBlock("drop\n", "")]) == "keep\nkeep2"

    def test_exact_match_is_whitespace_sensitive(self, engine):
        with pytest.raises(PatchFailure) as info:
            engine.apply("    x = 1\n", [DeltaBlock("x  = 1", "x = 2")])
        assert info.value.kind == "PATCH_NOT_FOUND"

    def test_input_not_modified_on_failure(self, engine):
        contents = "one\ntwo\n"
        with pytest.raises(PatchFailure):
            engine.apply(contents, [DeltaBlock("one", "ONE"), DeltaBlock("missing", "x")])
        assert contents == "one\ntwo\n"


class TestFailures:
    def test_not_found(self, engine):
        with pytest.raises(PatchFailure) as info:
            engine.apply("hello", [DeltaBlock("bye", "x")])
        assert info.value.kind == "PATCH_NOT_FOUND"
        assert info.value.index == 0
        assert info.value.occurrences == 0

    def test_ambiguous(self, engine):
        with pytest.raises(PatchFailure) as info:
            engine.apply("x = 1\nx = 1\n", [DeltaBlock("x = 1", "x = 2")])
        assert info.value.kind == "AMBIGUOUS"
        assert info.value.occurrences == 2
        assert "2 times" in info.value.message

    def test_overlapping_occurrences_are_ambiguous(self, engine):
        with pytest.raises(PatchFailure) as info:
            engine.apply("aaa", [DeltaBlock("aa", "b")])
        assert info.value.kind == "AMBIGUOUS"
        assert info.value.occurrences == 2

    def test_empty_current_is_ambiguous(self, engine):
        with pytest.raises(PatchFailure) as info:
            engine.apply("text", [DeltaBlock("", "prefix")])
        assert info.value.kind == "AMBIGUOUS"

    def test_failure_reports_block_index(self, engine):
        deltas = [DeltaBlock("a", "b"), DeltaBlock("b", "c"), DeltaBlock("zzz", "y")]
        with pytest.raises(PatchFailure) as info:
            engine.apply("a", deltas)
        assert info.value.index == 2
        assert info.value.message.startswith("Delta 3:")


class TestUnifiedDiff:
    def test_unified_diff_headers(self):
        diff = unified_diff("a\nb\nc\n", "a\nB\nc\n", "f.txt")
        assert diff.startswith("--- a/f.txt\n+++ b/f.txt\n")
        assert "-b\n" in diff
        assert "+B\n" in diff

    def test_unified_diff_empty_when_equal(self):
        assert unified_diff("same\n", "same\n", "x") == ""
