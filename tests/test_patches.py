"""Unit tests for line-based patch batches."""

from __future__ import annotations

import pytest

from lineview.editor.overlay import DirtyRange
from lineview.editor.patches import (
    PatchApplyError,
    PatchOperation,
    apply_line_patches,
    patches_from_dirty_ranges,
)


LINES = ["zero", "one", "two", "three", "four"]


def test_patches_from_dirty_ranges_preserves_order() -> None:
    patches = patches_from_dirty_ranges([DirtyRange(1, 3, "A\nB"), DirtyRange(4, 5, "C")])

    assert patches == [
        PatchOperation("replace", 1, 3, "A\nB"),
        PatchOperation("replace", 4, 5, "C"),
    ]
    assert patches[0].to_payload() == {"type": "replace", "startLine": 1, "endLine": 3, "content": "A\nB"}


def test_payload_round_trip_defaults_end_to_start() -> None:
    patch = PatchOperation.from_payload({"type": "insert", "startLine": 2, "content": "new"})

    assert patch == PatchOperation("insert", 2, 2, "new")


def test_from_payload_rejects_missing_fields() -> None:
    with pytest.raises(PatchApplyError) as excinfo:
        PatchOperation.from_payload({"type": "replace"})

    assert excinfo.value.reason == "invalid_payload"


def test_apply_replace_keeps_original_numbering_across_batch() -> None:
    patches = [
        PatchOperation("replace", 1, 2, "ONE\nONE-B"),
        PatchOperation("replace", 3, 4, "THREE"),
    ]

    assert apply_line_patches(LINES, patches) == ["zero", "ONE", "ONE-B", "two", "THREE", "four"]


def test_apply_insert_and_delete() -> None:
    patches = [
        PatchOperation("delete", 0, 2),
        PatchOperation("insert", 5, 5, "five"),
    ]

    assert apply_line_patches(LINES, patches) == ["two", "three", "four", "five"]


def test_apply_does_not_mutate_input() -> None:
    lines = list(LINES)

    apply_line_patches(lines, [PatchOperation("replace", 0, 1, "ZERO")])

    assert lines == LINES


@pytest.mark.parametrize(
    ("patches", "reason"),
    [
        ([], "empty_patch_batch"),
        ([PatchOperation("rewrite", 0, 1, "x")], "invalid_opcode"),
        ([PatchOperation("replace", 3, 1, "x")], "invalid_range"),
        ([PatchOperation("replace", 4, 9, "x")], "range_overflow"),
        (
            [PatchOperation("replace", 0, 3, "x"), PatchOperation("delete", 2, 4)],
            "range_overlap",
        ),
    ],
)
def test_invalid_batches_are_rejected(patches, reason) -> None:
    with pytest.raises(PatchApplyError) as excinfo:
        apply_line_patches(LINES, patches)

    assert excinfo.value.reason == reason
    assert excinfo.value.details()["reason"] == reason
