"""Tests for saving the edit overlay as a patch batch."""

from __future__ import annotations

import asyncio

import pytest

from lineview.editor.content_engine import VirtualizedContent
from lineview.editor.events import EditsChanged, EditsSaved, SaveFailed
from lineview.editor.patches import PatchOperation
from lineview.errors import ErrorCode, SaveError, SourceError
from tests.helpers import FakeLineSource, wait_for


@pytest.fixture
def small_source() -> FakeLineSource:
    return FakeLineSource([f"l{n}" for n in range(10)])


@pytest.fixture
def small_engine(small_source: FakeLineSource) -> VirtualizedContent:
    return VirtualizedContent(small_source, "notes.txt")


@pytest.mark.asyncio
async def test_save_sends_one_ordered_batch_of_replace_patches(small_engine, small_source) -> None:
    await small_engine.load_range(0, 10)
    small_engine.set_line_content(7, "Z")
    small_engine.set_line_content(2, "X")
    small_engine.set_line_content(3, "Y")

    await small_engine.save_edits()

    assert small_source.patch_calls == [
        (
            "notes.txt",
            [PatchOperation("replace", 2, 4, "X\nY"), PatchOperation("replace", 7, 8, "Z")],
        )
    ]
    assert small_source.lines[2:4] == ["X", "Y"]
    assert small_source.lines[7] == "Z"


@pytest.mark.asyncio
async def test_successful_save_folds_edits_into_the_store(small_engine) -> None:
    saved: list[EditsSaved] = []
    small_engine.events.subscribe(EditsSaved, saved.append)
    await small_engine.load_range(0, 10)
    small_engine.set_line_content(5, "five")

    await small_engine.save_edits()

    assert small_engine.edited_lines == {}
    assert not small_engine.has_unsaved_changes
    assert small_engine.lines[5].content == "five"
    assert small_engine.line_content(5) == "five"
    assert small_engine.total_lines == 10
    assert small_engine.error is None
    assert saved == [EditsSaved(path="notes.txt", patch_count=1, saved_lines=1, total_lines=10)]


@pytest.mark.asyncio
async def test_save_without_edits_is_a_no_op(small_engine, small_source) -> None:
    await small_engine.save_edits()

    assert small_source.patch_calls == []


@pytest.mark.asyncio
async def test_failed_save_keeps_overlay_and_reraises(small_engine, small_source) -> None:
    failures: list[SaveFailed] = []
    small_engine.events.subscribe(SaveFailed, failures.append)
    small_engine.set_line_content(1, "one")
    small_engine.set_line_content(2, "two")
    small_source.patch_error = SourceError(message="disk full")

    with pytest.raises(SaveError) as excinfo:
        await small_engine.save_edits()

    assert excinfo.value.code == ErrorCode.SAVE_FAILED
    assert excinfo.value.patch_count == 1
    assert excinfo.value.__cause__ is small_source.patch_error
    assert small_engine.edited_lines == {1: "one", 2: "two"}
    assert small_engine.error is excinfo.value
    assert not small_engine.is_saving
    assert len(failures) == 1


@pytest.mark.asyncio
async def test_rejected_batch_raises_and_keeps_overlay(small_engine, small_source) -> None:
    small_engine.set_line_content(4, "four")
    small_source.reject_patches = True

    with pytest.raises(SaveError) as excinfo:
        await small_engine.save_edits()

    assert excinfo.value.code == ErrorCode.SAVE_REJECTED
    assert small_engine.edited_lines == {4: "four"}
    assert small_source.lines[4] == "l4"


@pytest.mark.asyncio
async def test_save_can_be_retried_after_failure(small_engine, small_source) -> None:
    small_engine.set_line_content(0, "zero")
    small_source.patch_error = SourceError(message="flaky")
    with pytest.raises(SaveError):
        await small_engine.save_edits()

    small_source.patch_error = None
    await small_engine.save_edits()

    assert small_engine.edited_lines == {}
    assert small_engine.error is None
    assert small_source.lines[0] == "zero"


@pytest.mark.asyncio
async def test_edits_made_during_a_save_survive_it(small_engine, small_source) -> None:
    small_engine.set_line_content(2, "X")
    small_engine.set_line_content(3, "Y")
    small_source.patch_gate = asyncio.Event()

    task = asyncio.create_task(small_engine.save_edits())
    await wait_for(lambda: small_source.patch_calls)
    assert small_engine.is_saving

    small_engine.set_line_content(3, "Y2")
    small_engine.set_line_content(8, "new")
    small_source.patch_gate.set()
    await task

    assert small_engine.edited_lines == {3: "Y2", 8: "new"}
    assert small_engine.lines[2].content == "X"
    assert small_engine.line_content(3) == "Y2"
    assert not small_engine.is_saving


@pytest.mark.asyncio
async def test_disabled_engine_keeps_edits(small_source) -> None:
    engine = VirtualizedContent(small_source, "notes.txt", enabled=False)
    engine.set_line_content(1, "kept")

    await engine.save_edits()

    assert small_source.patch_calls == []
    assert engine.edited_lines == {1: "kept"}


@pytest.mark.asyncio
async def test_save_without_a_file_raises(small_source) -> None:
    engine = VirtualizedContent(small_source)
    engine.set_line_content(1, "orphan")

    with pytest.raises(SaveError):
        await engine.save_edits()

    assert engine.edited_lines == {1: "orphan"}
    assert small_source.patch_calls == []


@pytest.mark.asyncio
async def test_save_result_after_file_switch_leaves_new_file_alone(small_engine, small_source) -> None:
    small_engine.set_line_content(1, "old file edit")
    small_source.patch_gate = asyncio.Event()
    task = asyncio.create_task(small_engine.save_edits())
    await wait_for(lambda: small_source.patch_calls)

    small_engine.set_file("fresh.txt")
    small_engine.set_line_content(1, "new file edit")
    small_source.patch_gate.set()
    await task

    assert small_engine.edited_lines == {1: "new file edit"}
    assert small_engine.lines == {}


def test_edit_events_track_overlay_size(small_engine) -> None:
    changes: list[int] = []
    small_engine.events.subscribe(EditsChanged, lambda event: changes.append(event.edited_lines))

    small_engine.set_line_content(1, "a")
    small_engine.set_line_content(2, "b")
    small_engine.revert_line(1)
    small_engine.revert_line(99)
    small_engine.clear_edits()

    assert changes == [1, 2, 1, 0]
    assert small_engine.get_dirty_ranges() == []
