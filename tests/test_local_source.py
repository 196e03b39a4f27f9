"""Tests for the filesystem-backed line source."""

from __future__ import annotations

import gc
from pathlib import Path

import pytest

from lineview.editor.content_engine import VirtualizedContent
from lineview.editor.patches import PatchOperation
from lineview.errors import ErrorCode, SourceError
from lineview.services.line_source import LineSource
from lineview.services.local_source import LocalFileLineSource
from lineview.utils import file_io


@pytest.fixture
def document(tmp_path: Path) -> Path:
    target = tmp_path / "doc.txt"
    target.write_text("alpha\nbeta\ngamma\n", encoding="utf-8")
    return target


def test_local_source_satisfies_protocol(tmp_path: Path) -> None:
    assert isinstance(LocalFileLineSource(tmp_path), LineSource)


@pytest.mark.asyncio
async def test_fetch_range_clamps_to_file(tmp_path: Path, document: Path) -> None:
    source = LocalFileLineSource(tmp_path)

    result = await source.fetch_range("doc.txt", 1, 10)

    assert (result.start_line, result.end_line, result.total_lines) == (1, 3, 3)
    assert result.lines == ("beta", "gamma")


@pytest.mark.asyncio
async def test_fetch_beyond_end_returns_no_lines(tmp_path: Path, document: Path) -> None:
    result = await LocalFileLineSource(tmp_path).fetch_range("doc.txt", 50, 60)

    assert result.lines == ()
    assert result.start_line == result.end_line == 3


@pytest.mark.asyncio
async def test_fetch_range_streams_without_loading_the_document(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "rows.txt").write_text("".join(f"row {n}\n" for n in range(1000)), encoding="utf-8")

    def refuse(*_args, **_kwargs):
        raise AssertionError("range fetch loaded the whole document")

    monkeypatch.setattr(file_io, "read_document", refuse)

    result = await LocalFileLineSource(tmp_path).fetch_range("rows.txt", 998, 1200)

    assert (result.start_line, result.end_line, result.total_lines) == (998, 1000, 1000)
    assert result.lines == ("row 998", "row 999")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (b"one\r\ntwo\r\nthree", ("two", "three")),
        (b"one\rtwo\rthree\r", ("two", "three")),
        ("\ufeffone\ntwo\nthree\n".encode("utf-16-le"), ("two", "three")),
        (b"\xef\xbb\xbfone\ntwo\nthree\n", ("two", "three")),
    ],
)
async def test_fetch_range_matches_document_lines(tmp_path: Path, raw: bytes, expected: tuple[str, ...]) -> None:
    target = tmp_path / "doc.txt"
    target.write_bytes(raw)

    result = await LocalFileLineSource(tmp_path).fetch_range("doc.txt", 1, 3)

    assert result.lines == expected
    assert result.total_lines == file_io.read_document(target).line_count == 3


@pytest.mark.asyncio
async def test_path_locks_are_released_after_saving(tmp_path: Path, document: Path) -> None:
    source = LocalFileLineSource(tmp_path)

    await source.apply_patches("doc.txt", [PatchOperation("replace", 0, 1, "ALPHA")])
    gc.collect()

    assert len(source._locks) == 0
    assert document.read_text(encoding="utf-8") == "ALPHA\nbeta\ngamma\n"


@pytest.mark.asyncio
async def test_apply_patches_rewrites_file(tmp_path: Path, document: Path) -> None:
    source = LocalFileLineSource(tmp_path)

    outcome = await source.apply_patches(
        "doc.txt",
        [PatchOperation("replace", 1, 2, "BETA\nBETA-2"), PatchOperation("delete", 2, 3)],
    )

    assert outcome.success
    assert outcome.total_lines == 3
    assert document.read_text(encoding="utf-8") == "alpha\nBETA\nBETA-2\n"


@pytest.mark.asyncio
async def test_apply_patches_preserves_crlf(tmp_path: Path) -> None:
    target = tmp_path / "windows.txt"
    target.write_bytes(b"one\r\ntwo\r\n")

    await LocalFileLineSource(tmp_path).apply_patches("windows.txt", [PatchOperation("replace", 0, 1, "ONE")])

    assert target.read_bytes() == b"ONE\r\ntwo\r\n"


@pytest.mark.asyncio
async def test_invalid_batch_is_reported_without_touching_file(tmp_path: Path, document: Path) -> None:
    source = LocalFileLineSource(tmp_path)

    outcome = await source.apply_patches(
        "doc.txt",
        [PatchOperation("replace", 0, 2, "x"), PatchOperation("replace", 1, 3, "y")],
    )

    assert not outcome.success
    assert outcome.total_lines == 3
    assert document.read_text(encoding="utf-8") == "alpha\nbeta\ngamma\n"


@pytest.mark.asyncio
async def test_insert_into_empty_file_adds_trailing_newline(tmp_path: Path) -> None:
    target = tmp_path / "empty.txt"
    target.write_text("", encoding="utf-8")

    outcome = await LocalFileLineSource(tmp_path).apply_patches("empty.txt", [PatchOperation("insert", 0, 0, "first")])

    assert outcome.total_lines == 1
    assert target.read_text(encoding="utf-8") == "first\n"


@pytest.mark.asyncio
async def test_paths_outside_root_are_refused(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")

    with pytest.raises(SourceError) as excinfo:
        await LocalFileLineSource(root).fetch_range("../secret.txt", 0, 1)

    assert excinfo.value.code == ErrorCode.PATH_OUTSIDE_ROOT


@pytest.mark.asyncio
async def test_missing_file_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(SourceError) as excinfo:
        await LocalFileLineSource(tmp_path).fetch_range("missing.txt", 0, 1)

    assert excinfo.value.code == ErrorCode.FILE_NOT_FOUND


@pytest.mark.asyncio
async def test_engine_round_trip_through_local_file(tmp_path: Path) -> None:
    target = tmp_path / "big.txt"
    target.write_text("".join(f"row {n}\n" for n in range(500)), encoding="utf-8")
    engine = VirtualizedContent(LocalFileLineSource(tmp_path), "big.txt", chunk_size=100)

    await engine.load_initial()
    engine.set_line_content(10, "changed")
    engine.set_line_content(11, "changed too")
    await engine.save_edits()

    lines = target.read_text(encoding="utf-8").splitlines()
    assert engine.total_lines == 500
    assert lines[10:12] == ["changed", "changed too"]
    assert lines[12] == "row 12"
    assert engine.edited_lines == {}
