"""File IO helpers used by the local line source."""

from __future__ import annotations

import codecs
import itertools
import locale
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "TextDocument",
    "read_document",
    "read_line_window",
    "write_text",
    "write_document",
    "split_lines",
    "detect_newline",
]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    # UTF-32 first: the UTF-32-LE BOM begins with the UTF-16-LE one.
    codecs.BOM_UTF32_LE: "utf-32-le",
    codecs.BOM_UTF32_BE: "utf-32-be",
    codecs.BOM_UTF16_LE: "utf-16-le",
    codecs.BOM_UTF16_BE: "utf-16-be",
}

# Codecs that consume a leading BOM while decoding a stream.
_BOM_STREAM_CODECS: dict[str, str] = {
    "utf-32-le": "utf-32",
    "utf-32-be": "utf-32",
    "utf-16-le": "utf-16",
    "utf-16-be": "utf-16",
}

_SNIFF_BYTES = 64 * 1024


@dataclass(slots=True)
class TextDocument:
    """A text file split into lines plus what is needed to write it back."""

    lines: list[str]
    encoding: str = "utf-8"
    newline: str = "\n"
    trailing_newline: bool = False
    bom: bool = False

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def render(self) -> str:
        body = "\n".join(self.lines)
        if self.trailing_newline and self.lines:
            body += "\n"
        return body


def read_document(path: Path | str, *, encoding: str | None = None) -> TextDocument:
    """Read ``path`` into a :class:`TextDocument`, remembering its newline style."""

    target = Path(path)
    raw = target.read_bytes()
    detected_encoding = encoding or _detect_encoding(raw)
    text = _strip_bom(raw.decode(detected_encoding))
    newline = detect_newline(text)
    lines, trailing = split_lines(_normalize_newlines(text))
    return TextDocument(
        lines=lines,
        encoding=detected_encoding,
        newline=newline,
        trailing_newline=trailing,
        bom=detected_encoding in _BOM_MAP.values(),
    )


def read_line_window(
    path: Path | str, start: int, end: int, *, encoding: str | None = None
) -> tuple[list[str], int]:
    """Return lines ``[start, end)`` of ``path`` together with its line count.

    The file is streamed rather than loaded, so memory follows the window
    size. Lines are split and stripped exactly as :func:`read_document` does.
    """

    target = Path(path)
    start = max(0, start)
    end = max(start, end)
    detected = encoding or _sniff_encoding(target)
    try:
        return _scan_window(target, detected, start, end)
    except UnicodeDecodeError:
        if encoding is not None or detected == "latin-1":
            raise
        # An undecodable byte past the sniffed prefix.
        return _scan_window(target, "latin-1", start, end)


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
    atomic: bool = True,
) -> Path:
    """Write text to disk using atomic semantics and configurable newline style."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    normalized = _apply_newline_policy(content, newline)
    if not atomic:
        with target.open("w", encoding=encoding, newline="") as handle:
            handle.write(normalized)
            handle.flush()
            os.fsync(handle.fileno())
        return target

    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(normalized)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def write_document(path: Path | str, document: TextDocument) -> Path:
    """Atomically write ``document`` back using its encoding and newline style."""

    body = document.render()
    # The utf-8-sig codec writes its own BOM; the fixed-endian UTF-16/32 codecs do not.
    if document.bom and document.encoding != "utf-8-sig":
        body = "\ufeff" + body
    return write_text(path, body, encoding=document.encoding, newline=document.newline)


def split_lines(text: str) -> tuple[list[str], bool]:
    """Split normalized ``text`` into lines and report a trailing newline.

    An empty string has no lines; ``"a\\n"`` has one line and a trailing newline.
    """

    if not text:
        return [], False
    trailing = text.endswith("\n")
    body = text[:-1] if trailing else text
    return body.split("\n"), trailing


def detect_newline(text: str) -> str:
    if "\r\n" in text:
        return "\r\n"
    if "\n" in text:
        return "\n"
    if "\r" in text:
        return "\r"
    return "\n"


def _detect_encoding(raw: bytes, *, final: bool = True) -> str:
    for bom, encoding in _BOM_MAP.items():
        if raw.startswith(bom):
            return encoding

    preferred = locale.getpreferredencoding(False) or "utf-8"
    seen: set[str] = set()
    for candidate in ("utf-8", preferred, "latin-1"):
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        try:
            codecs.getincrementaldecoder(candidate)().decode(raw, final)
            return candidate
        except UnicodeDecodeError:
            continue
    return "utf-8"


def _sniff_encoding(target: Path) -> str:
    with target.open("rb") as handle:
        sample = handle.read(_SNIFF_BYTES)
    return _detect_encoding(sample, final=len(sample) < _SNIFF_BYTES)


def _scan_window(target: Path, encoding: str, start: int, end: int) -> tuple[list[str], int]:
    codec = _BOM_STREAM_CODECS.get(encoding, encoding)
    with target.open("r", encoding=codec, newline=None) as handle:
        skipped = sum(1 for _ in itertools.islice(handle, start))
        window = [line.rstrip("\n") for line in itertools.islice(handle, end - start)]
        remaining = sum(1 for _ in handle)
    return window, skipped + len(window) + remaining


def _normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    text = text.replace("\r\n", "\n")
    return text.replace("\r", "\n")


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith("\ufeff") else text


def _apply_newline_policy(content: str, newline: str) -> str:
    normalized = _normalize_newlines(content)
    if newline == "\n":
        return normalized
    if newline == "\r\n":
        return normalized.replace("\n", "\r\n")
    if newline == "\r":
        return normalized.replace("\n", "\r")
    raise ValueError(f"Unsupported newline policy: {newline!r}")
