"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from lineview.editor.content_engine import VirtualizedContent
from tests.helpers import FakeLineSource


@pytest.fixture
def source() -> FakeLineSource:
    return FakeLineSource(total=1000)


@pytest.fixture
def engine(source: FakeLineSource) -> VirtualizedContent:
    return VirtualizedContent(source, "big.txt", chunk_size=200, overscan=50)
