"""
Pytest configuration and global fixtures.
"""
import pytest

from helpers import MemoryStore, make_pdf

LETTER = (612.0, 792.0)
DOUBLE_LETTER = (1224.0, 1584.0)


@pytest.fixture
def three_page_pdf():
    """3 pages; page 2 is exactly twice the size of the canvas."""
    return make_pdf([LETTER, DOUBLE_LETTER, LETTER])


@pytest.fixture
def letter_pdf():
    """Single US Letter page."""
    return make_pdf([LETTER])


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def no_backoff(monkeypatch):
    """Make retry sleeps instant."""

    async def _instant(backoff, jitter=3.0):
        return backoff

    monkeypatch.setattr("pdf_highlight.api.backoff_sleep", _instant)
    monkeypatch.setattr("pdf_highlight.storage.backoff_sleep", _instant)
