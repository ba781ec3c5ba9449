"""Shared fixtures for bootloader protocol tests."""

import pytest

from fakes import FakeBootloader, HEADER_LINE, row_line


@pytest.fixture
def bootloader() -> FakeBootloader:
    return FakeBootloader()


@pytest.fixture
def make_row_line():
    return row_line


@pytest.fixture
def header_line() -> str:
    return HEADER_LINE
