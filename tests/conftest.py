"""Pytest configuration and shared fixtures for epubpack tests."""

import zipfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from epubpack.epub import Epub
from epubpack.shared.settings import Settings

TEST_TITLE = 'My title'
TEST_AUTHOR = 'Hingle McCringleberry'
TEST_IDENTIFIER = 'urn:uuid:21ed94b4-f2ab-44c8-b99d-4f7792587ad6'
TEST_MODIFIED = datetime(2016, 4, 28, 19, 9, 26, tzinfo=timezone.utc)

# Smallest byte strings that carry the right signatures; contents are never decoded.
PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16
JPEG_BYTES = b'\xff\xd8\xff\xe0' + b'\x00' * 16


def squash_xml(text: str | bytes) -> str:
    """Strip indentation and line breaks so documents compare by content."""
    if isinstance(text, bytes):
        text = text.decode('utf-8')
    return ''.join(line.strip() for line in text.splitlines())


def read_entry(epub_path: Path, name: str) -> bytes:
    with zipfile.ZipFile(epub_path) as zf:
        return zf.read(name)


@pytest.fixture
def settings() -> Settings:
    """Settings pinned to defaults so environment variables cannot leak in."""
    return Settings(builder={'default_language': 'en'}, log_level='DEBUG')


@pytest.fixture
def book(settings: Settings) -> Epub:
    return Epub(TEST_TITLE, settings=settings)


@pytest.fixture
def output_path(tmp_path: Path) -> Path:
    return tmp_path / 'out' / 'My EPUB.epub'


@pytest.fixture
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / 'assets' / 'photo.png'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(PNG_BYTES)
    return path
