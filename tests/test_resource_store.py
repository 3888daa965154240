"""
Tests for the resource store.

Tests:
- Source kinds (bytes, stream, path, URL)
- Media type resolution
- De-duplication of identical sources
- Lazy loading and failure attribution
"""

import io
from pathlib import Path

import pytest
import requests

from epubpack.builders.epub.allocator import IdentifierAllocator
from epubpack.builders.epub.resource_store import ResourceStore
from epubpack.shared.enums import ResourceKind
from epubpack.shared.exceptions import (
    ConfigurationError,
    FilenameAlreadyUsedError,
    ResourceError,
)

from .conftest import JPEG_BYTES, PNG_BYTES


@pytest.fixture
def store() -> ResourceStore:
    return ResourceStore(IdentifierAllocator(), fetch_timeout=5.0)


class _FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error', response=self)


class TestSources:
    def test_bytes_with_filename(self, store: ResourceStore):
        resource = store.add(ResourceKind.IMAGE, PNG_BYTES, filename='cover.png')

        assert resource.href == 'images/cover.png'
        assert resource.handle == '../images/cover.png'
        assert resource.media_type == 'image/png'
        assert store.load(resource) == PNG_BYTES

    def test_bytes_with_media_type_only(self, store: ResourceStore):
        resource = store.add(ResourceKind.IMAGE, JPEG_BYTES, media_type='image/jpeg')

        assert resource.href == 'images/image0001.jpg'

    def test_bytes_without_any_type_information(self, store: ResourceStore):
        with pytest.raises(ResourceError, match='media_type'):
            store.add(ResourceKind.IMAGE, PNG_BYTES)

    def test_stream_is_read_immediately(self, store: ResourceStore):
        stream = io.BytesIO(PNG_BYTES)

        resource = store.add(ResourceKind.IMAGE, stream, filename='s.png')
        stream.close()

        assert store.load(resource) == PNG_BYTES

    def test_text_stream_is_encoded_as_utf8(self, store: ResourceStore):
        resource = store.add(
            ResourceKind.CSS, io.StringIO('p { content: "é"; }'), filename='a.css'
        )

        assert store.load(resource) == 'p { content: "é"; }'.encode('utf-8')

    def test_path_keeps_extension(self, store: ResourceStore, image_file: Path):
        resource = store.add(ResourceKind.IMAGE, image_file)

        assert resource.href == 'images/image0001.png'
        assert resource.path == image_file
        assert resource.content is None

    def test_path_is_read_at_staging_time(self, store: ResourceStore, tmp_path: Path):
        css_file = tmp_path / 'late.css'
        resource = store.add(ResourceKind.CSS, css_file)
        css_file.write_text('body {}', encoding='utf-8')

        store.write_to(tmp_path / 'staging')

        assert (tmp_path / 'staging' / resource.href).read_text() == 'body {}'

    def test_url_is_fetched_at_staging_time(
        self, store: ResourceStore, monkeypatch: pytest.MonkeyPatch
    ):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return _FakeResponse(PNG_BYTES)

        monkeypatch.setattr(requests, 'get', fake_get)
        resource = store.add(ResourceKind.IMAGE, 'https://example.com/img/pic.png')

        assert calls == []
        assert resource.href == 'images/image0001.png'
        assert store.load(resource) == PNG_BYTES
        assert calls == [('https://example.com/img/pic.png', 5.0)]

    def test_unsupported_source_type(self, store: ResourceStore):
        with pytest.raises(ResourceError):
            store.add(ResourceKind.IMAGE, 12345)  # type: ignore[arg-type]

    def test_section_kind_is_not_a_resource(self, store: ResourceStore):
        with pytest.raises(ConfigurationError):
            store.add(ResourceKind.SECTION, b'<p/>', media_type='application/xhtml+xml')


class TestMediaTypes:
    def test_explicit_media_type_is_kept_verbatim(self, store: ResourceStore):
        resource = store.add(
            ResourceKind.FONT, b'\x00\x01', filename='f.bin', media_type='font/otf'
        )

        assert resource.media_type == 'font/otf'

    def test_empty_media_type_is_rejected(self, store: ResourceStore):
        with pytest.raises(ResourceError):
            store.add(ResourceKind.IMAGE, PNG_BYTES, filename='a.png', media_type=' ')

    def test_unknown_extension_without_media_type(self, store: ResourceStore):
        with pytest.raises(ResourceError):
            store.add(ResourceKind.IMAGE, PNG_BYTES, filename='a.bmp-ish')

    def test_path_name_is_used_when_filename_has_no_extension(
        self, store: ResourceStore, image_file: Path
    ):
        resource = store.add(ResourceKind.IMAGE, image_file, filename='cover')

        assert resource.media_type == 'image/png'
        assert resource.href == 'images/cover'

    def test_url_name_is_used_when_filename_has_no_extension(
        self, store: ResourceStore
    ):
        resource = store.add(
            ResourceKind.IMAGE, 'https://example.com/img/pic.jpg?size=2', filename='pic'
        )

        assert resource.media_type == 'image/jpeg'

    def test_filename_extension_wins_over_source_name(
        self, store: ResourceStore, image_file: Path
    ):
        resource = store.add(ResourceKind.IMAGE, image_file, filename='photo.jpg')

        assert resource.media_type == 'image/jpeg'


class TestDeduplication:
    def test_same_bytes_return_same_entry(self, store: ResourceStore):
        first = store.add(ResourceKind.IMAGE, PNG_BYTES, media_type='image/png')
        second = store.add(ResourceKind.IMAGE, PNG_BYTES, media_type='image/png')

        assert first is second
        assert len(store) == 1

    def test_same_path_return_same_entry(self, store: ResourceStore, image_file: Path):
        first = store.add(ResourceKind.IMAGE, image_file)
        second = store.add(ResourceKind.IMAGE, str(image_file))

        assert first.handle == second.handle
        assert len(store) == 1

    def test_different_bytes_get_different_entries(self, store: ResourceStore):
        first = store.add(ResourceKind.IMAGE, PNG_BYTES, media_type='image/png')
        second = store.add(ResourceKind.IMAGE, JPEG_BYTES, media_type='image/jpeg')

        assert first.id != second.id
        assert first.href != second.href

    def test_explicit_names_allocate_separately(self, store: ResourceStore):
        first = store.add(ResourceKind.IMAGE, PNG_BYTES, filename='a.png')
        second = store.add(ResourceKind.IMAGE, PNG_BYTES, filename='b.png')

        assert [first.href, second.href] == ['images/a.png', 'images/b.png']

    def test_duplicate_explicit_name_for_new_content(self, store: ResourceStore):
        store.add(ResourceKind.IMAGE, PNG_BYTES, filename='a.png')

        with pytest.raises(FilenameAlreadyUsedError):
            store.add(ResourceKind.IMAGE, JPEG_BYTES, filename='a.png')

    def test_conflicting_media_type_on_re_add(self, store: ResourceStore):
        store.add(ResourceKind.FONT, b'\x00\x01', filename='f.bin', media_type='font/otf')

        with pytest.raises(ResourceError, match='font/ttf'):
            store.add(
                ResourceKind.FONT, b'\x00\x01', filename='f.bin', media_type='font/ttf'
            )

    def test_re_add_with_same_or_no_media_type(self, store: ResourceStore):
        first = store.add(
            ResourceKind.FONT, b'\x00\x01', filename='f.bin', media_type='font/otf'
        )

        assert store.add(
            ResourceKind.FONT, b'\x00\x01', filename='f.bin', media_type='font/otf'
        ) is first
        assert store.add(ResourceKind.FONT, b'\x00\x01', filename='f.bin') is first
        assert len(store) == 1


class TestLookupAndStaging:
    def test_find_by_handle_or_href(self, store: ResourceStore):
        resource = store.add(ResourceKind.CSS, b'p {}', filename='main.css')

        assert store.find('../css/main.css') is resource
        assert store.find('css/main.css', ResourceKind.CSS) is resource
        assert store.find('../css/main.css', ResourceKind.IMAGE) is None
        assert store.find('../css/other.css') is None

    def test_missing_path_is_attributed_to_add_call(
        self, store: ResourceStore, tmp_path: Path
    ):
        missing = tmp_path / 'nope.png'
        store.add(ResourceKind.IMAGE, missing)

        with pytest.raises(ResourceError) as exc_info:
            store.write_to(tmp_path / 'staging')

        assert exc_info.value.source == f"add_image('{missing}')"

    def test_failed_fetch_is_attributed_to_add_call(
        self, store: ResourceStore, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ):
        monkeypatch.setattr(
            requests, 'get', lambda url, timeout: _FakeResponse(b'', status_code=404)
        )
        store.add(ResourceKind.IMAGE, 'https://example.com/missing.png')

        with pytest.raises(ResourceError) as exc_info:
            store.write_to(tmp_path / 'staging')

        assert 'https://example.com/missing.png' in exc_info.value.source

    def test_write_to_places_files_at_allocated_paths(
        self, store: ResourceStore, tmp_path: Path
    ):
        image = store.add(ResourceKind.IMAGE, PNG_BYTES, filename='a.png')
        css = store.add_generated(ResourceKind.CSS, b'body {}', 'text/css', 'cover.css')

        store.write_to(tmp_path)

        assert (tmp_path / image.href).read_bytes() == PNG_BYTES
        assert (tmp_path / css.href).read_bytes() == b'body {}'
        assert css.href == 'css/css0001.css'
