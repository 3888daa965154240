"""
Tests for staging and archiving.

Tests:
- mimetype is the first, stored (uncompressed) entry
- Entry ordering and compression of the remaining files
- Atomic output and cleanup on failure
"""

import os
import zipfile
from pathlib import Path

import pytest

from epubpack.builders.epub import package_assembler
from epubpack.builders.epub.allocator import IdentifierAllocator
from epubpack.builders.epub.package_assembler import EpubPackageAssembler
from epubpack.builders.epub.resource_store import ResourceStore
from epubpack.models.domain import EpubComponents, RenderedDocument
from epubpack.shared.enums import ResourceKind
from epubpack.shared.exceptions import PackagingError, ResourceError
from epubpack.shared.settings import BuilderSettings

from .conftest import PNG_BYTES


@pytest.fixture
def components() -> EpubComponents:
    return EpubComponents(
        mimetype=b'application/epub+zip',
        container_xml=b'<container/>',
        package_opf=b'<package/>',
        nav_xhtml=b'<html/>',
        toc_ncx=b'<ncx/>',
        pages=(RenderedDocument(href='xhtml/section0001.xhtml', content=b'<html/>'),),
    )


@pytest.fixture
def resources() -> ResourceStore:
    store = ResourceStore(IdentifierAllocator())
    store.add(ResourceKind.IMAGE, PNG_BYTES, filename='pic.png')
    return store


@pytest.fixture
def assembler() -> EpubPackageAssembler:
    return EpubPackageAssembler(BuilderSettings())


def _leftovers(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir())


class TestArchiveLayout:
    def test_mimetype_is_first_and_stored(
        self, assembler, components, resources, tmp_path
    ):
        output = tmp_path / 'book.epub'

        assembler.assemble(components, resources, output)

        with zipfile.ZipFile(output) as zf:
            first = zf.infolist()[0]
            assert first.filename == 'mimetype'
            assert first.compress_type == zipfile.ZIP_STORED
            assert zf.read('mimetype') == b'application/epub+zip'

    def test_mimetype_bytes_at_fixed_offset(
        self, assembler, components, resources, tmp_path
    ):
        output = tmp_path / 'book.epub'

        assembler.assemble(components, resources, output)
        data = output.read_bytes()

        # 30 byte local file header, then the name, then the stored content
        assert data[:4] == b'PK\x03\x04'
        assert data[30:38] == b'mimetype'
        assert data[38:58] == b'application/epub+zip'

    def test_entry_order_and_compression(
        self, assembler, components, resources, tmp_path
    ):
        output = tmp_path / 'book.epub'

        assembler.assemble(components, resources, output)

        with zipfile.ZipFile(output) as zf:
            names = zf.namelist()
            rest = zf.infolist()[1:]

        assert names == [
            'mimetype',
            'META-INF/container.xml',
            'EPUB/images/pic.png',
            'EPUB/nav.xhtml',
            'EPUB/package.opf',
            'EPUB/toc.ncx',
            'EPUB/xhtml/section0001.xhtml',
        ]
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in rest)

    def test_output_directory_is_created(
        self, assembler, components, resources, tmp_path
    ):
        output = tmp_path / 'nested' / 'dir' / 'book.epub'

        assembler.assemble(components, resources, output)

        assert zipfile.is_zipfile(output)
        assert _leftovers(output.parent) == ['book.epub']

    def test_staging_directory_is_removed(self, components, resources, tmp_path):
        seen: list[Path] = []

        class RecordingAssembler(EpubPackageAssembler):
            def archive(self, staging_root: Path, output_path: Path) -> None:
                seen.append(staging_root)
                assert (staging_root / 'EPUB' / 'images' / 'pic.png').is_file()
                super().archive(staging_root, output_path)

        RecordingAssembler(BuilderSettings()).assemble(
            components, resources, tmp_path / 'book.epub'
        )

        assert len(seen) == 1
        assert not seen[0].exists()


class TestFailures:
    def test_resource_failure_leaves_no_output(self, assembler, components, tmp_path):
        store = ResourceStore(IdentifierAllocator())
        store.add(ResourceKind.IMAGE, tmp_path / 'missing.png')
        out_dir = tmp_path / 'out'
        out_dir.mkdir()

        with pytest.raises(ResourceError):
            assembler.assemble(components, store, out_dir / 'book.epub')

        assert _leftovers(out_dir) == []

    def test_replace_failure_removes_partial_file(
        self, assembler, components, resources, tmp_path, monkeypatch
    ):
        def broken_replace(src, dst):
            raise OSError('disk full')

        monkeypatch.setattr(package_assembler.os, 'replace', broken_replace)
        out_dir = tmp_path / 'out'

        with pytest.raises(PackagingError, match='disk full'):
            assembler.assemble(components, resources, out_dir / 'book.epub')

        assert _leftovers(out_dir) == []

    def test_output_file_permissions(
        self, assembler, components, resources, tmp_path
    ):
        output = tmp_path / 'book.epub'

        assembler.assemble(components, resources, output)

        if os.name == 'posix':
            assert output.stat().st_mode & 0o777 == 0o644
