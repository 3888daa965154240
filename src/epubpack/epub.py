# FILE: src/epubpack/epub.py
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from .builders.epub.allocator import IdentifierAllocator
from .builders.epub.builder import EpubBuilder
from .builders.epub.resource_store import (
    ResourceSource,
    ResourceStore,
    StoredResource,
)
from .models.domain import (
    Allocation,
    BookMetadata,
    CoverPage,
    ManifestItem,
    PackageSnapshot,
    SpineItemRef,
)
from .models.structure import Section, build_reading_order
from .shared.constants import MIME_TYPES, TEMPLATE_NAMES, TEMPLATE_ROOT
from .shared.enums import PageProgression, ResourceKind
from .shared.exceptions import ConfigurationError, RenderError, UnknownHandleError
from .shared.settings import Settings


class Epub:
    """
    書籍のメタデータ、セクションツリー、埋め込みリソースを保持するクラス。

    変更操作を重ねた後に write() で一度だけ書き出します。
    書き出し(または freeze)後の変更は ConfigurationError になります。
    """

    def __init__(self, title: str, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._title = self._require_text(title, 'タイトル')
        self._author: str | None = None
        self._language = self.settings.builder.default_language
        self._identifier = f'urn:uuid:{uuid.uuid4()}'
        self._description: str | None = None
        self._page_progression: PageProgression | None = None

        self._allocator = IdentifierAllocator()
        self._nav = self._allocator.allocate(ResourceKind.NAV)
        self._ncx = self._allocator.allocate(ResourceKind.NCX)
        self._store = ResourceStore(
            self._allocator, fetch_timeout=self.settings.builder.fetch_timeout
        )

        self._sections: list[Section] = []
        self._sections_by_handle: dict[str, Section] = {}
        self._cover_image: StoredResource | None = None
        self._cover_css: StoredResource | None = None

        self._snapshot: PackageSnapshot | None = None
        self._written = False

    # --- メタデータ ---

    @property
    def title(self) -> str:
        return self._title

    @property
    def author(self) -> str | None:
        return self._author

    @property
    def language(self) -> str:
        return self._language

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def description(self) -> str | None:
        return self._description

    @property
    def page_progression(self) -> PageProgression | None:
        return self._page_progression

    def set_title(self, title: str) -> None:
        self._ensure_mutable()
        self._title = self._require_text(title, 'タイトル')

    def set_author(self, author: str) -> None:
        self._ensure_mutable()
        self._author = author

    def set_language(self, language: str) -> None:
        self._ensure_mutable()
        self._language = self._require_text(language, '言語コード')

    def set_identifier(self, identifier: str) -> None:
        """一意識別子を設定します。通常は URN (例: "urn:isbn:...")。"""
        self._ensure_mutable()
        self._identifier = self._require_text(identifier, '識別子')

    def set_description(self, description: str) -> None:
        self._ensure_mutable()
        self._description = description

    def set_page_progression(self, direction: PageProgression | str) -> None:
        self._ensure_mutable()
        try:
            self._page_progression = PageProgression(direction)
        except ValueError as e:
            raise ConfigurationError(
                f"ページ送り方向 '{direction}' は不正です (ltr / rtl / default)。"
            ) from e

    # --- セクション ---

    def add_section(
        self,
        body: str,
        title: str | None = None,
        filename: str | None = None,
        css: str | None = None,
        parent: str | None = None,
    ) -> str:
        """
        セクションを追加し、そのハンドル(ファイル名)を返します。

        Args:
            body: XHTMLの<body>内に入る断片。内容は検証しません。
            title: 目次に表示するタイトル。省略時は目次に現れません。
            filename: 内部ファイル名。省略時は "section0001.xhtml" のように採番します。
            css: add_css() が返したハンドル。
            parent: 親セクションのハンドル。省略時は最上位に追加します。
        """
        self._ensure_mutable()
        parent_section = self._find_section(parent) if parent else None
        css_href = self._find_resource(css, ResourceKind.CSS).handle if css else None

        allocation = self._allocator.allocate(
            ResourceKind.SECTION, filename=filename
        )
        section = Section(
            id=allocation.id,
            href=allocation.href,
            body=body,
            title=title,
            css_href=css_href,
        )
        if parent_section:
            parent_section.children.append(section)
        else:
            self._sections.append(section)
        self._sections_by_handle[section.handle] = section

        logger.bind(href=section.href, parent=parent).debug('セクションを追加しました。')
        return section.handle

    def add_subsection(
        self,
        parent: str,
        body: str,
        title: str | None = None,
        filename: str | None = None,
        css: str | None = None,
    ) -> str:
        """parent の最後の子としてセクションを追加します。"""
        return self.add_section(body, title, filename=filename, css=css, parent=parent)

    # --- リソース ---

    def add_image(
        self,
        source: ResourceSource,
        filename: str | None = None,
        media_type: str | None = None,
    ) -> str:
        """画像を追加し、本文から参照するための相対パスを返します。"""
        return self._add_resource(ResourceKind.IMAGE, source, filename, media_type)

    def add_font(
        self,
        source: ResourceSource,
        filename: str | None = None,
        media_type: str | None = None,
    ) -> str:
        return self._add_resource(ResourceKind.FONT, source, filename, media_type)

    def add_css(
        self,
        source: ResourceSource,
        filename: str | None = None,
        media_type: str | None = None,
    ) -> str:
        return self._add_resource(ResourceKind.CSS, source, filename, media_type)

    def set_cover(self, image: str, css: str | None = None) -> None:
        """
        add_image() で追加した画像を表紙に指定します。
        表紙ページは書き出し時に生成され、css を省略すると既定のスタイルが使われます。
        """
        self._ensure_mutable()
        self._cover_image = self._find_resource(image, ResourceKind.IMAGE)
        self._cover_css = self._find_resource(css, ResourceKind.CSS) if css else None

    # --- 確定と書き出し ---

    def freeze(self, now: datetime | None = None) -> PackageSnapshot:
        """
        IDとパスの割り当てを確定し、レンダリングの入力となるスナップショットを返します。
        二度目以降の呼び出しは同じスナップショットを返します。
        """
        if self._snapshot is not None:
            return self._snapshot

        cover_page = self._allocate_cover_page() if self._cover_image else None
        self._allocator.freeze()

        order = build_reading_order(self._sections)
        spine = order.spine
        if cover_page:
            spine = (SpineItemRef(idref=cover_page.id, linear=False), *spine)

        timestamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        metadata = BookMetadata(
            identifier=self._identifier,
            title=self._title,
            language=self._language,
            modified=timestamp.strftime('%Y-%m-%dT%H:%M:%SZ'),
            author=self._author or None,
            description=self._description or None,
            page_progression=self._page_progression,
        )

        self._snapshot = PackageSnapshot(
            metadata=metadata,
            manifest=tuple(
                self._manifest_item(allocation)
                for allocation in self._allocator.entries
            ),
            spine=spine,
            navigation=order.navigation,
            sections=order.documents,
            cover=cover_page,
        )
        logger.bind(
            identifier=self._identifier,
            manifest_items=len(self._snapshot.manifest),
            spine_items=len(self._snapshot.spine),
        ).debug('書籍の構成を確定しました。')
        return self._snapshot

    def write(self, output_path: str | os.PathLike) -> Path:
        """
        EPUBファイルを書き出します。失敗した場合、出力先にファイルは残りません。
        書き出しは一度だけ行えます。
        """
        if self._written:
            raise ConfigurationError('この書籍は既に書き出されています。')
        self._written = True

        snapshot = self.freeze()
        builder = EpubBuilder(self.settings)
        return builder.build(snapshot, self._store, Path(output_path))

    # --- 内部処理 ---

    def _add_resource(
        self,
        kind: ResourceKind,
        source: ResourceSource,
        filename: str | None,
        media_type: str | None,
    ) -> str:
        self._ensure_mutable()
        return self._store.add(
            kind, source, media_type=media_type, filename=filename
        ).handle

    def _allocate_cover_page(self) -> CoverPage:
        assert self._cover_image is not None
        css = self._cover_css
        if css is None:
            css = self._store.add_generated(
                ResourceKind.CSS,
                self._default_cover_css(),
                MIME_TYPES.CSS,
                hint=TEMPLATE_NAMES.COVER_CSS,
            )
        page = self._allocator.allocate(ResourceKind.COVER)
        return CoverPage(
            id=page.id,
            href=page.href,
            image_href=self._cover_image.handle,
            css_href=css.handle,
        )

    @staticmethod
    def _default_cover_css() -> bytes:
        css_path = TEMPLATE_ROOT / TEMPLATE_NAMES.COVER_CSS
        try:
            return css_path.read_bytes()
        except OSError as e:
            raise RenderError(
                f'既定の表紙スタイルシートが見つかりません: {css_path}'
            ) from e

    def _manifest_item(self, allocation: Allocation) -> ManifestItem:
        kind = allocation.kind
        properties = None
        if kind == ResourceKind.NAV:
            media_type = MIME_TYPES.XHTML
            properties = 'nav'
        elif kind == ResourceKind.NCX:
            media_type = MIME_TYPES.NCX
        elif kind in (ResourceKind.SECTION, ResourceKind.COVER):
            media_type = MIME_TYPES.XHTML
        else:
            resource = self._store.find(allocation.href, kind)
            if resource is None:
                raise RenderError(
                    f"割り当て済みのリソース '{allocation.href}' がストアに存在しません。"
                )
            media_type = resource.media_type
            if self._cover_image and resource.id == self._cover_image.id:
                properties = 'cover-image'

        return ManifestItem(
            id=allocation.id,
            href=allocation.href,
            media_type=media_type,
            kind=kind,
            properties=properties,
        )

    def _find_section(self, handle: str) -> Section:
        section = self._sections_by_handle.get(handle)
        if section is None:
            raise UnknownHandleError(handle, 'section')
        return section

    def _find_resource(self, handle: str, kind: ResourceKind) -> StoredResource:
        resource = self._store.find(handle, kind)
        if resource is None:
            raise UnknownHandleError(handle, kind.value)
        return resource

    def _ensure_mutable(self) -> None:
        if self._snapshot is not None:
            raise ConfigurationError(
                '書籍は既に確定しているため変更できません。'
            )

    @staticmethod
    def _require_text(value: str, label: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(f'{label}に空の値は指定できません。')
        return value
