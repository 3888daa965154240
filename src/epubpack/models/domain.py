# FILE: src/epubpack/models/domain.py
"""
EPUBパッケージ組み立ての中心となるデータモデルを定義します。
レンダラーは凍結された PackageSnapshot のみを入力とします。
"""

from pydantic import BaseModel, ConfigDict

from ..shared.enums import PageProgression, ResourceKind


class Allocation(BaseModel, frozen=True):
    """アロケータが払い出したマニフェストIDと内部パスの組。"""

    kind: ResourceKind
    id: str
    href: str  # コンテンツフォルダからの相対パス (例: "images/image0001.png")


class ManifestItem(BaseModel, frozen=True):
    """package.opf の <item> 要素1つ分の情報。"""

    id: str
    href: str
    media_type: str
    kind: ResourceKind
    properties: str | None = None


class SpineItemRef(BaseModel, frozen=True):
    idref: str
    linear: bool = True


class NavPoint(BaseModel, frozen=True):
    """目次の1項目。children はセクションツリーの入れ子をそのまま反映します。"""

    label: str
    href: str
    children: tuple['NavPoint', ...] = ()


class SectionDocument(BaseModel, frozen=True):
    """XHTMLとして出力される本文ページ。"""

    id: str
    href: str
    title: str | None
    body: str
    css_href: str | None = None  # ページからの相対パス (例: "../css/css0001.css")


class CoverPage(BaseModel, frozen=True):
    """set_cover から生成される表紙ページ。"""

    id: str
    href: str
    image_href: str
    css_href: str


class BookMetadata(BaseModel, frozen=True):
    identifier: str
    title: str
    language: str
    modified: str  # ISO-8601 UTC (例: "2016-04-28T19:09:26Z")
    author: str | None = None
    description: str | None = None
    page_progression: PageProgression | None = None


class PackageSnapshot(BaseModel):
    """凍結された書籍の状態。レンダラーはこれ以外の状態を参照しません。"""

    model_config = ConfigDict(frozen=True)

    metadata: BookMetadata
    manifest: tuple[ManifestItem, ...]
    spine: tuple[SpineItemRef, ...]
    navigation: tuple[NavPoint, ...]
    sections: tuple[SectionDocument, ...]
    cover: CoverPage | None = None

    def items_of_kind(self, kind: ResourceKind) -> list[ManifestItem]:
        return [item for item in self.manifest if item.kind == kind]


class RenderedDocument(BaseModel, frozen=True):
    """レンダリング済みのページ。href はコンテンツフォルダからの相対パス。"""

    href: str
    content: bytes


class EpubComponents(BaseModel):
    """EPUBファイルを生成するために必要な全ての生成物をまとめます。"""

    model_config = ConfigDict(frozen=True)

    mimetype: bytes
    container_xml: bytes
    package_opf: bytes
    nav_xhtml: bytes
    toc_ncx: bytes
    pages: tuple[RenderedDocument, ...]
