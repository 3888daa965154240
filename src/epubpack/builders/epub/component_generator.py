from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from loguru import logger

from ...models.domain import (
    CoverPage,
    EpubComponents,
    PackageSnapshot,
    RenderedDocument,
    SectionDocument,
)
from ...models.structure import flatten_navigation
from ...shared.constants import (
    CREATOR_ID,
    EPUB_PATHS,
    MIME_TYPES,
    NAMESPACES,
    PUB_ID,
    TEMPLATE_NAMES,
    TEMPLATE_ROOT,
)
from ...shared.enums import ResourceKind
from ...shared.exceptions import RenderError, UnsupportedMediaTypeError
from ...utils.media_types import is_supported_media_type


def create_template_env() -> Environment:
    """既定テンプレートディレクトリを読み込む Jinja2 環境を生成します。"""
    if not TEMPLATE_ROOT.is_dir():
        raise RenderError(
            f'デフォルトのテンプレートディレクトリが見つかりません: {TEMPLATE_ROOT}'
        )
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_ROOT)),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )
    env.globals['namespaces'] = NAMESPACES
    return env


class EpubComponentGenerator:
    """
    凍結されたスナップショットからEPUBの構成文書を生成するクラス。

    入力はスナップショットのみで、同じスナップショットからは常に
    バイト単位で同一の出力が得られます。
    """

    def __init__(self, template_env: Environment | None = None):
        self.template_env = template_env or create_template_env()

    def generate_components(self, snapshot: PackageSnapshot) -> EpubComponents:
        """EPUBの全構成要素を生成し、EpubComponentsオブジェクトとして返します。"""
        self._verify_media_types(snapshot)
        self._verify_reading_order(snapshot)

        pages = [self._generate_section(doc, snapshot) for doc in snapshot.sections]
        if snapshot.cover:
            pages.insert(0, self._generate_cover_page(snapshot.cover, snapshot))

        logger.bind(pages=len(pages)).debug('EPUBの構成文書を生成しました。')
        return EpubComponents(
            mimetype=MIME_TYPES.EPUB.encode('ascii'),
            container_xml=self.generate_container(),
            package_opf=self.generate_package_document(snapshot),
            nav_xhtml=self.generate_nav(snapshot),
            toc_ncx=self.generate_ncx(snapshot),
            pages=tuple(pages),
        )

    def _render_template(self, template_name: str, context: dict[str, Any]) -> bytes:
        template = self.template_env.get_template(template_name)
        rendered_str = template.render(context)
        return rendered_str.encode('utf-8')

    def generate_container(self) -> bytes:
        """META-INF/container.xml を生成します。変わるのはパッケージ文書のパスのみです。"""
        return self._render_template(
            TEMPLATE_NAMES.CONTAINER,
            {
                'package_path': EPUB_PATHS.package_path,
                'package_media_type': MIME_TYPES.OEBPS_PACKAGE,
            },
        )

    def generate_package_document(self, snapshot: PackageSnapshot) -> bytes:
        """package.opf (メタデータ・マニフェスト・spine) を生成します。"""
        metadata = snapshot.metadata
        cover_items = [
            item for item in snapshot.manifest if item.properties == 'cover-image'
        ]
        ncx_items = snapshot.items_of_kind(ResourceKind.NCX)
        if len(ncx_items) != 1:
            raise RenderError(
                f'toc.ncx のマニフェスト項目が{len(ncx_items)}件あります。'
            )

        context = {
            'metadata': metadata,
            'pub_id': PUB_ID,
            'creator_id': CREATOR_ID,
            'manifest': snapshot.manifest,
            'spine': snapshot.spine,
            'ncx_id': ncx_items[0].id,
            'cover_image_id': cover_items[0].id if cover_items else None,
            'page_progression': (
                metadata.page_progression.value if metadata.page_progression else None
            ),
        }
        return self._render_template(TEMPLATE_NAMES.PACKAGE, context)

    def generate_nav(self, snapshot: PackageSnapshot) -> bytes:
        """nav.xhtml (目次) を生成します。セクションツリーの入れ子をそのまま反映します。"""
        context = {
            'title': snapshot.metadata.title,
            'language': snapshot.metadata.language,
            'navigation': snapshot.navigation,
        }
        return self._render_template(TEMPLATE_NAMES.NAV, context)

    def generate_ncx(self, snapshot: PackageSnapshot) -> bytes:
        """旧リーダー向けの toc.ncx を生成します。目次は平坦化されます。"""
        context = {
            'metadata': snapshot.metadata,
            'points': flatten_navigation(snapshot.navigation),
        }
        return self._render_template(TEMPLATE_NAMES.NCX, context)

    def _generate_section(
        self, doc: SectionDocument, snapshot: PackageSnapshot
    ) -> RenderedDocument:
        context = {
            'title': doc.title or snapshot.metadata.title,
            'language': snapshot.metadata.language,
            'css_href': doc.css_href,
            'body': doc.body,
        }
        return RenderedDocument(
            href=doc.href,
            content=self._render_template(TEMPLATE_NAMES.SECTION, context),
        )

    def _generate_cover_page(
        self, cover: CoverPage, snapshot: PackageSnapshot
    ) -> RenderedDocument:
        context = {
            'title': snapshot.metadata.title,
            'language': snapshot.metadata.language,
            'css_href': cover.css_href,
            'image_href': cover.image_href,
        }
        return RenderedDocument(
            href=cover.href,
            content=self._render_template(TEMPLATE_NAMES.COVER_PAGE, context),
        )

    @staticmethod
    def _verify_media_types(snapshot: PackageSnapshot) -> None:
        """埋め込みリソースのメディアタイプがEPUBで使用可能か検証します。"""
        for item in snapshot.manifest:
            if not item.kind.is_embedded:
                continue
            if not is_supported_media_type(item.kind, item.media_type):
                raise UnsupportedMediaTypeError(
                    f"メディアタイプ '{item.media_type}' は {item.kind.value} として"
                    'サポートされていません。',
                    source=item.href,
                )

    @staticmethod
    def _verify_reading_order(snapshot: PackageSnapshot) -> None:
        """spine と目次が同じセクション順序から導出されていることを確認します。"""
        manifest_ids = {item.id for item in snapshot.manifest}
        for ref in snapshot.spine:
            if ref.idref not in manifest_ids:
                raise RenderError(
                    f"spine が未登録のID '{ref.idref}' を参照しています。"
                )

        cover_id = snapshot.cover.id if snapshot.cover else None
        spine_ids = [ref.idref for ref in snapshot.spine if ref.idref != cover_id]
        section_ids = [doc.id for doc in snapshot.sections]
        if spine_ids != section_ids:
            raise RenderError('spine の順序がセクションの順序と一致しません。')

        section_hrefs = [doc.href for doc in snapshot.sections]
        nav_hrefs = [point.href for point in flatten_navigation(snapshot.navigation)]
        if nav_hrefs != section_hrefs:
            raise RenderError(
                f'目次の項目({len(nav_hrefs)}件)が spine の順序'
                f'({len(section_hrefs)}件)と一致しません。'
            )
