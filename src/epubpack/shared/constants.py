# src/epubpack/shared/constants.py
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final


# --- 1. Container Layout ---
@dataclass(frozen=True)
class EpubPaths:
    """
    EPUBコンテナ内のディレクトリ・ファイル構造を定義する。
    この配置はリーダーとの互換性に関わる契約であり、変更してはならない。
    """

    MIMETYPE_FILE_NAME: str = 'mimetype'
    META_INF_DIR: str = 'META-INF'
    CONTAINER_FILE_NAME: str = 'container.xml'
    CONTENT_DIR: str = 'EPUB'
    PACKAGE_FILE_NAME: str = 'package.opf'
    NAV_FILE_NAME: str = 'nav.xhtml'
    NCX_FILE_NAME: str = 'toc.ncx'

    XHTML_DIR: str = 'xhtml'
    IMAGES_DIR: str = 'images'
    FONTS_DIR: str = 'fonts'
    CSS_DIR: str = 'css'

    @property
    def container_path(self) -> str:
        return f'{self.META_INF_DIR}/{self.CONTAINER_FILE_NAME}'

    @property
    def package_path(self) -> str:
        """container.xml の rootfile が指すパッケージ文書のパス。"""
        return f'{self.CONTENT_DIR}/{self.PACKAGE_FILE_NAME}'


EPUB_PATHS: Final = EpubPaths()


# --- 2. Mime Types ---
@dataclass(frozen=True)
class MimeTypes:
    """
    MIMEタイプの中央定義
    """

    JPEG: str = 'image/jpeg'
    PNG: str = 'image/png'
    GIF: str = 'image/gif'
    SVG: str = 'image/svg+xml'
    WEBP: str = 'image/webp'
    TTF: str = 'font/ttf'
    OTF: str = 'font/otf'
    WOFF: str = 'font/woff'
    WOFF2: str = 'font/woff2'
    XHTML: str = 'application/xhtml+xml'
    CSS: str = 'text/css'
    NCX: str = 'application/x-dtbncx+xml'
    OEBPS_PACKAGE: str = 'application/oebps-package+xml'
    EPUB: str = 'application/epub+zip'
    OCTET_STREAM: str = 'application/octet-stream'


MIME_TYPES: Final = MimeTypes()


# --- 3. XML Namespaces ---
@dataclass(frozen=True)
class Namespaces:
    CONTAINER: str = 'urn:oasis:names:tc:opendocument:xmlns:container'
    OPF: str = 'http://www.idpf.org/2007/opf'
    DC: str = 'http://purl.org/dc/elements/1.1/'
    XHTML: str = 'http://www.w3.org/1999/xhtml'
    EPUB: str = 'http://www.idpf.org/2007/ops'
    NCX: str = 'http://www.daisy.org/z3986/2005/ncx/'


NAMESPACES: Final = Namespaces()


# --- 4. Templates ---
@dataclass(frozen=True)
class TemplateNames:
    """
    レンダラーが参照するテンプレートファイル名の定義。
    `component_generator.py` がこれを参照する。
    """

    CONTAINER: str = 'container.xml.j2'
    PACKAGE: str = 'package.opf.j2'
    NAV: str = 'nav.xhtml.j2'
    NCX: str = 'toc.ncx.j2'
    SECTION: str = 'section.xhtml.j2'
    COVER_PAGE: str = 'cover.xhtml.j2'
    COVER_CSS: str = 'cover.css'


TEMPLATE_NAMES: Final = TemplateNames()

TEMPLATE_ROOT: Final = Path(__file__).parent.parent / 'assets' / 'epub' / 'default'

# 作成者要素に付与するID (refines の参照先)
CREATOR_ID: Final = 'creator'
PUB_ID: Final = 'pub-id'

# リソースのソースとして扱う URL (http / https のみ)
URL_PATTERN: Final = re.compile(r'^https?://', re.IGNORECASE)
