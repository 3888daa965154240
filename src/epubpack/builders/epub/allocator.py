from dataclasses import dataclass
from pathlib import PurePosixPath

from loguru import logger

from ...models.domain import Allocation
from ...shared.constants import EPUB_PATHS
from ...shared.enums import ResourceKind
from ...shared.exceptions import ConfigurationError, FilenameAlreadyUsedError
from ...utils.filesystem_sanitizer import sanitize_internal_filename, to_xml_id


@dataclass(frozen=True)
class _KindLayout:
    """種別ごとの配置ルール。"""

    prefix: str
    directory: str
    default_extension: str = ''
    fixed_name: str | None = None


_LAYOUTS: dict[ResourceKind, _KindLayout] = {
    ResourceKind.SECTION: _KindLayout('section', EPUB_PATHS.XHTML_DIR, '.xhtml'),
    ResourceKind.COVER: _KindLayout('cover', EPUB_PATHS.XHTML_DIR, '.xhtml'),
    ResourceKind.IMAGE: _KindLayout('image', EPUB_PATHS.IMAGES_DIR),
    ResourceKind.FONT: _KindLayout('font', EPUB_PATHS.FONTS_DIR),
    ResourceKind.CSS: _KindLayout('css', EPUB_PATHS.CSS_DIR, '.css'),
    ResourceKind.NAV: _KindLayout('nav', '', fixed_name=EPUB_PATHS.NAV_FILE_NAME),
    ResourceKind.NCX: _KindLayout('ncx', '', fixed_name=EPUB_PATHS.NCX_FILE_NAME),
}


class IdentifierAllocator:
    """
    マニフェストIDと内部パスを払い出すクラス。

    カウンタは種別ごとにこのインスタンスが保持するため、同じ入力順序であれば
    何度実行しても同じIDとパスが得られます。どの種別の呼び出しであっても、
    同じIDや同じパスが二度払い出されることはありません。
    """

    def __init__(self) -> None:
        self._counters: dict[ResourceKind, int] = {kind: 0 for kind in ResourceKind}
        self._ids: set[str] = set()
        self._hrefs: set[str] = set()
        # 呼び出し元が指定したファイル名 (正規化前)
        self._requested: set[str] = set()
        self._entries: list[Allocation] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def entries(self) -> tuple[Allocation, ...]:
        """払い出し順のアロケーション一覧。これがマニフェストの順序になります。"""
        return tuple(self._entries)

    def freeze(self) -> None:
        self._frozen = True

    def allocate(
        self,
        kind: ResourceKind,
        hint: str | None = None,
        filename: str | None = None,
    ) -> Allocation:
        """
        IDとパスを1組払い出します。

        Args:
            kind: リソースの種別。
            hint: 拡張子を決めるための元ファイル名 (例: "photo.JPG")。
            filename: 呼び出し元が明示したファイル名。正規化後の名前が既存のものと
                衝突した場合は "-2" などの番号が付きます。

        Raises:
            ConfigurationError: 凍結後に呼び出された場合や、ファイル名が不正な場合。
            FilenameAlreadyUsedError: 同じファイル名が既に明示されている場合。
        """
        if self._frozen:
            raise ConfigurationError(
                '書籍は既に確定しているため、新しいファイルを追加できません。'
            )

        layout = _LAYOUTS[kind]
        if layout.fixed_name:
            name = layout.fixed_name
            if self._join(layout, name) in self._hrefs:
                raise FilenameAlreadyUsedError(name)
            item_id = self._unique_id(layout.prefix)
        elif filename:
            requested = self._join(layout, self._requested_name(layout, filename))
            if requested in self._requested:
                raise FilenameAlreadyUsedError(filename)
            name = self._free_name(layout, self._explicit_name(layout, filename))
            self._requested.add(requested)
            item_id = self._unique_id(to_xml_id(name))
        else:
            name = self._generated_name(kind, layout, hint)
            item_id = self._unique_id(PurePosixPath(name).stem)

        allocation = Allocation(kind=kind, id=item_id, href=self._join(layout, name))
        self._ids.add(allocation.id)
        self._hrefs.add(allocation.href)
        self._entries.append(allocation)

        logger.bind(kind=kind.value, id=allocation.id, href=allocation.href).trace(
            'IDとパスを割り当てました。'
        )
        return allocation

    @staticmethod
    def _join(layout: _KindLayout, name: str) -> str:
        return f'{layout.directory}/{name}' if layout.directory else name

    @staticmethod
    def _requested_name(layout: _KindLayout, filename: str) -> str:
        name = PurePosixPath(filename.replace('\\', '/')).name.strip()
        if layout.default_extension and not PurePosixPath(name).suffix:
            name = f'{name}{layout.default_extension}'
        return name

    @staticmethod
    def _explicit_name(layout: _KindLayout, filename: str) -> str:
        name = sanitize_internal_filename(filename)
        if not name or name.strip('.') == '':
            raise ConfigurationError(f"ファイル名 '{filename}' は使用できません。")
        if layout.default_extension and not PurePosixPath(name).suffix:
            name = f'{name}{layout.default_extension}'
        return name

    def _free_name(self, layout: _KindLayout, name: str) -> str:
        """正規化後の名前だけが既存のものと衝突した場合は "-2" などの番号を付けます。"""
        path = PurePosixPath(name)
        candidate = name
        n = 1
        while self._join(layout, candidate) in self._hrefs:
            n += 1
            candidate = f'{path.stem}-{n}{path.suffix}'
        return candidate

    def _generated_name(
        self, kind: ResourceKind, layout: _KindLayout, hint: str | None
    ) -> str:
        extension = layout.default_extension
        if hint:
            suffix = PurePosixPath(sanitize_internal_filename(hint)).suffix.lower()
            if suffix:
                extension = suffix

        # 呼び出し元が同名のファイルを先に使っている場合は番号を進める
        while True:
            self._counters[kind] += 1
            name = f'{layout.prefix}{self._counters[kind]:04d}{extension}'
            if self._join(layout, name) not in self._hrefs:
                return name

    def _unique_id(self, base: str) -> str:
        candidate = base
        n = 1
        while candidate in self._ids:
            n += 1
            candidate = f'{base}-{n}'
        return candidate
