import os
import tempfile
import zipfile
from pathlib import Path

from loguru import logger

from ...models.domain import EpubComponents
from ...shared.constants import EPUB_PATHS
from ...shared.exceptions import PackagingError
from ...shared.settings import BuilderSettings
from .resource_store import ResourceStore


class EpubPackageAssembler:
    """EPUBコンポーネントを一時ディレクトリに展開し、ZIPファイルに梱包するクラス。"""

    def __init__(self, settings: BuilderSettings):
        self.settings = settings

    def assemble(
        self,
        components: EpubComponents,
        resources: ResourceStore,
        output_path: Path,
    ) -> None:
        """ステージングからアーカイブ書き込みまでを行います。一時領域は必ず削除されます。"""
        with tempfile.TemporaryDirectory(prefix='epubpack_') as tmp_dir:
            staging_root = Path(tmp_dir)
            logger.bind(staging_root=str(staging_root)).debug(
                'ステージング領域を作成しました。'
            )
            self.stage(staging_root, components, resources)
            self.archive(staging_root, output_path)

    def stage(
        self,
        staging_root: Path,
        components: EpubComponents,
        resources: ResourceStore,
    ) -> None:
        """最終的なパッケージ構造と同じディレクトリツリーを作成します。"""
        content_root = staging_root / EPUB_PATHS.CONTENT_DIR
        files = {
            staging_root / EPUB_PATHS.MIMETYPE_FILE_NAME: components.mimetype,
            staging_root / EPUB_PATHS.container_path: components.container_xml,
            content_root / EPUB_PATHS.PACKAGE_FILE_NAME: components.package_opf,
            content_root / EPUB_PATHS.NAV_FILE_NAME: components.nav_xhtml,
            content_root / EPUB_PATHS.NCX_FILE_NAME: components.toc_ncx,
        }
        for page in components.pages:
            files[content_root / page.href] = page.content

        try:
            for path, content in files.items():
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
            resources.write_to(content_root)
        except OSError as e:
            raise PackagingError(f'ステージング領域への書き込みに失敗しました: {e}') from e

    def archive(self, staging_root: Path, output_path: Path) -> None:
        """
        ステージング済みのツリーをZIPに書き出します。

        mimetype は必ず最初のエントリかつ無圧縮で格納します。
        一時ファイルに書き込んでから置き換えるため、出力先に不完全なファイルは現れません。
        """
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f'.{output_path.name}.', suffix='.part', dir=output_path.parent
            )
            os.close(fd)
        except OSError as e:
            raise PackagingError(f'出力先を準備できませんでした: {e}') from e

        tmp_path = Path(tmp_name)
        try:
            with zipfile.ZipFile(tmp_path, 'w') as zip_file:
                zip_file.write(
                    staging_root / EPUB_PATHS.MIMETYPE_FILE_NAME,
                    EPUB_PATHS.MIMETYPE_FILE_NAME,
                    compress_type=zipfile.ZIP_STORED,
                )
                entries = self._ordered_entries(staging_root)
                for file_path in entries:
                    zip_file.write(
                        file_path,
                        file_path.relative_to(staging_root).as_posix(),
                        compress_type=zipfile.ZIP_DEFLATED,
                        compresslevel=self.settings.compression_level,
                    )
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, output_path)
        except (OSError, zipfile.LargeZipFile) as e:
            tmp_path.unlink(missing_ok=True)
            raise PackagingError(f'アーカイブの書き込みに失敗しました: {e}') from e

        logger.bind(entries=len(entries) + 1).debug(f'EPUB を生成しました: {output_path}')

    @staticmethod
    def _ordered_entries(staging_root: Path) -> list[Path]:
        """mimetype 以外のファイルを META-INF、コンテンツフォルダの順に並べます。"""
        mimetype_path = staging_root / EPUB_PATHS.MIMETYPE_FILE_NAME
        files = [
            p for p in staging_root.rglob('*') if p.is_file() and p != mimetype_path
        ]

        def sort_key(path: Path) -> tuple[int, str]:
            relative = path.relative_to(staging_root).as_posix()
            return (0 if relative.startswith(f'{EPUB_PATHS.META_INF_DIR}/') else 1, relative)

        return sorted(files, key=sort_key)
