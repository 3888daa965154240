import os
from pathlib import Path

from jinja2 import TemplateError
from loguru import logger

from ...models.domain import PackageSnapshot
from ...shared.exceptions import EpubPackError, PackagingError, RenderError
from ...shared.settings import Settings
from ..base import BaseBuilder
from .component_generator import EpubComponentGenerator
from .package_assembler import EpubPackageAssembler
from .resource_store import ResourceStore


class EpubBuilder(BaseBuilder):
    """EPUB生成プロセス(レンダリングと梱包)を統括するクラス。"""

    def __init__(
        self,
        settings: Settings,
        generator: EpubComponentGenerator | None = None,
    ):
        super().__init__(settings)
        self.generator = generator or EpubComponentGenerator()
        self.assembler = EpubPackageAssembler(self.settings.builder)

    @classmethod
    def get_builder_name(cls) -> str:
        return 'epub'

    def build(
        self, snapshot: PackageSnapshot, resources: ResourceStore, output_path: Path
    ) -> Path:
        """EPUBファイルを生成するメインの実行メソッド。"""
        log = logger.bind(
            builder=self.get_builder_name(),
            identifier=snapshot.metadata.identifier,
            output_path=str(output_path),
        )
        log.info('EPUB作成処理を開始')

        if output_path.exists():
            log.warning('出力ファイルは既に存在するため上書きします。')

        try:
            components = self.generator.generate_components(snapshot)
            self.assembler.assemble(components, resources, output_path)
        except TemplateError as e:
            template_name = getattr(e, 'name', 'N/A')
            log.bind(template_name=template_name).error(
                f"テンプレート '{template_name}' のレンダリングに失敗しました。"
            )
            self._cleanup_failed_build(output_path)
            raise RenderError(f'テンプレートエラー: {e}') from e
        except EpubPackError as e:
            log.bind(error_type=type(e).__name__).error(
                f'EPUBの作成に失敗しました: {e}'
            )
            self._cleanup_failed_build(output_path)
            raise
        except OSError as e:
            log.error(f'EPUBの作成中にI/Oエラーが発生しました: {e}')
            self._cleanup_failed_build(output_path)
            raise PackagingError(f'EPUBのビルドに失敗しました: {e}') from e

        log.success('EPUBファイルの作成成功')
        return output_path

    def _cleanup_failed_build(self, path: Path) -> None:
        """ビルド失敗時に、出力先に残ったファイルを削除します。"""
        try:
            if path.exists():
                os.remove(path)
                logger.bind(file_path=str(path)).info(
                    '不完全な出力ファイルを削除しました。'
                )
        except OSError as e:
            logger.bind(file_path=str(path), error=str(e)).error(
                '出力ファイルの削除に失敗しました。'
            )
