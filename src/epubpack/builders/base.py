from abc import ABC, abstractmethod
from pathlib import Path

from ..models.domain import PackageSnapshot
from ..shared.settings import Settings
from .epub.resource_store import ResourceStore


class BaseBuilder(ABC):
    """Builderの抽象基底クラス。"""

    def __init__(
        self,
        settings: Settings,
    ):
        """
        Args:
            settings (Settings): アプリケーション設定。
        """
        self.settings = settings

    @classmethod
    @abstractmethod
    def get_builder_name(cls) -> str:
        """このビルダーの一意な名前を返します。"""
        raise NotImplementedError

    @abstractmethod
    def build(
        self, snapshot: PackageSnapshot, resources: ResourceStore, output_path: Path
    ) -> Path:
        """ビルド処理を実行し、生成されたファイルのパスを返します。"""
        raise NotImplementedError
