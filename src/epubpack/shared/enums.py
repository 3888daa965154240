# src/epubpack/shared/enums.py
from enum import Enum


class ResourceKind(str, Enum):
    """
    マニフェストに登録されるファイルの種別。
    strを継承することで、'=='による文字列比較とEnumの型安全性を両立する。
    """

    SECTION = 'section'
    IMAGE = 'image'
    FONT = 'font'
    CSS = 'css'
    COVER = 'cover'
    NAV = 'nav'
    NCX = 'ncx'

    @classmethod
    def _missing_(cls, value: object) -> 'ResourceKind | None':
        # 'IMAGE' のような大文字のキーでもアクセス可能にする
        for member in cls:
            if member.name == str(value).upper():
                return member
        return None

    @property
    def is_embedded(self) -> bool:
        """呼び出し元がバイト列を提供する埋め込みリソースかどうか。"""
        return self in (ResourceKind.IMAGE, ResourceKind.FONT, ResourceKind.CSS)


class PageProgression(str, Enum):
    """spine の page-progression-direction 属性値"""

    LTR = 'ltr'
    RTL = 'rtl'
    DEFAULT = 'default'
