# src/epubpack/utils/media_types.py
"""
ファイル拡張子とMIMEタイプに関連する共有ユーティリティ。
"""
from typing import Final, cast

from ..shared.constants import MIME_TYPES
from ..shared.enums import ResourceKind

# マッピングをここで定義して、MIME_TYPES dataclassの属性(UPPERCASE)に合わせる
_EXT_TO_ATTR_MAP = {
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
    'png': 'PNG',
    'gif': 'GIF',
    'svg': 'SVG',
    'webp': 'WEBP',
    'ttf': 'TTF',
    'otf': 'OTF',
    'woff': 'WOFF',
    'woff2': 'WOFF2',
    'xhtml': 'XHTML',
    'css': 'CSS',
}

# EPUB 3 のコアメディアタイプ (フォントは旧来の別名も許容する)
SUPPORTED_MEDIA_TYPES: Final[dict[ResourceKind, frozenset[str]]] = {
    ResourceKind.IMAGE: frozenset(
        {
            MIME_TYPES.JPEG,
            MIME_TYPES.PNG,
            MIME_TYPES.GIF,
            MIME_TYPES.SVG,
            MIME_TYPES.WEBP,
        }
    ),
    ResourceKind.FONT: frozenset(
        {
            MIME_TYPES.TTF,
            MIME_TYPES.OTF,
            MIME_TYPES.WOFF,
            MIME_TYPES.WOFF2,
            'application/font-sfnt',
            'application/vnd.ms-opentype',
            'application/font-woff',
            'application/x-font-ttf',
        }
    ),
    ResourceKind.CSS: frozenset({MIME_TYPES.CSS}),
}


def get_media_type_from_filename(filename: str) -> str:
    """ファイル名の拡張子からMIMEタイプを返します。"""
    ext = filename.lower().split('.')[-1]
    attr_name = _EXT_TO_ATTR_MAP.get(ext)

    if attr_name:
        return cast(str, getattr(MIME_TYPES, attr_name))

    # 不明な拡張子はデフォルト値を返す
    return MIME_TYPES.OCTET_STREAM


def get_extension_for_media_type(media_type: str) -> str:
    """MIMEタイプから代表的な拡張子(ドット付き)を返します。不明な場合は空文字。"""
    normalized = media_type.strip().lower()
    for ext, attr_name in _EXT_TO_ATTR_MAP.items():
        if getattr(MIME_TYPES, attr_name) == normalized:
            return f'.{ext}'
    return ''


def is_supported_media_type(kind: ResourceKind, media_type: str) -> bool:
    """指定された種別のリソースとしてEPUBに含められるメディアタイプかどうか。"""
    supported = SUPPORTED_MEDIA_TYPES.get(kind)
    if supported is None:
        return False
    return media_type.strip().lower() in supported
