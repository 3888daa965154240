# FILE: src/epubpack/utils/filesystem_sanitizer.py

import re
from pathlib import Path
from typing import Any

INVALID_PATH_CHARS_REGEX = r'[\\/:*?"<>|]'

# コンテナ内部のファイル名 (href)。Unicode の文字・数字と "_" "." "-" のみを残す
INVALID_INTERNAL_CHARS_REGEX = r'[^\w.-]'

# XML の NCName として先頭に置けない文字 (数字・記号)
_NCNAME_INVALID_START_REGEX = r'^[\W\d]'


def sanitize_path_part(part: str, max_length: int) -> str:
    """ファイル/ディレクトリ名として安全でない文字を'_'に置換し、長さを制限します。"""
    sanitized_part = re.sub(INVALID_PATH_CHARS_REGEX, '_', part).strip()

    if len(sanitized_part) <= max_length:
        return sanitized_part

    # pathlibを使用して拡張子を安全に分離
    p = Path(sanitized_part)
    stem = p.stem
    extension = p.suffix  # ".epub" のようにドットを含む

    if extension:
        max_stem_length = max_length - len(extension)
        if len(stem) > max_stem_length:
            stem = stem[:max_stem_length]
        return f'{stem}{extension}'
    else:
        return sanitized_part[:max_length]


def generate_sanitized_path(
    template: str, variables: dict[str, Any], max_length: int
) -> Path:
    """テンプレートと変数から安全なパスを生成します。変数を先にサニタイズします。"""

    # title内の'/'などがパス区切り文字として扱われるのを防ぐ
    safe_vars = {
        key: sanitize_path_part(str(value or ''), max_length=max_length)
        for key, value in variables.items()
    }

    relative_path_str = template.format_map(safe_vars)

    return Path(relative_path_str)


def sanitize_internal_filename(filename: str) -> str:
    """
    コンテナ内部で使用するファイル名を正規化します。
    ディレクトリ成分は捨て、href に使えない文字を'_'に置換します。
    """
    name = Path(filename.replace('\\', '/')).name.strip()
    return re.sub(INVALID_INTERNAL_CHARS_REGEX, '_', name)


def to_xml_id(name: str) -> str:
    """ファイル名などから XML の NCName として有効なIDを生成します。"""
    candidate = re.sub(INVALID_INTERNAL_CHARS_REGEX, '_', name)
    if not candidate:
        return 'id'
    if re.match(_NCNAME_INVALID_START_REGEX, candidate):
        candidate = f'id-{candidate}'
    return candidate
