import hashlib
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, TextIO, Union
from urllib.parse import urlparse

import requests
from loguru import logger

from ...models.domain import Allocation
from ...shared.constants import MIME_TYPES, URL_PATTERN
from ...shared.enums import ResourceKind
from ...shared.exceptions import ConfigurationError, ResourceError
from ...utils.media_types import (
    get_extension_for_media_type,
    get_media_type_from_filename,
)
from .allocator import IdentifierAllocator

ResourceSource = Union[bytes, bytearray, memoryview, str, os.PathLike, BinaryIO, TextIO]


@dataclass
class StoredResource:
    """ストアが所有する埋め込みリソース1件。"""

    allocation: Allocation
    media_type: str
    origin: str
    content: bytes | None = None
    path: Path | None = None
    url: str | None = None

    @property
    def id(self) -> str:
        return self.allocation.id

    @property
    def href(self) -> str:
        return self.allocation.href

    @property
    def kind(self) -> ResourceKind:
        return self.allocation.kind

    @property
    def handle(self) -> str:
        """セクション本文から参照する際の相対パス (例: "../images/image0001.png")。"""
        return f'../{self.href}'

    @property
    def call_description(self) -> str:
        return f"add_{self.kind.value}('{self.origin}')"


class ResourceStore:
    """画像・フォント・スタイルシートの収集と、ステージング領域への書き出しを担当するクラス。"""

    def __init__(self, allocator: IdentifierAllocator, fetch_timeout: float = 30.0):
        self.allocator = allocator
        self.fetch_timeout = fetch_timeout
        self._resources: list[StoredResource] = []
        self._by_identity: dict[tuple[ResourceKind, str, str | None], StoredResource] = {}
        self._by_href: dict[str, StoredResource] = {}

    def __iter__(self):
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def add(
        self,
        kind: ResourceKind,
        source: ResourceSource,
        media_type: str | None = None,
        filename: str | None = None,
    ) -> StoredResource:
        """
        リソースを登録し、割り当て済みのエントリを返します。

        バイト列とストリームはこの呼び出しの中で全て読み込みます。
        パスとURLは記録のみ行い、ステージング時にコピーします。
        同じソースが同じファイル名で再登録された場合は既存のエントリを返します。
        """
        if not kind.is_embedded:
            raise ConfigurationError(
                f"'{kind.value}' はリソースとして追加できない種別です。"
            )

        content, path, url, identity, source_name, origin = self._inspect_source(
            kind, source, filename
        )

        key = (kind, identity, filename)
        existing = self._by_identity.get(key)
        if existing:
            if media_type is not None and media_type != existing.media_type:
                raise ResourceError(
                    f"登録済みのメディアタイプ '{existing.media_type}' と"
                    f"異なる '{media_type}' が指定されました。",
                    source=f"add_{kind.value}('{origin}')",
                )
            logger.bind(origin=origin, href=existing.href).debug(
                '同一のリソースが既に登録されているため、既存のエントリを再利用します。'
            )
            return existing

        resolved_media_type = self._resolve_media_type(
            kind, media_type, (filename, source_name), origin
        )
        hint = source_name
        if hint is None or not PurePosixPath(hint).suffix:
            extension = get_extension_for_media_type(resolved_media_type)
            hint = f'{kind.value}{extension}' if extension else hint

        allocation = self.allocator.allocate(kind, hint=hint, filename=filename)
        resource = StoredResource(
            allocation=allocation,
            media_type=resolved_media_type,
            origin=origin,
            content=content,
            path=path,
            url=url,
        )
        self._resources.append(resource)
        self._by_identity[key] = resource
        self._by_href[resource.href] = resource

        logger.bind(kind=kind.value, origin=origin, href=resource.href).debug(
            'リソースを登録しました。'
        )
        return resource

    def add_generated(
        self, kind: ResourceKind, content: bytes, media_type: str, hint: str
    ) -> StoredResource:
        """エンジン自身が生成したリソース(既定の表紙CSSなど)を登録します。"""
        allocation = self.allocator.allocate(kind, hint=hint)
        resource = StoredResource(
            allocation=allocation,
            media_type=media_type,
            origin=f'<generated:{hint}>',
            content=content,
        )
        self._resources.append(resource)
        self._by_href[resource.href] = resource
        return resource

    def find(self, handle: str, kind: ResourceKind | None = None) -> StoredResource | None:
        """ハンドル("../css/css0001.css")または内部パス("css/css0001.css")から検索します。"""
        href = handle[3:] if handle.startswith('../') else handle
        resource = self._by_href.get(href)
        if resource is None or (kind is not None and resource.kind != kind):
            return None
        return resource

    def write_to(self, content_root: Path) -> None:
        """全てのリソースを割り当て済みのパスへ書き出します。"""
        for resource in self:
            data = self.load(resource)
            target = content_root / resource.href
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        if len(self):
            logger.debug('{}件のリソースをステージングしました。', len(self))

    def load(self, resource: StoredResource) -> bytes:
        """リソースのバイト列を取得します。失敗は元の add 呼び出しに帰属させます。"""
        if resource.content is not None:
            return resource.content

        if resource.path is not None:
            try:
                return resource.path.read_bytes()
            except OSError as e:
                raise ResourceError(
                    f'ファイルを読み込めませんでした: {e}',
                    source=resource.call_description,
                ) from e

        if resource.url is not None:
            return self._fetch(resource)

        raise ResourceError('リソースの内容がありません。', source=resource.call_description)

    def _fetch(self, resource: StoredResource) -> bytes:
        log = logger.bind(url=resource.url, timeout=self.fetch_timeout)
        log.info('リモートリソースを取得します。')
        try:
            response = requests.get(resource.url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            status_code = getattr(getattr(e, 'response', None), 'status_code', None)
            log.bind(status_code=status_code or 'N/A').error(
                'リモートリソースの取得に失敗しました。'
            )
            raise ResourceError(
                f'URLから取得できませんでした: {e}',
                source=resource.call_description,
            ) from e
        return response.content

    def _inspect_source(
        self, kind: ResourceKind, source: ResourceSource, filename: str | None
    ) -> tuple[bytes | None, Path | None, str | None, str, str | None, str]:
        """ソースの種類を判別し、(内容, パス, URL, 同一性キー, ソース名, 表示名) を返します。"""
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            return data, None, None, _digest(data), None, filename or '<bytes>'

        if hasattr(source, 'read'):
            name = getattr(source, 'name', None)
            origin = str(name) if name else '<stream>'
            try:
                raw = source.read()
            except OSError as e:
                raise ResourceError(
                    f'ストリームを読み込めませんでした: {e}',
                    source=f"add_{kind.value}('{origin}')",
                ) from e
            data = raw.encode('utf-8') if isinstance(raw, str) else bytes(raw)
            source_name = Path(str(name)).name if name else None
            return data, None, None, _digest(data), source_name, origin

        if isinstance(source, str) and URL_PATTERN.match(source):
            url_name = PurePosixPath(urlparse(source).path).name or None
            return None, None, source, source, url_name, source

        if isinstance(source, (str, os.PathLike)):
            if not os.fspath(source).strip():
                raise ResourceError('空のパスは指定できません。', source=f'add_{kind.value}')
            path = Path(source).expanduser()
            identity = str(path.resolve())
            return None, path, None, identity, path.name, str(source)

        raise ResourceError(
            f'サポートされていないソースの型です: {type(source).__name__}',
            source=f'add_{kind.value}',
        )

    @staticmethod
    def _resolve_media_type(
        kind: ResourceKind,
        media_type: str | None,
        names: tuple[str | None, ...],
        origin: str,
    ) -> str:
        """明示されたメディアタイプ、なければ names を先頭から順に拡張子で判別します。"""
        if media_type is not None:
            if not media_type.strip():
                raise ResourceError(
                    'メディアタイプに空文字は指定できません。',
                    source=f"add_{kind.value}('{origin}')",
                )
            return media_type

        for name in names:
            if not name:
                continue
            guessed = get_media_type_from_filename(name)
            if guessed != MIME_TYPES.OCTET_STREAM:
                return guessed

        raise ResourceError(
            'メディアタイプを判別できません。media_type を指定してください。',
            source=f"add_{kind.value}('{origin}')",
        )


def _digest(data: bytes) -> str:
    return f'sha256:{hashlib.sha256(data).hexdigest()}'
