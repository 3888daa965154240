# FILE: src/epubpack/models/structure.py
"""
セクションツリーと、そこから導出される読み順(spine)・目次(nav)。

spine と目次はどちらも walk_sections による一度の前順走査から作られます。
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from .domain import NavPoint, SectionDocument, SpineItemRef


@dataclass
class Section:
    """章または節。子セクションを値として保持します。"""

    id: str
    href: str
    body: str
    title: str | None = None
    css_href: str | None = None
    children: list['Section'] = field(default_factory=list)

    @property
    def handle(self) -> str:
        """他のセクション本文からリンクする際に使うファイル名。"""
        return PurePosixPath(self.href).name


@dataclass(frozen=True)
class ReadingOrder:
    spine: tuple[SpineItemRef, ...]
    navigation: tuple[NavPoint, ...]
    documents: tuple[SectionDocument, ...]


def walk_sections(
    roots: Sequence[Section],
) -> Iterator[tuple[Section, Section | None]]:
    """セクションツリーを前順で走査し、(セクション, 親) を返します。"""
    stack: list[tuple[Section, Section | None]] = [
        (section, None) for section in reversed(roots)
    ]
    while stack:
        section, parent = stack.pop()
        yield section, parent
        stack.extend((child, section) for child in reversed(section.children))


@dataclass
class _NavNode:
    label: str
    href: str
    children: list['_NavNode'] = field(default_factory=list)

    def freeze(self) -> NavPoint:
        return NavPoint(
            label=self.label,
            href=self.href,
            children=tuple(child.freeze() for child in self.children),
        )


# 目次にタイトルのないセクションを載せる際の既定ラベル ({number} は読み順の通し番号)
UNTITLED_LABEL = 'Section {number}'


def build_reading_order(
    roots: Sequence[Section], untitled_label: str = UNTITLED_LABEL
) -> ReadingOrder:
    """
    一度の走査で spine、目次ツリー、ページ一覧を組み立てます。

    全てのセクションが spine と目次の両方に同じ順序で現れます。
    タイトルのないセクションは untitled_label を目次のラベルに使います。
    """
    spine: list[SpineItemRef] = []
    documents: list[SectionDocument] = []
    top_level: list[_NavNode] = []
    nodes: dict[str, _NavNode] = {}

    for number, (section, parent) in enumerate(walk_sections(roots), start=1):
        spine.append(SpineItemRef(idref=section.id))
        documents.append(
            SectionDocument(
                id=section.id,
                href=section.href,
                title=section.title,
                body=section.body,
                css_href=section.css_href,
            )
        )

        label = section.title or untitled_label.format(number=number)
        node = _NavNode(label=label, href=section.href)
        container = nodes[parent.id].children if parent else top_level
        container.append(node)
        nodes[section.id] = node

    return ReadingOrder(
        spine=tuple(spine),
        navigation=tuple(node.freeze() for node in top_level),
        documents=tuple(documents),
    )


def flatten_navigation(points: Sequence[NavPoint]) -> list[NavPoint]:
    """目次ツリーを前順に平坦化します (toc.ncx 用)。"""
    flat: list[NavPoint] = []
    for point in points:
        flat.append(point)
        flat.extend(flatten_navigation(point.children))
    return flat
