# src/epubpack/api.py

from pathlib import Path
from string import Template
from typing import Any

from loguru import logger

from .epub import Epub
from .models.recipe import BookRecipe, RecipeResource, RecipeSection
from .shared.constants import URL_PATTERN
from .shared.enums import PageProgression, ResourceKind
from .shared.exceptions import ResourceError
from .shared.settings import Settings
from .utils.filesystem_sanitizer import generate_sanitized_path

__all__ = [
    'Epub',
    'PageProgression',
    'Settings',
    'build_from_recipe',
    'create_epub_from_recipe',
]


def _create_settings(config_path: str | Path | None = None, **kwargs: Any) -> Settings:
    """設定を読み込むヘルパー関数。"""
    return Settings(_config_file=config_path, **kwargs)


def build_from_recipe(
    recipe_path: str | Path,
    output_path: str | Path | None = None,
    config_path: str | Path | None = None,
    **kwargs: Any,
) -> Path:
    """TOMLレシピからEPUBを生成し、出力先のパスを返します。"""
    settings = _create_settings(config_path, **kwargs)
    recipe_file = Path(recipe_path).resolve()
    recipe = BookRecipe.load(recipe_file)

    book = create_epub_from_recipe(recipe, recipe_file.parent, settings)
    target = (
        Path(output_path) if output_path else _determine_output_path(recipe, settings)
    )
    return book.write(target)


def create_epub_from_recipe(
    recipe: BookRecipe, base_dir: Path, settings: Settings | None = None
) -> Epub:
    """
    レシピの内容を Epub に反映します。
    本文中の ${key} は対応するリソースのハンドルに置き換えられます。
    """
    book = Epub(recipe.title, settings=settings)
    if recipe.author:
        book.set_author(recipe.author)
    if recipe.language:
        book.set_language(recipe.language)
    if recipe.identifier:
        book.set_identifier(recipe.identifier)
    if recipe.description:
        book.set_description(recipe.description)
    if recipe.page_progression:
        book.set_page_progression(recipe.page_progression)

    handles: dict[str, str] = {}
    for kind, entries in (
        (ResourceKind.CSS, recipe.css),
        (ResourceKind.IMAGE, recipe.images),
        (ResourceKind.FONT, recipe.fonts),
    ):
        for entry in entries:
            handles[entry.key] = _add_recipe_resource(book, kind, entry, base_dir)

    if recipe.cover:
        book.set_cover(
            handles[recipe.cover],
            handles[recipe.cover_css] if recipe.cover_css else None,
        )

    for section in recipe.sections:
        _add_recipe_section(book, section, base_dir, handles, parent=None)

    logger.bind(title=recipe.title, resources=len(handles)).debug(
        'レシピから書籍を構成しました。'
    )
    return book


def _add_recipe_resource(
    book: Epub, kind: ResourceKind, entry: RecipeResource, base_dir: Path
) -> str:
    source: str | Path = entry.source
    if not URL_PATTERN.match(entry.source):
        source = Path(entry.source).expanduser()
        if not source.is_absolute():
            source = base_dir / source

    adders = {
        ResourceKind.CSS: book.add_css,
        ResourceKind.IMAGE: book.add_image,
        ResourceKind.FONT: book.add_font,
    }
    return adders[kind](source, filename=entry.filename, media_type=entry.media_type)


def _add_recipe_section(
    book: Epub,
    section: RecipeSection,
    base_dir: Path,
    handles: dict[str, str],
    parent: str | None,
) -> None:
    if section.body_file is not None:
        body_path = base_dir / section.body_file
        try:
            body = body_path.read_text(encoding='utf-8')
        except OSError as e:
            raise ResourceError(
                f'本文ファイルを読み込めませんでした: {e}', source=str(body_path)
            ) from e
    else:
        body = section.body or ''

    handle = book.add_section(
        Template(body).safe_substitute(handles),
        title=section.title,
        filename=section.filename,
        css=handles[section.css] if section.css else None,
        parent=parent,
    )
    for child in section.sections:
        _add_recipe_section(book, child, base_dir, handles, parent=handle)


def _determine_output_path(recipe: BookRecipe, settings: Settings) -> Path:
    """メタデータと設定に基づき、最終的な出力ファイルパスを決定します。"""
    template_vars = {
        'title': recipe.title or 'untitled',
        'author': recipe.author or 'unknown_author',
    }
    safe_relative_path = generate_sanitized_path(
        settings.builder.filename_template,
        template_vars,
        max_length=settings.builder.max_filename_length,
    )
    return settings.builder.output_directory.resolve() / safe_relative_path
