# FILE: src/epubpack/models/recipe.py
"""
TOML形式のレシピ(書籍の構成記述)のスキーマを定義します。
"""

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..shared.enums import PageProgression
from ..shared.exceptions import ConfigurationError


class RecipeResource(BaseModel):
    """[[images]] / [[fonts]] / [[css]] の1項目。"""

    model_config = ConfigDict(extra='forbid')

    key: str
    source: str  # ファイルパス(レシピからの相対パス可)またはURL
    filename: str | None = None
    media_type: str | None = None


class RecipeSection(BaseModel):
    """[[sections]] の1項目。sections を入れ子にすることで節を表します。"""

    model_config = ConfigDict(extra='forbid')

    title: str | None = None
    body: str | None = None
    body_file: str | None = None
    filename: str | None = None
    css: str | None = None  # [[css]] の key
    sections: list['RecipeSection'] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_single_body_source(self) -> 'RecipeSection':
        if (self.body is None) == (self.body_file is None):
            raise ValueError('body と body_file はどちらか一方だけを指定してください。')
        return self


class BookRecipe(BaseModel):
    """書籍1冊分のレシピ。"""

    model_config = ConfigDict(extra='forbid', frozen=True)

    title: str
    author: str | None = None
    language: str | None = None
    identifier: str | None = None
    description: str | None = None
    page_progression: PageProgression | None = None
    cover: str | None = None  # [[images]] の key
    cover_css: str | None = None  # [[css]] の key
    css: list[RecipeResource] = Field(default_factory=list)
    images: list[RecipeResource] = Field(default_factory=list)
    fonts: list[RecipeResource] = Field(default_factory=list)
    sections: list[RecipeSection] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_references(self) -> 'BookRecipe':
        keys: set[str] = set()
        for resource in [*self.css, *self.images, *self.fonts]:
            if resource.key in keys:
                raise ValueError(f"リソースの key '{resource.key}' が重複しています。")
            keys.add(resource.key)

        image_keys = {image.key for image in self.images}
        css_keys = {css.key for css in self.css}
        if self.cover and self.cover not in image_keys:
            raise ValueError(f"cover '{self.cover}' は images に定義されていません。")
        if self.cover_css and self.cover_css not in css_keys:
            raise ValueError(f"cover_css '{self.cover_css}' は css に定義されていません。")

        pending = list(self.sections)
        while pending:
            section = pending.pop()
            if section.css and section.css not in css_keys:
                raise ValueError(f"セクションの css '{section.css}' は css に定義されていません。")
            pending.extend(section.sections)
        return self

    @classmethod
    def load(cls, path: Path) -> 'BookRecipe':
        """
        レシピファイルを読み込みます。

        Raises:
            ConfigurationError: ファイルが存在しない、または内容が不正な場合。
        """
        if not path.is_file():
            raise ConfigurationError(f'レシピファイルが見つかりません: {path}')
        try:
            with path.open('rb') as f:
                data = tomllib.load(f)
            return cls.model_validate(data)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f'レシピファイルの解析に失敗しました: {e}') from e
        except ValidationError as e:
            raise ConfigurationError(f'レシピの検証に失敗しました:\n{e}') from e
