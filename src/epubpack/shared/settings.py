
import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any, cast

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .exceptions import SettingsError

# Settings() の初期化中だけ --config のパスを保持する
_active_config_file: ContextVar[Path | None] = ContextVar(
    'epubpack_config_file', default=None
)


# --- TOMLファイル読み込みロジック ---
def load_toml_config(toml_file: Path) -> dict[str, Any]:
    """指定されたTOMLファイルを読み込みます。"""
    if not toml_file.is_file():
        return {}
    try:
        with toml_file.open('rb') as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise SettingsError(
            f"設定ファイル '{toml_file}' の解析に失敗しました: {e}"
        ) from e


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """ユーザー指定のTOML設定ファイルを読み込むためのカスタムソース。"""

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None):
        super().__init__(settings_cls)
        self.config_file = config_file
        self._toml_config: dict[str, Any] = (
            load_toml_config(self.config_file) if self.config_file else {}
        )

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        """このカスタムソースはフィールドごとの値取得をサポートしないため、__call__に処理を委ねます。"""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """設定ファイル全体を辞書として一度に返します。"""
        return self._toml_config


class PyProjectTomlSource(PydanticBaseSettingsSource):
    """pyproject.tomlから[tool.epubpack]セクションを読み込むソース。"""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        self._config = self._load_pyproject_toml()

    def _load_pyproject_toml(self) -> dict[str, Any]:
        pyproject_path = Path.cwd() / 'pyproject.toml'
        config = load_toml_config(pyproject_path)
        return cast(dict[str, Any], config.get('tool', {}).get('epubpack', {}))

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config


# --- 設定モデル定義 ---


class BuilderSettings(BaseModel):
    """EPUB生成処理に関する設定。"""

    default_language: str = Field(
        default='en',
        description='言語が指定されていない書籍に使用する言語コード。',
    )
    output_directory: Path = Field(
        default=Path('./epubs'),
        description='出力パスが指定されなかった場合のEPUBファイルの保存先ディレクトリ。',
    )
    filename_template: str = Field(
        default='{author}/{title}.epub',
        description='出力パスが指定されなかった場合のファイル名テンプレート。',
    )
    max_filename_length: int = Field(
        default=50,
        description='ファイル/ディレクトリ名の最大長。長すぎる場合は自動的に切り詰められます。',
    )
    compression_level: int = Field(
        default=6,
        ge=0,
        le=9,
        description='mimetype 以外のエントリに適用する deflate 圧縮レベル。',
    )
    fetch_timeout: float = Field(
        default=30.0,
        gt=0,
        description='URLで指定されたリソースを取得する際のタイムアウト(秒)。',
    )

    @field_validator('default_language')
    @classmethod
    def validate_language_is_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('default_language に空文字は指定できません。')
        return value.strip()


class Settings(BaseSettings):
    """
    アプリケーションの階層的設定管理クラス。
    以下の優先順位で設定を読み込みます:
    1. Pythonコードからの直接初期化
    2. --config で指定されたカスタムTOMLファイル
    3. 環境変数 (例: EPUBPACK_BUILDER__DEFAULT_LANGUAGE=ja)
    4. .env ファイル
    5. pyproject.toml内の [tool.epubpack] セクション
    6. モデルで定義されたデフォルト値
    """

    builder: BuilderSettings = Field(default_factory=BuilderSettings)
    log_level: str = 'INFO'

    def __init__(self, **values: object):
        config_file_path = values.pop('_config_file', None)
        config_file = (
            Path(cast(Path | str, config_file_path)) if config_file_path else None
        )

        token = _active_config_file.set(config_file)
        try:
            super().__init__(**values)  # type: ignore [arg-type]
        except (ValidationError, ValueError) as e:
            raise SettingsError(f'設定の検証に失敗しました:\n{e}') from e
        finally:
            _active_config_file.reset(token)

    model_config = SettingsConfigDict(
        env_nested_delimiter='__',
        env_prefix='EPUBPACK_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls, _active_config_file.get()),
            env_settings,
            dotenv_settings,
            PyProjectTomlSource(settings_cls),
        )
