# FILE: src/epubpack/entrypoints/cli.py
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from ..api import build_from_recipe
from ..shared.exceptions import ConfigurationError, EpubPackError, SettingsError
from ..utils.logging import setup_logging

app = typer.Typer(
    help='TOMLレシピに記述された章・画像・フォントから、EPUB 3 ファイルを生成するコマンドラインツールです。',
    rich_markup_mode='markdown',
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            '-v',
            '--verbose',
            help='詳細なデバッグログを有効にします。',
            show_default=False,
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            '-c',
            '--config',
            help='カスタム設定TOMLファイルへのパス。',
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    log_file: Annotated[
        bool,
        typer.Option(
            '--log-file',
            help='ログをJSON形式でファイルに出力します。',
            show_default=False,
        ),
    ] = False,
) -> None:
    """
    epubpack: EPUB package builder
    """
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level, serialize_to_file=log_file)
    ctx.obj = {'config': config, 'log_level': log_level}


@app.command()
def build(
    ctx: typer.Context,
    recipe: Annotated[
        Path,
        typer.Argument(
            help='書籍の構成を記述したTOMLレシピへのパス。',
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
            metavar='RECIPE',
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            '-o',
            '--output',
            help='出力するEPUBファイルのパス。省略時は設定のテンプレートから決定します。',
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """レシピからEPUBファイルをビルドします。"""
    options = ctx.obj or {}
    try:
        output_path = build_from_recipe(
            recipe,
            output_path=output,
            config_path=options.get('config'),
            log_level=options.get('log_level', 'INFO'),
        )
    except SettingsError as e:
        logger.bind(error=str(e)).error('❌ 設定エラーが発生しました。')
        raise typer.Exit(code=1) from e
    except ConfigurationError as e:
        logger.bind(error=str(e)).error('❌ レシピまたは書籍の構成に誤りがあります。')
        raise typer.Exit(code=1) from e
    except EpubPackError as e:
        logger.bind(error=str(e)).error('❌ EPUBの作成に失敗しました。')
        raise typer.Exit(code=1) from e

    logger.success(f'✅ EPUBを作成しました: {output_path}')


@logger.catch(exclude=(EpubPackError, typer.Exit))
def run_app() -> None:
    """
    アプリケーション全体を@logger.catchでラップし、
    制御下の例外は個別処理、それ以外をLoguruに記録させるためのラッパー関数。
    """
    app()
