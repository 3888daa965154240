# FILE: src/epubpack/utils/logging.py
from loguru import logger
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", serialize_to_file: bool = False):
    """
    LoguruをRichHandlerとJSONファイル出力用に設定します。
    ライブラリとして利用する場合は呼び出されず、CLIの起動時にのみ使用します。
    """
    logger.remove()  # デフォルトハンドラの削除

    # コンソール用のハンドラ
    logger.add(
        RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=False,
            log_time_format="[%X]",
        ),
        level=level.upper(),
        format="{message}",  # RichHandlerにフォーマットを完全に委任
        backtrace=False,
        diagnose=False,
    )

    # ファイル出力用のハンドラ (JSON形式)
    if serialize_to_file:
        logger.add(
            "logs/epubpack_{time}.log",
            level="DEBUG",
            serialize=True,
            enqueue=True,
            rotation="10 MB",
            retention="7 days",
            backtrace=True,
            diagnose=True,
        )

    logger.debug(
        "ロガーが設定されました。レベル: {}, ファイル出力: {}",
        level.upper(),
        serialize_to_file,
    )
