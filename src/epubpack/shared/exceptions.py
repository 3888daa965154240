

class EpubPackError(Exception):
    """アプリケーションの基底例外クラス。"""

    pass


class SettingsError(EpubPackError):
    """設定関連のエラー。"""

    pass


class ConfigurationError(EpubPackError):
    """書籍の構成(タイトル、識別子、ハンドルなど)が不正な場合のエラー。"""

    pass


class FilenameAlreadyUsedError(ConfigurationError):
    """呼び出し元が指定したファイル名が既に使用されている場合のエラー。"""

    def __init__(self, filename: str):
        super().__init__(f"ファイル名 '{filename}' は既に使用されています。")
        self.filename = filename


class UnknownHandleError(ConfigurationError):
    """存在しないセクションやリソースのハンドルが指定された場合のエラー。"""

    def __init__(self, handle: str, kind: str):
        super().__init__(f"{kind} のハンドル '{handle}' が見つかりません。")
        self.handle = handle
        self.kind = kind


class ResourceError(EpubPackError):
    """埋め込みリソースの読み込み・検証に関するエラー。"""

    def __init__(self, message: str, source: str | None = None):
        if source:
            super().__init__(f'[{source}] {message}')
        else:
            super().__init__(message)
        self.source = source


class UnsupportedMediaTypeError(ResourceError):
    """EPUBに含められないメディアタイプが宣言された場合のエラー。"""

    pass


class RenderError(EpubPackError):
    """
    文書生成中の内部不整合(目次と spine の不一致など)。
    呼び出し元の誤用ではなくエンジンの不具合を示す。
    """

    pass


class PackagingError(EpubPackError):
    """ステージングやアーカイブ書き込み中のI/Oエラー。"""

    pass
