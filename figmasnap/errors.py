"""
FigmaSnap 例外クラス
"""


class FigmaSnapError(Exception):
    """全ての例外の基底クラス"""


class InvalidPrototypeUrlError(FigmaSnapError):
    def __init__(self, url):
        super().__init__("Invalid Figma URL format. Please use a valid Figma prototype URL.")
        self.url = url


class InvalidFlowError(FigmaSnapError):
    pass


class FlowNotFoundError(FigmaSnapError):
    def __init__(self, name: str):
        super().__init__(f"Flow '{name}' not found")
        self.name = name


class OutputDirectoryError(FigmaSnapError):
    pass


class BrowserUnavailableError(FigmaSnapError):
    pass
