"""ヘッダー解決エンジンのエラー定義。"""

from typing import Optional

from ..models.location import Location
from ..models.reference import Reference
from ..models.unit import Suppression


class ResolverError(Exception):
    """解決エンジンのエラー基底クラス。"""

    def __init__(self, message: str, location: Optional[Location] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location is not None:
            return f"{self.location.describe()}: {self.message}"
        return self.message


class DanglingReference(ResolverError):
    """解決済み識別子に対応する宣言が無い。

    フロントエンドとインデックスの不整合であり、その翻訳単位の
    パイプラインを中断する。
    """

    def __init__(self, entity_id: str, location: Optional[Location] = None):
        super().__init__(
            f"No declaration indexed for resolved entity '{entity_id}'",
            location
        )
        self.entity_id = entity_id


class ClassificationError(ResolverError):
    """使用モードと宣言種別の組み合わせを分類できない。"""

    def __init__(self, message: str, reference: Reference):
        super().__init__(message, reference.location)
        self.reference = reference


class AmbiguousSuppression(ResolverError):
    """インクルードされていないヘッダーを指す抑制指定。"""

    def __init__(self, suppression: Suppression):
        super().__init__(
            f"Suppression ({suppression.reason}) names '{suppression.header}' "
            "which is not included; ignored",
            suppression.location
        )
        self.suppression = suppression
