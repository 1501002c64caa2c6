"""参照ごとのヘッダー要求モデル。"""

from dataclasses import dataclass
from typing import Iterable, Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from .reference import Reference


class Strength(Enum):
    """ヘッダーに求める宣言の強さ。"""
    DECLARATION_SUFFICIENT = "declaration-sufficient"
    DEFINITION_REQUIRED = "definition-required"

    @property
    def rank(self) -> int:
        return 1 if self is Strength.DEFINITION_REQUIRED else 0

    @classmethod
    def strongest(cls, strengths: Iterable["Strength"]) -> Optional["Strength"]:
        """最も強い要求を返す。

        Args:
            strengths: 比較する強さ

        Returns:
            最大の強さ、空の場合はNone
        """
        result = None
        for strength in strengths:
            if result is None or strength.rank > result.rank:
                result = strength
        return result


@dataclass(frozen=True)
class Requirement:
    """1つの参照を解決した結果。

    headerがNoneの場合、要求は翻訳単位自身の中で満たされている。
    """
    header: Optional[str]
    strength: Strength
    reference: "Reference"

    def __str__(self) -> str:
        return f"{self.header or '<local>'} [{self.strength.value}] <- {self.reference}"
