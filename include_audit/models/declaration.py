"""宣言されたエンティティとその提供ヘッダーのモデル。"""

from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum
import os

from .requirement import Strength


class DeclarationKind(Enum):
    """エンティティの種別。"""
    FUNCTION = "function"
    CLASS = "class"
    TEMPLATE_CLASS = "template-class"
    TEMPLATE_FUNCTION = "template-function"
    TEMPLATE_PARAM_BOUND = "template-param-bound"
    MACRO = "macro"
    TYPE_ALIAS = "type-alias"
    VARIABLE = "variable"

    @property
    def is_template(self) -> bool:
        return self in (
            DeclarationKind.TEMPLATE_CLASS,
            DeclarationKind.TEMPLATE_FUNCTION,
        )


@dataclass(frozen=True)
class Declaration:
    """翻訳単位から見えるエンティティ。

    entity_idはフロントエンドが付与した解決済みエンティティ識別子
    （clangのUSRなど）で、インデックスのキーとなる。
    kindがNoneの場合、フロントエンドが種別を判定できなかったことを示す。
    """
    entity_id: str
    name: str
    kind: Optional[DeclarationKind]
    declaration_header: Optional[str] = None
    definition_header: Optional[str] = None
    inline: bool = False

    def __post_init__(self):
        for attr in ("declaration_header", "definition_header"):
            value = getattr(self, attr)
            if value is not None:
                object.__setattr__(self, attr, os.path.normpath(value))

    @property
    def is_local(self) -> bool:
        """翻訳単位自身で宣言されているかどうか。"""
        return self.declaration_header is None and self.definition_header is None

    def headers(self) -> Tuple[str, ...]:
        """このエンティティに関わるヘッダーを重複なしで返す。"""
        result = []
        for header in (self.declaration_header, self.definition_header):
            if header is not None and header not in result:
                result.append(header)
        return tuple(result)

    def header_for(self, strength: Strength) -> Optional[str]:
        """要求の強さに対応するヘッダーを返す。

        必要な側のヘッダーが無い場合はもう一方にフォールバックする。

        Args:
            strength: 要求の強さ

        Returns:
            ヘッダーパス、ローカルなエンティティの場合はNone
        """
        if strength is Strength.DEFINITION_REQUIRED:
            return self.definition_header or self.declaration_header
        return self.declaration_header or self.definition_header

    def __str__(self) -> str:
        kind = self.kind.value if self.kind else "unknown"
        return f"{kind} {self.name}"
