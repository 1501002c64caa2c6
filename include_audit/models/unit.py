"""フロントエンドが生成する翻訳単位モデル。

C++フロントエンド（libclang）の出力を、解決エンジンが消費する
言語非依存の形に落とし込んだもの。
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple
from enum import Enum
import os

from .declaration import Declaration
from .location import Location
from .reference import ParameterUsage


class NodeKind(Enum):
    """解決済みASTノードの種別。"""
    TRANSLATION_UNIT = "translation-unit"
    SCOPE = "scope"
    CALL_EXPR = "call-expr"
    DECL_REF = "decl-ref"
    TYPE_REF = "type-ref"
    TEMPLATE_REF = "template-ref"
    MACRO_EXPANSION = "macro-expansion"
    TEMPLATE_ARGUMENT = "template-argument"
    TEMPLATE_PARAMETER = "template-parameter"
    BASE_SPECIFIER = "base-specifier"
    MEMBER_INITIALIZER = "member-initializer"
    VALUE_DECL = "value-decl"
    POINTER_DECL = "pointer-decl"


NAME_USE_KINDS = frozenset({
    NodeKind.DECL_REF,
    NodeKind.TYPE_REF,
    NodeKind.TEMPLATE_REF,
    NodeKind.MACRO_EXPANSION,
})


@dataclass(frozen=True)
class AstNode:
    """解決済みASTのノード。

    名前使用ノードはentity_idに解決済みエンティティ識別子を持つ。
    entity_idがNoneのノードは構造のためだけに存在する。
    """
    kind: NodeKind
    location: Optional[Location] = None
    entity_id: Optional[str] = None
    spelling: str = ""
    children: Tuple["AstNode", ...] = ()
    parameter_usage: ParameterUsage = ParameterUsage.UNKNOWN
    from_macro_argument: bool = False

    @property
    def is_name_use(self) -> bool:
        return self.kind in NAME_USE_KINDS and self.entity_id is not None

    def walk(self) -> Iterator["AstNode"]:
        """ノードを行きがけ順に列挙する。"""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class IncludeDirective:
    """ソースファイルに書かれた#include指令。"""
    header: str
    spelling: str
    line: int
    angled: bool = False

    def __post_init__(self):
        object.__setattr__(self, "header", os.path.normpath(self.header))

    def __str__(self) -> str:
        if self.angled:
            return f"#include <{self.spelling}>"
        return f'#include "{self.spelling}"'


@dataclass(frozen=True)
class Suppression:
    """ヘッダーを常に残す指定。"""
    header: str
    reason: str
    location: Optional[Location] = None

    def __post_init__(self):
        object.__setattr__(self, "header", os.path.normpath(self.header))


@dataclass(frozen=True)
class TranslationUnitModel:
    """解析対象の翻訳単位。

    Attributes:
        source_file: メインソースファイルのパス
        root: 解決済みASTのルート
        includes: メインファイルの#include指令（記述順）
        include_graph: ファイルから、そのファイルが直接インクルードする
            ファイルへのマッピング
        declarations: 翻訳単位から見える宣言
        suppressions: 常に残す指定
    """
    source_file: str
    root: AstNode
    includes: Tuple[IncludeDirective, ...] = ()
    include_graph: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    declarations: Tuple[Declaration, ...] = ()
    suppressions: Tuple[Suppression, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "source_file", os.path.normpath(self.source_file))
        graph = {
            os.path.normpath(source): tuple(os.path.normpath(t) for t in targets)
            for source, targets in self.include_graph.items()
        }
        object.__setattr__(self, "include_graph", graph)

    @property
    def included_headers(self) -> Tuple[str, ...]:
        """直接インクルードされたヘッダー（記述順、重複なし）。"""
        return tuple(dict.fromkeys(d.header for d in self.includes))
