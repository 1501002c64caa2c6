"""解決済みエンティティから提供ヘッダーへのインデックス。"""

from dataclasses import replace
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..models.declaration import Declaration, DeclarationKind
from ..models.location import Location
from .errors import DanglingReference

logger = logging.getLogger(__name__)


class DeclarationIndexBuilder:
    """宣言を集めてDeclarationIndexを構築する。

    同じエンティティの複数の宣言は1つにまとめる。freeze()の後は
    追加できない。
    """

    def __init__(self):
        self._entries: Dict[str, Declaration] = {}
        self._frozen = False

    def add(self, declaration: Declaration) -> None:
        """宣言を追加する。

        Args:
            declaration: 追加する宣言

        Raises:
            RuntimeError: freeze()後に呼ばれた場合
        """
        if self._frozen:
            raise RuntimeError("DeclarationIndexBuilder is already frozen")

        existing = self._entries.get(declaration.entity_id)
        if existing is None:
            self._entries[declaration.entity_id] = declaration
            return

        # 先に見つかった宣言ヘッダー・定義ヘッダーを優先
        self._entries[declaration.entity_id] = replace(
            existing,
            kind=existing.kind or declaration.kind,
            declaration_header=(
                existing.declaration_header or declaration.declaration_header
            ),
            definition_header=(
                existing.definition_header or declaration.definition_header
            ),
            inline=existing.inline or declaration.inline,
        )

    def add_all(self, declarations: Iterable[Declaration]) -> "DeclarationIndexBuilder":
        for declaration in declarations:
            self.add(declaration)
        return self

    def freeze(self) -> "DeclarationIndex":
        """インデックスを確定する。

        Returns:
            読み取り専用のDeclarationIndex
        """
        self._frozen = True
        index = DeclarationIndex(self._entries)
        logger.debug(f"Declaration index frozen with {len(index)} entities")
        return index


class DeclarationIndex:
    """読み取り専用の宣言インデックス。

    オーバーロード解決や特殊化の選択は行わない。フロントエンドが
    ASTに付与した識別子をそのままキーとして引く。構築後は変更され
    ないため、複数スレッドから共有できる。
    """

    def __init__(self, entries: Dict[str, Declaration]):
        self._entries = MappingProxyType(dict(entries))
        by_name: Dict[str, List[Declaration]] = {}
        for declaration in self._entries.values():
            by_name.setdefault(declaration.name, []).append(declaration)
        self._by_name: Dict[str, Tuple[Declaration, ...]] = {
            name: tuple(decls) for name, decls in by_name.items()
        }

    @classmethod
    def build(cls, declarations: Iterable[Declaration]) -> "DeclarationIndex":
        """宣言の列からインデックスを構築する。"""
        return DeclarationIndexBuilder().add_all(declarations).freeze()

    def resolve(
        self,
        entity_id: str,
        location: Optional[Location] = None
    ) -> Declaration:
        """識別子から宣言を取得する。

        Args:
            entity_id: 解決済みエンティティ識別子
            location: 参照位置（エラー報告用）

        Returns:
            対応するDeclaration

        Raises:
            DanglingReference: 識別子が登録されていない場合
        """
        declaration = self._entries.get(entity_id)
        if declaration is None:
            raise DanglingReference(entity_id, location)
        return declaration

    def lookup(
        self,
        name: str,
        kind: Optional[DeclarationKind] = None
    ) -> Optional[Declaration]:
        """正規名と種別で宣言を検索する。

        Args:
            name: 正規名
            kind: 種別（省略時は種別を問わない）

        Returns:
            最初に登録された一致する宣言、見つからない場合はNone
        """
        for declaration in self._by_name.get(name, ()):
            if kind is None or declaration.kind is kind:
                return declaration
        return None

    def declarations(self) -> Tuple[Declaration, ...]:
        return tuple(self._entries.values())

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
