"""解決済みASTから参照を収集する。"""

from dataclasses import dataclass
from typing import List, Optional
import logging
import os

from ..models.declaration import Declaration, DeclarationKind
from ..models.reference import ParameterUsage, Reference, UsageMode
from ..models.unit import AstNode, NodeKind, TranslationUnitModel
from .declaration_index import DeclarationIndex

logger = logging.getLogger(__name__)


# 親ノードから子に伝わる文脈
_CALLEE = "callee"
_TEMPLATE_ARGUMENT = "template-argument"
_BY_VALUE = "by-value"
_BY_POINTER = "by-pointer"

# 文脈を打ち切るノード
_RESETTING_KINDS = frozenset({
    NodeKind.TRANSLATION_UNIT,
    NodeKind.SCOPE,
    NodeKind.MACRO_EXPANSION,
})


@dataclass(frozen=True)
class _UseContext:
    """名前使用ノードを囲む構文上の文脈。"""
    hint: Optional[str] = None
    parameter_usage: ParameterUsage = ParameterUsage.UNKNOWN

    def descend(self, parent: AstNode, position: int) -> "_UseContext":
        """親ノードのposition番目の子に渡す文脈を求める。"""
        kind = parent.kind
        if kind is NodeKind.CALL_EXPR:
            # 先頭の子が呼び出し対象、残りは引数式
            return _UseContext(_CALLEE) if position == 0 else _UseContext()
        if kind is NodeKind.TEMPLATE_ARGUMENT:
            return _UseContext(_TEMPLATE_ARGUMENT, parent.parameter_usage)
        if kind is NodeKind.TEMPLATE_PARAMETER:
            # 制約・デフォルト引数はインスタンス化されない
            return _UseContext(_TEMPLATE_ARGUMENT, ParameterUsage.OPAQUE)
        if kind in (NodeKind.BASE_SPECIFIER, NodeKind.MEMBER_INITIALIZER,
                    NodeKind.VALUE_DECL):
            return _UseContext(_BY_VALUE)
        if kind is NodeKind.POINTER_DECL:
            return _UseContext(_BY_POINTER)
        if kind in _RESETTING_KINDS:
            return _UseContext()
        return self


class ReferenceCollector:
    """翻訳単位のASTを走査し、名前使用ごとにReferenceを生成する。"""

    FUNCTION_KINDS = frozenset({
        DeclarationKind.FUNCTION,
        DeclarationKind.TEMPLATE_FUNCTION,
    })

    def __init__(self, index: DeclarationIndex):
        """参照収集器を初期化する。

        Args:
            index: 識別子の解決に使う宣言インデックス
        """
        self.index = index

    def collect(self, unit: TranslationUnitModel) -> List[Reference]:
        """翻訳単位から参照を収集する。

        実効サイトが翻訳単位自身のソースファイルにある参照のみを
        文書順で返す。ヘッダー内の使用はそのヘッダーの責務となる。

        Args:
            unit: 解析対象の翻訳単位

        Returns:
            Referenceのリスト

        Raises:
            DanglingReference: インデックスに無い識別子を参照している場合
        """
        references: List[Reference] = []
        owner = os.path.normpath(unit.source_file)
        skipped = 0

        def traverse(node: AstNode, context: _UseContext):
            nonlocal skipped

            if node.is_name_use and node.location is not None:
                if node.location.effective_site.file_path == owner:
                    references.append(self._make_reference(node, context))
                else:
                    skipped += 1

            for position, child in enumerate(node.children):
                traverse(child, context.descend(node, position))

        traverse(unit.root, _UseContext())

        logger.debug(
            f"Collected {len(references)} references in {owner} "
            f"({skipped} outside the unit's own file)"
        )
        return references

    def _make_reference(self, node: AstNode, context: _UseContext) -> Reference:
        """名前使用ノードからReferenceを生成する。"""
        declaration = self.index.resolve(node.entity_id, node.location)
        mode = self._usage_mode(node, context, declaration)

        inlined_mode = None
        if node.from_macro_argument:
            inlined_mode = mode
            mode = UsageMode.MACRO_ARGUMENT

        parameter_usage = ParameterUsage.UNKNOWN
        if context.hint == _TEMPLATE_ARGUMENT:
            parameter_usage = context.parameter_usage

        return Reference(
            declaration=declaration,
            location=node.location,
            mode=mode,
            inlined_mode=inlined_mode,
            parameter_usage=parameter_usage,
            spelling=node.spelling or declaration.name
        )

    def _usage_mode(
        self,
        node: AstNode,
        context: _UseContext,
        declaration: Declaration
    ) -> UsageMode:
        """構文上の文脈から使用モードを決める。"""
        if node.kind is NodeKind.MACRO_EXPANSION:
            return UsageMode.CALL
        if context.hint == _TEMPLATE_ARGUMENT:
            return UsageMode.TEMPLATE_ARGUMENT
        if context.hint == _BY_POINTER:
            return UsageMode.BY_POINTER
        if node.kind is NodeKind.TEMPLATE_REF:
            return UsageMode.INSTANTIATE
        if node.kind is NodeKind.DECL_REF:
            if context.hint == _CALLEE or declaration.kind in self.FUNCTION_KINDS:
                return UsageMode.CALL
            return UsageMode.BY_VALUE
        # 値宣言・基底クラス・式中の型名
        return UsageMode.BY_VALUE
