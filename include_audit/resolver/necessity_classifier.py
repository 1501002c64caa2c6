"""参照ごとに宣言と定義のどちらが必要かを判定する。"""

from typing import Iterable, List, Optional
import logging

from ..models.declaration import DeclarationKind
from ..models.reference import ParameterUsage, Reference, UsageMode
from ..models.requirement import Requirement, Strength
from .errors import ClassificationError

logger = logging.getLogger(__name__)


class NecessityClassifier:
    """ReferenceをRequirementに変換する。

    分類できない参照はClassificationErrorとして記録し、保守的に
    definition-requiredとして扱って処理を続ける。
    """

    # 呼び出しに定義本体が必要な種別
    INLINE_CALLEE_KINDS = frozenset({
        DeclarationKind.TEMPLATE_FUNCTION,
        DeclarationKind.MACRO,
    })

    CALLABLE_KINDS = frozenset({
        DeclarationKind.FUNCTION,
        DeclarationKind.TEMPLATE_FUNCTION,
        DeclarationKind.MACRO,
        DeclarationKind.VARIABLE,
    })

    # 型ではなく名前として参照される種別
    NAMED_ENTITY_KINDS = frozenset({
        DeclarationKind.FUNCTION,
        DeclarationKind.VARIABLE,
    })

    def __init__(self):
        self.errors: List[ClassificationError] = []

    def classify(self, reference: Reference) -> Requirement:
        """参照を要求に変換する。

        Args:
            reference: 分類する参照

        Returns:
            ヘッダーと強さを持つRequirement
        """
        try:
            strength = self._strength_for(reference, reference.mode)
        except ClassificationError as e:
            logger.warning(f"{e}; assuming definition-required")
            self.errors.append(e)
            strength = Strength.DEFINITION_REQUIRED

        header = reference.declaration.header_for(strength)
        return Requirement(header=header, strength=strength, reference=reference)

    def classify_all(self, references: Iterable[Reference]) -> List[Requirement]:
        return [self.classify(reference) for reference in references]

    def _strength_for(
        self,
        reference: Reference,
        mode: Optional[UsageMode]
    ) -> Strength:
        """使用モードと宣言種別から強さを決める。

        Raises:
            ClassificationError: 組み合わせを分類できない場合
        """
        declaration = reference.declaration
        kind = declaration.kind

        if kind is None:
            raise ClassificationError(
                f"Declaration '{declaration.name}' has no recognised kind",
                reference
            )

        if mode is UsageMode.MACRO_ARGUMENT:
            inner = reference.inlined_mode
            if inner is None or inner is UsageMode.MACRO_ARGUMENT:
                raise ClassificationError(
                    f"Macro argument use of '{declaration.name}' has no inlined usage mode",
                    reference
                )
            # 呼び出し位置に展開した場合の強さを引き継ぐ
            return self._strength_for(reference, inner)

        # マクロとテンプレート制約には前方宣言が存在しない
        if kind in (DeclarationKind.MACRO, DeclarationKind.TEMPLATE_PARAM_BOUND):
            return Strength.DEFINITION_REQUIRED

        if mode is UsageMode.CALL:
            if kind not in self.CALLABLE_KINDS:
                raise ClassificationError(
                    f"Cannot call {kind.value} '{declaration.name}'",
                    reference
                )
            if kind in self.INLINE_CALLEE_KINDS or declaration.inline:
                return Strength.DEFINITION_REQUIRED
            return Strength.DECLARATION_SUFFICIENT

        if mode is UsageMode.INSTANTIATE:
            if not kind.is_template:
                raise ClassificationError(
                    f"Cannot instantiate non-template {kind.value} '{declaration.name}'",
                    reference
                )
            return Strength.DEFINITION_REQUIRED

        if mode is UsageMode.BY_VALUE:
            if kind in self.NAMED_ENTITY_KINDS:
                return Strength.DECLARATION_SUFFICIENT
            return Strength.DEFINITION_REQUIRED

        if mode is UsageMode.BY_POINTER:
            return Strength.DECLARATION_SUFFICIENT

        if mode is UsageMode.TEMPLATE_ARGUMENT:
            if reference.parameter_usage is ParameterUsage.OPAQUE:
                return Strength.DECLARATION_SUFFICIENT
            if kind in self.NAMED_ENTITY_KINDS:
                return Strength.DECLARATION_SUFFICIENT
            return Strength.DEFINITION_REQUIRED

        raise ClassificationError(
            f"Unsupported usage mode {mode!r} for '{declaration.name}'",
            reference
        )
