"""宣言・定義の必要性判定のテスト。"""

import pytest

from include_audit.models import DeclarationKind, ParameterUsage, Strength, UsageMode
from include_audit.resolver import ClassificationError, NecessityClassifier

from conftest import header


DECL = Strength.DECLARATION_SUFFICIENT
DEF = Strength.DEFINITION_REQUIRED


@pytest.fixture
def classifier():
    return NecessityClassifier()


class TestDecisionTable:
    """使用モードごとの強さのテスト。"""

    @pytest.mark.parametrize("kind, inline, expected", [
        (DeclarationKind.FUNCTION, False, DECL),
        (DeclarationKind.FUNCTION, True, DEF),
        (DeclarationKind.TEMPLATE_FUNCTION, False, DEF),
        (DeclarationKind.MACRO, False, DEF),
    ])
    def test_call(self, factory, classifier, kind, inline, expected):
        callee = factory.declare("callee", kind, declaration_header=header("f.hpp"),
                                 inline=inline)
        requirement = classifier.classify(factory.reference(callee, UsageMode.CALL))
        assert requirement.strength is expected
        assert classifier.errors == []

    def test_instantiate(self, factory, classifier):
        templ = factory.declare("TemplClasses", DeclarationKind.TEMPLATE_CLASS,
                                definition_header=header("TemplClasses.hpp"))
        requirement = classifier.classify(factory.reference(templ, UsageMode.INSTANTIATE))
        assert requirement.strength is DEF
        assert requirement.header == header("TemplClasses.hpp")

    def test_by_value_and_by_pointer(self, factory, classifier):
        classes = factory.declare("Classes", DeclarationKind.CLASS,
                                  declaration_header=header("Fwd.hpp"),
                                  definition_header=header("Classes.hpp"))

        by_value = classifier.classify(factory.reference(classes, UsageMode.BY_VALUE))
        by_pointer = classifier.classify(factory.reference(classes, UsageMode.BY_POINTER))

        assert (by_value.strength, by_value.header) == (DEF, header("Classes.hpp"))
        assert (by_pointer.strength, by_pointer.header) == (DECL, header("Fwd.hpp"))

    def test_variable_by_value_needs_declaration(self, factory, classifier):
        variable = factory.declare("counter", DeclarationKind.VARIABLE,
                                   declaration_header=header("globals.hpp"))
        requirement = classifier.classify(factory.reference(variable, UsageMode.BY_VALUE))
        assert requirement.strength is DECL

    @pytest.mark.parametrize("usage, expected", [
        (ParameterUsage.OPAQUE, DECL),
        (ParameterUsage.INSTANTIATED, DEF),
        (ParameterUsage.UNKNOWN, DEF),
    ])
    def test_template_argument(self, factory, classifier, usage, expected):
        templ_param = factory.declare("TemplParam", DeclarationKind.CLASS,
                                      definition_header=header("TemplParam.hpp"))
        reference = factory.reference(templ_param, UsageMode.TEMPLATE_ARGUMENT,
                                      parameter_usage=usage)
        assert classifier.classify(reference).strength is expected

    def test_template_param_bound_needs_definition(self, factory, classifier):
        bound = factory.declare("Sortable", DeclarationKind.TEMPLATE_PARAM_BOUND,
                                definition_header=header("Concepts.hpp"))
        reference = factory.reference(bound, UsageMode.TEMPLATE_ARGUMENT,
                                      parameter_usage=ParameterUsage.OPAQUE)
        assert classifier.classify(reference).strength is DEF

    @pytest.mark.parametrize("inlined, expected", [
        (UsageMode.BY_VALUE, DEF),
        (UsageMode.BY_POINTER, DECL),
    ])
    def test_macro_argument_inherits_inlined_strength(self, factory, classifier, inlined, expected):
        inside = factory.declare("InsideMacro", DeclarationKind.CLASS,
                                 definition_header=header("InsideMacro.hpp"))
        reference = factory.reference(inside, UsageMode.MACRO_ARGUMENT, inlined_mode=inlined)
        assert classifier.classify(reference).strength is expected


class TestClassificationErrors:
    """分類できない参照のテスト。"""

    def test_unknown_kind_falls_back_to_definition(self, factory, classifier):
        """種別不明は警告として記録し、definition-requiredとする。"""
        unknown = factory.declare("mystery", None, declaration_header=header("m.hpp"))
        requirement = classifier.classify(factory.reference(unknown, UsageMode.BY_POINTER))

        assert requirement.strength is DEF
        assert requirement.header == header("m.hpp")
        assert len(classifier.errors) == 1
        assert isinstance(classifier.errors[0], ClassificationError)

    def test_calling_a_class_is_an_error(self, factory, classifier):
        classes = factory.declare("Classes", DeclarationKind.CLASS,
                                  definition_header=header("Classes.hpp"))
        requirement = classifier.classify(factory.reference(classes, UsageMode.CALL))

        assert requirement.strength is DEF
        assert classifier.errors[0].reference.declaration is classes

    def test_macro_argument_without_inlined_mode(self, factory, classifier):
        inside = factory.declare("InsideMacro", DeclarationKind.CLASS,
                                 definition_header=header("InsideMacro.hpp"))
        classifier.classify(factory.reference(inside, UsageMode.MACRO_ARGUMENT))
        assert len(classifier.errors) == 1

    def test_errors_do_not_stop_classification(self, factory, classifier):
        """エラーがあっても残りの参照は処理を続ける。"""
        unknown = factory.declare("mystery", None, declaration_header=header("m.hpp"))
        functions = factory.declare("functions", DeclarationKind.FUNCTION,
                                    declaration_header=header("Functions.hpp"))
        requirements = classifier.classify_all([
            factory.reference(unknown, UsageMode.CALL),
            factory.reference(functions, UsageMode.CALL),
        ])

        assert [r.strength for r in requirements] == [DEF, DECL]
        assert len(classifier.errors) == 1
