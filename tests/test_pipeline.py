"""解決パイプラインのテスト。"""

import threading

import pytest

from include_audit.models import (
    AstNode,
    DeclarationKind,
    ExpansionFrame,
    FileSite,
    Location,
    NodeKind,
    ParameterUsage,
    Severity,
    Strength,
    Suppression,
    Verdict,
)
from include_audit.resolver import (
    DanglingReference,
    DeclarationIndex,
    ResolutionPipeline,
    analyze_unit,
    run_batch,
)

from conftest import MAIN, header


DECL = Strength.DECLARATION_SUFFICIENT
DEF = Strength.DEFINITION_REQUIRED


def _verdict(analysis, name):
    verdict = analysis.verdicts[header(name)]
    return verdict.verdict, verdict.strength


class TestScenarios:
    """典型的なインクルードパターンのテスト。"""

    def test_function_call_needs_declaration(self, factory):
        functions = factory.declare("functions", DeclarationKind.FUNCTION,
                                    declaration_header=header("Functions.hpp"))
        unit = factory.unit(
            AstNode(NodeKind.CALL_EXPR, children=(
                factory.use(NodeKind.DECL_REF, functions, 12),
            )),
            includes=[header("Functions.hpp")]
        )

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "Functions.hpp") == (Verdict.USED_DIRECTLY, DECL)

    def test_template_function_call_needs_definition(self, factory):
        templ = factory.declare("templFunctions", DeclarationKind.TEMPLATE_FUNCTION,
                                definition_header=header("TemplFunctions.hpp"))
        call = AstNode(NodeKind.CALL_EXPR, children=(
            factory.use(NodeKind.DECL_REF, templ, 13, children=(
                AstNode(NodeKind.TEMPLATE_ARGUMENT),
            )),
        ))
        unit = factory.unit(call, includes=[header("TemplFunctions.hpp")])

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "TemplFunctions.hpp") == (Verdict.USED_DIRECTLY, DEF)

    def test_by_value_class_needs_definition(self, factory):
        classes = factory.declare("Classes", DeclarationKind.CLASS,
                                  definition_header=header("Classes.hpp"))
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(
                factory.use(NodeKind.TYPE_REF, classes, 15),
            )),
            includes=[header("Classes.hpp")]
        )

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "Classes.hpp") == (Verdict.USED_DIRECTLY, DEF)

    def test_class_template_with_user_type(self, factory):
        """クラステンプレートと引数の型の両方に定義が必要。"""
        templ = factory.declare("TemplClasses", DeclarationKind.TEMPLATE_CLASS,
                                definition_header=header("TemplClasses.hpp"))
        classes = factory.declare("Classes", DeclarationKind.CLASS,
                                  definition_header=header("Classes.hpp"))
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(
                factory.use(NodeKind.TEMPLATE_REF, templ, 16),
                AstNode(NodeKind.TEMPLATE_ARGUMENT, children=(
                    factory.use(NodeKind.TYPE_REF, classes, 16),
                )),
            )),
            includes=[header("Classes.hpp"), header("TemplClasses.hpp")]
        )

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "TemplClasses.hpp") == (Verdict.USED_DIRECTLY, DEF)
        assert _verdict(analysis, "Classes.hpp") == (Verdict.USED_DIRECTLY, DEF)

    def _templ_param_call(self, factory, templ_param, line):
        local = factory.declare("templParam", DeclarationKind.TEMPLATE_FUNCTION)
        return AstNode(NodeKind.CALL_EXPR, children=(
            factory.use(NodeKind.DECL_REF, local, line, children=(
                AstNode(
                    NodeKind.TEMPLATE_ARGUMENT,
                    children=(factory.use(NodeKind.TYPE_REF, templ_param, line),),
                    parameter_usage=ParameterUsage.OPAQUE
                ),
            )),
        ))

    def test_opaque_template_argument_needs_declaration(self, factory):
        templ_param = factory.declare("TemplParam", DeclarationKind.CLASS,
                                      definition_header=header("TemplParam.hpp"))
        unit = factory.unit(
            self._templ_param_call(factory, templ_param, 18),
            includes=[header("TemplParam.hpp")]
        )

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "TemplParam.hpp") == (Verdict.USED_DIRECTLY, DECL)
        # ローカルのテンプレート関数は要求を生まない
        assert analysis.missing == []

    def test_opaque_argument_does_not_lower_other_uses(self, factory):
        """別の箇所で定義が必要なら最大の強さを採用する。"""
        templ_param = factory.declare("TemplParam", DeclarationKind.CLASS,
                                      definition_header=header("TemplParam.hpp"))
        unit = factory.unit(
            self._templ_param_call(factory, templ_param, 18),
            AstNode(NodeKind.VALUE_DECL, children=(
                factory.use(NodeKind.TYPE_REF, templ_param, 19),
            )),
            includes=[header("TemplParam.hpp")]
        )

        analysis = analyze_unit(unit)
        assert _verdict(analysis, "TemplParam.hpp") == (Verdict.USED_DIRECTLY, DEF)
        modes = [r.mode.value for r in analysis.references]
        assert modes == ["call", "template-argument", "by-value"]

    def test_macro_body_use_attributed_to_call_site(self, factory):
        """マクロ本体の使用は、マクロを定義したヘッダーではなく呼び出し側に帰属する。"""
        macro = factory.declare("INSIDE_MACRO", DeclarationKind.MACRO,
                                definition_header=header("Macros.hpp"))
        inside = factory.declare("InsideMacro", DeclarationKind.CLASS,
                                 definition_header=header("InsideMacro.hpp"))
        frame = ExpansionFrame(
            macro_name="INSIDE_MACRO",
            definition_site=FileSite(header("Macros.hpp"), 4),
            call_site=FileSite(MAIN, 20, 5)
        )
        unit = factory.unit(
            factory.use(NodeKind.MACRO_EXPANSION, macro, 20),
            AstNode(NodeKind.SCOPE, children=(
                factory.use(
                    NodeKind.TYPE_REF, inside, 4,
                    location=Location(FileSite(header("Macros.hpp"), 4), (frame,))
                ),
            )),
            includes=[header("InsideMacro.hpp"), header("Macros.hpp"), header("Kept.hpp")],
            suppressions=[Suppression(header("Kept.hpp"), "keep comment")]
        )

        analysis = analyze_unit(unit)
        assert analysis.verdicts[header("InsideMacro.hpp")].verdict is Verdict.USED_DIRECTLY
        assert analysis.verdicts[header("Kept.hpp")].verdict is Verdict.SUPPRESSED

        macro_refs = analysis.verdicts[header("Macros.hpp")].references
        assert [r.declaration.name for r in macro_refs] == ["INSIDE_MACRO"]

        [inside_ref] = analysis.verdicts[header("InsideMacro.hpp")].references
        assert inside_ref.effective_site == FileSite(MAIN, 20, 5)

    def test_self_requirements_are_dropped(self, factory):
        """翻訳単位自身のファイルへの要求は除外する。"""
        own = factory.declare("Own", DeclarationKind.CLASS, definition_header=MAIN)
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(factory.use(NodeKind.TYPE_REF, own, 3),)),
        )

        analysis = analyze_unit(unit)
        assert analysis.verdicts == {}
        assert analysis.missing == []


class TestPipelineDiagnostics:
    """診断とエラー伝播のテスト。"""

    def test_classification_error_becomes_warning(self, factory):
        mystery = factory.declare("mystery", None, declaration_header=header("m.hpp"))
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(factory.use(NodeKind.TYPE_REF, mystery, 8),)),
            includes=[header("m.hpp")]
        )

        analysis = analyze_unit(unit)
        [diagnostic] = analysis.diagnostics
        assert diagnostic.severity is Severity.WARNING
        assert diagnostic.code == "ClassificationError"
        assert diagnostic.location.effective_site.line == 8
        assert _verdict(analysis, "m.hpp") == (Verdict.USED_DIRECTLY, DEF)

    def test_ambiguous_suppression_becomes_warning(self, factory):
        unit = factory.unit(
            includes=[header("Classes.hpp")],
            suppressions=[Suppression(header("Other.hpp"), "keep_headers")]
        )

        analysis = analyze_unit(unit)
        assert [d.code for d in analysis.diagnostics] == ["AmbiguousSuppression"]
        assert analysis.verdicts[header("Classes.hpp")].verdict is Verdict.UNUSED

    def test_missing_include_for_transitive_header(self, factory):
        inner = factory.declare("Inner", DeclarationKind.CLASS,
                                definition_header=header("Inner.hpp"))
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(factory.use(NodeKind.TYPE_REF, inner, 4),)),
            includes=[header("Wrapper.hpp")],
            include_graph={header("Wrapper.hpp"): [header("Inner.hpp")]}
        )

        analysis = analyze_unit(unit)
        assert analysis.verdicts[header("Wrapper.hpp")].verdict is Verdict.USED_TRANSITIVELY_ONLY
        assert [m.header for m in analysis.missing] == [header("Inner.hpp")]
        assert not analysis.is_clean

    def test_dangling_reference_aborts_unit(self, factory):
        unit = factory.unit(
            AstNode(NodeKind.TYPE_REF, location=factory.site(2), entity_id="c:@S@Ghost")
        )

        with pytest.raises(DanglingReference):
            ResolutionPipeline().run(unit)

    def test_shared_index(self, factory):
        """確定済みインデックスを複数の翻訳単位で共有できる。"""
        classes = factory.declare("Classes", DeclarationKind.CLASS,
                                  definition_header=header("Classes.hpp"))
        index = DeclarationIndex.build([classes])
        unit = factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(factory.use(NodeKind.TYPE_REF, classes, 1),)),
            includes=[header("Classes.hpp")]
        )

        pipeline = ResolutionPipeline(index)
        assert pipeline.run(unit).verdicts == pipeline.run(unit).verdicts


class TestRunBatch:
    """複数翻訳単位の並列実行のテスト。"""

    def _unit_for(self, factory, name):
        decl = factory.declare(name, DeclarationKind.CLASS,
                               definition_header=header(f"{name}.hpp"))
        return factory.unit(
            AstNode(NodeKind.VALUE_DECL, children=(factory.use(NodeKind.TYPE_REF, decl, 1),)),
            includes=[header(f"{name}.hpp")]
        )

    def test_failure_is_isolated(self, factory):
        """1つの翻訳単位の失敗は他に影響しない。"""
        good = self._unit_for(factory, "Good")
        broken = factory.unit(
            AstNode(NodeKind.TYPE_REF, location=factory.site(1), entity_id="c:@S@Ghost")
        )

        outcomes = run_batch({
            "/project/src/a.cpp": lambda: analyze_unit(good),
            "/project/src/b.cpp": lambda: analyze_unit(broken),
            "/project/src/c.cpp": lambda: analyze_unit(good),
        }, max_workers=3)

        assert [o.source_file for o in outcomes] == [
            "/project/src/a.cpp", "/project/src/b.cpp", "/project/src/c.cpp"
        ]
        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, DanglingReference)
        assert outcomes[0].analysis.verdicts[header("Good.hpp")].verdict is Verdict.USED_DIRECTLY

    def test_runs_on_worker_threads(self, factory):
        unit = self._unit_for(factory, "Good")
        threads = set()

        def task():
            threads.add(threading.current_thread().name)
            return analyze_unit(unit)

        outcomes = run_batch({f"/project/src/{i}.cpp": task for i in range(4)}, max_workers=2)

        assert all(o.succeeded for o in outcomes)
        assert threading.main_thread().name not in threads

    def test_empty_batch(self):
        assert run_batch({}) == []
