"""Excelレポート出力のテスト。"""

from pathlib import Path
from tempfile import TemporaryDirectory

from openpyxl import load_workbook

from include_audit.io.excel_writer import ExcelWriter
from include_audit.models import AstNode, DeclarationKind, NodeKind, Suppression
from include_audit.resolver import analyze_unit

from conftest import header


def _analysis(factory):
    classes = factory.declare("Classes", DeclarationKind.CLASS,
                              definition_header=header("Classes.hpp"))
    inner = factory.declare("Inner", DeclarationKind.CLASS,
                            definition_header=header("Inner.hpp"))
    mystery = factory.declare("mystery", None, declaration_header=header("Classes.hpp"))
    unit = factory.unit(
        AstNode(NodeKind.VALUE_DECL, children=(
            factory.use(NodeKind.TYPE_REF, classes, 5),
            factory.use(NodeKind.TYPE_REF, inner, 6),
            factory.use(NodeKind.TYPE_REF, mystery, 7),
        )),
        includes=[header("Classes.hpp"), header("Wrapper.hpp"), header("Unused.hpp"),
                  header("Kept.hpp")],
        include_graph={header("Wrapper.hpp"): [header("Inner.hpp")]},
        suppressions=[Suppression(header("Kept.hpp"), "keep comment")]
    )
    return analyze_unit(unit)


class TestExcelWriter:
    """ExcelWriterのテスト。"""

    def test_sheets_and_rows(self, factory):
        analysis = _analysis(factory)

        with TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "reports" / "include_report.xlsx"
            ExcelWriter(str(output)).write([analysis], {"/project/src/broken.cpp": "parse failed"})

            wb = load_workbook(output)
            assert wb.sheetnames == ["Verdicts", "Missing", "Diagnostics", "Summary"]

            verdicts = wb["Verdicts"]
            assert verdicts.cell(row=1, column=1).value == "ソースファイル"
            rows = {
                verdicts.cell(row=row, column=2).value: verdicts.cell(row=row, column=3).value
                for row in range(2, verdicts.max_row + 1)
            }
            assert rows == {
                header("Classes.hpp"): "used-directly",
                header("Wrapper.hpp"): "used-transitively-only",
                header("Unused.hpp"): "unused",
                header("Kept.hpp"): "suppressed",
                header("Inner.hpp"): "used-transitively-only",
            }

            missing = wb["Missing"]
            assert missing.cell(row=2, column=2).value == header("Inner.hpp")
            assert missing.cell(row=2, column=4).value == header("Wrapper.hpp")

            diagnostics = wb["Diagnostics"]
            codes = [diagnostics.cell(row=row, column=3).value
                     for row in range(2, diagnostics.max_row + 1)]
            assert codes == ["ClassificationError", "AnalysisFailed"]

            summary = wb["Summary"]
            assert summary["A1"].value == "インクルード解析サマリー"
            assert summary.cell(row=5, column=1).value == "used-directly"

    def test_empty_report(self):
        with TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "empty.xlsx"
            ExcelWriter(str(output)).write([])

            wb = load_workbook(output)
            assert wb["Verdicts"].max_row == 1
            assert wb["Summary"].cell(row=5, column=3).value == "0%"
