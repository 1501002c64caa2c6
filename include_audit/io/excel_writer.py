"""解析結果のExcel出力モジュール。"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import PatternFill, Font, Alignment, Border, Side
from openpyxl.utils import get_column_letter

from ..models.reference import Reference
from ..models.verdict import UnitAnalysis, Verdict

logger = logging.getLogger(__name__)


_THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin")
)


def _fill(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


class ExcelWriter:
    """翻訳単位ごとの判定結果をExcelファイルに書き込む。"""

    # 各判定の色（RGB hex、#なし）
    VERDICT_COLORS: Dict[Verdict, str] = {
        Verdict.USED_DIRECTLY: "C6EFCE",           # 緑 - 使用中
        Verdict.USED_TRANSITIVELY_ONLY: "FFEB9C",  # 黄 - 直接インクルード推奨
        Verdict.UNUSED: "FFC7CE",                  # 赤 - 削除可能
        Verdict.SUPPRESSED: "D9D9D9",              # 灰 - 保持指定
    }
    MISSING_COLOR = "FFEB9C"

    VERDICT_HEADERS = ["ソースファイル", "ヘッダー", "判定", "必要な強さ", "直接インクルード", "経由で提供", "参照"]
    MISSING_HEADERS = ["ソースファイル", "ヘッダー", "必要な強さ", "現在の経路", "参照"]
    DIAGNOSTIC_HEADERS = ["ソースファイル", "重大度", "コード", "位置", "メッセージ"]

    # 参照列に書き出す最大件数
    MAX_REFERENCES = 10

    def __init__(self, output_file: str):
        """Excelライターを初期化する。

        Args:
            output_file: 出力Excelファイルのパス
        """
        self.output_file = Path(output_file)

    def write(
        self,
        analyses: Sequence[UnitAnalysis],
        failures: Optional[Dict[str, str]] = None
    ) -> None:
        """解析結果をワークブックに書き込んで保存する。

        Args:
            analyses: 翻訳単位ごとの解析結果
            failures: 解析に失敗したソースファイルからエラー内容への
                マッピング
        """
        failures = failures or {}

        wb = Workbook()
        ws = wb.active
        ws.title = "Verdicts"
        self._write_verdicts(ws, analyses)
        self._write_missing(wb.create_sheet("Missing"), analyses)
        self._write_diagnostics(wb.create_sheet("Diagnostics"), analyses, failures)
        self._write_summary(wb.create_sheet("Summary"), analyses, failures)

        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        wb.save(self.output_file)
        logger.info(f"Results written to {self.output_file}")

    def _write_header_row(self, ws, headers: List[str]) -> None:
        header_fill = _fill("4472C4")
        white_font = Font(bold=True, color="FFFFFF")
        header_alignment = Alignment(horizontal="center", vertical="center")

        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col)
            cell.value = header
            cell.font = white_font
            cell.alignment = header_alignment
            cell.fill = header_fill
            cell.border = _THIN_BORDER
        ws.freeze_panes = "A2"

    def _write_row(self, ws, row: int, values: Iterable) -> None:
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col)
            cell.value = value
            cell.border = _THIN_BORDER
            cell.alignment = Alignment(wrap_text=True, vertical="top")

    def _format_references(self, references: Sequence[Reference]) -> str:
        lines = [str(reference) for reference in references[:self.MAX_REFERENCES]]
        if len(references) > self.MAX_REFERENCES:
            lines.append(f"... 他 {len(references) - self.MAX_REFERENCES} 件")
        return "\n".join(lines)

    def _write_verdicts(self, ws, analyses: Sequence[UnitAnalysis]) -> None:
        self._write_header_row(ws, self.VERDICT_HEADERS)

        row = 2
        for analysis in analyses:
            for header_verdict in analysis.verdicts.values():
                self._write_row(ws, row, [
                    analysis.source_file,
                    header_verdict.header,
                    header_verdict.verdict.value,
                    header_verdict.strength.value if header_verdict.strength else "",
                    "yes" if header_verdict.directly_included else "no",
                    "\n".join(header_verdict.provides),
                    self._format_references(header_verdict.references),
                ])
                verdict_cell = ws.cell(row=row, column=3)
                verdict_cell.fill = _fill(self.VERDICT_COLORS[header_verdict.verdict])
                verdict_cell.alignment = Alignment(horizontal="center", vertical="top")
                row += 1

        self._set_widths(ws, [40, 50, 24, 24, 10, 50, 80])

    def _write_missing(self, ws, analyses: Sequence[UnitAnalysis]) -> None:
        self._write_header_row(ws, self.MISSING_HEADERS)

        row = 2
        for analysis in analyses:
            for missing in analysis.missing:
                self._write_row(ws, row, [
                    analysis.source_file,
                    missing.header,
                    missing.strength.value,
                    "\n".join(missing.via),
                    self._format_references(missing.references),
                ])
                ws.cell(row=row, column=2).fill = _fill(self.MISSING_COLOR)
                row += 1

        self._set_widths(ws, [40, 50, 24, 50, 80])

    def _write_diagnostics(
        self,
        ws,
        analyses: Sequence[UnitAnalysis],
        failures: Dict[str, str]
    ) -> None:
        self._write_header_row(ws, self.DIAGNOSTIC_HEADERS)

        row = 2
        for analysis in analyses:
            for diagnostic in analysis.diagnostics:
                self._write_row(ws, row, [
                    analysis.source_file,
                    diagnostic.severity.value,
                    diagnostic.code,
                    diagnostic.location.describe() if diagnostic.location else "",
                    diagnostic.message,
                ])
                row += 1

        for source_file, error in failures.items():
            self._write_row(ws, row, [source_file, "error", "AnalysisFailed", "", error])
            ws.cell(row=row, column=2).fill = _fill(self.VERDICT_COLORS[Verdict.UNUSED])
            row += 1

        self._set_widths(ws, [40, 10, 24, 50, 80])

    def _write_summary(
        self,
        ws,
        analyses: Sequence[UnitAnalysis],
        failures: Dict[str, str]
    ) -> None:
        """判定ごとの件数をまとめたサマリーシートを書き込む。"""
        counts: Dict[Verdict, int] = {verdict: 0 for verdict in Verdict}
        for analysis in analyses:
            for verdict, count in analysis.count_by_verdict().items():
                counts[verdict] += count
        total = sum(counts.values())

        ws["A1"] = "インクルード解析サマリー"
        ws["A1"].font = Font(bold=True, size=14)
        ws.merge_cells("A1:C1")

        ws["A2"] = f"生成日時: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        ws.merge_cells("A2:C2")

        header_font = Font(bold=True)
        for col, header in enumerate(["判定", "件数", "割合"], 1):
            cell = ws.cell(row=4, column=col)
            cell.value = header
            cell.font = header_font
            cell.border = _THIN_BORDER
            cell.alignment = Alignment(horizontal="center")

        row = 5
        for verdict, count in counts.items():
            cell_type = ws.cell(row=row, column=1)
            cell_type.value = verdict.value
            cell_type.fill = _fill(self.VERDICT_COLORS[verdict])
            cell_type.border = _THIN_BORDER

            cell_count = ws.cell(row=row, column=2)
            cell_count.value = count
            cell_count.alignment = Alignment(horizontal="right")
            cell_count.border = _THIN_BORDER

            cell_pct = ws.cell(row=row, column=3)
            cell_pct.value = f"{count / total * 100:.1f}%" if total > 0 else "0%"
            cell_pct.alignment = Alignment(horizontal="right")
            cell_pct.border = _THIN_BORDER
            row += 1

        # 合計行
        for col, value in enumerate(["合計", total, "100%"], 1):
            cell = ws.cell(row=row, column=col)
            cell.value = value
            cell.font = Font(bold=True)
            cell.border = _THIN_BORDER

        row += 2
        totals = [
            ("解析した翻訳単位", len(analyses)),
            ("解析に失敗した翻訳単位", len(failures)),
            ("不足インクルード", sum(len(a.missing) for a in analyses)),
            ("診断", sum(len(a.diagnostics) for a in analyses)),
        ]
        for label, value in totals:
            ws.cell(row=row, column=1).value = label
            ws.cell(row=row, column=2).value = value
            row += 1

        self._set_widths(ws, [26, 10, 10])

    @staticmethod
    def _set_widths(ws, widths: List[int]) -> None:
        for col, width in enumerate(widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width
