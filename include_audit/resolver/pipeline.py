"""翻訳単位ごとの解決パイプラインと並列実行。"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional
import logging
import os

from ..models.diagnostic import Diagnostic, Severity
from ..models.unit import TranslationUnitModel
from ..models.verdict import UnitAnalysis
from ..utils.logger import ProgressLogger
from .declaration_index import DeclarationIndex
from .necessity_classifier import NecessityClassifier
from .reference_collector import ReferenceCollector
from .verdict_aggregator import VerdictAggregator

logger = logging.getLogger(__name__)


class ResolutionPipeline:
    """Location -> Index -> Collector -> Classifier -> Aggregatorの順に処理する。

    1つの翻訳単位の処理は単一スレッドで完結し、I/Oを行わない。
    """

    def __init__(self, index: Optional[DeclarationIndex] = None):
        """パイプラインを初期化する。

        Args:
            index: 共有する確定済みインデックス。省略時は翻訳単位ごとに
                その宣言から構築する
        """
        self.index = index

    def run(self, unit: TranslationUnitModel) -> UnitAnalysis:
        """翻訳単位を解析する。

        Args:
            unit: 解析対象の翻訳単位

        Returns:
            UnitAnalysis

        Raises:
            DanglingReference: 解決できない識別子がある場合
        """
        index = self.index
        if index is None:
            index = DeclarationIndex.build(unit.declarations)

        references = ReferenceCollector(index).collect(unit)

        classifier = NecessityClassifier()
        requirements = [
            requirement for requirement in classifier.classify_all(references)
            # 翻訳単位自身で満たされる要求は除外
            if requirement.header is not None
            and requirement.header != unit.source_file
        ]

        aggregator = VerdictAggregator(unit.include_graph)
        result = aggregator.aggregate(
            requirements, unit.included_headers, unit.suppressions
        )

        diagnostics: List[Diagnostic] = [
            Diagnostic.from_error(error, Severity.WARNING)
            for error in classifier.errors
        ]
        diagnostics.extend(
            Diagnostic.from_error(warning, Severity.WARNING)
            for warning in result.warnings
        )

        logger.debug(
            f"{unit.source_file}: {len(references)} references, "
            f"{len(requirements)} header requirements"
        )

        return UnitAnalysis(
            source_file=unit.source_file,
            verdicts=result.verdicts,
            missing=result.missing,
            diagnostics=diagnostics,
            references=references,
            includes=unit.includes
        )


def analyze_unit(
    unit: TranslationUnitModel,
    index: Optional[DeclarationIndex] = None
) -> UnitAnalysis:
    """1つの翻訳単位を解析する。"""
    return ResolutionPipeline(index).run(unit)


@dataclass
class UnitOutcome:
    """並列実行における1翻訳単位の結果。"""
    source_file: str
    analysis: Optional[UnitAnalysis] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.analysis is not None


def run_batch(
    tasks: Mapping[str, Callable[[], UnitAnalysis]],
    max_workers: int = 1
) -> List[UnitOutcome]:
    """独立した翻訳単位のタスクを並列に実行する。

    あるタスクの失敗は他のタスクに影響しない。失敗はそのタスクの
    UnitOutcome.errorに記録される。

    Args:
        tasks: ソースファイルから解析処理へのマッピング
        max_workers: ワーカースレッド数

    Returns:
        投入順に並んだUnitOutcomeのリスト
    """
    outcomes: Dict[str, UnitOutcome] = {
        source: UnitOutcome(source_file=os.path.normpath(source))
        for source in tasks
    }
    if not tasks:
        return []

    progress = ProgressLogger(len(tasks), logger)
    workers = max(1, max_workers)
    logger.debug(f"Analyzing {len(tasks)} units with {workers} workers")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_source = {
            executor.submit(task): source for source, task in tasks.items()
        }

        for future in as_completed(future_to_source):
            source = future_to_source[future]
            outcome = outcomes[source]
            try:
                outcome.analysis = future.result()
            except Exception as e:
                logger.error(f"Failed to analyze {source}: {e}")
                outcome.error = e
            progress.update(os.path.basename(source))

    progress.complete()

    return [outcomes[source] for source in tasks]
