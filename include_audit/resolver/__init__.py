"""ヘッダー使用状況の解決エンジン。"""

from .errors import (
    ResolverError,
    DanglingReference,
    ClassificationError,
    AmbiguousSuppression,
)
from .declaration_index import DeclarationIndex, DeclarationIndexBuilder
from .reference_collector import ReferenceCollector
from .necessity_classifier import NecessityClassifier
from .verdict_aggregator import AggregationResult, VerdictAggregator
from .pipeline import ResolutionPipeline, UnitOutcome, analyze_unit, run_batch

__all__ = [
    "ResolverError",
    "DanglingReference",
    "ClassificationError",
    "AmbiguousSuppression",
    "DeclarationIndex",
    "DeclarationIndexBuilder",
    "ReferenceCollector",
    "NecessityClassifier",
    "AggregationResult",
    "VerdictAggregator",
    "ResolutionPipeline",
    "UnitOutcome",
    "analyze_unit",
    "run_batch",
]
