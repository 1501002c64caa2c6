"""要求をヘッダーごとの判定に集約する。"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
import logging
import os

from ..models.reference import Reference
from ..models.requirement import Requirement, Strength
from ..models.unit import Suppression
from ..models.verdict import HeaderVerdict, MissingInclude, Verdict
from .errors import AmbiguousSuppression

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """集約結果。

    Attributes:
        verdicts: ヘッダーから判定へのマッピング（直接インクルードの記述順、
            続いて推移的に見つかったヘッダーの昇順）
        missing: 直接インクルードすべきヘッダーの提案
        warnings: 無視された抑制指定
    """
    verdicts: Dict[str, HeaderVerdict]
    missing: List[MissingInclude] = field(default_factory=list)
    warnings: List[AmbiguousSuppression] = field(default_factory=list)


class VerdictAggregator:
    """Requirementの集合からヘッダーごとのVerdictを決める。

    入力だけから結果が決まる純粋な処理で、同じ入力には常に同じ
    結果を返す。
    """

    def __init__(self, include_graph: Optional[Mapping[str, Sequence[str]]] = None):
        """集約器を初期化する。

        Args:
            include_graph: ファイルから直接インクルードするファイルへの
                マッピング。推移的な到達判定に使う
        """
        self.include_graph: Dict[str, Tuple[str, ...]] = {
            os.path.normpath(source): tuple(os.path.normpath(t) for t in targets)
            for source, targets in (include_graph or {}).items()
        }

    def aggregate(
        self,
        requirements: Iterable[Requirement],
        included_headers: Sequence[str],
        suppressions: Iterable[Suppression] = ()
    ) -> AggregationResult:
        """要求を集約して判定を生成する。

        Args:
            requirements: 分類済みの要求
            included_headers: 直接インクルードされたヘッダー（記述順）
            suppressions: 常に残す指定

        Returns:
            AggregationResult
        """
        requirements = list(requirements)
        included = list(dict.fromkeys(os.path.normpath(h) for h in included_headers))
        included_set = set(included)

        required = self._group_by_header(requirements)

        suppressed: Dict[str, Suppression] = {}
        warnings: List[AmbiguousSuppression] = []
        for suppression in suppressions:
            if suppression.header in included_set:
                suppressed.setdefault(suppression.header, suppression)
            else:
                warning = AmbiguousSuppression(suppression)
                logger.warning(str(warning))
                warnings.append(warning)

        # 直接インクルードされていない要求ヘッダー
        indirect = sorted(h for h in required if h not in included_set)
        closures = {header: self.closure(header) for header in included}

        verdicts: Dict[str, HeaderVerdict] = {}
        for header in included:
            provides = tuple(h for h in indirect if h in closures[header])
            verdicts[header] = self._direct_verdict(
                header, required, provides, suppressed, requirements
            )

        missing: List[MissingInclude] = []
        for header in indirect:
            strength, references = required[header]
            via = tuple(h for h in included if header in closures[h])
            if via:
                verdicts[header] = HeaderVerdict(
                    header=header,
                    verdict=Verdict.USED_TRANSITIVELY_ONLY,
                    strength=strength,
                    references=references,
                    directly_included=False
                )
            missing.append(MissingInclude(
                header=header,
                strength=strength,
                references=references,
                via=via
            ))

        logger.debug(
            f"Aggregated {len(requirements)} requirements into "
            f"{len(verdicts)} verdicts and {len(missing)} missing includes"
        )
        return AggregationResult(verdicts=verdicts, missing=missing, warnings=warnings)

    def closure(self, header: str) -> Set[str]:
        """ヘッダーから推移的にインクルードされるファイルを求める。

        Args:
            header: 起点のヘッダー

        Returns:
            起点自身を含まない到達可能なファイルの集合
        """
        start = os.path.normpath(header)
        visited: Set[str] = set()
        queue = deque(self.include_graph.get(start, ()))

        while queue:
            current = queue.popleft()
            if current in visited or current == start:
                continue
            visited.add(current)
            queue.extend(self.include_graph.get(current, ()))

        return visited

    def _group_by_header(
        self,
        requirements: Sequence[Requirement]
    ) -> Dict[str, Tuple[Strength, Tuple[Reference, ...]]]:
        """ヘッダーごとに最大の強さと参照をまとめる。"""
        grouped: Dict[str, List[Requirement]] = {}
        for requirement in requirements:
            if requirement.header is None:
                continue
            grouped.setdefault(requirement.header, []).append(requirement)

        return {
            header: (
                Strength.strongest(r.strength for r in reqs),
                tuple(r.reference for r in reqs)
            )
            for header, reqs in grouped.items()
        }

    def _direct_verdict(
        self,
        header: str,
        required: Dict[str, Tuple[Strength, Tuple[Reference, ...]]],
        provides: Tuple[str, ...],
        suppressed: Dict[str, Suppression],
        requirements: Sequence[Requirement]
    ) -> HeaderVerdict:
        """直接インクルードされたヘッダーの判定を決める。"""
        if header in required:
            strength, references = required[header]
        else:
            strength, references = None, ()

        if header in suppressed:
            return HeaderVerdict(
                header=header,
                verdict=Verdict.SUPPRESSED,
                strength=strength,
                references=references,
                provides=provides
            )

        if header in required:
            return HeaderVerdict(
                header=header,
                verdict=Verdict.USED_DIRECTLY,
                strength=strength,
                references=references,
                provides=provides
            )

        if provides:
            return HeaderVerdict(
                header=header,
                verdict=Verdict.USED_TRANSITIVELY_ONLY,
                strength=Strength.strongest(required[h][0] for h in provides),
                references=tuple(
                    reference for h in provides for reference in required[h][1]
                ),
                provides=provides
            )

        # 宣言には触れたが別のヘッダーで満たされた参照
        touched = tuple(
            r.reference for r in requirements
            if r.header != header and header in r.reference.declaration.headers()
        )
        return HeaderVerdict(
            header=header,
            verdict=Verdict.UNUSED,
            references=touched
        )
