"""ヘッダーごとの判定結果モデル。"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from enum import Enum

from .diagnostic import Diagnostic, Severity
from .reference import Reference
from .requirement import Strength
from .unit import IncludeDirective


class Verdict(Enum):
    """インクルードされたヘッダーの判定。"""
    USED_DIRECTLY = "used-directly"
    USED_TRANSITIVELY_ONLY = "used-transitively-only"
    UNUSED = "unused"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class HeaderVerdict:
    """1つのヘッダーに対する判定。"""
    header: str
    verdict: Verdict
    strength: Optional[Strength] = None
    references: Tuple[Reference, ...] = ()
    provides: Tuple[str, ...] = ()
    directly_included: bool = True

    @property
    def removable(self) -> bool:
        """インクルードを削除してよいかどうか。"""
        return self.directly_included and self.verdict is Verdict.UNUSED

    def __str__(self) -> str:
        text = f"{self.header}: {self.verdict.value}"
        if self.strength is not None:
            text += f" ({self.strength.value})"
        return text


@dataclass(frozen=True)
class MissingInclude:
    """直接インクルードすべきヘッダーの提案。"""
    header: str
    strength: Strength
    references: Tuple[Reference, ...]
    via: Tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"add {self.header} ({self.strength.value})"
        if self.via:
            text += f", currently reached through {', '.join(self.via)}"
        return text


@dataclass
class UnitAnalysis:
    """1翻訳単位の解析結果。"""
    source_file: str
    verdicts: Dict[str, HeaderVerdict]
    missing: List[MissingInclude] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    references: List[Reference] = field(default_factory=list)
    includes: Tuple[IncludeDirective, ...] = ()

    def headers_with(self, verdict: Verdict) -> List[str]:
        """指定した判定のヘッダー一覧を取得する。"""
        return [h for h, v in self.verdicts.items() if v.verdict is verdict]

    def unused_includes(self) -> List[IncludeDirective]:
        """削除可能なインクルード指令を取得する。"""
        return [
            directive for directive in self.includes
            if directive.header in self.verdicts
            and self.verdicts[directive.header].removable
        ]

    @property
    def is_clean(self) -> bool:
        """未使用・不足インクルードが無いかどうか。"""
        return not self.unused_includes() and not self.missing

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.diagnostics)

    def count_by_verdict(self) -> Dict[Verdict, int]:
        counts = {verdict: 0 for verdict in Verdict}
        for header_verdict in self.verdicts.values():
            counts[header_verdict.verdict] += 1
        return counts
