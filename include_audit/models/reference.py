"""名前の使用（参照）モデル。"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum

from .declaration import Declaration
from .location import FileSite, Location


class UsageMode(Enum):
    """構文上の文脈から決まる使用モード。"""
    CALL = "call"
    INSTANTIATE = "instantiate"
    BY_VALUE = "by-value"
    BY_POINTER = "by-pointer"
    TEMPLATE_ARGUMENT = "template-argument"
    MACRO_ARGUMENT = "macro-argument"


class ParameterUsage(Enum):
    """テンプレート定義自身がパラメータをどう使うか。"""
    OPAQUE = "opaque"              # 型名としてのみ使用
    INSTANTIATED = "instantiated"  # 値として生成・コピーされる
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Reference:
    """ある位置での宣言の使用1件。"""
    declaration: Declaration
    location: Location
    mode: UsageMode
    inlined_mode: Optional[UsageMode] = None
    parameter_usage: ParameterUsage = ParameterUsage.UNKNOWN
    spelling: str = ""

    @property
    def effective_site(self) -> FileSite:
        return self.location.effective_site

    def __str__(self) -> str:
        mode = self.mode.value
        if self.inlined_mode is not None:
            mode = f"{mode}/{self.inlined_mode.value}"
        return f"{self.declaration.name} ({mode}) at {self.location.describe()}"
