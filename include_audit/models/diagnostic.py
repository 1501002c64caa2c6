"""解析中に収集される診断情報モデル。"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum

from .location import Location


class Severity(Enum):
    """診断の重大度。"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Diagnostic:
    """判定結果と一緒に報告される診断。"""
    severity: Severity
    code: str
    message: str
    location: Optional[Location] = None

    @classmethod
    def from_error(
        cls,
        error: Exception,
        severity: Severity = Severity.WARNING
    ) -> "Diagnostic":
        """例外から診断を生成する。

        Args:
            error: 元の例外（location属性があれば使用する）
            severity: 重大度

        Returns:
            Diagnosticインスタンス
        """
        return cls(
            severity=severity,
            code=type(error).__name__,
            message=getattr(error, "message", str(error)),
            location=getattr(error, "location", None)
        )

    def __str__(self) -> str:
        prefix = f"{self.location.describe()}: " if self.location else ""
        return f"{prefix}{self.severity.value}: [{self.code}] {self.message}"
