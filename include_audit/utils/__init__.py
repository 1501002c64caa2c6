"""ユーティリティモジュール。"""

from .logger import setup_logging, ProgressLogger

__all__ = ["setup_logging", "ProgressLogger"]
