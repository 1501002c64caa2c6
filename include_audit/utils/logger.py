"""ロギング設定モジュール。"""

import logging
import sys
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """ロギング設定をセットアップする。

    標準出力はレポート用に空けておき、ログは標準エラーに出す。

    Args:
        level: ログレベル（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_file: ログファイルへのパス（省略可）
        format_string: カスタムフォーマット文字列（省略可）

    Returns:
        ルートロガー
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


class ProgressLogger:
    """翻訳単位の処理進捗をログ出力する。

    複数のワーカースレッドから完了通知を受けるのは呼び出し側の
    1スレッドのみとする。
    """

    def __init__(
        self,
        total: int,
        logger: Optional[logging.Logger] = None,
        log_interval: int = 10
    ):
        """進捗ロガーを初期化する。

        Args:
            total: 翻訳単位の総数
            logger: 使用するロガー
            log_interval: 進捗更新の間隔
        """
        self.total = total
        self.current = 0
        self.logger = logger or logging.getLogger(__name__)
        self.log_interval = max(1, log_interval)

    def update(self, message: Optional[str] = None) -> None:
        """進捗を1つ進める。

        Args:
            message: 含めるメッセージ（省略可）
        """
        self.current += 1
        progress = self.current / self.total * 100 if self.total else 100.0

        if self.current % self.log_interval == 0 or self.current == self.total:
            msg = f"Progress: {self.current}/{self.total} ({progress:.1f}%)"
            if message:
                msg += f" - {message}"
            self.logger.info(msg)

    def complete(self, message: str = "Complete") -> None:
        self.logger.info(f"{message}: {self.total} units processed")
