"""設定管理モジュール。"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
from pathlib import Path
import os
import logging
import re

import yaml

from .analyzer.suppressions import DEFAULT_IGNORE_INCLUDES

logger = logging.getLogger(__name__)


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """アプリケーション設定。"""

    # C++パース用インクルードパス
    include_paths: List[str] = field(default_factory=list)

    # 追加のコンパイラ引数
    compiler_args: List[str] = field(default_factory=list)

    # compile_commands.json（ファイルまたはビルドディレクトリ）
    compile_commands: Optional[str] = None
    cxx_standard: str = "c++14"

    # libclangのパス（環境変数LIBCLANG_LIBRARY_PATHが優先）
    library_path: Optional[str] = None

    # 対象ソースファイルの正規表現（compile_commands.json使用時）
    source_filter: str = "."

    # 常に残すインクルード
    ignore_includes: str = DEFAULT_IGNORE_INCLUDES
    keep_headers: List[str] = field(default_factory=list)
    keep_corresponding_header: bool = True

    # 依存インデックス（ヘッダーのインクルード元）のJSON
    dependency_index: Optional[str] = None

    # --fix時の設定
    propagate_fixes: bool = True
    clang_format: Optional[str] = None

    # 処理設定
    max_workers: int = 1
    report_file: Optional[str] = None

    # ロギング設定
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, file_path: str) -> "Config":
        """YAMLファイルから設定を読み込む。

        Args:
            file_path: YAML設定ファイルのパス

        Returns:
            Configインスタンス
        """
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        config = cls.from_dict(data)

        # libclangのパスは環境変数が優先
        config.library_path = os.getenv("LIBCLANG_LIBRARY_PATH", config.library_path)

        logger.info(f"Configuration loaded from {file_path}")
        return config

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """辞書から設定を作成する。

        Args:
            data: 設定辞書

        Returns:
            Configインスタンス
        """
        config = cls()

        for key, value in data.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown configuration key ignored: {key}")

        return config

    def validate(self) -> List[str]:
        """設定を検証する。

        Returns:
            検証エラーのリスト（有効な場合は空）
        """
        errors = []

        for name in ("ignore_includes", "source_filter"):
            pattern = getattr(self, name)
            if pattern:
                try:
                    re.compile(pattern)
                except re.error as e:
                    errors.append(f"{name}の正規表現が不正です: {e}")

        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            errors.append(f"max_workersは1以上の整数である必要があります: {self.max_workers}")

        if not self.cxx_standard:
            errors.append("cxx_standardは必須です")

        if str(self.log_level).upper() not in _LOG_LEVELS:
            errors.append(f"log_levelが不正です: {self.log_level}")

        if self.compile_commands and not Path(self.compile_commands).exists():
            errors.append(f"compile_commands.jsonが存在しません: {self.compile_commands}")

        if self.library_path and not Path(self.library_path).exists():
            errors.append(f"libclangのパスが存在しません: {self.library_path}")

        # インクルードパスは警告のみ
        for path in self.include_paths:
            if not Path(path).exists():
                logger.warning(f"Include path does not exist: {path}")

        return errors

    def to_dict(self) -> dict:
        """設定を辞書に変換する。

        Returns:
            辞書形式の設定
        """
        return {
            "include_paths": self.include_paths,
            "compiler_args": self.compiler_args,
            "compile_commands": self.compile_commands,
            "cxx_standard": self.cxx_standard,
            "library_path": self.library_path,
            "source_filter": self.source_filter,
            "ignore_includes": self.ignore_includes,
            "keep_headers": self.keep_headers,
            "keep_corresponding_header": self.keep_corresponding_header,
            "dependency_index": self.dependency_index,
            "propagate_fixes": self.propagate_fixes,
            "clang_format": self.clang_format,
            "max_workers": self.max_workers,
            "report_file": self.report_file,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

    @classmethod
    def from_compile_commands(
        cls,
        project_root: str,
        output_path: Optional[str] = None
    ) -> "Config":
        """compile_commands.jsonから設定を自動生成。

        一般的なビルドディレクトリからcompile_commands.jsonを探し、
        インクルードパス・定義・C++規格を抽出する。

        Args:
            project_root: プロジェクトのルートディレクトリ
            output_path: 生成した設定を保存するパス（省略時は保存しない）

        Returns:
            Config: 自動生成された設定

        Raises:
            FileNotFoundError: compile_commands.jsonが見つからない場合
        """
        from .io.compile_commands import CompilationDatabase

        db_path = CompilationDatabase.find(project_root)
        if db_path is None:
            raise FileNotFoundError(
                f"compile_commands.json not found under {project_root}"
            )

        database = CompilationDatabase.load(str(db_path))

        config = cls()
        config.compile_commands = str(db_path.resolve())
        config.include_paths = database.include_paths()
        config.compiler_args = database.definitions()
        config.cxx_standard = database.cxx_standard() or config.cxx_standard

        if output_path:
            config.save_yaml(output_path)

        return config

    def save_yaml(self, file_path: str) -> None:
        """設定をYAMLファイルに保存。

        Args:
            file_path: 保存先パス
        """
        output_path = Path(file_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        data: Dict[str, Any] = {
            key: value for key, value in self.to_dict().items()
            if value is not None
        }

        with open(file_path, "w", encoding="utf-8") as f:
            yaml.dump(
                data,
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False
            )

        logger.info(f"Configuration saved to {file_path}")
