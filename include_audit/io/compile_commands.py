"""compile_commands.json (JSON Compilation Database) reader."""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from pathlib import Path
import json
import logging
import os
import re
import shlex

from .dependency_index import DependencyIndex
from .include_editor import is_header_file

logger = logging.getLogger(__name__)


# パスを引数に取るオプション
_PATH_OPTIONS = ("-I", "-isystem", "-iquote", "-idirafter", "-include")


class CompilationDatabaseError(Exception):
    """compile_commands.jsonの読み込みエラー。"""
    pass


@dataclass
class CompileCommand:
    """1ソースファイル分のコンパイルコマンド。

    Attributes:
        file: ソースファイルの絶対パス
        directory: コマンドの作業ディレクトリ
        arguments: コンパイラを含む元の引数列
    """
    file: str
    directory: str
    arguments: List[str] = field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: Dict) -> "CompileCommand":
        """compile_commands.jsonの1エントリから生成する。

        Raises:
            CompilationDatabaseError: 必須キーが無い場合
        """
        if "file" not in entry or "directory" not in entry:
            raise CompilationDatabaseError(f"Invalid entry: {entry}")

        directory = entry["directory"]
        arguments = entry.get("arguments")
        if not arguments:
            arguments = shlex.split(entry.get("command", ""))

        file_path = entry["file"]
        if not os.path.isabs(file_path):
            file_path = os.path.join(directory, file_path)

        return cls(
            file=os.path.normpath(file_path),
            directory=directory,
            arguments=list(arguments)
        )

    def clang_args(self) -> List[str]:
        """libclangに渡す引数を取得する。

        コンパイラ本体・-c・-o <出力>・入力ファイルを取り除き、
        相対パスのインクルードディレクトリは作業ディレクトリ基準で
        絶対パスに直す。

        Returns:
            引数のリスト
        """
        args: List[str] = []
        i = 1  # 先頭はコンパイラ
        while i < len(self.arguments):
            arg = self.arguments[i]

            if arg == "-c":
                i += 1
                continue
            if arg == "-o":
                i += 2
                continue
            if arg.startswith("-o") and len(arg) > 2:
                i += 1
                continue
            if self._is_input_file(arg):
                i += 1
                continue

            option = next(
                (opt for opt in _PATH_OPTIONS if arg == opt or
                 (opt == "-I" and arg.startswith("-I"))),
                None
            )
            if option is not None:
                if arg == option and i + 1 < len(self.arguments):
                    i += 1
                    value = self.arguments[i]
                else:
                    value = arg[len(option):]
                if option == "-I":
                    args.append(f"-I{self._absolute(value)}")
                else:
                    args.extend([option, self._absolute(value)])
                i += 1
                continue

            args.append(arg)
            i += 1

        return args

    @property
    def include_paths(self) -> List[str]:
        return [arg[2:] for arg in self.clang_args() if arg.startswith("-I")]

    @property
    def definitions(self) -> List[str]:
        return [arg for arg in self.clang_args() if arg.startswith("-D")]

    @property
    def cxx_standard(self) -> Optional[str]:
        standard = None
        for arg in self.arguments:
            if arg.startswith("-std="):
                standard = arg.split("=", 1)[1]
        return standard

    def _is_input_file(self, arg: str) -> bool:
        if arg.startswith("-"):
            return False
        candidate = arg if os.path.isabs(arg) else os.path.join(self.directory, arg)
        return os.path.normpath(candidate) == self.file

    def _absolute(self, path: str) -> str:
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self.directory, path))


class CompilationDatabase:
    """compile_commands.jsonの内容。

    Attributes:
        path: 読み込んだファイルのパス
        commands: ソースファイルからCompileCommandへのマッピング
    """

    # 一般的なビルドディレクトリ
    SEARCH_DIRS = ["build", "cmake-build-debug", "cmake-build-release", "out/build", "."]

    def __init__(self, commands: List[CompileCommand], path: Optional[str] = None):
        self.path = path
        self.commands: Dict[str, CompileCommand] = {}
        for command in commands:
            self.commands.setdefault(command.file, command)

    @classmethod
    def find(cls, project_root: str) -> Optional[Path]:
        """compile_commands.jsonを検索する。

        Args:
            project_root: プロジェクトのルートディレクトリ

        Returns:
            compile_commands.jsonのパス、見つからない場合はNone
        """
        root = Path(project_root)
        for directory in cls.SEARCH_DIRS:
            candidate = root / directory / "compile_commands.json"
            if candidate.exists():
                return candidate
        return None

    @classmethod
    def load(cls, path: str, source_filter: Optional[str] = None) -> "CompilationDatabase":
        """compile_commands.jsonを読み込む。

        ディレクトリを指定した場合はその中のcompile_commands.jsonを
        読み込む。

        Args:
            path: ファイルまたはディレクトリのパス
            source_filter: 対象ソースファイルを絞り込む正規表現

        Returns:
            CompilationDatabase

        Raises:
            CompilationDatabaseError: ファイルが無い、または不正な場合
        """
        db_path = Path(path)
        if db_path.is_dir():
            db_path = db_path / "compile_commands.json"

        try:
            with open(db_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise CompilationDatabaseError(
                f"Failed to read compile_commands.json at {db_path}: {e}"
            )

        if not isinstance(data, list):
            raise CompilationDatabaseError(
                f"compile_commands.json must contain a list: {db_path}"
            )

        pattern = re.compile(source_filter) if source_filter else None
        commands = []
        for entry in data:
            command = CompileCommand.from_entry(entry)
            if pattern is not None and not pattern.search(command.file):
                continue
            commands.append(command)

        logger.info(f"Loaded {len(commands)} compile commands from {db_path}")
        return cls(commands, str(db_path))

    def source_files(self) -> List[str]:
        return list(self.commands)

    def command_for(
        self,
        file_path: str,
        dependencies: Optional[DependencyIndex] = None
    ) -> Optional[CompileCommand]:
        """ファイルのコンパイルコマンドを取得する。

        ヘッダーのようにデータベースに無いファイルには、依存インデックス
        上でそれをインクルードしているソースファイル、同じ名前の
        ソースファイル、同じディレクトリのソースファイルの順に
        コマンドを流用する。

        Args:
            file_path: ファイルパス
            dependencies: ヘッダーのインクルード元をたどる依存インデックス

        Returns:
            CompileCommand、見つからない場合はNone
        """
        normalized = os.path.normpath(os.path.abspath(file_path))
        command = self.commands.get(normalized)
        if command is not None:
            return command

        if not is_header_file(normalized):
            return None

        if dependencies is not None:
            command = self._command_of_dependents(normalized, dependencies)
            if command is not None:
                return command

        stem = Path(normalized).stem
        directory = os.path.dirname(normalized)
        same_dir = None
        for source, candidate in self.commands.items():
            if Path(source).stem == stem:
                logger.debug(f"Using compile command of {source} for {file_path}")
                return candidate
            if same_dir is None and os.path.dirname(source) == directory:
                same_dir = candidate

        if same_dir is not None:
            logger.debug(f"Using compile command of {same_dir.file} for {file_path}")
        return same_dir

    def _command_of_dependents(
        self,
        header: str,
        dependencies: DependencyIndex
    ) -> Optional[CompileCommand]:
        """インクルード元を幅優先でたどり、最初に見つかったコマンドを返す。"""
        visited = {header}
        queue = deque([header])
        while queue:
            for dependent in dependencies.dependents_of(queue.popleft()):
                if dependent in visited:
                    continue
                visited.add(dependent)
                command = self.commands.get(dependent)
                if command is not None:
                    logger.debug(f"Using compile command of {dependent} for {header}")
                    return command
                queue.append(dependent)
        return None

    def args_for(
        self,
        file_path: str,
        dependencies: Optional[DependencyIndex] = None
    ) -> List[str]:
        command = self.command_for(file_path, dependencies)
        return command.clang_args() if command is not None else []

    def include_paths(self) -> List[str]:
        """全コマンドのインクルードパス（重複なし、出現順）。"""
        paths: Dict[str, None] = {}
        for command in self.commands.values():
            for path in command.include_paths:
                paths.setdefault(path, None)
        return list(paths)

    def definitions(self) -> List[str]:
        definitions: Dict[str, None] = {}
        for command in self.commands.values():
            for definition in command.definitions:
                definitions.setdefault(definition, None)
        return list(definitions)

    def cxx_standard(self) -> Optional[str]:
        """最初に見つかったC++規格。"""
        for command in self.commands.values():
            standard = command.cxx_standard
            if standard:
                return standard
        return None

    def __len__(self) -> int:
        return len(self.commands)
