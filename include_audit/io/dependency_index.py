"""ヘッダーからそれをインクルードするファイルへの逆引きインデックス。"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set
import json
import logging
import os
import re

from .include_editor import is_header_file, read_includes

logger = logging.getLogger(__name__)


class DependencyIndexError(Exception):
    """依存インデックスの読み込みエラー。"""
    pass


def find_include(file_path: str, include: str, include_paths: Sequence[str]) -> Optional[str]:
    """#includeの表記から実際のヘッダーファイルを探す。

    インクルード元と同じディレクトリ、インクルードパス、最後に
    src/include以下の相対位置（src/main/...も含む）をインクルード
    パスに重ねた場所の順に探す。

    Args:
        file_path: #includeを書いているファイル
        include: #includeの表記
        include_paths: インクルードディレクトリ

    Returns:
        見つかったヘッダーの絶対パス、見つからない場合はNone
    """
    candidates = [os.path.join(os.path.dirname(file_path), include)]
    candidates.extend(os.path.join(path, include) for path in include_paths)

    parts = Path(file_path).parent.parts
    for marker in ("src", "include"):
        if marker in parts:
            relative = list(parts[parts.index(marker) + 1:])
            if relative and relative[0] == "main":
                relative = relative[1:]
            if relative:
                candidates.extend(
                    os.path.join(path, *relative, include) for path in include_paths
                )
            break

    for candidate in candidates:
        if os.path.isfile(candidate):
            return os.path.normpath(os.path.abspath(candidate))
    return None


class DependencyIndex:
    """ファイルごとに、それを直接インクルードしているファイルを保持する。

    Attributes:
        dependents: ヘッダーの絶対パスからインクルード元のリストへのマッピング
    """

    def __init__(self, dependents: Optional[Dict[str, List[str]]] = None):
        self.dependents: Dict[str, List[str]] = {}
        for header, files in (dependents or {}).items():
            for file_path in files:
                self._insert(header, file_path)

    @classmethod
    def create(
        cls,
        files: Iterable[str],
        directories: Sequence[str],
        source_filter: str = "."
    ) -> "DependencyIndex":
        """ソースファイルとディレクトリ内のヘッダーからインデックスを作る。

        Args:
            files: compile_commands.jsonのソースファイル
            directories: ヘッダーを探すディレクトリ（インクルードパス）
            source_filter: 対象ファイルを絞り込む正規表現

        Returns:
            DependencyIndex
        """
        pattern = re.compile(source_filter or ".")
        index = cls()

        for file_path in files:
            if pattern.search(file_path):
                index.add_file(file_path, directories)

        for directory in directories:
            if not os.path.isdir(directory):
                logger.debug(f"Skipping missing include directory: {directory}")
                continue
            for path in sorted(Path(directory).rglob("*")):
                name = str(path)
                if path.is_file() and is_header_file(name) and pattern.search(name):
                    index.add_file(name, directories)

        logger.info(f"Dependency index created: {len(index)} included files")
        return index

    def add_file(self, file_path: str, include_paths: Sequence[str]) -> None:
        """ファイルの#includeをインデックスに加える。"""
        file_path = os.path.normpath(os.path.abspath(file_path))
        for include in sorted(read_includes(file_path)):
            header = find_include(file_path, include, include_paths)
            if header is None:
                logger.warning(f"Missing include {include} in {file_path}")
                continue
            self._insert(header, file_path)

    def dependents_of(self, file_path: str) -> List[str]:
        """ファイルを直接インクルードしているファイルを取得する。"""
        return list(self.dependents.get(os.path.normpath(os.path.abspath(file_path)), []))

    def tree_lines(self, root: str) -> List[str]:
        """rootをインクルードしているファイルの木を文字列にする。

        一度表示したファイルに再び到達した場合は循環として示す。
        """
        lines: List[str] = []
        visited: Set[str] = set()

        def visit(file_path: str, indent: int):
            prefix = "    " * (indent - 1) + "  - " if indent > 0 else ""
            if file_path in visited:
                lines.append(f"{prefix}!circular: {file_path}")
                return
            visited.add(file_path)
            lines.append(f"{prefix}{file_path}")
            for dependent in self.dependents.get(file_path, []):
                visit(dependent, indent + 1)

        visit(os.path.normpath(os.path.abspath(root)), 0)
        return lines

    def save(self, path: str) -> None:
        """インデックスをJSONで保存する。"""
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(self.dependents, f, indent=2, ensure_ascii=False)
        logger.info(f"Dependency index saved to {path}")

    @classmethod
    def load(cls, path: str) -> "DependencyIndex":
        """JSONからインデックスを読み込む。

        Raises:
            DependencyIndexError: ファイルが無い、または不正な場合
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise DependencyIndexError(f"Failed to read dependency index {path}: {e}")

        if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
            raise DependencyIndexError(f"Dependency index must map files to lists: {path}")

        logger.info(f"Dependency index loaded from {path}")
        return cls(data)

    def _insert(self, header: str, file_path: str) -> None:
        files = self.dependents.setdefault(header, [])
        if file_path not in files:
            files.append(file_path)

    def __len__(self) -> int:
        return len(self.dependents)
