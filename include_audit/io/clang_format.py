"""clang-formatによる#includeの並べ替え。"""

from pathlib import Path
from typing import List, Tuple
import logging
import re
import subprocess

logger = logging.getLogger(__name__)


# 空行・コメント・プリプロセッサ指令
_RE_PREPROCESSOR = re.compile(r"^[ \t]*([#/]|$)")


def include_ranges(text: str) -> List[Tuple[int, int]]:
    """プリプロセッサ指令を含むブロックの行範囲（0始まり、両端含む）を求める。

    空行・コメント・指令だけが続く区間のうち、指令を1つ以上含み
    2行以上あるものを返す。
    """
    ranges: List[Tuple[int, int]] = []
    start = 0
    has_directive = False

    for i, line in enumerate(text.split("\n")):
        match = _RE_PREPROCESSOR.match(line)
        if match:
            if match.group(1) == "#":
                has_directive = True
        else:
            if has_directive and start < i - 1:
                ranges.append((start, i - 1))
            start = i + 1
            has_directive = False

    return ranges


def sort_includes(file_path: str, executable: str = "clang-format", timeout: int = 60) -> bool:
    """#includeのブロックだけをclang-formatで並べ替える。

    Args:
        file_path: 対象ファイル
        executable: clang-formatの実行ファイル
        timeout: タイムアウト秒数

    Returns:
        成功した場合True
    """
    text = Path(file_path).read_text(encoding="utf-8", errors="replace")
    ranges = include_ranges(text)
    if not ranges:
        return True

    command = [executable, file_path, "-i", "-sort-includes"]
    command.extend(f"-lines={start + 1}:{end + 1}" for start, end in ranges)

    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        logger.warning(f"{executable} not found, includes of {file_path} were not sorted")
        return False
    except subprocess.TimeoutExpired:
        logger.error(f"{executable} timed out after {timeout} seconds on {file_path}")
        return False

    if result.returncode != 0:
        logger.warning(
            f"{executable} failed with {result.returncode} on {file_path}: {result.stderr.strip()}"
        )
        return False

    logger.debug(f"Includes formatted: {file_path}")
    return True
