"""libclangを使用したC++ソースコード解析のラッパー。"""

from typing import List, Optional
from pathlib import Path
import glob
import os
import logging
import threading

logger = logging.getLogger(__name__)


class ClangParseError(Exception):
    """Clangパース時のエラー。"""
    pass


# libclangの一般的なインストール先
_COMMON_LIBRARY_DIRS = [
    r"C:\Program Files\LLVM\bin",
    r"C:\Program Files (x86)\LLVM\bin",
    os.path.expanduser(r"~\AppData\Local\Programs\LLVM\bin"),
    "/usr/lib/llvm-*/lib",
    "/usr/lib/x86_64-linux-gnu",
    "/usr/lib64",
    "/usr/local/opt/llvm/lib",
    "/opt/homebrew/opt/llvm/lib",
    "/Library/Developer/CommandLineTools/usr/lib",
]

_LIBRARY_NAMES = ["libclang.dll", "libclang.dylib", "libclang.so", "libclang.so.*"]


class ClangAnalyzer:
    """libclangを使用したC++解析のメインクラス。

    clang.cindex.Indexはスレッドごとに生成するため、複数のワーカー
    スレッドから同時にparse()を呼び出せる。
    """

    def __init__(
        self,
        include_paths: Optional[List[str]] = None,
        additional_args: Optional[List[str]] = None,
        library_path: Optional[str] = None,
        cxx_standard: str = "c++14"
    ):
        """Clangアナライザーを初期化する。

        Args:
            include_paths: インクルードディレクトリのリスト
            additional_args: 追加のコンパイラ引数
            library_path: libclangライブラリのパス（任意、未指定時は自動検出）
            cxx_standard: -stdに渡すC++規格

        Raises:
            ClangParseError: libclangを読み込めない場合
        """
        self._setup_libclang(library_path)

        import clang.cindex as ci
        self._ci = ci

        self.include_paths = include_paths or []
        self.additional_args = additional_args or []
        self.cxx_standard = cxx_standard
        self._local = threading.local()

        logger.info(f"ClangAnalyzer initialized with {len(self.include_paths)} include paths")

    def _setup_libclang(self, library_path: Optional[str] = None) -> None:
        """libclangライブラリパスを設定する。

        Args:
            library_path: libclangへの明示的なパス（ディレクトリまたはファイル）
        """
        import clang.cindex as ci

        if ci.Config.loaded:
            return

        if library_path:
            if os.path.isfile(library_path):
                ci.Config.set_library_file(library_path)
            else:
                ci.Config.set_library_path(library_path)
            logger.info(f"Using libclang from: {library_path}")
            return

        # pip install libclangでインストールされたライブラリを使用
        try:
            ci.Index.create()
            logger.debug("libclang loaded successfully from pip package")
            return
        except Exception as e:
            load_error = e

        library_file = self._find_library()
        if library_file is None:
            raise ClangParseError(
                f"Failed to load libclang: {load_error}. "
                "Please install libclang with 'pip install libclang' or install LLVM."
            )

        ci.Config.set_library_file(library_file)
        logger.info(f"Using libclang from: {library_file}")

    @staticmethod
    def _find_library() -> Optional[str]:
        """一般的なインストール先からlibclangを探す。"""
        for pattern in _COMMON_LIBRARY_DIRS:
            for directory in sorted(glob.glob(pattern), reverse=True):
                for name in _LIBRARY_NAMES:
                    matches = sorted(glob.glob(str(Path(directory) / name)))
                    if matches:
                        return matches[-1]
        return None

    @property
    def index(self):
        """現在のスレッド用のclang.cindex.Indexを取得する。"""
        index = getattr(self._local, "index", None)
        if index is None:
            index = self._ci.Index.create()
            self._local.index = index
        return index

    def _build_compiler_args(self, extra_args: Optional[List[str]] = None) -> List[str]:
        """パース用のコンパイラ引数を構築する。

        Args:
            extra_args: ファイル固有の引数（compile_commands.json由来など）

        Returns:
            コンパイラ引数のリスト
        """
        args = [
            "-x", "c++",
            f"-std={self.cxx_standard}",
            "-Wno-pragma-once-outside-header",  # ヘッダー単体の解析用
        ]

        for inc_path in self.include_paths:
            args.extend(["-I", inc_path])

        args.extend(self.additional_args)
        # 後に指定した引数が優先される
        args.extend(extra_args or [])

        return args

    def parse(self, file_path: str, extra_args: Optional[List[str]] = None):
        """ファイルをパースしてTranslationUnitを取得する。

        マクロ展開とインクルード指令を得るため、詳細な前処理記録を
        有効にし、関数本体も含めてパースする。

        Args:
            file_path: ソースファイルのパス
            extra_args: ファイル固有のコンパイラ引数

        Returns:
            clang.cindex.TranslationUnit

        Raises:
            ClangParseError: パースに失敗した場合
        """
        abs_path = os.path.abspath(file_path)
        args = self._build_compiler_args(extra_args)
        options = self._ci.TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD

        try:
            tu = self.index.parse(abs_path, args=args, options=options)
        except Exception as e:
            raise ClangParseError(f"Failed to parse {abs_path}: {e}")

        if tu is None:
            raise ClangParseError(f"Failed to parse {abs_path}: returned None")

        self._log_diagnostics(tu, abs_path)
        return tu

    def parse_string(
        self,
        source_code: str,
        filename: str = "temp.cpp",
        extra_args: Optional[List[str]] = None
    ):
        """文字列からC++ソースコードをパースする。

        Args:
            source_code: C++ソースコード
            filename: ソースの仮想ファイル名
            extra_args: 追加のコンパイラ引数

        Returns:
            clang.cindex.TranslationUnit

        Raises:
            ClangParseError: パースに失敗した場合
        """
        args = self._build_compiler_args(extra_args)

        try:
            tu = self.index.parse(
                filename,
                args=args,
                unsaved_files=[(filename, source_code)],
                options=self._ci.TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
            )
        except Exception as e:
            raise ClangParseError(f"Failed to parse source string: {e}")

        self._log_diagnostics(tu, filename)
        return tu

    def error_count(self, tu) -> int:
        """エラー以上の診断の件数を取得する。"""
        return sum(
            1 for diag in tu.diagnostics
            if diag.severity >= self._ci.Diagnostic.Error
        )

    def _log_diagnostics(self, tu, file_path: str) -> None:
        for diag in tu.diagnostics:
            if diag.severity >= self._ci.Diagnostic.Error:
                logger.warning(f"Parse error in {file_path}: {diag.spelling}")

    @property
    def ci(self):
        """clang.cindexモジュールを取得する。"""
        return self._ci
