"""インクルード解析ツールのメインエントリーポイント。"""

import argparse
import functools
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple
from dataclasses import dataclass
import logging

from .config import Config
from .analyzer.clang_analyzer import ClangAnalyzer
from .analyzer.ast_builder import ClangUnitBuilder
from .analyzer.suppressions import SuppressionCollector
from .io.clang_format import sort_includes
from .io.compile_commands import CompilationDatabase
from .io.dependency_index import DependencyIndex
from .io.excel_writer import ExcelWriter
from .io.include_editor import add_includes, include_spelling, remove_includes
from .models.unit import IncludeDirective
from .models.verdict import UnitAnalysis, Verdict
from .resolver.pipeline import ResolutionPipeline, UnitOutcome, run_batch
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class ProcessingStats:
    """処理統計情報。"""
    total: int = 0
    analyzed: int = 0
    failed: int = 0
    unused: int = 0
    transitive: int = 0
    missing: int = 0
    diagnostics: int = 0
    removed: int = 0
    added: int = 0
    propagated: int = 0


class IncludeAuditor:
    """翻訳単位ごとにインクルードの使用状況を解析するメインクラス。"""

    def __init__(self, config: Config, clang_args: Optional[List[str]] = None):
        """解析器を初期化する。

        Args:
            config: アプリケーション設定
            clang_args: コマンドラインで"--"の後に指定されたコンパイラ引数
        """
        self.config = config
        self.clang_args = clang_args or []
        self.stats = ProcessingStats()
        self.analyses: List[UnitAnalysis] = []
        self.failures: Dict[str, str] = {}

        self._init_components()

    def _init_components(self) -> None:
        """すべてのコンポーネントを初期化する。"""
        self.database: Optional[CompilationDatabase] = None
        if self.config.compile_commands:
            self.database = CompilationDatabase.load(
                self.config.compile_commands,
                source_filter=self.config.source_filter
            )

        self.clang_analyzer = ClangAnalyzer(
            include_paths=self.config.include_paths,
            additional_args=self.config.compiler_args + self.clang_args,
            library_path=self.config.library_path,
            cxx_standard=self.config.cxx_standard
        )

        suppression_collector = SuppressionCollector(
            ignore_pattern=self.config.ignore_includes,
            keep_corresponding_header=self.config.keep_corresponding_header,
            keep_headers=self.config.keep_headers
        )
        self.unit_builder = ClangUnitBuilder(self.clang_analyzer, suppression_collector)

        self.dependencies: Optional[DependencyIndex] = None
        self.dependencies = self._load_dependencies()

        logger.info("All components initialized")

    def _load_dependencies(self) -> Optional[DependencyIndex]:
        """依存インデックスを読み込む。

        設定されたJSONが無ければcompile_commands.jsonから作成して保存する。
        """
        path = self.config.dependency_index
        if path and Path(path).exists():
            return DependencyIndex.load(path)

        if self.database is None:
            if path:
                logger.warning(
                    f"Dependency index {path} not found and no compile_commands.json to create it"
                )
            return None

        logger.info("Creating dependency index...")
        index = DependencyIndex.create(
            self.database.source_files(),
            self.include_directories(),
            self.config.source_filter
        )
        if path:
            index.save(path)
        return index

    def include_directories(self, source: Optional[str] = None) -> List[str]:
        """設定とcompile_commands.jsonのインクルードパス（重複なし）。

        sourceを指定した場合はそのファイルのコマンドのパスのみを加える。
        """
        paths: Dict[str, None] = dict.fromkeys(self.config.include_paths)
        if self.database is not None:
            if source is None:
                paths.update(dict.fromkeys(self.database.include_paths()))
            else:
                command = self.database.command_for(source, self.dependencies)
                if command is not None:
                    paths.update(dict.fromkeys(command.include_paths))
        return list(paths)

    def source_files(self, files: Sequence[str]) -> List[str]:
        """解析対象のソースファイルを決める。

        コマンドラインで指定が無ければcompile_commands.jsonの全エントリを使う。
        """
        if files:
            return [str(Path(f).resolve()) for f in files]
        if self.database is not None:
            return self.database.source_files()
        return []

    def analyze_file(self, file_path: str) -> UnitAnalysis:
        """1ファイルを解析する。

        Args:
            file_path: ソースファイルのパス

        Returns:
            UnitAnalysis

        Raises:
            ClangParseError: パースに失敗した場合
            DanglingReference: 解決できない識別子がある場合
        """
        extra_args = self.database.args_for(file_path, self.dependencies) if self.database else []
        unit = self.unit_builder.build(file_path, extra_args)
        return ResolutionPipeline().run(unit)

    def process(
        self,
        files: Sequence[str],
        fix: bool = False,
        show_dependencies: bool = False
    ) -> List[UnitOutcome]:
        """ファイル群を解析してレポートを出力する。

        Args:
            files: 解析するソースファイル
            fix: 未使用インクルードの削除・不足インクルードの追加を行うか
            show_dependencies: 各ファイルのインクルード元の木を表示するか

        Returns:
            翻訳単位ごとのUnitOutcome
        """
        sources = self.source_files(files)
        self.stats.total = len(sources)
        logger.info(f"Processing started: {len(sources)} files")

        if show_dependencies:
            self._print_dependencies(sources)

        tasks = {source: functools.partial(self.analyze_file, source) for source in sources}
        outcomes = run_batch(tasks, self.config.max_workers)

        self.analyses = []
        self.failures = {}
        visited: Set[str] = set()
        for outcome in outcomes:
            if not outcome.succeeded:
                self.stats.failed += 1
                self.failures[outcome.source_file] = str(outcome.error)
                continue

            analysis = outcome.analysis
            self.stats.analyzed += 1

            if fix and analysis.source_file in visited:
                # インクルード元として解析・修正済み
                logger.debug(f"Already fixed through propagation: {analysis.source_file}")
                continue

            self.analyses.append(analysis)
            self._report(analysis)
            if fix:
                self._fix(analysis, visited, [analysis.source_file])

        if self.config.report_file:
            ExcelWriter(self.config.report_file).write(self.analyses, self.failures)

        self._log_statistics()
        return outcomes

    def _print_dependencies(self, sources: Sequence[str]) -> None:
        if self.dependencies is None:
            logger.warning("No dependency index available")
            return
        for source in sources:
            for line in self.dependencies.tree_lines(source):
                print(line)

    def _report(self, analysis: UnitAnalysis) -> None:
        """解析結果を標準出力に書き出す。"""
        source = analysis.source_file

        unused = analysis.unused_includes()
        for directive in unused:
            print(f"{source}:{directive.line}: unused {directive}")

        for header in analysis.headers_with(Verdict.USED_TRANSITIVELY_ONLY):
            verdict = analysis.verdicts[header]
            if verdict.directly_included:
                print(f"{source}: {header} is only used through {', '.join(verdict.provides)}")

        for missing in analysis.missing:
            print(f"{source}: {missing}")

        for diagnostic in analysis.diagnostics:
            print(str(diagnostic))

        self.stats.unused += len(unused)
        self.stats.transitive += len(analysis.headers_with(Verdict.USED_TRANSITIVELY_ONLY))
        self.stats.missing += len(analysis.missing)
        self.stats.diagnostics += len(analysis.diagnostics)

    def _fix(self, analysis: UnitAnalysis, visited: Set[str], chain: List[str]) -> None:
        """1ファイルを修正し、削除した#includeをインクルード元へ移す。

        インクルード元は移した#includeを含めて再解析し、同じ手順を
        再帰的に適用する。

        Args:
            analysis: 修正するファイルの解析結果
            visited: 修正済みファイルの集合
            chain: 現在のファイルに至るインクルード元の列（循環検出用）
        """
        source = analysis.source_file
        visited.add(source)
        removed = self._apply_fixes(analysis)

        if not self.config.propagate_fixes or self.dependencies is None:
            return

        for dependent in self.dependencies.dependents_of(source):
            if removed:
                include_paths = self.include_directories(dependent)
                statements = [
                    include_spelling(directive.header, dependent, include_paths)
                    for directive in removed
                ]
                added = add_includes(dependent, statements)
                self.stats.added += len(added)
                self.stats.propagated += len(added)
                if added:
                    self._sort_includes(dependent)

            if dependent in chain:
                logger.warning(f"Circular includes: {' -> '.join(chain + [dependent])}")
                continue
            if dependent in visited:
                logger.debug(f"Already analyzed: {dependent}")
                continue

            logger.info(f"Analyzing dependent {dependent} of {source}")
            try:
                dependent_analysis = self.analyze_file(dependent)
            except Exception as e:
                logger.error(f"Failed to analyze {dependent}: {e}")
                self.stats.failed += 1
                self.failures[dependent] = str(e)
                visited.add(dependent)
                continue

            self.stats.analyzed += 1
            self.analyses.append(dependent_analysis)
            self._report(dependent_analysis)
            self._fix(dependent_analysis, visited, chain + [dependent])

    def _apply_fixes(self, analysis: UnitAnalysis) -> List[IncludeDirective]:
        """未使用インクルードを削除し、不足インクルードを追加する。

        Returns:
            削除した#include指令
        """
        source = analysis.source_file

        # 行番号がずれないよう削除を先に行う
        unused = analysis.unused_includes()
        removed = remove_includes(source, [directive.line for directive in unused])
        self.stats.removed += removed

        added: List[str] = []
        if analysis.missing:
            include_paths = self.include_directories(source)
            statements: List[Tuple[str, bool]] = [
                include_spelling(missing.header, source, include_paths)
                for missing in analysis.missing
            ]
            added = add_includes(source, statements)
            self.stats.added += len(added)

        if removed or added:
            self._sort_includes(source)
        return unused

    def _sort_includes(self, file_path: str) -> None:
        if self.config.clang_format:
            sort_includes(file_path, self.config.clang_format)

    def _log_statistics(self) -> None:
        """処理統計をログ出力する。"""
        logger.info("=" * 50)
        logger.info("Processing Statistics:")
        logger.info(f"  Total files: {self.stats.total}")
        logger.info(f"  Analyzed: {self.stats.analyzed}")
        logger.info(f"  Failed: {self.stats.failed}")
        logger.info(f"  Unused includes: {self.stats.unused}")
        logger.info(f"  Used transitively only: {self.stats.transitive}")
        logger.info(f"  Missing includes: {self.stats.missing}")
        logger.info(f"  Diagnostics: {self.stats.diagnostics}")
        if self.stats.removed or self.stats.added:
            logger.info(f"  Removed includes: {self.stats.removed}")
            logger.info(f"  Added includes: {self.stats.added}")
            logger.info(f"  Propagated to dependents: {self.stats.propagated}")
        logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを構築する。"""
    parser = argparse.ArgumentParser(
        prog="include-audit",
        description="C++ソースの未使用・不足インクルード解析ツール",
        epilog="'--'以降の引数はそのままclangに渡されます"
    )
    parser.add_argument(
        "files",
        nargs="*",
        metavar="FILE",
        help="解析するソースファイル（省略時はcompile_commands.jsonの全ファイル）"
    )
    parser.add_argument(
        "-c", "--config",
        help="設定ファイルパス"
    )
    parser.add_argument(
        "-p", "--compile-commands",
        metavar="COMPILE_COMMANDS",
        help="compile_commands.json、またはそれを含むビルドディレクトリ"
    )
    parser.add_argument(
        "-f", "--filter",
        metavar="FILTER",
        help="compile_commands.jsonから解析対象を絞り込む正規表現"
    )
    parser.add_argument(
        "--ignore-includes",
        metavar="REGEX",
        help="常に残すインクルードの正規表現"
    )
    parser.add_argument(
        "-o", "--output",
        metavar="REPORT",
        help="Excelレポートの出力先"
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        help="並列に解析する翻訳単位の数"
    )
    parser.add_argument(
        "--fix",
        action="store_true",
        help="未使用インクルードを削除し、不足インクルードを追加する"
    )
    parser.add_argument(
        "--index",
        metavar="DEPENDENCIES_JSON",
        help="依存インデックスのJSON（無ければcompile_commands.jsonから作成して保存）"
    )
    parser.add_argument(
        "--dependency-tree",
        action="store_true",
        help="各ファイルをインクルードしているファイルの木を表示する"
    )
    parser.add_argument(
        "--no-propagate",
        action="store_true",
        help="--fixで削除した#includeをインクルード元へ移さない"
    )
    parser.add_argument(
        "--clang-format",
        nargs="?",
        const="clang-format",
        metavar="EXECUTABLE",
        help="編集後に#includeをclang-formatで並べ替える"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="詳細ログを有効にする"
    )
    parser.add_argument(
        "--init-config",
        metavar="PROJECT_DIR",
        help="compile_commands.jsonから設定ファイルを自動生成"
    )
    return parser


def split_clang_args(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """"--"の前後で引数を分割する。"""
    argv = list(argv)
    if "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1:]
    return argv, []


def load_config(args: argparse.Namespace) -> Config:
    """設定ファイルを読み込み、コマンドライン引数で上書きする。

    Raises:
        FileNotFoundError: 指定された設定ファイルが無い場合
    """
    if args.config:
        if not Path(args.config).exists():
            raise FileNotFoundError(f"設定ファイルが見つかりません: {args.config}")
        config = Config.from_yaml(args.config)
    else:
        config = Config.from_dict({})

    if args.compile_commands:
        config.compile_commands = args.compile_commands
    if args.filter:
        config.source_filter = args.filter
    if args.ignore_includes is not None:
        config.ignore_includes = args.ignore_includes
    if args.output:
        config.report_file = args.output
    if args.jobs is not None:
        config.max_workers = args.jobs
    if args.index:
        config.dependency_index = args.index
    if args.no_propagate:
        config.propagate_fixes = False
    if args.clang_format:
        config.clang_format = args.clang_format
    if args.verbose:
        config.log_level = "DEBUG"

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """メインエントリーポイント。

    Returns:
        終了コード
    """
    own_args, clang_args = split_clang_args(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(own_args)

    # --init-configモードを処理
    if args.init_config:
        return _init_config(args.init_config, args.config, args.verbose)

    try:
        config = load_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(level=config.log_level, log_file=config.log_file)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    if not args.files and not config.compile_commands:
        parser.error("解析するファイルか--compile-commandsを指定してください")

    for file_path in args.files:
        if not Path(file_path).exists():
            logger.error(f"入力ファイルが見つかりません: {file_path}")
            return 1

    try:
        auditor = IncludeAuditor(config, clang_args)
        auditor.process(args.files, fix=args.fix, show_dependencies=args.dependency_tree)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1

    return 1 if auditor.stats.failed else 0


def _init_config(
    project_dir: str,
    output_config: Optional[str],
    verbose: bool
) -> int:
    """compile_commands.jsonから設定ファイルを生成する。

    Args:
        project_dir: プロジェクトのルートディレクトリ
        output_config: 出力設定ファイルパス
        verbose: 詳細ログを有効にするかどうか

    Returns:
        終了コード
    """
    setup_logging(level="DEBUG" if verbose else "INFO")
    output_config = output_config or "config/default_config.yaml"

    project_path = Path(project_dir)
    if not project_path.is_dir():
        print(f"Error: ディレクトリではありません: {project_dir}", file=sys.stderr)
        return 1

    try:
        config = Config.from_compile_commands(str(project_path), output_path=output_config)
    except Exception as e:
        logger.error(f"設定生成中にエラーが発生しました: {e}")
        return 1

    print(f"設定ファイルを生成しました: {output_config}")
    print(f"  compile_commands.json: {config.compile_commands}")
    print(f"  インクルードパス: {len(config.include_paths)}")
    print(f"  コンパイラ引数: {len(config.compiler_args)}")
    print(f"  C++規格: {config.cxx_standard}")

    if config.include_paths:
        print("\nインクルードパス:")
        for path in config.include_paths[:5]:  # 最初の5件を表示
            print(f"  - {path}")
        if len(config.include_paths) > 5:
            print(f"  ... 他 {len(config.include_paths) - 5} 件")

    return 0


if __name__ == "__main__":
    sys.exit(main())
