"""libclangのTranslationUnitを解決エンジンの翻訳単位モデルに変換する。"""

from bisect import bisect_left
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple
import logging
import os
import re

from ..models.declaration import Declaration, DeclarationKind
from ..models.location import ExpansionFrame, FileSite, Location
from ..models.reference import ParameterUsage
from ..models.unit import AstNode, IncludeDirective, NodeKind, TranslationUnitModel
from .clang_analyzer import ClangAnalyzer
from .suppressions import SuppressionCollector

logger = logging.getLogger(__name__)


# カーソル種別名からエンティティ種別へのマッピング
_ENTITY_KINDS: Dict[str, DeclarationKind] = {
    "FUNCTION_DECL": DeclarationKind.FUNCTION,
    "CXX_METHOD": DeclarationKind.FUNCTION,
    "CONSTRUCTOR": DeclarationKind.FUNCTION,
    "DESTRUCTOR": DeclarationKind.FUNCTION,
    "CONVERSION_FUNCTION": DeclarationKind.FUNCTION,
    "CLASS_DECL": DeclarationKind.CLASS,
    "STRUCT_DECL": DeclarationKind.CLASS,
    "UNION_DECL": DeclarationKind.CLASS,
    "ENUM_DECL": DeclarationKind.CLASS,
    "CLASS_TEMPLATE": DeclarationKind.TEMPLATE_CLASS,
    "CLASS_TEMPLATE_PARTIAL_SPECIALIZATION": DeclarationKind.TEMPLATE_CLASS,
    "TYPE_ALIAS_TEMPLATE_DECL": DeclarationKind.TEMPLATE_CLASS,
    "FUNCTION_TEMPLATE": DeclarationKind.TEMPLATE_FUNCTION,
    "TYPEDEF_DECL": DeclarationKind.TYPE_ALIAS,
    "TYPE_ALIAS_DECL": DeclarationKind.TYPE_ALIAS,
    "VAR_DECL": DeclarationKind.VARIABLE,
    "FIELD_DECL": DeclarationKind.VARIABLE,
    "ENUM_CONSTANT_DECL": DeclarationKind.VARIABLE,
    "MACRO_DEFINITION": DeclarationKind.MACRO,
    "CONCEPT_DECL": DeclarationKind.TEMPLATE_PARAM_BOUND,
}

_FUNCTION_CURSORS = frozenset({
    "FUNCTION_DECL", "CXX_METHOD", "CONSTRUCTOR", "DESTRUCTOR",
    "CONVERSION_FUNCTION", "FUNCTION_TEMPLATE",
})
_VALUE_CURSORS = frozenset({"VAR_DECL", "PARM_DECL", "FIELD_DECL"})
_TEMPLATE_PARAMETER_CURSORS = frozenset({
    "TEMPLATE_TYPE_PARAMETER",
    "TEMPLATE_NON_TYPE_PARAMETER",
    "TEMPLATE_TEMPLATE_PARAMETER",
})
# 子をそのまま親に渡すノード
_TRANSPARENT_CURSORS = frozenset({"UNEXPOSED_EXPR", "PAREN_EXPR"})
# 解決対象にならない参照
_SKIPPED_CURSORS = frozenset({
    "NAMESPACE_REF", "MEMBER_REF", "LABEL_REF", "OVERLOADED_DECL_REF",
    "VARIABLE_REF", "INCLUSION_DIRECTIVE", "MACRO_DEFINITION",
    "MACRO_INSTANTIATION",
})

_POINTER_TYPES = frozenset({
    "POINTER", "LVALUEREFERENCE", "RVALUEREFERENCE", "MEMBERPOINTER", "BLOCKPOINTER",
})
_ARRAY_TYPES = frozenset({
    "CONSTANTARRAY", "INCOMPLETEARRAY", "VARIABLEARRAY", "DEPENDENTSIZEDARRAY",
})

_RE_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")


def _path(file_name: str) -> str:
    return os.path.normpath(os.path.abspath(file_name))


@dataclass(frozen=True)
class _Expansion:
    """メインファイル中のマクロ展開1件。"""
    start: int
    end: int
    frame: ExpansionFrame
    arguments: FrozenSet[str]

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


@dataclass(frozen=True)
class _Item:
    """変換済みノードと元カーソルの位置。"""
    offset: int
    node: AstNode


class ClangUnitBuilder:
    """ソースファイルをパースしてTranslationUnitModelを生成する。

    変換の状態は翻訳単位ごとに作られるため、1つのビルダーを複数の
    ワーカースレッドで共有できる。
    """

    def __init__(
        self,
        analyzer: ClangAnalyzer,
        suppression_collector: Optional[SuppressionCollector] = None
    ):
        self.analyzer = analyzer
        self.suppression_collector = suppression_collector or SuppressionCollector()

    def build(
        self,
        file_path: str,
        extra_args: Optional[List[str]] = None
    ) -> TranslationUnitModel:
        """ファイルをパースして翻訳単位モデルを生成する。

        Args:
            file_path: ソースファイルのパス
            extra_args: ファイル固有のコンパイラ引数

        Returns:
            TranslationUnitModel

        Raises:
            ClangParseError: パースに失敗した場合
        """
        tu = self.analyzer.parse(file_path, extra_args)
        errors = self.analyzer.error_count(tu)
        if errors:
            logger.warning(
                f"{file_path}: {errors} compile errors, results may be incomplete"
            )

        source_text = Path(file_path).read_text(encoding="utf-8", errors="replace")
        return self.build_from_tu(tu, file_path, source_text)

    def build_from_tu(
        self,
        tu,
        file_path: str,
        source_text: Optional[str] = None
    ) -> TranslationUnitModel:
        """パース済みのTranslationUnitから翻訳単位モデルを生成する。

        Args:
            tu: clang.cindex.TranslationUnit
            file_path: メインソースファイルのパス
            source_text: メインファイルの内容（keepコメント検出用）

        Returns:
            TranslationUnitModel
        """
        converter = _UnitConverter(self.analyzer.ci, tu, file_path)
        root = converter.convert()
        includes = converter.includes

        if source_text is None and os.path.exists(file_path):
            source_text = Path(file_path).read_text(encoding="utf-8", errors="replace")

        suppressions = self.suppression_collector.collect(
            converter.main_file, includes, source_text or ""
        )

        logger.debug(
            f"{file_path}: {len(includes)} includes, "
            f"{len(converter.declarations)} referenced entities, "
            f"{len(converter.expansions)} macro expansions"
        )

        return TranslationUnitModel(
            source_file=converter.main_file,
            root=root,
            includes=tuple(includes),
            include_graph=converter.include_graph(),
            declarations=tuple(converter.declarations.values()),
            suppressions=tuple(suppressions)
        )


class _UnitConverter:
    """1翻訳単位分の変換状態。"""

    def __init__(self, ci, tu, file_path: str):
        self.ci = ci
        self.tu = tu
        self.main_file = _path(file_path)
        self.includes: List[IncludeDirective] = []
        self.declarations: Dict[str, Declaration] = {}
        self.expansions: List[_Expansion] = []
        self._token_offsets: List[int] = []
        self._token_spellings: List[str] = []
        self._profiles: Dict[str, Tuple[ParameterUsage, ...]] = {}

    def convert(self) -> AstNode:
        """ASTを変換してルートノードを返す。"""
        top_level = [c for c in self.tu.cursor.get_children() if self._in_main(c)]

        self._collect_tokens()
        self._collect_includes(top_level)
        self._collect_expansions(top_level)

        items: List[_Item] = []
        for cursor in top_level:
            kind = cursor.kind.name
            if kind == "MACRO_INSTANTIATION":
                node = self._macro_node(cursor)
                if node is not None:
                    items.append(_Item(cursor.location.offset, node))
            elif kind not in _SKIPPED_CURSORS:
                items.extend(
                    _Item(cursor.location.offset, node) for node in self._convert(cursor)
                )

        # マクロ展開ノードと宣言を文書順に並べる
        items.sort(key=lambda item: item.offset)
        return AstNode(
            kind=NodeKind.TRANSLATION_UNIT,
            spelling=self.main_file,
            children=self._group(items)
        )

    def include_graph(self) -> Dict[str, Tuple[str, ...]]:
        """インクルードグラフを取得する。"""
        graph: Dict[str, List[str]] = {}
        for inclusion in self.tu.get_includes():
            if inclusion.source is None or inclusion.include is None:
                continue
            targets = graph.setdefault(_path(inclusion.source.name), [])
            target = _path(inclusion.include.name)
            if target not in targets:
                targets.append(target)
        return {source: tuple(targets) for source, targets in graph.items()}

    # --- 前処理 ---

    def _collect_tokens(self) -> None:
        for token in self.tu.cursor.get_tokens():
            location = token.location
            if location.file is None or _path(location.file.name) != self.main_file:
                continue
            self._token_offsets.append(location.offset)
            self._token_spellings.append(token.spelling)

    def _collect_includes(self, top_level) -> None:
        for cursor in top_level:
            if cursor.kind.name != "INCLUSION_DIRECTIVE":
                continue
            included = cursor.get_included_file()
            if included is None:
                logger.warning(
                    f"{self.main_file}:{cursor.location.line}: "
                    f"cannot resolve include '{cursor.spelling}'"
                )
                continue
            angled = any(token.spelling == "<" for token in cursor.get_tokens())
            self.includes.append(IncludeDirective(
                header=_path(included.name),
                spelling=cursor.spelling,
                line=cursor.location.line,
                angled=angled
            ))

    def _collect_expansions(self, top_level) -> None:
        for cursor in top_level:
            if cursor.kind.name != "MACRO_INSTANTIATION":
                continue
            definition = cursor.referenced
            if definition is None or definition.location.file is None:
                continue  # 組み込みマクロ

            start = cursor.extent.start.offset
            end = cursor.extent.end.offset
            if end <= start:
                end = start + 1

            first = bisect_left(self._token_offsets, start)
            last = bisect_left(self._token_offsets, end)
            arguments = frozenset(
                spelling for spelling in self._token_spellings[first + 1:last]
                if _RE_IDENTIFIER.match(spelling)
            )

            frame = ExpansionFrame(
                macro_name=cursor.spelling,
                definition_site=self._site(definition.location),
                call_site=FileSite(
                    self.main_file, cursor.location.line, cursor.location.column
                )
            )
            self.expansions.append(_Expansion(start, end, frame, arguments))

    # --- 位置 ---

    def _in_main(self, cursor) -> bool:
        location = cursor.location
        return location.file is not None and _path(location.file.name) == self.main_file

    def _site(self, location) -> FileSite:
        file_name = _path(location.file.name) if location.file else self.main_file
        return FileSite(file_name, location.line, location.column)

    def _outermost_expansion(self, offset: int) -> Optional[_Expansion]:
        best = None
        for expansion in self.expansions:
            if expansion.contains(offset):
                if best is None or (expansion.end - expansion.start) > (best.end - best.start):
                    best = expansion
        return best

    def _location(self, cursor, name: str) -> Tuple[Location, bool]:
        """カーソルの位置とマクロ引数由来かどうかを求める。

        マクロ本体から来た使用は定義位置、引数として書かれた使用は
        記述位置を持ち、どちらも展開チェーンに呼び出し位置を持つ。
        """
        site = self._site(cursor.location)
        if site.file_path != self.main_file:
            return Location(site), False

        expansion = self._outermost_expansion(cursor.location.offset)
        if expansion is None:
            return Location(site), False
        if name in expansion.arguments:
            return Location(site, (expansion.frame,)), True
        return Location(expansion.frame.definition_site, (expansion.frame,)), False

    # --- エンティティ ---

    def _register(self, referenced) -> Optional[str]:
        """参照先エンティティを宣言として登録し、識別子を返す。

        メインファイルで定義された、または宣言のみがメインファイルに
        あるエンティティはローカルとしてNoneを返す。
        """
        if referenced is None:
            return None

        declaration_file = self._file_of(referenced.canonical)
        definition = referenced.get_definition()
        definition_file = self._file_of(definition) if definition is not None else None

        if definition_file == self.main_file:
            return None
        declaration_header = None if declaration_file == self.main_file else declaration_file
        if declaration_header is None and definition_file is None:
            return None

        kind = self._entity_kind(referenced)
        entity_id = referenced.get_usr()
        if not entity_id:
            location = referenced.location
            entity_id = f"{referenced.kind.name}:{declaration_header or definition_file}:{location.offset}"

        if entity_id not in self.declarations:
            self.declarations[entity_id] = Declaration(
                entity_id=entity_id,
                name=referenced.spelling,
                kind=kind,
                declaration_header=declaration_header,
                definition_header=definition_file,
                inline=definition_file is not None
            )
        return entity_id

    def _file_of(self, cursor) -> Optional[str]:
        if cursor is None or cursor.location.file is None:
            return None
        return _path(cursor.location.file.name)

    @staticmethod
    def _entity_kind(cursor) -> Optional[DeclarationKind]:
        kind = _ENTITY_KINDS.get(cursor.kind.name)
        if kind is DeclarationKind.FUNCTION and cursor.get_num_template_arguments() > 0:
            return DeclarationKind.TEMPLATE_FUNCTION
        return kind

    # --- ノード変換 ---

    def _convert(self, cursor) -> List[AstNode]:
        kind = cursor.kind.name

        if kind in _SKIPPED_CURSORS:
            return []
        if kind in _TRANSPARENT_CURSORS:
            return [item.node for item in self._child_items(cursor)]
        if kind in ("DECL_REF_EXPR", "MEMBER_REF_EXPR"):
            return [self._decl_ref(cursor)]
        if kind == "TYPE_REF":
            return [self._name_node(cursor, NodeKind.TYPE_REF)]
        if kind == "TEMPLATE_REF":
            return [self._name_node(cursor, NodeKind.TEMPLATE_REF)]
        if kind == "CALL_EXPR":
            referenced = cursor.referenced
            if referenced is not None and referenced.kind.name == "CONSTRUCTOR":
                return [self._scope(cursor)]
            return [AstNode(NodeKind.CALL_EXPR, children=self._group(self._child_items(cursor)))]
        if kind == "CXX_BASE_SPECIFIER":
            return [AstNode(NodeKind.BASE_SPECIFIER, children=self._group(self._child_items(cursor)))]
        if kind in _TEMPLATE_PARAMETER_CURSORS:
            return [AstNode(NodeKind.TEMPLATE_PARAMETER, children=self._group(self._child_items(cursor)))]
        if kind in _VALUE_CURSORS:
            return [self._value_decl(cursor)]
        if kind in _FUNCTION_CURSORS:
            return [self._function(cursor)]
        return [self._scope(cursor)]

    def _scope(self, cursor) -> AstNode:
        return AstNode(NodeKind.SCOPE, children=self._group(self._child_items(cursor)))

    def _child_items(self, cursor) -> List[_Item]:
        items = []
        for child in cursor.get_children():
            offset = child.location.offset
            items.extend(_Item(offset, node) for node in self._convert(child))
        return items

    def _name_node(self, cursor, kind: NodeKind) -> AstNode:
        referenced = cursor.referenced
        name = referenced.spelling if referenced is not None else cursor.spelling
        location, from_argument = self._location(cursor, name)
        return AstNode(
            kind=kind,
            location=location,
            entity_id=self._register(referenced),
            spelling=name,
            from_macro_argument=from_argument
        )

    def _macro_node(self, cursor) -> Optional[AstNode]:
        offset = cursor.location.offset
        own = next((e for e in self.expansions if e.start == offset), None)
        if own is None:
            return None

        outer = self._outermost_expansion(offset)
        site = own.frame.call_site
        if outer is None or outer is own:
            location, from_argument = Location(site), False
        else:
            from_argument = cursor.spelling in outer.arguments
            location = Location(site, (outer.frame,))

        return AstNode(
            kind=NodeKind.MACRO_EXPANSION,
            location=location,
            entity_id=self._register(cursor.referenced),
            spelling=cursor.spelling,
            from_macro_argument=from_argument
        )

    def _decl_ref(self, cursor) -> AstNode:
        """DECL_REF_EXPR/MEMBER_REF_EXPRを変換する。

        名前より前の子（修飾子・メンバーアクセスの対象式）は独立した
        スコープに、名前の後の子は明示的なテンプレート引数として扱う。
        """
        node = self._name_node(cursor, NodeKind.DECL_REF)
        name_offset = cursor.location.offset

        items = self._child_items(cursor)
        before = [item for item in items if item.offset < name_offset]
        after = [item for item in items if item.offset >= name_offset]

        children: List[AstNode] = []
        if before:
            children.append(AstNode(NodeKind.SCOPE, children=self._group(before)))
        if after:
            ranges = self._template_argument_ranges(name_offset)
            profile = self._usage_profile(cursor.referenced) if ranges else ()
            children.extend(self._group(after, ranges, profile))

        return AstNode(
            kind=node.kind,
            location=node.location,
            entity_id=node.entity_id,
            spelling=node.spelling,
            children=tuple(children),
            from_macro_argument=node.from_macro_argument
        )

    def _value_decl(self, cursor) -> AstNode:
        """変数・引数・メンバー宣言を変換する。

        名前より前は宣言された型、名前以降は初期化式として扱う。
        """
        name_offset = cursor.location.offset
        items = self._child_items(cursor)
        type_items = [item for item in items if item.offset < name_offset]
        init_items = [item for item in items if item.offset >= name_offset]

        kind = NodeKind.POINTER_DECL if self._is_pointer(cursor.type) else NodeKind.VALUE_DECL
        children = [AstNode(kind, children=self._group(type_items))]
        if init_items:
            children.append(AstNode(NodeKind.SCOPE, children=self._group(init_items)))
        return AstNode(NodeKind.SCOPE, children=tuple(children))

    def _function(self, cursor) -> AstNode:
        """関数定義・宣言を変換する。

        名前より前の子（テンプレート引数宣言・戻り値型・修飾子）は
        戻り値型に応じた宣言として包む。コンストラクタ直下の型参照は
        基底クラスの初期化子となる。
        """
        name_offset = cursor.location.offset
        items = self._child_items(cursor)
        before = [item for item in items if item.offset < name_offset]
        after = [item for item in items if item.offset >= name_offset]

        kind = NodeKind.POINTER_DECL if self._is_pointer(cursor.result_type) else NodeKind.VALUE_DECL
        children = [AstNode(kind, children=self._group(before))]

        is_constructor = cursor.kind.name == "CONSTRUCTOR"
        for node in self._group(after):
            if is_constructor and node.kind in (NodeKind.TYPE_REF, NodeKind.TEMPLATE_REF):
                node = AstNode(NodeKind.MEMBER_INITIALIZER, children=(node,))
            children.append(node)

        return AstNode(NodeKind.SCOPE, children=tuple(children))

    @staticmethod
    def _is_pointer(clang_type) -> bool:
        current = clang_type.get_canonical()
        while current.kind.name in _ARRAY_TYPES:
            current = current.element_type
        return current.kind.name in _POINTER_TYPES

    # --- テンプレート引数 ---

    def _group(
        self,
        items: Sequence[_Item],
        ranges: Sequence[Tuple[int, int]] = (),
        profile: Sequence[ParameterUsage] = ()
    ) -> Tuple[AstNode, ...]:
        """テンプレート名に続く引数をTEMPLATE_ARGUMENTノードにまとめる。

        rangesを指定した場合は、先頭からその範囲に入る子をまとめる。
        """
        result: List[AstNode] = []
        index = 0
        if ranges:
            nodes, index = self._absorb(items, 0, ranges, profile)
            result.extend(nodes)

        while index < len(items):
            item = items[index]
            result.append(item.node)
            index += 1
            if item.node.kind is NodeKind.TEMPLATE_REF:
                item_ranges = self._template_argument_ranges(item.offset)
                if item_ranges:
                    # クラステンプレートの引数は定義側の使い方を追わない
                    nodes, index = self._absorb(items, index, item_ranges, ())
                    result.extend(nodes)

        return tuple(result)

    @staticmethod
    def _absorb(
        items: Sequence[_Item],
        index: int,
        ranges: Sequence[Tuple[int, int]],
        profile: Sequence[ParameterUsage]
    ) -> Tuple[List[AstNode], int]:
        groups: Dict[int, List[AstNode]] = {}
        while index < len(items):
            offset = items[index].offset
            position = next(
                (i for i, (start, end) in enumerate(ranges) if start <= offset < end),
                None
            )
            if position is None:
                break
            groups.setdefault(position, []).append(items[index].node)
            index += 1

        nodes = [
            AstNode(
                kind=NodeKind.TEMPLATE_ARGUMENT,
                children=tuple(groups[position]),
                parameter_usage=(
                    profile[position] if position < len(profile) else ParameterUsage.UNKNOWN
                )
            )
            for position in sorted(groups)
        ]
        return nodes, index

    def _template_argument_ranges(self, name_offset: int) -> List[Tuple[int, int]]:
        """名前の直後の<...>から引数ごとの文字オフセット範囲を求める。

        Returns:
            (開始, 終了)のリスト。名前の直後が'<'でなければ空
        """
        offsets = self._token_offsets
        spellings = self._token_spellings

        index = bisect_left(offsets, name_offset)
        if index >= len(offsets) or offsets[index] != name_offset:
            return []
        index += 1
        if index >= len(offsets) or spellings[index] != "<":
            return []

        ranges: List[Tuple[int, int]] = []
        start = offsets[index] + 1
        depth = 1
        nesting = 0
        for position in range(index + 1, len(offsets)):
            spelling = spellings[position]
            if spelling in ("(", "[", "{"):
                nesting += 1
            elif spelling in (")", "]", "}"):
                nesting -= 1
            elif nesting:
                continue
            elif spelling == "<":
                depth += 1
            elif spelling in (">", ">>"):
                depth -= len(spelling)
                if depth <= 0:
                    ranges.append((start, offsets[position]))
                    return ranges
            elif spelling == "," and depth == 1:
                ranges.append((start, offsets[position]))
                start = offsets[position] + 1
        return []

    def _usage_profile(self, referenced) -> Tuple[ParameterUsage, ...]:
        """関数テンプレートの各パラメータが本体でどう使われるかを求める。"""
        template = self._primary_template(referenced)
        if template is None:
            return ()

        key = template.get_usr() or f"{self._file_of(template)}:{template.location.offset}"
        if key in self._profiles:
            return self._profiles[key]

        profile = []
        for child in template.get_children():
            kind = child.kind.name
            if kind == "TEMPLATE_TYPE_PARAMETER":
                profile.append(self._parameter_usage(template, child))
            elif kind in _TEMPLATE_PARAMETER_CURSORS:
                profile.append(ParameterUsage.UNKNOWN)

        self._profiles[key] = tuple(profile)
        return self._profiles[key]

    def _primary_template(self, referenced):
        """特殊化された関数から元の関数テンプレートをたどる。

        明示的なテンプレート引数付きの呼び出しではreferencedが
        特殊化後のFUNCTION_DECLになるため、
        clang_getSpecializedCursorTemplateで元のテンプレートを得る。
        """
        cursor = referenced
        seen = 0
        while cursor is not None and seen < 4:
            kind = cursor.kind.name
            if kind == "FUNCTION_TEMPLATE":
                return cursor
            if kind not in _FUNCTION_CURSORS:
                return None
            cursor = self.ci.conf.lib.clang_getSpecializedCursorTemplate(cursor)
            seen += 1
        return None

    def _parameter_usage(self, template, parameter) -> ParameterUsage:
        """テンプレート型パラメータの使われ方を判定する。

        値としての変数・引数・戻り値、または式中で使われていれば
        INSTANTIATED、使われないかポインタ・参照経由のみならOPAQUE。
        """
        stack = [(template, child) for child in template.get_children()]
        while stack:
            parent, cursor = stack.pop()
            if cursor.kind.name == "TYPE_REF":
                target = cursor.referenced
                if target is not None and target == parameter:
                    if self._instantiates(parent, template):
                        return ParameterUsage.INSTANTIATED
            stack.extend((cursor, child) for child in cursor.get_children())
        return ParameterUsage.OPAQUE

    def _instantiates(self, parent, template) -> bool:
        kind = parent.kind.name
        if kind in _TEMPLATE_PARAMETER_CURSORS:
            return False
        if kind in _VALUE_CURSORS:
            return not self._is_pointer(parent.type)
        if parent == template:
            return not self._is_pointer(template.result_type)
        return True
