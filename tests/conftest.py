"""テスト共通のフィクスチャ。"""

import os
from typing import Dict, Iterable, Optional, Sequence

import pytest

from include_audit.models import (
    AstNode,
    Declaration,
    DeclarationKind,
    FileSite,
    IncludeDirective,
    Location,
    NodeKind,
    ParameterUsage,
    Reference,
    Requirement,
    Strength,
    Suppression,
    TranslationUnitModel,
    UsageMode,
)


PROJECT = os.path.normpath("/project")
MAIN = os.path.join(PROJECT, "src", "main.cpp")


def header(name: str) -> str:
    return os.path.join(PROJECT, "include", name)


class UnitFactory:
    """手書きの翻訳単位モデルを組み立てるヘルパー。"""

    def __init__(self, source_file: str = MAIN):
        self.source_file = source_file
        self.declarations: Dict[str, Declaration] = {}

    def declare(
        self,
        name: str,
        kind: Optional[DeclarationKind],
        declaration_header: Optional[str] = None,
        definition_header: Optional[str] = None,
        inline: bool = False
    ) -> Declaration:
        declaration = Declaration(
            entity_id=f"c:@{name}",
            name=name,
            kind=kind,
            declaration_header=declaration_header,
            definition_header=definition_header,
            inline=inline
        )
        self.declarations[declaration.entity_id] = declaration
        return declaration

    def site(self, line: int, column: int = 1, file_path: Optional[str] = None) -> Location:
        return Location(FileSite(file_path or self.source_file, line, column))

    def use(
        self,
        kind: NodeKind,
        declaration: Declaration,
        line: int,
        location: Optional[Location] = None,
        **kwargs
    ) -> AstNode:
        return AstNode(
            kind=kind,
            location=location or self.site(line),
            entity_id=declaration.entity_id,
            spelling=declaration.name,
            **kwargs
        )

    def unit(
        self,
        *children: AstNode,
        includes: Sequence[str] = (),
        include_graph: Optional[Dict[str, Sequence[str]]] = None,
        suppressions: Iterable[Suppression] = ()
    ) -> TranslationUnitModel:
        directives = tuple(
            IncludeDirective(header=h, spelling=os.path.basename(h), line=i + 1)
            for i, h in enumerate(includes)
        )
        return TranslationUnitModel(
            source_file=self.source_file,
            root=AstNode(NodeKind.TRANSLATION_UNIT, children=tuple(children)),
            includes=directives,
            include_graph={k: tuple(v) for k, v in (include_graph or {}).items()},
            declarations=tuple(self.declarations.values()),
            suppressions=tuple(suppressions)
        )

    def reference(
        self,
        declaration: Declaration,
        mode: UsageMode,
        line: int = 1,
        inlined_mode: Optional[UsageMode] = None,
        parameter_usage: ParameterUsage = ParameterUsage.UNKNOWN
    ) -> Reference:
        return Reference(
            declaration=declaration,
            location=self.site(line),
            mode=mode,
            inlined_mode=inlined_mode,
            parameter_usage=parameter_usage,
            spelling=declaration.name
        )

    def requirement(
        self,
        header_path: Optional[str],
        strength: Strength,
        declaration: Optional[Declaration] = None,
        line: int = 1
    ) -> Requirement:
        if declaration is None:
            declaration = self.declare(
                f"entity{len(self.declarations)}",
                DeclarationKind.CLASS,
                declaration_header=header_path,
                definition_header=header_path
            )
        return Requirement(
            header=header_path,
            strength=strength,
            reference=self.reference(declaration, UsageMode.BY_VALUE, line)
        )


@pytest.fixture
def factory() -> UnitFactory:
    return UnitFactory()


@pytest.fixture
def fixtures_dir() -> str:
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures")
