"""Data models for header usage resolution."""

from .location import FileSite, ExpansionFrame, Location, resolve_effective_site
from .requirement import Requirement, Strength
from .declaration import Declaration, DeclarationKind
from .reference import Reference, UsageMode, ParameterUsage
from .diagnostic import Diagnostic, Severity
from .unit import (
    AstNode,
    NodeKind,
    IncludeDirective,
    Suppression,
    TranslationUnitModel,
)
from .verdict import HeaderVerdict, MissingInclude, UnitAnalysis, Verdict

__all__ = [
    "FileSite",
    "ExpansionFrame",
    "Location",
    "resolve_effective_site",
    "Requirement",
    "Strength",
    "Declaration",
    "DeclarationKind",
    "Reference",
    "UsageMode",
    "ParameterUsage",
    "Diagnostic",
    "Severity",
    "AstNode",
    "NodeKind",
    "IncludeDirective",
    "Suppression",
    "TranslationUnitModel",
    "HeaderVerdict",
    "MissingInclude",
    "UnitAnalysis",
    "Verdict",
]
