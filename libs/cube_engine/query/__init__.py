"""Query language: AST, parser and SQL compiler."""

from .compiler import CompiledQuery, QueryCompiler, resolve_level
from .models import (
    DimensionLevelItem,
    EqualsPredicate,
    InPredicate,
    MeasureItem,
    ParsedQuery,
)
from .parser import QueryParser, tokenize

__all__ = [
    "CompiledQuery",
    "QueryCompiler",
    "resolve_level",
    "DimensionLevelItem",
    "EqualsPredicate",
    "InPredicate",
    "MeasureItem",
    "ParsedQuery",
    "QueryParser",
    "tokenize",
]
