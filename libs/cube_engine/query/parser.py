"""
Query language parser.

Grammar (keywords are case-insensitive, whitespace and newlines are free)::

    query          := SELECT select_list FROM cube_ref [WHERE predicate_list] [";"]
    select_list    := select_item ("," select_item)*
    select_item    := "[Measures].[" ident "]" | member_ref
    member_ref     := "[" ident "].[" ident "]" | "[" ident "].[" ident "].[" ident "]"
    cube_ref       := "[" ident "]" | ident
    predicate_list := predicate (AND predicate)*
    predicate      := member_ref "=" literal | member_ref IN "(" literal ("," literal)* ")"
    literal        := string | number | TRUE | FALSE

The parser only checks syntax. Whether the referenced cube, dimensions,
levels and measures exist is decided by the compiler.
"""

import re
from dataclasses import dataclass
from typing import Any

from ..errors import QuerySyntaxError
from .models import (
    DimensionLevelItem,
    EqualsPredicate,
    InPredicate,
    MeasureItem,
    ParsedQuery,
    Predicate,
    SelectItem,
)

KEYWORDS = {"SELECT", "FROM", "WHERE", "AND", "IN", "TRUE", "FALSE"}

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<newline>\n)
    |(?P<ws>[ \t\r\f\v]+)
    |(?P<bracket>\[[^\]\n]*\])
    |(?P<string>'(?:[^'\n]|'')*'|"(?:[^"\n]|"")*")
    |(?P<number>-?\d+(?:\.\d+)?)
    |(?P<word>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<punct>[.,()=;])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    line: int
    column: int
    text: str

    def describe(self) -> str:
        if self.kind == "end":
            return "end of query"
        return f"'{self.text}'"


def tokenize(query_text: str) -> list[Token]:
    """Split query text into tokens, tracking line and column."""
    tokens: list[Token] = []
    line, line_start, position = 1, 0, 0

    while position < len(query_text):
        match = _TOKEN_PATTERN.match(query_text, position)
        column = position - line_start + 1
        if not match:
            char = query_text[position]
            if char == "[":
                reason = "Unterminated '[' in identifier"
            elif char in "'\"":
                reason = "Unterminated string literal"
            else:
                reason = f"Unexpected character '{char}'"
            raise QuerySyntaxError(line, reason, column)

        kind = match.lastgroup
        raw = match.group(0)
        position = match.end()

        if kind == "newline":
            line += 1
            line_start = position
            continue
        if kind == "ws":
            continue

        if kind == "bracket":
            name = raw[1:-1].strip()
            if not name:
                raise QuerySyntaxError(line, "Empty identifier '[]'", column)
            tokens.append(Token("ident", name, line, column, raw))
        elif kind == "string":
            quote = raw[0]
            value = raw[1:-1].replace(quote * 2, quote)
            tokens.append(Token("string", value, line, column, raw))
        elif kind == "number":
            value = float(raw) if "." in raw else int(raw)
            tokens.append(Token("number", value, line, column, raw))
        elif kind == "word":
            upper = raw.upper()
            if upper in KEYWORDS:
                tokens.append(Token("keyword", upper, line, column, raw))
            else:
                tokens.append(Token("word", raw, line, column, raw))
        else:
            tokens.append(Token("punct", raw, line, column, raw))

    tokens.append(Token("end", None, line, position - line_start + 1, ""))
    return tokens


class QueryParser:
    """Recursive descent parser producing a ParsedQuery."""

    def parse(self, query_text: str) -> ParsedQuery:
        """
        Parse query text.

        Raises:
            QuerySyntaxError: On the first token that does not fit the grammar
        """
        return _Parser(tokenize(query_text)).query()


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "end":
            self.index += 1
        return token

    def _error(self, reason: str, token: Token | None = None) -> QuerySyntaxError:
        token = token or self.current
        return QuerySyntaxError(token.line, reason, token.column)

    def _at_keyword(self, keyword: str) -> bool:
        return self.current.kind == "keyword" and self.current.value == keyword

    def _at_punct(self, punct: str) -> bool:
        return self.current.kind == "punct" and self.current.value == punct

    def _expect_keyword(self, keyword: str) -> Token:
        if not self._at_keyword(keyword):
            raise self._error(f"Expected {keyword}, found {self.current.describe()}")
        return self._advance()

    def _expect_punct(self, punct: str) -> Token:
        if not self._at_punct(punct):
            raise self._error(f"Expected '{punct}', found {self.current.describe()}")
        return self._advance()

    def _expect_ident(self, what: str) -> Token:
        if self.current.kind != "ident":
            raise self._error(
                f"Expected bracketed {what}, found {self.current.describe()}"
            )
        return self._advance()

    def query(self) -> ParsedQuery:
        self._expect_keyword("SELECT")
        select = [self._select_item()]
        while self._at_punct(","):
            self._advance()
            select.append(self._select_item())

        self._expect_keyword("FROM")
        cube = self._cube_ref()

        where: list[Predicate] = []
        if self._at_keyword("WHERE"):
            self._advance()
            where.append(self._predicate())
            while self._at_keyword("AND"):
                self._advance()
                where.append(self._predicate())

        if self._at_punct(";"):
            self._advance()
        if self.current.kind != "end":
            raise self._error(f"Unexpected {self.current.describe()} after query")

        return ParsedQuery(select=select, cube=cube, where=where)

    def _member_parts(self) -> tuple[Token, list[str]]:
        first = self._expect_ident("dimension or [Measures]")
        parts = [first.value]
        self._expect_punct(".")
        parts.append(self._expect_ident("member name").value)
        if self._at_punct("."):
            self._advance()
            parts.append(self._expect_ident("level name").value)
        return first, parts

    def _select_item(self) -> SelectItem:
        first, parts = self._member_parts()
        if parts[0].lower() == "measures":
            if len(parts) != 2:
                raise self._error("Measure references take the form [Measures].[Name]", first)
            return MeasureItem(name=parts[1])
        return self._dimension_level(parts)

    @staticmethod
    def _dimension_level(parts: list[str]) -> DimensionLevelItem:
        if len(parts) == 3:
            return DimensionLevelItem(
                dimension=parts[0], hierarchy=parts[1], level=parts[2]
            )
        return DimensionLevelItem(dimension=parts[0], level=parts[1])

    def _cube_ref(self) -> str:
        token = self.current
        if token.kind in ("ident", "word"):
            self._advance()
            return token.value
        raise self._error(f"Expected cube name, found {token.describe()}")

    def _predicate(self) -> Predicate:
        first, parts = self._member_parts()
        if parts[0].lower() == "measures":
            raise self._error("Predicates must reference a dimension level", first)
        member = self._dimension_level(parts)

        if self._at_punct("="):
            self._advance()
            return EqualsPredicate(
                dimension=member.dimension,
                hierarchy=member.hierarchy,
                level=member.level,
                value=self._literal(),
            )

        if self._at_keyword("IN"):
            self._advance()
            self._expect_punct("(")
            values = [self._literal()]
            while self._at_punct(","):
                self._advance()
                values.append(self._literal())
            self._expect_punct(")")
            return InPredicate(
                dimension=member.dimension,
                hierarchy=member.hierarchy,
                level=member.level,
                values=values,
            )

        raise self._error(f"Expected '=' or IN, found {self.current.describe()}")

    def _literal(self) -> Any:
        token = self.current
        if token.kind in ("string", "number"):
            self._advance()
            return token.value
        if token.kind == "keyword" and token.value in ("TRUE", "FALSE"):
            self._advance()
            return token.value == "TRUE"
        raise self._error(f"Expected literal value, found {token.describe()}")
