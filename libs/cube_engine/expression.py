"""
Arithmetic expressions for calculated members.

Calculated members such as ``[Measures].[POAmount] / [Measures].[TransactionCount]``
are parsed into a small AST of measure references, numeric literals and the
operators ``+ - * /`` with parentheses and unary minus. The AST is metadata:
the engine validates it at registration time but does not evaluate it.
"""

import re
from dataclasses import dataclass


class ExpressionError(ValueError):
    """Raised when a calculated-member expression cannot be parsed."""

    def __init__(self, expression: str, position: int, reason: str):
        super().__init__(f"{reason} at position {position} in '{expression}'")
        self.expression = expression
        self.position = position
        self.reason = reason


@dataclass(frozen=True)
class MeasureRef:
    name: str


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnaryOp:
    operator: str
    operand: "Expression"


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: "Expression"
    right: "Expression"


Expression = MeasureRef | Number | UnaryOp | BinaryOp

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<measure>\[Measures\]\s*\.\s*\[(?P<measure_name>[^\]]+)\])
    |(?P<number>\d+(?:\.\d*)?|\.\d+)
    |(?P<op>[-+*/()])
    """,
    re.VERBOSE | re.IGNORECASE,
)


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    position: int


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_PATTERN.match(expression, position)
        if not match:
            raise ExpressionError(
                expression, position, f"Unexpected character '{expression[position]}'"
            )
        kind = match.lastgroup
        if kind == "measure_name":
            kind = "measure"
        if kind == "measure":
            tokens.append(_Token("measure", match.group("measure_name"), position))
        elif kind != "ws":
            tokens.append(_Token(kind, match.group(0), position))
        position = match.end()
    tokens.append(_Token("end", "", len(expression)))
    return tokens


class _ExpressionParser:
    """Recursive descent: expr := term (('+'|'-') term)*, term := factor (('*'|'/') factor)*."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.index = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def _advance(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _is_op(self, *operators: str) -> bool:
        return self.current.kind == "op" and self.current.value in operators

    def parse(self) -> Expression:
        node = self._expr()
        if self.current.kind != "end":
            raise ExpressionError(
                self.expression,
                self.current.position,
                f"Unexpected token '{self.current.value}'",
            )
        return node

    def _expr(self) -> Expression:
        node = self._term()
        while self._is_op("+", "-"):
            operator = self._advance().value
            node = BinaryOp(operator, node, self._term())
        return node

    def _term(self) -> Expression:
        node = self._factor()
        while self._is_op("*", "/"):
            operator = self._advance().value
            node = BinaryOp(operator, node, self._factor())
        return node

    def _factor(self) -> Expression:
        token = self.current
        if self._is_op("-", "+"):
            self._advance()
            return UnaryOp(token.value, self._factor())
        if token.kind == "measure":
            self._advance()
            return MeasureRef(token.value)
        if token.kind == "number":
            self._advance()
            return Number(float(token.value))
        if self._is_op("("):
            self._advance()
            node = self._expr()
            if not self._is_op(")"):
                raise ExpressionError(
                    self.expression, self.current.position, "Expected ')'"
                )
            self._advance()
            return node
        found = token.value or "end of expression"
        raise ExpressionError(
            self.expression, token.position, f"Unexpected token '{found}'"
        )


def parse_expression(expression: str) -> Expression:
    """Parse a calculated-member expression into its AST."""
    return _ExpressionParser(expression).parse()


def referenced_measures(node: Expression) -> list[str]:
    """Measure names used by an expression, in first-seen order."""
    names: list[str] = []

    def visit(current: Expression) -> None:
        if isinstance(current, MeasureRef):
            if current.name not in names:
                names.append(current.name)
        elif isinstance(current, UnaryOp):
            visit(current.operand)
        elif isinstance(current, BinaryOp):
            visit(current.left)
            visit(current.right)

    visit(node)
    return names
