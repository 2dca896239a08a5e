from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from errors import UnrecognizedToken


class TokenKind(Enum):
    NUMBER = "number"
    VARIABLE = "variable"
    CONSTANT = "constant"
    FUNCTION = "function"
    OPERATOR = "operator"
    LPAREN = "("
    RPAREN = ")"
    END = "end of input"


class Operator(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    POWER = "^"


class Constant(Enum):
    I = "i"
    PI = "pi"
    E = "e"


class Function(Enum):
    SQRT = "sqrt"
    EXP = "exp"
    LOG = "log"
    SIN = "sin"
    COS = "cos"
    TAN = "tan"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int
    value: Union[float, Operator, Constant, Function, None] = None

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def describe(self) -> str:
        if self.kind is TokenKind.END:
            return "end of input"
        return f"{self.kind.value} {self.text!r}"


_SIGNED_NUMBER_RE = re.compile(r"[+-]?[0-9]+(?:\.[0-9]*)?(?:[eE][+-]?[0-9]+)?")
_NUMBER_RE = re.compile(r"[0-9]+(?:\.[0-9]*)?(?:[eE][+-]?[0-9]+)?")
_IDENT_RUN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

WHITESPACE = " \t"
OPERATOR_CHARS = {op.value: op for op in Operator}

FUNCTION_SPELLINGS = {
    "sqrt": Function.SQRT,
    "exp": Function.EXP,
    "log": Function.LOG,
    "ln": Function.LOG,
    "sin": Function.SIN,
    "cos": Function.COS,
    "tan": Function.TAN,
    "tg": Function.TAN,
}

CONSTANT_SPELLINGS = {c.value: c for c in Constant}

VARIABLE_NAME = "x"

# longest spelling first so overlapping prefixes never shadow each other
_FUNCTION_CANDIDATES = sorted(FUNCTION_SPELLINGS, key=lambda s: (-len(s), s))
_CONSTANT_CANDIDATES = sorted(CONSTANT_SPELLINGS, key=lambda s: (-len(s), s))


def skip_ws(s: str, i: int) -> int:
    while i < len(s) and s[i] in WHITESPACE:
        i += 1
    return i


def at_boundary(s: str, i: int) -> bool:
    """End-of-construct lookahead: whitespace, an operator, ')' or end of input."""
    if i >= len(s):
        return True
    c = s[i]
    return c in WHITESPACE or c in OPERATOR_CHARS or c == ")"


def _ends_identifier(s: str, i: int) -> bool:
    return i >= len(s) or not (s[i].isalnum() or s[i] == "_")


def match_number(s: str, i: int, signed: bool = True) -> Optional[Tuple[str, int]]:
    m = (_SIGNED_NUMBER_RE if signed else _NUMBER_RE).match(s, i)
    if m:
        return (m.group(0), m.end())
    return None


def match_function(s: str, i: int) -> Optional[Tuple[str, int]]:
    for name in _FUNCTION_CANDIDATES:
        j = i + len(name)
        if s.startswith(name, i) and _ends_identifier(s, j):
            return (name, j)
    return None


def match_constant(s: str, i: int) -> Optional[Tuple[str, int]]:
    for name in _CONSTANT_CANDIDATES:
        j = i + len(name)
        if s.startswith(name, i) and at_boundary(s, j):
            return (name, j)
    return None


def match_variable(s: str, i: int) -> Optional[Tuple[str, int]]:
    j = i + len(VARIABLE_NAME)
    if s.startswith(VARIABLE_NAME, i) and _ends_identifier(s, j):
        return (VARIABLE_NAME, j)
    return None


def classify(s: str, pos: int, operand: bool = False) -> Token:
    """
    Recognize the token starting at ``pos`` (after any spaces or tabs).

    With ``operand=True`` a leading ``+``/``-`` may belong to a numeric
    literal; otherwise signs are always operators.
    """
    i = skip_ws(s, pos)
    if i >= len(s):
        return Token(TokenKind.END, "", i, i)

    m = match_number(s, i, signed=operand)
    if m:
        text, j = m
        return Token(TokenKind.NUMBER, text, i, j, float(text))

    c = s[i]
    if c in OPERATOR_CHARS:
        return Token(TokenKind.OPERATOR, c, i, i + 1, OPERATOR_CHARS[c])
    if c == "(":
        return Token(TokenKind.LPAREN, c, i, i + 1)
    if c == ")":
        return Token(TokenKind.RPAREN, c, i, i + 1)

    m = match_function(s, i)
    if m:
        text, j = m
        return Token(TokenKind.FUNCTION, text, i, j, FUNCTION_SPELLINGS[text])

    m = match_constant(s, i)
    if m:
        text, j = m
        return Token(TokenKind.CONSTANT, text, i, j, CONSTANT_SPELLINGS[text])

    m = match_variable(s, i)
    if m:
        text, j = m
        return Token(TokenKind.VARIABLE, text, i, j)

    run = _IDENT_RUN_RE.match(s, i)
    end = run.end() if run else i + 1
    raise UnrecognizedToken(f"unrecognized token {s[i:end]!r}", s, i, end)


def tokenize(s: str):
    """Classify the whole input in operator position; mostly useful for debugging."""
    tokens = []
    pos = 0
    while True:
        tok = classify(s, pos)
        tokens.append(tok)
        if tok.kind is TokenKind.END:
            return tokens
        pos = tok.end
