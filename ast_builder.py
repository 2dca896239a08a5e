import logging
import math
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field

from errors import (
    InvalidExponent,
    MissingOperand,
    NestingTooDeep,
    TrailingInput,
    UnterminatedGroup,
)
from lexer import Constant, Function, Operator, TokenKind, classify

logger = logging.getLogger(__name__)


class ASTNode:
    pass


@dataclass(frozen=True)
class NumberLiteral(ASTNode):
    value: float
    text: str = field(default="", compare=False, repr=False)

    def __str__(self):
        v = float(self.value)
        if not math.isfinite(v):
            return self.text.lstrip("+") or repr(v)
        if v.is_integer() and abs(v) < 1e16:
            return str(int(v))
        return repr(v)


@dataclass(frozen=True)
class VariableReference(ASTNode):
    def __str__(self):
        return "x"


@dataclass(frozen=True)
class ConstantReference(ASTNode):
    constant: Constant

    def __str__(self):
        return self.constant.value


@dataclass(frozen=True)
class BinaryOp(ASTNode):
    op: Operator
    left: ASTNode
    right: ASTNode

    def __str__(self):
        if self.op is Operator.POWER:
            base = _wrap(self.left, BinaryOp)
            exponent = str(self.right) if isinstance(self.right, NumberLiteral) else f"({self.right})"
            return f"{base}^{exponent}"
        return f"{_wrap_operand(self.left)} {self.op.value} {_wrap_operand(self.right)}"


@dataclass(frozen=True)
class UnaryNegate(ASTNode):
    operand: ASTNode

    def __str__(self):
        return f"-{_wrap(self.operand, BinaryOp)}"


@dataclass(frozen=True)
class FunctionCall(ASTNode):
    function: Function
    argument: ASTNode

    def __str__(self):
        return f"{self.function.value}({self.argument})"


def _wrap(node, types):
    s = str(node)
    return f"({s})" if isinstance(node, types) else s


def _wrap_operand(node):
    # powers already bind tighter than any chain operator
    if isinstance(node, BinaryOp) and node.op is not Operator.POWER:
        return f"({node})"
    return str(node)


PRECEDENCE_MODES = ("flat", "standard")

# Python frames used per nesting level, with headroom for the caller's stack
FRAMES_PER_LEVEL = 8
RESERVED_FRAMES = 200


def max_depth_limit():
    return max(100, (sys.getrecursionlimit() - RESERVED_FRAMES) // FRAMES_PER_LEVEL)


@dataclass(frozen=True)
class ParserConfig:
    """
    ``precedence="flat"`` applies ``+ - * /`` strictly left to right, so
    ``2 + 3 * 4`` reads as ``(2 + 3) * 4``. ``"standard"`` makes ``* /`` bind
    tighter than ``+ -``. Power always binds tightest.

    ``max_depth`` caps nesting of parentheses, function calls and negations.
    """
    precedence: str = "flat"
    max_depth: int = 100

    def __post_init__(self):
        if self.precedence not in PRECEDENCE_MODES:
            raise ValueError(f"precedence must be one of {PRECEDENCE_MODES}, got {self.precedence!r}")
        if not isinstance(self.max_depth, int) or self.max_depth < 1:
            raise ValueError(f"max_depth must be a positive integer, got {self.max_depth!r}")
        if self.max_depth > max_depth_limit():
            raise ValueError(
                f"max_depth {self.max_depth} exceeds what the interpreter stack allows ({max_depth_limit()})"
            )


DEFAULT_CONFIG = ParserConfig()

ADDITIVE = (Operator.ADD, Operator.SUBTRACT)
MULTIPLICATIVE = (Operator.MULTIPLY, Operator.DIVIDE)
CHAIN_OPERATORS = ADDITIVE + MULTIPLICATIVE


class ExpressionBuilder:
    """
    Recursive-descent builder over the character stream.

    Tokens are classified on demand at the cursor, since whether a leading
    sign belongs to a number depends on where the parser is. One builder
    serves one parse call.
    """

    def __init__(self, source, config=DEFAULT_CONFIG):
        self.source = source
        self.config = config
        self._pos = 0
        self._depth = 0

    def build(self):
        node = self._expression()
        tok = self._peek()
        if tok.kind is not TokenKind.END:
            raise TrailingInput(f"unexpected {tok.describe()}", self.source, tok.start, tok.end)
        return node

    def _peek(self, operand=False):
        return classify(self.source, self._pos, operand)

    def _advance(self, tok):
        self._pos = tok.end

    @contextmanager
    def _nested(self, tok):
        self._depth += 1
        try:
            if self._depth > self.config.max_depth:
                raise NestingTooDeep(
                    f"nesting deeper than {self.config.max_depth} levels", self.source, tok.start, tok.end
                )
            yield
        finally:
            self._depth -= 1

    def _expression(self):
        if self.config.precedence == "standard":
            return self._chain(ADDITIVE, lambda: self._chain(MULTIPLICATIVE, self._power))
        return self._chain(CHAIN_OPERATORS, self._power)

    def _chain(self, operators, operand):
        left = operand()
        while True:
            tok = self._peek()
            if tok.kind is not TokenKind.OPERATOR or tok.value not in operators:
                return left
            self._advance(tok)
            left = BinaryOp(tok.value, left, operand())

    def _power(self):
        base = self._primary()
        caret = self._peek()
        if caret.kind is not TokenKind.OPERATOR or caret.value is not Operator.POWER:
            return base
        self._advance(caret)
        tok = self._peek(operand=True)
        if tok.kind is TokenKind.NUMBER:
            self._advance(tok)
            return BinaryOp(Operator.POWER, base, NumberLiteral(tok.value, tok.text))
        if tok.kind is TokenKind.END:
            raise MissingOperand("expected an exponent after '^'", self.source, tok.start, tok.end)
        raise InvalidExponent(
            f"exponent must be a numeric literal, found {tok.describe()}", self.source, tok.start, tok.end
        )

    def _primary(self):
        # negation is tried before signed literals: "-4" is a negated 4
        tok = self._peek()
        if tok.kind is TokenKind.OPERATOR and tok.value is Operator.SUBTRACT:
            self._advance(tok)
            with self._nested(tok):
                return UnaryNegate(self._primary())

        tok = self._peek(operand=True)
        if tok.kind is TokenKind.NUMBER:
            self._advance(tok)
            return NumberLiteral(tok.value, tok.text)
        if tok.kind is TokenKind.VARIABLE:
            self._advance(tok)
            return VariableReference()
        if tok.kind is TokenKind.CONSTANT:
            self._advance(tok)
            return ConstantReference(tok.value)
        if tok.kind is TokenKind.FUNCTION:
            return self._call(tok)
        if tok.kind is TokenKind.LPAREN:
            return self._group(tok)
        if tok.kind is TokenKind.RPAREN and self._depth == 0 and self._pos == 0:
            raise TrailingInput(f"unmatched {tok.describe()}", self.source, tok.start, tok.end)
        raise MissingOperand(f"expected an operand, found {tok.describe()}", self.source, tok.start, tok.end)

    def _call(self, name):
        self._advance(name)
        paren = self._peek()
        if paren.kind is not TokenKind.LPAREN:
            raise MissingOperand(
                f"expected '(' after function {name.text!r}, found {paren.describe()}",
                self.source, paren.start, paren.end,
            )
        self._advance(paren)
        with self._nested(name):
            argument = self._expression()
        self._close(paren)
        return FunctionCall(name.value, argument)

    def _group(self, paren):
        self._advance(paren)
        with self._nested(paren):
            inner = self._expression()
        self._close(paren)
        return inner

    def _close(self, paren):
        tok = self._peek()
        if tok.kind is not TokenKind.RPAREN:
            raise UnterminatedGroup(
                f"expected ')' to close '(' at offset {paren.start}, found {tok.describe()}",
                self.source, tok.start, tok.end, opened_at=paren.start,
            )
        self._advance(tok)


def parse(source, config=None):
    """Parse ``source`` into an expression tree, raising a ``ParseError`` on bad input."""
    if not isinstance(source, str):
        raise TypeError(f"expected a string, got {type(source).__name__}")
    builder = ExpressionBuilder(source, config or DEFAULT_CONFIG)
    try:
        tree = builder.build()
    except RecursionError:
        raise NestingTooDeep(
            "nesting exceeds the interpreter stack", source, builder._pos, builder._pos
        ) from None
    logger.debug("parsed %r as %s", source, tree)
    return tree


def print_ast(node, indent=0, file=None):
    out = file if file is not None else sys.stdout
    prefix = "  " * indent
    node_name = type(node).__name__
    details = ""
    children = []

    if isinstance(node, NumberLiteral):
        details = f"({node})"
    elif isinstance(node, ConstantReference):
        details = f"({node.constant.name})"
    elif isinstance(node, BinaryOp):
        details = f"(op='{node.op.value}')"
        children = [("Left", node.left), ("Right", node.right)]
    elif isinstance(node, UnaryNegate):
        children = [("Operand", node.operand)]
    elif isinstance(node, FunctionCall):
        details = f"({node.function.name})"
        children = [("Arg", node.argument)]
    elif not isinstance(node, VariableReference):
        details = f"({node})"

    print(f"{prefix}{node_name}{details}", file=out)
    for label, child in children:
        print(f"{prefix}  +{label}:", file=out)
        print_ast(child, indent + 2, file=out)
