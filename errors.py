"""
Errors raised while reading an expression.

Every error is terminal: the parser never returns a partial tree. Each one
remembers the source text and the span of the offending input so callers can
point at it.
"""

from typing import Optional


class ParseError(ValueError):
    """Base class for all expression syntax errors."""

    def __init__(self, message: str, source: str, offset: int, end: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.offset = offset
        self.end = offset if end is None else end

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def span(self):
        return (self.offset, self.end)

    def __str__(self) -> str:
        width = max(1, self.end - self.offset)
        caret = " " * self.offset + "^" * width
        return f"{self.kind}: {self.message} at offset {self.offset}\n  {self.source}\n  {caret}"


class UnrecognizedToken(ParseError):
    pass


class UnterminatedGroup(ParseError):
    def __init__(self, message, source, offset, end=None, opened_at=None):
        super().__init__(message, source, offset, end)
        # offset of the "(" that was never closed
        self.opened_at = opened_at


class TrailingInput(ParseError):
    pass


class MissingOperand(ParseError):
    pass


class InvalidExponent(ParseError):
    pass


class NestingTooDeep(ParseError):
    pass


class EvaluationError(ArithmeticError):
    """Raised by the evaluator for division by zero, domain errors and overflow."""
