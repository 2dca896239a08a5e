import cmath
import logging
import math
from typing import Any, Callable, Dict, Optional

import sympy

from ast_builder import ASTNode
from errors import EvaluationError
from lexer import Constant, Function, Operator

logger = logging.getLogger(__name__)

X = sympy.Symbol("x")

COMPLEX_CONSTANTS = {
    Constant.I: 1j,
    Constant.PI: cmath.pi,
    Constant.E: cmath.e,
}

REAL_CONSTANTS = {
    Constant.PI: math.pi,
    Constant.E: math.e,
}

COMPLEX_FUNCTIONS = {
    Function.SQRT: cmath.sqrt,
    Function.EXP: cmath.exp,
    Function.LOG: cmath.log,
    Function.SIN: cmath.sin,
    Function.COS: cmath.cos,
    Function.TAN: cmath.tan,
}

REAL_FUNCTIONS = {
    Function.SQRT: math.sqrt,
    Function.EXP: math.exp,
    Function.LOG: math.log,
    Function.SIN: math.sin,
    Function.COS: math.cos,
    Function.TAN: math.tan,
}


class Evaluator:
    """
    Numeric evaluation of an expression tree at a given ``x``.

    Complex arithmetic is the default. With ``real=True`` everything stays on
    floats and leaving the reals (``i``, ``sqrt(-1)``, ``(-8)^0.5``) is an error.
    """

    def __init__(self, real: bool = False,
                 constants: Optional[Dict[Constant, Any]] = None,
                 functions: Optional[Dict[Function, Callable]] = None):
        self.real = real
        self.constants = dict(REAL_CONSTANTS if real else COMPLEX_CONSTANTS)
        self.constants.update(constants or {})
        self.functions = dict(REAL_FUNCTIONS if real else COMPLEX_FUNCTIONS)
        self.functions.update(functions or {})
        self.x = 0

    def evaluate(self, node: ASTNode, x=0):
        self.x = float(x) if self.real else complex(x)
        try:
            return self.visit(node)
        except ZeroDivisionError as e:
            raise EvaluationError(f"division by zero in {node}") from e
        except OverflowError as e:
            raise EvaluationError(f"numeric overflow in {node}") from e

    def visit(self, node):
        method_name = f'visit_{type(node).__name__}'
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node):
        raise TypeError(f"cannot evaluate {type(node).__name__}")

    def visit_NumberLiteral(self, node):
        return float(node.value) if self.real else complex(node.value)

    def visit_VariableReference(self, node):
        return self.x

    def visit_ConstantReference(self, node):
        if node.constant not in self.constants:
            raise EvaluationError(f"constant {node.constant.value!r} has no real value")
        return self.constants[node.constant]

    def visit_UnaryNegate(self, node):
        return -self.visit(node.operand)

    def visit_BinaryOp(self, node):
        left = self.visit(node.left)
        right = self.visit(node.right)
        if node.op is Operator.ADD:
            return left + right
        if node.op is Operator.SUBTRACT:
            return left - right
        if node.op is Operator.MULTIPLY:
            return left * right
        if node.op is Operator.DIVIDE:
            return left / right
        return self._power(left, right)

    def _power(self, base, exponent):
        n = exponent.real if isinstance(exponent, complex) else exponent
        if n.is_integer() and abs(n) < 2 ** 31:
            n = int(n)
        if self.real:
            result = base ** n
            # float ** non-integer of a negative base silently goes complex
            if isinstance(result, complex):
                raise EvaluationError(f"{base} ** {n} is not real")
            return result
        return base ** n

    def visit_FunctionCall(self, node):
        argument = self.visit(node.argument)
        fn = self.functions[node.function]
        try:
            return fn(argument)
        except ValueError as e:
            raise EvaluationError(f"{node.function.value}({argument}) is undefined: {e}") from e


def evaluate(node: ASTNode, x=0, real: bool = False, constants=None, functions=None):
    value = Evaluator(real=real, constants=constants, functions=functions).evaluate(node, x)
    logger.debug("evaluated %s at x=%s -> %s", node, x, value)
    return value


class SympyConverter:
    """Rebuild the tree as an unevaluated SymPy expression of the same shape."""

    constants = {
        Constant.I: sympy.I,
        Constant.PI: sympy.pi,
        Constant.E: sympy.E,
    }

    functions = {
        Function.SQRT: sympy.sqrt,
        Function.EXP: sympy.exp,
        Function.LOG: sympy.log,
        Function.SIN: sympy.sin,
        Function.COS: sympy.cos,
        Function.TAN: sympy.tan,
    }

    def visit(self, node):
        method_name = f'visit_{type(node).__name__}'
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node):
        raise TypeError(f"cannot convert {type(node).__name__} to SymPy")

    def visit_NumberLiteral(self, node):
        v = float(node.value)
        if v.is_integer() and abs(v) < 1e16:
            return sympy.Integer(int(v))
        return sympy.Float(v)

    def visit_VariableReference(self, node):
        return X

    def visit_ConstantReference(self, node):
        return self.constants[node.constant]

    def visit_UnaryNegate(self, node):
        return sympy.Mul(sympy.S.NegativeOne, self.visit(node.operand), evaluate=False)

    def visit_BinaryOp(self, node):
        left = self.visit(node.left)
        right = self.visit(node.right)
        if node.op is Operator.ADD:
            return sympy.Add(left, right, evaluate=False)
        if node.op is Operator.SUBTRACT:
            return sympy.Add(left, sympy.Mul(sympy.S.NegativeOne, right, evaluate=False), evaluate=False)
        if node.op is Operator.MULTIPLY:
            return sympy.Mul(left, right, evaluate=False)
        if node.op is Operator.DIVIDE:
            return sympy.Mul(left, sympy.Pow(right, sympy.S.NegativeOne, evaluate=False), evaluate=False)
        return sympy.Pow(left, right, evaluate=False)

    def visit_FunctionCall(self, node):
        return self.functions[node.function](self.visit(node.argument), evaluate=False)


def to_sympy(node: ASTNode):
    return SympyConverter().visit(node)
