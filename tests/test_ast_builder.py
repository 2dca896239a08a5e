import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from ast_builder import (
    BinaryOp,
    ConstantReference,
    ExpressionBuilder,
    FunctionCall,
    NumberLiteral,
    ParserConfig,
    UnaryNegate,
    VariableReference,
    max_depth_limit,
    parse,
    print_ast,
)
from errors import (
    InvalidExponent,
    MissingOperand,
    NestingTooDeep,
    ParseError,
    TrailingInput,
    UnrecognizedToken,
    UnterminatedGroup,
)
from lexer import Constant, Function, Operator

STANDARD = ParserConfig(precedence="standard")

X = VariableReference()


def num(v):
    return NumberLiteral(v)


def test_variable():
    assert parse("x") == X
    assert parse("  x\t") == X


def test_flat_chain_is_left_to_right():
    assert parse("2 + 3 * 4") == BinaryOp(
        Operator.MULTIPLY, BinaryOp(Operator.ADD, num(2), num(3)), num(4)
    )


def test_standard_precedence():
    assert parse("2 + 3 * 4", STANDARD) == BinaryOp(
        Operator.ADD, num(2), BinaryOp(Operator.MULTIPLY, num(3), num(4))
    )
    assert parse("8 / 4 / 2 - 1", STANDARD) == BinaryOp(
        Operator.SUBTRACT,
        BinaryOp(Operator.DIVIDE, BinaryOp(Operator.DIVIDE, num(8), num(4)), num(2)),
        num(1),
    )


def test_subtraction_is_left_associative():
    assert parse("1 - 2 - 3") == BinaryOp(
        Operator.SUBTRACT, BinaryOp(Operator.SUBTRACT, num(1), num(2)), num(3)
    )


def test_negated_function_call():
    assert parse("-sqrt(4)") == UnaryNegate(FunctionCall(Function.SQRT, num(4)))


def test_negation_binds_to_one_primary():
    assert parse("-x + 1") == BinaryOp(Operator.ADD, UnaryNegate(X), num(1))
    assert parse("-(x + 1)") == UnaryNegate(BinaryOp(Operator.ADD, X, num(1)))
    assert parse("-4") == UnaryNegate(num(4))
    assert parse("--x") == UnaryNegate(UnaryNegate(X))


def test_negation_after_operator():
    assert parse("1 - -x") == BinaryOp(Operator.SUBTRACT, num(1), UnaryNegate(X))
    assert parse("2*-3") == BinaryOp(Operator.MULTIPLY, num(2), UnaryNegate(num(3)))


def test_power():
    assert parse("2^3") == BinaryOp(Operator.POWER, num(2), num(3))
    assert parse("x ^ -2") == BinaryOp(Operator.POWER, X, num(-2))
    assert parse("x^1.5e1") == BinaryOp(Operator.POWER, X, num(15))


def test_power_binds_tighter_than_chain():
    assert parse("1 + x^2") == BinaryOp(
        Operator.ADD, num(1), BinaryOp(Operator.POWER, X, num(2))
    )


def test_power_of_negated_primary():
    assert parse("-x^2") == BinaryOp(Operator.POWER, UnaryNegate(X), num(2))


def test_constants():
    assert parse("pi + 1") == BinaryOp(Operator.ADD, ConstantReference(Constant.PI), num(1))
    assert parse("e*i") == BinaryOp(
        Operator.MULTIPLY, ConstantReference(Constant.E), ConstantReference(Constant.I)
    )


def test_function_aliases():
    assert parse("tg(x)") == parse("tan(x)") == FunctionCall(Function.TAN, X)
    assert parse("ln(x)") == parse("log(x)") == FunctionCall(Function.LOG, X)


def test_nested_calls_and_groups():
    assert parse("exp(sin((x)))") == FunctionCall(Function.EXP, FunctionCall(Function.SIN, X))
    assert parse("((x))") == X


def test_number_keeps_source_text():
    tree = parse("2.50")
    assert tree == num(2.5)
    assert tree.text == "2.50"


@pytest.mark.parametrize("source, error, offset", [
    ("2^x", InvalidExponent, 2),
    ("2^(3)", InvalidExponent, 2),
    ("2^pi", InvalidExponent, 2),
    ("2^", MissingOperand, 2),
    ("sin(x", UnterminatedGroup, 5),
    ("(1 2)", UnterminatedGroup, 3),
    ("((x)", UnterminatedGroup, 4),
    ("pie", UnrecognizedToken, 0),
    ("x $", UnrecognizedToken, 2),
    ("", MissingOperand, 0),
    ("1 +", MissingOperand, 3),
    ("1 + * 2", MissingOperand, 4),
    ("-", MissingOperand, 1),
    ("sin x", MissingOperand, 4),
    ("sin", MissingOperand, 3),
    ("()", MissingOperand, 1),
    (")", TrailingInput, 0),
    (" ) + 1", TrailingInput, 1),
    ("1 + )", MissingOperand, 4),
    ("-)", MissingOperand, 1),
    ("(1))", TrailingInput, 3),
    ("1)", TrailingInput, 1),
    ("2x", TrailingInput, 1),
    ("1e", TrailingInput, 1),
    ("2^3^4", TrailingInput, 3),
])
def test_errors(source, error, offset):
    with pytest.raises(error) as info:
        parse(source)
    assert info.value.offset == offset
    assert info.value.source == source


def test_unterminated_group_remembers_opening():
    with pytest.raises(UnterminatedGroup) as info:
        parse("1 + sin(x")
    assert info.value.opened_at == 7
    assert info.value.span == (9, 9)


def test_error_message_points_at_input():
    with pytest.raises(ParseError) as info:
        parse("2^x")
    text = str(info.value)
    assert text.startswith("InvalidExponent:")
    assert "offset 2" in text
    assert text.splitlines()[-1] == "    ^"


def test_nesting_limit():
    config = ParserConfig(max_depth=3)
    assert parse("(((x)))", config) == X
    with pytest.raises(NestingTooDeep) as info:
        parse("((((x))))", config)
    assert info.value.offset == 3


def test_nesting_limit_counts_calls_and_negations():
    config = ParserConfig(max_depth=2)
    with pytest.raises(NestingTooDeep):
        parse("sin(cos(exp(x)))", config)
    with pytest.raises(NestingTooDeep):
        parse("---x", config)


def test_adversarial_nesting_fails_deterministically():
    source = "(" * 5000 + "x" + ")" * 5000
    with pytest.raises(NestingTooDeep):
        parse(source)
    with pytest.raises(NestingTooDeep):
        parse("-" * 5000 + "x")


def test_deep_nesting_within_limit():
    source = "(" * 50 + "x" + ")" * 50
    assert parse(source) == X
    assert parse(source, STANDARD) == X


def test_max_depth_is_capped_by_interpreter_stack():
    assert ParserConfig(max_depth=max_depth_limit()).max_depth == max_depth_limit()
    with pytest.raises(ValueError):
        ParserConfig(max_depth=max_depth_limit() + 1)
    with pytest.raises(ValueError):
        ParserConfig(max_depth=5000)


def _stack_depth():
    depth = 0
    frame = sys._getframe()
    while frame is not None:
        depth += 1
        frame = frame.f_back
    return depth


def test_stack_exhaustion_becomes_nesting_error():
    source = "(" * 100 + "x" + ")" * 100
    limit = sys.getrecursionlimit()
    sys.setrecursionlimit(_stack_depth() + 60)
    try:
        with pytest.raises(NestingTooDeep) as info:
            parse(source, ParserConfig(max_depth=100))
    finally:
        sys.setrecursionlimit(limit)
    assert 0 < info.value.offset < 100


def test_depth_counter_unwinds_after_error():
    builder = ExpressionBuilder("sin((-x^y))")
    with pytest.raises(InvalidExponent):
        builder.build()
    assert builder._depth == 0

    builder = ExpressionBuilder("((x))", ParserConfig(max_depth=1))
    with pytest.raises(NestingTooDeep):
        builder.build()
    assert builder._depth == 0


def test_invalid_config():
    with pytest.raises(ValueError):
        ParserConfig(precedence="pemdas")
    with pytest.raises(ValueError):
        ParserConfig(max_depth=0)


def test_non_string_input():
    with pytest.raises(TypeError):
        parse(42)


ROUND_TRIP = [
    "x",
    "2 + 3 * 4",
    "1 - (2 - 3)",
    "-sqrt(4)",
    "-x^2",
    "-(x^2)",
    "(x + 1)^3",
    "x^-0.5 / tg(x)",
    "sin(x) * cos(x) - exp(-x) + ln(pi)",
    "e^2 - i * 1.25e-7",
    "--x - -2",
    "1e300 * 1e300",
]


@pytest.mark.parametrize("source", ROUND_TRIP)
@pytest.mark.parametrize("config", [ParserConfig(), STANDARD], ids=["flat", "standard"])
def test_canonical_round_trip(source, config):
    tree = parse(source, config)
    assert parse(str(tree), config) == tree


def test_canonical_text():
    assert str(parse("2+3*4")) == "(2 + 3) * 4"
    assert str(parse("2+3*4", STANDARD)) == "2 + (3 * 4)"
    assert str(parse("tg(x)^2")) == "tan(x)^2"
    assert str(parse("-x^2")) == "-x^2"
    assert str(parse("-(x^2)")) == "-(x^2)"


def test_concurrent_parses():
    sources = ROUND_TRIP * 20
    with ThreadPoolExecutor(max_workers=8) as pool:
        trees = list(pool.map(parse, sources))
    assert trees == [parse(s) for s in sources]


def test_print_ast(capsys):
    print_ast(parse("-sin(x) + 2"))
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "BinaryOp(op='+')",
        "  +Left:",
        "    UnaryNegate",
        "      +Operand:",
        "        FunctionCall(SIN)",
        "          +Arg:",
        "            VariableReference",
        "  +Right:",
        "    NumberLiteral(2)",
    ]
