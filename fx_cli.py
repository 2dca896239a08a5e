import sys
import argparse
import logging

from ast_builder import ParserConfig, parse, print_ast
from engine import evaluate, to_sympy
from errors import EvaluationError, ParseError
from lexer import tokenize

logger = logging.getLogger("fxparse")


def _format_value(value):
    if isinstance(value, complex) and value.imag == 0:
        value = value.real
    return repr(value)


def _setup_logging(verbose):
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[fxparse] [%(levelname)s] %(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog="fxparse",
        description="Parse a function of x into an expression tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s "sqrt(x^2 + 1)"
  %(prog)s --ast "-sin(pi * x)"
  echo "x^3 - 1" | %(prog)s --eval 2
"""
    )
    parser.add_argument("expression", nargs="?", help="expression to parse (default: read stdin)")

    parser.add_argument("--ast", action="store_true",
                        help="print the tree structure")
    parser.add_argument("--tokens", action="store_true",
                        help="print the token stream")
    parser.add_argument("--sympy", action="store_true",
                        help="print the expression as built by SymPy")
    parser.add_argument("--eval", dest="value", type=complex, metavar="X",
                        help="evaluate at x=X (accepts complex literals such as 1+2j)")
    parser.add_argument("--real", action="store_true",
                        help="evaluate with real arithmetic only")

    parser.add_argument("--standard-precedence", action="store_true",
                        help="let * and / bind tighter than + and - (default: strictly left to right)")
    parser.add_argument("--max-depth", type=int, default=ParserConfig.max_depth,
                        help="maximum nesting depth (default: %(default)s)")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log debug messages to stderr")
    parser.add_argument("--traceback", action="store_true",
                        help="print the full traceback on errors")
    return parser


def main(argv=None):
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.expression is not None:
        source = args.expression
    else:
        source = sys.stdin.read().strip()
        if not source:
            parser.error("Provide an expression as a positional argument or via stdin.")

    try:
        config = ParserConfig(
            precedence="standard" if args.standard_precedence else "flat",
            max_depth=args.max_depth,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        if args.tokens:
            for tok in tokenize(source):
                print(f"{tok.start:>4}:{tok.end:<4} {tok.kind.name:<9} {tok.text}")

        tree = parse(source, config)
        print(tree)

        if args.ast:
            print_ast(tree)
        if args.sympy:
            print(to_sympy(tree))
        if args.value is not None:
            x = args.value
            if args.real:
                if x.imag:
                    parser.error("--real needs a real value for --eval")
                x = x.real
            print(_format_value(evaluate(tree, x, real=args.real)))

    except (ParseError, EvaluationError) as e:
        logger.debug("failed on %r", source)
        print(f"ERROR: {e}", file=sys.stderr)
        if args.traceback:
            import traceback
            traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
