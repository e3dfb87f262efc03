"""Formula text to calculator tokens.

This module handles:
- Input validation (length, unbalanced closing parentheses, unknown tokens)
- Tokenizing numbers, operators, constants, functions and ``$N`` references
- Rendering token lists back to text
"""

from __future__ import annotations

from .config import IDENT_RE, MAX_INPUT_LENGTH, NUMBER_RE, REFERENCE_RE
from .expr import CalculatorExpr, Op, digit_op
from .types import ExpressionSyntaxError, ValidationError

SYMBOLS = {
    "+": Op.ADD,
    "-": Op.SUB,
    "−": Op.SUB,
    "*": Op.MUL,
    "×": Op.MUL,
    "/": Op.DIV,
    "÷": Op.DIV,
    "^": Op.POW,
    "!": Op.FACT,
    "²": Op.SQR,
    "%": Op.PCT,
    "√": Op.SQRT,
    "(": Op.LPAREN,
    ")": Op.RPAREN,
    "π": Op.PI,
}

NAMES = {
    "pi": Op.PI,
    "e": Op.E,
    "sqrt": Op.SQRT,
    "sin": Op.SIN,
    "cos": Op.COS,
    "tan": Op.TAN,
    "asin": Op.ASIN,
    "arcsin": Op.ASIN,
    "acos": Op.ACOS,
    "arccos": Op.ACOS,
    "atan": Op.ATAN,
    "arctan": Op.ATAN,
    "ln": Op.LN,
    "log": Op.LOG,
    "exp": Op.EXP,
    "exp10": Op.EXP10,
}

# Plain-text spellings used by to_text(ascii_only=True)
ASCII_NAMES = {
    Op.PI: "pi",
    Op.SQRT: "sqrt",
    Op.SQR: "^2",
}


def is_balanced(input_str: str) -> tuple[bool, int | None]:
    """Check that no closing parenthesis lacks an opening one.

    Missing closing parentheses at the end are allowed.

    Returns:
        (is_balanced, position of the first unmatched ')')
    """
    depth = 0
    for i, char in enumerate(input_str):
        if char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                return False, i
            depth -= 1
    return True, None


def validate(text: str) -> str:
    """Strip and validate formula text.

    Raises:
        ValidationError: If the input is empty, too long or has a stray ')'
    """
    text = text.strip() if text else ""
    if not text:
        raise ValidationError("Input cannot be empty", "EMPTY_INPUT")
    if len(text) > MAX_INPUT_LENGTH:
        raise ValidationError(f"Input too long (>{MAX_INPUT_LENGTH} characters)", "TOO_LONG")
    balanced, position = is_balanced(text)
    if not balanced:
        raise ValidationError(f"Unmatched ')' at position {position}", "UNBALANCED_PARENTHESES")
    return text


def _add(expr: CalculatorExpr, op: Op, position: int) -> None:
    # Typed text must not silently replace an operator the way a keypad does.
    if op.is_binary and not op.is_prefix and expr.has_trailing_binary():
        raise ExpressionSyntaxError(f"Unexpected '{op.value}' at position {position}")
    if not expr.add(op):
        raise ExpressionSyntaxError(f"Unexpected '{op.value}' at position {position}")


def _add_number(expr: CalculatorExpr, whole_and_fraction: str, exponent: str | None, position: int) -> None:
    if expr.has_trailing_constant():
        if whole_and_fraction.startswith("."):
            raise ExpressionSyntaxError(f"Unexpected '.' at position {position}")
        expr.add(Op.MUL)
    for char in whole_and_fraction:
        expr.add(Op.DEC_POINT if char == "." else digit_op(int(char)))
    if exponent is not None:
        expr.add_exponent(int(exponent))


def tokenize(text: str) -> CalculatorExpr:
    """Convert formula text such as ``"100+10%"`` or ``"$3*sqrt(2)"`` to tokens.

    Function names take an optional opening parenthesis; ``sin 30`` and
    ``sin(30)`` are the same. ``**`` is accepted for ``^``.

    Raises:
        ValidationError: If the text fails validation or contains an unknown token
        ExpressionSyntaxError: If an operator appears where it cannot
    """
    text = validate(text)
    expr = CalculatorExpr()
    i = 0
    while i < len(text):
        char = text[i]
        if char.isspace():
            i += 1
            continue
        number = NUMBER_RE.match(text, i)
        if number:
            _add_number(expr, number.group(1), number.group(2), i)
            i = number.end()
            continue
        reference = REFERENCE_RE.match(text, i)
        if reference:
            index = int(reference.group(1))
            expr.append(CalculatorExpr.abbreviate(index, f"${index}"))
            i = reference.end()
            continue
        if text.startswith("**", i):
            _add(expr, Op.POW, i)
            i += 2
            continue
        if char in SYMBOLS:
            _add(expr, SYMBOLS[char], i)
            i += 1
            continue
        ident = IDENT_RE.match(text, i)
        if ident:
            name = ident.group(0).lower()
            end = ident.end()
            if name == "exp" and text.startswith("10", end):
                name = "exp10"
                end += 2
            if name not in NAMES:
                raise ValidationError(f"Unknown name '{ident.group(0)}' at position {i}", "FORBIDDEN_TOKEN")
            op = NAMES[name]
            _add(expr, op, i)
            i = end
            if op.is_func:
                # The function token already opens a parenthesis.
                while i < len(text) and text[i].isspace():
                    i += 1
                if i < len(text) and text[i] == "(":
                    i += 1
            continue
        raise ValidationError(f"Unexpected character '{char}' at position {i}", "FORBIDDEN_TOKEN")
    return expr


def to_text(expr: CalculatorExpr, ascii_only: bool = False) -> str:
    """Render tokens as text that tokenize() accepts."""
    if not ascii_only:
        return str(expr)
    parts = []
    for t in expr.tokens:
        op = getattr(t, "op", None)
        parts.append(ASCII_NAMES.get(op, str(t)))
    return "".join(parts)
