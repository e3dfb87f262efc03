"""Calculator expressions: token lists and their evaluation.

An expression is a flat list of tokens:
- Constant: a numeric literal, mutable while it is being entered
- Operator: an operator, function, constant or parenthesis
- PreEval: a reference to another, previously entered, expression

Evaluation is recursive descent over the token list:

    expr          := term (('+' | '-') term)*
    term          := signed_factor (('*' | '/')? signed_factor)*
    signed_factor := '-'? factor
    factor        := suffix ('^' signed_factor)?
    suffix        := unary ('!' | '²' | '%')*
    unary         := constant | 'π' | 'e' | '(' expr ')'? | func expr ')'?
                     | '√' '-'? unary | reference

Juxtaposition means multiplication. Function tokens include their opening
parenthesis, and closing parentheses may be omitted at the end. A trailing
run of binary operators is ignored, so a partially typed expression still
evaluates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from . import unified_real as ur
from .bounded_rational import BoundedRational
from .logging_config import get_logger
from .types import ExpressionSyntaxError
from .unified_real import UnifiedReal

logger = get_logger("expr")

ELLIPSIS = "…"

# Largest exponent magnitude that may still be extended digit by digit
MAX_EXPONENT_ENTRY = 10_000


class Op(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "^"
    FACT = "!"
    SQR = "²"
    PCT = "%"
    SQRT = "√"
    LPAREN = "("
    RPAREN = ")"
    PI = "π"
    E = "e"
    SIN = "sin"
    COS = "cos"
    TAN = "tan"
    ASIN = "asin"
    ACOS = "acos"
    ATAN = "atan"
    LN = "ln"
    LOG = "log"
    EXP = "exp"
    EXP10 = "exp10"
    DEC_POINT = "."
    DIGIT_0 = "0"
    DIGIT_1 = "1"
    DIGIT_2 = "2"
    DIGIT_3 = "3"
    DIGIT_4 = "4"
    DIGIT_5 = "5"
    DIGIT_6 = "6"
    DIGIT_7 = "7"
    DIGIT_8 = "8"
    DIGIT_9 = "9"

    @property
    def digit(self) -> Optional[int]:
        """Digit value, or None if this is not a digit."""
        if len(self.value) == 1 and self.value.isdecimal():
            return int(self.value)
        return None

    @property
    def is_binary(self) -> bool:
        return self in BINARY_OPS

    @property
    def is_prefix(self) -> bool:
        return self in PREFIX_OPS

    @property
    def is_suffix(self) -> bool:
        return self in SUFFIX_OPS

    @property
    def is_func(self) -> bool:
        """True for functions, which carry an implicit opening parenthesis."""
        return self in FUNCS

    @property
    def is_trig_func(self) -> bool:
        return self in TRIG_FUNCS


BINARY_OPS = frozenset({Op.POW, Op.MUL, Op.DIV, Op.ADD, Op.SUB})
PREFIX_OPS = frozenset({Op.SQRT, Op.SUB})
SUFFIX_OPS = frozenset({Op.FACT, Op.PCT, Op.SQR})
TRIG_FUNCS = frozenset({Op.SIN, Op.COS, Op.TAN, Op.ASIN, Op.ACOS, Op.ATAN})
FUNCS = TRIG_FUNCS | {Op.LN, Op.LOG, Op.EXP, Op.EXP10}


def digit_op(d: int) -> Op:
    return Op(str(d))


class Constant:
    """A numeric literal, built up one digit at a time."""

    def __init__(self) -> None:
        self.whole = ""
        self.fraction = ""
        self.saw_decimal = False
        self.exponent = 0

    @property
    def is_empty(self) -> bool:
        return not self.saw_decimal and not self.whole

    def add(self, op: Op) -> bool:
        """Append a digit or decimal point; False if it does not fit."""
        if op is Op.DEC_POINT:
            if self.saw_decimal or self.exponent != 0:
                return False
            self.saw_decimal = True
            return True
        value = op.digit
        if value is None:
            return False
        if self.exponent != 0:
            if abs(self.exponent) > MAX_EXPONENT_ENTRY:
                return False
            if self.exponent > 0:
                self.exponent = 10 * self.exponent + value
            else:
                self.exponent = 10 * self.exponent - value
            return True
        if self.saw_decimal:
            self.fraction += str(value)
        else:
            self.whole += str(value)
        return True

    def add_exponent(self, exp: int) -> None:
        self.exponent = exp

    def delete(self) -> None:
        """Remove the most recently entered character."""
        if self.exponent != 0:
            self.exponent = int(self.exponent / 10)
        elif self.fraction:
            self.fraction = self.fraction[:-1]
        elif self.saw_decimal:
            self.saw_decimal = False
        else:
            self.whole = self.whole[:-1]

    def to_rational(self) -> BoundedRational:
        whole = self.whole
        if not whole:
            if not self.fraction:
                raise ExpressionSyntaxError("Empty numeric literal")
            whole = "0"
        num = int(whole + self.fraction)
        den = 10 ** len(self.fraction)
        if self.exponent > 0:
            num *= 10**self.exponent
        elif self.exponent < 0:
            den *= 10 ** (-self.exponent)
        return BoundedRational(num, den)

    def to_nice_string(self) -> str:
        """Like str(), but with thousands separators in the whole part."""
        whole = self.whole
        if self.exponent == 0 and whole:
            whole = re.sub(r"(\d)(?=(\d{3})+$)", r"\1,", whole)
        return self._render(whole)

    def _render(self, whole: str) -> str:
        result = whole
        if self.saw_decimal:
            result += "." + self.fraction
        if self.exponent != 0:
            result += f"E{self.exponent}"
        return result

    def clone(self) -> Constant:
        result = Constant()
        result.whole = self.whole
        result.fraction = self.fraction
        result.saw_decimal = self.saw_decimal
        result.exponent = self.exponent
        return result

    def __str__(self) -> str:
        return self._render(self.whole)

    def __repr__(self) -> str:
        return f"Constant({str(self)!r})"


@dataclass(frozen=True)
class Operator:
    op: Op

    def __str__(self) -> str:
        if self.op.is_func:
            return f"{self.op.value}("
        return self.op.value


@dataclass(frozen=True)
class PreEval:
    """Reference to the result of expression ``index``, displayed as ``short_rep``."""

    index: int
    short_rep: str

    def has_ellipsis(self) -> bool:
        return ELLIPSIS in self.short_rep

    def __str__(self) -> str:
        return self.short_rep


Token = Union[Constant, Operator, PreEval]


class ExprResolver(Protocol):
    """Access to other expressions and their cached results, by index."""

    def get_expr(self, index: int) -> CalculatorExpr: ...

    def get_result(self, index: int) -> Optional[UnifiedReal]: ...

    def put_result_if_absent(self, index: int, value: UnifiedReal) -> UnifiedReal:
        """Store ``value`` unless a result is already present; return the stored result."""
        ...

    def get_degree_mode(self, index: int) -> bool: ...


@dataclass(frozen=True)
class _EvalContext:
    degree_mode: bool
    prefix_length: int  # tokens past this point are ignored
    resolver: Optional[ExprResolver]


ONE_HUNDREDTH = UnifiedReal(100).inverse()


class CalculatorExpr:
    """An editable token list that evaluates to a UnifiedReal."""

    def __init__(self, tokens: Optional[list[Token]] = None):
        self._tokens: list[Token] = list(tokens) if tokens else []

    @property
    def tokens(self) -> tuple[Token, ...]:
        return tuple(self._tokens)

    @property
    def is_empty(self) -> bool:
        return not self._tokens

    @property
    def is_constant(self) -> bool:
        return len(self._tokens) == 1 and isinstance(self._tokens[0], Constant)

    def __len__(self) -> int:
        return len(self._tokens)

    def __str__(self) -> str:
        return "".join(str(t) for t in self._tokens)

    def __repr__(self) -> str:
        return f"CalculatorExpr({str(self)!r})"

    # Editing

    def _last_op(self) -> Optional[Op]:
        if self._tokens and isinstance(self._tokens[-1], Operator):
            return self._tokens[-1].op
        return None

    def has_trailing_constant(self) -> bool:
        return bool(self._tokens) and isinstance(self._tokens[-1], Constant)

    def has_trailing_binary(self) -> bool:
        last_op = self._last_op()
        return last_op is not None and last_op.is_binary

    def add(self, op: Op) -> bool:
        """Append a key press. Returns False if it is not allowed here.

        A binary operator replaces any trailing binary operators. Digits
        extend a trailing Constant, and a Constant directly after a
        reference gets an explicit multiplication.
        """
        last_op = self._last_op()
        if op.is_binary and not op.is_prefix:
            if (
                not self._tokens
                or last_op is Op.LPAREN
                or (last_op is not None and last_op.is_func)
                or (last_op is not None and last_op.is_prefix and last_op is not Op.SUB)
            ):
                return False
            while self.has_trailing_binary():
                self.delete()
        if op.digit is not None or op is Op.DEC_POINT:
            if not self._tokens or not isinstance(self._tokens[-1], Constant):
                if self._tokens and isinstance(self._tokens[-1], PreEval):
                    self._tokens.append(Operator(Op.MUL))
                self._tokens.append(Constant())
            return self._tokens[-1].add(op)
        self._tokens.append(Operator(op))
        return True

    def add_exponent(self, exp: int) -> None:
        """Set the decimal exponent of the trailing Constant."""
        last = self._tokens[-1] if self._tokens else None
        if not isinstance(last, Constant):
            raise ExpressionSyntaxError("Exponent without a preceding number")
        if abs(exp) > 10 * MAX_EXPONENT_ENTRY:
            raise ExpressionSyntaxError(f"Exponent {exp} too large")
        last.add_exponent(exp)

    def remove_trailing_additive_operators(self) -> None:
        while self._last_op() in (Op.ADD, Op.SUB):
            self.delete()

    def append(self, other: CalculatorExpr) -> None:
        """Append the tokens of ``other``, multiplying if neither side has an operator at the seam."""
        if self._tokens and other._tokens:
            if not isinstance(other._tokens[0], Operator) and not isinstance(self._tokens[-1], Operator):
                self._tokens.append(Operator(Op.MUL))
        self._tokens.extend(other._tokens)

    def delete(self) -> None:
        """Remove the last character, or the last token if it is not a Constant."""
        if not self._tokens:
            return
        last = self._tokens[-1]
        if isinstance(last, Constant):
            last.delete()
            if not last.is_empty:
                return
        self._tokens.pop()

    def clear(self) -> None:
        self._tokens.clear()

    def clone(self) -> CalculatorExpr:
        """Copy that can be edited independently; only Constants are mutable."""
        return CalculatorExpr([t.clone() if isinstance(t, Constant) else t for t in self._tokens])

    @staticmethod
    def abbreviate(index: int, short_rep: str) -> CalculatorExpr:
        """Single-token expression referring to expression ``index``."""
        return CalculatorExpr([PreEval(index, short_rep)])

    # Queries

    def trailing_binary_ops_start(self) -> int:
        """Index of the first token in the trailing run of binary operators."""
        result = len(self._tokens)
        while result > 0:
            last = self._tokens[result - 1]
            if not isinstance(last, Operator) or not last.op.is_binary:
                break
            result -= 1
        return result

    def has_interesting_ops(self) -> bool:
        """True if evaluating this would do more than echo a (possibly negated) number."""
        last = self.trailing_binary_ops_start()
        first = 0
        if last > first and self._is_operator_unchecked(first, Op.SUB):
            first += 1
        for t in self._tokens[first:last]:
            if isinstance(t, Operator) or (isinstance(t, PreEval) and t.has_ellipsis()):
                return True
        return False

    def has_trig_funcs(self) -> bool:
        return any(isinstance(t, Operator) and t.op.is_trig_func for t in self._tokens)

    def _referenced(self, resolver: ExprResolver) -> list[int]:
        result = []
        for t in self._tokens:
            if isinstance(t, PreEval) and t.index not in result and resolver.get_result(t.index) is None:
                result.append(t.index)
        return result

    def transitively_referenced(self, resolver: ExprResolver, index: Optional[int] = None) -> list[int]:
        """Indices of unevaluated expressions this one depends on, dependencies first.

        The order is reversed breadth-first, which is a dependency order for
        simple chains of references. ``index`` is this expression's own
        index, if it has one.

        Raises:
            ExpressionSyntaxError: If the references form a cycle
        """
        found: list[int] = []
        edges: dict[int, list[int]] = {}
        for ref in self._referenced(resolver):
            found.append(ref)
        scanned = 0
        while scanned != len(found):
            current = found[scanned]
            scanned += 1
            edges[current] = resolver.get_expr(current)._referenced(resolver)
            for ref in edges[current]:
                if ref not in found:
                    found.append(ref)
        if index is not None and index in found:
            raise ExpressionSyntaxError("cyclic reference")
        _check_acyclic(edges)
        found.reverse()
        return found

    # Evaluation

    def nested_eval(self, index: int, resolver: ExprResolver) -> UnifiedReal:
        """Evaluate expression ``index`` and cache its result in the resolver."""
        nested = resolver.get_expr(index)
        context = _EvalContext(resolver.get_degree_mode(index), nested.trailing_binary_ops_start(), resolver)
        _, value = nested._eval_expr(0, context)
        return resolver.put_result_if_absent(index, value)

    def eval(
        self, degree_mode: bool, resolver: Optional[ExprResolver] = None, index: Optional[int] = None
    ) -> UnifiedReal:
        """Evaluate the expression, ignoring any trailing binary operators.

        Args:
            degree_mode: Trig arguments and inverse trig results are in degrees
            resolver: Source of referenced expressions; required if there are any
            index: This expression's own index, used to reject self references

        Raises:
            ExpressionSyntaxError: If the tokens do not form an expression
        """
        try:
            if resolver is not None:
                for referenced in self.transitively_referenced(resolver, index):
                    logger.debug(f"Pre-evaluating referenced expression {referenced}")
                    self.nested_eval(referenced, resolver)
            prefix_length = self.trailing_binary_ops_start()
            context = _EvalContext(degree_mode, prefix_length, resolver)
            next_pos, value = self._eval_expr(0, context)
            if next_pos != prefix_length:
                raise ExpressionSyntaxError("Failed to parse full expression")
            return value
        except IndexError:
            raise ExpressionSyntaxError("Unexpected expression end") from None

    def _is_operator_unchecked(self, i: int, op: Op) -> bool:
        t = self._tokens[i]
        return isinstance(t, Operator) and t.op is op

    def _is_operator(self, i: int, op: Op, context: _EvalContext) -> bool:
        if i >= context.prefix_length:
            return False
        return self._is_operator_unchecked(i, op)

    @staticmethod
    def _to_radians(x: UnifiedReal, context: _EvalContext) -> UnifiedReal:
        if context.degree_mode:
            return x.multiply(ur.RADIANS_PER_DEGREE)
        return x

    @staticmethod
    def _from_radians(x: UnifiedReal, context: _EvalContext) -> UnifiedReal:
        if context.degree_mode:
            return x.divide(ur.RADIANS_PER_DEGREE)
        return x

    def _eval_func_arg(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        next_pos, value = self._eval_expr(i, context)
        if self._is_operator(next_pos, Op.RPAREN, context):
            next_pos += 1
        return next_pos, value

    def _eval_unary(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        t = self._tokens[i]
        if isinstance(t, Constant):
            return i + 1, UnifiedReal(t.to_rational())
        if isinstance(t, PreEval):
            if context.resolver is None:
                raise ExpressionSyntaxError(f"Unresolvable reference to expression {t.index}")
            value = context.resolver.get_result(t.index)
            if value is None:
                value = self.nested_eval(t.index, context.resolver)
            return i + 1, value
        op = t.op
        if op is Op.PI:
            return i + 1, ur.PI
        if op is Op.E:
            return i + 1, ur.E
        if op is Op.SQRT:
            if self._is_operator(i + 1, Op.SUB, context):
                next_pos, value = self._eval_unary(i + 2, context)
                return next_pos, value.negate().sqrt()
            next_pos, value = self._eval_unary(i + 1, context)
            return next_pos, value.sqrt()
        if op is Op.LPAREN:
            return self._eval_func_arg(i + 1, context)
        if not op.is_func:
            raise ExpressionSyntaxError("Unrecognized token in expression")
        next_pos, arg = self._eval_func_arg(i + 1, context)
        if op is Op.SIN:
            value = self._to_radians(arg, context).sin()
        elif op is Op.COS:
            value = self._to_radians(arg, context).cos()
        elif op is Op.TAN:
            value = self._to_radians(arg, context).tan()
        elif op is Op.ASIN:
            value = self._from_radians(arg.asin(), context)
        elif op is Op.ACOS:
            value = self._from_radians(arg.acos(), context)
        elif op is Op.ATAN:
            value = self._from_radians(arg.atan(), context)
        elif op is Op.LN:
            value = arg.ln()
        elif op is Op.LOG:
            value = arg.ln().divide(ur.TEN.ln())
        elif op is Op.EXP:
            value = arg.exp()
        else:
            value = ur.TEN.pow(arg)
        return next_pos, value

    def _eval_suffix(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        cpos, value = self._eval_unary(i, context)
        while True:
            if self._is_operator(cpos, Op.FACT, context):
                value = value.fact()
            elif self._is_operator(cpos, Op.SQR, context):
                value = value.multiply(value)
            elif self._is_operator(cpos, Op.PCT, context):
                value = value.multiply(ONE_HUNDREDTH)
            else:
                return cpos, value
            cpos += 1

    def _eval_factor(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        cpos, value = self._eval_suffix(i, context)
        if self._is_operator(cpos, Op.POW, context):
            cpos, exp = self._eval_signed_factor(cpos + 1, context)
            value = value.pow(exp)
        return cpos, value

    def _eval_signed_factor(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        negative = self._is_operator(i, Op.SUB, context)
        cpos, value = self._eval_factor(i + 1 if negative else i, context)
        return cpos, value.negate() if negative else value

    def _can_start_factor(self, i: int) -> bool:
        if i >= len(self._tokens):
            return False
        t = self._tokens[i]
        if not isinstance(t, Operator):
            return True
        return not t.op.is_binary and t.op not in (Op.FACT, Op.RPAREN)

    def _eval_term(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        cpos, value = self._eval_signed_factor(i, context)
        while True:
            is_mul = self._is_operator(cpos, Op.MUL, context)
            is_div = self._is_operator(cpos, Op.DIV, context)
            if not (is_mul or is_div or self._can_start_factor(cpos)):
                return cpos, value
            if is_mul or is_div:
                cpos += 1
            cpos, operand = self._eval_signed_factor(cpos, context)
            value = value.divide(operand) if is_div else value.multiply(operand)

    def _is_percent(self, pos: int) -> bool:
        """True if tokens at ``pos`` are a single number, '%', then '+', '-', ')' or the end."""
        if len(self._tokens) < pos + 2 or not self._is_operator_unchecked(pos + 1, Op.PCT):
            return False
        if isinstance(self._tokens[pos], Operator):
            return False
        if len(self._tokens) == pos + 2:
            return True
        following = self._tokens[pos + 2]
        return isinstance(following, Operator) and following.op in (Op.ADD, Op.SUB, Op.RPAREN)

    def _get_percent_factor(self, pos: int, is_subtraction: bool, context: _EvalContext) -> tuple[int, UnifiedReal]:
        # x + n% is x * (1 + n/100)
        _, value = self._eval_unary(pos, context)
        if is_subtraction:
            value = value.negate()
        return pos + 2, ur.ONE.add(value.multiply(ONE_HUNDREDTH))

    def _eval_expr(self, i: int, context: _EvalContext) -> tuple[int, UnifiedReal]:
        cpos, value = self._eval_term(i, context)
        while True:
            is_plus = self._is_operator(cpos, Op.ADD, context)
            is_minus = self._is_operator(cpos, Op.SUB, context)
            if not (is_plus or is_minus):
                return cpos, value
            if self._is_percent(cpos + 1):
                cpos, factor = self._get_percent_factor(cpos + 1, not is_plus, context)
                value = value.multiply(factor)
            else:
                cpos, operand = self._eval_term(cpos + 1, context)
                value = value.add(operand) if is_plus else value.subtract(operand)


def _check_acyclic(edges: dict[int, list[int]]) -> None:
    """Raise ExpressionSyntaxError if the reference graph has a cycle."""
    done: set[int] = set()
    for start in edges:
        if start in done:
            continue
        on_path = {start}
        stack = [(start, iter(edges.get(start, ())))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                on_path.discard(node)
                done.add(node)
            elif child in on_path:
                raise ExpressionSyntaxError("cyclic reference")
            elif child not in done:
                on_path.add(child)
                stack.append((child, iter(edges.get(child, ()))))
