"""Functions from constructive reals to constructive reals.

Besides wrapping the elementary CR operations, this module provides two
function-level algorithms:
- ``inverse_monotone``: the inverse of a function that is monotone on an
  interval, found by a hybrid of secant interpolation and bisection
- ``monotone_derivative``: the derivative of a function that is monotone on
  an interval, by central differences with a step derived from an estimate
  of the second derivative

Functions are a closed set of kinds dispatched by tag, as CR nodes are.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable

from .cancellation import check_cancelled
from .cr import CR, NO_MSD, ONE, Kind, register_approximator, scale, shift, tdiv
from .logging_config import get_logger
from .types import DomainError

logger = get_logger("unary_function")


class FnKind(Enum):
    IDENTITY = auto()
    NEGATE = auto()
    INVERSE = auto()
    ABS = auto()
    EXP = auto()
    COS = auto()
    SIN = auto()
    TAN = auto()
    ASIN = auto()
    ACOS = auto()
    ATAN = auto()
    LN = auto()
    SQRT = auto()
    COMPOSE = auto()
    INVERSE_MONOTONE = auto()
    MONOTONE_DERIVATIVE = auto()


class UnaryCRFunction:
    """A function on constructive reals, identified by its kind and arguments."""

    __slots__ = ("kind", "args")

    def __init__(self, kind: FnKind, args: tuple = ()):
        self.kind = kind
        self.args = args

    def execute(self, x: CR) -> CR:
        return _EXECUTORS[self.kind](self, x)

    def __call__(self, x: CR) -> CR:
        return self.execute(x)

    def compose(self, f2: UnaryCRFunction) -> UnaryCRFunction:
        """The function ``x -> self(f2(x))``."""
        return UnaryCRFunction(FnKind.COMPOSE, (self, f2))

    def inverse_monotone(self, low: CR, high: CR) -> UnaryCRFunction:
        """Inverse of this function, which must be monotone on [low, high].

        The result is defined on the image of [low, high]. Arguments outside
        it raise DomainError when first approximated.
        """
        return UnaryCRFunction(FnKind.INVERSE_MONOTONE, (_InverseMonotone.build(self, low, high),))

    def monotone_derivative(self, low: CR, high: CR) -> UnaryCRFunction:
        """Derivative of this function, which must be monotone on [low, high]."""
        return UnaryCRFunction(FnKind.MONOTONE_DERIVATIVE, (_MonotoneDerivative.build(self, low, high),))

    def __repr__(self) -> str:
        return f"UnaryCRFunction({self.kind.name})"


def _atan(x: CR) -> CR:
    # atan(x) = asin(x / sqrt(1 + x^2)), with the sign taken from x
    x2 = x.multiply(x)
    abs_sin_atan = x2.divide(ONE.add(x2)).sqrt()
    sin_atan = x.select(abs_sin_atan.negate(), abs_sin_atan)
    return sin_atan.asin()


_EXECUTORS: dict[FnKind, Callable[[UnaryCRFunction, CR], CR]] = {
    FnKind.IDENTITY: lambda f, x: x,
    FnKind.NEGATE: lambda f, x: x.negate(),
    FnKind.INVERSE: lambda f, x: x.inverse(),
    FnKind.ABS: lambda f, x: x.abs(),
    FnKind.EXP: lambda f, x: x.exp(),
    FnKind.COS: lambda f, x: x.cos(),
    FnKind.SIN: lambda f, x: x.sin(),
    FnKind.TAN: lambda f, x: x.sin().divide(x.cos()),
    FnKind.ASIN: lambda f, x: x.asin(),
    FnKind.ACOS: lambda f, x: x.acos(),
    FnKind.ATAN: lambda f, x: _atan(x),
    FnKind.LN: lambda f, x: x.ln(),
    FnKind.SQRT: lambda f, x: x.sqrt(),
    FnKind.COMPOSE: lambda f, x: f.args[0].execute(f.args[1].execute(x)),
    FnKind.INVERSE_MONOTONE: lambda f, x: f.args[0].node_for(x),
    FnKind.MONOTONE_DERIVATIVE: lambda f, x: f.args[0].node_for(x),
}


IDENTITY = UnaryCRFunction(FnKind.IDENTITY)
NEGATE = UnaryCRFunction(FnKind.NEGATE)
INVERSE = UnaryCRFunction(FnKind.INVERSE)
ABS = UnaryCRFunction(FnKind.ABS)
EXP = UnaryCRFunction(FnKind.EXP)
COS = UnaryCRFunction(FnKind.COS)
SIN = UnaryCRFunction(FnKind.SIN)
TAN = UnaryCRFunction(FnKind.TAN)
ASIN = UnaryCRFunction(FnKind.ASIN)
ACOS = UnaryCRFunction(FnKind.ACOS)
ATAN = UnaryCRFunction(FnKind.ATAN)
LN = UnaryCRFunction(FnKind.LN)
SQRT = UnaryCRFunction(FnKind.SQRT)


@dataclass
class _InverseMonotone:
    """Precomputed bounds shared by every node of one inverse function.

    ``f`` is made increasing by composing with negation when needed; the
    argument is then negated to match.
    """

    f: UnaryCRFunction
    f_negated: bool
    low: CR
    high: CR
    f_low: CR
    f_high: CR
    max_msd: int
    max_arg_prec: int
    deriv_msd: int

    @classmethod
    def build(cls, func: UnaryCRFunction, low: CR, high: CR) -> _InverseMonotone:
        tmp_f_low = func.execute(low)
        tmp_f_high = func.execute(high)
        if tmp_f_low.compare_to_exact(tmp_f_high) > 0:
            f = NEGATE.compose(func)
            f_negated = True
            f_low = tmp_f_low.negate()
            f_high = tmp_f_high.negate()
        else:
            f = func
            f_negated = False
            f_low = tmp_f_low
            f_high = tmp_f_high
        max_msd = low.abs().max(high.abs()).msd()
        max_arg_prec = high.subtract(low).msd() - 4
        deriv_msd = f_high.subtract(f_low).divide(high.subtract(low)).msd()
        return cls(f, f_negated, low, high, f_low, f_high, max_msd, max_arg_prec, deriv_msd)

    def node_for(self, x: CR) -> CR:
        arg = x.negate() if self.f_negated else x
        return CR(Kind.INVERSE_MONOTONE, (arg,), value=self)


def _sloppy_compare(x: int, y: int) -> int:
    difference = x - y
    if difference > 1:
        return 1
    if difference < -1:
        return -1
    return 0


def _approx_inverse_increasing(node: CR, p: int) -> int:
    """Find g with f(g) = arg to within the requested precision.

    Works at working_arg_prec for candidate arguments and working_eval_prec
    for function values. The interval [l, h] always brackets the answer.
    A secant guess is tried unless small_step_deficit says recent secant
    steps failed to halve the interval, in which case we bisect.
    """
    state: _InverseMonotone = node.value
    (arg,) = node.ops
    extra_arg_prec = 4
    fn = state.f
    small_step_deficit = 0
    digits_needed = state.max_msd - p
    if digits_needed < 0:
        return 0
    working_arg_prec = min(p - extra_arg_prec, state.max_arg_prec)
    working_eval_prec = working_arg_prec + state.deriv_msd - 20
    # Stay strictly inside the interval so f is known to be monotone there.
    low_appr = state.low.approx_get(working_arg_prec) + 1
    high_appr = state.high.approx_get(working_arg_prec) - 1
    arg_appr = arg.approx_get(working_eval_prec)
    have_good_appr = node.appr_valid and node.min_prec < state.max_msd
    if digits_needed < 30 and not have_good_appr:
        h = high_appr
        f_h = state.f_high.approx_get(working_eval_prec)
        l = low_appr
        f_l = state.f_low.approx_get(working_eval_prec)
        if f_h < arg_appr - 1 or f_l > arg_appr + 1:
            raise DomainError("inverse(out-of-bounds)")
        at_left = True
        at_right = True
        # Start with bisection; the interval is probably wide.
        small_step_deficit = 2
    else:
        rough_prec = p + digits_needed // 2
        if have_good_appr and (digits_needed < 30 or node.min_prec < p + 3 * digits_needed // 4):
            rough_prec = node.min_prec
        rough_appr = node.approx_get(rough_prec)
        h = shift(rough_appr + 1, rough_prec - working_arg_prec)
        l = shift(rough_appr - 1, rough_prec - working_arg_prec)
        if h > high_appr:
            h = high_appr
            f_h = state.f_high.approx_get(working_eval_prec)
            at_right = True
        else:
            h_cr = CR.value_of(h).shift_left(working_arg_prec)
            f_h = fn.execute(h_cr).approx_get(working_eval_prec)
            at_right = False
        if l < low_appr:
            l = low_appr
            f_l = state.f_low.approx_get(working_eval_prec)
            at_left = True
        else:
            l_cr = CR.value_of(l).shift_left(working_arg_prec)
            f_l = fn.execute(l_cr).approx_get(working_eval_prec)
            at_left = False
    difference = h - l
    while True:
        check_cancelled()
        if difference < 6:
            # Within 6 ulps at working_arg_prec, i.e. < 1/2 ulp at p.
            return scale(h, -extra_arg_prec)
        f_difference = f_h - f_l
        binary_step = small_step_deficit > 0 or f_difference == 0
        if binary_step:
            guess = (l + h) >> 1
            small_step_deficit -= 1
        else:
            arg_difference = arg_appr - f_l
            t = arg_difference * difference
            adj = tdiv(t, f_difference)
            # Guesses very close to an end make little progress; pull them inward.
            if adj < (difference >> 10):
                adj <<= 8
            elif adj > (difference * 1023) >> 10:
                adj = difference - ((difference - adj) << 8)
            if adj <= 0:
                adj = 2
            if adj >= difference:
                adj = difference - 2
            guess = l + 2 if adj <= 0 else l + adj
        tweak = 2
        adj_prec = False
        while True:
            check_cancelled()
            guess_cr = CR.value_of(guess).shift_left(working_arg_prec)
            f_guess = fn.execute(guess_cr).approx_get(working_eval_prec)
            outcome = _sloppy_compare(f_guess, arg_appr)
            if outcome != 0:
                break
            # f(guess) is indistinguishable from arg. Alternate between moving
            # the guess and evaluating more precisely.
            if adj_prec:
                adjustment = -(f_guess.bit_length() // 4)
                if adjustment > -20:
                    adjustment = -20
                l_cr = CR.value_of(l).shift_left(working_arg_prec)
                h_cr = CR.value_of(h).shift_left(working_arg_prec)
                working_eval_prec += adjustment
                logger.debug(f"Inverse search raised eval precision to {working_eval_prec}")
                if at_left:
                    f_l = state.f_low.approx_get(working_eval_prec)
                else:
                    f_l = fn.execute(l_cr).approx_get(working_eval_prec)
                if at_right:
                    f_h = state.f_high.approx_get(working_eval_prec)
                else:
                    f_h = fn.execute(h_cr).approx_get(working_eval_prec)
                arg_appr = arg.approx_get(working_eval_prec)
            else:
                new_guess = guess + tweak
                if new_guess >= h:
                    guess -= tweak
                else:
                    guess = new_guess
                tweak = -tweak
            adj_prec = not adj_prec
        if outcome > 0:
            h = guess
            f_h = f_guess
            at_right = False
        else:
            l = guess
            f_l = f_guess
            at_left = False
        new_difference = h - l
        if not binary_step:
            if new_difference >= difference >> 1:
                small_step_deficit += 1
            else:
                small_step_deficit -= 1
        difference = new_difference


@dataclass
class _MonotoneDerivative:
    """Bounds shared by every node of one derivative function."""

    f: UnaryCRFunction
    low: CR
    mid: CR
    high: CR
    f_low: CR
    f_mid: CR
    f_high: CR
    difference_msd: int
    # Estimate of the second derivative's msd; raised when a step proves too coarse.
    deriv2_msd: int

    @classmethod
    def build(cls, func: UnaryCRFunction, low: CR, high: CR) -> _MonotoneDerivative:
        mid = low.add(high).shift_right(1)
        f_low = func.execute(low)
        f_mid = func.execute(mid)
        f_high = func.execute(high)
        difference = high.subtract(low)
        appr_diff2 = f_high.subtract(f_mid.shift_left(1)).add(f_low)
        difference_msd = difference.msd()
        # A vanishing second difference (e.g. a linear f) only needs some bound.
        floor_msd = difference_msd - 64
        diff2_msd = appr_diff2.iter_msd(floor_msd)
        if diff2_msd == NO_MSD:
            diff2_msd = floor_msd
        deriv2_msd = diff2_msd - difference_msd + 4
        return cls(func, low, mid, high, f_low, f_mid, f_high, difference_msd, deriv2_msd)

    def node_for(self, x: CR) -> CR:
        f_arg = self.f.execute(x)
        left_diff = x.subtract(self.low)
        max_delta_left_msd = left_diff.msd()
        right_diff = self.high.subtract(x)
        max_delta_right_msd = right_diff.msd()
        if left_diff.signum() < 0 or right_diff.signum() < 0:
            raise DomainError("Argument outside the monotone interval")
        max_delta_msd = min(max_delta_left_msd, max_delta_right_msd)
        return CR(Kind.MONOTONE_DERIVATIVE, (x, f_arg), value=(self, max_delta_msd))


def _approx_monotone_derivative(node: CR, p: int) -> int:
    state, max_delta_msd = node.value
    arg, f_arg = node.ops
    extra_prec = 4
    while True:
        log_delta = min(p - state.deriv2_msd, max_delta_msd) - extra_prec
        delta = ONE.shift_left(log_delta)
        left = arg.subtract(delta)
        right = arg.add(delta)
        f_left = state.f.execute(left)
        f_right = state.f.execute(right)
        left_deriv = f_arg.subtract(f_left).shift_right(log_delta)
        right_deriv = f_right.subtract(f_arg).shift_right(log_delta)
        eval_prec = p - extra_prec
        appr_left_deriv = left_deriv.approx_get(eval_prec)
        appr_right_deriv = right_deriv.approx_get(eval_prec)
        deriv_difference = abs(appr_right_deriv - appr_left_deriv)
        if deriv_difference < 8:
            return scale(appr_left_deriv, -extra_prec)
        # One-sided estimates disagree: the second derivative was underestimated.
        check_cancelled()
        state.deriv2_msd = eval_prec + deriv_difference.bit_length() + 4 - log_delta
        logger.debug(f"Derivative retry with second-derivative msd {state.deriv2_msd}")


register_approximator(Kind.INVERSE_MONOTONE, _approx_inverse_increasing)
register_approximator(Kind.MONOTONE_DERIVATIVE, _approx_monotone_derivative)
