"""Constructive real numbers.

A CR is a lazily evaluated real: ``approx_get(p)`` returns an integer ``a``
such that ``|a * 2**p - x| < 2**p``. Nodes form an immutable expression tree;
the only mutable state is a per-node cache of the most precise approximation
computed so far, guarded by a per-node lock.

Node variants are a closed set tagged by ``Kind``. Each variant's
``approximate`` function lives in this module and is dispatched by tag:
- INT, ASSUMED_INT, ADD, SHIFTED, NEG, SELECT, MULT, INV
- PRESCALED_EXP, PRESCALED_COS, PRESCALED_LN, PRESCALED_ASIN, INTEGRAL_ATAN
- SQRT, GL_PI
- INVERSE_MONOTONE, MONOTONE_DERIVATIVE (approximators registered by
  unary_function)

Comparisons that take no tolerance (``compare_to_exact``, ``signum``) never
return when both sides are equal. That follows from equality of computable
reals being undecidable; use the tolerance forms when termination matters.
"""

from __future__ import annotations

import logging
import math
import threading
from enum import Enum, auto
from typing import Callable, Union

from numpy import base_repr

from .bounded_rational import BoundedRational
from .cancellation import check_cancelled
from .config import PRECISION_GUARD_SHIFT, SLOW_CR_MAX_PREC, SLOW_CR_PREC_INCR
from .logging_config import get_logger
from .types import DomainError, FloatRep, PrecisionOverflowError

logger = get_logger("cr")

# Stand-in for "no known most significant digit" (the value may be zero)
NO_MSD = -(1 << 31)

# Square root seeding uses a double when fewer result digits are needed
FP_PREC = 50
FP_OP_PREC = 60

# Precision below which a cache miss is worth a debug line
_LOG_PREC = -4096


class Kind(Enum):
    INT = auto()
    ASSUMED_INT = auto()
    ADD = auto()
    SHIFTED = auto()
    NEG = auto()
    SELECT = auto()
    MULT = auto()
    INV = auto()
    PRESCALED_EXP = auto()
    PRESCALED_COS = auto()
    INTEGRAL_ATAN = auto()
    PRESCALED_LN = auto()
    PRESCALED_ASIN = auto()
    SQRT = auto()
    GL_PI = auto()
    INVERSE_MONOTONE = auto()
    MONOTONE_DERIVATIVE = auto()


def bound_log2(n: int) -> int:
    """Upper bound on log2(|n| + 1)."""
    abs_n = abs(n)
    return math.ceil(math.log(abs_n + 1) / math.log(2.0))


def check_prec(n: int) -> None:
    """Raise PrecisionOverflowError unless ``n`` is well inside the 32-bit range."""
    high = n >> PRECISION_GUARD_SHIFT
    high_shifted = n >> (PRECISION_GUARD_SHIFT + 1)
    if high ^ high_shifted:
        raise PrecisionOverflowError(f"Precision {n} out of range")


def shift(k: int, n: int) -> int:
    """Multiply by 2**n, truncating toward minus infinity."""
    if n == 0:
        return k
    if n < 0:
        return k >> -n
    return k << n


def scale(k: int, n: int) -> int:
    """Multiply by 2**n, rounding to nearest."""
    if n >= 0:
        return k << n
    return (shift(k, n + 1) + 1) >> 1


def tdiv(a: int, b: int) -> int:
    """Integer quotient rounded toward zero."""
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


Operand = Union["CR", int, float, BoundedRational]


class CR:
    """Lazy real number; see module docstring for the approximation contract."""

    __slots__ = (
        "kind",
        "ops",
        "value",  # literal, shift count, atan divisor or function state
        "slow",
        "min_prec",
        "max_appr",
        "appr_valid",
        "selector_sign",
        "b_cache",
        "_lock",
    )

    def __init__(self, kind: Kind, ops: tuple = (), value=0, slow: bool = False):
        self.kind = kind
        self.ops = ops
        self.value = value
        self.slow = slow
        self.min_prec = 0
        self.max_appr = 0
        self.appr_valid = False
        self.selector_sign = 0
        # (precision, value) seeds for the AGM geometric means, GL_PI only
        self.b_cache: list[tuple[int, int]] = []
        # Reentrant: a square root node refines its own earlier approximation.
        self._lock = threading.RLock()

    # Construction

    @classmethod
    def value_of(cls, x: Operand) -> CR:
        """Exact CR for an int, a finite float or a BoundedRational."""
        if isinstance(x, CR):
            return x
        if isinstance(x, BoundedRational):
            if x.den == 1:
                return cls(Kind.INT, value=x.num)
            return cls.value_of(x.num).divide(cls.value_of(x.den))
        if isinstance(x, float):
            if not math.isfinite(x):
                raise DomainError("Infinite or NaN argument")
            num, den = x.as_integer_ratio()
            return cls(Kind.INT, value=num).shift_right(den.bit_length() - 1)
        return cls(Kind.INT, value=int(x))

    @classmethod
    def from_string(cls, s: str, radix: int = 10) -> CR:
        """Parse ``[-]digits[.digits]`` in the given radix."""
        s = s.strip()
        whole, point, fraction = s.partition(".")
        if not point:
            fraction = "0"
        scaled_result = int(whole + fraction, radix)
        divisor = radix ** len(fraction)
        return cls.value_of(scaled_result).divide(cls.value_of(divisor))

    @staticmethod
    def atan_reciprocal(n: int) -> CR:
        """atan(1/n) for an integer n > 1."""
        return CR(Kind.INTEGRAL_ATAN, value=n, slow=True)

    # Approximation

    def approx_get(self, precision: int) -> int:
        """Approximation scaled by 2**-precision, accurate to < 1 ulp."""
        check_prec(precision)
        with self._lock:
            if self.appr_valid and precision >= self.min_prec:
                return scale(self.max_appr, self.min_prec - precision)
            if self.slow:
                if precision >= SLOW_CR_MAX_PREC:
                    eval_prec = SLOW_CR_MAX_PREC
                else:
                    eval_prec = (precision - SLOW_CR_PREC_INCR + 1) & ~(SLOW_CR_PREC_INCR - 1)
            else:
                eval_prec = precision
            if eval_prec < _LOG_PREC and logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Cache miss for {self.kind.name} at precision {eval_prec}")
            result = _APPROXIMATORS[self.kind](self, eval_prec)
            self.min_prec = eval_prec
            self.max_appr = result
            self.appr_valid = True
            return scale(result, eval_prec - precision)

    def known_msd(self) -> int:
        """Position of the leading bit of the cached approximation."""
        with self._lock:
            return self.min_prec + abs(self.max_appr).bit_length() - 1

    def msd(self, n: int | None = None) -> int:
        """Most significant digit position, or NO_MSD if it is below ``n``.

        Without ``n`` this searches until the digit is found, and raises
        PrecisionOverflowError for a value that is zero.
        """
        if n is None:
            return self.iter_msd(NO_MSD)
        with self._lock:
            if not self.appr_valid or -1 <= self.max_appr <= 1:
                self.approx_get(n - 1)
                if abs(self.max_appr) <= 1:
                    return NO_MSD
            return self.known_msd()

    def iter_msd(self, n: int) -> int:
        """Like msd(n), but raises precision gradually to avoid needless work."""
        prec = 0
        while prec > n + 30:
            msd = self.msd(prec)
            if msd != NO_MSD:
                return msd
            check_prec(prec)
            check_cancelled()
            prec = tdiv(prec * 3, 2) - 16
        return self.msd(n)

    # Arithmetic

    def add(self, x: Operand) -> CR:
        return CR(Kind.ADD, (self, CR.value_of(x)))

    def shift_left(self, n: int) -> CR:
        check_prec(n)
        return CR(Kind.SHIFTED, (self,), value=n)

    def shift_right(self, n: int) -> CR:
        check_prec(n)
        return CR(Kind.SHIFTED, (self,), value=-n)

    def assume_int(self) -> CR:
        """Same value, but approximations right of the binary point are skipped."""
        return CR(Kind.ASSUMED_INT, (self,))

    def negate(self) -> CR:
        return CR(Kind.NEG, (self,))

    def subtract(self, x: Operand) -> CR:
        return CR(Kind.ADD, (self, CR.value_of(x).negate()))

    def multiply(self, x: Operand) -> CR:
        return CR(Kind.MULT, (self, CR.value_of(x)))

    def inverse(self) -> CR:
        return CR(Kind.INV, (self,))

    def divide(self, x: Operand) -> CR:
        return CR(Kind.MULT, (self, CR.value_of(x).inverse()))

    def select(self, x: Operand, y: Operand) -> CR:
        """``x`` if this is negative, else ``y``; never decides on an exact zero."""
        node = CR(Kind.SELECT, (self, CR.value_of(x), CR.value_of(y)))
        appr = self.approx_get(-20)
        node.selector_sign = (appr > 0) - (appr < 0)
        return node

    def max(self, x: Operand) -> CR:
        x = CR.value_of(x)
        return self.subtract(x).select(x, self)

    def min(self, x: Operand) -> CR:
        x = CR.value_of(x)
        return self.subtract(x).select(self, x)

    def abs(self) -> CR:
        return self.select(self.negate(), self)

    def __add__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return self.add(other)

    def __radd__(self, other):
        return self.__add__(other)

    def __sub__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return self.subtract(other)

    def __rsub__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return CR.value_of(other).subtract(self)

    def __mul__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return self.multiply(other)

    def __rmul__(self, other):
        return self.__mul__(other)

    def __truediv__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return self.divide(other)

    def __rtruediv__(self, other):
        if not isinstance(other, (CR, int, float, BoundedRational)):
            return NotImplemented
        return CR.value_of(other).divide(self)

    def __neg__(self) -> CR:
        return self.negate()

    # Transcendental functions, with range reduction

    def exp(self) -> CR:
        rough_appr = self.approx_get(-10)
        if rough_appr > 2 or rough_appr < -2:
            square_root = self.shift_right(1).exp()
            return square_root.multiply(square_root)
        return CR(Kind.PRESCALED_EXP, (self,))

    def cos(self) -> CR:
        halfpi_multiples = self.divide(PI).approx_get(-1)
        if abs(halfpi_multiples) >= 2:
            # Subtract the nearest multiple of pi.
            pi_multiples = scale(halfpi_multiples, -1)
            adjustment = PI.multiply(CR.value_of(pi_multiples))
            if pi_multiples & 1:
                return self.subtract(adjustment).cos().negate()
            return self.subtract(adjustment).cos()
        if abs(self.approx_get(-1)) >= 2:
            # cos(x) = 2 cos(x/2)^2 - 1
            cos_half = self.shift_right(1).cos()
            return cos_half.multiply(cos_half).shift_left(1).subtract(ONE)
        return CR(Kind.PRESCALED_COS, (self,), slow=True)

    def sin(self) -> CR:
        return HALF_PI.subtract(self).cos()

    def asin(self) -> CR:
        rough_appr = self.approx_get(-10)
        if rough_appr > 750:
            # asin(x) = acos(sqrt(1 - x^2)) near 1, where the series is slow
            new_arg = ONE.subtract(self.multiply(self)).sqrt()
            return new_arg.acos()
        if rough_appr < -750:
            return self.negate().asin().negate()
        return CR(Kind.PRESCALED_ASIN, (self,), slow=True)

    def acos(self) -> CR:
        return HALF_PI.subtract(self.asin())

    def ln(self) -> CR:
        """Natural log; rough approximations are in sixteenths."""
        rough_appr = self.approx_get(-4)
        if rough_appr < 0:
            raise DomainError("ln(negative)")
        if rough_appr <= 8:
            return self.inverse().ln().negate()
        if rough_appr >= 24:
            if rough_appr <= 64:
                quarter = self.sqrt().sqrt().ln()
                return quarter.shift_left(2)
            extra_bits = rough_appr.bit_length() - 3
            logger.debug(f"ln range reduction by 2^{extra_bits}")
            scaled_result = self.shift_right(extra_bits).ln()
            return scaled_result.add(CR.value_of(extra_bits).multiply(LN2))
        return _simple_ln(self)

    def sqrt(self) -> CR:
        return CR(Kind.SQRT, (self,))

    # Comparison

    def compare_to(self, x: CR, r: int, a: int) -> int:
        """Compare with relative tolerance 2**r and absolute tolerance 2**a.

        Returns 0 only if the values are within both tolerances; if they
        differ by more than both, the sign is exact.
        """
        this_msd = self.iter_msd(a)
        x_msd = x.iter_msd(this_msd if this_msd > a else a)
        max_msd = max(x_msd, this_msd)
        if max_msd == NO_MSD:
            return 0
        check_prec(r)
        rel = max_msd + r
        abs_prec = rel if rel > a else a
        return self.compare_to_abs(x, abs_prec)

    def compare_to_abs(self, x: CR, a: int) -> int:
        """Compare with absolute tolerance 2**a."""
        needed_prec = a - 1
        this_appr = self.approx_get(needed_prec)
        x_appr = x.approx_get(needed_prec)
        if this_appr > x_appr + 1:
            return 1
        if this_appr < x_appr - 1:
            return -1
        return 0

    def compare_to_exact(self, x: CR) -> int:
        """Exact comparison. Does not return if the values are equal."""
        a = -20
        while True:
            check_prec(a)
            result = self.compare_to_abs(x, a)
            if result != 0:
                return result
            check_cancelled()
            a *= 2

    def signum_at(self, a: int) -> int:
        """Sign, or 0 if |x| < 2**a."""
        with self._lock:
            if self.appr_valid:
                quick_try = (self.max_appr > 0) - (self.max_appr < 0)
                if quick_try != 0:
                    return quick_try
        this_appr = self.approx_get(a - 1)
        return (this_appr > 0) - (this_appr < 0)

    def signum(self) -> int:
        """Exact sign. Does not return for zero."""
        a = -20
        while True:
            check_prec(a)
            result = self.signum_at(a)
            if result != 0:
                return result
            check_cancelled()
            a *= 2

    # Conversion

    def to_string(self, n: int = 10, radix: int = 10) -> str:
        """Digits with ``n`` digits right of the point, rounded in the last place."""
        if radix == 16:
            scaled_cr = self.shift_left(4 * n)
        else:
            scaled_cr = self.multiply(CR(Kind.INT, value=radix**n))
        scaled_int = scaled_cr.approx_get(0)
        scaled_string = _int_to_radix(abs(scaled_int), radix)
        if n == 0:
            result = scaled_string
        else:
            length = len(scaled_string)
            if length <= n:
                scaled_string = "0" * (n + 1 - length) + scaled_string
                length = n + 1
            result = f"{scaled_string[:length - n]}.{scaled_string[length - n:]}"
        if scaled_int < 0:
            result = "-" + result
        return result

    def to_string_float_rep(self, n: int, radix: int = 10, m: int = -1000) -> FloatRep:
        """Scientific notation with ``n`` significant digits.

        Args:
            n: Number of mantissa digits (must be positive)
            radix: Output radix, 2 to 16
            m: Values smaller than radix**m may be reported as zero

        Returns:
            FloatRep with sign, mantissa digits, radix and exponent
        """
        if n <= 0:
            raise DomainError("Bad precision argument")
        log2_radix = math.log(radix) / math.log(2.0)
        msd_prec = int(log2_radix * m)
        check_prec(msd_prec)
        msd = self.iter_msd(msd_prec - 2)
        if msd == NO_MSD:
            return FloatRep(0, "0", radix, 0)
        exponent = math.ceil(msd / log2_radix)
        scale_exp = exponent - n
        if scale_exp > 0:
            scale_cr = CR.value_of(radix**scale_exp).inverse()
        else:
            scale_cr = CR.value_of(radix ** (-scale_exp))
        scaled_res = self.multiply(scale_cr)
        scaled_int = scaled_res.approx_get(0)
        scaled_string = _int_to_radix(abs(scaled_int), radix)
        while len(scaled_string) < n:
            scaled_res = scaled_res.multiply(CR.value_of(radix))
            exponent -= 1
            scaled_int = scaled_res.approx_get(0)
            scaled_string = _int_to_radix(abs(scaled_int), radix)
        if len(scaled_string) > n:
            exponent += len(scaled_string) - n
            scaled_string = scaled_string[:n]
        sign = (scaled_int > 0) - (scaled_int < 0)
        return FloatRep(sign, scaled_string, radix, exponent)

    def big_integer_value(self) -> int:
        """Nearest integer, with ties possibly broken either way."""
        return self.approx_get(0)

    def int_value(self) -> int:
        return self.approx_get(0)

    def double_value(self) -> float:
        my_msd = self.iter_msd(-1080)
        if my_msd == NO_MSD:
            return 0.0
        needed_prec = my_msd - 60
        appr = self.approx_get(needed_prec)
        try:
            return math.ldexp(float(appr), needed_prec)
        except OverflowError:
            return math.copysign(math.inf, appr)

    def __float__(self) -> float:
        return self.double_value()

    def __int__(self) -> int:
        return self.big_integer_value()

    def __str__(self) -> str:
        return self.to_string(10)

    def __repr__(self) -> str:
        return f"<CR {self.kind.name}>"


def _int_to_radix(n: int, radix: int) -> str:
    if radix == 10:
        return str(n)
    return base_repr(n, radix).lower()


def _simple_ln(x: CR) -> CR:
    # Valid only for x close to 1.
    return CR(Kind.PRESCALED_LN, (x.subtract(ONE),), slow=True)


def _seeded_sqrt(x: CR, min_prec: int, max_appr: int) -> CR:
    # Square root whose cache starts at a known approximation.
    node = CR(Kind.SQRT, (x,))
    node.min_prec = min_prec
    node.max_appr = max_appr
    node.appr_valid = True
    return node


# Per-kind approximation functions. Each must be accurate to < 1 ulp at
# precision p given children accurate at the precisions they request.


def _approx_int(node: CR, p: int) -> int:
    return scale(node.value, -p)


def _approx_assumed_int(node: CR, p: int) -> int:
    (op,) = node.ops
    if p >= 0:
        return op.approx_get(p)
    return scale(op.approx_get(0), -p)


def _approx_add(node: CR, p: int) -> int:
    # Two guard bits absorb the two operand errors plus final rounding.
    op1, op2 = node.ops
    return scale(op1.approx_get(p - 2) + op2.approx_get(p - 2), -2)


def _approx_shifted(node: CR, p: int) -> int:
    (op,) = node.ops
    return op.approx_get(p - node.value)


def _approx_neg(node: CR, p: int) -> int:
    (op,) = node.ops
    return -op.approx_get(p)


def _approx_select(node: CR, p: int) -> int:
    selector, op1, op2 = node.ops
    if node.selector_sign < 0:
        return op1.approx_get(p)
    if node.selector_sign > 0:
        return op2.approx_get(p)
    op1_appr = op1.approx_get(p - 1)
    op2_appr = op2.approx_get(p - 1)
    if abs(op1_appr - op2_appr) <= 1:
        # Close enough that either answer is accurate.
        return scale(op1_appr, -1)
    if selector.signum() < 0:
        node.selector_sign = -1
        return scale(op1_appr, -1)
    node.selector_sign = 1
    return scale(op2_appr, -1)


def _approx_mult(node: CR, p: int) -> int:
    op1, op2 = node.ops
    half_prec = (p >> 1) - 1
    msd_op1 = op1.msd(half_prec)
    if msd_op1 == NO_MSD:
        msd_op2 = op2.msd(half_prec)
        if msd_op2 == NO_MSD:
            # Both operands are small enough that the product rounds to zero.
            return 0
        op1, op2 = op2, op1
        msd_op1 = msd_op2
    # Relative error of op2 scaled by |op1| < 2**(msd_op1 + 1) must stay below 1/8 ulp.
    prec2 = p - msd_op1 - 3
    appr2 = op2.approx_get(prec2)
    if appr2 == 0:
        return 0
    msd_op2 = op2.known_msd()
    prec1 = p - msd_op2 - 3
    appr1 = op1.approx_get(prec1)
    scale_digits = prec1 + prec2 - p
    return scale(appr1 * appr2, scale_digits)


def _approx_inv(node: CR, p: int) -> int:
    (op,) = node.ops
    msd = op.msd()
    inv_msd = 1 - msd
    digits_needed = inv_msd - p + 3
    prec_needed = msd - digits_needed
    log_scale_factor = -p - prec_needed
    if log_scale_factor < 0:
        return 0
    dividend = 1 << log_scale_factor
    scaled_divisor = op.approx_get(prec_needed)
    abs_scaled_divisor = abs(scaled_divisor)
    # Adding half the divisor rounds the quotient to nearest.
    adj_dividend = dividend + (abs_scaled_divisor >> 1)
    result = adj_dividend // abs_scaled_divisor
    if scaled_divisor < 0:
        return -result
    return result


def _approx_prescaled_exp(node: CR, p: int) -> int:
    # Argument is known to lie in [-1/2, 1/2].
    if p >= 1:
        return 0
    (op,) = node.ops
    iterations_needed = -p // 2 + 2
    # Each term is rounded with error < 1 at calc_precision; that sums to < 2**(p-4).
    calc_precision = p - bound_log2(2 * iterations_needed) - 4
    op_prec = p - 3
    op_appr = op.approx_get(op_prec)
    scaled_1 = 1 << -calc_precision
    current_term = scaled_1
    current_sum = scaled_1
    n = 0
    max_trunc_error = 1 << (p - 4 - calc_precision)
    while abs(current_term) >= max_trunc_error:
        check_cancelled()
        n += 1
        current_term = scale(current_term * op_appr, op_prec)
        current_term = tdiv(current_term, n)
        current_sum += current_term
    return scale(current_sum, calc_precision - p)


def _approx_prescaled_cos(node: CR, p: int) -> int:
    # Argument is known to lie in [-1, 1].
    if p >= 1:
        return 0
    (op,) = node.ops
    iterations_needed = -p // 2 + 4
    calc_precision = p - bound_log2(2 * iterations_needed) - 4
    op_prec = p - 2
    op_appr = op.approx_get(op_prec)
    max_trunc_error = 1 << (p - 4 - calc_precision)
    n = 0
    current_term = 1 << -calc_precision
    current_sum = current_term
    while abs(current_term) >= max_trunc_error:
        check_cancelled()
        n += 2
        current_term = scale(current_term * op_appr, op_prec)
        current_term = scale(current_term * op_appr, op_prec)
        current_term = tdiv(current_term, -n * (n - 1))
        current_sum += current_term
    return scale(current_sum, calc_precision - p)


def _approx_integral_atan(node: CR, p: int) -> int:
    if p >= 1:
        return 0
    op = node.value
    iterations_needed = -p // 2 + 2
    calc_precision = p - bound_log2(2 * iterations_needed) - 2
    scaled_1 = 1 << -calc_precision
    op_squared = op * op
    op_inverse = tdiv(scaled_1, op)
    current_power = op_inverse
    current_term = op_inverse
    current_sum = op_inverse
    current_sign = 1
    n = 1
    max_trunc_error = 1 << (p - 2 - calc_precision)
    while abs(current_term) >= max_trunc_error:
        check_cancelled()
        n += 2
        current_power = tdiv(current_power, op_squared)
        current_sign = -current_sign
        current_term = tdiv(current_power, current_sign * n)
        current_sum += current_term
    return scale(current_sum, calc_precision - p)


def _approx_prescaled_ln(node: CR, p: int) -> int:
    # ln(1 + x) for x known to lie in [-1/2, 1/2].
    if p >= 0:
        return 0
    (op,) = node.ops
    iterations_needed = -p
    calc_precision = p - bound_log2(2 * iterations_needed) - 4
    op_prec = p - 3
    op_appr = op.approx_get(op_prec)
    x_nth = scale(op_appr, op_prec - calc_precision)
    current_term = x_nth
    current_sum = current_term
    n = 1
    current_sign = 1
    max_trunc_error = 1 << (p - 4 - calc_precision)
    while abs(current_term) >= max_trunc_error:
        check_cancelled()
        n += 1
        current_sign = -current_sign
        x_nth = scale(x_nth * op_appr, op_prec)
        current_term = tdiv(x_nth, n * current_sign)
        current_sum += current_term
    return scale(current_sum, calc_precision - p)


def _approx_prescaled_asin(node: CR, p: int) -> int:
    # Argument is known to lie in [-0.75, 0.75]; terms shrink by at least 3/4.
    if p >= 2:
        return 0
    (op,) = node.ops
    iterations_needed = tdiv(-3 * p, 2) + 4
    calc_precision = p - bound_log2(2 * iterations_needed) - 4
    op_prec = p - 3
    op_appr = op.approx_get(op_prec)
    max_last_term = 1 << (p - 4 - calc_precision)
    exp = 1
    current_term = op_appr << (op_prec - calc_precision)
    current_sum = current_term
    # current_factor carries two extra bits relative to current_term.
    current_factor = current_term
    while abs(current_term) >= max_last_term:
        check_cancelled()
        exp += 2
        current_factor *= exp - 2
        current_factor = scale(current_factor * op_appr, op_prec + 2)
        current_factor *= op_appr
        current_factor = tdiv(current_factor, exp - 1)
        current_factor = scale(current_factor, op_prec - 2)
        current_term = tdiv(current_factor, exp)
        current_sum += current_term
    return scale(current_sum, calc_precision - p)


def _approx_sqrt(node: CR, p: int) -> int:
    (op,) = node.ops
    max_op_prec_needed = 2 * p - 1
    msd = op.iter_msd(max_op_prec_needed)
    if msd <= max_op_prec_needed:
        return 0
    result_msd = tdiv(msd, 2)
    result_digits = result_msd - p
    if result_digits > FP_PREC:
        # One Newton step from a half-precision approximation of ourselves.
        appr_digits = tdiv(result_digits, 2) + 6
        appr_prec = result_msd - appr_digits
        prod_prec = 2 * appr_prec
        op_appr = op.approx_get(prod_prec)
        last_appr = node.approx_get(appr_prec)
        prod_prec_scaled_numerator = last_appr * last_appr + op_appr
        scaled_numerator = scale(prod_prec_scaled_numerator, appr_prec - p)
        shifted_result = tdiv(scaled_numerator, last_appr)
        return (shifted_result + 1) >> 1
    # Few enough digits for a double square root.
    op_prec = (msd - FP_OP_PREC) & ~1
    working_prec = op_prec - FP_OP_PREC
    scaled_bi_appr = op.approx_get(op_prec) << FP_OP_PREC
    scaled_appr = float(scaled_bi_appr)
    if scaled_appr < 0.0:
        raise DomainError("sqrt(negative)")
    scaled_sqrt = int(math.sqrt(scaled_appr))
    shift_count = working_prec // 2 - p
    return shift(scaled_sqrt, shift_count)


_PI_TOLERANCE = 4


def _approx_gl_pi(node: CR, p: int) -> int:
    """Gauss-Legendre AGM iteration for pi.

    The geometric means computed at the last precision are kept in
    ``node.b_cache`` and seed the square roots at the next, higher precision.
    """
    if p >= 0:
        return scale(3, -p)
    extra_eval_prec = math.ceil(math.log(-p) / math.log(2)) + 10
    eval_prec = p - extra_eval_prec
    a = 1 << -eval_prec
    b = SQRT_HALF.approx_get(eval_prec)
    t = 1 << (-eval_prec - 2)
    n = 0
    b_cache = node.b_cache
    while a - b - _PI_TOLERANCE > 0:
        check_cancelled()
        next_a = (a + b) >> 1
        a_diff = a - next_a
        b_prod = (a * b) >> -eval_prec
        b_prod_as_cr = CR.value_of(b_prod).shift_right(-eval_prec)
        if len(b_cache) == n:
            next_b = b_prod_as_cr.sqrt().approx_get(eval_prec)
            b_cache.append((p, scale(next_b, -extra_eval_prec)))
        else:
            seed_prec, seed_val = b_cache[n]
            next_b = _seeded_sqrt(b_prod_as_cr, seed_prec, seed_val).approx_get(eval_prec)
            b_cache[n] = (p, scale(next_b, -extra_eval_prec))
        next_t = t - shift(a_diff * a_diff, n + eval_prec)
        a = next_a
        b = next_b
        t = next_t
        n += 1
    total = a + b
    result = tdiv(total * total, t) >> 2
    return scale(result, -extra_eval_prec)


_APPROXIMATORS: dict[Kind, Callable[[CR, int], int]] = {
    Kind.INT: _approx_int,
    Kind.ASSUMED_INT: _approx_assumed_int,
    Kind.ADD: _approx_add,
    Kind.SHIFTED: _approx_shifted,
    Kind.NEG: _approx_neg,
    Kind.SELECT: _approx_select,
    Kind.MULT: _approx_mult,
    Kind.INV: _approx_inv,
    Kind.PRESCALED_EXP: _approx_prescaled_exp,
    Kind.PRESCALED_COS: _approx_prescaled_cos,
    Kind.INTEGRAL_ATAN: _approx_integral_atan,
    Kind.PRESCALED_LN: _approx_prescaled_ln,
    Kind.PRESCALED_ASIN: _approx_prescaled_asin,
    Kind.SQRT: _approx_sqrt,
    Kind.GL_PI: _approx_gl_pi,
}


ZERO = CR.value_of(0)
ONE = CR.value_of(1)
FOUR = CR.value_of(4)

# ln 2 = 7 ln(10/9) - 2 ln(25/24) + 3 ln(81/80), each argument near 1
LN2 = (
    CR.value_of(7).multiply(_simple_ln(CR.value_of(10).divide(CR.value_of(9))))
    .subtract(CR.value_of(2).multiply(_simple_ln(CR.value_of(25).divide(CR.value_of(24)))))
    .add(CR.value_of(3).multiply(_simple_ln(CR.value_of(81).divide(CR.value_of(80)))))
)

SQRT_HALF = CR(Kind.SQRT, (ONE.shift_right(1),))
PI = CR(Kind.GL_PI, slow=True)
HALF_PI = PI.shift_right(1)

# Machin's formula; an independent check on PI
ATAN_PI = FOUR.multiply(
    FOUR.multiply(CR.atan_reciprocal(5)).subtract(CR.atan_reciprocal(239))
)


def register_approximator(kind: Kind, approximator: Callable[[CR, int], int]) -> None:
    """Install the approximation function for a kind defined outside this module."""
    _APPROXIMATORS[kind] = approximator
