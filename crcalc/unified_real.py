"""Real numbers as an exact rational times a constructive real.

A UnifiedReal is ``rat_factor * cr_factor``. When ``cr_factor`` is one of
a small set of well-known constants (1, pi, e, a few square roots and
logarithms) we know enough about it to decide equality, print exact
results such as ``2√3`` and compute many trig, log and power values
exactly. Anything else falls back to plain constructive-real arithmetic,
where comparisons are only decidable up to a tolerance.

Known constants are identified by object identity, so every
``UnifiedReal`` that refers to pi shares the single ``CR_PI`` node.
"""

from __future__ import annotations

import logging
import math
import sys
from typing import Optional, Union

from . import bounded_rational as br
from . import cr as crmod
from .bounded_rational import BoundedRational
from .cancellation import check_cancelled
from .config import DEFAULT_COMPARE_TOLERANCE
from .cr import CR
from .logging_config import get_logger
from .types import DomainError, ZeroDivisionDomainError
from .unary_function import ATAN

logger = get_logger("unified_real")

# Extra binary digits used when truncating a value that may be rational
EXTRA_PREC = 10

# Integer powers up to this exponent are computed by repeated squaring
RECURSIVE_POW_LIMIT = 1000
# Rational powers are attempted only for exponents up to this size
HARD_RECURSIVE_POW_LIMIT = 1 << 1000

# Largest factorial argument, in bits
MAX_FACTORIAL_BITS = 20

CR_ONE = crmod.ONE
CR_PI = crmod.PI
CR_E = crmod.ONE.exp()
CR_SQRT2 = CR.value_of(2).sqrt()
CR_SQRT3 = CR.value_of(3).sqrt()
CR_LN2 = CR.value_of(2).ln()
CR_LN3 = CR.value_of(3).ln()
CR_LN5 = CR.value_of(5).ln()
CR_LN6 = CR.value_of(6).ln()
CR_LN7 = CR.value_of(7).ln()
CR_LN10 = CR.value_of(10).ln()

# Square roots of small integers, indexed by the integer
_SQRTS: list[Optional[CR]] = [
    None, CR_ONE, CR_SQRT2, CR_SQRT3, None, CR.value_of(5).sqrt(),
    CR.value_of(6).sqrt(), CR.value_of(7).sqrt(), None, None,
    CR.value_of(10).sqrt(),
]

# Natural logs of small integers, indexed by the integer
_LOGS: list[Optional[CR]] = [
    None, None, CR_LN2, CR_LN3, None, CR_LN5,
    CR_LN6, CR_LN7, None, None, CR_LN10,
]

Number = Union["UnifiedReal", int]


def _is_named(cr: CR) -> bool:
    if cr is CR_ONE or cr is CR_PI or cr is CR_E:
        return True
    return any(cr is r for r in _SQRTS if r is not None) or any(cr is r for r in _LOGS if r is not None)


def _get_square(cr: CR) -> Optional[BoundedRational]:
    """``cr**2`` if ``cr`` is a known square root, else None."""
    for i, r in enumerate(_SQRTS):
        if r is cr:
            return BoundedRational(i)
    return None


def _get_exp(cr: CR) -> Optional[BoundedRational]:
    """``exp(cr)`` if ``cr`` is a known log, else None."""
    for i, r in enumerate(_LOGS):
        if r is cr:
            return BoundedRational(i)
    return None


def _cr_name(cr: CR) -> Optional[str]:
    if cr is CR_ONE:
        return ""
    if cr is CR_PI:
        return "π"
    if cr is CR_E:
        return "e"
    for i, r in enumerate(_SQRTS):
        if r is cr:
            return f"√{i}"
    for i, r in enumerate(_LOGS):
        if r is cr:
            return f"ln({i})"
    return None


def _definitely_algebraic(cr: CR) -> bool:
    return cr is CR_ONE or _get_square(cr) is not None


def _definitely_independent(r1: CR, r2: CR) -> bool:
    """True if r1 and r2 are known to be linearly independent over the rationals."""
    if r1 is r2:
        return False
    if r1 is CR_E or r1 is CR_PI:
        return _definitely_algebraic(r2)
    if r2 is CR_E or r2 is CR_PI:
        return _definitely_algebraic(r1)
    return _is_named(r1) and _is_named(r2)


class UnifiedReal:
    """Exact rational times a possibly named constructive real."""

    __slots__ = ("rat_factor", "cr_factor")

    def __init__(self, rat: Union[BoundedRational, CR, int], cr: Optional[CR] = None):
        if isinstance(rat, CR):
            rat, cr = br.ONE, rat
        elif isinstance(rat, int):
            rat = BoundedRational(rat)
        self.rat_factor: BoundedRational = rat
        self.cr_factor: CR = CR_ONE if cr is None else cr

    @classmethod
    def value_of(cls, x: Union[int, float]) -> UnifiedReal:
        if x == 0:
            return ZERO
        if x == 1:
            return ONE
        return cls(BoundedRational.value_of(x))

    # Classification

    @property
    def pi_twelfths(self) -> Optional[int]:
        """This value as a multiple of pi/12, mod 24, if it is one."""
        if self.definitely_zero():
            return 0
        if self.cr_factor is CR_PI:
            quotient = br.as_big_integer(br.multiply(self.rat_factor, br.TWELVE))
            if quotient is None:
                return None
            return quotient % 24
        return None

    def definitely_rational(self) -> bool:
        return self.cr_factor is CR_ONE or self.rat_factor.signum() == 0

    def definitely_irrational(self) -> bool:
        return not self.definitely_rational() and _is_named(self.cr_factor)

    def definitely_algebraic(self) -> bool:
        return _definitely_algebraic(self.cr_factor) or self.rat_factor.signum() == 0

    def definitely_transcendental(self) -> bool:
        return not self.definitely_algebraic() and _is_named(self.cr_factor)

    def definitely_zero(self) -> bool:
        return self.rat_factor.signum() == 0

    def definitely_non_zero(self) -> bool:
        return _is_named(self.cr_factor) and self.rat_factor.signum() != 0

    def definitely_one(self) -> bool:
        return self.cr_factor is CR_ONE and self.rat_factor == br.ONE

    def exactly_displayable(self) -> bool:
        """True if to_nice_string() gives an exact representation."""
        return _cr_name(self.cr_factor) is not None

    def exactly_truncatable(self) -> bool:
        """True if truncation to a fixed number of digits is known to be exact."""
        return self.cr_factor is CR_ONE or self.rat_factor.signum() == 0 or self.definitely_irrational()

    # Rendering

    def __str__(self) -> str:
        return f"{self.rat_factor}*{self.cr_factor}"

    def __repr__(self) -> str:
        return f"UnifiedReal({self.rat_factor!r}, {self.cr_factor!r})"

    def to_nice_string(self) -> str:
        """Exact form such as ``2/3``, ``π`` or ``(1/2)√3`` when possible."""
        if self.cr_factor is CR_ONE or self.rat_factor.signum() == 0:
            return self.rat_factor.to_nice_string()
        name = _cr_name(self.cr_factor)
        if name is not None:
            bi = br.as_big_integer(self.rat_factor)
            if bi is not None:
                if bi == 1:
                    return name
                return self.rat_factor.to_nice_string() + name
            return f"({self.rat_factor.to_nice_string()}){name}"
        if self.rat_factor == br.ONE:
            return str(self.cr_factor)
        return str(self.cr_value())

    def to_string_truncated(self, n: int) -> str:
        """Digits truncated toward zero, with ``n`` digits after the point.

        For values that may be rational but are not known to be, the last
        digit may be off by one.
        """
        if self.cr_factor is CR_ONE or self.rat_factor.signum() == 0:
            return self.rat_factor.to_string_truncated(n)
        scaled = CR.value_of(10**n).multiply(self.cr_value())
        negative = False
        if self.exactly_truncatable():
            int_scaled = scaled.approx_get(0)
            if int_scaled < 0:
                negative = True
                int_scaled = -int_scaled
            # The approximation may round up; the value is irrational, so never equal.
            if CR.value_of(int_scaled).compare_to_exact(scaled.abs()) > 0:
                int_scaled -= 1
        else:
            int_scaled = scaled.approx_get(-EXTRA_PREC)
            if int_scaled < 0:
                negative = True
                int_scaled = -int_scaled
            int_scaled >>= EXTRA_PREC
        digits = str(int_scaled)
        if len(digits) < n + 1:
            digits = "0" * (n + 1 - len(digits)) + digits
        length = len(digits)
        sign = "-" if negative else ""
        return f"{sign}{digits[:length - n]}.{digits[length - n:]}"

    def digits_required(self) -> int:
        """Fraction digits needed for an exact decimal rendering, or MAX_DIGITS."""
        if self.cr_factor is CR_ONE or self.rat_factor.signum() == 0:
            return br.digits_required(self.rat_factor)
        return br.MAX_DIGITS

    def leading_binary_zeroes(self) -> int:
        """Lower bound on binary zeroes right of the point, or sys.maxsize if unknown."""
        if _is_named(self.cr_factor):
            if self.rat_factor.signum() == 0:
                return sys.maxsize
            whole_bits = self.rat_factor.whole_number_bits()
            if whole_bits >= 3:
                return 0
            return -whole_bits + 3
        return sys.maxsize

    def approx_whole_number_bits_greater_than(self, bound: int) -> bool:
        if _is_named(self.cr_factor):
            return self.rat_factor.whole_number_bits() > bound
        return self.cr_value().approx_get(bound - 2).bit_length() > 2

    # Conversion

    def cr_value(self) -> CR:
        return self.rat_factor.to_cr().multiply(self.cr_factor)

    def double_value(self) -> float:
        if self.cr_factor is CR_ONE:
            return self.rat_factor.double_value()
        return self.cr_value().double_value()

    def __float__(self) -> float:
        return self.double_value()

    def bounded_rational_value(self) -> Optional[BoundedRational]:
        if self.cr_factor is CR_ONE or self.rat_factor.signum() == 0:
            return self.rat_factor
        return None

    def big_integer_value(self) -> Optional[int]:
        return br.as_big_integer(self.bounded_rational_value())

    # Comparison

    def is_comparable(self, u: UnifiedReal) -> bool:
        """True if compare_to(u) is guaranteed to terminate."""
        if self.cr_factor is u.cr_factor and (
            _is_named(self.cr_factor) or self.cr_factor.signum_at(DEFAULT_COMPARE_TOLERANCE) != 0
        ):
            return True
        if self.rat_factor.signum() == 0 and u.rat_factor.signum() == 0:
            return True
        if _definitely_independent(self.cr_factor, u.cr_factor):
            return True
        return self.cr_value().compare_to_abs(u.cr_value(), DEFAULT_COMPARE_TOLERANCE) != 0

    def compare_to(self, u: UnifiedReal, a: Optional[int] = None) -> int:
        """Three-way comparison.

        Without a tolerance the result is exact, but the call may not return
        unless is_comparable(u). With tolerance ``a``, incomparable values
        within 2**a of each other compare equal.
        """
        if a is not None and not self.is_comparable(u):
            return self.cr_value().compare_to_abs(u.cr_value(), a)
        if self.definitely_zero() and u.definitely_zero():
            return 0
        if self.cr_factor is u.cr_factor:
            return self.cr_factor.signum() * self.rat_factor.compare_to(u.rat_factor)
        return self.cr_value().compare_to_exact(u.cr_value())

    def signum(self, a: Optional[int] = None) -> int:
        return self.compare_to(ZERO, a)

    def approx_equals(self, u: UnifiedReal, a: int) -> bool:
        if self.is_comparable(u):
            if _definitely_independent(self.cr_factor, u.cr_factor) and (
                self.rat_factor.signum() != 0 or u.rat_factor.signum() != 0
            ):
                return False
            return self.compare_to(u) == 0
        return self.cr_value().compare_to_abs(u.cr_value(), a) == 0

    def definitely_equals(self, u: UnifiedReal) -> bool:
        return self.is_comparable(u) and self.compare_to(u) == 0

    def definitely_not_equals(self, u: UnifiedReal) -> bool:
        is_named = _is_named(self.cr_factor)
        u_is_named = _is_named(u.cr_factor)
        if is_named and u_is_named:
            if _definitely_independent(self.cr_factor, u.cr_factor):
                return self.rat_factor.signum() != 0 or u.rat_factor.signum() != 0
            return self.rat_factor != u.rat_factor
        if self.rat_factor.signum() == 0:
            return u_is_named and u.rat_factor.signum() != 0
        if u.rat_factor.signum() == 0:
            return is_named and self.rat_factor.signum() != 0
        return False

    # Arithmetic

    def add(self, u: UnifiedReal) -> UnifiedReal:
        if self.cr_factor is u.cr_factor:
            n_rat_factor = br.add(self.rat_factor, u.rat_factor)
            if n_rat_factor is not None:
                return UnifiedReal(n_rat_factor, self.cr_factor)
        if self.definitely_zero():
            return u
        if u.definitely_zero():
            return self
        return UnifiedReal(self.cr_value().add(u.cr_value()))

    def negate(self) -> UnifiedReal:
        return UnifiedReal(br.negate(self.rat_factor), self.cr_factor)

    def subtract(self, u: UnifiedReal) -> UnifiedReal:
        return self.add(u.negate())

    def multiply(self, u: UnifiedReal) -> UnifiedReal:
        if self.cr_factor is CR_ONE:
            n_rat_factor = br.multiply(self.rat_factor, u.rat_factor)
            if n_rat_factor is not None:
                return UnifiedReal(n_rat_factor, u.cr_factor)
        if u.cr_factor is CR_ONE:
            n_rat_factor = br.multiply(self.rat_factor, u.rat_factor)
            if n_rat_factor is not None:
                return UnifiedReal(n_rat_factor, self.cr_factor)
        if self.definitely_zero() or u.definitely_zero():
            return ZERO
        if self.cr_factor is u.cr_factor:
            square = _get_square(self.cr_factor)
            if square is not None:
                n_rat_factor = br.multiply(br.multiply(square, self.rat_factor), u.rat_factor)
                if n_rat_factor is not None:
                    return UnifiedReal(n_rat_factor)
        n_rat_factor = br.multiply(self.rat_factor, u.rat_factor)
        if n_rat_factor is not None:
            return UnifiedReal(n_rat_factor, self.cr_factor.multiply(u.cr_factor))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Rational factor overflow in multiply; using constructive product")
        return UnifiedReal(self.cr_value().multiply(u.cr_value()))

    def inverse(self) -> UnifiedReal:
        if self.definitely_zero():
            raise ZeroDivisionDomainError("Division by zero")
        square = _get_square(self.cr_factor)
        if square is not None:
            # 1/(r sqrt(n)) = (1/(r n)) sqrt(n)
            n_rat_factor = br.inverse(br.multiply(self.rat_factor, square))
            if n_rat_factor is not None:
                return UnifiedReal(n_rat_factor, self.cr_factor)
        return UnifiedReal(br.inverse(self.rat_factor), self.cr_factor.inverse())

    def divide(self, u: UnifiedReal) -> UnifiedReal:
        if self.cr_factor is u.cr_factor:
            if u.definitely_zero():
                raise ZeroDivisionDomainError("Division by zero")
            n_rat_factor = br.divide(self.rat_factor, u.rat_factor)
            if n_rat_factor is not None:
                return UnifiedReal(n_rat_factor, CR_ONE)
        return self.multiply(u.inverse())

    def sqrt(self) -> UnifiedReal:
        if self.definitely_zero():
            return ZERO
        if self.cr_factor is CR_ONE:
            if self.rat_factor.signum() < 0:
                raise DomainError("sqrt(negative)")
            for divisor in range(1, len(_SQRTS)):
                if _SQRTS[divisor] is None:
                    continue
                rat_sqrt = br.sqrt(br.divide(self.rat_factor, BoundedRational(divisor)))
                if rat_sqrt is not None:
                    return UnifiedReal(rat_sqrt, _SQRTS[divisor])
        return UnifiedReal(self.cr_value().sqrt())

    def __add__(self, other: Number) -> UnifiedReal:
        return self.add(_coerce(other))

    def __radd__(self, other: Number) -> UnifiedReal:
        return _coerce(other).add(self)

    def __sub__(self, other: Number) -> UnifiedReal:
        return self.subtract(_coerce(other))

    def __rsub__(self, other: Number) -> UnifiedReal:
        return _coerce(other).subtract(self)

    def __mul__(self, other: Number) -> UnifiedReal:
        return self.multiply(_coerce(other))

    def __rmul__(self, other: Number) -> UnifiedReal:
        return _coerce(other).multiply(self)

    def __truediv__(self, other: Number) -> UnifiedReal:
        return self.divide(_coerce(other))

    def __rtruediv__(self, other: Number) -> UnifiedReal:
        return _coerce(other).divide(self)

    def __neg__(self) -> UnifiedReal:
        return self.negate()

    def __pow__(self, other: Number) -> UnifiedReal:
        return self.pow(_coerce(other))

    # Trigonometry

    def sin(self) -> UnifiedReal:
        twelfths = self.pi_twelfths
        if twelfths is not None:
            result = _sin_pi_twelfths(twelfths)
            if result is not None:
                return result
        return UnifiedReal(self.cr_value().sin())

    def cos(self) -> UnifiedReal:
        twelfths = self.pi_twelfths
        if twelfths is not None:
            result = _cos_pi_twelfths(twelfths)
            if result is not None:
                return result
        return UnifiedReal(self.cr_value().cos())

    def tan(self) -> UnifiedReal:
        twelfths = self.pi_twelfths
        if twelfths is not None:
            if twelfths in (6, 18):
                raise DomainError("Tangent undefined")
            top = _sin_pi_twelfths(twelfths)
            bottom = _cos_pi_twelfths(twelfths)
            if top is not None and bottom is not None:
                return top.divide(bottom)
        return self.sin().divide(self.cos())

    def _check_asin_domain(self) -> None:
        if self.is_comparable(ONE) and (self.compare_to(ONE) > 0 or self.compare_to(MINUS_ONE) < 0):
            raise DomainError("inverse trig argument out of range")

    def _asin_non_halves(self) -> UnifiedReal:
        if self.compare_to(ZERO, -10) < 0:
            return self.negate()._asin_non_halves().negate()
        if self.definitely_equals(HALF_SQRT2):
            return PI_OVER_4
        if self.definitely_equals(HALF_SQRT3):
            return PI_OVER_3
        return UnifiedReal(self.cr_value().asin())

    def asin(self) -> UnifiedReal:
        self._check_asin_domain()
        halves = self.multiply(TWO).big_integer_value()
        if halves is not None:
            return asin_halves(halves)
        return self._asin_non_halves()

    def acos(self) -> UnifiedReal:
        return PI_OVER_2.subtract(self.asin())

    def atan(self) -> UnifiedReal:
        if self.compare_to(ZERO, -10) < 0:
            return self.negate().atan().negate()
        as_int = self.big_integer_value()
        if as_int is not None and as_int <= 1:
            return ZERO if as_int == 0 else PI_OVER_4
        if self.definitely_equals(THIRD_SQRT3):
            return PI_OVER_6
        if self.definitely_equals(SQRT3):
            return PI_OVER_3
        return UnifiedReal(ATAN.execute(self.cr_value()))

    # Powers, logs and factorial

    def _exp_ln_pow(self, exp: int) -> UnifiedReal:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Integer power with {exp.bit_length()}-bit exponent via exp(ln)")
        sign = self.signum(DEFAULT_COMPARE_TOLERANCE)
        if sign > 0:
            return UnifiedReal(self.cr_value().ln().multiply(CR.value_of(exp)).exp())
        if sign < 0:
            result = self.cr_value().negate().ln().multiply(CR.value_of(exp)).exp()
            if exp & 1:
                result = result.negate()
            return UnifiedReal(result)
        # Too close to zero for ln to be usable.
        if exp < 0:
            return UnifiedReal(_cr_pow(self.cr_value(), -exp).inverse())
        return UnifiedReal(_cr_pow(self.cr_value(), exp))

    def pow_int(self, exp: int) -> UnifiedReal:
        if exp == 1:
            return self
        if exp == 0:
            return ONE
        abs_exp = abs(exp)
        if self.cr_factor is CR_ONE and abs_exp <= HARD_RECURSIVE_POW_LIMIT:
            rat_pow = self.rat_factor.pow(exp)
            if rat_pow is not None:
                return UnifiedReal(rat_pow)
        if abs_exp > RECURSIVE_POW_LIMIT:
            return self._exp_ln_pow(exp)
        square = _get_square(self.cr_factor)
        if square is not None:
            # (r sqrt(n))^k = r^k n^(k//2) sqrt(n)^(k%2)
            n_rat_factor = br.multiply(self.rat_factor.pow(exp), square.pow(exp >> 1))
            if n_rat_factor is not None:
                if exp & 1:
                    return UnifiedReal(n_rat_factor, self.cr_factor)
                return UnifiedReal(n_rat_factor)
        return self._exp_ln_pow(exp)

    def pow(self, expon: UnifiedReal) -> UnifiedReal:
        if self.cr_factor is CR_E:
            if self.rat_factor == br.ONE:
                return expon.exp()
            rat_part = UnifiedReal(self.rat_factor).pow(expon)
            return expon.exp().multiply(rat_part)
        exp_as_rational = expon.bounded_rational_value()
        if exp_as_rational is not None:
            exp_as_int = br.as_big_integer(exp_as_rational)
            if exp_as_int is not None:
                return self.pow_int(exp_as_int)
            doubled = br.as_big_integer(br.multiply(br.TWO, exp_as_rational))
            if doubled is not None:
                return self.pow_int(doubled).sqrt()
        if self.definitely_zero():
            return ZERO
        if self.signum(DEFAULT_COMPARE_TOLERANCE) < 0:
            raise DomainError("Negative base for pow() with non-integer exponent")
        return UnifiedReal(self.cr_value().ln().multiply(expon.cr_value()).exp())

    def ln(self) -> UnifiedReal:
        if self.cr_factor is CR_E:
            return UnifiedReal(self.rat_factor, CR_ONE).ln().add(ONE)
        if self.is_comparable(ZERO):
            if self.signum() <= 0:
                raise DomainError("log(non-positive)")
            compare1 = self.compare_to(ONE, DEFAULT_COMPARE_TOLERANCE)
            if compare1 == 0:
                if self.definitely_equals(ONE):
                    return ZERO
            elif compare1 < 0:
                return self.inverse().ln().negate()
            bi = br.as_big_integer(self.rat_factor)
            if bi is not None:
                if self.cr_factor is CR_ONE:
                    for i, log_cr in enumerate(_LOGS):
                        if log_cr is None:
                            continue
                        int_log = _get_int_log(bi, i)
                        if int_log != 0:
                            return UnifiedReal(BoundedRational(int_log), log_cr)
                else:
                    square = _get_square(self.cr_factor)
                    if square is not None:
                        # ln(k sqrt(n)) = (log_n(k) + 1/2) ln(n) when k is a power of n
                        int_square = square.int_value()
                        if _LOGS[int_square] is not None:
                            int_log = _get_int_log(bi, int_square)
                            if int_log != 0:
                                n_rat_factor = br.add(BoundedRational(int_log), br.HALF)
                                if n_rat_factor is not None:
                                    return UnifiedReal(n_rat_factor, _LOGS[int_square])
        return UnifiedReal(self.cr_value().ln())

    def exp(self) -> UnifiedReal:
        if self.definitely_equals(ZERO):
            return ONE
        if self.definitely_equals(ONE):
            return E
        cr_exp = _get_exp(self.cr_factor)
        if cr_exp is not None:
            need_sqrt = False
            rat_exponent = self.rat_factor
            if br.as_big_integer(rat_exponent) is None:
                need_sqrt = True
                rat_exponent = br.multiply(rat_exponent, br.TWO)
            n_rat_factor = br.pow(cr_exp, rat_exponent)
            if n_rat_factor is not None:
                result = UnifiedReal(n_rat_factor)
                if need_sqrt:
                    result = result.sqrt()
                return result
        return UnifiedReal(self.cr_value().exp())

    def fact(self) -> UnifiedReal:
        as_int = self.big_integer_value()
        if as_int is None:
            # Tolerate a result that is an integer but was computed lazily.
            as_int = self.cr_value().approx_get(0)
            if not self.approx_equals(UnifiedReal(as_int), DEFAULT_COMPARE_TOLERANCE):
                raise DomainError("Non-integral factorial argument")
        if as_int < 0:
            raise DomainError("Negative factorial argument")
        if as_int.bit_length() > MAX_FACTORIAL_BITS:
            raise DomainError("Factorial argument too big")
        return UnifiedReal(BoundedRational(_gen_factorial(as_int, 1)))


def _coerce(x: Number) -> UnifiedReal:
    if isinstance(x, UnifiedReal):
        return x
    if isinstance(x, int):
        return UnifiedReal.value_of(x)
    raise TypeError(f"Unsupported operand type: {type(x).__name__}")


def _cr_pow(base: CR, exp: int) -> CR:
    """``base**exp`` for exp >= 1 by left-to-right square and multiply."""
    result = base
    for bit in bin(exp)[3:]:
        check_cancelled()
        result = result.multiply(result)
        if bit == "1":
            result = base.multiply(result)
    return result


def _pow16(n: int) -> int:
    return n**16


def _get_int_log(n: int, base: int) -> int:
    """``k`` such that ``base**k == n``, or 0 if there is none."""
    approx = math.log(n) / math.log(base)
    if abs(approx - round(approx)) > 1.0e-6:
        return 0
    result = 0
    base16th = None
    while n % base == 0:
        check_cancelled()
        n //= base
        result += 1
        if base16th is None:
            base16th = _pow16(base)
        while n % base16th == 0:
            n //= base16th
            result += 16
    if n == 1:
        return result
    return 0


def _gen_factorial(n: int, step: int) -> int:
    """Product n * (n - step) * (n - 2 step) * ... down to 1, as a balanced tree."""
    if n > 4 * step:
        prod1 = _gen_factorial(n, 2 * step)
        check_cancelled()
        prod2 = _gen_factorial(n - step, 2 * step)
        check_cancelled()
        return prod1 * prod2
    if n == 0:
        return 1
    res = n
    i = n - step
    while i > 1:
        res *= i
        i -= step
    return res


ZERO = UnifiedReal(br.ZERO)
ONE = UnifiedReal(br.ONE)
MINUS_ONE = UnifiedReal(br.MINUS_ONE)
TWO = UnifiedReal(br.TWO)
MINUS_TWO = UnifiedReal(br.MINUS_TWO)
HALF = UnifiedReal(br.HALF)
MINUS_HALF = UnifiedReal(br.MINUS_HALF)
TEN = UnifiedReal(br.TEN)
PI = UnifiedReal(CR_PI)
E = UnifiedReal(CR_E)
RADIANS_PER_DEGREE = UnifiedReal(BoundedRational(1, 180), CR_PI)

HALF_SQRT2 = UnifiedReal(br.HALF, CR_SQRT2)
SQRT3 = UnifiedReal(CR_SQRT3)
HALF_SQRT3 = UnifiedReal(br.HALF, CR_SQRT3)
THIRD_SQRT3 = UnifiedReal(br.THIRD, CR_SQRT3)
PI_OVER_2 = UnifiedReal(br.HALF, CR_PI)
PI_OVER_3 = UnifiedReal(br.THIRD, CR_PI)
PI_OVER_4 = UnifiedReal(br.QUARTER, CR_PI)
PI_OVER_6 = UnifiedReal(br.SIXTH, CR_PI)

# sin(k pi / 12) for k in [0, 12), where it has a known exact value
_SIN_PI_TWELFTHS = {
    0: ZERO,
    2: HALF,
    3: HALF_SQRT2,
    4: HALF_SQRT3,
    6: ONE,
    8: HALF_SQRT3,
    9: HALF_SQRT2,
    10: HALF,
}


def _sin_pi_twelfths(n: int) -> Optional[UnifiedReal]:
    if n >= 12:
        neg_result = _sin_pi_twelfths(n - 12)
        return None if neg_result is None else neg_result.negate()
    return _SIN_PI_TWELFTHS.get(n)


def _cos_pi_twelfths(n: int) -> Optional[UnifiedReal]:
    return _sin_pi_twelfths((n + 6) % 24)


def asin_halves(n: int) -> UnifiedReal:
    """asin(n/2) for n in [-2, 2]."""
    if n < 0:
        return asin_halves(-n).negate()
    if n == 0:
        return ZERO
    if n == 1:
        return PI_OVER_6
    if n == 2:
        return PI_OVER_2
    raise DomainError("asin_halves: bad argument")
