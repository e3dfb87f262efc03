"""Exact rational numbers with a hard size cap.

A BoundedRational is an immutable numerator/denominator pair. Arithmetic
that would grow past ``MAX_RATIONAL_BITS`` yields ``None`` instead of a
result; ``None`` then propagates through every module-level operation and
tells callers to fall back to the lazy constructive-real path.

Reduction to lowest terms is deferred:
- always before producing a user-facing string
- randomly for roughly one in sixteen arithmetic results
- unconditionally when an unreduced result is too big
"""

from __future__ import annotations

import math
import random
import sys
from typing import Optional

from sympy import integer_nthroot, multiplicity

from .cancellation import check_cancelled
from .config import MAX_POW_EXPONENT_BITS, MAX_RATIONAL_BITS, REDUCE_PROBABILITY_MASK
from .types import DomainError, ZeroDivisionDomainError

# Sentinel for "no terminating decimal expansion"
MAX_DIGITS = sys.maxsize

_reduce_rng = random.Random()


class BoundedRational:
    """Immutable fraction ``num / den``; the denominator sign is not normalized."""

    __slots__ = ("num", "den")

    def __init__(self, num: int, den: int = 1):
        if den == 0:
            raise ZeroDivisionDomainError("Zero denominator")
        self.num = int(num)
        self.den = int(den)

    @classmethod
    def value_of(cls, x: int | float) -> BoundedRational:
        """Exact rational value of an int or a finite float."""
        if isinstance(x, float):
            if not math.isfinite(x):
                raise DomainError("Infinity or NaN not convertible to BoundedRational")
            n, d = x.as_integer_ratio()
            return cls(n, d)
        return _SMALL.get(x) or cls(x)

    def __str__(self) -> str:
        return f"{self.num}/{self.den}"

    def __repr__(self) -> str:
        return f"BoundedRational({self.num}, {self.den})"

    def to_nice_string(self) -> str:
        """Reduced form with the sign on the numerator, e.g. ``-2/3`` or ``7``."""
        nicer = self.reduce().positive_den()
        if nicer.den == 1:
            return str(nicer.num)
        return f"{nicer.num}/{nicer.den}"

    def to_string_truncated(self, n: int) -> str:
        """Decimal string truncated toward zero with exactly ``n`` fraction digits."""
        digits = str(abs(self.num) * 10**n // abs(self.den))
        if len(digits) < n + 1:
            digits = "0" * (n + 1 - len(digits)) + digits
        sign = "-" if self.signum() < 0 else ""
        return f"{sign}{digits[:len(digits) - n]}.{digits[len(digits) - n:]}"

    def double_value(self) -> float:
        try:
            return self.num / self.den
        except OverflowError:
            return math.copysign(math.inf, self.signum())

    def to_cr(self):
        """Constructive-real literal with the same value."""
        from .cr import CR

        return CR.value_of(self)

    def int_value(self) -> int:
        reduced = self.reduce().positive_den()
        if reduced.den != 1:
            raise DomainError("int_value of non-integer")
        return reduced.num

    def as_big_integer(self) -> Optional[int]:
        """Integer value, or None if this is not an integer."""
        q, r = divmod(self.num, self.den)
        if r != 0:
            return None
        return q

    def whole_number_bits(self) -> int:
        """Approximate bit position of the leading bit; very negative for zero."""
        if self.num == 0:
            return -sys.maxsize
        return self.num.bit_length() - self.den.bit_length()

    def bit_length(self) -> int:
        return self.num.bit_length() + self.den.bit_length()

    def too_big(self) -> bool:
        if self.den == 1:
            return False
        return self.bit_length() > MAX_RATIONAL_BITS

    def positive_den(self) -> BoundedRational:
        if self.den > 0:
            return self
        return BoundedRational(-self.num, -self.den)

    def reduce(self) -> BoundedRational:
        if self.den == 1:
            return self
        divisor = math.gcd(self.num, self.den)
        return BoundedRational(self.num // divisor, self.den // divisor)

    def compare_to(self, other: BoundedRational) -> int:
        diff = self.num * other.den - other.num * self.den
        sign = (diff > 0) - (diff < 0)
        return sign * _sign(self.den) * _sign(other.den)

    def signum(self) -> int:
        return _sign(self.num) * _sign(self.den)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundedRational):
            return NotImplemented
        return self.compare_to(other) == 0

    def __lt__(self, other: BoundedRational) -> bool:
        return self.compare_to(other) < 0

    def __le__(self, other: BoundedRational) -> bool:
        return self.compare_to(other) <= 0

    def __hash__(self) -> int:
        reduced = self.reduce().positive_den()
        return hash((reduced.num, reduced.den))

    def pow(self, exp: int) -> Optional[BoundedRational]:
        """Integer power, or None if the result would not fit.

        Huge exponents are only accepted for the bases 0, 1 and -1.
        """
        if exp == 0:
            # Matches math.pow(x, 0) == 1, even for a zero base.
            return ONE
        if exp == 1:
            return self
        reduced = self.reduce().positive_den()
        if reduced.den == 1:
            if reduced.num == 0:
                if exp < 0:
                    raise ZeroDivisionDomainError("Zero raised to a negative power")
                return ZERO
            if reduced.num == 1:
                return ONE
            if reduced.num == -1:
                return MINUS_ONE if exp & 1 else ONE
        if abs(exp).bit_length() > MAX_POW_EXPONENT_BITS:
            return None
        if exp < 0:
            return _raw_pow(inverse(reduced), -exp)
        return _raw_pow(reduced, exp)


def _sign(n: int) -> int:
    return (n > 0) - (n < 0)


def _raw_pow(base: BoundedRational, exp: int) -> Optional[BoundedRational]:
    # Right-to-left square and multiply; base has a positive, reduced denominator.
    result = ONE
    while True:
        if exp & 1:
            result = _raw_multiply(result, base)
            if result.too_big():
                return None
        exp >>= 1
        if exp == 0:
            return result
        check_cancelled()
        base = _raw_multiply(base, base)
        if base.too_big():
            return None


def maybe_reduce(r: Optional[BoundedRational]) -> Optional[BoundedRational]:
    """Occasionally reduce ``r``; return None if it stays too big."""
    if r is None:
        return None
    if not r.too_big() and _reduce_rng.getrandbits(32) & REDUCE_PROBABILITY_MASK != 0:
        return r
    result = r.positive_den().reduce()
    if result.too_big():
        return None
    return result


def as_big_integer(r: Optional[BoundedRational]) -> Optional[int]:
    if r is None:
        return None
    return r.as_big_integer()


def add(r1: Optional[BoundedRational], r2: Optional[BoundedRational]) -> Optional[BoundedRational]:
    if r1 is None or r2 is None:
        return None
    den = r1.den * r2.den
    num = r1.num * r2.den + r2.num * r1.den
    return maybe_reduce(BoundedRational(num, den))


def negate(r: Optional[BoundedRational]) -> Optional[BoundedRational]:
    if r is None:
        return None
    return BoundedRational(-r.num, r.den)


def subtract(r1: Optional[BoundedRational], r2: Optional[BoundedRational]) -> Optional[BoundedRational]:
    return add(r1, negate(r2))


def _raw_multiply(r1: Optional[BoundedRational], r2: Optional[BoundedRational]) -> Optional[BoundedRational]:
    # 0 * None stays None: the absent operand may stand for an infinite value.
    if r1 is None or r2 is None:
        return None
    if r1 is ONE:
        return r2
    if r2 is ONE:
        return r1
    return BoundedRational(r1.num * r2.num, r1.den * r2.den)


def multiply(r1: Optional[BoundedRational], r2: Optional[BoundedRational]) -> Optional[BoundedRational]:
    return maybe_reduce(_raw_multiply(r1, r2))


def inverse(r: Optional[BoundedRational]) -> Optional[BoundedRational]:
    if r is None:
        return None
    if r.num == 0:
        raise ZeroDivisionDomainError("Division by zero")
    return BoundedRational(r.den, r.num)


def divide(r1: Optional[BoundedRational], r2: Optional[BoundedRational]) -> Optional[BoundedRational]:
    return multiply(r1, inverse(r2))


def sqrt(r: Optional[BoundedRational]) -> Optional[BoundedRational]:
    """Exact square root if numerator and denominator are perfect squares, else None."""
    if r is None:
        return None
    reduced = r.positive_den().reduce()
    if reduced.num < 0:
        raise DomainError("sqrt(negative)")
    num_sqrt, num_exact = integer_nthroot(reduced.num, 2)
    if not num_exact:
        return None
    den_sqrt, den_exact = integer_nthroot(reduced.den, 2)
    if not den_exact:
        return None
    return BoundedRational(int(num_sqrt), int(den_sqrt))


def pow(base: Optional[BoundedRational], exp: Optional[BoundedRational]) -> Optional[BoundedRational]:
    """``base ** exp`` when ``exp`` reduces to an integer, else None."""
    if exp is None or base is None:
        return None
    exp = exp.reduce().positive_den()
    if exp.den != 1:
        return None
    return base.pow(exp.num)


def digits_required(r: Optional[BoundedRational]) -> int:
    """Fraction digits needed for an exact decimal expansion, or MAX_DIGITS."""
    if r is None:
        return MAX_DIGITS
    if r.den == 1:
        return 0
    den = abs(r.reduce().den)
    if den.bit_length() > MAX_RATIONAL_BITS:
        return MAX_DIGITS
    powers_of_two = multiplicity(2, den)
    powers_of_five = multiplicity(5, den)
    if den != 2**powers_of_two * 5**powers_of_five:
        return MAX_DIGITS
    return max(int(powers_of_two), int(powers_of_five))


def compare(r1: BoundedRational, r2: BoundedRational) -> int:
    return r1.compare_to(r2)


ZERO = BoundedRational(0)
HALF = BoundedRational(1, 2)
MINUS_HALF = BoundedRational(-1, 2)
THIRD = BoundedRational(1, 3)
QUARTER = BoundedRational(1, 4)
SIXTH = BoundedRational(1, 6)
ONE = BoundedRational(1)
MINUS_ONE = BoundedRational(-1)
TWO = BoundedRational(2)
MINUS_TWO = BoundedRational(-2)
TEN = BoundedRational(10)
TWELVE = BoundedRational(12)
THIRTY = BoundedRational(30)
MINUS_THIRTY = BoundedRational(-30)

_SMALL = {-2: MINUS_TWO, -1: MINUS_ONE, 0: ZERO, 1: ONE, 2: TWO, 10: TEN}
