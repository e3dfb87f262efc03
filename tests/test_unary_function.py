"""Tests for functions on constructive reals."""

import pytest
import sympy

from crcalc import unary_function as uf
from crcalc.bounded_rational import BoundedRational
from crcalc.cr import CR
from crcalc.types import DomainError


def _assert_close(x, expr, digits):
    ref = int(sympy.floor(expr * sympy.Integer(10) ** digits))
    scaled = x.multiply(CR.value_of(10**digits)).approx_get(0)
    assert ref - 1 <= scaled <= ref + 1


class TestElementaryFunctions:
    """Wrapped CR operations."""

    def test_execute_and_call(self):
        two = CR.value_of(2)
        _assert_close(uf.SQRT.execute(two), sympy.sqrt(2), 40)
        _assert_close(uf.LN(two), sympy.log(2), 40)
        assert uf.IDENTITY(two) is two
        assert uf.ABS(CR.value_of(-3)).approx_get(0) == 3

    def test_tan(self):
        _assert_close(uf.TAN(CR.value_of(1)), sympy.tan(1), 40)

    def test_atan(self):
        """atan keeps the sign of its argument."""
        _assert_close(uf.ATAN(CR.value_of(1)), sympy.pi / 4, 40)
        _assert_close(uf.ATAN(CR.value_of(-3)), sympy.atan(-3), 40)
        _assert_close(uf.ATAN(CR.value_of(BoundedRational(1, 10))), sympy.atan(sympy.Rational(1, 10)), 40)

    def test_compose(self):
        minus_exp = uf.NEGATE.compose(uf.EXP)
        _assert_close(minus_exp(CR.value_of(1)), -sympy.E, 40)
        inv_cos = uf.INVERSE.compose(uf.COS)
        _assert_close(inv_cos(CR.value_of(1)), 1 / sympy.cos(1), 40)


class TestInverseMonotone:
    """Inverse of a function monotone on an interval."""

    def test_inverse_of_exp_is_ln(self):
        ln = uf.EXP.inverse_monotone(CR.value_of(0), CR.value_of(5))
        _assert_close(ln(CR.value_of(2)), sympy.log(2), 30)
        _assert_close(ln(CR.value_of(100)), sympy.log(100), 30)

    def test_inverse_of_decreasing_function(self):
        """1/x is decreasing on [1, 4]; its inverse is 1/x again."""
        inv = uf.INVERSE.inverse_monotone(CR.value_of(1), CR.value_of(4))
        _assert_close(inv(CR.value_of(BoundedRational(1, 3))), sympy.Integer(3), 25)

    def test_inverse_of_sin_is_asin(self):
        half_pi = CR.value_of(BoundedRational(3, 2))
        asin = uf.SIN.inverse_monotone(half_pi.negate(), half_pi)
        _assert_close(asin(CR.value_of(BoundedRational(1, 3))), sympy.asin(sympy.Rational(1, 3)), 30)

    def test_argument_out_of_range(self):
        ln = uf.EXP.inverse_monotone(CR.value_of(0), CR.value_of(5))
        with pytest.raises(DomainError):
            ln(CR.value_of(1000)).approx_get(-10)


class TestMonotoneDerivative:
    """Derivative of a function monotone on an interval."""

    def test_derivative_of_sin_is_cos(self):
        cos = uf.SIN.monotone_derivative(CR.value_of(-1), CR.value_of(1))
        _assert_close(cos(CR.value_of(BoundedRational(1, 2))), sympy.cos(sympy.Rational(1, 2)), 25)

    def test_derivative_of_exp(self):
        d_exp = uf.EXP.monotone_derivative(CR.value_of(0), CR.value_of(2))
        _assert_close(d_exp(CR.value_of(1)), sympy.E, 25)

    def test_derivative_of_linear_function(self):
        """A vanishing second difference still yields the slope."""
        d_neg = uf.NEGATE.monotone_derivative(CR.value_of(0), CR.value_of(1))
        _assert_close(d_neg(CR.value_of(BoundedRational(1, 2))), sympy.Integer(-1), 20)

    def test_argument_outside_interval(self):
        d_exp = uf.EXP.monotone_derivative(CR.value_of(0), CR.value_of(2))
        with pytest.raises(DomainError):
            d_exp(CR.value_of(3))
