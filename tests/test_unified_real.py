"""Tests for exact-where-possible real arithmetic."""

import sys
import unittest

import sympy

from crcalc import unified_real as ur
from crcalc.bounded_rational import BoundedRational
from crcalc.cr import CR
from crcalc.types import DomainError, ZeroDivisionDomainError
from crcalc.unified_real import UnifiedReal


def _digits(u, n):
    """Truncated decimal digits of u, as an integer scaled by 10**n."""
    return int(u.to_string_truncated(n).replace(".", ""))


def _reference(expr, n):
    return int(sympy.floor(expr * sympy.Integer(10) ** n))


class TestExactArithmetic(unittest.TestCase):
    """Results that stay exact."""

    def test_rational_arithmetic(self):
        third = UnifiedReal(1) / 3
        self.assertEqual((third + third + third).to_nice_string(), "1")
        self.assertEqual((UnifiedReal(2) - third).to_nice_string(), "5/3")
        self.assertEqual((-third).to_nice_string(), "-1/3")
        self.assertEqual((2 * third).to_nice_string(), "2/3")
        self.assertEqual((1 / third).to_nice_string(), "3")

    def test_factorial(self):
        self.assertEqual(UnifiedReal(15).fact().big_integer_value(), 1307674368000)
        self.assertEqual(UnifiedReal(0).fact().big_integer_value(), 1)
        self.assertEqual(UnifiedReal(100).fact().big_integer_value(), int(sympy.factorial(100)))

    def test_factorial_errors(self):
        with self.assertRaises(DomainError):
            UnifiedReal(-1).fact()
        with self.assertRaises(DomainError):
            UnifiedReal(BoundedRational(5, 2)).fact()
        with self.assertRaises(DomainError):
            UnifiedReal(1 << 21).fact()

    def test_sqrt_extracts_squares(self):
        self.assertEqual(UnifiedReal(32).sqrt().to_nice_string(), "4√2")
        self.assertEqual(UnifiedReal(BoundedRational(9, 4)).sqrt().to_nice_string(), "3/2")
        self.assertEqual(UnifiedReal(12).sqrt().to_nice_string(), "2√3")
        self.assertEqual(UnifiedReal(2).sqrt().to_nice_string(), "√2")

    def test_sqrt_products(self):
        """√2 · √2 is exactly 2 and 1/√2 stays a multiple of √2."""
        root2 = UnifiedReal(2).sqrt()
        self.assertTrue((root2 * root2).definitely_equals(ur.TWO))
        self.assertEqual(root2.inverse().to_nice_string(), "(1/2)√2")
        self.assertEqual((root2 ** 3).to_nice_string(), "2√2")

    def test_sqrt_negative(self):
        with self.assertRaises(DomainError):
            UnifiedReal(-4).sqrt()

    def test_division_by_zero(self):
        with self.assertRaises(ZeroDivisionDomainError):
            UnifiedReal(1) / 0
        with self.assertRaises(ZeroDivisionDomainError):
            ur.ZERO.inverse()

    def test_integer_logs(self):
        """ln(32)/ln(2) is exactly 5."""
        ratio = UnifiedReal(32).ln() / UnifiedReal(2).ln()
        self.assertTrue(ratio.definitely_rational())
        self.assertEqual(ratio.to_nice_string(), "5")
        self.assertEqual(UnifiedReal(1000).ln().to_nice_string(), "3ln(10)")
        self.assertEqual(UnifiedReal(BoundedRational(1, 9)).ln().to_nice_string(), "-2ln(3)")
        self.assertTrue(ur.ONE.ln().definitely_zero())

    def test_ln_non_positive(self):
        with self.assertRaises(DomainError):
            ur.ZERO.ln()
        with self.assertRaises(DomainError):
            ur.MINUS_ONE.ln()

    def test_exp_of_log(self):
        self.assertEqual(UnifiedReal(BoundedRational(3), ur.CR_LN2).exp().to_nice_string(), "8")
        self.assertTrue(ur.ZERO.exp().definitely_one())
        self.assertIs(ur.ONE.exp(), ur.E)
        self.assertEqual(ur.E.ln().to_nice_string(), "1")

    def test_pow(self):
        self.assertEqual((UnifiedReal(2) ** 10).to_nice_string(), "1024")
        self.assertEqual(UnifiedReal(4).pow(ur.HALF).to_nice_string(), "2")
        self.assertEqual(UnifiedReal(2).pow(ur.MINUS_HALF).to_nice_string(), "(1/2)√2")
        self.assertTrue(ur.TEN.pow(UnifiedReal(0)).definitely_one())

    def test_pow_negative_base(self):
        self.assertEqual((UnifiedReal(-2) ** 3).to_nice_string(), "-8")
        with self.assertRaises(DomainError):
            UnifiedReal(-2).pow(UnifiedReal(BoundedRational(1, 3)))

    def test_huge_pow_falls_back(self):
        """Exponents beyond the rational limit are computed lazily."""
        big = UnifiedReal(BoundedRational(3, 2)).pow_int(20000)
        self.assertFalse(big.definitely_rational())
        self.assertGreater(big.signum(-10), 0)
        tiny = UnifiedReal(BoundedRational(1, 2)).pow_int(20000)
        self.assertEqual(tiny.compare_to(ur.ZERO, -100), 0)


class TestTrigonometry(unittest.TestCase):
    """Exact trig values at multiples of pi/12."""

    def test_pi_twelfths(self):
        self.assertEqual(ur.PI_OVER_6.pi_twelfths, 2)
        self.assertEqual((ur.PI * 3).pi_twelfths, 12)
        self.assertEqual(ur.PI.negate().pi_twelfths, 12)
        self.assertIsNone(ur.E.pi_twelfths)

    def test_exact_sin_cos(self):
        self.assertEqual(ur.PI_OVER_6.sin().to_nice_string(), "1/2")
        self.assertEqual(ur.PI_OVER_4.cos().to_nice_string(), "(1/2)√2")
        self.assertEqual(ur.PI_OVER_3.sin().to_nice_string(), "(1/2)√3")
        self.assertEqual(ur.PI.cos().to_nice_string(), "-1")
        self.assertEqual(ur.PI_OVER_2.sin().to_nice_string(), "1")
        self.assertTrue(ur.PI.sin().definitely_zero())

    def test_exact_tan(self):
        self.assertEqual(ur.PI_OVER_4.tan().to_nice_string(), "1")
        self.assertEqual(ur.PI_OVER_6.tan().to_nice_string(), "(1/3)√3")
        with self.assertRaises(DomainError):
            ur.PI_OVER_2.tan()
        with self.assertRaises(DomainError):
            (ur.PI * 3 / 2).tan()

    def test_inexact_trig(self):
        self.assertEqual(_digits(ur.ONE.sin(), 30) // 10, _reference(sympy.sin(1), 29))
        self.assertEqual(_digits(ur.ONE.tan(), 30) // 10, _reference(sympy.tan(1), 29))

    def test_inverse_trig(self):
        self.assertEqual(ur.HALF.asin().to_nice_string(), "(1/6)π")
        self.assertEqual(ur.MINUS_ONE.asin().to_nice_string(), "(-1/2)π")
        self.assertEqual(ur.HALF_SQRT2.asin().to_nice_string(), "(1/4)π")
        self.assertEqual(ur.HALF_SQRT3.negate().asin().to_nice_string(), "(-1/3)π")
        self.assertEqual(ur.ZERO.acos().to_nice_string(), "(1/2)π")
        self.assertEqual(ur.ONE.atan().to_nice_string(), "(1/4)π")
        self.assertEqual(ur.SQRT3.atan().to_nice_string(), "(1/3)π")
        self.assertEqual(ur.MINUS_ONE.atan().to_nice_string(), "(-1/4)π")

    def test_asin_domain(self):
        with self.assertRaises(DomainError):
            ur.TWO.asin()
        with self.assertRaises(DomainError):
            ur.MINUS_TWO.acos()

    def test_asin_halves(self):
        self.assertIs(ur.asin_halves(1), ur.PI_OVER_6)
        self.assertIs(ur.asin_halves(2), ur.PI_OVER_2)
        with self.assertRaises(DomainError):
            ur.asin_halves(3)


class TestRendering(unittest.TestCase):
    """Strings, digit counts and leading zeroes."""

    def test_truncated_irrational(self):
        self.assertEqual(ur.PI.to_string_truncated(10), "3.1415926535")
        self.assertEqual(ur.PI.negate().to_string_truncated(5), "-3.14159")
        self.assertEqual(UnifiedReal(2).sqrt().to_string_truncated(20), "1.41421356237309504880")
        self.assertEqual(_digits(ur.E, 100), _reference(sympy.E, 100))

    def test_truncated_rational(self):
        self.assertEqual((UnifiedReal(1) / 3).to_string_truncated(5), "0.33333")
        self.assertEqual(UnifiedReal(BoundedRational(-1, 8)).to_string_truncated(2), "-0.12")

    def test_digits_required(self):
        self.assertEqual(UnifiedReal(BoundedRational(3, 8)).digits_required(), 3)
        self.assertEqual(ur.PI.digits_required(), sys.maxsize)

    def test_leading_binary_zeroes(self):
        tiny = UnifiedReal(BoundedRational(1, 10**1000))
        zeroes = tiny.leading_binary_zeroes()
        self.assertGreaterEqual(zeroes, 3320)
        self.assertLess(zeroes, 4000)
        self.assertEqual(UnifiedReal(100).leading_binary_zeroes(), 0)
        self.assertEqual(UnifiedReal(CR.value_of(5).exp()).leading_binary_zeroes(), sys.maxsize)

    def test_nice_string_of_unnamed_value(self):
        """A value with no exact form renders its digits."""
        value = UnifiedReal(CR.value_of(5).exp())
        self.assertFalse(value.exactly_displayable())
        self.assertTrue(value.to_nice_string().startswith("148.41315910"))

    def test_raw_string(self):
        self.assertEqual(str(UnifiedReal(BoundedRational(1, 2))).split("*")[0], "1/2")


class TestComparison(unittest.TestCase):
    """Equality and ordering."""

    def test_definitely_equals(self):
        self.assertTrue(ur.PI_OVER_2.definitely_equals(ur.PI / 2))
        self.assertTrue((UnifiedReal(6) / 4).definitely_equals(UnifiedReal(BoundedRational(3, 2))))

    def test_definitely_not_equals(self):
        self.assertTrue(ur.HALF_SQRT2.definitely_not_equals(ur.HALF))
        self.assertTrue(ur.PI.definitely_not_equals(UnifiedReal(3)))
        self.assertTrue(ur.PI.definitely_not_equals(UnifiedReal(BoundedRational(22, 7))))
        self.assertFalse(ur.PI.definitely_not_equals(ur.PI))

    def test_compare_to(self):
        self.assertEqual(ur.PI.compare_to(ur.E), 1)
        self.assertEqual(ur.E.compare_to(UnifiedReal(3)), -1)
        self.assertEqual(ur.HALF.compare_to(ur.HALF), 0)

    def test_approx_equals_unnamed(self):
        """Values that cannot be compared exactly use the tolerance."""
        a = UnifiedReal(CR.value_of(2).sqrt().multiply(CR.value_of(3).sqrt()))
        b = UnifiedReal(CR.value_of(6).sqrt())
        self.assertTrue(a.approx_equals(b, -200))

    def test_classification(self):
        self.assertTrue(ur.HALF_SQRT2.definitely_irrational())
        self.assertTrue(ur.HALF_SQRT2.definitely_algebraic())
        self.assertTrue(ur.PI.definitely_transcendental())
        self.assertFalse(UnifiedReal(CR.value_of(2).exp()).definitely_irrational())
        self.assertTrue(ur.PI.exactly_truncatable())
