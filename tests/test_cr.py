"""Tests for constructive reals, checked against SymPy at high precision."""

import threading
from fractions import Fraction

import pytest
import sympy

from crcalc import cr as crmod
from crcalc.bounded_rational import BoundedRational
from crcalc.cr import CR, check_prec
from crcalc.types import DomainError, PrecisionOverflowError


def _reference(expr, digits):
    """floor(expr * 10**digits) computed by SymPy."""
    return int(sympy.floor(expr * sympy.Integer(10) ** digits))


def _scaled(x, digits):
    return x.multiply(CR.value_of(10**digits)).approx_get(0)


def _assert_close(x, expr, digits):
    """Scaled approximation lies within one unit of SymPy's floor."""
    ref = _reference(expr, digits)
    assert ref - 1 <= _scaled(x, digits) <= ref + 1


class TestApproximationContract:
    """approx_get(p) is within one unit in the last place."""

    @pytest.mark.parametrize(
        "build, exact",
        [
            (lambda: CR.value_of(1).divide(CR.value_of(3)), Fraction(1, 3)),
            (lambda: CR.value_of(-7).divide(CR.value_of(5)), Fraction(-7, 5)),
            (lambda: CR.value_of(2).add(CR.value_of(1).divide(CR.value_of(7))), Fraction(15, 7)),
            (lambda: CR.value_of(BoundedRational(22, 7)).multiply(CR.value_of(-3)), Fraction(-66, 7)),
            (lambda: CR.value_of(1).shift_right(10).subtract(CR.value_of(5)), Fraction(1, 1024) - 5),
            (lambda: CR.value_of(0.375).negate(), Fraction(-3, 8)),
        ],
    )
    def test_rational_expressions(self, build, exact):
        for p in range(-64, 65, 4):
            # Fresh node per precision, so no cached value is reused.
            appr = build().approx_get(p)
            assert abs(Fraction(appr) - exact / Fraction(2) ** p) < 1

    def test_cached_value_is_consistent(self):
        """A coarser request after a finer one is derived from the cache."""
        x = CR.value_of(1).divide(CR.value_of(3))
        fine = x.approx_get(-100)
        assert x.min_prec == -100
        coarse = x.approx_get(-10)
        assert abs(Fraction(coarse) - Fraction(1, 3) * 1024) < 1
        assert x.approx_get(-100) == fine

    def test_slow_nodes_evaluate_on_grid(self):
        """Expensive nodes round requested precisions to a coarse grid."""
        pi = crmod.CR(crmod.Kind.GL_PI, slow=True)
        pi.approx_get(-10)
        assert pi.min_prec == -64
        pi.approx_get(-70)
        assert pi.min_prec % 32 == 0
        assert pi.min_prec <= -70


class TestPrecisionGuard:
    """Divergent precisions raise instead of looping forever."""

    def test_check_prec(self):
        check_prec(-1000)
        check_prec(1000)
        with pytest.raises(PrecisionOverflowError):
            check_prec(1 << 30)
        with pytest.raises(PrecisionOverflowError):
            check_prec(-(1 << 30))

    def test_inverse_of_zero_overflows(self):
        """Dividing by a lazily computed zero ends in PrecisionOverflowError."""
        with pytest.raises(PrecisionOverflowError):
            CR.value_of(0).inverse().approx_get(0)

    def test_shift_overflow(self):
        with pytest.raises(PrecisionOverflowError):
            CR.value_of(1).shift_left(1 << 30)


class TestConstants:
    """pi, ln 2 and friends against SymPy."""

    def test_pi_digits(self):
        _assert_close(crmod.PI, sympy.pi, 200)

    def test_pi_agrees_with_machin(self):
        """Gauss-Legendre and Machin's formula agree to 1000 bits."""
        assert crmod.PI.compare_to_abs(crmod.ATAN_PI, -1000) == 0

    def test_ln2(self):
        _assert_close(crmod.LN2, sympy.log(2), 100)

    def test_half_pi(self):
        _assert_close(crmod.HALF_PI, sympy.pi / 2, 50)


class TestFunctions:
    """Transcendental functions against SymPy."""

    def test_sqrt(self):
        _assert_close(CR.value_of(2).sqrt(), sympy.sqrt(2), 100)
        _assert_close(CR.value_of(BoundedRational(1, 3)).sqrt(), sympy.sqrt(sympy.Rational(1, 3)), 60)

    def test_sqrt_negative(self):
        with pytest.raises(DomainError):
            CR.value_of(-2).sqrt().approx_get(-10)

    def test_exp(self):
        _assert_close(CR.value_of(1).exp(), sympy.E, 100)
        _assert_close(CR.value_of(-5).exp(), sympy.exp(-5), 60)
        _assert_close(CR.value_of(10).exp(), sympy.exp(10), 40)

    def test_ln(self):
        _assert_close(CR.value_of(10).ln(), sympy.log(10), 80)
        _assert_close(CR.value_of(BoundedRational(1, 7)).ln(), sympy.log(sympy.Rational(1, 7)), 60)
        _assert_close(CR.value_of(1000).ln(), sympy.log(1000), 60)

    def test_ln_negative(self):
        with pytest.raises(DomainError):
            CR.value_of(-3).ln()

    def test_sin_cos(self):
        _assert_close(CR.value_of(1).sin(), sympy.sin(1), 60)
        _assert_close(CR.value_of(1).cos(), sympy.cos(1), 60)
        _assert_close(CR.value_of(100).sin(), sympy.sin(100), 40)
        _assert_close(CR.value_of(-3).cos(), sympy.cos(-3), 40)

    def test_asin_acos(self):
        half = CR.value_of(BoundedRational(1, 2))
        _assert_close(half.asin(), sympy.pi / 6, 60)
        _assert_close(CR.value_of(BoundedRational(9, 10)).asin(), sympy.asin(sympy.Rational(9, 10)), 50)
        _assert_close(CR.value_of(BoundedRational(-1, 3)).acos(), sympy.acos(sympy.Rational(-1, 3)), 50)

    def test_atan_reciprocal(self):
        _assert_close(CR.atan_reciprocal(5), sympy.atan(sympy.Rational(1, 5)), 60)

    def test_select_max_min_abs(self):
        a = CR.value_of(BoundedRational(-3, 2))
        b = CR.value_of(2)
        assert a.max(b).approx_get(0) == 2
        assert a.min(b).approx_get(-1) == -3
        assert a.abs().approx_get(-1) == 3


class TestComparison:
    """Exact and tolerance-based comparisons."""

    def test_compare_to_exact(self):
        third = CR.value_of(1).divide(CR.value_of(3))
        assert third.compare_to_exact(CR.value_of(BoundedRational(333, 1000))) == 1
        assert crmod.PI.compare_to_exact(CR.value_of(BoundedRational(22, 7))) == -1

    def test_compare_with_tolerance(self):
        x = CR.value_of(1)
        y = CR.value_of(1).add(CR.value_of(1).shift_right(200))
        assert x.compare_to_abs(y, -100) == 0
        assert x.compare_to_abs(y, -300) == -1
        assert x.compare_to(y, -10, -100) == 0

    def test_signum(self):
        assert CR.value_of(-1).shift_right(80).signum() == -1
        assert CR.value_of(0).signum_at(-50) == 0

    def test_msd(self):
        assert CR.value_of(8).msd() == 3
        assert CR.value_of(0).msd(-40) == crmod.NO_MSD


class TestConversion:
    """Strings, FloatRep and numeric conversions."""

    def test_to_string(self):
        assert CR.value_of(BoundedRational(1, 4)).to_string(3) == "0.250"
        assert CR.value_of(-12).to_string(0) == "-12"
        sqrt2 = CR.value_of(2).sqrt().to_string(10)
        assert sqrt2 in ("1.4142135623", "1.4142135624")

    def test_to_string_radix(self):
        assert CR.value_of(255).to_string(0, 16) == "ff"
        assert CR.value_of(BoundedRational(1, 2)).to_string(3, 2) == "0.100"
        assert CR.value_of(BoundedRational(5, 16)).to_string(2, 16) == "0.50"

    def test_from_string(self):
        assert CR.from_string("12.5").approx_get(-1) == 25
        assert CR.from_string("ff", 16).approx_get(0) == 255

    def test_float_rep(self):
        rep = CR.value_of(12345).to_string_float_rep(3)
        assert rep.sign == 1
        assert rep.exponent == 5
        assert rep.mantissa in ("123", "124")
        assert rep.to_string() == f"0.{rep.mantissa}E5"
        assert CR.value_of(0).to_string_float_rep(5).sign == 0

    def test_float_rep_negative_small(self):
        rep = CR.value_of(BoundedRational(-3, 1000)).to_string_float_rep(2)
        assert rep.sign == -1
        assert rep.exponent == -2
        assert rep.mantissa in ("29", "30")

    def test_float_rep_bad_precision(self):
        with pytest.raises(DomainError):
            CR.value_of(1).to_string_float_rep(0)

    def test_double_value(self):
        assert float(CR.value_of(1).divide(CR.value_of(4))) == 0.25
        assert CR.value_of(2).sqrt().double_value() == pytest.approx(2**0.5, rel=1e-15)
        assert CR.value_of(0).double_value() == 0.0
        assert int(CR.value_of(BoundedRational(7, 2)).add(CR.value_of(BoundedRational(1, 10)))) in (3, 4)


def _shared_tree():
    return CR.value_of(3).sqrt().multiply(CR.value_of(2).exp()).add(CR.value_of(5).ln())


class TestConcurrentReaders:
    """One node read from many threads at once."""

    PRECISIONS = [-50, -4000, -200, -2500, -1000, -120, -3000, -640]

    def test_shared_subexpression(self):
        shared = _shared_tree()
        other = CR.value_of(14)
        expected = {p: _shared_tree().approx_get(p) for p in self.PRECISIONS}
        expected_msd = _shared_tree().msd(-10)
        barrier = threading.Barrier(len(self.PRECISIONS))
        results = {}
        errors = []

        def worker(p):
            try:
                barrier.wait(10)
                derived = shared.multiply(CR.value_of(2))
                results[p] = (
                    shared.approx_get(p),
                    shared.msd(-10),
                    shared.known_msd(),
                    shared.compare_to(other, -100),
                    shared.signum(),
                    derived.approx_get(p + 1),
                )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(p,)) for p in self.PRECISIONS]
        for t in threads:
            t.start()
        for t in threads:
            t.join(120)
        assert not errors
        assert sorted(results) == sorted(self.PRECISIONS)
        for p, (appr, msd, known_msd, cmp, sign, doubled) in results.items():
            # Two valid approximations at one precision differ by at most 1.
            assert abs(appr - expected[p]) <= 1
            assert abs(msd - expected_msd) <= 1
            assert abs(known_msd - expected_msd) <= 1
            assert cmp == 1
            assert sign == 1
            assert abs(doubled - expected[p]) <= 1
        # sqrt(3) e^2 + ln 5 = 14.40765...
        assert shared.compare_to(CR.value_of(BoundedRational(14407, 1000)), -20) == 1
        assert shared.compare_to(CR.value_of(BoundedRational(14408, 1000)), -20) == -1

    def test_cache_readers_wait_for_writer(self):
        """msd, known_msd and signum_at do not read a half-written cache."""
        node = CR.value_of(3).sqrt()
        node.approx_get(-100)
        for read in (node.known_msd, lambda: node.msd(-10), lambda: node.signum_at(-10)):
            done = threading.Event()
            reader = threading.Thread(target=lambda: (read(), done.set()))
            with node._lock:
                reader.start()
                assert not done.wait(0.2)
            assert done.wait(10)
            reader.join(10)
