"""Type definitions, result dataclasses and the error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class EvalResult:
    """Result of evaluating a formula."""

    ok: bool
    result: str | None = None
    exact: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result_dict: dict[str, Any] = {"ok": self.ok}
        if self.result is not None:
            result_dict["result"] = self.result
        if self.exact is not None:
            result_dict["exact"] = self.exact
        if self.error is not None:
            result_dict["error"] = self.error
        if self.error_code is not None:
            result_dict["error_code"] = self.error_code
        return result_dict

    def __repr__(self) -> str:
        """Return string representation of the result."""
        if not self.ok:
            return f"EvalResult(ok=False, error={self.error!r}, error_code={self.error_code!r})"
        parts = [f"ok={self.ok}"]
        if self.result is not None:
            parts.append(f"result={self.result!r}")
        if self.exact is not None:
            parts.append(f"exact={self.exact!r}")
        return f"EvalResult({', '.join(parts)})"


@dataclass
class FloatRep:
    """Scientific-notation rendering of a real: sign * 0.mantissa * radix^exponent."""

    sign: int
    mantissa: str
    radix: int
    exponent: int

    def to_string(self) -> str:
        sign_str = "-" if self.sign < 0 else ""
        if self.radix == 10:
            return f"{sign_str}0.{self.mantissa}E{self.exponent}"
        return f"{sign_str}0.{self.mantissa}*{self.radix}^{self.exponent}"

    def __str__(self) -> str:
        return self.to_string()


class CalculatorError(Exception):
    """Base class for errors raised by the numeric engine."""

    default_code = "CALC_ERROR"

    def __init__(self, message: str, code: str | None = None, transient: bool = False):
        self.message = message
        self.code = code or self.default_code
        self.transient = transient
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ExpressionSyntaxError(CalculatorError):
    """Raised when a token sequence cannot be parsed."""

    default_code = "SYNTAX_ERROR"


class PrecisionOverflowError(CalculatorError, ArithmeticError):
    """Raised when a derived precision would leave the safe integer range.

    Almost always signals a divergent computation, e.g. division by a
    lazily computed zero.
    """

    default_code = "PRECISION_OVERFLOW"


class CancelledError(CalculatorError):
    """Raised when a long-running approximation observes a stop request."""

    default_code = "CANCELLED"

    def __init__(self, message: str = "Evaluation cancelled", code: str | None = None):
        super().__init__(message, code, transient=True)


class DomainError(CalculatorError, ArithmeticError):
    """Raised when an argument is provably outside a function's domain."""

    default_code = "DOMAIN_ERROR"


class ZeroDivisionDomainError(DomainError, ZeroDivisionError):
    """Raised on a provable division by zero."""

    default_code = "DIVISION_BY_ZERO"


class ValidationError(CalculatorError, ValueError):
    """Raised when formula text fails validation before tokenizing."""

    default_code = "VALIDATION_ERROR"
