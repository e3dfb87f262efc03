"""Public API for crcalc - returns structured objects without side effects."""

from __future__ import annotations

from .cancellation import clear_stop, request_stop
from .config import DEFAULT_DIGITS, EVAL_TIMEOUT, MAX_DIGITS_REQUEST
from .types import EvalResult, ValidationError
from .unified_real import UnifiedReal
from .worker import History, evaluate_safely, format_result


def evaluate(
    text: str,
    digits: int = DEFAULT_DIGITS,
    degree_mode: bool = False,
    history: History | None = None,
    timeout: float = EVAL_TIMEOUT,
) -> EvalResult:
    """Evaluate a formula.

    Args:
        text: Formula text (e.g., "2+3*4", "sqrt(2)", "100+10%")
        digits: Maximum number of digits after the decimal point
        degree_mode: Interpret trig arguments and results in degrees
        history: Optional history; enables ``$N`` references
        timeout: Deadline in seconds

    Returns:
        EvalResult with the decimal result and, when known, an exact form

    Example:
        >>> from crcalc.api import evaluate
        >>> evaluate("1/3", digits=5).result
        '0.33333'
        >>> evaluate("sqrt(8)").exact
        '2√2'
    """
    if not 0 <= digits <= MAX_DIGITS_REQUEST:
        return EvalResult(
            ok=False,
            error=f"digits must be between 0 and {MAX_DIGITS_REQUEST}",
            error_code="VALIDATION_ERROR",
        )
    data = evaluate_safely(text, digits, degree_mode, history, timeout)
    if not data.get("ok"):
        return EvalResult(
            ok=False,
            error=data.get("error") or "Unknown error",
            error_code=data.get("error_code"),
        )
    return EvalResult(ok=True, result=data.get("result"), exact=data.get("exact"))


def to_string_truncated(value: UnifiedReal, digits: int = DEFAULT_DIGITS) -> str:
    """Render ``value`` with at most ``digits`` fraction digits, truncating toward zero."""
    if digits < 0:
        raise ValidationError("digits must be non-negative")
    return format_result(value, digits)


def cancel() -> None:
    """Stop every in-flight evaluation. Call reset() before evaluating again."""
    request_stop()


def reset() -> None:
    """Allow evaluations again after cancel()."""
    clear_stop()
