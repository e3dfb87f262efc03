"""Evaluation with a deadline, and the in-memory expression history.

The numeric engine has no timeout of its own. Here each evaluation runs
in a daemon thread inside its own cancellation scope; when the deadline
passes the scope's token is cancelled and the thread stops at its next
cancellation check.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from .cancellation import CancellationToken, cancellation_scope, check_cancelled
from .config import DEFAULT_DIGITS, EVAL_TIMEOUT, MAX_DIGITS_REQUEST
from .expr import CalculatorExpr
from .logging_config import get_logger, safe_log
from .parser import tokenize
from .types import CalculatorError, PrecisionOverflowError
from .unified_real import UnifiedReal

logger = get_logger("worker")


class History:
    """Thread-safe list of expressions and their results, indexed from 1."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._exprs: list[CalculatorExpr] = []
        self._results: list[Optional[UnifiedReal]] = []
        self._degree_modes: list[bool] = []

    def add(self, expr: CalculatorExpr, degree_mode: bool = False) -> int:
        """Append an expression; return its index."""
        with self._lock:
            self._exprs.append(expr)
            self._results.append(None)
            self._degree_modes.append(degree_mode)
            return len(self._exprs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._exprs)

    def _check_index(self, index: int) -> int:
        if not 1 <= index <= len(self._exprs):
            raise CalculatorError(f"No expression with index {index}", "BAD_REFERENCE")
        return index - 1

    def get_expr(self, index: int) -> CalculatorExpr:
        with self._lock:
            return self._exprs[self._check_index(index)]

    def get_result(self, index: int) -> Optional[UnifiedReal]:
        with self._lock:
            if not 1 <= index <= len(self._results):
                return None
            return self._results[index - 1]

    def put_result_if_absent(self, index: int, value: UnifiedReal) -> UnifiedReal:
        with self._lock:
            i = self._check_index(index)
            if self._results[i] is None:
                self._results[i] = value
            return self._results[i]

    def get_degree_mode(self, index: int) -> bool:
        with self._lock:
            return self._degree_modes[self._check_index(index)]


def format_result(value: UnifiedReal, digits: int = DEFAULT_DIGITS) -> str:
    """Decimal rendering: exact if at most ``digits`` fraction digits suffice, else truncated."""
    needed = value.digits_required()
    return value.to_string_truncated(min(needed, digits)).rstrip(".")


def render(value: UnifiedReal, digits: int = DEFAULT_DIGITS, radix: int = 10, scientific: bool = False) -> str:
    if scientific:
        return value.cr_value().to_string_float_rep(max(digits, 1), radix).to_string()
    if radix != 10:
        return value.cr_value().to_string(digits, radix)
    return format_result(value, digits)


def _error(message: str, code: str) -> dict[str, Any]:
    return {"ok": False, "error": message, "error_code": code}


def _run_with_timeout(func: Callable[[], Any], timeout: float) -> dict[str, Any]:
    token = CancellationToken()
    outcome: dict[str, Any] = {}

    def run() -> None:
        with cancellation_scope(token):
            try:
                outcome["value"] = func()
            except CalculatorError as e:
                outcome["error"] = e
            except RecursionError:
                outcome["error"] = CalculatorError("Expression nested too deeply", "RECURSION_LIMIT")
            except Exception as e:
                logger.exception("Unexpected error during evaluation")
                outcome["error"] = CalculatorError(f"Internal error: {e}", "INTERNAL_ERROR")

    thread = threading.Thread(target=run, name="crcalc-eval", daemon=True)
    thread.start()
    try:
        thread.join(timeout)
    except KeyboardInterrupt:
        # Stop the abandoned thread at its next check.
        token.cancel()
        raise
    if thread.is_alive():
        token.cancel()
        logger.debug(f"Evaluation exceeded {timeout}s; cancelling")
        return _error(f"Evaluation timed out after {timeout:g}s", "TIMEOUT")
    if "error" in outcome:
        e = outcome["error"]
        if isinstance(e, PrecisionOverflowError):
            safe_log("worker", "warning", "Precision overflow: %s", e.message)
        return _error(e.message, e.code)
    if "value" not in outcome:
        return _error("Evaluation finished without a result", "INTERNAL_ERROR")
    return {"ok": True, "value": outcome["value"]}


def evaluate_with_timeout(
    expr: CalculatorExpr,
    degree_mode: bool = False,
    resolver: Optional[History] = None,
    timeout: float = EVAL_TIMEOUT,
    index: Optional[int] = None,
) -> dict[str, Any]:
    """Evaluate ``expr`` in a daemon thread with a deadline.

    Returns:
        ``{"ok": True, "value": UnifiedReal}`` on success, otherwise a dict
        with ``ok=False``, ``error`` and ``error_code`` (``TIMEOUT`` when
        the deadline passed)
    """
    return _run_with_timeout(lambda: expr.eval(degree_mode, resolver, index), timeout)


def evaluate_safely(
    text: str,
    digits: int = DEFAULT_DIGITS,
    degree_mode: bool = False,
    history: Optional[History] = None,
    timeout: float = EVAL_TIMEOUT,
    radix: int = 10,
    scientific: bool = False,
) -> dict[str, Any]:
    """Tokenize, evaluate and render formula text.

    Rendering runs under the same deadline as evaluation. A radix other
    than 10, or scientific notation, renders the constructive value with
    ``digits`` digits rounded in the last place. When ``history``
    is given, an expression that evaluates and renders successfully is
    recorded in it, so later input can refer to it as ``$N``. Failed or
    timed-out input takes no index.

    Returns:
        Dict with ``ok``, and ``result``/``exact``/``index`` or ``error``/``error_code``
    """
    if not 0 <= digits <= MAX_DIGITS_REQUEST:
        return _error(f"digits must be between 0 and {MAX_DIGITS_REQUEST}", "VALIDATION_ERROR")
    try:
        expr = tokenize(text)
    except CalculatorError as e:
        return _error(e.message, e.code)

    def evaluate_and_render() -> dict[str, Any]:
        value = expr.eval(degree_mode, history)
        data: dict[str, Any] = {"ok": True, "result": render(value, digits, radix, scientific)}
        if value.exactly_displayable():
            data["exact"] = value.to_nice_string()
        if history is not None:
            # A caller that timed out has already reported failure.
            check_cancelled()
            index = history.add(expr, degree_mode)
            history.put_result_if_absent(index, value)
            data["index"] = index
        return data

    outcome = _run_with_timeout(evaluate_and_render, timeout)
    if not outcome["ok"]:
        return outcome
    return outcome["value"]
