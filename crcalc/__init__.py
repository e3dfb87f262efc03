"""crcalc: exact and arbitrary-precision calculator engine built on constructive reals."""

__all__ = [
    "config",
    "logging_config",
    "types",
    "cancellation",
    "bounded_rational",
    "cr",
    "unary_function",
    "unified_real",
    "expr",
    "parser",
    "worker",
    "api",
    "cli",
]

# Public API exports

__api_exports__ = [
    "evaluate",
    "to_string_truncated",
    "cancel",
    "reset",
]
