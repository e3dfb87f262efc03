"""Centralized configuration for crcalc.

This module defines:
- Size limits for exact rational arithmetic
- Precision grid used by expensive constructive-real nodes
- Comparison tolerances used by "definitely" predicates
- Evaluation deadlines and rendering defaults
- Regex patterns for parsing formula text

Configuration can be overridden via:
- CLI flags (see cli.py)
- Environment variables (prefixed with CRCALC_)
"""

import os
import re
import sys

try:
    import importlib.metadata

    VERSION = importlib.metadata.version("crcalc")
except Exception:
    # Fallback if package not installed
    VERSION = "1.0.0"

# Results run to MAX_DIGITS_REQUEST digits, past the default 4300-digit int/str limit
if hasattr(sys, "set_int_max_str_digits"):
    sys.set_int_max_str_digits(0)

# Exact rational limits
MAX_RATIONAL_BITS = int(
    os.getenv("CRCALC_MAX_RATIONAL_BITS", "10000")
)  # combined numerator + denominator bit length
MAX_POW_EXPONENT_BITS = int(
    os.getenv("CRCALC_MAX_POW_EXPONENT_BITS", "1000")
)  # larger integer exponents yield an absent result
REDUCE_PROBABILITY_MASK = int(
    os.getenv("CRCALC_REDUCE_MASK", "15")
)  # reduce to lowest terms when random bits & mask == 0

# Grid used by nodes whose recomputation is expensive
SLOW_CR_MAX_PREC = -64
SLOW_CR_PREC_INCR = 32

# Bit length beyond which a precision value is considered divergent
PRECISION_GUARD_SHIFT = 28

# Comparison tolerance (binary digits right of the point)
DEFAULT_COMPARE_TOLERANCE = int(os.getenv("CRCALC_COMPARE_TOLERANCE", "-1000"))

# Evaluation and rendering
EVAL_TIMEOUT = float(os.getenv("CRCALC_EVAL_TIMEOUT", "15"))  # seconds
DEFAULT_DIGITS = int(os.getenv("CRCALC_DEFAULT_DIGITS", "20"))
MAX_DIGITS_REQUEST = int(os.getenv("CRCALC_MAX_DIGITS_REQUEST", "100000"))

# Input validation limits
MAX_INPUT_LENGTH = int(os.getenv("CRCALC_MAX_INPUT_LENGTH", "10000"))  # characters

LOG_LEVEL = os.getenv("CRCALC_LOG_LEVEL", "WARNING")

NUMBER_RE = re.compile(r"(\d+\.?\d*|\.\d+)(?:[eE]([+-]?\d+))?")
IDENT_RE = re.compile(r"[A-Za-z]+")
REFERENCE_RE = re.compile(r"\$(\d+)")
