"""Command line interface for crcalc.

    python -m crcalc -e "sqrt(2)" --digits 50
    python -m crcalc                      # interactive, with $N history references
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from .config import DEFAULT_DIGITS, EVAL_TIMEOUT, LOG_LEVEL, MAX_DIGITS_REQUEST, VERSION
from .logging_config import setup_logging
from .worker import History, evaluate_safely


def print_result_pretty(res: dict[str, Any], output_format: str = "human") -> None:
    """Print result in specified format.

    Args:
        res: Result dictionary from evaluate_safely
        output_format: "json" for JSON output, "human" for human-readable
    """
    if output_format == "json":
        print(json.dumps(res, indent=2, ensure_ascii=False))
        return
    if not res.get("ok"):
        print("Error:", res.get("error"))
        return
    prefix = f"${res['index']} = " if "index" in res else ""
    result = res.get("result")
    exact = res.get("exact")
    if exact is not None and exact != result:
        try:
            print(f"{prefix}{result}  ({exact})")
        except UnicodeEncodeError:
            print(f"{prefix}{result}  ({exact.replace('π', 'pi').replace('√', 'sqrt')})")
    else:
        print(f"{prefix}{result}")


def print_help_text() -> None:
    print(
        "Enter a formula, e.g. 2+3*4, sqrt(2), sin(pi/2), 100+10%.\n"
        "Operators: + - * / ^ ! % ²   Functions: sqrt sin cos tan asin acos atan ln log exp exp10\n"
        "Constants: pi e   References: $N is the result of input N\n"
        "Commands: history, degrees, radians, help, quit"
    )


def repl_loop(args: argparse.Namespace, output_format: str = "human") -> None:
    """Interactive loop; every input is added to the history."""
    history = History()
    degree_mode = args.degrees
    print("crcalc: type 'help' for commands, 'quit' to exit.")
    while True:
        try:
            raw = input(">>> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye.")
            return
        if not raw:
            continue
        command = raw.lower()
        if command in ("quit", "exit"):
            return
        if command == "help":
            print_help_text()
            continue
        if command in ("degrees", "radians"):
            degree_mode = command == "degrees"
            print(f"Angle mode: {command}")
            continue
        if command == "history":
            for i in range(1, len(history) + 1):
                print(f"${i}: {history.get_expr(i)}")
            continue
        try:
            res = evaluate_safely(
                raw, args.digits, degree_mode, history, args.timeout, args.radix, args.sci
            )
        except KeyboardInterrupt:
            # evaluate_safely has cancelled the evaluation thread.
            print("\n[Cancelled]")
            continue
        print_result_pretty(res, output_format)


def main_entry(argv: list[str] | None = None) -> int:
    """
    Main entry point for the crcalc CLI.

    Args:
        argv: Optional command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = argparse.ArgumentParser(prog="crcalc")
    parser.add_argument(
        "-e",
        "--expr",
        type=str,
        help="Evaluate one expression and exit (non-interactive)",
        dest="eval_expr",
    )
    parser.add_argument(
        "-d",
        "--digits",
        type=int,
        default=DEFAULT_DIGITS,
        help=f"Digits after the point (default: {DEFAULT_DIGITS})",
    )
    parser.add_argument(
        "--degrees", action="store_true", help="Trig functions use degrees"
    )
    parser.add_argument(
        "--radix", type=int, default=10, help="Output radix, 2 to 16 (default: 10)"
    )
    parser.add_argument(
        "--sci", action="store_true", help="Scientific notation with --digits significant digits"
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=EVAL_TIMEOUT,
        help=f"Evaluation deadline in seconds (default: {EVAL_TIMEOUT:g})",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["json", "human"],
        default="human",
        help="Output format: json (machine-readable) or human (human-readable)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=LOG_LEVEL.upper(),
        help="Set logging level",
    )
    parser.add_argument("--log-file", type=str, help="Write logs to file")
    parser.add_argument(
        "-v", "--version", action="store_true", help="Show program version"
    )
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)

    if args.version:
        print(VERSION)
        return 0
    if not 2 <= args.radix <= 16:
        parser.error("--radix must be between 2 and 16")
    if not 0 <= args.digits <= MAX_DIGITS_REQUEST:
        parser.error(f"--digits must be between 0 and {MAX_DIGITS_REQUEST}")
    if args.timeout <= 0:
        parser.error("--timeout must be positive")

    if args.eval_expr is not None:
        res = evaluate_safely(
            args.eval_expr,
            args.digits,
            args.degrees,
            timeout=args.timeout,
            radix=args.radix,
            scientific=args.sci,
        )
        print_result_pretty(res, args.format)
        return 0 if res.get("ok") else 1

    repl_loop(args, args.format)
    return 0


if __name__ == "__main__":
    sys.exit(main_entry())
