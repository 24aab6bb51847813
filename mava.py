"""Mava entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from errors import AssertionFailedError, MavaRuntimeError
from interpreter import Interpreter, TracebackFormatter
from lexer import MavaError, MavaParseError

T = TypeVar("T")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ASSERTION = 2

# Scripts run from the command line get a deep stack: roughly 10k nested
# Mava calls.
CLI_RECURSION_LIMIT = 100000
CLI_THREAD_STACK = 256 * 1024 * 1024

BLOCK_KEYWORDS = ("def", "if", "while", "for")


def _opens_block(line: str) -> bool:
    stripped = line.strip()
    first = stripped.split(" ", 1)[0]
    return first in BLOCK_KEYWORDS or stripped.endswith("{")


def run_repl(verbose: bool) -> int:
    print("\x1b[38;2;153;221;255mMava\033[0m REPL. Enter statements, blank line to run buffer.")
    had_output = False

    def _output_sink(text: str) -> None:
        nonlocal had_output
        had_output = not text.endswith("\n")
        print(text, end="", flush=True)

    interpreter = Interpreter(
        source="", filename="<string>", verbose=verbose, input_provider=(lambda: input()), output_sink=_output_sink
    )
    global_frame = interpreter._new_frame("<top-level>", interpreter.global_env, None)
    interpreter.call_stack.append(global_frame)
    buffer: List[str] = []

    def _run(source_text: str) -> None:
        try:
            interpreter.execute(interpreter.parse(source_text))
        except AssertionFailedError as error:
            print(error.message, file=sys.stderr)
        except MavaParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
        except MavaRuntimeError as error:
            formatter = TracebackFormatter(interpreter)
            print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)
        # Keep the session usable: drop frames left behind by a failed call.
        interpreter.call_stack = [global_frame]

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m "
        if had_output:
            # Start the prompt on a fresh line after print() without newline
            print()
            had_output = False
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        stripped = line.strip()
        if not buffer and stripped != "" and not _opens_block(line):
            try:
                interpreter.parse(line)
            except MavaParseError:
                # Incomplete single line: keep reading until a blank line.
                buffer.append(line)
                continue
            _run(line)
            continue

        if stripped == "" and buffer:
            source_text = "\n".join(buffer)
            buffer.clear()
            _run(source_text)
            continue

        if stripped != "":
            buffer.append(line)
    return EXIT_OK


def _call_on_large_stack(func: Callable[[], T]) -> T:
    """Run ``func`` in a worker thread whose C stack fits CLI_RECURSION_LIMIT."""
    outcome: Dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # re-raised in the calling thread below
            outcome["error"] = exc

    previous = threading.stack_size(CLI_THREAD_STACK)
    try:
        worker = threading.Thread(target=_target, name="mava-main")
        worker.start()
        worker.join()
    finally:
        threading.stack_size(previous)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def _read_program(args: argparse.Namespace) -> Tuple[Optional[str], str]:
    if args.source_mode:
        return args.program, "<string>"
    try:
        with open(args.program, "r", encoding="utf-8") as handle:
            return handle.read(), args.program
    except OSError as exc:
        print(f"Failed to read {args.program}: {exc}", file=sys.stderr)
        return None, args.program


def _report(interpreter: Interpreter, error: MavaError, args: argparse.Namespace) -> int:
    if isinstance(error, MavaParseError):
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_ERROR
    if isinstance(error, AssertionFailedError):
        print(error.message, file=sys.stderr)
        return EXIT_ASSERTION
    formatter = TracebackFormatter(interpreter)
    print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
    if args.traceback_json:
        print(formatter.to_json(error), file=sys.stderr)
    return EXIT_ERROR


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="mava", description="Run a Mava program, or start the REPL without one")
    parser.add_argument("program", nargs="?", help="Path of a .mava file, or program text with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program as source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record variables for every step and show them in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also print the traceback as JSON on stderr")
    args = parser.parse_args(argv)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return EXIT_ERROR
        return run_repl(verbose=args.verbose)

    source_text, filename = _read_program(args)
    if source_text is None:
        return EXIT_ERROR
    interpreter = Interpreter(
        source=source_text, filename=filename, verbose=args.verbose, recursion_limit=CLI_RECURSION_LIMIT
    )
    try:
        _call_on_large_stack(interpreter.run)
    except MavaError as error:
        return _report(interpreter, error, args)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(run_cli())
