# lox_runtime.py

import inspect
import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, TextIO

from lox.lox_datatypes import LoxError, LoxRuntimeError, NativeFunction
from lox.lox_lexer import scan
from lox.lox_parser import parse
from lox.lox_resolver import resolve
from lox.lox_interpreter import Evaluator
from lox.lox_printer import Printer

# Exit statuses used by the command-line entry point.
EXIT_OK = 0
EXIT_STATIC_ERROR = 65
EXIT_RUNTIME_ERROR = 70

# Longest stack trace shown before older frames are elided.
MAX_TRACE_FRAMES = 20


# ===================================================================
# 1. The Standard Library
# ===================================================================

class StdLib:
    """Contains Python implementations for all Lox built-ins.

    Every method named `_name` is bound as the global native function `name`,
    with its arity taken from the method signature.
    """
    def __init__(self, evaluator: Evaluator, clock: Optional[Callable[[], float]] = None):
        self.evaluator = evaluator
        # Wall-clock source; injectable so tests can pin it.
        self.clock = clock or time.time
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                lox_name = name[1:]
                arity = len(inspect.signature(member).parameters)
                evaluator.globals.define(lox_name, NativeFunction(lox_name, member, arity))

    def _clock(self):
        return float(self.clock())


# ===================================================================
# 2. Script Execution
# ===================================================================

def _source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        ln = str(i).rjust(width)
        out.append(f"{prefix} {ln} | {lines[i - 1]}")
        if i == line and col is not None:
            caret = " " * max(col - 1, 0)
            out.append(f"  {' ' * width} | {caret}^")
    return "\n".join(out)


def _format_stacktrace(stack: List[Dict[str, Any]]) -> str:
    if not stack:
        return ""
    pf = Printer().pformat
    frames = []
    elided = 0
    if len(stack) > MAX_TRACE_FRAMES:
        elided = len(stack) - MAX_TRACE_FRAMES
        stack = stack[-MAX_TRACE_FRAMES:]
    for frame in stack:
        args = " ".join(pf(a) for a in frame.get('args') or [])
        frame_str = f"({frame.get('name') or '<call>'}"
        if args:
            frame_str += f" {args}"
        frame_str += f") [line {frame.get('line')}]"
        frames.append(frame_str)
    prefix = f"... {elided} more " if elided else ""
    return "Lox stacktrace: " + prefix + " ".join(frames)


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    phase: Optional[Literal['static', 'runtime']] = None
    errors: List[LoxError] = field(default_factory=list)
    error_message: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)
    source: str = ""

    @property
    def output(self) -> List[str]:
        """Lines written by `print`, in order."""
        return [e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout']]

    @property
    def exit_code(self) -> int:
        if self.status != 'error':
            return EXIT_OK
        return EXIT_RUNTIME_ERROR if self.phase == 'runtime' else EXIT_STATIC_ERROR

    def format_error(self) -> str:
        """Formats every error with a source excerpt and, for runtime errors, the Lox stack trace."""
        if self.status != 'error':
            return ""
        blocks = []
        for err in self.errors:
            msg = str(err)
            context = _source_context(self.source, err.line, err.col)
            if context:
                msg = f"{msg}\n{context}"
            if isinstance(err, LoxRuntimeError):
                st = _format_stacktrace(err.stacktrace)
                if st:
                    msg = f"{msg}\n{st}"
            blocks.append(msg)
        return "\n".join(blocks) or str(self.error_message or "Unknown error")


class ScriptRunner:
    """Scans, parses, resolves, and executes Lox code.

    A runner keeps one Evaluator, so globals defined by one script remain
    visible to the next (the REPL relies on this).
    """

    def __init__(self, load_stdlib: bool = True, clock: Optional[Callable[[], float]] = None,
                 stdout: Optional[TextIO] = None):
        self.evaluator = Evaluator(stdout=stdout)
        self.stdlib = StdLib(self.evaluator, clock=clock) if load_stdlib else None

    def _dbg(self, *parts):
        if os.environ.get("LOX_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def _error_result(self, phase, errors: List[LoxError], source_code: str) -> ExecutionResult:
        msg = "\n".join(str(e) for e in errors)
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            phase=phase,
            errors=errors,
            error_message=msg,
            side_effects=list(self.evaluator.side_effects),
            source=source_code,
        )

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        self.evaluator.side_effects.clear()

        # 1. Scan. Lexical errors do not stop parsing, but they do stop execution.
        tokens, lex_errors = scan(source_code)
        self._dbg("scan", len(tokens), "tokens", len(lex_errors), "errors")

        # 2. Parse
        statements, parse_errors = parse(tokens)
        self._dbg("parse", len(statements), "statements", len(parse_errors), "errors")
        static_errors: List[LoxError] = [*lex_errors, *parse_errors]

        # 3. Resolve, unless the tree is incomplete
        locals = {}
        if not parse_errors:
            locals, resolve_errors = resolve(statements)
            self._dbg("resolve", len(locals), "locals", len(resolve_errors), "errors")
            static_errors.extend(resolve_errors)

        if static_errors:
            return self._error_result('static', static_errors, source_code)

        # 4. Evaluate
        error = self.evaluator.interpret(statements, locals)
        if error is not None:
            return self._error_result('runtime', [error], source_code)

        return ExecutionResult(
            status='success',
            side_effects=list(self.evaluator.side_effects),
            source=source_code,
        )
