"""
Lox: a small dynamically-typed scripting language with a tree-walking interpreter.

    tokens, lex_errors = scan(source)
    statements, parse_errors = parse(tokens)
    locals, resolve_errors = resolve(statements)
    runtime_error = interpret(statements, locals)

ScriptRunner wires the four stages together and reports every error.
"""
from lox.lox_lexer import scan
from lox.lox_parser import parse
from lox.lox_resolver import resolve
from lox.lox_interpreter import interpret, Evaluator
from lox.lox_runtime import ScriptRunner, ExecutionResult, StdLib

__all__ = [
    "scan",
    "parse",
    "resolve",
    "interpret",
    "Evaluator",
    "ScriptRunner",
    "ExecutionResult",
    "StdLib",
]
