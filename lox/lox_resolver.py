"""
Static scope analysis: binds every local variable reference to a scope distance.
"""
import os
import sys
from enum import Enum, auto
from typing import Dict, List, Tuple

from lox.lox_datatypes import (
    Token, ResolveError, first_token, raise_recursion_limit,
    Expr, Literal, Grouping, Unary, Binary, Logical, Variable, Assign, Call,
    Stmt, Expression, Print, Var, Block, If, While, Function, Return
)


class FunctionType(Enum):
    NONE = auto()
    FUNCTION = auto()


class Resolver:
    """Walks a finished tree once, mirroring the evaluator's scope discipline.

    Each scope maps a name to False while its initializer is being resolved
    (declared) and True once it is ready (defined). Only local scopes are
    tracked; a name not found in any of them is a global and is left out of
    the distance table so the evaluator looks it up by name.
    """
    def __init__(self):
        self.scopes: List[Dict[str, bool]] = []
        self.locals: Dict[Expr, int] = {}
        self.errors: List[ResolveError] = []
        self.current_function = FunctionType.NONE

    def _dbg(self, *parts):
        if os.environ.get("LOX_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def resolve(self, statements: List[Stmt]) -> Dict[Expr, int]:
        for stmt in statements:
            self._resolve_stmt(stmt)
        return self.locals

    def _resolve_stmt(self, stmt: Stmt):
        match stmt:
            case Block(statements=statements):
                self._begin_scope()
                self.resolve(statements)
                self._end_scope()

            case Var(name=name, initializer=initializer):
                self._declare(name)
                if initializer is not None:
                    self._resolve_expr(initializer)
                self._define(name)

            case Function(name=name):
                # Defined before the body so the function can refer to itself.
                self._declare(name)
                self._define(name)
                self._resolve_function(stmt, FunctionType.FUNCTION)

            case Expression(expression=expr) | Print(expression=expr):
                self._resolve_expr(expr)

            case If(condition=condition, then_branch=then_branch, else_branch=else_branch):
                self._resolve_expr(condition)
                self._resolve_stmt(then_branch)
                if else_branch is not None:
                    self._resolve_stmt(else_branch)

            case While(condition=condition, body=body):
                self._resolve_expr(condition)
                self._resolve_stmt(body)

            case Return(keyword=keyword, value=value):
                if self.current_function == FunctionType.NONE:
                    self._error(keyword, "Can't return from top-level code.")
                if value is not None:
                    self._resolve_expr(value)

            case _:
                raise TypeError(f"Unknown statement node: {type(stmt).__name__}")

    def _resolve_expr(self, expr: Expr):
        match expr:
            case Variable(name=name):
                if self.scopes and self.scopes[-1].get(name.lexeme) is False:
                    self._error(name, "Can't read local variable in its own initializer.")
                self._resolve_local(expr, name)

            case Assign(name=name, value=value):
                self._resolve_expr(value)
                self._resolve_local(expr, name)

            case Binary(left=left, right=right) | Logical(left=left, right=right):
                self._resolve_expr(left)
                self._resolve_expr(right)

            case Unary(right=right):
                self._resolve_expr(right)

            case Grouping(expression=inner):
                self._resolve_expr(inner)

            case Call(callee=callee, arguments=arguments):
                self._resolve_expr(callee)
                for argument in arguments:
                    self._resolve_expr(argument)

            case Literal():
                pass

            case _:
                raise TypeError(f"Unknown expression node: {type(expr).__name__}")

    def _resolve_function(self, function: Function, type_: FunctionType):
        enclosing_function = self.current_function
        self.current_function = type_

        # Parameters and body statements share the call frame's scope.
        self._begin_scope()
        for param in function.params:
            self._declare(param)
            self._define(param)
        self.resolve(function.body)
        self._end_scope()

        self.current_function = enclosing_function

    def _resolve_local(self, expr: Expr, name: Token):
        for i in range(len(self.scopes) - 1, -1, -1):
            if name.lexeme in self.scopes[i]:
                distance = len(self.scopes) - 1 - i
                self.locals[expr] = distance
                self._dbg("resolve", name.lexeme, "line", name.line, "distance", distance)
                return
        # Not found: assumed global.

    def _begin_scope(self):
        self.scopes.append({})

    def _end_scope(self):
        self.scopes.pop()

    def _declare(self, name: Token):
        if not self.scopes:
            return
        scope = self.scopes[-1]
        if name.lexeme in scope:
            self._error(name, "Already a variable with this name in this scope.")
        scope[name.lexeme] = False

    def _define(self, name: Token):
        if not self.scopes:
            return
        self.scopes[-1][name.lexeme] = True

    def _error(self, token: Token, message: str):
        self.errors.append(ResolveError(token, message))


def resolve(statements: List[Stmt]) -> Tuple[Dict[Expr, int], List[ResolveError]]:
    """Resolves statements. Returns the distance table and every static error found."""
    raise_recursion_limit()
    resolver = Resolver()
    for stmt in statements:
        try:
            resolver.resolve([stmt])
        except RecursionError:
            token = first_token(stmt)
            if token is None:
                raise
            resolver._error(token, "Too much nesting.")
            # Unwinding skipped the scope and function bookkeeping; top level has neither.
            resolver.scopes.clear()
            resolver.current_function = FunctionType.NONE
    return resolver.locals, resolver.errors
