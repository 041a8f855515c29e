"""
The core Lox interpreter: a tree-walking Evaluator over resolved statements.
"""
import math
import os
import sys
import weakref
from typing import Any, List, Optional, Dict, MutableMapping, TextIO

from lox.lox_datatypes import (
    Token, TokenType, LoxRuntimeError, first_token, raise_recursion_limit,
    Environment, LoxCallable, LoxFunction, ReturnValue, is_return,
    Expr, Literal, Grouping, Unary, Binary, Logical, Variable, Assign, Call,
    Stmt, Expression, Print, Var, Block, If, While, Function, Return
)
from lox.lox_printer import Printer


def is_truthy(value: Any) -> bool:
    """nil and false are falsy; everything else, including 0 and "", is truthy."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return True


def is_equal(a: Any, b: Any) -> bool:
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    # Python would call true == 1; Lox does not.
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _divide(left: float, right: float) -> float:
    """IEEE-754 division: a zero divisor yields an infinity or nan instead of raising."""
    try:
        return left / right
    except ZeroDivisionError:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)


class Evaluator:
    """The Lox execution engine.

    Holds the global frame, the current frame and the distance table produced
    by the resolver. Globals persist across calls to interpret(), so one
    Evaluator can serve a whole REPL session.

    The distance table holds its nodes weakly. Entries for a finished script's
    top-level code drop out once the tree is released, while the bodies of
    functions still reachable from the environment keep theirs.
    """
    def __init__(self, stdout: Optional[TextIO] = None, printer: Optional[Printer] = None):
        self.globals = Environment()
        self.environment = self.globals
        self.locals: MutableMapping[Expr, int] = weakref.WeakKeyDictionary()
        self.printer = printer or Printer()
        # Lines written by `print`, as {'topics': [...], 'message': ...} records.
        self.side_effects: List[Dict[str, Any]] = []
        self.stdout = stdout
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node = None

    def _push_frame(self, name: str, func: LoxCallable, args: List[Any], call_site: Token):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': call_site,
            'line': call_site.line,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("LOX_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def interpret(self, statements: List[Stmt], locals: Optional[Dict[Expr, int]] = None) -> Optional[LoxRuntimeError]:
        """Executes statements in order. Returns the runtime error that stopped execution, if any."""
        raise_recursion_limit()
        if locals:
            self.locals.update(locals)
        self.call_stack.clear()
        try:
            for stmt in statements:
                self._execute(stmt)
        except LoxRuntimeError as e:
            e.stacktrace = list(self.call_stack)
            self.call_stack.clear()
            self._dbg("runtime error", repr(e.message), "line", e.line)
            return e
        except RecursionError:
            if self.call_stack:
                token = self.call_stack[-1]['call_site']
            else:
                # Deep expression nesting with no call involved.
                token = first_token(self.current_node)
                if token is None:
                    raise
            err = LoxRuntimeError(token, "Stack overflow.")
            err.stacktrace = list(self.call_stack)
            self.call_stack.clear()
            return err
        finally:
            self.current_node = None
        return None

    # --- Statements ---

    def _execute(self, stmt: Stmt) -> Optional[ReturnValue]:
        """Executes one statement. Returns a ReturnValue when a `return` is unwinding, else None."""
        self.current_node = stmt
        match stmt:
            case Expression(expression=expr):
                self._evaluate(expr)

            case Print(expression=expr):
                self._emit(self.printer.pformat(self._evaluate(expr)))

            case Var(name=name, initializer=initializer):
                value = None
                if initializer is not None:
                    value = self._evaluate(initializer)
                self.environment.define(name.lexeme, value)

            case Block(statements=statements):
                return self.execute_block(statements, Environment(self.environment))

            case If(condition=condition, then_branch=then_branch, else_branch=else_branch):
                if is_truthy(self._evaluate(condition)):
                    return self._execute(then_branch)
                if else_branch is not None:
                    return self._execute(else_branch)

            case While(condition=condition, body=body):
                while is_truthy(self._evaluate(condition)):
                    result = self._execute(body)
                    if is_return(result):
                        return result

            case Function(name=name):
                # Capture the frame active now, at declaration time.
                self.environment.define(name.lexeme, LoxFunction(stmt, self.environment))

            case Return(value=value):
                return ReturnValue(self._evaluate(value) if value is not None else None)

            case _:
                raise TypeError(f"Unknown statement node: {type(stmt).__name__}")
        return None

    def execute_block(self, statements: List[Stmt], environment: Environment) -> Optional[ReturnValue]:
        """Runs statements inside environment, restoring the previous frame afterwards."""
        previous = self.environment
        try:
            self.environment = environment
            for stmt in statements:
                result = self._execute(stmt)
                if is_return(result):
                    return result
        finally:
            self.environment = previous
        return None

    def _emit(self, text: str):
        self.side_effects.append({'topics': ['stdout'], 'message': text})
        if self.stdout is not None:
            self.stdout.write(text + "\n")

    # --- Expressions ---

    def _evaluate(self, expr: Expr) -> Any:
        match expr:
            case Literal(value=value):
                return value

            case Grouping(expression=inner):
                return self._evaluate(inner)

            case Variable(name=name):
                return self._look_up_variable(name, expr)

            case Assign(name=name, value=value_expr):
                value = self._evaluate(value_expr)
                distance = self.locals.get(expr)
                if distance is not None:
                    self.environment.assign_at(distance, name, value)
                else:
                    self.globals.assign(name, value)
                return value

            case Logical(left=left, operator=operator, right=right):
                left_value = self._evaluate(left)
                if operator.type == TokenType.OR:
                    if is_truthy(left_value):
                        return left_value
                elif not is_truthy(left_value):
                    return left_value
                return self._evaluate(right)

            case Unary():
                return self._unary(expr)

            case Binary():
                return self._binary(expr)

            case Call():
                return self._call_expr(expr)

            case _:
                raise TypeError(f"Unknown expression node: {type(expr).__name__}")

    def _unary(self, expr: Unary) -> Any:
        right = self._evaluate(expr.right)
        match expr.operator.type:
            case TokenType.BANG:
                return not is_truthy(right)
            case TokenType.MINUS:
                self._check_number_operand(expr.operator, right)
                return -right
        raise LoxRuntimeError(expr.operator, f"Unknown unary operator '{expr.operator.lexeme}'.")

    def _binary(self, expr: Binary) -> Any:
        left = self._evaluate(expr.left)
        right = self._evaluate(expr.right)
        op = expr.operator

        match op.type:
            case TokenType.PLUS:
                if is_number(left) and is_number(right):
                    return left + right
                if isinstance(left, str) and isinstance(right, str):
                    return left + right
                raise LoxRuntimeError(op, "Operands must be two numbers or two strings.")
            case TokenType.MINUS:
                self._check_number_operands(op, left, right)
                return left - right
            case TokenType.STAR:
                self._check_number_operands(op, left, right)
                return left * right
            case TokenType.SLASH:
                self._check_number_operands(op, left, right)
                return _divide(left, right)
            case TokenType.GREATER:
                self._check_number_operands(op, left, right)
                return left > right
            case TokenType.GREATER_EQUAL:
                self._check_number_operands(op, left, right)
                return left >= right
            case TokenType.LESS:
                self._check_number_operands(op, left, right)
                return left < right
            case TokenType.LESS_EQUAL:
                self._check_number_operands(op, left, right)
                return left <= right
            case TokenType.EQUAL_EQUAL:
                return is_equal(left, right)
            case TokenType.BANG_EQUAL:
                return not is_equal(left, right)
        raise LoxRuntimeError(op, f"Unknown binary operator '{op.lexeme}'.")

    def _call_expr(self, expr: Call) -> Any:
        callee = self._evaluate(expr.callee)
        # Arguments are evaluated left to right before the callee is checked.
        arguments = [self._evaluate(argument) for argument in expr.arguments]

        if not isinstance(callee, LoxCallable):
            raise LoxRuntimeError(expr.paren, "Can only call functions and classes.")
        if len(arguments) != callee.arity():
            raise LoxRuntimeError(
                expr.paren,
                f"Expected {callee.arity()} arguments but got {len(arguments)}."
            )
        return self.call(callee, arguments, expr.paren)

    def call(self, func: LoxCallable, args: List[Any], call_site: Token) -> Any:
        """Invokes a callable whose arity has already been checked."""
        name = getattr(func, 'name', '<callable>')
        self._dbg("call", name, "argc", len(args), "line", call_site.line)
        self._push_frame(name, func, args, call_site)
        result = func.call(self, args)
        # Frames are left in place when an error unwinds, so interpret() can snapshot them.
        self._pop_frame()
        self._dbg("return", name, "->", repr(result))
        return result

    def _look_up_variable(self, name: Token, expr: Expr) -> Any:
        distance = self.locals.get(expr)
        if distance is not None:
            return self.environment.get_at(distance, name.lexeme)
        return self.globals.get(name)

    def _check_number_operand(self, operator: Token, operand: Any):
        if is_number(operand):
            return
        raise LoxRuntimeError(operator, "Operand must be a number.")

    def _check_number_operands(self, operator: Token, left: Any, right: Any):
        if is_number(left) and is_number(right):
            return
        raise LoxRuntimeError(operator, "Operands must be numbers.")


def interpret(statements: List[Stmt], locals: Dict[Expr, int],
              evaluator: Optional[Evaluator] = None, stdout: Optional[TextIO] = None) -> Optional[LoxRuntimeError]:
    """Executes resolved statements. Returns None on success or the runtime error that stopped the run.

    Without an explicit evaluator, a fresh one is created with the standard
    native functions bound as globals, printing to stdout (sys.stdout unless
    another stream is given).
    """
    if evaluator is None:
        from lox.lox_runtime import StdLib  # local import to avoid a cycle
        evaluator = Evaluator(stdout=stdout if stdout is not None else sys.stdout)
        StdLib(evaluator)
    return evaluator.interpret(statements, locals)
