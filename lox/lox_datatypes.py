"""
Defines the core data types for the Lox language.

This module provides the token model produced by the lexer, the expression
and statement nodes produced by the parser, and the runtime types the
evaluator works with (environments, callables and the return signal).
"""

from abc import ABC, abstractmethod
import sys
from dataclasses import dataclass, fields
from enum import Enum, auto
from typing import List, Dict, Any, Optional, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from lox.lox_interpreter import Evaluator


# =================================================================
# Tokens
# =================================================================

class TokenType(Enum):
    # Single-character tokens.
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    LEFT_BRACE = auto()
    RIGHT_BRACE = auto()
    COMMA = auto()
    DOT = auto()
    MINUS = auto()
    PLUS = auto()
    SEMICOLON = auto()
    SLASH = auto()
    STAR = auto()

    # One or two character tokens.
    BANG = auto()
    BANG_EQUAL = auto()
    EQUAL = auto()
    EQUAL_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    LESS = auto()
    LESS_EQUAL = auto()

    # Literals.
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()

    # Keywords.
    AND = auto()
    CLASS = auto()
    ELSE = auto()
    FALSE = auto()
    FUN = auto()
    FOR = auto()
    IF = auto()
    NIL = auto()
    OR = auto()
    PRINT = auto()
    RETURN = auto()
    SUPER = auto()
    THIS = auto()
    TRUE = auto()
    VAR = auto()
    WHILE = auto()

    EOF = auto()


@dataclass(frozen=True)
class Token:
    """A single lexeme with its category, scanned value and source position."""
    type: TokenType
    lexeme: str
    literal: Any
    line: int
    col: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.type.name} {self.lexeme} {self.literal}"


# =================================================================
# Expression Nodes
# =================================================================
# Nodes compare and hash by identity (eq=False): the resolver keys its
# distance table on the node occurrence, not on its shape.

class Expr:
    """Base class for all expression nodes."""
    pass


@dataclass(frozen=True, eq=False)
class Literal(Expr):
    value: Any


@dataclass(frozen=True, eq=False)
class Grouping(Expr):
    expression: Expr


@dataclass(frozen=True, eq=False)
class Unary(Expr):
    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Binary(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Logical(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Variable(Expr):
    name: Token


@dataclass(frozen=True, eq=False)
class Assign(Expr):
    name: Token
    value: Expr


@dataclass(frozen=True, eq=False)
class Call(Expr):
    callee: Expr
    paren: Token
    arguments: List[Expr]


# =================================================================
# Statement Nodes
# =================================================================

class Stmt:
    """Base class for all statement nodes."""
    pass


@dataclass(frozen=True, eq=False)
class Expression(Stmt):
    expression: Expr


@dataclass(frozen=True, eq=False)
class Print(Stmt):
    expression: Expr


@dataclass(frozen=True, eq=False)
class Var(Stmt):
    name: Token
    initializer: Optional[Expr] = None


@dataclass(frozen=True, eq=False)
class Block(Stmt):
    statements: List[Stmt]


@dataclass(frozen=True, eq=False)
class If(Stmt):
    condition: Expr
    then_branch: Stmt
    else_branch: Optional[Stmt] = None


@dataclass(frozen=True, eq=False)
class While(Stmt):
    condition: Expr
    body: Stmt


@dataclass(frozen=True, eq=False)
class Function(Stmt):
    name: Token
    params: List[Token]
    body: List[Stmt]


@dataclass(frozen=True, eq=False)
class Return(Stmt):
    keyword: Token
    value: Optional[Expr] = None


def first_token(node) -> Optional[Token]:
    """Returns the leftmost token held anywhere under node, or None.

    Walks with an explicit stack so it still works on trees too deep to recurse over.
    """
    stack = [node]
    while stack:
        item = stack.pop()
        if isinstance(item, Token):
            return item
        if isinstance(item, list):
            stack.extend(reversed(item))
        elif isinstance(item, (Expr, Stmt)):
            stack.extend(reversed([getattr(item, f.name) for f in fields(item)]))
    return None


# =================================================================
# Host limits
# =================================================================

# Every stage walks the tree recursively. A few Python frames go to each
# level of Lox nesting or each Lox call, so the default limit of 1000 is far
# too low for ordinary programs.
RECURSION_LIMIT = 20000


def raise_recursion_limit(limit: int = RECURSION_LIMIT):
    if sys.getrecursionlimit() < limit:
        sys.setrecursionlimit(limit)


# =================================================================
# Errors
# =================================================================

class LoxError(Exception):
    """Base class for every error reported against Lox source."""
    def __init__(self, line: int, message: str):
        super().__init__(message)
        self.line = line
        self.message = message

    @property
    def col(self) -> Optional[int]:
        return None

    def __str__(self) -> str:
        return f"[line {self.line}] Error: {self.message}"


class LexError(LoxError):
    """An unexpected character or an unterminated string."""
    def __init__(self, line: int, message: str, col: Optional[int] = None):
        super().__init__(line, message)
        self._col = col

    @property
    def col(self) -> Optional[int]:
        return self._col


class TokenError(LoxError):
    """An error anchored on a specific token."""
    def __init__(self, token: Token, message: str):
        super().__init__(token.line, message)
        self.token = token

    @property
    def col(self) -> Optional[int]:
        return self.token.col

    @property
    def where(self) -> str:
        if self.token.type == TokenType.EOF:
            return " at end"
        return f" at '{self.token.lexeme}'"

    def __str__(self) -> str:
        return f"[line {self.line}] Error{self.where}: {self.message}"


class ParseError(TokenError):
    """A syntax error. Raised inside the parser to unwind to a statement boundary."""
    pass


class ResolveError(TokenError):
    """A static scoping error found by the resolver."""
    pass


class LoxRuntimeError(TokenError):
    """A failure during evaluation. Aborts the whole run."""
    def __init__(self, token: Token, message: str):
        super().__init__(token, message)
        # Snapshot of active call frames, innermost last; filled in by the evaluator.
        self.stacktrace: List[Dict[str, Any]] = []

    def __str__(self) -> str:
        return f"{self.message}\n[line {self.line}]"


# =================================================================
# Core Runtime Types
# =================================================================

class Environment:
    """A scope frame: the bindings of one block or call, plus its enclosing frame.

    Frames are plain Python objects, so a closure that holds a frame keeps it
    (and everything it encloses) alive after the block or call that created
    it has finished.
    """
    def __init__(self, enclosing: Optional['Environment'] = None):
        self.values: Dict[str, Any] = {}
        self.enclosing = enclosing

    def define(self, name: str, value: Any):
        """Binds name in this frame, replacing any previous binding here."""
        self.values[name] = value

    def get(self, name: Token) -> Any:
        env = self
        while env is not None:
            if name.lexeme in env.values:
                return env.values[name.lexeme]
            env = env.enclosing
        raise LoxRuntimeError(name, f"Undefined variable '{name.lexeme}'.")

    def assign(self, name: Token, value: Any):
        env = self
        while env is not None:
            if name.lexeme in env.values:
                env.values[name.lexeme] = value
                return
            env = env.enclosing
        raise LoxRuntimeError(name, f"Undefined variable '{name.lexeme}'.")

    def ancestor(self, distance: int) -> 'Environment':
        env = self
        for _ in range(distance):
            env = env.enclosing
        return env

    def get_at(self, distance: int, name: str) -> Any:
        return self.ancestor(distance).values[name]

    def assign_at(self, distance: int, name: Token, value: Any):
        self.ancestor(distance).values[name.lexeme] = value

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __repr__(self) -> str:
        keys = ', '.join(self.values.keys())
        enclosing_id = f", enclosing=#{id(self.enclosing)}" if self.enclosing else ""
        return f"<Environment values=[{keys}]{enclosing_id}>"


class ReturnValue:
    """Control-flow signal produced by a `return` statement.

    Statement execution hands this back instead of None; enclosing blocks,
    loops and conditionals pass it up until the function call unwraps it.
    """
    __slots__ = ("value",)

    def __init__(self, value: Any = None):
        self.value = value

    def __repr__(self) -> str:
        return f"<ReturnValue {self.value!r}>"


def is_return(x) -> bool:
    return isinstance(x, ReturnValue)


class LoxCallable(ABC):
    """Abstract base class for everything a Lox call expression can invoke."""

    @abstractmethod
    def arity(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        raise NotImplementedError


class LoxFunction(LoxCallable):
    """A function declared in Lox with `fun`.

    This is a closure, bundling the declaration with the environment that was
    active when the declaration executed (not the environment of the caller).
    """
    def __init__(self, declaration: Function, closure: Environment):
        self.declaration = declaration
        self.closure = closure

    @property
    def name(self) -> str:
        return self.declaration.name.lexeme

    def arity(self) -> int:
        return len(self.declaration.params)

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        environment = Environment(self.closure)
        for param, value in zip(self.declaration.params, arguments):
            environment.define(param.lexeme, value)

        result = evaluator.execute_block(self.declaration.body, environment)
        if is_return(result):
            return result.value
        return None

    def __repr__(self) -> str:
        return f"<fn {self.name}>"


class NativeFunction(LoxCallable):
    """A host-supplied function exposed to Lox under a global name."""
    def __init__(self, name: str, fn: Callable[..., Any], arity: int):
        self.name = name
        self.fn = fn
        self._arity = arity

    def arity(self) -> int:
        return self._arity

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        return self.fn(*arguments)

    def __repr__(self) -> str:
        return "<native fn>"
