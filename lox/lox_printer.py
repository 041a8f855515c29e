"""
A printer for Lox runtime values and syntax trees.
"""
from typing import Any, List

from lox.lox_datatypes import (
    Token, LoxFunction, NativeFunction,
    Literal, Grouping, Unary, Binary, Logical, Variable, Assign, Call,
    Expression, Print, Var, Block, If, While, Function, Return, Stmt
)


class Printer:
    """Formats Lox values the way `print` shows them, and nodes as parenthesized prefix forms."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0) -> str:
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def pformat_program(self, statements: List[Stmt]) -> str:
        return "\n".join(self.pformat(stmt) for stmt in statements)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, NativeFunction):
            return self._pformat_native
        if isinstance(obj, LoxFunction):
            return self._pformat_function_value
        return lambda o, l: str(o)

    def _create_handlers(self):
        return {
            # Runtime values
            type(None): self._pformat_nil,
            bool: self._pformat_bool,
            int: self._pformat_number,
            float: self._pformat_number,
            str: self._pformat_str,
            LoxFunction: self._pformat_function_value,
            NativeFunction: self._pformat_native,
            Token: self._pformat_token,
            # Expressions
            Literal: self._pformat_literal,
            Grouping: self._pformat_grouping,
            Unary: self._pformat_unary,
            Binary: self._pformat_binary,
            Logical: self._pformat_binary,
            Variable: self._pformat_variable,
            Assign: self._pformat_assign,
            Call: self._pformat_call,
            # Statements
            Expression: self._pformat_expression_stmt,
            Print: self._pformat_print,
            Var: self._pformat_var,
            Block: self._pformat_block,
            If: self._pformat_if,
            While: self._pformat_while,
            Function: self._pformat_function,
            Return: self._pformat_return,
        }

    # --- Values ---

    def _pformat_nil(self, obj, level):
        return 'nil'

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_number(self, obj, level):
        text = repr(obj)
        if text.endswith('.0'):
            text = text[:-2]
        return text

    def _pformat_str(self, obj, level):
        return obj

    def _pformat_function_value(self, obj, level):
        return f"<fn {obj.name}>"

    def _pformat_native(self, obj, level):
        return "<native fn>"

    def _pformat_token(self, obj, level):
        return obj.lexeme

    # --- Expressions ---

    def _parenthesize(self, name: str, *parts: Any, level=0) -> str:
        inner = " ".join(self.pformat(p, level) for p in parts)
        return f"({name} {inner})" if inner else f"({name})"

    def _pformat_literal(self, obj: Literal, level):
        if isinstance(obj.value, str):
            return f'"{obj.value}"'
        return self.pformat(obj.value, level)

    def _pformat_grouping(self, obj: Grouping, level):
        return self._parenthesize("group", obj.expression, level=level)

    def _pformat_unary(self, obj: Unary, level):
        return self._parenthesize(obj.operator.lexeme, obj.right, level=level)

    def _pformat_binary(self, obj, level):
        return self._parenthesize(obj.operator.lexeme, obj.left, obj.right, level=level)

    def _pformat_variable(self, obj: Variable, level):
        return obj.name.lexeme

    def _pformat_assign(self, obj: Assign, level):
        return self._parenthesize("=", obj.name, obj.value, level=level)

    def _pformat_call(self, obj: Call, level):
        return self._parenthesize("call", obj.callee, *obj.arguments, level=level)

    # --- Statements ---

    def _pformat_expression_stmt(self, obj: Expression, level):
        return self._parenthesize(";", obj.expression, level=level)

    def _pformat_print(self, obj: Print, level):
        return self._parenthesize("print", obj.expression, level=level)

    def _pformat_var(self, obj: Var, level):
        if obj.initializer is None:
            return self._parenthesize("var", obj.name, level=level)
        return self._parenthesize("var", obj.name, obj.initializer, level=level)

    def _pformat_body(self, name: str, head: str, statements: List[Stmt], level) -> str:
        if not statements:
            return f"({name}{head})"
        indent = self._indent_char * (level + 1)
        lines = [f"{indent}{self.pformat(s, level + 1)}" for s in statements]
        return f"({name}{head}\n" + "\n".join(lines) + ")"

    def _pformat_block(self, obj: Block, level):
        return self._pformat_body("block", "", obj.statements, level)

    def _pformat_if(self, obj: If, level):
        if obj.else_branch is None:
            return self._parenthesize("if", obj.condition, obj.then_branch, level=level)
        return self._parenthesize("if-else", obj.condition, obj.then_branch, obj.else_branch, level=level)

    def _pformat_while(self, obj: While, level):
        return self._parenthesize("while", obj.condition, obj.body, level=level)

    def _pformat_function(self, obj: Function, level):
        params = " ".join(p.lexeme for p in obj.params)
        return self._pformat_body("fun", f" {obj.name.lexeme} ({params})", obj.body, level)

    def _pformat_return(self, obj: Return, level):
        if obj.value is None:
            return "(return)"
        return self._parenthesize("return", obj.value, level=level)
