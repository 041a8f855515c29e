"""
Recursive-descent parser that turns tokens into Lox statement and expression nodes.

Grammar, lowest precedence first:

    program     -> declaration* EOF
    declaration -> funDecl | varDecl | statement
    statement   -> exprStmt | forStmt | ifStmt | printStmt | returnStmt
                 | whileStmt | block
    expression  -> assignment
    assignment  -> IDENTIFIER "=" assignment | logic_or
    logic_or    -> logic_and ( "or" logic_and )*
    logic_and   -> equality ( "and" equality )*
    equality    -> comparison ( ( "!=" | "==" ) comparison )*
    comparison  -> term ( ( ">" | ">=" | "<" | "<=" ) term )*
    term        -> factor ( ( "-" | "+" ) factor )*
    factor      -> unary ( ( "/" | "*" ) unary )*
    unary       -> ( "!" | "-" ) unary | call
    call        -> primary ( "(" arguments? ")" )*
    primary     -> "true" | "false" | "nil" | NUMBER | STRING
                 | IDENTIFIER | "(" expression ")"
"""
from typing import List, Optional, Tuple

from lox.lox_datatypes import (
    Token, TokenType, ParseError, raise_recursion_limit,
    Expr, Literal, Grouping, Unary, Binary, Logical, Variable, Assign, Call,
    Stmt, Expression, Print, Var, Block, If, While, Function, Return
)

MAX_ARGS = 255

# Tokens that begin a statement; synchronization stops in front of them.
STATEMENT_STARTS = (
    TokenType.CLASS, TokenType.FUN, TokenType.VAR, TokenType.FOR,
    TokenType.IF, TokenType.WHILE, TokenType.PRINT, TokenType.RETURN,
)


class Parser:
    """Parses a token list into statements, collecting every syntax error it can find."""

    def __init__(self, tokens: List[Token]):
        self.tokens = list(tokens)
        # The token helpers rely on a trailing EOF.
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            line = self.tokens[-1].line if self.tokens else 1
            self.tokens.append(Token(TokenType.EOF, "", None, line))
        self.current = 0
        self.errors: List[ParseError] = []

    def parse(self) -> List[Stmt]:
        statements: List[Stmt] = []
        while not self._is_at_end():
            try:
                stmt = self._declaration()
            except RecursionError:
                self._error(self._peek(), "Too much nesting.")
                self._synchronize()
                continue
            if stmt is not None:
                statements.append(stmt)
        return statements

    # --- Declarations and statements ---

    def _declaration(self) -> Optional[Stmt]:
        try:
            if self._match(TokenType.FUN):
                return self._function("function")
            if self._match(TokenType.VAR):
                return self._var_declaration()
            return self._statement()
        except ParseError:
            self._synchronize()
            return None

    def _var_declaration(self) -> Stmt:
        name = self._consume(TokenType.IDENTIFIER, "Expect variable name.")
        initializer = None
        if self._match(TokenType.EQUAL):
            initializer = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after variable declaration.")
        return Var(name, initializer)

    def _function(self, kind: str) -> Function:
        name = self._consume(TokenType.IDENTIFIER, f"Expect {kind} name.")
        self._consume(TokenType.LEFT_PAREN, f"Expect '(' after {kind} name.")
        params: List[Token] = []
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                if len(params) >= MAX_ARGS:
                    self._error(self._peek(), f"Can't have more than {MAX_ARGS} parameters.")
                params.append(self._consume(TokenType.IDENTIFIER, "Expect parameter name."))
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after parameters.")
        self._consume(TokenType.LEFT_BRACE, f"Expect '{{' before {kind} body.")
        body = self._block()
        return Function(name, params, body)

    def _statement(self) -> Stmt:
        if self._match(TokenType.IF):
            return self._if_statement()
        if self._match(TokenType.FOR):
            return self._for_statement()
        if self._match(TokenType.WHILE):
            return self._while_statement()
        if self._match(TokenType.PRINT):
            return self._print_statement()
        if self._match(TokenType.RETURN):
            return self._return_statement()
        if self._match(TokenType.LEFT_BRACE):
            return Block(self._block())
        return self._expression_statement()

    def _if_statement(self) -> Stmt:
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'if'.")
        condition = self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after if condition.")

        then_branch = self._statement()
        else_branch = None
        # A dangling else binds to the nearest if.
        if self._match(TokenType.ELSE):
            else_branch = self._statement()
        return If(condition, then_branch, else_branch)

    def _for_statement(self) -> Stmt:
        """Parses a for loop and desugars it into a while loop inside a block."""
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'for'.")

        if self._match(TokenType.SEMICOLON):
            initializer = None
        elif self._match(TokenType.VAR):
            initializer = self._var_declaration()
        else:
            initializer = self._expression_statement()

        condition = None
        if not self._check(TokenType.SEMICOLON):
            condition = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after loop condition.")

        increment = None
        if not self._check(TokenType.RIGHT_PAREN):
            increment = self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after for clauses.")

        body = self._statement()

        if increment is not None:
            body = Block([body, Expression(increment)])
        if condition is None:
            condition = Literal(True)
        body = While(condition, body)
        if initializer is not None:
            body = Block([initializer, body])
        return body

    def _while_statement(self) -> Stmt:
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'while'.")
        condition = self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after condition.")
        return While(condition, self._statement())

    def _print_statement(self) -> Stmt:
        value = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after value.")
        return Print(value)

    def _return_statement(self) -> Stmt:
        keyword = self._previous()
        value = None
        if not self._check(TokenType.SEMICOLON):
            value = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after return value.")
        return Return(keyword, value)

    def _expression_statement(self) -> Stmt:
        expr = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after expression.")
        return Expression(expr)

    def _block(self) -> List[Stmt]:
        statements: List[Stmt] = []
        while not self._check(TokenType.RIGHT_BRACE) and not self._is_at_end():
            stmt = self._declaration()
            if stmt is not None:
                statements.append(stmt)
        self._consume(TokenType.RIGHT_BRACE, "Expect '}' after block.")
        return statements

    # --- Expressions ---

    def _expression(self) -> Expr:
        return self._assignment()

    def _assignment(self) -> Expr:
        expr = self._or()

        if self._match(TokenType.EQUAL):
            equals = self._previous()
            # Right-associative: a = b = c parses as a = (b = c).
            value = self._assignment()
            if isinstance(expr, Variable):
                return Assign(expr.name, value)
            # Reported, but the parser is not confused, so there is no need to unwind.
            self._error(equals, "Invalid assignment target.")

        return expr

    def _or(self) -> Expr:
        expr = self._and()
        while self._match(TokenType.OR):
            operator = self._previous()
            expr = Logical(expr, operator, self._and())
        return expr

    def _and(self) -> Expr:
        expr = self._equality()
        while self._match(TokenType.AND):
            operator = self._previous()
            expr = Logical(expr, operator, self._equality())
        return expr

    def _equality(self) -> Expr:
        return self._binary_level(self._comparison, TokenType.BANG_EQUAL, TokenType.EQUAL_EQUAL)

    def _comparison(self) -> Expr:
        return self._binary_level(
            self._term,
            TokenType.GREATER, TokenType.GREATER_EQUAL, TokenType.LESS, TokenType.LESS_EQUAL,
        )

    def _term(self) -> Expr:
        return self._binary_level(self._factor, TokenType.MINUS, TokenType.PLUS)

    def _factor(self) -> Expr:
        return self._binary_level(self._unary, TokenType.SLASH, TokenType.STAR)

    def _binary_level(self, operand, *operators: TokenType) -> Expr:
        """Parses a left-associative chain of binary operators over one precedence level."""
        expr = operand()
        while self._match(*operators):
            operator = self._previous()
            expr = Binary(expr, operator, operand())
        return expr

    def _unary(self) -> Expr:
        if self._match(TokenType.BANG, TokenType.MINUS):
            operator = self._previous()
            return Unary(operator, self._unary())
        return self._call()

    def _call(self) -> Expr:
        expr = self._primary()
        while self._match(TokenType.LEFT_PAREN):
            expr = self._finish_call(expr)
        return expr

    def _finish_call(self, callee: Expr) -> Expr:
        arguments: List[Expr] = []
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                if len(arguments) >= MAX_ARGS:
                    self._error(self._peek(), f"Can't have more than {MAX_ARGS} arguments.")
                arguments.append(self._expression())
                if not self._match(TokenType.COMMA):
                    break
        paren = self._consume(TokenType.RIGHT_PAREN, "Expect ')' after arguments.")
        return Call(callee, paren, arguments)

    def _primary(self) -> Expr:
        if self._match(TokenType.FALSE):
            return Literal(False)
        if self._match(TokenType.TRUE):
            return Literal(True)
        if self._match(TokenType.NIL):
            return Literal(None)
        if self._match(TokenType.NUMBER, TokenType.STRING):
            return Literal(self._previous().literal)
        if self._match(TokenType.IDENTIFIER):
            return Variable(self._previous())
        if self._match(TokenType.LEFT_PAREN):
            expr = self._expression()
            self._consume(TokenType.RIGHT_PAREN, "Expect ')' after expression.")
            return Grouping(expr)
        raise self._error(self._peek(), "Expect expression.")

    # --- Token helpers ---

    def _match(self, *types: TokenType) -> bool:
        for t in types:
            if self._check(t):
                self._advance()
                return True
        return False

    def _check(self, type_: TokenType) -> bool:
        if self._is_at_end():
            return False
        return self._peek().type == type_

    def _advance(self) -> Token:
        if not self._is_at_end():
            self.current += 1
        return self._previous()

    def _consume(self, type_: TokenType, message: str) -> Token:
        if self._check(type_):
            return self._advance()
        raise self._error(self._peek(), message)

    def _is_at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self) -> Token:
        return self.tokens[self.current]

    def _previous(self) -> Token:
        return self.tokens[self.current - 1]

    def _error(self, token: Token, message: str) -> ParseError:
        """Records a syntax error and returns it; callers raise it when they must unwind."""
        error = ParseError(token, message)
        self.errors.append(error)
        return error

    def _synchronize(self):
        """Discards tokens until the start of the next statement."""
        self._advance()
        while not self._is_at_end():
            if self._previous().type == TokenType.SEMICOLON:
                return
            if self._peek().type in STATEMENT_STARTS:
                return
            self._advance()


def parse(tokens: List[Token]) -> Tuple[List[Stmt], List[ParseError]]:
    """Parses tokens into statements. Declarations that failed to parse are left out."""
    raise_recursion_limit()
    parser = Parser(tokens)
    statements = parser.parse()
    return statements, parser.errors
