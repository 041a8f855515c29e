"""
Turns Lox source text into a flat list of tokens.
"""
from typing import List, Tuple, Optional

from lox.lox_datatypes import Token, TokenType, LexError

KEYWORDS = {
    "and": TokenType.AND,
    "class": TokenType.CLASS,
    "else": TokenType.ELSE,
    "false": TokenType.FALSE,
    "for": TokenType.FOR,
    "fun": TokenType.FUN,
    "if": TokenType.IF,
    "nil": TokenType.NIL,
    "or": TokenType.OR,
    "print": TokenType.PRINT,
    "return": TokenType.RETURN,
    "super": TokenType.SUPER,
    "this": TokenType.THIS,
    "true": TokenType.TRUE,
    "var": TokenType.VAR,
    "while": TokenType.WHILE,
}

SINGLE_CHAR_TOKENS = {
    '(': TokenType.LEFT_PAREN,
    ')': TokenType.RIGHT_PAREN,
    '{': TokenType.LEFT_BRACE,
    '}': TokenType.RIGHT_BRACE,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
    '-': TokenType.MINUS,
    '+': TokenType.PLUS,
    ';': TokenType.SEMICOLON,
    '*': TokenType.STAR,
}

# Operators that become a two-character token when followed by '='.
EQUAL_SUFFIXED = {
    '!': (TokenType.BANG, TokenType.BANG_EQUAL),
    '=': (TokenType.EQUAL, TokenType.EQUAL_EQUAL),
    '<': (TokenType.LESS, TokenType.LESS_EQUAL),
    '>': (TokenType.GREATER, TokenType.GREATER_EQUAL),
}


def _is_digit(c: str) -> bool:
    return '0' <= c <= '9'


def _is_alpha(c: str) -> bool:
    return ('a' <= c <= 'z') or ('A' <= c <= 'Z') or c == '_'


def _is_alphanumeric(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


class Lexer:
    """Single left-to-right scanner with one character of lookahead.

    Lexical errors are collected rather than raised; scanning always runs to
    the end of the input and finishes with an EOF token.
    """
    def __init__(self, source: str):
        self.source = source
        self.tokens: List[Token] = []
        self.errors: List[LexError] = []
        self.start = 0
        self.current = 0
        self.line = 1
        # Index of the first character of the current line, for columns.
        self.line_start = 0
        self.start_line = 1
        self.start_col = 1

    def scan_tokens(self) -> List[Token]:
        while not self._is_at_end():
            self.start = self.current
            self.start_line = self.line
            self.start_col = self.start - self.line_start + 1
            self._scan_token()

        self.tokens.append(Token(TokenType.EOF, "", None, self.line, self.current - self.line_start + 1))
        return self.tokens

    def _scan_token(self):
        c = self._advance()

        if c in SINGLE_CHAR_TOKENS:
            self._add_token(SINGLE_CHAR_TOKENS[c])
            return
        if c in EQUAL_SUFFIXED:
            plain, suffixed = EQUAL_SUFFIXED[c]
            self._add_token(suffixed if self._match('=') else plain)
            return

        match c:
            case '/':
                if self._match('/'):
                    # A comment runs to the end of the line.
                    while self._peek() != '\n' and not self._is_at_end():
                        self._advance()
                else:
                    self._add_token(TokenType.SLASH)
            case ' ' | '\r' | '\t':
                pass
            case '\n':
                self._newline()
            case '"':
                self._string()
            case _ if _is_digit(c):
                self._number()
            case _ if _is_alpha(c):
                self._identifier()
            case _:
                self._error("Unexpected character.")

    def _string(self):
        while self._peek() != '"' and not self._is_at_end():
            if self._peek() == '\n':
                self._advance()
                self._newline()
                continue
            self._advance()

        if self._is_at_end():
            self._error("Unterminated string.", line=self.line)
            return

        # The closing quote.
        self._advance()
        self._add_token(TokenType.STRING, self.source[self.start + 1:self.current - 1])

    def _number(self):
        while _is_digit(self._peek()):
            self._advance()

        # A fractional part needs at least one digit after the dot.
        if self._peek() == '.' and _is_digit(self._peek_next()):
            self._advance()
            while _is_digit(self._peek()):
                self._advance()

        self._add_token(TokenType.NUMBER, float(self.source[self.start:self.current]))

    def _identifier(self):
        while _is_alphanumeric(self._peek()):
            self._advance()
        text = self.source[self.start:self.current]
        self._add_token(KEYWORDS.get(text, TokenType.IDENTIFIER))

    # --- Character helpers ---

    def _is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def _advance(self) -> str:
        c = self.source[self.current]
        self.current += 1
        return c

    def _match(self, expected: str) -> bool:
        if self._is_at_end() or self.source[self.current] != expected:
            return False
        self.current += 1
        return True

    def _peek(self) -> str:
        if self._is_at_end():
            return '\0'
        return self.source[self.current]

    def _peek_next(self) -> str:
        if self.current + 1 >= len(self.source):
            return '\0'
        return self.source[self.current + 1]

    def _newline(self):
        self.line += 1
        self.line_start = self.current

    def _add_token(self, type_: TokenType, literal=None):
        text = self.source[self.start:self.current]
        self.tokens.append(Token(type_, text, literal, self.start_line, self.start_col))

    def _error(self, message: str, line: Optional[int] = None):
        if line is None:
            self.errors.append(LexError(self.start_line, message, self.start_col))
        else:
            self.errors.append(LexError(line, message))


def scan(source: str) -> Tuple[List[Token], List[LexError]]:
    """Scans source into tokens. Returns the tokens (always ending in EOF) and any lexical errors."""
    lexer = Lexer(source)
    tokens = lexer.scan_tokens()
    return tokens, lexer.errors
