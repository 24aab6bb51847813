from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class MavaError(Exception):
    """Base class for interpreter errors."""


class MavaParseError(MavaError):
    """Raised when lexing or parsing fails."""


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


KEYWORDS = {
    "def": "DEF",
    "if": "IF",
    "else": "ELSE",
    "for": "FOR",
    "to": "TO",
    "while": "WHILE",
    "return": "RETURN",
    "true": "TRUE",
    "false": "FALSE",
    "null": "NULL",
    "in": "IN",
}

# Longest operators first so "<=" wins over "<".
OPERATORS = (
    ("&&", "AND"),
    ("||", "OR"),
    ("==", "EQ"),
    ("!=", "NEQ"),
    ("<=", "LTE"),
    (">=", "GTE"),
    ("<", "LT"),
    (">", "GT"),
    ("+", "PLUS"),
    ("-", "MINUS"),
    ("*", "STAR"),
    ("/", "SLASH"),
    ("%", "PERCENT"),
    ("^", "CARET"),
    ("!", "BANG"),
    ("?", "QUESTION"),
    (":", "COLON"),
    ("=", "EQUALS"),
    ("(", "LPAREN"),
    (")", "RPAREN"),
    ("[", "LBRACKET"),
    ("]", "RBRACKET"),
    ("{", "LBRACE"),
    ("}", "RBRACE"),
    (",", "COMMA"),
)


class Lexer:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1
        # Open "(" / "[" count; line breaks inside them are not separators.
        self.depth = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch == " " or ch == "\t" or ch == "\r":
                _advance()
                continue
            if ch == "\n" and self.depth > 0:
                _advance()
                continue
            # Semicolon acts as a newline-token alias (outside string literals)
            if ch == "\n" or ch == ";":
                tokens_append(Token("NEWLINE", "\n", self.line, self.column))
                _advance()
                continue
            if ch == "/" and text.startswith("//", self.index):
                self._consume_line_comment()
                continue
            if ch == "/" and text.startswith("/*", self.index):
                self._consume_block_comment()
                continue
            if ch in ('"', "'"):
                tokens_append(self._consume_string())
                continue
            if ch.isdigit():
                tokens_append(self._consume_number())
                continue
            if self._is_identifier_start(ch):
                tokens_append(self._consume_identifier())
                continue
            token = self._consume_operator()
            if token is None:
                raise MavaParseError(
                    f"Unexpected character '{ch}' at {self.filename}:{self.line}:{self.column}"
                )
            tokens_append(token)
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _consume_line_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_block_comment(self) -> None:
        line, col = self.line, self.column
        end = self.text.find("*/", self.index + 2)
        if end == -1:
            raise MavaParseError(
                f"Unterminated block comment at {self.filename}:{line}:{col}"
            )
        while self.index < end + 2:
            self._advance()

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        while not self._eof and self._peek().isdigit():
            chars.append(self._peek())
            self._advance()
        if not self._eof and self._peek() == ".":
            chars.append(".")
            self._advance()
            while not self._eof and self._peek().isdigit():
                chars.append(self._peek())
                self._advance()
        return Token("NUMBER", "".join(chars), line, col)

    def _consume_string(self) -> Token:
        # The raw text is kept (quotes and backslashes included); escapes are
        # resolved when the literal is evaluated.
        line, col = self.line, self.column
        opening = self._peek()
        chars: List[str] = [opening]
        self._advance()  # consume opening quote
        while not self._eof:
            ch = self._peek()
            if ch == "\n":
                break
            if ch == "\\":
                chars.append(ch)
                self._advance()
                if self._eof or self._peek() == "\n":
                    break
                chars.append(self._peek())
                self._advance()
                continue
            chars.append(ch)
            self._advance()
            if ch == opening:
                return Token("STRING", "".join(chars), line, col)
        raise MavaParseError(
            f"Unterminated string literal at {self.filename}:{line}:{col}"
        )

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        while not self._eof and self._is_identifier_part(self._peek()):
            chars.append(self._peek())
            self._advance()
        value = "".join(chars)
        token_type: str = KEYWORDS.get(value, "IDENT")
        return Token(token_type, value, line, col)

    def _consume_operator(self) -> Optional[Token]:
        for symbol, token_type in OPERATORS:
            if self.text.startswith(symbol, self.index):
                token = Token(token_type, symbol, self.line, self.column)
                for _ in symbol:
                    self._advance()
                if token_type in ("LPAREN", "LBRACKET"):
                    self.depth += 1
                elif token_type in ("RPAREN", "RBRACKET") and self.depth > 0:
                    self.depth -= 1
                return token
        return None

    def _is_identifier_start(self, ch: str) -> bool:
        return ch.isalpha() or ch == "_"

    def _is_identifier_part(self, ch: str) -> bool:
        return ch.isalnum() or ch == "_"

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
