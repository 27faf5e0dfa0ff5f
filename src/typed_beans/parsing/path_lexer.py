"""Lexer for property path expressions."""

import ply.lex as lex

from typed_beans.errors import MalformedPathError


class PathLexer:
    """Lexer for tokenizing path expressions like ``collection[0].boolean``."""

    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "DOT",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
    ]

    t_DOT = r"\."
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"

    # Paths are bit-exact: no whitespace is skipped
    t_ignore = ""

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[A-Za-z_][A-Za-z0-9_]*"
        return t

    def t_error(self, t: lex.LexToken) -> None:
        raise MalformedPathError(
            f"Illegal character {t.value[0]!r} at position {t.lexpos}"
        )

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
