"""Parser for property path expressions."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import ply.yacc as yacc

from typed_beans.errors import MalformedPathError
from typed_beans.parsing.path_lexer import PathLexer
from typed_beans.path import IndexedName, KeyedName, Name, PathExpression


class PathParser:
    """Parser for the path grammar.

    path    := segment ('.' segment)*
    segment := identifier ['[' digits? ']' | '(' key ')']
    """

    tokens = PathLexer.tokens

    def __init__(self) -> None:
        self.lexer = PathLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_path_single(self, p: yacc.YaccProduction) -> None:
        """path : segment"""
        p[0] = [p[1]]

    def p_path_multiple(self, p: yacc.YaccProduction) -> None:
        """path : path DOT segment"""
        p[0] = p[1] + [p[3]]

    def p_segment_name(self, p: yacc.YaccProduction) -> None:
        """segment : IDENTIFIER"""
        p[0] = Name(p[1])

    def p_segment_append(self, p: yacc.YaccProduction) -> None:
        """segment : IDENTIFIER LBRACKET RBRACKET"""
        p[0] = IndexedName(p[1], None)

    def p_segment_indexed(self, p: yacc.YaccProduction) -> None:
        """segment : IDENTIFIER LBRACKET INTEGER RBRACKET"""
        p[0] = IndexedName(p[1], p[3])

    def p_segment_keyed(self, p: yacc.YaccProduction) -> None:
        """segment : IDENTIFIER LPAREN key RPAREN"""
        p[0] = KeyedName(p[1], p[3])

    def p_key(self, p: yacc.YaccProduction) -> None:
        """key : IDENTIFIER
               | INTEGER"""
        p[0] = str(p[1])

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise MalformedPathError(f"Syntax error at {p.value!r} (position {p.lexpos})")
        else:
            raise MalformedPathError("Syntax error at end of path")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> PathExpression:
        """Parse a path expression string."""
        if not isinstance(data, str):
            raise MalformedPathError(f"Path must be a string, got {type(data).__name__}")
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        segments = self.parser.parse(data, lexer=self.lexer.lexer)
        if not segments:
            raise MalformedPathError(f"Empty path expression {data!r}")
        return PathExpression(tuple(segments))


_PARSER = PathParser()


@lru_cache(maxsize=1024)
def _parse_cached(text: str) -> PathExpression:
    return _PARSER.parse(text)


def parse_path(path: str | PathExpression) -> PathExpression:
    """Parse a path, returning already-parsed expressions unchanged.

    Raises:
        MalformedPathError: On unbalanced brackets, non-numeric indices or
            names that are not identifiers.
    """
    if isinstance(path, PathExpression):
        return path
    if not isinstance(path, str):
        raise MalformedPathError(f"Path must be a string, got {type(path).__name__}")
    return _parse_cached(path)
