"""Parsing module for path expressions."""

from typed_beans.parsing.path_parser import PathParser, parse_path
from typed_beans.parsing.path_lexer import PathLexer

__all__ = [
    "PathLexer",
    "PathParser",
    "parse_path",
]
