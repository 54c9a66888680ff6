"""
NEXUS Lexer Package

Implements the lexical analyzer (tokenizer) for the NEXUS scripting language.

Key Features:
- Decimal, hexadecimal, binary and octal numeric literals
- Single and double quoted strings with full escape support
- Line and block comments
- Greedy operator matching, ML domain keywords
- Source location tracking on every token and error

Author: xwest
"""

from .tokens import Token, TokenType, SourceLocation
from .lexer import Lexer, tokenize_string, tokenize_file
from .errors import LexerError, Diagnostic

__all__ = [
    "Lexer",
    "Token",
    "TokenType",
    "SourceLocation",
    "LexerError",
    "Diagnostic",
    "tokenize_string",
    "tokenize_file",
]
