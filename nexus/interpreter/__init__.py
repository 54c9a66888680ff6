"""
NEXUS Interpreter Package

Token-driven evaluator: statements and expressions are executed straight
from the lexer's token list by a cursor-based precedence climber.

Author: xwest
"""

from .interpreter import Interpreter
from .completion import Completion, CompletionType
from .errors import ParseError
from .builtins import create_builtins, create_math_module

__all__ = [
    "Interpreter",
    "Completion",
    "CompletionType",
    "ParseError",
    "create_builtins",
    "create_math_module",
]
