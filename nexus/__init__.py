"""
NEXUS Scripting Language

A small dynamically-typed scripting language with native syntax for
numbers, strings, arrays, objects and tensors, plus model/train/predict
statements backed by a numpy neural network.

Architecture:
    nexus/
    ├── lexer/           # Tokenization and lexical analysis
    ├── runtime/         # Values, tensors, environments, runtime errors
    ├── interpreter/     # Token-driven evaluator and builtins
    ├── ml/              # Neural network engine
    ├── config.py        # Interpreter settings
    └── cli.py           # Command line runner and REPL

Author: xwest
License: MIT
"""

__version__ = "0.1.0"
__author__ = "xwest"
__email__ = "dev@neuralscript.org"
__license__ = "MIT"

from .config import InterpreterConfig
from .lexer import Lexer, LexerError
from .interpreter import Interpreter, ParseError
from .runtime import Value, Environment, NexusRuntimeError

__all__ = [
    # Core classes
    "Lexer",
    "Interpreter",
    "InterpreterConfig",
    "Value",
    "Environment",

    # Errors
    "LexerError",
    "ParseError",
    "NexusRuntimeError",

    # Version info
    "__version__",
    "__author__",
    "__email__",
    "__license__",
]
