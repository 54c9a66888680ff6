"""
Token definitions for the NEXUS lexer.

This module defines all token types supported by NEXUS, including:
- Keywords (control flow, access modifiers, types, ML domain, modules)
- Operators (arithmetic, assignment, comparison, logical, bitwise, shift)
- Literals (numbers, strings, booleans, null)
- Punctuation, delimiters and structural markers

Author: xwest
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any


class TokenType(Enum):
    """
    Enumeration of all token types in NEXUS.

    Organized by category for clarity and maintainability.
    """

    # ========================================================================
    # Literals
    # ========================================================================
    NUMBER = auto()                 # 42, 3.14, 1e-3, 0xFF, 0b1010, 0o17
    STRING = auto()                 # "hello", 'world'
    TRUE = auto()                   # true
    FALSE = auto()                  # false
    NULL = auto()                   # null, nil
    IDENTIFIER = auto()             # variable_name

    # ========================================================================
    # Keywords - Control Flow
    # ========================================================================
    CLASS = auto()
    FUNCTION = auto()               # function, fn
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    FOR = auto()
    RETURN = auto()
    VAR = auto()
    LET = auto()
    CONST = auto()
    BREAK = auto()
    CONTINUE = auto()
    SWITCH = auto()
    CASE = auto()
    DEFAULT = auto()
    TRY = auto()
    CATCH = auto()
    FINALLY = auto()
    THROW = auto()

    # ========================================================================
    # Keywords - Access Modifiers
    # ========================================================================
    PUBLIC = auto()
    PRIVATE = auto()
    PROTECTED = auto()
    STATIC = auto()
    FINAL = auto()
    ABSTRACT = auto()
    VIRTUAL = auto()

    # ========================================================================
    # Keywords - Data Types
    # ========================================================================
    VOID = auto()
    INT = auto()
    LONG = auto()
    FLOAT = auto()
    DOUBLE = auto()
    STRING_TYPE = auto()
    BOOLEAN_TYPE = auto()
    CHAR = auto()
    BYTE = auto()
    SHORT = auto()

    # ========================================================================
    # Keywords - ML Specific
    # ========================================================================
    TENSOR = auto()
    MATRIX = auto()
    MODEL = auto()
    TRAIN = auto()
    PREDICT = auto()
    LAYER = auto()
    OPTIMIZER = auto()
    LOSS = auto()
    METRIC = auto()
    DATASET = auto()
    BATCH = auto()
    EPOCH = auto()
    LEARNING_RATE = auto()

    # Advanced ML
    CONVOLUTION = auto()
    POOLING = auto()
    LSTM = auto()
    GRU = auto()
    ATTENTION = auto()
    TRANSFORMER = auto()
    EMBEDDING = auto()
    DROPOUT = auto()
    BATCH_NORM = auto()
    ACTIVATION = auto()

    # ========================================================================
    # Keywords - Modules
    # ========================================================================
    IMPORT = auto()
    EXPORT = auto()
    FROM = auto()
    AS = auto()
    PACKAGE = auto()
    NAMESPACE = auto()

    # ========================================================================
    # Operators
    # ========================================================================

    # Arithmetic
    PLUS = auto()                   # +
    MINUS = auto()                  # -
    MULTIPLY = auto()               # *
    DIVIDE = auto()                 # /
    MODULO = auto()                 # %
    POWER = auto()                  # **
    MATRIX_MULTIPLY = auto()        # @

    # Assignment
    ASSIGN = auto()                 # =
    PLUS_ASSIGN = auto()            # +=
    MINUS_ASSIGN = auto()           # -=
    MULTIPLY_ASSIGN = auto()        # *=
    DIVIDE_ASSIGN = auto()          # /=
    MODULO_ASSIGN = auto()          # %=
    POWER_ASSIGN = auto()           # **=
    BIT_AND_ASSIGN = auto()         # &=
    BIT_OR_ASSIGN = auto()          # |=
    BIT_XOR_ASSIGN = auto()         # ^=
    LEFT_SHIFT_ASSIGN = auto()      # <<=
    RIGHT_SHIFT_ASSIGN = auto()     # >>=

    # Comparison
    EQUAL = auto()                  # ==
    NOT_EQUAL = auto()              # !=
    LESS_THAN = auto()              # <
    GREATER_THAN = auto()           # >
    LESS_EQUAL = auto()             # <=
    GREATER_EQUAL = auto()          # >=

    # Logical
    LOGICAL_AND = auto()            # &&
    LOGICAL_OR = auto()             # ||
    LOGICAL_NOT = auto()            # !

    # Bitwise
    BIT_AND = auto()                # &
    BIT_OR = auto()                 # |
    BIT_XOR = auto()                # ^
    BIT_NOT = auto()                # ~
    LEFT_SHIFT = auto()             # <<
    RIGHT_SHIFT = auto()            # >>

    # Increment/Decrement
    INCREMENT = auto()              # ++
    DECREMENT = auto()              # --

    # Ternary
    QUESTION = auto()               # ?
    COLON = auto()                  # :

    # ========================================================================
    # Punctuation and Delimiters
    # ========================================================================
    SEMICOLON = auto()              # ;
    COMMA = auto()                  # ,
    DOT = auto()                    # .
    ARROW = auto()                  # ->
    DOUBLE_COLON = auto()           # ::
    LEFT_PAREN = auto()             # (
    RIGHT_PAREN = auto()            # )
    LEFT_BRACE = auto()             # {
    RIGHT_BRACE = auto()            # }
    LEFT_BRACKET = auto()           # [
    RIGHT_BRACKET = auto()          # ]

    # ========================================================================
    # Special Tokens
    # ========================================================================
    NEWLINE = auto()                # Newline (statement separator)
    EOF = auto()                    # End of input
    COMMENT = auto()                # Comments (never emitted by tokenize)
    ERROR = auto()                  # Malformed input (recovering scanner only)


@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in the source code.

    Used for error reporting and debugging information.
    """
    filename: str
    line: int
    column: int
    offset: int  # Character offset from start of source

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"

    def __repr__(self) -> str:
        return f"SourceLocation({self.filename!r}, {self.line}, {self.column}, {self.offset})"


@dataclass(frozen=True)
class Token:
    """
    Represents a lexical token in the NEXUS language.

    Contains the token type, lexeme (raw text), semantic value
    and source location.
    """
    type: TokenType
    lexeme: str                     # Raw text from source
    value: Any                      # Parsed value (float for NUMBER, str for STRING)
    location: SourceLocation

    def __str__(self) -> str:
        if self.value is not None and self.value != self.lexeme:
            return f"{self.type.name}({self.lexeme!r} -> {self.value!r})"
        return f"{self.type.name}({self.lexeme!r})"

    def __repr__(self) -> str:
        return (f"Token({self.type.name}, {self.lexeme!r}, "
                f"{self.value!r}, {self.location!r})")

    @property
    def line(self) -> int:
        return self.location.line

    @property
    def column(self) -> int:
        return self.location.column

    @property
    def offset(self) -> int:
        return self.location.offset

    @property
    def is_literal(self) -> bool:
        """Check if this token is a literal value."""
        return self.type in LITERALS

    @property
    def is_keyword(self) -> bool:
        """Check if this token is a keyword."""
        return self.type in KEYWORD_TYPES

    @property
    def is_operator(self) -> bool:
        """Check if this token is an operator."""
        return self.type in OPERATOR_TYPES

    @property
    def is_identifier(self) -> bool:
        """Check if this token is an identifier."""
        return self.type == TokenType.IDENTIFIER


# Lookup tables for keyword/operator recognition

CONTROL_KEYWORDS = {
    "class": TokenType.CLASS,
    "function": TokenType.FUNCTION,
    "fn": TokenType.FUNCTION,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "for": TokenType.FOR,
    "return": TokenType.RETURN,
    "var": TokenType.VAR,
    "let": TokenType.LET,
    "const": TokenType.CONST,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
    "nil": TokenType.NULL,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "switch": TokenType.SWITCH,
    "case": TokenType.CASE,
    "default": TokenType.DEFAULT,
    "try": TokenType.TRY,
    "catch": TokenType.CATCH,
    "finally": TokenType.FINALLY,
    "throw": TokenType.THROW,
}

MODIFIER_KEYWORDS = {
    "public": TokenType.PUBLIC,
    "private": TokenType.PRIVATE,
    "protected": TokenType.PROTECTED,
    "static": TokenType.STATIC,
    "final": TokenType.FINAL,
    "abstract": TokenType.ABSTRACT,
    "virtual": TokenType.VIRTUAL,
}

TYPE_KEYWORDS = {
    "void": TokenType.VOID,
    "int": TokenType.INT,
    "long": TokenType.LONG,
    "float": TokenType.FLOAT,
    "double": TokenType.DOUBLE,
    "string": TokenType.STRING_TYPE,
    "boolean": TokenType.BOOLEAN_TYPE,
    "bool": TokenType.BOOLEAN_TYPE,
    "char": TokenType.CHAR,
    "byte": TokenType.BYTE,
    "short": TokenType.SHORT,
}

ML_KEYWORDS = {
    "tensor": TokenType.TENSOR,
    "matrix": TokenType.MATRIX,
    "model": TokenType.MODEL,
    "train": TokenType.TRAIN,
    "predict": TokenType.PREDICT,
    "layer": TokenType.LAYER,
    "optimizer": TokenType.OPTIMIZER,
    "loss": TokenType.LOSS,
    "metric": TokenType.METRIC,
    "dataset": TokenType.DATASET,
    "batch": TokenType.BATCH,
    "epoch": TokenType.EPOCH,
    "learning_rate": TokenType.LEARNING_RATE,
    "convolution": TokenType.CONVOLUTION,
    "pooling": TokenType.POOLING,
    "lstm": TokenType.LSTM,
    "gru": TokenType.GRU,
    "attention": TokenType.ATTENTION,
    "transformer": TokenType.TRANSFORMER,
    "embedding": TokenType.EMBEDDING,
    "dropout": TokenType.DROPOUT,
    "batch_norm": TokenType.BATCH_NORM,
    "activation": TokenType.ACTIVATION,
}

MODULE_KEYWORDS = {
    "import": TokenType.IMPORT,
    "export": TokenType.EXPORT,
    "from": TokenType.FROM,
    "as": TokenType.AS,
    "package": TokenType.PACKAGE,
    "namespace": TokenType.NAMESPACE,
}

# All keywords combined
KEYWORDS = {
    **CONTROL_KEYWORDS,
    **MODIFIER_KEYWORDS,
    **TYPE_KEYWORDS,
    **ML_KEYWORDS,
    **MODULE_KEYWORDS,
}

KEYWORD_TYPES = frozenset(KEYWORDS.values()) - {TokenType.TRUE, TokenType.FALSE, TokenType.NULL}

# Operators grouped by length; the lexer tries longer ones first
OPERATORS_3 = {
    "**=": TokenType.POWER_ASSIGN,
    "<<=": TokenType.LEFT_SHIFT_ASSIGN,
    ">>=": TokenType.RIGHT_SHIFT_ASSIGN,
}

OPERATORS_2 = {
    "**": TokenType.POWER,
    "+=": TokenType.PLUS_ASSIGN,
    "-=": TokenType.MINUS_ASSIGN,
    "*=": TokenType.MULTIPLY_ASSIGN,
    "/=": TokenType.DIVIDE_ASSIGN,
    "%=": TokenType.MODULO_ASSIGN,
    "&=": TokenType.BIT_AND_ASSIGN,
    "|=": TokenType.BIT_OR_ASSIGN,
    "^=": TokenType.BIT_XOR_ASSIGN,
    "==": TokenType.EQUAL,
    "!=": TokenType.NOT_EQUAL,
    "<=": TokenType.LESS_EQUAL,
    ">=": TokenType.GREATER_EQUAL,
    "&&": TokenType.LOGICAL_AND,
    "||": TokenType.LOGICAL_OR,
    "<<": TokenType.LEFT_SHIFT,
    ">>": TokenType.RIGHT_SHIFT,
    "++": TokenType.INCREMENT,
    "--": TokenType.DECREMENT,
    "->": TokenType.ARROW,
    "::": TokenType.DOUBLE_COLON,
}

OPERATORS_1 = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MULTIPLY,
    "/": TokenType.DIVIDE,
    "%": TokenType.MODULO,
    "@": TokenType.MATRIX_MULTIPLY,
    "=": TokenType.ASSIGN,
    "<": TokenType.LESS_THAN,
    ">": TokenType.GREATER_THAN,
    "!": TokenType.LOGICAL_NOT,
    "&": TokenType.BIT_AND,
    "|": TokenType.BIT_OR,
    "^": TokenType.BIT_XOR,
    "~": TokenType.BIT_NOT,
    "?": TokenType.QUESTION,
    ":": TokenType.COLON,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "{": TokenType.LEFT_BRACE,
    "}": TokenType.RIGHT_BRACE,
    "[": TokenType.LEFT_BRACKET,
    "]": TokenType.RIGHT_BRACKET,
}

OPERATORS = {**OPERATORS_3, **OPERATORS_2, **OPERATORS_1}

OPERATOR_TYPES = frozenset(OPERATORS.values()) - {
    TokenType.SEMICOLON, TokenType.COMMA, TokenType.DOT, TokenType.ARROW,
    TokenType.DOUBLE_COLON, TokenType.LEFT_PAREN, TokenType.RIGHT_PAREN,
    TokenType.LEFT_BRACE, TokenType.RIGHT_BRACE, TokenType.LEFT_BRACKET,
    TokenType.RIGHT_BRACKET,
}

LITERALS = frozenset({
    TokenType.NUMBER, TokenType.STRING, TokenType.TRUE,
    TokenType.FALSE, TokenType.NULL,
})

ASSIGNMENT_OPERATORS = frozenset({
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.MULTIPLY_ASSIGN, TokenType.DIVIDE_ASSIGN, TokenType.MODULO_ASSIGN,
    TokenType.POWER_ASSIGN, TokenType.BIT_AND_ASSIGN, TokenType.BIT_OR_ASSIGN,
    TokenType.BIT_XOR_ASSIGN, TokenType.LEFT_SHIFT_ASSIGN, TokenType.RIGHT_SHIFT_ASSIGN,
})

# Compound assignment -> underlying binary operator
COMPOUND_ASSIGNMENTS = {
    TokenType.PLUS_ASSIGN: TokenType.PLUS,
    TokenType.MINUS_ASSIGN: TokenType.MINUS,
    TokenType.MULTIPLY_ASSIGN: TokenType.MULTIPLY,
    TokenType.DIVIDE_ASSIGN: TokenType.DIVIDE,
    TokenType.MODULO_ASSIGN: TokenType.MODULO,
    TokenType.POWER_ASSIGN: TokenType.POWER,
    TokenType.BIT_AND_ASSIGN: TokenType.BIT_AND,
    TokenType.BIT_OR_ASSIGN: TokenType.BIT_OR,
    TokenType.BIT_XOR_ASSIGN: TokenType.BIT_XOR,
    TokenType.LEFT_SHIFT_ASSIGN: TokenType.LEFT_SHIFT,
    TokenType.RIGHT_SHIFT_ASSIGN: TokenType.RIGHT_SHIFT,
}

# Operators that associate right-to-left; everything else folds left
RIGHT_ASSOCIATIVE = ASSIGNMENT_OPERATORS | {TokenType.POWER}

# Binary operator precedence, higher binds tighter
PRECEDENCE = {
    **{op: 1 for op in ASSIGNMENT_OPERATORS},
    TokenType.QUESTION: 2,
    TokenType.LOGICAL_OR: 3,
    TokenType.LOGICAL_AND: 4,
    TokenType.BIT_OR: 5,
    TokenType.BIT_XOR: 6,
    TokenType.BIT_AND: 7,
    TokenType.EQUAL: 8,
    TokenType.NOT_EQUAL: 8,
    TokenType.LESS_THAN: 9,
    TokenType.GREATER_THAN: 9,
    TokenType.LESS_EQUAL: 9,
    TokenType.GREATER_EQUAL: 9,
    TokenType.LEFT_SHIFT: 10,
    TokenType.RIGHT_SHIFT: 10,
    TokenType.PLUS: 11,
    TokenType.MINUS: 11,
    TokenType.MULTIPLY: 12,
    TokenType.DIVIDE: 12,
    TokenType.MODULO: 12,
    TokenType.MATRIX_MULTIPLY: 12,
    TokenType.POWER: 14,
}


def is_right_associative(token_type: TokenType) -> bool:
    """Check the associativity table for an operator."""
    return token_type in RIGHT_ASSOCIATIVE


def get_operator_precedence(token_type: TokenType) -> int:
    """Get the binding power of a binary operator (0 if not a binary operator)."""
    return PRECEDENCE.get(token_type, 0)


def is_assignment_operator(token_type: TokenType) -> bool:
    return token_type in ASSIGNMENT_OPERATORS
