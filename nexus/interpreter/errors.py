"""
Syntax error handling for the NEXUS evaluator.

NEXUS has no separate parsing phase: syntax is checked while the
evaluator walks the token list. A ParseError always names the offending
token and what was expected in its place.

Author: xwest
"""

from typing import Optional, List, Union

from ..lexer.tokens import Token, TokenType, SourceLocation
from ..lexer.errors import Diagnostic


class ParseError(Exception):
    """
    Exception raised when the evaluator meets a syntax violation.

    Contains detailed diagnostic information for error reporting.
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation],
        token: Optional[Token] = None,
        expected: Optional[str] = None,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.diagnostic = Diagnostic(
            message=message,
            location=location,
            severity="error",
            code=code,
            help_text=help_text,
            suggestions=suggestions
        )
        self.token = token
        self.expected = expected

    @property
    def location(self) -> Optional[SourceLocation]:
        return self.diagnostic.location

    @property
    def code(self) -> Optional[str]:
        return self.diagnostic.code

    def __str__(self) -> str:
        return str(self.diagnostic)


# Common parser error codes for categorization
PARSER_ERROR_CODES = {
    "P001": "Unexpected token",
    "P003": "Missing statement terminator",
    "P005": "Invalid expression",
    "P006": "Invalid control flow statement",
    "P007": "Invalid assignment target",
    "P010": "Unexpected end of input",
    "P013": "Unsupported construct",
}

TOKEN_DISPLAY = {
    TokenType.SEMICOLON: "';'",
    TokenType.COMMA: "','",
    TokenType.COLON: "':'",
    TokenType.LEFT_PAREN: "'('",
    TokenType.RIGHT_PAREN: "')'",
    TokenType.LEFT_BRACKET: "'['",
    TokenType.RIGHT_BRACKET: "']'",
    TokenType.LEFT_BRACE: "'{'",
    TokenType.RIGHT_BRACE: "'}'",
    TokenType.ASSIGN: "'='",
    TokenType.IDENTIFIER: "identifier",
    TokenType.STRING: "string",
    TokenType.NUMBER: "number",
}

TOKEN_SUGGESTIONS = {
    TokenType.SEMICOLON: ["Add a semicolon ';' to end the statement"],
    TokenType.RIGHT_PAREN: ["Add a closing parenthesis ')'"],
    TokenType.RIGHT_BRACKET: ["Add a closing bracket ']'"],
    TokenType.RIGHT_BRACE: ["Add a closing brace '}'"],
    TokenType.LEFT_BRACE: ["Add an opening brace '{' to start a block"],
    TokenType.ASSIGN: ["Add an assignment operator '='"],
}


def describe_token(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of input"
    if token.type == TokenType.NEWLINE:
        return "newline"
    return f"'{token.lexeme}'"


def create_unexpected_token_error(expected: Union[TokenType, str], found: Token) -> ParseError:
    """Create an error for an unexpected token."""
    if isinstance(expected, TokenType):
        expected_str = TOKEN_DISPLAY.get(expected, expected.name)
        suggestions = TOKEN_SUGGESTIONS.get(expected, [])
    else:
        expected_str = expected
        suggestions = []
    found_str = describe_token(found)

    return ParseError(
        message=f"Expected {expected_str}, found {found_str}",
        location=found.location,
        token=found,
        expected=expected_str,
        code="P010" if found.type == TokenType.EOF else "P001",
        help_text=f"The interpreter expected to see {expected_str} at this position, but found {found_str} instead.",
        suggestions=suggestions
    )


def create_invalid_expression_error(reason: str, token: Token) -> ParseError:
    """Create an error for an invalid expression."""
    return ParseError(
        message=f"Invalid expression: {reason}",
        location=token.location,
        token=token,
        expected="expression",
        code="P005",
        help_text=reason,
        suggestions=["Check the expression syntax", "Ensure all operators have operands"]
    )


def create_misplaced_statement_error(keyword: str, context: str, token: Token) -> ParseError:
    """Create an error for break/continue/return outside their construct."""
    return ParseError(
        message=f"'{keyword}' outside of {context}",
        location=token.location,
        token=token,
        code="P006",
        help_text=f"'{keyword}' can only be used inside a {context}."
    )


def create_invalid_target_error(token: Token) -> ParseError:
    """Create an error for assigning to something that is not a variable."""
    return ParseError(
        message="Invalid assignment target",
        location=token.location,
        token=token,
        expected="variable, index or member",
        code="P007",
        help_text="Only variables, array/object elements and object members can be assigned."
    )


def create_unsupported_construct_error(token: Token) -> ParseError:
    """Create an error for a reserved keyword the language does not implement."""
    return ParseError(
        message=f"'{token.lexeme}' is reserved but not supported",
        location=token.location,
        token=token,
        code="P013",
        help_text=f"The keyword '{token.lexeme}' is reserved for future use."
    )
