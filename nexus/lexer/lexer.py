"""
NEXUS Lexer - handles tokenizing source code

Single pass scanner: `pos` is the cursor, `start` marks the beginning of
the token being scanned, and line/column are updated for every consumed
character. Newlines are real tokens because they separate statements.

Two entry points:
- tokenize() is all-or-nothing and raises the first LexerError
- next_token() recovers, handing back an ERROR token and carrying on,
  which is what the REPL wants for partial input

Author: xwest
"""

import re
from typing import List, Optional

from .tokens import Token, TokenType, SourceLocation, KEYWORDS, OPERATORS_3, OPERATORS_2, OPERATORS_1
from .errors import (
    LexerError, create_invalid_character_error, create_unterminated_string_error,
    create_invalid_number_error, create_unterminated_comment_error, create_invalid_escape_error
)


SIMPLE_ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '0': '\0',
    'b': '\b',
    'f': '\f',
    'v': '\v',
    '\\': '\\',
    '"': '"',
    "'": "'",
}

# Radix prefixes for integer literals
RADIX_PREFIXES = {
    'x': 16,
    'b': 2,
    'o': 8,
}


class Lexer:
    """
    NEXUS lexical analyzer.

    Converts source code text into a list of tokens with position
    metadata.
    """

    def __init__(self, source: str = "", filename: str = "<input>"):
        """
        Initialize the lexer with source code.

        Args:
            source: Source code string
            filename: Name of source file for error reporting
        """
        self.source = source
        self.filename = filename
        self.tokens: List[Token] = []
        self.errors: List[LexerError] = []
        self._compile_patterns()
        self.reset()

    def _compile_patterns(self):
        """Compile regex patterns used by the lexer."""
        self.digit_patterns = {
            16: re.compile(r'[0-9a-fA-F]+'),
            2: re.compile(r'[01]+'),
            8: re.compile(r'[0-7]+'),
            10: re.compile(r'[0-9]+'),
        }

    def reset(self, source: Optional[str] = None):
        """Rewind the scanner, optionally onto new source text."""
        if source is not None:
            self.source = source
        self.pos = 0
        self.start = 0
        self.line = 1
        self.column = 1
        self.start_line = 1
        self.start_column = 1
        self.tokens.clear()
        self.errors.clear()

    def tokenize(self) -> List[Token]:
        """
        Tokenize the entire source code.

        Returns:
            List of tokens ending with an EOF token

        Raises:
            LexerError: On the first malformed token
        """
        self.reset()

        while True:
            token = self._scan_token()
            self.tokens.append(token)
            if token.type == TokenType.EOF:
                break

        return self.tokens

    def tokenize_expression(self, expression: str) -> List[Token]:
        """Tokenize a standalone expression fragment."""
        self.reset(expression)
        return self.tokenize()

    def next_token(self) -> Token:
        """
        Scan a single token, recovering from malformed input.

        A lexing failure is recorded in `errors` and returned as an ERROR
        token positioned at the start of the bad input; the cursor always
        moves forward so repeated calls make progress.
        """
        try:
            return self._scan_token()
        except LexerError as error:
            self.errors.append(error)
            if self.pos == self.start:
                self._advance()
            return Token(
                TokenType.ERROR,
                self.source[self.start:self.pos],
                error.message,
                error.location
            )

    def has_more_tokens(self) -> bool:
        return self.pos < len(self.source)

    def _scan_token(self) -> Token:
        """Get the next token from the source."""
        self._skip_whitespace_and_comments()
        self._mark_token_start()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, "", None)

        current_char = self.source[self.pos]

        if current_char == '\n':
            self._advance()
            return self._make_token(TokenType.NEWLINE, '\n', None)

        if '0' <= current_char <= '9':
            return self._tokenize_number()

        if self._is_identifier_start(current_char):
            return self._tokenize_identifier_or_keyword()

        if current_char in ('"', "'"):
            return self._tokenize_string(current_char)

        # Operators and punctuation, longest match first
        for table, length in ((OPERATORS_3, 3), (OPERATORS_2, 2), (OPERATORS_1, 1)):
            candidate = self.source[self.pos:self.pos + length]
            if len(candidate) == length and candidate in table:
                self._advance_by(length)
                return self._make_token(table[candidate], candidate, None)

        raise create_invalid_character_error(current_char, self._location())

    def _tokenize_number(self) -> Token:
        """Tokenize a numeric literal: decimal, 0x.., 0b.. or 0o.."""
        prefix = self._peek(1).lower()
        if self.source[self.pos] == '0' and prefix in RADIX_PREFIXES:
            base = RADIX_PREFIXES[prefix]
            self._advance_by(2)
            match = self.digit_patterns[base].match(self.source, self.pos)
            if not match:
                raise create_invalid_number_error(
                    self._lexeme(), self._location(),
                    f"Expected base-{base} digits after '0{prefix}'"
                )
            self._advance_by(len(match.group(0)))
            self._reject_glued_characters(f"Invalid digit in base-{base} literal")
            return self._make_token(TokenType.NUMBER, self._lexeme(), float(int(match.group(0), base)))

        self._consume_digits()

        if self._peek() == '.' and self._is_digit(self._peek(1)):
            self._advance()
            self._consume_digits()
            if self._peek() == '.' and self._is_digit(self._peek(1)):
                self._advance()
                raise create_invalid_number_error(
                    self._lexeme(), self._location(),
                    "A number can contain only one decimal point"
                )

        if self._peek() in ('e', 'E'):
            self._advance()
            if self._peek() in ('+', '-'):
                self._advance()
            if not self._is_digit(self._peek()):
                raise create_invalid_number_error(
                    self._lexeme(), self._location(),
                    "Exponent requires at least one digit"
                )
            self._consume_digits()

        self._reject_glued_characters("Unexpected character in numeric literal")

        lexeme = self._lexeme()
        return self._make_token(TokenType.NUMBER, lexeme, float(lexeme))

    def _consume_digits(self):
        match = self.digit_patterns[10].match(self.source, self.pos)
        if match:
            self._advance_by(len(match.group(0)))

    def _reject_glued_characters(self, reason: str):
        """Identifier characters directly after a number make the literal malformed."""
        char = self._peek()
        if self._is_identifier_continue(char):
            while not self._is_at_end() and self._is_identifier_continue(self._peek()):
                self._advance()
            raise create_invalid_number_error(self._lexeme(), self._location(), reason)

    def _tokenize_identifier_or_keyword(self) -> Token:
        """Tokenize an identifier or keyword."""
        self._advance()
        while not self._is_at_end() and self._is_identifier_continue(self.source[self.pos]):
            self._advance()

        lexeme = self._lexeme()
        token_type = KEYWORDS.get(lexeme, TokenType.IDENTIFIER)

        if token_type == TokenType.IDENTIFIER:
            value = lexeme
        elif token_type in (TokenType.TRUE, TokenType.FALSE):
            value = token_type == TokenType.TRUE
        else:
            value = None

        return self._make_token(token_type, lexeme, value)

    def _tokenize_string(self, quote: str) -> Token:
        """Tokenize a string literal, expanding escape sequences."""
        location = self._location()
        self._advance()  # Skip opening quote

        value_parts = []

        while not self._is_at_end() and self.source[self.pos] != quote:
            if self.source[self.pos] == '\\':
                if self.pos + 1 >= len(self.source):
                    self._advance()
                    break
                self._advance()  # Skip backslash
                value_parts.append(self._handle_escape_sequence(location))
            else:
                value_parts.append(self.source[self.pos])
                self._advance()

        if self._is_at_end():
            raise create_unterminated_string_error(quote, location)

        self._advance()  # Skip closing quote

        return self._make_token(TokenType.STRING, self._lexeme(), ''.join(value_parts))

    def _handle_escape_sequence(self, location: SourceLocation) -> str:
        """Expand the escape sequence after a backslash."""
        escape_char = self.source[self.pos]
        self._advance()

        if escape_char in SIMPLE_ESCAPES:
            return SIMPLE_ESCAPES[escape_char]

        if escape_char == 'x':
            return self._read_code_point(2, '\\x', location)

        if escape_char == 'U':
            return self._read_code_point(8, '\\U', location)

        if escape_char == 'u':
            if self._peek() != '{':
                return self._read_code_point(4, '\\u', location)

            # \u{H...} with 1 to 6 hex digits
            close = self.source.find('}', self.pos)
            digits = self.source[self.pos + 1:close] if close != -1 else ''
            if not 1 <= len(digits) <= 6 or not self.digit_patterns[16].fullmatch(digits):
                raise create_invalid_escape_error('\\u{' + digits, location)
            self._advance_by(len(digits) + 2)
            return self._code_point(int(digits, 16), '\\u{' + digits + '}', location)

        raise create_invalid_escape_error('\\' + escape_char, location)

    def _read_code_point(self, width: int, prefix: str, location: SourceLocation) -> str:
        digits = self.source[self.pos:self.pos + width]
        if len(digits) != width or not self.digit_patterns[16].fullmatch(digits):
            raise create_invalid_escape_error(prefix + digits, location)
        self._advance_by(width)
        return self._code_point(int(digits, 16), prefix + digits, location)

    def _code_point(self, value: int, sequence: str, location: SourceLocation) -> str:
        if value > 0x10FFFF:
            raise create_invalid_escape_error(sequence, location)
        return chr(value)

    def _is_digit(self, char: str) -> bool:
        return '0' <= char <= '9'

    def _is_identifier_start(self, char: str) -> bool:
        """Check if character can start an identifier."""
        return ('a' <= char <= 'z') or ('A' <= char <= 'Z') or char == '_'

    def _is_identifier_continue(self, char: str) -> bool:
        """Check if character can continue an identifier."""
        return self._is_identifier_start(char) or self._is_digit(char)

    def _skip_whitespace_and_comments(self):
        """Skip whitespace (except newlines) and comments."""
        while not self._is_at_end():
            char = self.source[self.pos]

            if char.isspace() and char != '\n':
                self._advance()
                continue

            # Skip line comments //
            if self.source.startswith('//', self.pos):
                while not self._is_at_end() and self.source[self.pos] != '\n':
                    self._advance()
                continue

            # Skip block comments /* */, first */ closes
            if self.source.startswith('/*', self.pos):
                self._mark_token_start()
                end = self.source.find('*/', self.pos + 2)
                if end == -1:
                    self._advance_by(len(self.source) - self.pos)
                    raise create_unterminated_comment_error(self._location())
                self._advance_by(end + 2 - self.pos)
                continue

            break

    def _mark_token_start(self):
        self.start = self.pos
        self.start_line = self.line
        self.start_column = self.column

    def _location(self) -> SourceLocation:
        """Location of the start of the current token."""
        return SourceLocation(self.filename, self.start_line, self.start_column, self.start)

    def _lexeme(self) -> str:
        return self.source[self.start:self.pos]

    def _make_token(self, token_type: TokenType, lexeme: str, value) -> Token:
        return Token(token_type, lexeme, value, self._location())

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _advance(self):
        """Advance position by one character, updating line/column."""
        if self.pos < len(self.source):
            if self.source[self.pos] == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.pos += 1

    def _advance_by(self, count: int):
        """Advance position by multiple characters."""
        for _ in range(count):
            self._advance()

    def _peek(self, offset: int = 0) -> str:
        """Peek at a character ahead without advancing."""
        peek_pos = self.pos + offset
        if peek_pos < len(self.source):
            return self.source[peek_pos]
        return '\0'

    def has_errors(self) -> bool:
        """Check if the recovering scanner recorded any errors."""
        return len(self.errors) > 0


def tokenize_string(source: str, filename: str = "<string>") -> List[Token]:
    """
    Convenience function to tokenize a source string.

    Raises:
        LexerError: If lexing fails
    """
    return Lexer(source, filename).tokenize()


def tokenize_file(filepath: str) -> List[Token]:
    """
    Convenience function to tokenize a source file.

    Raises:
        LexerError: If lexing fails
        OSError: If file cannot be read
    """
    with open(filepath, 'r', encoding='utf-8') as f:
        source = f.read()

    return tokenize_string(source, filepath)
