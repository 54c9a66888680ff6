"""
Runtime error handling for NEXUS.

Every failure raised while a program runs derives from NexusRuntimeError
and shares the lexer's Diagnostic record, so the REPL and the CLI can
report lexing, parsing and runtime problems the same way.

Errors raised deep inside the value model usually have no source
position; the evaluator attaches the location of the token it was
working on when the error passes through it.

Author: xwest
"""

from typing import Optional, List

from ..lexer.tokens import SourceLocation, Token
from ..lexer.errors import Diagnostic


class NexusRuntimeError(Exception):
    """
    Base class of all errors raised while executing NEXUS code.

    Contains detailed diagnostic information for error reporting.
    """

    default_code = "R000"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        token: Optional[Token] = None,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        if location is None and token is not None:
            location = token.location
        self.token = token
        self.diagnostic = Diagnostic(
            message=message,
            location=location,
            severity="error",
            code=code or self.default_code,
            help_text=help_text,
            suggestions=suggestions
        )

    @property
    def location(self) -> Optional[SourceLocation]:
        return self.diagnostic.location

    @property
    def code(self) -> Optional[str]:
        return self.diagnostic.code

    def attach(self, token: Token) -> 'NexusRuntimeError':
        """Record where the error happened unless a location is already known."""
        if self.diagnostic.location is None and token is not None:
            self.diagnostic.location = token.location
            self.token = token
        return self

    def __str__(self) -> str:
        return str(self.diagnostic)


class ScopeError(NexusRuntimeError):
    """Errors about name bindings."""
    default_code = "R010"


class UndefinedVariableError(ScopeError):
    default_code = "R010"


class ConstantReassignmentError(ScopeError):
    default_code = "R011"


class TypeMismatchError(NexusRuntimeError):
    default_code = "R001"


class DivisionByZeroError(NexusRuntimeError):
    default_code = "R002"


class ArityError(NexusRuntimeError):
    default_code = "R003"


class IndexOutOfRangeError(NexusRuntimeError):
    default_code = "R004"


class StackOverflowError(NexusRuntimeError):
    default_code = "R005"


class TensorShapeError(NexusRuntimeError):
    default_code = "R030"


class ModelError(NexusRuntimeError):
    default_code = "R040"


class ImportFailure(NexusRuntimeError):
    default_code = "R050"


# Runtime error codes for categorization
RUNTIME_ERROR_CODES = {
    "R000": "Runtime error",
    "R001": "Type mismatch",
    "R002": "Division by zero",
    "R003": "Arity mismatch",
    "R004": "Index out of range",
    "R005": "Stack overflow",
    "R010": "Undefined variable",
    "R011": "Constant reassignment",
    "R030": "Tensor shape mismatch",
    "R040": "Model error",
    "R050": "Import failed",
}


def create_undefined_variable_error(
    name: str,
    similar_names: Optional[List[str]] = None,
    location: Optional[SourceLocation] = None
) -> UndefinedVariableError:
    """Create an undefined variable error."""
    suggestions = []
    if similar_names:
        suggestions.extend([f"Did you mean '{similar}'?" for similar in similar_names[:3]])
    suggestions.append(f"Declare '{name}' with 'var' before using it")

    return UndefinedVariableError(
        message=f"Undefined variable: '{name}'",
        location=location,
        help_text=f"The name '{name}' is not defined in the current scope.",
        suggestions=suggestions
    )


def create_constant_reassignment_error(
    name: str,
    location: Optional[SourceLocation] = None
) -> ConstantReassignmentError:
    """Create an error for assigning to a constant binding."""
    return ConstantReassignmentError(
        message=f"Cannot assign to constant '{name}'",
        location=location,
        help_text=f"'{name}' was declared with 'const' and cannot change.",
        suggestions=[f"Declare '{name}' with 'var' if it needs to change"]
    )


def create_type_mismatch_error(
    operation: str,
    left_type: str,
    right_type: Optional[str] = None,
    location: Optional[SourceLocation] = None
) -> TypeMismatchError:
    """Create a type mismatch error for an operator application."""
    if right_type is None:
        message = f"Unsupported operand type for {operation}: {left_type}"
    else:
        message = f"Unsupported operand types for {operation}: {left_type} and {right_type}"

    return TypeMismatchError(
        message=message,
        location=location,
        help_text=f"The operator '{operation}' cannot be applied to these values.",
        suggestions=["Convert the operands with str() or num()"]
    )


def create_arity_error(
    name: str,
    expected: int,
    actual: int,
    location: Optional[SourceLocation] = None
) -> ArityError:
    """Create an error for calling a function with the wrong argument count."""
    plural = "" if expected == 1 else "s"
    return ArityError(
        message=f"Function '{name}' expects {expected} argument{plural}, got {actual}",
        location=location,
        help_text="The number of arguments must match the number of parameters."
    )


def create_shape_mismatch_error(
    expected_shape,
    actual_shape,
    operation: str,
    location: Optional[SourceLocation] = None
) -> TensorShapeError:
    """Create a tensor shape mismatch error."""
    return TensorShapeError(
        message=f"Shape mismatch in {operation}: expected {list(expected_shape)}, found {list(actual_shape)}",
        location=location,
        help_text=f"The operation '{operation}' requires compatible tensor shapes.",
        suggestions=["Check tensor dimensions in this operation", "Use reshape() to change the shape"]
    )
