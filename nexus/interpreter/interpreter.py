"""
NEXUS Interpreter Implementation

Evaluates NEXUS programs directly from the token list produced by the
lexer; no syntax tree is built. A cursor (`self.current`) walks the
tokens, statements are dispatched on the token under the cursor and
expressions are evaluated by precedence climbing, one method per
precedence level.

Code that must not run (the untaken branch of an `if`, the right side
of a short-circuited `&&`, a function body at declaration time) is
skipped structurally by matching brackets and statement terminators.

Every statement executor leaves the cursor just past its statement and
returns a Completion. Loops, blocks and calls interpret the completion;
errors are always exceptions.

Author: xwest
"""

import logging
import operator
import os
import sys
import time
from contextlib import contextmanager
from typing import Dict, List, Optional, Set, TextIO, Tuple

import numpy as np

from ..config import InterpreterConfig
from ..lexer.lexer import Lexer
from ..lexer.tokens import (
    Token, TokenType, KEYWORD_TYPES, OPERATOR_TYPES, ASSIGNMENT_OPERATORS, COMPOUND_ASSIGNMENTS,
    get_operator_precedence, is_right_associative
)
from ..ml.neural_network import NeuralNetwork, TrainingConfig
from ..runtime.environment import Environment
from ..runtime.errors import (
    NexusRuntimeError, TypeMismatchError, StackOverflowError, ModelError, ImportFailure,
    create_arity_error, create_constant_reassignment_error
)
from ..runtime.tensor import Tensor, format_number
from ..runtime.value import Value, ValueType, UserFunction, NIL
from .builtins import create_builtins, create_math_module
from .completion import Completion, CompletionType, NORMAL, BREAK, CONTINUE
from .errors import (
    ParseError, create_unexpected_token_error, create_invalid_expression_error,
    create_misplaced_statement_error, create_invalid_target_error,
    create_unsupported_construct_error, describe_token
)

logger = logging.getLogger(__name__)


BINARY_OPERATIONS = {
    TokenType.PLUS: operator.add,
    TokenType.MINUS: operator.sub,
    TokenType.MULTIPLY: operator.mul,
    TokenType.DIVIDE: operator.truediv,
    TokenType.MODULO: operator.mod,
    TokenType.POWER: operator.pow,
    TokenType.MATRIX_MULTIPLY: operator.matmul,
    TokenType.BIT_AND: operator.and_,
    TokenType.BIT_OR: operator.or_,
    TokenType.BIT_XOR: operator.xor,
    TokenType.LEFT_SHIFT: operator.lshift,
    TokenType.RIGHT_SHIFT: operator.rshift,
    TokenType.EQUAL: lambda a, b: Value.boolean(a == b),
    TokenType.NOT_EQUAL: lambda a, b: Value.boolean(a != b),
    TokenType.LESS_THAN: lambda a, b: Value.boolean(a < b),
    TokenType.LESS_EQUAL: lambda a, b: Value.boolean(a <= b),
    TokenType.GREATER_THAN: lambda a, b: Value.boolean(a > b),
    TokenType.GREATER_EQUAL: lambda a, b: Value.boolean(a >= b),
}

OPENERS = frozenset({TokenType.LEFT_PAREN, TokenType.LEFT_BRACKET, TokenType.LEFT_BRACE})
CLOSERS = frozenset({TokenType.RIGHT_PAREN, TokenType.RIGHT_BRACKET, TokenType.RIGHT_BRACE})

MODIFIER_TYPES = frozenset({
    TokenType.PUBLIC, TokenType.PRIVATE, TokenType.PROTECTED, TokenType.STATIC,
    TokenType.FINAL, TokenType.ABSTRACT, TokenType.VIRTUAL,
})

DECLARATION_TYPES = frozenset({
    TokenType.VAR, TokenType.LET, TokenType.CONST,
    TokenType.INT, TokenType.LONG, TokenType.FLOAT, TokenType.DOUBLE, TokenType.STRING_TYPE,
    TokenType.BOOLEAN_TYPE, TokenType.CHAR, TokenType.BYTE, TokenType.SHORT,
})

UNSUPPORTED_TYPES = frozenset({
    TokenType.CLASS, TokenType.SWITCH, TokenType.CASE, TokenType.DEFAULT, TokenType.TRY,
    TokenType.CATCH, TokenType.FINALLY, TokenType.THROW, TokenType.EXPORT, TokenType.FROM,
    TokenType.PACKAGE, TokenType.NAMESPACE,
})

# A newline right after one of these does not end the statement
NON_CONTINUING = frozenset({TokenType.INCREMENT, TokenType.DECREMENT})

# Path segments of an assignment target: ("index", Value) or ("member", name)
TargetPath = List[Tuple[str, object]]


class Interpreter:
    """
    NEXUS interpreter.

    Owns the global environment, the scope stack, the model table and the
    profiling timers. One instance can execute any number of programs;
    definitions persist between calls to execute().
    """

    def __init__(self, config: Optional[InterpreterConfig] = None, output: Optional[TextIO] = None):
        self.config = config or InterpreterConfig()
        self._output = output

        self.tokens: List[Token] = []
        self.current = 0
        self.current_file: Optional[str] = None

        self.globals = Environment(name="global")
        self.environment = self.globals
        self.scope_stack: List[Environment] = [self.globals]

        self._loop_depth = 0
        self._function_depth = 0
        self._call_depth = 0
        self._nesting = 0

        self.models: Dict[str, NeuralNetwork] = {}
        self.profile_timers: Dict[str, float] = {}
        self.last_value: Value = NIL

        self._imported: Set[str] = set()
        self._modules: Dict[str, Value] = {}
        self._builtins = create_builtins()
        self._install_builtins()

    def _install_builtins(self):
        for name, function in self._builtins.items():
            self.globals.define(name, Value.function(function))

    @property
    def output(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    def write(self, text: str):
        self.output.write(text)

    # ------------------------------------------------------------------
    # Host API
    # ------------------------------------------------------------------

    def execute(self, source: str, filename: Optional[str] = None) -> Value:
        """
        Run a program.

        Returns:
            The value of the last expression statement executed

        Raises:
            LexerError, ParseError, NexusRuntimeError
        """
        filename = filename or self.config.filename
        tokens = Lexer(source, filename).tokenize()

        start = time.perf_counter()
        result = self._run(tokens, filename)
        if self.config.profiling:
            logger.info("Executed %s in %.6fs", filename, time.perf_counter() - start)
        return result

    def execute_file(self, filepath: str) -> Value:
        with open(filepath, 'r', encoding='utf-8') as f:
            source = f.read()
        return self.execute(source, filepath)

    def evaluate_expression(self, source: str) -> Value:
        """Evaluate a single expression in the current environment."""
        tokens = Lexer(source, "<expression>").tokenize()
        with self._token_stream(tokens, None), self._recursion_limit(), self._host_stack_guard():
            self._skip_newlines()
            value = self._expression()
            self._skip_separators()
            if not self._is_at_end():
                raise create_unexpected_token_error("end of expression", self._peek())
        return value

    def clear_environment(self):
        """Forget every variable, model, timer and import."""
        self.globals = Environment(name="global")
        self.environment = self.globals
        self.scope_stack = [self.globals]
        self.models.clear()
        self.profile_timers.clear()
        self._imported.clear()
        self._modules.clear()
        self.last_value = NIL
        self._install_builtins()

    def user_variables(self) -> Dict[str, Value]:
        """Global bindings that are not untouched builtins."""
        return {
            name: value for name, value in self.globals.values.items()
            if not (name in self._builtins and value.data is self._builtins[name])
        }

    def print_variables(self, stream: Optional[TextIO] = None):
        stream = stream or self.output
        variables = self.user_variables()
        if not variables:
            stream.write("No variables defined.\n")
            return
        for name, value in variables.items():
            marker = "const " if name in self.globals.constants else ""
            stream.write(f"  {marker}{name} = {value.repr_string()} ({value.type_name})\n")

    def print_models(self, stream: Optional[TextIO] = None):
        stream = stream or self.output
        if not self.models:
            stream.write("No models defined.\n")
            return
        for name, network in self.models.items():
            stream.write(f"{name}: {network.summary()}\n")

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def get_model(self, name: str) -> NeuralNetwork:
        try:
            return self.models[name]
        except KeyError:
            raise ModelError(
                f"Unknown model '{name}'",
                suggestions=[f"Declare it first: model {name} = [2, 4, 1]"]
            ) from None

    def create_model(self, name: str, architecture: List[int],
                     activations: Optional[List[str]] = None) -> NeuralNetwork:
        network = NeuralNetwork(architecture, activations)
        self.models[name] = network
        logger.debug("Created model %s %s", name, network.architecture)
        return network

    def train_model(self, name: str, params: Optional[Dict[str, object]] = None) -> Value:
        """Train a model; `params` holds plain Python values."""
        network = self.get_model(name)
        params = dict(params or {})
        if "inputs" not in params or "targets" not in params:
            raise ModelError(f"Training '{name}' needs 'inputs' and 'targets'")
        config = TrainingConfig.from_params(params)
        history = network.train(params["inputs"], params["targets"], config)
        return Value.object({
            "loss": Value.number(history.final_loss),
            "epochs": Value.number(history.epochs_completed),
            "time": Value.number(history.total_training_time),
        })

    def predict_model(self, name: str, input_value: Value) -> Value:
        network = self.get_model(name)
        if input_value.type == ValueType.TENSOR:
            data = input_value.data.array
        elif input_value.type in (ValueType.ARRAY, ValueType.NUMBER):
            data = np.asarray(input_value.to_python(), dtype=np.float64)
        else:
            raise TypeMismatchError(f"Cannot predict from a {input_value.type_name}")
        return Value.tensor(Tensor.from_array(network.predict(np.atleast_1d(data))))

    def save_model(self, name: str, filepath: str):
        self.get_model(name).save(filepath)

    def load_model(self, name: str, filepath: str):
        self.models[name] = NeuralNetwork.load(filepath)

    # ------------------------------------------------------------------
    # Profiling
    # ------------------------------------------------------------------

    def start_timer(self, name: str):
        self.profile_timers[name] = time.perf_counter()

    def end_timer(self, name: str) -> float:
        """Stop a named timer and return the elapsed seconds."""
        if name not in self.profile_timers:
            raise NexusRuntimeError(f"Timer '{name}' was never started")
        elapsed = time.perf_counter() - self.profile_timers.pop(name)
        if self.config.profiling:
            logger.info("Timer %s: %.6fs", name, elapsed)
        return elapsed

    # ------------------------------------------------------------------
    # Execution state
    # ------------------------------------------------------------------

    def _run(self, tokens: List[Token], filename: Optional[str]) -> Value:
        with self._token_stream(tokens, filename), self._recursion_limit(), self._host_stack_guard():
            while True:
                self._skip_separators()
                if self._is_at_end():
                    break
                self._execute_statement()
        return self.last_value

    @contextmanager
    def _token_stream(self, tokens: List[Token], filename: Optional[str]):
        """Point the cursor at a new token list, restoring everything afterwards."""
        saved = (self.tokens, self.current, self.current_file,
                 self._loop_depth, self._function_depth, self._nesting)
        self.tokens = tokens
        self.current = 0
        if filename is not None and os.path.isfile(filename):
            self.current_file = os.path.abspath(filename)
        self._loop_depth = 0
        self._function_depth = 0
        self._nesting = 0
        try:
            yield
        finally:
            (self.tokens, self.current, self.current_file,
             self._loop_depth, self._function_depth, self._nesting) = saved

    @contextmanager
    def _recursion_limit(self):
        previous = sys.getrecursionlimit()
        if previous < self.config.recursion_limit:
            sys.setrecursionlimit(self.config.recursion_limit)
        try:
            yield
        finally:
            sys.setrecursionlimit(previous)

    @contextmanager
    def _scope(self, environment: Environment):
        previous = self.environment
        self.environment = environment
        self.scope_stack.append(environment)
        if self.config.debug:
            logger.debug("Enter scope %s (depth %d)", environment.full_scope_path, environment.depth)
        try:
            yield environment
        finally:
            self.scope_stack.pop()
            self.environment = previous

    @contextmanager
    def _host_stack_guard(self):
        """Report Python stack exhaustion, e.g. from deeply nested expressions, as a NEXUS error."""
        try:
            yield
        except RecursionError as e:
            raise StackOverflowError(
                "Host recursion limit exceeded",
                help_text="Reduce the nesting depth of the expression or call chain."
            ) from e

    @contextmanager
    def _nested(self):
        """Inside brackets newlines are insignificant."""
        self._nesting += 1
        try:
            yield
        finally:
            self._nesting -= 1

    @contextmanager
    def _at(self, token: Token):
        """Attach the token's location to runtime errors raised inside."""
        try:
            yield
        except NexusRuntimeError as error:
            error.attach(token)
            raise

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _execute_statement(self) -> Completion:
        token = self._peek()
        token_type = token.type
        if self.config.debug:
            logger.debug("%s: %s statement", token.location, token_type.name)

        if token_type == TokenType.LEFT_BRACE:
            self._advance()
            return self._execute_block()
        if token_type in MODIFIER_TYPES or token_type in DECLARATION_TYPES:
            return self._var_declaration()
        if token_type == TokenType.FUNCTION and self._peek(1).type == TokenType.IDENTIFIER:
            return self._function_declaration()
        if token_type == TokenType.IF:
            return self._if_statement()
        if token_type == TokenType.WHILE:
            return self._while_statement()
        if token_type == TokenType.FOR:
            return self._for_statement()
        if token_type == TokenType.RETURN:
            return self._return_statement()
        if token_type in (TokenType.BREAK, TokenType.CONTINUE):
            return self._loop_control_statement()
        if token_type == TokenType.MODEL:
            return self._model_statement()
        if token_type == TokenType.TRAIN:
            return self._train_statement()
        if token_type == TokenType.IMPORT:
            return self._import_statement()
        if token_type in UNSUPPORTED_TYPES:
            raise create_unsupported_construct_error(token)
        return self._expression_statement()

    def _execute_block(self, environment: Optional[Environment] = None) -> Completion:
        """Run statements up to the matching '}'; the '{' is already consumed."""
        environment = environment or Environment(self.environment, "block")
        with self._scope(environment):
            while True:
                self._skip_separators()
                if self._match(TokenType.RIGHT_BRACE):
                    return NORMAL
                if self._is_at_end():
                    raise create_unexpected_token_error(TokenType.RIGHT_BRACE, self._peek())

                completion = self._execute_statement()
                if completion.is_abrupt:
                    self._skip_to_block_end()
                    return completion

    def _end_statement(self):
        if self._match(TokenType.SEMICOLON, TokenType.NEWLINE):
            return
        if self._check(TokenType.RIGHT_BRACE, TokenType.EOF, TokenType.ELSE):
            return
        raise create_unexpected_token_error("';' or newline", self._peek())

    def _expression_statement(self) -> Completion:
        self.last_value = self._expression()
        self._end_statement()
        return NORMAL

    def _var_declaration(self) -> Completion:
        is_constant = False
        while self._check(*MODIFIER_TYPES):
            if self._advance().type == TokenType.FINAL:
                is_constant = True

        if not self._check(*DECLARATION_TYPES):
            raise create_unexpected_token_error("variable declaration", self._peek())
        if self._advance().type == TokenType.CONST:
            is_constant = True

        while True:
            name_token = self._consume(TokenType.IDENTIFIER)
            name = name_token.lexeme
            if self._match(TokenType.ASSIGN):
                self._skip_newlines()
                value = self._expression()
            elif is_constant:
                raise ParseError(
                    f"Constant '{name}' must be initialized",
                    name_token.location,
                    token=name_token,
                    expected="'='",
                    code="P001"
                )
            else:
                value = NIL

            with self._at(name_token):
                self._bind(name, value, is_constant)

            if not self._match(TokenType.COMMA):
                break

        self._end_statement()
        return NORMAL

    def _function_declaration(self) -> Completion:
        self._advance()  # function
        name_token = self._advance()
        function = self._function_literal(name_token.lexeme)
        with self._at(name_token):
            self._bind(name_token.lexeme, Value.function(function))
        return NORMAL

    def _bind(self, name: str, value: Value, is_constant: bool = False):
        """Declare `name` in the current scope; a constant there cannot be redeclared."""
        if name in self.environment.constants:
            raise create_constant_reassignment_error(name)
        self.environment.define(name, value, is_constant)

    def _function_literal(self, name: str) -> UserFunction:
        """Parameters and body of a function; the body is skipped, not run."""
        self._consume(TokenType.LEFT_PAREN)
        params: List[str] = []
        with self._nested():
            self._skip_newlines()
            if not self._check(TokenType.RIGHT_PAREN):
                while True:
                    self._skip_newlines()
                    param = self._consume(TokenType.IDENTIFIER)
                    if param.lexeme in params:
                        raise ParseError(
                            f"Duplicate parameter '{param.lexeme}'",
                            param.location,
                            token=param,
                            code="P001"
                        )
                    params.append(param.lexeme)
                    self._skip_newlines()
                    if not self._match(TokenType.COMMA):
                        break
            self._consume(TokenType.RIGHT_PAREN)

        self._skip_newlines()
        if not self._check(TokenType.LEFT_BRACE):
            raise create_unexpected_token_error(TokenType.LEFT_BRACE, self._peek())
        body_start = self.current
        self._skip_balanced()
        return UserFunction(name, params, self.tokens, body_start, self.environment, self.current_file)

    def _paren_condition(self) -> Value:
        self._consume(TokenType.LEFT_PAREN)
        with self._nested():
            self._skip_newlines()
            condition = self._expression()
            self._skip_newlines()
        self._consume(TokenType.RIGHT_PAREN)
        return condition

    def _match_else(self) -> bool:
        """Consume an `else`, which may sit on a following line."""
        saved = self.current
        self._skip_newlines()
        if self._match(TokenType.ELSE):
            self._skip_newlines()
            return True
        self.current = saved
        return False

    def _if_statement(self) -> Completion:
        self._advance()  # if
        condition = self._paren_condition()
        self._skip_newlines()

        if condition.is_truthy():
            completion = self._execute_statement()
            if self._match_else():
                self._skip_statement()
            return completion

        self._skip_statement()
        if self._match_else():
            return self._execute_statement()
        return NORMAL

    def _while_statement(self) -> Completion:
        self._advance()  # while
        condition_start = self.current
        self._skip_balanced()
        self._skip_newlines()
        body_start = self.current
        self._skip_statement()
        body_end = self.current

        self._loop_depth += 1
        try:
            while True:
                self.current = condition_start
                if not self._paren_condition().is_truthy():
                    break
                self.current = body_start
                completion = self._execute_statement()
                if completion.type == CompletionType.BREAK:
                    break
                if completion.type == CompletionType.RETURN:
                    self.current = body_end
                    return completion
        finally:
            self._loop_depth -= 1

        self.current = body_end
        return NORMAL

    def _for_statement(self) -> Completion:
        self._advance()  # for
        self._consume(TokenType.LEFT_PAREN)

        with self._scope(Environment(self.environment, "for")):
            # Initializer: a declaration, an expression or nothing
            self._skip_newlines()
            if not self._match(TokenType.SEMICOLON):
                if self._check(*MODIFIER_TYPES) or self._check(*DECLARATION_TYPES):
                    self._var_declaration()
                else:
                    self._expression()
                    self._consume(TokenType.SEMICOLON)

            self._skip_newlines()
            condition_start = self.current
            has_condition = not self._check(TokenType.SEMICOLON)
            with self._nested():
                self._skip_expression(0)
            self._consume(TokenType.SEMICOLON)

            self._skip_newlines()
            increment_start = self.current
            has_increment = not self._check(TokenType.RIGHT_PAREN)
            with self._nested():
                while True:
                    self._skip_expression(0)
                    if not self._match(TokenType.COMMA):
                        break
            self._consume(TokenType.RIGHT_PAREN)

            self._skip_newlines()
            body_start = self.current
            self._skip_statement()
            body_end = self.current

            self._loop_depth += 1
            try:
                while True:
                    if has_condition:
                        self.current = condition_start
                        with self._nested():
                            if not self._expression().is_truthy():
                                break

                    self.current = body_start
                    completion = self._execute_statement()
                    if completion.type == CompletionType.BREAK:
                        break
                    if completion.type == CompletionType.RETURN:
                        self.current = body_end
                        return completion

                    if has_increment:
                        self.current = increment_start
                        with self._nested():
                            self._expression()
                            while self._match(TokenType.COMMA):
                                self._expression()
            finally:
                self._loop_depth -= 1

        self.current = body_end
        return NORMAL

    def _return_statement(self) -> Completion:
        token = self._advance()
        if self._function_depth == 0:
            raise create_misplaced_statement_error("return", "function", token)
        if self._check(TokenType.SEMICOLON, TokenType.NEWLINE, TokenType.RIGHT_BRACE, TokenType.EOF):
            value = NIL
        else:
            value = self._expression()
        self._end_statement()
        return Completion.returning(value)

    def _loop_control_statement(self) -> Completion:
        token = self._advance()
        if self._loop_depth == 0:
            raise create_misplaced_statement_error(token.lexeme, "loop", token)
        self._end_statement()
        return BREAK if token.type == TokenType.BREAK else CONTINUE

    def _model_statement(self) -> Completion:
        """model name = [sizes]  |  model name { layer n [activation "f"] ... }"""
        self._advance()  # model
        name_token = self._consume(TokenType.IDENTIFIER)

        if self._match(TokenType.ASSIGN):
            layout_token = self._peek()
            layout = self._expression()
            if layout.type != ValueType.ARRAY:
                raise TypeMismatchError(
                    f"Model architecture must be an array of layer sizes, got {layout.type_name}"
                ).attach(layout_token)
            architecture = [self._layer_size(item, layout_token) for item in layout.data]
            activations = None
        elif self._match(TokenType.LEFT_BRACE):
            architecture, activations = self._model_layers()
        else:
            raise create_unexpected_token_error("'=' or '{'", self._peek())

        with self._at(name_token):
            self.create_model(name_token.lexeme, architecture, activations)
        self._end_statement()
        return NORMAL

    def _model_layers(self) -> Tuple[List[int], Optional[List[str]]]:
        architecture: List[int] = []
        declared: List[Optional[str]] = []
        while True:
            self._skip_separators()
            if self._match(TokenType.RIGHT_BRACE):
                break
            self._consume(TokenType.LAYER)
            size_token = self._peek()
            architecture.append(self._layer_size(self._expression(), size_token))
            declared.append(self._match_activation())
            self._end_statement()

        # The first layer is the input and takes no activation
        declared = declared[1:]
        if not any(declared):
            return architecture, None
        activations = [
            name or ("sigmoid" if i == len(declared) - 1 else "tanh")
            for i, name in enumerate(declared)
        ]
        return architecture, activations

    def _match_activation(self) -> Optional[str]:
        """`activation relu` or `activation "relu"` after a layer size."""
        if not self._match(TokenType.ACTIVATION):
            return None
        token = self._advance()
        if token.type == TokenType.STRING:
            return token.value
        if token.type == TokenType.IDENTIFIER:
            return token.lexeme
        raise create_unexpected_token_error("activation name", token)

    def _layer_size(self, value: Value, token: Token) -> int:
        if value.type != ValueType.NUMBER or not float(value.data).is_integer() or value.data <= 0:
            raise ModelError(f"Layer size must be a positive integer, got {value.repr_string()}").attach(token)
        return int(value.data)

    def _train_statement(self) -> Completion:
        """train name [ {inputs: ..., targets: ..., epochs: ...} ]"""
        self._advance()  # train
        name_token = self._consume(TokenType.IDENTIFIER)

        params: Dict[str, object] = {}
        if not self._check(TokenType.SEMICOLON, TokenType.NEWLINE, TokenType.RIGHT_BRACE, TokenType.EOF):
            params_token = self._peek()
            value = self._expression()
            if value.type != ValueType.OBJECT:
                raise TypeMismatchError(
                    f"Training parameters must be an object, got {value.type_name}"
                ).attach(params_token)
            params = {key: self._training_param(item) for key, item in value.data.items()}

        with self._at(name_token):
            self.last_value = self.train_model(name_token.lexeme, params)
        self._end_statement()
        return NORMAL

    @staticmethod
    def _training_param(value: Value):
        if value.type == ValueType.TENSOR:
            return value.data.array
        return value.to_python()

    def _import_statement(self) -> Completion:
        """import "file.nx" [as name]  |  import math [as name]"""
        self._advance()  # import
        target = self._advance()
        alias = None
        if self._match(TokenType.AS):
            alias = self._consume(TokenType.IDENTIFIER).lexeme

        with self._at(target):
            if target.type == TokenType.STRING:
                self._import_file(target.value, alias)
            elif target.type == TokenType.IDENTIFIER:
                if target.lexeme != "math":
                    raise ImportFailure(
                        f"Unknown module '{target.lexeme}'",
                        suggestions=["Import a source file with: import \"file.nx\""]
                    )
                self._bind(alias or "math", create_math_module())
            else:
                raise create_unexpected_token_error("module name or file path", target)

        self._end_statement()
        return NORMAL

    def _resolve_import(self, path: str) -> str:
        candidates = []
        if os.path.isabs(path):
            candidates.append(path)
        else:
            if self.current_file:
                candidates.append(os.path.join(os.path.dirname(self.current_file), path))
            candidates.append(os.path.abspath(path))
            candidates.extend(os.path.join(directory, path) for directory in self.config.import_paths)

        for candidate in candidates:
            if os.path.isfile(candidate):
                return os.path.realpath(candidate)
        raise ImportFailure(
            f"Cannot find module file '{path}'",
            help_text="Imports are resolved relative to the importing file, "
                      "the working directory and the configured import paths."
        )

    def _import_file(self, path: str, alias: Optional[str]):
        resolved = self._resolve_import(path)

        if alias is not None:
            if resolved not in self._modules:
                module_environment = Environment(self.globals, f"module {os.path.basename(resolved)}")
                self._modules[resolved] = Value.nil()
                with self._scope(module_environment):
                    self._load_module(resolved)
                self._modules[resolved] = Value.object(module_environment.export_variables())
            self._bind(alias, self._modules[resolved])
            return

        if resolved in self._imported:
            return
        self._imported.add(resolved)
        with self._scope(self.globals):
            self._load_module(resolved)

    def _load_module(self, resolved: str):
        logger.debug("Importing %s", resolved)
        try:
            with open(resolved, 'r', encoding='utf-8') as f:
                source = f.read()
        except OSError as e:
            raise ImportFailure(f"Cannot read module file '{resolved}': {e}") from e
        self._run(Lexer(source, resolved).tokenize(), resolved)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def call_user_function(self, function: UserFunction, args: List[Value]) -> Value:
        """Run a NEXUS function body in a fresh child of its closure."""
        environment = Environment(function.closure, function.name)
        for param, arg in zip(function.params, args):
            environment.define(param, arg)

        saved = (self.tokens, self.current, self.current_file, self._loop_depth, self._nesting)
        self.tokens = function.tokens
        self.current_file = function.filename
        self.current = function.body_start + 1
        self._loop_depth = 0
        self._nesting = 0
        self._function_depth += 1
        try:
            completion = self._execute_block(environment)
        finally:
            (self.tokens, self.current, self.current_file,
             self._loop_depth, self._nesting) = saved
            self._function_depth -= 1

        if completion.type == CompletionType.RETURN:
            return completion.value
        return NIL

    def _invoke(self, callee: Value, args: List[Value]) -> Value:
        if callee.type != ValueType.FUNCTION:
            raise TypeMismatchError(f"A {callee.type_name} is not callable")
        function = callee.data
        if function.arity is not None and len(args) != function.arity:
            raise create_arity_error(function.name, function.arity, len(args))
        if self._call_depth >= self.config.max_call_depth:
            raise StackOverflowError(
                f"Maximum call depth of {self.config.max_call_depth} exceeded",
                help_text="Check for unbounded recursion."
            )

        self._call_depth += 1
        try:
            return function.call(self, args)
        except RecursionError as e:
            raise StackOverflowError("Host recursion limit exceeded") from e
        finally:
            self._call_depth -= 1

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _expression(self) -> Value:
        return self._assignment()

    def _assignment(self) -> Value:
        if self._check(TokenType.IDENTIFIER):
            end = self._scan_target(self.current)
            if end is not None and self.tokens[end].type in ASSIGNMENT_OPERATORS:
                return self._assign_to_target()
        return self._ternary()

    def _assign_to_target(self) -> Value:
        name_token, path = self._parse_target()
        operator_token = self._advance()
        self._skip_newlines()
        value = self._assignment()

        with self._at(operator_token):
            if operator_token.type != TokenType.ASSIGN:
                operation = BINARY_OPERATIONS[COMPOUND_ASSIGNMENTS[operator_token.type]]
                value = operation(self._read_target(name_token.lexeme, path), value)
            self._write_target(name_token.lexeme, path, value)
        return value

    def _parse_target(self) -> Tuple[Token, TargetPath]:
        """Consume `name ( [expr] | .member )*`, evaluating the index expressions."""
        name_token = self._consume(TokenType.IDENTIFIER)
        path: TargetPath = []
        while True:
            if self._match(TokenType.LEFT_BRACKET):
                with self._nested():
                    self._skip_newlines()
                    index = self._expression()
                    self._skip_newlines()
                self._consume(TokenType.RIGHT_BRACKET)
                path.append(("index", index))
            elif self._match(TokenType.DOT):
                path.append(("member", self._consume_name()))
            else:
                return name_token, path

    def _read_target(self, name: str, path: TargetPath) -> Value:
        value = self.environment.get(name)
        for kind, key in path:
            value = value.get_item(key) if kind == "index" else value.get_member(key)
        return value

    def _write_target(self, name: str, path: TargetPath, value: Value):
        if not path:
            self.environment.assign(name, value)
            return
        if self.environment.is_constant(name):
            raise create_constant_reassignment_error(name)

        container = self.environment.get(name)
        for kind, key in path[:-1]:
            container = container.get_item(key) if kind == "index" else container.get_member(key)
        kind, key = path[-1]
        if kind == "index":
            container.set_item(key, value)
        else:
            container.set_member(key, value)

    def _update_target(self, operator_token: Token, prefix: bool) -> Value:
        """++x, --x, x++ and x-- on any assignable target."""
        if not self._check(TokenType.IDENTIFIER):
            raise create_invalid_target_error(self._peek())
        name_token, path = self._parse_target()
        if not prefix:
            operator_token = self._advance()

        with self._at(operator_token):
            old = self._read_target(name_token.lexeme, path)
            if old.type != ValueType.NUMBER:
                raise TypeMismatchError(f"Cannot apply '{operator_token.lexeme}' to a {old.type_name}")
            step = 1.0 if operator_token.type == TokenType.INCREMENT else -1.0
            new = Value.number(old.data + step)
            self._write_target(name_token.lexeme, path, new)
        return new if prefix else old

    def _ternary(self) -> Value:
        condition = self._logical_or()
        self._skip_nested_newlines()
        if not self._match(TokenType.QUESTION):
            return condition
        self._skip_newlines()

        if condition.is_truthy():
            result = self._assignment()
            self._skip_newlines()
            self._consume(TokenType.COLON)
            self._skip_newlines()
            self._skip_expression(get_operator_precedence(TokenType.ASSIGN))
            return result

        self._skip_expression(0)
        self._consume(TokenType.COLON)
        self._skip_newlines()
        return self._ternary()

    def _logical_or(self) -> Value:
        left = self._logical_and()
        while self._match_operator(TokenType.LOGICAL_OR):
            self._skip_newlines()
            if left.is_truthy():
                self._skip_expression(get_operator_precedence(TokenType.LOGICAL_OR))
            else:
                left = self._logical_and()
        return left

    def _logical_and(self) -> Value:
        left = self._bit_or()
        while self._match_operator(TokenType.LOGICAL_AND):
            self._skip_newlines()
            if not left.is_truthy():
                self._skip_expression(get_operator_precedence(TokenType.LOGICAL_AND))
            else:
                left = self._bit_or()
        return left

    def _bit_or(self) -> Value:
        return self._fold_binary((TokenType.BIT_OR,), self._bit_xor)

    def _bit_xor(self) -> Value:
        return self._fold_binary((TokenType.BIT_XOR,), self._bit_and)

    def _bit_and(self) -> Value:
        return self._fold_binary((TokenType.BIT_AND,), self._equality)

    def _equality(self) -> Value:
        return self._fold_binary((TokenType.EQUAL, TokenType.NOT_EQUAL), self._comparison)

    def _comparison(self) -> Value:
        return self._fold_binary(
            (TokenType.LESS_THAN, TokenType.LESS_EQUAL, TokenType.GREATER_THAN, TokenType.GREATER_EQUAL),
            self._shift
        )

    def _shift(self) -> Value:
        return self._fold_binary((TokenType.LEFT_SHIFT, TokenType.RIGHT_SHIFT), self._term)

    def _term(self) -> Value:
        return self._fold_binary((TokenType.PLUS, TokenType.MINUS), self._factor)

    def _factor(self) -> Value:
        return self._fold_binary(
            (TokenType.MULTIPLY, TokenType.DIVIDE, TokenType.MODULO, TokenType.MATRIX_MULTIPLY),
            self._unary
        )

    def _fold_binary(self, operators: Tuple[TokenType, ...], operand, same_level=None) -> Value:
        """
        One precedence level: operands come from the next level up.

        Left-associative operators fold in a loop; a right-associative
        operator takes its right operand from `same_level` instead.
        """
        left = operand()
        while True:
            self._skip_nested_newlines()
            if not self._check(*operators):
                return left
            operator_token = self._advance()
            self._skip_newlines()
            if is_right_associative(operator_token.type):
                right = (same_level or operand)()
                with self._at(operator_token):
                    return BINARY_OPERATIONS[operator_token.type](left, right)
            right = operand()
            with self._at(operator_token):
                left = BINARY_OPERATIONS[operator_token.type](left, right)

    def _unary(self) -> Value:
        if self._match(TokenType.LOGICAL_NOT, TokenType.MINUS, TokenType.PLUS, TokenType.BIT_NOT):
            operator_token = self._previous()
            self._skip_newlines()
            operand = self._unary()
            with self._at(operator_token):
                if operator_token.type == TokenType.LOGICAL_NOT:
                    return Value.boolean(not operand.is_truthy())
                if operator_token.type == TokenType.MINUS:
                    return -operand
                if operator_token.type == TokenType.PLUS:
                    return +operand
                return ~operand

        if self._match(TokenType.INCREMENT, TokenType.DECREMENT):
            return self._update_target(self._previous(), prefix=True)

        return self._power()

    def _power(self) -> Value:
        return self._fold_binary((TokenType.POWER,), self._call, self._unary)

    def _call(self) -> Value:
        if self._check(TokenType.IDENTIFIER):
            end = self._scan_target(self.current)
            if end is not None and self.tokens[end].type in (TokenType.INCREMENT, TokenType.DECREMENT):
                return self._update_target(self.tokens[end], prefix=False)

        value = self._primary()
        while True:
            if self._match(TokenType.LEFT_PAREN):
                paren = self._previous()
                args = self._arguments()
                with self._at(paren):
                    value = self._invoke(value, args)
            elif self._match(TokenType.LEFT_BRACKET):
                bracket = self._previous()
                with self._nested():
                    self._skip_newlines()
                    index = self._expression()
                    self._skip_newlines()
                self._consume(TokenType.RIGHT_BRACKET)
                with self._at(bracket):
                    value = value.get_item(index)
            elif self._match(TokenType.DOT):
                name_token = self._peek()
                name = self._consume_name()
                with self._at(name_token):
                    value = value.get_member(name)
            else:
                return value

    def _arguments(self) -> List[Value]:
        args: List[Value] = []
        with self._nested():
            self._skip_newlines()
            if not self._check(TokenType.RIGHT_PAREN):
                while True:
                    args.append(self._expression())
                    self._skip_newlines()
                    if not self._match(TokenType.COMMA):
                        break
                    self._skip_newlines()
            self._consume(TokenType.RIGHT_PAREN)
        return args

    def _primary(self) -> Value:
        token = self._peek()
        token_type = token.type

        if token_type == TokenType.NUMBER:
            self._advance()
            return Value.number(token.value)
        if token_type == TokenType.STRING:
            self._advance()
            return Value.string(token.value)
        if token_type in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return Value.boolean(token_type == TokenType.TRUE)
        if token_type == TokenType.NULL:
            self._advance()
            return NIL
        if token_type == TokenType.IDENTIFIER:
            self._advance()
            with self._at(token):
                return self.environment.get(token.lexeme)
        if token_type == TokenType.LEFT_PAREN:
            self._advance()
            with self._nested():
                self._skip_newlines()
                value = self._expression()
                self._skip_newlines()
            self._consume(TokenType.RIGHT_PAREN)
            return value
        if token_type == TokenType.LEFT_BRACKET:
            return self._array_literal()
        if token_type == TokenType.LEFT_BRACE:
            return self._object_literal()
        if token_type == TokenType.FUNCTION:
            self._advance()
            return Value.function(self._function_literal("<anonymous>"))
        if token_type in (TokenType.TENSOR, TokenType.MATRIX):
            self._advance()
            operand = self._unary()
            with self._at(token):
                return Value.tensor(self._make_tensor(operand, token_type == TokenType.MATRIX))
        if token_type == TokenType.PREDICT:
            return self._predict_expression()

        if token_type in (TokenType.EOF, TokenType.NEWLINE, TokenType.SEMICOLON):
            raise create_unexpected_token_error("expression", token)
        raise create_invalid_expression_error(f"unexpected {describe_token(token)}", token)

    def _array_literal(self) -> Value:
        self._advance()  # [
        items: List[Value] = []
        with self._nested():
            self._skip_newlines()
            while not self._check(TokenType.RIGHT_BRACKET):
                items.append(self._expression().copy())
                self._skip_newlines()
                if not self._match(TokenType.COMMA):
                    break
                self._skip_newlines()
            self._consume(TokenType.RIGHT_BRACKET)
        return Value.array(items)

    def _object_literal(self) -> Value:
        self._advance()  # {
        fields: Dict[str, Value] = {}
        with self._nested():
            self._skip_newlines()
            while not self._check(TokenType.RIGHT_BRACE):
                key_token = self._advance()
                if key_token.type == TokenType.STRING:
                    key = key_token.value
                elif key_token.type == TokenType.NUMBER:
                    key = format_number(key_token.value)
                elif self._is_name_token(key_token):
                    key = key_token.lexeme
                else:
                    raise create_unexpected_token_error("object key", key_token)

                self._skip_newlines()
                self._consume(TokenType.COLON)
                self._skip_newlines()
                fields[key] = self._expression().copy()
                self._skip_newlines()
                if not self._match(TokenType.COMMA):
                    break
                self._skip_newlines()
            self._consume(TokenType.RIGHT_BRACE)
        return Value.object(fields)

    def _make_tensor(self, operand: Value, as_matrix: bool) -> Tensor:
        if operand.type == ValueType.TENSOR:
            tensor = operand.data
        elif operand.type == ValueType.ARRAY:
            tensor = Tensor.from_nested(operand.to_python())
        elif operand.type == ValueType.NUMBER:
            tensor = Tensor((1,), [operand.data])
        else:
            raise TypeMismatchError(f"Cannot build a tensor from a {operand.type_name}")

        if as_matrix:
            if tensor.ndim == 1:
                tensor = Tensor.from_array(tensor.array.reshape(1, -1))
            elif tensor.ndim != 2:
                raise TypeMismatchError(f"A matrix must have rank 2, got rank {tensor.ndim}")
        return tensor

    def _predict_expression(self) -> Value:
        """predict name(input)"""
        self._advance()  # predict
        name_token = self._consume(TokenType.IDENTIFIER)
        self._consume(TokenType.LEFT_PAREN)
        with self._nested():
            self._skip_newlines()
            input_value = self._expression()
            self._skip_newlines()
        self._consume(TokenType.RIGHT_PAREN)
        with self._at(name_token):
            return self.predict_model(name_token.lexeme, input_value)

    # ------------------------------------------------------------------
    # Structural skipping
    # ------------------------------------------------------------------

    def _continues_line(self) -> bool:
        """A newline after a binary operator does not end an expression."""
        if self.current == 0:
            return False
        previous = self.tokens[self.current - 1]
        return previous.type in OPERATOR_TYPES and previous.type not in NON_CONTINUING

    def _skip_balanced(self):
        """Skip from an opening bracket to just past its partner."""
        opener = self._peek()
        if opener.type not in OPENERS:
            raise create_unexpected_token_error("'(', '[' or '{'", opener)
        depth = 0
        while True:
            token = self._peek()
            if token.type == TokenType.EOF:
                raise create_unexpected_token_error("closing bracket", token)
            self._advance()
            if token.type in OPENERS:
                depth += 1
            elif token.type in CLOSERS:
                depth -= 1
                if depth == 0:
                    return

    def _skip_to_block_end(self):
        """Skip the rest of the current block, including its '}'."""
        depth = 0
        while True:
            token = self._peek()
            if token.type == TokenType.EOF:
                raise create_unexpected_token_error(TokenType.RIGHT_BRACE, token)
            self._advance()
            if token.type in OPENERS:
                depth += 1
            elif token.type in CLOSERS:
                if depth == 0:
                    return
                depth -= 1

    def _skip_expression(self, min_precedence: int):
        """
        Skip an operand without evaluating it.

        Stops before a closing bracket, separator or `else` at nesting
        depth zero, before an unmatched ':' and before any binary operator
        binding no tighter than `min_precedence`.
        """
        depth = 0
        pending_questions = 0
        while True:
            token = self._peek()
            token_type = token.type
            if token_type == TokenType.EOF:
                return
            if token_type in OPENERS:
                depth += 1
            elif token_type in CLOSERS:
                if depth == 0:
                    return
                depth -= 1
            elif depth == 0:
                if token_type in (TokenType.SEMICOLON, TokenType.COMMA, TokenType.ELSE):
                    return
                if token_type == TokenType.NEWLINE:
                    if not (self._nesting or self._continues_line()):
                        return
                elif 0 < get_operator_precedence(token_type) <= min_precedence:
                    return
                elif token_type == TokenType.QUESTION:
                    pending_questions += 1
                elif token_type == TokenType.COLON:
                    if pending_questions == 0:
                        return
                    pending_questions -= 1
            self._advance()

    def _skip_statement(self):
        """Skip one statement with the same extent its execution would consume."""
        self._skip_newlines()
        token_type = self._peek().type

        if token_type == TokenType.LEFT_BRACE:
            self._skip_balanced()
            return
        if token_type == TokenType.IF:
            self._advance()
            self._skip_balanced()
            self._skip_newlines()
            self._skip_statement()
            if self._match_else():
                self._skip_statement()
            return
        if token_type in (TokenType.WHILE, TokenType.FOR):
            self._advance()
            self._skip_balanced()
            self._skip_newlines()
            self._skip_statement()
            return
        if token_type == TokenType.FUNCTION and self._peek(1).type == TokenType.IDENTIFIER:
            self._advance()
            self._advance()
            self._skip_balanced()
            self._skip_newlines()
            self._skip_balanced()
            return

        depth = 0
        while True:
            token_type = self._peek().type
            if token_type == TokenType.EOF:
                return
            if token_type in OPENERS:
                depth += 1
            elif token_type in CLOSERS:
                if depth == 0:
                    return
                depth -= 1
            elif depth == 0:
                if token_type == TokenType.ELSE:
                    return
                if token_type == TokenType.SEMICOLON:
                    self._advance()
                    return
                if token_type == TokenType.NEWLINE and not self._continues_line():
                    self._advance()
                    return
            self._advance()

    def _scan_target(self, index: int) -> Optional[int]:
        """
        Index of the token following `name ( [..] | .member )*` at `index`,
        found without evaluating anything; None if the brackets never close.
        """
        index += 1
        while index < len(self.tokens):
            token_type = self.tokens[index].type
            if token_type == TokenType.DOT and index + 1 < len(self.tokens) \
                    and self._is_name_token(self.tokens[index + 1]):
                index += 2
            elif token_type == TokenType.LEFT_BRACKET:
                depth = 0
                while index < len(self.tokens):
                    inner = self.tokens[index].type
                    if inner in OPENERS:
                        depth += 1
                    elif inner in CLOSERS:
                        depth -= 1
                        if depth == 0:
                            break
                    elif inner == TokenType.EOF:
                        return None
                    index += 1
                else:
                    return None
                index += 1
            else:
                return index
        return None

    # ------------------------------------------------------------------
    # Cursor helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_name_token(token: Token) -> bool:
        """Identifiers and keywords may both name members and object keys."""
        return (token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES
                or token.type in (TokenType.TRUE, TokenType.FALSE, TokenType.NULL))

    def _consume_name(self) -> str:
        token = self._peek()
        if not self._is_name_token(token):
            raise create_unexpected_token_error("member name", token)
        self._advance()
        return token.lexeme

    def _match(self, *token_types: TokenType) -> bool:
        """Check if current token matches one of the types and consume if so."""
        if self._check(*token_types):
            self._advance()
            return True
        return False

    def _match_operator(self, token_type: TokenType) -> bool:
        self._skip_nested_newlines()
        return self._match(token_type)

    def _check(self, *token_types: TokenType) -> bool:
        """Check if current token matches one of the types without consuming."""
        return self._peek().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._peek()
        if token.type != TokenType.EOF:
            self.current += 1
        return token

    def _is_at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        """Return a token ahead of the cursor without consuming."""
        index = self.current + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return self.tokens[-1]

    def _previous(self) -> Token:
        return self.tokens[self.current - 1]

    def _consume(self, token_type: TokenType) -> Token:
        """Consume token of expected type or raise error."""
        if self._check(token_type):
            return self._advance()
        raise create_unexpected_token_error(token_type, self._peek())

    def _skip_newlines(self):
        while self._check(TokenType.NEWLINE):
            self._advance()

    def _skip_nested_newlines(self):
        if self._nesting:
            self._skip_newlines()

    def _skip_separators(self):
        while self._check(TokenType.NEWLINE, TokenType.SEMICOLON):
            self._advance()
