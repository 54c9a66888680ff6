"""
Test suite for the NEXUS interpreter.

Tests cover:
- Operator precedence, associativity and short-circuiting
- Declarations, scoping, constants and assignment targets
- Control flow: if/else, while, for, break, continue, return
- Functions, closures, recursion and call depth limits
- Arrays, objects, tensors and builtins
- Imports, models and the host API

Author: xwest
"""

import io
import os
import shutil
import sys
import tempfile
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from nexus.config import InterpreterConfig
from nexus.interpreter import Interpreter, ParseError
from nexus.lexer import LexerError
from nexus.runtime import (
    Value, ValueType, UndefinedVariableError, ConstantReassignmentError, TypeMismatchError,
    DivisionByZeroError, ArityError, StackOverflowError, TensorShapeError, ModelError,
    ImportFailure, NexusRuntimeError
)


class InterpreterTestCase(unittest.TestCase):
    """Shared helpers: programs run against a captured output stream."""

    def setUp(self):
        self.output = io.StringIO()
        self.interpreter = Interpreter(output=self.output)

    def run_program(self, source: str) -> str:
        self.interpreter.execute(source)
        return self.output.getvalue()

    def assertPrints(self, source: str, expected: str):
        self.assertEqual(self.run_program(source), expected)


class TestExpressions(InterpreterTestCase):

    def test_precedence(self):
        self.assertPrints("print(2 + 3 * 2)", "8\n")
        self.assertPrints("print((2 + 3) * 2)", "8\n10\n")

    def test_left_associativity(self):
        self.assertPrints("print(10 - 2 - 3, 100 / 10 / 5)", "5 2\n")

    def test_power_is_right_associative(self):
        self.assertPrints("print(2 ** 3 ** 2, -2 ** 2)", "512 -4\n")

    def test_division(self):
        self.assertPrints("print(5.0 / 2.0, 5 / 2, 7 % 3, -7 % 3)", "2.5 2.5 1 -1\n")

    def test_division_by_zero(self):
        with self.assertRaises(DivisionByZeroError):
            self.run_program("print(5 / 0)")
        with self.assertRaises(DivisionByZeroError):
            self.run_program("print(5 % 0)")

    def test_string_concatenation(self):
        self.assertPrints('print("a" + 1)\nprint(1 + "a")', "a1\n1a\n")

    def test_type_mismatch_carries_location(self):
        with self.assertRaises(TypeMismatchError) as context:
            self.run_program("let x = 1\nlet y = x + true")
        self.assertEqual(context.exception.location.line, 2)
        self.assertEqual(context.exception.location.column, 11)

    def test_comparisons_and_equality(self):
        self.assertPrints(
            'print(1 < 2, 2 <= 1, "b" > "a", [1, 2] == [1, 2], 1 == "1", null == null)',
            "true false true true false true\n"
        )

    def test_logical_operators_return_operands(self):
        self.assertPrints('print(0 || "x", 1 && 2, null && 1, !0, !"s")', "x 2 nil true false\n")

    def test_short_circuit_skips_evaluation(self):
        source = """
let called = false
function touch() { called = true; return true }
print(false && touch(), true || touch())
print(called)
"""
        self.assertPrints(source, "false true\nfalse\n")

    def test_ternary(self):
        self.assertPrints('print(5 > 3 ? "yes" : "no", 1 > 3 ? "yes" : "no")', "yes no\n")
        self.assertPrints('let t = 0 ? "a" : 1 ? "b" : "c"\nprint(t)', "yes no\nb\n")

    def test_ternary_skips_untaken_branch(self):
        self.assertPrints("let n = 0\nlet r = true ? 1 : (n = 5)\nprint(n, r)", "0 1\n")

    def test_bitwise_and_shift(self):
        self.assertPrints("print(6 & 3, 6 | 3, 6 ^ 3, 1 << 4, 256 >> 2, ~5)", "2 7 5 16 64 -6\n")

    def test_expression_continues_after_operator(self):
        self.assertPrints("let total = 1 +\n  2 +\n  3\nprint(total)", "6\n")

    def test_multiline_literals(self):
        source = """
let data = [
  1,
  2
]
let settings = {
  name: "n",
  size: len(data)
}
print(settings.size)
"""
        self.assertPrints(source, "2\n")

    def test_evaluate_expression(self):
        self.interpreter.execute("let x = 4")
        self.assertEqual(self.interpreter.evaluate_expression("x * 2"), Value.number(8))
        with self.assertRaises(ParseError):
            self.interpreter.evaluate_expression("1 2")

    def test_last_value(self):
        result = self.interpreter.execute("1 + 2")
        self.assertEqual(result, Value.number(3))
        self.assertEqual(self.interpreter.last_value, Value.number(3))


class TestDeclarationsAndScope(InterpreterTestCase):

    def test_block_scoping(self):
        self.assertPrints("let x = 1\n{\n  let x = 2\n}\nprint(x)", "1\n")

    def test_inner_block_assigns_outer_variable(self):
        self.assertPrints("let x = 1\n{ x = 2 }\nprint(x)", "2\n")

    def test_multiple_declarators_and_type_keywords(self):
        self.assertPrints("let a = 1, b = 2\nint c = 3\nvar d\nprint(a + b + c, d)", "6 nil\n")

    def test_assignment_requires_declaration(self):
        with self.assertRaises(UndefinedVariableError):
            self.run_program("y = 5")

    def test_undefined_variable_suggestions(self):
        with self.assertRaises(UndefinedVariableError) as context:
            self.run_program("let count = 1\nprint(cont)")
        self.assertIn("Did you mean 'count'?", context.exception.diagnostic.suggestions)
        self.assertEqual(context.exception.location.line, 2)

    def test_constant_reassignment(self):
        with self.assertRaises(ConstantReassignmentError) as context:
            self.run_program("const PI = 3.14\nPI = 3")
        self.assertEqual(context.exception.location.line, 2)

    def test_final_modifier_makes_constant(self):
        with self.assertRaises(ConstantReassignmentError):
            self.run_program("final int LIMIT = 3\nLIMIT += 1")

    def test_constant_requires_initializer(self):
        with self.assertRaises(ParseError):
            self.run_program("const x")

    def test_constant_redeclaration_in_same_scope(self):
        with self.assertRaises(ConstantReassignmentError):
            self.run_program("const a = 1\nlet a = 2")

    def test_constant_shadowed_in_child_scope(self):
        self.assertPrints("const a = 1\n{\n  let a = 2\n  a = 3\n  print(a)\n}\nprint(a)", "3\n1\n")

    def test_function_cannot_replace_constant(self):
        with self.assertRaises(ConstantReassignmentError) as context:
            self.run_program("const f = 1\nfunction f() { return 2 }")
        self.assertEqual(context.exception.location.line, 2)
        self.assertPrints("print(f)", "1\n")

    def test_import_cannot_replace_constant(self):
        with self.assertRaises(ConstantReassignmentError):
            self.run_program("const math = 1\nimport math")
        with self.assertRaises(ConstantReassignmentError):
            self.run_program("const m = 2\nimport math as m")
        self.assertPrints("print(math, m)", "1 2\n")

    def test_constant_contents_are_frozen(self):
        with self.assertRaises(ConstantReassignmentError):
            self.run_program("const arr = [1, 2]\narr[0] = 5")

    def test_scope_restored_after_error(self):
        with self.assertRaises(UndefinedVariableError):
            self.run_program("{\n  let inner = 1\n  missing\n}")
        self.assertIs(self.interpreter.environment, self.interpreter.globals)
        self.assertEqual(self.interpreter.scope_stack, [self.interpreter.globals])

    def test_compound_assignment(self):
        self.assertPrints("let x = 5\nx *= 2\nx -= 3\nx **= 2\nprint(x)", "49\n")

    def test_increment_and_decrement(self):
        self.assertPrints("let i = 1\nprint(i++)\nprint(i)\nprint(++i)\nprint(--i)", "1\n2\n3\n2\n")

    def test_increment_requires_number(self):
        with self.assertRaises(TypeMismatchError):
            self.run_program('let s = "a"\ns++')


class TestControlFlow(InterpreterTestCase):

    def test_if_else(self):
        source = """
let x = 5
if (x > 10) {
  print("big")
}
else {
  print("small")
}
"""
        self.assertPrints(source, "small\n")

    def test_else_if_chain(self):
        source = """
let x = 5
if (x > 10) print("a")
else if (x > 3) print("b")
else print("c")
"""
        self.assertPrints(source, "b\n")

    def test_dangling_else_binds_to_nearest_if(self):
        self.assertPrints("if (true) if (false) print(1) else print(2)", "2\n")

    def test_while_with_break_and_continue(self):
        source = """
let sum = 0
let i = 0
while (i < 10) {
  i++
  if (i % 2 == 0) continue
  if (i > 7) break
  sum += i
}
print(sum, i)
"""
        self.assertPrints(source, "16 9\n")

    def test_for_loop(self):
        source = """
let total = 0
for (let i = 1; i <= 5; i++) {
  total += i
}
print(total)
"""
        self.assertPrints(source, "15\n")

    def test_for_variable_does_not_leak(self):
        with self.assertRaises(UndefinedVariableError):
            self.run_program("for (let i = 0; i < 2; i++) {}\nprint(i)")

    def test_for_with_empty_clauses(self):
        self.assertPrints("let n = 0\nfor (;;) { n++\n if (n == 3) break }\nprint(n)", "3\n")

    def test_nested_loops_break_inner_only(self):
        source = """
let hits = 0
for (let i = 0; i < 3; i++) {
  for (let j = 0; j < 3; j++) {
    if (j == 1) break
    hits++
  }
}
print(hits)
"""
        self.assertPrints(source, "3\n")

    def test_misplaced_control_statements(self):
        with self.assertRaises(ParseError) as context:
            self.run_program("return 1")
        self.assertEqual(context.exception.code, "P006")
        with self.assertRaises(ParseError):
            self.run_program("break")
        with self.assertRaises(ParseError):
            self.run_program("function f() { continue }\nf()")

    def test_unsupported_construct(self):
        with self.assertRaises(ParseError) as context:
            self.run_program("class Foo {}")
        self.assertEqual(context.exception.code, "P013")

    def test_missing_closing_brace(self):
        with self.assertRaises(ParseError):
            self.run_program("if (true) {\n  print(1)\n")


class TestFunctions(InterpreterTestCase):

    def test_recursion(self):
        source = """
function fib(n) {
  if (n < 2) return n
  return fib(n - 1) + fib(n - 2)
}
print(fib(10))
"""
        self.assertPrints(source, "55\n")

    def test_closures_capture_defining_scope(self):
        source = """
function makeCounter() {
  let count = 0
  return function() {
    count = count + 1
    return count
  }
}
let c = makeCounter()
c()
c()
print(c())
"""
        self.assertPrints(source, "3\n")

    def test_function_without_return_gives_nil(self):
        self.assertPrints("fn noop() { let a = 1 }\nprint(noop())", "nil\n")

    def test_return_from_inside_loop(self):
        source = """
function find(items, target) {
  for (let i = 0; i < len(items); i++) {
    if (items[i] == target) return i
  }
  return -1
}
print(find([4, 5, 6], 6), find([1], 9))
"""
        self.assertPrints(source, "2 -1\n")

    def test_arguments_are_copied(self):
        source = """
function mutate(list) { list[0] = 99; return list }
let original = [1, 2]
let changed = mutate(original)
print(original, changed)
"""
        self.assertPrints(source, "[1, 2] [99, 2]\n")

    def test_arity_mismatch(self):
        with self.assertRaises(ArityError):
            self.run_program("function f(a, b) { return a }\nf(1)")
        with self.assertRaises(ArityError):
            self.run_program("len(1, 2)")

    def test_calling_non_function(self):
        with self.assertRaises(TypeMismatchError):
            self.run_program("let x = 3\nx()")

    def test_stack_overflow(self):
        with self.assertRaises(StackOverflowError):
            self.run_program("function down(n) { return down(n + 1) }\ndown(0)")

    def test_deeply_nested_expression(self):
        depth = 5000
        with self.assertRaises(StackOverflowError):
            self.run_program("print(" + "(" * depth + "1" + ")" * depth + ")")
        with self.assertRaises(StackOverflowError):
            self.interpreter.evaluate_expression("(" * depth + "1" + ")" * depth)
        self.assertIs(self.interpreter.environment, self.interpreter.globals)
        self.assertPrints("print(1)", "1\n")

    def test_configured_call_depth(self):
        interpreter = Interpreter(InterpreterConfig(max_call_depth=10), output=io.StringIO())
        source = "function depth(n) { if (n == 0) return 0\n return depth(n - 1) }\n"
        interpreter.execute(source + "depth(5)")
        with self.assertRaises(StackOverflowError):
            interpreter.execute("depth(20)")

    def test_definitions_persist_between_runs(self):
        self.interpreter.execute("function sq(x) { return x * x }")
        self.assertPrints("print(sq(7))", "49\n")


class TestDataStructures(InterpreterTestCase):

    def test_arrays_and_objects(self):
        source = """
let a = [1, 2, 3]
a[0] = 10
a[3] = 4
print(a)
print(a.length)
let b = a
b[1] = 99
print(a[1])
let o = {name: "nexus", version: 1}
o.version += 1
o["tag"] = "x"
print(o.version, o.tag, o.missing)
"""
        self.assertPrints(source, "[10, 2, 3, 4]\n4\n2\n2 x nil\n")

    def test_nested_assignment(self):
        self.assertPrints('let m = {rows: [[1, 2], [3, 4]]}\nm.rows[1][0] = 7\nprint(m.rows)', "[[1, 2], [7, 4]]\n")

    def test_index_errors(self):
        with self.assertRaises(NexusRuntimeError):
            self.run_program("let a = [1]\nprint(a[5])")

    def test_builtins(self):
        source = """
print(len("hello"), type([]), str(12), num("3.5") + 1)
let base = [1]
let grown = push(base, 2)
print(base, grown)
print(range(3), slice([1, 2, 3, 4], 1, 3), keys({a: 1, b: 2}))
print(has({a: 1}, "a"), has([1, 2], 3), min(3, 1, 2), max([4, 9, 2]))
print(round(2.5), round(-2.5), floor(-1.5), abs(-3), sqrt(-1))
"""
        expected = (
            "5 array 12 4.5\n"
            "[1] [1, 2]\n"
            '[0, 1, 2] [2, 3] ["a", "b"]\n'
            "true false 1 9\n"
            "3 -3 -2 3 nan\n"
        )
        self.assertPrints(source, expected)

    def test_math_module(self):
        self.assertPrints("import math\nprint(math.floor(math.pi), math.sqrt(16))", "3 4\n")
        self.assertPrints("import math as m\nprint(m.log(1), m.cos(0))", "3 4\n0 1\n")

    def test_timers(self):
        self.assertPrints('start_timer("t")\nlet e = end_timer("t")\nprint(e >= 0)', "true\n")
        with self.assertRaises(NexusRuntimeError):
            self.run_program('end_timer("never")')


class TestTensors(InterpreterTestCase):

    def test_tensor_literals_and_operators(self):
        source = """
let t = tensor [[1, 2], [3, 4]]
print(t)
print(t @ t)
print(t.shape, t[1], t[1][0])
print(t * 2, sum(t))
"""
        expected = (
            "tensor([[1, 2], [3, 4]])\n"
            "tensor([[7, 10], [15, 22]])\n"
            "[2, 2] tensor([3, 4]) 3\n"
            "tensor([[2, 4], [6, 8]]) 10\n"
        )
        self.assertPrints(source, expected)

    def test_matrix_promotes_vectors(self):
        self.assertPrints("let m = matrix [1, 2, 3]\nprint(shape(m))", "[1, 3]\n")

    def test_tensors_are_shared(self):
        self.assertPrints("let a = tensor [1, 2]\nlet b = a\nb[0] = 5\nprint(a[0])", "5\n")

    def test_shape_mismatch(self):
        with self.assertRaises(TensorShapeError):
            self.run_program("print(tensor [1, 2] + tensor [1, 2, 3])")
        with self.assertRaises(TensorShapeError):
            self.run_program("let bad = tensor [[1, 2], [3]]")

    def test_tensor_builtins(self):
        source = """
print(zeros(2), ones([1, 2]))
let r = reshape(tensor [1, 2, 3, 4], 2, 2)
print(transpose(r), dot([1, 2], [3, 4]), norm(tensor [3, 4]))
print(mean(r, 0))
"""
        expected = (
            "tensor([0, 0]) tensor([[1, 1]])\n"
            "tensor([[1, 3], [2, 4]]) 11 5\n"
            "tensor([2, 3])\n"
        )
        self.assertPrints(source, expected)


class TestImports(InterpreterTestCase):

    def setUp(self):
        super().setUp()
        self.module_dir = tempfile.mkdtemp()
        with open(os.path.join(self.module_dir, "helpers.nx"), "w", encoding="utf-8") as f:
            f.write("function twice(x) { return x * 2 }\nlet shared = 5\n")
        config = InterpreterConfig(import_paths=[self.module_dir])
        self.interpreter = Interpreter(config, output=self.output)

    def tearDown(self):
        shutil.rmtree(self.module_dir)

    def test_import_into_globals(self):
        self.assertPrints('import "helpers.nx"\nprint(twice(shared))', "10\n")

    def test_import_runs_once(self):
        self.run_program('import "helpers.nx"\nshared = 7\nimport "helpers.nx"')
        self.assertPrints("print(shared)", "7\n")

    def test_import_with_alias(self):
        self.assertPrints('import "helpers.nx" as h\nprint(h.twice(3), h.shared)', "6 5\n")
        self.assertFalse(self.interpreter.globals.exists("twice"))

    def test_import_failures(self):
        with self.assertRaises(ImportFailure):
            self.run_program('import "missing.nx"')
        with self.assertRaises(ImportFailure):
            self.run_program("import unknown_module")

    def test_import_alias_cannot_replace_constant(self):
        with self.assertRaises(ConstantReassignmentError):
            self.run_program('const h = 1\nimport "helpers.nx" as h')

    def test_import_inside_function_resolves_against_its_file(self):
        library = os.path.join(self.module_dir, "lib")
        os.mkdir(library)
        with open(os.path.join(library, "extra.nx"), "w", encoding="utf-8") as f:
            f.write("let extra = 9\n")
        loader = os.path.join(library, "loader.nx")
        with open(loader, "w", encoding="utf-8") as f:
            f.write('function load() {\n  import "extra.nx" as e\n  return e.extra\n}\n')

        interpreter = Interpreter(output=self.output)
        interpreter.execute(f'import "{loader}"\nprint(load())')
        self.assertEqual(self.output.getvalue(), "9\n")

    def test_import_relative_to_script(self):
        main_path = os.path.join(self.module_dir, "main.nx")
        with open(main_path, "w", encoding="utf-8") as f:
            f.write('import "helpers.nx"\nprint(twice(21))\n')
        Interpreter(output=self.output).execute_file(main_path)
        self.assertEqual(self.output.getvalue(), "42\n")


class TestModels(InterpreterTestCase):

    TRAIN_XOR = (
        "model net = [2, 4, 1]\n"
        "train net {inputs: [[0, 0], [0, 1], [1, 0], [1, 1]], targets: [0, 1, 1, 0], epochs: 5, seed: 1}\n"
    )

    def test_model_train_predict(self):
        result = self.interpreter.execute(self.TRAIN_XOR)
        self.assertEqual(result.get_member("epochs"), Value.number(5))
        self.assertEqual(result.get_member("loss").type, ValueType.NUMBER)

        self.assertPrints("let p = predict net([1, 0])\nprint(type(p), p.size)", "tensor 1\n")

    def test_model_block_syntax(self):
        source = """
model clf {
  layer 3
  layer 5 activation relu
  layer 2 activation "sigmoid"
}
"""
        self.run_program(source)
        network = self.interpreter.get_model("clf")
        self.assertEqual(network.architecture, [3, 5, 2])
        self.assertEqual(network.activation_names, ["relu", "sigmoid"])
        self.assertPrints('print(len(model_summary("clf")) > 0)', "true\n")

    def test_model_errors(self):
        with self.assertRaises(ModelError):
            self.run_program("print(predict nope([1]))")
        with self.assertRaises(ModelError):
            self.run_program("model bad = [2, 0, 1]")
        with self.assertRaises(ModelError):
            self.run_program("model net = [2, 1]\ntrain net {epochs: 1}")
        with self.assertRaises(TypeMismatchError):
            self.run_program('model net = "2,1"')

    def test_save_and_load(self):
        self.run_program(self.TRAIN_XOR)
        directory = tempfile.mkdtemp()
        try:
            path = os.path.join(directory, "net.npz")
            self.interpreter.save_model("net", path)
            self.interpreter.load_model("copy", path)
        finally:
            shutil.rmtree(directory)

        sample = Value.from_python([0, 1])
        original = self.interpreter.predict_model("net", sample)
        restored = self.interpreter.predict_model("copy", sample)
        self.assertEqual(original, restored)

    def test_print_models_and_variables(self):
        self.run_program(self.TRAIN_XOR + 'const K = "v"\nlet n = 1')
        stream = io.StringIO()
        self.interpreter.print_models(stream)
        self.assertIn("net: NeuralNetwork [2, 4, 1]", stream.getvalue())

        stream = io.StringIO()
        self.interpreter.print_variables(stream)
        listing = stream.getvalue()
        self.assertIn('const K = "v" (string)', listing)
        self.assertIn("n = 1 (number)", listing)
        self.assertNotIn("print", listing)

    def test_clear_environment(self):
        self.run_program(self.TRAIN_XOR + "let keep = 1")
        self.interpreter.clear_environment()
        self.assertEqual(self.interpreter.models, {})
        with self.assertRaises(UndefinedVariableError):
            self.interpreter.execute("keep")
        self.assertPrints("print(1)", "1\n")


class TestSyntaxErrors(InterpreterTestCase):

    def test_lexer_errors_propagate(self):
        with self.assertRaises(LexerError):
            self.run_program('print("unterminated)')

    def test_unexpected_token_reports_expected(self):
        with self.assertRaises(ParseError) as context:
            self.run_program("let = 5")
        self.assertIsNotNone(context.exception.expected)
        self.assertEqual(context.exception.location.column, 5)

    def test_missing_separator(self):
        with self.assertRaises(ParseError):
            self.run_program("let a = 1 let b = 2")

    def test_invalid_expression(self):
        with self.assertRaises(ParseError):
            self.run_program("let a = )")


if __name__ == '__main__':
    unittest.main()
