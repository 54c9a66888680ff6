"""
Test suite for NEXUS lexical environments.

Tests cover:
- Definition, lookup and shadowing across scopes
- Constant enforcement
- Export/import of bindings
- Similar-name suggestions for undefined variables

Author: xwest
"""

import io
import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from nexus.runtime import Environment, Value, UndefinedVariableError, ConstantReassignmentError
from nexus.runtime.environment import levenshtein_distance


class TestEnvironment(unittest.TestCase):
    """Test cases for Environment."""

    def setUp(self):
        self.globals = Environment()
        self.globals.define("x", Value.number(1))

    def test_shadowing(self):
        child = self.globals.create_child()
        child.define("x", Value.number(2))
        self.assertEqual(child.get("x"), Value.number(2))
        self.assertEqual(self.globals.get("x"), Value.number(1))

    def test_assign_updates_nearest_definition(self):
        child = self.globals.create_child()
        child.assign("x", Value.number(5))
        self.assertEqual(self.globals.get("x"), Value.number(5))
        self.assertFalse(child.exists_in_current_scope("x"))

    def test_assign_never_creates(self):
        with self.assertRaises(UndefinedVariableError):
            self.globals.assign("y", Value.number(1))
        self.assertFalse(self.globals.exists("y"))

    def test_constants(self):
        self.globals.define_constant("PI", Value.number(3.14))
        with self.assertRaises(ConstantReassignmentError):
            self.globals.assign("PI", Value.number(3))
        with self.assertRaises(ConstantReassignmentError):
            self.globals.create_child().assign("PI", Value.number(3))
        self.assertEqual(self.globals.get("PI"), Value.number(3.14))
        self.assertTrue(self.globals.is_constant("PI"))

    def test_child_may_redefine_constant_as_variable(self):
        self.globals.define_constant("PI", Value.number(3.14))
        child = self.globals.create_child()
        child.define("PI", Value.number(3))
        child.assign("PI", Value.number(4))
        self.assertFalse(child.is_constant("PI"))
        self.assertEqual(self.globals.get("PI"), Value.number(3.14))

    def test_define_stores_a_copy(self):
        array = Value.from_python([1, 2])
        self.globals.define("a", array)
        array.set_item(Value.number(0), Value.number(99))
        self.assertEqual(self.globals.get("a").to_python(), [1.0, 2.0])

    def test_remove_only_touches_current_scope(self):
        child = self.globals.create_child()
        self.assertFalse(child.remove("x"))
        self.assertTrue(self.globals.remove("x"))
        self.assertFalse(self.globals.exists("x"))

    def test_export_import_round_trip(self):
        self.globals.define("items", Value.from_python(["a", "b"]))
        exported = self.globals.export_variables()

        other = Environment(name="other")
        other.import_variables(exported)
        self.assertEqual(other.get("x"), Value.number(1))
        self.assertEqual(other.get("items"), self.globals.get("items"))

        other.get("items").set_item(Value.number(0), Value.string("z"))
        self.assertEqual(self.globals.get("items").to_python(), ["a", "b"])

    def test_similar_name_suggestions(self):
        self.globals.define("counter", Value.number(0))
        self.assertIn("counter", self.globals.get_similar_names("countr"))
        with self.assertRaises(UndefinedVariableError) as context:
            self.globals.get("countr")
        self.assertIn("Did you mean 'counter'?", context.exception.diagnostic.suggestions)

    def test_counts_and_paths(self):
        child = Environment(self.globals, "block")
        child.define("y", Value.number(2))
        self.assertEqual(child.variable_count, 1)
        self.assertEqual(child.total_variable_count, 2)
        self.assertEqual(child.depth, 1)
        self.assertEqual(child.full_scope_path, "global::block")
        self.assertEqual(child.get_all_variable_names(), ["y", "x"])
        self.assertIs(child.find_scope("x"), self.globals)

    def test_print_scopes(self):
        self.globals.define_constant("K", Value.string("v"))
        stream = io.StringIO()
        self.globals.create_child().print_all_scopes(stream)
        output = stream.getvalue()
        self.assertIn("Scope 'global::block'", output)
        self.assertIn('const K = "v" (string)', output)

    def test_clear(self):
        self.globals.clear()
        self.assertEqual(self.globals.variable_count, 0)

    def test_levenshtein(self):
        self.assertEqual(levenshtein_distance("kitten", "sitting"), 3)
        self.assertEqual(levenshtein_distance("", "abc"), 3)


if __name__ == '__main__':
    unittest.main()
