"""
Test suite for the NEXUS value model.

Author: xwest
"""

import math
import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from nexus.runtime import (
    Value, ValueType, Tensor, NativeFunction, TypeMismatchError, DivisionByZeroError,
    IndexOutOfRangeError
)


class TestValueArithmetic(unittest.TestCase):

    def test_number_arithmetic(self):
        self.assertEqual(Value.number(5) + Value.number(3), Value.number(8))
        self.assertEqual(Value.number(5) / Value.number(2), Value.number(2.5))
        self.assertEqual(Value.number(2) ** Value.number(10), Value.number(1024))
        self.assertEqual(-Value.number(4), Value.number(-4))

    def test_string_concatenation_coerces_other_side(self):
        self.assertEqual(str(Value.string("a") + Value.number(1)), "a1")
        self.assertEqual(str(Value.number(1) + Value.string("a")), "1a")
        self.assertEqual(str(Value.string("v") + Value.number(2.5)), "v2.5")
        self.assertEqual(str(Value.string("ok: ") + Value.boolean(True)), "ok: true")

    def test_mismatched_operands(self):
        with self.assertRaises(TypeMismatchError):
            Value.number(1) + Value.boolean(True)
        with self.assertRaises(TypeMismatchError):
            Value.string("a") - Value.number(1)
        with self.assertRaises(TypeMismatchError):
            Value.array([]) * Value.number(2)

    def test_division_by_zero(self):
        with self.assertRaises(DivisionByZeroError):
            Value.number(5) / Value.number(0)
        with self.assertRaises(DivisionByZeroError):
            Value.number(5) % Value.number(0)
        with self.assertRaises(DivisionByZeroError):
            Value.number(0) ** Value.number(-1)

    def test_modulo_takes_sign_of_dividend(self):
        self.assertEqual(Value.number(-7) % Value.number(3), Value.number(-1))
        self.assertEqual(Value.number(7) % Value.number(-3), Value.number(1))

    def test_power_domain_errors(self):
        self.assertTrue(math.isnan((Value.number(-8) ** Value.number(0.5)).data))
        self.assertEqual((Value.number(10) ** Value.number(400)).data, math.inf)

    def test_bitwise_uses_integer_part(self):
        self.assertEqual(Value.number(6.9) & Value.number(3), Value.number(2))
        self.assertEqual(Value.number(1) << Value.number(4), Value.number(16))
        self.assertEqual(~Value.number(5), Value.number(-6))

    def test_tensor_arithmetic(self):
        t = Value.tensor(Tensor((2,), [1, 2]))
        self.assertEqual((t + Value.number(1)).data, Tensor((2,), [2, 3]))
        self.assertEqual((Value.number(10) - t).data, Tensor((2,), [9, 8]))
        self.assertEqual((Value.number(4) / t).data, Tensor((2,), [4, 2]))


class TestValueSemantics(unittest.TestCase):

    def test_truthiness(self):
        falsy = [Value.nil(), Value.boolean(False), Value.number(0), Value.string(""),
                 Value.array([]), Value.object({})]
        truthy = [Value.boolean(True), Value.number(-1), Value.string("0"),
                  Value.array([Value.nil()]), Value.tensor(Tensor((1,)))]
        for value in falsy:
            self.assertFalse(value.is_truthy(), value)
        for value in truthy:
            self.assertTrue(value.is_truthy(), value)

    def test_equality(self):
        self.assertEqual(Value.from_python([1, [2, "x"]]), Value.from_python([1, [2, "x"]]))
        self.assertNotEqual(Value.number(1), Value.string("1"))
        self.assertNotEqual(Value.number(0), Value.boolean(False))
        self.assertEqual(Value.nil(), Value.nil())

    def test_functions_compare_by_identity(self):
        native = NativeFunction("f", 0, lambda interpreter, args: Value.nil())
        other = NativeFunction("f", 0, lambda interpreter, args: Value.nil())
        self.assertEqual(Value.function(native), Value.function(native))
        self.assertNotEqual(Value.function(native), Value.function(other))

    def test_ordering(self):
        self.assertTrue(Value.number(1) < Value.number(2))
        self.assertTrue(Value.string("abc") < Value.string("abd"))
        with self.assertRaises(TypeMismatchError):
            Value.number(1) < Value.string("2")

    def test_copy_is_deep_for_containers(self):
        original = Value.from_python({"items": [1, 2]})
        duplicate = original.copy()
        duplicate.get_member("items").set_item(Value.number(0), Value.number(99))
        self.assertEqual(original.to_python(), {"items": [1.0, 2.0]})

    def test_copy_shares_tensors(self):
        tensor = Value.tensor(Tensor((2,)))
        self.assertIs(tensor.copy().data, tensor.data)

    def test_printing(self):
        self.assertEqual(str(Value.number(3)), "3")
        self.assertEqual(str(Value.number(0.1)), "0.1")
        self.assertEqual(str(Value.nil()), "nil")
        self.assertEqual(str(Value.from_python(["a", 1, True, None])), '["a", 1, true, nil]')
        self.assertEqual(str(Value.from_python({"k": "v"})), '{k: "v"}')

    def test_type_names(self):
        self.assertEqual(Value.number(1).type_name, "number")
        self.assertEqual(Value.from_python({}).type_name, "object")
        self.assertEqual(Value.tensor(Tensor((1,))).type, ValueType.TENSOR)


class TestValueIndexing(unittest.TestCase):

    def test_array_indexing(self):
        array = Value.from_python([10, 20, 30])
        self.assertEqual(array.get_item(Value.number(-1)), Value.number(30))
        with self.assertRaises(IndexOutOfRangeError):
            array.get_item(Value.number(3))
        with self.assertRaises(TypeMismatchError):
            array.get_item(Value.number(0.5))

    def test_array_assignment_at_length_appends(self):
        array = Value.from_python([1])
        array.set_item(Value.number(1), Value.number(2))
        self.assertEqual(array.to_python(), [1.0, 2.0])
        with self.assertRaises(IndexOutOfRangeError):
            array.set_item(Value.number(5), Value.number(0))

    def test_strings(self):
        text = Value.string("hey")
        self.assertEqual(text.get_item(Value.number(1)), Value.string("e"))
        self.assertEqual(text.get_member("length"), Value.number(3))
        with self.assertRaises(TypeMismatchError):
            text.set_item(Value.number(0), Value.string("H"))

    def test_objects(self):
        obj = Value.from_python({"a": 1})
        self.assertTrue(obj.get_member("missing").is_nil())
        self.assertTrue(obj.get_item(Value.string("missing")).is_nil())
        obj.set_member("b", Value.number(2))
        self.assertEqual(obj.get_member("length"), Value.number(2))

    def test_tensor_members(self):
        tensor = Value.tensor(Tensor((2, 3)))
        self.assertEqual(tensor.get_member("shape").to_python(), [2.0, 3.0])
        self.assertEqual(tensor.get_member("size"), Value.number(6))
        self.assertEqual(tensor.get_member("rank"), Value.number(2))
        self.assertEqual(tensor.get_item(Value.number(0)).type, ValueType.TENSOR)


if __name__ == '__main__':
    unittest.main()
