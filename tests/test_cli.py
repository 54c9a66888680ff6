"""
Test suite for the NEXUS command line interface and interactive shell.

Author: xwest
"""

import io
import os
import shutil
import tempfile
import unittest
import sys
from contextlib import redirect_stdout, redirect_stderr

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from nexus import __version__
from nexus.cli import main, run_repl, run_source, bracket_balance, format_error, version_text
from nexus.interpreter import Interpreter


def scripted_input(lines):
    """A read_line replacement that replays `lines`, then signals end of input."""
    remaining = list(lines)
    prompts = []

    def read_line(prompt):
        prompts.append(prompt)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    read_line.prompts = prompts
    return read_line


class TestMain(unittest.TestCase):
    """Test cases for the `nexus` entry point."""

    def setUp(self):
        self.directory = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.directory)

    def _script(self, name: str, source: str) -> str:
        path = os.path.join(self.directory, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(source)
        return path

    def test_command_string(self):
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            status = main(["-c", "print(6 * 7)"])
        self.assertEqual(status, 0)
        self.assertEqual(stdout.getvalue(), "42\n")

    def test_script_file(self):
        path = self._script("hello.nx", 'let name = "world"\nprint("hello " + name)\n')
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            status = main([path])
        self.assertEqual(status, 0)
        self.assertEqual(stdout.getvalue(), "hello world\n")

    def test_script_error_sets_exit_status(self):
        path = self._script("broken.nx", "print(1)\nprint(missing)\n")
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            status = main([path])
        self.assertEqual(status, 1)
        self.assertEqual(stdout.getvalue(), "1\n")
        self.assertIn("Undefined variable", stderr.getvalue())

    def test_missing_file(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            status = main([os.path.join(self.directory, "absent.nx")])
        self.assertEqual(status, 1)
        self.assertIn("Cannot open file", stderr.getvalue())

    def test_version(self):
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            status = main(["-v"])
        self.assertEqual(status, 0)
        self.assertIn(f"Version: {__version__}", stdout.getvalue())
        self.assertTrue(version_text().startswith("NEXUS Programming Language"))

    def test_output_file(self):
        target = os.path.join(self.directory, "out.txt")
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            status = main(["-c", 'print("to file")', "-o", target])
        self.assertEqual(status, 0)
        self.assertEqual(stdout.getvalue(), "")
        with open(target, encoding='utf-8') as f:
            self.assertEqual(f.read(), "to file\n")

    def test_profile_reports_time(self):
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            status = main(["-p", "-c", "let x = 1"])
        self.assertEqual(status, 0)
        self.assertIn("Execution time:", stdout.getvalue())


class TestRunSource(unittest.TestCase):

    def test_errors_are_reported_not_raised(self):
        output, stderr = io.StringIO(), io.StringIO()
        interpreter = Interpreter(output=output)
        self.assertEqual(run_source(interpreter, "let x = 1 +", "<test>", stderr=stderr), 1)
        self.assertIn("Expected expression", stderr.getvalue())
        self.assertEqual(run_source(interpreter, "print(2)", "<test>", stderr=stderr), 0)
        self.assertEqual(output.getvalue(), "2\n")

    def test_format_error(self):
        self.assertEqual(format_error("boom", color=False), "boom")
        self.assertIn("boom", format_error("boom"))


class TestRepl(unittest.TestCase):
    """Test cases for the interactive shell."""

    def setUp(self):
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()
        self.interpreter = Interpreter(output=self.stdout)

    def _repl(self, lines):
        read_line = scripted_input(lines)
        status = run_repl(self.interpreter, read_line, self.stdout, self.stderr)
        self.assertEqual(status, 0)
        return read_line.prompts

    def test_session(self):
        prompts = self._repl([
            "function double_it(x) {",
            "  return x * 2",
            "}",
            "print(double_it(21))",
            "let x = 2",
            "vars",
            "print(nope)",
            "print(x)",
            "exit",
        ])
        output = self.stdout.getvalue()
        self.assertTrue(output.startswith(f"NEXUS Interactive Shell v{__version__}"))
        self.assertIn("42\n", output)
        self.assertIn("  x = 2 (number)", output)
        self.assertIn("Undefined variable", self.stderr.getvalue())
        self.assertTrue(output.endswith("2\nGoodbye!\n"))
        self.assertEqual(prompts[:4], ["nexus:1> ", "...> ", "...> ", "nexus:2> "])

    def test_commands(self):
        self._repl(["help", "models", "let y = 1", "clear", "vars", "quit"])
        output = self.stdout.getvalue()
        self.assertIn("Interactive Commands:", output)
        self.assertIn("No models defined.", output)
        self.assertIn("Environment cleared.", output)
        self.assertIn("No variables defined.", output)

    def test_session_survives_host_stack_exhaustion(self):
        depth = 5000
        self._repl(["print(" + "(" * depth + "1" + ")" * depth + ")", "print(2)"])
        self.assertIn("Host recursion limit exceeded", self.stderr.getvalue())
        self.assertIn("2\n", self.stdout.getvalue())

    def test_end_of_input_exits(self):
        self._repl(["let z = 3"])
        self.assertTrue(self.stdout.getvalue().endswith("Goodbye!\n"))
        self.assertEqual(self.stderr.getvalue(), "")


class TestBracketBalance(unittest.TestCase):

    def test_balance(self):
        self.assertEqual(bracket_balance("{ [ ("), 3)
        self.assertEqual(bracket_balance("f(x) { return [1] }"), 0)
        self.assertEqual(bracket_balance("a }"), -1)

    def test_brackets_inside_strings_and_comments_are_ignored(self):
        self.assertEqual(bracket_balance('"{" // (\n'), 0)

    def test_tolerates_lexer_errors(self):
        self.assertEqual(bracket_balance("{ # "), 1)


if __name__ == '__main__':
    unittest.main()
