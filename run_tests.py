#!/usr/bin/env python3
"""
Main test runner for the NEXUS interpreter tests.

Author: xwest
"""

import sys
import os
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, project_root)


def run_all_tests(verbosity: int = 2) -> bool:
    """Discover and run every test module under tests/."""
    print("NEXUS Interpreter Test Suite")
    print("=" * 60)

    loader = unittest.TestLoader()
    suite = loader.discover(os.path.join(project_root, "tests"), pattern="test_*.py")
    result = unittest.TextTestRunner(verbosity=verbosity).run(suite)

    print()
    print(f"Ran {result.testsRun} tests: "
          f"{len(result.failures)} failures, {len(result.errors)} errors, "
          f"{len(result.skipped)} skipped")
    return result.wasSuccessful()


if __name__ == "__main__":
    verbose = "-q" not in sys.argv
    sys.exit(0 if run_all_tests(2 if verbose else 1) else 1)
