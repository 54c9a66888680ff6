"""
Interpreter configuration.

Author: xwest
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class InterpreterConfig:
    """Runtime settings for an Interpreter instance."""
    debug: bool = False
    profiling: bool = False

    # Recursion guards: NEXUS call depth, and the host recursion limit
    # while a program runs (each NEXUS call uses many Python frames)
    max_call_depth: int = 200
    recursion_limit: int = 20000

    filename: str = "<input>"
    import_paths: List[str] = field(default_factory=list)
