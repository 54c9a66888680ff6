"""
Lexical environments for NEXUS.

An Environment is one scope: a table of bindings plus a link to the
enclosing scope. Children hold a reference to their parent; parents
never know their children, so a chain is released as soon as control
leaves it and no closure keeps it alive.

Constant status is recorded per scope. A child scope may define the
same name again as a plain variable.

Author: xwest
"""

import sys
from typing import Dict, List, Optional, Set, TextIO

from .errors import create_undefined_variable_error, create_constant_reassignment_error
from .value import Value


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate edit distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


class Environment:
    """A single lexical scope linked to its parent."""

    def __init__(self, parent: Optional['Environment'] = None, name: str = "global"):
        self.values: Dict[str, Value] = {}
        self.constants: Set[str] = set()
        self.parent = parent
        self.name = name
        self.depth = parent.depth + 1 if parent is not None else 0

    # ------------------------------------------------------------------
    # Binding management
    # ------------------------------------------------------------------

    def define(self, name: str, value: Value, is_constant: bool = False) -> None:
        """Bind `name` in this scope, replacing any binding of this scope."""
        self.values[name] = value.copy()
        if is_constant:
            self.constants.add(name)
        else:
            self.constants.discard(name)

    def define_constant(self, name: str, value: Value) -> None:
        self.define(name, value, is_constant=True)

    def get(self, name: str) -> Value:
        """Look a name up from the innermost scope outwards."""
        scope = self.find_scope(name)
        if scope is None:
            raise create_undefined_variable_error(name, self.get_similar_names(name))
        return scope.values[name]

    def assign(self, name: str, value: Value) -> None:
        """Rebind an existing name in the nearest scope that defines it."""
        scope = self.find_scope(name)
        if scope is None:
            raise create_undefined_variable_error(name, self.get_similar_names(name))
        if name in scope.constants:
            raise create_constant_reassignment_error(name)
        scope.values[name] = value.copy()

    def exists(self, name: str) -> bool:
        return self.find_scope(name) is not None

    def exists_in_current_scope(self, name: str) -> bool:
        return name in self.values

    def remove(self, name: str) -> bool:
        """Drop a binding from this scope only."""
        if name not in self.values:
            return False
        del self.values[name]
        self.constants.discard(name)
        return True

    def is_constant(self, name: str) -> bool:
        scope = self.find_scope(name)
        return scope is not None and name in scope.constants

    def find_scope(self, name: str) -> Optional['Environment']:
        scope = self
        while scope is not None:
            if name in scope.values:
                return scope
            scope = scope.parent
        return None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_all_variable_names(self) -> List[str]:
        """Every visible name, inner bindings listed once."""
        names: List[str] = []
        seen = set()
        scope = self
        while scope is not None:
            for name in scope.values:
                if name not in seen:
                    seen.add(name)
                    names.append(name)
            scope = scope.parent
        return names

    def get_current_scope_variables(self) -> Dict[str, Value]:
        return dict(self.values)

    def get_similar_names(self, name: str, max_distance: int = 2) -> List[str]:
        """Get visible names similar to the given name (for error suggestions)."""
        similar_names = []
        for candidate in self.get_all_variable_names():
            distance = levenshtein_distance(name.lower(), candidate.lower())
            if distance <= max_distance:
                similar_names.append((candidate, distance))

        similar_names.sort(key=lambda x: x[1])
        return [candidate for candidate, _ in similar_names[:5]]

    @property
    def variable_count(self) -> int:
        return len(self.values)

    @property
    def total_variable_count(self) -> int:
        total = 0
        scope = self
        while scope is not None:
            total += len(scope.values)
            scope = scope.parent
        return total

    @property
    def full_scope_path(self) -> str:
        names = []
        scope = self
        while scope is not None:
            names.append(scope.name)
            scope = scope.parent
        return "::".join(reversed(names))

    def clear(self) -> None:
        self.values.clear()
        self.constants.clear()

    def print_variables(self, stream: Optional[TextIO] = None) -> None:
        """Print the bindings of this scope."""
        stream = stream or sys.stdout
        for name, value in self.values.items():
            marker = "const " if name in self.constants else ""
            stream.write(f"  {marker}{name} = {value.repr_string()} ({value.type_name})\n")

    def print_scope(self, stream: Optional[TextIO] = None) -> None:
        stream = stream or sys.stdout
        stream.write(f"Scope '{self.full_scope_path}' (depth {self.depth}, "
                     f"{self.variable_count} variables)\n")
        self.print_variables(stream)

    def print_all_scopes(self, stream: Optional[TextIO] = None) -> None:
        """Print this scope followed by every enclosing scope."""
        scope = self
        while scope is not None:
            scope.print_scope(stream)
            scope = scope.parent

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def export_variables(self) -> Dict[str, Value]:
        return {name: value.copy() for name, value in self.values.items()}

    def import_variables(self, variables: Dict[str, Value]) -> None:
        for name, value in variables.items():
            self.define(name, value)

    def create_child(self, name: str = "block") -> 'Environment':
        return Environment(self, name)

    def __str__(self) -> str:
        return f"Environment({self.full_scope_path}, {self.variable_count} variables)"
