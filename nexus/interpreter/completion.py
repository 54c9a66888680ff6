"""
Statement completion records.

Executing a statement yields a Completion instead of raising for control
flow: NORMAL when it finished, RETURN carrying the returned value, and
BREAK or CONTINUE for loop control. Real failures stay exceptions.

Author: xwest
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..runtime.value import Value


class CompletionType(Enum):
    NORMAL = auto()
    RETURN = auto()
    BREAK = auto()
    CONTINUE = auto()


@dataclass(frozen=True)
class Completion:
    type: CompletionType
    value: Optional[Value] = None

    @property
    def is_abrupt(self) -> bool:
        return self.type != CompletionType.NORMAL

    @classmethod
    def returning(cls, value: Value) -> 'Completion':
        return cls(CompletionType.RETURN, value)


NORMAL = Completion(CompletionType.NORMAL)
BREAK = Completion(CompletionType.BREAK)
CONTINUE = Completion(CompletionType.CONTINUE)
