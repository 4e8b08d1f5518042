"""
Roots of empty subtrees.

`zeros[0]` is the empty leaf and `zeros[i]` is the root of an empty subtree of
height `i`. The tree answers every node that was never written with the entry
for its level.
"""

import threading
from typing import Dict, List, Tuple

from shielded_pool.field import Field, check_field_element
from shielded_pool.hasher import FieldHasher


class InvalidHeight(ValueError):
    def __init__(self, height):
        super().__init__(height)
        self.height = height

    def __str__(self):
        return f"Tree height must be at least 1, got {self.height!r}"


# (base_zero, hasher) -> zeros computed so far; taller trees extend the list
_ZEROS: Dict[Tuple[Field, FieldHasher], List[Field]] = {}
_ZEROS_LOCK = threading.Lock()


def build_zeros(height: int, base_zero: Field, hasher: FieldHasher) -> List[Field]:
    if not isinstance(height, int) or isinstance(height, bool) or height < 1:
        raise InvalidHeight(height)
    check_field_element(base_zero, "base_zero")
    with _ZEROS_LOCK:
        zeros = _ZEROS.setdefault((base_zero, hasher), [base_zero])
        while len(zeros) <= height:
            zeros.append(hasher.hash2(zeros[-1], zeros[-1]))
        return zeros[: height + 1]
