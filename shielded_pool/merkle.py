"""
Append-only Merkle tree of note commitments.

The tree has a fixed height and holds at most 2**height leaves. Only the nodes
on the path of an inserted leaf are ever computed; every other node is the
empty-subtree root for its level, so storage grows with the number of
insertions rather than with the capacity.

Proofs follow the layout of the circuit's Merkle gadget:
- path_elements[l] is the sibling of the path node at level l
- path_indices[l] is 0 if the path node is a left child, 1 if it is a right child
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from shielded_pool.field import ZERO_VALUE, Field, check_field_element
from shielded_pool.hasher import FieldHasher
from shielded_pool.zeros import build_zeros

logger = logging.getLogger(__name__)

DEFAULT_HEIGHT = 20


@dataclass(frozen=True)
class MerkleProof:
    root: Field
    path_elements: Tuple[Field, ...]
    path_indices: Tuple[int, ...]

    @property
    def leaf_index(self) -> int:
        return sum(bit << level for level, bit in enumerate(self.path_indices))

    def compute_root(self, leaf: Field, hasher: FieldHasher) -> Field:
        """
        Folds the path bottom-up starting from `leaf`, the way the circuit does.
        """
        node = leaf
        for sibling, bit in zip(self.path_elements, self.path_indices):
            if bit == 0:
                node = hasher.hash2(node, sibling)
            else:
                node = hasher.hash2(sibling, node)
        return node

    def verify(self, leaf: Field, hasher: FieldHasher) -> bool:
        return self.compute_root(leaf, hasher) == self.root


class IncrementalMerkleTree:
    def __init__(
        self,
        hasher: FieldHasher,
        height: int = DEFAULT_HEIGHT,
        zero_value: Field = ZERO_VALUE,
    ):
        # raises InvalidHeight before any state exists
        self._zeros = build_zeros(height, zero_value, hasher)
        self.hasher = hasher
        self.height = height
        self.zero_value = zero_value
        self._layers: List[Dict[int, Field]] = [{} for _ in range(height + 1)]

    @classmethod
    def rebuild(
        cls,
        hasher: FieldHasher,
        leaves: Iterable[Field],
        height: int = DEFAULT_HEIGHT,
        zero_value: Field = ZERO_VALUE,
        expected_root: Optional[Field] = None,
    ) -> "IncrementalMerkleTree":
        """
        Replays `leaves` in ledger order into a fresh tree.

        If `expected_root` is given the rebuilt root must match it exactly,
        otherwise `RootMismatch` is raised and the tree is discarded.
        """
        tree = cls(hasher, height, zero_value)
        tree.insert_many(leaves)
        if expected_root is not None and tree.root() != expected_root:
            logger.warning(
                "rebuilt root %d from %d leaves does not match expected root %d",
                tree.root(),
                tree.count,
                expected_root,
            )
            raise RootMismatch(expected_root, tree.root())
        logger.debug("rebuilt tree with %d leaves, root %d", tree.count, tree.root())
        return tree

    @property
    def capacity(self) -> int:
        return 2**self.height

    @property
    def count(self) -> int:
        return len(self._layers[0])

    def __len__(self) -> int:
        return self.count

    @property
    def zeros(self) -> List[Field]:
        return list(self._zeros)

    def is_full(self) -> bool:
        return self.count >= self.capacity

    def _node(self, level: int, index: int) -> Field:
        return self._layers[level].get(index, self._zeros[level])

    def insert(self, leaf: Field) -> int:
        check_field_element(leaf, "leaf")
        if self.is_full():
            raise TreeFull(self.capacity)

        index = self.count
        # compute the whole path before storing anything
        updates = [(0, index, leaf)]
        node, current = leaf, index
        for level in range(self.height):
            if current % 2 == 0:
                node = self.hasher.hash2(node, self._node(level, current + 1))
            else:
                node = self.hasher.hash2(self._node(level, current - 1), node)
            current //= 2
            updates.append((level + 1, current, node))

        for level, i, value in updates:
            self._layers[level][i] = value
        logger.debug("inserted leaf %d, root %d", index, node)
        return index

    def insert_many(self, leaves: Iterable[Field]) -> List[int]:
        leaves = list(leaves)
        for leaf in leaves:
            check_field_element(leaf, "leaf")
        if self.count + len(leaves) > self.capacity:
            raise TreeFull(self.capacity)
        return [self.insert(leaf) for leaf in leaves]

    def root(self) -> Field:
        return self._node(self.height, 0)

    def leaf(self, index: int) -> Field:
        self._check_index(index)
        return self._layers[0][index]

    def leaves(self) -> List[Field]:
        return [self._layers[0][i] for i in range(self.count)]

    def proof(self, index: int) -> MerkleProof:
        self._check_index(index)
        path_elements = []
        path_indices = []
        current = index
        for level in range(self.height):
            if current % 2 == 0:
                path_elements.append(self._node(level, current + 1))
                path_indices.append(0)
            else:
                path_elements.append(self._node(level, current - 1))
                path_indices.append(1)
            current //= 2
        return MerkleProof(
            root=self.root(),
            path_elements=tuple(path_elements),
            path_indices=tuple(path_indices),
        )

    def _check_index(self, index: int):
        if (
            not isinstance(index, int)
            or isinstance(index, bool)
            or index < 0
            or index >= self.count
            or index >= self.capacity
        ):
            raise IndexOutOfRange(index, self.count)


class TreeFull(Exception):
    def __str__(self):
        return f"Tree is full ({self.args[0]} leaves)"


class IndexOutOfRange(IndexError):
    def __str__(self):
        index, count = self.args
        return f"Leaf index {index!r} is out of range, tree has {count} leaves"


class RootMismatch(Exception):
    def __str__(self):
        expected, actual = self.args
        return f"Rebuilt root {actual} does not match expected root {expected}"
