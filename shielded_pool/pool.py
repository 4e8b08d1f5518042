"""
This module maintains the local view of one anonymity set.

Namely we are interested in:
- the commitment tree, in ledger order
- the most recent roots, to answer which roots a proof may still use
- turning an owned note into prover inputs
"""

import logging
import secrets
import threading
from collections import deque
from typing import Deque, Iterable, Optional

from shielded_pool.circuit_input import InvalidProofInputs, ProofInputs
from shielded_pool.field import ZERO_VALUE, Field
from shielded_pool.hasher import FieldHasher
from shielded_pool.merkle import DEFAULT_HEIGHT, IncrementalMerkleTree, RootMismatch
from shielded_pool.note import Note, RandomBytes, derive_note

logger = logging.getLogger(__name__)

# Roots a proof may still be built against, as kept by the pool contract
ROOT_HISTORY_SIZE = 30


class AnonymitySet:
    def __init__(
        self,
        hasher: FieldHasher,
        height: int = DEFAULT_HEIGHT,
        zero_value: Field = ZERO_VALUE,
        root_history_size: int = ROOT_HISTORY_SIZE,
    ):
        assert root_history_size >= 1
        self.hasher = hasher
        self.tree = IncrementalMerkleTree(hasher, height, zero_value)
        self._known_roots: Deque[Field] = deque([self.tree.root()], maxlen=root_history_size)
        # a single writer at a time, readers go straight to the tree
        self._write_lock = threading.Lock()

    @property
    def height(self) -> int:
        return self.tree.height

    def root(self) -> Field:
        return self.tree.root()

    def is_known_root(self, root: Field) -> bool:
        return root in self._known_roots

    def add_commitment(self, commitment: Field) -> int:
        with self._write_lock:
            index = self.tree.insert(commitment)
            self._known_roots.append(self.tree.root())
        return index

    def deposit(self, amount: Field, randbytes: RandomBytes = secrets.token_bytes) -> Note:
        note = derive_note(amount, self.hasher, randbytes)
        note.mark_inserted(self.add_commitment(note.commitment))
        logger.debug("deposited note at leaf %d", note.leaf_index)
        return note

    def witness(
        self,
        note: Note,
        recipient: Field,
        relayer: Field = 0,
        relayer_fee: Field = 0,
        swap_amount_out: Optional[Field] = None,
    ) -> ProofInputs:
        if not note.inserted:
            raise InvalidProofInputs("note has not been inserted into a tree")
        return ProofInputs.build(
            note,
            self.tree.proof(note.leaf_index),
            recipient=recipient,
            relayer=relayer,
            relayer_fee=relayer_fee,
            swap_amount_out=swap_amount_out,
            hasher=self.hasher,
        )

    def sync(self, commitments: Iterable[Field], expected_root: Field):
        """
        Replaces the local tree with one rebuilt from the ledger's ordered
        commitments. On `RootMismatch` the current tree is kept.
        """
        with self._write_lock:
            tree = IncrementalMerkleTree(self.hasher, self.tree.height, self.tree.zero_value)
            known_roots = deque([tree.root()], maxlen=self._known_roots.maxlen)
            for commitment in commitments:
                tree.insert(commitment)
                known_roots.append(tree.root())
            if tree.root() != expected_root:
                logger.warning(
                    "ledger root %d does not match %d replayed commitments, keeping local tree",
                    expected_root,
                    tree.count,
                )
                raise RootMismatch(expected_root, tree.root())
            self.tree = tree
            self._known_roots = known_roots
        logger.info("synced anonymity set to %d commitments", tree.count)
