import threading
from unittest import TestCase

from shielded_pool.circuit_input import InvalidProofInputs
from shielded_pool.hasher import Sha256Hasher
from shielded_pool.merkle import IncrementalMerkleTree, RootMismatch, TreeFull
from shielded_pool.note import derive_note
from shielded_pool.pool import AnonymitySet


class TestAnonymitySet(TestCase):
    def setUp(self):
        self.hasher = Sha256Hasher()
        self.pool = AnonymitySet(self.hasher, height=3)

    def test_deposit(self):
        self.pool.add_commitment(self.hasher.hash([1]))
        note = self.pool.deposit(500)
        self.assertEqual(note.leaf_index, 1)
        self.assertEqual(self.pool.tree.leaf(1), note.commitment)
        assert self.pool.is_known_root(self.pool.root())

    def test_witness(self):
        note = self.pool.deposit(500)
        self.pool.add_commitment(self.hasher.hash([2]))
        inputs = self.pool.witness(note, recipient=1234)
        self.assertEqual(inputs.merkle_root, self.pool.root())
        self.assertEqual(inputs.deposit_amount, 500)
        self.assertEqual(len(inputs.path_elements), self.pool.height)

    def test_witness_requires_inserted_note(self):
        note = derive_note(1, self.hasher)
        with self.assertRaises(InvalidProofInputs):
            self.pool.witness(note, recipient=1)

    def test_known_roots(self):
        empty_root = self.pool.root()
        self.pool.add_commitment(self.hasher.hash([1]))
        first_root = self.pool.root()
        self.pool.add_commitment(self.hasher.hash([2]))
        assert self.pool.is_known_root(empty_root)
        assert self.pool.is_known_root(first_root)
        assert self.pool.is_known_root(self.pool.root())
        assert not self.pool.is_known_root(12345)

    def test_root_history_is_bounded(self):
        pool = AnonymitySet(self.hasher, height=6, root_history_size=4)
        roots = [pool.root()]
        for i in range(10):
            pool.add_commitment(self.hasher.hash([i]))
            roots.append(pool.root())
        for root in roots[:-4]:
            assert not pool.is_known_root(root)
        for root in roots[-4:]:
            assert pool.is_known_root(root)

        ledger = pool.tree.leaves()
        pool.sync(ledger, pool.root())
        assert not pool.is_known_root(roots[0])
        assert pool.is_known_root(roots[-1])
        assert pool.is_known_root(roots[-4])

    def test_full(self):
        for i in range(8):
            self.pool.add_commitment(self.hasher.hash([i]))
        root = self.pool.root()
        with self.assertRaises(TreeFull):
            self.pool.deposit(1)
        self.assertEqual(self.pool.root(), root)

    def test_sync(self):
        ledger = [self.hasher.hash([i]) for i in range(5)]
        ledger_root = IncrementalMerkleTree.rebuild(self.hasher, ledger, height=3).root()

        self.pool.sync(ledger, ledger_root)
        self.assertEqual(self.pool.root(), ledger_root)
        self.assertEqual(self.pool.tree.leaves(), ledger)
        prefix_root = IncrementalMerkleTree.rebuild(self.hasher, ledger[:2], height=3).root()
        assert self.pool.is_known_root(prefix_root)

    def test_sync_mismatch_keeps_local_tree(self):
        self.pool.add_commitment(self.hasher.hash([1]))
        root = self.pool.root()
        with self.assertRaises(RootMismatch):
            self.pool.sync([self.hasher.hash([2])], expected_root=root)
        self.assertEqual(self.pool.root(), root)
        self.assertEqual(self.pool.tree.count, 1)

    def test_concurrent_deposits(self):
        pool = AnonymitySet(self.hasher, height=8)
        notes = []

        def worker():
            for _ in range(16):
                notes.append(pool.deposit(1))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(pool.tree.count, 128)
        self.assertEqual(sorted(n.leaf_index for n in notes), list(range(128)))
        for note in notes:
            self.assertEqual(pool.tree.leaf(note.leaf_index), note.commitment)
        rebuilt = IncrementalMerkleTree.rebuild(self.hasher, pool.tree.leaves(), height=8)
        self.assertEqual(rebuilt.root(), pool.root())
