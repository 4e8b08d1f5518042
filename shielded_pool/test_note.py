import os
from unittest import TestCase

from shielded_pool.field import FIELD_MODULUS
from shielded_pool.hasher import Sha256Hasher
from shielded_pool.note import (
    Note,
    NoteAlreadyInserted,
    RandomnessUnavailable,
    commitment,
    derive_note,
    nullifier_hash,
    random_field_element,
)


class TestNote(TestCase):
    def setUp(self):
        self.hasher = Sha256Hasher()

    def test_derivatives(self):
        note = derive_note(10**18, self.hasher)
        self.assertEqual(
            note.commitment, self.hasher.hash([note.nullifier, note.secret, note.amount])
        )
        self.assertEqual(note.nullifier_hash, self.hasher.hash([note.nullifier]))
        self.assertEqual(note.amount, 10**18)
        self.assertIsNone(note.leaf_index)

    def test_from_parts_is_reproducible(self):
        a = Note.from_parts(secret=11, nullifier=22, amount=33, hasher=self.hasher)
        b = Note.from_parts(secret=11, nullifier=22, amount=33, hasher=Sha256Hasher())
        self.assertEqual(a.commitment, b.commitment)
        self.assertEqual(a.nullifier_hash, b.nullifier_hash)
        self.assertEqual(a, b)
        self.assertEqual(a.commitment, commitment(self.hasher, 22, 11, 33))
        self.assertEqual(a.nullifier_hash, nullifier_hash(self.hasher, 22))

    def test_commitment_binds_amount(self):
        a = Note.from_parts(secret=1, nullifier=2, amount=3, hasher=self.hasher)
        b = Note.from_parts(secret=1, nullifier=2, amount=4, hasher=self.hasher)
        self.assertNotEqual(a.commitment, b.commitment)
        self.assertEqual(a.nullifier_hash, b.nullifier_hash)

    def test_no_collisions(self):
        notes = [derive_note(1, self.hasher) for _ in range(10_000)]
        self.assertEqual(len({n.commitment for n in notes}), len(notes))
        self.assertEqual(len({n.nullifier_hash for n in notes}), len(notes))

    def test_secret_and_nullifier_are_independent_draws(self):
        draws = iter([bytes([1]) * 32, bytes([2]) * 32])
        note = derive_note(5, self.hasher, randbytes=lambda n: next(draws))
        self.assertEqual(note.secret, int.from_bytes(bytes([1]) * 32, "big") % FIELD_MODULUS)
        self.assertEqual(note.nullifier, int.from_bytes(bytes([2]) * 32, "big") % FIELD_MODULUS)

    def test_random_field_element(self):
        for _ in range(100):
            assert 0 <= random_field_element() < FIELD_MODULUS
        self.assertEqual(random_field_element(lambda n: b"\xff" * n), (2**256 - 1) % FIELD_MODULUS)
        self.assertIsInstance(random_field_element(os.urandom), int)

    def test_randomness_unavailable(self):
        def broken(n):
            raise OSError("no entropy")

        with self.assertRaises(RandomnessUnavailable) as ctx:
            derive_note(1, self.hasher, randbytes=broken)
        self.assertIsInstance(ctx.exception.__cause__, OSError)

        with self.assertRaises(RandomnessUnavailable):
            derive_note(1, self.hasher, randbytes=lambda n: b"\x00" * (n - 1))

    def test_invalid_amount(self):
        with self.assertRaises(ValueError):
            derive_note(FIELD_MODULUS, self.hasher)
        with self.assertRaises(ValueError):
            derive_note(-1, self.hasher)

    def test_leaf_index_set_once(self):
        note = derive_note(1, self.hasher)
        assert not note.inserted
        note.mark_inserted(3)
        assert note.inserted
        self.assertEqual(note.leaf_index, 3)
        with self.assertRaises(NoteAlreadyInserted):
            note.mark_inserted(4)
        self.assertEqual(note.leaf_index, 3)

    def test_invalid_leaf_index(self):
        note = derive_note(1, self.hasher)
        for index in (-1, True, "3", 2.0, None):
            with self.assertRaises(ValueError):
                note.mark_inserted(index)
        assert not note.inserted
        note.mark_inserted(0)
        self.assertEqual(note.leaf_index, 0)

    def test_immutable(self):
        note = derive_note(1, self.hasher)
        with self.assertRaises(AttributeError):
            note.secret = 0

    def test_repr_hides_private_fields(self):
        note = Note.from_parts(secret=123456789, nullifier=987654321, amount=1, hasher=self.hasher)
        text = repr(note)
        assert "123456789" not in text
        assert "987654321" not in text
        assert str(note.commitment) in text
