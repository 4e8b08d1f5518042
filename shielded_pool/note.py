import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Optional

from shielded_pool.field import (
    BYTES_PER_FIELD_ELEMENT,
    Field,
    check_field_element,
    field_from_bytes,
)
from shielded_pool.hasher import FieldHasher

logger = logging.getLogger(__name__)

RandomBytes = Callable[[int], bytes]


def commitment(hasher: FieldHasher, nullifier: Field, secret: Field, amount: Field) -> Field:
    return hasher.hash([nullifier, secret, amount])


def nullifier_hash(hasher: FieldHasher, nullifier: Field) -> Field:
    return hasher.hash([nullifier])


def random_field_element(randbytes: RandomBytes = secrets.token_bytes) -> Field:
    """
    A 256-bit draw reduced modulo the ~254-bit field order. The bias this
    leaves is negligible for secrets and nullifiers.
    """
    try:
        data = randbytes(BYTES_PER_FIELD_ELEMENT)
    except Exception as e:
        raise RandomnessUnavailable() from e
    if not isinstance(data, (bytes, bytearray)) or len(data) != BYTES_PER_FIELD_ELEMENT:
        raise RandomnessUnavailable()
    return field_from_bytes(data)


@dataclass(frozen=True)
class Note:
    """
    A private deposit record.

    Only `commitment` is ever published. `secret` and `nullifier` leave the
    owner only as private inputs to the circuit, so they are kept out of the
    repr.
    """

    secret: Field = field(repr=False)
    nullifier: Field = field(repr=False)
    amount: Field
    commitment: Field
    nullifier_hash: Field
    # position of the commitment in the tree, set once it is accepted
    leaf_index: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_parts(
        cls, secret: Field, nullifier: Field, amount: Field, hasher: FieldHasher
    ) -> "Note":
        check_field_element(secret, "secret")
        check_field_element(nullifier, "nullifier")
        check_field_element(amount, "amount")
        return cls(
            secret=secret,
            nullifier=nullifier,
            amount=amount,
            commitment=commitment(hasher, nullifier, secret, amount),
            nullifier_hash=nullifier_hash(hasher, nullifier),
        )

    @property
    def inserted(self) -> bool:
        return self.leaf_index is not None

    def mark_inserted(self, index: int):
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            raise ValueError(f"leaf index must be a non-negative int, got {index!r}")
        if self.leaf_index is not None:
            raise NoteAlreadyInserted(self.leaf_index)
        object.__setattr__(self, "leaf_index", index)


def derive_note(
    amount: Field,
    hasher: FieldHasher,
    randbytes: RandomBytes = secrets.token_bytes,
) -> Note:
    check_field_element(amount, "amount")
    secret = random_field_element(randbytes)
    nullifier = random_field_element(randbytes)
    note = Note.from_parts(secret, nullifier, amount, hasher)
    logger.debug("derived note with commitment %d", note.commitment)
    return note


class RandomnessUnavailable(Exception):
    def __str__(self):
        if self.__cause__ is not None:
            return f"Secure random source failed: {self.__cause__!r}"
        return "Secure random source returned too few bytes"


class NoteAlreadyInserted(Exception):
    def __str__(self):
        return f"Note was already inserted at leaf {self.args[0]}"
