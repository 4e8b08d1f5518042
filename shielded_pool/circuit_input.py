"""
The input bundle handed to the prover for a private swap.

The key names and their order are fixed by the circuit's signal declarations.
Field values are passed as decimal strings, path indices as plain 0/1 ints.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from shielded_pool.field import Field, is_field_element
from shielded_pool.hasher import FieldHasher
from shielded_pool.merkle import MerkleProof
from shielded_pool.note import Note


@dataclass(frozen=True)
class ProofInputs:
    # public
    merkle_root: Field
    nullifier_hash: Field
    recipient: Field
    relayer: Field
    relayer_fee: Field
    swap_amount_out: Field
    # private
    secret: Field
    nullifier: Field
    deposit_amount: Field
    path_elements: Tuple[Field, ...]
    path_indices: Tuple[int, ...]

    @classmethod
    def build(
        cls,
        note: Note,
        proof: MerkleProof,
        recipient: Field,
        relayer: Field = 0,
        relayer_fee: Field = 0,
        swap_amount_out: Optional[Field] = None,
        hasher: Optional[FieldHasher] = None,
    ) -> "ProofInputs":
        """
        Pairs a note with the proof for its leaf. When `hasher` is given the
        proof is also folded from the note's commitment and must reach its root.
        """
        if not note.inserted:
            raise InvalidProofInputs("note has not been inserted into a tree")
        if proof.leaf_index != note.leaf_index:
            raise InvalidProofInputs(
                f"proof is for leaf {proof.leaf_index}, note is at leaf {note.leaf_index}"
            )
        if hasher is not None and not proof.verify(note.commitment, hasher):
            raise InvalidProofInputs("proof does not open to the note's commitment")
        inputs = cls(
            merkle_root=proof.root,
            nullifier_hash=note.nullifier_hash,
            recipient=recipient,
            relayer=relayer,
            relayer_fee=relayer_fee,
            swap_amount_out=note.amount if swap_amount_out is None else swap_amount_out,
            secret=note.secret,
            nullifier=note.nullifier,
            deposit_amount=note.amount,
            path_elements=tuple(proof.path_elements),
            path_indices=tuple(proof.path_indices),
        )
        inputs.validate()
        return inputs

    def validate(self):
        for name in (
            "merkle_root",
            "nullifier_hash",
            "recipient",
            "relayer",
            "relayer_fee",
            "swap_amount_out",
            "secret",
            "nullifier",
            "deposit_amount",
        ):
            if not is_field_element(getattr(self, name)):
                raise InvalidProofInputs(f"{name} is not a field element")
        if len(self.path_elements) != len(self.path_indices):
            raise InvalidProofInputs("path_elements and path_indices differ in length")
        if not all(is_field_element(e) for e in self.path_elements):
            raise InvalidProofInputs("path_elements contains a non field element")
        if not all(i in (0, 1) for i in self.path_indices):
            raise InvalidProofInputs("path_indices must be 0 or 1")
        # the circuit pays the fee to `relayer`, so a fee needs a relayer
        if self.relayer_fee != 0 and self.relayer == 0:
            raise InvalidProofInputs("relayer must be set when relayer_fee is non-zero")

    def to_json(self) -> Dict[str, Any]:
        return {
            "merkleRoot": str(self.merkle_root),
            "nullifierHash": str(self.nullifier_hash),
            "recipient": str(self.recipient),
            "relayer": str(self.relayer),
            "relayerFee": str(self.relayer_fee),
            "swapAmountOut": str(self.swap_amount_out),
            "secret": str(self.secret),
            "nullifier": str(self.nullifier),
            "depositAmount": str(self.deposit_amount),
            "pathElements": [str(e) for e in self.path_elements],
            "pathIndices": [int(i) for i in self.path_indices],
        }


class InvalidProofInputs(ValueError):
    pass
