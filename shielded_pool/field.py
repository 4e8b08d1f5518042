"""
Residues of the BN254 scalar field.

!Important! The modulus here must agree with the proving system. The circuits
are compiled with circom over BN254, so every commitment, root and path
element is an `int` in [0, FIELD_MODULUS).
"""

from typing import TypeAlias

Field: TypeAlias = int

FIELD_MODULUS: int = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
BYTES_PER_FIELD_ELEMENT = 32

# keccak256("tornado") % FIELD_MODULUS, the empty leaf of the on-chain pool
ZERO_VALUE: Field = (
    21663839004416932945382355908790599225266501822907911457504978515578255421292
)


def is_field_element(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def check_field_element(value, name: str = "value") -> Field:
    if not is_field_element(value):
        raise ValueError(f"{name} is not a field element: {value!r}")
    return value


def parse_field(value: int | str) -> Field:
    """
    Decimal string, 0x-prefixed hex string or int, reduced to a residue.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a field value: {value!r}")
    if isinstance(value, int):
        return value % FIELD_MODULUS
    s = str(value).strip().lower()
    if s.startswith("0x"):
        return int(s, 16) % FIELD_MODULUS
    return int(s, 10) % FIELD_MODULUS


def field_from_bytes(data: bytes) -> Field:
    return int.from_bytes(data, byteorder="big") % FIELD_MODULUS


def to_bytes32(value: Field) -> str:
    check_field_element(value)
    return "0x" + value.to_bytes(BYTES_PER_FIELD_ELEMENT, byteorder="big").hex()


def address_to_field(address: str) -> Field:
    # account addresses are 160-bit, so they always fit without reduction
    s = address.strip().lower()
    if not s.startswith("0x") or len(s) != 42:
        raise ValueError(f"not an account address: {address!r}")
    return int(s, 16)
