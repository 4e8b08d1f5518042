"""
This module provides the field hash used by the commitment tree and by note
derivation.

The hash is a compatibility contract with the circuit: the Merkle gadget and
the commitment gadget recompute it, so the algorithm and its constants are
taken as given and loaded from the same parameter file the circuit was built
against.

A hasher is built once per process by a `HasherLoader` and then handed to
every consumer explicitly.
"""

import abc
import asyncio
import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from hashlib import sha256
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from shielded_pool.field import (
    BYTES_PER_FIELD_ELEMENT,
    FIELD_MODULUS,
    Field,
    check_field_element,
    parse_field,
)

logger = logging.getLogger(__name__)


class FieldHasher(abc.ABC):
    """
    A pure function from a sequence of field elements to a field element.
    """

    modulus: int = FIELD_MODULUS

    @abc.abstractmethod
    def hash(self, elements: Sequence[Field]) -> Field:
        pass

    def hash2(self, left: Field, right: Field) -> Field:
        return self.hash([left, right])


class Sha256Hasher(FieldHasher):
    """
    HACK: stands in for the algebraic hash with sha256(data) % FIELD_MODULUS.

    Deterministic and cheap, which is all the tree needs, but no circuit
    recomputes it. Use it for tests and dry runs only.
    """

    def hash(self, elements: Sequence[Field]) -> Field:
        h = sha256()
        for e in elements:
            check_field_element(e, "hash input")
            h.update(e.to_bytes(BYTES_PER_FIELD_ELEMENT, byteorder="big"))
        return int.from_bytes(h.digest(), byteorder="big") % FIELD_MODULUS

    def __repr__(self) -> str:
        return "Sha256Hasher()"


# Partial rounds per state width t, indexed by t - 2 (circomlib schedule)
N_ROUNDS_F = 8
N_ROUNDS_P = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]


@dataclass(frozen=True)
class PoseidonParams:
    t: int  # state width, number of inputs + 1
    n_rounds_f: int
    n_rounds_p: int
    c: List[Field]  # round constants, flattened (n_rounds_f + n_rounds_p) * t
    m: List[List[Field]]  # MDS matrix, t x t

    def validate(self):
        assert self.t >= 2, f"t={self.t}"
        assert self.n_rounds_f % 2 == 0, f"n_rounds_f={self.n_rounds_f}"
        assert len(self.c) == (self.n_rounds_f + self.n_rounds_p) * self.t, (
            f"expected {(self.n_rounds_f + self.n_rounds_p) * self.t} round "
            f"constants for t={self.t}, got {len(self.c)}"
        )
        assert len(self.m) == self.t and all(len(row) == self.t for row in self.m), (
            f"MDS matrix for t={self.t} is not {self.t}x{self.t}"
        )


def load_poseidon_params(path: str) -> Dict[int, PoseidonParams]:
    """
    Reads the circuit's Poseidon constants.

    The file holds `{"C": [...], "M": [...]}` where entry `t - 2` of each list
    belongs to state width `t`. Values may be decimal or 0x hex strings.

    The file is not distributed with this package. Export it from the
    circomlib build the circuit was compiled with.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(
            f"Poseidon constants not found at {path}: export circomlib's "
            f'poseidon_constants as {{"C": [...], "M": [...]}} to that path, '
            f"or set hasher.type to sha256 for dry runs"
        )
    with open(path, "r") as f:
        raw = json.load(f)

    assert len(raw["C"]) == len(raw["M"]), "C and M cover different widths"
    assert len(raw["C"]) <= len(N_ROUNDS_P), "no round schedule for the widest t"
    params = {}
    for i, (c, m) in enumerate(zip(raw["C"], raw["M"])):
        t = i + 2
        p = PoseidonParams(
            t=t,
            n_rounds_f=N_ROUNDS_F,
            n_rounds_p=N_ROUNDS_P[i],
            c=[parse_field(v) for v in c],
            m=[[parse_field(v) for v in row] for row in m],
        )
        p.validate()
        params[t] = p
    return params


def _pow5(x: int) -> int:
    x2 = x * x % FIELD_MODULUS
    return x2 * x2 % FIELD_MODULUS * x % FIELD_MODULUS


class PoseidonHasher(FieldHasher):
    """
    Poseidon over BN254 with the circomlib state layout: the state starts as
    `[0, *inputs]` and the digest is `state[0]` after the permutation.
    """

    def __init__(self, params: Dict[int, PoseidonParams]):
        assert params, "at least one state width is required"
        for p in params.values():
            p.validate()
        self._params = dict(params)

    @classmethod
    def from_file(cls, path: str) -> "PoseidonHasher":
        return cls(load_poseidon_params(path))

    @property
    def max_inputs(self) -> int:
        return max(self._params) - 1

    def hash(self, elements: Sequence[Field]) -> Field:
        t = len(elements) + 1
        params = self._params.get(t)
        if params is None:
            raise ValueError(
                f"no Poseidon parameters for {len(elements)} inputs "
                f"(supported: {sorted(w - 1 for w in self._params)})"
            )
        for e in elements:
            check_field_element(e, "hash input")
        return self._permute([0, *elements], params)[0]

    @staticmethod
    def _permute(state: List[int], params: PoseidonParams) -> List[int]:
        t, c, m = params.t, params.c, params.m
        half_f = params.n_rounds_f // 2
        for r in range(params.n_rounds_f + params.n_rounds_p):
            state = [(s + c[r * t + i]) % FIELD_MODULUS for i, s in enumerate(state)]
            if r < half_f or r >= half_f + params.n_rounds_p:
                state = [_pow5(s) for s in state]
            else:
                state[0] = _pow5(state[0])
            state = [
                sum(m[i][j] * state[j] for j in range(t)) % FIELD_MODULUS
                for i in range(t)
            ]
        return state

    def __repr__(self) -> str:
        return f"PoseidonHasher(widths={sorted(self._params)})"


class HasherUninitialized(Exception):
    def __str__(self):
        return "Hasher has not been loaded yet"


class InitializationFailed(Exception):
    def __str__(self):
        return f"Hasher initialization failed: {self.__cause__!r}"


class HasherLoader:
    """
    Builds a hasher at most once. Every later `load` returns the same instance
    without calling the factory again.
    """

    def __init__(self, factory: Callable[[], FieldHasher]):
        self._factory = factory
        self._lock = threading.Lock()
        self._hasher: Optional[FieldHasher] = None

    @property
    def loaded(self) -> bool:
        return self._hasher is not None

    def load(self) -> FieldHasher:
        if self._hasher is not None:
            return self._hasher
        with self._lock:
            if self._hasher is None:
                try:
                    hasher = self._factory()
                except Exception as e:
                    raise InitializationFailed() from e
                logger.info("loaded field hasher %r", hasher)
                self._hasher = hasher
        return self._hasher

    async def load_async(self) -> FieldHasher:
        if self._hasher is not None:
            return self._hasher
        return await asyncio.to_thread(self.load)

    def get(self) -> FieldHasher:
        if self._hasher is None:
            raise HasherUninitialized()
        return self._hasher

    @contextmanager
    def scope(self) -> Iterator[FieldHasher]:
        yield self.load()
