from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Union

import dacite
import yaml

from shielded_pool.field import ZERO_VALUE, parse_field
from shielded_pool.hasher import FieldHasher, HasherLoader, PoseidonHasher, Sha256Hasher
from shielded_pool.merkle import DEFAULT_HEIGHT
from shielded_pool.pool import ROOT_HISTORY_SIZE, AnonymitySet


@dataclass
class Config:
    tree: TreeConfig
    hasher: HasherConfig

    @classmethod
    def load(cls, yaml_path: str) -> Config:
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)
        config = dacite.from_dict(data_class=Config, data=data)

        # Relative paths are relative to the config file
        if config.hasher.params_path is not None:
            config.hasher.params_path = os.path.join(
                os.path.dirname(os.path.abspath(yaml_path)), config.hasher.params_path
            )

        # Validations
        config.tree.validate()
        config.hasher.validate()

        return config

    def anonymity_set(self, hasher: FieldHasher) -> AnonymitySet:
        return AnonymitySet(
            hasher, self.tree.height, self.tree.zero_value, self.tree.root_history_size
        )


@dataclass
class TreeConfig:
    # Number of levels above the leaves. The tree holds 2**height commitments
    # and must match the depth the circuit was compiled with.
    height: int = DEFAULT_HEIGHT
    # Empty leaf, decimal or 0x hex. Must match the on-chain pool.
    zero_value: Union[int, str] = ZERO_VALUE
    # How many recent roots the pool contract accepts proofs against
    root_history_size: int = ROOT_HISTORY_SIZE

    def __post_init__(self):
        self.zero_value = parse_field(self.zero_value)

    def validate(self):
        assert self.height >= 1
        assert isinstance(self.zero_value, int)
        assert self.root_history_size >= 1


@dataclass
class HasherConfig:
    # Hash function: poseidon | sha256
    type: str = "poseidon"
    # JSON file with the circuit's Poseidon constants, only for poseidon
    params_path: Optional[str] = field(default=None)

    TYPE_POSEIDON = "poseidon"
    TYPE_SHA256 = "sha256"

    def validate(self):
        assert self.type in [self.TYPE_POSEIDON, self.TYPE_SHA256]
        if self.type == self.TYPE_POSEIDON:
            assert self.params_path is not None

    def loader(self) -> HasherLoader:
        if self.type == self.TYPE_POSEIDON:
            params_path = self.params_path
            return HasherLoader(lambda: PoseidonHasher.from_file(params_path))
        return HasherLoader(Sha256Hasher)
