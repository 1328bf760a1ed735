"""
Pool settings loaded from YAML.

Example config.yaml:

    pool:
      deposit_amount: 100000000
      depth: 20
      root_history_size: 100
      nullifier_capacity: 1048576
      verifying_key: params/verification_key.json
      hash: poseidon
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .config import DEFAULT_TREE_DEPTH, MAX_TREE_DEPTH, ROOT_HISTORY_SIZE
from .exceptions import ConfigurationError, InvalidDepositAmount
from .hashing import HASH_SCHEMES


@dataclass
class PoolSettings:
    """Initialization parameters for one pool."""

    deposit_amount: int
    depth: int = DEFAULT_TREE_DEPTH
    root_history_size: int = ROOT_HISTORY_SIZE
    nullifier_capacity: Optional[int] = None
    verifying_key_path: Optional[Path] = None
    hash_scheme: Optional[str] = None

    def __post_init__(self) -> None:
        if self.verifying_key_path is not None:
            self.verifying_key_path = Path(self.verifying_key_path)

    def validate(self) -> "PoolSettings":
        if (
            not isinstance(self.deposit_amount, int)
            or isinstance(self.deposit_amount, bool)
            or self.deposit_amount <= 0
        ):
            raise InvalidDepositAmount("deposit_amount must be a positive integer")
        if not isinstance(self.depth, int) or not 1 <= self.depth <= MAX_TREE_DEPTH:
            raise ConfigurationError(f"depth must be in [1, {MAX_TREE_DEPTH}]")
        if not isinstance(self.root_history_size, int) or self.root_history_size < 1:
            raise ConfigurationError("root_history_size must be a positive integer")
        if self.nullifier_capacity is not None and (
            not isinstance(self.nullifier_capacity, int) or self.nullifier_capacity < 1
        ):
            raise ConfigurationError("nullifier_capacity must be a positive integer")
        if self.hash_scheme is not None and self.hash_scheme not in HASH_SCHEMES:
            raise ConfigurationError(
                f"hash must be one of {', '.join(sorted(HASH_SCHEMES))}, got {self.hash_scheme!r}"
            )
        return self

    @property
    def effective_nullifier_capacity(self) -> int:
        if self.nullifier_capacity is not None:
            return self.nullifier_capacity
        return 1 << self.depth

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PoolSettings":
        if not isinstance(data, Mapping):
            raise ConfigurationError("pool settings must be a mapping")
        section = data.get("pool", data)
        if not isinstance(section, Mapping):
            raise ConfigurationError("'pool' section must be a mapping")
        if "deposit_amount" not in section:
            raise InvalidDepositAmount("deposit_amount is required")

        settings = cls(
            deposit_amount=section["deposit_amount"],
            depth=section.get("depth", DEFAULT_TREE_DEPTH),
            root_history_size=section.get("root_history_size", ROOT_HISTORY_SIZE),
            nullifier_capacity=section.get("nullifier_capacity"),
            verifying_key_path=section.get("verifying_key"),
            hash_scheme=section.get("hash"),
        )
        return settings.validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PoolSettings":
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"{path}: invalid YAML: {exc}") from exc

        settings = cls.from_mapping(data)
        # Relative key paths are relative to the config file
        if settings.verifying_key_path is not None and not settings.verifying_key_path.is_absolute():
            settings.verifying_key_path = path.parent / settings.verifying_key_path
        return settings

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.verifying_key_path is not None:
            data["verifying_key_path"] = str(self.verifying_key_path)
        return data
