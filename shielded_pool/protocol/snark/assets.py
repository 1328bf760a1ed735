"""Helpers to resolve and load Groth16 verifying keys, proofs and public inputs."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, List

from ..exceptions import InvalidProof, InvalidPublicInputs, InvalidVerificationKey
from .encoding import encode_field_element
from .keys import Proof, VerifyingKey

PARAMS_DIR_ENV = "SHIELDED_POOL_PARAMS_DIR"

_VK_FILENAMES = ("verification_key.json", "vk.json", "vk.bin")


def resolve_verifying_key(
    path: str | Path | None = None,
    base_dir: str | Path | None = None,
) -> Path:
    """
    Resolve the verifying key file.

    An explicit path wins; otherwise the well-known file names are tried under
    base_dir, then $SHIELDED_POOL_PARAMS_DIR, then ./params.
    """
    if path is not None:
        return _first_existing([Path(path)], "verifying key")
    base = Path(base_dir) if base_dir else _default_params_dir()
    return _first_existing([base / name for name in _VK_FILENAMES], "verifying key")


def load_verifying_key(path: str | Path) -> VerifyingKey:
    """Load a snarkjs verification_key.json or the binary key layout."""
    path = Path(path)
    data = path.read_bytes()
    if _looks_like_json(path, data):
        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidVerificationKey(f"{path}: invalid JSON: {exc}") from exc
        return VerifyingKey.from_snarkjs(obj)
    return VerifyingKey.from_bytes(data)


def load_proof(path: str | Path) -> Proof:
    """Load a snarkjs proof.json or a raw 256-byte proof."""
    path = Path(path)
    data = path.read_bytes()
    if _looks_like_json(path, data):
        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidProof(f"{path}: invalid JSON: {exc}") from exc
        return Proof.from_snarkjs(obj)
    return Proof.from_bytes(data)


def load_public_inputs(path: str | Path) -> List[bytes]:
    """
    Load a snarkjs public.json (list of decimal strings) as 32-byte elements.
    """
    path = Path(path)
    try:
        values = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPublicInputs(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(values, list):
        raise InvalidPublicInputs("public inputs file must hold a JSON list")

    out = []
    for i, value in enumerate(values):
        try:
            number = int(value, 0) if isinstance(value, str) and value.startswith("0x") else int(value)
            out.append(encode_field_element(number))
        except (TypeError, ValueError) as exc:
            raise InvalidPublicInputs(f"public input {i}: {exc}") from exc
    return out


def _looks_like_json(path: Path, data: bytes) -> bool:
    if path.suffix.lower() == ".json":
        return True
    return data.lstrip()[:1] in (b"{", b"[")


def _default_params_dir() -> Path:
    return Path(os.getenv(PARAMS_DIR_ENV, Path.cwd() / "params"))


def _first_existing(candidates: Iterable[Path], label: str) -> Path:
    candidates = list(candidates)
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError(f"Unable to resolve {label}. Checked: {', '.join(str(p) for p in candidates)}")
