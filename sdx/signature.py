"""Ed25519 signature checks for plugin scripts."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from sdx.errors import PluginSignatureError


def compute_file_hash(path: Path) -> str:
    """Return the SHA-256 hash for *path* using a streaming reader."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def signature_path(script: Path) -> Path:
    return script.with_name(script.name + ".sig")


@dataclass(frozen=True)
class PluginSignature:
    """Decoded contents of a ``<script>.sig`` sidecar."""

    key_id: str
    signature: bytes

    @classmethod
    def load(cls, script: Path) -> "PluginSignature":
        sidecar = signature_path(script)
        try:
            payload = json.loads(sidecar.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise PluginSignatureError(f"missing signature for {script.name}") from exc
        except json.JSONDecodeError as exc:
            raise PluginSignatureError(f"malformed signature file {sidecar.name}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("signature"), str):
            raise PluginSignatureError(f"malformed signature file {sidecar.name}")
        try:
            signature = bytes.fromhex(payload["signature"])
        except ValueError as exc:
            raise PluginSignatureError(f"{sidecar.name}: signature is not valid hex data") from exc
        return cls(key_id=str(payload.get("key_id", "default")), signature=signature)


def _load_public_key(key_id: str, key_hex: str) -> Ed25519PublicKey:
    try:
        return Ed25519PublicKey.from_public_bytes(bytes.fromhex(key_hex))
    except ValueError as exc:
        raise PluginSignatureError(f"trusted key {key_id!r} is not a valid Ed25519 key") from exc


class PluginSignatureVerifier:
    """Verify ``<script>.sig`` sidecars against a set of trusted public keys.

    Trusted keys map a key id to a hex encoded raw Ed25519 public key; they
    are decoded up front, so a bad key is reported when the verifier is built
    rather than on the first plugin that happens to use it.
    """

    def __init__(self, trusted_keys: Mapping[str, str]) -> None:
        self._keys: Dict[str, Ed25519PublicKey] = {
            str(key_id): _load_public_key(str(key_id), str(key_hex))
            for key_id, key_hex in trusted_keys.items()
        }

    @classmethod
    def from_file(cls, path: Path) -> "PluginSignatureVerifier":
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise PluginSignatureError(f"trusted key file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise PluginSignatureError(f"trusted key file is not valid JSON: {path}") from exc
        if not isinstance(raw, dict):
            raise PluginSignatureError(f"trusted key file must contain an object: {path}")
        return cls(raw)

    @property
    def key_ids(self) -> List[str]:
        return sorted(self._keys)

    def verify(self, script: Path) -> str:
        """Verify *script* and return the id of the key that signed it."""

        sidecar = PluginSignature.load(script)
        public_key = self._keys.get(sidecar.key_id)
        if public_key is None:
            raise PluginSignatureError(
                f"{script.name} is signed with unknown signing key {sidecar.key_id!r}"
            )
        try:
            public_key.verify(sidecar.signature, script.read_bytes())
        except InvalidSignature as exc:
            raise PluginSignatureError(
                f"{script.name}: signature does not match script bytes"
            ) from exc
        return sidecar.key_id


__all__ = ["PluginSignature", "PluginSignatureVerifier", "compute_file_hash", "signature_path"]
