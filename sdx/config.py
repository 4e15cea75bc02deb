"""Runtime configuration for the SDX dispatcher."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Mapping, Optional

from sdx.registry import DEFAULT_RESERVED

DEFAULT_HOST_ID = "SDX"


def _optional_path(value: Optional[str]) -> Optional[Path]:
    if not value or not value.strip():
        return None
    return Path(value.strip()).expanduser()


@dataclass(frozen=True)
class SdxConfig:
    """Settings used to build a :class:`~sdx.dispatcher.Dispatcher`."""

    plugin_dir: Optional[Path] = None
    host_id: str = DEFAULT_HOST_ID
    reserved: FrozenSet[str] = field(default_factory=lambda: DEFAULT_RESERVED)
    ledger_path: Optional[Path] = None
    trusted_keys_path: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SdxConfig":
        """Read ``SDX_*`` variables, falling back to defaults for blank values."""

        env = os.environ if environ is None else environ
        host_id = env.get("SDX_HOST_ID", "").strip() or DEFAULT_HOST_ID
        reserved: FrozenSet[str] = DEFAULT_RESERVED
        raw_reserved = env.get("SDX_RESERVED")
        if raw_reserved is not None:
            reserved = frozenset(item.strip() for item in raw_reserved.split(",") if item.strip())
        return cls(
            plugin_dir=_optional_path(env.get("SDX_PLUGIN_DIR")),
            host_id=host_id,
            reserved=reserved,
            ledger_path=_optional_path(env.get("SDX_LEDGER")),
            trusted_keys_path=_optional_path(env.get("SDX_TRUSTED_KEYS")),
        )


__all__ = ["DEFAULT_HOST_ID", "SdxConfig"]
