from __future__ import annotations

from pathlib import Path

from sdx.config import DEFAULT_HOST_ID, SdxConfig
from sdx.registry import DEFAULT_RESERVED


def test_defaults_when_environment_is_empty() -> None:
    config = SdxConfig.from_env({})
    assert config.plugin_dir is None
    assert config.host_id == DEFAULT_HOST_ID
    assert config.reserved == DEFAULT_RESERVED
    assert config.ledger_path is None
    assert config.trusted_keys_path is None


def test_values_are_read_from_environment(tmp_path: Path) -> None:
    config = SdxConfig.from_env(
        {
            "SDX_PLUGIN_DIR": str(tmp_path / "plugins"),
            "SDX_HOST_ID": "KIT",
            "SDX_RESERVED": "sdx, pkgIndex ,,",
            "SDX_LEDGER": str(tmp_path / "ledger.jsonl"),
            "SDX_TRUSTED_KEYS": "  ",
        }
    )
    assert config.plugin_dir == tmp_path / "plugins"
    assert config.host_id == "KIT"
    assert config.reserved == frozenset({"sdx", "pkgIndex"})
    assert config.ledger_path == tmp_path / "ledger.jsonl"
    assert config.trusted_keys_path is None


def test_blank_host_id_falls_back_to_default() -> None:
    assert SdxConfig.from_env({"SDX_HOST_ID": "   "}).host_id == DEFAULT_HOST_ID
