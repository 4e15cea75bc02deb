from __future__ import annotations

from pathlib import Path

import pytest

from sdx.registry import CallableScript, CommandRegistry, FileScript, ScriptUnit


def _touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_text("print('x')\n", encoding="utf-8")


def test_from_directory_skips_internal_and_reserved_files(tmp_path: Path) -> None:
    _touch(tmp_path, "wrap.py", "qwrap.py", "sdx.py", "__init__.py", "_helpers.py", "notes.txt")

    registry = CommandRegistry.from_directory(tmp_path)

    assert registry.names() == ["qwrap", "wrap"]
    unit = registry["wrap"]
    assert isinstance(unit, FileScript)
    assert unit.filename == str(tmp_path.resolve() / "wrap.py")
    assert unit.search_paths == (str(tmp_path.resolve()),)
    assert unit.describe()["sha256"]


def test_custom_reserved_names(tmp_path: Path) -> None:
    _touch(tmp_path, "wrap.py", "sdx.py", "pkgIndex.py")
    registry = CommandRegistry.from_directory(tmp_path, reserved={"pkgIndex"})
    assert registry.names() == ["sdx", "wrap"]


def test_missing_directory_yields_empty_registry(tmp_path: Path) -> None:
    registry = CommandRegistry.from_directory(tmp_path / "absent")
    assert len(registry) == 0
    assert registry.names() == []


def test_registry_is_read_only_and_rejects_duplicates() -> None:
    registry = CommandRegistry.from_callables({"b": lambda scope: None, "a": lambda scope: None})
    assert list(registry) == ["b", "a"]
    assert registry.names() == ["a", "b"]
    assert "a" in registry
    assert registry.get("missing") is None
    with pytest.raises(TypeError):
        registry["c"] = registry["a"]  # type: ignore[index]
    with pytest.raises(ValueError):
        CommandRegistry([CallableScript("dup", lambda scope: None), CallableScript("dup", lambda scope: None)])


def test_relative_plugin_directory_is_resolved(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    plugins = tmp_path / "plugins"
    plugins.mkdir()
    _touch(plugins, "wrap.py")
    monkeypatch.chdir(tmp_path)

    unit = CommandRegistry.from_directory(Path("plugins"))["wrap"]

    assert isinstance(unit, FileScript)
    assert unit.path.is_absolute()
    assert unit.path == (plugins / "wrap.py").resolve()


def test_script_unit_requires_run() -> None:
    class Incomplete(ScriptUnit):
        name = "incomplete"

    with pytest.raises(TypeError):
        Incomplete()  # type: ignore[abstract]
