"""Command registry mapping sub-command names to runnable script units."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
)

from sdx.signature import PluginSignatureVerifier, compute_file_hash

logger = logging.getLogger("sdx.registry")

DEFAULT_RESERVED = frozenset({"sdx"})

ScriptBody = Callable[[Dict[str, Any]], Any]


class ScriptUnit(abc.ABC):
    """A runnable piece of plugin logic executed inside a sandbox scope."""

    name: str

    @property
    def filename(self) -> str:
        return f"<sdx:{self.name}>"

    @property
    def search_paths(self) -> Sequence[str]:
        return ()

    def check(self) -> None:
        """Validate the unit before any side effect of an invocation."""

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "kind": type(self).__name__}

    @abc.abstractmethod
    def run(self, namespace: Dict[str, Any]) -> None:
        """Execute the unit with *namespace* as its globals."""


@dataclass
class FileScript(ScriptUnit):
    """A ``.py`` plugin file executed with ``exec`` in the scope namespace."""

    name: str
    path: Path
    verifier: Optional[PluginSignatureVerifier] = None

    @property
    def filename(self) -> str:
        return str(self.path)

    @property
    def search_paths(self) -> Sequence[str]:
        return (str(self.path.parent),)

    def check(self) -> None:
        if self.verifier is not None:
            self.verifier.verify(self.path)

    def describe(self) -> Dict[str, Any]:
        payload = super().describe()
        payload["path"] = str(self.path)
        try:
            payload["sha256"] = compute_file_hash(self.path)
        except OSError:
            payload["sha256"] = None
        return payload

    def run(self, namespace: Dict[str, Any]) -> None:
        source = self.path.read_text(encoding="utf-8")
        code = compile(source, str(self.path), "exec")
        exec(code, namespace)


@dataclass
class CallableScript(ScriptUnit):
    """A Python callable receiving the scope namespace."""

    name: str
    body: ScriptBody = field(repr=False)

    def run(self, namespace: Dict[str, Any]) -> None:
        self.body(namespace)


class CommandRegistry(Mapping[str, ScriptUnit]):
    """Read-only mapping of command names to script units."""

    def __init__(self, units: Iterable[ScriptUnit] = ()) -> None:
        commands: Dict[str, ScriptUnit] = {}
        for unit in units:
            if unit.name in commands:
                raise ValueError(f"duplicate command name: {unit.name}")
            commands[unit.name] = unit
        self._commands = commands

    # ------------------------------------------------------------------
    @classmethod
    def from_directory(
        cls,
        directory: Path,
        *,
        reserved: Iterable[str] = DEFAULT_RESERVED,
        verifier: Optional[PluginSignatureVerifier] = None,
    ) -> "CommandRegistry":
        """Register every ``*.py`` file in *directory* as a command.

        Files whose stem starts with an underscore and reserved stems are
        host-internal and never exposed as commands. Paths are resolved so a
        plugin that changes directory can still invoke its siblings.
        """

        skip = set(reserved)
        directory = directory.resolve()
        if not directory.is_dir():
            logger.warning("Plugin directory %s does not exist", directory)
            return cls()
        units: List[ScriptUnit] = []
        for path in sorted(directory.glob("*.py")):
            name = path.stem
            if name.startswith("_") or name in skip:
                continue
            units.append(FileScript(name=name, path=path, verifier=verifier))
        logger.debug("Registered %d commands from %s", len(units), directory)
        return cls(units)

    @classmethod
    def from_callables(cls, bodies: Mapping[str, ScriptBody]) -> "CommandRegistry":
        return cls(CallableScript(name=name, body=body) for name, body in bodies.items())

    # ------------------------------------------------------------------
    def __getitem__(self, name: str) -> ScriptUnit:
        return self._commands[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def names(self) -> List[str]:
        return sorted(self._commands)


__all__ = [
    "CallableScript",
    "CommandRegistry",
    "DEFAULT_RESERVED",
    "FileScript",
    "ScriptUnit",
]
