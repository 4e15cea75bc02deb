"""Disposable namespaces that plugin scripts execute inside."""

from __future__ import annotations

import builtins
import contextlib
import sys
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Sequence

from sdx.channels import CHANNELS, ChannelTable

if TYPE_CHECKING:  # pragma: no cover
    from sdx.registry import ScriptUnit


def _scope_builtins(channels: ChannelTable) -> Dict[str, Any]:
    """Copy the current builtins, routing ``open`` through the channel table."""

    namespace = dict(vars(builtins))
    namespace["open"] = channels.opener()
    return namespace


class _SysPathInjector:
    """Context manager that temporarily prepends paths to ``sys.path``."""

    def __init__(self, paths: Sequence[str]) -> None:
        self._paths: List[str] = []
        self._injected: List[str] = []
        for path in paths:
            if path and path not in self._paths:
                self._paths.append(path)

    def __enter__(self) -> "_SysPathInjector":
        injected: List[str] = []
        for path in reversed(self._paths):
            if path not in sys.path:
                sys.path.insert(0, path)
                injected.append(path)
        self._injected = injected
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for path in self._injected:
            while path in sys.path:
                sys.path.remove(path)
        self._injected = []


class SandboxScopeManager:
    """Create, run and destroy one namespace per plugin invocation."""

    def __init__(self, channels: ChannelTable = CHANNELS) -> None:
        self._channels = channels
        self._active: List[Dict[str, Any]] = []

    @property
    def active_depth(self) -> int:
        return len(self._active)

    @contextlib.contextmanager
    def scope(
        self,
        argv0: str,
        argv: Sequence[str],
        *,
        filename: str = "<sdx>",
    ) -> Iterator[Dict[str, Any]]:
        namespace: Dict[str, Any] = {
            "__name__": "__main__",
            "__file__": filename,
            "__builtins__": _scope_builtins(self._channels),
            "argv0": argv0,
            "argv": list(argv),
        }
        original_argv = list(sys.argv)
        self._active.append(namespace)
        sys.argv = [argv0, *argv]
        try:
            yield namespace
        finally:
            sys.argv = original_argv
            self._active.pop()
            namespace.clear()

    def run(self, unit: "ScriptUnit", argv0: str, argv: Sequence[str]) -> None:
        """Execute *unit* in a fresh scope; errors propagate unchanged."""

        with self.scope(argv0, argv, filename=unit.filename) as namespace, _SysPathInjector(
            unit.search_paths
        ):
            unit.run(namespace)


__all__ = ["SandboxScopeManager"]
