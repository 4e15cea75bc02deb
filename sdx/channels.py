"""Registry of stream handles opened on behalf of plugin scripts."""

from __future__ import annotations

import io
import threading
from typing import IO, Any, Callable, Dict, List, Optional


class ChannelTable:
    """Track open stream handles under short ``file<N>`` names.

    Handles closed by their owner drop out of :meth:`names` automatically, so
    the table always reflects the set of handles that are still open.
    """

    def __init__(self) -> None:
        self._channels: Dict[str, IO[Any]] = {}
        self._counter = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    def register(self, handle: IO[Any]) -> str:
        with self._lock:
            self._counter += 1
            name = f"file{self._counter}"
            self._channels[name] = handle
            return name

    def open(self, file: Any, mode: str = "r", *args: Any, **kwargs: Any) -> IO[Any]:
        handle = io.open(file, mode, *args, **kwargs)
        self.register(handle)
        return handle

    def opener(self) -> Callable[..., IO[Any]]:
        """Return an ``open`` replacement bound to this table."""

        def open(file: Any, mode: str = "r", *args: Any, **kwargs: Any) -> IO[Any]:
            return self.open(file, mode, *args, **kwargs)

        return open

    # ------------------------------------------------------------------
    def _prune(self) -> None:
        for name in [name for name, handle in self._channels.items() if handle.closed]:
            del self._channels[name]

    def names(self) -> List[str]:
        with self._lock:
            self._prune()
            return list(self._channels)

    def get(self, name: str) -> Optional[IO[Any]]:
        with self._lock:
            return self._channels.get(name)

    def name_of(self, handle: IO[Any]) -> Optional[str]:
        with self._lock:
            for name, candidate in self._channels.items():
                if candidate is handle:
                    return name
        return None

    def close(self, name: str) -> None:
        """Forget *name* and close its handle; errors from ``close`` propagate."""

        with self._lock:
            handle = self._channels.pop(name)
        handle.close()


CHANNELS = ChannelTable()


def open_channel(file: Any, mode: str = "r", *args: Any, **kwargs: Any) -> IO[Any]:
    """Open *file* and register the handle in the process-wide channel table."""

    return CHANNELS.open(file, mode, *args, **kwargs)


__all__ = ["CHANNELS", "ChannelTable", "open_channel"]
