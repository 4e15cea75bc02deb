"""Console output capture for sandboxed sub-command invocations."""

from __future__ import annotations

import io
import sys
import threading
from dataclasses import dataclass
from typing import List, TextIO

from sdx.errors import InterceptorStateError


class OutputBuffer:
    """Process-wide text buffer that intercepted console writes append to."""

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._lock = threading.RLock()

    def append(self, data: str) -> None:
        if not data:
            return
        with self._lock:
            self._parts.append(data)

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._parts)

    def reset(self) -> None:
        with self._lock:
            self._parts = []

    def take(self) -> str:
        """Return the buffered text and leave the buffer empty."""

        with self._lock:
            value = "".join(self._parts)
            self._parts = []
            return value

    def is_empty(self) -> bool:
        with self._lock:
            return not any(self._parts)


OUTPUT = OutputBuffer()


class InterceptStream(io.TextIOBase):
    """Text stream that appends every write to an :class:`OutputBuffer`."""

    def __init__(self, buffer: OutputBuffer, name: str) -> None:
        super().__init__()
        self._buffer = buffer
        self._name = name

    def write(self, s: str) -> int:  # type: ignore[override]
        if not s:
            return 0
        self._buffer.append(s)
        return len(s)

    def flush(self) -> None:  # type: ignore[override]
        return None

    def clear(self) -> None:
        return None

    def writable(self) -> bool:  # type: ignore[override]
        return True

    def isatty(self) -> bool:  # type: ignore[override]
        return False

    @property
    def name(self) -> str:
        return self._name

    @property
    def encoding(self) -> str:  # type: ignore[override]
        return "utf-8"


@dataclass(frozen=True)
class OutputToken:
    """Capability returned by :meth:`OutputInterceptor.install`."""

    depth: int
    stdout: TextIO
    stderr: TextIO


class OutputInterceptor:
    """Redirect ``sys.stdout`` and ``sys.stderr`` into an output buffer.

    Installations nest: every :meth:`install` remembers the stream pair it
    replaced and :meth:`remove` puts exactly that pair back. Tokens must be
    removed innermost first.
    """

    def __init__(self, buffer: OutputBuffer = OUTPUT) -> None:
        self._buffer = buffer
        self._stack: List[OutputToken] = []

    @property
    def buffer(self) -> OutputBuffer:
        return self._buffer

    @property
    def depth(self) -> int:
        return len(self._stack)

    def install(self) -> OutputToken:
        token = OutputToken(depth=len(self._stack) + 1, stdout=sys.stdout, stderr=sys.stderr)
        self._stack.append(token)
        sys.stdout = InterceptStream(self._buffer, "<sdx stdout>")  # type: ignore[assignment]
        sys.stderr = InterceptStream(self._buffer, "<sdx stderr>")  # type: ignore[assignment]
        return token

    def remove(self, token: OutputToken) -> None:
        if not self._stack or self._stack[-1] is not token:
            raise InterceptorStateError(
                f"output interceptor token at depth {token.depth} is not the innermost installation"
            )
        self._stack.pop()
        sys.stdout = token.stdout
        sys.stderr = token.stderr


__all__ = ["InterceptStream", "OUTPUT", "OutputBuffer", "OutputInterceptor", "OutputToken"]
