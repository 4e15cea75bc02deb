"""Convert process termination requests into catchable exceptions."""

from __future__ import annotations

import builtins
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from sdx.errors import InterceptedExit, InterceptorStateError
from sdx.output import OUTPUT, OutputBuffer

_MISSING = object()

# (owner, attribute) pairs replaced while the interceptor is installed.
_PRIMITIVES: Tuple[Tuple[Any, str], ...] = (
    (sys, "exit"),
    (builtins, "exit"),
    (builtins, "quit"),
    (os, "_exit"),
)


def normalize_exit_code(code: Any, buffer: Optional[OutputBuffer] = None) -> int:
    """Map a ``sys.exit`` argument onto an integer status.

    ``None`` means success. Any non-integer value is reported the way the
    interpreter would report it (appended to *buffer*) and yields status 1.
    """

    if code is None:
        return 0
    if isinstance(code, int):
        return int(code)
    if buffer is not None:
        message = code.decode("utf-8", errors="replace") if isinstance(code, bytes) else str(code)
        if message:
            buffer.append(message if message.endswith("\n") else message + "\n")
    return 1


@dataclass(frozen=True)
class ExitToken:
    """Capability returned by :meth:`ExitInterceptor.install`."""

    depth: int
    originals: Dict[Tuple[int, str], Any]


class ExitInterceptor:
    """Swap the termination primitives for a function raising :class:`InterceptedExit`."""

    def __init__(self, buffer: OutputBuffer = OUTPUT) -> None:
        self._buffer = buffer
        self._stack: List[ExitToken] = []

    @property
    def depth(self) -> int:
        return len(self._stack)

    def _intercept(self, code: Any = None) -> None:
        exit_code = normalize_exit_code(code, self._buffer)
        raise InterceptedExit(self._buffer.getvalue().strip(), exit_code)

    def _replacement(self) -> Callable[..., None]:
        def exit(code: Any = None) -> None:
            self._intercept(code)

        return exit

    def install(self) -> ExitToken:
        originals: Dict[Tuple[int, str], Any] = {}
        replacement = self._replacement()
        for owner, attribute in _PRIMITIVES:
            originals[(id(owner), attribute)] = getattr(owner, attribute, _MISSING)
            setattr(owner, attribute, replacement)
        token = ExitToken(depth=len(self._stack) + 1, originals=originals)
        self._stack.append(token)
        return token

    def remove(self, token: ExitToken) -> None:
        if not self._stack or self._stack[-1] is not token:
            raise InterceptorStateError(
                f"exit interceptor token at depth {token.depth} is not the innermost installation"
            )
        self._stack.pop()
        for owner, attribute in _PRIMITIVES:
            original = token.originals[(id(owner), attribute)]
            if original is _MISSING:
                delattr(owner, attribute)
            else:
                setattr(owner, attribute, original)


__all__ = ["ExitInterceptor", "ExitToken", "normalize_exit_code"]
