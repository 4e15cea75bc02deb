"""Error types raised by the SDX sub-command runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from sdx.dispatcher import Outcome


class SdxError(RuntimeError):
    """Base class for all SDX runtime errors."""


class UnknownCommandError(SdxError):
    """Raised when a command name is not present in the registry."""

    def __init__(self, command: str, available: Sequence[str]) -> None:
        self.command = command
        self.available = sorted(available)
        super().__init__(
            f'unknown subcommand "{command}": must be {", ".join(self.available)}'
        )


class CommandFailed(SdxError):
    """Raised by :meth:`Dispatcher.execute` when a plugin fails or exits nonzero."""

    def __init__(self, outcome: "Outcome") -> None:
        self.outcome = outcome
        super().__init__(outcome.text)

    @property
    def text(self) -> str:
        return self.outcome.text

    @property
    def exit_code(self) -> Optional[int]:
        return self.outcome.exit_code


class InterceptedExit(BaseException):
    """Raised in place of process termination while the exit interceptor is installed.

    Derives from ``BaseException`` so that ``except Exception`` blocks inside a
    plugin do not swallow it, matching :class:`SystemExit`.
    """

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class InterceptorStateError(SdxError):
    """Raised when an interceptor token is removed out of stack order."""


class ResourceReconciliationError(SdxError):
    """Raised internally when a leaked channel or mount cannot be released."""

    def __init__(self, category: str, name: str, reason: str) -> None:
        self.category = category
        self.name = name
        self.reason = reason
        super().__init__(f"failed to release {category} {name}: {reason}")


class MountError(SdxError):
    """Raised when a virtual filesystem mount request is invalid."""


class PluginSignatureError(SdxError):
    """Raised when a plugin script fails signature verification."""


class LedgerError(SdxError):
    """Raised when the invocation ledger cannot append an event."""


__all__ = [
    "CommandFailed",
    "InterceptedExit",
    "InterceptorStateError",
    "LedgerError",
    "MountError",
    "PluginSignatureError",
    "ResourceReconciliationError",
    "SdxError",
    "UnknownCommandError",
]
