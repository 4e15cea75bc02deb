"""SDX: run plugin scripts as isolated sub-commands of a host program."""

from sdx.dispatcher import Dispatcher, Outcome, OutcomeKind
from sdx.errors import CommandFailed, SdxError, UnknownCommandError
from sdx.registry import CommandRegistry

__version__ = "0.1.0"

__all__ = [
    "CommandFailed",
    "CommandRegistry",
    "Dispatcher",
    "Outcome",
    "OutcomeKind",
    "SdxError",
    "UnknownCommandError",
]
