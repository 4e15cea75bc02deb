"""Dispatch plugin scripts as isolated sub-commands and normalize their outcome."""

from __future__ import annotations

import contextlib
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from sdx.channels import CHANNELS, ChannelTable
from sdx.config import DEFAULT_HOST_ID, SdxConfig
from sdx.errors import CommandFailed, InterceptedExit, LedgerError, UnknownCommandError
from sdx.exit_intercept import ExitInterceptor, normalize_exit_code
from sdx.ledger import InvocationLedger
from sdx.output import OUTPUT, OutputBuffer, OutputInterceptor
from sdx.registry import CommandRegistry, ScriptUnit
from sdx.resources import ReconcileReport, ResourceReconciler
from sdx.scope import SandboxScopeManager
from sdx.signature import PluginSignatureVerifier
from sdx.vfs import MOUNTS, MountTable

logger = logging.getLogger("sdx.dispatcher")


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EXIT = "exit"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    """Normalized result of one sub-command invocation.

    ``text`` always holds the trimmed console output of the script. For a
    nonzero exit it is preceded by an ``"<host> exit code <n>"`` line, for an
    error by the error message.
    """

    kind: OutcomeKind
    command: str
    text: str
    exit_code: Optional[int] = None
    message: Optional[str] = None
    duration_ms: float = field(default=0.0, compare=False)
    reconciled: Optional[ReconcileReport] = field(default=None, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        if self.kind is OutcomeKind.SUCCESS:
            return True
        return self.kind is OutcomeKind.EXIT and self.exit_code == 0


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Dispatcher:
    """Run registered plugin scripts as if they were built-in commands.

    Each invocation captures console output, converts termination requests
    into an :class:`Outcome`, runs the script in a throwaway namespace, and
    afterwards restores the working directory and releases any channel or
    mount the script left open. Invocations must not run concurrently; a
    script may invoke further sub-commands, which nest.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        host_id: str = DEFAULT_HOST_ID,
        ledger: Optional[InvocationLedger] = None,
        buffer: OutputBuffer = OUTPUT,
        channels: ChannelTable = CHANNELS,
        mounts: MountTable = MOUNTS,
    ) -> None:
        self._registry = registry
        self._host_id = host_id
        self._ledger = ledger
        self._buffer = buffer
        self._output = OutputInterceptor(buffer)
        self._exit = ExitInterceptor(buffer)
        self._resources = ResourceReconciler(channels, mounts)
        self._scopes = SandboxScopeManager(channels)

    @classmethod
    def from_config(cls, config: SdxConfig) -> "Dispatcher":
        verifier = None
        if config.trusted_keys_path is not None:
            verifier = PluginSignatureVerifier.from_file(config.trusted_keys_path)
        registry = CommandRegistry()
        if config.plugin_dir is not None:
            registry = CommandRegistry.from_directory(
                config.plugin_dir,
                reserved=config.reserved,
                verifier=verifier,
            )
        ledger = InvocationLedger(config.ledger_path) if config.ledger_path is not None else None
        return cls(registry, host_id=config.host_id, ledger=ledger)

    # ------------------------------------------------------------------
    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def host_id(self) -> str:
        return self._host_id

    def names(self) -> List[str]:
        return self._registry.names()

    def resolve(self, command: str) -> ScriptUnit:
        unit = self._registry.get(command)
        if unit is None:
            raise UnknownCommandError(command, self._registry.names())
        unit.check()
        return unit

    # ------------------------------------------------------------------
    @contextlib.contextmanager
    def _intercepted(self) -> Iterator[None]:
        output_token = self._output.install()
        try:
            exit_token = self._exit.install()
            try:
                yield
            finally:
                self._exit.remove(exit_token)
        finally:
            self._output.remove(output_token)

    def _record(
        self, write: Callable[[InvocationLedger], Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        if self._ledger is None:
            return None
        try:
            return write(self._ledger)
        except LedgerError as exc:
            logger.error("Failed to record invocation: %s", exc)
            return None

    def run(self, command: str, args: Sequence[str] = ()) -> Outcome:
        """Invoke *command* with *args* and return its :class:`Outcome`.

        Raises :class:`UnknownCommandError` before any side effect when the
        command is not registered.
        """

        unit = self.resolve(command)
        argv = [str(arg) for arg in args]
        enclosing = self._buffer.take()
        start = self._record(lambda ledger: ledger.record_start(command, argv, unit.describe()))

        started = time.perf_counter()
        before = self._resources.snapshot()
        cwd = os.getcwd()
        kind = OutcomeKind.SUCCESS
        exit_code: Optional[int] = None
        message: Optional[str] = None
        report = ReconcileReport()
        captured = ""
        try:
            with self._intercepted():
                try:
                    self._scopes.run(unit, command, argv)
                except InterceptedExit as exc:
                    kind, exit_code = OutcomeKind.EXIT, exc.exit_code
                except SystemExit as exc:
                    kind, exit_code = OutcomeKind.EXIT, normalize_exit_code(exc.code, self._buffer)
                except Exception as exc:
                    kind, message = OutcomeKind.ERROR, _error_message(exc)
                    logger.debug("Command %s raised %s", command, type(exc).__name__, exc_info=True)
        finally:
            try:
                os.chdir(cwd)
            finally:
                report = self._resources.reconcile(before)
                captured = self._buffer.take().strip()
                self._buffer.append(enclosing)

        if kind is OutcomeKind.EXIT and exit_code:
            text = f"{self._host_id} exit code {exit_code}\n{captured}".strip()
        elif kind is OutcomeKind.ERROR:
            text = f"{message}\n{captured}".strip()
        else:
            text = captured
        duration_ms = (time.perf_counter() - started) * 1000.0

        outcome = Outcome(
            kind=kind,
            command=command,
            text=text,
            exit_code=exit_code,
            message=message,
            duration_ms=duration_ms,
            reconciled=report,
        )
        if report.released or report.failures:
            logger.info(
                "Command %s leaked %d resource(s); %d could not be released",
                command,
                report.released + len(report.failures),
                len(report.failures),
            )
        self._record(
            lambda ledger: ledger.record_complete(
                command,
                outcome=kind.value,
                exit_code=exit_code,
                succeeded=outcome.succeeded,
                text_len=len(text),
                duration_ms=duration_ms,
                reconciled=report.to_dict(),
                start=start,
            )
        )
        return outcome

    def execute(self, command: str, args: Sequence[str] = ()) -> str:
        """Invoke *command* and return its text, raising :class:`CommandFailed` on failure."""

        outcome = self.run(command, args)
        if outcome.succeeded:
            return outcome.text
        raise CommandFailed(outcome)

    # ------------------------------------------------------------------
    def alias(self, command: str) -> Callable[..., str]:
        if command not in self._registry:
            raise UnknownCommandError(command, self._registry.names())

        def invoke(*args: str) -> str:
            return self.execute(command, args)

        invoke.__name__ = command
        invoke.__qualname__ = f"{type(self).__name__}.{command}"
        return invoke

    def aliases(self) -> Dict[str, Callable[..., str]]:
        return {name: self.alias(name) for name in self._registry.names()}


__all__ = ["Dispatcher", "Outcome", "OutcomeKind"]
