"""Hash-chained journal of sub-command invocations."""

from __future__ import annotations

import hashlib
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sdx.errors import LedgerError

GENESIS_HASH = "0" * 64

START = "sdx_invocation_start"
COMPLETE = "sdx_invocation_complete"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _chain(previous: str, entry: Mapping[str, Any]) -> str:
    base_json = json.dumps(entry, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256((previous + base_json).encode("utf-8")).hexdigest()


class InvocationLedger:
    """Append-only JSON-lines journal of dispatcher invocations.

    Every invocation produces a ``start`` entry and a ``complete`` entry that
    points back at it. Entries carry a sequence number and a ``chain_hash``
    over the previous entry's hash, so truncation or edits anywhere in the
    file are detected by :meth:`verify`.
    """

    def __init__(self, path: Path, *, read_only: bool = False) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._read_only = read_only
        self._head: Optional[Tuple[int, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def read_only(self) -> bool:
        return self._read_only

    @read_only.setter
    def read_only(self, value: bool) -> None:
        with self._lock:
            self._read_only = bool(value)

    # ------------------------------------------------------------------
    def record_start(
        self,
        command: str,
        args: Sequence[str],
        unit: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return self._append(START, command, {"args": list(args), "unit": dict(unit)})

    def record_complete(
        self,
        command: str,
        *,
        outcome: str,
        exit_code: Optional[int],
        succeeded: bool,
        text_len: int,
        duration_ms: float,
        reconciled: Mapping[str, Any],
        start: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Record how an invocation ended; *start* links it to its start entry."""

        detail = {
            "outcome": outcome,
            "exit_code": exit_code,
            "succeeded": succeeded,
            "text_len": text_len,
            "duration_ms": round(duration_ms, 3),
            "reconciled": dict(reconciled),
            "start_chain_hash": start.get("chain_hash") if start else None,
        }
        return self._append(COMPLETE, command, detail)

    # ------------------------------------------------------------------
    def _load_head(self) -> Tuple[int, str]:
        entries = self.events()
        if not entries:
            return 0, GENESIS_HASH
        last = entries[-1]
        return int(last["sequence"]), str(last["chain_hash"])

    def _append(self, kind: str, command: str, detail: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if self._read_only:
                raise LedgerError(f"invocation ledger {self._path} is read-only")
            if self._head is None:
                self._head = self._load_head()
            sequence, previous = self._head
            entry: Dict[str, Any] = {
                "sequence": sequence + 1,
                "ts": _timestamp(),
                "kind": kind,
                "command": command,
                "detail": detail,
            }
            entry["chain_hash"] = _chain(previous, entry)
            try:
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
            except OSError as exc:
                raise LedgerError(f"cannot append to {self._path}: {exc}") from exc
            self._head = (entry["sequence"], entry["chain_hash"])
            return entry

    def events(self) -> List[Dict[str, Any]]:
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise LedgerError(f"cannot read {self._path}: {exc}") from exc
        entries: List[Dict[str, Any]] = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise LedgerError(f"{self._path}:{number} is not valid JSON") from exc
        return entries

    def verify(self) -> int:
        """Check the whole chain and return the number of entries verified."""

        previous = GENESIS_HASH
        entries = self.events()
        for expected, entry in enumerate(entries, start=1):
            body = {key: value for key, value in entry.items() if key != "chain_hash"}
            if entry.get("sequence") != expected:
                raise LedgerError(f"sequence gap before entry {expected}")
            if entry.get("chain_hash") != _chain(previous, body):
                raise LedgerError(f"chain hash mismatch at entry {expected}")
            previous = entry["chain_hash"]
        return len(entries)


__all__ = ["COMPLETE", "GENESIS_HASH", "InvocationLedger", "START"]
