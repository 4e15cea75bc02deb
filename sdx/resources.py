"""Snapshot open channels and mounts, and release whatever an invocation leaked."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

from sdx.channels import CHANNELS, ChannelTable
from sdx.errors import ResourceReconciliationError
from sdx.vfs import MOUNTS, MountTable

logger = logging.getLogger("sdx.resources")


@dataclass(frozen=True)
class ResourceSnapshot:
    """Channels and mount points that were live at a point in time."""

    channels: FrozenSet[str]
    mounts: FrozenSet[str]


@dataclass
class ReconcileReport:
    """Resources released by :meth:`ResourceReconciler.reconcile`."""

    closed_channels: List[str] = field(default_factory=list)
    unmounted: List[str] = field(default_factory=list)
    failures: List[ResourceReconciliationError] = field(default_factory=list)

    @property
    def released(self) -> int:
        return len(self.closed_channels) + len(self.unmounted)

    def to_dict(self) -> Dict[str, object]:
        return {
            "closed_channels": list(self.closed_channels),
            "unmounted": list(self.unmounted),
            "failures": [str(failure) for failure in self.failures],
        }


class ResourceReconciler:
    """Compare live resources against a snapshot and release the difference."""

    def __init__(self, channels: ChannelTable = CHANNELS, mounts: MountTable = MOUNTS) -> None:
        self._channels = channels
        self._mounts = mounts

    def snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            channels=frozenset(self._channels.names()),
            mounts=frozenset(self._mounts.info()),
        )

    def reconcile(self, before: ResourceSnapshot) -> ReconcileReport:
        """Close leaked channels and unmount leaked filesystems.

        Never raises: a resource that cannot be released is logged and
        recorded in the report, and the remaining resources are still
        processed.
        """

        report = ReconcileReport()
        for name in self._channels.names():
            if name in before.channels:
                continue
            try:
                self._channels.close(name)
            except Exception as exc:
                failure = ResourceReconciliationError("channel", name, str(exc))
                logger.warning("%s", failure)
                report.failures.append(failure)
            else:
                logger.info("Closed leaked channel %s", name)
                report.closed_channels.append(name)

        for point in self._mounts.info():
            if point in before.mounts:
                continue
            try:
                self._mounts.unmount(point)
            except Exception as exc:
                failure = ResourceReconciliationError("mount", point, str(exc))
                logger.warning("%s", failure)
                report.failures.append(failure)
            else:
                logger.info("Unmounted leaked filesystem %s", point)
                report.unmounted.append(point)
        return report


__all__ = ["ReconcileReport", "ResourceReconciler", "ResourceSnapshot"]
