"""Read-only virtual filesystems backed by zip archives."""

from __future__ import annotations

import io
import logging
import os
import threading
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import IO, Dict, List, Optional, Tuple, Union

from sdx.channels import CHANNELS, ChannelTable
from sdx.errors import MountError

logger = logging.getLogger("sdx.vfs")

PathLike = Union[str, "os.PathLike[str]"]


def _normalize_mount_point(value: PathLike) -> str:
    return Path(os.path.abspath(os.fspath(value))).as_posix()


@dataclass
class ZipMount:
    """A zip archive exposed under a mount point."""

    mount_point: str
    archive: Path
    archive_file: zipfile.ZipFile
    members: List[IO[bytes]] = field(default_factory=list, repr=False)

    def names(self) -> List[str]:
        return sorted(self.archive_file.namelist())

    def listdir(self, directory: str = "") -> List[str]:
        prefix = directory.strip("/")
        prefix = prefix + "/" if prefix else ""
        entries = set()
        for member in self.archive_file.namelist():
            if not member.startswith(prefix) or member == prefix:
                continue
            entries.add(member[len(prefix):].split("/", 1)[0])
        return sorted(entry for entry in entries if entry)

    def read(self, member: str) -> bytes:
        return self.archive_file.read(member)

    def open(self, member: str) -> IO[bytes]:
        handle = self.archive_file.open(member, "r")
        self.members = [other for other in self.members if not other.closed]
        self.members.append(handle)
        return handle

    def close(self) -> None:
        """Close member handles still open, then the archive itself.

        Open member handles share the archive's file object and keep its
        descriptor alive after ``ZipFile.close``.
        """

        members, self.members = self.members, []
        try:
            for handle in members:
                if not handle.closed:
                    handle.close()
        finally:
            self.archive_file.close()


class MountTable:
    """Process-wide table of mounted virtual filesystems.

    Member handles returned by :meth:`open` are registered in *channels*, so
    a leaked handle is released like any other stream handle.
    """

    def __init__(self, channels: ChannelTable = CHANNELS) -> None:
        self._mounts: Dict[str, ZipMount] = {}
        self._channels = channels
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    def mount(self, archive: PathLike, mount_point: Optional[PathLike] = None) -> str:
        """Mount *archive* read-only and return the normalized mount point."""

        archive_path = Path(os.fspath(archive)).resolve()
        point = _normalize_mount_point(mount_point if mount_point is not None else archive_path)
        with self._lock:
            if point in self._mounts:
                raise MountError(f"{point} is already mounted")
            try:
                archive_file = zipfile.ZipFile(archive_path, "r")
            except (OSError, zipfile.BadZipFile) as exc:
                raise MountError(f"cannot mount {archive_path}: {exc}") from exc
            self._mounts[point] = ZipMount(point, archive_path, archive_file)
        logger.debug("Mounted %s at %s", archive_path, point)
        return point

    def unmount(self, mount_point: PathLike) -> None:
        point = _normalize_mount_point(mount_point)
        with self._lock:
            mount = self._mounts.pop(point, None)
        if mount is None:
            raise MountError(f"{point} is not mounted")
        mount.close()
        logger.debug("Unmounted %s", point)

    def info(self) -> List[str]:
        with self._lock:
            return list(self._mounts)

    def get(self, mount_point: PathLike) -> Optional[ZipMount]:
        with self._lock:
            return self._mounts.get(_normalize_mount_point(mount_point))

    # ------------------------------------------------------------------
    def resolve(self, path: PathLike) -> Tuple[ZipMount, str]:
        """Return the mount containing *path* and the member name inside it."""

        target = _normalize_mount_point(path)
        with self._lock:
            candidates = sorted(self._mounts, key=len, reverse=True)
            for point in candidates:
                if target == point:
                    return self._mounts[point], ""
                if target.startswith(point.rstrip("/") + "/"):
                    member = str(PurePosixPath(target[len(point):].lstrip("/")))
                    return self._mounts[point], member
        raise MountError(f"{target} is not inside a mounted filesystem")

    def listdir(self, path: PathLike) -> List[str]:
        mount, member = self.resolve(path)
        return mount.listdir(member)

    def exists(self, path: PathLike) -> bool:
        try:
            mount, member = self.resolve(path)
        except MountError:
            return False
        if not member:
            return True
        names = mount.archive_file.namelist()
        return member in names or any(name.startswith(member + "/") for name in names)

    def open(self, path: PathLike, mode: str = "r", encoding: str = "utf-8") -> IO:
        if mode not in {"r", "rb"}:
            raise MountError(f"virtual filesystems are read-only (mode {mode!r})")
        mount, member = self.resolve(path)
        if not member:
            raise MountError(f"{path} is a mount point, not a file")
        try:
            handle = mount.open(member)
        except KeyError as exc:
            raise MountError(f"{member} not found in {mount.archive}") from exc
        stream: IO = handle if mode == "rb" else io.TextIOWrapper(handle, encoding=encoding)
        self._channels.register(stream)
        return stream


MOUNTS = MountTable()


def mount(archive: PathLike, mount_point: Optional[PathLike] = None) -> str:
    return MOUNTS.mount(archive, mount_point)


def unmount(mount_point: PathLike) -> None:
    MOUNTS.unmount(mount_point)


__all__ = ["MOUNTS", "MountTable", "ZipMount", "mount", "unmount"]
