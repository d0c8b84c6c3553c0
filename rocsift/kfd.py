"""Access to the KFD sysfs topology, its processes and its debug filesystem."""

from __future__ import annotations

import logging
import re
from os import PathLike
from pathlib import Path

from rocsift.kfdnode import KFDNode

logger = logging.getLogger(__name__)

DEFAULT_KFD_ROOT = "/sys/class/kfd"
DEFAULT_DEBUGFS_ROOT = "/sys/kernel/debug/kfd"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)", re.ASCII)
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


class NotPrivilegedError(PermissionError):
    """Raised when the KFD debug filesystem is not available to this process."""


def _read_text(path: Path) -> str:
    """Contents of ``path``, or an empty string if it cannot be read."""
    try:
        return path.read_text()
    except OSError:
        return ""


def _parse_int(text: str) -> int:
    """Parse a leading signed decimal integer that must fit in 32 bits."""
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


class KFDDebugFS:
    """Files of the KFD debug filesystem."""

    def __init__(self, root: str | PathLike[str] = DEFAULT_DEBUGFS_ROOT):
        self._root = Path(root)
        if not self._root.exists():
            logger.error(
                "KFDDebugFS is not accessible or does not exist, root: %s", self._root
            )
            raise FileNotFoundError(f"KFD debugfs not accessible: {self._root}")

    @property
    def root(self) -> Path:
        """Directory of the debug filesystem."""
        return self._root

    def runlists(self) -> str:
        """Text of the runlist dump; empty if it cannot be read."""
        return _read_text(self._root / "rls")

    def mqds(self) -> str:
        """Text of the MQD dump; empty if it cannot be read."""
        return _read_text(self._root / "mqds")

    def hqds(self) -> str:
        """Text of the HQD dump; empty if it cannot be read."""
        return _read_text(self._root / "hdqs")


class KFDProc:
    """A process known to KFD, with its PASID."""

    def __init__(self, kfd: KFDHandle, pid: int):
        self._root = kfd.root / "kfd" / "proc" / str(pid)
        self._pid = pid
        self._pasid = _parse_int(_read_text(self._root / "pasid"))

    @property
    def pid(self) -> int:
        """Process id."""
        return self._pid

    @property
    def pasid(self) -> int:
        """Process address-space id."""
        return self._pasid

    def __repr__(self) -> str:
        return f"KFDProc(pid={self._pid}, pasid={self._pasid})"


class KFDHandle:
    """The KFD topology nodes, processes and debug filesystem."""

    def __init__(
        self,
        root: str | PathLike[str] = DEFAULT_KFD_ROOT,
        debugfs_root: str | PathLike[str] = DEFAULT_DEBUGFS_ROOT,
    ):
        self._root = Path(root)
        topology = self._root / "kfd" / "topology" / "nodes"
        self._nodes = sorted(
            (KFDNode(entry) for entry in topology.iterdir()),
            key=lambda node: node.instance,
        )
        try:
            self._debugfs: KFDDebugFS | None = KFDDebugFS(debugfs_root)
        except OSError as exc:
            logger.error("%s", exc)
            self._debugfs = None

    @property
    def root(self) -> Path:
        """The KFD sysfs class directory."""
        return self._root

    @property
    def nodes(self) -> list[KFDNode]:
        """Topology nodes, ordered by node number."""
        return self._nodes

    def processes(self) -> list[KFDProc]:
        """Processes that currently hold a KFD context."""
        proc_dir = self._root / "kfd" / "proc"
        return [
            KFDProc(self, _parse_int(entry.name))
            for entry in sorted(proc_dir.iterdir())
            if entry.is_dir()
        ]

    def debugfs(self) -> KFDDebugFS:
        """The debug filesystem; raises if it could not be opened."""
        if self._debugfs is None:
            logger.warning("Failed to get debugfs interface -- not privileged")
            raise NotPrivilegedError("KFD debugfs is not available")
        return self._debugfs