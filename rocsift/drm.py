"""DRM device nodes from sysfs and their XGMI hive membership."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import ClassVar

logger = logging.getLogger(__name__)

DEFAULT_DRM_ROOT = "/sys/class/drm"

_ULLONG_MAX = 0xFFFFFFFFFFFFFFFF
_LEADING_UINT = re.compile(r"\s*([+-]?)(\d+)", re.ASCII)


def _strtoull(text: str) -> int:
    """Leading unsigned decimal value of ``text``; 0 if there is none."""
    match = _LEADING_UINT.match(text)
    if match is None:
        return 0
    value = int(match.group(2))
    if value > _ULLONG_MAX:
        return _ULLONG_MAX
    if match.group(1) == "-":
        value = (-value) & _ULLONG_MAX
    return value


def _read_uint(path: Path) -> int:
    try:
        return _strtoull(path.read_text())
    except OSError:
        return 0


@dataclass
class XGMIInfo:
    """XGMI hive membership of a DRM node."""

    hive_id: int = 0
    device_id: int = 0
    physical_id: int = 0
    nodes: list[DRMNode] = field(default_factory=list)


class DRMNode:
    """A DRM device directory and the card and render nodes under it."""

    def __init__(self, drm: DRM, path: str | PathLike[str]):
        self._drm = drm
        self._path = Path(path)
        self._xgmi = XGMIInfo()
        self._card_path: Path | None = None
        self._render_path: Path | None = None
        self._control_path: Path | None = None
        logger.debug("Created DRMNode at path %s with name %s", self._path, self.name)

        drm_path = self._path / "device" / "drm"
        if not drm_path.is_dir():
            drm_path = self._path / "device" / "device" / "drm"
            if not drm_path.is_dir():
                logger.warning("Failed to find DRM subdirectory for Node %s", self.name)
                return

        for entry in sorted(drm_path.iterdir()):
            if not entry.is_dir():
                continue
            name = entry.name
            if self._card_path is None and name.startswith("card"):
                self._card_path = entry
            elif self._render_path is None and name.startswith("render"):
                self._render_path = entry
            elif self._control_path is None and name.startswith("control"):
                self._control_path = entry

    def _init_xgmi_info(self) -> None:
        device = self._path / "device"
        devid_path = device / "xgmi_device_id"
        if not devid_path.exists():
            logger.debug("DRMNode %s is not part of a xgmi hive", self.name)
            return
        self._xgmi.device_id = _read_uint(devid_path)
        logger.debug("DRMNode %s is xgmi_device_id = %d", self.name, self._xgmi.device_id)

        physical_id_path = device / "xgmi_physical_id"
        if not physical_id_path.exists():
            logger.debug("DRMNode %s does not have a xgmi_physical_id_path", self.name)
            return
        self._xgmi.physical_id = _read_uint(physical_id_path)
        logger.debug("DRMNode %s has xgmi_physical_id = %d", self.name, self._xgmi.physical_id)

        hive_info = device / "xgmi_hive_info"
        if not hive_info.exists():
            return
        logger.debug("DRMNode %s is in an XGMI hive", self.name)
        if not hive_info.is_dir():
            logger.warning("DRMNode %s xgmi_hive_info_path not found", self.name)
            return
        hive_id_path = hive_info / "xgmi_hive_id"
        if not hive_id_path.exists():
            logger.warning("DRMNode %s xgmi_hive_id path not found", self.name)
            return
        self._xgmi.hive_id = _read_uint(hive_id_path)
        logger.debug("DRMNode %s is part of hive with ID %d", self.name, self._xgmi.hive_id)

        member_paths = sorted(entry for entry in hive_info.iterdir() if entry.is_dir())
        for member in member_paths:
            matching = self._find_card_node(member)
            if matching is None:
                logger.error("FAILED TO FIND DRM NODE %s", member)
                self._xgmi.nodes = []
                break
            logger.debug("DRMNode %s XGMI topo: %s -> %s", self.name, member.name, matching.name)
            self._xgmi.nodes.append(matching)

        self._xgmi.nodes.sort(key=lambda node: node._xgmi.physical_id)

    def _find_card_node(self, member: Path) -> DRMNode | None:
        for entry in sorted((member / "drm").iterdir()):
            if entry.is_dir() and entry.name.startswith("card"):
                matching = self._drm.node_by_name(entry.name)
                if matching is not None:
                    return matching
        return None

    @property
    def path(self) -> Path:
        """The node's sysfs directory."""
        return self._path

    @property
    def name(self) -> str:
        """Name of the node's sysfs directory."""
        return self._path.name

    @property
    def card_name(self) -> str:
        """Name of the card device, or an empty string if there is none."""
        return self._card_path.name if self._card_path is not None else ""

    @property
    def render_name(self) -> str:
        """Name of the render device, or an empty string if there is none."""
        return self._render_path.name if self._render_path is not None else ""

    @property
    def xgmi(self) -> XGMIInfo:
        """The node's XGMI hive information."""
        return self._xgmi

    def total_vram_bytes(self) -> int:
        """Total VRAM in bytes; 0 when the device does not report it."""
        vram_path = self._path / "device" / "mem_info_vram_total"
        if not vram_path.exists():
            return 0
        return _read_uint(vram_path)

    def __repr__(self) -> str:
        return f"DRMNode(name={self.name!r}, card={self.card_name!r})"


class DRM:
    """All DRM nodes under a sysfs class directory, in name order."""

    _shared: ClassVar[DRM | None] = None

    def __init__(self, root: str | PathLike[str] = DEFAULT_DRM_ROOT):
        self._root = Path(root)
        self._nodes = [
            DRMNode(self, path) for path in sorted(self._root.iterdir()) if path.is_dir()
        ]
        for node in self._nodes:
            node._init_xgmi_info()

    @classmethod
    def instance(cls) -> DRM:
        """The process-wide view of the default DRM class directory."""
        if cls._shared is None:
            cls._shared = cls()
        return cls._shared

    @property
    def root(self) -> Path:
        """The DRM class directory."""
        return self._root

    @property
    def nodes(self) -> list[DRMNode]:
        """All DRM nodes, ordered by name."""
        return self._nodes

    def node_by_name(self, name: str) -> DRMNode | None:
        """The node with the given directory name, or None."""
        return next((node for node in self._nodes if node.name == name), None)