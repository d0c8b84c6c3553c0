"""KFD topology nodes and the properties the kernel reports for them."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, fields, replace
from os import PathLike
from pathlib import Path

logger = logging.getLogger(__name__)

_ULONG_MAX = 0xFFFFFFFFFFFFFFFF
_U32 = 0xFFFFFFFF
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1

_OVERRIDE_ENV = "ROCSIFT_DEVID_OVERRIDE"
_OVERRIDE_FORMAT = re.compile(
    r"([0-9a-fA-F]+)[.:]([0-9a-fA-F]+):([0-9a-fA-F]+)\.([0-9a-fA-F]+)->(0[xX])?([0-9a-fA-F]+)"
)
_OVERRIDE_HINT = "Please see example: 0.83:00.0->0x753"

_BUS_ID_SHIFT = 0x8
_BUS_ID_MASK = 0xFF
_DEVICE_ID_SHIFT = 0x3
_DEVICE_ID_MASK = 0x1F
_FUNCTION_ID_MASK = 0x7

# Patterns are tried in this order and the first hit wins, so a key that is a
# suffix of another (fw_version in sdma_fw_version) captures that line too.
_PROPERTY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (name, re.compile(pattern, re.ASCII))
    for name, pattern in (
        ("cpu_cores_count", r"cpu_cores_count\s+(\w+)"),
        ("simd_count", r"simd_count\s+(\w+)"),
        ("mem_banks_count", r"mem_banks_count\s+(\w+)"),
        ("caches_count", r"caches_count\s+(\w+)"),
        ("io_links_count", r"io_links_count\s+(\w+)"),
        ("p2p_links_count", r"p2p_links_count\s+(\w+)"),
        ("cpu_core_id_base", r"cpu_core_id_base\s+(\w+)"),
        ("simd_id_base", r"simd_id_base\s+(\w+)"),
        ("max_waves_per_simd", r"max_waves_per_simd\s+(\w+)"),
        ("lds_size_in_kb", r"lds_size_in_kb\s+(\w+)"),
        ("gds_size_in_kb", r"gds_size_in_kb\s+(\w+)"),
        ("num_gws", r"num_gws \s+(\w+)"),
        ("wave_front_size", r"wave_front_size\s+(\w+)"),
        ("array_count", r"array_count\s+(\w+)"),
        ("simd_arrays_per_engine", r"simd_arrays_per_engine\s+(\w+)"),
        ("cu_per_simd_array", r"cu_per_simd_array\s+(\w+)"),
        ("simd_per_cu", r"simd_per_cu\s+(\w+)"),
        ("max_slots_scratch_cu", r"max_slots_scratch_cu\s+(\w+)"),
        ("gfx_target_version", r"gfx_target_version\s+(\w+)"),
        ("vendor_id", r"vendor_id\s+(\w+)"),
        ("device_id", r"device_id\s+(\w+)"),
        ("location_id", r"location_id\s+(\w+)"),
        ("domain_id", r"domain\s+(\w+)"),
        ("drm_render_minor", r"drm_render_minor\s+(\w+)"),
        ("hive_id", r"hive_id\s+(\w+)"),
        ("num_sdma_engines", r"num_sdma_engines\s+(\w+)"),
        ("num_sdma_xgmi_engines", r"num_sdma_xgmi_engines\s+(\w+)"),
        ("num_sdma_queues_per_engine", r"num_sdma_queues_per_engine\s+(\w+)"),
        ("num_cp_queues", r"num_cp_queues\s+(\w+)"),
        ("max_engine_clk_fcompute", r"max_engine_clk_fcompute\s+(\w+)"),
        ("local_mem_size", r"local_mem_size\s+(\w+)"),
        ("fw_version", r"fw_version\s+(\w+)"),
        ("capability", r"capability\s+(\w+)"),
        ("debug_prop", r"debug_prop\s+(\w+)"),
        ("sdma_fw_version", r"sdma_fw_version\s+(\w+)"),
        ("unique_id", r"unique_id\s+(\w+)"),
        ("num_xcc", r"num_xcc\s+(\w+)"),
        ("max_engine_clk_ccompute", r"max_engine_clk_ccompute\s+(\w+)"),
    )
)

_LEADING_DIGITS = re.compile(r"\d+", re.ASCII)
_LEADING_INT = re.compile(r"\s*([+-]?\d+)", re.ASCII)


class DevIdOverrideError(ValueError):
    """Raised when the device-id override variable holds a malformed entry."""


@dataclass(frozen=True)
class NodeProperties:
    """Properties of a KFD node as listed in its ``properties`` file."""

    cpu_cores_count: int = 0
    simd_count: int = 0
    mem_banks_count: int = 0
    caches_count: int = 0
    io_links_count: int = 0
    p2p_links_count: int = 0
    cpu_core_id_base: int = 0
    simd_id_base: int = 0
    max_waves_per_simd: int = 0
    lds_size_in_kb: int = 0
    gds_size_in_kb: int = 0
    num_gws: int = 0
    wave_front_size: int = 0
    array_count: int = 0
    simd_arrays_per_engine: int = 0
    cu_per_simd_array: int = 0
    simd_per_cu: int = 0
    max_slots_scratch_cu: int = 0
    gfx_target_version: int = 0
    vendor_id: int = 0
    device_id: int = 0
    location_id: int = 0
    domain_id: int = 0
    drm_render_minor: int = 0
    hive_id: int = 0
    num_sdma_engines: int = 0
    num_sdma_xgmi_engines: int = 0
    num_sdma_queues_per_engine: int = 0
    num_cp_queues: int = 0
    max_engine_clk_fcompute: int = 0
    local_mem_size: int = 0
    fw_version: int = 0
    capability: int = 0
    debug_prop: int = 0
    sdma_fw_version: int = 0
    unique_id: int = 0
    num_xcc: int = 0
    max_engine_clk_ccompute: int = 0


def _decimal_prefix(text: str) -> int:
    """Value of the leading decimal digits of ``text``; 0 if there are none."""
    match = _LEADING_DIGITS.match(text)
    if match is None:
        return 0
    return min(int(match.group()), _ULONG_MAX)


def _to_int(text: str) -> int:
    """Parse a leading signed decimal integer that must fit in 32 bits."""
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _read_lines(path: Path) -> list[str]:
    try:
        return path.read_text().splitlines()
    except OSError:
        return []


def _override_entries(overrides: str) -> list[str]:
    items = overrides.split(",")
    if items[-1] == "":
        items.pop()
    return items


def _apply_overrides(props: NodeProperties, overrides: str) -> NodeProperties:
    matches = []
    for entry in _override_entries(overrides):
        match = _OVERRIDE_FORMAT.fullmatch(entry)
        if match is None:
            logger.error('Invalid DEVID OVERRIDE provided: "%s" %s', entry, _OVERRIDE_HINT)
            raise DevIdOverrideError(f"invalid device id override {entry!r}")
        matches.append(match)

    location = props.location_id & _U32
    bus_id = (location >> _BUS_ID_SHIFT) & _BUS_ID_MASK
    device_id = (location >> _DEVICE_ID_SHIFT) & _DEVICE_ID_MASK
    function_id = location & _FUNCTION_ID_MASK

    for match in matches:
        values = [int(match.group(i), 16) for i in (1, 2, 3, 4, 6)]
        if any(value > _ULONG_MAX for value in values):
            logger.error('Invalid DEVID OVERRIDE provided: "%s" %s', match.group(0), _OVERRIDE_HINT)
            raise DevIdOverrideError(f"device id override out of range {match.group(0)!r}")
        domain, bus, device, function, new_did = (value & _U32 for value in values)
        if (
            domain == props.domain_id
            and bus == bus_id
            and device == device_id
            and function == function_id
        ):
            logger.info(
                "DEVID Override applied! %04x:%02x:%02x.%01x %08x --> %08x",
                domain,
                bus,
                device,
                function,
                props.device_id,
                new_did,
            )
            props = replace(props, device_id=new_did)
    return props


def parse_kfd_properties(props_file: str | PathLike[str] | None) -> NodeProperties:
    """Read a KFD node ``properties`` file.

    An empty path gives all-zero properties. Afterwards the device id may be
    replaced according to the ``ROCSIFT_DEVID_OVERRIDE`` environment variable,
    a comma-separated list of ``domain:bus:device.function->device_id`` entries.
    """
    if props_file is None or os.fspath(props_file) == "":
        return NodeProperties()

    values: dict[str, int] = {}
    for line in _read_lines(Path(props_file)):
        for name, pattern in _PROPERTY_PATTERNS:
            match = pattern.search(line)
            if match is not None:
                values[name] = _decimal_prefix(match.group(1))
                break
    props = NodeProperties(**values)

    overrides = os.environ.get(_OVERRIDE_ENV)
    if overrides is None:
        return props
    return _apply_overrides(props, overrides)


class KFDNode:
    """A node of the KFD topology, read from its sysfs directory."""

    def __init__(self, kfd_dir: str | PathLike[str] | None = None):
        if kfd_dir is None:
            self._path: Path | None = None
            self._instance = -1
            self._properties = parse_kfd_properties(None)
            self._gpu_id = -1
            return
        path = Path(kfd_dir)
        self._instance = _to_int(path.name)
        self._path = path
        self._properties = parse_kfd_properties(path / "properties")
        self._gpu_id = _to_int((path / "gpu_id").read_text())

    @property
    def path(self) -> Path | None:
        """The node's sysfs directory, or None for a blank node."""
        return self._path

    @property
    def properties(self) -> NodeProperties:
        """The node's parsed properties."""
        return self._properties

    @property
    def instance(self) -> int:
        """The node number; -1 for a blank node."""
        return self._instance

    @property
    def gpu_id(self) -> int:
        """The node's GPU id; -1 for a blank node."""
        return self._gpu_id

    def __repr__(self) -> str:
        return f"KFDNode(instance={self._instance}, gpu_id={self._gpu_id}, path={self._path!r})"

    @staticmethod
    def property_names() -> list[str]:
        """Names of all properties a node carries."""
        return [field.name for field in fields(NodeProperties)]