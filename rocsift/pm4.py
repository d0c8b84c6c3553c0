"""Parsing of PM4 runlist text dumps and packet data."""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)

_NODE_FORMAT = re.compile(r"\s*Node (\d+), gpu_id ([a-fA-F0-9]+):\s*")
_DATA_FORMAT = re.compile(r"[a-fA-F0-9]{8}")
_DATA_START_FORMAT = re.compile(r"(^\s*[a-fA-F0-9]{8}:).*")

_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF


class Pm4Error(ValueError):
    """Raised when PM4 text or packet data cannot be parsed."""


class PacketType(enum.IntEnum):
    """PM4 packet type; the header stores the type number plus one."""

    TYPE1 = 0
    TYPE2 = 1
    TYPE3 = 2


class Opcode(enum.IntEnum):
    """PM4 type-3 packet opcodes."""

    NOP = 0x10
    SET_BASE = 0x11
    CLEAR_STATE = 0x12
    INDEX_BUFFER_SIZE = 0x13
    DISPATCH_DIRECT = 0x15
    DISPATCH_INDIRECT = 0x16
    ATOMIC_GDS = 0x1D
    OCCLUSION_QUERY = 0x1F
    SET_PREDICATION = 0x20
    REG_RMW = 0x21
    COND_EXEC = 0x22
    PRED_EXEC = 0x23
    DRAW_INDIRECT = 0x24
    DRAW_INDEX_INDIRECT = 0x25
    INDEX_BASE = 0x26
    DRAW_INDEX_2 = 0x27
    CONTEXT_CONTROL = 0x28
    INDEX_TYPE = 0x2A
    DRAW_INDIRECT_MULTI = 0x2C
    DRAW_INDEX_AUTO = 0x2D
    NUM_INSTANCES = 0x2F
    DRAW_INDEX_MULTI_AUTO = 0x30
    INDIRECT_BUFFER_CNST = 0x33
    STRMOUT_BUFFER_UPDATE = 0x34
    DRAW_INDEX_OFFSET_2 = 0x35
    DRAW_PREAMBLE = 0x36
    WRITE_DATA = 0x37
    DRAW_INDEX_INDIRECT_MULTI = 0x38
    MEM_SEMAPHORE = 0x39
    COPY_DW = 0x3B
    WAIT_REG_MEM = 0x3C
    INDIRECT_BUFFER = 0x3F
    COPY_DATA = 0x40
    PFP_SYNC_ME = 0x42
    SURFACE_SYNC = 0x43
    COND_WRITE = 0x45
    EVENT_WRITE = 0x46
    EVENT_WRITE_EOP = 0x47
    EVENT_WRITE_EOS = 0x48
    RELEASE_MEM = 0x49
    PREAMBLE_CNTL = 0x4A
    DMA_DATA = 0x50
    ACQUIRE_MEM = 0x58
    REWIND = 0x59
    LOAD_UCONFIG_REG = 0x5E
    LOAD_SH_REG = 0x5F
    LOAD_CONFIG_REG = 0x60
    LOAD_CONTEXT_REG = 0x61
    SET_CONFIG_REG = 0x68
    SET_CONTEXT_REG = 0x69
    SET_CONTEXT_REG_INDIRECT = 0x73
    SET_SH_REG = 0x76
    SET_SH_REG_OFFSET = 0x77
    SET_QUEUE_REG = 0x78
    SET_UCONFIG_REG = 0x79
    SCRATCH_RAM_WRITE = 0x7D
    SCRATCH_RAM_READ = 0x7E
    LOAD_CONST_RAM = 0x80
    WRITE_CONST_RAM = 0x81
    DUMP_CONST_RAM = 0x83
    INCREMENT_CE_COUNTER = 0x84
    INCREMENT_DE_COUNTER = 0x85
    WAIT_ON_CE_COUNTER = 0x86
    WAIT_ON_DE_COUNTER_DIFF = 0x88
    SWITCH_BUFFER = 0x8B
    SET_RESOURCES = 0xA0
    MAP_PROCESS = 0xA1
    MAP_QUEUES = 0xA2
    UNMAP_QUEUES = 0xA3
    QUERY_STATUS = 0xA4
    RUN_LIST = 0xA5


@dataclass(frozen=True)
class Node:
    """A KFD node as named in a runlist dump."""

    node_id: int
    gpu_id: int


@dataclass(frozen=True)
class Header:
    """Decoded PM4 packet header; ``count`` is the body size in dwords."""

    opcode: int
    count: int
    type: PacketType


@dataclass(frozen=True)
class MapProcessBody:
    """Body of a MAP_PROCESS packet."""

    pasid: int
    single_memop: int
    debug_vmid: int
    debug_flag: int
    tmz: int
    diq_enable: int
    process_quantum: int
    vm_context_page_table_base_addr_lo32: int
    vm_context_page_table_base_addr_hi32: int
    sh_mem_bases: int
    sh_mem_config: int
    sq_shader_tba_lo: int
    sq_shader_tba_hi: int
    sq_shader_tma_lo: int
    sq_shader_tma_hi: int
    gds_addr_lo: int
    gds_addr_hi: int
    num_gws: int
    sdma_enable: int
    num_oac: int
    gds_size_hi: int
    gds_size_lo: int
    num_queues: int
    spi_gdbg_per_vmid_cntl: int
    tcp_watch0_cntl: int
    tcp_watch1_cntl: int
    tcp_watch2_cntl: int
    tcp_watch3_cntl: int
    completion_signal_lo32: int
    completion_signal_hi32: int


@dataclass(frozen=True)
class MapQueuesBody:
    """Body of a MAP_QUEUES packet."""

    extended_engine_sel: int
    queue_sel: int
    vmid: int
    gws_enabled: int
    queue: int
    queue_type: int
    static_queue_group: int
    engine_sel: int
    num_queues: int
    check_disable: int
    doorbell_offset: int
    mqd_addr_lo: int
    mqd_addr_hi: int
    wptr_addr_lo: int
    wptr_addr_hi: int


Body = Union[MapProcessBody, MapQueuesBody]


@dataclass(frozen=True)
class RunlistEntry:
    """One PM4 packet of a runlist: its header and decoded body."""

    header: Header
    body: Body


def _slice(value: int, msb: int, lsb: int) -> int:
    """Bits ``msb`` down to ``lsb`` of ``value``, inclusive."""
    mask = (1 << (msb + 1)) - 1
    return (value & mask) >> lsb


def _body_slice(body_data: Sequence[int], index: int, msb: int, lsb: int) -> int:
    # Dword indices follow the CP packet table, where the body starts at dword 2.
    return _slice(body_data[index - 2], msb, lsb)


def parse_node_line(node_line: str) -> Node | None:
    """Return the node named by a ``Node N, gpu_id X:`` line, or None if it is not one."""
    match = _NODE_FORMAT.fullmatch(node_line)
    if match is None:
        return None
    node_id = int(match.group(1))
    gpu_id = int(match.group(2), 16)
    if node_id > _U64 or gpu_id > _U64:
        logger.error("Error parsing node line: %s", node_line)
        raise Pm4Error(f"node line value out of range: {node_line!r}")
    return Node(node_id=node_id & _U32, gpu_id=gpu_id & _U32)


def get_data_start_position(address_line: str) -> int | None:
    """Return where the data follows the ``address:`` prefix, or None if there is none."""
    match = _DATA_START_FORMAT.fullmatch(address_line)
    if match is None:
        return None
    return len(match.group(1))


def parse_data_section(data_section: str) -> list[int]:
    """Return every 8-digit hex dword in ``data_section``."""
    return [int(word, 16) for word in _DATA_FORMAT.findall(data_section)]


def _require_length(body_data: Sequence[int], length: int, name: str) -> None:
    if len(body_data) < length:
        raise Pm4Error(f"{name} body needs {length} dwords, got {len(body_data)}")


def parse_body_map_process(body_data: Sequence[int]) -> MapProcessBody:
    """Decode a MAP_PROCESS body starting at its first dword."""
    _require_length(body_data, 20, "MAP_PROCESS")
    s = lambda index, msb, lsb: _body_slice(body_data, index, msb, lsb)  # noqa: E731
    return MapProcessBody(
        pasid=s(2, 15, 0),
        single_memop=s(2, 16, 16),
        debug_vmid=s(2, 21, 18),
        debug_flag=s(2, 22, 22),
        tmz=s(2, 23, 23),
        diq_enable=s(2, 24, 24),
        process_quantum=s(2, 31, 25),
        vm_context_page_table_base_addr_lo32=s(3, 31, 0),
        vm_context_page_table_base_addr_hi32=s(4, 31, 0),
        sh_mem_bases=s(5, 31, 0),
        sh_mem_config=s(6, 31, 0),
        sq_shader_tba_lo=s(7, 31, 0),
        sq_shader_tba_hi=s(8, 31, 0),
        sq_shader_tma_lo=s(9, 31, 0),
        sq_shader_tma_hi=s(10, 31, 0),
        gds_addr_lo=s(12, 31, 0),
        gds_addr_hi=s(13, 31, 0),
        num_gws=s(14, 6, 0),
        sdma_enable=int(bool(s(14, 7, 0))),
        num_oac=s(14, 11, 8),
        gds_size_hi=s(14, 15, 12),
        gds_size_lo=s(14, 21, 16),
        num_queues=s(14, 31, 22),
        spi_gdbg_per_vmid_cntl=s(15, 31, 0),
        tcp_watch0_cntl=s(16, 31, 0),
        tcp_watch1_cntl=s(17, 31, 0),
        tcp_watch2_cntl=s(18, 31, 0),
        tcp_watch3_cntl=s(19, 31, 0),
        completion_signal_lo32=s(20, 31, 0),
        completion_signal_hi32=s(21, 31, 0),
    )


def parse_body_map_queues(body_data: Sequence[int]) -> MapQueuesBody:
    """Decode a MAP_QUEUES body starting at its first dword."""
    _require_length(body_data, 6, "MAP_QUEUES")
    s = lambda index, msb, lsb: _body_slice(body_data, index, msb, lsb)  # noqa: E731
    return MapQueuesBody(
        extended_engine_sel=s(2, 3, 2),
        queue_sel=s(2, 5, 4),
        vmid=s(2, 11, 8),
        gws_enabled=s(2, 12, 12),
        queue=s(2, 20, 13),
        queue_type=s(2, 23, 21),
        static_queue_group=s(2, 25, 24),
        engine_sel=s(2, 28, 26),
        num_queues=s(2, 31, 29),
        check_disable=s(3, 1, 1),
        doorbell_offset=s(3, 27, 2),
        mqd_addr_lo=s(4, 31, 0),
        mqd_addr_hi=s(5, 31, 0),
        wptr_addr_lo=s(6, 31, 0),
        wptr_addr_hi=s(7, 31, 0),
    )


_BODY_PARSERS = {
    Opcode.MAP_PROCESS: parse_body_map_process,
    Opcode.MAP_QUEUES: parse_body_map_queues,
}


def parse_runlist_entry(data: Sequence[int]) -> RunlistEntry:
    """Decode the packet at the start of ``data`` (header dword followed by body)."""
    if not data:
        logger.error("Parsing runlist entry on empty data")
        raise Pm4Error("cannot parse a runlist entry from empty data")
    header = data[0]
    reserved = _slice(header, 7, 0)
    if reserved != 0:
        logger.error("Header parsing error in RESERVED: %#08x != 0", reserved)
    opcode = _slice(header, 15, 8)
    count = _slice(header, 29, 16) + 1
    type_number = _slice(header, 31, 30) - 1
    if not 0 <= type_number <= 2:
        logger.error("Invalid PM4 packet type in header: %d", type_number)
        raise Pm4Error(f"invalid PM4 packet type in header {header:#010x}")
    if len(data) - 1 < count:
        logger.error("Data is undersized for op %#x", opcode)
        raise Pm4Error(f"data is undersized for op {opcode:#x}")
    parser = _BODY_PARSERS.get(opcode)
    if parser is None:
        logger.warning("Skipping body of unsupported op code: %#08x", opcode)
        raise Pm4Error(f"unsupported op code {opcode:#x}")
    body = parser(data[1:])
    return RunlistEntry(
        header=Header(opcode=Opcode(opcode), count=count, type=PacketType(type_number)),
        body=body,
    )


def parse_runlist_entries(data: Sequence[int]) -> list[RunlistEntry]:
    """Decode every packet in ``data``, which must hold whole packets only."""
    if not data:
        logger.error("Tried to parse empty packet data.")
        raise Pm4Error("cannot parse empty packet data")
    entry_sizes = []
    total = 0
    while total < len(data):
        entry_size = _slice(data[total], 29, 16) + 2
        total += entry_size
        entry_sizes.append(entry_size)
    if total > len(data):
        logger.error(
            "Invalid packet data for parsing. Output packet size and input data size mismatch."
        )
        raise Pm4Error("packet sizes do not match the input data size")

    entries = []
    start = 0
    for entry_size in entry_sizes:
        try:
            entry = parse_runlist_entry(data[start : start + entry_size])
        except Pm4Error as exc:
            logger.error("Failed to parse header: %#08x", data[start])
            raise Pm4Error(f"failed to parse packet with header {data[start]:#010x}") from exc
        if entry.header.type is not PacketType.TYPE3:
            logger.error(
                "Unsupported PM4 Packet: TYPE%d. Only TYPE3 is supported.", int(entry.header.type)
            )
        entries.append(entry)
        start += entry_size
    return entries