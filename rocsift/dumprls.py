"""Print the runlists that KFD currently has active."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterable

from rocsift.kfd import KFDHandle
from rocsift.pm4 import MapProcessBody, Opcode, PacketType, Pm4Error, RunlistEntry
from rocsift.rls_parser import Runlist, parse_runlists

_UNKNOWN_OPCODE = "UNKONWN"


def opcode_name(op: int) -> str:
    """Name of a PM4 opcode, or ``UNKONWN`` for one that is not known."""
    try:
        return Opcode(op).name
    except ValueError:
        return _UNKNOWN_OPCODE


def _format_map_process(body: MapProcessBody) -> list[str]:
    return [
        f"\t single_memop {body.single_memop}",
        f"\t debug_flag {body.debug_flag}",
        f"\t tmz {body.tmz}",
        f"\t diq_enable {body.diq_enable}",
        f"\t sdma_enable {body.sdma_enable}",
        f"\t pasid 0x{body.pasid:x}",
        f"\t debug_vmid {body.debug_vmid}",
        f"\t process_quantum {body.process_quantum}",
        f"\t pt_base_addr_lo32 0x{body.vm_context_page_table_base_addr_lo32:x}",
        f"\t pt_base_addr_hi32 0x{body.vm_context_page_table_base_addr_hi32:x}",
    ]


def format_entry(entry: RunlistEntry) -> list[str]:
    """Lines describing one runlist entry."""
    packet_type = entry.header.type
    if packet_type is PacketType.TYPE1:
        return ["TYPE1: SKIPPING"]
    if packet_type is PacketType.TYPE2:
        return ["TYPE2: SKIPPING"]
    lines = [f"TYPE3: {opcode_name(entry.header.opcode)}"]
    if entry.header.opcode == Opcode.MAP_PROCESS and isinstance(entry.body, MapProcessBody):
        lines.extend(_format_map_process(entry.body))
    return lines


def format_runlists(runlists: Iterable[Runlist]) -> list[str]:
    """Lines describing every runlist and its entries."""
    lines = []
    for runlist in runlists:
        lines.append(
            f"Node {runlist.node.node_id} GPU_ID {runlist.node.gpu_id:x} "
            f"{len(runlist.entries)} entries"
        )
        for entry in runlist.entries:
            lines.extend(format_entry(entry))
    return lines


def main(argv: list[str] | None = None) -> int:
    """Dump the active runlists of every GPU node."""
    parser = argparse.ArgumentParser(prog="dumprls", description="Dump active KFD runlists")
    parser.parse_args(argv)

    try:
        kfd = KFDHandle()
    except (OSError, ValueError):
        print("Failed to initialize sift", file=sys.stderr)
        return -1

    try:
        runlists = parse_runlists(kfd.debugfs().runlists())
    except (OSError, Pm4Error):
        runlists = []
    if not runlists:
        print(
            "Failed to get runlists (are any active?), please make sure you are running as root!",
            file=sys.stderr,
        )
        return -1

    for line in format_runlists(runlists):
        print(line)
    return 0