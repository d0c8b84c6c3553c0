"""List the processes that hold a KFD context."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterable
from os import PathLike
from pathlib import Path
from typing import Protocol

from rocsift.kfd import KFDHandle

DEFAULT_PROC_ROOT = "/proc"


class _Process(Protocol):
    pid: int
    pasid: int


def get_cmdline(pid: int, proc_root: str | PathLike[str] = DEFAULT_PROC_ROOT) -> str:
    """Command line of ``pid`` with its arguments separated by spaces; empty if unreadable."""
    try:
        raw = (Path(proc_root) / str(pid) / "cmdline").read_bytes()
    except OSError:
        return ""
    args = raw.decode(errors="replace").split("\0")
    if args and args[-1] == "":
        args.pop()
    return " ".join(args)


def format_process_table(
    processes: Iterable[_Process], proc_root: str | PathLike[str] = DEFAULT_PROC_ROOT
) -> list[str]:
    """Lines of a table of PID, PASID and command line, header first."""
    lines = [f"{'PID':>8} {'PASID':>8} CMD"]
    for proc in processes:
        lines.append(f"{proc.pid:>8} {proc.pasid:>8} {get_cmdline(proc.pid, proc_root)}")
    return lines


def main(argv: list[str] | None = None) -> int:
    """Print every process known to KFD."""
    parser = argparse.ArgumentParser(prog="pskfd", description="List KFD processes")
    parser.parse_args(argv)

    try:
        kfd = KFDHandle()
    except (OSError, ValueError):
        print("failed to initialize sift", file=sys.stderr)
        return -1

    try:
        processes = kfd.processes()
    except (OSError, ValueError):
        print("failed to get KFD process list", file=sys.stderr)
        return -1

    for line in format_process_table(processes):
        print(line)
    return 0