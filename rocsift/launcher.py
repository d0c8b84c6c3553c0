"""Front end that lists the installed rocsift tools and starts one of them."""

from __future__ import annotations

import os
import stat
import sys
from os import PathLike
from pathlib import Path

DEFAULT_TOOLS_PATH = Path("/usr/lib/rocsift-tools")
TOOLS_PATH_ENV = "ROCSIFT_TOOLS_PATH"
_SELF_NAME = "rocsift-tools"
_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

_HELP = """Usage: rocsift-tools [subcommand] [args...]

Positionals:
  subcommand TEXT  'list' to list the name of available tools, or tool name"""


def is_tool(path: str | PathLike[str]) -> bool:
    """Whether ``path`` is an executable file without extension other than the launcher."""
    path = Path(path)
    try:
        mode = path.stat().st_mode
    except OSError:
        return False
    return (
        stat.S_ISREG(mode)
        and path.suffix == ""
        and bool(mode & _EXEC_BITS)
        and path.name != _SELF_NAME
    )


def get_tools_path() -> Path:
    """Tools directory from the environment, or the default one if that is unusable."""
    value = os.environ.get(TOOLS_PATH_ENV, "")
    if value and Path(value).is_dir():
        return Path(value)
    return DEFAULT_TOOLS_PATH


def find_tools(path: str | PathLike[str]) -> dict[str, Path]:
    """Tools in ``path`` by name, in name order; empty if the directory is missing."""
    path = Path(path)
    try:
        entries = list(path.iterdir())
    except OSError:
        print(f'ERROR: rocsift-tools directory path "{path}" does not exist', file=sys.stderr)
        return {}
    return {entry.name: entry for entry in sorted(entries) if is_tool(entry)}


def main(argv: list[str] | None = None) -> int:
    """List the tools, or replace this process with the named tool."""
    args = list(sys.argv[1:] if argv is None else argv)
    path = get_tools_path()
    tools = find_tools(path)

    if not args or not args[0]:
        print(_HELP)
        return 0
    tool, tool_args = args[0], args[1:]

    if tool == "list":
        for name in tools:
            print(name)
        sys.stdout.flush()
        return 0

    if tool not in tools:
        print(f'ERROR: rocsift-tools {tool} not found in "{path}"', file=sys.stderr)
        return 1

    tool_path = tools[tool]
    sys.stdout.flush()
    try:
        os.execv(str(tool_path), [tool_path.name, *tool_args])
    except OSError as exc:
        print(f"ERROR: execv(...) failed: {exc.strerror or exc}", file=sys.stderr)
    return 1