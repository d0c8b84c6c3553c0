"""State-machine parser for runlist dumps as written by the KFD debug filesystem."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from itertools import chain
from os import PathLike
from pathlib import Path

from rocsift.pm4 import (
    Node,
    Pm4Error,
    RunlistEntry,
    get_data_start_position,
    parse_data_section,
    parse_node_line,
    parse_runlist_entries,
)

logger = logging.getLogger(__name__)


class ParserState(enum.Enum):
    """State of the runlist parser."""

    NODE = 0
    DATA = 1
    ERROR = 2
    END = 3


@dataclass(frozen=True)
class Runlist:
    """The packets of one node's runlist."""

    node: Node
    entries: tuple[RunlistEntry, ...]


class RlsParser:
    """Extracts runlists, one per call to :meth:`parse`, from a runlist dump.

    Given ``node`` and ``gpu``, only the runlist of that node is matched;
    without them, every node in the text matches in turn.
    """

    def __init__(self, rls_text: str, node: int | None = None, gpu: int | None = None):
        if (node is None) != (gpu is None):
            raise ValueError("node and gpu must be given together")
        self._text = rls_text
        self._find_all_nodes = node is None
        self._node = 0 if node is None else node
        self._gpu = 0 if gpu is None else gpu
        self._state = ParserState.NODE
        self._dwords: list[list[int]] = []
        self._end: int | None = 0

    @property
    def end(self) -> int | None:
        """Position where the next parse resumes, or None once the text is exhausted."""
        return self._end

    @property
    def node(self) -> int:
        """Node id of the last matched runlist (or the requested one)."""
        return self._node

    @property
    def gpu(self) -> int:
        """GPU id of the last matched runlist (or the requested one)."""
        return self._gpu

    def _find_newline(self, start: int | None) -> int | None:
        if start is None:
            return None
        index = self._text.find("\n", start)
        return None if index < 0 else index

    def _parse_node(self, line: str) -> tuple[ParserState, int]:
        try:
            found = parse_node_line(line)
        except Pm4Error:
            return ParserState.ERROR, 0
        if found is None:
            return ParserState.NODE, 1
        if self._find_all_nodes or (found.node_id == self._node and found.gpu_id == self._gpu):
            self._node = found.node_id
            self._gpu = found.gpu_id
            return ParserState.DATA, 1
        return ParserState.NODE, 1

    def _parse_data(self, line: str) -> tuple[ParserState, int]:
        position = get_data_start_position(line)
        if position is None:
            # Either the end of this node's data or no data at all.
            return ParserState.END, 0
        self._dwords.append(parse_data_section(line[position:]))
        return ParserState.DATA, 1

    def _build_entries(self) -> list[RunlistEntry] | None:
        if not self._dwords:
            return None
        dwords = list(chain.from_iterable(self._dwords))
        self._dwords.clear()
        try:
            return parse_runlist_entries(dwords)
        except Pm4Error:
            logger.error("Failed to get entries for Node %d, GPU %#x", self._node, self._gpu)
            logger.error("Runlist data: %s", " ".join(f"0x{dword:08x}" for dword in dwords))
            return None

    def parse(self) -> list[RunlistEntry] | None:
        """Return the entries of the next matching runlist, or None if there is none."""
        start = self._end
        last_data_match = start
        end = self._find_newline(start)
        self._state = ParserState.NODE
        parsed_node = False

        while end is not None and not parsed_node:
            if self._state is ParserState.END:
                parsed_node = True
                # Resume right after the last data line on the next call.
                end = last_data_match
                continue
            if self._state is ParserState.ERROR:
                logger.error(
                    "Failed to parse RLS file contents, runlist format is invalid: %s", self._text
                )
                raise Pm4Error("runlist format is invalid")

            line = self._text[start:end]
            if self._state is ParserState.NODE:
                state, increment = self._parse_node(line)
            else:
                state, increment = self._parse_data(line)
                if state is not ParserState.DATA:
                    last_data_match = start - 1
            self._state = state
            start = end + increment
            end = self._find_newline(start)

        self._end = end
        return self._build_entries()


def parse_runlist(node: int, gpu: int, text: str) -> Runlist:
    """Return the runlist of the given node and GPU found in ``text``."""
    parser = RlsParser(text, node, gpu)
    entries = parser.parse()
    if entries is None:
        raise Pm4Error(f"no valid runlist for node {node}, gpu_id {gpu:#x}")
    return Runlist(node=Node(node_id=node, gpu_id=gpu), entries=tuple(entries))


def parse_runlists(text: str) -> list[Runlist]:
    """Return every runlist in ``text``, in the order they appear."""
    parser = RlsParser(text)
    runlists = []
    while (entries := parser.parse()) is not None:
        runlists.append(
            Runlist(node=Node(node_id=parser.node, gpu_id=parser.gpu), entries=tuple(entries))
        )
    return runlists


def get_runlist(node: int, gpu: int, path: str | PathLike[str]) -> Runlist:
    """Read a runlist dump from ``path`` and return the given node's runlist."""
    text = Path(path).read_text()
    logger.debug("node %d gpu_id %d runlist:\n%s", node, gpu, text)
    return parse_runlist(node, gpu, text)


def get_runlists(path: str | PathLike[str]) -> list[Runlist]:
    """Read a runlist dump from ``path`` and return all of its runlists."""
    text = Path(path).read_text()
    logger.debug("runlist:\n%s", text)
    return parse_runlists(text)