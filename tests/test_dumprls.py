import pytest

from rocsift.dumprls import format_entry, format_runlists, main, opcode_name
from rocsift.pm4 import Header, Opcode, PacketType, RunlistEntry, parse_runlist_entries
from rocsift.rls_parser import parse_runlists

DATA = [
    0xC013A100, 0x14008000, 0x41875003, 0x00000001, 0x00010002, 0x00001118, 0x00000020,
    0x00000000, 0x00000030, 0x00000000, 0x00000000, 0x00000000, 0x00000000, 0x00800080,
    0x00000008, 0x00000000, 0x00000000, 0x00000000, 0x00000000, 0x00000000, 0x00000000,
    0xC005A200, 0x28000010, 0x00008800, 0x0171A000, 0x00000000, 0x0CE9C008, 0x00007F4C,
    0xC005A200, 0x20000010, 0x00008000, 0x0173B000, 0x00000000, 0x0CF32038, 0x00007F4C,
]

RLS_TEXT = """Node 1, gpu_id 1576:
  00000000: c013a100 14008000 41875003 00000001 00010002 00001118 00000020 00000000
  00000020: 00000030 00000000 00000000 00000000 00000000 00800080 00000008 00000000
  00000040: 00000000 00000000 00000000 00000000 00000000 c005a200 28000010 00008800
  00000060: 0171a000 00000000 0ce9c008 00007f4c c005a200 20000010 00008000 0173b000
  00000080: 00000000 0cf32038 00007f4c
"""


@pytest.fixture
def entries():
    return parse_runlist_entries(DATA)


def test_opcode_name_known():
    assert opcode_name(Opcode.MAP_PROCESS) == "MAP_PROCESS"
    assert opcode_name(Opcode.MAP_QUEUES) == "MAP_QUEUES"


def test_opcode_name_unknown():
    assert opcode_name(0x01) == "UNKONWN"


@pytest.mark.parametrize("opcode", list(Opcode))
def test_opcode_name_matches_enum(opcode):
    assert opcode_name(int(opcode)) == opcode.name


def test_format_map_process(entries):
    lines = format_entry(entries[0])
    assert lines[0] == "TYPE3: MAP_PROCESS"
    assert "\t pasid 0x8000" in lines
    assert "\t process_quantum 10" in lines
    assert "\t pt_base_addr_lo32 0x41875003" in lines
    assert "\t pt_base_addr_hi32 0x1" in lines
    assert "\t sdma_enable 1" in lines
    assert len(lines) == 11


def test_format_map_queues(entries):
    assert format_entry(entries[1]) == ["TYPE3: MAP_QUEUES"]


@pytest.mark.parametrize(
    "packet_type, expected",
    [(PacketType.TYPE1, "TYPE1: SKIPPING"), (PacketType.TYPE2, "TYPE2: SKIPPING")],
)
def test_format_skipped_types(entries, packet_type, expected):
    entry = RunlistEntry(
        header=Header(opcode=Opcode.MAP_QUEUES, count=6, type=packet_type),
        body=entries[1].body,
    )
    assert format_entry(entry) == [expected]


def test_format_runlists():
    runlists = parse_runlists(RLS_TEXT)
    lines = format_runlists(runlists)
    assert lines[0] == "Node 1 GPU_ID 1576 3 entries"
    assert lines[1] == "TYPE3: MAP_PROCESS"
    assert lines.count("TYPE3: MAP_QUEUES") == 2


def test_format_runlists_empty():
    assert format_runlists([]) == []


def test_main_rejects_unknown_option():
    with pytest.raises(SystemExit) as exc:
        main(["--bogus"])
    assert exc.value.code == 2