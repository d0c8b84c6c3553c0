# rocsift

Tools and a small library for looking at what an AMD GPU is doing. Everything
is read from the kernel's KFD and DRM interfaces in sysfs and debugfs.

What it offers:

- Parsing of the PM4 runlist dump that the KFD debugfs exposes (`rls`),
  including the bodies of `MAP_PROCESS` and `MAP_QUEUES` packets.
- Discovery of KFD topology nodes and their properties, and of the
  processes that currently hold a KFD context.
- Discovery of DRM nodes, their card and render devices, VRAM size and
  XGMI hive membership.

Most of this needs root, since debugfs is not readable by ordinary users.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

`rocsift-dumprls` prints every runlist the KFD currently holds, one node at a
time (`Node <id> GPU_ID <hex> <n> entries`), then one line per packet, and
decodes the main fields of each `MAP_PROCESS` packet. It exits with `-1` when
no runlist can be read.

```
sudo rocsift-dumprls
```

`rocsift-pskfd` lists the processes using the KFD, with their PID, PASID and
command line read from `/proc/<pid>/cmdline`:

```
sudo rocsift-pskfd
```

`rocsift-tools` finds executable files without an extension in a directory
and starts one by name, replacing its own process. The directory is taken
from the `ROCSIFT_TOOLS_PATH` environment variable when that names an existing
directory, and otherwise is `/usr/lib/rocsift-tools`. With no argument it
prints a short usage text.

```
rocsift-tools list
rocsift-tools <tool> [arguments...]
```

## Library use

Parsing a runlist dump that has already been read:

```python
from rocsift.rls_parser import parse_runlist, parse_runlists

with open("rls.txt") as f:
    text = f.read()

every_node = parse_runlists(text)            # one Runlist per node in the dump
one_node = parse_runlist(1, 0x1576, text)    # only node 1 with that GPU id
```

`get_runlist(node, gpu, path)` and `get_runlists(path)` do the same from a
file path. A `Runlist` carries a `node` (`node_id`, `gpu_id`) and a tuple of
`RunlistEntry` objects, each with a `header` (`opcode`, `count`, `type`) and a
decoded `body`. For step-by-step control there is `RlsParser`, whose
`parse()` returns the entries of the next matching runlist or `None`.

The lower-level pieces live in `rocsift.pm4`: `parse_node_line`,
`get_data_start_position`, `parse_data_section`, `parse_runlist_entry`,
`parse_runlist_entries`, `parse_body_map_process` and
`parse_body_map_queues`. Malformed input raises `Pm4Error`; packets other
than `MAP_PROCESS` and `MAP_QUEUES` are not decoded and also raise it.

Reading the live system:

```python
from rocsift.kfd import KFDHandle
from rocsift.drm import DRM

kfd = KFDHandle()
for node in kfd.nodes:
    print(node.instance, hex(node.gpu_id), node.properties.device_id)
for proc in kfd.processes():
    print(proc)

drm = DRM()
card = drm.node_by_name("card0")
if card is not None:
    print(card.total_vram_bytes(), card.xgmi.hive_id)
```

`KFDHandle.debugfs()` returns a `KFDDebugFS` with `runlists()`, `mqds()` and
`hqds()`, and raises `NotPrivilegedError` when the KFD debugfs directory
cannot be reached. Both `KFDHandle` and `DRM` accept other root directories,
which makes them usable on a copied sysfs tree.

Node properties come from `parse_kfd_properties`. Setting
`ROCSIFT_DEVID_OVERRIDE` replaces the reported device id for a PCI location,
as a comma-separated list such as `0.83:00.0->0x1234,0.03:00.0->0x5678`; a
malformed value raises `DevIdOverrideError`.

## What it does not do

The package only reads what the kernel publishes in sysfs and debugfs. It
does not read or write GPU registers, read GPU or system memory, translate
virtual to physical addresses, or enumerate devices and partitions beyond
the KFD and DRM nodes described above. `rocsift-tools` starts whatever
tools are installed in its directory; it does not provide such tools itself.