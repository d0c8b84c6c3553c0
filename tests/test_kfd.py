from pathlib import Path

import pytest

from rocsift.kfd import KFDDebugFS, KFDHandle, KFDProc, NotPrivilegedError


@pytest.fixture(autouse=True)
def _no_override(monkeypatch):
    monkeypatch.delenv("ROCSIFT_DEVID_OVERRIDE", raising=False)


def _make_node(nodes_dir: Path, instance: int, gpu_id: int) -> None:
    node = nodes_dir / str(instance)
    node.mkdir(parents=True)
    (node / "gpu_id").write_text(f"{gpu_id}\n")
    (node / "properties").write_text(f"vendor_id 4098\ndevice_id {gpu_id}\n")


def _make_proc(proc_dir: Path, pid: int, pasid: int) -> None:
    path = proc_dir / str(pid)
    path.mkdir(parents=True)
    (path / "pasid").write_text(f"{pasid}\n")


@pytest.fixture
def kfd_root(tmp_path):
    root = tmp_path / "kfd_class"
    nodes = root / "kfd" / "topology" / "nodes"
    _make_node(nodes, 2, 5494)
    _make_node(nodes, 0, 0)
    _make_node(nodes, 1, 51687)
    proc = root / "kfd" / "proc"
    _make_proc(proc, 4321, 32769)
    _make_proc(proc, 1234, 32768)
    (proc / "stray_file").write_text("x")
    return root


@pytest.fixture
def debugfs_root(tmp_path):
    root = tmp_path / "debugfs"
    root.mkdir()
    (root / "rls").write_text("Node 1, gpu_id 1576:\n")
    (root / "mqds").write_text("mqd text\n")
    (root / "hdqs").write_text("hqd text\n")
    return root


def test_debugfs_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        KFDDebugFS(tmp_path / "missing")


def test_debugfs_reads_files(debugfs_root):
    debugfs = KFDDebugFS(debugfs_root)
    assert debugfs.runlists() == "Node 1, gpu_id 1576:\n"
    assert debugfs.mqds() == "mqd text\n"
    assert debugfs.hqds() == "hqd text\n"


def test_debugfs_missing_file_is_empty(tmp_path):
    root = tmp_path / "empty"
    root.mkdir()
    debugfs = KFDDebugFS(root)
    assert debugfs.runlists() == ""
    assert debugfs.mqds() == ""


def test_nodes_sorted_by_instance(kfd_root, debugfs_root):
    handle = KFDHandle(kfd_root, debugfs_root)
    assert [node.instance for node in handle.nodes] == [0, 1, 2]
    assert [node.gpu_id for node in handle.nodes] == [0, 51687, 5494]
    assert handle.nodes[2].properties.device_id == 5494


def test_root_property(kfd_root, debugfs_root):
    handle = KFDHandle(kfd_root, debugfs_root)
    assert handle.root == kfd_root


def test_processes_only_directories(kfd_root, debugfs_root):
    handle = KFDHandle(kfd_root, debugfs_root)
    procs = handle.processes()
    assert [(p.pid, p.pasid) for p in procs] == [(1234, 32768), (4321, 32769)]


def test_proc_without_pasid_raises(kfd_root, debugfs_root):
    handle = KFDHandle(kfd_root, debugfs_root)
    (kfd_root / "kfd" / "proc" / "77").mkdir()
    with pytest.raises(ValueError):
        KFDProc(handle, 77)


def test_debugfs_available(kfd_root, debugfs_root):
    handle = KFDHandle(kfd_root, debugfs_root)
    assert handle.debugfs().runlists() == "Node 1, gpu_id 1576:\n"


def test_debugfs_not_privileged(kfd_root, tmp_path):
    handle = KFDHandle(kfd_root, tmp_path / "no_debugfs")
    assert len(handle.nodes) == 3
    with pytest.raises(NotPrivilegedError):
        handle.debugfs()


def test_missing_topology_raises(tmp_path, debugfs_root):
    with pytest.raises(FileNotFoundError):
        KFDHandle(tmp_path / "nothing", debugfs_root)