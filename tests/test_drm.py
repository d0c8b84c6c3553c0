from pathlib import Path

import pytest

from rocsift.drm import DRM


def _make_card(root: Path, name: str, subdirs=("drm",)) -> Path:
    node = root / name
    drm_dir = node.joinpath("device", *subdirs[:-1], subdirs[-1])
    (drm_dir / name).mkdir(parents=True)
    (drm_dir / "renderD128").mkdir()
    return node


def _join_hive(node: Path, device_id: int, physical_id: int, hive_id: int, members) -> None:
    device = node / "device"
    (device / "xgmi_device_id").write_text(f"{device_id}\n")
    (device / "xgmi_physical_id").write_text(f"{physical_id}\n")
    hive = device / "xgmi_hive_info"
    hive.mkdir()
    (hive / "xgmi_hive_id").write_text(f"{hive_id}\n")
    for index, card in enumerate(members):
        (hive / f"node{index}" / "drm" / card).mkdir(parents=True)


def test_nodes_sorted_and_files_ignored(tmp_path):
    _make_card(tmp_path, "card1")
    _make_card(tmp_path, "card0")
    (tmp_path / "version").write_text("drm 1.1.0\n")
    drm = DRM(tmp_path)
    assert [node.name for node in drm.nodes] == ["card0", "card1"]


def test_card_and_render_names(tmp_path):
    _make_card(tmp_path, "card0")
    node = DRM(tmp_path).node_by_name("card0")
    assert node.card_name == "card0"
    assert node.render_name == "renderD128"


def test_fallback_drm_directory(tmp_path):
    _make_card(tmp_path, "card3", subdirs=("device", "drm"))
    node = DRM(tmp_path).node_by_name("card3")
    assert node.card_name == "card3"


def test_node_without_drm_directory(tmp_path):
    (tmp_path / "card9" / "device").mkdir(parents=True)
    node = DRM(tmp_path).node_by_name("card9")
    assert node.card_name == ""
    assert node.render_name == ""


def test_node_by_name_missing(tmp_path):
    _make_card(tmp_path, "card0")
    assert DRM(tmp_path).node_by_name("card7") is None


def test_total_vram_bytes(tmp_path):
    node_path = _make_card(tmp_path, "card0")
    (node_path / "device" / "mem_info_vram_total").write_text("17163091968\n")
    _make_card(tmp_path, "card1")
    drm = DRM(tmp_path)
    assert drm.node_by_name("card0").total_vram_bytes() == 17163091968
    assert drm.node_by_name("card1").total_vram_bytes() == 0


def test_not_in_hive(tmp_path):
    _make_card(tmp_path, "card0")
    xgmi = DRM(tmp_path).node_by_name("card0").xgmi
    assert (xgmi.hive_id, xgmi.device_id, xgmi.physical_id, xgmi.nodes) == (0, 0, 0, [])


def test_hive_members_sorted_by_physical_id(tmp_path):
    card0 = _make_card(tmp_path, "card0")
    card1 = _make_card(tmp_path, "card1")
    _join_hive(card0, 11, 1, 4242, ["card0", "card1"])
    _join_hive(card1, 22, 0, 4242, ["card0", "card1"])
    drm = DRM(tmp_path)
    first = drm.node_by_name("card0").xgmi
    second = drm.node_by_name("card1").xgmi
    assert first.hive_id == 4242
    assert first.device_id == 11
    assert second.physical_id == 0
    assert [n.name for n in first.nodes] == ["card1", "card0"]
    assert [n.name for n in second.nodes] == ["card1", "card0"]


def test_hive_with_unknown_member_is_cleared(tmp_path):
    card0 = _make_card(tmp_path, "card0")
    _join_hive(card0, 11, 0, 4242, ["card0", "card5"])
    xgmi = DRM(tmp_path).node_by_name("card0").xgmi
    assert xgmi.hive_id == 4242
    assert xgmi.nodes == []


def test_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        DRM(tmp_path / "absent")