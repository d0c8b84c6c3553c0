from pathlib import Path
from unittest import mock

import pytest

from rocsift.launcher import DEFAULT_TOOLS_PATH, find_tools, get_tools_path, is_tool, main


def _make(directory, name, mode=0o755):
    path = directory / name
    path.write_text("#!/bin/sh\n")
    path.chmod(mode)
    return path


@pytest.fixture
def tools_dir(tmp_path, monkeypatch):
    _make(tmp_path, "dumprls")
    _make(tmp_path, "pskfd")
    _make(tmp_path, "readme.txt")
    _make(tmp_path, "plain", mode=0o644)
    _make(tmp_path, "rocsift-tools")
    (tmp_path / "subdir").mkdir()
    monkeypatch.setenv("ROCSIFT_TOOLS_PATH", str(tmp_path))
    return tmp_path


def test_is_tool_accepts_executable(tmp_path):
    assert is_tool(_make(tmp_path, "va2pa")) is True


def test_is_tool_rejects(tools_dir):
    assert is_tool(tools_dir / "readme.txt") is False
    assert is_tool(tools_dir / "plain") is False
    assert is_tool(tools_dir / "rocsift-tools") is False
    assert is_tool(tools_dir / "subdir") is False
    assert is_tool(tools_dir / "missing") is False


def test_find_tools(tools_dir):
    tools = find_tools(tools_dir)
    assert list(tools) == ["dumprls", "pskfd"]
    assert tools["pskfd"] == tools_dir / "pskfd"


def test_find_tools_missing_dir(tmp_path, capsys):
    assert find_tools(tmp_path / "nope") == {}
    assert "does not exist" in capsys.readouterr().err


def test_get_tools_path_from_env(tools_dir):
    assert get_tools_path() == tools_dir


def test_get_tools_path_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("ROCSIFT_TOOLS_PATH", str(tmp_path / "nope"))
    assert get_tools_path() == DEFAULT_TOOLS_PATH
    monkeypatch.delenv("ROCSIFT_TOOLS_PATH")
    assert get_tools_path() == Path("/usr/lib/rocsift-tools")


def test_main_list(tools_dir, capsys):
    assert main(["list"]) == 0
    assert capsys.readouterr().out.splitlines() == ["dumprls", "pskfd"]


def test_main_without_tool_prints_help(tools_dir, capsys):
    assert main([]) == 0
    assert "subcommand" in capsys.readouterr().out


def test_main_unknown_tool(tools_dir, capsys):
    assert main(["nosuchtool"]) == 1
    err = capsys.readouterr().err
    assert "nosuchtool not found in" in err
    assert str(tools_dir) in err


def test_main_execs_tool(tools_dir):
    with mock.patch("os.execv", side_effect=OSError(2, "No such file")) as execv:
        assert main(["pskfd", "-x", "1"]) == 1
    execv.assert_called_once_with(str(tools_dir / "pskfd"), ["pskfd", "-x", "1"])