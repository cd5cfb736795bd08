"""Tests for adapters module."""

from unittest.mock import patch

from robocar_link.adapters import discover_adapters, pick_adapter


def test_pick_adapter_preferred():
    assert pick_adapter(["hci0", "hci1"], "hci1") == "hci1"


def test_pick_adapter_default_first():
    assert pick_adapter(["hci0", "hci1"]) == "hci0"


def test_pick_adapter_missing_preferred_falls_back(caplog):
    assert pick_adapter(["hci0"], "hci3") == "hci0"
    assert "hci3 not found" in caplog.text


def test_pick_adapter_empty():
    assert pick_adapter([]) is None
    assert pick_adapter([], "hci0") is None


@patch("robocar_link.adapters.IS_LINUX", False)
def test_discover_adapters_non_linux():
    assert discover_adapters() == []


@patch("robocar_link.adapters.IS_LINUX", True)
@patch("bluetooth_adapters.get_adapters_from_hci")
def test_discover_adapters_from_hci(mock_hci):
    mock_hci.return_value = {
        1: {"name": "hci1"},
        0: {"name": "hci0"},
    }
    assert discover_adapters() == ["hci0", "hci1"]


@patch("robocar_link.adapters.IS_LINUX", True)
@patch("bluetooth_adapters.get_adapters_from_hci")
def test_discover_adapters_sys_fallback(mock_hci, tmp_path):
    mock_hci.side_effect = OSError("no hci socket")
    (tmp_path / "hci0").mkdir()
    (tmp_path / "hci2").mkdir()
    (tmp_path / "rfkill").mkdir()

    with patch("robocar_link.adapters._SYS_BLUETOOTH", tmp_path):
        assert discover_adapters() == ["hci0", "hci2"]


@patch("robocar_link.adapters.IS_LINUX", True)
@patch("bluetooth_adapters.get_adapters_from_hci")
def test_discover_adapters_none_present(mock_hci, tmp_path):
    mock_hci.return_value = {}
    with patch("robocar_link.adapters._SYS_BLUETOOTH", tmp_path / "missing"):
        assert discover_adapters() == []
