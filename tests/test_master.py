import logging

import pytest

from khealth import master
from khealth.master import (
    MasterCalculationError,
    calculate_master,
    debug_always_master_on,
    enable_debug,
    i_am_master,
)


class FakeClient:
    def __init__(self, names):
        self.names = names
        self.calls = []

    def list_pod_names(self, namespace, label_selector, field_selector):
        self.calls.append((namespace, label_selector, field_selector))
        return list(self.names)


@pytest.fixture(autouse=True)
def _no_forced_master(monkeypatch):
    monkeypatch.setattr(master, "_force_master", False)


def test_run_calculates_master():
    client = FakeClient(["kuberhealthy-b", "kuberhealthy-a", "kuberhealthy-c"])
    assert calculate_master(client, "kuberhealthy") == "kuberhealthy-a"
    assert client.calls == [("kuberhealthy", "app=kuberhealthy", "status.phase=Running")]


def test_namespace_from_environment(monkeypatch):
    monkeypatch.setenv("POD_NAMESPACE", "kh")
    client = FakeClient(["p"])
    calculate_master(client)
    assert client.calls[0][0] == "kh"


def test_no_pods_raises():
    with pytest.raises(MasterCalculationError):
        calculate_master(FakeClient([]), "ns")


def test_i_am_master_case_insensitive(monkeypatch):
    monkeypatch.setenv("POD_NAME", "KUBERHEALTHY-A")
    assert i_am_master(FakeClient(["kuberhealthy-b", "kuberhealthy-a"]), "ns") is True


def test_i_am_not_master(monkeypatch):
    monkeypatch.setenv("POD_NAME", "kuberhealthy-b")
    assert i_am_master(FakeClient(["kuberhealthy-b", "kuberhealthy-a"]), "ns") is False


def test_missing_pod_name_raises(monkeypatch):
    monkeypatch.delenv("POD_NAME", raising=False)
    with pytest.raises(MasterCalculationError):
        i_am_master(FakeClient(["kuberhealthy-a"]), "ns")


def test_i_am_master_propagates_calculation_error(monkeypatch):
    monkeypatch.setenv("POD_NAME", "kuberhealthy-a")
    with pytest.raises(MasterCalculationError):
        i_am_master(FakeClient([]), "ns")


def test_forced_master_skips_cluster():
    client = FakeClient([])
    debug_always_master_on()
    assert i_am_master(client, "ns") is True
    assert client.calls == []


def test_enable_debug():
    logger = logging.getLogger("khealth")
    previous = logger.level
    try:
        enable_debug()
        assert logger.level == logging.DEBUG
        assert logger.isEnabledFor(logging.DEBUG) is True
        result = calculate_master(FakeClient(["kuberhealthy-z", "kuberhealthy-m"]), "ns")
        assert result == "kuberhealthy-m"
    finally:
        logger.setLevel(previous)