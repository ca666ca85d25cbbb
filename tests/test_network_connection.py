import socket

import pytest

from khealth.checks.network_connection import (
    ConnectionCheckError,
    NetworkConnectionChecker,
    parse_unreachable,
    split_address,
)


class FakeReporter:
    def __init__(self):
        self.successes = 0
        self.failures = []

    def report_success(self):
        self.successes += 1

    def report_failure(self, messages):
        self.failures.append(list(messages))


@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_split_address_with_protocol():
    assert split_address("udp://10.0.0.1:53") == ("udp", "10.0.0.1:53")


def test_split_address_defaults_to_tcp():
    assert split_address("example.com:443") == ("tcp", "example.com:443")


def test_split_address_splits_once():
    assert split_address("tcp://a://b") == ("tcp", "a://b")


@pytest.mark.parametrize("value", ["true", "1", "T", "TRUE"])
def test_parse_unreachable_true(value):
    assert parse_unreachable(value) is True


@pytest.mark.parametrize("value", ["false", "0", "F"])
def test_parse_unreachable_false(value):
    assert parse_unreachable(value) is False


@pytest.mark.parametrize("value", ["", "yes", "maybe"])
def test_parse_unreachable_invalid(value):
    with pytest.raises(ValueError):
        parse_unreachable(value)


def test_do_checks_reaches_listener(listener):
    checker = NetworkConnectionChecker(f"tcp://127.0.0.1:{listener}", False, 5.0)
    checker.do_checks()
    reporter = FakeReporter()
    checker.run(reporter)
    assert reporter.successes == 1
    assert reporter.failures == []


def test_do_checks_reports_down(closed_port):
    target = f"127.0.0.1:{closed_port}"
    checker = NetworkConnectionChecker(target, False, 5.0)
    with pytest.raises(ConnectionCheckError) as info:
        checker.do_checks()
    assert f"determined that {target} is DOWN" in str(info.value)


def test_missing_port_is_down():
    checker = NetworkConnectionChecker("tcp://127.0.0.1", False, 5.0)
    with pytest.raises(ConnectionCheckError):
        checker.do_checks()


def test_unknown_network_is_down():
    checker = NetworkConnectionChecker("sctp://127.0.0.1:80", False, 5.0)
    with pytest.raises(ConnectionCheckError):
        checker.do_checks()


def test_run_reports_failure_when_down(closed_port):
    checker = NetworkConnectionChecker(f"127.0.0.1:{closed_port}", False, 5.0)
    reporter = FakeReporter()
    checker.run(reporter)
    assert reporter.successes == 0
    assert len(reporter.failures) == 1
    assert "is DOWN" in reporter.failures[0][0]


def test_run_reports_success_when_expected_unreachable(closed_port):
    checker = NetworkConnectionChecker(f"127.0.0.1:{closed_port}", True, 5.0)
    reporter = FakeReporter()
    checker.run(reporter)
    assert reporter.successes == 1
    assert reporter.failures == []


def test_udp_dial_succeeds(closed_port):
    checker = NetworkConnectionChecker(f"udp://127.0.0.1:{closed_port}", False, 5.0)
    reporter = FakeReporter()
    checker.run(reporter)
    assert reporter.successes == 1


def test_reads_environment(monkeypatch, listener):
    monkeypatch.setenv("CONNECTION_TARGET", f"tcp://127.0.0.1:{listener}")
    monkeypatch.setenv("CONNECTION_TARGET_UNREACHABLE", "true")
    checker = NetworkConnectionChecker()
    assert checker.connection_target == f"tcp://127.0.0.1:{listener}"
    assert checker.target_unreachable is True


def test_bad_unreachable_environment_defaults_false(monkeypatch):
    monkeypatch.setenv("CONNECTION_TARGET", "tcp://127.0.0.1:1")
    monkeypatch.setenv("CONNECTION_TARGET_UNREACHABLE", "nope")
    checker = NetworkConnectionChecker()
    assert checker.target_unreachable is False