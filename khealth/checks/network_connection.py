"""Check that a network endpoint accepts connections."""

from __future__ import annotations

import logging
import os
import socket
import threading

from khealth.health import Reporter

log = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT = 20.0
TIMEOUT_MESSAGE = (
    "Failed to complete network connection check in time! Timeout was reached."
)

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}

_NETWORKS = {
    "tcp": (socket.AF_UNSPEC, socket.SOCK_STREAM),
    "tcp4": (socket.AF_INET, socket.SOCK_STREAM),
    "tcp6": (socket.AF_INET6, socket.SOCK_STREAM),
    "udp": (socket.AF_UNSPEC, socket.SOCK_DGRAM),
    "udp4": (socket.AF_INET, socket.SOCK_DGRAM),
    "udp6": (socket.AF_INET6, socket.SOCK_DGRAM),
}


class ConnectionCheckError(RuntimeError):
    """Raised when the connection target cannot be reached."""


def split_address(full_address: str) -> tuple[str, str]:
    """Split "proto://host:port" into the protocol and address; tcp by default."""
    network, sep, address = full_address.partition("://")
    if sep:
        return network, address
    return "tcp", full_address


def parse_unreachable(value: str | None) -> bool:
    """Parse CONNECTION_TARGET_UNREACHABLE as a boolean."""
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"CONNECTION_TARGET_UNREACHABLE could not be parsed: {value!r}")


def _split_host_port(address: str) -> tuple[str, int | str]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"address {address}: missing ']' in address")
        host, rest = address[1:end], address[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"address {address}: missing port in address")
        port_text = rest[1:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise ValueError(f"address {address}: missing port in address")
        if ":" in host:
            raise ValueError(f"address {address}: too many colons in address")
    if port_text.isdigit():
        return host, int(port_text)
    try:
        return host, socket.getservbyname(port_text)
    except OSError as exc:
        raise ValueError(f"address {address}: unknown port") from exc


def _dial(network: str, address: str, timeout: float | None) -> None:
    if network not in _NETWORKS:
        raise ValueError(f"dial {network}: unknown network {network}")
    family, socktype = _NETWORKS[network]
    host, port = _split_host_port(address)
    infos = socket.getaddrinfo(host or "localhost", port, family, socktype)
    last_error: OSError | None = None
    for af, kind, proto, _, sockaddr in infos:
        sock = socket.socket(af, kind, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
        except OSError as exc:
            last_error = exc
            sock.close()
            continue
        sock.close()
        return
    if last_error is not None:
        raise last_error
    raise OSError(f"dial {network} {address}: no suitable address found")


class NetworkConnectionChecker:
    """Dials a target and reports whether it is reachable."""

    def __init__(
        self,
        connection_target: str | None = None,
        target_unreachable: bool | None = None,
        timeout: float = DEFAULT_CHECK_TIMEOUT,
    ) -> None:
        if connection_target is None:
            connection_target = os.environ.get("CONNECTION_TARGET", "")
            if not connection_target:
                log.error("CONNECTION_TARGET environment variable has not been set.")
        if target_unreachable is None:
            try:
                target_unreachable = parse_unreachable(
                    os.environ.get("CONNECTION_TARGET_UNREACHABLE", "")
                )
            except ValueError:
                log.info("CONNECTION_TARGET_UNREACHABLE could not be parsed.")
                target_unreachable = False
        self.connection_target = connection_target
        self.target_unreachable = target_unreachable
        self.timeout = timeout

    def do_checks(self) -> None:
        """Open and close a connection to the target, raising when it is down."""
        network, address = split_address(self.connection_target)
        try:
            _dial(network, address, self.timeout if self.timeout > 0 else None)
        except (OSError, ValueError) as exc:
            message = (
                "Network connection check determined that "
                f"{self.connection_target} is DOWN: {exc}"
            )
            log.error(message)
            raise ConnectionCheckError(message) from exc

    def run(self, reporter: Reporter) -> None:
        """Run the check within the timeout and report the outcome."""
        log.info("Running network connection checker")
        outcome: list[Exception | None] = []

        def work() -> None:
            try:
                self.do_checks()
            except Exception as exc:  # handed back to the caller's thread
                outcome.append(exc)
            else:
                outcome.append(None)

        worker = threading.Thread(target=work, daemon=True)
        worker.start()
        worker.join(max(self.timeout, 0.0))
        if not outcome:
            log.info("Cancelling check and shutting down due to timeout.")
            reporter.report_failure([TIMEOUT_MESSAGE])
            return
        error = outcome[0]
        if error is not None and not self.target_unreachable:
            reporter.report_failure([str(error)])
            return
        reporter.report_success()