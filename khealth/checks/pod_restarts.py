"""Check that reports pods restarting with too many BackOff events."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

from khealth.health import Reporter

log = logging.getLogger(__name__)

DEFAULT_MAX_FAILURES_ALLOWED = 10
DEFAULT_CHECK_TIMEOUT = 10 * 60.0
TIMEOUT_MESSAGE = "Failed to complete Pod Restart check in time! Timeout was reached."

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1


@dataclass
class Event:
    """A cluster event about some object."""

    involved_kind: str
    involved_name: str
    involved_namespace: str = ""
    reason: str = ""
    count: int = 0
    namespace: str = ""
    type: str = "Warning"


class PodNotFound(LookupError):
    """Raised by a client when a pod does not exist."""


class EventClient(Protocol):
    """A cluster client able to list events and look up pods."""

    def list_events(self, namespace: str, field_selector: str) -> Iterable[Event]:
        """Return events in the namespace ("" for all) matching the selector."""

    def get_pod(self, namespace: str, name: str) -> object:
        """Return the pod, raising PodNotFound when it does not exist."""


def parse_max_failures(value: str | None) -> int:
    """Parse MAX_FAILURES_ALLOWED; empty means the default of 10."""
    if not value:
        return DEFAULT_MAX_FAILURES_ALLOWED
    try:
        number = int(value, 10)
    except ValueError as exc:
        raise ValueError(f"cannot convert max failures allowed {value!r} to int") from exc
    if not _INT32_MIN <= number <= _INT32_MAX:
        raise ValueError(f"max failures allowed {value!r} is out of range")
    return number


class PodRestartsChecker:
    """Finds pods with more BackOff events than allowed."""

    def __init__(
        self,
        client: EventClient,
        namespace: str | None = None,
        max_failures_allowed: int | None = None,
    ) -> None:
        if namespace is None:
            namespace = os.environ.get("POD_NAMESPACE", "")
        if max_failures_allowed is None:
            max_failures_allowed = parse_max_failures(
                os.environ.get("MAX_FAILURES_ALLOWED")
            )
        self.client = client
        self.namespace = namespace
        self.max_failures_allowed = max_failures_allowed
        self.bad_pods: dict[str, str] = {}

    def do_checks(self) -> None:
        """Collect pods with too many BackOff warnings into bad_pods."""
        log.info(
            "Checking for pod BackOff events for all pods in the namespace: %s",
            self.namespace,
        )
        for event in self.client.list_events(self.namespace, "type=Warning"):
            if (
                event.involved_kind == "Pod"
                and event.reason == "BackOff"
                and event.count > self.max_failures_allowed
            ):
                message = (
                    f"Found: {event.count} `BackOff` events for pod: "
                    f"{event.involved_name} in namespace: {event.namespace}"
                )
                log.info(message)
                key = f"{event.involved_namespace}/{event.involved_name}"
                self.bad_pods[key] = message
        for key in list(self.bad_pods):
            self._verify_bad_pod_exists(key)

    def _verify_bad_pod_exists(self, key: str) -> None:
        namespace, _, pod_name = key.partition("/")
        try:
            self.client.get_pod(namespace, pod_name)
        except Exception as exc:
            if isinstance(exc, PodNotFound) or "not found" in str(exc):
                log.info(
                    "Bad Pod: %s no longer exists. Removing from bad pods map", pod_name
                )
                self.bad_pods.pop(key, None)
                return
            log.info("Error getting bad pod: %s %s", pod_name, exc)
            raise

    def run(self, reporter: Reporter, timeout: float | None = DEFAULT_CHECK_TIMEOUT) -> None:
        """Run the checks within the timeout and report the outcome."""
        log.info("Running Pod Restarts checker")
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
        worker.join(timeout)
        if not outcome:
            reporter.report_failure([TIMEOUT_MESSAGE])
            return

        error = outcome[0]
        if error is not None or self.bad_pods:
            messages: list[str] = []
            if error is not None:
                log.error("%s", error)
                messages.append(str(error))
            messages.extend(self.bad_pods.values())
            reporter.report_failure(messages)
            return
        reporter.report_success()