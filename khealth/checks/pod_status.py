"""Check that reports pods stuck in an unhealthy lifecycle phase."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol

from khealth.durations import parse_duration
from khealth.health import Reporter

log = logging.getLogger(__name__)

POD_LABEL_SELECTOR = "app!=kuberhealthy-check,source!=kuberhealthy"


class PodPhase(str, enum.Enum):
    """The lifecycle phases a pod can be in."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


_HEALTHY = {PodPhase.RUNNING.value, PodPhase.SUCCEEDED.value}
_UNHEALTHY = {PodPhase.PENDING.value, PodPhase.FAILED.value, PodPhase.UNKNOWN.value}


@dataclass
class Pod:
    """The parts of a pod this check looks at."""

    name: str
    namespace: str = ""
    phase: str = ""
    created: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict)


class PodClient(Protocol):
    """A cluster client able to list pods."""

    def list_pods(self, namespace: str, label_selector: str) -> Iterable[Pod]:
        """Return pods in the namespace ("" for all) matching the selector."""


class SkipDurationError(ValueError):
    """Raised when the skip duration cannot be parsed."""


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _skip_seconds(skip_duration: str | float) -> float:
    if isinstance(skip_duration, str):
        try:
            return parse_duration(skip_duration)
        except ValueError as exc:
            raise SkipDurationError(f"failed to parse skip duration: {exc}") from exc
    return float(skip_duration)


def find_pods_not_running(
    client: PodClient,
    namespace: str | None = None,
    skip_duration: str | float | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Return failure messages for pods older than the skip duration in a bad phase.

    The namespace defaults to TARGET_NAMESPACE ("" meaning all namespaces) and
    the skip duration to SKIP_DURATION.
    """
    if namespace is None:
        namespace = os.environ.get("TARGET_NAMESPACE", "")
    if skip_duration is None:
        skip_duration = os.environ.get("SKIP_DURATION", "")
    if namespace:
        log.info("looking for pods in namespace %s", namespace)
    else:
        log.info("looking for pods across all namespaces, this requires a cluster role")

    pods = list(client.list_pods(namespace, POD_LABEL_SELECTOR))
    seconds = _skip_seconds(skip_duration)
    check_time = _aware(now) if now is not None else datetime.now(timezone.utc)
    skip_barrier = check_time - timedelta(seconds=seconds)

    failures: list[str] = []
    for pod in sorted(pods, key=lambda p: (p.namespace, p.name)):
        if pod.created is not None and _aware(pod.created) > skip_barrier:
            log.info("skipping checks on pod because it is too young: %s", pod.name)
            continue
        phase = str(pod.phase)
        if phase in _HEALTHY:
            continue
        message = (
            f"pod: {pod.name} in namespace: {pod.namespace} "
            f"is in pod status phase {phase} "
        )
        if phase in _UNHEALTHY:
            failures.append(message)
        else:
            log.info(
                "pod: %s in namespace: %s is not in one of the five possible "
                "pod status phases %s ",
                pod.name,
                pod.namespace,
                phase,
            )
    return failures


def run_pod_status_check(
    client: PodClient,
    reporter: Reporter,
    namespace: str | None = None,
    skip_duration: str | float | None = None,
) -> list[str]:
    """Run the check, report the outcome and return the failures reported."""
    try:
        failures = find_pods_not_running(client, namespace, skip_duration)
    except Exception as exc:  # any lookup problem is reported as a failure
        messages = [str(exc)]
        reporter.report_failure(messages)
        return messages
    if failures:
        log.info("Amount of failures found: %d", len(failures))
        reporter.report_failure(failures)
        return failures
    log.info("Reporting Success, no unhealthy pods found.")
    reporter.report_success()
    return []