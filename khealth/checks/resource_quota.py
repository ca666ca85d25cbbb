"""Check that reports namespaces whose resource quota usage reaches a threshold."""

from __future__ import annotations

import logging
import math
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, Sequence

from khealth.health import Reporter

log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.9
DEFAULT_CHECK_TIME_LIMIT = 5 * 60.0
TIMEOUT_MESSAGE = "Check took too long and timed out."

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class ResourceQuota:
    """Hard limits and current usage of one quota, in milli-units."""

    name: str = ""
    hard_cpu_milli: int = 0
    hard_memory_milli: int = 0
    used_cpu_milli: int = 0
    used_memory_milli: int = 0


@dataclass
class QuotaSettings:
    """Which namespaces to look at, the alert threshold and the time limit."""

    blacklist: list[str] = field(default_factory=list)
    whitelist: list[str] = field(default_factory=list)
    threshold: float = DEFAULT_THRESHOLD
    check_time_limit: float = DEFAULT_CHECK_TIME_LIMIT
    debug: bool = False

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> QuotaSettings:
        """Read BLACKLIST, WHITELIST, THRESHOLD and DEBUG from the environment."""
        env = os.environ if environ is None else environ
        return cls(
            blacklist=parse_namespace_list(env.get("BLACKLIST", "")),
            whitelist=parse_namespace_list(env.get("WHITELIST", "")),
            threshold=parse_threshold(env.get("THRESHOLD", "")),
            debug=parse_debug(env.get("DEBUG", "")),
        )


class QuotaClient(Protocol):
    """A cluster client able to list namespaces and their resource quotas."""

    def list_namespaces(self) -> Iterable[str]:
        """Return the names of all namespaces."""

    def list_resource_quotas(self, namespace: str) -> Iterable[ResourceQuota]:
        """Return the resource quotas of a namespace."""


def parse_debug(value: str | None) -> bool:
    """Parse the DEBUG setting; enables debug logging when true."""
    if not value:
        return False
    if value in _TRUE:
        debug = True
    elif value in _FALSE:
        debug = False
    else:
        raise ValueError(f"failed to parse DEBUG environment variable: {value!r}")
    if debug:
        log.info("Debug logging enabled.")
        logging.getLogger(__name__.split(".")[0]).setLevel(logging.DEBUG)
    return debug


def parse_threshold(value: str | None) -> float:
    """Parse THRESHOLD; out-of-range or empty values fall back to the default."""
    threshold = DEFAULT_THRESHOLD
    if value:
        if value != value.strip() or "_" in value:
            raise ValueError(f"error occurred attempting to parse THRESHOLD: {value!r}")
        try:
            threshold = float(value)
        except ValueError as exc:
            raise ValueError(
                f"error occurred attempting to parse THRESHOLD: {value!r}"
            ) from exc
        log.info("Parsed THRESHOLD: %s", threshold)
    if threshold > 0.99:
        log.info(
            "Given THRESHOLD is greater than 0.99, setting to default of %s",
            DEFAULT_THRESHOLD,
        )
        threshold = DEFAULT_THRESHOLD
    if threshold <= 0:
        log.info(
            "Threshold is less than or equal to 0, setting to default of %s",
            DEFAULT_THRESHOLD,
        )
        threshold = DEFAULT_THRESHOLD
    log.info("Usage threshold set to: %s", threshold)
    return threshold


def parse_namespace_list(value: str | None) -> list[str]:
    """Split a comma separated list of namespaces; empty gives an empty list."""
    if not value:
        return []
    return value.split(",")


def contains(item: str, items: Iterable[str]) -> bool:
    """Return whether the item is one of the items."""
    return item in items


def should_examine(namespace: str, blacklist: Sequence[str], whitelist: Sequence[str]) -> bool:
    """Decide whether a namespace is examined; the blacklist wins over the whitelist."""
    if blacklist and contains(namespace, blacklist):
        log.info("Skipping %s namespace (Blacklist).", namespace)
        return False
    if whitelist and not contains(namespace, whitelist):
        log.info("Skipping %s namespace (Whitelist).", namespace)
        return False
    return True


def _ratio(used: int, limit: int) -> float:
    if limit:
        return used / limit
    if used == 0:
        return math.nan
    return math.inf if used > 0 else -math.inf


def _format_float(value: float, width: int, precision: int) -> str:
    if math.isnan(value):
        text = "NaN"
    elif math.isinf(value):
        text = "+Inf" if value > 0 else "-Inf"
    else:
        return f"{value:{width}.{precision}f}"
    return text.rjust(width)


def _violation(
    resource: str, namespace: str, threshold: float, used: int, limit: int, percent: float
) -> str:
    return (
        f"{resource} for {namespace} namespace has reached threshold of "
        f"{_format_float(threshold, 4, 2)}: USED: {used} LIMIT: {limit} "
        f"PERCENT_USED: {_format_float(percent, 6, 3)}"
    )


def examine_namespace_quotas(
    client: QuotaClient, namespace: str, threshold: float
) -> list[str]:
    """Return messages for every quota in the namespace at or over the threshold."""
    log.info("Looking at resource quotas for %s namespace.", namespace)
    try:
        quotas = list(client.list_resource_quotas(namespace))
    except Exception as exc:
        return [f"error occurred listing resource quotas for {namespace} namespace {exc}"]

    messages: list[str] = []
    for quota in quotas:
        cpu_percent = _ratio(quota.used_cpu_milli, quota.hard_cpu_milli)
        memory_percent = _ratio(quota.used_memory_milli, quota.hard_memory_milli)
        log.debug(
            "Current used for %s CPU: %d Memory: %d",
            namespace,
            quota.used_cpu_milli,
            quota.used_memory_milli,
        )
        log.debug(
            "Limits for %s CPU: %d Memory: %d",
            namespace,
            quota.hard_cpu_milli,
            quota.hard_memory_milli,
        )
        if cpu_percent >= threshold:
            messages.append(
                _violation(
                    "cpu",
                    namespace,
                    threshold,
                    quota.used_cpu_milli,
                    quota.hard_cpu_milli,
                    cpu_percent,
                )
            )
        if memory_percent >= threshold:
            messages.append(
                _violation(
                    "memory",
                    namespace,
                    threshold,
                    quota.used_memory_milli,
                    quota.hard_memory_milli,
                    memory_percent,
                )
            )
    return messages


def examine_resource_quotas(
    client: QuotaClient, namespaces: Iterable[str], settings: QuotaSettings
) -> list[str]:
    """Examine the selected namespaces concurrently and collect all messages."""
    names = list(namespaces)
    log.info("%d namespaces to look at.", len(names))
    selected = [
        name for name in names if should_examine(name, settings.blacklist, settings.whitelist)
    ]
    if not selected:
        return []
    with ThreadPoolExecutor(max_workers=min(32, len(selected))) as pool:
        results = pool.map(
            lambda name: examine_namespace_quotas(client, name, settings.threshold),
            selected,
        )
        return [message for messages in results for message in messages]


def run_resource_quota_check(
    client: QuotaClient, reporter: Reporter, settings: QuotaSettings | None = None
) -> list[str]:
    """Run the check within the time limit, report it and return the failures."""
    settings = settings or QuotaSettings()
    try:
        namespaces = list(client.list_namespaces())
    except Exception as exc:
        messages = [f"error occurred listing namespaces from the cluster: {exc}"]
        reporter.report_failure(messages)
        return messages

    outcome: list[list[str] | Exception] = []

    def work() -> None:
        try:
            outcome.append(examine_resource_quotas(client, namespaces, settings))
        except Exception as exc:  # reported as a failure by the caller
            outcome.append(exc)

    worker = threading.Thread(target=work, daemon=True)
    worker.start()
    worker.join(max(settings.check_time_limit, 0.0))
    if not outcome:
        log.info("Reporting failure to kuberhealthy.")
        reporter.report_failure([TIMEOUT_MESSAGE])
        return [TIMEOUT_MESSAGE]

    result = outcome[0]
    if isinstance(result, Exception):
        log.info("Recovered error: %s", result)
        messages = [str(result)]
        reporter.report_failure(messages)
        return messages
    if result:
        log.info("This check created %d errors and warnings.", len(result))
        for message in result:
            log.debug("%s", message)
        log.info("Reporting failures to kuberhealthy.")
        reporter.report_failure(result)
        return result

    log.info("No errors or warnings were created during this check!")
    log.info("Reporting success to kuberhealthy.")
    reporter.report_success()
    return []