"""A check that simply reports success or failure after a delay."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from khealth.durations import parse_duration
from khealth.health import Reporter

log = logging.getLogger(__name__)

DEFAULT_REPORT_DELAY = 5.0
DEFAULT_TIME_LIMIT = 10 * 60.0
FAILURE_MESSAGE = "Test has failed!"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class ReportCheckSettings:
    """Whether to report failure, how long to wait first and the time limit."""

    report_failure: bool = False
    report_delay: float = DEFAULT_REPORT_DELAY
    time_limit: float = DEFAULT_TIME_LIMIT


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean {value!r}")


def parse_settings(environ: Mapping[str, str] | None = None) -> ReportCheckSettings:
    """Read REPORT_FAILURE and REPORT_DELAY, raising ValueError on bad values."""
    env = os.environ if environ is None else environ
    settings = ReportCheckSettings()
    failure_text = env.get("REPORT_FAILURE", "")
    if failure_text:
        try:
            settings.report_failure = _parse_bool(failure_text)
        except ValueError as exc:
            raise ValueError(f"Failed to parse REPORT_FAILURE env var: {exc}") from exc
    delay_text = env.get("REPORT_DELAY", "")
    if delay_text:
        try:
            settings.report_delay = parse_duration(delay_text)
        except ValueError as exc:
            raise ValueError(f"Failed to parse REPORT_DELAY env var: {exc}") from exc
    return settings


def run_report_check(
    reporter: Reporter,
    settings: ReportCheckSettings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Wait, then report; returns whether the report went through.

    Raises TimeoutError when reporting takes longer than the time limit.
    """
    settings = settings or ReportCheckSettings()
    log.info("Waiting %s seconds before reporting...", settings.report_delay)
    sleep(settings.report_delay)

    outcome: list[Exception | None] = []

    def work() -> None:
        try:
            if settings.report_failure:
                log.info("Reporting failure...")
                reporter.report_failure([FAILURE_MESSAGE])
            else:
                log.info("Reporting success...")
                reporter.report_success()
        except Exception as exc:  # handed back to the caller's thread
            outcome.append(exc)
        else:
            outcome.append(None)

    worker = threading.Thread(target=work, daemon=True)
    worker.start()
    worker.join(max(settings.time_limit, 0.0))
    if not outcome:
        log.info("Check took too long and timed out.")
        raise TimeoutError("Check took too long and timed out.")
    error = outcome[0]
    if error is not None:
        log.info("Error reporting to Kuberhealthy servers: %s", error)
        return False
    log.info("Successfully reported to Kuberhealthy servers")
    return True