"""Overall Kuberhealthy state as shown on the status page."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol, Sequence

from khealth.workload import WorkloadDetails

log = logging.getLogger(__name__)


class Reporter(Protocol):
    """Something that delivers check results to the Kuberhealthy servers."""

    def report_success(self) -> None:
        """Report that the check succeeded."""

    def report_failure(self, messages: Sequence[str]) -> None:
        """Report that the check failed with the given messages."""


@dataclass
class State:
    """Results of all managed checks and jobs with a top-level status."""

    ok: bool = False
    errors: list[str] = field(default_factory=list)
    check_details: dict[str, WorkloadDetails] = field(default_factory=dict)
    job_details: dict[str, WorkloadDetails] = field(default_factory=dict)
    current_master: str = ""

    def add_error(self, *args: str) -> None:
        """Append error messages, skipping blank ones."""
        for message in args:
            if not message:
                log.warning("add_error was called with a blank error; skipping it")
                continue
            log.debug("Appending error: %s", message)
            self.errors.append(message)

    def to_json(self) -> str:
        """Render the state as indented JSON for the status page."""
        payload: dict[str, Any] = {
            "OK": self.ok,
            "Errors": list(self.errors),
            "CheckDetails": {
                name: details.to_dict()
                for name, details in sorted(self.check_details.items())
            },
            "JobDetails": {
                name: details.to_dict()
                for name, details in sorted(self.job_details.items())
            },
            "CurrentMaster": self.current_master,
        }
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def write_http_status_response(self, writer: BinaryIO) -> None:
        """Write the JSON status to a binary response stream."""
        body = self.to_json().encode("utf-8")
        try:
            writer.write(body)
        except OSError as exc:
            log.error("Error writing response to caller: %s", exc)
            raise


def new_state() -> State:
    """Create a fresh, healthy state."""
    return State(ok=True)