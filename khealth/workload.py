"""Workload kinds and the per-workload status record kept in khstate resources."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping


class KHWorkload(str, enum.Enum):
    """The kind of workload Kuberhealthy runs: a scheduled check or a one-off job."""

    KHCHECK = "KHCheck"
    KHJOB = "KHJob"

    def __str__(self) -> str:
        return self.value


def _format_time(moment: datetime) -> str:
    """Render a timestamp as RFC 3339 in UTC with second precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc).replace(microsecond=0)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class WorkloadDetails:
    """Current status of a single check or job."""

    ok: bool = False
    errors: list[str] = field(default_factory=list)
    run_duration: str = ""
    namespace: str = ""
    node: str = ""
    last_run: datetime | None = None
    authoritative_pod: str = ""
    current_uuid: str = ""
    kh_workload: KHWorkload | None = None

    def get_kh_workload(self) -> KHWorkload:
        """Return the workload kind, raising ValueError when it was never set."""
        if not self.kh_workload:
            raise ValueError(
                "fetched a workload type from workload details, but it was blank"
            )
        return self.kh_workload

    def copy(self) -> WorkloadDetails:
        """Return an independent copy."""
        return replace(self, errors=list(self.errors))

    def to_dict(self) -> dict[str, Any]:
        """Return the resource representation used in the khstate spec."""
        data: dict[str, Any] = {
            "OK": self.ok,
            "Errors": list(self.errors),
            "RunDuration": self.run_duration,
            "Namespace": self.namespace,
            "Node": self.node,
        }
        if self.last_run is not None:
            data["LastRun"] = _format_time(self.last_run)
        data["AuthoritativePod"] = self.authoritative_pod
        data["uuid"] = self.current_uuid
        return data


def workload_details_from_dict(data: Mapping[str, Any]) -> WorkloadDetails:
    """Build workload details from their resource representation."""
    last_run = data.get("LastRun")
    return WorkloadDetails(
        ok=bool(data.get("OK", False)),
        errors=list(data.get("Errors") or []),
        run_duration=data.get("RunDuration") or "",
        namespace=data.get("Namespace") or "",
        node=data.get("Node") or "",
        last_run=_parse_time(last_run) if last_run else None,
        authoritative_pod=data.get("AuthoritativePod") or "",
        current_uuid=data.get("uuid") or "",
    )


def new_workload_details(workload_type: KHWorkload | str) -> WorkloadDetails:
    """Create empty workload details of the given kind."""
    if not workload_type:
        raise ValueError("cannot create workload details with an empty workload type")
    return WorkloadDetails(errors=[], kh_workload=KHWorkload(workload_type))


@dataclass
class KuberhealthyState:
    """A khstate resource: the stored status of one check or job."""

    name: str = ""
    namespace: str = ""
    spec: WorkloadDetails = field(default_factory=WorkloadDetails)


def new_kuberhealthy_state(name: str, spec: WorkloadDetails) -> KuberhealthyState:
    """Create a khstate resource with the given name and status."""
    return KuberhealthyState(name=name, spec=spec)