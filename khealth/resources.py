"""Check and job resources: the configuration of external checkers."""

from __future__ import annotations

import copy as _copy
import enum
from dataclasses import dataclass, field, replace
from typing import Any


class JobPhase(str, enum.Enum):
    """The phase a job is in."""

    RUNNING = "Running"
    COMPLETED = "Completed"

    def __str__(self) -> str:
        return self.value


def _copy_map(mapping: dict[str, str] | None) -> dict[str, str] | None:
    return None if mapping is None else dict(mapping)


def _resource_dict(
    api_version: str, kind: str, name: str, namespace: str, spec: dict[str, Any]
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if api_version:
        data["apiVersion"] = api_version
    if kind:
        data["kind"] = kind
    metadata: dict[str, Any] = {}
    if name:
        metadata["name"] = name
    if namespace:
        metadata["namespace"] = namespace
    data["metadata"] = metadata
    data["spec"] = spec
    return data


@dataclass
class CheckConfig:
    """Configuration of an external check: its schedule, timeout and pod."""

    run_interval: str = ""
    timeout: str = ""
    pod_spec: dict[str, Any] = field(default_factory=dict)
    extra_annotations: dict[str, str] | None = None
    extra_labels: dict[str, str] | None = None

    def copy(self) -> CheckConfig:
        """Return a deep copy."""
        return CheckConfig(
            run_interval=self.run_interval,
            timeout=self.timeout,
            pod_spec=_copy.deepcopy(self.pod_spec),
            extra_annotations=_copy_map(self.extra_annotations),
            extra_labels=_copy_map(self.extra_labels),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the resource representation of this spec."""
        return {
            "runInterval": self.run_interval,
            "timeout": self.timeout,
            "podSpec": _copy.deepcopy(self.pod_spec),
            "extraAnnotations": _copy_map(self.extra_annotations),
            "extraLabels": _copy_map(self.extra_labels),
        }


@dataclass
class KuberhealthyCheck:
    """A khcheck resource."""

    name: str = ""
    namespace: str = ""
    spec: CheckConfig = field(default_factory=CheckConfig)
    api_version: str = ""
    kind: str = ""

    def copy(self) -> KuberhealthyCheck:
        """Return a deep copy."""
        return replace(self, spec=self.spec.copy())

    def to_dict(self) -> dict[str, Any]:
        """Return the resource representation."""
        return _resource_dict(
            self.api_version, self.kind, self.name, self.namespace, self.spec.to_dict()
        )


def new_kuberhealthy_check(
    name: str, namespace: str, spec: CheckConfig
) -> KuberhealthyCheck:
    """Create a khcheck resource."""
    return KuberhealthyCheck(name=name, namespace=namespace, spec=spec)


@dataclass
class JobConfig:
    """Configuration of an external job: its phase, timeout and pod."""

    phase: JobPhase | None = None
    timeout: str = ""
    pod_spec: dict[str, Any] = field(default_factory=dict)
    extra_annotations: dict[str, str] | None = None
    extra_labels: dict[str, str] | None = None

    def copy(self) -> JobConfig:
        """Return a deep copy."""
        return JobConfig(
            phase=self.phase,
            timeout=self.timeout,
            pod_spec=_copy.deepcopy(self.pod_spec),
            extra_annotations=_copy_map(self.extra_annotations),
            extra_labels=_copy_map(self.extra_labels),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the resource representation of this spec."""
        return {
            "phase": self.phase.value if self.phase else "",
            "timeout": self.timeout,
            "podSpec": _copy.deepcopy(self.pod_spec),
            "extraAnnotations": _copy_map(self.extra_annotations),
            "extraLabels": _copy_map(self.extra_labels),
        }


@dataclass
class KuberhealthyJob:
    """A khjob resource."""

    name: str = ""
    namespace: str = ""
    spec: JobConfig = field(default_factory=JobConfig)
    api_version: str = ""
    kind: str = ""

    def copy(self) -> KuberhealthyJob:
        """Return a deep copy."""
        return replace(self, spec=self.spec.copy())

    def to_dict(self) -> dict[str, Any]:
        """Return the resource representation."""
        return _resource_dict(
            self.api_version, self.kind, self.name, self.namespace, self.spec.to_dict()
        )


def new_kuberhealthy_job(name: str, namespace: str, spec: JobConfig) -> KuberhealthyJob:
    """Create a khjob resource."""
    return KuberhealthyJob(name=name, namespace=namespace, spec=spec)