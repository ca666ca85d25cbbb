"""Choosing the master pod among several Kuberhealthy replicas."""

from __future__ import annotations

import logging
import os
from typing import Iterable, Protocol

log = logging.getLogger(__name__)

_force_master = False


class PodLister(Protocol):
    """A cluster client able to list the names of pods."""

    def list_pod_names(
        self, namespace: str, label_selector: str, field_selector: str
    ) -> Iterable[str]:
        """Return the names of pods matching the selectors."""


class MasterCalculationError(RuntimeError):
    """Raised when the master pod cannot be determined."""


def debug_always_master_on() -> None:
    """Make every master query answer yes without consulting the cluster."""
    global _force_master
    _force_master = True


def enable_debug() -> None:
    """Enable debug logging for the package."""
    logging.getLogger(__name__.split(".")[0]).setLevel(logging.DEBUG)


def calculate_master(client: PodLister, namespace: str | None = None) -> str:
    """Return the name of the running Kuberhealthy pod that is first alphabetically."""
    if namespace is None:
        namespace = os.environ.get("POD_NAMESPACE", "")
    log.debug("Calculating current master...")
    pods = sorted(
        client.list_pod_names(namespace, "app=kuberhealthy", "status.phase=Running")
    )
    if not pods:
        raise MasterCalculationError("Failed to retrieve list of Kuberhealthy pods")
    master = pods[0]
    log.debug("Calculated master as %s", master)
    return master


def i_am_master(client: PodLister, namespace: str | None = None) -> bool:
    """Return whether the pod named by POD_NAME is the master."""
    if _force_master:
        return True
    master = calculate_master(client, namespace)
    my_pod = os.environ.get("POD_NAME", "")
    log.debug("My pod hostname is: %s", my_pod)
    if not my_pod:
        raise MasterCalculationError(
            "Could not retrieve environment variable, or it had no content. POD_NAME"
        )
    if my_pod.lower() == master.lower():
        log.debug("I am master")
        return True
    log.debug("I am NOT master")
    return False