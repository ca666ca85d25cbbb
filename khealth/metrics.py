"""Prometheus metrics output and InfluxDB metric pushing."""

from __future__ import annotations

import base64
import http.client
import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Any, BinaryIO, Mapping, Protocol, Sequence
from urllib.parse import urlencode, urlsplit

from khealth.durations import parse_duration
from khealth.health import State
from khealth.workload import WorkloadDetails

log = logging.getLogger(__name__)

# A batch of metrics: each mapping holds measurement names and their values.
Metric = Sequence[Mapping[str, Any]]


@dataclass
class PromMetricsConfig:
    """Options for Prometheus output."""

    suppress_error_label: bool = False
    error_label_max_length: int = 0


def _truncate_bytes(text: str, limit: int) -> str:
    return text.encode("utf-8")[:limit].decode("utf-8", errors="ignore")


def _prom_metric_name(
    config: PromMetricsConfig,
    check_or_job: str,
    name: str,
    namespace: str,
    status: str,
    errors: Sequence[str],
) -> str:
    metric = (
        f'kuberhealthy_{check_or_job}{{check="{name}",namespace="{namespace}",'
        f'status="{status}"'
    )
    if config.suppress_error_label:
        return metric + "}"
    errors_label = "|".join(errors).replace('"', "'")
    if 0 < config.error_label_max_length < len(errors_label.encode("utf-8")):
        errors_label = _truncate_bytes(errors_label, config.error_label_max_length)
    return metric + f',error="{errors_label}"}}'


def _run_seconds(details: WorkloadDetails, metric_name: str) -> float:
    run_duration = details.run_duration or "0s"
    try:
        return parse_duration(run_duration)
    except ValueError as exc:
        log.error(
            "Error parsing run duration: %s for metric: %s error: %s",
            run_duration,
            metric_name,
            exc,
        )
        return 0.0


def _collect(
    config: PromMetricsConfig, kind: str, details: Mapping[str, WorkloadDetails]
) -> tuple[dict[str, str], dict[str, str]]:
    states: dict[str, str] = {}
    durations: dict[str, str] = {}
    for name, detail in sorted(details.items()):
        status = "1" if detail.ok else "0"
        metric_name = _prom_metric_name(
            config, kind, name, detail.namespace, status, detail.errors
        )
        states[metric_name] = status
        duration_name = (
            f'kuberhealthy_{kind}_duration_seconds{{check="{name}",'
            f'namespace="{detail.namespace}"}}'
        )
        durations[duration_name] = f"{_run_seconds(detail, metric_name):f}"
    return states, durations


def _section(name: str, help_text: str, values: Mapping[str, str]) -> str:
    lines = [f"# HELP {name} {help_text}\n", f"# TYPE {name} gauge\n"]
    lines.extend(f"{metric} {value}\n" for metric, value in values.items())
    return "".join(lines)


def generate_metrics(state: State, config: PromMetricsConfig | None = None) -> str:
    """Render the state in the Prometheus text exposition format."""
    config = config or PromMetricsConfig()
    health_status = "1" if state.ok else "0"
    output = [
        "# HELP kuberhealthy_running Shows if kuberhealthy is running error free\n",
        "# TYPE kuberhealthy_running gauge\n",
        f'kuberhealthy_running{{current_master="{state.current_master}"}} 1\n',
        "# HELP kuberhealthy_cluster_state Shows the status of the cluster\n",
        "# TYPE kuberhealthy_cluster_state gauge\n",
        f"kuberhealthy_cluster_state {health_status}\n",
    ]
    check_state, check_duration = _collect(config, "check", state.check_details)
    job_state, job_duration = _collect(config, "job", state.job_details)

    # Each HELP/TYPE pair is followed directly by its own samples.
    output.append(
        _section(
            "kuberhealthy_check", "Shows the status of a Kuberhealthy check", check_state
        )
    )
    output.append(
        _section(
            "kuberhealthy_check_duration_seconds",
            "Shows the check run duration of a Kuberhealthy check",
            check_duration,
        )
    )
    output.append(
        _section("kuberhealthy_job", "Shows the status of a Kuberhealthy job", job_state)
    )
    output.append(
        _section(
            "kuberhealthy_job_duration_seconds",
            "Shows the job run duration of a Kuberhealthy job",
            job_duration,
        )
    )
    return "".join(output)


def error_state_metrics(state: State) -> str:
    """Render the metric that shows Kuberhealthy itself is in error."""
    return (
        "# HELP kuberhealthy_running Shows if kuberhealthy is running error free\n"
        "# TYPE kuberhealthy_running gauge\n"
        f'kuberhealthy_running{{currentMaster="{state.current_master}"}} 0'
    )


def write_metric_error(writer: BinaryIO, state: State) -> None:
    """Write the error-state metric to a binary response stream."""
    try:
        writer.write(error_state_metrics(state).encode("utf-8"))
    except OSError as exc:
        log.warning("Error writing health check results to caller: %s", exc)
        raise


class MetricsClient(Protocol):
    """Something that pushes metrics to a custom provider."""

    def push(self, points: Metric, tags: Mapping[str, str]) -> None:
        """Push a batch of metrics with the given tags."""


class InfluxError(RuntimeError):
    """Raised when InfluxDB rejects a write or cannot be configured."""


@dataclass
class InfluxConfig:
    """Connection settings for an InfluxDB 1.x server."""

    url: str = ""
    unix_socket: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = "khealth"
    timeout: float = 0.0
    precision: str = ""
    write_consistency: str = ""
    unsafe_ssl: bool = False
    ssl_context: ssl.SSLContext | None = None


def _escape(text: str, characters: str) -> str:
    text = text.replace("\\", "\\\\") if "\\" in characters else text
    for char in characters.replace("\\", ""):
        text = text.replace(char, "\\" + char)
    return text


def _field_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: str, timeout: float | None) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        sock.connect(self._socket_path)
        self.sock = sock


class InfluxClient:
    """Pushes metrics to an InfluxDB database with the line protocol."""

    def __init__(self, database: str, config: InfluxConfig) -> None:
        parts = urlsplit(config.url)
        if not config.unix_socket and parts.scheme not in ("http", "https"):
            raise InfluxError(f"unsupported InfluxDB URL: {config.url!r}")
        self.database = database
        self.config = config
        self._parts = parts

    def line_protocol(self, points: Metric, tags: Mapping[str, str]) -> str:
        """Render a batch as line protocol, one line per measurement."""
        tag_text = "".join(
            f",{_escape(key, ', =')}={_escape(value, ', =')}"
            for key, value in sorted(tags.items())
            if value
        )
        lines = []
        for point in points:
            for key, value in point.items():
                measurement = _escape(key.replace(" ", "_"), ", ")
                lines.append(f"{measurement}{tag_text} value={_field_value(value)}\n")
        return "".join(lines)

    def _connection(self) -> http.client.HTTPConnection:
        timeout = self.config.timeout or None
        if self.config.unix_socket:
            return _UnixHTTPConnection(self.config.unix_socket, timeout)
        host = self._parts.hostname or "localhost"
        port = self._parts.port
        if self._parts.scheme == "https":
            context = self.config.ssl_context
            if context is None:
                context = ssl.create_default_context()
                if self.config.unsafe_ssl:
                    context.check_hostname = False
                    context.verify_mode = ssl.CERT_NONE
            return http.client.HTTPSConnection(host, port, timeout=timeout, context=context)
        return http.client.HTTPConnection(host, port, timeout=timeout)

    def push(self, points: Metric, tags: Mapping[str, str]) -> None:
        """Write the batch to the database, raising InfluxError when rejected."""
        query = {"db": self.database}
        if self.config.precision:
            query["precision"] = self.config.precision
        if self.config.write_consistency:
            query["consistency"] = self.config.write_consistency
        base_path = "" if self.config.unix_socket else self._parts.path.rstrip("/")
        path = f"{base_path}/write?{urlencode(query)}"

        headers = {"Content-Type": "text/plain"}
        if self.config.user_agent:
            headers["User-Agent"] = self.config.user_agent
        if self.config.username:
            credentials = f"{self.config.username}:{self.config.password}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"

        body = self.line_protocol(points, tags).encode("utf-8")
        connection = self._connection()
        try:
            connection.request("POST", path, body=body, headers=headers)
            response = connection.getresponse()
            content = response.read()
        except OSError as exc:
            raise InfluxError(f"writing to InfluxDB failed: {exc}") from exc
        finally:
            connection.close()
        if not 200 <= response.status < 300:
            detail = content.decode("utf-8", errors="replace").strip()
            raise InfluxError(f"InfluxDB write returned {response.status}: {detail}")