# khealth

Building blocks for running synthetic health checks against a cluster and
publishing their results. Pure Python, no third-party dependencies.

## What is in the package

- **Workload state** (`khealth.workload`): `KHWorkload` (`KHCheck` or `KHJob`),
  `WorkloadDetails` (the last reported result of one check or job, with
  `to_dict()`, `copy()` and `get_kh_workload()`), `workload_details_from_dict`,
  `new_workload_details`, and the `KuberhealthyState` record built by
  `new_kuberhealthy_state`.
- **Check and job configuration** (`khealth.resources`): `CheckConfig`,
  `KuberhealthyCheck`, `JobConfig`, `JobPhase` and `KuberhealthyJob`, each with
  `copy()` and `to_dict()`, plus `new_kuberhealthy_check` and
  `new_kuberhealthy_job`.
- **Overall health** (`khealth.health`): `State` collects the results of every
  check and job. `add_error()` appends messages (blank ones are skipped),
  `to_json()` renders indented JSON for a status page and
  `write_http_status_response()` writes it to a binary stream. `new_state()`
  returns a healthy state. `Reporter` is the protocol checks use to deliver
  their outcome.
- **Durations** (`khealth.durations`): `parse_duration("1h2m3.5s")` returns
  seconds; `format_duration(seconds)` renders them back.
- **Metrics** (`khealth.metrics`): `generate_metrics(state, PromMetricsConfig())`
  renders a `State` in the Prometheus text format; `error_state_metrics()` and
  `write_metric_error()` produce the gauge that shows the service itself is in
  error. `InfluxClient` pushes points to an InfluxDB 1.x server with the line
  protocol.
- **Leader selection** (`khealth.master`): `calculate_master(client, namespace)`
  returns the running pod whose name sorts first; `i_am_master(client, namespace)`
  compares it with the `POD_NAME` environment variable.
  `debug_always_master_on()` makes every query answer yes.
- **Ready-made checks** (`khealth.checks`): pod status, pod restarts, resource
  quota usage, network reachability and a simple reporting check.
- **CRD generation** (`khealth.crdgen`): drives `controller-gen` to produce the
  custom resource definitions for checks, jobs and states.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Rendering health as metrics

```python
from khealth.health import new_state
from khealth.metrics import PromMetricsConfig, error_state_metrics, generate_metrics

state = new_state()
state.add_error("pod-status check failed")

print(generate_metrics(state, PromMetricsConfig()))

# When the state itself cannot be produced, serve the error gauge instead.
print(error_state_metrics(state))
```

Each `# HELP` and `# TYPE` pair is followed directly by its own samples.
`PromMetricsConfig(suppress_error_label=True)` drops the `error` label, and
`error_label_max_length` caps its length in bytes.

## Pushing to InfluxDB

```python
from khealth.metrics import InfluxClient, InfluxConfig

client = InfluxClient("health", InfluxConfig(url="http://localhost:8086"))
client.push([{"check duration": 1.5}], {"cluster": "test"})
```

Spaces in measurement names become underscores. A rejected write raises
`khealth.metrics.InfluxError`.

## Running a check

Each check reports its outcome through a `Reporter`, an object with
`report_success()` and `report_failure(messages)`, and reads the cluster through
a client object you supply:

| Module | Entry point | Client methods it calls |
| --- | --- | --- |
| `khealth.checks.pod_status` | `run_pod_status_check(client, reporter, namespace, skip_duration)` | `list_pods(namespace, label_selector)` returning `Pod` objects |
| `khealth.checks.pod_restarts` | `PodRestartsChecker(client).run(reporter, timeout)` | `list_events(namespace, field_selector)` returning `Event` objects, `get_pod(namespace, name)` |
| `khealth.checks.resource_quota` | `run_resource_quota_check(client, reporter, settings)` | `list_namespaces()`, `list_resource_quotas(namespace)` returning `ResourceQuota` objects |
| `khealth.checks.network_connection` | `NetworkConnectionChecker(target).run(reporter)` | none; it opens a socket itself |
| `khealth.checks.report_check` | `run_report_check(reporter, settings)` | none |

```python
from khealth.checks.pod_status import run_pod_status_check

run_pod_status_check(client, reporter, namespace="", skip_duration="10m")
```

An empty namespace means every namespace. Settings left out are read from the
environment: `TARGET_NAMESPACE` and `SKIP_DURATION` for pod status,
`POD_NAMESPACE` and `MAX_FAILURES_ALLOWED` for pod restarts,
`CONNECTION_TARGET` and `CONNECTION_TARGET_UNREACHABLE` for the network check,
and `QuotaSettings.from_environ()` / `parse_settings()` for the quota and
reporting checks.

## Generating CRDs

`controller-gen` must be installed. The command runs it in
`../pkg/apis/khcheck/v1`, `../pkg/apis/khjob/v1` and `../pkg/apis/khstate/v1`
relative to the current directory, so start it from a directory next to those
API packages:

```
khealth-crdgen --controller-gen /usr/local/bin/controller-gen
```

The definitions are written to `./generated`.

## What the package does not do

- It has no Kubernetes API client. The checks and `calculate_master` take any
  object with the methods listed above; wiring them to a real cluster is up to
  you.
- It has no built-in `Reporter` that sends results to a status server, and no
  HTTP server: `State.write_http_status_response()` and `write_metric_error()`
  only write to a stream you give them.
- The checks are library functions; `khealth-crdgen` is the only command.