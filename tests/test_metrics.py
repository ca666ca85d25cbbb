import base64
import io
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from khealth.health import State
from khealth.metrics import (
    InfluxClient,
    InfluxConfig,
    InfluxError,
    PromMetricsConfig,
    error_state_metrics,
    generate_metrics,
    write_metric_error,
)
from khealth.workload import WorkloadDetails


def parse_metrics(output):
    metric_map = {}
    for line in output.split("\n"):
        if line == "" or line[0] == "#":
            continue
        name, value = line.split(" ")[:2]
        metric_map[name] = value
    return metric_map


def test_empty_state():
    metrics = parse_metrics(generate_metrics(State(), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] != "1"


def test_ok_state():
    metrics = parse_metrics(generate_metrics(State(ok=True), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "1"


def test_not_ok_state():
    metrics = parse_metrics(generate_metrics(State(ok=False), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "0"


def test_state_with_master():
    metrics = parse_metrics(
        generate_metrics(State(current_master="testMaster"), PromMetricsConfig())
    )
    assert metrics['kuberhealthy_running{current_master="testMaster"}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "0"


def test_checks_good_and_bad():
    state = State(
        check_details={
            "good": WorkloadDetails(ok=True),
            "bad": WorkloadDetails(ok=False),
            "": WorkloadDetails(ok=True),
        }
    )
    metrics = parse_metrics(generate_metrics(state, PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "0"
    assert metrics['kuberhealthy_check{check="good",namespace="",status="1",error=""}'] == "1"
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error=""}'] == "0"
    assert metrics['kuberhealthy_check{check="",namespace="",status="1",error=""}'] == "1"


def _bad_state(error):
    return State(check_details={"bad": WorkloadDetails(errors=[error])})


def test_error_label_full():
    metrics = parse_metrics(generate_metrics(_bad_state("12345678910"), PromMetricsConfig()))
    key = 'kuberhealthy_check{check="bad",namespace="",status="0",error="12345678910"}'
    assert metrics[key] == "0"


def test_error_label_suppressed():
    result = generate_metrics(
        _bad_state("12345678910"), PromMetricsConfig(suppress_error_label=True)
    )
    metrics = parse_metrics(result)
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0"}'] == "0"


def test_error_label_truncated():
    result = generate_metrics(
        _bad_state("12345678910"),
        PromMetricsConfig(suppress_error_label=False, error_label_max_length=4),
    )
    metrics = parse_metrics(result)
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error="1234"}'] == "0"


def test_error_label_shorter_than_limit():
    result = generate_metrics(
        _bad_state("123"),
        PromMetricsConfig(suppress_error_label=False, error_label_max_length=10),
    )
    metrics = parse_metrics(result)
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error="123"}'] == "0"


def test_errors_joined_and_quotes_replaced():
    state = State(check_details={"bad": WorkloadDetails(errors=['x"y"', "z"])})
    result = generate_metrics(state)
    assert "error=\"x'y'|z\"" in result


def test_durations_and_jobs():
    state = State(
        check_details={"c": WorkloadDetails(ok=True, namespace="ns", run_duration="1m30s")},
        job_details={
            "j": WorkloadDetails(namespace="ns"),
            "broken": WorkloadDetails(namespace="ns", run_duration="nonsense"),
        },
    )
    metrics = parse_metrics(generate_metrics(state))
    assert metrics['kuberhealthy_check_duration_seconds{check="c",namespace="ns"}'] == "90.000000"
    assert metrics['kuberhealthy_job_duration_seconds{check="j",namespace="ns"}'] == "0.000000"
    assert metrics['kuberhealthy_job_duration_seconds{check="broken",namespace="ns"}'] == "0.000000"
    assert metrics['kuberhealthy_job{check="j",namespace="ns",status="0",error=""}'] == "0"


def test_help_and_type_precede_samples():
    state = State(check_details={"c": WorkloadDetails(ok=True)})
    lines = generate_metrics(state).splitlines()
    type_index = lines.index("# TYPE kuberhealthy_check gauge")
    sample_index = next(
        i for i, line in enumerate(lines) if line.startswith("kuberhealthy_check{")
    )
    next_help = lines.index(
        "# HELP kuberhealthy_check_duration_seconds Shows the check run duration "
        "of a Kuberhealthy check"
    )
    assert type_index < sample_index < next_help


def test_error_state_metrics():
    lines = error_state_metrics(State(current_master="testMaster")).split("\n")
    assert lines[2] == 'kuberhealthy_running{currentMaster="testMaster"} 0'
    assert lines[2].split(" ")[1] == "0"
    lines = error_state_metrics(State()).split("\n")
    assert lines[2] == 'kuberhealthy_running{currentMaster=""} 0'
    assert lines[2].split(" ")[1] == "0"


@pytest.mark.parametrize("state", [State(current_master="testMaster"), State()])
def test_write_metric_error(state):
    buffer = io.BytesIO()
    write_metric_error(buffer, state)
    assert buffer.getvalue().decode("utf-8") == error_state_metrics(state)


def test_write_metric_error_propagates():
    class Broken:
        def write(self, data):
            raise OSError("closed")

    with pytest.raises(OSError):
        write_metric_error(Broken(), State())


def test_line_protocol():
    client = InfluxClient("db", InfluxConfig(url="http://localhost:8086"))
    text = client.line_protocol(
        [{"pod restarts": 3, "ratio": 0.5}, {"up": True}], {"cluster": "a b", "env": "dev"}
    )
    assert text.splitlines() == [
        "pod_restarts,cluster=a\\ b,env=dev value=3i",
        "ratio,cluster=a\\ b,env=dev value=0.5",
        "up,cluster=a\\ b,env=dev value=true",
    ]


def test_invalid_url_rejected():
    with pytest.raises(InfluxError):
        InfluxClient("db", InfluxConfig(url="ftp://localhost"))


def _serve(status):
    received = {}

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers["Content-Length"])
            received["path"] = self.path
            received["body"] = self.rfile.read(length).decode("utf-8")
            received["auth"] = self.headers.get("Authorization")
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()

        def log_message(self, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, received


def test_push_posts_line_protocol():
    server, received = _serve(204)
    points = [{"latency": 1.5}]
    tags = {"host": "h1"}
    try:
        password = "password"
        config = InfluxConfig(
            url=f"http://127.0.0.1:{server.server_address[1]}",
            username="user",
            password=password,
            timeout=5,
        )
        client = InfluxClient("metrics", config)
        client.push(points, tags)
        expected_body = client.line_protocol(points, tags)
    finally:
        server.shutdown()
        server.server_close()
    assert expected_body.rstrip("\n") == "latency,host=h1 value=1.5"
    assert received["path"] == "/write?db=metrics"
    assert received["body"] == "latency,host=h1 value=1.5\n"
    assert received["body"].rstrip("\n") == expected_body.rstrip("\n")
    expected = base64.b64encode(b"user:password").decode("ascii")
    assert received["auth"] == f"Basic {expected}"


def test_push_raises_on_server_error():
    server, _ = _serve(500)
    try:
        config = InfluxConfig(url=f"http://127.0.0.1:{server.server_address[1]}", timeout=5)
        with pytest.raises(InfluxError):
            InfluxClient("metrics", config).push([{"x": 1}], {})
    finally:
        server.shutdown()
        server.server_close()