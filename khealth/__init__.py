"""Health checks, workload state, Prometheus and InfluxDB metrics, and CRD generation."""

__version__ = "0.1.0"