"""
Test fixtures and configuration for pytest
"""
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.models import ContainerSpec, UsageSample
from normalize.quantity import MIB


def make_spec(limits=None, requests=None, namespace="default", workload="api-server-abc12",
              container="app", age="3d"):
    return ContainerSpec(
        namespace=namespace,
        workload=workload,
        container=container,
        limits=dict(limits or {}),
        requests=dict(requests or {}),
        age=age,
    )


def make_usage(cpu_millicores, memory_bytes, namespace="default", workload="api-server-abc12",
               container="app"):
    return UsageSample(
        namespace=namespace,
        workload=workload,
        container=container,
        cpu_millicores=cpu_millicores,
        memory_bytes=memory_bytes,
    )


def make_pod(name, namespace, containers, created=None):
    """Stand-in for a kubernetes V1Pod with only the fields the client reads."""
    if created is None:
        created = datetime.now(timezone.utc) - timedelta(days=2)
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, namespace=namespace, creation_timestamp=created),
        spec=SimpleNamespace(containers=[
            SimpleNamespace(
                name=c["name"],
                resources=SimpleNamespace(limits=c.get("limits"), requests=c.get("requests")),
            )
            for c in containers
        ]),
    )


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Drop stream handlers installed by setup_logging so they never outlive a captured stream"""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)


@pytest.fixture
def mixed_specs():
    """One container per governance state"""
    return [
        make_spec(workload="no-limits-7d9f8", container="web"),
        make_spec(workload="cpu-only-5c6b7", container="worker", limits={"cpu": "500m"},
                  requests={"cpu": "250m"}),
        make_spec(workload="complete-4f5e6", container="db",
                  limits={"cpu": "1", "memory": "1Gi"},
                  requests={"cpu": "500m", "memory": "512Mi"}),
    ]


@pytest.fixture
def mixed_usage():
    return [
        make_usage(10, 10 * MIB, workload="no-limits-7d9f8", container="web"),
        make_usage(400, 900 * MIB, workload="complete-4f5e6", container="db"),
        # No matching spec; must be ignored
        make_usage(5, MIB, workload="deleted-pod-00000", container="gone"),
    ]


@pytest.fixture
def mock_prometheus_cpu_response():
    """Mock Prometheus instant vector for CPU cores"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"namespace": "default", "pod": "api-server-abc12", "container": "app"},
                    "value": [1704355200, "0.0421"]
                },
                {
                    "metric": {"namespace": "default", "pod": "worker-xyz98", "container": "sidecar"},
                    "value": [1704355200, "0.002"]
                },
            ]
        }
    }


@pytest.fixture
def mock_prometheus_memory_response():
    """Mock Prometheus instant vector for working set bytes"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"namespace": "default", "pod": "api-server-abc12", "container": "app"},
                    "value": [1704355200, str(200 * MIB)]
                },
            ]
        }
    }


@pytest.fixture
def pod_metrics_items():
    """metrics.k8s.io PodMetrics items as returned by CustomObjectsApi"""
    return [
        {
            "metadata": {"name": "api-server-abc12", "namespace": "default"},
            "containers": [
                {"name": "app", "usage": {"cpu": "42135871n", "memory": "204800Ki"}},
                {"name": "istio-proxy", "usage": {"cpu": "3m"}},
            ],
        },
        {
            "metadata": {"name": "batch-job-q8w7e", "namespace": "jobs"},
            "containers": [
                {"name": "runner", "usage": {"cpu": "1", "memory": "1Gi"}},
            ],
        },
    ]
