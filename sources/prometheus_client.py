import logging
import math
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from analysis.models import UsageSample
from config import (
    PROMETHEUS_URL,
    PROMETHEUS_TIMEOUT_SECONDS,
    PROMETHEUS_RETRY_COUNT,
    PROMETHEUS_RETRY_BACKOFF_BASE,
    PROMETHEUS_RATE_WINDOW,
)

logger = logging.getLogger(__name__)

# Series key: (namespace, pod, container)
SeriesKey = Tuple[str, str, str]


class PrometheusError(Exception):
    pass


class PrometheusConnectionError(PrometheusError):
    """Prometheus could not be reached after all retries"""
    pass


class PrometheusQueryError(PrometheusError):
    """Prometheus answered but rejected the query"""
    pass


def _backoff_seconds(attempt: int) -> float:
    return PROMETHEUS_RETRY_BACKOFF_BASE * (2 ** attempt)


def query_instant(promql: str, base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Query Prometheus `/api/v1/query` and return `data.result`.
    Connection failures are retried PROMETHEUS_RETRY_COUNT times with exponential backoff;
    HTTP or API errors are not retried.
    """
    url = f"{(base_url or PROMETHEUS_URL).rstrip('/')}/api/v1/query"
    params = {"query": promql}

    last_error: Optional[Exception] = None
    for attempt in range(PROMETHEUS_RETRY_COUNT):
        try:
            r = requests.get(url, params=params, timeout=PROMETHEUS_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            last_error = e
            logger.warning(f"Prometheus request failed (attempt {attempt + 1}/{PROMETHEUS_RETRY_COUNT}): {e}")
            if attempt < PROMETHEUS_RETRY_COUNT - 1:
                time.sleep(_backoff_seconds(attempt))
            continue

        if r.status_code != 200:
            raise PrometheusQueryError(f"prometheus returned status {r.status_code}: {r.text}")
        try:
            data = r.json()
        except ValueError as e:
            raise PrometheusQueryError(f"invalid JSON from prometheus: {e}") from e
        if not isinstance(data, dict) or data.get("status") != "success":
            raise PrometheusQueryError(f"prometheus error: {data}")
        return data.get("data", {}).get("result", [])

    raise PrometheusConnectionError(f"request failed: {last_error}")


def _label_selector(namespace: Optional[str]) -> str:
    matchers = ['container!=""', 'container!="POD"']
    if namespace:
        matchers.append(f'namespace="{namespace}"')
    return ",".join(matchers)


def cpu_usage_query(namespace: Optional[str] = None) -> str:
    """PromQL for per-container CPU usage in cores."""
    return (
        "sum by (namespace, pod, container) "
        f"(rate(container_cpu_usage_seconds_total{{{_label_selector(namespace)}}}[{PROMETHEUS_RATE_WINDOW}]))"
    )


def memory_usage_query(namespace: Optional[str] = None) -> str:
    """PromQL for per-container working set memory in bytes."""
    return (
        "sum by (namespace, pod, container) "
        f"(container_memory_working_set_bytes{{{_label_selector(namespace)}}})"
    )


def parse_vector(result: List[Dict[str, Any]]) -> Dict[SeriesKey, float]:
    """
    Parse an instant vector into {(namespace, pod, container): value}.
    Series without the three labels or with non-finite values are dropped.
    """
    parsed: Dict[SeriesKey, float] = {}
    for res in result:
        metric = res.get("metric", {})
        ns = metric.get("namespace")
        pod = metric.get("pod")
        container = metric.get("container")
        if not (ns and pod and container):
            continue
        try:
            val = float(res.get("value", [None, None])[1])
        except (TypeError, ValueError, IndexError):
            continue
        if not math.isfinite(val):
            continue
        parsed[(ns, pod, container)] = val
    return parsed


def fetch_usage_samples(namespace: Optional[str] = None, base_url: Optional[str] = None) -> List[UsageSample]:
    """Per-container usage from Prometheus; only containers with both CPU and memory readings."""
    cpu = parse_vector(query_instant(cpu_usage_query(namespace), base_url=base_url))
    memory = parse_vector(query_instant(memory_usage_query(namespace), base_url=base_url))

    samples: List[UsageSample] = []
    for key in sorted(cpu):
        if key not in memory:
            continue
        ns, pod, container = key
        samples.append(UsageSample(
            namespace=ns,
            workload=pod,
            container=container,
            cpu_millicores=int(math.ceil(cpu[key] * 1000)),
            memory_bytes=int(math.ceil(memory[key])),
        ))

    logger.info(f"Fetched usage for {len(samples)} container(s) from Prometheus")
    return samples
