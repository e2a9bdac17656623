"""Read-only Kubernetes API access: pod specs and metrics-server usage.

Only list calls are issued. Nothing in the cluster is modified.
"""
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from analysis.models import ContainerSpec, UsageSample
from config import DEFAULT_KUBECONFIG_PATHS, KUBE_REQUEST_TIMEOUT_SECONDS
from normalize.age import age_since
from normalize.quantity import QuantityError, to_bytes, to_millicores

logger = logging.getLogger(__name__)

METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"


class KubeClientError(Exception):
    pass


def find_kubeconfig(explicit_path: Optional[str] = None) -> Optional[str]:
    """Pick a kubeconfig: explicit path, then $KUBECONFIG, then the usual locations."""
    if explicit_path:
        return explicit_path
    env_path = os.getenv("KUBECONFIG")
    if env_path:
        return env_path
    for path in DEFAULT_KUBECONFIG_PATHS:
        if os.path.exists(path):
            return path
    return None


def load_api_client(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> client.ApiClient:
    """Build an API client, preferring in-cluster service account credentials.

    Raises:
        KubeClientError: if neither in-cluster config nor a kubeconfig can be loaded
    """
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
        return client.ApiClient()
    except ConfigException:
        pass

    path = find_kubeconfig(kubeconfig)
    if path is None:
        raise KubeClientError("could not find kubeconfig and not running in-cluster")

    try:
        api_client = config.new_client_from_config(config_file=path, context=context)
    except (ConfigException, OSError) as e:
        raise KubeClientError(f"failed to load kubeconfig {path}: {e}")
    logger.info(f"Using kubeconfig: {path}")
    return api_client


def _resource_map(values: Optional[Dict[str, Any]]) -> Dict[str, str]:
    if not values:
        return {}
    return {str(kind): str(qty) for kind, qty in values.items()}


def _pod_container_specs(pod: Any) -> List[ContainerSpec]:
    meta = pod.metadata
    age = age_since(meta.creation_timestamp)
    specs = []
    for container in (pod.spec.containers or []):
        resources = container.resources
        specs.append(ContainerSpec(
            namespace=meta.namespace,
            workload=meta.name,
            container=container.name,
            limits=_resource_map(resources.limits if resources else None),
            requests=_resource_map(resources.requests if resources else None),
            age=age,
        ))
    return specs


def list_container_specs(api_client: client.ApiClient,
                         namespace: Optional[str] = None,
                         excluded_namespaces: Iterable[str] = (),
                         timeout: int = KUBE_REQUEST_TIMEOUT_SECONDS) -> List[ContainerSpec]:
    """One ContainerSpec per container of every pod in scope, in listing order.

    Raises:
        KubeClientError: if the pod listing fails
    """
    core = client.CoreV1Api(api_client)
    try:
        if namespace:
            pods = core.list_namespaced_pod(namespace, _request_timeout=timeout)
        else:
            pods = core.list_pod_for_all_namespaces(_request_timeout=timeout)
    except ApiException as e:
        raise KubeClientError(f"failed to list pods: {e.status} {e.reason}")
    except Exception as e:
        raise KubeClientError(f"failed to list pods: {e}")

    excluded = set(excluded_namespaces)
    specs: List[ContainerSpec] = []
    for pod in pods.items:
        if pod.metadata.namespace in excluded:
            continue
        specs.extend(_pod_container_specs(pod))

    logger.info(f"Found {len(specs)} container(s) in {len(pods.items)} pod(s)")
    return specs


def parse_pod_metrics(items: Iterable[Dict[str, Any]]) -> List[UsageSample]:
    """UsageSamples from metrics.k8s.io PodMetrics items.

    A missing CPU or memory reading counts as zero usage; containers carrying
    a malformed reading are skipped.
    """
    samples: List[UsageSample] = []
    for item in items:
        meta = item.get("metadata", {})
        pod_name = meta.get("name")
        pod_namespace = meta.get("namespace")
        if not pod_name or not pod_namespace:
            continue
        for container in item.get("containers") or []:
            usage = container.get("usage") or {}
            cpu = usage.get("cpu") or "0"
            memory = usage.get("memory") or "0"
            try:
                samples.append(UsageSample(
                    namespace=pod_namespace,
                    workload=pod_name,
                    container=container.get("name", ""),
                    cpu_millicores=to_millicores(cpu),
                    memory_bytes=to_bytes(memory),
                ))
            except QuantityError as e:
                logger.debug(f"Skipping usage for {pod_namespace}/{pod_name}: {e}")
    return samples


def list_usage_samples(api_client: client.ApiClient,
                       namespace: Optional[str] = None,
                       timeout: int = KUBE_REQUEST_TIMEOUT_SECONDS) -> List[UsageSample]:
    """Current per-container usage from metrics-server.

    Raises:
        KubeClientError: if the metrics API is unavailable or the call fails
    """
    custom = client.CustomObjectsApi(api_client)
    try:
        if namespace:
            data = custom.list_namespaced_custom_object(
                METRICS_GROUP, METRICS_VERSION, namespace, "pods", _request_timeout=timeout
            )
        else:
            data = custom.list_cluster_custom_object(
                METRICS_GROUP, METRICS_VERSION, "pods", _request_timeout=timeout
            )
    except ApiException as e:
        raise KubeClientError(f"failed to fetch pod metrics: {e.status} {e.reason}")
    except Exception as e:
        raise KubeClientError(f"failed to fetch pod metrics: {e}")

    samples = parse_pod_metrics(data.get("items", []))
    logger.info(f"Fetched usage for {len(samples)} container(s) from metrics-server")
    return samples
