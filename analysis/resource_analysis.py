"""
Container resource analysis - deterministic, no I/O
Joins declared limits/requests with observed usage and derives a risk tier,
advisory suggestions and recommended limit/request values per container.
"""
from typing import Dict, Iterable, List, Mapping, Optional

from analysis.models import (
    AnalysisResult,
    ContainerKey,
    ContainerSpec,
    Recommendation,
    RiskTier,
    UsageSample,
)
from normalize.quantity import MIB, format_mebibytes, format_millicores, safe_bytes, safe_millicores

CPU = "cpu"
MEMORY = "memory"

# Fixed risk margin, independent of the user-facing suggestion threshold
CPU_LIMIT_PRESSURE_RATIO = 0.9

# Usage percentages below which a limit is reported as oversized
CPU_DECREASE_BELOW_PERCENT = 30
MEMORY_DECREASE_BELOW_PERCENT = 50

# Limits get 2.5x headroom over current usage, requests 1.2x
LIMIT_HEADROOM = (5, 2)
REQUEST_HEADROOM = (6, 5)

MIN_CPU_LIMIT_MILLICORES = 100
MIN_CPU_REQUEST_MILLICORES = 50
MIN_MEMORY_LIMIT_BYTES = 128 * MIB
MIN_MEMORY_REQUEST_BYTES = 64 * MIB

NO_LIMITS = "❌ No resource limits set"
NO_REQUESTS = "⚠️ No resource requests set"
SET_LIMITS_FALLBACK = "📋 Consider setting limits based on application requirements"

EXAMPLE_YAML_TEMPLATE = (
    '        resources:\n'
    '          limits:\n'
    '            cpu: "{cpu_limit}"\n'
    '            memory: "{memory_limit}"\n'
    '          requests:\n'
    '            cpu: "{cpu_request}"\n'
    '            memory: "{memory_request}"'
)


def classify_risk(limits: Mapping[str, str], requests: Mapping[str, str],
                  usage: Optional[UsageSample]) -> RiskTier:
    """Risk tier for one container; the first matching rule wins.

    HIGH when no limits are declared, MEDIUM when CPU or memory limit is
    missing or CPU usage is above 90% of its limit, LOW otherwise. Requests
    do not affect the tier.
    """
    if not limits:
        return RiskTier.HIGH

    if CPU not in limits or MEMORY not in limits:
        return RiskTier.MEDIUM

    if usage is not None:
        cpu_limit = safe_millicores(limits[CPU])
        if cpu_limit > 0 and usage.cpu_millicores / cpu_limit > CPU_LIMIT_PRESSURE_RATIO:
            return RiskTier.MEDIUM

    return RiskTier.LOW


def _usage_advice(resource: str, used: int, limit: int, threshold: float,
                  decrease_below: float) -> Optional[str]:
    usage_percent = used / limit * 100
    if usage_percent > threshold * 100:
        return f"⚠️ {resource} usage at {usage_percent:.1f}% of limit, consider increasing limit"
    if usage_percent < decrease_below:
        return f"💡 {resource} usage at {usage_percent:.1f}% of limit, consider decreasing limit"
    return None


def generate_suggestions(limits: Mapping[str, str], requests: Mapping[str, str],
                         usage: Optional[UsageSample], threshold: float) -> List[str]:
    """Advisory strings in detection order.

    The order is stable: missing limits, missing requests, CPU usage, memory
    usage, then the no-telemetry fallback. Reporters show the first entry as
    the headline.
    """
    suggestions: List[str] = []

    if not limits:
        suggestions.append(NO_LIMITS)

    if not requests:
        suggestions.append(NO_REQUESTS)

    if usage is not None:
        if CPU in limits:
            cpu_limit = safe_millicores(limits[CPU])
            if cpu_limit > 0:
                advice = _usage_advice("CPU", usage.cpu_millicores, cpu_limit,
                                       threshold, CPU_DECREASE_BELOW_PERCENT)
                if advice:
                    suggestions.append(advice)

        if MEMORY in limits:
            memory_limit = safe_bytes(limits[MEMORY])
            if memory_limit > 0:
                advice = _usage_advice("Memory", usage.memory_bytes, memory_limit,
                                       threshold, MEMORY_DECREASE_BELOW_PERCENT)
                if advice:
                    suggestions.append(advice)
    elif not limits:
        suggestions.append(SET_LIMITS_FALLBACK)

    return suggestions


def _scaled(value: int, ratio: tuple, floor: int) -> int:
    numerator, denominator = ratio
    return max(value * numerator // denominator, floor)


def compute_recommendations(usage: Optional[UsageSample]) -> Optional[Recommendation]:
    """Recommended limits/requests from current usage, or None without usage.

    Integer arithmetic on milli-cores and bytes; memory is reported in whole
    MiB.
    """
    if usage is None:
        return None

    cpu_limit = _scaled(usage.cpu_millicores, LIMIT_HEADROOM, MIN_CPU_LIMIT_MILLICORES)
    cpu_request = _scaled(usage.cpu_millicores, REQUEST_HEADROOM, MIN_CPU_REQUEST_MILLICORES)
    memory_limit = _scaled(usage.memory_bytes, LIMIT_HEADROOM, MIN_MEMORY_LIMIT_BYTES)
    memory_request = _scaled(usage.memory_bytes, REQUEST_HEADROOM, MIN_MEMORY_REQUEST_BYTES)

    return Recommendation(
        cpu_limit=format_millicores(cpu_limit),
        cpu_request=format_millicores(cpu_request),
        memory_limit=format_mebibytes(memory_limit),
        memory_request=format_mebibytes(memory_request),
    )


def render_example_yaml(recommendation: Optional[Recommendation]) -> Optional[str]:
    """Container `resources:` block built from a recommendation."""
    if recommendation is None:
        return None
    return EXAMPLE_YAML_TEMPLATE.format(
        cpu_limit=recommendation.cpu_limit,
        memory_limit=recommendation.memory_limit,
        cpu_request=recommendation.cpu_request,
        memory_request=recommendation.memory_request,
    )


def index_usage(usage: Optional[Iterable[UsageSample]]) -> Dict[ContainerKey, UsageSample]:
    """Usage samples by container key; a later sample for the same key wins."""
    if not usage:
        return {}
    return {sample.key: sample for sample in usage}


def analyze_container(spec: ContainerSpec, usage: Optional[UsageSample],
                      threshold: float) -> AnalysisResult:
    recommendation = compute_recommendations(usage)
    example_yaml = None
    if not spec.limits and usage is not None:
        example_yaml = render_example_yaml(recommendation)

    return AnalysisResult(
        namespace=spec.namespace,
        workload=spec.workload,
        container=spec.container,
        age=spec.age,
        has_limits=bool(spec.limits),
        has_requests=bool(spec.requests),
        current_limits=spec.limits,
        current_usage=usage,
        risk_level=classify_risk(spec.limits, spec.requests, usage),
        suggestions=tuple(generate_suggestions(spec.limits, spec.requests, usage, threshold)),
        recommended_cpu_limit=recommendation.cpu_limit if recommendation else None,
        recommended_cpu_request=recommendation.cpu_request if recommendation else None,
        recommended_memory_limit=recommendation.memory_limit if recommendation else None,
        recommended_memory_request=recommendation.memory_request if recommendation else None,
        example_yaml=example_yaml,
    )


def analyze_containers(specs: Iterable[ContainerSpec],
                       usage: Optional[Iterable[UsageSample]],
                       threshold: float) -> List[AnalysisResult]:
    """Analyze every container spec against the usage snapshot.

    Returns one result per spec, in input order. `usage` may be None (usage
    source unavailable) or empty; both simply leave every result without
    usage. `threshold` must already be validated to lie in (0, 1].
    """
    usage_by_key = index_usage(usage)
    return [
        analyze_container(spec, usage_by_key.get(spec.key), threshold)
        for spec in specs
    ]
