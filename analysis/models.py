"""Data model for container resource analysis."""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, NamedTuple, Optional, Tuple

from normalize.quantity import format_memory, format_millicores


class ContainerKey(NamedTuple):
    """Join key between workload specs and usage samples."""
    namespace: str
    workload: str
    container: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.workload}/{self.container}"


class RiskTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class ContainerSpec:
    """Declared resources of one container, as listed by the workload source.

    `limits` and `requests` map a resource kind ("cpu", "memory", ...) to the
    quantity string from the pod spec. Either may be empty. Both are stored
    as read-only views of a private copy.
    """
    namespace: str
    workload: str
    container: str
    limits: Mapping[str, str] = field(default_factory=dict, hash=False)
    requests: Mapping[str, str] = field(default_factory=dict, hash=False)
    age: str = ""

    def __post_init__(self):
        object.__setattr__(self, "limits", MappingProxyType(dict(self.limits)))
        object.__setattr__(self, "requests", MappingProxyType(dict(self.requests)))

    @property
    def key(self) -> ContainerKey:
        return ContainerKey(self.namespace, self.workload, self.container)


@dataclass(frozen=True)
class UsageSample:
    """Point-in-time usage of one container."""
    namespace: str
    workload: str
    container: str
    cpu_millicores: int
    memory_bytes: int

    @property
    def key(self) -> ContainerKey:
        return ContainerKey(self.namespace, self.workload, self.container)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu": format_millicores(self.cpu_millicores),
            "memory": format_memory(self.memory_bytes),
            "cpu_millicores": self.cpu_millicores,
            "memory_bytes": self.memory_bytes,
        }


@dataclass(frozen=True)
class Recommendation:
    cpu_limit: str
    cpu_request: str
    memory_limit: str
    memory_request: str


@dataclass(frozen=True)
class AnalysisResult:
    namespace: str
    workload: str
    container: str
    age: str
    has_limits: bool
    has_requests: bool
    current_limits: Mapping[str, str] = field(hash=False)
    current_usage: Optional[UsageSample]
    risk_level: RiskTier
    suggestions: Tuple[str, ...]
    recommended_cpu_limit: Optional[str] = None
    recommended_cpu_request: Optional[str] = None
    recommended_memory_limit: Optional[str] = None
    recommended_memory_request: Optional[str] = None
    example_yaml: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "current_limits", MappingProxyType(dict(self.current_limits)))

    @property
    def key(self) -> ContainerKey:
        return ContainerKey(self.namespace, self.workload, self.container)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping for JSON/YAML rendering."""
        return {
            "namespace": self.namespace,
            "pod": self.workload,
            "container": self.container,
            "age": self.age,
            "has_limits": self.has_limits,
            "has_requests": self.has_requests,
            "current_limits": dict(self.current_limits),
            "current_usage": self.current_usage.to_dict() if self.current_usage else None,
            "risk_level": self.risk_level.value,
            "suggestions": list(self.suggestions),
            "recommended_cpu_limit": self.recommended_cpu_limit,
            "recommended_cpu_request": self.recommended_cpu_request,
            "recommended_memory_limit": self.recommended_memory_limit,
            "recommended_memory_request": self.recommended_memory_request,
            "example_yaml": self.example_yaml,
        }
