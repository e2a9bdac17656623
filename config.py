import os
import logging
import sys
from typing import Optional, List
from urllib.parse import urlparse


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging(quiet: bool = False):
    """Configure application-wide logging

    Records go to stderr so that stdout only carries the report. Quiet mode
    keeps warnings and errors only.
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    if quiet:
        level = max(level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default) or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


# =============================================================================
# Analysis Configuration
# =============================================================================
# Usage ratio above which a "consider increasing limit" advisory is emitted
SUGGESTION_THRESHOLD: float = float(os.getenv("SUGGESTION_THRESHOLD", "0.8"))

OUTPUT_FORMATS = ("table", "json", "yaml")
OUTPUT_FORMAT: str = os.getenv("OUTPUT_FORMAT", "table").lower()

SHOW_ALL: bool = _env_bool("SHOW_ALL", False)
SHOW_EXAMPLES: bool = _env_bool("SHOW_EXAMPLES", True)

# Optional JSON report written atomically next to the stdout rendering
REPORT_OUTPUT_PATH: Optional[str] = os.getenv("REPORT_OUTPUT_PATH")


# =============================================================================
# Kubernetes API Configuration
# =============================================================================
KUBECONFIG_PATH: Optional[str] = os.getenv("KUBECONFIG_PATH")
KUBE_CONTEXT: Optional[str] = os.getenv("KUBE_CONTEXT")
KUBE_REQUEST_TIMEOUT_SECONDS: int = int(os.getenv("KUBE_REQUEST_TIMEOUT_SECONDS", "30"))

# Fallback kubeconfig locations, tried in order after $KUBECONFIG
DEFAULT_KUBECONFIG_PATHS: List[str] = [
    os.path.join(os.path.expanduser("~"), ".kube", "config"),
    "/app/kubeconfig",
    "/etc/kubernetes/kubeconfig",
]

# Namespaces never analyzed, comma separated. Empty means every namespace.
EXCLUDED_NAMESPACES: List[str] = _env_list("EXCLUDED_NAMESPACES")


# =============================================================================
# Usage Source Configuration
# =============================================================================
USAGE_SOURCES = ("metrics-server", "prometheus", "none")
USAGE_SOURCE: str = os.getenv("USAGE_SOURCE", "metrics-server").lower()

PROMETHEUS_URL: str = os.getenv("PROMETHEUS_URL", "http://localhost:9090")
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_RETRY_COUNT: int = int(os.getenv("PROMETHEUS_RETRY_COUNT", "3"))
PROMETHEUS_RETRY_BACKOFF_BASE: int = int(os.getenv("PROMETHEUS_RETRY_BACKOFF_BASE", "1"))
# Window for the CPU rate() query
PROMETHEUS_RATE_WINDOW: str = os.getenv("PROMETHEUS_RATE_WINDOW", "5m")


__all__ = [
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "SUGGESTION_THRESHOLD",
    "OUTPUT_FORMATS",
    "OUTPUT_FORMAT",
    "SHOW_ALL",
    "SHOW_EXAMPLES",
    "REPORT_OUTPUT_PATH",
    "KUBECONFIG_PATH",
    "KUBE_CONTEXT",
    "KUBE_REQUEST_TIMEOUT_SECONDS",
    "DEFAULT_KUBECONFIG_PATHS",
    "EXCLUDED_NAMESPACES",
    "USAGE_SOURCES",
    "USAGE_SOURCE",
    "PROMETHEUS_URL",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_RETRY_COUNT",
    "PROMETHEUS_RETRY_BACKOFF_BASE",
    "PROMETHEUS_RATE_WINDOW",
    "ConfigValidationError",
    "validate_threshold",
    "validate_config",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_non_negative_int(name: str, value: int) -> None:
    if value < 0:
        raise ConfigValidationError(f"{name} must not be negative, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_choice(name: str, value: str, choices) -> None:
    if value not in choices:
        raise ConfigValidationError(
            f"{name} must be one of {', '.join(choices)}, got '{value}'"
        )


def validate_threshold(value: float) -> None:
    """Reject suggestion thresholds outside (0, 1]

    The analysis engine trusts the value it is given, so callers check it here.
    """
    if not (0 < value <= 1):
        raise ConfigValidationError(
            f"threshold must be greater than 0 and at most 1, got {value}"
        )


def validate_config(threshold: Optional[float] = None,
                    output_format: Optional[str] = None,
                    usage_source: Optional[str] = None) -> None:
    """Validate all configuration values on startup

    Command-line overrides may be passed in; anything left as None is taken
    from the environment-derived module constants.

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []
    threshold = SUGGESTION_THRESHOLD if threshold is None else threshold
    output_format = OUTPUT_FORMAT if output_format is None else output_format
    usage_source = USAGE_SOURCE if usage_source is None else usage_source

    checks = [
        lambda: validate_threshold(threshold),
        lambda: _validate_choice("OUTPUT_FORMAT", output_format, OUTPUT_FORMATS),
        lambda: _validate_choice("USAGE_SOURCE", usage_source, USAGE_SOURCES),
        lambda: _validate_positive_int("KUBE_REQUEST_TIMEOUT_SECONDS", KUBE_REQUEST_TIMEOUT_SECONDS),
    ]

    # Prometheus settings only matter when it is the usage source
    if usage_source == "prometheus":
        checks.extend([
            lambda: _validate_url("PROMETHEUS_URL", PROMETHEUS_URL),
            lambda: _validate_positive_int("PROMETHEUS_TIMEOUT_SECONDS", PROMETHEUS_TIMEOUT_SECONDS),
            lambda: _validate_positive_int("PROMETHEUS_RETRY_COUNT", PROMETHEUS_RETRY_COUNT),
            lambda: _validate_non_negative_int("PROMETHEUS_RETRY_BACKOFF_BASE", PROMETHEUS_RETRY_BACKOFF_BASE),
        ])

    for check in checks:
        try:
            check()
        except ConfigValidationError as e:
            errors.append(str(e))

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
