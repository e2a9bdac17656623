"""Orchestrator: list pods -> fetch usage -> analyze -> report.
Read-only. A failed usage fetch degrades to limits-only analysis; a failed pod listing is fatal.
"""
import argparse
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import yaml

import config
from config import setup_logging, validate_config, ConfigValidationError
from analysis.models import AnalysisResult, UsageSample
from analysis.resource_analysis import analyze_containers
from sources import kube_client
from sources import prometheus_client as prom
from sources.kube_client import KubeClientError
from sources.prometheus_client import PrometheusError
from reporter import Reporter, summarize

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_report_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pod-limit-checker",
        description="Find containers without CPU/memory limits and suggest values from live usage.",
    )
    parser.add_argument("--kubeconfig", default=config.KUBECONFIG_PATH,
                        help="absolute path to the kubeconfig file")
    parser.add_argument("--context", default=config.KUBE_CONTEXT,
                        help="kubeconfig context to use (default: current context)")
    parser.add_argument("--output", "-o", default=config.OUTPUT_FORMAT,
                        help="output format: table, json, yaml")
    parser.add_argument("--threshold", type=float, default=config.SUGGESTION_THRESHOLD,
                        help="usage threshold for suggestions (0.0-1.0)")
    parser.add_argument("--all", dest="show_all", action="store_true", default=config.SHOW_ALL,
                        help="show all pods including those with limits")
    parser.add_argument("--namespace", "-n", default=None,
                        help="specific namespace to check (default: all namespaces)")
    parser.add_argument("--verbose", action="store_true",
                        help="show all suggestions in table output")
    parser.add_argument("--no-examples", action="store_true", default=not config.SHOW_EXAMPLES,
                        help="don't show example YAML fixes")
    parser.add_argument("--quiet", action="store_true",
                        help="suppress informational output (implied by json/yaml)")
    parser.add_argument("--usage-source", default=config.USAGE_SOURCE,
                        help="where to read live usage: metrics-server, prometheus, none")
    parser.add_argument("--report-file", default=config.REPORT_OUTPUT_PATH,
                        help="also write the JSON report to this path")
    return parser


def fetch_usage(source: str, api_client: Any, namespace: Optional[str]) -> Optional[List[UsageSample]]:
    """Usage samples from the configured source, or None when unavailable."""
    if source == "none":
        logger.info("Usage source disabled, analyzing specs only")
        return None
    logger.info(f"Fetching pod metrics from {source}...")
    try:
        if source == "prometheus":
            return prom.fetch_usage_samples(namespace)
        return kube_client.list_usage_samples(
            api_client, namespace, timeout=config.KUBE_REQUEST_TIMEOUT_SECONDS
        )
    except (KubeClientError, PrometheusError) as e:
        logger.warning(f"Could not fetch metrics: {e}")
        logger.warning("Continuing without metric-based suggestions...")
        return None


def build_report(results: Sequence[AnalysisResult], namespace: Optional[str],
                 threshold: float, usage_available: bool) -> Dict[str, Any]:
    return {
        'generated_at': _now_iso(),
        'scope': {
            'namespace': namespace,
            'threshold': threshold,
            'usage_available': usage_available,
        },
        'summary': summarize(results),
        'containers': [r.to_dict() for r in results],
    }


def run(args: argparse.Namespace) -> int:
    api_client = kube_client.load_api_client(args.kubeconfig, args.context)

    specs = kube_client.list_container_specs(
        api_client,
        namespace=args.namespace,
        excluded_namespaces=config.EXCLUDED_NAMESPACES,
        timeout=config.KUBE_REQUEST_TIMEOUT_SECONDS,
    )

    usage = fetch_usage(args.usage_source, api_client, args.namespace)

    results = analyze_containers(specs, usage, args.threshold)

    reporter = Reporter(args.output, verbose=args.verbose, show_examples=not args.no_examples)
    reporter.generate_report(results, show_all=args.show_all)

    if args.report_file:
        report = build_report(results, args.namespace, args.threshold, usage is not None)
        try:
            _atomic_write(args.report_file, json.dumps(report, indent=2, ensure_ascii=False))
        except OSError as e:
            logger.error(f"Failed to write report to {args.report_file}: {e}")
            return 1
        logger.info(f"Wrote report to {args.report_file}")

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    args.output = (args.output or "table").lower()
    args.usage_source = (args.usage_source or "metrics-server").lower()

    # Structured output must stay clean on stdout
    quiet = args.quiet or args.output in ("json", "yaml")
    setup_logging(quiet=quiet)

    try:
        validate_config(
            threshold=args.threshold,
            output_format=args.output,
            usage_source=args.usage_source,
        )
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        return run(args)
    except KubeClientError as e:
        logger.error(f"Kubernetes error: {e}")
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Failed to generate report: {e}")
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
