"""
Report rendering for container resource analysis.
Formats: table (compact or verbose), json, yaml.
"""
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence, TextIO

import yaml

from analysis.models import AnalysisResult, RiskTier
from analysis.resource_analysis import CPU, MEMORY
from normalize.quantity import format_memory, format_millicores

logger = logging.getLogger(__name__)

RISK_ICONS = {
    RiskTier.HIGH: "🔴",
    RiskTier.MEDIUM: "🟡",
    RiskTier.LOW: "🟢",
}

TABLE_HEADERS = ["NAMESPACE", "POD", "CONTAINER", "AGE", "LIMITS", "REQUESTS", "RISK", "SUGGESTIONS"]
COLUMN_PADDING = 3


def filter_results(results: Sequence[AnalysisResult], show_all: bool = False) -> List[AnalysisResult]:
    """Containers worth reporting: no limits, or HIGH/MEDIUM risk, unless show_all."""
    if show_all:
        return list(results)
    return [
        r for r in results
        if not r.has_limits or r.risk_level in (RiskTier.HIGH, RiskTier.MEDIUM)
    ]


def summarize(results: Sequence[AnalysisResult]) -> Dict[str, int]:
    summary = {
        "total": len(results),
        "high_risk": 0,
        "medium_risk": 0,
        "low_risk": 0,
        "no_limits": 0,
        "no_requests": 0,
        "with_usage": 0,
    }
    for r in results:
        if r.risk_level == RiskTier.HIGH:
            summary["high_risk"] += 1
        elif r.risk_level == RiskTier.MEDIUM:
            summary["medium_risk"] += 1
        elif r.risk_level == RiskTier.LOW:
            summary["low_risk"] += 1
        if not r.has_limits:
            summary["no_limits"] += 1
        if not r.has_requests:
            summary["no_requests"] += 1
        if r.current_usage is not None:
            summary["with_usage"] += 1
    return summary


def _limits_text(result: AnalysisResult) -> str:
    if not result.current_limits:
        return "None"
    parts = []
    if CPU in result.current_limits:
        parts.append(f"CPU:{result.current_limits[CPU]}")
    if MEMORY in result.current_limits:
        parts.append(f"Mem:{result.current_limits[MEMORY]}")
    return ", ".join(parts)


def _headline(result: AnalysisResult) -> str:
    if not result.suggestions:
        return ""
    headline = result.suggestions[0]
    if len(result.suggestions) > 1:
        headline += f" (+{len(result.suggestions) - 1} more)"
    return headline


def _risk_text(result: AnalysisResult) -> str:
    return f"{RISK_ICONS.get(result.risk_level, '✅')}{result.risk_level.value}"


def format_table(rows: List[List[str]]) -> List[str]:
    """Left-aligned columns separated by at least COLUMN_PADDING spaces."""
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i] + COLUMN_PADDING) for i, cell in enumerate(row[:-1])]
        cells.append(row[-1])
        lines.append("".join(cells).rstrip())
    return lines


class Reporter:
    """Renders analysis results to a text stream."""

    def __init__(self, output_format: str = "table", verbose: bool = False,
                 show_examples: bool = True, stream: Optional[TextIO] = None):
        self.output_format = (output_format or "table").lower()
        self.verbose = verbose
        self.show_examples = show_examples
        self.stream = stream if stream is not None else sys.stdout

    def _print(self, text: str = "") -> None:
        self.stream.write(text + "\n")

    def generate_report(self, results: Sequence[AnalysisResult], show_all: bool = False) -> None:
        filtered = filter_results(results, show_all)
        logger.debug(f"Reporting {len(filtered)} of {len(results)} container(s)")

        if self.output_format == "json":
            self._print(render_json(filtered))
        elif self.output_format == "yaml":
            self._print(render_yaml(filtered))
        else:
            self.generate_table(filtered)

    def generate_table(self, results: Sequence[AnalysisResult]) -> None:
        if not results:
            self._print("✅ All pods have proper resource limits configured.")
            return

        if self.verbose:
            for i, result in enumerate(results):
                if i > 0:
                    self._print()
                self.print_details(result)
        else:
            rows = [TABLE_HEADERS, ["-" * len(h) for h in TABLE_HEADERS]]
            for r in results:
                rows.append([
                    r.namespace,
                    r.workload,
                    r.container,
                    r.age,
                    _limits_text(r),
                    "Yes" if r.has_requests else "No",
                    _risk_text(r),
                    _headline(r),
                ])
            for line in format_table(rows):
                self._print(line)

        self.print_summary(results)

        if self.show_examples:
            self.print_examples(results)

        if not self.verbose:
            self._print()
            self._print("💡 Tip: Use --verbose flag to see detailed recommendations")

    def print_details(self, result: AnalysisResult) -> None:
        self._print(f"📦 Pod: {result.namespace}/{result.workload}")
        self._print(f"  Container: {result.container} (Age: {result.age})")
        self._print("  Current configuration:")
        if result.current_limits:
            self._print("    Limits:")
            self._print(f"      CPU: {result.current_limits.get(CPU, '❌ Not set')}")
            self._print(f"      Memory: {result.current_limits.get(MEMORY, '❌ Not set')}")
        else:
            self._print("    Limits: ❌ None")
        self._print(f"    Requests: {'✅ Set' if result.has_requests else '⚠️ Not set'}")

        usage = result.current_usage
        if usage is not None:
            self._print("  Current usage:")
            self._print(f"    CPU: {format_millicores(usage.cpu_millicores)}")
            self._print(f"    Memory: {format_memory(usage.memory_bytes)}")

        self._print(f"  Risk level: {_risk_text(result)}")

        if result.suggestions:
            self._print("  Suggestions:")
            for suggestion in result.suggestions:
                self._print(f"    - {suggestion}")

        if result.recommended_cpu_limit and result.recommended_memory_limit:
            self._print("  Recommended limits (based on current usage):")
            self._print(f"    CPU: {result.recommended_cpu_limit} (request: {result.recommended_cpu_request})")
            self._print(f"    Memory: {result.recommended_memory_limit} (request: {result.recommended_memory_request})")
            if result.example_yaml:
                self._print("  Example YAML to add to container spec:")
                self._print(result.example_yaml)

    def print_summary(self, results: Sequence[AnalysisResult]) -> None:
        s = summarize(results)
        self._print()
        self._print("📊 Summary:")
        self._print(f"  Total containers analyzed: {s['total']}")
        self._print(f"  🔴 High risk (no limits): {s['high_risk']}")
        self._print(f"  🟡 Medium risk: {s['medium_risk']}")
        self._print(f"  🟢 Low risk: {s['low_risk']}")
        self._print(f"  ❌ No limits set: {s['no_limits']}")
        self._print(f"  ⚠️  No requests set: {s['no_requests']}")
        self._print(f"  📊 With usage metrics: {s['with_usage']}")

    def print_examples(self, results: Sequence[AnalysisResult]) -> None:
        needing = [r for r in results if not r.has_limits and r.current_usage is not None]
        if not needing:
            return
        self._print()
        self._print("🔧 Specific fixes for pods without limits (based on current usage):")
        for r in needing:
            usage = r.current_usage
            self._print()
            self._print(f"  {r.key}:")
            self._print(
                f"    Current CPU usage: {format_millicores(usage.cpu_millicores)} → "
                f"Suggested: limit={r.recommended_cpu_limit}, request={r.recommended_cpu_request}"
            )
            self._print(
                f"    Current memory usage: {format_memory(usage.memory_bytes)} → "
                f"Suggested: limit={r.recommended_memory_limit}, request={r.recommended_memory_request}"
            )


def _as_dicts(results: Sequence[AnalysisResult]) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in results]


def render_json(results: Sequence[AnalysisResult]) -> str:
    return json.dumps(_as_dicts(results), indent=2, ensure_ascii=False)


def render_yaml(results: Sequence[AnalysisResult]) -> str:
    return yaml.safe_dump(_as_dicts(results), sort_keys=False, allow_unicode=True)
