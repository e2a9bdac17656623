"""
Tests for report rendering
"""
import io
import json

import yaml

from analysis.models import RiskTier
from analysis.resource_analysis import analyze_container, analyze_containers
from normalize.quantity import MIB
from reporter import Reporter, filter_results, format_table, summarize
from conftest import make_spec, make_usage


def _render(results, output_format="table", show_all=False, **kwargs):
    out = io.StringIO()
    Reporter(output_format, stream=out, **kwargs).generate_report(results, show_all=show_all)
    return out.getvalue()


def test_filter_hides_low_risk_unless_show_all(mixed_specs, mixed_usage):
    results = analyze_containers(mixed_specs, mixed_usage, 0.8)
    assert [r.risk_level for r in results] == [RiskTier.HIGH, RiskTier.MEDIUM, RiskTier.LOW]
    assert len(filter_results(results)) == 2
    assert len(filter_results(results, show_all=True)) == 3


def test_summarize_counts(mixed_specs, mixed_usage):
    summary = summarize(analyze_containers(mixed_specs, mixed_usage, 0.8))
    assert summary == {
        "total": 3,
        "high_risk": 1,
        "medium_risk": 1,
        "low_risk": 1,
        "no_limits": 1,
        "no_requests": 1,
        "with_usage": 2,
    }


def test_json_output(mixed_specs, mixed_usage):
    results = analyze_containers(mixed_specs, mixed_usage, 0.8)
    data = json.loads(_render(results, "json"))
    assert [d["container"] for d in data] == ["web", "worker"]
    assert data[0]["recommended_cpu_limit"] == "100m"
    assert data[1]["recommended_cpu_limit"] is None


def test_yaml_output(mixed_specs, mixed_usage):
    results = analyze_containers(mixed_specs, mixed_usage, 0.8)
    data = yaml.safe_load(_render(results, "yaml", show_all=True))
    assert len(data) == 3
    assert data[2]["risk_level"] == "LOW"
    assert data[0]["suggestions"][0] == "❌ No resource limits set"


def test_table_all_clear():
    result = analyze_container(
        make_spec(limits={"cpu": "1", "memory": "1Gi"}, requests={"cpu": "1"}), None, 0.8
    )
    assert _render([result]) == "✅ All pods have proper resource limits configured.\n"


def test_compact_table(mixed_specs, mixed_usage):
    results = analyze_containers(mixed_specs, mixed_usage, 0.8)
    text = _render(results)
    lines = text.splitlines()

    assert lines[0].split() == ["NAMESPACE", "POD", "CONTAINER", "AGE", "LIMITS", "REQUESTS", "RISK", "SUGGESTIONS"]
    assert "no-limits-7d9f8" in lines[2]
    assert "🔴HIGH" in lines[2]
    assert "(+1 more)" in lines[2]
    assert "CPU:500m" in lines[3]
    assert "📊 Summary:" in text
    assert "Total containers analyzed: 2" in text
    assert "🔧 Specific fixes for pods without limits" in text
    assert "default/no-limits-7d9f8/web:" in text
    assert "limit=100m, request=50m" in text
    assert "Tip: Use --verbose" in text


def test_no_examples(mixed_specs, mixed_usage):
    results = analyze_containers(mixed_specs, mixed_usage, 0.8)
    assert "Specific fixes" not in _render(results, show_examples=False)


def test_verbose_details():
    result = analyze_container(make_spec(), make_usage(10, 10 * MIB), 0.8)
    text = _render([result], verbose=True)
    assert "📦 Pod: default/api-server-abc12" in text
    assert "Limits: ❌ None" in text
    assert "Requests: ⚠️ Not set" in text
    assert "CPU: 10m" in text
    assert "Memory: 10Mi" in text
    assert "Recommended limits (based on current usage):" in text
    assert "CPU: 100m (request: 50m)" in text
    assert result.example_yaml in text
    assert "Tip: Use --verbose" not in text


def test_verbose_partial_limits():
    result = analyze_container(make_spec(limits={"cpu": "250m"}, requests={"cpu": "100m"}), None, 0.8)
    text = _render([result], verbose=True)
    assert "CPU: 250m" in text
    assert "Memory: ❌ Not set" in text
    assert "Recommended limits" not in text


def test_format_table_alignment():
    lines = format_table([["A", "BB", "C"], ["long-value", "x", "tail"]])
    assert lines[0] == "A            BB   C"
    assert lines[1] == "long-value   x    tail"
