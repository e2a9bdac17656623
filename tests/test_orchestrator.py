import json
from unittest.mock import MagicMock, patch

import pytest
import requests

import orchestrator
from sources.kube_client import KubeClientError
from sources.prometheus_client import PrometheusConnectionError
from normalize.quantity import MIB
from conftest import make_spec, make_usage


@pytest.fixture
def fake_cluster(monkeypatch):
    """Patch the Kubernetes sources with one ungoverned and one governed container."""
    calls = {}
    specs = [
        make_spec(workload="web-6f7d8", container="nginx"),
        make_spec(workload="db-0", container="postgres",
                  limits={"cpu": "1", "memory": "1Gi"}, requests={"cpu": "500m", "memory": "512Mi"}),
    ]
    usage = [make_usage(80, 300 * MIB, workload="web-6f7d8", container="nginx")]

    def fake_list_specs(api_client, namespace=None, excluded_namespaces=(), timeout=None):
        calls['namespace'] = namespace
        return specs

    def fake_list_usage(api_client, namespace=None, timeout=None):
        calls['usage_namespace'] = namespace
        return usage

    monkeypatch.setattr(orchestrator.kube_client, 'load_api_client', lambda *a, **k: object())
    monkeypatch.setattr(orchestrator.kube_client, 'list_container_specs', fake_list_specs)
    monkeypatch.setattr(orchestrator.kube_client, 'list_usage_samples', fake_list_usage)
    return calls


def test_json_output_with_usage(fake_cluster, capsys):
    rc = orchestrator.main(['--output', 'json', '--namespace', 'shop'])
    assert rc == 0

    data = json.loads(capsys.readouterr().out)
    # db-0 is LOW risk and filtered out without --all
    assert [d['pod'] for d in data] == ['web-6f7d8']
    assert data[0]['recommended_cpu_limit'] == '200m'
    assert data[0]['recommended_memory_limit'] == '750Mi'
    assert fake_cluster['namespace'] == 'shop'
    assert fake_cluster['usage_namespace'] == 'shop'


def test_show_all(fake_cluster, capsys):
    assert orchestrator.main(['--output', 'yaml', '--all']) == 0
    assert 'db-0' in capsys.readouterr().out


def test_usage_failure_degrades(fake_cluster, monkeypatch, capsys):
    def broken(*a, **k):
        raise KubeClientError("metrics API not available")

    monkeypatch.setattr(orchestrator.kube_client, 'list_usage_samples', broken)

    assert orchestrator.main(['--output', 'json']) == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0]['current_usage'] is None
    assert data[0]['recommended_cpu_limit'] is None
    assert data[0]['suggestions'][-1] == "📋 Consider setting limits based on application requirements"


def test_prometheus_source(fake_cluster, monkeypatch, capsys):
    monkeypatch.setattr(orchestrator.prom, 'fetch_usage_samples',
                        lambda namespace=None: [make_usage(10, 10 * MIB, workload="web-6f7d8", container="nginx")])

    assert orchestrator.main(['--output', 'json', '--usage-source', 'prometheus']) == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0]['recommended_cpu_limit'] == '100m'


def test_prometheus_unreachable_degrades(fake_cluster, monkeypatch, capsys):
    def unreachable(namespace=None):
        raise PrometheusConnectionError("request failed")

    monkeypatch.setattr(orchestrator.prom, 'fetch_usage_samples', unreachable)

    assert orchestrator.main(['--output', 'json', '--usage-source', 'prometheus']) == 0
    assert json.loads(capsys.readouterr().out)[0]['current_usage'] is None


@patch('sources.prometheus_client.requests.get')
def test_prometheus_non_json_degrades(mock_get, fake_cluster, capsys):
    resp = MagicMock()
    resp.status_code = 200
    resp.text = "<html>login page</html>"
    resp.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", resp.text, 0)
    mock_get.return_value = resp

    assert orchestrator.main(['--output', 'json', '--usage-source', 'prometheus']) == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0]['current_usage'] is None


def test_usage_source_none(fake_cluster, capsys):
    assert orchestrator.main(['--output', 'json', '--usage-source', 'none']) == 0
    assert 'usage_namespace' not in fake_cluster


def test_invalid_threshold_rejected(fake_cluster, capsys):
    assert orchestrator.main(['--threshold', '1.5']) == 1
    assert capsys.readouterr().out == ''


def test_invalid_output_rejected(fake_cluster):
    assert orchestrator.main(['--output', 'xml']) == 1


def test_pod_listing_failure_is_fatal(fake_cluster, monkeypatch):
    def forbidden(*a, **k):
        raise KubeClientError("failed to list pods: 403 Forbidden")

    monkeypatch.setattr(orchestrator.kube_client, 'list_container_specs', forbidden)
    assert orchestrator.main(['--output', 'json']) == 1


def test_no_cluster_connection_is_fatal(monkeypatch):
    def no_cluster(*a, **k):
        raise KubeClientError("could not find kubeconfig and not running in-cluster")

    monkeypatch.setattr(orchestrator.kube_client, 'load_api_client', no_cluster)
    assert orchestrator.main([]) == 1


def test_report_file_written(fake_cluster, tmp_path, capsys):
    path = tmp_path / 'reports' / 'limits.json'
    assert orchestrator.main(['--output', 'table', '--report-file', str(path)]) == 0

    report = json.loads(path.read_text())
    assert 'generated_at' in report
    assert report['scope']['usage_available'] is True
    assert report['summary']['total'] == 2
    assert len(report['containers']) == 2
    assert 'NAMESPACE' in capsys.readouterr().out


def test_atomic_write_replaces(tmp_path):
    p = tmp_path / 'out.json'
    p.write_text('old')
    orchestrator._atomic_write(str(p), '{"new": true}')
    assert json.loads(p.read_text()) == {'new': True}
    assert [f.name for f in tmp_path.iterdir()] == ['out.json']


def test_report_write_failure(fake_cluster, tmp_path, capsys):
    blocker = tmp_path / 'not-a-dir'
    blocker.write_text('')
    assert orchestrator.main(['--output', 'json', '--report-file', str(blocker / 'limits.json')]) == 1
    # The report itself still reached stdout before the write failed
    assert json.loads(capsys.readouterr().out)[0]['pod'] == 'web-6f7d8'
