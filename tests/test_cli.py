"""Tests del entry point CLI en modo --once."""

import sys

import pytest

from airflow_collector import cli


@pytest.fixture
def statsd_only_env(monkeypatch, tmp_path):
    monkeypatch.setenv("AIRFLOW_COLLECTOR_ENV_FILE", str(tmp_path / "none.env"))
    monkeypatch.setenv("COLLECT_REST_API", "false")
    monkeypatch.setenv("COLLECT_STATSD", "true")
    monkeypatch.setenv("STATSD_ENDPOINT", "127.0.0.1:0")
    monkeypatch.delenv("COLLECT_DATABASE", raising=False)
    monkeypatch.delenv("COLLECT_LOGS", raising=False)
    return monkeypatch


class TestCliOnce:

    def test_once_runs_and_exits(self, statsd_only_env):
        statsd_only_env.setattr(sys, "argv", ["airflow-collector", "--once"])
        assert cli.main() == 0

    def test_invalid_config_exit_code(self, statsd_only_env):
        statsd_only_env.setenv("COLLECT_STATSD", "false")
        statsd_only_env.setattr(sys, "argv", ["airflow-collector", "--once"])
        assert cli.main() == 2
