"""Tests de los endpoints de health con FastAPI TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from airflow_collector.controller import CollectorController, get_controller, set_controller
from airflow_collector.emission.sink import InMemorySink
from airflow_collector.endpoints.health import router
from conftest import FakeAdapter


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(router)
    yield TestClient(app)
    set_controller(None)


@pytest.fixture
def controller():
    ctrl = CollectorController(
        [FakeAdapter("rest_api"), FakeAdapter("statsd", fail_start=True)], InMemorySink(),
    )
    set_controller(ctrl)
    yield ctrl
    ctrl.stop()
    set_controller(None)


class TestHealthEndpoints:

    def test_liveness(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    def test_not_ready_without_controller(self, client):
        assert client.get("/ready").status_code == 503

    def test_not_ready_before_start(self, client, controller):
        assert client.get("/ready").status_code == 503

    def test_ready_with_running_adapter(self, client, controller):
        controller.start()
        r = client.get("/ready")
        assert r.status_code == 200
        assert r.json()["adapters"] == ["rest_api"]

    def test_adapters_health(self, client, controller):
        controller.start()
        body = client.get("/health/adapters").json()

        assert set(body["adapters"]) == {"rest_api", "statsd"}
        assert body["adapters"]["rest_api"]["running"] is True
        assert body["adapters"]["statsd"]["running"] is False
        assert body["adapters"]["statsd"]["failed_scrapes"] == 1
        assert "port in use" in body["adapters"]["statsd"]["start_error"]

    def test_adapters_health_without_controller(self, client):
        body = client.get("/health/adapters").json()
        assert body["healthy"] is False
        assert body["adapters"] == {}


class TestAppLifespan:

    def test_lifespan_starts_and_stops_controller(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AIRFLOW_COLLECTOR_ENV_FILE", str(tmp_path / "missing.env"))
        monkeypatch.setenv("COLLECT_REST_API", "false")
        monkeypatch.setenv("COLLECT_STATSD", "true")
        monkeypatch.setenv("STATSD_ENDPOINT", "127.0.0.1:0")

        from airflow_collector.main import app

        with TestClient(app) as c:
            ctrl = get_controller()
            assert ctrl is not None
            assert ctrl.adapter_names == ["statsd"]
            assert c.get("/ready").status_code == 200

        assert get_controller() is None
        assert ctrl.running_adapters == []
