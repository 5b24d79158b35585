from __future__ import annotations

from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.sensor_table import SensorDataTable
from services.aggregator import Aggregator
from services.readings import ReadingsService
from settings import get_settings

WEBHOOK_SECRET = "test-secret"


@pytest.fixture
def sensor_table() -> SensorDataTable:
    return SensorDataTable(name="test")


@pytest.fixture
def readings_service(sensor_table: SensorDataTable) -> Iterator[ReadingsService]:
    service = ReadingsService(table=sensor_table, aggregator=Aggregator(), workers=2)
    yield service
    service.shutdown()


@pytest.fixture
def api_client(monkeypatch, readings_service: ReadingsService) -> Iterator[TestClient]:
    services: Dict[str, ReadingsService] = {"default": readings_service}

    def build_test_readings_service(workers: int | None = None) -> ReadingsService:
        return services["default"]

    build_test_readings_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setenv("WEBHOOK_SECRET", WEBHOOK_SECRET)
    get_settings.cache_clear()
    monkeypatch.setattr("app.main.build_default_readings_service", build_test_readings_service)
    monkeypatch.setattr("app.api.build_default_readings_service", build_test_readings_service)

    app = create_app()
    with TestClient(app) as client:
        yield client

    get_settings.cache_clear()
