from datetime import datetime, timedelta, timezone

import pytest

from datastore.sensor_table import DatastoreError, ReadingQuery, SensorDataTable
from models.records import SensorReading

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _seed(table: SensorDataTable) -> None:
    table.insert_many(
        [
            SensorReading(type="ph", value=float(7 + i), unit="", recorded_at=BASE + timedelta(hours=i))
            for i in range(5)
        ]
        + [SensorReading(type="tds", value=450.0, unit="ppm", recorded_at=BASE)]
    )


def test_latest_returns_newest_reading_per_type(sensor_table: SensorDataTable) -> None:
    _seed(sensor_table)

    latest = sensor_table.latest("ph")

    assert latest is not None
    assert latest.recorded_at == BASE + timedelta(hours=4)
    assert sensor_table.latest("turbidity") is None


def test_date_bounds_are_inclusive(sensor_table: SensorDataTable) -> None:
    _seed(sensor_table)

    rows = sensor_table.select(
        ReadingQuery(
            sensor_type="ph",
            recorded_from=BASE + timedelta(hours=1),
            recorded_to=BASE + timedelta(hours=3),
        )
    )

    assert [row.recorded_at for row in rows] == [BASE + timedelta(hours=h) for h in (1, 2, 3)]


def test_select_with_count_reports_total_before_windowing(sensor_table: SensorDataTable) -> None:
    _seed(sensor_table)

    rows, total = sensor_table.select_with_count(
        ReadingQuery(order_by="value", ascending=False, offset=1, limit=2)
    )

    assert total == 6
    assert [row.value for row in rows] == [11.0, 10.0]


def test_rejects_unknown_order_column(sensor_table: SensorDataTable) -> None:
    with pytest.raises(ValueError):
        sensor_table.select(ReadingQuery(order_by="unit"))


def test_rows_survive_reload(tmp_path) -> None:
    path = tmp_path / "sensor_data.json"
    table = SensorDataTable(name="test", persistence_path=path)
    _seed(table)

    reloaded = SensorDataTable(name="test", persistence_path=path)

    assert len(reloaded.scan()) == 6
    assert reloaded.latest("tds").unit == "ppm"
    assert reloaded.latest("ph").recorded_at == BASE + timedelta(hours=4)


def test_failed_write_keeps_nothing(tmp_path) -> None:
    # A directory in place of the data file makes every write fail.
    path = tmp_path / "sensor_data.json"
    path.mkdir()
    table = SensorDataTable(name="test", persistence_path=path)

    with pytest.raises(DatastoreError):
        _seed(table)

    assert table.scan() == []
