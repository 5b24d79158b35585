from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List

import pytest
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.sent: List[Any] = []
        self.sent_files: List[Path] = []
        self.history_days: List[int] = []
        self.questions: List[str] = []
        self.answer_chunks = [
            "Turbidity is above the limit.\n",
            '<!--AI_DATA:{"activeSensorId":"turbidity","severity":"critical","actionRequired":true}-->',
        ]
        self.closed = False

    def current(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": "ph",
                "name": "pH Level",
                "value": 7.2,
                "unit": "",
                "threshold": {"min": 5.5, "max": 8.5, "label": "5.5 - 8.5"},
                "status": "compliant",
            },
            {
                "id": "turbidity",
                "name": "Turbidity",
                "value": None,
                "unit": "NTU",
                "threshold": {"min": None, "max": 50, "label": "≤ 50.0"},
                "status": None,
            },
        ]

    def history(self, num_days: int) -> List[Dict[str, Any]]:
        self.history_days.append(num_days)
        return [
            {"timestamp": "2024-05-01T10:00:00Z", "ph": 7.1, "turbidity": None},
            {"timestamp": "2024-05-01T10:05:00Z", "ph": 7.3, "turbidity": 20.0},
        ]

    def send_readings(self, readings: Any) -> Dict[str, Any]:
        self.sent.append(readings)
        count = len(readings) if isinstance(readings, list) else 1
        return {"success": True, "message": "ok", "count": count}

    def send_file(self, path: Path) -> Dict[str, Any]:
        self.sent_files.append(path)
        return self.send_readings(json.loads(path.read_text()))

    def explain(self, question: str) -> Iterator[str]:
        self.questions.append(question)
        yield from self.answer_chunks

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_current_lists_sensors(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["current"])

    assert result.exit_code == 0
    assert "pH Level: 7.2 (limit 5.5 - 8.5) [compliant]" in result.stdout
    assert "Turbidity: no data (limit ≤ 50.0) [awaiting data]" in result.stdout
    assert stub.closed is True


def test_history_passes_days(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["history", "--days", "3"])

    assert result.exit_code == 0
    assert stub.history_days == [3]
    assert "buckets: 2" in result.stdout
    assert "turbidity=20.0" in result.stdout


def test_send_posts_file(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    path = tmp_path / "readings.json"
    path.write_text(
        json.dumps([{"type": "ph", "value": 7.0, "unit": "", "recorded_at": "2024-05-01T10:00:00Z"}])
    )

    result = runner.invoke(app, ["--secret", "shh", "send", str(path)])

    assert result.exit_code == 0
    assert "Stored 1 reading(s)." in result.stdout
    assert stub.sent_files == [path]
    assert stub.config.webhook_secret == "shh"


def test_simulate_sends_batches(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["simulate", "--count", "2", "--interval", "0"])

    assert result.exit_code == 0
    assert len(stub.sent) == 2
    assert all(len(batch) == 6 for batch in stub.sent)
    assert "Batch 2/2: stored 6 reading(s)." in result.stdout


def test_explain_strips_annotations(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["explain", "Why is turbidity high?"])

    assert result.exit_code == 0
    assert stub.questions == ["Why is turbidity high?"]
    assert "Turbidity is above the limit." in result.stdout
    assert "AI_DATA" not in result.stdout
    assert "turbidity: critical (action required)" in result.stdout


def test_base_url_option_overrides_default(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://monitor:9000/", "current"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://monitor:9000"
