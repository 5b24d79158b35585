from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the monitoring service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def current(self) -> List[Dict[str, Any]]:
        return self._get_json("/data/current")

    def history(self, num_days: int) -> List[Dict[str, Any]]:
        return self._get_json("/data/history", params={"num_days": num_days})

    def send_readings(self, readings: Any) -> Dict[str, Any]:
        if not self._config.webhook_secret:
            raise typer.BadParameter("A webhook secret is required (--secret or WEBHOOK_SECRET).")
        try:
            response = self._client.post(
                "/data/webhooks",
                json=readings,
                headers={"x-webhook-secret": self._config.webhook_secret},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def send_file(self, path: Path) -> Dict[str, Any]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} does not contain valid JSON.") from exc
        return self.send_readings(payload)

    def explain(self, question: str) -> Iterator[str]:
        body = {"messages": [{"role": "user", "content": question}]}
        with self._client.stream("POST", "/ai/explain", json=body, timeout=None) as response:
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                response.read()
                self._handle_http_error(exc)
            yield from response.iter_text()

    def _get_json(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        try:
            data = exc.response.json()
        except ValueError:
            data = None
        detail = data.get("detail") if isinstance(data, dict) else exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
