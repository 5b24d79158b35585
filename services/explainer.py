"""AI explanation proxy: live sensor context plus a streamed completion."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import AsyncGenerator, AsyncIterator, List, Optional, Sequence, Union

from fastapi.concurrency import run_in_threadpool

from app.schemas import ChatMessage
from models.sensors import SENSOR_CONFIG, SENSOR_TYPES
from services.llm import (
    CompletionBackend,
    CompletionError,
    PromptMessage,
    QuotaExceededError,
    build_default_backend,
)
from services.readings import ReadingsService, build_default_readings_service
from services.status import calculate_status, format_threshold_label

logger = logging.getLogger(__name__)

MAX_DETAIL_LENGTH = 300
HISTORY_WINDOW_DAYS = 7

QUOTA_NOTICE = (
    "⚠️ **API Quota Exceeded**\n\n"
    "The Gemini API rate limit has been reached. Please wait 1 minute and try again."
)
ERROR_NOTICE = "❌ **Error**\n\nFailed to process AI request."

ANNOTATION_PATTERN = re.compile(r"<!--AI_DATA:(\{.*?\})-->", re.DOTALL)


def _threshold_lines() -> str:
    lines = []
    for sensor_type in SENSOR_TYPES:
        config = SENSOR_CONFIG[sensor_type]
        unit = f" {config.unit}" if config.unit else ""
        lines.append(f"- {config.name} ({sensor_type}): {format_threshold_label(config.threshold)}{unit}")
    return "\n".join(lines)


_SENSOR_IDS = ", ".join(SENSOR_TYPES)

SYSTEM_PROMPT = f"""You are an expert wastewater monitoring analyst for a textile manufacturing facility called GreenThread. Your role is to analyze sensor data and provide clear, actionable explanations.

## Compliance Thresholds
{_threshold_lines()}

## Your Tasks
1. Analyze current sensor readings against compliance thresholds
2. Compare with historical averages provided in the context
3. Identify potential causes for anomalies
4. Provide actionable recommendations

## Response Format
When discussing a specific sensor, ALWAYS emit a data annotation using this exact format on its own line:
<!--AI_DATA:{{"activeSensorId":"sensorType","severity":"normal|warning|critical","actionRequired":true|false}}-->

Where sensorType is one of: {_SENSOR_IDS}

Example:
<!--AI_DATA:{{"activeSensorId":"ph","severity":"warning","actionRequired":true}}-->

Severity levels:
- normal: Within compliance thresholds
- warning: Approaching threshold limits (within 10%)
- critical: Exceeding compliance thresholds

Be concise but thorough. Focus on the "why" behind anomalies and what actions should be taken."""


def _cap(detail: str) -> str:
    return detail[:MAX_DETAIL_LENGTH]


def render_quota_notice(detail: str) -> str:
    return f"{QUOTA_NOTICE}\n\nDetails: {_cap(detail)}"


def render_error_notice(detail: str) -> str:
    return f"{ERROR_NOTICE}\n\nDetails: {_cap(detail)}"


@dataclass
class StreamStarted:
    """The backend produced its first chunk; ``chunks`` relays the rest."""

    chunks: AsyncIterator[str]


@dataclass
class QuotaExceeded:
    detail: str

    def render(self) -> str:
        return render_quota_notice(self.detail)


@dataclass
class BackendFailure:
    detail: str

    def render(self) -> str:
        return render_error_notice(self.detail)


ExplainOutcome = Union[StreamStarted, QuotaExceeded, BackendFailure]


@dataclass(frozen=True)
class AIAnnotation:
    active_sensor_id: str
    severity: str
    action_required: bool


def extract_annotations(text: str) -> List[AIAnnotation]:
    """Collect every well-formed ``AI_DATA`` block; malformed ones are skipped."""
    annotations: List[AIAnnotation] = []
    for match in ANNOTATION_PATTERN.finditer(text):
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if not isinstance(payload, dict) or "activeSensorId" not in payload:
            continue
        annotations.append(
            AIAnnotation(
                active_sensor_id=str(payload["activeSensorId"]),
                severity=str(payload.get("severity", "normal")),
                action_required=bool(payload.get("actionRequired", False)),
            )
        )
    return annotations


def strip_annotations(text: str) -> str:
    return ANNOTATION_PATTERN.sub("", text)


def _format_number(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


class ExplainerService:
    """Builds the prompt for a chat turn and opens the completion stream."""

    def __init__(self, readings: ReadingsService, backend: CompletionBackend) -> None:
        self.readings = readings
        self.backend = backend

    def build_context(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        latest = self.readings.latest_by_type()
        averages = self.readings.averages_since(now - timedelta(days=HISTORY_WINDOW_DAYS))

        lines = []
        for sensor_type in SENSOR_TYPES:
            reading = latest.get(sensor_type)
            if reading is None:
                continue
            config = SENSOR_CONFIG[sensor_type]
            status = calculate_status(reading.value, config.threshold)
            line = f"- {config.name} ({sensor_type}): {_format_number(reading.value)} {config.unit}".rstrip()
            line += f" [{status}]"
            historical = averages.get(sensor_type)
            if historical is not None:
                average = f"{_format_number(historical.average)} {config.unit}".rstrip()
                line += f" | {HISTORY_WINDOW_DAYS}-day avg: {average} ({historical.count} readings)"
            lines.append(line)

        summary = "\n".join(lines) or "No recent data available"
        return (
            f"Current sensor readings as of {now.isoformat()}:\n{summary}\n\n"
            "When analyzing sensors, always include the AI_DATA annotation to trigger UI highlighting."
        )

    def build_messages(
        self, messages: Sequence[ChatMessage], now: Optional[datetime] = None
    ) -> List[PromptMessage]:
        context = PromptMessage(role="system", content=self.build_context(now))
        return [context] + [
            PromptMessage(role=message.role, content=message.text()) for message in messages
        ]

    async def explain(
        self, messages: Sequence[ChatMessage], now: Optional[datetime] = None
    ) -> ExplainOutcome:
        # Context reads wait on the readings pool.
        prompt = await run_in_threadpool(self.build_messages, messages, now)
        chunks = self.backend.stream(SYSTEM_PROMPT, prompt)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            return StreamStarted(chunks=_empty())
        except QuotaExceededError as exc:
            logger.warning("Completion quota exceeded", extra={"reason": str(exc)})
            return QuotaExceeded(detail=str(exc))
        except CompletionError as exc:
            logger.error("Completion backend failed", extra={"reason": str(exc)})
            return BackendFailure(detail=str(exc))
        return StreamStarted(chunks=self._relay(first, chunks))

    async def _relay(
        self, first: str, chunks: AsyncGenerator[str, None]
    ) -> AsyncGenerator[str, None]:
        try:
            yield first
            async for chunk in chunks:
                yield chunk
        except QuotaExceededError as exc:
            logger.warning("Completion quota exceeded mid-stream", extra={"reason": str(exc)})
            yield f"\n\n{render_quota_notice(str(exc))}"
        except CompletionError as exc:
            logger.error("Completion stream failed", extra={"reason": str(exc)})
            yield f"\n\n{render_error_notice(str(exc))}"
        finally:
            await chunks.aclose()


async def _empty() -> AsyncGenerator[str, None]:
    return
    yield


@lru_cache
def build_default_explainer() -> ExplainerService:
    return ExplainerService(
        readings=build_default_readings_service(),
        backend=build_default_backend(),
    )
