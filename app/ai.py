"""AI explanation endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, StreamingResponse

from app.schemas import ExplainRequest
from services.explainer import ExplainerService, StreamStarted, build_default_explainer

router = APIRouter(prefix="/ai")

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def get_explainer() -> ExplainerService:
    return build_default_explainer()


@router.post(
    "/explain",
    response_class=PlainTextResponse,
    summary="Stream an analyst explanation of the current sensor state.",
)
async def explain(
    body: ExplainRequest,
    explainer: ExplainerService = Depends(get_explainer),
):
    outcome = await explainer.explain(body.messages)
    if isinstance(outcome, StreamStarted):
        return StreamingResponse(outcome.chunks, media_type=TEXT_MEDIA_TYPE)
    # Failures are rendered as assistant text so chat clients keep working.
    return PlainTextResponse(outcome.render(), media_type=TEXT_MEDIA_TYPE)
