"""Ingestion routes for the corpus ingestion service."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from starlette.concurrency import run_in_threadpool

from src.logging_setup import set_request_id
from src.models.ingestion import IngestionFailure
from src.services.content_addresser import sanitize_key
from src.services.ingestion_pipeline import IngestionPipeline

router = APIRouter()
_INGEST_LOG = logging.getLogger("ingest")

STATUS_BY_KIND: dict[str, int] = {
    "bad_request": 400,
    "source_fetch_error": 400,
    "malformed_source": 422,
    "configuration_error": 500,
    "external_service_error": 502,
    "validation_error": 502,
}


class IngestRequest(BaseModel):
    """Body accepted by ``POST /ingest``; ``blobUrl`` is kept as an alias of ``sourceUrl``."""

    source_url: str | None = Field(default=None, alias="sourceUrl")
    blob_url: str | None = Field(default=None, alias="blobUrl")
    project_id: str | None = Field(default=None, alias="projectId")
    ingestion_id: str | None = Field(default=None, alias="ingestionId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("project_id", "ingestion_id")
    @classmethod
    def _usable_key(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        sanitize_key(value, label="Key")
        return value.strip()

    @model_validator(mode="after")
    def _require_location(self) -> "IngestRequest":
        if not (self.location or "").strip():
            raise ValueError("sourceUrl (or blobUrl) is required")
        return self

    @property
    def location(self) -> str:
        return (self.source_url or self.blob_url or "").strip()


class BadRequest(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def _failure_response(failure: IngestionFailure) -> JSONResponse:
    return JSONResponse(failure.to_dict(), status_code=STATUS_BY_KIND.get(failure.kind, 500))


async def _parse_ingest_request(request: Request) -> IngestRequest:
    try:
        raw: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequest("Expected JSON body") from exc
    if not isinstance(raw, dict):
        raise BadRequest("Expected a JSON object body")
    try:
        return IngestRequest.model_validate(raw)
    except PydanticValidationError as exc:
        messages = "; ".join(str(err.get("msg")) for err in exc.errors())
        raise BadRequest(f"Invalid ingest payload: {messages}") from exc


@router.post("/ingest", tags=["ingest"])
async def ingest(request: Request):
    set_request_id(request.headers.get("x-request-id") or uuid.uuid4().hex)
    try:
        payload = await _parse_ingest_request(request)
    except BadRequest as exc:
        _INGEST_LOG.info("ingest_rejected", extra={"reason": exc.message})
        return _failure_response(IngestionFailure(kind="bad_request", message=exc.message))

    pipeline: IngestionPipeline = request.app.state.pipeline
    outcome = await run_in_threadpool(
        pipeline.ingest,
        payload.location,
        project_id=payload.project_id,
        ingestion_key=payload.ingestion_id,
    )
    if isinstance(outcome, IngestionFailure):
        return _failure_response(outcome)
    return JSONResponse(outcome.to_dict(), status_code=200)


@router.get("/healthz", summary="Healthz")
async def healthz():
    return {"status": "ok"}


__all__ = ["router", "IngestRequest", "STATUS_BY_KIND"]
