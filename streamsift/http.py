"""FastAPI binding that exposes structured streaming over SSE."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .config import StreamConfig, StreamingMode, StreamSchema
from .controller import stream_events
from .errors import TIMEOUT_RECOVERY, StreamSetupError
from .sources import TokenSource
from .sse import SSE_HEADERS
from .types import utc_timestamp

logger = logging.getLogger("streamsift.http")


class StreamRequest(BaseModel):
    """Body of ``POST /stream``."""

    feature: str = Field(..., min_length=1)
    step: str = Field(..., min_length=1)
    data: dict[str, Any]
    streaming_mode: StreamingMode = Field(default=StreamingMode.AUTO, alias="streamingMode")

    model_config = ConfigDict(populate_by_name=True)


SourceFactory = Callable[[StreamRequest], Awaitable[TokenSource]]
SchemaResolver = Callable[[StreamRequest], StreamSchema | None]


def create_stream_app(
    source_factory: SourceFactory,
    *,
    schema_resolver: SchemaResolver | None = None,
    config: StreamConfig | None = None,
    title: str = "streamsift",
):
    try:
        from fastapi import FastAPI, Request
        from fastapi.exceptions import RequestValidationError
        from fastapi.responses import JSONResponse, StreamingResponse
    except ModuleNotFoundError as exc:  # pragma: no cover - optional extra
        raise RuntimeError("FastAPI is required for the HTTP binding. Install streamsift[http].") from exc

    from . import __version__

    stream_config = config or StreamConfig()
    app = FastAPI(title=title, version=__version__)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(_request: Request, exc: RequestValidationError):
        details = [
            f"{'.'.join(str(part) for part in error.get('loc', ())[1:]) or 'body'}: {error.get('msg')}"
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid request data", "details": details})

    @app.exception_handler(StreamSetupError)
    async def _handle_setup_error(_request: Request, exc: StreamSetupError):
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to start streaming run", "message": exc.message},
        )

    @app.post("/stream")
    async def stream(body: StreamRequest):
        trace_id = f"streaming-{uuid.uuid4().hex}"
        schema = schema_resolver(body) if schema_resolver is not None else None
        logger.info(
            "stream_request",
            extra={
                "trace_id": trace_id,
                "feature": body.feature,
                "step": body.step,
                "streaming_mode": body.streaming_mode.value,
                "has_schema": schema is not None,
            },
        )
        try:
            async with asyncio.timeout(stream_config.timeout_s):
                source = await source_factory(body)
        except TimeoutError:
            return JSONResponse(
                status_code=408,
                content={"error": "timeout", "message": TIMEOUT_RECOVERY, "traceId": trace_id},
            )
        except StreamSetupError:
            raise
        except Exception as exc:
            logger.error("stream_setup_failed", extra={"trace_id": trace_id, "error": str(exc)})
            raise StreamSetupError(str(exc) or exc.__class__.__name__) from exc

        frames = stream_events(
            source,
            schema=schema,
            mode=body.streaming_mode,
            config=stream_config,
            trace_id=trace_id,
        )
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": title,
            "version": __version__,
            "timestamp": utc_timestamp(),
        }

    return app


__all__ = ["SchemaResolver", "SourceFactory", "StreamRequest", "create_stream_app"]
