"""Inference microservice entrypoint.

Exposes the forecasting model as a standalone HTTP service:
- `POST /forecast`: `{"values": [128 floats]}` in, `{"values": [24 floats]}` out
- `GET /model`: backend, target and tensor contract of the loaded model
- `GET /health`: liveness plus the inference session state

Operational notes:
- The model is loaded and validated once, in the application lifespan. A model
  that cannot be loaded aborts startup; the service never serves without one.
- Per-request failures are translated into HTTP errors: 4xx for unusable
  input, 5xx for backend failures. The process keeps serving afterwards.
- Each request is tagged with an `X-Request-ID` that appears in every log line.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from common.logging import configure_logging, reset_request_id, set_request_id
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from starlette.concurrency import run_in_threadpool

from .encoder import MEDIA_TYPE
from .errors import ClientError, PipelineError
from .inference import ForecastPipeline
from .model_loader import build_session
from .schemas import ErrorResponse, ForecastRequest, ForecastResponse, HealthOut, ModelOut
from .session import InferenceSession
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, session: Optional[InferenceSession] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service configuration; defaults to the environment.
        session: A ready session to serve with. When omitted the session is
            built from `settings` at startup and closed at shutdown.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_json)
        owned = session is None
        app.state.session = build_session(settings) if owned else session
        app.state.pipeline = ForecastPipeline(app.state.session)
        logger.info("Inference service ready: %s", app.state.session.describe())
        try:
            yield
        finally:
            if owned:
                app.state.session.close()
                logger.info("Inference session closed")

    app = FastAPI(title="Edge Forecast Inference", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response

    def get_pipeline(request: Request) -> ForecastPipeline:
        return request.app.state.pipeline

    @app.post(
        "/forecast",
        response_model=ForecastResponse,
        responses={
            400: {"model": ErrorResponse},
            422: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
        openapi_extra={
            "requestBody": {
                "required": True,
                "content": {MEDIA_TYPE: {"schema": ForecastRequest.model_json_schema()}},
            }
        },
    )
    async def forecast(request: Request, pipeline: ForecastPipeline = Depends(get_pipeline)):
        """Forecast the next OUTPUT_LEN steps from a window of INPUT_LEN samples.

        The body is decoded by the pipeline itself (not by FastAPI) so that
        malformed, mis-sized and non-finite inputs are reported with the
        service's error kinds.

        Raises:
            HTTPException: 400/422 for unusable input; 500/503 for backend failures.
        """
        body = await request.body()
        try:
            payload = await run_in_threadpool(pipeline.run, body)
        except ClientError as exc:
            logger.warning("Rejected forecast request: %s", exc)
            raise HTTPException(status_code=exc.status_code, detail=str(exc))
        except PipelineError as exc:
            logger.error("Forecast failed: %s", exc, exc_info=exc.__cause__ is not None)
            raise HTTPException(status_code=exc.status_code, detail=str(exc))
        return Response(content=payload, media_type=MEDIA_TYPE)

    @app.get("/model", response_model=ModelOut)
    def model_info(request: Request):
        """Describe the loaded model: backend, target and tensor contract."""
        return {**request.app.state.session.describe(), "model_path": settings.model_path}

    @app.get("/health", response_model=HealthOut)
    def health(request: Request):
        """Health check endpoint for the inference service.

        Returns:
            dict: `{"status": "ok", "service": "inference", "session": "<state>"}`.
        """
        return {"status": "ok", "service": "inference", "session": request.app.state.session.state.value}

    return app


def main() -> int:
    """Serve the application with uvicorn; logging is configured in the lifespan."""
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
