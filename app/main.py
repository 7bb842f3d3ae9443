import time
import traceback
from contextlib import asynccontextmanager
from os import environ
from uuid import uuid4

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.errors import app_error_handler
from app.schemas.init_schemas import init_schema
from app.shared.api.utils import E_INTERNAL, api_failure, init_logger, load_routes, validation_exception_handler
from app.shared.config import config
from app.shared.storage.mongo import get_mongo_manager
from app.utils.app_errors import AppError

API_PREFIX = "/api/v1"
REQUEST_ID_HEADER = "X-Request-Id"


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its duration and turn uncaught errors into E_INTERNAL_ERROR."""

    async def dispatch(self, request: Request, call_next):  # type: ignore
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex[:8]
        started = time.perf_counter()
        route = f"{request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[{}] {} failed after {:.1f}ms: {}: {}\n{}",
                request_id,
                route,
                elapsed_ms,
                type(exc).__name__,
                exc,
                traceback.format_exc(),
            )
            failure = api_failure(E_INTERNAL, f"Internal server error (request_id: {request_id})")
            response = ORJSONResponse(status_code=500, content=failure.model_dump(mode="json"))
        else:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("[{}] {} -> {} in {:.1f}ms", request_id, route, response.status_code, elapsed_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def init_logfire(server: FastAPI) -> None:
    logger.info("Logfire enabled: instrumenting fastapi, pymongo and pydantic")
    logfire.configure(
        token=config.get("LOGFIRE_TOKEN"),
        service_name="vodcast",
        service_version=environ.get("BUILD_COMMIT") or "dev",
    )
    logfire.instrument_fastapi(server, capture_headers=True)
    logfire.instrument_pymongo(capture_statement=config.get_bool("DEBUG"))
    logfire.instrument_pydantic()


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()
    logger.info("VodCast API starting")

    # Beanie must be ready before any router touches a document
    await init_schema()
    load_routes(server, API_PREFIX)

    if config.get_bool("LOGFIRE_ENABLE"):
        init_logfire(server)

    yield

    logger.info("VodCast API stopping")
    get_mongo_manager().close_all()


app = FastAPI(
    version="1.0",
    title="VodCast API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=[x.strip() for x in (config.get("API_CORS_ORIGINS") or "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore


def build_granian_kwargs() -> dict:
    return {
        "interface": "asgi",
        "address": config.get("API_HOST") or "0.0.0.0",
        "port": config.get_int("API_PORT", 8000),
        "workers": config.get_int("API_WORKERS", 1),
        "reload": config.get_bool("DEBUG"),
    }


if __name__ == "__main__":
    Granian("app.main:app", **build_granian_kwargs()).serve()
