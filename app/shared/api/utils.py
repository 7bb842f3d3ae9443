from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from app.utils.app_errors import AppErrorCode

E_INTERNAL = AppErrorCode.E_INTERNAL_ERROR.value
E_INVALID_PARAMS = AppErrorCode.E_INVALID_PARAMS.value


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get("BUILD_COMMIT", "dev"))


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    data: Any = "OK"


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    code: str = E_INTERNAL
    error: str = "We are sorry, an error occurred."
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])


def api_failure(code: str | None = None, error: str | None = None) -> ApiFailure:
    import inspect

    if not code:
        code = ApiFailure.model_fields["code"].default

    if not error:
        error = ApiFailure.model_fields["error"].default

    failure = ApiFailure(code=code, error=error)

    caller_frame = inspect.stack()[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(f"{failure.code} {failure.erresid}\n{failure.error} caller={caller_info}")

    return failure


def check_error(results: ApiFailure | dict) -> tuple[bool, bool]:
    if isinstance(results, ApiFailure):
        return True, results.code == E_INTERNAL

    if isinstance(results, dict) and results.get("success") is False:
        return True, results.get("code") == E_INTERNAL

    return False, False


def make_response(results: ApiResponse | dict, *, status_code: int | None = None):
    if status_code is None:
        is_error, is_internal = check_error(results)
        if is_error:
            status_code = 500 if is_internal else 400
        else:
            status_code = 200

    return ORJSONResponse(
        status_code=status_code,
        content=results.model_dump(mode="json") if isinstance(results, BaseModel) else results,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning("Validation error: path={} method={} errors={}", request.url.path, request.method, errors)

    failure = api_failure(E_INVALID_PARAMS, error=str(errors))
    return ORJSONResponse(status_code=422, content=failure.model_dump(mode="json"))


def load_routes(app: FastAPI, prefix: str):
    app_root = Path(__file__).parent.parent.parent
    for folder in (app_root / "api", app_root / "shared" / "api"):
        load_routes_in_folder(app, prefix, folder, app_root)

    for route_info in get_all_routes_info(app):
        methods = ",".join(sorted(route_info["methods"]))
        logger.info("Loaded route: {:<12} {:<60} {}", methods, route_info["path"], route_info["endpoint"])


def load_routes_in_folder(app: FastAPI, prefix: str, folder: Path, app_root: Path):
    from app.shared.config import config

    disabled_routes = [x.strip() for x in (config.get("API_DISABLED") or "").split(",") if x.strip()]
    logger.debug("disabled routes: {}", disabled_routes)

    for x in sorted(folder.rglob("*.py")):
        if x.name == "__init__.py":
            continue

        relative_path = x.relative_to(app_root.parent)
        name = str(relative_path.with_suffix("")).replace("/", ".").replace("\\", ".")
        if any(f".{disabled}" in name for disabled in disabled_routes):
            logger.warning("disabled route module {}", name)
            continue

        module = import_module(name)
        if hasattr(module, "router"):
            app.include_router(module.router, prefix=prefix)
            logger.info("Added routes in {}", name)


def get_all_routes_info(app: FastAPI):
    routes_info = []

    for route in app.routes:
        if hasattr(route, "methods"):
            endpoint_name = route.endpoint.__name__ if hasattr(route.endpoint, "__name__") else str(route.endpoint)
            routes_info.append(
                {
                    "methods": sorted(route.methods),
                    "path": route.path,
                    "name": route.name,
                    "endpoint": endpoint_name,
                }
            )

    return routes_info


@lru_cache
def get_worker_info():
    project_root = Path(__file__).parent.parent.parent.parent
    worker_name = environ.get("WORKER_NAME", project_root.name)

    parts = environ.get("BUILD_COMMIT", "").split("-")
    commit_id = parts[1] if len(parts) > 1 else "dev"

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger():
    import logging
    import sys

    from app.shared.config import config

    for name in ("streaq", "pymongo", "httpx", "botocore", "aiobotocore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()

    worker_name, commit_id, _ = get_worker_info()

    if config.get_bool("DEBUG"):
        logger_level = "DEBUG"
        logger_format = (
            f"<yellow>{worker_name}:{commit_id}</yellow> | "
            "<green>{time:MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )
    else:
        logger_level = "INFO"
        logger_format = (
            f"{worker_name}:{commit_id} | "
            "{time:MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)
