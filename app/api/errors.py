from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.shared.api.utils import ApiFailure, make_response
from app.utils.app_errors import AppError, ErrorKind

_LOG_AS_ERROR = (ErrorKind.INTERNAL, ErrorKind.DEPENDENCY_FAILURE)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Custom exception handler for AppError.
    Converts AppError to ApiFailure and returns via make_response.
    """
    # Log with the caller info captured when AppError was raised
    log_msg = (
        f"{exc.errcode} {exc.erresid} kind={exc.kind.value} msg={exc.errmesg} "
        f"path={request.url.path} caller={exc.caller_info}"
    )
    if exc.kind in _LOG_AS_ERROR:
        logger.error(log_msg)
    else:
        logger.warning(log_msg)

    failure = ApiFailure(code=exc.errcode, error=exc.errmesg, erresid=exc.erresid)
    return make_response(failure, status_code=exc.status_code)
