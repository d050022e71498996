import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from paygsite.application.jobs.errors import JobError, JobNotFoundError, JobStateError
from paygsite.application.services.provisioning_service import ProvisioningError, TenantNotFoundError, TenantStateError
from paygsite.core.config import settings
from paygsite.domain import models  # noqa: F401
from paygsite.infrastructure.logging.bootstrap import configure_logging
from paygsite.interfaces.api.router import api_router
from paygsite.interfaces.http.middleware import RequestContextMiddleware

configure_logging()

logger = logging.getLogger("paygsite.api")

DOMAIN_ERROR_STATUS = {
    JobNotFoundError: 404,
    JobStateError: 409,
    TenantNotFoundError: 404,
    TenantStateError: 409,
}

app = FastAPI(title=settings.app_name)
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


def error_response(request: Request, status_code: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "trace_id": getattr(request.state, "request_id", None),
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and {"error_code", "message"} <= detail.keys():
        return error_response(request, exc.status_code, str(detail["error_code"]), str(detail["message"]))
    message = detail if isinstance(detail, str) else "Request failed"
    return error_response(request, exc.status_code, str(exc.status_code), message)


@app.exception_handler(JobError)
@app.exception_handler(ProvisioningError)
async def domain_error_handler(request: Request, exc: JobError | ProvisioningError) -> JSONResponse:
    status_code = DOMAIN_ERROR_STATUS.get(type(exc), 400)
    logger.info("domain_api_error code=%s status=%s", exc.error_code, status_code)
    return error_response(request, status_code, exc.error_code, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(request, 422, "validation_error", "Request validation failed")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s method=%s", request.url.path, request.method)
    return error_response(request, 500, "internal_server_error", "Internal server error")
