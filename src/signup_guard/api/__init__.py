from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse

from signup_guard.api.common.schema import ErrorResponse
from signup_guard.api.modules.fraud.services.core import (
    FingerprintUnavailableError,
    RecordNotFoundError,
)


def register_routers(router: APIRouter) -> None:
    from signup_guard.api.modules.fraud.routes import router as fraud_router

    router.include_router(
        fraud_router,
        prefix="/fraud",
        tags=["Fraud"],
        responses={404: {"model": ErrorResponse}},
    )


async def _record_not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(detail=str(exc), code="NOT_FOUND").model_dump(),
        status_code=status.HTTP_404_NOT_FOUND,
    )


async def _fingerprint_unavailable(
    request: Request, exc: FingerprintUnavailableError
) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(detail=str(exc), code="FINGERPRINT_UNAVAILABLE").model_dump(),
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RecordNotFoundError, _record_not_found)
    app.add_exception_handler(FingerprintUnavailableError, _fingerprint_unavailable)
