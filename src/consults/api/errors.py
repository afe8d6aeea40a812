"""HTTP mapping for the consults error taxonomy.

Protean's handlers cover its base exceptions (400/404/...). Gate denials and
consultation state conflicts need their own status codes, and FastAPI picks
the most specific handler along the exception's MRO.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers as register_protean_exception_handlers

from consults.errors import ConsultationStateError, GatingError


def gating_error_response(exc: GatingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    register_protean_exception_handlers(app)

    @app.exception_handler(GatingError)
    async def _gating_error(request: Request, exc: GatingError):
        return gating_error_response(exc)

    @app.exception_handler(ConsultationStateError)
    async def _consultation_state_error(request: Request, exc: ConsultationStateError):
        return JSONResponse(
            status_code=409,
            content={"error": exc.messages, "consultation_id": exc.consultation_id},
        )
