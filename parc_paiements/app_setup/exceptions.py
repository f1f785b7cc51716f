"""
Gestionnaires d'exceptions de l'API.
- PaymentError (taxonomie du pipeline) -> JSON {"error", "code", "phase"} avec le statut associé
  (400 validation, 402 passerelle, 404 offre inconnue, 409 déjà finalisé + recordId, 502 amont).
- HTTPException -> JSON FastAPI standard {"detail"}.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from parc_paiements.errors import PaymentError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
