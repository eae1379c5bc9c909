"""Errores de dominio del módulo de deudas y su traducción a respuestas HTTP."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DebtTrackerError(Exception):
    """Base de todos los errores de negocio. Lleva el código HTTP asociado."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(DebtTrackerError):
    """Entrada incompleta o mal formada."""

    status_code = 400


class NotFoundError(DebtTrackerError):
    status_code = 404


class ForbiddenError(DebtTrackerError):
    status_code = 403


class ConflictError(DebtTrackerError):
    """Regla de negocio violada por el estado actual de la deuda."""

    status_code = 400


class InvalidAmortizationError(ConflictError):
    pass


class OverpaymentError(ConflictError):
    pass


class AlreadyPaidError(ConflictError):
    pass


class AmountMismatchError(ConflictError):
    pass


class ImmutableFieldError(ConflictError):
    pass


class DebtClosedError(ConflictError):
    pass


class InternalError(DebtTrackerError):
    """Fallo de almacenamiento dentro de una unidad atómica (ya revertida)."""

    status_code = 500


class WriteConflictError(InternalError):
    """Otra transacción modificó el mismo registro entre la lectura y el commit."""


async def debt_tracker_error_handler(request: Request, exc: DebtTrackerError):
    if exc.status_code >= 500:
        logger.error("Error interno en %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(DebtTrackerError, debt_tracker_error_handler)
