# app/core/errors.py
from fastapi import HTTPException


class ErrorValidacion(HTTPException):
    """Entrada mal formada, detectada antes de cualquier escritura."""

    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class ErrorAutorizacion(HTTPException):
    """El usuario autenticado no puede ejecutar la operación sobre ese objeto."""

    def __init__(self, detail: str = "No tenés permiso"):
        super().__init__(status_code=403, detail=detail)


class ErrorConsistencia(HTTPException):
    """El objeto está en un estado que no admite la operación."""

    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)


class NoEncontrado(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)
