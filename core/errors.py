"""Application error definitions and FastAPI handlers."""

from typing import Any, Dict, Type, TypeVar, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class AppException(Exception):
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, code: str = "error"):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class NotFoundException(AppException):
    def __init__(self, message: str = "Registro no encontrado"):
        super().__init__(message=message, status_code=status.HTTP_404_NOT_FOUND, code="not_found")


class ValidationAppException(AppException):
    def __init__(self, message: str = "Datos inválidos"):
        super().__init__(message=message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, code="validation_error")


class NotAuthenticatedException(AppException):
    def __init__(self, message: str = "No autenticado"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, code="not_authenticated")


class PermissionDeniedException(AppException):
    def __init__(self, message: str = "No tiene permisos para realizar esta acción"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN, code="permission_denied")


class InvalidStateException(AppException):
    def __init__(self, message: str):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, code="invalid_state")


class BudgetExceededException(AppException):
    """Approval would push the rubro over its budget and was not acknowledged."""

    def __init__(self, message: str, excedente: float):
        self.excedente = excedente
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, code="budget_exceeded")


class DeviationNotAcknowledgedException(AppException):
    """Closing would register a positive cost deviation and was not acknowledged."""

    def __init__(self, message: str, desvio: float, desvio_porcentaje: float):
        self.desvio = desvio
        self.desvio_porcentaje = desvio_porcentaje
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, code="deviation_detected")


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Datos inválidos"
    first = errors[0]
    # Messages raised from our own validators travel in ctx["error"]
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"Datos inválidos: {field}" if field else "Datos inválidos"


def parse_payload(schema: Type[SchemaT], payload: Union[SchemaT, Dict[str, Any], None]) -> SchemaT:
    """Coerce an action payload into ``schema`` or raise a validation error."""
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload or {})
    except ValidationError as exc:
        raise ValidationAppException(_first_error_message(exc)) from exc


def _format_error(detail: str, code: str):
    return {"success": False, "error": detail, "code": code}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(status_code=exc.status_code, content=_format_error(exc.message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Los datos enviados no son válidos"
        if errors:
            ctx_error = (errors[0].get("ctx") or {}).get("error")
            if ctx_error is not None:
                message = str(ctx_error)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_format_error(message, "validation_error"),
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_format_error(_first_error_message(exc), "validation_error"),
        )
