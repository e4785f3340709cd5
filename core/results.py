"""Tagged results returned across the service boundary.

Service actions never raise for expected business-rule rejections. Each action
returns either ``Success(data)`` or ``Failure(error, code)`` and callers branch
on ``result.success``. Budget and deviation gate failures are meant to be
retried by the caller with the matching acknowledgement flag set.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar, Union

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import AppException

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure:
    error: str
    code: str = "error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    success: bool = field(default=False, init=False)


ActionResult = Union[Success[T], Failure]


def action(error_message: str) -> Callable[[Callable[..., Any]], Callable[..., ActionResult]]:
    """Fold the outcome of a service function into an ``ActionResult``.

    The wrapped function receives the session as its first argument. Any
    ``AppException`` becomes a ``Failure`` carrying its message. Store errors are
    logged with their traceback and reported with ``error_message`` only. The
    session is rolled back on every failure.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., ActionResult]:
        @functools.wraps(func)
        def wrapper(db: Session, *args, **kwargs) -> ActionResult:
            try:
                return Success(func(db, *args, **kwargs))
            except AppException as exc:
                db.rollback()
                logger.info("%s rejected (%s): %s", func.__name__, exc.code, exc.message)
                return Failure(error=exc.message, code=exc.code, status_code=exc.status_code)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("%s failed against the database", func.__name__)
                return Failure(
                    error=error_message,
                    code="infrastructure_error",
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                )

        return wrapper

    return decorator


def to_response(result: ActionResult) -> JSONResponse:
    if result.success:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder({"success": True, "data": result.data}),
        )
    return JSONResponse(
        status_code=result.status_code,
        content={"success": False, "error": result.error, "code": result.code},
    )
